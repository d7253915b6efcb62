"""Stripe checkout boundary.

Creates buy-in checkout sessions, verifies paid sessions and turns completed
checkout webhooks into ledger payments.
"""
