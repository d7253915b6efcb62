"""Generation entitlement ledger.

Architectural role:
    Gates the generation pipeline on payment state and enforces the
    one-generation-per-payment policy. State lives in a `DocumentStore`
    keyed by identity key (user ID or normalized email).
"""
