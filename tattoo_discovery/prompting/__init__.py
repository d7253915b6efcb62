"""Prompting package.

Deterministic prompt-construction helpers for tattoo design requests. Nothing
here performs I/O or calls a provider.
"""
