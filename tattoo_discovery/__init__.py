"""Tattoo design generation service.

Subpackages:
    - `image`: provider adapters, fallback pipeline and generation service.
    - `prompting`: deterministic prompt construction.
    - `entitlement`: payment-gated generation ledger.
    - `designs`: generated-design records.
    - `payments`: Stripe checkout boundary.
    - `api`: HTTP and CLI adapters.
"""

__version__ = "0.1.0"
