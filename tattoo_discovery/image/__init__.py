"""Image generation package.

Scope:
    Provider adapters behind a common interface, an ordered fallback pipeline,
    bounded polling for asynchronous vendors, reference-image intake and the
    service that ties generation to the entitlement ledger.

Non-goals:
    - No parallel racing of providers; attempts are strictly sequential.
    - No image storage beyond the generated-design record.
"""
