"""Identity keys for the entitlement ledger.

A signed-in user is keyed by user ID. An unauthenticated paid user is keyed by
normalized email, prefixed so it can never collide with a user ID.
"""

from tattoo_discovery.image.errors import ValidationError

EMAIL_KEY_PREFIX = "email_"


def normalize_email(email):
    if email is None:
        return None
    normalized = str(email).strip().lower()
    return normalized or None


def identity_key(user_id=None, email=None) -> str:
    """Return the ledger key for a user ID or email; the user ID wins."""
    if user_id is not None and str(user_id).strip():
        return str(user_id).strip()

    normalized = normalize_email(email)
    if normalized:
        return EMAIL_KEY_PREFIX + normalized

    raise ValidationError("Either userId or email is required")
