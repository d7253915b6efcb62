"""Entitlement errors.

`EntitlementDenied` is fatal for the current request and maps to HTTP 402. The
short `reason` is one of `REASON_*`; `message` is the user-facing text.
"""

REASON_NO_PAYMENT = "no payment"
REASON_NOT_VERIFIED = "payment not verified"
REASON_LIMIT_REACHED = "limit reached"

USER_MESSAGES = {
    REASON_NO_PAYMENT: "Payment required. Please complete your payment to generate a tattoo design.",
    REASON_NOT_VERIFIED: "Payment not verified. Please complete your payment to generate a tattoo design.",
    REASON_LIMIT_REACHED: (
        "You have already used your tattoo generation. "
        "Each payment includes one generation."
    ),
}


class EntitlementDenied(Exception):
    """The identity may not run (or consume) a generation right now."""

    def __init__(self, reason, message=None):
        super().__init__(message or USER_MESSAGES.get(reason, reason))
        self.reason = reason
        self.message = str(self)
