"""Stripe checkout boundary for the buy-in payment.

Processing flow:
    1. `create_checkout_session` opens a one-off payment session whose
       metadata carries the buyer's `userId` / `userEmail`.
    2. After checkout, the client either lands on the success page (and calls
       `record_paid_session` with the session ID) or Stripe delivers a
       `checkout.session.completed` webhook (`handle_webhook`).
    3. Both paths call `EntitlementLedger.record_payment` for the identity
       found on a session whose `payment_status` is `paid`.

Error handling:
    Stripe SDK errors are wrapped in `PaymentError` so the HTTP layer can map
    them without importing `stripe`. A missing secret key raises
    `PaymentNotConfigured`.
"""

import logging

import stripe

from tattoo_discovery.entitlement.identity import identity_key, normalize_email


logger = logging.getLogger(__name__)

PRODUCT_NAME = "Tattoo Discovery Buy In"
PRODUCT_DESCRIPTION = "Access to Tattoo Discovery platform and services"
COMPLETED_EVENT = "checkout.session.completed"


class PaymentError(Exception):
    """A checkout operation failed or the session is not usable."""

    status_code = 400


class PaymentNotConfigured(PaymentError):
    status_code = 500


def _plain(obj):
    """Return a Stripe object (or plain mapping) as a dict."""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def session_email(session) -> str | None:
    """Email on a checkout session: customer email, customer details, then metadata."""
    details = session.get("customer_details") or {}
    metadata = session.get("metadata") or {}
    return (
        session.get("customer_email")
        or details.get("email")
        or metadata.get("userEmail")
        or None
    )


class StripeCheckout:
    def __init__(self, settings, ledger=None):
        self.settings = settings
        self.ledger = ledger

    @property
    def configured(self) -> bool:
        return bool(self.settings.stripe_secret_key)

    def _api_key(self):
        if not self.configured:
            raise PaymentNotConfigured("Stripe secret key is not configured")
        return self.settings.stripe_secret_key

    # =========================================================
    # CHECKOUT SESSIONS
    # =========================================================

    def create_checkout_session(self, user_id=None, user_email=None, origin=None) -> dict:
        """Create the buy-in session; returns `{"sessionId", "url"}`."""
        api_key = self._api_key()
        base_url = (origin or self.settings.app_base_url).rstrip("/")

        params = {
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": self.settings.buy_in_currency,
                    "product_data": {
                        "name": PRODUCT_NAME,
                        "description": PRODUCT_DESCRIPTION,
                    },
                    "unit_amount": self.settings.buy_in_amount_cents,
                },
                "quantity": 1,
            }],
            "mode": "payment",
            "success_url": f"{base_url}/buy-in/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base_url}/buy-in/cancel",
            "metadata": {"userId": user_id or "", "userEmail": user_email or ""},
        }
        if user_email:
            params["customer_email"] = user_email

        try:
            session = stripe.checkout.Session.create(api_key=api_key, **params)
        except stripe.StripeError as err:
            logger.warning("Stripe checkout session creation failed: %s", type(err).__name__)
            raise PaymentError(f"Failed to create checkout session: {err.user_message or err}")

        logger.info("Created checkout session %s", session.id)
        return {"sessionId": session.id, "url": session.url}

    def retrieve_paid_session(self, session_id) -> dict:
        """Return the session as a dict, or raise unless it is paid."""
        if not session_id:
            raise PaymentError("Missing session ID")
        api_key = self._api_key()

        try:
            session = _plain(stripe.checkout.Session.retrieve(session_id, api_key=api_key))
        except stripe.StripeError as err:
            logger.warning("Stripe session lookup failed: %s", type(err).__name__)
            raise PaymentError(f"Failed to retrieve checkout session: {err.user_message or err}")

        if session.get("payment_status") != "paid":
            raise PaymentError("Payment not completed")
        return session

    def get_payment_email(self, session_id) -> str:
        session = self.retrieve_paid_session(session_id)
        email = (session.get("customer_details") or {}).get("email")
        if not email:
            raise PaymentError("Payment not completed or email not found")
        return email

    def verify_payment_email(self, session_id, email) -> str:
        """Return the session email if it matches `email` case-insensitively."""
        if not session_id or not email:
            raise PaymentError("Session ID and email are required")
        session = self.retrieve_paid_session(session_id)

        found = session_email(session)
        if not found or normalize_email(found) != normalize_email(email):
            raise PaymentError("Email does not match the payment record")
        return found

    # =========================================================
    # LEDGER HANDOFF
    # =========================================================

    def _record(self, session, user_id=None, email=None):
        if self.ledger is None:
            raise PaymentNotConfigured("No entitlement ledger attached to checkout")

        metadata = session.get("metadata") or {}
        user_id = user_id or metadata.get("userId") or None
        email = email or session_email(session)

        key = identity_key(user_id=user_id, email=email)
        return self.ledger.record_payment(key, user_id=user_id, email=email)

    def record_paid_session(self, session_id, user_id=None, email=None):
        """Record the payment of a paid session for the given or session identity.

        A supplied email must match the session email, so a paid session cannot
        be used to arm a different email identity.
        """
        session = self.retrieve_paid_session(session_id)
        if email:
            found = session_email(session)
            if not found or normalize_email(found) != normalize_email(email):
                raise PaymentError("Email does not match the payment record")
        return self._record(session, user_id=user_id, email=email)

    def handle_webhook(self, payload, signature):
        """Verify a Stripe webhook and record completed, paid checkouts.

        Returns:
            The recorded `GenerationEntitlement`, or `None` for events that do
            not arm an entitlement.
        """
        if not self.settings.stripe_webhook_secret:
            raise PaymentNotConfigured("Stripe webhook secret is not configured")

        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self.settings.stripe_webhook_secret
            )
        except ValueError:
            raise PaymentError("Invalid webhook payload")
        except stripe.SignatureVerificationError:
            raise PaymentError("Invalid webhook signature")

        event = _plain(event)
        if event.get("type") != COMPLETED_EVENT:
            logger.debug("Ignoring Stripe event %s", event.get("type"))
            return None

        session = (event.get("data") or {}).get("object") or {}
        if session.get("payment_status") != "paid":
            logger.info("Checkout %s completed without payment", session.get("id"))
            return None

        return self._record(session)
