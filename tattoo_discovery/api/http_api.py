"""
HTTP API adapter for the tattoo design generation service.

Architectural role:
- Expose the generation, entitlement and checkout endpoints.
- Enforce adapter-level input validation (pydantic bodies, reference images).
- Delegate generation to `DesignGenerationService` and payments to
  `StripeCheckout`.
- Normalize outcomes to the JSON response contracts.

Endpoint responsibilities:
- `POST /api/generate-tattoo`: gate, generate, respond with an image or with
  the degraded prompt-plus-setup payload.
- `GET /api/generation-usage`: current entitlement state for an identity.
- `GET /api/generated-designs/{identity}`: stored designs, newest first.
- `POST /api/create-checkout-session`, `/api/get-payment-email`,
  `/api/verify-payment-email`, `/api/record-payment`, `/api/stripe/webhook`:
  Stripe checkout boundary.

Error handling strategy:
- `ValidationError` -> HTTP 400 `{error}`.
- `EntitlementDenied` -> HTTP 402 `{error, reason}`; the pipeline never runs.
- Overall generation timeout -> HTTP 504. The request's `CancelToken`
  carries the deadline and decides the outcome: no image by the deadline
  means 504 and nothing consumed, while a first image that arrived in time is
  returned with whatever style variants finished. `asyncio.wait_for` waits a
  grace period longer; if it still fires, the token is aborted so the worker
  cannot consume afterwards.
- `PaymentError` -> its own status code.
- Anything else -> HTTP 500 `{error}` from the last-resort handler.

Concurrency:
- Provider calls are blocking `requests` calls and run in the threadpool so
  the event loop stays free while a request polls a vendor.
"""

import asyncio
import logging
import os

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError as BodyValidationError

from tattoo_discovery.api.schemas import (
    CheckoutBody,
    GenerateTattooBody,
    RecordPaymentBody,
    SessionBody,
    VerifyEmailBody,
)
from tattoo_discovery.config import load_settings
from tattoo_discovery.designs.repository import DesignRepository
from tattoo_discovery.entitlement.errors import EntitlementDenied
from tattoo_discovery.entitlement.identity import identity_key
from tattoo_discovery.entitlement.ledger import EntitlementLedger
from tattoo_discovery.entitlement.store import JsonFileDocumentStore
from tattoo_discovery.image.errors import GenerationCancelled, ValidationError
from tattoo_discovery.image.models import GenerationOutcome
from tattoo_discovery.image.polling import CancelToken
from tattoo_discovery.image.service import DesignGenerationService, build_providers
from tattoo_discovery.payments.checkout import PaymentError, StripeCheckout


logger = logging.getLogger(__name__)

# Sensitive request/response debug logging is opt-in.
DEBUG = os.getenv("DEBUG") == "true"

TIMEOUT_MESSAGE = "Image generation timed out. Please try again."

# Extra time the worker gets past the token deadline to record a result.
RESULT_GRACE_SECONDS = 5.0


# ============================================================
# Response Formatting
# ============================================================

def format_outcome(outcome) -> dict:
    """Render a pipeline outcome as the generation response contract."""
    if isinstance(outcome, GenerationOutcome):
        result = outcome.result
        payload = {
            "success": True,
            "image": result.image_base64,
            "mimeType": result.mime_type,
            "prompt": outcome.prompt,
            "model": result.model,
        }
        if outcome.all_styles:
            payload["images"] = [
                {"style": item.style, "image": item.image_base64}
                for item in outcome.style_images
            ]
            payload["allStyles"] = True
        return payload

    return {
        "success": True,
        "prompt": outcome.prompt,
        "note": outcome.note,
        "imageGenerationAvailable": False,
        "needsSetup": outcome.needs_setup,
        "setupInstructions": outcome.setup_instructions,
        "errors": list(outcome.errors),
    }


def format_usage(key, decision) -> dict:
    entitlement = decision.entitlement
    return {
        "identityKey": key,
        "allowed": decision.allowed,
        "reason": decision.reason,
        "usage": entitlement.to_document() if entitlement else None,
        "remaining": entitlement.remaining if entitlement else 0,
    }


async def parse_body(request: Request, schema):
    """Decode the JSON body into `schema` or raise `ValidationError`."""
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid request body")

    if DEBUG:
        logger.debug("Request body keys for %s: %s", request.url.path, sorted(body or {}))

    try:
        return schema.model_validate(body or {})
    except BodyValidationError as err:
        first = err.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid field {location}: {first.get('msg')}")


# ============================================================
# Application Factory
# ============================================================

def create_app(settings=None, *, store=None, providers=None, checkout=None) -> FastAPI:
    """Wire settings, storage, providers and checkout into a FastAPI app.

    Args:
        settings: `AppSettings`; resolved from the environment when omitted.
        store: `DocumentStore`; defaults to a JSON file under `settings.data_dir`.
        providers: Provider adapters; defaults to `build_providers(...)`.
        checkout: `StripeCheckout`; defaults to one bound to the ledger.
    """
    settings = settings or load_settings()
    store = store if store is not None else JsonFileDocumentStore(settings.data_dir)
    providers = providers if providers is not None else build_providers(settings.providers)

    ledger = EntitlementLedger(store, generation_limit=settings.generation_limit)
    designs = DesignRepository(store, image_dir=os.path.join(settings.data_dir, "designs"))
    service = DesignGenerationService(
        ledger if settings.require_payment else None, providers, designs=designs
    )
    checkout = checkout or StripeCheckout(settings, ledger=ledger)

    app = FastAPI(title="Tattoo Discovery Generation Service")
    app.state.settings = settings
    app.state.ledger = ledger
    app.state.designs = designs
    app.state.service = service
    app.state.checkout = checkout

    # ============================================================
    # Error Mapping
    # ============================================================

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(EntitlementDenied)
    async def handle_entitlement_denied(request: Request, exc: EntitlementDenied):
        return JSONResponse(status_code=402, content={"error": exc.message, "reason": exc.reason})

    @app.exception_handler(PaymentError)
    async def handle_payment_error(request: Request, exc: PaymentError):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})

    # ============================================================
    # Generation
    # ============================================================

    @app.post("/api/generate-tattoo")
    async def generate_tattoo(request: Request):
        body = await parse_body(request, GenerateTattooBody)
        design_request = body.to_design_request(max_mb=settings.max_reference_image_mb)
        design_request.validate()

        key = None
        if settings.require_payment or body.user_id or body.email:
            key = identity_key(user_id=body.user_id, email=body.email)

        token = CancelToken(timeout=settings.generation_timeout)
        try:
            outcome = await asyncio.wait_for(
                run_in_threadpool(
                    service.generate, design_request, identity_key=key, cancel_token=token
                ),
                timeout=settings.generation_timeout + RESULT_GRACE_SECONDS,
            )
        except asyncio.TimeoutError:
            token.cancel()
            logger.warning("Generation timed out after %gs", settings.generation_timeout)
            return JSONResponse(status_code=504, content={"error": TIMEOUT_MESSAGE})
        except GenerationCancelled:
            logger.warning("Generation cancelled before completion")
            return JSONResponse(status_code=504, content={"error": TIMEOUT_MESSAGE})
        finally:
            token.cancel()

        return format_outcome(outcome)

    @app.get("/api/generation-usage")
    def generation_usage(userId: str | None = None, email: str | None = None):
        key = identity_key(user_id=userId, email=email)
        return format_usage(key, ledger.check_entitlement(key))

    @app.get("/api/generated-designs/{identity}")
    def generated_designs(identity: str):
        return {"designs": designs.list_user_designs(identity)}

    # ============================================================
    # Checkout
    # ============================================================

    @app.post("/api/create-checkout-session")
    async def create_checkout_session(request: Request):
        body = await parse_body(request, CheckoutBody)
        return checkout.create_checkout_session(
            user_id=body.user_id,
            user_email=body.user_email,
            origin=request.headers.get("origin"),
        )

    @app.post("/api/get-payment-email")
    async def get_payment_email(request: Request):
        body = await parse_body(request, SessionBody)
        email = await run_in_threadpool(checkout.get_payment_email, body.session_id)
        return {"email": email, "verified": True}

    @app.post("/api/verify-payment-email")
    async def verify_payment_email(request: Request):
        body = await parse_body(request, VerifyEmailBody)
        email = await run_in_threadpool(checkout.verify_payment_email, body.session_id, body.email)
        return {"success": True, "email": email, "verified": True}

    @app.post("/api/record-payment")
    async def record_payment(request: Request):
        body = await parse_body(request, RecordPaymentBody)
        if not body.user_id and not body.email:
            raise ValidationError("Either userId or email is required")

        entitlement = await run_in_threadpool(
            checkout.record_paid_session,
            body.session_id,
            user_id=body.user_id,
            email=body.email,
        )
        return {
            "success": True,
            "message": "Payment recorded successfully. Generation limit initialized.",
            "identityKey": entitlement.identity_key,
        }

    @app.post("/api/stripe/webhook")
    async def stripe_webhook(request: Request):
        payload = await request.body()
        signature = request.headers.get("stripe-signature", "")
        entitlement = await run_in_threadpool(checkout.handle_webhook, payload, signature)
        return {
            "received": True,
            "identityKey": entitlement.identity_key if entitlement else None,
        }

    return app
