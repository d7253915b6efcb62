"""Payment-gated generation ledger.

State machine per identity key:
    NoRecord -> Paid(count=0) -> Paid(count=limit, exhausted)
    `record_payment` moves any state back to Paid(count=0).

Race safety:
    `check_entitlement` is advisory and runs before the pipeline.
    `record_successful_generation` is the authoritative step: a single
    conditional increment that succeeds only while `has_paid` is true and the
    count stays within the limit. Of two concurrent requests that both passed
    the check, exactly one consumes the entitlement; the other gets
    `EntitlementDenied("limit reached")`.

Re-arm:
    Each `record_payment` resets the count to 0, including retried webhooks for
    a payment that was already consumed.
"""

import logging
from datetime import datetime, timezone

from tattoo_discovery.entitlement.errors import (
    REASON_LIMIT_REACHED,
    REASON_NO_PAYMENT,
    REASON_NOT_VERIFIED,
    EntitlementDenied,
)
from tattoo_discovery.entitlement.identity import normalize_email
from tattoo_discovery.entitlement.models import EntitlementDecision, GenerationEntitlement
from tattoo_discovery.entitlement.store import ConditionFailed, DocumentNotFound


logger = logging.getLogger(__name__)

COLLECTION = "generation_usage"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EntitlementLedger:
    def __init__(self, store, generation_limit=1, clock=utc_now):
        if generation_limit < 1:
            raise ValueError("generation_limit must be at least 1")
        self.store = store
        self.generation_limit = generation_limit
        self.clock = clock

    def record_payment(self, key, user_id=None, email=None) -> GenerationEntitlement:
        """Mark `key` as paid and reset its usage."""
        now = self.clock()
        existing = self.store.get(COLLECTION, key)

        entitlement = GenerationEntitlement(
            identity_key=key,
            has_paid=True,
            generation_count=0,
            generation_limit=self.generation_limit,
            payment_date=now,
            user_id=user_id,
            email=normalize_email(email),
            created_at=(existing or {}).get("createdAt") or now,
            updated_at=now,
        )
        doc = entitlement.to_document()
        # keep identity fields from earlier payments when this call omits them
        doc = {k: v for k, v in doc.items() if v is not None}
        self.store.set(COLLECTION, key, doc, merge=True)

        if existing and existing.get("generationCount", 0) > 0:
            logger.warning("Payment re-armed %s after %d generations", key, existing["generationCount"])
        logger.info("Recorded payment for %s", key)
        return self.usage(key)

    def check_entitlement(self, key) -> EntitlementDecision:
        entitlement = self.usage(key)
        if entitlement is None:
            return EntitlementDecision(False, REASON_NO_PAYMENT)
        if not entitlement.has_paid:
            return EntitlementDecision(False, REASON_NOT_VERIFIED, entitlement)
        if entitlement.generation_count >= entitlement.generation_limit:
            return EntitlementDecision(False, REASON_LIMIT_REACHED, entitlement)
        return EntitlementDecision(True, None, entitlement)

    def require_entitlement(self, key) -> GenerationEntitlement:
        """Return the entitlement or raise `EntitlementDenied`."""
        decision = self.check_entitlement(key)
        if not decision.allowed:
            logger.info("Generation denied for %s: %s", key, decision.reason)
            raise EntitlementDenied(decision.reason)
        return decision.entitlement

    def record_successful_generation(self, key) -> GenerationEntitlement:
        """Consume one generation for `key`.

        Raises:
            EntitlementDenied: No record, unpaid, or the limit was already
                reached (possibly by a concurrent request).
        """
        try:
            doc = self.store.increment(
                COLLECTION,
                key,
                "generationCount",
                1,
                limit_field="generationLimit",
                require={"hasPaid": True},
                extra={"lastGenerationDate": self.clock(), "updatedAt": self.clock()},
            )
        except DocumentNotFound:
            raise EntitlementDenied(REASON_NO_PAYMENT)
        except ConditionFailed:
            decision = self.check_entitlement(key)
            reason = decision.reason or REASON_LIMIT_REACHED
            logger.warning("Generation for %s not recorded: %s", key, reason)
            raise EntitlementDenied(reason)

        entitlement = GenerationEntitlement.from_document(key, doc)
        logger.info(
            "Recorded generation for %s (%d/%d)",
            key,
            entitlement.generation_count,
            entitlement.generation_limit,
        )
        return entitlement

    def usage(self, key) -> GenerationEntitlement | None:
        doc = self.store.get(COLLECTION, key)
        if doc is None:
            return None
        return GenerationEntitlement.from_document(key, doc)
