"""Entitlement record and decision types."""

from dataclasses import dataclass


@dataclass
class GenerationEntitlement:
    """Persisted payment and usage state for one identity key."""

    identity_key: str
    has_paid: bool = False
    generation_count: int = 0
    generation_limit: int = 1
    payment_date: str | None = None
    user_id: str | None = None
    email: str | None = None
    last_generation_date: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.generation_limit - self.generation_count)

    def to_document(self) -> dict:
        return {
            "identityKey": self.identity_key,
            "hasPaid": self.has_paid,
            "generationCount": self.generation_count,
            "generationLimit": self.generation_limit,
            "paymentDate": self.payment_date,
            "userId": self.user_id,
            "email": self.email,
            "lastGenerationDate": self.last_generation_date,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, identity_key, doc) -> "GenerationEntitlement":
        return cls(
            identity_key=doc.get("identityKey", identity_key),
            has_paid=bool(doc.get("hasPaid", False)),
            generation_count=int(doc.get("generationCount", 0)),
            generation_limit=int(doc.get("generationLimit", 1)),
            payment_date=doc.get("paymentDate"),
            user_id=doc.get("userId"),
            email=doc.get("email"),
            last_generation_date=doc.get("lastGenerationDate"),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    reason: str | None = None
    entitlement: GenerationEntitlement | None = None
