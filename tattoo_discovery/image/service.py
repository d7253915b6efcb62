"""Design generation service used by the HTTP and CLI adapters.

Role in pipeline:
    - Instantiates provider adapters in the deployment priority order.
    - Gates generation on the entitlement ledger (when one is attached).
    - Runs the fallback pipeline and consumes one entitlement on success.
    - Stores a generated-design record for consumed generations.

Ordering of side effects:
    gate -> pipeline -> consume -> persist. Exhausted outcomes and cancelled
    requests never consume an entitlement. If the consume step loses a race
    against a concurrent request, `EntitlementDenied` propagates and the image
    is not returned.

Error handling strategy:
    - `ValidationError` and `EntitlementDenied` propagate to the caller.
    - `GenerationCancelled` is raised when the deadline passed before any
      provider produced an image, or when the caller abandoned the request
      (explicit cancel) before the generation was consumed.
    - Storing the design record is best-effort: it runs after the
      entitlement is consumed, so storage errors are logged and the image is
      still returned.
"""

import logging

from tattoo_discovery.image.errors import GenerationCancelled, ValidationError
from tattoo_discovery.image.models import GenerationOutcome
from tattoo_discovery.image.pipeline import run_pipeline
from tattoo_discovery.image.providers import (
    GeminiProvider,
    HuggingFaceProvider,
    ReplicateProvider,
    VertexImagenProvider,
)


logger = logging.getLogger(__name__)

PROVIDER_CLASSES = {
    "replicate": ReplicateProvider,
    "vertex": VertexImagenProvider,
    "gemini": GeminiProvider,
    "huggingface": HuggingFaceProvider,
}


def build_providers(settings, session=None, sleep=None) -> list:
    """Instantiate adapters in `settings.provider_order`.

    Unknown names in the order are logged and ignored; each provider appears
    at most once.
    """
    providers = []
    seen = set()
    for name in settings.provider_order:
        provider_class = PROVIDER_CLASSES.get(name)
        if provider_class is None:
            logger.warning("Unknown image provider %r in IMAGE_PROVIDER_ORDER", name)
            continue
        if name in seen:
            continue
        seen.add(name)
        providers.append(provider_class(settings, session=session, sleep=sleep))
    return providers


def generate_design(request, providers, cancel_token=None):
    """Run the pipeline without entitlement or persistence.

    Returns:
        `GenerationOutcome` or `ExhaustedOutcome`.

    Raises:
        GenerationCancelled: The token fired before any provider produced an
            image. A first image that arrived in time is always returned.
    """
    outcome = run_pipeline(providers, request, cancel_token=cancel_token)
    if isinstance(outcome, GenerationOutcome):
        return outcome
    if cancel_token is not None and cancel_token.cancelled:
        raise GenerationCancelled("Generation cancelled")
    return outcome


class DesignGenerationService:
    def __init__(self, ledger, providers, designs=None):
        self.ledger = ledger
        self.providers = providers
        self.designs = designs

    def generate(self, request, identity_key=None, cancel_token=None):
        """Gate, generate, consume and persist one design.

        Args:
            request: `DesignRequest`.
            identity_key: Ledger key; required when a ledger is attached.
            cancel_token: Optional `CancelToken` bounding the whole call.

        Raises:
            ValidationError: Invalid request, or missing identity while a
                ledger is attached.
            EntitlementDenied: Gate refused, or the entitlement was consumed
                concurrently.
            GenerationCancelled: No image before the deadline, or the caller
                abandoned the request before the result was recorded.
        """
        request.validate()

        if self.ledger is not None:
            if identity_key is None:
                raise ValidationError("Either userId or email is required")
            self.ledger.require_entitlement(identity_key)

        outcome = generate_design(request, self.providers, cancel_token=cancel_token)

        if not isinstance(outcome, GenerationOutcome):
            return outcome

        if cancel_token is not None and cancel_token.aborted:
            raise GenerationCancelled("Request abandoned before the generation was recorded")

        if self.ledger is not None:
            self.ledger.record_successful_generation(identity_key)

        if self.designs is not None and identity_key is not None:
            self._save(identity_key, request, outcome)

        return outcome

    def _save(self, identity_key, request, outcome):
        # runs after consumption; storage errors never fail the request
        try:
            self.designs.save_generated_design(
                identity_key,
                {
                    "prompt": outcome.prompt,
                    "subjectMatter": request.subject_matter,
                    "styles": list(request.styles),
                    "sizePreference": request.size_preference.value,
                    "colorPreference": request.color_preference.value,
                    "bodyParts": list(request.body_parts),
                    "model": outcome.result.model,
                    "provider": outcome.result.provider_name,
                },
                image_base64=outcome.result.image_base64,
            )
        except (OSError, ValueError):
            logger.exception("Could not store generated design for %s", identity_key)
