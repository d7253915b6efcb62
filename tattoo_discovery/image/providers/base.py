"""Common capability interface for image-generation providers.

Architectural role:
    Every vendor adapter subclasses `ImageProvider` and implements two things:
    `is_configured()` (are all required credentials present?) and
    `generate(...)` (one vendor call sequence returning raw image bytes).
    `attempt(...)` is the uniform entrypoint used by the pipeline.

Error translation (adapter boundary):
    - Missing credentials -> `skipped` result (never user-visible as an error).
    - `ProviderError` subclasses -> `failed` result carrying the error kind.
    - `requests` timeouts -> `failed` with kind `timeout`.
    - Other `requests` exceptions -> `failed` with a sanitized HTTP message.
    Raw vendor exceptions never escape `attempt`.

Security considerations:
    Failure reasons include at most a short prefix of the vendor response body;
    credentials and image payloads are never logged.
"""

import logging
from abc import ABC, abstractmethod

import requests

from tattoo_discovery.image.errors import (
    AuthError,
    InvalidResponseShape,
    ModelUnavailable,
    ProviderCancelled,
    ProviderError,
    ProviderNotConfigured,
    ProviderTimeout,
    QuotaExceeded,
)
from tattoo_discovery.image.models import ImageStrength, ProviderResult
from tattoo_discovery.image.reference import encode_png


logger = logging.getLogger(__name__)

ERROR_BODY_PREVIEW = 200


def raise_for_vendor_status(response, label):
    """Translate an HTTP error response into the provider error taxonomy."""
    status = response.status_code
    if status < 400:
        return

    body = (response.text or "")[:ERROR_BODY_PREVIEW]
    if status in (401, 403):
        raise AuthError(f"{label} authentication failed. Check your credentials and permissions.")
    if status == 404:
        raise ModelUnavailable(f"{label} model not found ({status}).")
    if status == 429:
        raise QuotaExceeded(f"{label} quota exceeded. Please check your plan limits.")
    raise ProviderError(f"{label} API error ({status}): {body}")


def describe_http_error(label, err: requests.exceptions.RequestException) -> str:
    """Build provider-labeled HTTP error text without exposing raw internals."""
    status_code = None
    if getattr(err, "response", None) is not None:
        status_code = getattr(err.response, "status_code", None)
    if status_code:
        return f"{label} HTTP error ({status_code})"
    return f"{label} HTTP error: {type(err).__name__}"


class ImageProvider(ABC):
    """Base class for vendor adapters.

    Class attributes:
        name: Stable provider identifier (`ProviderName`).
        label: Human-readable vendor name used in messages.
        supports_reference_image: Whether image-to-image requests are possible.
        setup_hint: One-line configuration guidance for the degraded response.
    """

    name = None
    label = "Provider"
    supports_reference_image = False
    setup_hint = ""

    def __init__(self, settings, session=None, sleep=None, image_strength=None):
        self.settings = settings
        self.session = session or requests.Session()
        self.timeout = settings.http_timeout
        self.sleep = sleep
        self.image_strength = image_strength or ImageStrength()

    @property
    def model(self) -> str:
        return self.label

    @abstractmethod
    def is_configured(self) -> bool:
        """Return whether every credential this adapter needs is present."""

    @abstractmethod
    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        """Run the vendor call sequence and return raw image bytes."""

    def attempt(self, request, prompt, negative_prompt, cancel_token=None) -> ProviderResult:
        """Run one isolated attempt and normalize the outcome."""
        name = self.name.value

        if not self.is_configured():
            logger.info("%s skipped (not configured)", self.label)
            return ProviderResult.skipped(name)

        if request.reference_image is not None and not self.supports_reference_image:
            logger.info("%s skipped (reference images not supported)", self.label)
            return ProviderResult.skipped(name, "reference images not supported")

        logger.info("Attempting %s image generation (%s)", self.label, request.mode.value)

        try:
            raw = self.generate(request, prompt, negative_prompt, cancel_token=cancel_token)
            image_base64 = encode_png(raw)
        except ProviderNotConfigured as err:
            logger.info("%s skipped: %s", self.label, err)
            return ProviderResult.skipped(name, str(err))
        except ProviderCancelled as err:
            logger.warning("%s cancelled: %s", self.label, err)
            return ProviderResult.failed(name, f"{self.label}: {err}", err.kind)
        except ProviderError as err:
            logger.warning("%s failed (%s): %s", self.label, err.kind, err)
            return ProviderResult.failed(name, str(err), err.kind)
        except requests.exceptions.Timeout as err:
            logger.warning("%s request timed out", self.label)
            return ProviderResult.failed(name, describe_http_error(self.label, err), ProviderTimeout.kind)
        except requests.exceptions.RequestException as err:
            logger.warning("%s request failed: %s", self.label, type(err).__name__)
            return ProviderResult.failed(name, describe_http_error(self.label, err))

        logger.info("%s succeeded, base64 length %d", self.label, len(image_base64))
        return ProviderResult.success(name, image_base64, model=self.model)

    def _json(self, response, label=None):
        """Parse a JSON body or raise `InvalidResponseShape`."""
        try:
            return response.json()
        except ValueError:
            raise InvalidResponseShape(f"{label or self.label} returned a non-JSON response")
