"""Error taxonomy for design requests and provider adapters.

Propagation model:
    - `ValidationError` is raised before any provider runs and maps to HTTP 400.
    - `ProviderError` subclasses are raised inside adapters and translated into
      `failed` / `skipped` provider results at the adapter boundary. They never
      reach the HTTP layer.
    - `GenerationCancelled` is raised by the pipeline/service when the caller's
      cancel token fires; nothing is recorded against the entitlement.
"""


class ValidationError(ValueError):
    """Request shape is invalid; no provider is attempted."""


class ProviderError(Exception):
    """A configured provider was called and the call did not yield an image."""

    kind = "unknown"

    def __init__(self, message, provider=None):
        super().__init__(message)
        self.provider = provider


class ProviderNotConfigured(ProviderError):
    kind = "not_configured"


class AuthError(ProviderError):
    kind = "auth_error"


class QuotaExceeded(ProviderError):
    kind = "quota_exceeded"


class ModelUnavailable(ProviderError):
    kind = "model_unavailable"


class InvalidResponseShape(ProviderError):
    kind = "invalid_response_shape"


class ProviderTimeout(ProviderError):
    kind = "timeout"


class ProviderCancelled(ProviderError):
    kind = "cancelled"


class GenerationCancelled(Exception):
    """The overall generation request was abandoned (timeout or disconnect)."""
