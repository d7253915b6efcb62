"""Hugging Face Inference adapter (text-to-image only).

Processing flow:
    Try each configured model endpoint in order. An `image/*` response is a
    success. Deprecated endpoints and transient model errors move on to the
    next endpoint; authentication and quota errors stop immediately, since the
    same key would fail everywhere.
"""

import logging
import math

from tattoo_discovery.image.errors import (
    AuthError,
    ModelUnavailable,
    ProviderCancelled,
    ProviderError,
    QuotaExceeded,
)
from tattoo_discovery.image.models import ProviderName
from tattoo_discovery.image.providers.base import ImageProvider


logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = (
    "https://router.huggingface.co/hf-inference/models/stabilityai/stable-diffusion-xl-base-1.0",
    "https://api-inference.huggingface.co/models/runwayml/stable-diffusion-v1-5",
    "https://api-inference.huggingface.co/models/CompVis/stable-diffusion-v1-4",
)

DEPRECATION_MARKERS = ("no longer supported", "router.huggingface.co")


def translate_error(status_code, body) -> ProviderError:
    """Map a non-image Hugging Face response to the provider error taxonomy."""
    error_text = ""
    estimated_time = None
    if isinstance(body, dict):
        error_text = str(body.get("error") or "")
        estimated_time = body.get("estimated_time")
    elif body:
        error_text = str(body)[:200]

    if "loading" in error_text.lower() or estimated_time:
        wait = f" (estimated wait: {math.ceil(float(estimated_time))}s)" if estimated_time else ""
        return ModelUnavailable(f"Model is loading{wait}. Please try again in a moment.")
    if status_code in (401, 403):
        return AuthError("Invalid Hugging Face API key. Please check HUGGINGFACE_API_KEY.")
    if status_code == 429:
        return QuotaExceeded("Hugging Face rate limit exceeded. Please wait a moment and try again.")
    if status_code in (404, 410):
        return ModelUnavailable(f"Hugging Face model unavailable ({status_code}).")
    if error_text:
        return ProviderError(f"Hugging Face API error: {error_text}")
    return ProviderError(f"Hugging Face returned error (status {status_code})")


class HuggingFaceProvider(ImageProvider):
    name = ProviderName.HUGGINGFACE
    label = "Hugging Face"
    setup_hint = (
        "Hugging Face: create a token at https://huggingface.co/settings/tokens "
        "and set HUGGINGFACE_API_KEY"
    )

    def __init__(self, settings, session=None, sleep=None, image_strength=None, endpoints=DEFAULT_ENDPOINTS):
        super().__init__(settings, session=session, sleep=sleep, image_strength=image_strength)
        self.endpoints = tuple(endpoints)
        self._last_endpoint = None

    @property
    def model(self) -> str:
        endpoint = self._last_endpoint or self.endpoints[0]
        return "huggingface/" + endpoint.split("/models/", 1)[-1]

    def is_configured(self) -> bool:
        return self.settings.huggingface_configured()

    def build_payload(self, prompt, negative_prompt) -> dict:
        return {
            "inputs": prompt,
            "parameters": {
                "negative_prompt": negative_prompt,
                "num_inference_steps": 50,
                "guidance_scale": 7.5,
            },
        }

    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        headers = {
            "Authorization": f"Bearer {self.settings.huggingface_api_key}",
            "Content-Type": "application/json",
        }
        last_error = None

        for endpoint in self.endpoints:
            if cancel_token is not None and cancel_token.cancelled:
                raise ProviderCancelled("Hugging Face attempt cancelled")

            response = self.session.post(
                endpoint,
                json=self.build_payload(prompt, negative_prompt),
                headers=headers,
                timeout=self.timeout,
            )

            content_type = response.headers.get("content-type", "")
            if response.status_code < 400 and content_type.startswith("image/"):
                self._last_endpoint = endpoint
                return response.content

            text = response.text or ""
            if any(marker in text for marker in DEPRECATION_MARKERS):
                logger.info("Hugging Face endpoint %s deprecated, trying next", endpoint)
                last_error = ModelUnavailable(f"Hugging Face endpoint no longer supported: {endpoint}")
                continue

            try:
                body = response.json()
            except ValueError:
                body = text

            error = translate_error(response.status_code, body)
            if isinstance(error, (AuthError, QuotaExceeded)):
                raise error

            logger.info("Hugging Face endpoint %s failed (%s), trying next", endpoint, error.kind)
            last_error = error

        raise last_error or ModelUnavailable("All Hugging Face endpoints failed")
