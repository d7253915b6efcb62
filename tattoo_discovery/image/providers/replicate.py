"""Replicate adapter (Stable Diffusion XL predictions).

Processing flow:
    1. Submit a prediction for the configured model version.
    2. Poll the prediction status with the shared bounded poller.
    3. Download the first output URL and return its bytes.

Image-to-image:
    The reference image is sent as a data URL in `input.image`. Replicate's
    `prompt_strength` is the share of the reference that gets repainted, so it
    receives `ImageStrength.transformation` (1 - likeness).
"""

import logging

from tattoo_discovery.image.errors import InvalidResponseShape, ProviderError
from tattoo_discovery.image.models import ImageStrength, ProviderName
from tattoo_discovery.image.polling import poll_until
from tattoo_discovery.image.providers.base import ImageProvider, raise_for_vendor_status
from tattoo_discovery.image.reference import to_data_url


logger = logging.getLogger(__name__)

PREDICTIONS_URL = "https://api.replicate.com/v1/predictions"

TERMINAL_FAILURES = ("failed", "canceled")


def extract_output_url(prediction: dict) -> str:
    """Return the image URL of a succeeded prediction.

    Expected shape: `{"output": ["https://..."]}` or `{"output": "https://..."}`.
    """
    output = prediction.get("output")
    if isinstance(output, list) and output and isinstance(output[0], str):
        return output[0]
    if isinstance(output, str) and output:
        return output
    raise InvalidResponseShape(
        f"Replicate prediction output not recognized: {type(output).__name__}"
    )


class ReplicateProvider(ImageProvider):
    name = ProviderName.REPLICATE
    label = "Replicate"
    supports_reference_image = True
    setup_hint = (
        "Replicate (recommended): create a token at "
        "https://replicate.com/account/api-tokens and set REPLICATE_API_TOKEN=r8_..."
    )

    def __init__(self, settings, session=None, sleep=None, image_strength=None):
        super().__init__(
            settings,
            session=session,
            sleep=sleep,
            image_strength=image_strength or ImageStrength(likeness=0.45),
        )

    @property
    def model(self) -> str:
        return f"replicate/sdxl:{self.settings.replicate_model_version[:12]}"

    def is_configured(self) -> bool:
        return self.settings.replicate_configured()

    def _headers(self):
        return {
            "Authorization": f"Token {self.settings.replicate_api_token}",
            "Content-Type": "application/json",
        }

    def build_payload(self, request, prompt, negative_prompt) -> dict:
        model_input = {
            "prompt": prompt,
            "num_outputs": 1,
            "aspect_ratio": "1:1",
            "negative_prompt": negative_prompt,
        }
        if request.reference_image is not None:
            model_input["image"] = to_data_url(
                request.reference_image, request.reference_mime_type or "image/png"
            )
            model_input["prompt_strength"] = self.image_strength.transformation
        return {"version": self.settings.replicate_model_version, "input": model_input}

    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        response = self.session.post(
            PREDICTIONS_URL,
            json=self.build_payload(request, prompt, negative_prompt),
            headers=self._headers(),
            timeout=self.timeout,
        )
        raise_for_vendor_status(response, self.label)
        prediction = self._json(response)

        prediction_id = prediction.get("id")
        if not prediction_id:
            raise InvalidResponseShape("Replicate did not return a prediction id")

        status_url = (prediction.get("urls") or {}).get("get") or f"{PREDICTIONS_URL}/{prediction_id}"

        def fetch():
            status_response = self.session.get(
                status_url, headers=self._headers(), timeout=self.timeout
            )
            raise_for_vendor_status(status_response, self.label)
            return self._json(status_response)

        def is_done(data):
            status = data.get("status")
            if status in TERMINAL_FAILURES:
                raise ProviderError(
                    f"Replicate prediction failed: {data.get('error') or 'Unknown error'}"
                )
            return status == "succeeded"

        final = poll_until(
            fetch,
            is_done,
            interval=self.settings.poll_interval,
            max_attempts=self.settings.poll_max_attempts,
            sleep=self.sleep,
            cancel_token=cancel_token,
            description="Replicate prediction",
        )

        image_url = extract_output_url(final)
        image_response = self.session.get(image_url, timeout=self.timeout)
        raise_for_vendor_status(image_response, self.label)
        logger.debug("Downloaded Replicate output for prediction %s", prediction_id)
        return image_response.content
