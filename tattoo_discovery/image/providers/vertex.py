"""Vertex AI Imagen adapter.

Processing flow:
    1. Build service-account credentials from the JSON in
       `GOOGLE_CLOUD_CREDENTIALS` and refresh them to obtain an access token.
    2. POST one instance to the Imagen `:predict` endpoint.
    3. Decode `predictions[0].bytesBase64Encoded`.

Credentials are cached on the adapter instance and refreshed only when they
are no longer valid.
"""

import json
import logging

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from tattoo_discovery.image.errors import AuthError, InvalidResponseShape, ModelUnavailable
from tattoo_discovery.image.models import ProviderName
from tattoo_discovery.image.providers.base import ImageProvider, raise_for_vendor_status
from tattoo_discovery.image.reference import decode_base64_image


logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

ENDPOINT_TEMPLATE = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{location}/publishers/google/models/{model}:predict"
)


def extract_prediction_image(data: dict) -> str:
    """Return base64 image data from an Imagen predict response.

    Expected shape: `{"predictions": [{"bytesBase64Encoded": "...", ...}]}`.
    """
    predictions = data.get("predictions")
    if not isinstance(predictions, list) or not predictions:
        raise InvalidResponseShape("Vertex AI returned no predictions")

    prediction = predictions[0]
    if not isinstance(prediction, dict):
        raise InvalidResponseShape("Vertex AI prediction is not an object")

    encoded = prediction.get("bytesBase64Encoded")
    if not isinstance(encoded, str) or not encoded.strip():
        keys = ", ".join(sorted(prediction.keys()))
        raise InvalidResponseShape(
            f"Vertex AI response format not recognized. Prediction keys: {keys}"
        )
    return encoded


class VertexImagenProvider(ImageProvider):
    name = ProviderName.VERTEX
    label = "Vertex AI"
    setup_hint = (
        "Vertex AI Imagen: enable the Vertex AI API, then set GOOGLE_CLOUD_PROJECT_ID "
        "and GOOGLE_CLOUD_CREDENTIALS (service-account JSON with the Vertex AI User role)"
    )

    def __init__(self, settings, session=None, sleep=None, image_strength=None):
        super().__init__(settings, session=session, sleep=sleep, image_strength=image_strength)
        self._credentials = None

    @property
    def model(self) -> str:
        return f"vertex/{self.settings.vertex_model}"

    def is_configured(self) -> bool:
        return self.settings.vertex_configured()

    @property
    def endpoint(self) -> str:
        return ENDPOINT_TEMPLATE.format(
            location=self.settings.google_location,
            project=self.settings.google_project_id,
            model=self.settings.vertex_model,
        )

    def access_token(self) -> str:
        """Return a valid OAuth access token for the configured service account."""
        if self._credentials is None:
            try:
                info = json.loads(self.settings.google_credentials_json)
            except ValueError:
                raise AuthError(
                    "Invalid credentials JSON format. Make sure GOOGLE_CLOUD_CREDENTIALS is valid JSON."
                )
            try:
                self._credentials = service_account.Credentials.from_service_account_info(
                    info, scopes=SCOPES
                )
            except (ValueError, GoogleAuthError) as err:
                raise AuthError(f"Vertex AI credentials error: {err}")

        if not self._credentials.valid:
            try:
                self._credentials.refresh(GoogleAuthRequest(session=self.session))
            except GoogleAuthError as err:
                raise AuthError(f"Vertex AI credentials error: {err}")

        if not self._credentials.token:
            raise AuthError("Failed to get access token from Google Cloud credentials")
        return self._credentials.token

    def build_payload(self, prompt, negative_prompt) -> dict:
        return {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": "1:1",
                "negativePrompt": negative_prompt,
            },
        }

    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        token = self.access_token()
        logger.info("Calling Vertex AI Imagen in project %s", self.settings.google_project_id)

        response = self.session.post(
            self.endpoint,
            json=self.build_payload(prompt, negative_prompt),
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )
        if response.status_code == 404:
            raise ModelUnavailable(
                "Vertex AI model not found. Make sure Imagen API is enabled in your project."
            )
        raise_for_vendor_status(response, self.label)

        return decode_base64_image(extract_prediction_image(self._json(response)))
