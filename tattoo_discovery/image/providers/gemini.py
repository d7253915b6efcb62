"""Gemini image-model adapter (`generateContent` REST endpoint).

Gemini has no negative-prompt or strength parameter. Both are expressed in the
instruction text instead: the negative prompt becomes an "Avoid:" line, and
`ImageStrength.likeness` selects how strongly the reference is to be kept.
"""

import base64

from tattoo_discovery.image.errors import InvalidResponseShape, ProviderError
from tattoo_discovery.image.models import ImageStrength, ProviderName
from tattoo_discovery.image.providers.base import ImageProvider, raise_for_vendor_status
from tattoo_discovery.image.reference import decode_base64_image

GEMINI_URL_TEMPLATE = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "{model}:generateContent"
)


def likeness_instruction(strength: ImageStrength) -> str:
    if strength.likeness >= 0.66:
        return "Keep the subject's likeness and proportions very close to the reference image."
    if strength.likeness >= 0.33:
        return "Keep the subject recognizable while simplifying it into tattoo line work."
    return "Use the reference image loosely as inspiration; prioritize a clean stencil look."


def extract_inline_image(data: dict) -> str:
    """Return base64 image data from a `generateContent` response.

    Expected shape:
        `{"candidates": [{"content": {"parts": [..., {"inlineData": {"data": "..."}}]}}]}`
    """
    feedback = data.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise ProviderError(f"Gemini blocked the prompt: {feedback['blockReason']}")

    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise InvalidResponseShape("Gemini returned no candidates")

    parts = ((candidates[0] or {}).get("content") or {}).get("parts")
    if not isinstance(parts, list):
        raise InvalidResponseShape("Gemini candidate has no content parts")

    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if isinstance(inline, dict) and isinstance(inline.get("data"), str) and inline["data"]:
            return inline["data"]

    finish_reason = candidates[0].get("finishReason", "unknown")
    raise InvalidResponseShape(f"Gemini returned no image data (finishReason: {finish_reason})")


class GeminiProvider(ImageProvider):
    name = ProviderName.GEMINI
    label = "Gemini"
    supports_reference_image = True
    setup_hint = (
        "Gemini: create an API key at https://aistudio.google.com/apikey "
        "and set GEMINI_API_KEY"
    )

    def __init__(self, settings, session=None, sleep=None, image_strength=None):
        super().__init__(
            settings,
            session=session,
            sleep=sleep,
            image_strength=image_strength or ImageStrength(likeness=0.7),
        )

    @property
    def model(self) -> str:
        return f"gemini/{self.settings.gemini_image_model}"

    def is_configured(self) -> bool:
        return self.settings.gemini_configured()

    def build_payload(self, request, prompt, negative_prompt) -> dict:
        lines = [f"Generate a tattoo design image: {prompt}."]
        if request.reference_image is not None:
            lines.append(likeness_instruction(self.image_strength))
        lines.append(f"Avoid: {negative_prompt}.")

        parts = [{"text": "\n".join(lines)}]
        if request.reference_image is not None:
            parts.append({
                "inlineData": {
                    "mimeType": request.reference_mime_type or "image/png",
                    "data": base64.b64encode(request.reference_image).decode("ascii"),
                }
            })

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        url = GEMINI_URL_TEMPLATE.format(model=self.settings.gemini_image_model)
        response = self.session.post(
            url,
            json=self.build_payload(request, prompt, negative_prompt),
            headers={
                "x-goog-api-key": self.settings.gemini_api_key,
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )
        raise_for_vendor_status(response, self.label)
        return decode_base64_image(extract_inline_image(self._json(response)))
