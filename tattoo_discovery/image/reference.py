"""Base64 image intake and normalization.

Processing lifecycle (reference images from clients):
    1. Strip an optional `data:<mime>;base64,` prefix (clients are asked to send
       bare base64, but browsers often keep the prefix).
    2. Pre-validate the approximate decoded size before decoding.
    3. Decode strictly; reject malformed base64.
    4. Verify the bytes are an image Pillow can read and detect its MIME type.

Provider output:
    `encode_png` re-encodes whatever a provider returned into base64 PNG so the
    HTTP layer can always answer with `mimeType: "image/png"`.

Error handling strategy:
    - Client input problems raise `ValidationError` (HTTP 400).
    - Undecodable provider output raises `InvalidResponseShape`, which the
      adapter boundary turns into a failed provider result.
"""

import base64
import binascii
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from tattoo_discovery.image.errors import InvalidResponseShape, ValidationError


DEFAULT_MAX_REFERENCE_MB = 10
ALLOWED_REFERENCE_MIME_TYPES = {"image/png", "image/jpeg", "image/webp"}


def _split_data_url(value: str):
    """Return `(mime_type_or_None, bare_base64)` for bare or data-URL input."""
    value = "".join(value.split())
    if value.startswith("data:") and "," in value:
        header, encoded = value.split(",", 1)
        mime_type = header[5:].split(";", 1)[0] or None
        return mime_type, encoded
    return None, value


def _approx_decoded_size(encoded: str) -> int:
    padding = 0
    if encoded.endswith("=="):
        padding = 2
    elif encoded.endswith("="):
        padding = 1
    return (len(encoded) * 3) // 4 - padding


def _detect_mime_type(data: bytes) -> str | None:
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
            image_format = img.format
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None
    return Image.MIME.get(image_format or "")


def decode_reference_image(value, mime_type=None, max_mb=DEFAULT_MAX_REFERENCE_MB):
    """Decode and validate a client-supplied reference image.

    Args:
        value: Base64 string, with or without a data-URL prefix.
        mime_type: MIME type declared by the client, if any.
        max_mb: Maximum decoded size in megabytes.

    Returns:
        `(image_bytes, mime_type)` where `mime_type` is detected from the bytes.

    Raises:
        ValidationError: empty, oversized, malformed or non-image payloads and
            unsupported image types.
    """
    if not value or not str(value).strip():
        raise ValidationError("referenceImage is empty")

    _, encoded = _split_data_url(str(value))

    if _approx_decoded_size(encoded) > max_mb * 1024 * 1024:
        raise ValidationError(f"referenceImage exceeds the {max_mb:g} MB limit")

    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("referenceImage is not valid base64")

    detected = _detect_mime_type(data)
    if detected is None:
        raise ValidationError("referenceImage is not a readable image")
    if detected not in ALLOWED_REFERENCE_MIME_TYPES:
        raise ValidationError(f"Unsupported reference image type: {detected}")

    # Declared types (`mime_type`, data-URL header) are advisory; the bytes win.
    return data, detected


def encode_png(data: bytes) -> str:
    """Return provider image bytes as a base64 PNG string."""
    if not data:
        raise InvalidResponseShape("Received empty image data")
    try:
        with Image.open(BytesIO(data)) as img:
            if img.format == "PNG":
                return base64.b64encode(data).decode("ascii")
            buffer = BytesIO()
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            img.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as err:
        raise InvalidResponseShape(f"Provider returned data that is not an image: {err}")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_base64_image(value: str) -> bytes:
    """Decode provider-supplied base64 (whitespace tolerated)."""
    cleaned = "".join(str(value).split())
    if not cleaned:
        raise InvalidResponseShape("Received empty image data")
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidResponseShape("Provider returned malformed base64 image data")


def to_data_url(data: bytes, mime_type="image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
