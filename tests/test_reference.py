"""Tests for reference-image intake and provider output normalization."""

from __future__ import annotations

import base64
from io import BytesIO

import pytest
from PIL import Image

from tattoo_discovery.image.errors import InvalidResponseShape, ValidationError
from tattoo_discovery.image.reference import (
    decode_base64_image,
    decode_reference_image,
    encode_png,
)


class TestDecodeReferenceImage:
    def test_bare_base64(self, png_bytes, png_base64):
        data, mime_type = decode_reference_image(png_base64)
        assert data == png_bytes
        assert mime_type == "image/png"

    def test_data_url_prefix_is_stripped(self, jpeg_bytes):
        encoded = "data:image/png;base64," + base64.b64encode(jpeg_bytes).decode("ascii")
        data, mime_type = decode_reference_image(encoded, mime_type="image/png")
        assert data == jpeg_bytes
        assert mime_type == "image/jpeg"

    def test_size_checked_before_decoding(self):
        oversized = "A" * (2 * 1024 * 1024)
        with pytest.raises(ValidationError, match="1 MB"):
            decode_reference_image(oversized, max_mb=1)

    @pytest.mark.parametrize("value", ["", "   ", "not base64!!", base64.b64encode(b"hello").decode()])
    def test_rejects_invalid_payloads(self, value):
        with pytest.raises(ValidationError):
            decode_reference_image(value)

    def test_rejects_unsupported_type(self):
        buffer = BytesIO()
        Image.new("RGB", (4, 4)).save(buffer, format="BMP")
        with pytest.raises(ValidationError, match="image/bmp"):
            decode_reference_image(base64.b64encode(buffer.getvalue()).decode("ascii"))


class TestEncodePng:
    def test_png_passes_through(self, png_bytes, png_base64):
        assert encode_png(png_bytes) == png_base64

    def test_jpeg_is_converted(self, jpeg_bytes):
        encoded = encode_png(jpeg_bytes)
        with Image.open(BytesIO(base64.b64decode(encoded))) as img:
            assert img.format == "PNG"

    @pytest.mark.parametrize("data", [b"", b"<html>error</html>"])
    def test_non_images_are_invalid_shapes(self, data):
        with pytest.raises(InvalidResponseShape):
            encode_png(data)

    def test_decode_base64_image_rejects_garbage(self):
        with pytest.raises(InvalidResponseShape):
            decode_base64_image("***")
