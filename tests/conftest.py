"""Shared pytest fixtures for tattoo_discovery tests."""

from __future__ import annotations

import base64
from io import BytesIO
from unittest.mock import MagicMock

import pytest
from PIL import Image

from tattoo_discovery.config import AppSettings, ProviderSettings
from tattoo_discovery.entitlement.ledger import EntitlementLedger
from tattoo_discovery.entitlement.store import MemoryDocumentStore
from tattoo_discovery.image.models import DesignRequest, ProviderName
from tattoo_discovery.image.providers.base import ImageProvider

# ============================================================================
# Images
# ============================================================================


def make_image_bytes(image_format: str = "PNG", color: str = "black") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def png_base64(png_bytes: bytes) -> str:
    return base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG", color="white")


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture
def provider_settings() -> ProviderSettings:
    """Every provider configured, with fast polling."""
    return ProviderSettings(
        replicate_api_token="r8_test",
        google_project_id="test-project",
        google_credentials_json='{"type": "service_account"}',
        gemini_api_key="gemini-test",
        huggingface_api_key="hf_test",
        poll_interval=0.0,
        poll_max_attempts=3,
        http_timeout=5.0,
    )


@pytest.fixture
def app_settings(provider_settings: ProviderSettings, tmp_path) -> AppSettings:
    return AppSettings(
        providers=provider_settings,
        generation_timeout=5.0,
        data_dir=str(tmp_path / "data"),
        stripe_secret_key="sk_test",
        stripe_webhook_secret="whsec_test",
    )


# ============================================================================
# Requests
# ============================================================================


@pytest.fixture
def design_request() -> DesignRequest:
    return DesignRequest(styles=("Fine Line",), subject_matter="a rose")


# ============================================================================
# HTTP fakes
# ============================================================================


def fake_response(status_code=200, json_data=None, content=b"", headers=None, text=None):
    """Build a `requests.Response` stand-in."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.content = content
    if json_data is None:
        response.json.side_effect = ValueError("no json")
        response.text = text if text is not None else ""
    else:
        response.json.return_value = json_data
        response.text = text if text is not None else str(json_data)
    return response


# ============================================================================
# Providers
# ============================================================================


class FakeProvider(ImageProvider):
    """Scripted provider: returns image bytes or raises the given exception."""

    def __init__(self, name, outcome=None, configured=True, supports_reference_image=False):
        super().__init__(ProviderSettings(), session=MagicMock())
        self.name = ProviderName(name)
        self.label = name.title()
        self.setup_hint = f"{name}: set {name.upper()}_API_KEY"
        self.outcome = outcome
        self.configured = configured
        self.supports_reference_image = supports_reference_image
        self.calls = []

    def is_configured(self) -> bool:
        return self.configured

    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        self.calls.append((request, prompt, negative_prompt))
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        if callable(self.outcome):
            return self.outcome(request)
        return self.outcome


@pytest.fixture
def fake_provider():
    return FakeProvider


# ============================================================================
# Ledger
# ============================================================================


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def ledger(store: MemoryDocumentStore) -> EntitlementLedger:
    return EntitlementLedger(store, generation_limit=1, clock=lambda: "2026-01-01T00:00:00+00:00")
