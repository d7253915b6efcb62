"""HTTP contract tests using FastAPI's TestClient."""

from __future__ import annotations

import dataclasses

import pytest
from fastapi.testclient import TestClient

from tattoo_discovery.api.http_api import create_app
from tattoo_discovery.entitlement.store import MemoryDocumentStore
from tattoo_discovery.image.errors import ProviderCancelled

from tests.conftest import FakeProvider

BODY = {"styles": ["Fine Line"], "subjectMatter": "a rose", "userId": "u1"}


class SlowProvider(FakeProvider):
    """Blocks until the request's cancel token fires."""

    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        cancel_token.wait(10)
        raise ProviderCancelled("slow provider abandoned")


class VariantBlockingProvider(FakeProvider):
    """Renders the first image, then blocks on every style variant until the token fires."""

    def generate(self, request, prompt, negative_prompt, cancel_token=None) -> bytes:
        self.calls.append((request, prompt, negative_prompt))
        if request.reference_image is None:
            return self.outcome
        cancel_token.wait(10)
        raise ProviderCancelled("variant abandoned")


def make_client(settings, providers, **kwargs):
    app = create_app(settings, store=MemoryDocumentStore(), providers=providers)
    return app, TestClient(app, **kwargs)


@pytest.fixture
def provider(png_bytes):
    return FakeProvider("replicate", outcome=png_bytes, supports_reference_image=True)


@pytest.fixture
def app_and_client(app_settings, provider):
    return make_client(app_settings, [provider])


class TestGenerateTattoo:
    def test_paid_user_gets_image_once(self, app_and_client, png_base64):
        app, client = app_and_client
        app.state.ledger.record_payment("u1", user_id="u1")

        response = client.post("/api/generate-tattoo", json=BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["image"] == png_base64
        assert data["mimeType"] == "image/png"
        assert data["prompt"].startswith("a rose, fine line tattoo style")
        assert "images" not in data

        again = client.post("/api/generate-tattoo", json=BODY)
        assert again.status_code == 402
        assert again.json()["reason"] == "limit reached"

    def test_unpaid_user_is_refused(self, app_and_client, provider):
        _, client = app_and_client

        response = client.post("/api/generate-tattoo", json=BODY)

        assert response.status_code == 402
        assert response.json()["reason"] == "no payment"
        assert provider.calls == []

    def test_email_identity(self, app_and_client):
        app, client = app_and_client
        app.state.ledger.record_payment("email_ink@example.com", email="ink@example.com")

        response = client.post(
            "/api/generate-tattoo",
            json={"styles": ["Fine Line"], "subjectMatter": "a rose", "email": "Ink@Example.com "},
        )

        assert response.status_code == 200

    @pytest.mark.parametrize(
        "body, message",
        [
            ({"styles": [], "subjectMatter": "a rose", "userId": "u1"}, "At least one style is required"),
            ({"styles": ["Fine Line"], "userId": "u1"}, "subjectMatter or referenceImage"),
            ({"styles": "Fine Line", "subjectMatter": "a rose"}, "styles"),
            ({"styles": ["Fine Line"], "referenceImage": "not-an-image"}, "referenceImage"),
        ],
    )
    def test_validation_errors(self, app_and_client, provider, body, message):
        _, client = app_and_client

        response = client.post("/api/generate-tattoo", json=body)

        assert response.status_code == 400
        assert message in response.json()["error"]
        assert provider.calls == []

    def test_invalid_json(self, app_and_client):
        _, client = app_and_client
        response = client.post(
            "/api/generate-tattoo", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    def test_missing_identity_when_payment_required(self, app_and_client):
        _, client = app_and_client
        response = client.post("/api/generate-tattoo", json={"styles": ["Fine Line"], "subjectMatter": "x"})
        assert response.status_code == 400

    def test_degraded_response_when_nothing_configured(self, app_settings):
        settings = dataclasses.replace(app_settings, require_payment=False)
        _, client = make_client(settings, [FakeProvider("replicate", configured=False)])

        response = client.post("/api/generate-tattoo", json={"styles": ["Fine Line"], "subjectMatter": "a rose"})

        assert response.status_code == 200
        data = response.json()
        assert data["imageGenerationAvailable"] is False
        assert data["needsSetup"] is True
        assert data["setupInstructions"]
        assert data["errors"] == []
        assert data["prompt"].startswith("a rose")

    def test_reference_image_request(self, app_settings, provider, png_base64):
        settings = dataclasses.replace(app_settings, require_payment=False)
        _, client = make_client(settings, [provider])

        response = client.post(
            "/api/generate-tattoo",
            json={"styles": ["Fine Line"], "referenceImage": png_base64, "referenceImageMimeType": "image/png"},
        )

        assert response.status_code == 200
        request = provider.calls[0][0]
        assert request.reference_image is not None

    def test_generate_all_styles(self, app_settings, provider):
        settings = dataclasses.replace(app_settings, require_payment=False)
        _, client = make_client(settings, [provider])

        response = client.post(
            "/api/generate-tattoo",
            json={"styles": ["Fine Line"], "subjectMatter": "a rose", "generateAllStyles": True},
        )

        data = response.json()
        assert data["allStyles"] is True
        assert data["images"][0]["style"] == "Fine Line"
        assert len(data["images"]) > 1

    def test_timeout_returns_504_and_consumes_nothing(self, app_settings):
        settings = dataclasses.replace(app_settings, generation_timeout=0.2)
        app, client = make_client(settings, [SlowProvider("replicate")])
        app.state.ledger.record_payment("u1")

        response = client.post("/api/generate-tattoo", json=BODY)

        assert response.status_code == 504
        assert "timed out" in response.json()["error"]
        assert app.state.ledger.usage("u1").generation_count == 0

    def test_slow_style_variants_keep_first_image(self, app_settings, png_bytes, png_base64):
        settings = dataclasses.replace(app_settings, generation_timeout=1.5)
        provider = VariantBlockingProvider("replicate", outcome=png_bytes, supports_reference_image=True)
        app, client = make_client(settings, [provider])
        app.state.ledger.record_payment("u1")

        response = client.post("/api/generate-tattoo", json={**BODY, "generateAllStyles": True})

        assert response.status_code == 200
        data = response.json()
        assert data["image"] == png_base64
        assert data["images"] == [{"style": "Fine Line", "image": png_base64}]
        assert app.state.ledger.usage("u1").generation_count == 1

    def test_storage_failure_still_returns_image(self, app_and_client, png_base64, monkeypatch):
        app, client = app_and_client
        app.state.ledger.record_payment("u1")

        def disk_full(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(app.state.designs, "save_generated_design", disk_full)

        response = client.post("/api/generate-tattoo", json=BODY)

        assert response.status_code == 200
        assert response.json()["image"] == png_base64
        assert app.state.ledger.usage("u1").generation_count == 1

    def test_unexpected_error_is_500(self, app_settings, monkeypatch):
        settings = dataclasses.replace(app_settings, require_payment=False)
        app, client = make_client(settings, [], raise_server_exceptions=False)

        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(app.state.service, "generate", explode)

        response = client.post("/api/generate-tattoo", json={"styles": ["Fine Line"], "subjectMatter": "x"})

        assert response.status_code == 500
        assert response.json() == {"error": "boom"}


class TestUsageAndDesigns:
    def test_usage_reports_state(self, app_and_client):
        app, client = app_and_client
        app.state.ledger.record_payment("u1", user_id="u1")

        data = client.get("/api/generation-usage", params={"userId": "u1"}).json()

        assert data["allowed"] is True
        assert data["remaining"] == 1
        assert data["usage"]["hasPaid"] is True

    def test_usage_without_identity(self, app_and_client):
        _, client = app_and_client
        assert client.get("/api/generation-usage").status_code == 400

    def test_generated_designs_listing(self, app_and_client):
        app, client = app_and_client
        app.state.ledger.record_payment("u1")
        client.post("/api/generate-tattoo", json=BODY)

        designs = client.get("/api/generated-designs/u1").json()["designs"]

        assert len(designs) == 1
        assert designs[0]["subjectMatter"] == "a rose"
