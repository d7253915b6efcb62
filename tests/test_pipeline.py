"""Tests for ordered provider fallback."""

from __future__ import annotations

import pytest

from tattoo_discovery.image.errors import AuthError, QuotaExceeded, ValidationError
from tattoo_discovery.image.models import (
    DesignRequest,
    ExhaustedOutcome,
    GenerationOutcome,
    ProviderName,
    ProviderStatus,
)
from tattoo_discovery.image.pipeline import (
    build_setup_instructions,
    order_providers,
    run_pipeline,
    summarize_exhaustion,
)
from tattoo_discovery.image.polling import CancelToken
from tattoo_discovery.prompting.prompt_builder import TATTOO_STYLES

from tests.conftest import FakeProvider


class TestOrderProviders:
    def test_preferred_moves_to_front(self):
        a, b, c = FakeProvider("replicate"), FakeProvider("vertex"), FakeProvider("gemini")
        assert order_providers([a, b, c], ProviderName.GEMINI) == [c, a, b]

    def test_preferred_as_plain_string(self):
        a, b = FakeProvider("replicate"), FakeProvider("vertex")
        assert order_providers([a, b], "vertex") == [b, a]

    def test_absent_preferred_is_noop(self):
        a, b = FakeProvider("replicate"), FakeProvider("vertex")
        assert order_providers([a, b], ProviderName.HUGGINGFACE) == [a, b]
        assert order_providers([a, b], None) == [a, b]

    def test_does_not_mutate_input(self):
        providers = [FakeProvider("replicate"), FakeProvider("vertex")]
        order_providers(providers, "vertex")
        assert providers[0].name is ProviderName.REPLICATE


class TestRunPipeline:
    """Fallback order, isolation and exhaustion."""

    def test_failed_then_skipped_then_success(self, design_request, png_bytes):
        a = FakeProvider("replicate", outcome=QuotaExceeded("Replicate quota exceeded"))
        b = FakeProvider("vertex", configured=False)
        c = FakeProvider("gemini", outcome=png_bytes)

        outcome = run_pipeline([a, b, c], design_request)

        assert isinstance(outcome, GenerationOutcome)
        assert outcome.result.provider_name == "gemini"
        assert outcome.result.status is ProviderStatus.SUCCESS
        assert outcome.result.image_base64
        assert b.calls == []

    def test_error_list_excludes_skipped(self, design_request):
        a = FakeProvider("replicate", outcome=AuthError("Replicate authentication failed"))
        b = FakeProvider("vertex", configured=False)

        outcome = run_pipeline([a, b], design_request)

        assert isinstance(outcome, ExhaustedOutcome)
        assert outcome.errors == ["Replicate authentication failed"]
        assert outcome.any_configured is True
        assert outcome.needs_setup is False
        assert outcome.setup_instructions == ""
        assert "Replicate authentication failed" in outcome.note

    def test_preferred_provider_runs_first(self, png_bytes):
        a = FakeProvider("replicate", outcome=png_bytes)
        b = FakeProvider("vertex", outcome=png_bytes)
        c = FakeProvider("gemini", outcome=png_bytes)
        request = DesignRequest(
            styles=("Fine Line",), subject_matter="a rose", preferred_provider=ProviderName.GEMINI
        )

        outcome = run_pipeline([a, b, c], request)

        assert outcome.result.provider_name == "gemini"
        assert a.calls == [] and b.calls == []

    def test_all_unconfigured_yields_setup_guidance(self, design_request):
        providers = [FakeProvider(n, configured=False) for n in ("replicate", "vertex", "gemini")]

        outcome = run_pipeline(providers, design_request)

        assert isinstance(outcome, ExhaustedOutcome)
        assert outcome.needs_setup is True
        assert outcome.errors == []
        assert "REPLICATE_API_TOKEN" in outcome.setup_instructions
        assert "gemini: set GEMINI_API_KEY" in outcome.setup_instructions
        assert outcome.note == outcome.setup_instructions
        assert outcome.prompt.startswith("a rose")

    def test_unexpected_exception_is_isolated(self, design_request, png_bytes):
        a = FakeProvider("replicate", outcome=RuntimeError("boom"))
        b = FakeProvider("vertex", outcome=png_bytes)

        outcome = run_pipeline([a, b], design_request)

        assert outcome.result.provider_name == "vertex"

    def test_non_image_output_fails_over(self, design_request, png_bytes):
        a = FakeProvider("replicate", outcome=b"not an image")
        b = FakeProvider("vertex", outcome=png_bytes)

        outcome = run_pipeline([a, b], design_request)

        assert outcome.result.provider_name == "vertex"

    def test_reference_image_skips_text_only_providers(self, png_bytes):
        text_only = FakeProvider("vertex", outcome=png_bytes)
        img2img = FakeProvider("gemini", outcome=png_bytes, supports_reference_image=True)
        request = DesignRequest(styles=("Fine Line",), reference_image=png_bytes)

        outcome = run_pipeline([text_only, img2img], request)

        assert outcome.result.provider_name == "gemini"
        assert text_only.calls == []

    def test_cancelled_token_stops_pipeline(self, design_request, png_bytes):
        token = CancelToken()
        token.cancel()
        a = FakeProvider("replicate", outcome=png_bytes)

        outcome = run_pipeline([a], design_request, cancel_token=token)

        assert isinstance(outcome, ExhaustedOutcome)
        assert a.calls == []
        assert "cancelled" in outcome.errors[-1]


class TestValidationBoundary:
    @pytest.mark.parametrize(
        "request_kwargs",
        [
            {"styles": (), "subject_matter": "a rose"},
            {"styles": (), "reference_image": b"\x89PNG"},
            {"styles": ("  ",), "subject_matter": "a rose"},
            {"styles": ("Fine Line",), "subject_matter": "   "},
        ],
    )
    def test_invalid_requests_never_reach_providers(self, request_kwargs, png_bytes):
        provider = FakeProvider("replicate", outcome=png_bytes)

        with pytest.raises(ValidationError):
            run_pipeline([provider], DesignRequest(**request_kwargs))

        assert provider.calls == []


class TestGenerateAllStyles:
    def test_variants_use_first_image_as_seed(self, png_bytes):
        seed_calls = []

        def render(request):
            seed_calls.append(request)
            return png_bytes

        provider = FakeProvider("replicate", outcome=render, supports_reference_image=True)
        request = DesignRequest(
            styles=("Fine Line",), subject_matter="a rose", generate_all_styles=True
        )

        outcome = run_pipeline([provider], request)

        assert outcome.all_styles
        styles = [item.style for item in outcome.style_images]
        assert styles[0] == "Fine Line"
        assert len(styles) == len(TATTOO_STYLES)
        assert all(r.reference_image == png_bytes for r in seed_calls[1:])

    def test_variant_failures_are_skipped(self, png_bytes):
        def render(request):
            if request.reference_image is not None and request.primary_style == "Watercolor":
                raise QuotaExceeded("out of credits")
            return png_bytes

        provider = FakeProvider("replicate", outcome=render, supports_reference_image=True)
        request = DesignRequest(
            styles=("Fine Line",), subject_matter="a rose", generate_all_styles=True
        )

        outcome = run_pipeline([provider], request)

        styles = [item.style for item in outcome.style_images]
        assert "Watercolor" not in styles
        assert len(styles) == len(TATTOO_STYLES) - 1

    def test_without_seed_provider_only_primary_is_returned(self, png_bytes):
        provider = FakeProvider("vertex", outcome=png_bytes)
        request = DesignRequest(
            styles=("Fine Line",), subject_matter="a rose", generate_all_styles=True
        )

        outcome = run_pipeline([provider], request)

        assert [item.style for item in outcome.style_images] == ["Fine Line"]


class TestExhaustionSummary:
    def test_setup_instructions_list_provider_hints(self):
        text = build_setup_instructions([FakeProvider("huggingface")])
        assert "replicate.com/account/api-tokens" in text
        assert "huggingface: set HUGGINGFACE_API_KEY" in text

    def test_configuration_errors_are_grouped(self):
        note = summarize_exhaustion(["Vertex AI model not found (404)."], any_configured=True)
        assert note.startswith("Image generation services are not properly configured")

    def test_generic_failure_mentions_last_error(self):
        note = summarize_exhaustion(["first", "Gemini API error (500): oops"], any_configured=True)
        assert "Gemini API error (500): oops" in note
