"""Ordered provider fallback for tattoo design generation.

Processing flow (`run_pipeline`):
    1. Validate the request; nothing runs on invalid input.
    2. Build the prompt and negative prompt for the request mode.
    3. Attempt providers strictly in sequence; the first success wins.
    4. Optionally re-render the first image in every other catalog style,
       stopping short of the request deadline. Variants are best-effort; the
       first image is returned whatever happens to them.
    5. If nothing succeeded, return an `ExhaustedOutcome` with the prompt,
       the non-skip failure reasons and setup guidance.

Ordering policy:
    The deployment order is fixed by configuration. A preferred provider that
    is present in the list moves to the front; unknown names change nothing.

Isolation:
    Adapters translate vendor errors into results themselves. Any exception
    that still escapes an adapter is recorded as an `unknown` failure and the
    next provider is attempted.

Determinism:
    Provider order and prompt text are deterministic for fixed inputs; the
    generated images are not.
"""

import logging

from tattoo_discovery.image.models import (
    ExhaustedOutcome,
    GenerationMode,
    GenerationOutcome,
    ProviderResult,
    ProviderStatus,
    StyleImage,
)
from tattoo_discovery.image.reference import decode_base64_image
from tattoo_discovery.prompting.prompt_builder import (
    TATTOO_STYLES,
    build_negative_prompt,
    build_prompt,
    build_style_variant_prompt,
)


logger = logging.getLogger(__name__)

CANCELLED_REASON = "Generation cancelled before a provider succeeded"

# Style variants stop this many seconds before the request deadline.
VARIANT_RESERVE_SECONDS = 1.0

QUICK_SETUP_INSTRUCTIONS = (
    "**No image generation service configured.**\n\n"
    "**Quick Setup (Recommended - Takes 2 minutes):**\n"
    "1. Go to https://replicate.com/account/api-tokens\n"
    "2. Sign up/login and create an API token\n"
    "3. Copy the token (starts with r8_...)\n"
    "4. Add this line to your .env file:\n"
    "   REPLICATE_API_TOKEN=r8_your_token_here\n"
    "5. Restart the server\n"
    "6. Try generating again!"
)

CONFIGURATION_ERROR_MARKERS = ("no longer supported", "410", "404", "not found", "authentication")


# =========================================================
# ORDERING
# =========================================================

def order_providers(providers, preferred=None) -> list:
    """Return providers with `preferred` moved to the front.

    Args:
        providers: Providers in deployment priority order.
        preferred: `ProviderName`, provider name string or `None`.

    Returns:
        New list; the input sequence is not mutated.
    """
    ordered = list(providers)
    if preferred is None:
        return ordered

    preferred_value = getattr(preferred, "value", preferred)
    for index, provider in enumerate(ordered):
        if provider.name.value == preferred_value:
            ordered.insert(0, ordered.pop(index))
            break
    return ordered


# =========================================================
# ATTEMPTS
# =========================================================

def _attempt(provider, request, prompt, negative_prompt, cancel_token):
    try:
        return provider.attempt(request, prompt, negative_prompt, cancel_token=cancel_token)
    except Exception as err:
        logger.exception("%s raised past its adapter boundary", provider.label)
        return ProviderResult.failed(provider.name.value, f"{provider.label}: {err}")


def _first_success(providers, request, prompt, negative_prompt, cancel_token):
    """Try providers in order; return `(success_or_None, failed_results, cancelled)`."""
    failures = []
    for provider in providers:
        if cancel_token is not None and cancel_token.cancelled:
            logger.warning("Generation cancelled before %s was attempted", provider.label)
            return None, failures, True

        result = _attempt(provider, request, prompt, negative_prompt, cancel_token)
        if result.ok:
            return result, failures, False
        if result.status is ProviderStatus.FAILED:
            failures.append(result)

    return None, failures, False


# =========================================================
# GENERATE ALL STYLES
# =========================================================

def generate_style_variants(providers, request, seed_base64, cancel_token=None) -> list:
    """Re-render the first design in every other catalog style.

    Uses the first image as the reference for image-to-image providers. Each
    style is best-effort: failures are logged and the style is left out.

    Returns:
        `StyleImage` list, starting with the primary style and seed image.
    """
    images = [StyleImage(request.primary_style, seed_base64)]
    seed_providers = [
        p for p in providers if p.supports_reference_image and p.is_configured()
    ]
    if not seed_providers:
        logger.info("No configured image-to-image provider; skipping style variants")
        return images

    seed_bytes = decode_base64_image(seed_base64)
    negative_prompt = build_negative_prompt(GenerationMode.IMAGE_TO_IMAGE)
    primary = request.primary_style.strip().lower()

    for style in TATTOO_STYLES:
        if style.lower() == primary:
            continue
        if cancel_token is not None and cancel_token.cancelled:
            logger.warning("Style variants cancelled after %d images", len(images))
            break

        variant = request.with_style(style, reference_image=seed_bytes, reference_mime_type="image/png")
        prompt = build_style_variant_prompt(request, style)
        result, failures, _ = _first_success(
            seed_providers, variant, prompt, negative_prompt, cancel_token
        )
        if result is None:
            reasons = "; ".join(f.reason for f in failures) or "no provider succeeded"
            logger.warning("Style variant %r failed: %s", style, reasons)
            continue
        images.append(StyleImage(style, result.image_base64))

    return images


# =========================================================
# EXHAUSTION SUMMARY
# =========================================================

def build_setup_instructions(providers) -> str:
    """Return setup guidance naming each provider and how to configure it."""
    hints = [f"- {p.setup_hint}" for p in providers if p.setup_hint]
    if not hints:
        return QUICK_SETUP_INSTRUCTIONS
    return QUICK_SETUP_INSTRUCTIONS + "\n\n**Other supported providers:**\n" + "\n".join(hints)


def summarize_exhaustion(errors, any_configured, setup_instructions="") -> str:
    """Return the user-facing note for a pipeline that produced no image."""
    if not any_configured:
        return setup_instructions or QUICK_SETUP_INSTRUCTIONS

    if errors and all(
        any(marker in error.lower() for marker in CONFIGURATION_ERROR_MARKERS)
        for error in errors
    ):
        return (
            "Image generation services are not properly configured. "
            f"Check your API keys and configuration. Errors: {'; '.join(errors)}"
        )

    last_error = errors[-1] if errors else "Unknown error"
    return (
        f"Image generation failed: {last_error}. Please check your API configuration "
        "and try again. The prompt above can be used with other image generation tools."
    )


# =========================================================
# PIPELINE
# =========================================================

def run_pipeline(providers, request, cancel_token=None):
    """Run the ordered fallback for one design request.

    Args:
        providers: Providers in deployment priority order.
        request: `DesignRequest`; validated before any provider runs.
        cancel_token: Optional `CancelToken` checked between attempts and
            passed into each adapter.

    Returns:
        `GenerationOutcome` on the first success, otherwise `ExhaustedOutcome`.

    Raises:
        ValidationError: If the request cannot be attempted.
    """
    request.validate()

    mode = request.mode
    prompt = build_prompt(request, mode)
    negative_prompt = build_negative_prompt(mode)
    ordered = order_providers(providers, request.preferred_provider)

    logger.info(
        "Generating %s design with %d providers: %s",
        mode.value,
        len(ordered),
        ", ".join(p.name.value for p in ordered),
    )

    result, failures, cancelled = _first_success(
        ordered, request, prompt, negative_prompt, cancel_token
    )

    if result is not None:
        logger.info("Design generated by %s", result.provider_name)
        outcome = GenerationOutcome(result=result, prompt=prompt)
        if request.generate_all_styles and request.reference_image is None:
            variant_token = None
            if cancel_token is not None:
                variant_token = cancel_token.child(reserve=VARIANT_RESERVE_SECONDS)
            outcome.style_images = generate_style_variants(
                ordered, request, result.image_base64, cancel_token=variant_token
            )
        return outcome

    errors = [f.reason for f in failures]
    if cancelled:
        errors.append(CANCELLED_REASON)

    any_configured = any(p.is_configured() for p in ordered)
    setup_instructions = "" if any_configured else build_setup_instructions(ordered)
    note = summarize_exhaustion(errors, any_configured, setup_instructions)

    logger.warning("All providers exhausted (%d failures, configured=%s)", len(failures), any_configured)
    return ExhaustedOutcome(
        prompt=prompt,
        errors=errors,
        any_configured=any_configured,
        setup_instructions=setup_instructions,
        note=note,
    )
