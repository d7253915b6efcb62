"""Prompt assembly for tattoo design generation.

This module only turns an already validated `DesignRequest` into prompt text.
Provider selection, credentials, HTTP calls and response handling happen
elsewhere.

Design constraints:
    - Deterministic construction for identical inputs (no randomness, no clock).
    - Fixed ordering of prompt components per generation mode.
    - No hidden side effects (no I/O, no global state mutation).

Style taxonomy:
    The primary style (first entry of `request.styles`) is matched against
    `STYLE_CLAUSES` by case-insensitive substring, in table order. The first
    matching row supplies a canned descriptive clause; unmatched styles fall
    back to `"{style} tattoo style"`.
"""

from tattoo_discovery.image.models import (
    ColorPreference,
    GenerationMode,
    SizePreference,
)


# =========================================================
# STYLE CATALOG
# =========================================================
# Known style names offered by the questionnaire. Generate-all-styles mode
# regenerates a design once per entry.

TATTOO_STYLES = (
    "Black & Grey Realism",
    "Color Realism",
    "Portraits",
    "American Traditional",
    "Japanese (Irezumi)",
    "Tribal / Polynesian",
    "Fine Line",
    "Minimalist",
    "Single Needle",
    "Watercolor",
    "Abstract / Sketch",
    "Geometric / Dotwork",
    "Neo-Traditional",
    "New School",
    "Cartoon / Anime",
)


# Precedence matters: "Neo-Traditional" resolves through "traditional" and
# "Geometric / Dotwork" through "geometric".
STYLE_CLAUSES = (
    (("fine line", "fineline", "single needle"),
     "fine line tattoo style, delicate thin lines, minimal shading"),
    (("traditional",),
     "traditional tattoo style, bold black outlines, solid colors"),
    (("realism",),
     "realistic tattoo style, detailed shading, photorealistic"),
    (("geometric", "dotwork"),
     "geometric tattoo style, clean lines, geometric patterns"),
    (("japanese", "irezumi"),
     "japanese irezumi tattoo style, bold outlines, flowing waves and wind bars"),
    (("tribal", "polynesian"),
     "tribal tattoo style, bold black patterns, flowing interlocking shapes"),
    (("watercolor",),
     "watercolor tattoo style, soft blended washes of color, loose edges"),
    (("minimalist",),
     "minimalist tattoo style, simple clean shapes, generous negative space"),
    (("portrait",),
     "portrait tattoo style, detailed facial features, smooth gradient shading"),
    (("sketch", "abstract"),
     "sketch tattoo style, loose hand-drawn linework, unfinished strokes"),
    (("new school", "cartoon", "anime"),
     "new school tattoo style, exaggerated cartoon forms, thick outlines"),
)


COLOR_CLAUSES = {
    ColorPreference.COLOR: "colorful tattoo, vibrant colors",
    ColorPreference.BLACK_AND_WHITE: "black and white tattoo, monochrome",
    ColorPreference.UNSPECIFIED: "black and white tattoo design",
}

SIZE_CLAUSES = {
    SizePreference.SMALL: "small tattoo design, compact composition",
    SizePreference.MEDIUM: "medium tattoo design, balanced composition",
    SizePreference.LARGE: "large tattoo design, expansive composition",
}

QUALITY_DESCRIPTORS = (
    "clean line art",
    "professional tattoo design",
    "high quality",
    "detailed",
    "tattoo stencil style",
    "suitable for tattooing",
)

IMAGE_TO_IMAGE_INSTRUCTION = (
    "convert the reference image into a tattoo stencil design, "
    "preserve the likeness and facial features of the subject, "
    "render it as clean black line art on a plain white background"
)

STYLE_VARIANT_INSTRUCTION = (
    "recreate the same tattoo composition as the reference image, "
    "keep the subject and layout unchanged"
)

REFERENCE_SUBJECT_FALLBACK = "the subject shown in the reference image"


# =========================================================
# NEGATIVE PROMPTS
# =========================================================

BASE_NEGATIVE_TERMS = ("blurry", "low quality", "distorted", "watermark", "text")

IMAGE_TO_IMAGE_NEGATIVE_TERMS = (
    "photo",
    "photograph",
    "photorealistic",
    "realistic skin texture",
    "3d render",
)


def describe_style(style: str) -> str:
    """Return the descriptive clause for a single style name."""
    lowered = style.strip().lower()
    for fragments, clause in STYLE_CLAUSES:
        if any(fragment in lowered for fragment in fragments):
            return clause
    return f"{style.strip()} tattoo style"


def _body_part_clause(body_parts) -> str | None:
    for part in body_parts:
        if part and str(part).strip():
            return f"suitable for {str(part).strip().lower()} placement"
    return None


def _design_clauses(request, style: str) -> list:
    """Style, color, size and placement clauses shared by every prompt variant."""
    parts = [describe_style(style)]

    secondary = [s.strip() for s in request.styles[1:] if s and s.strip()]
    if secondary and style == request.primary_style:
        parts.append("with influences of " + ", ".join(secondary))

    parts.append(COLOR_CLAUSES[request.color_preference])

    size_clause = SIZE_CLAUSES.get(request.size_preference)
    if size_clause:
        parts.append(size_clause)

    placement = _body_part_clause(request.body_parts)
    if placement:
        parts.append(placement)

    return parts


def build_prompt(request, mode: GenerationMode) -> str:
    """Build the provider prompt for a design request.

    Args:
        request: Validated `DesignRequest`.
        mode: Target generation mode. Image-to-image prompts are prefixed with
            the likeness-preserving stencil conversion instruction.

    Returns:
        Comma-joined prompt string.

    Component order:
        1) image-to-image instruction (image-to-image only)
        2) subject matter (or a reference-image placeholder)
        3) primary style clause, then secondary style influences
        4) color clause
        5) size clause (omitted when unspecified)
        6) placement clause for the first body part
        7) quality descriptors
    """
    parts = []

    if mode is GenerationMode.IMAGE_TO_IMAGE:
        parts.append(IMAGE_TO_IMAGE_INSTRUCTION)

    subject = request.subject_matter.strip()
    if subject:
        parts.append(subject)
    elif mode is GenerationMode.IMAGE_TO_IMAGE:
        parts.append(REFERENCE_SUBJECT_FALLBACK)

    parts.extend(_design_clauses(request, request.primary_style))
    parts.extend(QUALITY_DESCRIPTORS)

    return ", ".join(parts)


def build_style_variant_prompt(request, style: str) -> str:
    """Build the prompt used to re-render a finished design in another style.

    The first generated image is attached as the reference image, so the
    prompt asks the provider to keep its composition and change only the style.
    """
    parts = [STYLE_VARIANT_INSTRUCTION]

    subject = request.subject_matter.strip()
    if subject:
        parts.append(subject)

    parts.extend(_design_clauses(request, style))
    parts.extend(QUALITY_DESCRIPTORS)

    return ", ".join(parts)


def build_negative_prompt(mode: GenerationMode) -> str:
    """Return the fixed negative prompt for a generation mode."""
    terms = list(BASE_NEGATIVE_TERMS)
    if mode is GenerationMode.IMAGE_TO_IMAGE:
        terms.extend(IMAGE_TO_IMAGE_NEGATIVE_TERMS)
    return ", ".join(terms)
