"""Data contracts shared by the prompt builder, provider adapters and pipeline.

Architectural role:
    `DesignRequest` is the canonical, provider-agnostic description of one
    generation call. Adapters receive it together with the prompt text and
    return a `ProviderResult`. The pipeline folds results into either a
    `GenerationOutcome` (first success) or an `ExhaustedOutcome` (no image,
    prompt plus setup guidance).

Determinism:
    All types are plain data; none of them perform I/O.
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from tattoo_discovery.image.errors import ValidationError


class ColorPreference(str, Enum):
    COLOR = "color"
    BLACK_AND_WHITE = "bw"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value):
        """Map wire values to a preference; unknown values are unspecified."""
        if isinstance(value, cls):
            return value
        if value == "color":
            return cls.COLOR
        if value in ("bw", "blackAndWhite", "black_and_white"):
            return cls.BLACK_AND_WHITE
        return cls.UNSPECIFIED


class SizePreference(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value):
        """Map wire values to a size; `"all"` and missing values are unspecified."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNSPECIFIED


class GenerationMode(str, Enum):
    TEXT_TO_IMAGE = "text_to_image"
    IMAGE_TO_IMAGE = "image_to_image"


class ProviderName(str, Enum):
    REPLICATE = "replicate"
    VERTEX = "vertex"
    GEMINI = "gemini"
    HUGGINGFACE = "huggingface"

    @classmethod
    def parse(cls, value):
        """Return the matching provider or `None` for unknown names."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class ProviderStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ImageStrength:
    """Likeness weight for image-to-image requests, in [0, 1].

    Lower values bias a provider toward transforming the reference into
    stencil line art; higher values keep more of the original likeness. Each
    adapter maps this onto its own vendor parameter.
    """

    likeness: float = 0.5

    def __post_init__(self):
        if not 0.0 <= self.likeness <= 1.0:
            raise ValueError(f"likeness must be within [0, 1], got {self.likeness}")

    @property
    def transformation(self) -> float:
        return round(1.0 - self.likeness, 4)


@dataclass(frozen=True)
class DesignRequest:
    """One tattoo design request, constructed per call and never persisted."""

    styles: tuple
    subject_matter: str = ""
    color_preference: ColorPreference = ColorPreference.UNSPECIFIED
    size_preference: SizePreference = SizePreference.UNSPECIFIED
    body_parts: tuple = ()
    reference_image: bytes | None = None
    reference_mime_type: str | None = None
    preferred_provider: ProviderName | None = None
    generate_all_styles: bool = False

    @property
    def mode(self) -> GenerationMode:
        if self.reference_image is not None:
            return GenerationMode.IMAGE_TO_IMAGE
        return GenerationMode.TEXT_TO_IMAGE

    @property
    def primary_style(self) -> str:
        return self.styles[0] if self.styles else ""

    def validate(self):
        """Raise `ValidationError` unless the request can be attempted."""
        if not self.styles or not any(str(s).strip() for s in self.styles):
            raise ValidationError("At least one style is required")
        if not self.subject_matter.strip() and self.reference_image is None:
            raise ValidationError(
                "Missing required fields: subjectMatter or referenceImage is required"
            )

    def with_style(self, style, reference_image=None, reference_mime_type=None):
        """Copy this request with a single style and optional seed image."""
        return replace(
            self,
            styles=(style,),
            reference_image=reference_image,
            reference_mime_type=reference_mime_type,
            generate_all_styles=False,
        )


@dataclass(frozen=True)
class ProviderResult:
    """Outcome of a single provider attempt."""

    status: ProviderStatus
    provider_name: str
    image_base64: str | None = None
    reason: str | None = None
    error_kind: str | None = None
    mime_type: str = "image/png"
    model: str | None = None

    @classmethod
    def success(cls, provider_name, image_base64, model=None):
        return cls(ProviderStatus.SUCCESS, provider_name, image_base64=image_base64, model=model)

    @classmethod
    def skipped(cls, provider_name, reason="not configured"):
        return cls(ProviderStatus.SKIPPED, provider_name, reason=reason, error_kind="not_configured")

    @classmethod
    def failed(cls, provider_name, reason, error_kind="unknown"):
        return cls(ProviderStatus.FAILED, provider_name, reason=reason, error_kind=error_kind)

    @property
    def ok(self) -> bool:
        return self.status is ProviderStatus.SUCCESS


@dataclass(frozen=True)
class StyleImage:
    style: str
    image_base64: str


@dataclass
class GenerationOutcome:
    """First successful provider result plus optional per-style variants."""

    result: ProviderResult
    prompt: str
    style_images: list = field(default_factory=list)

    @property
    def all_styles(self) -> bool:
        return bool(self.style_images)


@dataclass
class ExhaustedOutcome:
    """No provider produced an image; carries the prompt and diagnostics."""

    prompt: str
    errors: list
    any_configured: bool
    setup_instructions: str = ""
    note: str = ""

    @property
    def needs_setup(self) -> bool:
        return not self.any_configured
