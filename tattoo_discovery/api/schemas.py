"""Request bodies for the HTTP adapter.

Field names follow the JSON contract (camelCase aliases); Python attributes are
snake_case. Bodies are parsed with `model_validate` on the decoded JSON, and
pydantic errors are reported to the client as HTTP 400.
"""

from pydantic import BaseModel, ConfigDict, Field

from tattoo_discovery.image.models import (
    ColorPreference,
    DesignRequest,
    ProviderName,
    SizePreference,
)
from tattoo_discovery.image.reference import DEFAULT_MAX_REFERENCE_MB, decode_reference_image


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerateTattooBody(CamelModel):
    styles: list[str] = Field(default_factory=list)
    size_preference: str | None = Field(default=None, alias="sizePreference")
    subject_matter: str | None = Field(default=None, alias="subjectMatter")
    color_preference: str | None = Field(default=None, alias="colorPreference")
    body_parts: list[str] = Field(default_factory=list, alias="bodyParts")
    reference_image: str | None = Field(default=None, alias="referenceImage")
    reference_image_mime_type: str | None = Field(default=None, alias="referenceImageMimeType")
    preferred_service: str | None = Field(default=None, alias="preferredService")
    generate_all_styles: bool = Field(default=False, alias="generateAllStyles")
    user_id: str | None = Field(default=None, alias="userId")
    email: str | None = None

    def to_design_request(self, max_mb=DEFAULT_MAX_REFERENCE_MB) -> DesignRequest:
        """Build the canonical request; decodes and verifies the reference image."""
        reference_image = None
        reference_mime_type = None
        if self.reference_image:
            reference_image, reference_mime_type = decode_reference_image(
                self.reference_image, self.reference_image_mime_type, max_mb=max_mb
            )

        return DesignRequest(
            styles=tuple(s for s in self.styles if s and s.strip()),
            subject_matter=(self.subject_matter or "").strip(),
            color_preference=ColorPreference.parse(self.color_preference),
            size_preference=SizePreference.parse(self.size_preference),
            body_parts=tuple(self.body_parts),
            reference_image=reference_image,
            reference_mime_type=reference_mime_type,
            preferred_provider=ProviderName.parse(self.preferred_service),
            generate_all_styles=self.generate_all_styles,
        )


class CheckoutBody(CamelModel):
    user_id: str | None = Field(default=None, alias="userId")
    user_email: str | None = Field(default=None, alias="userEmail")


class SessionBody(CamelModel):
    session_id: str | None = Field(default=None, alias="sessionId")


class VerifyEmailBody(CamelModel):
    session_id: str | None = Field(default=None, alias="sessionId")
    email: str | None = None


class RecordPaymentBody(CamelModel):
    session_id: str | None = Field(default=None, alias="sessionId")
    user_id: str | None = Field(default=None, alias="userId")
    email: str | None = None
