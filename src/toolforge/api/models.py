"""Pydantic request and response models for the ToolForge API.

These models define the JSON schema for the API endpoints.  Field names
follow Python conventions; the camelCase wire names used by the front-end
are declared as aliases.

Models
------
GenerateImageRequest
    Payload for ``POST /api/generate-image``.  Both fields are optional at
    the schema level so that the handler can answer a missing prompt or
    image type with a 400 rather than a schema error.
GeneratedImage
    The ``image`` entry of a successful ``POST /api/generate-image``.
FrameActionPayload
    Signed frame interaction posted to ``POST /api/frame``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenerateImageRequest(BaseModel):
    """Request body for the ``POST /api/generate-image`` endpoint.

    Attributes:
        prompt: The user's raw prompt text.
        image_type: Variant tag to generate (``imageType`` on the wire).
    """

    model_config = ConfigDict(populate_by_name=True)

    prompt: str | None = Field(
        default=None,
        description="User prompt (required, non-empty).",
    )
    image_type: str | None = Field(
        default=None,
        alias="imageType",
        description="Variant tag, e.g. 'icon', 'hero', 'og' or 'splash'.",
    )


class GeneratedImage(BaseModel):
    """One generated image as returned to the front-end."""

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = Field(default=None, description="Hosted URL, if the service returned one.")
    base64: str = Field(..., description="Base64-encoded PNG payload.")
    type: str = Field(..., description="Variant tag of the image.")
    original_prompt: str | None = Field(default=None, alias="originalPrompt")
    project_template: str | None = Field(default=None, alias="projectTemplate")
    optimized_prompt: str | None = Field(default=None, alias="optimizedPrompt")
    spec: dict | None = Field(default=None, description="Size and display metadata.")


class FrameUntrustedData(BaseModel):
    """Client-reported frame fields.  Never trusted for dispatch."""

    model_config = ConfigDict(extra="allow")

    fid: int | None = None
    url: str | None = None
    message_hash: str | None = Field(default=None, alias="messageHash")
    timestamp: int | None = None
    network: int | None = None
    button_index: int | None = Field(default=None, alias="buttonIndex")


class FrameTrustedData(BaseModel):
    """Hex-encoded signed message bytes."""

    message_bytes: str = Field(..., alias="messageBytes")


class FrameActionPayload(BaseModel):
    """Request body for ``POST /api/frame``."""

    untrusted_data: FrameUntrustedData | None = Field(default=None, alias="untrustedData")
    trusted_data: FrameTrustedData = Field(..., alias="trustedData")
