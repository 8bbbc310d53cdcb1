"""
Image Reference + Classification Schemas
==========================================

An ImageRef points at one photograph, either inline (base64 data URL)
or remote (URL). A Classification is the router's verdict on it.
"""

from __future__ import annotations

import mimetypes
from base64 import b64encode
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gemfuse.errors import MissingSource
from gemfuse.schemas.claim import ImageType

DEFAULT_MIME_TYPE = "image/jpeg"


class ImageRef(BaseModel):
    """
    One image belonging to a gemstone.

    At least one of `base64` or `url` must be present by the time the
    image reaches the oracle; `resolve_source()` enforces that.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable image identifier")
    url: Optional[str] = Field(default=None, description="Remote image URL")
    base64: Optional[str] = Field(
        default=None,
        description="Inline image, as a data URL or bare base64"
    )

    @classmethod
    def from_path(cls, path: str | Path, image_id: Optional[str] = None) -> "ImageRef":
        """Load a local image file as an inline data URL."""
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
        encoded = b64encode(path.read_bytes()).decode("ascii")
        return cls(
            id=image_id or path.stem,
            base64=f"data:{mime_type};base64,{encoded}",
        )

    def resolve_source(self) -> str:
        """
        Return the reference handed to the oracle.

        Prefers the inline payload; bare base64 is wrapped into a JPEG
        data URL.

        Raises:
            MissingSource: If neither base64 nor URL is usable.
        """
        if self.base64 and self.base64.strip():
            payload = self.base64.strip()
            if payload.startswith("data:"):
                return payload
            return f"data:{DEFAULT_MIME_TYPE};base64,{payload}"
        if self.url and self.url.strip():
            return self.url.strip()
        raise MissingSource(f"Image {self.id} is missing both base64 and url sources")


class Classification(BaseModel):
    """
    The classifier's routing decision for one image.

    Schema:
        {
          "image_id": "img_3",
          "image_type": "instrument",
          "confidence": 0.93,
          "reason": "Digital caliper LCD showing 6.12 mm"
        }
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    image_id: str = Field(description="Identifier of the classified image")
    image_type: ImageType = Field(description="Assigned category")
    confidence: float = Field(ge=0.0, le=1.0, description="Classifier certainty")
    reason: str = Field(description="Short justification")

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        """A classification must say why."""
        if not v.strip():
            raise ValueError("Classification reason cannot be empty")
        return v.strip()
