"""
Claim Schema
=============

The claim is the smallest unit of evidence GemFuse handles: one typed,
confidence-scored assertion about one attribute, derived from one image.

Design Philosophy:
    - Field names and provenance methods are CLOSED vocabularies (enums),
      so an unrecognized field is a validation error, not a silent no-op
      during fusion
    - Claims are immutable once built; fusion never edits its inputs
    - A null value means "no claim" and is ignored by fusion

Data Flow:
    Oracle JSON → Validator → Claim → PerImageExtraction → Fusion
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ClaimField(str, Enum):
    """
    Closed vocabulary of attributes a claim may speak about.

    Numeric fields are fused by weighted mean; categorical fields by
    highest-confidence selection; the rest are carried for provenance
    and display only.
    """
    DIMENSION_MM_MAX = "dimension_mm_max"
    DIMENSION_MM_MIN = "dimension_mm_min"
    DIMENSION_MM_HEIGHT = "dimension_mm_height"
    WEIGHT_CT = "weight_ct"
    UNITS = "units"
    INSTRUMENT_READOUT_MM = "instrument_readout_mm"  # orientation unknown
    INSTRUMENT_RANGE_MM = "instrument_range_mm"
    CUT_SHAPE = "cut_shape"
    CUT_STYLE = "cut_style"
    COLOR_FAMILY = "color_family"
    COLOR_GRADE_EST = "color_grade_est"
    CLARITY_EST = "clarity_est"
    FLUORESCENCE_PRESENCE = "fluorescence_presence"
    FLUORESCENCE_COLOR = "fluorescence_color"
    FLUORESCENCE_STRENGTH = "fluorescence_strength"
    TREATMENT_SIGNS = "treatment_signs"
    ORIGIN_HINT = "origin_hint"
    LABEL_TEXT = "label_text"
    NOTES = "notes"


# Fields whose values must be numbers once normalized.
NUMERIC_FIELDS: frozenset[ClaimField] = frozenset({
    ClaimField.DIMENSION_MM_MAX,
    ClaimField.DIMENSION_MM_MIN,
    ClaimField.DIMENSION_MM_HEIGHT,
    ClaimField.WEIGHT_CT,
    ClaimField.INSTRUMENT_READOUT_MM,
})


class ProvenanceMethod(str, Enum):
    """How a claim's value was obtained."""
    LCD_OCR = "lcd_ocr"                        # digits read off an instrument display
    SCALE_DETECTION = "scale_detection"        # analog dial / ruler scale
    LABEL_OCR = "label_ocr"                    # text read off a tag or note
    VISUAL_INFERENCE = "visual_inference"      # judgement from the stone itself
    TEXT_PARSING = "text_parsing"              # derived from already-read text
    GEOMETRIC_ESTIMATE = "geometric_estimate"  # estimated from image geometry


class ImageType(str, Enum):
    """Categories the classifier may assign to an image."""
    INSTRUMENT = "instrument"
    LABEL = "label"
    GEM_MACRO = "gem_macro"
    UNKNOWN = "unknown"


ClaimValue = Union[bool, int, float, str, None]


class Provenance(BaseModel):
    """
    Where a claim came from.

    `bbox` is an optional pixel region (x1, y1, x2, y2); `raw` is the
    original readout or text before normalization.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    method: ProvenanceMethod = Field(description="How the value was derived")
    bbox: Optional[tuple[float, float, float, float]] = Field(
        default=None,
        description="Pixel region the value was read from"
    )
    raw: Optional[str] = Field(default=None, description="Original text / readout")


class Claim(BaseModel):
    """
    A single typed assertion about one attribute, from one image.

    Schema:
        {
          "field": "dimension_mm_height",
          "value": 3.42,
          "confidence": 0.9,
          "provenance": {"method": "lcd_ocr", "raw": "3.42 mm"}
        }
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    field: ClaimField = Field(description="Attribute this claim speaks about")
    value: ClaimValue = Field(default=None, description="Claimed value; null means no claim")
    confidence: float = Field(
        ge=0.0, le=1.0,
        description="Visual certainty, used as the fusion weight"
    )
    provenance: Provenance = Field(description="How the value was obtained")

    @property
    def is_empty(self) -> bool:
        """True when the claim carries no usable value."""
        if self.value is None:
            return True
        return isinstance(self.value, str) and not self.value.strip()


class PerImageExtraction(BaseModel):
    """
    Everything one image contributed: its category and its claims.

    Assembled once per image and handed whole to fusion.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    image_id: str = Field(description="Identifier of the source image")
    image_type: ImageType = Field(description="Category assigned by the classifier")
    claims: list[Claim] = Field(default_factory=list, description="Validated claims")
    model_id: Optional[str] = Field(default=None, description="Model that produced the claims")
    processing_time_ms: Optional[float] = Field(
        default=None,
        description="Wall time of the extraction call"
    )
    dropped_claims: int = Field(
        default=0,
        ge=0,
        description="Claims removed by validation before fusion"
    )

    @property
    def num_claims(self) -> int:
        """Total number of claims."""
        return len(self.claims)

    def claims_for(self, field: ClaimField) -> list[Claim]:
        """All claims about one field, in emitted order."""
        return [c for c in self.claims if c.field == field]
