"""
Fusion Result Schema
=====================

The fused, per-gemstone record: best-estimate values, a parallel
confidence structure, provenance source lists, conflicts and the
review flag.

Design Philosophy:
    The result is immutable and fully determined by its inputs. Its
    canonical JSON is stable, so `content_hash()` can be used to check
    that re-running fusion produced exactly the same record.

Data Flow:
    [PerImageExtraction] + FusionPolicy → fuse() → FusionResult
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gemfuse.utils import compute_content_hash

_FROZEN = ConfigDict(frozen=True, extra="forbid")


class FusionPolicy(BaseModel):
    """
    Thresholds used by a fusion run.

    Passed explicitly into `fuse()`; two runs with the same policy and
    the same extractions produce the same FusionResult.
    """
    model_config = _FROZEN

    dimension_tolerance_mm: float = Field(default=0.1, ge=0.0, description="Dimension spread tolerance")
    weight_tolerance_ct: float = Field(default=0.05, ge=0.0, description="Weight spread tolerance")
    min_confidence_threshold: float = Field(
        default=0.6,
        ge=0.0, le=1.0,
        description="Weight/height confidence needed to skip review"
    )
    value_precision: int = Field(default=6, ge=0, description="Decimal places on resolved numbers")


# ── Final values ───────────────────────────────────────────────────

class DimensionValues(BaseModel):
    model_config = _FROZEN

    max: Optional[float] = None
    min: Optional[float] = None
    height: Optional[float] = None


class CutValues(BaseModel):
    model_config = _FROZEN

    shape: Optional[str] = None
    style: Optional[str] = None


class ColorValues(BaseModel):
    model_config = _FROZEN

    family: Optional[str] = None
    grade_est: Optional[str] = None


class FluorescenceValues(BaseModel):
    model_config = _FROZEN

    presence: Optional[bool] = None
    color: Optional[str] = None
    strength: Optional[str] = None


class FinalRecord(BaseModel):
    """Best-estimate attribute values; null where nothing was resolved."""
    model_config = _FROZEN

    dimensions_mm: DimensionValues = Field(default_factory=DimensionValues)
    weight_ct: Optional[float] = None
    cut: CutValues = Field(default_factory=CutValues)
    color: ColorValues = Field(default_factory=ColorValues)
    clarity_est: Optional[str] = None
    fluorescence: FluorescenceValues = Field(default_factory=FluorescenceValues)
    treatment_signs: Optional[str] = None
    origin_hint: Optional[str] = None


# ── Confidence ─────────────────────────────────────────────────────

class DimensionConfidence(BaseModel):
    model_config = _FROZEN

    max: float = 0.0
    min: float = 0.0
    height: float = 0.0


class CutConfidence(BaseModel):
    model_config = _FROZEN

    shape: float = 0.0
    style: float = 0.0


class ColorConfidence(BaseModel):
    model_config = _FROZEN

    family: float = 0.0
    grade_est: float = 0.0


class FluorescenceConfidence(BaseModel):
    model_config = _FROZEN

    presence: float = 0.0
    color: float = 0.0
    strength: float = 0.0


class ConfidenceRecord(BaseModel):
    """
    Strength of evidence behind each resolved value.

    Mirrors FinalRecord. A score is the weight of the strongest
    contributing claim, not a probability of correctness.
    """
    model_config = _FROZEN

    dimensions_mm: DimensionConfidence = Field(default_factory=DimensionConfidence)
    weight_ct: float = 0.0
    cut: CutConfidence = Field(default_factory=CutConfidence)
    color: ColorConfidence = Field(default_factory=ColorConfidence)
    clarity_est: float = 0.0
    fluorescence: FluorescenceConfidence = Field(default_factory=FluorescenceConfidence)
    treatment_signs: float = 0.0
    origin_hint: float = 0.0


class SourceRecord(BaseModel):
    """Deduplicated "{image_id}:{method}" strings per attribute group."""
    model_config = _FROZEN

    dimension_sources: list[str] = Field(default_factory=list)
    weight_sources: list[str] = Field(default_factory=list)
    label_sources: list[str] = Field(default_factory=list)


class FusionResult(BaseModel):
    """
    One gemstone's final record.

    Schema:
        {
          "gemstone_id": "gem-118",
          "images": ["img_1", "img_2"],
          "final": {"dimensions_mm": {"max": 6.1, "min": 5.9, "height": 3.4}, ...},
          "confidence": {"dimensions_mm": {"max": 0.9, ...}, "weight_ct": 0.85, ...},
          "provenance": {"dimension_sources": ["img_1:lcd_ocr"], ...},
          "conflicts": ["height variance > 0.1mm (range 0.2mm)"],
          "needs_review": true
        }
    """
    model_config = _FROZEN

    gemstone_id: Optional[str] = Field(default=None, description="Gemstone this record describes")
    images: list[str] = Field(default_factory=list, description="Image ids that were fused")
    final: FinalRecord = Field(default_factory=FinalRecord)
    confidence: ConfidenceRecord = Field(default_factory=ConfidenceRecord)
    provenance: SourceRecord = Field(default_factory=SourceRecord)
    conflicts: list[str] = Field(default_factory=list, description="One entry per disagreeing attribute")
    needs_review: bool = Field(default=True, description="Route to a human before trusting")

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialize to JSON; identical inputs give identical text."""
        return self.model_dump_json(indent=indent)

    def content_hash(self) -> str:
        """SHA-256 of the canonical record content."""
        return compute_content_hash(self.model_dump(mode="json"))
