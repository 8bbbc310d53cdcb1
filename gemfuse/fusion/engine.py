"""
Fusion Engine
==============

Reconciles the claims of every image of one gemstone into a single
FusionResult. This is a DETERMINISTIC rules engine: no LLM calls, no
I/O, no randomness, no global state.

Rules:
    1. Numeric fields (height, min, max, weight):
       - value      = Σ(value·confidence) / Σ(confidence)
       - confidence = strongest single claim
       - conflict   if max − min of the readings exceeds the tolerance
    2. Categorical fields (cut, color, clarity, fluorescence, ...):
       - the single highest-confidence claim wins; ties keep the earliest
       - values are never averaged
    3. needs_review iff any conflict, or weight / height confidence is
       below the policy threshold
    4. Claims with confidence ≤ 0 or no usable value are ignored

Data Flow:
    [PerImageExtraction] + FusionPolicy → fuse() → FusionResult
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from gemfuse.extract.normalizer import parse_decimal
from gemfuse.schemas.claim import Claim, ClaimField, ClaimValue, PerImageExtraction
from gemfuse.schemas.fusion import (
    ColorConfidence,
    ColorValues,
    ConfidenceRecord,
    CutConfidence,
    CutValues,
    DimensionConfidence,
    DimensionValues,
    FinalRecord,
    FluorescenceConfidence,
    FluorescenceValues,
    FusionPolicy,
    FusionResult,
    SourceRecord,
)

logger = logging.getLogger("gemfuse.fusion.engine")

_TRUE_WORDS = frozenset({"true", "yes", "y", "present", "да", "есть"})
_FALSE_WORDS = frozenset({"false", "no", "n", "none", "absent", "нет"})


@dataclass(frozen=True)
class NumericEstimate:
    """Outcome of fusing one numeric field."""
    value: Optional[float]
    confidence: float
    spread: float
    sources: tuple[Claim, ...]


@dataclass(frozen=True)
class CategoricalEstimate:
    """Outcome of fusing one categorical field."""
    value: ClaimValue
    confidence: float


# ── Numeric fields ─────────────────────────────────────────────────

def fuse_numeric(claims: list[Claim], precision: int = 6) -> NumericEstimate:
    """
    Confidence-weighted mean of the usable numeric claims.

    Args:
        claims: Claims about one numeric field, in input order.
        precision: Decimal places kept on the resolved value.

    Returns:
        NumericEstimate; value is None when no claim carries weight.
    """
    readings: list[tuple[float, float]] = []
    sources: list[Claim] = []
    for claim in claims:
        if claim.confidence <= 0:
            continue
        number = parse_decimal(claim.value)
        if number is None:
            continue
        readings.append((number, claim.confidence))
        sources.append(claim)

    total_weight = sum(w for _, w in readings)
    if not readings or total_weight <= 0:
        return NumericEstimate(value=None, confidence=0.0, spread=0.0, sources=())

    mean = sum(v * w for v, w in readings) / total_weight
    values = [v for v, _ in readings]
    return NumericEstimate(
        value=round(mean, precision),
        confidence=max(w for _, w in readings),
        spread=round(max(values) - min(values), precision),
        sources=tuple(sources),
    )


# ── Categorical fields ─────────────────────────────────────────────

def _coerce_presence(value: ClaimValue) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
    return None


def _coerce_label(value: ClaimValue) -> Optional[str]:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else None


def fuse_categorical(claims: list[Claim], as_bool: bool = False) -> CategoricalEstimate:
    """
    Pick the highest-confidence claim; ties keep the earliest.

    Args:
        claims: Claims about one categorical field, in input order.
        as_bool: Read values as yes/no (fluorescence presence).

    Returns:
        CategoricalEstimate; value is None when nothing qualifies.
    """
    best_value: ClaimValue = None
    best_confidence = 0.0
    for claim in claims:
        if claim.confidence <= 0:
            continue
        value = _coerce_presence(claim.value) if as_bool else _coerce_label(claim.value)
        if value is None:
            continue
        if best_value is None or claim.confidence > best_confidence:
            best_value = value
            best_confidence = claim.confidence
    return CategoricalEstimate(value=best_value, confidence=best_confidence)


# ── Provenance ─────────────────────────────────────────────────────

def _source_keys(pairs: list[tuple[str, Claim]]) -> list[str]:
    seen: dict[str, None] = {}
    for image_id, claim in pairs:
        seen.setdefault(f"{image_id}:{claim.provenance.method.value}", None)
    return list(seen)


def _usable_labels(pairs: list[tuple[str, Claim]]) -> list[tuple[str, Claim]]:
    """Label readings with a value and positive confidence."""
    return [
        (i, c) for i, c in pairs
        if c.confidence > 0 and _coerce_label(c.value) is not None
    ]


# ── Fusion ─────────────────────────────────────────────────────────

def fuse(
    extractions: list[PerImageExtraction],
    policy: Optional[FusionPolicy] = None,
    gemstone_id: Optional[str] = None,
) -> FusionResult:
    """
    Fuse per-image extractions into one gemstone record.

    Pure: the same extractions and policy always give the same result,
    byte for byte once serialized. Never raises for well-typed input,
    including an empty list.

    Args:
        extractions: One extraction per image, in a stable order.
        policy: Tolerances and review threshold (defaults to FusionPolicy()).
        gemstone_id: Identifier copied onto the result.

    Returns:
        FusionResult with values, confidences, provenance, conflicts
        and the review flag.
    """
    policy = policy or FusionPolicy()

    # Claims per field, with the id of the image they came from
    by_field: dict[ClaimField, list[tuple[str, Claim]]] = {f: [] for f in ClaimField}
    for extraction in extractions:
        for claim in extraction.claims:
            by_field[claim.field].append((extraction.image_id, claim))

    def claims(field: ClaimField) -> list[Claim]:
        return [c for _, c in by_field[field]]

    def contributing(field: ClaimField, estimate: NumericEstimate) -> list[tuple[str, Claim]]:
        used = {id(c) for c in estimate.sources}
        return [(i, c) for i, c in by_field[field] if id(c) in used]

    precision = policy.value_precision
    height = fuse_numeric(claims(ClaimField.DIMENSION_MM_HEIGHT), precision)
    dim_min = fuse_numeric(claims(ClaimField.DIMENSION_MM_MIN), precision)
    dim_max = fuse_numeric(claims(ClaimField.DIMENSION_MM_MAX), precision)
    weight = fuse_numeric(claims(ClaimField.WEIGHT_CT), precision)

    conflicts: list[str] = []
    for name, estimate in (("height", height), ("min", dim_min), ("max", dim_max)):
        if estimate.spread > policy.dimension_tolerance_mm:
            conflicts.append(
                f"{name} variance > {policy.dimension_tolerance_mm}mm "
                f"(range {estimate.spread:.3f}mm)"
            )
    if weight.spread > policy.weight_tolerance_ct:
        conflicts.append(
            f"weight variance > {policy.weight_tolerance_ct}ct "
            f"(range {weight.spread:.3f}ct)"
        )

    shape = fuse_categorical(claims(ClaimField.CUT_SHAPE))
    style = fuse_categorical(claims(ClaimField.CUT_STYLE))
    family = fuse_categorical(claims(ClaimField.COLOR_FAMILY))
    grade = fuse_categorical(claims(ClaimField.COLOR_GRADE_EST))
    clarity = fuse_categorical(claims(ClaimField.CLARITY_EST))
    presence = fuse_categorical(claims(ClaimField.FLUORESCENCE_PRESENCE), as_bool=True)
    fl_color = fuse_categorical(claims(ClaimField.FLUORESCENCE_COLOR))
    fl_strength = fuse_categorical(claims(ClaimField.FLUORESCENCE_STRENGTH))
    treatment = fuse_categorical(claims(ClaimField.TREATMENT_SIGNS))
    origin = fuse_categorical(claims(ClaimField.ORIGIN_HINT))

    final = FinalRecord(
        dimensions_mm=DimensionValues(max=dim_max.value, min=dim_min.value, height=height.value),
        weight_ct=weight.value,
        cut=CutValues(shape=shape.value, style=style.value),
        color=ColorValues(family=family.value, grade_est=grade.value),
        clarity_est=clarity.value,
        fluorescence=FluorescenceValues(
            presence=presence.value,
            color=fl_color.value,
            strength=fl_strength.value,
        ),
        treatment_signs=treatment.value,
        origin_hint=origin.value,
    )

    confidence = ConfidenceRecord(
        dimensions_mm=DimensionConfidence(
            max=dim_max.confidence,
            min=dim_min.confidence,
            height=height.confidence,
        ),
        weight_ct=weight.confidence,
        cut=CutConfidence(shape=shape.confidence, style=style.confidence),
        color=ColorConfidence(family=family.confidence, grade_est=grade.confidence),
        clarity_est=clarity.confidence,
        fluorescence=FluorescenceConfidence(
            presence=presence.confidence,
            color=fl_color.confidence,
            strength=fl_strength.confidence,
        ),
        treatment_signs=treatment.confidence,
        origin_hint=origin.confidence,
    )

    provenance = SourceRecord(
        dimension_sources=_source_keys(
            contributing(ClaimField.DIMENSION_MM_HEIGHT, height)
            + contributing(ClaimField.DIMENSION_MM_MIN, dim_min)
            + contributing(ClaimField.DIMENSION_MM_MAX, dim_max)
        ),
        weight_sources=_source_keys(contributing(ClaimField.WEIGHT_CT, weight)),
        label_sources=_source_keys(_usable_labels(by_field[ClaimField.LABEL_TEXT])),
    )

    # Only weight and height gate review; other low confidences do not.
    threshold = policy.min_confidence_threshold
    needs_review = (
        bool(conflicts)
        or weight.confidence < threshold
        or height.confidence < threshold
    )

    return FusionResult(
        gemstone_id=gemstone_id,
        images=[e.image_id for e in extractions],
        final=final,
        confidence=confidence,
        provenance=provenance,
        conflicts=conflicts,
        needs_review=needs_review,
    )


class FusionEngine:
    """
    Policy-holding wrapper around `fuse()`.

    Usage:
        engine = FusionEngine.from_config(config)
        result = engine.fuse(extractions, gemstone_id="gem-118")

    Args:
        policy: Thresholds applied to every fusion run.
    """

    def __init__(self, policy: Optional[FusionPolicy] = None):
        self.policy = policy or FusionPolicy()

    @classmethod
    def from_config(cls, config) -> "FusionEngine":
        """Build from a GemFuseConfig."""
        return cls(policy=config.fusion.to_policy())

    def fuse(
        self,
        extractions: list[PerImageExtraction],
        gemstone_id: Optional[str] = None,
    ) -> FusionResult:
        """Fuse extractions under this engine's policy and log a summary."""
        result = fuse(extractions, policy=self.policy, gemstone_id=gemstone_id)

        num_claims = sum(e.num_claims for e in extractions)
        logger.info(
            f"Fused {len(extractions)} images ({num_claims} claims) for "
            f"{gemstone_id or 'gemstone'}: {len(result.conflicts)} conflicts, "
            f"needs_review={result.needs_review}"
        )
        for conflict in result.conflicts:
            logger.warning(f"{gemstone_id or 'gemstone'}: {conflict}")
        return result
