"""
Fusion Engine Tests
=====================

Tests for the deterministic cross-image fusion rules. Fusion decides
the values a reviewer sees, so these tests pin down every rule:

    - numeric: confidence-weighted mean, max-weight confidence
    - numeric: spread beyond tolerance → conflict
    - categorical: highest confidence wins, ties keep the earliest
    - review: conflicts or weak weight / height evidence
    - provenance: deduplicated, first-seen order
    - determinism: same inputs → byte-identical JSON
"""

from __future__ import annotations

import math

import pytest

from gemfuse.config import FusionConfig
from gemfuse.fusion.engine import FusionEngine, fuse, fuse_categorical, fuse_numeric
from gemfuse.schemas.claim import ClaimField, ProvenanceMethod
from gemfuse.schemas.fusion import FusionPolicy
from tests.conftest import make_claim, make_extraction

H = ClaimField.DIMENSION_MM_HEIGHT
W = ClaimField.WEIGHT_CT


def _confident_base(image_id: str = "img_base"):
    """Strong height and weight so only the claim under test matters for review."""
    return make_extraction(image_id, [make_claim(H, 3.4, 0.9), make_claim(W, 1.2, 0.9)])


def _leaves(obj) -> list:
    if isinstance(obj, dict):
        return [leaf for v in obj.values() for leaf in _leaves(v)]
    return [obj]


class TestNumericFusion:
    """Weighted mean, confidence and tolerance."""

    def test_weighted_mean(self):
        result = fuse([
            make_extraction("img_1", [make_claim(H, 2.0, 0.8)]),
            make_extraction("img_2", [make_claim(H, 4.0, 0.2)]),
        ])
        assert result.final.dimensions_mm.height == 2.4
        assert result.confidence.dimensions_mm.height == 0.8

    def test_zero_weight_excluded(self):
        def run(ignored_value):
            return fuse([
                make_extraction("img_1", [make_claim(H, 5.0, 0.9)]),
                make_extraction("img_2", [make_claim(H, ignored_value, 0.0)]),
            ])

        first, second = run(999.0), run(1.0)
        assert first.final.dimensions_mm.height == 5.0
        assert first.conflicts == []
        assert first.to_json() == second.to_json()

    def test_all_zero_weight_gives_null(self):
        result = fuse([make_extraction("img_1", [make_claim(W, 1.2, 0.0)])])
        assert result.final.weight_ct is None
        assert result.confidence.weight_ct == 0.0

    @pytest.mark.parametrize("bad_value", [None, True, "n/a", float("nan"), float("inf")])
    def test_unusable_values_ignored(self, bad_value):
        result = fuse([
            make_extraction("img_1", [make_claim(H, 3.0, 0.9)]),
            make_extraction("img_2", [make_claim(H, bad_value, 1.0)]),
        ])
        assert result.final.dimensions_mm.height == 3.0
        assert result.confidence.dimensions_mm.height == 0.9

    def test_numeric_strings_parsed(self):
        result = fuse([make_extraction("img_1", [make_claim(W, "1,23 ct", 0.9)])])
        assert result.final.weight_ct == 1.23

    def test_within_tolerance_no_conflict(self):
        result = fuse([
            make_extraction("img_1", [make_claim(H, 10.0, 0.9)]),
            make_extraction("img_2", [make_claim(H, 10.05, 0.9)]),
        ])
        assert result.conflicts == []
        assert result.final.dimensions_mm.height == pytest.approx(10.025)

    def test_beyond_tolerance_conflict(self):
        result = fuse([
            make_extraction("img_1", [make_claim(H, 10.0, 0.9)]),
            make_extraction("img_2", [make_claim(H, 10.2, 0.9)]),
        ])
        assert len(result.conflicts) == 1
        assert result.conflicts[0].startswith("height variance > 0.1mm")
        assert result.needs_review is True

    def test_each_dimension_checked(self):
        result = fuse([
            make_extraction("img_1", [
                make_claim(ClaimField.DIMENSION_MM_MIN, 4.5, 0.9),
                make_claim(ClaimField.DIMENSION_MM_MAX, 6.0, 0.9),
            ]),
            make_extraction("img_2", [
                make_claim(ClaimField.DIMENSION_MM_MIN, 4.9, 0.9),
                make_claim(ClaimField.DIMENSION_MM_MAX, 6.5, 0.9),
            ]),
        ])
        assert [c.split()[0] for c in result.conflicts] == ["min", "max"]

    def test_weight_tolerance(self):
        result = fuse([
            make_extraction("img_1", [make_claim(W, 1.20, 0.9)]),
            make_extraction("img_2", [make_claim(W, 1.30, 0.9)]),
        ])
        assert result.conflicts == ["weight variance > 0.05ct (range 0.100ct)"]

    def test_custom_tolerance(self):
        policy = FusionPolicy(dimension_tolerance_mm=0.5)
        result = fuse([
            make_extraction("img_1", [make_claim(H, 10.0, 0.9)]),
            make_extraction("img_2", [make_claim(H, 10.2, 0.9)]),
        ], policy=policy)
        assert result.conflicts == []

    def test_instrument_readout_not_fused_as_dimension(self):
        result = fuse([make_extraction("img_1", [make_claim(ClaimField.INSTRUMENT_READOUT_MM, 6.1, 0.95)])])
        assert result.final.dimensions_mm.max is None
        assert result.provenance.dimension_sources == []

    def test_fuse_numeric_helper(self):
        estimate = fuse_numeric([make_claim(H, 1.0, 0.5), make_claim(H, 3.0, 0.5)], precision=2)
        assert estimate.value == 2.0
        assert estimate.spread == 2.0
        assert len(estimate.sources) == 2
        assert fuse_numeric([]).value is None


class TestCategoricalFusion:
    """Highest-confidence selection."""

    def test_highest_confidence_wins(self):
        result = fuse([
            make_extraction("img_1", [make_claim(ClaimField.COLOR_FAMILY, "green", 0.4, "visual_inference")]),
            make_extraction("img_2", [make_claim(ClaimField.COLOR_FAMILY, "green", 0.9, "visual_inference")]),
            make_extraction("img_3", [make_claim(ClaimField.COLOR_FAMILY, "yellow", 0.6, "visual_inference")]),
        ])
        assert result.final.color.family == "green"
        assert result.confidence.color.family == 0.9

    def test_tie_keeps_earliest(self):
        result = fuse([
            make_extraction("img_1", [make_claim(ClaimField.CUT_SHAPE, "round", 0.7)]),
            make_extraction("img_2", [make_claim(ClaimField.CUT_SHAPE, "oval", 0.7)]),
        ])
        assert result.final.cut.shape == "round"

    @pytest.mark.parametrize("empty_value", [None, "", "   "])
    def test_empty_values_never_win(self, empty_value):
        result = fuse([
            make_extraction("img_1", [make_claim(ClaimField.CLARITY_EST, "included", 0.3)]),
            make_extraction("img_2", [make_claim(ClaimField.CLARITY_EST, empty_value, 1.0)]),
        ])
        assert result.final.clarity_est == "included"
        assert result.confidence.clarity_est == 0.3

    def test_zero_confidence_never_wins(self):
        result = fuse([make_extraction("img_1", [make_claim(ClaimField.ORIGIN_HINT, "Colombia", 0.0)])])
        assert result.final.origin_hint is None
        assert result.confidence.origin_hint == 0.0

    def test_presence_false_is_a_value(self):
        result = fuse([make_extraction("img_1", [
            make_claim(ClaimField.FLUORESCENCE_PRESENCE, False, 0.8, "visual_inference"),
        ])])
        assert result.final.fluorescence.presence is False
        assert result.confidence.fluorescence.presence == 0.8

    def test_presence_words(self):
        estimate = fuse_categorical(
            [make_claim(ClaimField.FLUORESCENCE_PRESENCE, "yes", 0.7), make_claim(ClaimField.FLUORESCENCE_PRESENCE, "maybe", 0.9)],
            as_bool=True,
        )
        assert estimate.value is True
        assert estimate.confidence == 0.7

    def test_extended_fields_resolved(self):
        result = fuse([make_extraction("img_1", [
            make_claim(ClaimField.CUT_STYLE, "step", 0.7),
            make_claim(ClaimField.COLOR_GRADE_EST, "vivid", 0.5),
            make_claim(ClaimField.FLUORESCENCE_COLOR, "blue", 0.6),
            make_claim(ClaimField.FLUORESCENCE_STRENGTH, "faint", 0.6),
            make_claim(ClaimField.TREATMENT_SIGNS, "oil in fissures", 0.4),
        ])])
        assert result.final.cut.style == "step"
        assert result.final.color.grade_est == "vivid"
        assert result.final.fluorescence.color == "blue"
        assert result.final.fluorescence.strength == "faint"
        assert result.final.treatment_signs == "oil in fissures"


class TestReview:
    """needs_review triggers."""

    def test_confident_consistent_record_passes(self):
        result = fuse([_confident_base()])
        assert result.conflicts == []
        assert result.needs_review is False

    def test_conflict_forces_review(self):
        result = fuse([
            _confident_base("img_1"),
            make_extraction("img_2", [make_claim(W, 1.5, 0.95)]),
        ])
        assert result.conflicts
        assert result.needs_review is True

    def test_missing_weight_forces_review(self):
        result = fuse([make_extraction("img_1", [make_claim(H, 3.4, 0.9)])])
        assert result.needs_review is True

    def test_weak_height_forces_review(self):
        result = fuse([make_extraction("img_1", [make_claim(H, 3.4, 0.59), make_claim(W, 1.2, 0.9)])])
        assert result.needs_review is True

    def test_threshold_is_inclusive(self):
        result = fuse([make_extraction("img_1", [make_claim(H, 3.4, 0.6), make_claim(W, 1.2, 0.6)])])
        assert result.needs_review is False

    def test_weak_categorical_does_not_force_review(self):
        result = fuse([
            _confident_base(),
            make_extraction("img_2", [make_claim(ClaimField.COLOR_FAMILY, "green", 0.1)]),
        ])
        assert result.needs_review is False

    def test_weak_min_max_do_not_force_review(self):
        result = fuse([
            _confident_base(),
            make_extraction("img_2", [make_claim(ClaimField.DIMENSION_MM_MAX, 6.1, 0.2)]),
        ])
        assert result.needs_review is False


class TestEmptyInput:
    """Fusion of nothing."""

    def test_empty_list(self):
        result = fuse([])
        assert all(v is None for v in _leaves(result.final.model_dump()))
        assert all(v == 0.0 for v in _leaves(result.confidence.model_dump()))
        assert result.conflicts == []
        assert result.needs_review is True
        assert result.images == []

    def test_extractions_without_claims(self):
        result = fuse([make_extraction("img_1", image_type="unknown")])
        assert result.images == ["img_1"]
        assert result.needs_review is True


class TestProvenance:
    """Source lists."""

    def test_deduplicated(self):
        result = fuse([
            make_extraction("img_1", [make_claim(H, 3.4, 0.9), make_claim(ClaimField.DIMENSION_MM_MAX, 6.1, 0.9)]),
            make_extraction("img_2", [make_claim(H, 3.41, 0.9)]),
        ])
        sources = result.provenance.dimension_sources
        assert sources == ["img_1:lcd_ocr", "img_2:lcd_ocr"]
        assert len(sources) == len(set(sources))

    def test_height_then_min_then_max(self):
        result = fuse([
            make_extraction("img_1", [make_claim(ClaimField.DIMENSION_MM_MAX, 6.1, 0.8, ProvenanceMethod.LABEL_OCR)]),
            make_extraction("img_2", [make_claim(ClaimField.DIMENSION_MM_MIN, 5.9, 0.8, ProvenanceMethod.SCALE_DETECTION)]),
            make_extraction("img_3", [make_claim(H, 3.4, 0.9)]),
        ])
        assert result.provenance.dimension_sources == [
            "img_3:lcd_ocr",
            "img_2:scale_detection",
            "img_1:label_ocr",
        ]

    def test_weight_and_label_sources(self):
        result = fuse([make_extraction("img_tag", [
            make_claim(W, 1.2, 0.9, ProvenanceMethod.LABEL_OCR),
            make_claim(ClaimField.LABEL_TEXT, "Ашер 1,2 кт", 0.9, ProvenanceMethod.LABEL_OCR),
            make_claim(ClaimField.LABEL_TEXT, "№118", 0.7, ProvenanceMethod.LABEL_OCR),
        ], image_type="label")])
        assert result.provenance.weight_sources == ["img_tag:label_ocr"]
        assert result.provenance.label_sources == ["img_tag:label_ocr"]

    def test_ignored_claims_not_cited(self):
        result = fuse([
            make_extraction("img_1", [make_claim(W, 1.2, 0.9)]),
            make_extraction("img_2", [make_claim(W, 7.0, 0.0)]),
        ])
        assert result.provenance.weight_sources == ["img_1:lcd_ocr"]

    def test_unusable_label_claims_not_cited(self):
        label = ClaimField.LABEL_TEXT
        result = fuse([
            make_extraction("img_1", [make_claim(label, None, 0.9, ProvenanceMethod.LABEL_OCR)]),
            make_extraction("img_2", [make_claim(label, "Ашер 1,23", 0.0, ProvenanceMethod.LABEL_OCR)]),
            make_extraction("img_3", [make_claim(label, "   ", 0.8, ProvenanceMethod.LABEL_OCR)]),
        ])
        assert result.provenance.label_sources == []

        result = fuse([
            make_extraction("img_1", [make_claim(label, None, 0.9, ProvenanceMethod.LABEL_OCR)]),
            make_extraction("img_4", [make_claim(label, "Ашер 1,23", 0.7, ProvenanceMethod.LABEL_OCR)]),
        ])
        assert result.provenance.label_sources == ["img_4:label_ocr"]


class TestDeterminism:
    """Same input → same output."""

    def test_byte_identical_json(self, gem_extractions):
        first = fuse(gem_extractions, gemstone_id="gem-118")
        second = fuse(gem_extractions, gemstone_id="gem-118")
        assert first.to_json() == second.to_json()
        assert first.content_hash() == second.content_hash()

    def test_inputs_untouched(self, gem_extractions):
        before = [e.model_dump() for e in gem_extractions]
        fuse(gem_extractions)
        assert [e.model_dump() for e in gem_extractions] == before

    def test_ids_copied(self, gem_extractions):
        result = fuse(gem_extractions, gemstone_id="gem-118")
        assert result.gemstone_id == "gem-118"
        assert result.images == ["img_1", "img_2", "img_3"]

    def test_values_are_finite(self, gem_extractions):
        result = fuse(gem_extractions)
        numbers = [v for v in _leaves(result.final.model_dump()) if isinstance(v, float)]
        assert numbers and all(math.isfinite(v) for v in numbers)


class TestFusionEngine:
    """Policy wrapper."""

    def test_from_config(self, config):
        config = config.model_copy(update={"fusion": FusionConfig(dimension_tolerance_mm=0.5)})
        engine = FusionEngine.from_config(config)
        assert engine.policy.dimension_tolerance_mm == 0.5
        result = engine.fuse([
            make_extraction("img_1", [make_claim(H, 10.0, 0.9)]),
            make_extraction("img_2", [make_claim(H, 10.2, 0.9)]),
        ])
        assert result.conflicts == []

    def test_matches_pure_function(self, gem_extractions):
        engine = FusionEngine()
        assert engine.fuse(gem_extractions, gemstone_id="g").to_json() == \
            fuse(gem_extractions, gemstone_id="g").to_json()


@pytest.fixture
def gem_extractions():
    return [
        make_extraction("img_1", [make_claim(H, 3.42, 0.95), make_claim(ClaimField.DIMENSION_MM_MAX, 6.12, 0.9)]),
        make_extraction("img_2", [
            make_claim(W, 1.23, 0.9, ProvenanceMethod.LABEL_OCR),
            make_claim(ClaimField.CUT_SHAPE, "asscher", 0.85, ProvenanceMethod.LABEL_OCR),
        ], image_type="label"),
        make_extraction("img_3", [
            make_claim(ClaimField.COLOR_FAMILY, "green", 0.8, ProvenanceMethod.VISUAL_INFERENCE),
            make_claim(H, 3.40, 0.5, ProvenanceMethod.GEOMETRIC_ESTIMATE),
        ], image_type="gem_macro"),
    ]
