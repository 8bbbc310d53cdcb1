"""
Category Extractor Tests
==========================

Tests per-category extraction against a scripted oracle: prompt
routing, claim validation and normalization, bookkeeping, and the
no-call path for unknown images.
"""

from __future__ import annotations

import pytest

from gemfuse.errors import ClaimValidationError, MalformedOutput
from gemfuse.extract.extractor import CategoryExtractor
from gemfuse.extract.prompts import INSTRUMENT_PROMPT, LABEL_PROMPT, MACRO_PROMPT
from gemfuse.schemas.claim import ClaimField, ImageType
from tests.conftest import ScriptedOracle, claim_dict, extraction_answer


def _extractor(claims=None, raw=None, **kwargs) -> tuple[CategoryExtractor, ScriptedOracle]:
    answer = raw if raw is not None else extraction_answer(claims or [])
    oracle = ScriptedOracle(extractions={"img_1": answer})
    return CategoryExtractor(oracle, **kwargs), oracle


class TestRouting:

    @pytest.mark.parametrize("image_type,prompt", [
        (ImageType.INSTRUMENT, INSTRUMENT_PROMPT),
        (ImageType.LABEL, LABEL_PROMPT),
        (ImageType.GEM_MACRO, MACRO_PROMPT),
    ])
    def test_prompt_per_category(self, image, image_type, prompt):
        extractor, oracle = _extractor()
        extraction = extractor.extract(image, image_type)
        assert extraction.image_type == image_type
        assert oracle.calls[0]["system_prompt"] == prompt
        assert oracle.calls[0]["schema_name"] == "GemImageExtraction"

    def test_string_category_accepted(self, image):
        extractor, _ = _extractor()
        assert extractor.extract(image, "label").image_type == ImageType.LABEL

    def test_unknown_makes_no_call(self, image):
        extractor, oracle = _extractor()
        extraction = extractor.extract(image, ImageType.UNKNOWN)
        assert oracle.calls == []
        assert extraction.image_id == "img_1"
        assert extraction.image_type == ImageType.UNKNOWN
        assert extraction.claims == []

    def test_convenience_methods(self, image):
        extractor, oracle = _extractor()
        extractor.extract_instrument(image)
        extractor.extract_label(image)
        extractor.extract_gem_macro(image)
        assert [c["system_prompt"] for c in oracle.calls] == [INSTRUMENT_PROMPT, LABEL_PROMPT, MACRO_PROMPT]


class TestLabelExtraction:

    def test_normalized_claims(self, image):
        extractor, _ = _extractor([
            claim_dict("weight_ct", "1,23 ct", 0.9, "label_ocr", raw="1,23 кт"),
            claim_dict("dimension_mm_min", "4,56", 0.8, "label_ocr"),
            claim_dict("cut_shape", "Ашер", 0.85, "label_ocr"),
            claim_dict("label_text", "Ашер   1,23 кт", 0.9, "label_ocr"),
        ])
        extraction = extractor.extract_label(image)
        values = {c.field: c.value for c in extraction.claims}
        assert values[ClaimField.WEIGHT_CT] == 1.23
        assert values[ClaimField.DIMENSION_MM_MIN] == 4.56
        assert values[ClaimField.CUT_SHAPE] == "asscher"
        assert values[ClaimField.LABEL_TEXT] == "Ашер 1,23 кт"
        assert extraction.claims_for(ClaimField.WEIGHT_CT)[0].provenance.raw == "1,23 кт"

    def test_invalid_claims_dropped_and_counted(self, image):
        extractor, _ = _extractor([
            claim_dict("weight_ct", 1.2, 0.9, "label_ocr"),
            claim_dict("price_usd", 900, 0.9, "label_ocr"),
            claim_dict("weight_ct", 1.2, 0.9, "crystal_ball"),
            claim_dict("dimension_mm_max", "unreadable", 0.5, "label_ocr"),
            claim_dict("color_family", None, 0.5, "label_ocr"),
        ])
        extraction = extractor.extract_label(image)
        assert extraction.num_claims == 1
        assert extraction.dropped_claims == 4

    def test_bookkeeping(self, image):
        extractor, _ = _extractor([claim_dict("weight_ct", 1.2, 0.9, "label_ocr")])
        extraction = extractor.extract_label(image)
        assert extraction.image_id == "img_1"
        assert extraction.model_id == "scripted-vision"
        assert extraction.processing_time_ms is not None

    def test_model_override(self, image):
        extractor, oracle = _extractor(model="gpt-4o", max_tokens=640)
        extraction = extractor.extract_label(image)
        assert extraction.model_id == "gpt-4o"
        assert oracle.calls[0]["model"] == "gpt-4o"
        assert oracle.calls[0]["max_tokens"] == 640


class TestMalformed:

    @pytest.mark.parametrize("raw", ["", "no claims here", '{"image_id": "img_1"}', '{"claims": "weight 1.2"}'])
    def test_bad_envelope(self, image, raw):
        extractor, _ = _extractor(raw=raw)
        with pytest.raises(MalformedOutput):
            extractor.extract_label(image)

    def test_strict_mode(self, image):
        extractor, _ = _extractor([claim_dict("price_usd", 900, 0.9)], strict=True)
        with pytest.raises(ClaimValidationError):
            extractor.extract_label(image)
