"""
GemFuse Test Configuration
============================

Shared fixtures, factories, and helpers for the entire test suite.

No test talks to a real model: classifier, extractor and pipeline tests
are driven by ScriptedOracle, which answers from per-image tables.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Optional

import pytest

from gemfuse.config import GemFuseConfig, OracleConfig, PipelineConfig
from gemfuse.oracle.base import VisionOracle
from gemfuse.schemas.claim import (
    Claim,
    ClaimField,
    ClaimValue,
    ImageType,
    PerImageExtraction,
    Provenance,
    ProvenanceMethod,
)
from gemfuse.schemas.image import ImageRef

CLASSIFY_SCHEMA = "GemImageClassification"


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")
    config.addinivalue_line("markers", "slow: tests that sleep to exercise timeouts")


# ── Fake oracle ─────────────────────────────────────────────────

class ScriptedOracle(VisionOracle):
    """
    Vision oracle that answers from canned tables keyed by image id.

    Answers may be dicts (serialized to JSON) or raw strings (returned
    as-is, for malformed-output tests). A missing answer yields "".

    Args:
        classifications: image_id → classification answer.
        extractions: image_id → extraction answer.
        delays: image_id → seconds to sleep before answering.
        timeout_s: Hard bound passed to VisionOracle.
    """

    def __init__(
        self,
        classifications: Optional[dict[str, Any]] = None,
        extractions: Optional[dict[str, Any]] = None,
        delays: Optional[dict[str, float]] = None,
        timeout_s: float = 5.0,
    ):
        super().__init__(model="scripted-vision", timeout_s=timeout_s)
        self.classifications = classifications or {}
        self.extractions = extractions or {}
        self.delays = delays or {}
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def complete(self, system_prompt, image, schema_name, schema, max_tokens, model=None):
        with self._lock:
            self.calls.append({
                "image_id": image.id,
                "schema_name": schema_name,
                "system_prompt": system_prompt,
                "max_tokens": max_tokens,
                "model": model,
            })
        delay = self.delays.get(image.id)
        if delay:
            time.sleep(delay)

        table = self.classifications if schema_name == CLASSIFY_SCHEMA else self.extractions
        answer = table.get(image.id)
        if answer is None:
            return ""
        return answer if isinstance(answer, str) else json.dumps(answer, ensure_ascii=False)

    def calls_for(self, schema_name: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["schema_name"] == schema_name]


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def config(tmp_path) -> GemFuseConfig:
    """Default test config writing into a temp dir."""
    return GemFuseConfig(
        output_dir=tmp_path / "outputs",
        oracle=OracleConfig(timeout_s=5.0),
        pipeline=PipelineConfig(max_workers=4),
    )


@pytest.fixture
def image() -> ImageRef:
    return make_image("img_1")


@pytest.fixture
def gem_answers() -> dict[str, dict[str, Any]]:
    """Classification and extraction answers for a three-photo gemstone."""
    return {
        "classifications": {
            "img_gauge": classification_answer("instrument", 0.95, "Digital caliper LCD"),
            "img_tag": classification_answer("label", 0.9, "Handwritten bag tag"),
            "img_stone": classification_answer("gem_macro", 0.85, "Close-up of a green stone"),
        },
        "extractions": {
            "img_gauge": extraction_answer([
                claim_dict("dimension_mm_height", 3.42, 0.95, "lcd_ocr", raw="3.42 mm"),
                claim_dict("units", "mm", 0.9, "lcd_ocr"),
            ]),
            "img_tag": extraction_answer([
                claim_dict("weight_ct", "1,23 ct", 0.9, "label_ocr", raw="1,23 кт"),
                claim_dict("dimension_mm_min", "4,56", 0.8, "label_ocr"),
                claim_dict("dimension_mm_max", "4,67", 0.8, "label_ocr"),
                claim_dict("cut_shape", "Ашер", 0.85, "label_ocr"),
                claim_dict("label_text", "Ашер  1,23 кт\n4,56 / 4,67", 0.9, "label_ocr"),
            ]),
            "img_stone": extraction_answer([
                claim_dict("cut_shape", "asscher", 0.6, "visual_inference"),
                claim_dict("color_family", "green", 0.8, "visual_inference"),
                claim_dict("clarity_est", "Eye Clean", 0.7, "visual_inference"),
            ]),
        },
    }


# ── Factories ───────────────────────────────────────────────────

def make_image(image_id: str = "img_1", url: Optional[str] = None) -> ImageRef:
    """Factory for an image reference with a remote URL."""
    return ImageRef(id=image_id, url=url or f"https://example.com/{image_id}.jpg")


def make_claim(
    field: ClaimField | str = ClaimField.DIMENSION_MM_HEIGHT,
    value: ClaimValue = 3.4,
    confidence: float = 0.9,
    method: ProvenanceMethod | str = ProvenanceMethod.LCD_OCR,
    raw: Optional[str] = None,
) -> Claim:
    """Factory for creating test claims."""
    return Claim(
        field=field,
        value=value,
        confidence=confidence,
        provenance=Provenance(method=method, raw=raw),
    )


def make_extraction(
    image_id: str = "img_1",
    claims: Optional[list[Claim]] = None,
    image_type: ImageType | str = ImageType.INSTRUMENT,
) -> PerImageExtraction:
    """Factory for creating test per-image extractions."""
    return PerImageExtraction(image_id=image_id, image_type=image_type, claims=claims or [])


def claim_dict(
    field: str,
    value: Any,
    confidence: float = 0.9,
    method: str = "lcd_ocr",
    raw: Optional[str] = None,
    bbox: Optional[list[float]] = None,
) -> dict[str, Any]:
    """A claim as the oracle would emit it."""
    return {
        "field": field,
        "value": value,
        "confidence": confidence,
        "provenance": {"method": method, "bbox": bbox, "raw": raw},
    }


def classification_answer(image_type: str, confidence: float = 0.9, reason: str = "clear view") -> dict[str, Any]:
    return {"image_id": "echoed", "image_type": image_type, "confidence": confidence, "reason": reason}


def extraction_answer(claims: list[dict[str, Any]], image_type: str = "label") -> dict[str, Any]:
    return {"image_id": "echoed", "image_type": image_type, "claims": claims}
