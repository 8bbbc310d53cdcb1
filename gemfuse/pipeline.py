"""
GemFuse End-to-End Pipeline
=============================

Orchestrates the full GemFuse flow for one gemstone:
    Images → Classify → Extract (per category) → Fuse → FusionResult

Classification and extraction run per image on a thread pool; each
image is isolated, so a malformed answer, a missing source, a timeout
or a failed API call on one photo is recorded as an ImageFailure while
its siblings continue. Fusion then runs on whatever extractions exist.

Usage:
    from gemfuse.pipeline import GemstonePipeline

    pipeline = GemstonePipeline.from_config()
    result = pipeline.analyze("gem-118", images)
    print(result.fusion.to_json(indent=2))
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from gemfuse.classify.classifier import ImageClassifier
from gemfuse.config import GemFuseConfig, get_config
from gemfuse.errors import GemFuseError
from gemfuse.extract.extractor import CategoryExtractor
from gemfuse.fusion.engine import FusionEngine
from gemfuse.oracle.base import VisionOracle
from gemfuse.schemas.claim import PerImageExtraction
from gemfuse.schemas.fusion import FusionResult
from gemfuse.schemas.image import Classification, ImageRef
from gemfuse.utils import load_json

logger = logging.getLogger("gemfuse.pipeline")

IMAGE_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"})


@dataclass(frozen=True)
class ImageFailure:
    """One image that could not be classified or extracted."""
    image_id: str
    stage: str  # "classify" or "extract"
    error_type: str
    message: str


@dataclass
class PipelineResult:
    """
    Complete output of one gemstone analysis.

    Contains everything needed for display, debugging and auditing.
    `config_hash` identifies the settings that produced it.
    Classifications and extractions follow the input image order.
    """
    gemstone_id: str
    classifications: list[Classification]
    extractions: list[PerImageExtraction]
    failures: list[ImageFailure]
    fusion: FusionResult
    timings: dict[str, float] = field(default_factory=dict)
    config_hash: Optional[str] = None

    @property
    def needs_review(self) -> bool:
        """True if fusion asks for review or any image failed."""
        return self.fusion.needs_review or bool(self.failures)

    @property
    def stats(self) -> dict[str, int]:
        """Summary statistics."""
        return {
            "images": len(self.classifications) + sum(
                1 for f in self.failures if f.stage == "classify"
            ),
            "extracted": len(self.extractions),
            "failed": len(self.failures),
            "claims": sum(e.num_claims for e in self.extractions),
            "conflicts": len(self.fusion.conflicts),
        }

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form for saving to disk."""
        return {
            "gemstone_id": self.gemstone_id,
            "classifications": [c.model_dump(mode="json") for c in self.classifications],
            "extractions": [e.model_dump(mode="json") for e in self.extractions],
            "failures": [vars(f) for f in self.failures],
            "fusion": self.fusion.model_dump(mode="json"),
            "timings": self.timings,
            "config_hash": self.config_hash,
        }


@dataclass
class _ImageOutcome:
    classification: Optional[Classification] = None
    extraction: Optional[PerImageExtraction] = None
    failure: Optional[ImageFailure] = None
    classify_ms: float = 0.0
    extract_ms: float = 0.0


class GemstonePipeline:
    """
    End-to-end GemFuse orchestrator.

    Manages the complete flow from photos to one fused record:
        1. Classify each image (instrument / label / gem_macro / unknown)
        2. Extract claims with the category's instructions
        3. Fuse all extractions under the configured policy

    Usage:
        pipeline = GemstonePipeline(config, oracle=my_oracle)
        result = pipeline.analyze("gem-118", [ImageRef.from_path("a.jpg")])

    Args:
        config: GemFuse configuration.
        oracle: Vision oracle; built from config when omitted.
    """

    def __init__(self, config: Optional[GemFuseConfig] = None, oracle: Optional[VisionOracle] = None):
        self.config = config or get_config()
        self.oracle = oracle or self._build_oracle()

        # The built OpenAI oracle splits models per stage; Gemini and
        # injected oracles use their own default model for both.
        oracle_cfg = self.config.oracle
        split_models = oracle is None and not self.config.gemini_api_key
        self.classifier = ImageClassifier(
            self.oracle,
            model=oracle_cfg.classifier_model if split_models else None,
            max_tokens=oracle_cfg.classifier_max_tokens,
        )
        self.extractor = CategoryExtractor(
            self.oracle,
            model=oracle_cfg.extractor_model if split_models else None,
            max_tokens=oracle_cfg.extractor_max_tokens,
        )
        self.engine = FusionEngine.from_config(self.config)

    @classmethod
    def from_config(cls, config_path: Optional[str] = None) -> "GemstonePipeline":
        """Create pipeline from config file or environment."""
        return cls(get_config(config_path))

    def _build_oracle(self) -> VisionOracle:
        """
        Pick the vision backend.

        Priority order:
            1. Gemini API key → Gemini
            2. Otherwise → OpenAI (key from config or OPENAI_API_KEY)
        """
        oracle_cfg = self.config.oracle
        if self.config.gemini_api_key:
            from gemfuse.oracle.gemini_oracle import GeminiVisionOracle
            logger.info(f"Using Gemini oracle ({self.config.gemini_model})")
            return GeminiVisionOracle(
                api_key=self.config.gemini_api_key,
                model=self.config.gemini_model,
                temperature=oracle_cfg.temperature,
                timeout_s=oracle_cfg.timeout_s,
            )

        from gemfuse.oracle.openai_oracle import OpenAIVisionOracle
        logger.info(f"Using OpenAI oracle ({oracle_cfg.classifier_model} / {oracle_cfg.extractor_model})")
        return OpenAIVisionOracle(
            api_key=self.config.openai_api_key,
            model=oracle_cfg.extractor_model,
            temperature=oracle_cfg.temperature,
            timeout_s=oracle_cfg.timeout_s,
        )

    def analyze(self, gemstone_id: str, images: list[ImageRef]) -> PipelineResult:
        """
        Run classification, extraction and fusion for one gemstone.

        Args:
            gemstone_id: Identifier copied onto the fused record.
            images: All photos of the stone, in a stable order.

        Returns:
            PipelineResult; per-image problems are in `failures`, never raised.
        """
        timings: dict[str, float] = {}
        total_start = time.time()

        # ── Step 1+2: Classify and extract each image ──────────────
        t0 = time.time()
        if images:
            workers = min(self.config.pipeline.max_workers, len(images))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gemfuse-image") as pool:
                outcomes = list(pool.map(self._process_image, images))
        else:
            outcomes = []
        timings["images_ms"] = (time.time() - t0) * 1000
        timings["classify_ms"] = sum(o.classify_ms for o in outcomes)
        timings["extract_ms"] = sum(o.extract_ms for o in outcomes)

        # pool.map keeps input order, so fusion never sees completion order
        classifications = [o.classification for o in outcomes if o.classification is not None]
        extractions = [o.extraction for o in outcomes if o.extraction is not None]
        failures = [o.failure for o in outcomes if o.failure is not None]

        # ── Step 3: Fuse ───────────────────────────────────────────
        t0 = time.time()
        fusion = self.engine.fuse(extractions, gemstone_id=gemstone_id)
        timings["fuse_ms"] = (time.time() - t0) * 1000
        timings["total_ms"] = (time.time() - total_start) * 1000

        result = PipelineResult(
            gemstone_id=gemstone_id,
            classifications=classifications,
            extractions=extractions,
            failures=failures,
            fusion=fusion,
            timings=timings,
            config_hash=self.config.config_hash(),
        )

        logger.info(
            f"Pipeline complete for {gemstone_id}: {result.stats} | "
            f"Total: {timings['total_ms']:.0f}ms"
        )
        return result

    def _process_image(self, image: ImageRef) -> _ImageOutcome:
        """Classify then extract one image; GemFuse errors become a failure record."""
        outcome = _ImageOutcome()
        stage = "classify"
        t0 = time.time()
        try:
            outcome.classification = self.classifier.classify(image)
            outcome.classify_ms = (time.time() - t0) * 1000

            stage = "extract"
            t0 = time.time()
            outcome.extraction = self.extractor.extract(image, outcome.classification.image_type)
            outcome.extract_ms = (time.time() - t0) * 1000
        except GemFuseError as e:
            elapsed = (time.time() - t0) * 1000
            if stage == "classify":
                outcome.classify_ms = elapsed
            else:
                outcome.extract_ms = elapsed
            logger.error(f"Image {image.id} failed at {stage}: {type(e).__name__}: {e}")
            outcome.failure = ImageFailure(
                image_id=image.id,
                stage=stage,
                error_type=type(e).__name__,
                message=str(e),
            )
        return outcome


def load_images(source: str | Path) -> list[ImageRef]:
    """
    Load image references from a directory or a JSON manifest.

    A directory contributes every image file in name order. A manifest
    is a JSON list of `{"id", "url"?, "base64"?, "path"?}` objects, or
    an object with such a list under "images"; relative paths resolve
    against the manifest's folder.
    """
    source = Path(source)
    if source.is_dir():
        files = sorted(p for p in source.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
        return [ImageRef.from_path(p) for p in files]

    data = load_json(source)
    entries = data.get("images", []) if isinstance(data, dict) else data
    images: list[ImageRef] = []
    for i, entry in enumerate(entries):
        if "path" in entry:
            path = Path(entry["path"])
            if not path.is_absolute():
                path = source.parent / path
            images.append(ImageRef.from_path(path, image_id=entry.get("id")))
        else:
            images.append(ImageRef(
                id=entry.get("id") or f"img_{i + 1}",
                url=entry.get("url"),
                base64=entry.get("base64"),
            ))
    return images
