"""
Category Extractor
===================

Turns one classified image into a PerImageExtraction: a list of typed,
confidence-scored claims with provenance.

Architecture:
    ImageRef + ImageType → category prompt → Oracle (strict JSON)
        → Validator (drop invalid claims) → Normalizer → PerImageExtraction

Three strategies share one output contract and differ only in the
instructions sent to the oracle:
    - instrument: gauge / caliper / scale readouts
    - label:      tags, notes, invoices (often Cyrillic)
    - gem_macro:  close-ups of the stone itself

`unknown` images are not sent to the oracle at all; they yield an
empty extraction so fusion still sees them.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from gemfuse.extract.normalizer import ClaimNormalizer
from gemfuse.extract.prompts import EXTRACTION_PROMPTS
from gemfuse.extract.validator import claims_from_response, parse_oracle_json
from gemfuse.oracle.base import VisionOracle
from gemfuse.schemas.claim import ImageType, PerImageExtraction
from gemfuse.schemas.image import ImageRef
from gemfuse.schemas.oracle import PER_IMAGE_SCHEMA

logger = logging.getLogger("gemfuse.extract.extractor")

EXTRACTION_SCHEMA_NAME = "GemImageExtraction"


class CategoryExtractor:
    """
    Extracts claims from one image using its category's instructions.

    Usage:
        extractor = CategoryExtractor(oracle)
        extraction = extractor.extract(image, ImageType.LABEL)

    Args:
        oracle: Vision oracle used for extraction calls.
        normalizer: Claim normalizer (defaults to ClaimNormalizer()).
        model: Optional model override passed to the oracle.
        max_tokens: Output token cap per call.
        strict: Raise ClaimValidationError on any invalid claim instead
            of dropping it.
    """

    def __init__(
        self,
        oracle: VisionOracle,
        normalizer: Optional[ClaimNormalizer] = None,
        model: Optional[str] = None,
        max_tokens: int = 800,
        strict: bool = False,
    ):
        self.oracle = oracle
        self.normalizer = normalizer or ClaimNormalizer()
        self.model = model
        self.max_tokens = max_tokens
        self.strict = strict

    def extract(self, image: ImageRef, image_type: ImageType | str) -> PerImageExtraction:
        """
        Extract claims from one image.

        Pipeline:
            1. Pick the category prompt (unknown → empty extraction)
            2. Call the oracle with the strict per-image schema
            3. Parse JSON and validate each claim
            4. Normalize values

        Args:
            image: The image to analyze.
            image_type: Category assigned by the classifier.

        Returns:
            PerImageExtraction with only valid, normalized claims. Its
            image_id is always `image.id`, whatever the oracle echoed.

        Raises:
            MissingSource: If the image has neither base64 nor URL.
            OracleTimeout: If the oracle call exceeds its bound.
            MalformedOutput: If the response is not an object with a claims array.
            ClaimValidationError: In strict mode, on any invalid claim.
        """
        image_type = ImageType(image_type)
        if image_type == ImageType.UNKNOWN:
            logger.info(f"Image {image.id} is unknown; skipping extraction")
            return PerImageExtraction(image_id=image.id, image_type=ImageType.UNKNOWN)

        t0 = time.time()
        raw_output = self.oracle.invoke(
            EXTRACTION_PROMPTS[image_type],
            image,
            EXTRACTION_SCHEMA_NAME,
            PER_IMAGE_SCHEMA,
            self.max_tokens,
            self.model,
        )
        elapsed_ms = (time.time() - t0) * 1000

        return self._parse_output(raw_output, image, image_type, elapsed_ms)

    def extract_instrument(self, image: ImageRef) -> PerImageExtraction:
        """Extract readout claims from a gauge, caliper or scale image."""
        return self.extract(image, ImageType.INSTRUMENT)

    def extract_label(self, image: ImageRef) -> PerImageExtraction:
        """Extract weight, dimension, cut and text claims from a label image."""
        return self.extract(image, ImageType.LABEL)

    def extract_gem_macro(self, image: ImageRef) -> PerImageExtraction:
        """Extract visual claims from a close-up of the stone."""
        return self.extract(image, ImageType.GEM_MACRO)

    def _parse_output(
        self,
        raw_output: str,
        image: ImageRef,
        image_type: ImageType,
        elapsed_ms: float,
    ) -> PerImageExtraction:
        """Parse, validate and normalize the oracle's answer."""
        data = parse_oracle_json(raw_output)
        claims, errors = claims_from_response(data, strict=self.strict)
        for err in errors:
            logger.warning(f"Image {image.id}: dropped invalid claim: {err}")

        claims, dropped_empty = self.normalizer.normalize(claims)

        extraction = PerImageExtraction(
            image_id=image.id,
            image_type=image_type,
            claims=claims,
            model_id=self.model or self.oracle.model,
            processing_time_ms=round(elapsed_ms, 1),
            dropped_claims=len(errors) + dropped_empty,
        )

        logger.info(
            f"Extracted {extraction.num_claims} claims from {image.id} "
            f"({image_type.value}, {extraction.dropped_claims} dropped)"
        )
        return extraction
