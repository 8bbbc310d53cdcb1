"""
Image Classifier
=================

Routes one image to the extraction path that fits it. The classifier
never emits attribute claims; its only job is choosing the category.

Categories:
    instrument — gauges, calipers, micrometers, scales
    label      — packaging labels, handwritten notes, invoices, bag tags
    gem_macro  — close-ups of the stone without instruments
    unknown    — poor quality or unrecognizable

An unparseable answer is a hard failure (MalformedOutput); it is never
defaulted to `unknown`, because that would silently discard evidence.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from gemfuse.errors import MalformedOutput
from gemfuse.extract.validator import parse_oracle_json
from gemfuse.oracle.base import VisionOracle
from gemfuse.schemas.claim import ImageType
from gemfuse.schemas.image import Classification, ImageRef
from gemfuse.schemas.oracle import CLASSIFICATION_SCHEMA

logger = logging.getLogger("gemfuse.classify.classifier")

CLASSIFICATION_SCHEMA_NAME = "GemImageClassification"

CLASSIFIER_PROMPT = """You are a gemstone image classifier. Classify the image into exactly one of four categories and give a confidence score.

Categories:
1. instrument - Digital gauges, micrometers, calipers, dial indicators, or scales measuring a gemstone
2. label - Packaging labels, handwritten notes, invoice slips, bag tags showing text (often Cyrillic)
3. gem_macro - Close-up photos of gemstones, jewelry, or several stones without instruments
4. unknown - Poor quality, blurred, or unrecognizable images

Rules:
- Output JSON only.
- If several subjects appear, choose the single best matching category. Do not split.
- If the image is too poor to tell, answer "unknown" instead of guessing.
- Confidence must be between 0 and 1.
- Always include a short reason.
"""


class ImageClassifier:
    """
    Assigns one category to one image via the vision oracle.

    Usage:
        classifier = ImageClassifier(oracle)
        classification = classifier.classify(image)
        if classification.image_type == ImageType.LABEL: ...

    Args:
        oracle: Vision oracle used for classification calls.
        model: Optional model override passed to the oracle.
        max_tokens: Output token cap per call.
    """

    def __init__(
        self,
        oracle: VisionOracle,
        model: Optional[str] = None,
        max_tokens: int = 300,
    ):
        self.oracle = oracle
        self.model = model
        self.max_tokens = max_tokens

    def classify(self, image: ImageRef) -> Classification:
        """
        Classify one image.

        Returns:
            Classification whose image_id is always `image.id`.

        Raises:
            MissingSource: If the image has neither base64 nor URL.
            OracleTimeout: If the oracle call exceeds its bound.
            MalformedOutput: If the answer does not fit the classification shape.
        """
        raw_output = self.oracle.invoke(
            CLASSIFIER_PROMPT,
            image,
            CLASSIFICATION_SCHEMA_NAME,
            CLASSIFICATION_SCHEMA,
            self.max_tokens,
            self.model,
        )
        classification = self._parse_output(raw_output, image)
        logger.info(
            f"Classified {image.id} as {classification.image_type.value} "
            f"({classification.confidence:.2f}): {classification.reason}"
        )
        return classification

    def _parse_output(self, raw_output: str, image: ImageRef) -> Classification:
        data = parse_oracle_json(raw_output)
        try:
            return Classification(
                image_id=image.id,
                image_type=data.get("image_type"),
                confidence=data.get("confidence"),
                reason=data.get("reason"),
            )
        except ValidationError as e:
            logger.error(f"Classifier output for {image.id} failed validation: {e}")
            raise MalformedOutput(
                f"Classifier output for {image.id} does not match the classification schema",
                raw=raw_output,
            ) from e


def is_instrument(classification: Classification) -> bool:
    return classification.image_type == ImageType.INSTRUMENT


def is_label(classification: Classification) -> bool:
    return classification.image_type == ImageType.LABEL


def is_gem_macro(classification: Classification) -> bool:
    return classification.image_type == ImageType.GEM_MACRO
