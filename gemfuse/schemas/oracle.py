"""
Oracle Response Schemas
========================

JSON Schemas handed to the vision oracle so it is constrained to the
closed vocabularies. They are built from the same enums the Pydantic
models use, so the two can never drift apart.

The schemas follow the structured-output strict-mode subset: every
object lists all of its properties as required and forbids extras.
Numeric ranges (confidence in [0,1], bbox length 4) are enforced by
Pydantic validation after the response comes back.
"""

from __future__ import annotations

from typing import Any

from gemfuse.schemas.claim import ClaimField, ImageType, ProvenanceMethod

IMAGE_TYPES = [t.value for t in ImageType]
CLAIM_FIELDS = [f.value for f in ClaimField]
PROVENANCE_METHODS = [m.value for m in ProvenanceMethod]


def _nullable(schema: dict[str, Any]) -> dict[str, Any]:
    return {"anyOf": [schema, {"type": "null"}]}


CLASSIFICATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["image_id", "image_type", "confidence", "reason"],
    "properties": {
        "image_id": {"type": "string"},
        "image_type": {"type": "string", "enum": IMAGE_TYPES},
        "confidence": {"type": "number"},
        "reason": {"type": "string"},
    },
    "additionalProperties": False,
}


PROVENANCE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["method", "bbox", "raw"],
    "properties": {
        "method": {"type": "string", "enum": PROVENANCE_METHODS},
        "bbox": _nullable({"type": "array", "items": {"type": "number"}}),
        "raw": _nullable({"type": "string"}),
    },
    "additionalProperties": False,
}


CLAIM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["field", "value", "confidence", "provenance"],
    "properties": {
        "field": {"type": "string", "enum": CLAIM_FIELDS},
        "value": {
            "anyOf": [
                {"type": "string"},
                {"type": "number"},
                {"type": "boolean"},
                {"type": "null"},
            ]
        },
        "confidence": {"type": "number"},
        "provenance": PROVENANCE_SCHEMA,
    },
    "additionalProperties": False,
}


PER_IMAGE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["image_id", "image_type", "claims"],
    "properties": {
        "image_id": {"type": "string"},
        "image_type": {"type": "string", "enum": IMAGE_TYPES},
        "claims": {"type": "array", "items": CLAIM_SCHEMA},
    },
    "additionalProperties": False,
}
