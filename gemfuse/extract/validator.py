"""
Extraction Validator
=====================

Parses oracle responses and validates them against the GemFuse data
contracts. This is the enforcement point for the closed vocabularies:
a claim whose field or provenance method is not in the enums never
reaches fusion.

Two modes:
    - lenient (pipeline): invalid claims are dropped and counted
    - strict (CLI / audits): any invalid claim raises ClaimValidationError

Usage:
    from gemfuse.extract.validator import validate_claims
    claims, errors = validate_claims(raw["claims"])
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from gemfuse.errors import ClaimValidationError, MalformedOutput
from gemfuse.schemas.claim import Claim, PerImageExtraction
from gemfuse.schemas.fusion import FusionResult
from gemfuse.schemas.image import Classification
from gemfuse.schemas.oracle import CLASSIFICATION_SCHEMA, PER_IMAGE_SCHEMA
from gemfuse.utils import strip_code_fence

logger = logging.getLogger("gemfuse.extract.validator")

SCHEMA_MODELS: dict[str, type[BaseModel]] = {
    "classification": Classification,
    "extraction": PerImageExtraction,
    "fusion": FusionResult,
}

ORACLE_SCHEMAS: dict[str, dict[str, Any]] = {
    "oracle_classification": CLASSIFICATION_SCHEMA,
    "oracle_extraction": PER_IMAGE_SCHEMA,
}


def parse_oracle_json(raw: str) -> dict[str, Any]:
    """
    Parse an oracle response into a JSON object.

    Handles responses wrapped in markdown code blocks and stray text
    around a single object.

    Raises:
        MalformedOutput: If no JSON object can be recovered.
    """
    if not raw or not raw.strip():
        raise MalformedOutput("Oracle returned an empty response", raw=raw)

    text = strip_code_fence(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Try to find a JSON object in the response
        start = text.find("{")
        end = text.rfind("}") + 1
        data = None
        if start >= 0 and end > start:
            try:
                data = json.loads(text[start:end])
            except json.JSONDecodeError:
                data = None
        if data is None:
            logger.debug(f"Raw output: {raw[:500]}")
            raise MalformedOutput("Oracle response is not valid JSON", raw=raw)

    if not isinstance(data, dict):
        raise MalformedOutput(
            f"Oracle response must be a JSON object, got {type(data).__name__}", raw=raw
        )
    return data


def validate_claims(raw_claims: list[Any]) -> tuple[list[Claim], list[str]]:
    """
    Validate raw claim dicts one by one.

    A claim missing its field or provenance, or failing the schema
    (unknown field, unknown method, confidence outside [0,1], bad bbox),
    is reported and left out.

    Returns:
        (valid claims in input order, error messages)
    """
    claims: list[Claim] = []
    errors: list[str] = []

    for i, raw_claim in enumerate(raw_claims):
        if not isinstance(raw_claim, dict):
            errors.append(f"Claim {i} is not an object")
            continue
        if not raw_claim.get("field") or not raw_claim.get("provenance"):
            errors.append(f"Claim {i} is missing field or provenance")
            continue
        try:
            claims.append(Claim.model_validate(raw_claim))
        except ValidationError as e:
            errors.append(f"Claim {i} ({raw_claim.get('field')}): {_first_error(e)}")

    return claims, errors


def claims_from_response(data: dict[str, Any], strict: bool = False) -> tuple[list[Claim], list[str]]:
    """
    Pull the claims array out of a parsed extraction response.

    Raises:
        MalformedOutput: If the response has no claims array.
        ClaimValidationError: In strict mode, if any claim is invalid.
    """
    raw_claims = data.get("claims")
    if not isinstance(raw_claims, list):
        raise MalformedOutput("Extraction result must include a claims array")

    claims, errors = validate_claims(raw_claims)
    if errors and strict:
        raise ClaimValidationError(
            f"{len(errors)} invalid claim(s) in extraction", errors=errors
        )
    return claims, errors


def validate_extraction(data: dict[str, Any], strict: bool = False) -> PerImageExtraction:
    """
    Build a PerImageExtraction from a saved or hand-written document.

    Invalid claims are dropped and added to `dropped_claims`, the same
    way the extractor treats oracle output.

    Raises:
        MalformedOutput: If the envelope lacks an image id, type or claims array.
        ClaimValidationError: In strict mode, if any claim is invalid.
    """
    if not isinstance(data, dict):
        raise MalformedOutput(f"Extraction must be a JSON object, got {type(data).__name__}")

    claims, errors = claims_from_response(data, strict=strict)
    for err in errors:
        logger.warning(f"Extraction {data.get('image_id')}: dropped invalid claim: {err}")

    envelope = {k: v for k, v in data.items() if k != "claims"}
    envelope["dropped_claims"] = int(envelope.get("dropped_claims") or 0) + len(errors)
    try:
        return PerImageExtraction.model_validate({**envelope, "claims": claims})
    except ValidationError as e:
        if strict:
            raise ClaimValidationError(
                "Extraction envelope is invalid",
                errors=[_first_error(e)],
            ) from e
        raise MalformedOutput(f"Extraction envelope is invalid: {_first_error(e)}") from e


def validate_document(data: Any, schema_name: str) -> list[str]:
    """
    Validate a dict against one of the GemFuse data contracts.

    Args:
        data: Parsed JSON document.
        schema_name: One of "classification", "extraction", "fusion".

    Returns:
        List of error messages (empty if valid).
    """
    if schema_name not in SCHEMA_MODELS:
        raise ValueError(f"Unknown schema: {schema_name}. Use: {list(SCHEMA_MODELS.keys())}")

    errors: list[str] = []
    try:
        SCHEMA_MODELS[schema_name].model_validate(data)
    except ValidationError as e:
        errors.extend(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
    return errors


def get_json_schema(schema_name: str) -> dict[str, Any]:
    """
    Export the JSON Schema for a GemFuse data contract.

    Args:
        schema_name: A data contract name ("classification", "extraction",
            "fusion") or an oracle schema ("oracle_classification",
            "oracle_extraction").

    Returns:
        JSON Schema dict.
    """
    if schema_name in ORACLE_SCHEMAS:
        return ORACLE_SCHEMAS[schema_name]
    if schema_name in SCHEMA_MODELS:
        return SCHEMA_MODELS[schema_name].model_json_schema()
    raise ValueError(
        f"Unknown schema: {schema_name}. "
        f"Use: {list(SCHEMA_MODELS.keys()) + list(ORACLE_SCHEMAS.keys())}"
    )


def export_all_schemas(output_dir: str | Path) -> list[Path]:
    """
    Export all JSON Schemas to files, one `<name>_schema.json` each.

    Returns:
        Paths of the written files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    for name in list(SCHEMA_MODELS.keys()) + list(ORACLE_SCHEMAS.keys()):
        path = output_dir / f"{name}_schema.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(get_json_schema(name), f, indent=2, ensure_ascii=False)
        logger.info(f"Exported schema: {path}")
        written.append(path)
    return written


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]
