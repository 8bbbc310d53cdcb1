"""
GemFuse Data Schemas
=====================

Pydantic v2 models implementing the data contracts that flow
through the pipeline:

1. ImageRef / Classification — one image and its routing verdict
2. Claim / PerImageExtraction — typed evidence mined from one image
3. FusionPolicy / FusionResult — thresholds and the fused record

All schemas support:
- Runtime validation with Pydantic (closed vocabularies as enums)
- JSON Schema export for the oracle's strict mode
- Deterministic serialization
"""

from gemfuse.schemas.claim import (
    NUMERIC_FIELDS,
    Claim,
    ClaimField,
    ImageType,
    PerImageExtraction,
    Provenance,
    ProvenanceMethod,
)
from gemfuse.schemas.image import (
    Classification,
    ImageRef,
)
from gemfuse.schemas.fusion import (
    ConfidenceRecord,
    FinalRecord,
    FusionPolicy,
    FusionResult,
    SourceRecord,
)

__all__ = [
    # Claims
    "NUMERIC_FIELDS",
    "Claim",
    "ClaimField",
    "ImageType",
    "PerImageExtraction",
    "Provenance",
    "ProvenanceMethod",
    # Images
    "Classification",
    "ImageRef",
    # Fusion
    "ConfidenceRecord",
    "FinalRecord",
    "FusionPolicy",
    "FusionResult",
    "SourceRecord",
]
