"""
GemFuse — Multi-Image Claim Fusion for Gemstone Records
=========================================================

GemFuse turns a set of photographs of one gemstone (instrument readouts,
packaging labels, macro shots) into a single confidence-scored attribute
record. Disagreement between images is flagged for review, never averaged
away silently.

Architecture Overview:
    Images → Classify → Extract Claims → Fuse → FusionResult

Modules:
    - schemas:   Claim, extraction, classification and fusion data contracts
    - oracle:    Vision-LLM backends (OpenAI, Gemini) behind one interface
    - classify:  Per-image category routing
    - extract:   Category-specific claim extraction, normalization, validation
    - fusion:    Deterministic cross-image fusion + conflict detection
    - pipeline:  End-to-end orchestrator
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
