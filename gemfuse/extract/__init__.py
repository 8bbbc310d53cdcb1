"""
GemFuse Claim Extraction
=========================

Category-specific claim extraction, validation, and normalization.

Components:
    - prompts.py:     Instrument / label / macro instructions
    - extractor.py:   CategoryExtractor (oracle call + assembly)
    - validator.py:   JSON parsing and closed-vocabulary enforcement
    - normalizer.py:  Decimal separators, cut keywords, label cleanup
"""

from gemfuse.extract.extractor import CategoryExtractor
from gemfuse.extract.normalizer import ClaimNormalizer

__all__ = ["CategoryExtractor", "ClaimNormalizer"]
