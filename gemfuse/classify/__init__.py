"""Per-image category routing."""

from gemfuse.classify.classifier import ImageClassifier

__all__ = ["ImageClassifier"]
