"""Deterministic cross-image fusion."""

from gemfuse.fusion.engine import FusionEngine, fuse

__all__ = ["FusionEngine", "fuse"]
