"""
GemFuse Error Taxonomy
=======================

Every failure the pipeline can raise for a single image maps to one of
these types. They are per-image and local: the pipeline catches them
around each image so that one bad photo never aborts its siblings.

    MalformedOutput       — oracle response fails parsing / shape checks
    MissingSource         — image reference has neither base64 nor URL
    OracleTimeout         — oracle call exceeded its time bound
    OracleError           — oracle call failed (transport, API or client setup)
    ClaimValidationError  — object violates the closed vocabularies

Fusion itself raises none of these.
"""

from __future__ import annotations


class GemFuseError(Exception):
    """Base class for all GemFuse errors."""


class MalformedOutput(GemFuseError, ValueError):
    """The oracle returned something that is not the required JSON shape."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class MissingSource(GemFuseError, ValueError):
    """An image reference carries neither a usable base64 payload nor a URL."""


class OracleTimeout(GemFuseError, TimeoutError):
    """An oracle call did not finish within its configured bound."""

    def __init__(self, message: str, timeout_s: float | None = None):
        super().__init__(message)
        self.timeout_s = timeout_s


class ClaimValidationError(GemFuseError, ValueError):
    """A claim or extraction violates the schema's closed vocabularies."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class OracleError(GemFuseError, RuntimeError):
    """An oracle call failed for a reason other than a timeout."""
