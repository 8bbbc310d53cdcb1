"""
Vision Oracle Interface
========================

Abstract base class for the external recognition service that looks
at one image and answers in JSON. Every backend (OpenAI, Gemini)
implements `complete()`; callers go through `invoke()`, which adds
source resolution and the hard time bound.

The interface ensures:
- The classifier and extractors never depend on a specific vendor SDK
- Fusion and its tests never depend on the oracle at all
- A stuck call fails with OracleTimeout instead of hanging the pipeline
- Any other backend failure surfaces as OracleError, never a vendor exception

Data Flow:
    (instructions, ImageRef, JSON schema) → Oracle → raw JSON text
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Optional, TypeVar

from gemfuse.errors import GemFuseError, OracleError, OracleTimeout
from gemfuse.schemas.image import ImageRef

logger = logging.getLogger("gemfuse.oracle.base")

T = TypeVar("T")


def call_with_timeout(fn: Callable[..., T], timeout_s: float, *args: Any, **kwargs: Any) -> T:
    """
    Run `fn` on a worker thread and wait at most `timeout_s` seconds.

    The worker cannot be killed; on timeout it is abandoned and its
    eventual result discarded.

    Raises:
        OracleTimeout: If `fn` does not return in time.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gemfuse-oracle")
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeout:
        future.cancel()
        raise OracleTimeout(f"Oracle call exceeded {timeout_s}s", timeout_s=timeout_s)
    finally:
        executor.shutdown(wait=False)


class VisionOracle(ABC):
    """
    Abstract vision-LLM backend.

    Implementations return the model's raw text; parsing and schema
    validation belong to the caller (classifier / extractor).

    Args:
        model: Default model name for calls that don't override it.
        temperature: Sampling temperature.
        timeout_s: Hard bound on one call, in seconds.
    """

    def __init__(self, model: str, temperature: float = 0.0, timeout_s: float = 30.0):
        self.model = model
        self.temperature = temperature
        self.timeout_s = timeout_s

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        image: ImageRef,
        schema_name: str,
        schema: dict[str, Any],
        max_tokens: int,
        model: Optional[str] = None,
    ) -> str:
        """
        Ask the model about one image and return its raw JSON text.

        Args:
            system_prompt: Category-specific instructions.
            image: The image to look at.
            schema_name: Name of the response schema.
            schema: JSON Schema the response must follow.
            max_tokens: Output token cap.
            model: Optional model override.

        Returns:
            Raw response text (expected to be a JSON object).
        """
        ...

    def invoke(
        self,
        system_prompt: str,
        image: ImageRef,
        schema_name: str,
        schema: dict[str, Any],
        max_tokens: int,
        model: Optional[str] = None,
    ) -> str:
        """
        Time-bounded `complete()`.

        The image source is resolved first, so a missing source fails
        fast with MissingSource before any network work starts.

        Raises:
            MissingSource: If the image has neither base64 nor URL.
            OracleTimeout: If the call exceeds `timeout_s`.
            OracleError: If the backend fails in any other way.
        """
        image.resolve_source()

        t0 = time.time()
        try:
            raw = call_with_timeout(
                self.complete,
                self.timeout_s,
                system_prompt,
                image,
                schema_name,
                schema,
                max_tokens,
                model,
            )
        except GemFuseError:
            raise
        except Exception as e:
            raise OracleError(
                f"{type(self).__name__} call for {image.id} failed: {type(e).__name__}: {e}"
            ) from e
        logger.debug(
            f"{type(self).__name__} answered {schema_name} for {image.id} "
            f"in {(time.time() - t0) * 1000:.0f}ms"
        )
        return raw
