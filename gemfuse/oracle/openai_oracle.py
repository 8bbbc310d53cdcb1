"""
OpenAI Vision Oracle
=====================

Uses OpenAI chat completions with an `image_url` content part and
strict `json_schema` structured output, so the model can only answer
with fields from the closed vocabularies.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from gemfuse.errors import OracleError, OracleTimeout
from gemfuse.oracle.base import VisionOracle
from gemfuse.schemas.image import ImageRef

logger = logging.getLogger("gemfuse.oracle.openai_oracle")


class OpenAIVisionOracle(VisionOracle):
    """
    Vision oracle backed by the OpenAI API.

    Usage:
        oracle = OpenAIVisionOracle(api_key="sk-...", model="gpt-4o")
        raw = oracle.invoke(prompt, image, "GemImageExtraction", schema, 800)

    Args:
        api_key: OpenAI API key.
        model: Default model name.
        temperature: Sampling temperature.
        timeout_s: Hard bound on one call, also passed to the SDK.
        client: Optional pre-built `openai.OpenAI` client.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o",
        temperature: float = 0.0,
        timeout_s: float = 30.0,
        client: Any = None,
    ):
        super().__init__(model=model, temperature=temperature, timeout_s=timeout_s)
        self.api_key = api_key
        self._client = client

    def _get_client(self):
        """Lazy-initialize the OpenAI client."""
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise RuntimeError("openai package required. Install with: pip install openai")
            # Retries are the caller's decision.
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout_s, max_retries=0)
        return self._client

    def complete(
        self,
        system_prompt: str,
        image: ImageRef,
        schema_name: str,
        schema: dict[str, Any],
        max_tokens: int,
        model: Optional[str] = None,
    ) -> str:
        """Call chat completions with the image and strict JSON schema."""
        from openai import APIError, APITimeoutError

        client = self._get_client()
        messages = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": f"image_id={image.id}"},
                    {"type": "image_url", "image_url": {"url": image.resolve_source()}},
                ],
            },
        ]

        try:
            response = client.chat.completions.create(
                model=model or self.model,
                temperature=self.temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": schema_name,
                        "schema": schema,
                        "strict": True,
                    },
                },
                messages=messages,
                max_tokens=max_tokens,
            )
        except APITimeoutError as e:
            raise OracleTimeout(
                f"OpenAI call for {image.id} timed out", timeout_s=self.timeout_s
            ) from e
        except APIError as e:
            logger.error(f"OpenAI API call failed for {image.id}: {e}")
            raise OracleError(f"OpenAI call for {image.id} failed: {e}") from e
        except Exception as e:
            logger.error(f"OpenAI API call failed for {image.id}: {e}")
            raise

        return response.choices[0].message.content or ""
