"""
Gemini Vision Oracle
=====================

Uses the Google Gemini API as the vision backend. Drop-in alternative
to the OpenAI oracle, following the same VisionOracle interface.

Gemini receives the response schema as part of the instructions and
is asked for `application/json`; the caller validates the result the
same way it validates OpenAI output.
"""

from __future__ import annotations

import json
import logging
import mimetypes
from base64 import b64decode
from typing import Any, Optional

import httpx

from gemfuse.errors import OracleError, OracleTimeout
from gemfuse.oracle.base import VisionOracle
from gemfuse.schemas.image import DEFAULT_MIME_TYPE, ImageRef

logger = logging.getLogger("gemfuse.oracle.gemini_oracle")


class GeminiVisionOracle(VisionOracle):
    """
    Vision oracle backed by Google Gemini.

    Inline (data URL) images are sent as bytes. Remote images are
    downloaded first and sent the same way, since Gemini only reads
    URIs it hosts itself.

    Args:
        api_key: Google AI API key.
        model: Gemini model name (default: gemini-2.0-flash).
        temperature: Sampling temperature.
        timeout_s: Hard bound on one call, also passed to the HTTP layer.
        http_client: Optional `httpx.Client` used to download remote images.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.0-flash",
        temperature: float = 0.0,
        timeout_s: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        super().__init__(model=model, temperature=temperature, timeout_s=timeout_s)
        self.api_key = api_key
        self._client = None
        self._http_client = http_client

    def _get_client(self):
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                from google import genai
            except ImportError:
                raise RuntimeError(
                    "google-genai package required for the Gemini oracle. "
                    "Install with: pip install google-genai"
                )
            if not self.api_key:
                raise ValueError(
                    "Gemini API key required. Set GEMFUSE_GEMINI_API_KEY "
                    "or pass gemini_api_key in config."
                )
            self._client = genai.Client(
                api_key=self.api_key,
                http_options={"timeout": int(self.timeout_s * 1000)},
            )
        return self._client

    def _fetch_image(self, url: str) -> tuple[bytes, str]:
        """Download a remote image; returns (bytes, mime type)."""
        if self._http_client is not None:
            response = self._http_client.get(url)
        else:
            response = httpx.get(url, timeout=self.timeout_s, follow_redirects=True)
        response.raise_for_status()

        mime_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not mime_type.startswith("image/"):
            mime_type = mimetypes.guess_type(url.split("?")[0])[0] or DEFAULT_MIME_TYPE
        logger.debug(f"Fetched {url} ({len(response.content)} bytes, {mime_type})")
        return response.content, mime_type

    def _image_part(self, source: str):
        """Build the Gemini bytes part for a data URL or remote URL."""
        from google.genai import types

        if source.startswith("data:"):
            header, _, payload = source.partition(",")
            mime_type = header[len("data:"):].split(";")[0] or DEFAULT_MIME_TYPE
            return types.Part.from_bytes(data=b64decode(payload), mime_type=mime_type)

        data, mime_type = self._fetch_image(source)
        return types.Part.from_bytes(data=data, mime_type=mime_type)

    def complete(
        self,
        system_prompt: str,
        image: ImageRef,
        schema_name: str,
        schema: dict[str, Any],
        max_tokens: int,
        model: Optional[str] = None,
    ) -> str:
        """Call Gemini with the image and schema-bearing instructions."""
        client = self._get_client()
        from google.genai import errors as genai_errors

        instructions = (
            f"{system_prompt}\n"
            f"Respond with one JSON object matching the {schema_name} schema:\n"
            f"{json.dumps(schema)}"
        )

        try:
            response = client.models.generate_content(
                model=model or self.model,
                contents=[
                    self._image_part(image.resolve_source()),
                    f"image_id={image.id}",
                ],
                config={
                    "system_instruction": instructions,
                    "temperature": self.temperature,
                    "max_output_tokens": max_tokens,
                    "response_mime_type": "application/json",
                },
            )
        except httpx.TimeoutException as e:
            raise OracleTimeout(
                f"Gemini call for {image.id} timed out", timeout_s=self.timeout_s
            ) from e
        except (genai_errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Gemini API call failed for {image.id}: {e}")
            raise OracleError(f"Gemini call for {image.id} failed: {e}") from e
        except Exception as e:
            logger.error(f"Gemini API call failed for {image.id}: {e}")
            raise

        return response.text or ""
