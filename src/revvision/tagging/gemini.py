"""Gemini REST client for tag generation and refinement."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from revvision.shared.exceptions import RefinementError, RemoteServiceError, TaggingError
from revvision.tagging.prompts import REFINED_TAGS_SCHEMA, REFINEMENT_PROMPT, TAGGING_PROMPT, TAGS_SCHEMA

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]+)$")


def split_data_uri(data_uri: str) -> tuple[str, str]:
    """Return (mime_type, base64 payload) of a ``data:`` URI.

    Raises:
        ValueError: If the string is not a base64 data URI.
    """
    match = _DATA_URI.match(data_uri.strip())
    if not match:
        raise ValueError("frame must be a base64 data URI")
    return match.group("mime"), match.group("data")


class GeminiClient:
    """Calls ``models/<model>:generateContent`` with a JSON response schema.

    Implements both the ``TaggingClient`` and ``RefinementClient`` protocols.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: int = 60,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def generate_tags(self, frame_data_uri: str, filename: str) -> str:
        try:
            mime_type, payload = split_data_uri(frame_data_uri)
        except ValueError as exc:
            raise TaggingError(str(exc)) from exc

        parts: list[dict[str, Any]] = [
            {"text": TAGGING_PROMPT.format(filename=filename)},
            {"inline_data": {"mime_type": mime_type, "data": payload}},
        ]
        result = await self._generate(parts, TAGS_SCHEMA, TaggingError)
        tags = str(result.get("tags") or "").strip()
        if not tags:
            raise TaggingError("Gemini returned no tags")
        logger.info("generated tags for %r: %s", filename, tags)
        return tags

    async def refine_tags(self, original_tags: str, user_feedback: str) -> str:
        parts: list[dict[str, Any]] = [
            {"text": REFINEMENT_PROMPT.format(original_tags=original_tags, user_feedback=user_feedback)},
        ]
        result = await self._generate(parts, REFINED_TAGS_SCHEMA, RefinementError)
        refined = str(result.get("refinedTags") or "").strip()
        if not refined:
            raise RefinementError("Gemini returned no refined tags")
        logger.info("refined tags %s → %s", original_tags, refined)
        return refined

    async def _generate(
        self,
        parts: list[dict[str, Any]],
        schema: dict[str, object],
        error_cls: type[RemoteServiceError],
    ) -> dict[str, Any]:
        if not self._api_key:
            raise error_cls("Gemini API key is not configured")

        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": schema,
            },
        }
        url = f"{self._base_url}/models/{self._model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers={"x-goog-api-key": self._api_key})
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise error_cls(
                f"Gemini returned {exc.response.status_code}: {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise error_cls(f"Gemini request failed: {exc!r}", network=True) from exc

        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise error_cls(f"Gemini blocked the request: {block_reason}")

        candidates = data.get("candidates") or []
        if not candidates:
            raise error_cls("Gemini returned no candidates")
        text = "".join(p.get("text", "") for p in (candidates[0].get("content") or {}).get("parts", []))
        try:
            result = json.loads(text)
        except json.JSONDecodeError as exc:
            raise error_cls(f"Gemini returned non-JSON output: {text[:200]}") from exc
        if not isinstance(result, dict):
            raise error_cls("Gemini returned an unexpected JSON shape")
        return result
