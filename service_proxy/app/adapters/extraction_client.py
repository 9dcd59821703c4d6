"""
Client for the LLM extraction backend (OpenAI-compatible chat completions).
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

import httpx

from shared.errors import ExtractionError
from shared.logging import get_logger

from ..enrichment.prompts import SYSTEM_PROMPT, build_extraction_prompt


_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_BRACED_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_from_text(text: str) -> Dict[str, Any]:
    """
    Salvage a JSON object from model output.

    Tries, in order: the whole text, a ```json fenced block, and the span from
    the first ``{`` to the last ``}``. When none parses to an object the text
    is wrapped as ``{"raw": text}``. Empty output raises ExtractionError.
    """
    if not text or not text.strip():
        raise ExtractionError("Extraction backend returned empty content")

    candidates = [text]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    braced = _BRACED_OBJECT.search(text)
    if braced:
        candidates.append(braced.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed

    return {"raw": text}


class ExtractionClient:
    """Turns a report text into a structured object with a single completion call."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        *,
        max_tokens: int = 10000,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.logger = get_logger("proxy.extraction")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def build_request(self, text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_extraction_prompt(text)},
            ],
            "max_tokens": self.max_tokens,
            "temperature": 0.2,
            "seed": 1,
            "response_format": {"type": "json_object"},
        }

    async def extract(self, text: str) -> Dict[str, Any]:
        """Extract a structured object from ``text``; raises ExtractionError on failure."""
        payload = self.build_request(text)
        self.logger.debug("Extraction request", model=self.model, prompt_length=len(payload["messages"][1]["content"]))

        try:
            response = await self._client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise ExtractionError(str(exc) or exc.__class__.__name__, {"model": self.model})

        if response.status_code >= 400:
            raise ExtractionError(
                f"Unexpected status {response.status_code}",
                {"status_code": response.status_code, "body": response.text[:500]},
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise ExtractionError("Malformed completion response", {"body": response.text[:500]})

        self.logger.debug("Extraction response", model=data.get("model"), usage=data.get("usage"))
        return extract_json_from_text(content or "")

    async def close(self):
        if self._owns_client:
            await self._client.aclose()
