"""Google Gemini provider (``generateContent`` REST API)."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

from .base import BaseProvider, ImageInput, ProviderResult

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GoogleProvider(BaseProvider):
    name = "google"
    supports_vision = True

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        images: Sequence[ImageInput] = (),
        model: str = "",
        temperature: float = 0.1,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
        json_mode: bool = False,
    ) -> ProviderResult:
        import httpx

        self.ensure_vision(images)
        model = model or "gemini-1.5-flash"
        t0 = time.monotonic()

        parts: list[dict[str, Any]] = [{"text": prompt}]
        for image in images:
            parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.to_base64()}})

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            resp = await client.post(
                f"{GEMINI_BASE_URL}/{model}:generateContent",
                headers={
                    "x-goog-api-key": self._api_key,
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            resp.raise_for_status()
            data = resp.json()

        elapsed = (time.monotonic() - t0) * 1000
        candidates = data.get("candidates") or []
        text = ""
        if candidates:
            content_parts = (candidates[0].get("content") or {}).get("parts") or []
            text = "".join(part.get("text", "") for part in content_parts)
        else:
            logger.warning("Gemini returned no candidates: %s", data.get("promptFeedback"))
        usage = data.get("usageMetadata", {})

        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            latency_ms=round(elapsed, 2),
        )
