"""OpenAI provider."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

from .base import BaseProvider, ImageInput, ProviderResult

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


def build_chat_messages(
    prompt: str,
    *,
    system_prompt: str | None,
    images: Sequence[ImageInput],
) -> list[dict[str, Any]]:
    """Chat-completions message list; images become ``image_url`` parts."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    if images:
        parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images:
            parts.append({"type": "image_url", "image_url": {"url": image.to_data_url()}})
        messages.append({"role": "user", "content": parts})
    else:
        messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIProvider(BaseProvider):
    name = "openai"
    supports_vision = True
    endpoint = CHAT_COMPLETIONS_URL
    default_model = "gpt-4o-mini"

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
        model = model or self.default_model
        t0 = time.monotonic()

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": build_chat_messages(prompt, system_prompt=system_prompt, images=images),
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            resp = await client.post(
                self.endpoint,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            resp.raise_for_status()
            data = resp.json()

        elapsed = (time.monotonic() - t0) * 1000
        choice = data["choices"][0]
        text = choice["message"]["content"] or ""
        usage = data.get("usage", {})

        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
