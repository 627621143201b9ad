"""Abstract base for all AI providers."""

from __future__ import annotations

import abc
import base64
from dataclasses import dataclass
from typing import Sequence

from app.core.errors import ProviderCapabilityError


@dataclass(frozen=True)
class ImageInput:
    """Inline image passed to a vision-capable model."""

    mime_type: str
    data: bytes

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


@dataclass(frozen=True)
class ProviderResult:
    """Immutable result returned by every provider."""

    raw_text: str
    model: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0


class BaseProvider(abc.ABC):
    """Contract that every AI provider must implement."""

    name: str = "base"
    supports_vision: bool = False

    @abc.abstractmethod
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
        """Send *prompt* (and optional *images*) and return a ``ProviderResult``."""

    def ensure_vision(self, images: Sequence[ImageInput]) -> None:
        if images and not self.supports_vision:
            raise ProviderCapabilityError(
                f"{self.name} does not support image inputs"
            )
