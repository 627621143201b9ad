"""Provider factory: returns the provider instance for a configured name."""

from __future__ import annotations

import logging

from app.core.errors import AIConfigError

from .base import BaseProvider, ImageInput, ProviderResult
from .mock import MockProvider

logger = logging.getLogger(__name__)

__all__ = ["get_provider", "BaseProvider", "ImageInput", "ProviderResult", "MockProvider"]


def get_provider(provider_name: str, api_key: str = "") -> BaseProvider:
    """Return a provider instance for *provider_name*.

    Key presence is checked by ``catalogue.get_ai_config``; here we only
    map the name to a class. Unknown names raise ``AIConfigError``.
    """
    name = provider_name.lower().strip()

    if name == "mock":
        return MockProvider()

    if name == "openai":
        from .openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key)

    if name == "google":
        from .google import GoogleProvider

        return GoogleProvider(api_key=api_key)

    if name == "groq":
        from .groq import GroqProvider

        return GroqProvider(api_key=api_key)

    logger.warning("Unknown provider %r requested", name)
    raise AIConfigError(f"Unsupported AI provider: {provider_name}")
