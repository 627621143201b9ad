"""Provider catalogue and AI configuration resolution.

``get_ai_config`` reads ``AI_PROVIDER`` / ``AI_MODEL`` and the provider's
API key from settings and raises ``AIConfigError`` when unusable.
``validate_ai_config`` wraps it for callers that need a yes/no answer
(the upload route, ``GET /ai/test``) and never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings, get_settings
from app.core.errors import AIConfigError

from .providers import BaseProvider, get_provider

logger = logging.getLogger(__name__)

MIN_API_KEY_LENGTH = 10

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "google": "gemini-1.5-flash",
    "groq": "llama-3.1-70b-versatile",
    "mock": "mock-v1",
}


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    models: tuple[str, ...]
    supports_vision: bool
    max_tokens: int
    cost_per_token: float


PROVIDER_CONFIGS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec(
        name="OpenAI",
        models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
        supports_vision=True,
        max_tokens=4096,
        cost_per_token=0.0001,
    ),
    "google": ProviderSpec(
        name="Google Gemini",
        models=(
            "gemini-1.5-pro",
            "gemini-1.5-flash",
            "gemini-1.0-pro",
            "gemini-2.5-flash",
            "gemini-2.5-pro",
        ),
        supports_vision=True,
        max_tokens=8192,
        cost_per_token=0.0001,
    ),
    "groq": ProviderSpec(
        name="Groq",
        models=("llama-3.1-70b-versatile", "llama-3.1-8b-instant", "mixtral-8x7b-32768"),
        supports_vision=False,
        max_tokens=8192,
        cost_per_token=0.00001,
    ),
    "mock": ProviderSpec(
        name="Mock",
        models=("mock-v1",),
        supports_vision=True,
        max_tokens=8192,
        cost_per_token=0.0,
    ),
}

_KEY_ENV_NAMES: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY or GOOGLE_GENERATIVE_AI_API_KEY",
    "groq": "GROQ_API_KEY",
}

_KEY_LABELS: dict[str, str] = {
    "openai": "OpenAI API Key",
    "google": "Google API Key",
    "groq": "Groq API Key",
}


@dataclass(frozen=True)
class AIConfig:
    provider: str
    model: str
    api_key: str

    @property
    def spec(self) -> ProviderSpec:
        return PROVIDER_CONFIGS[self.provider]

    @property
    def supports_vision(self) -> bool:
        return self.spec.supports_vision

    def build_provider(self) -> BaseProvider:
        return get_provider(self.provider, self.api_key)


@dataclass(frozen=True)
class AIConfigValidation:
    is_valid: bool
    error: Optional[str] = None
    config: Optional[AIConfig] = None


def _api_key_for(provider: str, settings: Settings) -> str:
    if provider == "openai":
        return settings.openai_api_key
    if provider == "google":
        return settings.google_api_key
    if provider == "groq":
        return settings.groq_api_key
    return ""


def get_ai_config(settings: Settings | None = None) -> AIConfig:
    settings = settings or get_settings()
    provider = settings.ai_provider
    if provider not in PROVIDER_CONFIGS:
        raise AIConfigError(f"Unsupported AI provider: {provider}")

    model = settings.ai_model.strip() or DEFAULT_MODELS[provider]

    if provider == "mock":
        return AIConfig(provider=provider, model=model, api_key="")

    api_key = _api_key_for(provider, settings)
    if not api_key:
        raise AIConfigError(
            f"Missing API key for provider: {provider}. "
            f"Please set {_KEY_ENV_NAMES[provider]} environment variable."
        )
    return AIConfig(provider=provider, model=model, api_key=api_key)


def _debug_info(settings: Settings) -> str:
    provider = settings.ai_provider
    info = f"Provider: {provider}"
    label = _KEY_LABELS.get(provider)
    if label:
        info += f", {label} set: {bool(_api_key_for(provider, settings))}"
    return info


def validate_ai_config(settings: Settings | None = None) -> AIConfigValidation:
    settings = settings or get_settings()
    try:
        config = get_ai_config(settings)
    except AIConfigError as exc:
        logger.warning("AI configuration invalid: %s", exc)
        return AIConfigValidation(
            is_valid=False,
            error=f"{exc}. Debug: {_debug_info(settings)}",
        )

    supported = config.spec.models
    if config.model not in supported:
        return AIConfigValidation(
            is_valid=False,
            error=(
                f"Model {config.model} is not supported by provider {config.provider}. "
                f"Supported models: {', '.join(supported)}"
            ),
            config=config,
        )

    if config.provider != "mock" and len(config.api_key) < MIN_API_KEY_LENGTH:
        return AIConfigValidation(
            is_valid=False,
            error=f"API key for {config.provider} appears to be too short or invalid",
            config=config,
        )

    return AIConfigValidation(is_valid=True, config=config)
