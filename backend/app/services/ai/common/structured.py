"""Schema-constrained generation: prompt + pydantic schema -> validated object."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Generic, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from app.core.config import get_settings
from app.core.errors import AIProviderError, StructuredOutputError

from .catalogue import AIConfig, get_ai_config
from .json_tools import extract_json
from .providers.base import ImageInput, ProviderResult

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

SCHEMA_INSTRUCTIONS = (
    "Respond ONLY with a single JSON object that validates against this JSON schema. "
    "Do not wrap it in markdown and do not add any explanation."
)


@dataclass
class StructuredResult(Generic[T]):
    object: T
    provider_result: ProviderResult
    config: AIConfig
    attempts: int
    prompt: str


def build_schema_prompt(schema: Type[BaseModel], prompt: str) -> str:
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    return f"{prompt.strip()}\n\n{SCHEMA_INSTRUCTIONS}\n\nJSON SCHEMA:\n{schema_json}"


async def generate_object(
    schema: Type[T],
    prompt: str,
    *,
    images: Sequence[ImageInput] = (),
    temperature: float | None = None,
    system_prompt: str | None = None,
    config: AIConfig | None = None,
) -> StructuredResult[T]:
    """Call the configured model and validate its reply against *schema*.

    Unparseable or invalid replies are retried ``ai_max_retries`` times.
    Transport failures are not retried and surface as ``AIProviderError``.
    """
    settings = get_settings()
    config = config or get_ai_config(settings)
    provider = config.build_provider()
    full_prompt = build_schema_prompt(schema, prompt)
    max_attempts = max(1, settings.ai_max_retries + 1)
    if temperature is None:
        temperature = settings.ai_temperature

    attempts = 0
    last_detail: str | None = None
    t0 = time.monotonic()

    while attempts < max_attempts:
        attempts += 1
        try:
            result = await provider.generate(
                full_prompt,
                system_prompt=system_prompt,
                images=images,
                model=config.model,
                temperature=temperature,
                max_tokens=min(settings.ai_max_tokens, config.spec.max_tokens),
                timeout_seconds=settings.ai_timeout_seconds,
                json_mode=True,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s call failed: %s", config.provider, exc)
            raise AIProviderError(f"{config.provider} request failed: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise AIProviderError(f"{config.provider} returned an unexpected payload: {exc}") from exc

        parsed = extract_json(result.raw_text)
        if not isinstance(parsed, dict):
            last_detail = "No JSON object in response"
            logger.warning("Attempt %d: could not parse JSON from %s response", attempts, config.provider)
            continue

        try:
            obj = schema.model_validate(parsed)
        except ValidationError as exc:
            last_detail = str(exc)
            logger.warning(
                "Attempt %d: %s response failed %s validation (%d errors)",
                attempts,
                config.provider,
                schema.__name__,
                exc.error_count(),
            )
            continue

        logger.info(
            "%s/%s produced %s in %.0fms (attempts=%d)",
            config.provider,
            config.model,
            schema.__name__,
            (time.monotonic() - t0) * 1000,
            attempts,
        )
        return StructuredResult(
            object=obj,
            provider_result=result,
            config=config,
            attempts=attempts,
            prompt=full_prompt,
        )

    raise StructuredOutputError(
        f"No valid {schema.__name__} after {attempts} attempt(s)",
        attempts=attempts,
        detail=last_detail,
    )
