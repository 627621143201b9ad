"""Groq provider (OpenAI-compatible API, text only)."""

from __future__ import annotations

from .openai import OpenAIProvider


class GroqProvider(OpenAIProvider):
    name = "groq"
    supports_vision = False
    endpoint = "https://api.groq.com/openai/v1/chat/completions"
    default_model = "llama-3.1-70b-versatile"
