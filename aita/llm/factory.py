"""
LLM Provider — factory.

Returns None from get_configured_provider() when no API key is set;
the judge then runs on rules alone.
"""

from typing import Optional

from aita.config import settings
from aita.llm import LLMProvider


def get_provider(provider_name: str = "gemini") -> LLMProvider:
    """Factory — returns the named LLM provider."""
    if provider_name == "gemini":
        from aita.llm.gemini import GeminiProvider
        return GeminiProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")


def get_configured_provider() -> Optional[LLMProvider]:
    """The provider from settings, or None when AI is not configured."""
    if not settings.ai_configured:
        return None
    return get_provider(settings.LLM_PROVIDER)
