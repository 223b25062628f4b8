"""LLM provider protocol: the single chat-completion seam for remote insights."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

DEFAULT_ANTHROPIC_MODEL = "claude-3-haiku-20240307"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class ProviderError(Exception):
    """Raised when a remote model call fails (network, auth, quota)."""


@dataclass
class ProviderResponse:
    """Free-text completion plus usage accounting."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float


@runtime_checkable
class LLMProvider(Protocol):
    """A system prompt + user prompt in, free text out."""

    name: str

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 1500,
        temperature: float = 0.3,
    ) -> ProviderResponse: ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
) -> LLMProvider:
    """Create an LLM provider by name.

    Args:
        provider_name: "anthropic", "openai", or "mock".
        api_key: API key for the provider.
        model: Model identifier override.

    Raises:
        ValueError: For an unknown provider name.
    """
    if provider_name == "anthropic":
        from healthhub.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=api_key, model=model or DEFAULT_ANTHROPIC_MODEL)
    elif provider_name == "openai":
        from healthhub.core.llm.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model or DEFAULT_OPENAI_MODEL)
    elif provider_name == "mock":
        from healthhub.core.llm.providers.mock import MockProvider

        return MockProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
