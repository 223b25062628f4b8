"""LLM provider implementations."""

from healthhub.core.llm.providers.anthropic import AnthropicProvider
from healthhub.core.llm.providers.mock import MockProvider
from healthhub.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
