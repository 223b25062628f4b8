"""Anthropic Claude provider."""

from __future__ import annotations

import time

from healthhub.core.llm.provider import DEFAULT_ANTHROPIC_MODEL, ProviderError, ProviderResponse


class AnthropicProvider:
    """Claude provider using the Anthropic SDK's async client."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str = DEFAULT_ANTHROPIC_MODEL) -> None:
        import anthropic

        self._sdk = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 1500,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        start = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_message,
                messages=[{"role": "user", "content": user_message}],
            )
        except self._sdk.APIError as exc:
            raise ProviderError(f"Anthropic API error: {exc}") from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        text_blocks = [block.text for block in response.content if block.type == "text"]
        return ProviderResponse(
            content="".join(text_blocks),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
