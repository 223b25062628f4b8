"""Mock LLM provider for tests and keyless local runs."""

from __future__ import annotations

import json

from healthhub.core.llm.provider import ProviderResponse

_DEFAULT_INSIGHTS = [
    {
        "type": "recommendation",
        "title": "Keep logging consistently",
        "description": "A few more days of sleep and symptom logs will sharpen your patterns.",
        "confidence": 0.7,
        "relatedMetrics": ["sleep", "symptom"],
    }
]


class MockProvider:
    """Returns a canned response and records what it was sent."""

    name = "mock"

    def __init__(self, response_content: str | None = None) -> None:
        self.response_content = (
            response_content if response_content is not None else json.dumps(_DEFAULT_INSIGHTS)
        )
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.call_count: int = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 1500,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.call_count += 1
        return ProviderResponse(
            content=self.response_content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(self.response_content.split()),
            model="mock",
            latency_ms=0.0,
        )
