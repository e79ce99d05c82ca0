"""Fake providers and tool executors shared by the test modules"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from ai_gateway.models import ProviderID, ProviderResponse, ToolCall
from ai_gateway.providers.base import BaseProvider
from ai_gateway.tools import PropertySchema, ToolDefinition, ToolMetadata


class Stall:
    """Outcome that sleeps long enough to trip a short attempt timeout"""

    def __init__(self, seconds: float = 1.0) -> None:
        self.seconds = seconds


class FakeProvider(BaseProvider):
    """Scripted provider: each call consumes the next outcome.

    An outcome is a string (response text), a ProviderResponse, a Stall, or
    an exception to raise. When the script runs out every call succeeds.
    """

    def __init__(
        self,
        provider_id: ProviderID | str,
        outcomes: list[Any] | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__(api_key="test-key")
        self.provider_id = ProviderID.parse(provider_id)
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def _next(
        self, messages: list[dict[str, Any]], tools: list[ToolDefinition] | None
    ) -> ProviderResponse:
        self.calls.append({"messages": list(messages), "tools": tools})
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else f"{self.provider_name} answer"
        if isinstance(outcome, Stall):
            await asyncio.sleep(outcome.seconds)
            outcome = f"{self.provider_name} answer"
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, ProviderResponse):
            return outcome
        return ProviderResponse(
            content=str(outcome),
            provider=self.provider_name,
            model="fake-model",
            usage={"input_tokens": 10, "output_tokens": 5},
        )

    async def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> ProviderResponse:
        return await self._next(messages, None)

    async def chat_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
        **kwargs: Any,
    ) -> ProviderResponse:
        return await self._next(messages, tools)

    async def stream_chat(
        self, messages: list[dict[str, Any]], **kwargs: Any
    ) -> AsyncIterator[str]:
        response = await self._next(messages, None)
        for word in response.content.split():
            yield word


class RecordingToolExecutor:
    def __init__(self, results: dict[str, Any] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        result = self.results.get(name, "ok")
        if isinstance(result, BaseException):
            raise result
        return result


def tool_call_response(provider: str, *calls: ToolCall) -> ProviderResponse:
    return ProviderResponse(
        content="",
        provider=provider,
        model="fake-model",
        usage={"input_tokens": 10, "output_tokens": 5},
        tool_calls=list(calls),
        stop_reason="tool_use",
    )


def read_file_tool() -> ToolDefinition:
    return ToolDefinition(
        name="read_file",
        description="Read the contents of a file from the workspace.",
        properties={
            "path": PropertySchema(type="string", description="Path of the file to read"),
            "encoding": PropertySchema(
                type="string",
                description="Text encoding to decode with",
                enum=["utf-8", "latin-1"],
                default="utf-8",
            ),
        },
        required=["path"],
        metadata=ToolMetadata(category="filesystem", tags=["io"]),
    )
