"""OpenAI-compatible chat completions providers (OpenAI, DeepSeek)"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from typing import Any

from ..models import ProviderID, ProviderResponse
from ..tools import ToolDefinition
from .base import BaseProvider


class OpenAIProvider(BaseProvider):
    """OpenAI API provider"""

    provider_id = ProviderID.OPENAI
    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    INPUT_PRICE = 0.15
    OUTPUT_PRICE = 0.6

    def _headers(self, api_key: str | None) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _to_wire_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        caps = self.tool_adapter.capabilities(self.provider_id)
        wire: list[dict[str, Any]] = []
        for msg in messages:
            if msg["role"] == "assistant" and msg.get("tool_calls"):
                wire.append(
                    {
                        "role": "assistant",
                        "content": msg.get("content") or None,
                        "tool_calls": [
                            {
                                "id": call.id,
                                "type": "function",
                                "function": {
                                    "name": self.tool_adapter.sanitize_name(
                                        call.name, caps.max_name_length
                                    ),
                                    "arguments": json.dumps(call.arguments),
                                },
                            }
                            for call in msg["tool_calls"]
                        ],
                    }
                )
            elif msg["role"] == "tool":
                wire.append(
                    {
                        "role": "tool",
                        "tool_call_id": msg.get("tool_call_id", ""),
                        "content": str(msg.get("content", "")),
                    }
                )
            else:
                wire.append({"role": msg["role"], "content": msg["content"]})
        return wire

    def _payload(self, messages: list[dict[str, Any]], **kwargs: Any) -> dict[str, Any]:
        return {
            "model": kwargs.get("model") or self.model,
            "messages": self._to_wire_messages(messages),
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.7),
        }

    def _parse(
        self, data: dict[str, Any], start_time: float, name_map: dict[str, str] | None = None
    ) -> ProviderResponse:
        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        usage = data.get("usage") or {}
        return self._response(
            message.get("content") or "",
            {
                "input_tokens": usage.get("prompt_tokens", 0),
                "output_tokens": usage.get("completion_tokens", 0),
            },
            start_time,
            model=data.get("model", self.model),
            tool_calls=self.tool_adapter.parse_tool_calls(self.provider_id, message, name_map),
            stop_reason=choice.get("finish_reason"),
        )

    async def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> ProviderResponse:
        start_time = time.time()
        data = await self._post("/chat/completions", self._payload(messages, **kwargs))
        return self._parse(data, start_time)

    async def chat_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
        **kwargs: Any,
    ) -> ProviderResponse:
        start_time = time.time()
        payload = self._payload(messages, **kwargs)
        payload["tools"] = self.tool_adapter.to_provider_format_batch(tools, self.provider_id)
        payload["tool_choice"] = "auto"
        data = await self._post("/chat/completions", payload)
        return self._parse(data, start_time, self.tool_adapter.wire_names(tools, self.provider_id))

    async def stream_chat(
        self, messages: list[dict[str, Any]], **kwargs: Any
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, **kwargs)
        payload["stream"] = True
        async for line in self._stream_lines("/chat/completions", payload):
            chunk = self._sse_data(line)
            if not chunk:
                continue
            delta = ((chunk.get("choices") or [{}])[0]).get("delta") or {}
            if delta.get("content"):
                yield delta["content"]


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek API provider (OpenAI-compatible)"""

    provider_id = ProviderID.DEEPSEEK
    DEFAULT_MODEL = "deepseek-chat"
    DEFAULT_BASE_URL = "https://api.deepseek.com"
    INPUT_PRICE = 0.14
    OUTPUT_PRICE = 0.28
