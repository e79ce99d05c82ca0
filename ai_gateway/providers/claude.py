"""Anthropic Messages API provider"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from ..models import ProviderID, ProviderResponse, ToolCall
from ..tools import ToolDefinition
from .base import BaseProvider

logger = logging.getLogger(__name__)


class ClaudeProvider(BaseProvider):
    """Anthropic Claude via /v1/messages"""

    provider_id = ProviderID.CLAUDE
    DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
    DEFAULT_BASE_URL = "https://api.anthropic.com"
    API_VERSION = "2023-06-01"
    INPUT_PRICE = 3.0
    OUTPUT_PRICE = 15.0

    def _headers(self, api_key: str | None) -> dict[str, str]:
        return {
            "x-api-key": api_key or "",
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

    def _to_wire_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        caps = self.tool_adapter.capabilities(self.provider_id)
        wire: list[dict[str, Any]] = []
        for msg in messages:
            role = msg["role"]
            if role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.get("tool_call_id", ""),
                    "content": str(msg.get("content", "")),
                }
                # Consecutive tool results travel in one user turn
                if wire and wire[-1]["role"] == "user" and isinstance(wire[-1]["content"], list):
                    wire[-1]["content"].append(block)
                else:
                    wire.append({"role": "user", "content": [block]})
            elif role == "assistant" and msg.get("tool_calls"):
                blocks: list[dict[str, Any]] = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for call in msg["tool_calls"]:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": self.tool_adapter.sanitize_name(call.name, caps.max_name_length),
                            "input": call.arguments,
                        }
                    )
                wire.append({"role": "assistant", "content": blocks})
            else:
                wire.append({"role": role, "content": msg["content"]})
        return wire

    def _payload(self, messages: list[dict[str, Any]], **kwargs: Any) -> dict[str, Any]:
        system, chat_messages = self._split_system(messages)
        payload: dict[str, Any] = {
            "model": kwargs.get("model") or self.model,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.7),
            "messages": self._to_wire_messages(chat_messages),
        }
        if system:
            payload["system"] = system
        return payload

    def _parse(
        self, data: dict[str, Any], start_time: float, name_map: dict[str, str] | None = None
    ) -> ProviderResponse:
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        tool_calls: list[ToolCall] = self.tool_adapter.parse_tool_calls(
            self.provider_id, data, name_map
        )
        return self._response(
            text,
            {
                "input_tokens": usage.get("input_tokens", 0),
                "output_tokens": usage.get("output_tokens", 0),
            },
            start_time,
            model=data.get("model", self.model),
            tool_calls=tool_calls,
            stop_reason=data.get("stop_reason"),
        )

    async def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> ProviderResponse:
        start_time = time.time()
        data = await self._post("/v1/messages", self._payload(messages, **kwargs))
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
        data = await self._post("/v1/messages", payload)
        return self._parse(data, start_time, self.tool_adapter.wire_names(tools, self.provider_id))

    async def stream_chat(
        self, messages: list[dict[str, Any]], **kwargs: Any
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, **kwargs)
        payload["stream"] = True
        async for line in self._stream_lines("/v1/messages", payload):
            event = self._sse_data(line)
            if not event or event.get("type") != "content_block_delta":
                continue
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                yield delta["text"]
            elif delta.get("type") == "input_json_delta":
                logger.debug(f"Skipping tool input delta: {json.dumps(delta)[:80]}")
