"""Ollama local model provider"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..models import ProviderID, ProviderResponse
from ..tools import ToolDefinition
from .base import BaseProvider

logger = logging.getLogger(__name__)


class OllamaProvider(BaseProvider):
    """Ollama /api/chat; no API key required"""

    provider_id = ProviderID.OLLAMA
    DEFAULT_MODEL = "llama3.1"
    DEFAULT_BASE_URL = "http://localhost:11434"
    REQUIRES_API_KEY = False

    def _headers(self, api_key: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def is_available(self) -> bool:
        """Check that the local server answers"""
        try:
            client = await self._ensure_client()
            response = await client.get("/api/version")
        except httpx.HTTPError as e:
            logger.warning(f"Ollama not available: {e}")
            return False
        return response.status_code == 200

    def _to_wire_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        caps = self.tool_adapter.capabilities(self.provider_id)
        wire: list[dict[str, Any]] = []
        for msg in messages:
            if msg["role"] == "assistant" and msg.get("tool_calls"):
                wire.append(
                    {
                        "role": "assistant",
                        "content": msg.get("content") or "",
                        "tool_calls": [
                            {
                                "function": {
                                    "name": self.tool_adapter.sanitize_name(
                                        call.name, caps.max_name_length
                                    ),
                                    "arguments": call.arguments,
                                }
                            }
                            for call in msg["tool_calls"]
                        ],
                    }
                )
            elif msg["role"] == "tool":
                wire.append({"role": "tool", "content": str(msg.get("content", ""))})
            else:
                wire.append({"role": msg["role"], "content": msg["content"]})
        return wire

    def _payload(
        self, messages: list[dict[str, Any]], stream: bool = False, **kwargs: Any
    ) -> dict[str, Any]:
        return {
            "model": kwargs.get("model") or self.model,
            "messages": self._to_wire_messages(messages),
            "stream": stream,
            "options": {
                "temperature": kwargs.get("temperature", 0.7),
                "num_predict": kwargs.get("max_tokens", 4096),
            },
        }

    def _parse(
        self, data: dict[str, Any], start_time: float, name_map: dict[str, str] | None = None
    ) -> ProviderResponse:
        return self._response(
            (data.get("message") or {}).get("content", ""),
            {
                "input_tokens": data.get("prompt_eval_count", 0),
                "output_tokens": data.get("eval_count", 0),
            },
            start_time,
            model=data.get("model", self.model),
            tool_calls=self.tool_adapter.parse_tool_calls(self.provider_id, data, name_map),
            stop_reason=data.get("done_reason"),
        )

    async def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> ProviderResponse:
        start_time = time.time()
        data = await self._post("/api/chat", self._payload(messages, **kwargs))
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
        data = await self._post("/api/chat", payload)
        return self._parse(data, start_time, self.tool_adapter.wire_names(tools, self.provider_id))

    async def stream_chat(
        self, messages: list[dict[str, Any]], **kwargs: Any
    ) -> AsyncIterator[str]:
        # Newline-delimited JSON, one object per chunk
        async for line in self._stream_lines(
            "/api/chat", self._payload(messages, stream=True, **kwargs)
        ):
            try:
                chunk = json.loads(line)
            except ValueError:
                continue
            content = (chunk.get("message") or {}).get("content")
            if content:
                yield content
            if chunk.get("done"):
                break
