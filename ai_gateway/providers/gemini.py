"""Google Gemini generateContent provider"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any

from ..models import ProviderID, ProviderResponse
from ..tools import ToolDefinition
from .base import BaseProvider


class GeminiProvider(BaseProvider):
    """Gemini via the Generative Language REST API"""

    provider_id = ProviderID.GEMINI
    DEFAULT_MODEL = "gemini-1.5-flash"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    INPUT_PRICE = 0.075
    OUTPUT_PRICE = 0.3

    def _headers(self, api_key: str | None) -> dict[str, str]:
        return {"x-goog-api-key": api_key or "", "Content-Type": "application/json"}

    def _to_wire_contents(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        caps = self.tool_adapter.capabilities(self.provider_id)
        # functionResponse parts are matched by name, not id
        call_names: dict[str, str] = {}
        contents: list[dict[str, Any]] = []
        for msg in messages:
            role = msg["role"]
            if role == "assistant":
                parts: list[dict[str, Any]] = []
                if msg.get("content"):
                    parts.append({"text": msg["content"]})
                for call in msg.get("tool_calls") or []:
                    wire_name = self.tool_adapter.sanitize_name(call.name, caps.max_name_length)
                    call_names[call.id] = wire_name
                    parts.append({"functionCall": {"name": wire_name, "args": call.arguments}})
                contents.append({"role": "model", "parts": parts})
            elif role == "tool":
                name = call_names.get(msg.get("tool_call_id", ""), msg.get("name", ""))
                part = {
                    "functionResponse": {
                        "name": self.tool_adapter.sanitize_name(name, caps.max_name_length),
                        "response": {"content": str(msg.get("content", ""))},
                    }
                }
                if contents and contents[-1].get("_tool_results"):
                    contents[-1]["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part], "_tool_results": True})
            else:
                contents.append({"role": "user", "parts": [{"text": msg["content"]}]})

        for content in contents:
            content.pop("_tool_results", None)
        return contents

    def _payload(self, messages: list[dict[str, Any]], **kwargs: Any) -> dict[str, Any]:
        system, chat_messages = self._split_system(messages)
        payload: dict[str, Any] = {
            "contents": self._to_wire_contents(chat_messages),
            "generationConfig": {
                "maxOutputTokens": kwargs.get("max_tokens", 4096),
                "temperature": kwargs.get("temperature", 0.7),
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    def _path(self, action: str, **kwargs: Any) -> str:
        return f"/models/{kwargs.get('model') or self.model}:{action}"

    def _parse(
        self, data: dict[str, Any], start_time: float, name_map: dict[str, str] | None = None
    ) -> ProviderResponse:
        candidate = (data.get("candidates") or [{}])[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        usage = data.get("usageMetadata") or {}
        return self._response(
            "".join(part.get("text", "") for part in parts),
            {
                "input_tokens": usage.get("promptTokenCount", 0),
                "output_tokens": usage.get("candidatesTokenCount", 0),
            },
            start_time,
            tool_calls=self.tool_adapter.parse_tool_calls(self.provider_id, data, name_map),
            stop_reason=candidate.get("finishReason"),
        )

    async def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> ProviderResponse:
        start_time = time.time()
        data = await self._post(
            self._path("generateContent", **kwargs), self._payload(messages, **kwargs)
        )
        return self._parse(data, start_time)

    async def chat_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
        **kwargs: Any,
    ) -> ProviderResponse:
        start_time = time.time()
        payload = self._payload(messages, **kwargs)
        payload["tools"] = [
            {
                "functionDeclarations": self.tool_adapter.to_provider_format_batch(
                    tools, self.provider_id
                )
            }
        ]
        data = await self._post(self._path("generateContent", **kwargs), payload)
        return self._parse(data, start_time, self.tool_adapter.wire_names(tools, self.provider_id))

    async def stream_chat(
        self, messages: list[dict[str, Any]], **kwargs: Any
    ) -> AsyncIterator[str]:
        async for line in self._stream_lines(
            self._path("streamGenerateContent", **kwargs),
            self._payload(messages, **kwargs),
            params={"alt": "sse"},
        ):
            chunk = self._sse_data(line)
            if not chunk:
                continue
            candidate = (chunk.get("candidates") or [{}])[0]
            for part in (candidate.get("content") or {}).get("parts") or []:
                if part.get("text"):
                    yield part["text"]
