"""
Provider Interface
==================
Every backend implements BaseProvider and returns the same ProviderResponse
shape. Messages use one canonical form across providers:

    {"role": "system" | "user" | "assistant" | "tool", "content": str}

plus, on assistant turns that requested tools, "tool_calls": [ToolCall, ...],
and on tool turns, "tool_call_id" and "name". Each provider converts this to
its own wire format.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from ..credentials import get_api_key
from ..errors import ProviderError
from ..models import ProviderID, ProviderResponse
from ..retry import RetryPolicy
from ..tools import ToolDefinition, ToolSchemaAdapter

logger = logging.getLogger(__name__)


def format_http_error(exc: httpx.HTTPStatusError) -> str:
    """Format detailed error message from HTTP exception."""
    response = exc.response
    status_code = response.status_code
    message = response.reason_phrase or str(exc)
    retry_after = response.headers.get("Retry-After")

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_info = payload.get("error")
        if isinstance(error_info, dict):
            error_message = error_info.get("message")
            if error_message:
                message = error_message
        elif isinstance(error_info, str) and error_info:
            # Ollama reports errors as a plain string
            message = error_info

    if retry_after:
        message = f"{message} Retry-After: {retry_after}."

    return f"HTTP {status_code}: {message}"


class BaseProvider(ABC):
    """Abstract base class for AI providers"""

    provider_id: ProviderID
    DEFAULT_MODEL = ""
    DEFAULT_BASE_URL = ""
    REQUIRES_API_KEY = True
    # USD per million tokens
    INPUT_PRICE = 0.0
    OUTPUT_PRICE = 0.0

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model or self.DEFAULT_MODEL
        self.base_url = base_url or self.DEFAULT_BASE_URL
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.tool_adapter = ToolSchemaAdapter()

    @property
    def provider_name(self) -> str:
        return self.provider_id.value

    def _headers(self, api_key: str | None) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def initialize(self) -> bool:
        """Initialize the provider client"""
        api_key = self._api_key or get_api_key(self.provider_name)
        if self.REQUIRES_API_KEY and not api_key:
            logger.error(f"{self.provider_name} API key not configured")
            return False

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(api_key),
            timeout=self.timeout,
            transport=self._transport,
        )
        return True

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None and not await self.initialize():
            raise ProviderError(self.provider_name, "Provider is not configured")
        assert self._client is not None
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(
        self, path: str, payload: dict[str, Any], params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        client = await self._ensure_client()
        try:
            response = await client.post(path, json=payload, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.provider_name, format_http_error(e), cause=e) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.provider_name, f"Request failed: {e}", cause=e) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.provider_name, "Malformed JSON response", cause=e) from e
        if not isinstance(data, dict):
            raise ProviderError(self.provider_name, "Unexpected response payload")
        return data

    async def _stream_lines(
        self, path: str, payload: dict[str, Any], params: dict[str, str] | None = None
    ) -> AsyncIterator[str]:
        client = await self._ensure_client()
        try:
            async with client.stream("POST", path, json=payload, params=params) as response:
                if response.is_error:
                    await response.aread()
                    response.raise_for_status()
                async for line in response.aiter_lines():
                    if line.strip():
                        yield line
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.provider_name, format_http_error(e), cause=e) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.provider_name, f"Stream failed: {e}", cause=e) from e

    @staticmethod
    def _sse_data(line: str) -> dict[str, Any] | None:
        """Decode one `data:` line of a server-sent event stream"""
        if not line.startswith("data:"):
            return None
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            return None
        try:
            decoded = json.loads(data)
        except ValueError:
            logger.debug(f"Skipping undecodable stream chunk from {line[:40]}")
            return None
        return decoded if isinstance(decoded, dict) else None

    @staticmethod
    def _split_system(
        messages: list[dict[str, Any]],
    ) -> tuple[str, list[dict[str, Any]]]:
        system_parts = [m["content"] for m in messages if m["role"] == "system" and m["content"]]
        rest = [m for m in messages if m["role"] != "system"]
        return "\n\n".join(system_parts), rest

    def estimate_cost(self, usage: dict[str, int]) -> float:
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        return round(
            (input_tokens * self.INPUT_PRICE + output_tokens * self.OUTPUT_PRICE) / 1_000_000,
            6,
        )

    def _response(
        self,
        content: str,
        usage: dict[str, int],
        start_time: float,
        **kwargs: Any,
    ) -> ProviderResponse:
        return ProviderResponse(
            content=content or "",
            provider=self.provider_name,
            model=kwargs.pop("model", self.model),
            usage=usage,
            latency_ms=(time.time() - start_time) * 1000,
            **kwargs,
        )

    @abstractmethod
    async def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> ProviderResponse:
        """Send a plain completion request"""
        pass

    @abstractmethod
    async def chat_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
        **kwargs: Any,
    ) -> ProviderResponse:
        """Send a completion request that offers the given tools"""
        pass

    @abstractmethod
    def stream_chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> AsyncIterator[str]:
        """Yield response text incrementally"""
        pass


@dataclass
class RegisteredProvider:
    provider: BaseProvider
    retry: RetryPolicy


class ProviderRegistry:
    """ProviderID -> provider instance plus the retry policy to call it with"""

    def __init__(self) -> None:
        self._providers: dict[ProviderID, RegisteredProvider] = {}

    def register(self, provider: BaseProvider, retry: RetryPolicy | None = None) -> None:
        provider_id = ProviderID.parse(getattr(provider, "provider_id", ""))
        self._providers[provider_id] = RegisteredProvider(provider, retry or RetryPolicy())
        logger.debug(f"Registered provider: {provider_id.value}")

    def get(self, provider_id: ProviderID | str) -> BaseProvider | None:
        entry = self._providers.get(ProviderID.parse(provider_id))
        return entry.provider if entry else None

    def retry_policy(self, provider_id: ProviderID | str) -> RetryPolicy:
        entry = self._providers.get(ProviderID.parse(provider_id))
        return entry.retry if entry else RetryPolicy()

    def ids(self) -> list[ProviderID]:
        """Registered providers in registration order"""
        return list(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        try:
            return ProviderID.parse(provider_id) in self._providers  # type: ignore[arg-type]
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._providers)

    async def aclose(self) -> None:
        for entry in self._providers.values():
            await entry.provider.aclose()
