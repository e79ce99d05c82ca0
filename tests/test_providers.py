"""
Provider wire-format tests against httpx.MockTransport.
"""

import json

import httpx
import pytest

from ai_gateway.errors import ProviderError
from ai_gateway.models import ToolCall
from ai_gateway.providers import (
    ClaudeProvider,
    DeepSeekProvider,
    GeminiProvider,
    OllamaProvider,
    OpenAIProvider,
    format_http_error,
)
from ai_gateway.providers.base import ProviderRegistry
from ai_gateway.retry import RetryPolicy

from tests.helpers import FakeProvider, read_file_tool


class Recorder:
    """MockTransport handler that records requests and replays one response"""

    def __init__(self, status_code=200, json_body=None, text=None, headers=None):
        self.status_code = status_code
        self.json_body = json_body
        self.text = text
        self.headers = headers or {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text, headers=self.headers)
        return httpx.Response(self.status_code, json=self.json_body, headers=self.headers)

    @property
    def body(self):
        return json.loads(self.requests[-1].content)


def make(provider_class, recorder, **kwargs):
    return provider_class(api_key="test-key", transport=httpx.MockTransport(recorder), **kwargs)


TOOL_TURN = [
    {"role": "system", "content": "You are helpful."},
    {"role": "user", "content": "Read notes.txt"},
    {
        "role": "assistant",
        "content": "",
        "tool_calls": [ToolCall("call_1", "read_file", {"path": "notes.txt"})],
    },
    {"role": "tool", "tool_call_id": "call_1", "name": "read_file", "content": "hello"},
]


class TestClaudeProvider:
    @pytest.mark.asyncio
    async def test_chat(self):
        recorder = Recorder(
            json_body={
                "model": "claude-3-5-sonnet-20241022",
                "content": [{"type": "text", "text": "Hi there"}],
                "usage": {"input_tokens": 1000, "output_tokens": 2000},
                "stop_reason": "end_turn",
            }
        )
        provider = make(ClaudeProvider, recorder)
        response = await provider.chat(
            [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hello"},
            ],
            max_tokens=100,
        )

        assert response.content == "Hi there"
        assert response.provider == "claude"
        assert response.usage == {"input_tokens": 1000, "output_tokens": 2000}
        assert response.stop_reason == "end_turn"

        request = recorder.requests[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert recorder.body["system"] == "Be brief."
        assert recorder.body["messages"] == [{"role": "user", "content": "Hello"}]
        assert recorder.body["max_tokens"] == 100

    def test_cost_from_usage(self):
        provider = ClaudeProvider(api_key="k")
        assert provider.estimate_cost(
            {"input_tokens": 1_000_000, "output_tokens": 1_000_000}
        ) == pytest.approx(18.0)

    @pytest.mark.asyncio
    async def test_tool_turns_and_tool_use_parsing(self):
        recorder = Recorder(
            json_body={
                "content": [
                    {"type": "text", "text": "Let me look."},
                    {
                        "type": "tool_use",
                        "id": "toolu_2",
                        "name": "read_file",
                        "input": {"path": "other.txt"},
                    },
                ],
                "usage": {"input_tokens": 5, "output_tokens": 5},
                "stop_reason": "tool_use",
            }
        )
        provider = make(ClaudeProvider, recorder)
        response = await provider.chat_with_tools(TOOL_TURN, [read_file_tool()])

        assert response.tool_calls == [ToolCall("toolu_2", "read_file", {"path": "other.txt"})]
        body = recorder.body
        assert body["tools"][0]["name"] == "read_file"
        assert "input_schema" in body["tools"][0]
        assert body["messages"][1] == {
            "role": "assistant",
            "content": [
                {
                    "type": "tool_use",
                    "id": "call_1",
                    "name": "read_file",
                    "input": {"path": "notes.txt"},
                }
            ],
        }
        assert body["messages"][2]["content"][0]["type"] == "tool_result"
        assert body["messages"][2]["content"][0]["tool_use_id"] == "call_1"

    @pytest.mark.asyncio
    async def test_stream(self):
        events = [
            {"type": "message_start"},
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hel"}},
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "lo"}},
            {"type": "message_stop"},
        ]
        text = "".join(f"event: x\ndata: {json.dumps(e)}\n\n" for e in events)
        provider = make(ClaudeProvider, Recorder(text=text))

        chunks = [chunk async for chunk in provider.stream_chat([{"role": "user", "content": "Hi"}])]
        assert chunks == ["Hel", "lo"]


class TestOpenAICompatibleProviders:
    @pytest.mark.asyncio
    async def test_chat(self):
        recorder = Recorder(
            json_body={
                "model": "gpt-4o-mini",
                "choices": [
                    {"message": {"role": "assistant", "content": "Hi"}, "finish_reason": "stop"}
                ],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3},
            }
        )
        provider = make(OpenAIProvider, recorder)
        response = await provider.chat([{"role": "user", "content": "Hello"}])

        assert response.content == "Hi"
        assert response.usage == {"input_tokens": 12, "output_tokens": 3}
        assert recorder.requests[0].url.path == "/v1/chat/completions"
        assert recorder.requests[0].headers["authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_tool_calls_round_trip(self):
        recorder = Recorder(
            json_body={
                "choices": [
                    {
                        "message": {
                            "role": "assistant",
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "call_9",
                                    "type": "function",
                                    "function": {
                                        "name": "read_file",
                                        "arguments": '{"path": "b.txt"}',
                                    },
                                }
                            ],
                        },
                        "finish_reason": "tool_calls",
                    }
                ],
                "usage": {},
            }
        )
        provider = make(OpenAIProvider, recorder)
        response = await provider.chat_with_tools(TOOL_TURN, [read_file_tool()])

        assert response.content == ""
        assert response.tool_calls == [ToolCall("call_9", "read_file", {"path": "b.txt"})]
        body = recorder.body
        assert body["tool_choice"] == "auto"
        assert body["tools"][0]["type"] == "function"
        assistant = body["messages"][2]
        assert assistant["tool_calls"][0]["function"]["arguments"] == '{"path": "notes.txt"}'
        assert body["messages"][3] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": "hello",
        }

    @pytest.mark.asyncio
    async def test_deepseek_uses_its_own_endpoint(self):
        recorder = Recorder(json_body={"choices": [{"message": {"content": "ok"}}]})
        provider = make(DeepSeekProvider, recorder)
        response = await provider.chat([{"role": "user", "content": "Hello"}])

        assert response.provider == "deepseek"
        assert recorder.requests[0].url.host == "api.deepseek.com"
        assert recorder.body["model"] == "deepseek-chat"

    @pytest.mark.asyncio
    async def test_stream(self):
        chunks = [
            {"choices": [{"delta": {"role": "assistant"}}]},
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
        ]
        text = "".join(f"data: {json.dumps(c)}\n\n" for c in chunks) + "data: [DONE]\n\n"
        provider = make(OpenAIProvider, Recorder(text=text))

        result = [c async for c in provider.stream_chat([{"role": "user", "content": "Hi"}])]
        assert result == ["Hel", "lo"]


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_chat(self):
        recorder = Recorder(
            json_body={
                "candidates": [
                    {"content": {"parts": [{"text": "Bonjour"}]}, "finishReason": "STOP"}
                ],
                "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2},
            }
        )
        provider = make(GeminiProvider, recorder)
        response = await provider.chat(
            [
                {"role": "system", "content": "Answer in French."},
                {"role": "user", "content": "Hello"},
            ]
        )

        assert response.content == "Bonjour"
        assert response.usage == {"input_tokens": 4, "output_tokens": 2}
        request = recorder.requests[0]
        assert request.url.path.endswith("/models/gemini-1.5-flash:generateContent")
        assert request.headers["x-goog-api-key"] == "test-key"
        assert recorder.body["systemInstruction"] == {"parts": [{"text": "Answer in French."}]}
        assert recorder.body["contents"] == [{"role": "user", "parts": [{"text": "Hello"}]}]

    @pytest.mark.asyncio
    async def test_function_calls(self):
        recorder = Recorder(
            json_body={
                "candidates": [
                    {
                        "content": {
                            "parts": [
                                {"functionCall": {"name": "read_file", "args": {"path": "c.txt"}}}
                            ]
                        }
                    }
                ]
            }
        )
        provider = make(GeminiProvider, recorder)
        response = await provider.chat_with_tools(TOOL_TURN, [read_file_tool()])

        assert response.tool_calls == [ToolCall("call_0", "read_file", {"path": "c.txt"})]
        body = recorder.body
        declaration = body["tools"][0]["functionDeclarations"][0]
        assert declaration["parameters"]["type"] == "OBJECT"
        assert body["contents"][1] == {
            "role": "model",
            "parts": [{"functionCall": {"name": "read_file", "args": {"path": "notes.txt"}}}],
        }
        assert body["contents"][2] == {
            "role": "user",
            "parts": [
                {"functionResponse": {"name": "read_file", "response": {"content": "hello"}}}
            ],
        }

    @pytest.mark.asyncio
    async def test_stream(self):
        chunks = [
            {"candidates": [{"content": {"parts": [{"text": "Bon"}]}}]},
            {"candidates": [{"content": {"parts": [{"text": "jour"}]}}]},
        ]
        recorder = Recorder(text="".join(f"data: {json.dumps(c)}\r\n\r\n" for c in chunks))
        provider = make(GeminiProvider, recorder)

        result = [c async for c in provider.stream_chat([{"role": "user", "content": "Hi"}])]
        assert result == ["Bon", "jour"]
        assert recorder.requests[0].url.params["alt"] == "sse"


class TestOllamaProvider:
    @pytest.mark.asyncio
    async def test_chat_without_key(self, monkeypatch):
        monkeypatch.setattr("ai_gateway.providers.base.get_api_key", lambda name: None)
        recorder = Recorder(
            json_body={
                "model": "llama3.1",
                "message": {"role": "assistant", "content": "Hey"},
                "prompt_eval_count": 7,
                "eval_count": 2,
                "done": True,
                "done_reason": "stop",
            }
        )
        provider = OllamaProvider(transport=httpx.MockTransport(recorder))
        response = await provider.chat([{"role": "user", "content": "Hello"}])

        assert response.content == "Hey"
        assert response.usage == {"input_tokens": 7, "output_tokens": 2}
        assert "authorization" not in recorder.requests[0].headers
        assert recorder.body["stream"] is False
        assert response.stop_reason == "stop"

    @pytest.mark.asyncio
    async def test_tool_calls_with_object_arguments(self):
        recorder = Recorder(
            json_body={
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {"function": {"name": "read_file", "arguments": {"path": "d.txt"}}}
                    ],
                },
                "done": True,
            }
        )
        provider = make(OllamaProvider, recorder)
        response = await provider.chat_with_tools(
            [{"role": "user", "content": "Read d.txt"}], [read_file_tool()]
        )
        assert response.tool_calls == [ToolCall("call_0", "read_file", {"path": "d.txt"})]

    @pytest.mark.asyncio
    async def test_stream_ndjson(self):
        lines = [
            {"message": {"content": "Hel"}, "done": False},
            {"message": {"content": "lo"}, "done": False},
            {"message": {"content": ""}, "done": True},
        ]
        text = "\n".join(json.dumps(line) for line in lines) + "\n"
        provider = make(OllamaProvider, Recorder(text=text))

        result = [c async for c in provider.stream_chat([{"role": "user", "content": "Hi"}])]
        assert result == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_is_available(self):
        provider = make(OllamaProvider, Recorder(json_body={"version": "0.3.0"}))
        assert await provider.is_available() is True

    @pytest.mark.asyncio
    async def test_is_not_available(self, monkeypatch):
        monkeypatch.setattr("ai_gateway.providers.base.get_api_key", lambda name: None)

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = OllamaProvider(transport=httpx.MockTransport(refuse))
        assert await provider.is_available() is False


class TestErrorMapping:
    def test_format_http_error_uses_payload_message(self):
        request = httpx.Request("POST", "https://api.example.com/v1/messages")
        response = httpx.Response(
            429,
            json={"error": {"message": "Rate limit reached"}},
            headers={"Retry-After": "20"},
            request=request,
        )
        exc = httpx.HTTPStatusError("429", request=request, response=response)
        assert format_http_error(exc) == "HTTP 429: Rate limit reached Retry-After: 20."

    def test_format_http_error_string_error(self):
        request = httpx.Request("POST", "http://localhost:11434/api/chat")
        response = httpx.Response(404, json={"error": "model not found"}, request=request)
        exc = httpx.HTTPStatusError("404", request=request, response=response)
        assert format_http_error(exc) == "HTTP 404: model not found"

    def test_format_http_error_non_json(self):
        request = httpx.Request("POST", "https://api.example.com")
        response = httpx.Response(502, text="<html>bad gateway</html>", request=request)
        exc = httpx.HTTPStatusError("502", request=request, response=response)
        assert format_http_error(exc) == "HTTP 502: Bad Gateway"

    @pytest.mark.asyncio
    async def test_http_status_becomes_provider_error(self):
        recorder = Recorder(status_code=401, json_body={"error": {"message": "Invalid key"}})
        provider = make(OpenAIProvider, recorder)

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat([{"role": "user", "content": "Hello"}])
        assert exc_info.value.message == "[openai] HTTP 401: Invalid key"
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_network_error_becomes_provider_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = ClaudeProvider(api_key="k", transport=httpx.MockTransport(refuse))
        with pytest.raises(ProviderError) as exc_info:
            await provider.chat([{"role": "user", "content": "Hello"}])
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        provider = make(ClaudeProvider, Recorder(text="not json"))
        with pytest.raises(ProviderError) as exc_info:
            await provider.chat([{"role": "user", "content": "Hello"}])
        assert "Malformed JSON" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_stream_error(self):
        recorder = Recorder(status_code=500, json_body={"error": {"message": "overloaded"}})
        provider = make(GeminiProvider, recorder)
        with pytest.raises(ProviderError) as exc_info:
            async for _ in provider.stream_chat([{"role": "user", "content": "Hi"}]):
                pass
        assert "overloaded" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_key(self, monkeypatch):
        monkeypatch.setattr("ai_gateway.providers.base.get_api_key", lambda name: None)
        provider = OpenAIProvider()
        with pytest.raises(ProviderError) as exc_info:
            await provider.chat([{"role": "user", "content": "Hello"}])
        assert "not configured" in exc_info.value.message


class TestProviderRegistry:
    def test_registration_order_and_policy(self):
        registry = ProviderRegistry()
        registry.register(FakeProvider("gemini"), RetryPolicy(attempts=2))
        registry.register(FakeProvider("claude"))

        assert [p.value for p in registry.ids()] == ["gemini", "claude"]
        assert registry.retry_policy("gemini").attempts == 2
        assert registry.retry_policy("claude") == RetryPolicy()
        assert "claude" in registry
        assert "openai" not in registry
        assert "mystery" not in registry
        assert len(registry) == 2

    def test_unknown_provider_rejected(self):
        provider = FakeProvider("claude")
        provider.provider_id = "mystery"
        with pytest.raises(ValueError):
            ProviderRegistry().register(provider)

    @pytest.mark.asyncio
    async def test_aclose(self):
        recorder = Recorder(json_body={"choices": [{"message": {"content": "ok"}}]})
        provider = make(OpenAIProvider, recorder)
        registry = ProviderRegistry()
        registry.register(provider)
        await provider.chat([{"role": "user", "content": "Hello"}])

        await registry.aclose()
        assert provider._client is None
