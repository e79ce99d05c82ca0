"""Input validation and log sanitization for gateway requests"""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)


class InputValidator:
    """Request and conversation-history checks run before any provider call"""

    # Logged, never blocked: code samples legitimately contain these
    SUSPICIOUS_PATTERNS = [
        r"<\s*script\b",
        r"javascript\s*:",
        r"\{\{.*\}\}",
        r"\$\{.*\}",
        r"__proto__",
        r"eval\s*\(",
        r"exec\s*\(",
    ]

    SECRET_PATTERNS = [
        r"(sk-|api[_-]?key\s*[=:]?\s*|bearer\s+)[a-zA-Z0-9\-_=]{20,}",
        r"AIza[0-9A-Za-z\-_]{35}",
    ]

    MAX_PROMPT_LENGTH = 500000
    MAX_MESSAGES = 100
    MAX_HISTORY_LENGTH = 2000000
    VALID_ROLES = {"system", "user", "assistant", "tool"}

    @classmethod
    def validate_prompt(cls, prompt: str | None) -> tuple[bool, str]:
        if not isinstance(prompt, str) or not prompt.strip():
            return False, "Invalid prompt: must be a non-empty string"

        if len(prompt) > cls.MAX_PROMPT_LENGTH:
            return False, f"Prompt exceeds maximum length of {cls.MAX_PROMPT_LENGTH}"

        cls._scan(prompt)
        return True, ""

    @classmethod
    def _scan(cls, text: str) -> None:
        for pattern in cls.SUSPICIOUS_PATTERNS:
            if re.search(pattern, text, re.IGNORECASE):
                logger.warning(f"Potentially suspicious pattern in prompt: {pattern}")

    @classmethod
    def validate_messages(cls, messages: list[dict[str, Any]]) -> tuple[bool, str]:
        """Validate a conversation history.

        Beyond per-message content checks this enforces turn structure:
        a system turn may only open the history, an assistant turn may be
        empty only when it carried tool calls, and tool results must answer
        a preceding assistant tool call.
        """
        if len(messages) > cls.MAX_MESSAGES:
            return False, f"Too many messages: max {cls.MAX_MESSAGES}"

        total_length = 0
        open_tool_calls = False
        for i, msg in enumerate(messages):
            if not isinstance(msg, dict) or "role" not in msg or "content" not in msg:
                return False, f"Message {i} missing required fields"

            role = msg["role"]
            content = msg["content"]
            if role not in cls.VALID_ROLES:
                return False, f"Message {i} has unknown role '{role}'"
            if content is not None and not isinstance(content, str):
                return False, f"Message {i}: content must be a string"

            if role == "system":
                error = cls._check_system(i, content)
            elif role == "assistant":
                error = cls._check_assistant(i, content, msg.get("tool_calls"))
            elif role == "tool":
                error = cls._check_tool(i, content, msg, open_tool_calls)
            else:
                is_valid, error = cls.validate_prompt(content)
                if not is_valid:
                    error = f"Message {i}: {error}"
            if error:
                return False, error

            total_length += len(content or "")
            if total_length > cls.MAX_HISTORY_LENGTH:
                return False, f"History exceeds maximum length of {cls.MAX_HISTORY_LENGTH}"

            if role == "assistant":
                open_tool_calls = bool(msg.get("tool_calls"))
            elif role != "tool":
                open_tool_calls = False

        return True, ""

    @classmethod
    def _check_system(cls, index: int, content: str | None) -> str:
        if index != 0:
            return f"Message {index}: system turn must come first"
        is_valid, error = cls.validate_prompt(content)
        return "" if is_valid else f"Message {index}: {error}"

    @classmethod
    def _check_assistant(cls, index: int, content: str | None, tool_calls: Any) -> str:
        if tool_calls:
            if not isinstance(tool_calls, list):
                return f"Message {index}: tool_calls must be a list"
            for call in tool_calls:
                if not cls._tool_call_name(call):
                    return f"Message {index}: tool call without a name"
            return ""
        if not content:
            return f"Message {index}: assistant turn has neither content nor tool calls"
        if len(content) > cls.MAX_PROMPT_LENGTH:
            return f"Message {index}: content exceeds maximum length of {cls.MAX_PROMPT_LENGTH}"
        return ""

    @classmethod
    def _check_tool(
        cls, index: int, content: str | None, msg: dict[str, Any], open_tool_calls: bool
    ) -> str:
        if not open_tool_calls:
            return f"Message {index}: tool result without a preceding tool call"
        if not (msg.get("tool_call_id") or msg.get("name")):
            return f"Message {index}: tool result needs a tool_call_id or name"
        # Empty tool output is a legitimate result
        if content and len(content) > cls.MAX_PROMPT_LENGTH:
            return f"Message {index}: content exceeds maximum length of {cls.MAX_PROMPT_LENGTH}"
        return ""

    @staticmethod
    def _tool_call_name(call: Any) -> str | None:
        if isinstance(call, dict):
            function = call.get("function")
            if isinstance(function, dict):
                return function.get("name")
            return call.get("name")
        return getattr(call, "name", None)

    @classmethod
    def sanitize_for_logging(cls, text: str, max_len: int = 100) -> str:
        """Truncate and redact anything that looks like a credential"""
        if not text:
            return ""
        sanitized = text[:max_len]
        for pattern in cls.SECRET_PATTERNS:
            sanitized = re.sub(pattern, "[REDACTED]", sanitized, flags=re.IGNORECASE)
        return sanitized + ("..." if len(text) > max_len else "")
