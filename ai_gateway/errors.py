"""
Gateway Error Taxonomy
======================
Structured errors raised inside the gateway. Every error carries a kind,
a human-readable message and an optional underlying cause, so callers never
have to parse bare strings.

Only CostLimitExceeded, AllProvidersExhausted and ValidationFailed ever reach
a caller, and even those arrive folded into an ExecutionResult rather than
raised out of UnifiedExecutor.execute().
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error categories"""

    PROVIDER_UNAVAILABLE = "provider_unavailable"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    ALL_PROVIDERS_EXHAUSTED = "all_providers_exhausted"
    COST_LIMIT_EXCEEDED = "cost_limit_exceeded"
    TOOL_INCOMPATIBLE = "tool_incompatible"
    VALIDATION_FAILED = "validation_failed"
    NO_PROVIDER_AVAILABLE = "no_provider_available"


class GatewayError(Exception):
    """Base class for all gateway errors"""

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data


class ProviderUnavailable(GatewayError):
    """Provider is not registered or its breaker refuses calls"""

    kind = ErrorKind.PROVIDER_UNAVAILABLE

    def __init__(
        self,
        provider: str,
        message: str | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        self.provider = provider
        super().__init__(message or f"Provider '{provider}' is not available", cause=cause)


class CircuitOpen(ProviderUnavailable):
    """Breaker for the provider is open (or its half-open trial is taken)"""

    def __init__(self, provider: str, retry_after: float = 0.0) -> None:
        self.retry_after = retry_after
        super().__init__(
            provider,
            f"Circuit breaker for '{provider}' is open. "
            f"Retry in {retry_after:.1f}s.",
        )


class ProviderTimeout(GatewayError):
    """A single provider attempt exceeded its deadline"""

    kind = ErrorKind.TIMEOUT

    def __init__(self, provider: str, timeout: float) -> None:
        self.provider = provider
        self.timeout = timeout
        super().__init__(f"Provider '{provider}' timed out after {timeout:.1f}s")


class ProviderError(GatewayError):
    """A provider call failed (HTTP error, malformed payload, ...)"""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(
        self, provider: str, message: str, *, cause: BaseException | None = None
    ) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}", cause=cause)


class AllProvidersExhausted(GatewayError):
    """Primary and every fallback candidate failed"""

    kind = ErrorKind.ALL_PROVIDERS_EXHAUSTED

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        attempts: list[Any] | None = None,
    ) -> None:
        self.attempts = attempts or []
        super().__init__(message, cause=cause)


class CostLimitExceeded(GatewayError):
    """Pre-flight estimate is above the caller's cost limit"""

    kind = ErrorKind.COST_LIMIT_EXCEEDED

    def __init__(self, estimated_cost: float, cost_limit: float) -> None:
        self.estimated_cost = estimated_cost
        self.cost_limit = cost_limit
        super().__init__(
            f"Estimated cost (${estimated_cost:.4f}) exceeds limit (${cost_limit:.4f})"
        )


class ToolIncompatible(GatewayError):
    """No candidate provider can accept the required tool schemas"""

    kind = ErrorKind.TOOL_INCOMPATIBLE


class ValidationFailed(GatewayError):
    """Malformed input: prompt, messages or tool definition"""

    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class NoProviderAvailable(GatewayError):
    """Router found no live provider to rank"""

    kind = ErrorKind.NO_PROVIDER_AVAILABLE
