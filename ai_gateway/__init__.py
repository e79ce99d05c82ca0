"""
AI Gateway - Resilient Multi-Provider Execution
===============================================

Runs a natural-language request against a pool of interchangeable AI
providers (Claude, OpenAI, Gemini, DeepSeek, Ollama) and always returns a
structured result: the task is analyzed, providers are ranked for it, the
primary is tried with retries and a per-attempt timeout, and failures fall
through to the next candidate. Open circuit breakers keep failing providers
out of rotation, and identical requests are answered from cache.

Example Usage:
    >>> from ai_gateway import build_executor, ExecutionOptions, set_api_key
    >>>
    >>> set_api_key("openai", "sk-...")
    >>>
    >>> import asyncio
    >>>
    >>> async def main():
    ...     executor = build_executor()
    ...     result = await executor.execute(
    ...         "Explain circuit breakers", ExecutionOptions(priority="cost")
    ...     )
    ...     print(result.provider, result.response)
    >>>
    >>> asyncio.run(main())
"""

__version__ = "1.0.0"

from .analyzer import BaseTaskAnalyzer, KeywordTaskAnalyzer
from .cache import CacheEntry, EvictionPolicy, ResponseCache, SQLiteCacheStore
from .circuit_breaker import BreakerState, CircuitBreakerRegistry
from .credentials import (
    CredentialManager,
    configure_credentials_interactive,
    get_api_key,
    get_credential_manager,
    set_api_key,
)
from .errors import (
    AllProvidersExhausted,
    CircuitOpen,
    CostLimitExceeded,
    ErrorKind,
    GatewayError,
    NoProviderAvailable,
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
    ToolIncompatible,
    ValidationFailed,
)
from .executor import PerformanceStats, ToolExecutor, UnifiedExecutor, build_executor
from .fallback import ChainResult, ChainStep, FallbackChainExecutor
from .models import (
    ExecutionOptions,
    ExecutionResult,
    Priority,
    ProviderID,
    ProviderResponse,
    RoutingDecision,
    TaskAnalysis,
    TaskType,
    ToolCall,
)
from .monitoring import AlertLevel, Budget, BudgetAlert, CostTracker, ProviderMonitor
from .providers import BaseProvider, ProviderRegistry
from .retry import RetryHandler, RetryPolicy
from .router import DynamicRouter
from .tools import (
    PropertySchema,
    ToolDefinition,
    ToolMetadata,
    ToolRegistry,
    ToolSchemaAdapter,
)
from .validation import InputValidator

__all__ = [
    "__version__",
    # Execution
    "UnifiedExecutor",
    "build_executor",
    "ExecutionOptions",
    "ExecutionResult",
    "PerformanceStats",
    "ToolExecutor",
    # Analysis and routing
    "BaseTaskAnalyzer",
    "KeywordTaskAnalyzer",
    "DynamicRouter",
    "TaskAnalysis",
    "TaskType",
    "Priority",
    "RoutingDecision",
    # Resilience
    "CircuitBreakerRegistry",
    "BreakerState",
    "FallbackChainExecutor",
    "ChainResult",
    "ChainStep",
    "RetryHandler",
    "RetryPolicy",
    "ResponseCache",
    "CacheEntry",
    "EvictionPolicy",
    "SQLiteCacheStore",
    # Monitoring
    "ProviderMonitor",
    "CostTracker",
    "Budget",
    "BudgetAlert",
    "AlertLevel",
    # Providers and tools
    "BaseProvider",
    "ProviderRegistry",
    "ProviderID",
    "ProviderResponse",
    "ToolCall",
    "ToolDefinition",
    "ToolMetadata",
    "PropertySchema",
    "ToolRegistry",
    "ToolSchemaAdapter",
    # Errors
    "ErrorKind",
    "GatewayError",
    "ProviderUnavailable",
    "CircuitOpen",
    "ProviderTimeout",
    "ProviderError",
    "AllProvidersExhausted",
    "CostLimitExceeded",
    "ToolIncompatible",
    "ValidationFailed",
    "NoProviderAvailable",
    # Credentials and validation
    "get_api_key",
    "set_api_key",
    "get_credential_manager",
    "CredentialManager",
    "configure_credentials_interactive",
    "InputValidator",
]
