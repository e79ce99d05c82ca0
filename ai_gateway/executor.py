"""
Unified Executor
================
Single entry point for running a request against the provider pool.

execute() never raises for ordinary failures: validation problems, cost limit
violations, routing dead-ends and provider exhaustion all come back as an
ExecutionResult with success=False and a structured error kind.

Flow per request:
    cache lookup -> analyze -> cost check -> route -> primary (retry + timeout)
    -> fallback chain on failure -> cache write -> result
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from .analyzer import BaseTaskAnalyzer, KeywordTaskAnalyzer
from .cache import EvictionPolicy, ResponseCache, SQLiteCacheStore
from .circuit_breaker import CircuitBreakerRegistry
from .config import GatewayConfig, load_config
from .credentials import get_api_key
from .errors import (
    AllProvidersExhausted,
    CostLimitExceeded,
    GatewayError,
    NoProviderAvailable,
    ProviderUnavailable,
    ToolIncompatible,
    ValidationFailed,
)
from .fallback import ChainStep, FallbackChainExecutor
from .models import ExecutionOptions, ExecutionResult, ProviderID, ProviderResponse
from .monitoring import Budget, CostTracker, ProviderMonitor
from .providers import PROVIDER_CLASSES
from .providers.base import BaseProvider, ProviderRegistry
from .retry import RetryHandler, RetryPolicy
from .router import DynamicRouter
from .tools import ToolDefinition, ToolRegistry
from .validation import InputValidator

logger = logging.getLogger(__name__)


class ToolExecutor(Protocol):
    """Runs a tool the model asked for and returns its result"""

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...


@dataclass
class PerformanceStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cache_hits: int = 0
    fallback_count: int = 0
    total_cost: float = 0.0
    total_duration_ms: float = 0.0
    provider_usage: dict[str, int] = field(default_factory=dict)

    @property
    def average_latency_ms(self) -> float:
        return self.total_duration_ms / self.total_requests if self.total_requests else 0.0

    @property
    def cache_hit_rate(self) -> float:
        return self.cache_hits / self.total_requests if self.total_requests else 0.0

    @property
    def success_rate(self) -> float:
        return self.successful_requests / self.total_requests if self.total_requests else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "cache_hits": self.cache_hits,
            "fallback_count": self.fallback_count,
            "total_cost": round(self.total_cost, 6),
            "average_latency_ms": round(self.average_latency_ms, 2),
            "cache_hit_rate": round(self.cache_hit_rate, 4),
            "success_rate": round(self.success_rate, 4),
            "provider_usage": dict(self.provider_usage),
        }


@dataclass
class _Conversation:
    """What one provider produced for a request, tool rounds included"""

    response: ProviderResponse
    tools_used: list[str]
    usage: dict[str, int]
    cost: float
    warnings: list[str]
    pending_tool_calls: list[str]


class UnifiedExecutor:
    """Analyze, route, execute and fall back across providers"""

    def __init__(
        self,
        providers: ProviderRegistry,
        *,
        analyzer: BaseTaskAnalyzer | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        cache: ResponseCache | None = None,
        tool_registry: ToolRegistry | None = None,
        tool_executor: ToolExecutor | None = None,
        max_parallel: int = 5,
        defaults: dict[str, Any] | None = None,
        monitor: ProviderMonitor | None = None,
        cost_tracker: CostTracker | None = None,
    ) -> None:
        self.providers = providers
        self.analyzer = analyzer or KeywordTaskAnalyzer()
        self.breakers = breakers or CircuitBreakerRegistry()
        for provider_id in providers.ids():
            self.breakers.register(provider_id.value)
        self.cache = cache
        self.tool_registry = tool_registry
        self.tool_executor = tool_executor
        self.max_parallel = max_parallel
        self.defaults = defaults or {}
        self.monitor = monitor or ProviderMonitor()
        self.cost_tracker = cost_tracker or CostTracker()

        self.router = DynamicRouter(providers, self.breakers, tool_registry)
        self.fallback = FallbackChainExecutor(providers, self.breakers)

        self._stats = PerformanceStats()
        self._stats_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self, request: str, options: ExecutionOptions | None = None
    ) -> ExecutionResult:
        options = options or ExecutionOptions.from_config(self.defaults)
        execution_id = uuid.uuid4().hex[:12]
        start_time = time.time()
        base_metadata = {"execution_id": execution_id}

        is_valid, error = InputValidator.validate_prompt(request)
        if is_valid and options.conversation_history:
            is_valid, error = InputValidator.validate_messages(options.conversation_history)
        if not is_valid:
            return self._finish(
                self._failure(ValidationFailed(error), start_time, metadata=base_metadata)
            )

        logger.info(
            f"[{execution_id}] Executing: {InputValidator.sanitize_for_logging(request)}"
        )

        cache_key: str | None = None
        if options.use_cache and self.cache is not None:
            cache_key = ResponseCache.make_key(
                request,
                system_prompt=options.system_prompt,
                history=options.conversation_history,
                use_tools=options.use_tools,
                specific_tools=options.specific_tools,
            )
            entry = self.cache.get(cache_key)
            if entry is not None:
                logger.info(f"[{execution_id}] Cache hit ({entry.provider})")
                return self._finish(
                    ExecutionResult(
                        success=True,
                        provider=entry.provider,
                        response=entry.content,
                        cost=0.0,
                        duration_ms=(time.time() - start_time) * 1000,
                        attempts=0,
                        from_cache=True,
                        metadata={
                            **base_metadata,
                            "cached_at": entry.created_at,
                            "original_cost": entry.cost,
                        },
                    )
                )

        analysis = self.analyzer.analyze(request, options.priority)

        if options.cost_limit is not None and analysis.estimated_cost > options.cost_limit:
            return self._finish(
                self._failure(
                    CostLimitExceeded(analysis.estimated_cost, options.cost_limit),
                    start_time,
                    analysis=analysis,
                    metadata=base_metadata,
                )
            )

        try:
            routing = self.router.route(
                analysis,
                respect_breakers=options.circuit_breaker_enabled,
                tool_names=options.specific_tools if options.use_tools else (),
            )
        except (NoProviderAvailable, ToolIncompatible) as e:
            return self._finish(
                self._failure(e, start_time, analysis=analysis, metadata=base_metadata)
            )

        messages = self._build_messages(request, options)
        tools = self._tools_for(routing.tool_set, options)

        async def call(provider: BaseProvider) -> _Conversation:
            return await self._run_conversation(provider, messages, tools, options)

        breakers = self.breakers if options.circuit_breaker_enabled else None
        primary = routing.primary
        primary_attempts = 0
        primary_error: GatewayError | None = None
        winner: ProviderID = primary
        conversation: _Conversation | None = None

        async def counted_primary() -> _Conversation:
            nonlocal primary_attempts
            primary_attempts += 1
            provider = self.providers.get(primary)
            if provider is None:
                raise ProviderUnavailable(primary.value)
            return await call(provider)

        primary_start = time.time()
        try:
            if breakers is not None:
                breakers.check(primary.value)
            conversation = await RetryHandler.execute_with_retry(
                counted_primary,
                RetryPolicy(attempts=options.retry_attempts, timeout=options.timeout),
                primary.value,
            )
            if breakers is not None:
                breakers.record_success(primary.value)
            self._record_success(
                primary.value,
                (time.time() - primary_start) * 1000,
                conversation,
                self._cost_of(conversation, analysis.estimated_cost),
            )
        except GatewayError as e:
            primary_error = e
            if primary_attempts > 0:
                if breakers is not None:
                    breakers.record_failure(primary.value)
                self.monitor.record_failure(
                    primary.value, e.message, (time.time() - primary_start) * 1000
                )
            logger.warning(f"[{execution_id}] Primary provider {primary.value} failed: {e.message}")

        attempts = primary_attempts
        metadata: dict[str, Any] = {
            **base_metadata,
            "fallback_used": False,
            "routing_reason": routing.reason,
        }

        if conversation is None:
            assert primary_error is not None
            metadata["primary_error"] = primary_error.message
            if not routing.fallbacks:
                exhausted = AllProvidersExhausted(
                    f"All providers failed ({primary.value}: {primary_error.message})",
                    cause=primary_error,
                )
                return self._finish(
                    self._failure(
                        exhausted,
                        start_time,
                        provider=primary.value,
                        attempts=attempts,
                        analysis=analysis,
                        routing=routing,
                        metadata=metadata,
                    )
                )

            try:
                chain = await self.fallback.execute_chain(
                    routing.fallbacks,
                    call,
                    use_breakers=options.circuit_breaker_enabled,
                    timeout=options.timeout,
                )
            except AllProvidersExhausted as e:
                self._record_steps(e.attempts)
                metadata["fallback_steps"] = [s.to_dict() for s in e.attempts]
                return self._finish(
                    self._failure(
                        e,
                        start_time,
                        provider=primary.value,
                        attempts=attempts + len(e.attempts),
                        analysis=analysis,
                        routing=routing,
                        metadata=metadata,
                    )
                )

            conversation = chain.value
            winner = chain.provider
            self._record_steps(
                chain.steps, conversation, self._cost_of(conversation, analysis.estimated_cost)
            )
            attempts += chain.attempts
            metadata["fallback_used"] = True
            metadata["fallback_steps"] = [s.to_dict() for s in chain.steps]

        response = conversation.response
        metadata["model"] = response.model
        if conversation.pending_tool_calls:
            metadata["pending_tool_calls"] = conversation.pending_tool_calls

        cost = self._cost_of(conversation, analysis.estimated_cost)
        alerts = self.cost_tracker.record_cost(
            winner.value,
            response.model,
            cost,
            conversation.usage.get("input_tokens", 0),
            conversation.usage.get("output_tokens", 0),
        )
        warnings = conversation.warnings + [alert.message for alert in alerts]
        if alerts:
            metadata["budget_alerts"] = [alert.to_dict() for alert in alerts]

        result = ExecutionResult(
            success=True,
            provider=winner.value,
            response=response.content,
            cost=cost,
            duration_ms=(time.time() - start_time) * 1000,
            attempts=attempts,
            tools_used=conversation.tools_used,
            warnings=warnings,
            analysis=analysis,
            routing=routing,
            tokens_used=conversation.usage,
            metadata=metadata,
        )

        # A turn that stopped on unanswered tool calls is not a final answer
        if (
            cache_key is not None
            and self.cache is not None
            and not conversation.pending_tool_calls
        ):
            self.cache.put(cache_key, response.content, winner.value, cost)

        logger.info(
            f"[{execution_id}] Completed with {winner.value} "
            f"in {result.duration_ms:.0f}ms ({attempts} attempts)"
        )
        return self._finish(result)

    async def execute_parallel(
        self,
        requests: list[str],
        options: ExecutionOptions | None = None,
        max_concurrent: int | None = None,
    ) -> list[ExecutionResult]:
        """Run several requests with bounded concurrency; results keep input order"""
        semaphore = asyncio.Semaphore(max_concurrent or self.max_parallel)

        async def bounded(request: str) -> ExecutionResult:
            async with semaphore:
                return await self.execute(request, options)

        results = await asyncio.gather(*(bounded(r) for r in requests), return_exceptions=True)

        final: list[ExecutionResult] = []
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Parallel execution raised: {result}")
                final.append(
                    ExecutionResult(
                        success=False,
                        provider="none",
                        error=str(result),
                        error_kind="unexpected",
                    )
                )
            else:
                final.append(result)
        return final

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_messages(request: str, options: ExecutionOptions) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.extend(dict(m) for m in options.conversation_history)
        messages.append({"role": "user", "content": request})
        return messages

    def _tools_for(
        self, tool_set: tuple[str, ...], options: ExecutionOptions
    ) -> list[ToolDefinition]:
        if not options.use_tools or self.tool_registry is None:
            return []
        names = options.specific_tools if options.specific_tools is not None else tool_set
        return self.tool_registry.definitions(list(names))

    async def _run_conversation(
        self,
        provider: BaseProvider,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
        options: ExecutionOptions,
    ) -> _Conversation:
        history = list(messages)
        tools_used: list[str] = []
        warnings: list[str] = []
        usage = {"input_tokens": 0, "output_tokens": 0}
        cost = 0.0
        calls_made = 0
        kwargs = {"temperature": options.temperature, "max_tokens": options.max_tokens}

        while True:
            if tools:
                response = await provider.chat_with_tools(history, tools, **kwargs)
            else:
                response = await provider.chat(history, **kwargs)

            for key in usage:
                usage[key] += response.usage.get(key, 0)
            cost += provider.estimate_cost(response.usage)

            if not response.tool_calls:
                break
            if self.tool_executor is None:
                requested = ", ".join(c.name for c in response.tool_calls)
                warnings.append(f"Model requested tools ({requested}) but no tool executor is set")
                break
            if calls_made + len(response.tool_calls) > options.max_tool_calls:
                warnings.append(f"Tool call limit of {options.max_tool_calls} reached")
                break

            history.append(
                {
                    "role": "assistant",
                    "content": response.content,
                    "tool_calls": response.tool_calls,
                }
            )
            for tool_call in response.tool_calls:
                calls_made += 1
                tools_used.append(tool_call.name)
                history.append(
                    {
                        "role": "tool",
                        "tool_call_id": tool_call.id,
                        "name": tool_call.name,
                        "content": await self._run_tool(tool_call.name, tool_call.arguments),
                    }
                )

        pending = [c.name for c in response.tool_calls] if response.tool_calls else []
        return _Conversation(
            response=response,
            tools_used=tools_used,
            usage=usage,
            cost=round(cost, 6),
            warnings=warnings,
            pending_tool_calls=pending,
        )

    async def _run_tool(self, name: str, arguments: dict[str, Any]) -> str:
        assert self.tool_executor is not None
        try:
            result = await self.tool_executor.execute_tool(name, arguments)
        except Exception as e:
            # The model gets the failure as the tool result and can recover
            logger.warning(f"Tool {name} failed: {e}")
            return f"Error: {e}"
        return result if isinstance(result, str) else json.dumps(result, default=str)

    @staticmethod
    def _cost_of(conversation: _Conversation, estimate: float) -> float:
        # Providers without usage pricing fall back to the analyzer estimate
        return conversation.cost if conversation.cost > 0 else estimate

    def _record_success(
        self, provider: str, latency_ms: float, conversation: _Conversation, cost: float
    ) -> None:
        tokens = sum(conversation.usage.values())
        self.monitor.record_success(provider, latency_ms, tokens, cost)

    def _record_steps(
        self,
        steps: list[ChainStep],
        conversation: _Conversation | None = None,
        cost: float = 0.0,
    ) -> None:
        for step in steps:
            if step.skipped:
                continue
            if step.success and conversation is not None:
                self._record_success(step.provider, step.duration_ms, conversation, cost)
            else:
                self.monitor.record_failure(step.provider, step.error or "", step.duration_ms)

    @staticmethod
    def _failure(
        error: GatewayError,
        start_time: float,
        provider: str = "none",
        attempts: int = 0,
        **fields: Any,
    ) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            provider=provider,
            error=error.message,
            error_kind=error.kind.value,
            duration_ms=(time.time() - start_time) * 1000,
            attempts=attempts,
            **fields,
        )

    def _finish(self, result: ExecutionResult) -> ExecutionResult:
        with self._stats_lock:
            stats = self._stats
            stats.total_requests += 1
            stats.total_duration_ms += result.duration_ms
            if result.success:
                stats.successful_requests += 1
                stats.total_cost += result.cost
                stats.provider_usage[result.provider] = (
                    stats.provider_usage.get(result.provider, 0) + 1
                )
            else:
                stats.failed_requests += 1
            if result.from_cache:
                stats.cache_hits += 1
            if result.metadata.get("fallback_used"):
                stats.fallback_count += 1
        if not result.success:
            logger.error(f"Execution failed ({result.error_kind}): {result.error}")
        return result

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        with self._stats_lock:
            stats = self._stats.to_dict()
        stats["providers"] = self.monitor.snapshot()
        return stats

    def get_cost_report(self) -> dict[str, Any]:
        report = self.cost_tracker.summary()
        report["alerts"] = [a.to_dict() for a in self.cost_tracker.alerts(acknowledged=False)]
        return report

    def get_system_status(self) -> dict[str, Any]:
        return {
            "providers": [p.value for p in self.providers.ids()],
            "circuit_breakers": self.breakers.snapshot(),
            "cache": self.cache.stats() if self.cache is not None else None,
            "tools": self.tool_registry.names() if self.tool_registry else [],
            "stats": self.get_stats(),
            "costs": self.get_cost_report(),
        }

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._stats = PerformanceStats()
        self.monitor.reset()

    def reset_circuit_breakers(self, provider: str | None = None) -> None:
        self.breakers.reset(provider)

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    async def aclose(self) -> None:
        await self.providers.aclose()


def build_executor(
    config: GatewayConfig | None = None,
    *,
    tool_registry: ToolRegistry | None = None,
    tool_executor: ToolExecutor | None = None,
) -> UnifiedExecutor:
    """Wire every configured provider into a ready executor"""
    config = config or load_config()

    registry = ProviderRegistry()
    for provider_id, provider_class in PROVIDER_CLASSES.items():
        name = provider_id.value
        # Local Ollama is opt-in
        if provider_id == ProviderID.OLLAMA and name not in config.providers:
            continue
        provider_config = config.provider(name)
        if not provider_config.enabled:
            continue
        if provider_class.REQUIRES_API_KEY and not get_api_key(name):
            logger.info(f"Skipping {name}: no API key configured")
            continue
        registry.register(
            provider_class(
                model=provider_config.model,
                base_url=provider_config.base_url,
                timeout=provider_config.timeout,
            ),
            RetryPolicy(
                attempts=max(1, provider_config.retries),
                timeout=provider_config.timeout,
            ),
        )

    breaker_config = config.circuit_breaker
    breakers = CircuitBreakerRegistry(
        (p.value for p in registry.ids()),
        failure_threshold=breaker_config.failure_threshold,
        cooldown=breaker_config.cooldown,
        window=breaker_config.window,
    )

    cache: ResponseCache | None = None
    if config.cache.enabled:
        cache = ResponseCache(
            max_entries=config.cache.max_entries,
            ttl=config.cache.ttl,
            policy=EvictionPolicy(config.cache.policy),
            store=SQLiteCacheStore(config.cache.path) if config.cache.path else None,
        )

    budgets: list[Budget] = []
    for data in config.budgets:
        try:
            budgets.append(Budget.from_dict(data))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid budget {data!r}: {e}")

    if not len(registry):
        logger.warning("No providers configured; run with --configure to add API keys")

    return UnifiedExecutor(
        registry,
        breakers=breakers,
        cache=cache,
        cost_tracker=CostTracker(budgets),
        tool_registry=tool_registry,
        tool_executor=tool_executor,
        max_parallel=config.max_parallel,
        defaults=config.defaults,
    )
