"""
Dynamic Router
==============
Turns a TaskAnalysis into a ranked list of candidate providers.

1. Providers whose circuit breaker is open are left out.
2. The rest are ordered by the policy table for the requested priority;
   providers the table does not name (ollama, ...) go last in registration
   order.
3. When the task needs tools, providers that cannot accept every tool schema
   are dropped.
4. The list is cut to 1 candidate for simple tasks, 3 for medium, all for
   complex.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .circuit_breaker import CircuitBreakerRegistry
from .errors import NoProviderAvailable, ToolIncompatible
from .models import Priority, ProviderID, RoutingDecision, TaskAnalysis, TaskType
from .providers.base import ProviderRegistry
from .tools import ToolRegistry, ToolSchemaAdapter

logger = logging.getLogger(__name__)


class DynamicRouter:
    """Ranks registered providers for a task"""

    POLICY_ORDER: dict[Priority, tuple[ProviderID, ...]] = {
        Priority.COST: (
            ProviderID.DEEPSEEK,
            ProviderID.GEMINI,
            ProviderID.OPENAI,
            ProviderID.CLAUDE,
        ),
        Priority.QUALITY: (
            ProviderID.CLAUDE,
            ProviderID.OPENAI,
            ProviderID.GEMINI,
            ProviderID.DEEPSEEK,
        ),
        Priority.SPEED: (
            ProviderID.DEEPSEEK,
            ProviderID.OPENAI,
            ProviderID.GEMINI,
            ProviderID.CLAUDE,
        ),
        Priority.BALANCED: (
            ProviderID.OPENAI,
            ProviderID.GEMINI,
            ProviderID.CLAUDE,
            ProviderID.DEEPSEEK,
        ),
    }

    CONFIDENCE = {
        TaskType.SIMPLE: 0.9,
        TaskType.MEDIUM: 0.8,
        TaskType.COMPLEX: 0.95,
    }

    MAX_CANDIDATES: dict[TaskType, int | None] = {
        TaskType.SIMPLE: 1,
        TaskType.MEDIUM: 3,
        TaskType.COMPLEX: None,
    }

    def __init__(
        self,
        providers: ProviderRegistry | Iterable[ProviderID | str],
        breakers: CircuitBreakerRegistry | None = None,
        tool_registry: ToolRegistry | None = None,
        tool_adapter: ToolSchemaAdapter | None = None,
    ) -> None:
        self.providers = providers
        self.breakers = breakers
        self.tool_registry = tool_registry
        self.tool_adapter = tool_adapter or (
            tool_registry.adapter if tool_registry else ToolSchemaAdapter()
        )

    def available_providers(self) -> list[ProviderID]:
        if isinstance(self.providers, ProviderRegistry):
            return self.providers.ids()
        return [ProviderID.parse(p) for p in self.providers]

    def rank(self, priority: Priority, candidates: list[ProviderID]) -> list[ProviderID]:
        order = self.POLICY_ORDER[Priority(priority)]
        ranked = [p for p in order if p in candidates]
        ranked.extend(p for p in candidates if p not in ranked)
        return ranked

    def route(
        self,
        analysis: TaskAnalysis,
        *,
        respect_breakers: bool = True,
        tool_names: Iterable[str] | None = None,
    ) -> RoutingDecision:
        registered = self.available_providers()
        candidates = list(registered)
        notes: list[str] = []

        if respect_breakers and self.breakers is not None:
            open_circuits = [p for p in candidates if not self.breakers.allows_routing(p)]
            if open_circuits:
                candidates = [p for p in candidates if p not in open_circuits]
                notes.append(
                    f"excluded (circuit open): {', '.join(p.value for p in open_circuits)}"
                )

        if not candidates:
            raise NoProviderAvailable(
                "No provider available"
                + (f" ({'; '.join(notes)})" if notes else "")
            )

        ranked = self.rank(analysis.priority, candidates)

        requested_tools = tuple(tool_names) if tool_names is not None else analysis.required_tools
        tool_set = requested_tools
        if requested_tools and self.tool_registry is not None:
            definitions = self.tool_registry.definitions(requested_tools)
            tool_set = tuple(d.name for d in definitions)
            if definitions:
                compatible = [
                    p
                    for p in ranked
                    if all(
                        self.tool_adapter.check_compatibility(d, p).compatible
                        for d in definitions
                    )
                ]
                dropped = [p for p in ranked if p not in compatible]
                if not compatible:
                    raise ToolIncompatible(
                        f"No provider can accept tools: {', '.join(tool_set)}"
                    )
                if dropped:
                    notes.append(
                        f"excluded (tool schema): {', '.join(p.value for p in dropped)}"
                    )
                ranked = compatible

        limit = self.MAX_CANDIDATES[analysis.type]
        if limit is not None:
            ranked = ranked[:limit]

        reason = (
            f"{analysis.type.value} task (complexity {analysis.complexity_score}), "
            f"{analysis.priority.value} priority"
        )
        if notes:
            reason = f"{reason}; {'; '.join(notes)}"

        decision = RoutingDecision(
            provider_ranking=tuple(ranked),
            reason=reason,
            confidence=self.CONFIDENCE[analysis.type],
            tool_set=tool_set,
            agents=analysis.required_capabilities,
        )
        logger.debug(f"Routing decision: {decision.to_dict()}")
        return decision
