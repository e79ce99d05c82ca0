"""
Gateway Value Types
===================
Immutable records passed between the analyzer, router and executor, plus the
normalized response shapes every provider returns.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class TaskType(str, Enum):
    """Complexity class of a request"""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class Priority(str, Enum):
    """Selection policy requested by the caller"""

    COST = "cost"
    QUALITY = "quality"
    SPEED = "speed"
    BALANCED = "balanced"


class ProviderID(str, Enum):
    """Providers the gateway knows how to route to"""

    CLAUDE = "claude"
    OPENAI = "openai"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: ProviderID | str) -> ProviderID:
        """Convert a string to a ProviderID, rejecting unknown names"""
        if isinstance(value, ProviderID):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            known = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown provider '{value}'. Known: {known}") from None


def _unique(items: Any) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items or ():
        seen.setdefault(str(item), None)
    return tuple(seen)


@dataclass(frozen=True)
class TaskAnalysis:
    """Classification of a single request"""

    type: TaskType
    complexity_score: int
    required_capabilities: tuple[str, ...]
    required_tools: tuple[str, ...]
    estimated_cost: float
    priority: Priority = Priority.BALANCED

    MIN_COMPLEXITY = 1
    MAX_COMPLEXITY = 10

    def __post_init__(self) -> None:
        score = max(self.MIN_COMPLEXITY, min(self.MAX_COMPLEXITY, int(self.complexity_score)))
        object.__setattr__(self, "complexity_score", score)
        object.__setattr__(self, "type", TaskType(self.type))
        object.__setattr__(self, "priority", Priority(self.priority))
        object.__setattr__(
            self, "required_capabilities", _unique(self.required_capabilities)
        )
        object.__setattr__(self, "required_tools", _unique(self.required_tools))
        if self.estimated_cost < 0:
            raise ValueError("estimated_cost cannot be negative")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "complexity_score": self.complexity_score,
            "required_capabilities": list(self.required_capabilities),
            "required_tools": list(self.required_tools),
            "estimated_cost": self.estimated_cost,
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class RoutingDecision:
    """Ranked candidate providers for one request"""

    provider_ranking: tuple[ProviderID, ...]
    reason: str
    confidence: float
    tool_set: tuple[str, ...] = ()
    agents: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        ranking = tuple(ProviderID.parse(p) for p in self.provider_ranking)
        if not ranking:
            raise ValueError("provider_ranking cannot be empty")
        if len(set(ranking)) != len(ranking):
            raise ValueError("provider_ranking contains duplicates")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be within [0, 1]")
        object.__setattr__(self, "provider_ranking", ranking)
        object.__setattr__(self, "tool_set", _unique(self.tool_set))
        object.__setattr__(self, "agents", _unique(self.agents))

    @property
    def primary(self) -> ProviderID:
        return self.provider_ranking[0]

    @property
    def fallbacks(self) -> tuple[ProviderID, ...]:
        return self.provider_ranking[1:]

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_ranking": [p.value for p in self.provider_ranking],
            "reason": self.reason,
            "confidence": self.confidence,
            "tool_set": list(self.tool_set),
            "agents": list(self.agents),
        }


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by a model, normalized across providers"""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResponse:
    """Standardized provider response container"""

    content: str
    provider: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionOptions:
    """Per-call settings for UnifiedExecutor.execute()"""

    priority: Priority = Priority.BALANCED
    use_tools: bool = True
    specific_tools: list[str] | None = None
    max_tool_calls: int = 10
    timeout: float = 120.0  # seconds, per attempt
    retry_attempts: int = 3
    use_cache: bool = True
    cost_limit: float | None = None
    circuit_breaker_enabled: bool = True
    system_prompt: str | None = None
    conversation_history: list[dict[str, Any]] = field(default_factory=list)
    temperature: float = 0.7
    max_tokens: int = 4096
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.priority = Priority(self.priority)
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_tool_calls < 0:
            raise ValueError("max_tool_calls cannot be negative")

    @classmethod
    def from_config(cls, defaults: dict[str, Any], **overrides: Any) -> ExecutionOptions:
        """Build options from the `defaults` section of the config file"""
        mapping = {
            "priority": "priority",
            "useTools": "use_tools",
            "maxToolCalls": "max_tool_calls",
            "timeout": "timeout",
            "retryAttempts": "retry_attempts",
            "useCache": "use_cache",
            "costLimit": "cost_limit",
            "circuitBreakerEnabled": "circuit_breaker_enabled",
        }
        values: dict[str, Any] = {}
        for config_key, attr in mapping.items():
            if config_key in defaults and defaults[config_key] is not None:
                values[attr] = defaults[config_key]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class ExecutionResult:
    """Outcome of one UnifiedExecutor.execute() call"""

    success: bool
    provider: str
    cost: float = 0.0
    duration_ms: float = 0.0
    attempts: int = 0
    from_cache: bool = False
    response: str | None = None
    tools_used: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None
    warnings: list[str] = field(default_factory=list)
    analysis: TaskAnalysis | None = None
    routing: RoutingDecision | None = None
    tokens_used: dict[str, int] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        data = asdict(self)
        data["analysis"] = self.analysis.to_dict() if self.analysis else None
        data["routing"] = self.routing.to_dict() if self.routing else None
        return data
