"""
Provider monitoring and cost tracking
=====================================
ProviderMonitor keeps per-provider success, failure, latency, token and cost
counters. CostTracker keeps a bounded ledger of what each answered request
cost and checks it against configured budgets, raising WARNING and EXCEEDED
alerts.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

MAX_COST_ENTRIES = 10000
MAX_ALERTS = 1000
ALERT_REPEAT_SECONDS = 3600.0


@dataclass
class ProviderMetrics:
    """Running counters for one provider"""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: float = 0.0
    min_latency_ms: float | None = None
    max_latency_ms: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    last_request_at: float | None = None
    last_error: str | None = None

    @property
    def average_latency_ms(self) -> float:
        return self.total_latency_ms / self.total_requests if self.total_requests else 0.0

    @property
    def success_rate(self) -> float:
        return self.successful_requests / self.total_requests if self.total_requests else 0.0

    @property
    def error_rate(self) -> float:
        return self.failed_requests / self.total_requests if self.total_requests else 0.0

    def add_latency(self, latency_ms: float) -> None:
        self.total_latency_ms += latency_ms
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)
        if self.min_latency_ms is None or latency_ms < self.min_latency_ms:
            self.min_latency_ms = latency_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "average_latency_ms": round(self.average_latency_ms, 2),
            "min_latency_ms": (
                round(self.min_latency_ms, 2) if self.min_latency_ms is not None else None
            ),
            "max_latency_ms": round(self.max_latency_ms, 2),
            "total_tokens": self.total_tokens,
            "total_cost": round(self.total_cost, 6),
            "success_rate": round(self.success_rate, 4),
            "error_rate": round(self.error_rate, 4),
            "last_request_at": self.last_request_at,
            "last_error": self.last_error,
        }


class ProviderMonitor:
    """Per-provider request outcomes"""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._metrics: dict[str, ProviderMetrics] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _get_metrics(self, provider: str) -> ProviderMetrics:
        if provider not in self._metrics:
            self._metrics[provider] = ProviderMetrics()
        return self._metrics[provider]

    def record_success(
        self, provider: str, latency_ms: float, tokens: int = 0, cost: float = 0.0
    ) -> None:
        with self._lock:
            metrics = self._get_metrics(provider)
            metrics.total_requests += 1
            metrics.successful_requests += 1
            metrics.total_tokens += tokens
            metrics.total_cost += cost
            metrics.last_request_at = self._clock()
            metrics.add_latency(latency_ms)

    def record_failure(
        self, provider: str, error: str, latency_ms: float | None = None
    ) -> None:
        with self._lock:
            metrics = self._get_metrics(provider)
            metrics.total_requests += 1
            metrics.failed_requests += 1
            metrics.last_request_at = self._clock()
            metrics.last_error = error
            if latency_ms is not None:
                metrics.add_latency(latency_ms)

    def get_metrics(self, provider: str) -> dict[str, Any] | None:
        with self._lock:
            metrics = self._metrics.get(provider)
            return metrics.to_dict() if metrics is not None else None

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {name: m.to_dict() for name, m in self._metrics.items()}

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()


class AlertLevel(str, Enum):
    WARNING = "warning"
    EXCEEDED = "exceeded"


@dataclass
class CostEntry:
    provider: str
    model: str
    cost: float
    input_tokens: int = 0
    output_tokens: int = 0
    timestamp: float = 0.0


@dataclass
class Budget:
    """Spending limit, optionally scoped to one provider.

    warning_threshold is a percentage of limit.
    """

    name: str
    limit: float
    warning_threshold: float = 80.0
    provider: str | None = None
    active: bool = True

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"Budget '{self.name}' limit must be positive")
        if not 0 < self.warning_threshold <= 100:
            raise ValueError(f"Budget '{self.name}' warning threshold must be in (0, 100]")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Budget:
        provider = data.get("provider")
        return cls(
            name=str(data["name"]),
            limit=float(data["limit"]),
            warning_threshold=float(data.get("warningThreshold", 80.0)),
            provider=str(provider).lower() if provider else None,
            active=bool(data.get("active", True)),
        )


@dataclass
class BudgetAlert:
    budget: str
    level: AlertLevel
    message: str
    current_cost: float
    limit: float
    percentage: float
    created_at: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    acknowledged: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "budget": self.budget,
            "level": self.level.value,
            "message": self.message,
            "current_cost": round(self.current_cost, 6),
            "limit": self.limit,
            "percentage": round(self.percentage, 1),
            "created_at": self.created_at,
            "acknowledged": self.acknowledged,
        }


class CostTracker:
    """Cost ledger with budget alerts"""

    def __init__(
        self,
        budgets: list[Budget] | None = None,
        max_entries: int = MAX_COST_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._entries: deque[CostEntry] = deque(maxlen=max_entries)
        self._budgets: dict[str, Budget] = {}
        self._alerts: deque[BudgetAlert] = deque(maxlen=MAX_ALERTS)
        self._lock = threading.Lock()
        self._clock = clock
        for budget in budgets or []:
            self.set_budget(budget)

    def record_cost(
        self,
        provider: str,
        model: str,
        cost: float,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> list[BudgetAlert]:
        """Add a ledger entry and return any alerts it triggered"""
        with self._lock:
            self._entries.append(
                CostEntry(provider, model, cost, input_tokens, output_tokens, self._clock())
            )
            new_alerts = self._check_budgets(provider)

        for alert in new_alerts:
            if alert.level == AlertLevel.EXCEEDED:
                logger.error(alert.message)
            else:
                logger.warning(alert.message)
        return new_alerts

    def _check_budgets(self, provider: str) -> list[BudgetAlert]:
        """Caller holds the lock"""
        raised: list[BudgetAlert] = []
        for budget in self._budgets.values():
            if not budget.active:
                continue
            if budget.provider is not None and budget.provider != provider:
                continue

            current = self._total(budget.provider)
            percentage = current / budget.limit * 100
            if percentage >= 100:
                level = AlertLevel.EXCEEDED
                message = (
                    f"Budget {budget.name} exceeded: ${current:.4f} / ${budget.limit}"
                )
            elif percentage >= budget.warning_threshold:
                level = AlertLevel.WARNING
                message = (
                    f"Budget {budget.name} at {percentage:.1f}%: "
                    f"${current:.4f} / ${budget.limit}"
                )
            else:
                continue

            if self._has_open_alert(budget.name, level):
                continue
            alert = BudgetAlert(
                budget=budget.name,
                level=level,
                message=message,
                current_cost=current,
                limit=budget.limit,
                percentage=min(percentage, 100.0),
                created_at=self._clock(),
            )
            self._alerts.append(alert)
            raised.append(alert)
        return raised

    def _has_open_alert(self, budget: str, level: AlertLevel) -> bool:
        now = self._clock()
        return any(
            a.budget == budget
            and a.level == level
            and not a.acknowledged
            and now - a.created_at < ALERT_REPEAT_SECONDS
            for a in self._alerts
        )

    def _total(self, provider: str | None = None) -> float:
        return sum(e.cost for e in self._entries if provider is None or e.provider == provider)

    def total_cost(self, provider: str | None = None) -> float:
        with self._lock:
            return self._total(provider)

    def cost_by_provider(self) -> dict[str, float]:
        totals: dict[str, float] = {}
        with self._lock:
            for entry in self._entries:
                totals[entry.provider] = totals.get(entry.provider, 0.0) + entry.cost
        return {name: round(total, 6) for name, total in totals.items()}

    def set_budget(self, budget: Budget) -> None:
        with self._lock:
            self._budgets[budget.name] = budget

    def remove_budget(self, name: str) -> bool:
        with self._lock:
            return self._budgets.pop(name, None) is not None

    def budgets(self) -> list[Budget]:
        with self._lock:
            return list(self._budgets.values())

    def alerts(self, acknowledged: bool | None = None) -> list[BudgetAlert]:
        with self._lock:
            if acknowledged is None:
                return list(self._alerts)
            return [a for a in self._alerts if a.acknowledged == acknowledged]

    def acknowledge(self, alert_id: str) -> bool:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    alert.acknowledged = True
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._alerts.clear()

    def summary(self) -> dict[str, Any]:
        with self._lock:
            total = self._total()
            budgets = [
                {
                    "name": b.name,
                    "limit": b.limit,
                    "provider": b.provider,
                    "spent": round(self._total(b.provider), 6),
                    "active": b.active,
                }
                for b in self._budgets.values()
            ]
            open_alerts = sum(1 for a in self._alerts if not a.acknowledged)
        return {
            "total_cost": round(total, 6),
            "by_provider": self.cost_by_provider(),
            "budgets": budgets,
            "open_alerts": open_alerts,
        }
