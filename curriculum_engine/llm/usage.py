"""Per-provider usage statistics and advisory budget tracking."""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from curriculum_engine.llm.config import BudgetLimits
from curriculum_engine.models.schemas import GenerationResult, ProviderUsage

logger = structlog.get_logger(__name__)


@dataclass
class _ProviderStats:
    requests: int = 0
    tokens: int = 0
    cost_cents: float = 0.0
    latency_total_ms: float = 0.0
    errors: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageTracker:
    """Accumulates request, token, cost and error counts per provider.

    Budget limits are advisory: exceeding one logs ``llm_budget_exceeded``
    once per period and never blocks a request.
    """

    def __init__(
        self,
        budget: Optional[BudgetLimits] = None,
        enabled: bool = True,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.budget = budget
        self.enabled = enabled
        self._now = now
        self._stats: dict[str, _ProviderStats] = {}
        self._lock = threading.Lock()
        self._day = self._month = ""
        self._daily_cents = 0.0
        self._monthly_cents = 0.0
        self._warned: set[str] = set()

    def _roll_periods(self) -> None:
        now = self._now()
        day, month = now.strftime("%Y-%m-%d"), now.strftime("%Y-%m")
        if day != self._day:
            self._day, self._daily_cents = day, 0.0
            self._warned.discard("daily")
        if month != self._month:
            self._month, self._monthly_cents = month, 0.0
            self._warned.discard("monthly")

    def _spend(self, stats: _ProviderStats, result: GenerationResult) -> list[tuple[str, float, int]]:
        stats.tokens += result.tokens_used
        stats.cost_cents += result.cost_cents
        self._roll_periods()
        self._daily_cents += result.cost_cents
        self._monthly_cents += result.cost_cents
        return self._check_budget()

    @staticmethod
    def _warn_exceeded(exceeded: list[tuple[str, float, int]]) -> None:
        for period, spent, limit in exceeded:
            logger.warning("llm_budget_exceeded", period=period, spent_cents=round(spent, 4), limit_cents=limit)

    def record_success(self, result: GenerationResult) -> None:
        if not self.enabled:
            return
        with self._lock:
            stats = self._stats.setdefault(result.provider, _ProviderStats())
            stats.requests += 1
            stats.latency_total_ms += result.latency_ms
            exceeded = self._spend(stats, result)
        self._warn_exceeded(exceeded)

    def record_failure(self, provider: str, result: Optional[GenerationResult] = None) -> None:
        """Count a failed request.

        ``result`` is the completed call whose response was rejected; its
        tokens and cost still count towards usage and budgets.
        """
        if not self.enabled:
            return
        exceeded: list[tuple[str, float, int]] = []
        with self._lock:
            stats = self._stats.setdefault(provider, _ProviderStats())
            stats.requests += 1
            stats.errors += 1
            if result is not None:
                exceeded = self._spend(stats, result)
        self._warn_exceeded(exceeded)

    def _check_budget(self) -> list[tuple[str, float, int]]:
        if self.budget is None:
            return []
        exceeded = []
        for period, spent, limit in (
            ("daily", self._daily_cents, self.budget.daily_budget_cents),
            ("monthly", self._monthly_cents, self.budget.monthly_budget_cents),
        ):
            if spent > limit and period not in self._warned:
                self._warned.add(period)
                exceeded.append((period, spent, limit))
        return exceeded

    def snapshot(self) -> list[ProviderUsage]:
        with self._lock:
            usage = []
            for provider, stats in sorted(self._stats.items()):
                successes = stats.requests - stats.errors
                usage.append(ProviderUsage(
                    provider=provider,
                    total_requests=stats.requests,
                    total_tokens=stats.tokens,
                    total_cost_cents=round(stats.cost_cents, 6),
                    average_latency_ms=stats.latency_total_ms / successes if successes else 0.0,
                    errors=stats.errors,
                    success_rate=successes / stats.requests if stats.requests else 1.0,
                ))
            return usage

    def budget_status(self) -> dict[str, Any]:
        with self._lock:
            self._roll_periods()
            status: dict[str, Any] = {
                "daily_spent_cents": round(self._daily_cents, 6),
                "monthly_spent_cents": round(self._monthly_cents, 6),
            }
            if self.budget is not None:
                status["daily_budget_cents"] = self.budget.daily_budget_cents
                status["monthly_budget_cents"] = self.budget.monthly_budget_cents
            return status
