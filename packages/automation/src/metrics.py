"""Automation Metrics.

Read-only summaries of execution history for one rule owner: overall
success rate, mean latency, the best-performing rules and recent activity.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from packages.core.src.config import CRMConfig, get_config
from packages.database.src.models import AutomationExecution, ExecutionStatus
from packages.database.src.repositories import (
    AutomationExecutionRepository,
    AutomationRuleRepository,
)


@dataclass
class DateRange:
    """Inclusive window on execution ``created_at``; either bound may be open."""

    start: datetime | None = None
    end: datetime | None = None


@dataclass
class RulePerformance:
    """Per-rule execution summary."""

    rule_id: UUID
    rule_name: str
    executions: int
    successes: int
    success_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "rule_name": self.rule_name,
            "executions": self.executions,
            "successes": self.successes,
            "success_rate": self.success_rate,
        }


@dataclass
class AutomationMetrics:
    """Summary statistics over an owner's executions."""

    total_rules: int
    active_rules: int
    total_executions: int
    completed_executions: int
    failed_executions: int
    success_rate: float
    average_execution_time: float
    top_performing_rules: list[RulePerformance] = field(default_factory=list)
    recent_activity: list[AutomationExecution] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rules": self.total_rules,
            "active_rules": self.active_rules,
            "total_executions": self.total_executions,
            "completed_executions": self.completed_executions,
            "failed_executions": self.failed_executions,
            "success_rate": self.success_rate,
            "average_execution_time": self.average_execution_time,
            "top_performing_rules": [r.to_dict() for r in self.top_performing_rules],
            "recent_activity": [e.to_dict() for e in self.recent_activity],
        }


def _rate(successes: int, total: int) -> float:
    return successes / total * 100 if total else 0.0


class MetricsAggregator:
    """Compute automation metrics from the execution log."""

    def __init__(self, session: AsyncSession, config: CRMConfig | None = None) -> None:
        self._rules = AutomationRuleRepository(session)
        self._executions = AutomationExecutionRepository(session)
        self._config = config or get_config()

    async def get_metrics(
        self,
        owner_id: UUID,
        date_range: DateRange | None = None,
    ) -> AutomationMetrics:
        """Summarise executions of the owner's rules.

        ``average_execution_time`` is the mean over executions that recorded
        a duration; runs still in progress are counted in
        ``total_executions`` but not in that mean's divisor.

        Args:
            owner_id: Rule owner
            date_range: Optional window on execution creation time

        Returns:
            AutomationMetrics (zeros when there are no executions)
        """
        rules = await self._rules.list_for_owner(owner_id)
        names = {rule.id: rule.name for rule in rules}

        window = date_range or DateRange()
        executions = await self._executions.list_for_rules(
            list(names), start=window.start, end=window.end
        )

        total = len(executions)
        completed = sum(1 for e in executions if e.execution_status == ExecutionStatus.COMPLETED)
        failed = sum(1 for e in executions if e.execution_status == ExecutionStatus.FAILED)

        timings = [e.execution_time_ms for e in executions if e.execution_time_ms is not None]
        average = sum(timings) / len(timings) if timings else 0.0

        return AutomationMetrics(
            total_rules=len(rules),
            active_rules=sum(1 for rule in rules if rule.is_active),
            total_executions=total,
            completed_executions=completed,
            failed_executions=failed,
            success_rate=_rate(completed, total),
            average_execution_time=average,
            top_performing_rules=self._rank(executions, names),
            recent_activity=executions[: self._config.recent_activity_limit],
        )

    def _rank(
        self,
        executions: list[AutomationExecution],
        names: dict[UUID, str],
    ) -> list[RulePerformance]:
        grouped: dict[UUID, list[AutomationExecution]] = defaultdict(list)
        for execution in executions:
            grouped[execution.rule_id].append(execution)

        performance = []
        for rule_id, runs in grouped.items():
            successes = sum(1 for e in runs if e.execution_status == ExecutionStatus.COMPLETED)
            performance.append(
                RulePerformance(
                    rule_id=rule_id,
                    rule_name=names.get(rule_id, ""),
                    executions=len(runs),
                    successes=successes,
                    success_rate=_rate(successes, len(runs)),
                )
            )

        performance.sort(key=lambda p: p.success_rate, reverse=True)
        return performance[: self._config.top_rules_limit]
