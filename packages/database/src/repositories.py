"""Record Store Repositories.

Provides CRUD operations for the automation engine's tables:
- Lead reads and engine-side writes (assignment, status, tags, score)
- Lead task creation
- Automation rule storage with atomic counter increments
- Execution records and per-action audit logs

All operations use async SQLAlchemy sessions. Writes that can race with
other executions (rule counters, tag unions, score adjustments) are expressed
as single SQL statements or compare-and-swap on ``Lead.version`` instead of
read-modify-write.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from packages.core.src.errors import ConcurrentUpdateError, RecordNotFoundError

from .models import (
    ActionLogStatus,
    AutomationActionLog,
    AutomationExecution,
    AutomationRule,
    ExecutionStatus,
    Lead,
    LeadTask,
    TaskPriority,
    utcnow,
)

logger = structlog.get_logger()


class LeadRepository:
    """Repository for Lead reads and automation-driven writes."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        email: str,
        first_name: str = "",
        last_name: str = "",
        user_id: UUID | None = None,
        status: str = "new",
        lead_score: int = 0,
        tags: list[str] | None = None,
        **fields: Any,
    ) -> Lead:
        """Create a new lead."""
        lead = Lead(
            email=email,
            first_name=first_name,
            last_name=last_name,
            user_id=user_id,
            status=status,
            lead_score=lead_score,
            tags=tags or [],
            **fields,
        )
        self._session.add(lead)
        await self._session.commit()
        await self._session.refresh(lead)
        return lead

    async def get_by_id(self, lead_id: UUID) -> Lead | None:
        """Get lead by ID, always reloading columns from the database."""
        result = await self._session.execute(
            select(Lead).where(Lead.id == lead_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require(self, lead_id: UUID) -> Lead:
        """Get lead by ID or raise RecordNotFoundError."""
        lead = await self.get_by_id(lead_id)
        if lead is None:
            raise RecordNotFoundError("leads", lead_id)
        return lead

    async def list_for_owner(self, user_id: UUID, status: str | None = None) -> list[Lead]:
        """List leads owned by a user, oldest first."""
        stmt = select(Lead).where(Lead.user_id == user_id)
        if status:
            stmt = stmt.where(Lead.status == status)
        stmt = stmt.order_by(Lead.created_at.asc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update_fields(self, lead_id: UUID, **values: Any) -> Lead:
        """Write the given columns and bump the lead's version."""
        result = await self._session.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(**values, version=Lead.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RecordNotFoundError("leads", lead_id)
        await self._session.commit()
        return await self.require(lead_id)

    async def add_tags(
        self,
        lead_id: UUID,
        tags: Iterable[str],
        max_retries: int = 5,
    ) -> list[str]:
        """Union tags into the lead's tag list.

        Compare-and-swap on ``version``; a concurrent writer forces a re-read
        so no tag written in between is lost.

        Returns:
            The lead's tags after the union
        """
        new_tags = list(tags)
        for attempt in range(1, max_retries + 1):
            lead = await self.require(lead_id)
            current = list(lead.tags or [])
            merged = list(dict.fromkeys([*current, *new_tags]))
            if merged == current:
                return current

            result = await self._session.execute(
                update(Lead)
                .where(Lead.id == lead_id, Lead.version == lead.version)
                .values(tags=merged, version=lead.version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                await self._session.commit()
                return merged

            logger.info(
                "lead_tag_update_conflict",
                lead_id=str(lead_id),
                attempt=attempt,
                expected_version=lead.version,
            )

        raise ConcurrentUpdateError("leads", lead_id, max_retries)

    async def adjust_score(
        self,
        lead_id: UUID,
        operation: str,
        value: int,
        minimum: int = 0,
        maximum: int = 100,
    ) -> int:
        """Apply add/subtract/set to the lead score, clamped to [minimum, maximum].

        add/subtract run as one SQL expression so concurrent adjustments compose.

        Returns:
            The stored score
        """
        if operation == "set":
            new_score: Any = max(minimum, min(maximum, value))
        else:
            delta = value if operation == "add" else -value
            raw = func.coalesce(Lead.lead_score, 0) + delta
            new_score = case((raw > maximum, maximum), (raw < minimum, minimum), else_=raw)

        result = await self._session.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(lead_score=new_score, version=Lead.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RecordNotFoundError("leads", lead_id)
        await self._session.commit()

        lead = await self.require(lead_id)
        return lead.lead_score


class LeadTaskRepository:
    """Repository for LeadTask operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        lead_id: UUID,
        title: str,
        description: str | None = None,
        task_type: str = "follow_up",
        priority: TaskPriority = TaskPriority.MEDIUM,
        assigned_to: str | None = None,
        due_date: datetime | None = None,
        user_id: UUID | None = None,
    ) -> LeadTask:
        """Create a task referencing a lead."""
        task = LeadTask(
            lead_id=lead_id,
            title=title,
            description=description,
            task_type=task_type,
            priority=priority,
            assigned_to=assigned_to,
            due_date=due_date,
            user_id=user_id,
        )
        self._session.add(task)
        await self._session.commit()
        await self._session.refresh(task)
        return task

    async def list_for_lead(self, lead_id: UUID) -> list[LeadTask]:
        """Get all tasks for a lead, oldest first."""
        result = await self._session.execute(
            select(LeadTask).where(LeadTask.lead_id == lead_id).order_by(LeadTask.created_at.asc())
        )
        return list(result.scalars().all())


class AutomationRuleRepository:
    """Repository for AutomationRule CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        owner_id: UUID,
        name: str,
        trigger_type: str,
        description: str | None = None,
        trigger_config: dict[str, Any] | None = None,
        conditions: list[dict[str, Any]] | None = None,
        actions: list[dict[str, Any]] | None = None,
        is_active: bool = True,
        priority: int = 0,
    ) -> AutomationRule:
        """Create a rule with zeroed counters."""
        rule = AutomationRule(
            owner_id=owner_id,
            name=name,
            description=description,
            trigger_type=trigger_type,
            trigger_config=trigger_config or {},
            conditions=conditions or [],
            actions=actions or [],
            is_active=is_active,
            priority=priority,
            execution_count=0,
            success_count=0,
            failure_count=0,
        )
        self._session.add(rule)
        await self._session.commit()
        await self._session.refresh(rule)
        return rule

    async def get_by_id(self, rule_id: UUID) -> AutomationRule | None:
        """Get rule by ID, always reloading columns from the database."""
        result = await self._session.execute(
            select(AutomationRule)
            .where(AutomationRule.id == rule_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_owner(
        self,
        owner_id: UUID,
        active_only: bool = False,
        trigger_type: str | None = None,
    ) -> list[AutomationRule]:
        """List a user's rules, highest priority first."""
        stmt = select(AutomationRule).where(AutomationRule.owner_id == owner_id)
        if active_only:
            stmt = stmt.where(AutomationRule.is_active.is_(True))
        if trigger_type:
            stmt = stmt.where(AutomationRule.trigger_type == trigger_type)
        stmt = stmt.order_by(
            AutomationRule.priority.desc(), AutomationRule.created_at.asc()
        ).execution_options(populate_existing=True)

        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update(self, rule_id: UUID, **values: Any) -> AutomationRule:
        """Update rule columns.

        Counter columns are not accepted here; use increment_counters.
        """
        forbidden = {"execution_count", "success_count", "failure_count", "id", "owner_id"}
        illegal = forbidden.intersection(values)
        if illegal:
            raise ValueError(f"Cannot update protected columns: {sorted(illegal)}")

        rule = await self.get_by_id(rule_id)
        if rule is None:
            raise RecordNotFoundError("automation_rules", rule_id)

        for key, value in values.items():
            setattr(rule, key, value)
        rule.updated_at = utcnow()

        await self._session.commit()
        await self._session.refresh(rule)
        return rule

    async def set_active(self, rule_id: UUID, is_active: bool) -> AutomationRule:
        """Switch a rule on or off."""
        return await self.update(rule_id, is_active=is_active)

    async def delete(self, rule_id: UUID) -> bool:
        """Delete a rule. Its executions are kept."""
        rule = await self.get_by_id(rule_id)
        if rule is None:
            return False
        await self._session.delete(rule)
        await self._session.commit()
        return True

    async def increment_counters(
        self,
        rule_id: UUID,
        succeeded: bool,
        executed_at: datetime | None = None,
    ) -> None:
        """Count one finished execution in a single atomic UPDATE."""
        values: dict[str, Any] = {
            "execution_count": AutomationRule.execution_count + 1,
            "last_executed": executed_at or utcnow(),
        }
        if succeeded:
            values["success_count"] = AutomationRule.success_count + 1
        else:
            values["failure_count"] = AutomationRule.failure_count + 1

        result = await self._session.execute(
            update(AutomationRule)
            .where(AutomationRule.id == rule_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RecordNotFoundError("automation_rules", rule_id)
        await self._session.commit()


class AutomationExecutionRepository:
    """Repository for AutomationExecution records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        rule_id: UUID,
        lead_id: UUID,
        total_actions: int,
        trigger_data: dict[str, Any] | None = None,
        status: ExecutionStatus = ExecutionStatus.RUNNING,
    ) -> AutomationExecution:
        """Create an execution record."""
        execution = AutomationExecution(
            rule_id=rule_id,
            lead_id=lead_id,
            trigger_data=trigger_data or {},
            execution_status=status,
            actions_executed=0,
            total_actions=total_actions,
        )
        self._session.add(execution)
        await self._session.commit()
        await self._session.refresh(execution)
        return execution

    async def get_by_id(self, execution_id: UUID) -> AutomationExecution | None:
        """Get execution by ID."""
        result = await self._session.execute(
            select(AutomationExecution)
            .where(AutomationExecution.id == execution_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def record_progress(
        self,
        execution: AutomationExecution,
        actions_executed: int,
    ) -> None:
        """Persist the number of actions completed so far."""
        execution.actions_executed = actions_executed
        await self._session.commit()

    async def finish(
        self,
        execution: AutomationExecution,
        status: ExecutionStatus,
        execution_time_ms: float,
        error_message: str | None = None,
    ) -> AutomationExecution:
        """Move an execution to a terminal state."""
        execution.execution_status = status
        execution.execution_time_ms = execution_time_ms
        execution.error_message = error_message if status == ExecutionStatus.FAILED else None
        execution.completed_at = utcnow()
        await self._session.commit()
        await self._session.refresh(execution)
        return execution

    async def list_for_rules(
        self,
        rule_ids: Sequence[UUID],
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[AutomationExecution]:
        """Executions of the given rules, newest first, optionally within [start, end]."""
        if not rule_ids:
            return []

        stmt = select(AutomationExecution).where(AutomationExecution.rule_id.in_(list(rule_ids)))
        if start:
            stmt = stmt.where(AutomationExecution.created_at >= start)
        if end:
            stmt = stmt.where(AutomationExecution.created_at <= end)
        stmt = stmt.order_by(AutomationExecution.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_lead(self, lead_id: UUID) -> list[AutomationExecution]:
        """Executions that ran against a lead, newest first."""
        result = await self._session.execute(
            select(AutomationExecution)
            .where(AutomationExecution.lead_id == lead_id)
            .order_by(AutomationExecution.created_at.desc())
        )
        return list(result.scalars().all())


class ActionLogRepository:
    """Repository for the append-only action audit log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        execution_id: UUID,
        sequence: int,
        action_type: str,
        status: ActionLogStatus,
        action_data: dict[str, Any] | None = None,
        error_message: str | None = None,
        duration_ms: float | None = None,
    ) -> AutomationActionLog:
        """Append one action outcome."""
        entry = AutomationActionLog(
            execution_id=execution_id,
            sequence=sequence,
            action_type=action_type,
            status=status,
            action_data=action_data,
            error_message=error_message,
            duration_ms=duration_ms,
        )
        self._session.add(entry)
        await self._session.commit()
        return entry

    async def list_for_execution(self, execution_id: UUID) -> list[AutomationActionLog]:
        """Get the log entries of an execution in execution order."""
        result = await self._session.execute(
            select(AutomationActionLog)
            .where(AutomationActionLog.execution_id == execution_id)
            .order_by(AutomationActionLog.sequence.asc())
        )
        return list(result.scalars().all())
