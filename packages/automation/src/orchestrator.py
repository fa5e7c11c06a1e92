"""Rule Execution Orchestration.

Runs one rule against one lead:

1. Load the rule (RuleNotFoundError / RuleInactiveError).
2. Re-check its conditions (ConditionsNotMetError).
3. Create a ``running`` execution record.
4. Run actions one at a time in ``order_index`` order, logging each outcome.
5. Close the execution as ``completed`` or ``failed`` and count it on the rule.

Actions are not transactional. When action N fails, the effects of actions
1..N-1 stay applied, the execution records how many completed, and the
original error is re-raised after the failure has been persisted.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Mapping
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from packages.core.src.config import CRMConfig, get_config
from packages.core.src.errors import (
    ActionTimeoutError,
    ConditionsNotMetError,
    RuleInactiveError,
    RuleNotFoundError,
)
from packages.database.src.models import (
    ActionLogStatus,
    AutomationExecution,
    ExecutionStatus,
    utcnow,
)
from packages.database.src.repositories import (
    ActionLogRepository,
    AutomationExecutionRepository,
    AutomationRuleRepository,
)

from .actions import ActionDispatcher
from .conditions import evaluate_conditions

logger = structlog.get_logger()


def to_jsonable(data: Any) -> Any:
    """Deep-copy data into JSON-safe primitives (UUIDs and datetimes become strings)."""
    return json.loads(json.dumps(data, default=str))


def lead_record(lead: Any) -> dict[str, Any]:
    """Accept a Lead model or a mapping and return a private dict copy."""
    if hasattr(lead, "to_record"):
        return lead.to_record()
    if isinstance(lead, Mapping):
        return dict(lead)
    raise TypeError(f"Unsupported lead record type: {type(lead).__name__}")


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


def ordered_actions(actions: Any) -> list[Mapping[str, Any]]:
    """Stored actions in ``order_index`` order.

    Entries that are not mappings stay in place as empty actions, which the
    dispatcher rejects as an unknown type. Non-numeric indexes sort as 0.
    """
    if not isinstance(actions, (list, tuple)):
        return []
    entries = [a if isinstance(a, Mapping) else {} for a in actions]

    def position(action: Mapping[str, Any]) -> float:
        index = action.get("order_index")
        return index if isinstance(index, (int, float)) and not isinstance(index, bool) else 0

    return sorted(entries, key=position)


class ExecutionOrchestrator:
    """Execute rules with full execution bookkeeping.

    Example:
        orchestrator = ExecutionOrchestrator(session, dispatcher)
        execution = await orchestrator.execute_rule(rule_id, lead)
        assert execution.execution_status == ExecutionStatus.COMPLETED
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: ActionDispatcher | None = None,
        config: CRMConfig | None = None,
    ) -> None:
        self._session = session
        self._config = config or get_config()
        self._dispatcher = dispatcher or ActionDispatcher(session, config=self._config)
        self._rules = AutomationRuleRepository(session)
        self._executions = AutomationExecutionRepository(session)
        self._action_logs = ActionLogRepository(session)

    async def execute_rule(
        self,
        rule_id: UUID,
        lead: Any,
        trigger_data: Mapping[str, Any] | None = None,
    ) -> AutomationExecution:
        """Run a rule's actions against a lead.

        Args:
            rule_id: Rule to execute
            lead: Lead model or lead record (must carry ``id``)
            trigger_data: Snapshot of the triggering event

        Returns:
            The completed execution record

        Raises:
            RuleNotFoundError, RuleInactiveError, ConditionsNotMetError: before
                any execution record is written
            Exception: whatever the failing action raised, after the failed
                execution has been stored
        """
        rule = await self._rules.get_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        if not rule.is_active:
            raise RuleInactiveError(rule_id)

        working = lead_record(lead)
        if not evaluate_conditions(rule.conditions, working):
            raise ConditionsNotMetError(rule_id, working.get("id"))

        lead_id = working["id"] if isinstance(working.get("id"), UUID) else UUID(str(working["id"]))
        actions = ordered_actions(rule.actions)

        snapshot = dict(trigger_data or {})
        snapshot.setdefault("trigger_type", rule.trigger_type)
        snapshot.setdefault("timestamp", utcnow().isoformat())

        started = time.perf_counter()
        execution = await self._executions.create(
            rule_id=rule.id,
            lead_id=lead_id,
            total_actions=len(actions),
            trigger_data=to_jsonable(snapshot),
            status=ExecutionStatus.RUNNING,
        )
        execution_id = execution.id
        log = logger.bind(rule_id=str(rule_id), execution_id=str(execution_id), lead_id=str(lead_id))
        log.info("rule_execution_started", total_actions=len(actions))

        completed = 0
        try:
            for sequence, action in enumerate(actions, start=1):
                await self._run_action(execution_id, sequence, action, working)
                completed += 1
                await self._executions.record_progress(execution, completed)
        except asyncio.CancelledError:
            # Cancelled runs end as failed, never left running
            await asyncio.shield(
                self._record_failure(rule_id, execution_id, completed, started, "cancelled")
            )
            log.warning(
                "rule_execution_cancelled",
                actions_executed=completed,
                total_actions=len(actions),
            )
            raise
        except Exception as exc:
            failed = await self._record_failure(
                rule_id, execution_id, completed, started, str(exc) or type(exc).__name__
            )
            log.warning(
                "rule_execution_failed",
                actions_executed=completed,
                total_actions=len(actions),
                error=str(exc),
                error_type=type(exc).__name__,
                duration_ms=failed.execution_time_ms,
            )
            raise

        execution = await self._executions.finish(
            execution,
            ExecutionStatus.COMPLETED,
            execution_time_ms=_elapsed_ms(started),
        )
        await self._rules.increment_counters(rule_id, succeeded=True)
        log.info(
            "rule_execution_completed",
            actions_executed=completed,
            duration_ms=execution.execution_time_ms,
        )
        return execution

    async def _run_action(
        self,
        execution_id: UUID,
        sequence: int,
        action: Mapping[str, Any],
        working: dict[str, Any],
    ) -> None:
        action_type = str(action.get("action_type"))
        timeout = self._config.action_timeout_seconds
        started = time.perf_counter()

        try:
            result = await asyncio.wait_for(
                self._dispatcher.execute(action, working, execution_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            error = ActionTimeoutError(action_type, timeout)
            await self._log_failure(execution_id, sequence, action, str(error), started)
            raise error from e
        except asyncio.CancelledError:
            await asyncio.shield(
                self._log_failure(execution_id, sequence, action, "cancelled", started)
            )
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            await self._log_failure(execution_id, sequence, action, message, started)
            raise

        await self._action_logs.append(
            execution_id=execution_id,
            sequence=sequence,
            action_type=action_type,
            status=ActionLogStatus.SUCCESS,
            action_data=to_jsonable({"config": action.get("action_config") or {}, "result": result}),
            duration_ms=_elapsed_ms(started),
        )
        logger.debug(
            "automation_action_succeeded",
            execution_id=str(execution_id),
            action_type=action_type,
            sequence=sequence,
        )

    async def _log_failure(
        self,
        execution_id: UUID,
        sequence: int,
        action: Mapping[str, Any],
        error_message: str,
        started: float,
    ) -> None:
        # A failed statement leaves the session unusable until rolled back
        await self._session.rollback()
        await self._action_logs.append(
            execution_id=execution_id,
            sequence=sequence,
            action_type=str(action.get("action_type")),
            status=ActionLogStatus.FAILED,
            action_data=to_jsonable({"config": action.get("action_config") or {}}),
            error_message=error_message,
            duration_ms=_elapsed_ms(started),
        )
        logger.info(
            "automation_action_failed",
            execution_id=str(execution_id),
            action_type=str(action.get("action_type")),
            sequence=sequence,
            error=error_message,
        )

    async def _record_failure(
        self,
        rule_id: UUID,
        execution_id: UUID,
        completed: int,
        started: float,
        error_message: str,
    ) -> AutomationExecution:
        """Close an execution as failed and count it on the rule."""
        await self._session.rollback()
        failed = await self._executions.get_by_id(execution_id)
        failed.actions_executed = completed
        failed = await self._executions.finish(
            failed,
            ExecutionStatus.FAILED,
            execution_time_ms=_elapsed_ms(started),
            error_message=error_message,
        )
        await self._rules.increment_counters(rule_id, succeeded=False)
        return failed
