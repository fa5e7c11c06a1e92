"""Workflow Automation Service.

Facade the application talks to. Every operation is scoped to the user
returned by the identity provider: rules owned by someone else behave as if
they did not exist.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from packages.core.src.config import CRMConfig, get_config
from packages.core.src.errors import (
    CRMError,
    RecordNotFoundError,
    RuleNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from packages.core.src.protocols import IdentityProvider, Notifier, StudentConverter
from packages.database.src.models import (
    AutomationActionLog,
    AutomationExecution,
    AutomationRule,
    utcnow,
)
from packages.database.src.repositories import (
    ActionLogRepository,
    AutomationExecutionRepository,
    AutomationRuleRepository,
    LeadRepository,
)

from .actions import ActionDispatcher
from .definitions import RuleDefinition, TriggerType, validate_rule_definition
from .metrics import AutomationMetrics, DateRange, MetricsAggregator
from .orchestrator import ExecutionOrchestrator, lead_record, to_jsonable
from .templates import RULE_TEMPLATES, RuleTemplate, get_rule_template
from .triggers import TriggerMatcher, as_naive_utc

logger = structlog.get_logger()

_EDITABLE_FIELDS = (
    "name",
    "description",
    "trigger_type",
    "trigger_config",
    "conditions",
    "actions",
    "is_active",
    "priority",
)


@dataclass
class RuleOutcome:
    """Result of one rule run during event handling."""

    rule_id: UUID
    rule_name: str
    execution: AutomationExecution | None = None
    error: str | None = None
    error_code: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "rule_name": self.rule_name,
            "succeeded": self.succeeded,
            "execution_id": str(self.execution.id) if self.execution else None,
            "error": self.error,
            "error_code": self.error_code,
        }


def changed_values(
    current: Mapping[str, Any],
    previous: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Previous values of the fields that differ between two lead records."""
    if previous is None:
        return {}
    ignored = {"updated_at", "version"}
    return {
        key: previous.get(key)
        for key in sorted(set(current) | set(previous))
        if key not in ignored and current.get(key) != previous.get(key)
    }


class WorkflowAutomationService:
    """Rule management, event handling and reporting for one user.

    Example:
        service = WorkflowAutomationService(session, StaticIdentityProvider(user))
        rule = await service.create_rule({
            "name": "Qualified follow-up",
            "trigger_type": "status_change",
            "trigger_config": {"target_status": "qualified"},
            "actions": [{"action_type": "create_task", "action_config": {"title": "Follow up"}}],
        })
        outcomes = await service.handle_lead_event(lead, "status_change", previous_lead=before)
    """

    def __init__(
        self,
        session: AsyncSession,
        identity: IdentityProvider,
        notifier: Notifier | None = None,
        student_converter: StudentConverter | None = None,
        config: CRMConfig | None = None,
        matcher: TriggerMatcher | None = None,
    ) -> None:
        self._config = config or get_config()
        self._identity = identity
        self._rules = AutomationRuleRepository(session)
        self._executions = AutomationExecutionRepository(session)
        self._action_logs = ActionLogRepository(session)
        self._leads = LeadRepository(session)
        self._matcher = matcher or TriggerMatcher()
        dispatcher = ActionDispatcher(
            session,
            notifier=notifier,
            student_converter=student_converter,
            identity=identity,
            config=self._config,
        )
        self._orchestrator = ExecutionOrchestrator(session, dispatcher, self._config)
        self._metrics = MetricsAggregator(session, self._config)

    # =========================================================================
    # Rule management
    # =========================================================================

    async def create_rule(self, data: Mapping[str, Any] | RuleDefinition) -> AutomationRule:
        """Validate and store a new rule owned by the current user."""
        owner_id = self._owner_id()
        definition = (
            data if isinstance(data, RuleDefinition) else validate_rule_definition(dict(data))
        )
        rule = await self._rules.create(owner_id=owner_id, **definition.to_columns())
        logger.info(
            "automation_rule_created",
            rule_id=str(rule.id),
            trigger_type=rule.trigger_type,
            owner_id=str(owner_id),
        )
        return rule

    async def get_rules(self, active_only: bool = False) -> list[AutomationRule]:
        """List the current user's rules, highest priority first."""
        return await self._rules.list_for_owner(self._owner_id(), active_only=active_only)

    async def get_rule(self, rule_id: UUID) -> AutomationRule:
        """Get one of the current user's rules."""
        return await self._owned_rule(rule_id)

    async def update_rule(self, rule_id: UUID, updates: Mapping[str, Any]) -> AutomationRule:
        """Apply a partial update; the merged rule is validated as a whole."""
        unknown = sorted(set(updates) - set(_EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(
                "Invalid automation rule",
                [
                    {"field": name, "message": "Field cannot be updated", "type": "read_only"}
                    for name in unknown
                ],
            )

        rule = await self._owned_rule(rule_id)
        current = {name: getattr(rule, name) for name in _EDITABLE_FIELDS}
        definition = validate_rule_definition({**current, **updates})

        rule = await self._rules.update(rule_id, **definition.to_columns())
        logger.info("automation_rule_updated", rule_id=str(rule_id), fields=sorted(updates))
        return rule

    async def toggle_rule(self, rule_id: UUID, is_active: bool | None = None) -> AutomationRule:
        """Switch a rule on or off; flips the current state when ``is_active`` is None."""
        rule = await self._owned_rule(rule_id)
        target = (not rule.is_active) if is_active is None else is_active
        rule = await self._rules.set_active(rule_id, target)
        logger.info("automation_rule_toggled", rule_id=str(rule_id), is_active=target)
        return rule

    async def delete_rule(self, rule_id: UUID) -> None:
        """Delete a rule. Its execution history is kept."""
        await self._owned_rule(rule_id)
        await self._rules.delete(rule_id)
        logger.info("automation_rule_deleted", rule_id=str(rule_id))

    def get_rule_templates(self) -> list[RuleTemplate]:
        """Pre-built templates for common admissions workflows."""
        return list(RULE_TEMPLATES)

    async def create_rule_from_template(
        self,
        template_id: str,
        overrides: Mapping[str, Any] | None = None,
    ) -> AutomationRule:
        """Create a rule from a template, with top-level fields overridden."""
        template = get_rule_template(template_id)
        if template is None:
            raise RecordNotFoundError("rule_templates", template_id)
        return await self.create_rule(template.build(dict(overrides or {})))

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute_rule(
        self,
        rule_id: UUID,
        lead: Any,
        trigger_data: Mapping[str, Any] | None = None,
    ) -> AutomationExecution:
        """Run one of the current user's rules against a lead.

        ``lead`` may be a lead ID, a Lead model or a lead record.
        """
        await self._owned_rule(rule_id)
        if isinstance(lead, UUID):
            lead = await self._leads.require(lead)
        return await self._orchestrator.execute_rule(rule_id, lead, trigger_data)

    async def handle_lead_event(
        self,
        lead: Any,
        trigger_type: TriggerType | str,
        previous_lead: Any = None,
        now: datetime | None = None,
    ) -> list[RuleOutcome]:
        """Run every matching rule for a lead event, highest priority first.

        A rule that fails is recorded in its outcome and does not stop the
        remaining rules.
        """
        if not self._config.enable_automation:
            logger.debug("automation_disabled", trigger_type=str(trigger_type))
            return []

        owner_id = self._owner_id()
        event = trigger_type.value if isinstance(trigger_type, TriggerType) else str(trigger_type)
        record = lead_record(lead)
        previous = lead_record(previous_lead) if previous_lead is not None else None

        rules = await self._rules.list_for_owner(owner_id, active_only=True, trigger_type=event)
        matched = self._matcher.match(rules, record, event, previous, now)
        trigger_data = {
            "trigger_type": event,
            "timestamp": utcnow().isoformat(),
            "previous_values": to_jsonable(changed_values(record, previous)),
        }

        # A failed run rolls the session back, which expires loaded rules
        targets = [(rule.id, rule.name) for rule in matched]
        outcomes = []
        for rule_id, rule_name in targets:
            outcomes.append(await self._run(rule_id, rule_name, record, trigger_data))

        logger.info(
            "lead_event_handled",
            trigger_type=event,
            lead_id=str(record.get("id")),
            matched=len(targets),
            failed=sum(1 for o in outcomes if not o.succeeded),
        )
        return outcomes

    async def run_time_based_rules(
        self,
        leads: Iterable[Any] | None = None,
        now: datetime | None = None,
    ) -> list[RuleOutcome]:
        """Sweep time-based rules against leads at one instant.

        Intended to be called by an external scheduler. Every rule that ran
        for at least one lead has ``last_checked`` set to ``now``.

        Args:
            leads: Leads to check; defaults to all of the current user's leads
            now: Sweep instant (defaults to the current time)
        """
        if not self._config.enable_automation:
            logger.debug("automation_disabled", trigger_type=TriggerType.TIME_BASED.value)
            return []

        owner_id = self._owner_id()
        instant = as_naive_utc(now) if now is not None else utcnow()
        event = TriggerType.TIME_BASED.value

        rules = await self._rules.list_for_owner(owner_id, active_only=True, trigger_type=event)
        if leads is None:
            leads = await self._leads.list_for_owner(owner_id)
        records = [lead_record(lead) for lead in leads]

        configs = {
            rule.id: dict(rule.trigger_config) if isinstance(rule.trigger_config, Mapping) else {}
            for rule in rules
        }
        plan = []
        for record in records:
            for rule in self._matcher.match(rules, record, event, now=instant):
                plan.append((rule.id, rule.name, record))

        trigger_data = {"trigger_type": event, "timestamp": instant.isoformat()}
        outcomes = []
        for rule_id, rule_name, record in plan:
            outcomes.append(await self._run(rule_id, rule_name, record, trigger_data))

        for rule_id in dict.fromkeys(rule_id for rule_id, _, _ in plan):
            stamped = {**configs[rule_id], "last_checked": instant.isoformat()}
            await self._rules.update(rule_id, trigger_config=stamped)

        logger.info(
            "time_based_sweep_completed",
            rules=len(rules),
            leads=len(records),
            executions=len(outcomes),
            failed=sum(1 for o in outcomes if not o.succeeded),
        )
        return outcomes

    # =========================================================================
    # History and reporting
    # =========================================================================

    async def get_execution_history(
        self,
        rule_id: UUID | None = None,
        limit: int = 50,
    ) -> list[AutomationExecution]:
        """Executions of one rule, or of all the user's rules, newest first."""
        if rule_id is not None:
            await self._owned_rule(rule_id)
            rule_ids = [rule_id]
        else:
            rule_ids = [rule.id for rule in await self._rules.list_for_owner(self._owner_id())]
        return await self._executions.list_for_rules(rule_ids, limit=limit)

    async def get_action_logs(self, execution_id: UUID) -> list[AutomationActionLog]:
        """Per-action audit entries of one execution."""
        execution = await self._executions.get_by_id(execution_id)
        if execution is None:
            raise RecordNotFoundError("automation_executions", execution_id)
        rule = await self._rules.get_by_id(execution.rule_id)
        if rule is None or rule.owner_id != self._owner_id():
            raise RecordNotFoundError("automation_executions", execution_id)
        return await self._action_logs.list_for_execution(execution_id)

    async def get_metrics(self, date_range: DateRange | None = None) -> AutomationMetrics:
        """Automation metrics for the current user's rules."""
        return await self._metrics.get_metrics(self._owner_id(), date_range)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _owner_id(self) -> UUID:
        user = self._identity.current_user()
        if user is None:
            raise UnauthenticatedError()
        return user.id

    async def _owned_rule(self, rule_id: UUID) -> AutomationRule:
        rule = await self._rules.get_by_id(rule_id)
        if rule is None or rule.owner_id != self._owner_id():
            raise RuleNotFoundError(rule_id)
        return rule

    async def _run(
        self,
        rule_id: UUID,
        rule_name: str,
        record: Mapping[str, Any],
        trigger_data: Mapping[str, Any],
    ) -> RuleOutcome:
        try:
            execution = await self._orchestrator.execute_rule(rule_id, record, trigger_data)
        except Exception as exc:
            logger.warning(
                "automation_rule_run_failed",
                rule_id=str(rule_id),
                lead_id=str(record.get("id")),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            code = exc.code if isinstance(exc, CRMError) else type(exc).__name__
            return RuleOutcome(rule_id, rule_name, error=str(exc) or code, error_code=code)
        return RuleOutcome(rule_id, rule_name, execution=execution)
