"""Workflow automation API endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from packages.automation.src.metrics import DateRange
from packages.automation.src.service import RuleOutcome, WorkflowAutomationService
from packages.automation.src.triggers import as_naive_utc
from packages.core.src.errors import RecordNotFoundError
from packages.core.src.protocols import CurrentUser
from packages.database.src.models import (
    AutomationActionLog,
    AutomationExecution,
    AutomationRule,
    Lead,
)
from packages.database.src.repositories import LeadRepository
from packages.database.src.session import get_db_session

from ..auth.dependencies import get_automation_service, get_current_user
from ..schemas.automation import (
    ActionLogResponse,
    ExecuteRuleRequest,
    ExecutionListResponse,
    ExecutionResponse,
    LeadEventRequest,
    LeadEventResponse,
    MetricsResponse,
    RuleCreate,
    RuleFromTemplate,
    RuleListResponse,
    RuleOutcomeResponse,
    RulePerformanceResponse,
    RuleResponse,
    RuleToggle,
    RuleUpdate,
    TemplateResponse,
    TimeBasedSweepRequest,
)

logger = structlog.get_logger()
router = APIRouter()


def rule_to_response(rule: AutomationRule) -> RuleResponse:
    """Convert database model to response schema."""
    return RuleResponse(
        id=rule.id,
        name=rule.name,
        description=rule.description,
        trigger_type=rule.trigger_type,
        trigger_config=rule.trigger_config or {},
        conditions=rule.conditions or [],
        actions=rule.actions or [],
        is_active=rule.is_active,
        priority=rule.priority or 0,
        execution_count=rule.execution_count or 0,
        success_count=rule.success_count or 0,
        failure_count=rule.failure_count or 0,
        last_executed=rule.last_executed,
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


def execution_to_response(execution: AutomationExecution) -> ExecutionResponse:
    """Convert database model to response schema."""
    return ExecutionResponse(
        id=execution.id,
        rule_id=execution.rule_id,
        lead_id=execution.lead_id,
        trigger_data=execution.trigger_data or {},
        execution_status=execution.execution_status.value,
        actions_executed=execution.actions_executed or 0,
        total_actions=execution.total_actions or 0,
        error_message=execution.error_message,
        execution_time_ms=execution.execution_time_ms,
        created_at=execution.created_at,
        completed_at=execution.completed_at,
    )


def action_log_to_response(entry: AutomationActionLog) -> ActionLogResponse:
    """Convert database model to response schema."""
    return ActionLogResponse(
        id=entry.id,
        execution_id=entry.execution_id,
        sequence=entry.sequence,
        action_type=entry.action_type,
        action_data=entry.action_data,
        status=entry.status.value,
        error_message=entry.error_message,
        duration_ms=entry.duration_ms,
        created_at=entry.created_at,
    )


def outcome_to_response(outcome: RuleOutcome) -> RuleOutcomeResponse:
    return RuleOutcomeResponse(
        rule_id=outcome.rule_id,
        rule_name=outcome.rule_name,
        succeeded=outcome.succeeded,
        execution_id=outcome.execution.id if outcome.execution else None,
        error=outcome.error,
        error_code=outcome.error_code,
    )


def outcomes_to_response(outcomes: list[RuleOutcome]) -> LeadEventResponse:
    return LeadEventResponse(
        outcomes=[outcome_to_response(o) for o in outcomes],
        executed=len(outcomes),
        failed=sum(1 for o in outcomes if not o.succeeded),
    )


async def load_owned_lead(lead_id: UUID, user: CurrentUser, db: AsyncSession) -> Lead:
    """Load a lead owned by the user; other users' leads are reported missing."""
    lead = await LeadRepository(db).get_by_id(lead_id)
    if lead is None or lead.user_id != user.id:
        raise RecordNotFoundError("leads", lead_id)
    return lead


# =============================================================================
# Rules
# =============================================================================


@router.get("/rules", response_model=RuleListResponse)
async def list_rules(
    active_only: bool = Query(default=False),
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> RuleListResponse:
    """List the user's rules, highest priority first."""
    rules = await service.get_rules(active_only=active_only)
    return RuleListResponse(rules=[rule_to_response(r) for r in rules], total=len(rules))


@router.post("/rules", response_model=RuleResponse, status_code=201)
async def create_rule(
    data: RuleCreate,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> RuleResponse:
    """Create an automation rule."""
    rule = await service.create_rule(data.model_dump())
    return rule_to_response(rule)


@router.get("/rules/{rule_id}", response_model=RuleResponse)
async def get_rule(
    rule_id: UUID,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> RuleResponse:
    """Get a rule by ID."""
    return rule_to_response(await service.get_rule(rule_id))


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: UUID,
    data: RuleUpdate,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> RuleResponse:
    """Update a rule."""
    rule = await service.update_rule(rule_id, data.model_dump(exclude_unset=True))
    return rule_to_response(rule)


@router.post("/rules/{rule_id}/toggle", response_model=RuleResponse)
async def toggle_rule(
    rule_id: UUID,
    data: RuleToggle | None = None,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> RuleResponse:
    """Switch a rule on or off."""
    rule = await service.toggle_rule(rule_id, data.is_active if data else None)
    return rule_to_response(rule)


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: UUID,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> Response:
    """Delete a rule. Its execution history is kept."""
    await service.delete_rule(rule_id)
    return Response(status_code=204)


@router.post("/rules/{rule_id}/execute", response_model=ExecutionResponse)
async def execute_rule(
    rule_id: UUID,
    data: ExecuteRuleRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> ExecutionResponse:
    """Run one rule against one lead now."""
    lead = await load_owned_lead(data.lead_id, current_user, db)
    execution = await service.execute_rule(rule_id, lead, data.trigger_data)
    return execution_to_response(execution)


@router.get("/rules/{rule_id}/executions", response_model=ExecutionListResponse)
async def list_rule_executions(
    rule_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> ExecutionListResponse:
    """Execution history of one rule, newest first."""
    executions = await service.get_execution_history(rule_id=rule_id, limit=limit)
    return ExecutionListResponse(
        executions=[execution_to_response(e) for e in executions],
        total=len(executions),
    )


# =============================================================================
# Templates
# =============================================================================


@router.get("/templates", response_model=list[TemplateResponse])
async def list_templates(
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> list[TemplateResponse]:
    """Pre-built rule templates."""
    return [TemplateResponse(**t.to_dict()) for t in service.get_rule_templates()]


@router.post("/templates/{template_id}/rules", response_model=RuleResponse, status_code=201)
async def create_rule_from_template(
    template_id: str,
    data: RuleFromTemplate | None = None,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> RuleResponse:
    """Create a rule from a template."""
    rule = await service.create_rule_from_template(template_id, data.overrides if data else None)
    return rule_to_response(rule)


# =============================================================================
# Events
# =============================================================================


@router.post("/events", response_model=LeadEventResponse)
async def handle_lead_event(
    data: LeadEventRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> LeadEventResponse:
    """Run every matching rule for a lead event."""
    lead = await load_owned_lead(data.lead_id, current_user, db)
    current = lead.to_record()
    previous = {**current, **data.previous_values} if data.previous_values is not None else None

    outcomes = await service.handle_lead_event(current, data.trigger_type, previous_lead=previous)
    return outcomes_to_response(outcomes)


@router.post("/time-based/run", response_model=LeadEventResponse)
async def run_time_based_rules(
    data: TimeBasedSweepRequest | None = None,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> LeadEventResponse:
    """Sweep time-based rules over all of the user's leads."""
    outcomes = await service.run_time_based_rules(now=data.now if data else None)
    return outcomes_to_response(outcomes)


# =============================================================================
# History and metrics
# =============================================================================


@router.get("/executions", response_model=ExecutionListResponse)
async def list_executions(
    limit: int = Query(default=50, ge=1, le=500),
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> ExecutionListResponse:
    """Execution history across all of the user's rules, newest first."""
    executions = await service.get_execution_history(limit=limit)
    return ExecutionListResponse(
        executions=[execution_to_response(e) for e in executions],
        total=len(executions),
    )


@router.get("/executions/{execution_id}/actions", response_model=list[ActionLogResponse])
async def list_action_logs(
    execution_id: UUID,
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> list[ActionLogResponse]:
    """Per-action audit entries of one execution."""
    entries = await service.get_action_logs(execution_id)
    return [action_log_to_response(e) for e in entries]


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    service: WorkflowAutomationService = Depends(get_automation_service),
) -> MetricsResponse:
    """Automation metrics, optionally within a date range."""
    window = DateRange(start=as_naive_utc(start), end=as_naive_utc(end))
    metrics = await service.get_metrics(window)
    return MetricsResponse(
        total_rules=metrics.total_rules,
        active_rules=metrics.active_rules,
        total_executions=metrics.total_executions,
        completed_executions=metrics.completed_executions,
        failed_executions=metrics.failed_executions,
        success_rate=metrics.success_rate,
        average_execution_time=metrics.average_execution_time,
        top_performing_rules=[
            RulePerformanceResponse(**p.to_dict()) for p in metrics.top_performing_rules
        ],
        recent_activity=[execution_to_response(e) for e in metrics.recent_activity],
    )
