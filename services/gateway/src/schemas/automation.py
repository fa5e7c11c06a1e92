"""Workflow automation API schemas.

Rule bodies are accepted loosely here and validated by the automation
package, so API and programmatic callers get the same errors.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RuleCreate(BaseModel):
    """Schema for creating an automation rule."""

    name: str = Field(..., description="Rule name")
    description: str | None = Field(default=None, description="What the rule is for")
    trigger_type: str = Field(..., description="Lead event the rule reacts to")
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    priority: int = Field(default=0, description="Higher runs first")


class RuleUpdate(BaseModel):
    """Schema for updating a rule. Only fields that are sent are changed."""

    name: str | None = None
    description: str | None = None
    trigger_type: str | None = None
    trigger_config: dict[str, Any] | None = None
    conditions: list[dict[str, Any]] | None = None
    actions: list[dict[str, Any]] | None = None
    is_active: bool | None = None
    priority: int | None = None


class RuleToggle(BaseModel):
    """Explicit state; omitted flips the current state."""

    is_active: bool | None = None


class RuleFromTemplate(BaseModel):
    """Top-level rule fields to override in the template."""

    overrides: dict[str, Any] = Field(default_factory=dict)


class RuleResponse(BaseModel):
    """Schema for rule response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    trigger_type: str
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool
    priority: int
    execution_count: int
    success_count: int
    failure_count: int
    last_executed: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class RuleListResponse(BaseModel):
    """Schema for rule list response."""

    rules: list[RuleResponse]
    total: int


class TemplateResponse(BaseModel):
    """Schema for rule template response."""

    id: str
    name: str
    description: str
    category: str
    rule: dict[str, Any]


class ExecuteRuleRequest(BaseModel):
    """Schema for running one rule against one lead."""

    lead_id: UUID
    trigger_data: dict[str, Any] | None = None


class LeadEventRequest(BaseModel):
    """Schema for reporting a lead event.

    ``previous_values`` holds the fields that changed, with their values
    before the event; the rest of the previous state is taken from the
    current lead.
    """

    lead_id: UUID
    trigger_type: str
    previous_values: dict[str, Any] | None = None


class TimeBasedSweepRequest(BaseModel):
    """Schema for a time-based sweep."""

    now: datetime | None = Field(default=None, description="Sweep instant; defaults to now")


class ExecutionResponse(BaseModel):
    """Schema for execution response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rule_id: UUID
    lead_id: UUID
    trigger_data: dict[str, Any] = Field(default_factory=dict)
    execution_status: str
    actions_executed: int
    total_actions: int
    error_message: str | None = None
    execution_time_ms: float | None = None
    created_at: datetime
    completed_at: datetime | None = None


class ExecutionListResponse(BaseModel):
    """Schema for execution history response."""

    executions: list[ExecutionResponse]
    total: int


class ActionLogResponse(BaseModel):
    """Schema for one action audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    execution_id: UUID
    sequence: int
    action_type: str
    action_data: dict[str, Any] | None = None
    status: str
    error_message: str | None = None
    duration_ms: float | None = None
    created_at: datetime


class RuleOutcomeResponse(BaseModel):
    """Result of one rule run during event handling."""

    rule_id: UUID
    rule_name: str
    succeeded: bool
    execution_id: UUID | None = None
    error: str | None = None
    error_code: str | None = None


class LeadEventResponse(BaseModel):
    """Schema for event handling response."""

    outcomes: list[RuleOutcomeResponse]
    executed: int
    failed: int


class RulePerformanceResponse(BaseModel):
    """Per-rule performance."""

    rule_id: UUID
    rule_name: str
    executions: int
    successes: int
    success_rate: float


class MetricsResponse(BaseModel):
    """Schema for automation metrics response."""

    total_rules: int
    active_rules: int
    total_executions: int
    completed_executions: int
    failed_executions: int
    success_rate: float
    average_execution_time: float
    top_performing_rules: list[RulePerformanceResponse]
    recent_activity: list[ExecutionResponse]
