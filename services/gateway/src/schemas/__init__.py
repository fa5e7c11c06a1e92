"""API Schemas for the Admissions CRM."""

from .automation import (
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

__all__ = [
    # Rules
    "RuleCreate",
    "RuleUpdate",
    "RuleToggle",
    "RuleFromTemplate",
    "RuleResponse",
    "RuleListResponse",
    "TemplateResponse",
    # Execution
    "ExecuteRuleRequest",
    "LeadEventRequest",
    "TimeBasedSweepRequest",
    "ExecutionResponse",
    "ExecutionListResponse",
    "ActionLogResponse",
    "RuleOutcomeResponse",
    "LeadEventResponse",
    # Metrics
    "RulePerformanceResponse",
    "MetricsResponse",
]
