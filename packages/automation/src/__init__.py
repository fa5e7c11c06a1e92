"""Admissions CRM Workflow Automation - Rule evaluation, dispatch and reporting."""

from .actions import ActionDispatcher, LoggingNotifier
from .conditions import (
    MISSING,
    Condition,
    ConditionOperator,
    LogicalOperator,
    evaluate_conditions,
    resolve_field,
)
from .definitions import (
    ActionDefinition,
    ActionType,
    ConditionDefinition,
    RuleDefinition,
    TriggerType,
    parse_action_config,
    validate_rule_definition,
)
from .metrics import AutomationMetrics, DateRange, MetricsAggregator, RulePerformance
from .orchestrator import ExecutionOrchestrator, lead_record
from .service import RuleOutcome, WorkflowAutomationService
from .templates import RULE_TEMPLATES, RuleTemplate, get_rule_template
from .triggers import TIME_INTERVALS, TriggerMatcher

__all__ = [
    # Conditions
    "MISSING",
    "Condition",
    "ConditionOperator",
    "LogicalOperator",
    "evaluate_conditions",
    "resolve_field",
    # Definitions
    "TriggerType",
    "ActionType",
    "ConditionDefinition",
    "ActionDefinition",
    "RuleDefinition",
    "parse_action_config",
    "validate_rule_definition",
    # Engine
    "TriggerMatcher",
    "TIME_INTERVALS",
    "ActionDispatcher",
    "LoggingNotifier",
    "ExecutionOrchestrator",
    "lead_record",
    "MetricsAggregator",
    "AutomationMetrics",
    "RulePerformance",
    "DateRange",
    # Service
    "WorkflowAutomationService",
    "RuleOutcome",
    # Templates
    "RuleTemplate",
    "RULE_TEMPLATES",
    "get_rule_template",
]
