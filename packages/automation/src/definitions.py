"""Typed Rule Definitions.

Rules are stored with free-form JSON configuration; these models give every
trigger type and action type its own configuration schema so that a rule is
rejected when it is created or updated, not when it first fires.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from packages.core.src import errors

from .conditions import ConditionOperator, LogicalOperator

# =============================================================================
# Enums
# =============================================================================


class TriggerType(str, Enum):
    """Lead lifecycle events a rule can react to."""

    LEAD_CREATED = "lead_created"
    LEAD_UPDATED = "lead_updated"
    SCORE_THRESHOLD = "score_threshold"
    TIME_BASED = "time_based"
    STATUS_CHANGE = "status_change"
    ENGAGEMENT_LEVEL = "engagement_level"


class ActionType(str, Enum):
    """Side effects a rule can perform."""

    SEND_EMAIL = "send_email"
    ASSIGN_LEAD = "assign_lead"
    UPDATE_STATUS = "update_status"
    ADD_TAG = "add_tag"
    CREATE_TASK = "create_task"
    UPDATE_SCORE = "update_score"
    CONVERT_TO_STUDENT = "convert_to_student"


# =============================================================================
# Trigger configuration
# =============================================================================


class _Config(BaseModel):
    model_config = ConfigDict(extra="allow")


class EmptyTriggerConfig(_Config):
    """lead_created / lead_updated take no parameters."""


class ScoreThresholdConfig(_Config):
    threshold: float


class EngagementLevelConfig(_Config):
    threshold: float


class StatusChangeConfig(_Config):
    target_status: str = Field(..., min_length=1)


class TimeBasedConfig(_Config):
    interval: Literal["daily", "weekly"]
    last_checked: datetime | None = None


TRIGGER_CONFIG_MODELS: dict[TriggerType, type[_Config]] = {
    TriggerType.LEAD_CREATED: EmptyTriggerConfig,
    TriggerType.LEAD_UPDATED: EmptyTriggerConfig,
    TriggerType.SCORE_THRESHOLD: ScoreThresholdConfig,
    TriggerType.TIME_BASED: TimeBasedConfig,
    TriggerType.STATUS_CHANGE: StatusChangeConfig,
    TriggerType.ENGAGEMENT_LEVEL: EngagementLevelConfig,
}


# =============================================================================
# Action configuration
# =============================================================================


class SendEmailConfig(_Config):
    template_id: str = Field(..., min_length=1)


class AssignLeadConfig(_Config):
    advisor_id: str = Field(..., min_length=1)


class UpdateStatusConfig(_Config):
    status: str = Field(..., min_length=1)


class AddTagConfig(_Config):
    tags: list[str] = Field(..., min_length=1)


class CreateTaskConfig(_Config):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    task_type: str = "follow_up"
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    assigned_to: str | None = None
    due_in_hours: float | None = Field(default=None, gt=0)


class UpdateScoreConfig(_Config):
    operation: Literal["add", "subtract", "set"]
    value: int


class ConvertToStudentConfig(_Config):
    """Conversion is delegated entirely to the student-conversion collaborator."""


ACTION_CONFIG_MODELS: dict[ActionType, type[_Config]] = {
    ActionType.SEND_EMAIL: SendEmailConfig,
    ActionType.ASSIGN_LEAD: AssignLeadConfig,
    ActionType.UPDATE_STATUS: UpdateStatusConfig,
    ActionType.ADD_TAG: AddTagConfig,
    ActionType.CREATE_TASK: CreateTaskConfig,
    ActionType.UPDATE_SCORE: UpdateScoreConfig,
    ActionType.CONVERT_TO_STUDENT: ConvertToStudentConfig,
}


def parse_action_config(action_type: ActionType, config: dict[str, Any] | None) -> Any:
    """Validate an action configuration against its schema.

    Raises:
        ActionConfigError: if the configuration does not fit
    """
    model = ACTION_CONFIG_MODELS[action_type]
    try:
        return model.model_validate(config or {})
    except ValidationError as e:
        field_errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise errors.ActionConfigError(action_type.value, field_errors) from e


# =============================================================================
# Rule definitions
# =============================================================================


class ConditionDefinition(BaseModel):
    """A condition as authored."""

    field: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: Any = None
    logical_operator: LogicalOperator = LogicalOperator.AND

    @model_validator(mode="after")
    def check_operand(self) -> ConditionDefinition:
        if self.operator == ConditionOperator.IN and not isinstance(self.value, list):
            raise ValueError("'in' requires a list value")
        if self.operator == ConditionOperator.BETWEEN:
            if not isinstance(self.value, list) or len(self.value) != 2:
                raise ValueError("'between' requires a [min, max] pair")
        return self


class ActionDefinition(BaseModel):
    """An action as authored."""

    action_type: ActionType
    action_config: dict[str, Any] = Field(default_factory=dict)
    order_index: int = 0

    @model_validator(mode="after")
    def check_config(self) -> ActionDefinition:
        model = ACTION_CONFIG_MODELS[self.action_type]
        # Stored config is the normalised form, defaults filled in
        self.action_config = model.model_validate(self.action_config).model_dump(
            mode="json", exclude_none=True
        )
        return self


class RuleDefinition(BaseModel):
    """Complete, validated rule definition."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    trigger_type: TriggerType
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    conditions: list[ConditionDefinition] = Field(default_factory=list)
    actions: list[ActionDefinition] = Field(default_factory=list)
    is_active: bool = True
    priority: int = 0

    @model_validator(mode="after")
    def check_trigger_config(self) -> RuleDefinition:
        model = TRIGGER_CONFIG_MODELS[self.trigger_type]
        self.trigger_config = model.model_validate(self.trigger_config).model_dump(
            mode="json", exclude_none=True
        )
        return self

    def to_columns(self) -> dict[str, Any]:
        """Column values for AutomationRule."""
        return {
            "name": self.name,
            "description": self.description,
            "trigger_type": self.trigger_type.value,
            "trigger_config": self.trigger_config,
            "conditions": [c.model_dump(mode="json") for c in self.conditions],
            "actions": [a.model_dump(mode="json") for a in self.actions],
            "is_active": self.is_active,
            "priority": self.priority,
        }


def validate_rule_definition(data: dict[str, Any]) -> RuleDefinition:
    """Validate raw rule data.

    Raises:
        UnknownTriggerTypeError: if ``trigger_type`` is not supported
        ValidationError: for every other problem
    """
    trigger_type = data.get("trigger_type")
    if isinstance(trigger_type, str) and not isinstance(trigger_type, TriggerType):
        if trigger_type not in TriggerType._value2member_map_:
            raise errors.UnknownTriggerTypeError(trigger_type)

    try:
        return RuleDefinition.model_validate(data)
    except ValidationError as e:
        field_errors = [
            {
                "field": " -> ".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in e.errors()
        ]
        raise errors.ValidationError("Invalid automation rule", field_errors) from e
