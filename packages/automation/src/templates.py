"""Pre-built rule templates for common admissions scenarios."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RuleTemplate:
    """A named starting point for a new rule."""

    id: str
    name: str
    description: str
    category: str  # assignment, lead_qualification, follow_up, conversion
    rule: dict[str, Any]

    def build(self, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """Raw rule data for this template with top-level overrides applied."""
        data = copy.deepcopy(self.rule)
        data.update(copy.deepcopy(overrides or {}))
        return data

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "rule": copy.deepcopy(self.rule),
        }


RULE_TEMPLATES: tuple[RuleTemplate, ...] = (
    RuleTemplate(
        id="new_lead_assignment",
        name="New Lead Auto-Assignment",
        description="Assign new leads to an admissions advisor and tag them for intake",
        category="assignment",
        rule={
            "name": "Auto-Assign New Leads",
            "trigger_type": "lead_created",
            "trigger_config": {},
            "conditions": [{"field": "status", "operator": "equals", "value": "new"}],
            "actions": [
                {
                    "action_type": "assign_lead",
                    "action_config": {"advisor_id": "admissions_team"},
                    "order_index": 0,
                },
                {
                    "action_type": "add_tag",
                    "action_config": {"tags": ["intake"]},
                    "order_index": 1,
                },
            ],
            "priority": 10,
        },
    ),
    RuleTemplate(
        id="high_value_lead_alert",
        name="High-Value Lead Alert",
        description="Tag and hand off leads whose score crosses 80",
        category="lead_qualification",
        rule={
            "name": "High-Value Lead Alert",
            "trigger_type": "score_threshold",
            "trigger_config": {"threshold": 80},
            "conditions": [],
            "actions": [
                {
                    "action_type": "add_tag",
                    "action_config": {"tags": ["high-value", "priority"]},
                    "order_index": 0,
                },
                {
                    "action_type": "create_task",
                    "action_config": {
                        "title": "Call high-value lead",
                        "priority": "high",
                        "due_in_hours": 4,
                    },
                    "order_index": 1,
                },
            ],
            "priority": 20,
        },
    ),
    RuleTemplate(
        id="stale_lead_follow_up",
        name="Stale Lead Follow-up",
        description="Create a daily follow-up task for leads still waiting for first contact",
        category="follow_up",
        rule={
            "name": "Stale Lead Follow-up",
            "trigger_type": "time_based",
            "trigger_config": {"interval": "daily"},
            "conditions": [
                {"field": "status", "operator": "in", "value": ["new", "contacted"]},
            ],
            "actions": [
                {
                    "action_type": "create_task",
                    "action_config": {
                        "title": "Follow up with stale lead",
                        "priority": "high",
                        "due_in_hours": 24,
                    },
                    "order_index": 0,
                },
            ],
            "priority": 15,
        },
    ),
    RuleTemplate(
        id="qualified_lead_follow_up",
        name="Qualified Lead Follow-up",
        description="Email and create a follow-up task when a lead becomes qualified",
        category="follow_up",
        rule={
            "name": "Qualified Lead Follow-up",
            "trigger_type": "status_change",
            "trigger_config": {"target_status": "qualified"},
            "conditions": [],
            "actions": [
                {
                    "action_type": "send_email",
                    "action_config": {"template_id": "qualified_next_steps"},
                    "order_index": 0,
                },
                {
                    "action_type": "create_task",
                    "action_config": {"title": "Follow up"},
                    "order_index": 1,
                },
            ],
            "priority": 10,
        },
    ),
    RuleTemplate(
        id="ready_to_enroll",
        name="Ready to Enroll Conversion",
        description="Convert highly engaged leads to students and notify the registrar",
        category="conversion",
        rule={
            "name": "Ready to Enroll",
            "trigger_type": "engagement_level",
            "trigger_config": {"threshold": 90},
            "conditions": [
                {"field": "status", "operator": "equals", "value": "qualified"},
            ],
            "actions": [
                {
                    "action_type": "convert_to_student",
                    "action_config": {},
                    "order_index": 0,
                },
                {
                    "action_type": "update_status",
                    "action_config": {"status": "converted"},
                    "order_index": 1,
                },
            ],
            "is_active": False,
            "priority": 30,
        },
    ),
)


def get_rule_template(template_id: str) -> RuleTemplate | None:
    """Get a template by ID."""
    for template in RULE_TEMPLATES:
        if template.id == template_id:
            return template
    return None
