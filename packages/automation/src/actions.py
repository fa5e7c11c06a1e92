"""Action Dispatch.

Maps an action's ``action_type`` to the side effect it performs against the
record store or an external collaborator. Handlers write through the
repositories and then mirror the written values into the caller's lead
record, so later actions of the same execution see earlier effects.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from datetime import timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from packages.core.src.config import CRMConfig, get_config
from packages.core.src.errors import (
    IntegrationError,
    MissingCollaboratorError,
    UnknownActionTypeError,
)
from packages.core.src.protocols import IdentityProvider, Notifier, StudentConverter
from packages.database.src.models import TaskPriority, utcnow
from packages.database.src.repositories import LeadRepository, LeadTaskRepository

from .definitions import (
    ActionType,
    AddTagConfig,
    AssignLeadConfig,
    CreateTaskConfig,
    SendEmailConfig,
    UpdateScoreConfig,
    UpdateStatusConfig,
    parse_action_config,
)

logger = structlog.get_logger()


class LoggingNotifier:
    """Notifier that only records the send in the application log."""

    async def send(self, template_id: str, recipient_email: str, context: dict[str, Any]) -> None:
        logger.info(
            "email_send_requested",
            template_id=template_id,
            recipient=recipient_email,
            lead_id=context.get("lead_id"),
        )


def _lead_uuid(lead: Mapping[str, Any]) -> UUID:
    lead_id = lead.get("id")
    if isinstance(lead_id, UUID):
        return lead_id
    return UUID(str(lead_id))


class ActionDispatcher:
    """Execute single rule actions.

    Example:
        dispatcher = ActionDispatcher(session, notifier=SendgridNotifier())
        result = await dispatcher.execute(
            {"action_type": "add_tag", "action_config": {"tags": ["vip"]}},
            lead_record,
            execution_id,
        )
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier | None = None,
        student_converter: StudentConverter | None = None,
        identity: IdentityProvider | None = None,
        config: CRMConfig | None = None,
    ) -> None:
        self._leads = LeadRepository(session)
        self._tasks = LeadTaskRepository(session)
        self._notifier = notifier or LoggingNotifier()
        self._converter = student_converter
        self._identity = identity
        self._config = config or get_config()
        self._handlers = {
            ActionType.SEND_EMAIL: self._send_email,
            ActionType.ASSIGN_LEAD: self._assign_lead,
            ActionType.UPDATE_STATUS: self._update_status,
            ActionType.ADD_TAG: self._add_tag,
            ActionType.CREATE_TASK: self._create_task,
            ActionType.UPDATE_SCORE: self._update_score,
            ActionType.CONVERT_TO_STUDENT: self._convert_to_student,
        }

    async def execute(
        self,
        action: Mapping[str, Any],
        lead: MutableMapping[str, Any],
        execution_id: UUID | None = None,
    ) -> dict[str, Any]:
        """Run one action against a lead.

        Args:
            action: Stored action ({action_type, action_config, order_index})
            lead: Working lead record; updated in place with written values
            execution_id: Execution the action belongs to

        Returns:
            JSON-serialisable summary of what the action did

        Raises:
            UnknownActionTypeError: if no handler exists for the action type
            ActionConfigError: if the configuration does not fit its schema
        """
        raw_type = action.get("action_type")
        try:
            action_type = ActionType(raw_type)
        except ValueError:
            raise UnknownActionTypeError(raw_type) from None

        config = parse_action_config(action_type, action.get("action_config"))
        handler = self._handlers[action_type]
        return await handler(config, lead, execution_id)

    async def _send_email(
        self, config: SendEmailConfig, lead: MutableMapping[str, Any], execution_id: UUID | None
    ) -> dict[str, Any]:
        email = lead.get("email")
        if not email:
            raise IntegrationError(
                "Lead has no email address",
                code="MISSING_RECIPIENT",
                details={"lead_id": str(lead.get("id"))},
            )

        context = {
            "lead_id": str(lead.get("id")),
            "first_name": lead.get("first_name"),
            "last_name": lead.get("last_name"),
            "status": lead.get("status"),
            "execution_id": str(execution_id) if execution_id else None,
        }
        await self._notifier.send(config.template_id, email, context)
        return {"template_id": config.template_id, "recipient": email}

    async def _assign_lead(
        self, config: AssignLeadConfig, lead: MutableMapping[str, Any], execution_id: UUID | None
    ) -> dict[str, Any]:
        assigned_at = utcnow()
        await self._leads.update_fields(
            _lead_uuid(lead),
            assigned_to=config.advisor_id,
            assigned_at=assigned_at,
            assignment_method="automation",
        )
        lead.update(
            assigned_to=config.advisor_id,
            assigned_at=assigned_at,
            assignment_method="automation",
        )
        return {"assigned_to": config.advisor_id, "assigned_at": assigned_at.isoformat()}

    async def _update_status(
        self, config: UpdateStatusConfig, lead: MutableMapping[str, Any], execution_id: UUID | None
    ) -> dict[str, Any]:
        previous = lead.get("status")
        await self._leads.update_fields(_lead_uuid(lead), status=config.status)
        lead["status"] = config.status
        return {"previous_status": previous, "status": config.status}

    async def _add_tag(
        self, config: AddTagConfig, lead: MutableMapping[str, Any], execution_id: UUID | None
    ) -> dict[str, Any]:
        tags = await self._leads.add_tags(
            _lead_uuid(lead),
            config.tags,
            max_retries=self._config.tag_update_max_retries,
        )
        lead["tags"] = list(tags)
        return {"added": list(config.tags), "tags": list(tags)}

    async def _create_task(
        self, config: CreateTaskConfig, lead: MutableMapping[str, Any], execution_id: UUID | None
    ) -> dict[str, Any]:
        user = self._identity.current_user() if self._identity else None
        assignee = config.assigned_to or lead.get("assigned_to") or (str(user.id) if user else None)
        due_date = utcnow() + timedelta(hours=config.due_in_hours) if config.due_in_hours else None

        task = await self._tasks.create(
            lead_id=_lead_uuid(lead),
            title=config.title,
            description=config.description,
            task_type=config.task_type,
            priority=TaskPriority(config.priority),
            assigned_to=assignee,
            due_date=due_date,
            user_id=user.id if user else None,
        )
        return {
            "task_id": str(task.id),
            "title": task.title,
            "task_type": task.task_type,
            "priority": task.priority.value,
            "assigned_to": task.assigned_to,
        }

    async def _update_score(
        self, config: UpdateScoreConfig, lead: MutableMapping[str, Any], execution_id: UUID | None
    ) -> dict[str, Any]:
        previous = lead.get("lead_score")
        score = await self._leads.adjust_score(
            _lead_uuid(lead),
            config.operation,
            config.value,
            minimum=self._config.min_lead_score,
            maximum=self._config.max_lead_score,
        )
        lead["lead_score"] = score
        return {
            "operation": config.operation,
            "value": config.value,
            "previous_score": previous,
            "lead_score": score,
        }

    async def _convert_to_student(
        self, config: Any, lead: MutableMapping[str, Any], execution_id: UUID | None
    ) -> dict[str, Any]:
        if self._converter is None:
            raise MissingCollaboratorError("student converter")
        student_id = await self._converter.create_student_from_lead(_lead_uuid(lead))
        return {"student_id": str(student_id) if student_id is not None else None}
