"""Admissions CRM Protocols - Interfaces for the collaborators the engine consumes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from uuid import UUID


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the user the engine acts on behalf of."""

    id: UUID
    email: str | None = None


@runtime_checkable
class IdentityProvider(Protocol):
    """Supplies the authenticated user."""

    def current_user(self) -> CurrentUser | None:
        """Return the current user, or None when unauthenticated."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Delivers templated email to a recipient."""

    async def send(
        self,
        template_id: str,
        recipient_email: str,
        context: dict[str, Any],
    ) -> None:
        """Send one message.

        Args:
            template_id: Identifier of the message template
            recipient_email: Destination address
            context: Values available to the template
        """
        ...


@runtime_checkable
class StudentConverter(Protocol):
    """Turns a lead into a student record."""

    async def create_student_from_lead(self, lead_id: UUID) -> Any:
        """Create the student and return its identifier."""
        ...


class StaticIdentityProvider:
    """Identity provider pinned to one user (request scope, scripts, tests)."""

    def __init__(self, user: CurrentUser | None) -> None:
        self._user = user

    def current_user(self) -> CurrentUser | None:
        return self._user
