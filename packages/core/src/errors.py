"""Admissions CRM Error Hierarchy.

All custom errors inherit from CRMError for consistent handling.
"""

from __future__ import annotations

from typing import Any


class CRMError(Exception):
    """Base exception for all admissions CRM errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Automation Errors
class AutomationError(CRMError):
    """Error raised by the workflow automation engine."""

    pass


class RuleNotFoundError(AutomationError):
    """Requested automation rule does not exist."""

    def __init__(self, rule_id: Any) -> None:
        super().__init__(
            f"Automation rule '{rule_id}' not found",
            code="RULE_NOT_FOUND",
            details={"rule_id": str(rule_id)},
        )


class RuleInactiveError(AutomationError):
    """Automation rule exists but is switched off."""

    def __init__(self, rule_id: Any) -> None:
        super().__init__(
            f"Automation rule '{rule_id}' is not active",
            code="RULE_INACTIVE",
            details={"rule_id": str(rule_id)},
        )


class ConditionsNotMetError(AutomationError):
    """Lead does not satisfy the rule's conditions."""

    def __init__(self, rule_id: Any, lead_id: Any) -> None:
        super().__init__(
            f"Lead '{lead_id}' does not meet the conditions of rule '{rule_id}'",
            code="CONDITIONS_NOT_MET",
            details={"rule_id": str(rule_id), "lead_id": str(lead_id)},
        )


class UnknownActionTypeError(AutomationError):
    """Action type has no handler."""

    def __init__(self, action_type: Any) -> None:
        super().__init__(
            f"Unknown action type: {action_type}",
            code="UNKNOWN_ACTION_TYPE",
            details={"action_type": action_type},
        )


class UnknownTriggerTypeError(AutomationError):
    """Trigger type is not supported."""

    def __init__(self, trigger_type: Any) -> None:
        super().__init__(
            f"Unknown trigger type: {trigger_type}",
            code="UNKNOWN_TRIGGER_TYPE",
            details={"trigger_type": trigger_type},
        )


class ActionConfigError(AutomationError):
    """Action configuration does not match its schema."""

    def __init__(self, action_type: str, errors: list[dict[str, Any]]) -> None:
        super().__init__(
            f"Invalid configuration for action '{action_type}'",
            code="INVALID_ACTION_CONFIG",
            details={"action_type": action_type, "field_errors": errors},
        )


class ActionTimeoutError(AutomationError):
    """Action did not finish within the configured timeout."""

    def __init__(self, action_type: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Action '{action_type}' timed out after {timeout_seconds:g}s",
            code="ACTION_TIMEOUT",
            details={"action_type": action_type, "timeout_seconds": timeout_seconds},
        )


# Store Errors
class StoreError(CRMError):
    """Record store operation failed."""

    pass


class RecordNotFoundError(StoreError):
    """Record missing from the store."""

    def __init__(self, table: str, record_id: Any) -> None:
        super().__init__(
            f"{table} record '{record_id}' not found",
            code="RECORD_NOT_FOUND",
            details={"table": table, "record_id": str(record_id)},
        )


class ConcurrentUpdateError(StoreError):
    """Optimistic update kept losing to concurrent writers."""

    def __init__(self, table: str, record_id: Any, attempts: int) -> None:
        super().__init__(
            f"Gave up updating {table} record '{record_id}' after {attempts} conflicting attempts",
            code="CONCURRENT_UPDATE",
            details={"table": table, "record_id": str(record_id), "attempts": attempts},
        )


# Validation Errors
class ValidationError(CRMError):
    """Data validation failed."""

    def __init__(self, message: str, field_errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field_errors": field_errors or []},
        )


# Integration Errors
class IntegrationError(CRMError):
    """External collaborator failed."""

    pass


# Configuration Errors
class ConfigurationError(CRMError):
    """Configuration error."""

    pass


class MissingCollaboratorError(ConfigurationError):
    """Engine was asked to use a collaborator it was not given."""

    def __init__(self, collaborator: str) -> None:
        super().__init__(
            f"No {collaborator} configured for the automation engine",
            code="MISSING_COLLABORATOR",
            details={"collaborator": collaborator},
        )


# Access Errors
class UnauthenticatedError(CRMError):
    """No authenticated user is available."""

    def __init__(self) -> None:
        super().__init__("User not authenticated", code="UNAUTHENTICATED")
