"""Admissions CRM Core Package - Config, Errors, and Protocols."""

from .config import CRMConfig, Environment, clear_config_cache, get_config
from .errors import (
    ActionConfigError,
    ActionTimeoutError,
    AutomationError,
    ConcurrentUpdateError,
    ConditionsNotMetError,
    ConfigurationError,
    CRMError,
    IntegrationError,
    MissingCollaboratorError,
    RecordNotFoundError,
    RuleInactiveError,
    RuleNotFoundError,
    StoreError,
    UnauthenticatedError,
    UnknownActionTypeError,
    UnknownTriggerTypeError,
    ValidationError,
)
from .protocols import (
    CurrentUser,
    IdentityProvider,
    Notifier,
    StaticIdentityProvider,
    StudentConverter,
)

__all__ = [
    # Config
    "CRMConfig",
    "Environment",
    "get_config",
    "clear_config_cache",
    # Errors
    "CRMError",
    "AutomationError",
    "RuleNotFoundError",
    "RuleInactiveError",
    "ConditionsNotMetError",
    "UnknownActionTypeError",
    "UnknownTriggerTypeError",
    "ActionConfigError",
    "ActionTimeoutError",
    "StoreError",
    "RecordNotFoundError",
    "ConcurrentUpdateError",
    "ValidationError",
    "IntegrationError",
    "ConfigurationError",
    "MissingCollaboratorError",
    "UnauthenticatedError",
    # Protocols
    "CurrentUser",
    "IdentityProvider",
    "Notifier",
    "StudentConverter",
    "StaticIdentityProvider",
]
