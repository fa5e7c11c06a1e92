"""Database package for the admissions CRM."""

from .models import (
    ActionLogStatus,
    AutomationActionLog,
    AutomationExecution,
    AutomationRule,
    Base,
    # Enums
    ExecutionStatus,
    Lead,
    LeadTask,
    TaskPriority,
    utcnow,
)
from .repositories import (
    ActionLogRepository,
    AutomationExecutionRepository,
    AutomationRuleRepository,
    LeadRepository,
    LeadTaskRepository,
)
from .session import AsyncSessionLocal, close_db, get_db, get_db_session, init_db

__all__ = [
    # Models
    "Base",
    "Lead",
    "LeadTask",
    "AutomationRule",
    "AutomationExecution",
    "AutomationActionLog",
    "utcnow",
    # Enums
    "ExecutionStatus",
    "ActionLogStatus",
    "TaskPriority",
    # Repositories
    "LeadRepository",
    "LeadTaskRepository",
    "AutomationRuleRepository",
    "AutomationExecutionRepository",
    "ActionLogRepository",
    # Session
    "get_db",
    "get_db_session",
    "init_db",
    "close_db",
    "AsyncSessionLocal",
]
