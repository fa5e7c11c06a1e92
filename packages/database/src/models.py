"""SQLAlchemy models for the admissions CRM automation engine.

Tables:
- leads: Prospective students moving through the admissions pipeline
- lead_tasks: Follow-up tasks attached to leads
- automation_rules: Trigger + condition + ordered-action bundles
- automation_executions: One run of a rule against one lead
- automation_action_logs: Per-action audit trail of an execution
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ExecutionStatus(str, PyEnum):
    """Automation execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ActionLogStatus(str, PyEnum):
    """Outcome of a single action inside an execution."""

    SUCCESS = "success"
    FAILED = "failed"


class TaskPriority(str, PyEnum):
    """Lead task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Lead(Base):
    """Prospective student record.

    Owned by the wider CRM; the automation engine reads it for condition
    evaluation and writes assignment, status, tags and score.
    """

    __tablename__ = "leads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), index=True)  # Owning user

    # Contact
    email = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(50))

    # Pipeline
    status = Column(String(50), nullable=False, default="new")
    source = Column(String(50))
    lead_score = Column(Integer, default=0)
    priority = Column(String(20), default="medium")
    program_interest = Column(JSON, default=list)
    tags = Column(JSON, default=list)

    # Assignment
    assigned_to = Column(String(100))
    assigned_at = Column(DateTime)
    assignment_method = Column(String(50))

    # Nested relations exposed to conditions as dot paths (recruiter.status, company.name)
    recruiter = Column(JSON)
    company = Column(JSON)

    last_contacted_at = Column(DateTime)

    # Optimistic concurrency token, bumped by every engine write
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tasks = relationship("LeadTask", back_populates="lead")

    __table_args__ = (
        Index("ix_leads_status", "status"),
        Index("ix_leads_assigned_to", "assigned_to"),
    )

    def to_record(self) -> dict[str, Any]:
        """Plain dict view used by condition evaluation and actions."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "status": self.status,
            "source": self.source,
            "lead_score": self.lead_score,
            "priority": self.priority,
            "program_interest": list(self.program_interest or []),
            "tags": list(self.tags or []),
            "assigned_to": self.assigned_to,
            "assigned_at": self.assigned_at,
            "assignment_method": self.assignment_method,
            "recruiter": dict(self.recruiter) if self.recruiter else None,
            "company": dict(self.company) if self.company else None,
            "last_contacted_at": self.last_contacted_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Lead {self.email} ({self.status})>"


class LeadTask(Base):
    """Follow-up task referencing a lead."""

    __tablename__ = "lead_tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True))  # Creator

    title = Column(String(255), nullable=False)
    description = Column(Text)
    task_type = Column(String(50), nullable=False, default="follow_up")
    priority = Column(Enum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    status = Column(String(20), nullable=False, default="pending")
    assigned_to = Column(String(100))
    due_date = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime)

    lead = relationship("Lead", back_populates="tasks")

    __table_args__ = (Index("ix_lead_tasks_lead_id", "lead_id"),)

    def __repr__(self) -> str:
        return f"<LeadTask {self.title!r}>"


class AutomationRule(Base):
    """Named trigger + conditions + ordered actions."""

    __tablename__ = "automation_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(UUID(as_uuid=True), nullable=False)

    name = Column(String(200), nullable=False)
    description = Column(Text)

    # Stored as text so rows written by older clients still load; the matcher skips unknown values
    trigger_type = Column(String(50), nullable=False)
    trigger_config = Column(JSON, default=dict)
    conditions = Column(JSON, default=list)  # [{field, operator, value, logical_operator}]
    actions = Column(JSON, default=list)  # [{action_type, action_config, order_index}]

    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)  # Higher = runs first

    # Aggregate counters, only ever incremented in SQL
    execution_count = Column(Integer, default=0, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    failure_count = Column(Integer, default=0, nullable=False)
    last_executed = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_automation_rules_owner_id", "owner_id"),
        Index("ix_automation_rules_owner_active", "owner_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<AutomationRule {self.name} ({self.trigger_type})>"


class AutomationExecution(Base):
    """One run of a rule against one lead."""

    __tablename__ = "automation_executions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # No foreign key: execution history outlives deleted rules
    rule_id = Column(UUID(as_uuid=True), nullable=False)
    lead_id = Column(UUID(as_uuid=True), nullable=False)

    trigger_data = Column(JSON, default=dict)
    execution_status = Column(
        Enum(ExecutionStatus), default=ExecutionStatus.RUNNING, nullable=False
    )
    actions_executed = Column(Integer, default=0, nullable=False)
    total_actions = Column(Integer, default=0, nullable=False)
    error_message = Column(Text)
    execution_time_ms = Column(Float)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime)

    action_logs = relationship(
        "AutomationActionLog",
        back_populates="execution",
        order_by="AutomationActionLog.sequence",
    )

    __table_args__ = (
        Index("ix_automation_executions_rule_id", "rule_id"),
        Index("ix_automation_executions_lead_id", "lead_id"),
        Index("ix_automation_executions_created_at", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "rule_id": str(self.rule_id),
            "lead_id": str(self.lead_id),
            "trigger_data": self.trigger_data or {},
            "execution_status": self.execution_status.value,
            "actions_executed": self.actions_executed,
            "total_actions": self.total_actions,
            "error_message": self.error_message,
            "execution_time_ms": self.execution_time_ms,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self) -> str:
        return f"<AutomationExecution {self.id} ({self.execution_status.value})>"


class AutomationActionLog(Base):
    """Audit entry for one action of an execution."""

    __tablename__ = "automation_action_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    execution_id = Column(
        UUID(as_uuid=True), ForeignKey("automation_executions.id"), nullable=False
    )
    sequence = Column(Integer, nullable=False, default=0)  # Position within the execution

    action_type = Column(String(50), nullable=False)
    action_data = Column(JSON)
    status = Column(Enum(ActionLogStatus), nullable=False)
    error_message = Column(Text)
    duration_ms = Column(Float)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    execution = relationship("AutomationExecution", back_populates="action_logs")

    __table_args__ = (Index("ix_automation_action_logs_execution_id", "execution_id"),)

    def __repr__(self) -> str:
        return f"<AutomationActionLog {self.action_type} ({self.status.value})>"
