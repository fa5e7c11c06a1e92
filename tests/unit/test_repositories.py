"""Unit tests for the record store repositories.

These tests verify the atomic write primitives the engine relies on:
counter increments, tag unions and clamped score adjustments.
"""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from packages.core.src.errors import ConcurrentUpdateError, RecordNotFoundError
from packages.database.src.models import (
    ActionLogStatus,
    ExecutionStatus,
    Lead,
    TaskPriority,
)
from packages.database.src.repositories import (
    ActionLogRepository,
    AutomationExecutionRepository,
    AutomationRuleRepository,
    LeadRepository,
    LeadTaskRepository,
)


class TestLeadRepository:
    """Tests for LeadRepository."""

    @pytest.mark.asyncio
    async def test_create_lead(self, db_session: AsyncSession):
        """Should create a lead with defaults."""
        repo = LeadRepository(db_session)

        lead = await repo.create(email="ada@example.com", first_name="Ada", last_name="Lovelace")

        assert lead.id is not None
        assert lead.status == "new"
        assert lead.lead_score == 0
        assert lead.tags == []
        assert lead.version == 1

    @pytest.mark.asyncio
    async def test_update_fields_bumps_version(self, db_session: AsyncSession, make_lead):
        lead = await make_lead()

        updated = await LeadRepository(db_session).update_fields(lead.id, status="contacted")

        assert updated.status == "contacted"
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_update_missing_lead(self, db_session: AsyncSession):
        with pytest.raises(RecordNotFoundError):
            await LeadRepository(db_session).update_fields(uuid4(), status="lost")

    @pytest.mark.asyncio
    async def test_add_tags_is_a_set_union(self, db_session: AsyncSession, make_lead):
        """Applying the same tags twice keeps one copy of each."""
        lead = await make_lead(tags=["intake"])
        repo = LeadRepository(db_session)

        await repo.add_tags(lead.id, ["vip"])
        tags = await repo.add_tags(lead.id, ["vip"])

        assert tags == ["intake", "vip"]
        assert (await repo.require(lead.id)).tags.count("vip") == 1

    @pytest.mark.asyncio
    async def test_add_tags_noop_does_not_write(self, db_session: AsyncSession, make_lead):
        lead = await make_lead(tags=["vip"])
        repo = LeadRepository(db_session)

        await repo.add_tags(lead.id, ["vip"])

        assert (await repo.require(lead.id)).version == 1

    @pytest.mark.asyncio
    async def test_add_tags_retries_after_concurrent_writer(
        self, db_session: AsyncSession, async_engine, make_lead
    ):
        """A writer committing between read and update loses no tags."""
        lead = await make_lead(tags=["intake"])
        other_sessions = async_sessionmaker(async_engine, expire_on_commit=False)
        repo = LeadRepository(db_session)
        read_lead = repo.require
        reads = 0

        async def read_then_interleave(lead_id):
            nonlocal reads
            current = await read_lead(lead_id)
            reads += 1
            if reads == 1:
                async with other_sessions() as other:
                    await LeadRepository(other).add_tags(lead_id, ["from_other"])
            return current

        repo.require = read_then_interleave

        tags = await repo.add_tags(lead.id, ["from_repo"])

        assert tags == ["intake", "from_other", "from_repo"]
        assert reads == 2
        stored = await LeadRepository(db_session).require(lead.id)
        assert stored.tags == ["intake", "from_other", "from_repo"]
        assert stored.version == 3

    @pytest.mark.asyncio
    async def test_add_tags_gives_up_after_max_retries(
        self, db_session: AsyncSession, async_engine, make_lead
    ):
        lead = await make_lead(tags=["intake"])
        other_sessions = async_sessionmaker(async_engine, expire_on_commit=False)
        repo = LeadRepository(db_session)
        read_lead = repo.require

        async def read_then_bump_version(lead_id):
            current = await read_lead(lead_id)
            async with other_sessions() as other:
                await other.execute(
                    update(Lead).where(Lead.id == lead_id).values(version=Lead.version + 1)
                )
                await other.commit()
            return current

        repo.require = read_then_bump_version

        with pytest.raises(ConcurrentUpdateError):
            await repo.add_tags(lead.id, ["vip"], max_retries=3)

        stored = await LeadRepository(db_session).require(lead.id)
        assert stored.tags == ["intake"]
        assert stored.version == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "start,operation,value,expected",
        [
            (95, "add", 20, 100),
            (5, "subtract", 20, 0),
            (50, "add", 10, 60),
            (50, "subtract", 10, 40),
            (50, "set", 150, 100),
            (50, "set", -3, 0),
            (50, "set", 70, 70),
        ],
    )
    async def test_adjust_score_clamps(
        self, db_session: AsyncSession, make_lead, start, operation, value, expected
    ):
        lead = await make_lead(lead_score=start)

        score = await LeadRepository(db_session).adjust_score(lead.id, operation, value)

        assert score == expected

    @pytest.mark.asyncio
    async def test_adjust_score_treats_null_as_zero(self, db_session: AsyncSession, make_lead):
        lead = await make_lead()
        repo = LeadRepository(db_session)
        await repo.update_fields(lead.id, lead_score=None)

        assert await repo.adjust_score(lead.id, "add", 15) == 15

    @pytest.mark.asyncio
    async def test_list_for_owner(self, db_session: AsyncSession, make_lead, owner):
        mine = await make_lead()
        await make_lead(user_id=uuid4())

        leads = await LeadRepository(db_session).list_for_owner(owner.id)

        assert [lead.id for lead in leads] == [mine.id]


class TestLeadTaskRepository:
    @pytest.mark.asyncio
    async def test_create_task(self, db_session: AsyncSession, make_lead):
        lead = await make_lead()
        repo = LeadTaskRepository(db_session)

        task = await repo.create(lead.id, "Call applicant", priority=TaskPriority.HIGH)

        assert task.status == "pending"
        assert task.priority == TaskPriority.HIGH
        assert [t.id for t in await repo.list_for_lead(lead.id)] == [task.id]


class TestAutomationRuleRepository:
    """Tests for AutomationRuleRepository."""

    @pytest.mark.asyncio
    async def test_create_rule_has_zero_counters(self, make_rule):
        rule = await make_rule()

        assert rule.execution_count == 0
        assert rule.success_count == 0
        assert rule.failure_count == 0
        assert rule.last_executed is None

    @pytest.mark.asyncio
    async def test_increment_counters(self, db_session: AsyncSession, make_rule):
        rule = await make_rule()
        repo = AutomationRuleRepository(db_session)

        await repo.increment_counters(rule.id, succeeded=True)
        await repo.increment_counters(rule.id, succeeded=True)
        await repo.increment_counters(rule.id, succeeded=False)

        stored = await repo.get_by_id(rule.id)
        assert stored.execution_count == 3
        assert stored.success_count == 2
        assert stored.failure_count == 1
        assert stored.execution_count == stored.success_count + stored.failure_count
        assert stored.last_executed is not None

    @pytest.mark.asyncio
    async def test_update_rejects_counter_columns(self, db_session: AsyncSession, make_rule):
        rule = await make_rule()

        with pytest.raises(ValueError):
            await AutomationRuleRepository(db_session).update(rule.id, execution_count=10)

    @pytest.mark.asyncio
    async def test_list_for_owner_filters_and_orders(
        self, db_session: AsyncSession, make_rule, owner
    ):
        low = await make_rule(name="low", priority=1)
        high = await make_rule(name="high", priority=5)
        await make_rule(name="off", priority=9, is_active=False)
        await make_rule(name="theirs", owner_id=uuid4())
        await make_rule(name="other trigger", trigger_type="lead_updated", priority=7)

        repo = AutomationRuleRepository(db_session)
        rules = await repo.list_for_owner(owner.id, active_only=True, trigger_type="lead_created")

        assert [r.id for r in rules] == [high.id, low.id]

    @pytest.mark.asyncio
    async def test_delete_keeps_executions(self, db_session: AsyncSession, make_rule, make_lead):
        rule = await make_rule()
        lead = await make_lead()
        executions = AutomationExecutionRepository(db_session)
        execution = await executions.create(rule.id, lead.id, total_actions=0)

        assert await AutomationRuleRepository(db_session).delete(rule.id) is True
        assert await AutomationRuleRepository(db_session).delete(rule.id) is False
        assert await executions.get_by_id(execution.id) is not None


class TestExecutionRepositories:
    """Tests for execution records and action logs."""

    @pytest.mark.asyncio
    async def test_finish_execution(self, db_session: AsyncSession, make_rule, make_lead):
        rule = await make_rule()
        lead = await make_lead()
        repo = AutomationExecutionRepository(db_session)

        execution = await repo.create(rule.id, lead.id, total_actions=2)
        assert execution.execution_status == ExecutionStatus.RUNNING

        await repo.record_progress(execution, 1)
        finished = await repo.finish(
            execution, ExecutionStatus.FAILED, execution_time_ms=12.5, error_message="boom"
        )

        assert finished.execution_status == ExecutionStatus.FAILED
        assert finished.actions_executed == 1
        assert finished.error_message == "boom"
        assert finished.completed_at is not None

    @pytest.mark.asyncio
    async def test_action_logs_in_sequence_order(
        self, db_session: AsyncSession, make_rule, make_lead
    ):
        rule = await make_rule()
        lead = await make_lead()
        execution = await AutomationExecutionRepository(db_session).create(
            rule.id, lead.id, total_actions=2
        )
        logs = ActionLogRepository(db_session)

        await logs.append(execution.id, 2, "add_tag", ActionLogStatus.FAILED, error_message="x")
        await logs.append(execution.id, 1, "assign_lead", ActionLogStatus.SUCCESS)

        entries = await logs.list_for_execution(execution.id)
        assert [e.action_type for e in entries] == ["assign_lead", "add_tag"]

    @pytest.mark.asyncio
    async def test_list_for_rules_newest_first_with_limit(
        self, db_session: AsyncSession, make_rule, make_lead
    ):
        rule = await make_rule()
        lead = await make_lead()
        repo = AutomationExecutionRepository(db_session)
        created = [await repo.create(rule.id, lead.id, total_actions=0) for _ in range(3)]

        recent = await repo.list_for_rules([rule.id], limit=2)

        assert len(recent) == 2
        assert recent[0].created_at >= recent[1].created_at
        assert {e.id for e in recent} <= {e.id for e in created}
        assert await repo.list_for_rules([]) == []
