"""Trigger Matching.

Decides which active rules are eligible for a lead event. Each trigger type
adds its own gate on top of the rule's conditions:

- lead_created: conditions only
- lead_updated: requires the previous lead state
- score_threshold: edge-triggered, fires when the score crosses the threshold upward
- status_change: edge-triggered, fires when the status becomes the target status
- time_based: the configured interval has elapsed since ``last_checked``
  (or the lead's creation); needs an external scheduler to call it
- engagement_level: level-triggered on ``lead_score >= threshold``

Unknown trigger types never match. Nothing here raises for bad data.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from packages.database.src.models import utcnow

from .conditions import evaluate_conditions, resolve_field
from .definitions import TriggerType

logger = structlog.get_logger()

TIME_INTERVALS: dict[str, timedelta] = {
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
}


def as_naive_utc(value: Any) -> datetime | None:
    """Normalise a datetime or ISO-8601 string to naive UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value


def _score(lead: Mapping[str, Any] | None) -> float | None:
    if lead is None:
        return None
    value = resolve_field(lead, "lead_score")
    if value is None:
        return 0.0  # unscored leads count as zero
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _priority(rule: Any) -> int:
    value = getattr(rule, "priority", 0)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _threshold(config: Mapping[str, Any]) -> float | None:
    value = config.get("threshold")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class TriggerMatcher:
    """Select the rules that should run for a lead event.

    Example:
        matcher = TriggerMatcher()
        eligible = matcher.match(
            rules,
            lead=current,
            trigger_type="score_threshold",
            previous_lead=before,
        )
        for rule in eligible:  # highest priority first
            await orchestrator.execute_rule(rule.id, current)
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._gates: dict[str, Callable[..., bool]] = {
            TriggerType.LEAD_CREATED.value: self._lead_created,
            TriggerType.LEAD_UPDATED.value: self._lead_updated,
            TriggerType.SCORE_THRESHOLD.value: self._score_threshold,
            TriggerType.TIME_BASED.value: self._time_based,
            TriggerType.STATUS_CHANGE.value: self._status_change,
            TriggerType.ENGAGEMENT_LEVEL.value: self._engagement_level,
        }

    def match(
        self,
        rules: Iterable[Any],
        lead: Mapping[str, Any],
        trigger_type: TriggerType | str,
        previous_lead: Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> list[Any]:
        """Return eligible rules ordered by descending priority.

        Args:
            rules: Candidate rules (any objects with the AutomationRule attributes)
            lead: Current lead record
            trigger_type: Event being handled
            previous_lead: Lead record before the event, if any
            now: Evaluation instant for time-based triggers (defaults to the clock)

        Returns:
            Active rules of ``trigger_type`` whose trigger gate and conditions pass
        """
        event = trigger_type.value if isinstance(trigger_type, TriggerType) else str(trigger_type)
        gate = self._gates.get(event)
        if gate is None:
            logger.debug("unknown_trigger_type", trigger_type=event)
            return []

        instant = as_naive_utc(now) if now is not None else self._clock()
        eligible = []
        for rule in rules:
            if not getattr(rule, "is_active", False) or getattr(rule, "trigger_type", None) != event:
                continue
            config = getattr(rule, "trigger_config", None) or {}
            if not isinstance(config, Mapping) or not gate(config, lead, previous_lead, instant):
                continue
            if not evaluate_conditions(getattr(rule, "conditions", None), lead):
                continue
            eligible.append(rule)

        # sorted() is stable: equal priorities keep store order
        return sorted(eligible, key=_priority, reverse=True)

    def is_eligible(
        self,
        rule: Any,
        lead: Mapping[str, Any],
        previous_lead: Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Check one rule against the event implied by its own trigger type."""
        return bool(
            self.match([rule], lead, getattr(rule, "trigger_type", ""), previous_lead, now)
        )

    # Gates ------------------------------------------------------------------

    def _lead_created(self, config, lead, previous_lead, now) -> bool:
        return True

    def _lead_updated(self, config, lead, previous_lead, now) -> bool:
        return previous_lead is not None

    def _score_threshold(self, config, lead, previous_lead, now) -> bool:
        threshold = _threshold(config)
        current, previous = _score(lead), _score(previous_lead)
        if threshold is None or current is None or previous is None:
            return False
        return current >= threshold and previous < threshold

    def _status_change(self, config, lead, previous_lead, now) -> bool:
        target = config.get("target_status")
        if not isinstance(target, str) or not target or previous_lead is None:
            return False
        return (
            resolve_field(lead, "status") == target
            and resolve_field(previous_lead, "status") != target
        )

    def _time_based(self, config, lead, previous_lead, now) -> bool:
        name = config.get("interval")
        interval = TIME_INTERVALS.get(name) if isinstance(name, str) else None
        if interval is None:
            return False
        reference = as_naive_utc(config.get("last_checked")) or as_naive_utc(
            resolve_field(lead, "created_at")
        )
        if reference is None:
            return False
        return now - reference > interval

    def _engagement_level(self, config, lead, previous_lead, now) -> bool:
        threshold = _threshold(config)
        current = _score(lead)
        if threshold is None or current is None:
            return False
        return current >= threshold
