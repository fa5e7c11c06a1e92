"""Condition Evaluation for Automation Rules.

A rule's conditions are an ordered list of field comparisons against a lead
record. Each condition carries the connective (AND/OR) that joins it to the
*next* condition, and the list is folded strictly left to right:

    [A(OR), B(AND), C]  ->  ((True AND A) OR B) AND C

There is no precedence or grouping. Rules authored against this behaviour
depend on it, so it must not be "corrected" to AND-before-OR.

Evaluation never raises: unknown operators, malformed operands and missing
fields all make the individual comparison false (``not_equals`` excepted, see
``Condition.evaluate``).
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConditionOperator(str, Enum):
    """Comparison operators for rule conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"  # case-insensitive substring
    IN = "in"  # value in list
    BETWEEN = "between"  # inclusive numeric range


class LogicalOperator(str, Enum):
    """Connective joining a condition to the next one."""

    AND = "AND"
    OR = "OR"


class _Missing:
    """Marker for a dot path that does not resolve."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def resolve_field(record: Any, path: str) -> Any:
    """Get a value from a nested record using dot notation.

    Walks mappings by key and other objects by attribute. Returns ``MISSING``
    as soon as a segment is absent; an explicit ``None`` stored at the end of
    the path is returned as ``None``.
    """
    value = record
    for part in path.split("."):
        if isinstance(value, Mapping):
            if part not in value:
                return MISSING
            value = value[part]
        elif value is not None and not isinstance(value, (str, bytes)) and hasattr(value, part):
            value = getattr(value, part)
        else:
            return MISSING
    return value


def _strict_equals(left: Any, right: Any) -> bool:
    # bool is an int subclass; keep True != 1 and "1" != 1
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    try:
        return bool(left == right)
    except Exception:
        return False


def _to_number(value: Any) -> float | None:
    if value is None or value is MISSING:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _to_text(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(_to_text(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class Condition:
    """A single condition in a rule."""

    field: str
    operator: ConditionOperator | str
    value: Any = None
    logical_operator: LogicalOperator | str = LogicalOperator.AND

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Condition:
        """Build from a stored condition, keeping unknown operators as raw strings."""
        raw_operator = data.get("operator")
        try:
            operator: ConditionOperator | str = ConditionOperator(raw_operator)
        except (ValueError, TypeError):
            operator = str(raw_operator)

        raw_connective = str(data.get("logical_operator") or "AND").upper()
        connective = LogicalOperator.OR if raw_connective == "OR" else LogicalOperator.AND

        return cls(
            field=str(data.get("field", "")),
            operator=operator,
            value=data.get("value"),
            logical_operator=connective,
        )

    @property
    def connective(self) -> LogicalOperator:
        if self.logical_operator in (LogicalOperator.OR, "OR", "or"):
            return LogicalOperator.OR
        return LogicalOperator.AND

    def evaluate(self, record: Any) -> bool:
        """Evaluate condition against a record.

        A missing field fails every operator except ``not_equals``, which
        treats "missing" as different from any configured value.
        """
        field_value = resolve_field(record, self.field)

        if self.operator == ConditionOperator.NOT_EQUALS:
            if field_value is MISSING:
                return True
            return not _strict_equals(field_value, self.value)

        if field_value is MISSING:
            return False

        if self.operator == ConditionOperator.EQUALS:
            return _strict_equals(field_value, self.value)

        if self.operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
            left, right = _to_number(field_value), _to_number(self.value)
            if left is None or right is None:
                return False
            if self.operator == ConditionOperator.GREATER_THAN:
                return left > right
            return left < right

        if self.operator == ConditionOperator.CONTAINS:
            if field_value is None or self.value is None:
                return False
            return _to_text(self.value).lower() in _to_text(field_value).lower()

        if self.operator == ConditionOperator.IN:
            if not isinstance(self.value, (list, tuple, set, frozenset)):
                return False
            return any(_strict_equals(field_value, candidate) for candidate in self.value)

        if self.operator == ConditionOperator.BETWEEN:
            if not isinstance(self.value, (list, tuple)) or len(self.value) != 2:
                return False
            number = _to_number(field_value)
            low, high = _to_number(self.value[0]), _to_number(self.value[1])
            if number is None or low is None or high is None:
                return False
            return low <= number <= high

        return False

    def to_dict(self) -> dict[str, Any]:
        operator = self.operator.value if isinstance(self.operator, Enum) else self.operator
        return {
            "field": self.field,
            "operator": operator,
            "value": self.value,
            "logical_operator": self.connective.value,
        }


def evaluate_conditions(
    conditions: Iterable[Condition | Mapping[str, Any]] | None,
    record: Any,
) -> bool:
    """Fold a condition list left to right.

    Empty or absent conditions always match. Every condition is evaluated
    even once the outcome is decided. A stored value that is not a list
    never matches, and an entry that is not a mapping counts as a false
    condition joined by AND.
    """
    if conditions is None:
        return True
    if not isinstance(conditions, (list, tuple)):
        return False

    result = True
    connective = LogicalOperator.AND

    for item in conditions:
        if isinstance(item, (Condition, Mapping)):
            condition = item if isinstance(item, Condition) else Condition.from_dict(item)
            outcome, next_connective = condition.evaluate(record), condition.connective
        else:
            outcome, next_connective = False, LogicalOperator.AND

        if connective == LogicalOperator.OR:
            result = result or outcome
        else:
            result = result and outcome

        connective = next_connective

    return result
