"""Unit tests for rule condition evaluation."""

from __future__ import annotations

import pytest

from packages.automation.src.conditions import (
    MISSING,
    Condition,
    ConditionOperator,
    LogicalOperator,
    evaluate_conditions,
    resolve_field,
)


def cond(field, operator, value=None, logical_operator="AND"):
    return {
        "field": field,
        "operator": operator,
        "value": value,
        "logical_operator": logical_operator,
    }


class TestResolveField:
    """Tests for dot-path field resolution."""

    def test_top_level_field(self):
        assert resolve_field({"status": "new"}, "status") == "new"

    def test_nested_field(self):
        lead = {"recruiter": {"company": {"name": "Northfield College"}}}
        assert resolve_field(lead, "recruiter.company.name") == "Northfield College"

    def test_missing_segment_returns_missing(self):
        assert resolve_field({"recruiter": None}, "recruiter.company.name") is MISSING
        assert resolve_field({}, "status") is MISSING

    def test_explicit_none_is_not_missing(self):
        assert resolve_field({"source": None}, "source") is None

    def test_attribute_access(self):
        class Record:
            status = "contacted"

        assert resolve_field(Record(), "status") == "contacted"


class TestConditionOperators:
    """Tests for individual comparison operators."""

    def test_equals_is_strict(self):
        assert Condition("lead_score", "equals", 50).evaluate({"lead_score": 50})
        assert not Condition("lead_score", "equals", "50").evaluate({"lead_score": 50})
        assert not Condition("flag", "equals", 1).evaluate({"flag": True})

    def test_not_equals(self):
        assert Condition("status", "not_equals", "new").evaluate({"status": "qualified"})
        assert not Condition("status", "not_equals", "new").evaluate({"status": "new"})

    def test_not_equals_on_missing_field_is_true(self):
        assert Condition("source", "not_equals", "web").evaluate({})

    @pytest.mark.parametrize(
        "operator,value",
        [
            ("equals", "new"),
            ("greater_than", 1),
            ("less_than", 1),
            ("contains", "a"),
            ("in", ["new"]),
            ("between", [0, 10]),
        ],
    )
    def test_missing_field_fails_other_operators(self, operator, value):
        assert not Condition("nope", operator, value).evaluate({"status": "new"})

    def test_greater_and_less_than_coerce_numbers(self):
        assert Condition("lead_score", "greater_than", 70).evaluate({"lead_score": 71})
        assert not Condition("lead_score", "greater_than", 70).evaluate({"lead_score": 70})
        assert Condition("lead_score", "less_than", "70").evaluate({"lead_score": 69})

    def test_numeric_comparison_with_non_numbers_is_false(self):
        assert not Condition("lead_score", "greater_than", 10).evaluate({"lead_score": "high"})
        assert not Condition("lead_score", "less_than", 10).evaluate({"lead_score": None})

    def test_contains_is_case_insensitive(self):
        lead = {"email": "Ada.Lovelace@Example.com"}
        assert Condition("email", "contains", "example.COM").evaluate(lead)
        assert not Condition("email", "contains", "gmail").evaluate(lead)

    def test_contains_on_list_field(self):
        assert Condition("tags", "contains", "vip").evaluate({"tags": ["intake", "VIP"]})

    def test_in(self):
        assert Condition("status", "in", ["new", "contacted"]).evaluate({"status": "new"})
        assert not Condition("status", "in", ["qualified"]).evaluate({"status": "new"})

    def test_in_requires_list_operand(self):
        assert not Condition("status", "in", "new").evaluate({"status": "new"})

    @pytest.mark.parametrize(
        "score,expected",
        [(50, True), (40, True), (60, True), (39, False), (61, False)],
    )
    def test_between_is_inclusive(self, score, expected):
        conditions = [cond("lead_score", "between", [40, 60])]
        assert evaluate_conditions(conditions, {"lead_score": score}) is expected

    def test_between_with_malformed_operand_is_false(self):
        assert not Condition("lead_score", "between", [40]).evaluate({"lead_score": 50})

    def test_unknown_operator_is_false(self):
        condition = Condition.from_dict(cond("status", "starts_with", "n"))
        assert condition.operator == "starts_with"
        assert not condition.evaluate({"status": "new"})


class TestEvaluateConditions:
    """Tests for folding a condition list."""

    def test_empty_conditions_match(self):
        assert evaluate_conditions([], {"status": "anything"}) is True
        assert evaluate_conditions(None, {}) is True

    @pytest.mark.parametrize("status", ["new", "contacted", "qualified", ""])
    def test_single_equals_matches_iff_equal(self, status):
        conditions = [cond("status", "equals", "new")]
        assert evaluate_conditions(conditions, {"status": status}) is (status == "new")

    def test_fold_is_left_associative(self):
        # A=True (OR), B=False (AND), C=False
        # left fold: ((True AND A) OR B) AND C = False
        # precedence grouping A OR (B AND C) would give True
        conditions = [
            cond("status", "equals", "new", "OR"),
            cond("lead_score", "greater_than", 90, "AND"),
            cond("source", "equals", "referral"),
        ]
        lead = {"status": "new", "lead_score": 50, "source": "web"}

        assert evaluate_conditions(conditions, lead) is False

    def test_or_recovers_after_failed_condition(self):
        conditions = [
            cond("status", "equals", "qualified", "OR"),
            cond("lead_score", "greater_than", 80),
        ]
        assert evaluate_conditions(conditions, {"status": "new", "lead_score": 85}) is True

    def test_last_condition_connective_is_ignored(self):
        conditions = [cond("status", "equals", "new", "OR")]
        assert evaluate_conditions(conditions, {"status": "contacted"}) is False

    def test_every_condition_is_evaluated(self):
        seen = []

        class Spy(Condition):
            def evaluate(self, record):
                seen.append(self.field)
                return super().evaluate(record)

        conditions = [
            Spy("status", ConditionOperator.EQUALS, "x", LogicalOperator.AND),
            Spy("lead_score", ConditionOperator.EQUALS, 1),
        ]
        assert evaluate_conditions(conditions, {"status": "new", "lead_score": 1}) is False
        assert seen == ["status", "lead_score"]

    def test_lowercase_connective_is_accepted(self):
        conditions = [cond("status", "equals", "x", "or"), cond("lead_score", "equals", 1)]
        assert evaluate_conditions(conditions, {"status": "new", "lead_score": 1}) is True

    def test_to_dict_round_trip_keeps_connective(self):
        condition = Condition.from_dict(cond("status", "in", ["new"], "OR"))
        assert condition.to_dict() == {
            "field": "status",
            "operator": "in",
            "value": ["new"],
            "logical_operator": "OR",
        }


class TestMalformedStoredConditions:
    """Rows written by older clients must not break evaluation."""

    def test_mapping_instead_of_list_never_matches(self):
        assert evaluate_conditions({"field": "status"}, {"status": "new"}) is False

    def test_string_instead_of_list_never_matches(self):
        assert evaluate_conditions("status equals new", {"status": "new"}) is False

    def test_non_mapping_entry_is_a_false_condition(self):
        assert evaluate_conditions(["status"], {"status": "new"}) is False
        conditions = ["status", cond("status", "equals", "new")]
        assert evaluate_conditions(conditions, {"status": "new"}) is False

    def test_non_mapping_entry_can_be_recovered_by_or(self):
        conditions = [cond("status", "equals", "x", "OR"), 42, cond("status", "equals", "new")]
        # ((True AND x) OR 42) AND new -> (False OR False) AND True
        assert evaluate_conditions(conditions, {"status": "new"}) is False

    def test_unhashable_operator(self):
        condition = Condition.from_dict(cond("status", ["equals"], "new"))
        assert not condition.evaluate({"status": "new"})
