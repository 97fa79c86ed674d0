"""
Unit tests for condition evaluation.
"""

import pytest
import re
from datetime import date

from service_validation.app.rules.conditions import (
    ConditionEvaluator, compare, parse_temporal, values_equal
)
from service_validation.app.rules.models import (
    Combinator, CombinatorOperator, Comparison, Literal, Operator, PermissionTest, PropertyRef
)
from service_validation.app.rules.paths import ABSENT, SnapshotSide, parse_path
from service_validation.app.rules.snapshots import Snapshots


def ref(path: str, side=None) -> PropertyRef:
    return PropertyRef(parse_path(path), side)


def comparison(path: str, operator: Operator, value, side=None) -> Comparison:
    pattern = re.compile(value) if operator == Operator.MATCHES else None
    return Comparison(ref(path, side), operator, Literal(value), pattern)


class TestCompare:
    """Test cases for the compare function."""

    def test_equals_is_strict_about_booleans(self):
        assert compare(Operator.EQUALS, 1, 1)
        assert not compare(Operator.EQUALS, True, 1)
        assert not compare(Operator.EQUALS, 0, False)

    def test_absent_matches_only_explicit_null(self):
        assert compare(Operator.EQUALS, ABSENT, None, null_literal=True)
        assert not compare(Operator.EQUALS, ABSENT, "x")
        assert not compare(Operator.NOT_EQUALS, ABSENT, None, null_literal=True)
        assert not compare(Operator.NOT_EQUALS, ABSENT, "x")

    def test_null_and_absent_are_distinct(self):
        assert compare(Operator.EQUALS, None, None, null_literal=True)
        assert not compare(Operator.EQUALS, ABSENT, None)

    def test_membership(self):
        assert compare(Operator.IN, "NEW", ("NEW", "ACTIVE"))
        assert not compare(Operator.IN, "RETIRED", ("NEW", "ACTIVE"))
        assert compare(Operator.NOT_IN, "RETIRED", ("NEW", "ACTIVE"))
        assert compare(Operator.IN, ABSENT, (None, "NEW"), null_literal=True)

    def test_numeric_ordering_coerces_strings(self):
        assert compare(Operator.LESS_THAN, 3, "12")
        assert compare(Operator.GREATER_OR_EQUAL, 6, 6.0)
        assert not compare(Operator.GREATER_THAN, "abc", 1)

    def test_booleans_are_not_numbers(self):
        assert not compare(Operator.GREATER_THAN, True, 0)

    def test_date_ordering(self):
        assert compare(Operator.LESS_THAN, "2024-01-01", "2024-01-01T00:00:01Z")
        assert compare(Operator.GREATER_THAN, "2024-02-01T00:00:00Z", "2024-01-31")

    def test_mismatched_kinds_are_false(self):
        assert not compare(Operator.LESS_THAN, "2024-01-01", 5)

    def test_matches(self):
        pattern = re.compile("^A-\\d+$")
        assert compare(Operator.MATCHES, "A-100", None, pattern=pattern)
        assert not compare(Operator.MATCHES, "B-100", None, pattern=pattern)
        assert not compare(Operator.MATCHES, ["A-1"], None, pattern=pattern)

    def test_deep_equality(self):
        assert values_equal([{"a": 1}], [{"a": 1}])
        assert not values_equal([1, 2], [2, 1])
        assert not values_equal([1], 1)

    def test_parse_temporal(self):
        moment = parse_temporal("2024-01-01T00:00:00Z")
        assert moment.tzinfo is not None
        assert parse_temporal("not a date") is None
        assert parse_temporal(20240101) is None

    def test_parse_temporal_normalises_to_utc(self):
        moment = parse_temporal("2024-06-15T23:30:00-05:00")
        assert moment.utcoffset().total_seconds() == 0
        assert moment.date() == date(2024, 6, 16)


class TestConditionEvaluator:
    """Test cases for ConditionEvaluator."""

    @pytest.fixture
    def evaluator(self):
        return ConditionEvaluator()

    @pytest.fixture
    def snapshots(self):
        return Snapshots(
            new={"status": "ACTIVE", "amount": 3, "accessories": [{"name": "A"}, {"name": "B"}]},
            old={"status": "NEW", "amount": 6}
        )

    def test_no_condition_always_holds(self, evaluator, snapshots):
        assert evaluator.evaluate(None, snapshots, frozenset())

    def test_unqualified_reference_reads_default_side(self, evaluator, snapshots):
        condition = comparison("status", Operator.EQUALS, "ACTIVE")
        assert evaluator.evaluate(condition, snapshots, frozenset())

        on_old = Snapshots(new=snapshots.new, old=snapshots.old, default=SnapshotSide.OLD)
        assert not evaluator.evaluate(condition, on_old, frozenset())

    def test_qualified_reference(self, evaluator, snapshots):
        condition = comparison("status", Operator.EQUALS, "NEW", side=SnapshotSide.OLD)
        assert evaluator.evaluate(condition, snapshots, frozenset())

    def test_reference_to_reference(self, evaluator, snapshots):
        condition = Comparison(ref("amount"), Operator.LESS_THAN, ref("amount", SnapshotSide.OLD))
        assert evaluator.evaluate(condition, snapshots, frozenset())

    def test_item_path_holds_for_any_item(self, evaluator, snapshots):
        assert evaluator.evaluate(comparison("accessories[*].name", Operator.EQUALS, "B"), snapshots, frozenset())
        assert not evaluator.evaluate(comparison("accessories[*].name", Operator.EQUALS, "Z"),
                                      snapshots, frozenset())

    def test_empty_combinators(self, evaluator, snapshots):
        assert evaluator.evaluate(Combinator(CombinatorOperator.AND, ()), snapshots, frozenset())
        assert not evaluator.evaluate(Combinator(CombinatorOperator.OR, ()), snapshots, frozenset())

    def test_combinators(self, evaluator, snapshots):
        holds = comparison("status", Operator.EQUALS, "ACTIVE")
        fails = comparison("status", Operator.EQUALS, "NEW")
        assert not evaluator.evaluate(Combinator(CombinatorOperator.AND, (holds, fails)), snapshots, frozenset())
        assert evaluator.evaluate(Combinator(CombinatorOperator.OR, (fails, holds)), snapshots, frozenset())

    def test_or_short_circuits(self, evaluator, snapshots):
        holds = comparison("status", Operator.EQUALS, "ACTIVE")

        class Exploding:
            pass

        condition = Combinator(CombinatorOperator.OR, (holds, Exploding()))
        assert evaluator.evaluate(condition, snapshots, frozenset())

    def test_permission_test(self, evaluator, snapshots):
        assert evaluator.evaluate(PermissionTest("ROLE_ADMIN"), snapshots, frozenset({"ROLE_ADMIN"}))
        assert not evaluator.evaluate(PermissionTest("ROLE_ADMIN"), snapshots, frozenset())
        assert evaluator.evaluate(PermissionTest("ROLE_ADMIN", present=False), snapshots, frozenset())

    def test_missing_property_is_not_satisfied(self, evaluator, snapshots):
        condition = comparison("number", Operator.GREATER_THAN, 1)
        assert not evaluator.evaluate(condition, snapshots, frozenset())

    def test_type_mismatch_is_not_satisfied(self, evaluator, snapshots):
        condition = comparison("status", Operator.LESS_THAN, 5)
        assert not evaluator.evaluate(condition, snapshots, frozenset())

    def test_evaluation_error_degrades(self, evaluator):
        class BrokenSnapshots(Snapshots):
            def lookup(self, ref):
                raise RuntimeError("boom")

        condition = comparison("status", Operator.EQUALS, "ACTIVE")
        assert not evaluator.evaluate(condition, BrokenSnapshots(new={}), frozenset())
