"""
Condition evaluation for the Validation Service.

Conditions are total: a missing property, a type mismatch or an unexpected
error inside one comparison makes that comparison false instead of failing
the whole validation run.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from shared.logging import get_logger

from .models import (
    Combinator, CombinatorOperator, Comparison, Condition, Literal, Operator,
    ORDERING_OPERATORS, PermissionTest
)
from .paths import ABSENT, to_decimal
from .snapshots import Snapshots


def values_equal(left: Any, right: Any) -> bool:
    """Strict equality: booleans never equal numbers, lists compare deeply."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(values_equal(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple, Mapping)) or isinstance(right, (list, tuple, Mapping)):
        return False
    return left == right


def parse_temporal(value: Any) -> Optional[datetime]:
    """Read dates, datetimes and ISO-8601 strings as aware UTC datetimes."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_comparable(value: Any) -> Optional[Tuple[str, Any]]:
    """Common ordering representation, tagged by kind, or None."""
    number = to_decimal(value)
    if number is not None:
        return "number", number
    moment = parse_temporal(value)
    if moment is not None:
        return "time", moment
    return None


def compare(operator: Operator, left: Any, right: Any, null_literal: bool = False,
            pattern=None) -> bool:
    """Apply ``operator`` to two resolved values."""
    if left is ABSENT or right is ABSENT:
        # an absent value only matches an explicit null literal
        if left is ABSENT and null_literal:
            return operator in (Operator.EQUALS, Operator.IN)
        return False

    if operator == Operator.EQUALS:
        return values_equal(left, right)
    if operator == Operator.NOT_EQUALS:
        return not values_equal(left, right)
    if operator in (Operator.IN, Operator.NOT_IN):
        candidates = right if isinstance(right, (list, tuple)) else (right,)
        found = any(values_equal(left, candidate) for candidate in candidates)
        return found if operator == Operator.IN else not found
    if operator == Operator.MATCHES:
        if isinstance(left, bool) or not isinstance(left, (str, int, float, Decimal)):
            return False
        return pattern is not None and pattern.search(str(left)) is not None
    if operator in ORDERING_OPERATORS:
        return _compare_ordering(operator, left, right)
    return False


def _compare_ordering(operator: Operator, left: Any, right: Any) -> bool:
    left_value = to_comparable(left)
    right_value = to_comparable(right)
    if left_value is None or right_value is None or left_value[0] != right_value[0]:
        return False
    a, b = left_value[1], right_value[1]
    if operator == Operator.LESS_THAN:
        return a < b
    if operator == Operator.LESS_OR_EQUAL:
        return a <= b
    if operator == Operator.GREATER_THAN:
        return a > b
    return a >= b


class ConditionEvaluator:
    """Evaluates condition trees against snapshots and a permission set.

    Stateless apart from its logger; one instance can serve concurrent
    evaluations.
    """

    def __init__(self):
        self.logger = get_logger("validation.conditions")

    def evaluate(self, condition: Optional[Condition], snapshots: Snapshots,
                 permissions: FrozenSet[str]) -> bool:
        """Evaluate a condition; ``None`` means the rule always applies."""
        if condition is None:
            return True
        if isinstance(condition, Comparison):
            return self._evaluate_comparison(condition, snapshots)
        if isinstance(condition, Combinator):
            return self._evaluate_combinator(condition, snapshots, permissions)
        if isinstance(condition, PermissionTest):
            return (condition.permission in permissions) == condition.present
        self.logger.warning("Unknown condition node", node=type(condition).__name__)
        return False

    def _evaluate_combinator(self, node: Combinator, snapshots: Snapshots,
                             permissions: FrozenSet[str]) -> bool:
        results = (self.evaluate(child, snapshots, permissions) for child in node.children)
        if node.operator == CombinatorOperator.AND:
            return all(results)
        return any(results)

    def _evaluate_comparison(self, node: Comparison, snapshots: Snapshots) -> bool:
        try:
            left = snapshots.lookup(node.left)
            if isinstance(node.right, Literal):
                right = node.right.value
            else:
                right = snapshots.lookup(node.right)

            if node.left.path.yields_items:
                # holds when any addressed item satisfies it
                return any(
                    compare(node.operator, item, right, node.null_literal, node.pattern)
                    for item in left
                )
            return compare(node.operator, left, right, node.null_literal, node.pattern)
        except Exception as e:
            self.logger.debug(
                "Comparison degraded to not satisfied",
                property=node.left.path.key,
                operator=node.operator.value,
                error=str(e)
            )
            return False


evaluator = ConditionEvaluator()


def evaluate(condition: Optional[Condition], snapshots: Snapshots,
             permissions: FrozenSet[str]) -> bool:
    """Evaluate ``condition`` with the shared evaluator."""
    return evaluator.evaluate(condition, snapshots, permissions)
