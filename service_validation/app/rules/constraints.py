"""
Value-shape checks for content and update rules.

``check`` answers whether one value satisfies a rule's constraint. Absent
values are always valid (constraints validate shape, not presence); null is
only significant for the null-aware equality constraints.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from .conditions import compare, parse_temporal, values_equal
from .models import Constraint, ConstraintType, Literal, NULL_AWARE_CONSTRAINTS
from .paths import ABSENT, to_decimal
from .snapshots import Snapshots


def check(constraint: Constraint, value: Any, snapshots: Snapshots,
          today: Optional[date] = None) -> bool:
    """True when ``value`` satisfies ``constraint``."""
    if value is ABSENT:
        return True
    if value is None and constraint.type not in NULL_AWARE_CONSTRAINTS:
        return True
    return _CHECKS[constraint.type](constraint, value, snapshots, today or _today())


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _equals_any(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    return any(values_equal(value, candidate) for candidate in constraint.values)


def _equals_none(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    return not _equals_any(constraint, value, snapshots, today)


def _equals_null(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    return value is None


def _equals_not_null(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    return value is not None


def _equals_any_ref(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    referenced = snapshots.lookup(constraint.operand)
    candidates = list(constraint.values)
    if isinstance(referenced, (list, tuple)):
        candidates.extend(v for v in referenced if v is not ABSENT)
    elif referenced is not ABSENT:
        candidates.append(referenced)
    return any(values_equal(value, candidate) for candidate in candidates)


def _regex_any(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    if isinstance(value, bool) or not isinstance(value, (str, int, float, Decimal)):
        return False
    text = str(value)
    return any(pattern.search(text) for pattern in constraint.patterns)


def _range(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    number = to_decimal(value)
    if number is None:
        return False
    return _within(number, constraint.min, constraint.max)


def _size(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    if not isinstance(value, (str, list, tuple, Mapping)):
        return False
    return _within(Decimal(len(value)), constraint.min, constraint.max)


def _date_past(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    day = _as_date(value)
    if day is None:
        return False
    return _within(Decimal((today - day).days), constraint.min, constraint.max)


def _date_future(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    day = _as_date(value)
    if day is None:
        return False
    return _within(Decimal((day - today).days), constraint.min, constraint.max)


def _compare(constraint: Constraint, value: Any, snapshots: Snapshots, today: date) -> bool:
    operand = constraint.operand
    if isinstance(operand, Literal):
        other = operand.value
    else:
        other = snapshots.lookup(operand)
    if other is ABSENT or other is None:
        # nothing to compare against
        return True
    return compare(constraint.operator, value, other)


def _within(number: Decimal, minimum: Optional[Decimal], maximum: Optional[Decimal]) -> bool:
    if minimum is not None and number < minimum:
        return False
    if maximum is not None and number > maximum:
        return False
    return True


def _as_date(value: Any) -> Optional[date]:
    moment = parse_temporal(value)
    return moment.date() if moment is not None else None


_CHECKS: Dict[ConstraintType, Callable[[Constraint, Any, Snapshots, date], bool]] = {
    ConstraintType.EQUALS_ANY: _equals_any,
    ConstraintType.EQUALS_NONE: _equals_none,
    ConstraintType.EQUALS_NULL: _equals_null,
    ConstraintType.EQUALS_NOT_NULL: _equals_not_null,
    ConstraintType.EQUALS_ANY_REF: _equals_any_ref,
    ConstraintType.REGEX_ANY: _regex_any,
    ConstraintType.RANGE: _range,
    ConstraintType.SIZE: _size,
    ConstraintType.DATE_PAST: _date_past,
    ConstraintType.DATE_FUTURE: _date_future,
    ConstraintType.COMPARE: _compare,
}
