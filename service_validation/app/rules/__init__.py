"""
Rules engine package.

Loads the declarative rule document and evaluates it against entity
snapshots. The functions below work on a process-wide active rule set that
``set_validation_rules`` replaces atomically; each call reads the active set
once, so a concurrent replacement never mixes two rule sets in one answer.

Modules of interest:
- store: rule document loading and the active rule set.
- conditions: condition tree evaluation.
- constraints: value-shape checks of content and update rules.
- resolver: mandatory/immutable/allowed-values predicates.
- engine: the four validation phases.
- error_codes: error code construction.
"""

from datetime import date
from typing import Any, Iterable, List, Mapping, Optional, Union

from .engine import ValidationEngine
from .error_codes import ErrorCode, RuleKind, format_error_code
from .models import RuleSet
from .resolver import PropertyPredicateResolver, PropertyState
from .store import RuleSetStore, load

_store = RuleSetStore()


def set_validation_rules(document: Union[str, bytes, Mapping[str, Any]]) -> RuleSet:
    """Load ``document`` and make it the active rule set."""
    return _store.set_rules(document)


def current_rule_set() -> RuleSet:
    return _store.current()


def get_engine() -> ValidationEngine:
    return ValidationEngine(_store.current())


def get_resolver() -> PropertyPredicateResolver:
    return PropertyPredicateResolver(_store.current())


def is_property_mandatory(entity_type: str, property_key: str, snapshot: Optional[Mapping[str, Any]],
                          permissions: Optional[Iterable[str]] = None) -> bool:
    return get_resolver().is_mandatory(entity_type, property_key, snapshot, permissions)


def is_property_immutable(entity_type: str, property_key: str, snapshot: Optional[Mapping[str, Any]],
                          permissions: Optional[Iterable[str]] = None) -> bool:
    return get_resolver().is_immutable(entity_type, property_key, snapshot, permissions)


def get_allowed_property_values(entity_type: str, property_key: str,
                                snapshot: Optional[Mapping[str, Any]],
                                permissions: Optional[Iterable[str]] = None) -> Optional[List[Any]]:
    return get_resolver().allowed_values(entity_type, property_key, snapshot, permissions)


def validate_mandatory_rules(entity_type: str, snapshot: Optional[Mapping[str, Any]],
                             permissions: Optional[Iterable[str]] = None) -> List[str]:
    return get_engine().validate_mandatory(entity_type, snapshot, permissions)


def validate_content_rules(entity_type: str, snapshot: Optional[Mapping[str, Any]],
                           permissions: Optional[Iterable[str]] = None,
                           today: Optional[date] = None) -> List[str]:
    return get_engine().validate_content(entity_type, snapshot, permissions, today)


def validate_immutable_rules(entity_type: str, old_snapshot: Optional[Mapping[str, Any]],
                             new_snapshot: Optional[Mapping[str, Any]],
                             permissions: Optional[Iterable[str]] = None) -> List[str]:
    return get_engine().validate_immutable(entity_type, old_snapshot, new_snapshot, permissions)


def validate_update_rules(entity_type: str, old_snapshot: Optional[Mapping[str, Any]],
                          new_snapshot: Optional[Mapping[str, Any]],
                          permissions: Optional[Iterable[str]] = None,
                          today: Optional[date] = None) -> List[str]:
    return get_engine().validate_update(entity_type, old_snapshot, new_snapshot, permissions, today)


__all__ = [
    "ErrorCode",
    "PropertyPredicateResolver",
    "PropertyState",
    "RuleKind",
    "RuleSet",
    "RuleSetStore",
    "ValidationEngine",
    "current_rule_set",
    "format_error_code",
    "get_allowed_property_values",
    "get_engine",
    "get_resolver",
    "is_property_immutable",
    "is_property_mandatory",
    "load",
    "set_validation_rules",
    "validate_content_rules",
    "validate_immutable_rules",
    "validate_mandatory_rules",
    "validate_update_rules",
]
