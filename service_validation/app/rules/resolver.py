"""
Per-property predicates used by forms and other callers.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Union

from .conditions import evaluate, values_equal
from .error_codes import RuleKind
from .models import ConstraintType, CrossPropertyRule, EntityRules, Rule, RuleSet
from .paths import SnapshotSide
from .snapshots import EntitySnapshot, Snapshots, coerce_permissions


def rule_applies(rule: Union[Rule, CrossPropertyRule], snapshots: Snapshots,
                 permissions: FrozenSet[str]) -> bool:
    """True when the rule's permission clause and guard condition both hold."""
    if rule.permissions is not None and not rule.permissions.allows(permissions):
        return False
    return evaluate(rule.condition, snapshots, permissions)


@dataclass(frozen=True)
class PropertyState:
    """Predicates for one property as a form would render it."""
    mandatory: bool
    immutable: bool
    allowed_values: Optional[List[Any]]


class PropertyPredicateResolver:
    """Answers mandatory/immutable/allowed-values questions for one rule set."""

    def __init__(self, rule_set: RuleSet):
        self.rule_set = rule_set

    def is_mandatory(self, entity_type: str, property_key: str,
                     snapshot: Optional[Mapping[str, Any]],
                     permissions: Optional[Iterable[str]] = None) -> bool:
        entity = self.rule_set.entity(entity_type)
        rules = self._rules(entity, property_key, RuleKind.MANDATORY)
        if not rules:
            return False
        snapshots = Snapshots(new=EntitySnapshot.create(entity_type, snapshot, entity))
        granted = coerce_permissions(permissions)
        return any(rule_applies(rule, snapshots, granted) for rule in rules)

    def is_immutable(self, entity_type: str, property_key: str,
                     snapshot: Optional[Mapping[str, Any]],
                     permissions: Optional[Iterable[str]] = None) -> bool:
        """Evaluated against ``snapshot`` alone, normally the saved state."""
        entity = self.rule_set.entity(entity_type)
        rules = self._rules(entity, property_key, RuleKind.IMMUTABLE)
        if not rules:
            return False
        saved = EntitySnapshot.create(entity_type, snapshot, entity)
        snapshots = Snapshots(new=saved, old=saved, default=SnapshotSide.OLD)
        granted = coerce_permissions(permissions)
        return any(rule_applies(rule, snapshots, granted) for rule in rules)

    def allowed_values(self, entity_type: str, property_key: str,
                       snapshot: Optional[Mapping[str, Any]],
                       permissions: Optional[Iterable[str]] = None) -> Optional[List[Any]]:
        """Union of the applicable enumerations, or ``None`` when unconstrained."""
        entity = self.rule_set.entity(entity_type)
        rules = [
            rule for rule in self._rules(entity, property_key, RuleKind.CONTENT)
            if rule.constraint.type == ConstraintType.EQUALS_ANY
        ]
        if not rules:
            return None

        snapshots = Snapshots(new=EntitySnapshot.create(entity_type, snapshot, entity))
        granted = coerce_permissions(permissions)
        allowed: Optional[List[Any]] = None
        for rule in rules:
            if not rule_applies(rule, snapshots, granted):
                continue
            if allowed is None:
                allowed = []
            for value in rule.constraint.values:
                if not any(values_equal(value, seen) for seen in allowed):
                    allowed.append(value)
        return allowed

    def form_state(self, entity_type: str, edited: Optional[Mapping[str, Any]],
                   saved: Optional[Mapping[str, Any]] = None,
                   permissions: Optional[Iterable[str]] = None,
                   properties: Optional[Sequence[str]] = None) -> Dict[str, PropertyState]:
        """Predicates for every ruled property of an entity being edited.

        Mandatory flags follow the draft. Immutable flags and allowed values
        read ``saved``, or the draft while nothing is saved.
        """
        entity = self.rule_set.entity(entity_type)
        if entity is None:
            return {}
        granted = coerce_permissions(permissions)
        edited = EntitySnapshot.create(entity_type, edited, entity)
        reference = edited if saved is None else EntitySnapshot.create(entity_type, saved, entity)

        keys = list(properties) if properties is not None else list(entity.property_rules)
        return {
            key: PropertyState(
                mandatory=self.is_mandatory(entity_type, key, edited, granted),
                immutable=self.is_immutable(entity_type, key, reference, granted),
                allowed_values=self.allowed_values(entity_type, key, reference, granted)
            )
            for key in keys
        }

    @staticmethod
    def _rules(entity: Optional[EntityRules], property_key: str, kind: RuleKind) -> Sequence[Rule]:
        if entity is None:
            return ()
        property_rules = entity.rules_for(property_key)
        if property_rules is None:
            return ()
        return property_rules.rules_for(kind)
