"""
Validation orchestrator for the Validation Service.

Runs the four rule phases over an entity and returns error codes. Findings
are data: the phase methods never raise for a violated rule, and a rule that
fails to evaluate is logged and skipped so the rest of the rule set still
runs. Malformed input is not a finding: a snapshot carrying keys the entity
type does not declare raises SnapshotError from every phase.
"""

from datetime import date
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from shared.errors import RuleViolationError
from shared.logging import get_logger

from .conditions import evaluate, values_equal
from .constraints import check
from .error_codes import RuleKind, format_error_code
from .models import ComparisonMode, EntityRules, PropertyRules, Rule, RuleSet
from .paths import ABSENT, SnapshotSide, canonical_key, resolve
from .resolver import rule_applies
from .snapshots import EntitySnapshot, Snapshots, coerce_permissions

Snapshot = Optional[Mapping[str, Any]]


def is_empty(value: Any) -> bool:
    """Mandatory emptiness: absent, null, empty string, list or mapping."""
    if value is ABSENT or value is None:
        return True
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) == 0
    return False


def same_value(old: Any, new: Any, mode: ComparisonMode = ComparisonMode.ORDERED) -> bool:
    """Immutable comparison; ``UNORDERED`` compares lists as multisets."""
    if old is ABSENT or new is ABSENT:
        return old is new
    if (mode == ComparisonMode.UNORDERED
            and isinstance(old, (list, tuple)) and isinstance(new, (list, tuple))):
        return sorted(canonical_key(v) for v in old) == sorted(canonical_key(v) for v in new)
    return values_equal(old, new)


class _Findings:
    """Ordered error codes of one phase; repeated codes keep the first."""

    def __init__(self, kind: RuleKind, entity_type: str):
        self.kind = kind
        self.entity_type = entity_type
        self.codes: List[str] = []

    def add(self, property_key: str, extra: Optional[str]):
        code = format_error_code(self.kind, self.entity_type, property_key, extra)
        if code not in self.codes:
            self.codes.append(code)


class ValidationEngine:
    """Evaluates one rule set. Stateless apart from the rule set reference.

    Every phase method raises :class:`SnapshotError` when a snapshot has keys
    the entity type does not declare, before any rule runs.
    """

    def __init__(self, rule_set: RuleSet):
        self.rule_set = rule_set
        self.logger = get_logger("validation.engine")

    # Phases

    def validate_mandatory(self, entity_type: str, snapshot: Snapshot,
                           permissions: Optional[Iterable[str]] = None) -> List[str]:
        """Codes for required properties that are empty."""
        entity, (new,) = self._prepare(entity_type, snapshot)
        findings = _Findings(RuleKind.MANDATORY, entity_type)
        if entity is None:
            return findings.codes

        snapshots = Snapshots(new=new)
        granted = coerce_permissions(permissions)
        for key, property_rules in entity.property_rules.items():
            if not property_rules.mandatory:
                continue
            value = resolve(property_rules.path, new)
            if property_rules.path.yields_items:
                missing = any(is_empty(item) for item in value)
            else:
                missing = is_empty(value)
            if not missing:
                continue
            for rule in property_rules.mandatory:
                if self._applies(rule, snapshots, granted, entity_type, key):
                    findings.add(key, rule.error_code_control)

        return self._done(findings)

    def validate_content(self, entity_type: str, snapshot: Snapshot,
                         permissions: Optional[Iterable[str]] = None,
                         today: Optional[date] = None) -> List[str]:
        """Codes for present values that fail a content rule's constraint."""
        entity, (new,) = self._prepare(entity_type, snapshot)
        findings = _Findings(RuleKind.CONTENT, entity_type)
        if entity is None:
            return findings.codes

        snapshots = Snapshots(new=new)
        granted = coerce_permissions(permissions)
        self._run_constraints(entity, RuleKind.CONTENT, new, snapshots, granted, findings, today)
        self._run_assertions(entity, RuleKind.CONTENT, snapshots, granted, findings)
        return self._done(findings)

    def validate_immutable(self, entity_type: str, old_snapshot: Snapshot, new_snapshot: Snapshot,
                           permissions: Optional[Iterable[str]] = None) -> List[str]:
        """Codes for properties changed although the saved state locks them."""
        entity, (old, new) = self._prepare(entity_type, old_snapshot, new_snapshot)
        findings = _Findings(RuleKind.IMMUTABLE, entity_type)
        if entity is None or old_snapshot is None:
            return findings.codes

        # guards read the saved state unless a reference says otherwise
        snapshots = Snapshots(new=new, old=old, default=SnapshotSide.OLD)
        granted = coerce_permissions(permissions)
        for key, property_rules in entity.property_rules.items():
            if not property_rules.immutable:
                continue
            old_value = resolve(property_rules.path, old)
            new_value = resolve(property_rules.path, new)
            for rule in property_rules.immutable:
                if not self._applies(rule, snapshots, granted, entity_type, key):
                    continue
                if not same_value(old_value, new_value, rule.comparison):
                    findings.add(key, rule.error_code_control)

        return self._done(findings)

    def validate_update(self, entity_type: str, old_snapshot: Snapshot, new_snapshot: Snapshot,
                        permissions: Optional[Iterable[str]] = None,
                        today: Optional[date] = None) -> List[str]:
        """Codes for transitions from the saved to the edited state that are not allowed."""
        entity, (old, new) = self._prepare(entity_type, old_snapshot, new_snapshot)
        findings = _Findings(RuleKind.UPDATE, entity_type)
        if entity is None:
            return findings.codes

        snapshots = Snapshots(new=new, old=old)
        granted = coerce_permissions(permissions)
        self._run_constraints(entity, RuleKind.UPDATE, new, snapshots, granted, findings, today)
        self._run_assertions(entity, RuleKind.UPDATE, snapshots, granted, findings)
        return self._done(findings)

    # Combined checks

    def validate_create(self, entity_type: str, snapshot: Snapshot,
                        permissions: Optional[Iterable[str]] = None,
                        today: Optional[date] = None) -> List[str]:
        return (self.validate_mandatory(entity_type, snapshot, permissions)
                + self.validate_content(entity_type, snapshot, permissions, today))

    def validate_all(self, entity_type: str, old_snapshot: Snapshot, new_snapshot: Snapshot,
                     permissions: Optional[Iterable[str]] = None,
                     today: Optional[date] = None) -> List[str]:
        return (self.validate_create(entity_type, new_snapshot, permissions, today)
                + self.validate_immutable(entity_type, old_snapshot, new_snapshot, permissions)
                + self.validate_update(entity_type, old_snapshot, new_snapshot, permissions, today))

    def require_validation_rules_pass(self, entity_type: str, entity: Snapshot,
                                      permissions: Optional[Iterable[str]] = None,
                                      saved: Snapshot = None,
                                      today: Optional[date] = None) -> None:
        """Raise :class:`RuleViolationError` unless every applicable rule passes.

        Without ``saved`` the entity is checked as a creation (mandatory and
        content rules), otherwise as an update of ``saved``.
        """
        if saved is None:
            errors = self.validate_create(entity_type, entity, permissions, today)
        else:
            errors = self.validate_all(entity_type, saved, entity, permissions, today)
        if errors:
            self.logger.info("Validation rules failed", entity_type=entity_type, errors=errors)
            raise RuleViolationError(errors)

    # Internals

    def _prepare(self, entity_type: str, *snapshots: Snapshot) -> Tuple[Optional[EntityRules], tuple]:
        entity = self.rule_set.entity(entity_type)
        checked = tuple(EntitySnapshot.create(entity_type, s, entity) for s in snapshots)
        return entity, checked

    def _run_constraints(self, entity: EntityRules, kind: RuleKind, new: EntitySnapshot,
                         snapshots: Snapshots, granted, findings: _Findings,
                         today: Optional[date]):
        for key, property_rules in entity.property_rules.items():
            rules = property_rules.rules_for(kind)
            if not rules:
                continue
            value = resolve(property_rules.path, new)
            items = value if property_rules.path.yields_items else [value]
            for rule in rules:
                if not self._applies(rule, snapshots, granted, entity.entity_type, key):
                    continue
                if not self._satisfied(rule, property_rules, items, snapshots, today):
                    findings.add(key, rule.error_code_control)

    def _run_assertions(self, entity: EntityRules, kind: RuleKind, snapshots: Snapshots,
                        granted, findings: _Findings):
        for rule in entity.cross_property_rules(kind):
            if not self._applies(rule, snapshots, granted, entity.entity_type, rule.property):
                continue
            if not evaluate(rule.assertion, snapshots, granted):
                findings.add(rule.property, rule.error_code_control)

    def _applies(self, rule, snapshots: Snapshots, granted, entity_type: str, key: str) -> bool:
        try:
            return rule_applies(rule, snapshots, granted)
        except Exception as e:
            self.logger.warning("Rule guard failed to evaluate", entity_type=entity_type,
                                property=key, error=str(e))
            return False

    def _satisfied(self, rule: Rule, property_rules: PropertyRules, items: List[Any],
                   snapshots: Snapshots, today: Optional[date]) -> bool:
        try:
            return all(check(rule.constraint, item, snapshots, today) for item in items)
        except Exception as e:
            self.logger.warning("Constraint failed to evaluate", property=property_rules.path.key,
                                constraint=rule.constraint.type.value, error=str(e))
            return True

    def _done(self, findings: _Findings) -> List[str]:
        self.logger.debug(
            "Validation phase completed",
            phase=findings.kind.value,
            entity_type=findings.entity_type,
            findings=len(findings.codes)
        )
        return findings.codes
