"""
Rule set loading and the active rule set.

``load`` turns a rule document (mapping or JSON text) into an immutable
:class:`RuleSet`, failing with :class:`RuleSetError` on the first structural
or referential problem. :class:`RuleSetStore` holds the active set and
replaces it with a single reference swap.
"""

import json
import re
import threading
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from shared.errors import RuleSetError
from shared.logging import get_logger

from .error_codes import RuleKind, is_valid_extra
from .models import (
    Combinator, CombinatorOperator, Comparison, ComparisonMode, Condition, Constraint,
    ConstraintDocument, ConstraintType, CrossPropertyRule, CrossPropertyRuleDocument,
    EntityDocument, EntityRules, Literal, MEMBERSHIP_OPERATORS, Operator, PermissionClause,
    PermissionMatch, PermissionsDocument, PermissionTest, PropertyRef, PropertyRules, Rule,
    RuleDocument, RuleSet, RuleSetDocument
)
from .paths import PathSyntaxError, PropertyPath, parse_path, parse_reference

PERMISSION_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_.:-]*$")

_COMPARISON_KEYS = {"property", "operator", "value", "values", "ref"}

logger = get_logger("validation.store")


def load(document: Union[str, bytes, Mapping[str, Any]]) -> RuleSet:
    """Parse and validate a rule document into a :class:`RuleSet`."""
    raw = _decode(document)
    try:
        parsed = RuleSetDocument.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        path = ".".join(str(part) for part in first["loc"])
        raise RuleSetError(f"Malformed rule document: {first['msg']}", path=path)

    compiler = _RuleSetCompiler(parsed)
    entities = compiler.compile()
    return RuleSet(
        entities=MappingProxyType(entities),
        schema_version=parsed.schema_version,
        document=raw
    )


def _decode(document: Union[str, bytes, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as e:
            raise RuleSetError(f"Rule document is not valid JSON: {e}")
    if not isinstance(document, Mapping):
        raise RuleSetError("Rule document must be a JSON object")
    return json.loads(json.dumps(document, default=str))


class _RuleSetCompiler:
    """Compiles a parsed document entity by entity."""

    def __init__(self, document: RuleSetDocument):
        self.document = document

    def compile(self) -> Dict[str, EntityRules]:
        self._check_entity_references()
        return {
            entity_type: self._compile_entity(entity_type, entity_doc)
            for entity_type, entity_doc in self.document.entities.items()
        }

    def _check_entity_references(self):
        declared = self.document.entities
        sections = [
            (f"{kind.value}Rules", self.document.rule_section(kind)) for kind in RuleKind
        ]
        sections.append(("crossPropertyRules", self.document.cross_property_rules))
        for section_name, section in sections:
            for entity_type in section:
                if entity_type not in declared:
                    raise RuleSetError(
                        f"Unknown entity type '{entity_type}'",
                        path=f"{section_name}.{entity_type}"
                    )

    def _compile_entity(self, entity_type: str, entity_doc: EntityDocument) -> EntityRules:
        scope = _EntityScope(entity_type, entity_doc)

        collected: Dict[str, Dict[RuleKind, List[Rule]]] = {}
        paths: Dict[str, PropertyPath] = {}
        for kind in RuleKind:
            section = self.document.rule_section(kind).get(entity_type, {})
            for key, rule_docs in section.items():
                location = f"{kind.value}Rules.{entity_type}.{key}"
                if key not in paths:
                    paths[key] = scope.path(key, location)
                per_kind = collected.setdefault(key, {})
                per_kind[kind] = [
                    scope.rule(kind, rule_doc, f"{location}[{index}]")
                    for index, rule_doc in enumerate(rule_docs)
                ]

        property_rules = {
            key: PropertyRules(
                path=paths[key],
                **{kind.value: tuple(per_kind.get(kind, ())) for kind in RuleKind}
            )
            for key, per_kind in collected.items()
        }

        cross_doc = self.document.cross_property_rules.get(entity_type)
        content_rules: Tuple[CrossPropertyRule, ...] = ()
        update_rules: Tuple[CrossPropertyRule, ...] = ()
        if cross_doc is not None:
            content_rules = tuple(
                scope.cross_property_rule(RuleKind.CONTENT, rule_doc,
                                          f"crossPropertyRules.{entity_type}.content[{index}]")
                for index, rule_doc in enumerate(cross_doc.content)
            )
            update_rules = tuple(
                scope.cross_property_rule(RuleKind.UPDATE, rule_doc,
                                          f"crossPropertyRules.{entity_type}.update[{index}]")
                for index, rule_doc in enumerate(cross_doc.update)
            )

        return EntityRules(
            entity_type=entity_type,
            properties=tuple(entity_doc.properties),
            groups=MappingProxyType({g: tuple(items) for g, items in entity_doc.groups.items()}),
            property_rules=MappingProxyType(property_rules),
            content_rules=content_rules,
            update_rules=update_rules
        )


class _EntityScope:
    """Name resolution and rule compilation for one entity type."""

    def __init__(self, entity_type: str, entity_doc: EntityDocument):
        self.entity_type = entity_type
        self.properties = set(entity_doc.properties)
        self.groups = {g: set(items) for g, items in entity_doc.groups.items()}
        if len(self.properties) != len(entity_doc.properties):
            raise RuleSetError("Duplicate property declaration", path=f"entities.{entity_type}.properties")
        for group in self.groups:
            if group not in self.properties:
                raise RuleSetError(
                    f"Group '{group}' is not a declared property",
                    path=f"entities.{entity_type}.groups.{group}"
                )

    # Paths and references

    def path(self, text: str, location: str) -> PropertyPath:
        try:
            path = parse_path(text)
        except PathSyntaxError as e:
            raise RuleSetError(str(e), path=location)
        self._check_declared(path, location)
        return path

    def reference(self, text: Any, location: str) -> PropertyRef:
        if not isinstance(text, str):
            raise RuleSetError(f"Property reference must be a string, got {text!r}", path=location)
        try:
            side, path = parse_reference(text)
        except PathSyntaxError as e:
            raise RuleSetError(str(e), path=location)
        self._check_declared(path, location)
        return PropertyRef(path=path, side=side)

    def _check_declared(self, path: PropertyPath, location: str):
        """Reject paths that could only ever resolve to ABSENT.

        Only groups may be indexed, a group is entered through an index and
        its items are flat: ``group[i].item`` with ``item`` declared.
        """
        root, rest = path.segments[0], path.segments[1:]
        if root.name not in self.properties:
            raise RuleSetError(
                f"Property '{root.name}' is not declared for entity type '{self.entity_type}'",
                path=location
            )
        if root.name not in self.groups:
            if root.index is not None:
                raise RuleSetError(f"Property '{root.name}' is not a group and cannot be indexed",
                                   path=location)
            if rest:
                raise RuleSetError(f"Property '{root.name}' is not a group and has no items",
                                   path=location)
            return
        if not rest:
            return
        if root.index is None:
            raise RuleSetError(f"Items of group '{root.name}' need an index, e.g. '{root.name}[*]'",
                               path=location)
        item = rest[0]
        if item.name not in self.groups[root.name]:
            raise RuleSetError(
                f"Property '{item.name}' is not declared for group '{root.name}'",
                path=location
            )
        if item.index is not None or len(rest) > 1:
            raise RuleSetError(f"Item '{item.name}' of group '{root.name}' has no nested values",
                               path=location)

    # Rules

    def rule(self, kind: RuleKind, doc: RuleDocument, location: str) -> Rule:
        constraint = None
        if kind in (RuleKind.CONTENT, RuleKind.UPDATE):
            if doc.constraint is None:
                raise RuleSetError(f"{kind.value} rules need a constraint", path=location)
            constraint = self.constraint(doc.constraint, f"{location}.constraint")
        elif doc.constraint is not None:
            raise RuleSetError(f"{kind.value} rules take no constraint", path=f"{location}.constraint")

        if doc.comparison is not None and kind != RuleKind.IMMUTABLE:
            raise RuleSetError("Only immutable rules declare a comparison mode", path=f"{location}.comparison")

        return Rule(
            kind=kind,
            condition=self.condition(doc.condition, f"{location}.condition"),
            constraint=constraint,
            permissions=self.permissions(doc.permissions, f"{location}.permissions"),
            error_code_control=self.error_code_control(doc.error_code_control,
                                                       f"{location}.errorCodeControl"),
            comparison=doc.comparison or ComparisonMode.ORDERED
        )

    def cross_property_rule(self, kind: RuleKind, doc: CrossPropertyRuleDocument,
                            location: str) -> CrossPropertyRule:
        anchor = self.path(doc.property, f"{location}.property")
        assertion = self.condition(doc.assertion, f"{location}.assert")
        return CrossPropertyRule(
            kind=kind,
            property=anchor.key,
            assertion=assertion,
            condition=self.condition(doc.condition, f"{location}.condition"),
            permissions=self.permissions(doc.permissions, f"{location}.permissions"),
            error_code_control=self.error_code_control(doc.error_code_control,
                                                       f"{location}.errorCodeControl")
        )

    def error_code_control(self, extra: Optional[str], location: str) -> Optional[str]:
        if extra is None:
            return None
        if not is_valid_extra(extra):
            raise RuleSetError(f"Invalid error code extra {extra!r}", path=location)
        return extra

    def permissions(self, doc: Union[PermissionsDocument, List[str], None],
                    location: str) -> Optional[PermissionClause]:
        if doc is None:
            return None
        if isinstance(doc, list):
            doc = PermissionsDocument(type=PermissionMatch.ANY, values=doc)
        for name in doc.values:
            self._check_permission_name(name, location)
        return PermissionClause(match=doc.type, permissions=frozenset(doc.values))

    def _check_permission_name(self, name: Any, location: str):
        if not isinstance(name, str) or not PERMISSION_NAME.match(name):
            raise RuleSetError(f"Invalid permission name {name!r}", path=location)

    def constraint(self, doc: ConstraintDocument, location: str) -> Constraint:
        ctype = doc.type
        given = doc.model_fields_set

        if ctype in (ConstraintType.EQUALS_ANY, ConstraintType.EQUALS_NONE):
            if not doc.values:
                raise RuleSetError(f"{ctype.value} needs a non-empty 'values' list", path=location)
            return Constraint(type=ctype, values=tuple(doc.values))

        if ctype in (ConstraintType.EQUALS_NULL, ConstraintType.EQUALS_NOT_NULL):
            return Constraint(type=ctype)

        if ctype == ConstraintType.EQUALS_ANY_REF:
            if doc.ref is None:
                raise RuleSetError("EQUALS_ANY_REF needs a 'ref'", path=location)
            return Constraint(
                type=ctype,
                values=tuple(doc.values or ()),
                operand=self.reference(doc.ref, f"{location}.ref")
            )

        if ctype == ConstraintType.REGEX_ANY:
            if not doc.values:
                raise RuleSetError("REGEX_ANY needs a non-empty 'values' list", path=location)
            return Constraint(type=ctype, values=tuple(doc.values),
                              patterns=tuple(self._regex(p, location) for p in doc.values))

        if ctype in (ConstraintType.RANGE, ConstraintType.SIZE):
            if doc.min is None and doc.max is None:
                raise RuleSetError(f"{ctype.value} needs 'min' and/or 'max'", path=location)
            self._check_bounds(doc.min, doc.max, location)
            return Constraint(type=ctype, min=doc.min, max=doc.max)

        if ctype in (ConstraintType.DATE_PAST, ConstraintType.DATE_FUTURE):
            minimum = Decimal(doc.min_days if doc.min_days is not None else 0)
            maximum = Decimal(doc.max_days) if doc.max_days is not None else None
            self._check_bounds(minimum, maximum, location)
            return Constraint(type=ctype, min=minimum, max=maximum)

        # COMPARE
        if doc.operator is None or doc.operator in MEMBERSHIP_OPERATORS or doc.operator == Operator.MATCHES:
            raise RuleSetError("COMPARE needs an equality or ordering 'operator'", path=location)
        if ("value" in given) == (doc.ref is not None):
            raise RuleSetError("COMPARE needs exactly one of 'value' or 'ref'", path=location)
        operand = self.reference(doc.ref, f"{location}.ref") if doc.ref is not None else Literal(doc.value)
        return Constraint(type=ctype, operator=doc.operator, operand=operand)

    def _check_bounds(self, minimum: Optional[Decimal], maximum: Optional[Decimal], location: str):
        if minimum is not None and maximum is not None and minimum > maximum:
            raise RuleSetError("'min' must not exceed 'max'", path=location)

    def _regex(self, pattern: Any, location: str) -> "re.Pattern":
        if not isinstance(pattern, str):
            raise RuleSetError(f"Pattern must be a string, got {pattern!r}", path=location)
        try:
            return re.compile(pattern)
        except re.error as e:
            raise RuleSetError(f"Invalid regular expression {pattern!r}: {e}", path=location)

    # Conditions

    def condition(self, node: Optional[Mapping[str, Any]], location: str) -> Optional[Condition]:
        if node is None:
            return None
        return self._condition_node(node, location)

    def _condition_node(self, node: Any, location: str) -> Condition:
        if not isinstance(node, Mapping) or not node:
            raise RuleSetError(f"Condition must be a non-empty object, got {node!r}", path=location)

        keys = set(node)
        for op in CombinatorOperator:
            if op.value in keys:
                if keys != {op.value}:
                    raise RuleSetError(f"'{op.value}' node takes no other keys", path=location)
                children = node[op.value]
                if not isinstance(children, list):
                    raise RuleSetError(f"'{op.value}' expects a list", path=location)
                return Combinator(
                    operator=op,
                    children=tuple(
                        self._condition_node(child, f"{location}.{op.value}[{index}]")
                        for index, child in enumerate(children)
                    )
                )

        if "permission" in keys:
            if not keys <= {"permission", "present"}:
                raise RuleSetError("Permission test takes only 'permission' and 'present'", path=location)
            self._check_permission_name(node["permission"], location)
            present = node.get("present", True)
            if not isinstance(present, bool):
                raise RuleSetError("'present' must be a boolean", path=location)
            return PermissionTest(permission=node["permission"], present=present)

        if "property" in keys:
            return self._comparison(node, keys, location)

        raise RuleSetError(f"Unknown condition node with keys {sorted(keys)}", path=location)

    def _comparison(self, node: Mapping[str, Any], keys: set, location: str) -> Comparison:
        unknown = keys - _COMPARISON_KEYS
        if unknown:
            raise RuleSetError(f"Unknown comparison keys {sorted(unknown)}", path=location)
        try:
            operator = Operator(node.get("operator", Operator.EQUALS.value))
        except ValueError:
            raise RuleSetError(f"Unknown operator {node.get('operator')!r}", path=location)

        left = self.reference(node["property"], f"{location}.property")
        operands = keys & {"value", "values", "ref"}
        if len(operands) != 1:
            raise RuleSetError("Comparison needs exactly one of 'value', 'values' or 'ref'", path=location)

        if "ref" in operands:
            if operator == Operator.MATCHES:
                raise RuleSetError("MATCHES compares against a literal pattern", path=location)
            return Comparison(left=left, operator=operator,
                              right=self.reference(node["ref"], f"{location}.ref"))

        if operator in MEMBERSHIP_OPERATORS:
            values = node.get("values")
            if not isinstance(values, list):
                raise RuleSetError(f"{operator.value} needs a 'values' list", path=location)
            return Comparison(left=left, operator=operator, right=Literal(tuple(values)))

        if "values" in operands:
            raise RuleSetError(f"{operator.value} takes a single 'value'", path=location)

        value = node["value"]
        pattern = self._regex(value, location) if operator == Operator.MATCHES else None
        return Comparison(left=left, operator=operator, right=Literal(value), pattern=pattern)


class RuleSetStore:
    """Holds the active rule set.

    Readers call :meth:`current` once per operation and keep using that
    reference, so a concurrent replacement is never observed half-applied.
    """

    def __init__(self, rule_set: Optional[RuleSet] = None):
        self._lock = threading.Lock()
        self._current = rule_set or RuleSet.empty()

    def current(self) -> RuleSet:
        return self._current

    def swap(self, rule_set: RuleSet) -> RuleSet:
        """Replace the active rule set and return the previous one."""
        with self._lock:
            previous, self._current = self._current, rule_set
        return previous

    def set_rules(self, document: Union[str, bytes, Mapping[str, Any]]) -> RuleSet:
        """Load ``document`` and make it active; the old set stays on failure."""
        try:
            rule_set = load(document)
        except RuleSetError as e:
            logger.warning("Rule document rejected", error=e.message, path=e.path)
            raise
        self.swap(rule_set)
        logger.info(
            "Rule set loaded",
            schema_version=rule_set.schema_version,
            entity_types=sorted(rule_set.entities)
        )
        return rule_set
