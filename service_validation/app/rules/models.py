"""
Rule data models for the Validation Service.

Two layers live here:

- pydantic ``*Document`` models describing the JSON rule document as it is
  exchanged with clients (camelCase keys, unknown keys rejected);
- frozen dataclasses for the compiled, immutable rule set the engine
  evaluates, including the condition AST.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .error_codes import RuleKind
from .paths import PropertyPath, SnapshotSide


class Operator(str, Enum):
    """Comparison operators."""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    IN = "IN"
    NOT_IN = "NOT_IN"
    LESS_THAN = "LESS_THAN"
    LESS_OR_EQUAL = "LESS_OR_EQUAL"
    GREATER_THAN = "GREATER_THAN"
    GREATER_OR_EQUAL = "GREATER_OR_EQUAL"
    MATCHES = "MATCHES"


ORDERING_OPERATORS = frozenset({
    Operator.LESS_THAN, Operator.LESS_OR_EQUAL,
    Operator.GREATER_THAN, Operator.GREATER_OR_EQUAL,
})
MEMBERSHIP_OPERATORS = frozenset({Operator.IN, Operator.NOT_IN})


class CombinatorOperator(str, Enum):
    AND = "and"
    OR = "or"


class ConstraintType(str, Enum):
    """Value-shape checks of content and update rules."""
    EQUALS_ANY = "EQUALS_ANY"
    EQUALS_NONE = "EQUALS_NONE"
    EQUALS_NULL = "EQUALS_NULL"
    EQUALS_NOT_NULL = "EQUALS_NOT_NULL"
    EQUALS_ANY_REF = "EQUALS_ANY_REF"
    REGEX_ANY = "REGEX_ANY"
    RANGE = "RANGE"
    SIZE = "SIZE"
    DATE_PAST = "DATE_PAST"
    DATE_FUTURE = "DATE_FUTURE"
    COMPARE = "COMPARE"


# Constraints for which a null value is significant; all others treat null
# as vacuously valid.
NULL_AWARE_CONSTRAINTS = frozenset({
    ConstraintType.EQUALS_ANY, ConstraintType.EQUALS_NONE,
    ConstraintType.EQUALS_NULL, ConstraintType.EQUALS_NOT_NULL,
})


class PermissionMatch(str, Enum):
    ANY = "ANY"
    ALL = "ALL"
    NONE = "NONE"


class ComparisonMode(str, Enum):
    """How an immutable rule compares list values."""
    ORDERED = "ORDERED"
    UNORDERED = "UNORDERED"


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class PropertyRef:
    path: PropertyPath
    side: Optional[SnapshotSide] = None


Operand = Union[Literal, PropertyRef]


@dataclass(frozen=True)
class Comparison:
    """``left <operator> right``; for IN/NOT_IN the literal holds a tuple."""
    left: PropertyRef
    operator: Operator
    right: Operand
    pattern: Optional[re.Pattern] = None

    @property
    def null_literal(self) -> bool:
        """True when the rule explicitly compares against null."""
        if not isinstance(self.right, Literal):
            return False
        if self.operator in MEMBERSHIP_OPERATORS:
            return any(v is None for v in self.right.value)
        return self.right.value is None


@dataclass(frozen=True)
class Combinator:
    operator: CombinatorOperator
    children: Tuple["Condition", ...] = ()


@dataclass(frozen=True)
class PermissionTest:
    permission: str
    present: bool = True


Condition = Union[Comparison, Combinator, PermissionTest]


@dataclass(frozen=True)
class PermissionClause:
    match: PermissionMatch
    permissions: FrozenSet[str]

    def allows(self, granted: FrozenSet[str]) -> bool:
        if self.match == PermissionMatch.ANY:
            return not self.permissions.isdisjoint(granted)
        if self.match == PermissionMatch.ALL:
            return self.permissions <= granted
        return self.permissions.isdisjoint(granted)


@dataclass(frozen=True)
class Constraint:
    type: ConstraintType
    values: Tuple[Any, ...] = ()
    patterns: Tuple[re.Pattern, ...] = ()
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None
    operator: Optional[Operator] = None
    operand: Optional[Operand] = None


@dataclass(frozen=True)
class Rule:
    kind: RuleKind
    condition: Optional[Condition] = None
    constraint: Optional[Constraint] = None
    permissions: Optional[PermissionClause] = None
    error_code_control: Optional[str] = None
    comparison: ComparisonMode = ComparisonMode.ORDERED


@dataclass(frozen=True)
class CrossPropertyRule:
    """Entity-level rule asserting a condition over several properties."""
    kind: RuleKind
    property: str
    assertion: Condition
    condition: Optional[Condition] = None
    permissions: Optional[PermissionClause] = None
    error_code_control: Optional[str] = None


@dataclass(frozen=True)
class PropertyRules:
    path: PropertyPath
    mandatory: Tuple[Rule, ...] = ()
    immutable: Tuple[Rule, ...] = ()
    content: Tuple[Rule, ...] = ()
    update: Tuple[Rule, ...] = ()

    def rules_for(self, kind: RuleKind) -> Tuple[Rule, ...]:
        return getattr(self, kind.value)


@dataclass(frozen=True)
class EntityRules:
    entity_type: str
    properties: Tuple[str, ...]
    groups: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    property_rules: Mapping[str, PropertyRules] = field(default_factory=lambda: MappingProxyType({}))
    content_rules: Tuple[CrossPropertyRule, ...] = ()
    update_rules: Tuple[CrossPropertyRule, ...] = ()

    def rules_for(self, property_key: str) -> Optional[PropertyRules]:
        return self.property_rules.get(property_key)

    def cross_property_rules(self, kind: RuleKind) -> Tuple[CrossPropertyRule, ...]:
        if kind == RuleKind.CONTENT:
            return self.content_rules
        if kind == RuleKind.UPDATE:
            return self.update_rules
        return ()


@dataclass(frozen=True)
class RuleSet:
    """Immutable, fully validated rule set for all entity types."""
    entities: Mapping[str, EntityRules]
    schema_version: str = "1.0"
    document: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def entity(self, entity_type: str) -> Optional[EntityRules]:
        return self.entities.get(entity_type)

    @classmethod
    def empty(cls) -> "RuleSet":
        return cls(entities=MappingProxyType({}), document={"entities": {}})


class DocumentModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class PermissionsDocument(DocumentModel):
    type: PermissionMatch = PermissionMatch.ANY
    values: List[str] = Field(..., min_length=1)


class ConstraintDocument(DocumentModel):
    type: ConstraintType
    values: Optional[List[Any]] = None
    value: Any = None
    ref: Optional[str] = None
    operator: Optional[Operator] = None
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None
    min_days: Optional[int] = None
    max_days: Optional[int] = None


class RuleDocument(DocumentModel):
    condition: Optional[Dict[str, Any]] = None
    constraint: Optional[ConstraintDocument] = None
    permissions: Optional[Union[PermissionsDocument, List[str]]] = None
    error_code_control: Optional[str] = None
    comparison: Optional[ComparisonMode] = None


class CrossPropertyRuleDocument(DocumentModel):
    property: str
    assertion: Dict[str, Any] = Field(..., alias="assert")
    condition: Optional[Dict[str, Any]] = None
    permissions: Optional[Union[PermissionsDocument, List[str]]] = None
    error_code_control: Optional[str] = None


class CrossPropertyRulesDocument(DocumentModel):
    content: List[CrossPropertyRuleDocument] = Field(default_factory=list)
    update: List[CrossPropertyRuleDocument] = Field(default_factory=list)


class EntityDocument(DocumentModel):
    properties: List[str]
    groups: Dict[str, List[str]] = Field(default_factory=dict)


PropertyRulesDocument = Dict[str, Dict[str, List[RuleDocument]]]


class RuleSetDocument(DocumentModel):
    schema_version: str = "1.0"
    entities: Dict[str, EntityDocument]
    mandatory_rules: PropertyRulesDocument = Field(default_factory=dict)
    immutable_rules: PropertyRulesDocument = Field(default_factory=dict)
    content_rules: PropertyRulesDocument = Field(default_factory=dict)
    update_rules: PropertyRulesDocument = Field(default_factory=dict)
    cross_property_rules: Dict[str, CrossPropertyRulesDocument] = Field(default_factory=dict)

    def rule_section(self, kind: RuleKind) -> PropertyRulesDocument:
        return getattr(self, f"{kind.value}_rules")
