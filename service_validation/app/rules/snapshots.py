"""
Entity snapshots and permission sets as seen by the engine.
"""

from collections import abc
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Union

from shared.errors import SnapshotError

from .models import EntityRules, PropertyRef
from .paths import SnapshotSide, resolve


class EntitySnapshot(abc.Mapping):
    """Read-only view of one entity state, keyed by declared property names.

    Build instances with :meth:`create`, which rejects keys the rule set does
    not declare for the entity type (including keys of group items).
    """

    def __init__(self, entity_type: str, data: Mapping[str, Any]):
        self.entity_type = entity_type
        self._data = MappingProxyType(dict(data))

    @classmethod
    def create(cls, entity_type: str, data: Union["EntitySnapshot", Mapping[str, Any], None],
               entity_rules: Optional[EntityRules] = None) -> "EntitySnapshot":
        if isinstance(data, EntitySnapshot):
            return data
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise SnapshotError(entity_type, [f"<{type(data).__name__}>"])
        if entity_rules is not None:
            unknown = _unknown_keys(entity_rules, data)
            if unknown:
                raise SnapshotError(entity_type, unknown)
        return cls(entity_type, data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"EntitySnapshot({self.entity_type!r}, {dict(self._data)!r})"


def _unknown_keys(entity_rules: EntityRules, data: Mapping[str, Any]) -> List[str]:
    declared = set(entity_rules.properties)
    unknown = [key for key in data if key not in declared]

    for group, item_properties in entity_rules.groups.items():
        items = data.get(group)
        if not isinstance(items, (list, tuple)):
            continue
        allowed = set(item_properties)
        for index, item in enumerate(items):
            if isinstance(item, Mapping):
                unknown.extend(
                    f"{group}[{index}].{key}" for key in item if key not in allowed
                )
    return unknown


def coerce_permissions(permissions: Union[Iterable[str], str, None]) -> FrozenSet[str]:
    """Normalise caller-supplied permissions to an immutable set."""
    if permissions is None:
        return frozenset()
    if isinstance(permissions, str):
        return frozenset([permissions])
    return frozenset(permissions)


@dataclass(frozen=True)
class Snapshots:
    """The snapshot pair a condition is evaluated against.

    ``default`` selects the snapshot for unqualified references: the edited
    state for mandatory, content and update rules, the saved state for
    immutable rules.
    """
    new: Optional[Mapping[str, Any]]
    old: Optional[Mapping[str, Any]] = None
    default: SnapshotSide = SnapshotSide.NEW

    def lookup(self, ref: PropertyRef) -> Any:
        side = ref.side or self.default
        data = self.old if side == SnapshotSide.OLD else self.new
        return resolve(ref.path, data)
