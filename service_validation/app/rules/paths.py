"""
Property paths addressed by rules and conditions.

A path names a top-level property and may descend into repeatable groups:

- ``name``                   plain property
- ``accessories[*].name``    every item of a group
- ``accessories[0].name``    a single item
- ``accessories[1/2].name``  every second item starting at index 1
- ``accessories#size``       aggregate over the resolved value(s)
- ``accessories[*].amount#sum``, ``accessories[*].name#distinct``

References used inside conditions may additionally carry an ``old.`` or
``new.`` prefix selecting the snapshot they are read from.
"""

import json
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple


class _Absent:
    """Marker for a property that is not present in a snapshot."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


class SnapshotSide(str, Enum):
    """Snapshot a property reference is read from."""
    OLD = "old"
    NEW = "new"


class Aggregate(str, Enum):
    """Aggregate functions applicable to a path."""
    SIZE = "size"
    SUM = "sum"
    DISTINCT = "distinct"


class IndexKind(str, Enum):
    ALL = "all"
    SINGLE = "single"
    STEP = "step"


@dataclass(frozen=True)
class IndexSpec:
    """Selection of items from a list-valued segment."""
    kind: IndexKind
    start: int = 0
    step: int = 1

    def select(self, items: List[Any]) -> List[Any]:
        if self.kind == IndexKind.ALL:
            return list(items)
        if self.kind == IndexKind.SINGLE:
            return [items[self.start]] if 0 <= self.start < len(items) else [ABSENT]
        return list(items[self.start::self.step])


@dataclass(frozen=True)
class Segment:
    name: str
    index: Optional[IndexSpec] = None


@dataclass(frozen=True)
class PropertyPath:
    """Parsed property path; ``key`` is the text it was parsed from."""
    key: str
    segments: Tuple[Segment, ...]
    aggregate: Optional[Aggregate] = None

    @property
    def root(self) -> str:
        return self.segments[0].name

    @property
    def is_multi(self) -> bool:
        """True when the path addresses several items of a group."""
        return any(
            s.index is not None and s.index.kind != IndexKind.SINGLE
            for s in self.segments
        )

    @property
    def yields_items(self) -> bool:
        """True when resolving the path gives one value per addressed item."""
        return self.is_multi and self.aggregate is None


_SEGMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)(?:\[(\*|\d+|\d+/\d+)\])?$")


class PathSyntaxError(ValueError):
    """Raised for malformed property paths."""


def parse_path(text: str) -> PropertyPath:
    """Parse a property path such as ``accessories[*].amount#sum``."""
    if not isinstance(text, str) or not text:
        raise PathSyntaxError(f"Invalid property path {text!r}")

    body, _, aggregate_name = text.partition("#")
    aggregate = None
    if aggregate_name:
        try:
            aggregate = Aggregate(aggregate_name)
        except ValueError:
            raise PathSyntaxError(f"Unknown aggregate '#{aggregate_name}' in {text!r}")

    segments = []
    for part in body.split("."):
        match = _SEGMENT.match(part)
        if not match:
            raise PathSyntaxError(f"Invalid path segment {part!r} in {text!r}")
        name, index_text = match.groups()
        segments.append(Segment(name=name, index=_parse_index(index_text, text)))

    return PropertyPath(key=text, segments=tuple(segments), aggregate=aggregate)


def _parse_index(index_text: Optional[str], text: str) -> Optional[IndexSpec]:
    if index_text is None:
        return None
    if index_text == "*":
        return IndexSpec(IndexKind.ALL)
    if "/" in index_text:
        start, step = (int(n) for n in index_text.split("/"))
        if step < 1:
            raise PathSyntaxError(f"Index step must be positive in {text!r}")
        return IndexSpec(IndexKind.STEP, start=start, step=step)
    return IndexSpec(IndexKind.SINGLE, start=int(index_text))


def parse_reference(text: str) -> Tuple[Optional[SnapshotSide], PropertyPath]:
    """Parse a reference that may start with ``old.`` or ``new.``."""
    if isinstance(text, str):
        for side in SnapshotSide:
            prefix = side.value + "."
            if text.startswith(prefix):
                return side, parse_path(text[len(prefix):])
    return None, parse_path(text)


def resolve(path: PropertyPath, data: Optional[Mapping[str, Any]]) -> Any:
    """Read the value(s) a path addresses in ``data``.

    Returns ``ABSENT`` for missing properties. Paths addressing several
    items return a list with one entry per item; aggregates return the
    computed scalar.
    """
    if data is None:
        return ABSENT

    values: List[Any] = [data]
    for segment in path.segments:
        selected: List[Any] = []
        for current in values:
            if not isinstance(current, Mapping) or segment.name not in current:
                # a missing group contributes no items
                if segment.index is None or segment.index.kind == IndexKind.SINGLE:
                    selected.append(ABSENT)
                continue
            value = current[segment.name]
            if segment.index is None:
                selected.append(value)
            elif isinstance(value, (list, tuple)):
                selected.extend(segment.index.select(list(value)))
            elif segment.index.kind == IndexKind.SINGLE:
                selected.append(ABSENT)
        values = selected

    if path.aggregate is not None:
        target = values if path.is_multi else (values[0] if values else ABSENT)
        return _aggregate(path.aggregate, target, path.is_multi)
    if path.is_multi:
        return values
    return values[0] if values else ABSENT


def _aggregate(aggregate: Aggregate, value: Any, from_items: bool) -> Any:
    if aggregate == Aggregate.SIZE:
        if from_items:
            return len([v for v in value if v is not ABSENT])
        if isinstance(value, (str, list, tuple, Mapping)):
            return len(value)
        return ABSENT

    if not isinstance(value, (list, tuple)):
        return ABSENT
    present = [v for v in value if v is not ABSENT and v is not None]

    if aggregate == Aggregate.SUM:
        total = Decimal(0)
        for item in present:
            number = to_decimal(item)
            if number is None:
                return ABSENT
            total += number
        return total

    keys = [canonical_key(v) for v in present]
    return len(keys) == len(set(keys))


# Numeric strings must be JSON numbers; Decimal alone would also read "1_000" or "Infinity"
_JSON_NUMBER = re.compile(r"^-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?$")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Coerce numbers and numeric strings to ``Decimal``; booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    elif isinstance(value, str):
        text = value.strip()
        if not _JSON_NUMBER.match(text):
            return None
    else:
        return None
    try:
        number = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def canonical_key(value: Any) -> str:
    """Stable text form used for distinctness and de-duplication."""
    return json.dumps(value, sort_keys=True, default=str)
