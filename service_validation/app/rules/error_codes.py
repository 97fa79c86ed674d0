"""
Error code construction.

Codes follow ``error.validation.<kind>.<entityType>.<property>[.<extra>]``.
The optional extra comes from a rule's ``errorCodeControl`` and is never
derived from rule internals, so codes stay stable when rules are reordered
or reworded. Message text is looked up by clients in an external mapping.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

ERROR_CODE_PREFIX = "error.validation"

EXTRA_PATTERN = re.compile(r"^[A-Za-z0-9_#-]+$")


class RuleKind(str, Enum):
    """Rule phases; the value is the ``<kind>`` token of an error code."""
    MANDATORY = "mandatory"
    CONTENT = "content"
    IMMUTABLE = "immutable"
    UPDATE = "update"


@dataclass(frozen=True)
class ErrorCode:
    kind: RuleKind
    entity_type: str
    property: str
    extra: Optional[str] = None

    def format(self) -> str:
        code = f"{ERROR_CODE_PREFIX}.{self.kind.value}.{self.entity_type}.{self.property}"
        if self.extra:
            code = f"{code}.{self.extra}"
        return code

    def __str__(self) -> str:
        return self.format()


def format_error_code(kind: RuleKind, entity_type: str, property_key: str,
                      extra: Optional[str] = None) -> str:
    """Build the error code string for one finding."""
    return ErrorCode(kind, entity_type, property_key, extra).format()


def is_valid_extra(extra: str) -> bool:
    return isinstance(extra, str) and bool(EXTRA_PATTERN.match(extra))
