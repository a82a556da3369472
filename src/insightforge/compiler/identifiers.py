"""Safe identifiers and the group alias encoding.

table/column/alias names can't be bind parameters, so every name that ends up
in sql text goes through SafeIdentifier first. only a small
whitelist of characters gets through; anything else is rejected outright -
we never try to escape it.

group columns are aliased with a "%" prefix so the reshaper can tell them
apart from metric columns:

    %country                   raw group on "country"
    %age|between|18,30         custom group bucket on "age"

the alias is the only channel back from a result row to its group, so
encode_group_alias / decode_alias must stay exact inverses.
"""

import re
from dataclasses import dataclass
from typing import Any

from insightforge.errors import UnsafeIdentifier

GROUP_PREFIX = "%"
GROUP_DELIMITER = "|"
LIST_DELIMITER = ","
DATE_COLUMN = "date"  # reserved output column for the bucket

MAX_IDENTIFIER_LENGTH = 128
# letters, digits and a little punctuation; no quotes, binds (:), % or |
_ALLOWED = re.compile(r"[\w$\-][\w$ .,/@+\-]*")


class SafeIdentifier(str):
    """A str that is known to be safe inside double quotes."""

    def __new__(cls, value: str) -> "SafeIdentifier":
        if isinstance(value, SafeIdentifier):
            return value
        if not isinstance(value, str) or not value:
            raise UnsafeIdentifier(f"Identifier must be a non-empty string: {value!r}")
        if len(value) > MAX_IDENTIFIER_LENGTH:
            raise UnsafeIdentifier(f"Identifier too long: {value[:32]!r}...")
        if not _ALLOWED.fullmatch(value):
            raise UnsafeIdentifier(f"Identifier {value!r} contains forbidden characters")
        return super().__new__(cls, value)

    def quoted(self) -> str:
        return f'"{self}"'


def quote(name: str) -> str:
    """Validate and double-quote a single identifier."""
    return SafeIdentifier(name).quoted()


def qualified(table: str, column: str) -> str:
    """Validate and quote a table.column reference."""
    return f"{quote(table)}.{quote(column)}"


def metric_alias(name: str) -> str:
    """Quoted output alias for a metric column."""
    ident = SafeIdentifier(name)
    if ident == DATE_COLUMN:
        raise UnsafeIdentifier(f"'{DATE_COLUMN}' is reserved for the bucket column")
    return ident.quoted()


def literal_label(value: Any) -> str:
    """Text form of a custom group operand as it appears in the alias."""
    if isinstance(value, (list, tuple)):
        return LIST_DELIMITER.join(literal_label(v) for v in value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class GroupKey:
    """Decoded group alias."""

    value: str
    operator: str | None = None
    literal: str | None = None

    @property
    def is_custom(self) -> bool:
        return self.operator is not None


def encode_group_alias(value: str, operator: str | None = None, literal: Any = None) -> str:
    """Build the unquoted alias for a group column.

    each component must itself be a safe identifier, which also guarantees no
    embedded prefix or delimiter characters.
    """
    parts = [SafeIdentifier(value)]
    if operator is not None:
        parts.append(SafeIdentifier(operator))
        label = literal_label(literal)
        if label:
            parts.append(SafeIdentifier(label))
        else:
            parts.append("")
    return GROUP_PREFIX + GROUP_DELIMITER.join(parts)


def decode_alias(column: str) -> GroupKey | None:
    """Decode a result column name; None for anything that isn't a group."""
    if not column.startswith(GROUP_PREFIX):
        return None
    body = column[len(GROUP_PREFIX):]
    parts = body.split(GROUP_DELIMITER, 2)
    if len(parts) == 1:
        return GroupKey(value=parts[0])
    if len(parts) == 3:
        return GroupKey(value=parts[0], operator=parts[1], literal=parts[2])
    raise ValueError(f"Malformed group alias: {column!r}")
