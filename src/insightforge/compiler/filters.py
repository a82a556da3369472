"""Filter operator compiler.

turns (value type, operator, operand) into a predicate over a column
expression. the same predicates are used as WHERE conditions for top-level
filters and, wrapped in CASE WHEN, as custom group bucket columns.

operands are always bind parameters. the column expression must already be
built from SafeIdentifier-quoted names.
"""

from collections.abc import Callable
from typing import Any

from insightforge.compiler.dates import encode_instant, parse_instant
from insightforge.compiler.fragments import ParamBinder
from insightforge.errors import UnsupportedOperator
from insightforge.models.application import DateEncoding
from insightforge.models.query import ValueType

LIKE_ESCAPE = "!"

_COMMON = ("equals", "not equals", "in list", "not in list", "is null", "is not null")
_ORDERED = (
    "greater than",
    "greater than or equal",
    "less than",
    "less than or equal",
    "between",
)

SUPPORTED_OPERATORS: dict[ValueType, frozenset[str]] = {
    ValueType.STRING: frozenset(_COMMON + ("contains", "not contains")),
    ValueType.NUMBER: frozenset(_COMMON + _ORDERED),
    ValueType.DATE: frozenset(_COMMON + _ORDERED),
    ValueType.OTHER: frozenset(_COMMON),
}

_COMPARISONS = {
    "equals": "=",
    "not equals": "<>",
    "greater than": ">",
    "greater than or equal": ">=",
    "less than": "<",
    "less than or equal": "<=",
}


def _escape_like(value: str) -> str:
    for ch in (LIKE_ESCAPE, "%", "_"):
        value = value.replace(ch, LIKE_ESCAPE + ch)
    return value


def _to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def _normalizer(value_type: ValueType, date_encoding: DateEncoding) -> Callable[[Any], Any]:
    if value_type == ValueType.STRING:
        return str
    if value_type == ValueType.NUMBER:
        return _to_number
    if value_type == ValueType.DATE:
        return lambda v: encode_instant(parse_instant(v), date_encoding)
    return lambda v: v


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def compile_filter(
    value_type: ValueType | str,
    operator: str,
    value: Any,
    column: str,
    binder: ParamBinder,
    date_encoding: DateEncoding = DateEncoding.DATETIME,
) -> str:
    """Compile one filter into a boolean sql expression.

    Raises:
        UnsupportedOperator: operator isn't valid for the value type, or the
            operand doesn't fit the operator (e.g. between without 2 values).
    """
    try:
        value_type = ValueType(value_type)
    except ValueError:
        raise UnsupportedOperator(str(value_type), operator) from None

    if operator not in SUPPORTED_OPERATORS[value_type]:
        raise UnsupportedOperator(value_type.value, operator)

    if operator == "is null":
        return f"{column} IS NULL"
    if operator == "is not null":
        return f"{column} IS NOT NULL"

    normalize = _normalizer(value_type, date_encoding)

    if operator in ("in list", "not in list"):
        items = _as_list(value)
        if not items:
            # empty IN () isn't valid sql anywhere
            return "1 = 0" if operator == "in list" else "1 = 1"
        placeholders = ", ".join(binder.bind(normalize(v)) for v in items)
        keyword = "IN" if operator == "in list" else "NOT IN"
        return f"{column} {keyword} ({placeholders})"

    if operator == "between":
        items = _as_list(value)
        if len(items) != 2:
            raise UnsupportedOperator(value_type.value, f"{operator} (needs 2 values)")
        low, high = (binder.bind(normalize(v)) for v in items)
        return f"{column} BETWEEN {low} AND {high}"

    if operator in ("contains", "not contains"):
        pattern = binder.bind(f"%{_escape_like(str(value))}%")
        keyword = "LIKE" if operator == "contains" else "NOT LIKE"
        return f"{column} {keyword} {pattern} ESCAPE '{LIKE_ESCAPE}'"

    return f"{column} {_COMPARISONS[operator]} {binder.bind(normalize(value))}"


def compile_bucket_flag(
    value_type: ValueType | str,
    operator: str,
    value: Any,
    column: str,
    binder: ParamBinder,
    date_encoding: DateEncoding = DateEncoding.DATETIME,
) -> str:
    """Custom group column: 1 when the row falls in the bucket, else 0."""
    predicate = compile_filter(value_type, operator, value, column, binder, date_encoding)
    return f"CASE WHEN {predicate} THEN 1 ELSE 0 END"
