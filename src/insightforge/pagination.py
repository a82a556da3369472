"""Keyset pagination for raw event listing.

ordering is always by a monotonically increasing id column. the next cursor
is the id of the last item on the page, and it's absent once a page comes
back short - that's the end-of-stream signal. a full last page costs one
extra (empty) round trip, which is fine for a listing endpoint.
"""

import re
from collections.abc import Callable
from typing import Any

from insightforge.compiler.dialects import Dialect
from insightforge.compiler.fragments import ParamBinder, Statement
from insightforge.models.query import EventsPage

# canonical integers only: "007" or "--5" stay strings
_INTEGER = re.compile(r"-?(0|[1-9]\d*)")


def decode_cursor(cursor: str) -> int | str:
    """Cursors go out as strings; integer ids come back as integers."""
    text = cursor.strip()
    if _INTEGER.fullmatch(text):
        return int(text)
    return text


def encode_cursor(value: Any) -> str:
    return str(value)


def paginate(
    run: Callable[[Statement], list[dict[str, Any]]],
    *,
    select: str,
    from_clause: str,
    filters: list[str],
    binder: ParamBinder,
    dialect: Dialect,
    cursor_column: str,
    cursor_key: str,
    cursor: str | None = None,
    limit: int = 50,
    order: str = "desc",
) -> EventsPage:
    """Fetch one page.

    Args:
        run: executes a statement and returns rows as dicts.
        select: select list, e.g. '"events".*'.
        from_clause: already-quoted FROM expression.
        filters: predicates ANDed into the WHERE clause.
        cursor_column: quoted (possibly qualified) id column expression.
        cursor_key: the id column's name as it appears in result rows.
        cursor: value from the previous page's next_cursor, or None.
        limit: page size.
        order: "asc" or "desc".
    """
    if order not in ("asc", "desc"):
        raise ValueError(f"Invalid order: {order}")
    limit = int(limit)
    if limit < 1:
        raise ValueError("limit must be at least 1")

    conditions = list(filters)
    if cursor is not None:
        comparison = ">" if order == "asc" else "<"
        conditions.append(f"{cursor_column} {comparison} {binder.bind(decode_cursor(cursor))}")

    parts = [f"SELECT {select}", f"FROM {from_clause}"]
    if conditions:
        parts.append(f"WHERE {' AND '.join(f'({c})' for c in conditions)}")
    parts.append(f"ORDER BY {cursor_column} {order.upper()}")
    parts.append(f"LIMIT {limit}")

    statement = Statement(sql="\n".join(parts), params=dict(binder.params), dialect=dialect.name)
    items = run(statement)

    next_cursor = None
    if len(items) == limit:
        next_cursor = encode_cursor(items[-1][cursor_key])
    return EventsPage(items=items, next_cursor=next_cursor)
