"""Date bucketing and time-range predicates.

every storage encoding gets normalized to a tz-aware instant, shifted into the
query's timezone and formatted back to the bucket label:

    minute  2025-08-01 13:45:00
    hour    2025-08-01 13:00:00
    day     2025-08-01
    month   2025-08-01
    year    2025-01-01

when a schema has a pre-truncated date column and the window spans at least a
day we read that column instead - no per-row timezone conversion, which is a
big win on large warehouse tables. it only makes sense for day-or-coarser
buckets so minute/hour always stay on the precise column.
"""

from datetime import UTC, date, datetime, timedelta
from typing import Any

from insightforge.compiler.dialects import DUCKDB, Dialect
from insightforge.compiler.fragments import ParamBinder
from insightforge.errors import InvalidTimeUnit
from insightforge.models.application import DateEncoding
from insightforge.models.query import TimeUnit

OPTIMIZABLE_UNITS = frozenset({TimeUnit.DAY, TimeUnit.MONTH, TimeUnit.YEAR})
_DATE_ONLY_ENCODINGS = frozenset({DateEncoding.DATE})


def resolve_unit(unit: TimeUnit | str) -> TimeUnit:
    """Coerce to TimeUnit, raising InvalidTimeUnit for anything unknown."""
    if isinstance(unit, TimeUnit):
        return unit
    try:
        return TimeUnit(unit)
    except ValueError:
        raise InvalidTimeUnit(str(unit)) from None


def is_date_optimized(
    start_at: datetime,
    end_at: datetime,
    unit: TimeUnit | str,
    date_based_field: str | None,
) -> bool:
    """Whether the pre-truncated date column should be used."""
    if not date_based_field:
        return False
    if resolve_unit(unit) not in OPTIMIZABLE_UNITS:
        return False
    return end_at - start_at >= timedelta(days=1)


def to_instant_expr(column: str, encoding: DateEncoding, dialect: Dialect = DUCKDB) -> str:
    """Sql expression turning a stored time value into an instant."""
    if encoding == DateEncoding.TIMESTAMP:
        return dialect.from_seconds.format(col=column)
    if encoding == DateEncoding.TIMESTAMP_MS:
        return dialect.from_millis.format(col=column)
    if encoding == DateEncoding.DATE:
        return dialect.from_date_string.format(col=column)
    if encoding == DateEncoding.DATETIME:
        return dialect.from_datetime_string.format(col=column)
    raise ValueError(f"Unknown date encoding: {encoding}")


def bucket(
    column: str,
    unit: TimeUnit | str,
    timezone: str,
    encoding: DateEncoding,
    binder: ParamBinder,
    dialect: Dialect = DUCKDB,
) -> str:
    """Truncate a stored time column to a bucket label in the given timezone."""
    unit = resolve_unit(unit)
    fmt = dialect.bucket_formats[unit]
    return dialect.format_in_timezone.format(
        expr=to_instant_expr(column, encoding, dialect),
        tz=binder.bind(timezone),
        fmt=fmt,
    )


def bucket_date_column(column: str, unit: TimeUnit | str, dialect: Dialect = DUCKDB) -> str:
    """Bucket label straight from a date-only column."""
    unit = resolve_unit(unit)
    return dialect.format_date_column.format(col=column, fmt=dialect.bucket_formats[unit])


def encode_instant(value: datetime, encoding: DateEncoding) -> Any:
    """Convert an instant into the column's storage representation (UTC)."""
    value = value.astimezone(UTC)
    if encoding == DateEncoding.TIMESTAMP:
        return int(value.timestamp())
    if encoding == DateEncoding.TIMESTAMP_MS:
        return int(value.timestamp() * 1000)
    if encoding == DateEncoding.DATE:
        return value.date().isoformat()
    if encoding == DateEncoding.DATETIME:
        return value.strftime("%Y-%m-%d %H:%M:%S")
    raise ValueError(f"Unknown date encoding: {encoding}")


def parse_instant(value: Any) -> datetime:
    """Parse a filter operand into an aware datetime.

    accepts datetimes, dates, ISO strings and epoch numbers (ms when large,
    same heuristic pydantic uses).
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) > 2e10 else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValueError(f"Can't interpret {value!r} as a date")


def _calendar_bounds(start_at: datetime, end_at: datetime) -> tuple[str, str]:
    # inclusive dates; an end exactly on midnight doesn't drag in the next day
    first = start_at.astimezone(UTC).date()
    last = (end_at - timedelta(milliseconds=1)).astimezone(UTC).date()
    if last < first:
        last = first
    return first.isoformat(), last.isoformat()


def range_predicate(
    column: str,
    start_at: datetime,
    end_at: datetime,
    encoding: DateEncoding,
    binder: ParamBinder,
    optimized_column: str | None = None,
) -> str:
    """Time window predicate.

    the precise column gets a half-open [start, end) range. date-only columns
    (including the optimized one) compare whole calendar days, inclusive.
    """
    if optimized_column is not None or encoding in _DATE_ONLY_ENCODINGS:
        first, last = _calendar_bounds(start_at, end_at)
        target = optimized_column or column
        return f"{target} BETWEEN {binder.bind(first)} AND {binder.bind(last)}"

    start = binder.bind(encode_instant(start_at, encoding))
    end = binder.bind(encode_instant(end_at, encoding))
    return f"{column} >= {start} AND {column} < {end}"
