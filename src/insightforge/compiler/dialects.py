"""Per-dialect sql snippets for time handling.

builders speak one sql shape (ANSI double-quoted identifiers, :pN binds). the
bits that genuinely differ between engines - epoch conversion, timezone
shifting, date formatting - live here as small templates. no query planner,
just string templates over already-validated identifiers.
"""

from dataclasses import dataclass

from insightforge.models.query import TimeUnit


@dataclass(frozen=True)
class Dialect:
    name: str
    bucket_formats: dict[TimeUnit, str]
    # each template takes {col}; results are tz-aware instants (or UTC-naive for mysql)
    from_seconds: str
    from_millis: str
    from_date_string: str
    from_datetime_string: str
    # takes {expr}, {tz}, {fmt}
    format_in_timezone: str
    # takes {col}, {fmt} - for already date-only columns
    format_date_column: str
    quote_char: str = '"'
    # longest output alias the engine keeps intact, None for no limit
    max_alias_bytes: int | None = None

    def translate(self, sql: str) -> str:
        """Swap ANSI identifier quotes for the dialect's quote character.

        safe as a plain replace because identifiers can't contain quotes and
        every literal value travels as a bind parameter.
        """
        if self.quote_char == '"':
            return sql
        return sql.replace('"', self.quote_char)


DUCKDB = Dialect(
    name="duckdb",
    bucket_formats={
        TimeUnit.MINUTE: "%Y-%m-%d %H:%M:00",
        TimeUnit.HOUR: "%Y-%m-%d %H:00:00",
        TimeUnit.DAY: "%Y-%m-%d",
        TimeUnit.MONTH: "%Y-%m-01",
        TimeUnit.YEAR: "%Y-01-01",
    },
    from_seconds="to_timestamp({col})",
    from_millis="to_timestamp({col} / 1000)",
    from_date_string="timezone('UTC', strptime({col}, '%Y-%m-%d'))",
    from_datetime_string="timezone('UTC', strptime({col}, '%Y-%m-%d %H:%M:%S'))",
    # the cast picks the varchar overload of timezone() for an untyped bind
    format_in_timezone="strftime(timezone(CAST({tz} AS VARCHAR), {expr}), '{fmt}')",
    format_date_column="strftime(CAST({col} AS DATE), '{fmt}')",
)

# the original warehouse target
MYSQL = Dialect(
    name="mysql",
    bucket_formats={
        TimeUnit.MINUTE: "%Y-%m-%d %H:%i:00",
        TimeUnit.HOUR: "%Y-%m-%d %H:00:00",
        TimeUnit.DAY: "%Y-%m-%d",
        TimeUnit.MONTH: "%Y-%m-01",
        TimeUnit.YEAR: "%Y-01-01",
    },
    from_seconds="FROM_UNIXTIME({col})",
    from_millis="FROM_UNIXTIME({col} / 1000)",
    from_date_string="STR_TO_DATE({col}, '%Y-%m-%d')",
    from_datetime_string="STR_TO_DATE({col}, '%Y-%m-%d %H:%i:%s')",
    format_in_timezone="DATE_FORMAT(CONVERT_TZ({expr}, '+00:00', {tz}), '{fmt}')",
    format_date_column="DATE_FORMAT({col}, '{fmt}')",
    quote_char="`",
    max_alias_bytes=256,
)

POSTGRESQL = Dialect(
    name="postgresql",
    bucket_formats={
        TimeUnit.MINUTE: "YYYY-MM-DD HH24:MI:00",
        TimeUnit.HOUR: "YYYY-MM-DD HH24:00:00",
        TimeUnit.DAY: "YYYY-MM-DD",
        TimeUnit.MONTH: "YYYY-MM-01",
        TimeUnit.YEAR: "YYYY-01-01",
    },
    from_seconds="to_timestamp({col})",
    from_millis="to_timestamp({col} / 1000.0)",
    from_date_string="(CAST({col} AS timestamp) AT TIME ZONE 'UTC')",
    from_datetime_string="(CAST({col} AS timestamp) AT TIME ZONE 'UTC')",
    format_in_timezone="to_char(({expr}) AT TIME ZONE {tz}, '{fmt}')",
    format_date_column="to_char(CAST({col} AS date), '{fmt}')",
    # NAMEDATALEN - 1; longer names are silently truncated
    max_alias_bytes=63,
)

DIALECTS = {d.name: d for d in (DUCKDB, MYSQL, POSTGRESQL)}


def get_dialect(name: str) -> Dialect:
    """Look up a dialect by sqlalchemy dialect name (e.g. engine.dialect.name)."""
    try:
        return DIALECTS[name]
    except KeyError:
        raise ValueError(
            f"Unsupported sql dialect: {name}. Use one of: {', '.join(DIALECTS)}"
        ) from None
