"""Shared contract for backend query builders.

the three builders (internal, warehouse long table, warehouse wide table)
implement the same method set but resolve tables and columns their own way.
they share behaviour through the free functions below rather than a base
class - assemble_statement() glues the clauses together identically for all.

the statement shape:

    SELECT <bucket> AS "date", <metric aggregates>, <group columns>
    FROM <table(s)>
    WHERE <time range> AND (<event name disjunction>) AND <filters>
    GROUP BY "date", <group aliases>
    ORDER BY "date"
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import sqlglot
from sqlglot.errors import SqlglotError

from insightforge.compiler.dialects import Dialect
from insightforge.compiler.fragments import ParamBinder, Statement
from insightforge.compiler.identifiers import DATE_COLUMN, encode_group_alias, quote
from insightforge.errors import StatementExecutionFailed, UnsafeIdentifier
from insightforge.log import get_logger
from insightforge.models.query import CustomGroup, EventsPage, Group, InsightQuery, Metric, QueryResult
from insightforge.pagination import paginate

logger = get_logger(__name__)

# sqlglot names differ slightly from sqlalchemy's
_SQLGLOT_DIALECTS = {"duckdb": "duckdb", "mysql": "mysql", "postgresql": "postgres"}


class Executor(Protocol):
    """What builders need from a storage handle."""

    backend: str
    driver_errors: tuple[type[BaseException], ...]

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> QueryResult: ...


class InsightsSqlBuilder(Protocol):
    query: InsightQuery
    dialect: Dialect
    binder: ParamBinder
    executor: Executor

    def build_from_clause(self) -> str: ...

    def build_select_clause(self) -> list[str]: ...

    def build_group_select_clause(self) -> list["GroupProjection"]: ...

    def build_where_clause(self) -> list[str]: ...

    def build_date_clause(self) -> str: ...

    def build(self) -> Statement: ...

    def execute(self, statement: Statement) -> list[dict[str, Any]]: ...

    def query_events(self, cursor: str | None, limit: int, order: str) -> EventsPage: ...

    def list_event_names(self) -> list[dict[str, Any]]: ...

    def list_filter_params(self) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class GroupProjection:
    """One derived group column: sql expression plus its encoded alias."""

    expr: str
    alias: str

    def select_sql(self) -> str:
        return f"{self.expr} AS {quote_alias(self.alias)}"


def quote_alias(alias: str) -> str:
    # group aliases carry the % prefix, which SafeIdentifier rejects on purpose,
    # so they're validated piecewise in encode_group_alias instead
    return f'"{alias}"'


def group_projections(
    groups: Sequence[Group],
    raw_expr: Callable[[Group], str],
    flag_expr: Callable[[Group, CustomGroup], str],
) -> list[GroupProjection]:
    """Expand groups into projection descriptors.

    a plain group gives one column; a group with custom_groups gives one 0/1
    column per entry. an empty custom_groups list contributes nothing.
    """
    projections = []
    for group in groups:
        if group.custom_groups is None:
            projections.append(
                GroupProjection(expr=raw_expr(group), alias=encode_group_alias(group.value))
            )
            continue
        for cg in group.custom_groups:
            alias = encode_group_alias(group.value, cg.filter_operator, cg.filter_value)
            projections.append(GroupProjection(expr=flag_expr(group, cg), alias=alias))
    return projections


def metric_disjunction(metrics: Sequence[Metric], predicate: Callable[[Metric], str]) -> str:
    """A row qualifies if it matches any requested metric.

    $all_event short-circuits to an always-true condition.
    """
    if any(m.is_all_event for m in metrics):
        return "1 = 1"
    if not metrics:
        return "1 = 1"
    return "(" + " OR ".join(predicate(m) for m in metrics) + ")"


def check_alias_lengths(aliases: Sequence[str], dialect: Dialect) -> None:
    """Reject aliases the backend would truncate.

    a truncated alias no longer decodes to its group, and two custom groups
    sharing a long prefix would collapse into one GROUP BY column.
    """
    limit = dialect.max_alias_bytes
    if limit is None:
        return
    for alias in aliases:
        if len(alias.encode("utf-8")) > limit:
            raise UnsafeIdentifier(
                f"Alias {alias[:32]!r}... exceeds {limit} bytes on {dialect.name}"
            )


def assemble_statement(builder: InsightsSqlBuilder) -> Statement:
    """Compile every clause and put the statement together.

    any compile error (bad unit, operator, identifier) surfaces here, before
    there's anything to send to storage.
    """
    date_expr = builder.build_date_clause()
    selects = [f"{date_expr} AS {quote(DATE_COLUMN)}"]
    selects.extend(builder.build_select_clause())
    projections = builder.build_group_select_clause()
    check_alias_lengths(
        [m.name for m in builder.query.metrics] + [p.alias for p in projections], builder.dialect
    )
    selects.extend(p.select_sql() for p in projections)

    from_clause = builder.build_from_clause()
    where = builder.build_where_clause()

    group_by = [quote(DATE_COLUMN)] + [quote_alias(p.alias) for p in projections]

    select_list = ",\n  ".join(selects)
    parts = [f"SELECT\n  {select_list}"]
    parts.append(f"FROM {from_clause}")
    if where:
        parts.append(f"WHERE {' AND '.join(f'({c})' for c in where)}")
    parts.append(f"GROUP BY {', '.join(group_by)}")
    parts.append(f"ORDER BY {quote(DATE_COLUMN)}")

    statement = Statement(
        sql="\n".join(parts),
        params=dict(builder.binder.params),
        dialect=builder.dialect.name,
    )
    logger.debug("Compiled %s statement with %d params", statement.dialect, len(statement.params))
    return statement


def run_statement(
    builder: InsightsSqlBuilder, statement: Statement
) -> list[dict[str, Any]]:
    """Execute through the builder's executor, translating quotes for the dialect."""
    executor = builder.executor
    sql = builder.dialect.translate(statement.sql)
    try:
        result = executor.execute(sql, statement.params)
    except executor.driver_errors as e:
        logger.error(
            "Statement failed  insight=%s  backend=%s  error=%s",
            builder.query.insight_id,
            executor.backend,
            e,
        )
        raise StatementExecutionFailed(builder.query.insight_id, executor.backend, e) from e

    logger.info(
        "Insight %s returned %d rows in %sms",
        builder.query.insight_id,
        result.row_count,
        result.execution_time_ms,
    )
    return result.data


def page_events(
    builder: InsightsSqlBuilder,
    *,
    select: str,
    cursor_column: str,
    cursor_key: str,
    cursor: str | None,
    limit: int,
    order: str,
) -> EventsPage:
    """Keyset-paginate raw rows using the builder's FROM/WHERE clauses."""
    from_clause = builder.build_from_clause()
    where = builder.build_where_clause()
    return paginate(
        lambda stmt: run_statement(builder, stmt),
        select=select,
        from_clause=from_clause,
        filters=where,
        binder=builder.binder,
        dialect=builder.dialect,
        cursor_column=cursor_column,
        cursor_key=cursor_key,
        cursor=cursor,
        limit=limit,
        order=order,
    )


def format_sql(statement: Statement, dialect: Dialect) -> str:
    """Pretty-print a statement for humans.

    sqlglot does the formatting. if it can't parse something we generated we
    still return the raw text - this is for display only.
    """
    sql = dialect.translate(statement.sql)
    read = _SQLGLOT_DIALECTS.get(dialect.name, dialect.name)
    try:
        parsed = sqlglot.parse_one(sql, read=read)
        return parsed.sql(dialect=read, pretty=True)
    except SqlglotError:
        return sql
