"""Builder for warehouse applications stored in long format.

events live in one table, their parameters in another - one row per
(event, parameter name, value). filters and groups reference parameters, so
each distinct parameter name we need gets its own LEFT JOIN:

    FROM "events"
    LEFT JOIN "event_parameters" AS "param_0"
      ON "param_0"."event_id" = "events"."id"
      AND "param_0"."param_key" = :p3
      AND <parameter table time range>

keeps one output row per event as long as a name appears once per event,
which is how these tables are normally written.
"""

from typing import Any

from insightforge.builders.base import (
    Executor,
    GroupProjection,
    assemble_statement,
    group_projections,
    metric_disjunction,
    page_events,
    run_statement,
)
from insightforge.compiler import dates
from insightforge.compiler.dialects import DUCKDB, Dialect
from insightforge.compiler.filters import compile_bucket_flag, compile_filter
from insightforge.compiler.fragments import ParamBinder, Statement
from insightforge.compiler.identifiers import SafeIdentifier, metric_alias, qualified, quote
from insightforge.errors import ApplicationConfigInvalid
from insightforge.models.application import LongTableApplication
from insightforge.models.query import EventsPage, InsightQuery, Metric, ValueType

PARAM_ALIAS_PREFIX = "param_"


class WarehouseLongTableInsightsSqlBuilder:
    def __init__(
        self,
        query: InsightQuery,
        application: LongTableApplication,
        executor: Executor,
        dialect: Dialect = DUCKDB,
    ) -> None:
        self.query = query
        self.application = application
        self.executor = executor
        self.dialect = dialect
        self.binder = ParamBinder()

        # parameter name -> join alias, in order of first reference
        self._param_aliases: dict[str, str] = {}
        for name in [f.name for f in query.filters] + [g.value for g in query.groups]:
            if name not in self._param_aliases:
                SafeIdentifier(name)
                self._param_aliases[name] = f"{PARAM_ALIAS_PREFIX}{len(self._param_aliases)}"

    @property
    def event_table(self):
        return self.application.event_table

    @property
    def params_table(self):
        return self.application.event_parameters_table

    def _event_column(self, name: str) -> str:
        return qualified(self.event_table.name, name)

    def _event_optimized(self) -> bool:
        time = self.query.time
        return dates.is_date_optimized(
            time.start_at, time.end_at, time.unit, self.event_table.date_based_created_at_field
        )

    def _params_optimized(self) -> bool:
        time = self.query.time
        return dates.is_date_optimized(
            time.start_at, time.end_at, time.unit, self.params_table.date_based_created_at_field
        )

    def _require(self, value: str | None, key: str) -> str:
        if not value:
            raise ApplicationConfigInvalid(
                f"Application '{self.application.name}' needs '{key}' for this query"
            )
        return value

    def get_value_field(self, param_name: str, value_type: ValueType) -> str:
        """Value column for a parameter, picking the typed column when configured."""
        table = self.params_table
        column = table.params_value_field
        if value_type == ValueType.NUMBER and table.params_value_number_field:
            column = table.params_value_number_field
        elif value_type == ValueType.STRING and table.params_value_string_field:
            column = table.params_value_string_field
        elif value_type == ValueType.DATE and table.params_value_date_field:
            column = table.params_value_date_field
        return qualified(self._param_aliases[param_name], column)

    def _date_encoding(self):
        return self.params_table.params_value_date_field_type

    def _event_name_matches(self, metric: Metric) -> str:
        column = self._event_column(self.event_table.event_name_field)
        return f"{column} = {self.binder.bind(metric.name)}"

    def _time_range(self) -> str:
        time = self.query.time
        table = self.event_table
        optimized = None
        if self._event_optimized():
            optimized = self._event_column(table.date_based_created_at_field)
        return dates.range_predicate(
            self._event_column(table.created_at_field),
            time.start_at,
            time.end_at,
            table.created_at_field_type,
            self.binder,
            optimized_column=optimized,
        )

    def build_from_clause(self) -> str:
        parts = [quote(self.event_table.name)]
        if not self._param_aliases:
            return parts[0]

        event_id = self._require(self.event_table.id_field, "eventTable.idField")
        param_event_id = self._require(
            self.params_table.event_id_field, "eventParametersTable.eventIdField"
        )
        time = self.query.time
        table = self.params_table
        for name, alias in self._param_aliases.items():
            optimized = None
            if self._params_optimized():
                optimized = qualified(alias, table.date_based_created_at_field)
            in_range = dates.range_predicate(
                qualified(alias, table.created_at_field),
                time.start_at,
                time.end_at,
                table.created_at_field_type,
                self.binder,
                optimized_column=optimized,
            )
            parts.append(
                f"LEFT JOIN {quote(table.name)} AS {quote(alias)}"
                f" ON {qualified(alias, param_event_id)} = {self._event_column(event_id)}"
                f" AND {qualified(alias, table.params_name_field)} = {self.binder.bind(name)}"
                f" AND {in_range}"
            )
        return "\n".join(parts)

    def build_select_clause(self) -> list[str]:
        selects = []
        for metric in self.query.metrics:
            alias = metric_alias(metric.name)
            if metric.math == "events":
                if metric.is_all_event:
                    selects.append(f"count(1) AS {alias}")
                else:
                    match = self._event_name_matches(metric)
                    selects.append(f"sum(CASE WHEN {match} THEN 1 ELSE 0 END) AS {alias}")
                continue

            session = self._event_column(
                self._require(self.event_table.session_field, "eventTable.sessionField")
            )
            if metric.is_all_event:
                selects.append(f"count(DISTINCT {session}) AS {alias}")
            else:
                match = self._event_name_matches(metric)
                selects.append(f"count(DISTINCT CASE WHEN {match} THEN {session} END) AS {alias}")
        return selects

    def build_group_select_clause(self) -> list[GroupProjection]:
        return group_projections(
            self.query.groups,
            raw_expr=lambda g: self.get_value_field(g.value, g.type),
            flag_expr=lambda g, cg: compile_bucket_flag(
                g.type,
                cg.filter_operator,
                cg.filter_value,
                self.get_value_field(g.value, g.type),
                self.binder,
                self._date_encoding(),
            ),
        )

    def build_where_clause(self) -> list[str]:
        conditions = [
            self._time_range(),
            metric_disjunction(self.query.metrics, self._event_name_matches),
        ]
        for f in self.query.filters:
            conditions.append(
                compile_filter(
                    f.type,
                    f.operator,
                    f.value,
                    self.get_value_field(f.name, f.type),
                    self.binder,
                    self._date_encoding(),
                )
            )
        return conditions

    def build_date_clause(self) -> str:
        time = self.query.time
        table = self.event_table
        if self._event_optimized():
            return dates.bucket_date_column(
                self._event_column(table.date_based_created_at_field), time.unit, self.dialect
            )
        return dates.bucket(
            self._event_column(table.created_at_field),
            time.unit,
            time.timezone,
            table.created_at_field_type,
            self.binder,
            self.dialect,
        )

    def build(self) -> Statement:
        return assemble_statement(self)

    def execute(self, statement: Statement) -> list[dict[str, Any]]:
        return run_statement(self, statement)

    def query_events(self, cursor: str | None, limit: int, order: str) -> EventsPage:
        id_field = self._require(self.event_table.id_field, "eventTable.idField")
        return page_events(
            self,
            select=f"{quote(self.event_table.name)}.*",
            cursor_column=self._event_column(id_field),
            cursor_key=id_field,
            cursor=cursor,
            limit=limit,
            order=order,
        )

    def list_event_names(self) -> list[dict[str, Any]]:
        event_name = self._event_column(self.event_table.event_name_field)
        sql = "\n".join(
            [
                f'SELECT {event_name} AS "name", count(1) AS "count"',
                f"FROM {quote(self.event_table.name)}",
                f"WHERE {self._time_range()}",
                f"GROUP BY {event_name}",
                'ORDER BY "count" DESC, "name"',
            ]
        )
        statement = Statement(sql=sql, params=dict(self.binder.params), dialect=self.dialect.name)
        return self.execute(statement)

    def list_filter_params(self) -> list[dict[str, Any]]:
        """Distinct parameter names seen in the window, most common first."""
        table = self.params_table
        time = self.query.time
        name_column = qualified(table.name, table.params_name_field)
        optimized = None
        if self._params_optimized():
            optimized = qualified(table.name, table.date_based_created_at_field)
        in_range = dates.range_predicate(
            qualified(table.name, table.created_at_field),
            time.start_at,
            time.end_at,
            table.created_at_field_type,
            self.binder,
            optimized_column=optimized,
        )
        sql = "\n".join(
            [
                f'SELECT {name_column} AS "name", count(1) AS "count"',
                f"FROM {quote(table.name)}",
                f"WHERE {in_range}",
                f"GROUP BY {name_column}",
                'ORDER BY "count" DESC, "name"',
            ]
        )
        statement = Statement(sql=sql, params=dict(self.binder.params), dialect=self.dialect.name)
        return [{"name": row["name"], "type": None} for row in self.execute(statement)]
