"""Builder for warehouse applications stored in wide format.

one row per event, attributes already pivoted into columns - no joins.
metric names are column names here: "events" counts rows where the column is
set, "sessions" counts distinct values of the declared distinct field over
those rows. every referenced column has to be declared in the app's fields.
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
from insightforge.compiler.identifiers import metric_alias, quote
from insightforge.errors import ApplicationConfigInvalid, UnknownField
from insightforge.models.application import DateEncoding, WideTableApplication, WideTableField
from insightforge.models.query import EventsPage, InsightQuery, Metric


class WarehouseWideTableInsightsSqlBuilder:
    def __init__(
        self,
        query: InsightQuery,
        application: WideTableApplication,
        executor: Executor,
        dialect: Dialect = DUCKDB,
    ) -> None:
        self.query = query
        self.application = application
        self.executor = executor
        self.dialect = dialect
        self.binder = ParamBinder()

    def _declared(self, name: str) -> WideTableField:
        field = self.application.get_field(name)
        if field is None:
            raise UnknownField(name, self.application.name)
        return field

    def _column(self, name: str) -> str:
        self._declared(name)
        return quote(name)

    def _date_encoding(self, name: str) -> DateEncoding:
        return self._declared(name).date_type

    def _is_set(self, metric: Metric) -> str:
        return f"{self._column(metric.name)} IS NOT NULL"

    def _optimized(self) -> bool:
        time = self.query.time
        return dates.is_date_optimized(
            time.start_at, time.end_at, time.unit, self.application.date_based_created_at_field
        )

    def _time_range(self) -> str:
        app = self.application
        time = self.query.time
        optimized = quote(app.date_based_created_at_field) if self._optimized() else None
        return dates.range_predicate(
            quote(app.created_at_field),
            time.start_at,
            time.end_at,
            app.created_at_field_type,
            self.binder,
            optimized_column=optimized,
        )

    def build_from_clause(self) -> str:
        return quote(self.application.table_name)

    def build_select_clause(self) -> list[str]:
        distinct = quote(self.application.distinct_field)
        selects = []
        for metric in self.query.metrics:
            alias = metric_alias(metric.name)
            if metric.math == "events":
                if metric.is_all_event:
                    selects.append(f"count(1) AS {alias}")
                else:
                    selects.append(f"count({self._column(metric.name)}) AS {alias}")
            elif metric.is_all_event:
                selects.append(f"count(DISTINCT {distinct}) AS {alias}")
            else:
                selects.append(
                    f"count(DISTINCT CASE WHEN {self._is_set(metric)} THEN {distinct} END) AS {alias}"
                )
        return selects

    def build_group_select_clause(self) -> list[GroupProjection]:
        return group_projections(
            self.query.groups,
            raw_expr=lambda g: self._column(g.value),
            flag_expr=lambda g, cg: compile_bucket_flag(
                g.type,
                cg.filter_operator,
                cg.filter_value,
                self._column(g.value),
                self.binder,
                self._date_encoding(g.value),
            ),
        )

    def build_where_clause(self) -> list[str]:
        conditions = [
            self._time_range(),
            metric_disjunction(self.query.metrics, self._is_set),
        ]
        for f in self.query.filters:
            conditions.append(
                compile_filter(
                    f.type,
                    f.operator,
                    f.value,
                    self._column(f.name),
                    self.binder,
                    self._date_encoding(f.name),
                )
            )
        return conditions

    def build_date_clause(self) -> str:
        app = self.application
        time = self.query.time
        if self._optimized():
            return dates.bucket_date_column(
                quote(app.date_based_created_at_field), time.unit, self.dialect
            )
        return dates.bucket(
            quote(app.created_at_field),
            time.unit,
            time.timezone,
            app.created_at_field_type,
            self.binder,
            self.dialect,
        )

    def build(self) -> Statement:
        return assemble_statement(self)

    def execute(self, statement: Statement) -> list[dict[str, Any]]:
        return run_statement(self, statement)

    def query_events(self, cursor: str | None, limit: int, order: str) -> EventsPage:
        id_field = self.application.id_field
        if not id_field:
            raise ApplicationConfigInvalid(
                f"Application '{self.application.name}' needs 'idField' to list events"
            )
        return page_events(
            self,
            select="*",
            cursor_column=quote(id_field),
            cursor_key=id_field,
            cursor=cursor,
            limit=limit,
            order=order,
        )

    def list_event_names(self) -> list[dict[str, Any]]:
        # every declared field is an "event" in wide format; no counts to report
        return [{"name": field.name, "count": None} for field in self.application.fields]

    def list_filter_params(self) -> list[dict[str, Any]]:
        return [{"name": field.name, "type": field.type.value} for field in self.application.fields]
