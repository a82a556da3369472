"""Builder for the product's own event store.

single fixed table, every insight is a website id. columns come from the
product schema, so filters and groups can only reference the known set.
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
from insightforge.compiler.identifiers import metric_alias, qualified, quote
from insightforge.errors import UnknownField
from insightforge.models.application import InternalApplication
from insightforge.models.query import EventsPage, InsightQuery, Metric


class InternalInsightsSqlBuilder:
    def __init__(
        self,
        query: InsightQuery,
        application: InternalApplication,
        executor: Executor,
        dialect: Dialect = DUCKDB,
    ) -> None:
        self.query = query
        self.application = application
        self.executor = executor
        self.dialect = dialect
        self.binder = ParamBinder()

    def _column(self, name: str) -> str:
        return qualified(self.application.table_name, name)

    def _field(self, name: str) -> str:
        if name not in self.application.fields:
            raise UnknownField(name, self.application.name)
        return self._column(name)

    def _event_name_matches(self, metric: Metric) -> str:
        column = self._column(self.application.event_name_field)
        return f"{column} = {self.binder.bind(metric.name)}"

    def build_from_clause(self) -> str:
        return quote(self.application.table_name)

    def build_select_clause(self) -> list[str]:
        session = self._column(self.application.distinct_field)
        selects = []
        for metric in self.query.metrics:
            alias = metric_alias(metric.name)
            if metric.math == "events":
                if metric.is_all_event:
                    selects.append(f"count(1) AS {alias}")
                else:
                    match = self._event_name_matches(metric)
                    selects.append(f"sum(CASE WHEN {match} THEN 1 ELSE 0 END) AS {alias}")
            elif metric.is_all_event:
                selects.append(f"count(DISTINCT {session}) AS {alias}")
            else:
                match = self._event_name_matches(metric)
                selects.append(f"count(DISTINCT CASE WHEN {match} THEN {session} END) AS {alias}")
        return selects

    def build_group_select_clause(self) -> list[GroupProjection]:
        return group_projections(
            self.query.groups,
            raw_expr=lambda g: self._field(g.value),
            flag_expr=lambda g, cg: compile_bucket_flag(
                g.type, cg.filter_operator, cg.filter_value, self._field(g.value), self.binder
            ),
        )

    def build_where_clause(self) -> list[str]:
        app = self.application
        time = self.query.time
        conditions = [
            f"{self._column(app.insight_id_field)} = {self.binder.bind(self.query.insight_id)}",
            dates.range_predicate(
                self._column(app.created_at_field),
                time.start_at,
                time.end_at,
                app.created_at_field_type,
                self.binder,
            ),
            metric_disjunction(self.query.metrics, self._event_name_matches),
        ]
        for f in self.query.filters:
            conditions.append(
                compile_filter(f.type, f.operator, f.value, self._field(f.name), self.binder)
            )
        return conditions

    def build_date_clause(self) -> str:
        app = self.application
        time = self.query.time
        return dates.bucket(
            self._column(app.created_at_field),
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
        app = self.application
        return page_events(
            self,
            select=f"{quote(app.table_name)}.*",
            cursor_column=self._column(app.id_field),
            cursor_key=app.id_field,
            cursor=cursor,
            limit=limit,
            order=order,
        )

    def list_event_names(self) -> list[dict[str, Any]]:
        app = self.application
        time = self.query.time
        event_name = self._column(app.event_name_field)
        website = self._column(app.insight_id_field)
        in_range = dates.range_predicate(
            self._column(app.created_at_field),
            time.start_at,
            time.end_at,
            app.created_at_field_type,
            self.binder,
        )
        sql = "\n".join(
            [
                f'SELECT {event_name} AS "name", count(1) AS "count"',
                f"FROM {self.build_from_clause()}",
                f"WHERE {website} = {self.binder.bind(self.query.insight_id)} AND {in_range}",
                f"GROUP BY {event_name}",
                'ORDER BY "count" DESC, "name"',
            ]
        )
        statement = Statement(sql=sql, params=dict(self.binder.params), dialect=self.dialect.name)
        return self.execute(statement)

    def list_filter_params(self) -> list[dict[str, Any]]:
        return [
            {"name": name, "type": value_type.value}
            for name, value_type in self.application.fields.items()
        ]
