"""Main InsightsEngine interface for insightforge.

one engine per process. it owns the schema registry (and through it the
warehouse pools) plus the internal store executor. everything per request -
builders, binders, statements - is created fresh and thrown away.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from insightforge.builders.base import InsightsSqlBuilder, format_sql
from insightforge.builders.internal import InternalInsightsSqlBuilder
from insightforge.builders.long_table import WarehouseLongTableInsightsSqlBuilder
from insightforge.builders.wide_table import WarehouseWideTableInsightsSqlBuilder
from insightforge.compiler.dialects import DUCKDB, get_dialect
from insightforge.compiler.fragments import Statement
from insightforge.config import Settings, get_settings
from insightforge.executor.duckdb_executor import DuckDBExecutor
from insightforge.executor.warehouse import WarehouseExecutor
from insightforge.log import get_logger
from insightforge.models.application import LongTableApplication, WideTableApplication
from insightforge.models.query import (
    ALL_EVENT,
    EventsPage,
    EventsQuery,
    InsightQuery,
    InsightType,
    Metric,
    Series,
    TimeRange,
)
from insightforge.registry import SchemaRegistry
from insightforge.reshape import reshape

logger = get_logger(__name__)

# listing endpoints without an explicit window look back this far
DEFAULT_LOOKBACK = timedelta(days=30)


class InsightsEngine:
    """Entry point: compile, execute and reshape insight queries."""

    def __init__(
        self,
        settings: Settings | None = None,
        registry: SchemaRegistry | None = None,
        internal_executor: DuckDBExecutor | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Explicit settings, or None to read the environment.
            registry: Prebuilt registry (tests share one across engines).
            internal_executor: Executor for the internal store, or None to
                open settings.internal_database_path (in-memory when unset).
        """
        self.settings = settings or get_settings()
        self.registry = registry or SchemaRegistry(self.settings)
        self.internal_executor = internal_executor or DuckDBExecutor(
            self.settings.internal_database_path
        )

    def get_builder(self, query: InsightQuery) -> InsightsSqlBuilder:
        """Pick the builder for the query's insight type.

        resolution errors (unknown app, disabled warehouse) are raised here,
        before any sql is generated.
        """
        resolution = self.registry.resolve(query.insight_id, query.insight_type)
        application = resolution.application

        if query.insight_type == InsightType.INTERNAL:
            return InternalInsightsSqlBuilder(query, application, self.internal_executor, DUCKDB)

        executor = WarehouseExecutor(resolution.connection)
        dialect = get_dialect(executor.dialect_name)
        if isinstance(application, LongTableApplication):
            return WarehouseLongTableInsightsSqlBuilder(query, application, executor, dialect)
        if isinstance(application, WideTableApplication):
            return WarehouseWideTableInsightsSqlBuilder(query, application, executor, dialect)
        raise TypeError(f"No builder for application type {type(application).__name__}")

    def compile(self, query: InsightQuery) -> Statement:
        """Compile without executing."""
        return self.get_builder(query).build()

    def query(self, query: InsightQuery | dict[str, Any]) -> list[Series]:
        """Run an insight query and return dense, named series.

        two-step like everywhere else: build, then execute - then the
        sparse rows get reshaped into one array per series.
        """
        if isinstance(query, dict):
            query = InsightQuery.model_validate(query)
        builder = self.get_builder(query)
        statement = builder.build()
        rows = builder.execute(statement)
        return reshape(query, rows)

    def show_sql(self, query: InsightQuery | dict[str, Any]) -> str:
        """Compiled statement, pretty-printed for the backend's dialect."""
        if isinstance(query, dict):
            query = InsightQuery.model_validate(query)
        builder = self.get_builder(query)
        return format_sql(builder.build(), builder.dialect)

    def query_events(self, query: EventsQuery | dict[str, Any]) -> EventsPage:
        """One page of raw events, newest first unless order says otherwise."""
        if isinstance(query, dict):
            query = EventsQuery.model_validate(query)
        insight = InsightQuery(
            insight_id=query.insight_id,
            insight_type=query.insight_type,
            metrics=query.metrics or [Metric(name=ALL_EVENT)],
            filters=query.filters,
            time=query.time,
        )
        limit = min(query.limit, self.settings.events_page_limit_max)
        return self.get_builder(insight).query_events(query.cursor, limit, query.order)

    def _listing_builder(
        self, insight_id: str, insight_type: InsightType | str, time: TimeRange | None
    ) -> InsightsSqlBuilder:
        if time is None:
            now = datetime.now(UTC)
            time = TimeRange(start_at=now - DEFAULT_LOOKBACK, end_at=now)
        query = InsightQuery(
            insight_id=insight_id,
            insight_type=insight_type,
            metrics=[Metric(name=ALL_EVENT)],
            time=time,
        )
        return self.get_builder(query)

    def list_event_names(
        self,
        insight_id: str,
        insight_type: InsightType | str,
        time: TimeRange | None = None,
    ) -> list[dict[str, Any]]:
        """Event names with counts, most frequent first."""
        return self._listing_builder(insight_id, insight_type, time).list_event_names()

    def list_filter_params(
        self,
        insight_id: str,
        insight_type: InsightType | str,
        time: TimeRange | None = None,
    ) -> list[dict[str, Any]]:
        """Names usable in filters and groups, with their types when known."""
        return self._listing_builder(insight_id, insight_type, time).list_filter_params()

    def close(self) -> None:
        """Close the internal store and dispose every warehouse pool."""
        self.internal_executor.close()
        self.registry.pools.dispose_all()
        logger.info("Insights engine closed")

    def __enter__(self) -> "InsightsEngine":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
