"""Pydantic models for insightforge."""

from insightforge.models.application import (
    INTERNAL_APPLICATION,
    DateEncoding,
    EventParametersTable,
    EventTable,
    InternalApplication,
    LongTableApplication,
    WarehouseApplication,
    WideTableApplication,
    WideTableField,
)
from insightforge.models.query import (
    ALL_EVENT,
    CustomGroup,
    EventsPage,
    EventsQuery,
    Filter,
    Group,
    InsightQuery,
    InsightType,
    Metric,
    QueryResult,
    Series,
    SeriesPoint,
    TimeRange,
    TimeUnit,
    ValueType,
)

__all__ = [
    "ALL_EVENT",
    "CustomGroup",
    "DateEncoding",
    "EventParametersTable",
    "EventTable",
    "EventsPage",
    "EventsQuery",
    "Filter",
    "Group",
    "INTERNAL_APPLICATION",
    "InsightQuery",
    "InsightType",
    "InternalApplication",
    "LongTableApplication",
    "Metric",
    "QueryResult",
    "Series",
    "SeriesPoint",
    "TimeRange",
    "TimeUnit",
    "ValueType",
    "WarehouseApplication",
    "WideTableApplication",
    "WideTableField",
]
