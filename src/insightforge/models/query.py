"""Pydantic models for insight queries and results.

the query model captures what the caller wants to see, not how to compute it.
the builders handle translation to sql for each backend. instances are frozen -
one model per request, thrown away once the response is out.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal, Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from insightforge.errors import InvalidTimeUnit

ALL_EVENT = "$all_event"  # sentinel metric name: count everything


class InsightType(str, Enum):
    INTERNAL = "internal"
    WAREHOUSE_LONG = "warehouse-long"
    WAREHOUSE_WIDE = "warehouse-wide"


class TimeUnit(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


class ValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    OTHER = "other"


class _Frozen(BaseModel):
    # camelCase on the wire, snake_case in python
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TimeRange(_Frozen):
    """Query window and bucket granularity.

    naive datetimes are treated as UTC. minute granularity over a multi-day
    window is the caller's problem to avoid - we don't reject it here.
    """

    start_at: datetime
    end_at: datetime
    unit: TimeUnit = TimeUnit.DAY
    timezone: str = "UTC"

    @field_validator("start_at", "end_at")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("unit", mode="before")
    @classmethod
    def validate_unit(cls, value: Any) -> TimeUnit:
        # same error the date compiler raises; pydantic wraps it in ValidationError
        try:
            return TimeUnit(value)
        except ValueError:
            raise InvalidTimeUnit(str(value)) from None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def validate_order(self) -> Self:
        if self.start_at > self.end_at:
            raise ValueError("startAt must not be after endAt")
        return self

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class Metric(_Frozen):
    name: str
    math: Literal["events", "sessions"] = "events"

    @property
    def is_all_event(self) -> bool:
        return self.name == ALL_EVENT


class Filter(_Frozen):
    """A top-level filter. all filters in a query are ANDed together."""

    name: str
    type: ValueType = ValueType.STRING
    operator: str
    value: Any = None


class CustomGroup(_Frozen):
    filter_operator: str
    filter_value: Any = None


class Group(_Frozen):
    """A group-by dimension.

    without custom_groups the raw column value becomes the dimension. with
    custom_groups every entry becomes its own 0/1 column in the select list.
    """

    value: str
    type: ValueType = ValueType.STRING
    custom_groups: list[CustomGroup] | None = None


class InsightQuery(_Frozen):
    """An aggregated, time-bucketed insight request."""

    insight_id: str
    insight_type: InsightType
    metrics: list[Metric] = Field(min_length=1)
    filters: list[Filter] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)
    time: TimeRange

    @model_validator(mode="after")
    def validate_metric_names(self) -> Self:
        # metric names double as result column aliases
        names = [m.name for m in self.metrics]
        if len(names) != len(set(names)):
            raise ValueError("metric names must be unique within a query")
        return self


class EventsQuery(_Frozen):
    """A raw event listing request - keyset paginated, no aggregation."""

    insight_id: str
    insight_type: InsightType
    time: TimeRange
    metrics: list[Metric] = Field(default_factory=list)  # optional event-name restriction
    filters: list[Filter] = Field(default_factory=list)
    cursor: str | None = None
    limit: int = Field(default=50, ge=1, le=100)
    order: Literal["asc", "desc"] = "desc"


class QueryResult(BaseModel):
    """Raw result of one executed statement.

    keeping the sql alongside the rows is handy when debugging a backend -
    it's the translated text that was actually sent.
    """

    sql: str
    columns: list[str]
    data: list[dict[str, Any]]
    row_count: int
    execution_time_ms: float


class SeriesPoint(BaseModel):
    date: str
    value: int | float


class Series(BaseModel):
    """One line on the chart - a metric, optionally crossed with group values."""

    name: str
    data: list[SeriesPoint]


class EventsPage(BaseModel):
    items: list[dict[str, Any]]
    next_cursor: str | None = None
