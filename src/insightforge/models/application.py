"""Pydantic models for schema mappings.

an application maps an insight id to physical tables and columns. warehouse
applications come from configuration (camelCase keys, same shape the product
stores in its env json); the internal one is fixed by the product schema.
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from insightforge.models.query import ValueType


class DateEncoding(str, Enum):
    """How a time column is physically stored."""

    TIMESTAMP = "timestamp"  # 1739203200
    TIMESTAMP_MS = "timestampMs"  # 1739203200000
    DATE = "date"  # 2025-08-01
    DATETIME = "datetime"  # 2025-08-01 00:00:00


class _Config(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class EventTable(_Config):
    name: str
    event_name_field: str
    created_at_field: str
    created_at_field_type: DateEncoding = DateEncoding.TIMESTAMP_MS
    # pre-truncated date column, used when the window spans at least a day
    date_based_created_at_field: str | None = None
    # needed for parameter joins, event listing and sessions respectively
    id_field: str | None = None
    session_field: str | None = None


class EventParametersTable(_Config):
    name: str
    params_name_field: str
    params_value_field: str
    params_value_number_field: str | None = None
    params_value_string_field: str | None = None
    params_value_date_field: str | None = None
    params_value_date_field_type: DateEncoding = DateEncoding.DATETIME
    created_at_field: str
    created_at_field_type: DateEncoding = DateEncoding.TIMESTAMP_MS
    date_based_created_at_field: str | None = None
    event_id_field: str | None = None


class LongTableApplication(_Config):
    """Long format: one row per (event, parameter name, parameter value)."""

    type: Literal["longTable"] = "longTable"
    name: str
    database_url: str | None = None
    event_table: EventTable
    event_parameters_table: EventParametersTable


class WideTableField(_Config):
    name: str
    type: ValueType = ValueType.STRING
    date_type: DateEncoding = DateEncoding.DATETIME  # only read for date fields


class WideTableApplication(_Config):
    """Wide format: one row per event, attributes already pivoted into columns."""

    type: Literal["wideTable"]
    name: str
    database_url: str | None = None
    table_name: str
    created_at_field: str
    created_at_field_type: DateEncoding = DateEncoding.TIMESTAMP_MS
    date_based_created_at_field: str | None = None
    distinct_field: str
    id_field: str | None = None
    fields: list[WideTableField] = Field(default_factory=list)

    def get_field(self, name: str) -> WideTableField | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None


WarehouseApplication = Annotated[
    LongTableApplication | WideTableApplication,
    Field(discriminator="type"),
]

# the registry fills in "longTable" when an entry has no "type", like older configs
applications_adapter = TypeAdapter(list[WarehouseApplication])


class InternalApplication(BaseModel):
    """Fixed mapping for the product's own event table."""

    model_config = ConfigDict(frozen=True)

    name: str = "website"
    table_name: str = "website_event"
    insight_id_field: str = "website_id"
    id_field: str = "id"
    event_name_field: str = "event_name"
    distinct_field: str = "session_id"
    created_at_field: str = "created_at"
    created_at_field_type: DateEncoding = DateEncoding.TIMESTAMP_MS
    # filterable / groupable columns and their value types
    fields: dict[str, ValueType] = Field(
        default_factory=lambda: {
            "event_name": ValueType.STRING,
            "session_id": ValueType.STRING,
            "url_path": ValueType.STRING,
            "referrer_domain": ValueType.STRING,
            "browser": ValueType.STRING,
            "os": ValueType.STRING,
            "country": ValueType.STRING,
        }
    )


INTERNAL_APPLICATION = InternalApplication()
