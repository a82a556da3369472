"""Pytest fixtures for insightforge tests."""

import json
from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from insightforge.config import Settings
from insightforge.engine import InsightsEngine
from insightforge.executor.duckdb_executor import DuckDBExecutor
from insightforge.registry import SchemaRegistry


def ms(text: str) -> int:
    """Epoch milliseconds for an ISO timestamp (UTC)."""
    value = datetime.fromisoformat(text).replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)



def load_table(
    executor: DuckDBExecutor, table_name: str, columns: list[str], rows: list[tuple]
) -> None:
    """Create (or replace) a table from "name TYPE" column specs and rows."""
    executor.conn.execute(f"CREATE OR REPLACE TABLE {table_name} ({', '.join(columns)})")
    placeholders = ", ".join(["?"] * len(columns))
    executor.conn.executemany(f"INSERT INTO {table_name} VALUES ({placeholders})", rows)


@pytest.fixture
def website_events() -> list[tuple]:
    """Internal store rows: 5 in the 2025-08-01 window for site-1, 2 just outside."""
    return [
        (1, "site-1", "s1", "pageview", "/home", "google.com", "Chrome", "macOS", "US", ms("2025-08-01T01:00:00")),
        (2, "site-1", "s1", "signup", "/signup", "google.com", "Chrome", "macOS", "US", ms("2025-08-01T02:00:00")),
        (3, "site-1", "s2", "pageview", "/home", None, "Firefox", "Linux", "DE", ms("2025-08-01T10:00:00")),
        (4, "site-1", "s3", "pageview", "/pricing", "bing.com", "Safari", "iOS", "US", ms("2025-08-01T23:30:00")),
        (5, "site-1", "s3", "signup", "/signup", "bing.com", "Safari", "iOS", None, ms("2025-08-01T23:59:00")),
        # outside [2025-08-01, 2025-08-02)
        (6, "site-1", "s4", "pageview", "/home", "google.com", "Chrome", "Windows", "FR", ms("2025-07-31T23:59:59.999000")),
        (7, "site-1", "s4", "pageview", "/home", "google.com", "Chrome", "Windows", "FR", ms("2025-08-02T00:00:00")),
        # other websites
        (8, "site-2", "s9", "pageview", "/home", "google.com", "Chrome", "macOS", "US", ms("2025-08-01T12:00:00")),
        (9, "site-3", "s8", "pageview", "/100%_off", None, "Chrome", "macOS", "US", ms("2025-08-01T12:00:00")),
        (10, "site-3", "s8", "pageview", "/100xoff", None, "Chrome", "macOS", "US", ms("2025-08-01T12:30:00")),
    ]


@pytest.fixture
def internal_executor(website_events: list[tuple]) -> Generator[DuckDBExecutor, None, None]:
    """In-memory internal store with sample website events."""
    executor = DuckDBExecutor()
    executor.insert_events(website_events)
    yield executor
    executor.close()


@pytest.fixture
def warehouse_path(tmp_path: Path) -> Path:
    """DuckDB file holding a long-format and a wide-format event warehouse.

    long format (events + event_params):
        1 page_view u1 08-01 country=US
        2 purchase  u1 08-01 country=US amount=20
        3 page_view u2 08-01 country=DE
        4 purchase  u2 08-02 country=DE amount=50
        5 page_view u3 08-02 country=US
        6 page_view u3 08-03 00:00 (outside a window ending 08-03)

    wide format (events_wide), the set column names the event:
        1 u1 08-01 page_view=/home        plan=free
        2 u1 08-01 purchase=20            plan=free trial_end=2025-08-10
        3 u2 08-01 page_view=/pricing     plan=pro
        4 u2 08-01 purchase=50            plan=pro  trial_end=2025-08-20
        5 u3 08-02 page_view=/home
        6 u3 08-02 purchase=100           plan=pro
        7 u4 08-03 page_view=/home (outside)
    """
    path = tmp_path / "warehouse.duckdb"
    executor = DuckDBExecutor(str(path))

    events = [
        (1, "page_view", "u1", ms("2025-08-01T01:00:00"), "2025-08-01"),
        (2, "purchase", "u1", ms("2025-08-01T02:00:00"), "2025-08-01"),
        (3, "page_view", "u2", ms("2025-08-01T03:00:00"), "2025-08-01"),
        (4, "purchase", "u2", ms("2025-08-02T04:00:00"), "2025-08-02"),
        (5, "page_view", "u3", ms("2025-08-02T05:00:00"), "2025-08-02"),
        (6, "page_view", "u3", ms("2025-08-03T00:00:00"), "2025-08-03"),
    ]
    load_table(
        executor,
        "events",
        ["id BIGINT", "name VARCHAR", "user_id VARCHAR", "created_at BIGINT", "created_date VARCHAR"],
        events,
    )

    params = [
        (1, "country", "US", None, events[0][3]),
        (2, "country", "US", None, events[1][3]),
        (2, "amount", "20", 20.0, events[1][3]),
        (3, "country", "DE", None, events[2][3]),
        (4, "country", "DE", None, events[3][3]),
        (4, "amount", "50", 50.0, events[3][3]),
        (5, "country", "US", None, events[4][3]),
        (6, "country", "US", None, events[5][3]),
    ]
    load_table(
        executor,
        "event_params",
        [
            "event_id BIGINT",
            "param_key VARCHAR",
            "param_value VARCHAR",
            "param_number DOUBLE",
            "created_at BIGINT",
        ],
        params,
    )

    wide = [
        (1, "u1", ms("2025-08-01T01:00:00"), "2025-08-01", "/home", None, "free", None),
        (2, "u1", ms("2025-08-01T02:00:00"), "2025-08-01", None, 20.0, "free", "2025-08-10"),
        (3, "u2", ms("2025-08-01T03:00:00"), "2025-08-01", "/pricing", None, "pro", None),
        (4, "u2", ms("2025-08-01T04:00:00"), "2025-08-01", None, 50.0, "pro", "2025-08-20"),
        (5, "u3", ms("2025-08-02T05:00:00"), "2025-08-02", "/home", None, None, None),
        (6, "u3", ms("2025-08-02T06:00:00"), "2025-08-02", None, 100.0, "pro", None),
        (7, "u4", ms("2025-08-03T00:30:00"), "2025-08-03", "/home", None, None, None),
    ]
    load_table(
        executor,
        "events_wide",
        [
            "id BIGINT",
            "distinct_id VARCHAR",
            "created_at BIGINT",
            "created_date VARCHAR",
            "page_view VARCHAR",
            "purchase DOUBLE",
            "plan VARCHAR",
            "trial_end VARCHAR",
        ],
        wide,
    )

    # the warehouse engine opens the file next; duckdb wants it released first
    executor.close()
    return path


@pytest.fixture
def warehouse_url(warehouse_path: Path) -> str:
    return f"duckdb:///{warehouse_path}"


def long_table_app(name: str, url: str | None, **event_table: Any) -> dict[str, Any]:
    return {
        "name": name,
        "databaseUrl": url,
        "eventTable": {
            "name": "events",
            "eventNameField": "name",
            "createdAtField": "created_at",
            "createdAtFieldType": "timestampMs",
            "idField": "id",
            "sessionField": "user_id",
            **event_table,
        },
        "eventParametersTable": {
            "name": "event_params",
            "paramsNameField": "param_key",
            "paramsValueField": "param_value",
            "paramsValueNumberField": "param_number",
            "createdAtField": "created_at",
            "createdAtFieldType": "timestampMs",
            "eventIdField": "event_id",
        },
    }


def wide_table_app(name: str, url: str | None, **overrides: Any) -> dict[str, Any]:
    return {
        "type": "wideTable",
        "name": name,
        "databaseUrl": url,
        "tableName": "events_wide",
        "createdAtField": "created_at",
        "createdAtFieldType": "timestampMs",
        "distinctField": "distinct_id",
        "idField": "id",
        "fields": [
            {"name": "page_view", "type": "string"},
            {"name": "purchase", "type": "number"},
            {"name": "plan", "type": "string"},
            {"name": "trial_end", "type": "date", "dateType": "date"},
        ],
        **overrides,
    }


@pytest.fixture
def warehouse_apps(warehouse_url: str) -> list[dict[str, Any]]:
    """Application config as it would sit in INSIGHTS_WAREHOUSE_APPLICATIONS_JSON."""
    return [
        long_table_app("blog", warehouse_url, dateBasedCreatedAtField="created_date"),
        long_table_app("blog_precise", warehouse_url),
        wide_table_app("shop", warehouse_url, dateBasedCreatedAtField="created_date"),
        wide_table_app("shop_precise", warehouse_url),
        wide_table_app("broken", warehouse_url, tableName="missing_table"),
    ]


@pytest.fixture
def settings(warehouse_apps: list[dict[str, Any]]) -> Settings:
    return Settings(
        warehouse_enabled=True,
        warehouse_applications_json=json.dumps(warehouse_apps),
        warehouse_applications_file=None,
        warehouse_url=None,
    )


@pytest.fixture
def registry(settings: Settings) -> Generator[SchemaRegistry, None, None]:
    reg = SchemaRegistry(settings)
    yield reg
    reg.pools.dispose_all()


@pytest.fixture
def engine(
    settings: Settings, internal_executor: DuckDBExecutor
) -> Generator[InsightsEngine, None, None]:
    """Engine over the in-memory internal store and the duckdb warehouse file."""
    eng = InsightsEngine(settings=settings, internal_executor=internal_executor)
    yield eng
    eng.close()


@pytest.fixture
def day_window() -> dict[str, Any]:
    return {"startAt": "2025-08-01T00:00:00Z", "endAt": "2025-08-02T00:00:00Z", "unit": "day"}


@pytest.fixture
def two_day_window() -> dict[str, Any]:
    return {"startAt": "2025-08-01T00:00:00Z", "endAt": "2025-08-03T00:00:00Z", "unit": "day"}
