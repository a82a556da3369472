"""DuckDB executor for the internal event store.

duckdb is a good fit for the product's own events - embedded, fast at
aggregations, and the in-memory mode makes fixtures trivial. statements
arrive with :pN placeholders and get rewritten to duckdb's $pN style.
"""

import time
from typing import Any

import duckdb

from insightforge.compiler.fragments import to_dollar_params
from insightforge.models.query import QueryResult

# internal store schema - created on demand so a fresh database is queryable
WEBSITE_EVENT_DDL = """
CREATE TABLE IF NOT EXISTS website_event (
    id BIGINT,
    website_id VARCHAR,
    session_id VARCHAR,
    event_name VARCHAR,
    url_path VARCHAR,
    referrer_domain VARCHAR,
    browser VARCHAR,
    os VARCHAR,
    country VARCHAR,
    created_at BIGINT
)
"""


class DuckDBExecutor:
    """Execute queries against DuckDB.

    thin wrapper that handles connection management and result formatting.
    keeps the duckdb-specific bits isolated from the builders.
    """

    backend = "internal"
    driver_errors: tuple[type[BaseException], ...] = (duckdb.Error,)

    def __init__(self, database_path: str | None = None) -> None:
        """Initialize DuckDB connection.

        Args:
            database_path: Path to DuckDB file, or None for in-memory.
        """
        self.database_path = database_path
        self._conn: duckdb.DuckDBPyConnection | None = None  # lazy init

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection.

        lazy so we don't open a db until we actually need it.
        """
        if self._conn is None:
            self._conn = duckdb.connect(self.database_path or ":memory:")
            self._conn.execute(WEBSITE_EVENT_DDL)
        return self._conn

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> QueryResult:
        """Execute SQL and return structured results."""
        start = time.perf_counter()

        result = self.conn.execute(to_dollar_params(sql), params or None)
        # result.description gives us (name, type_code, ...) tuples
        columns = [desc[0] for desc in result.description]
        rows = result.fetchall()

        elapsed_ms = (time.perf_counter() - start) * 1000
        data = [dict(zip(columns, row)) for row in rows]

        return QueryResult(
            sql=sql,
            columns=columns,
            data=data,
            row_count=len(data),
            execution_time_ms=round(elapsed_ms, 2),
        )

    def insert_events(self, rows: list[tuple[Any, ...]]) -> None:
        """Append rows to website_event (column order as in the DDL)."""
        self.conn.executemany(
            "INSERT INTO website_event VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            rows,
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    # context manager support for clean resource management
    def __enter__(self) -> "DuckDBExecutor":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
