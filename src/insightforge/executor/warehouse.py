"""SQLAlchemy executor for external warehouses.

one executor wraps one pooled engine (see registry.ConnectionPoolRegistry).
statements go through text() so the driver's own paramstyle handles the
:pN binds - mysql, postgres and duckdb all work the same way from here.
"""

import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from insightforge.errors import BackendUnavailable
from insightforge.log import get_logger
from insightforge.models.query import QueryResult

logger = get_logger(__name__)


class WarehouseExecutor:
    backend = "warehouse"
    driver_errors: tuple[type[BaseException], ...] = (SQLAlchemyError,)

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> QueryResult:
        """Run one read-only statement on a pooled connection.

        Raises:
            BackendUnavailable: a connection couldn't be checked out.
            SQLAlchemyError: the statement itself failed.
        """
        try:
            conn = self.engine.connect()
        except DBAPIError as e:
            # host only - the url may carry credentials
            host = self.engine.url.host or self.engine.url.database or "warehouse"
            logger.error("Cannot connect to %s warehouse at %s", self.dialect_name, host)
            raise BackendUnavailable(
                f"Cannot connect to {self.dialect_name} warehouse at {host}"
            ) from e

        start = time.perf_counter()
        with conn:
            result = conn.execute(text(sql), params or {})
            columns = list(result.keys())
            data = [dict(zip(columns, row)) for row in result.fetchall()]
        elapsed_ms = (time.perf_counter() - start) * 1000

        return QueryResult(
            sql=sql,
            columns=columns,
            data=data,
            row_count=len(data),
            execution_time_ms=round(elapsed_ms, 2),
        )
