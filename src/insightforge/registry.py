"""Schema registry and warehouse connection pools.

the registry resolves an insight id/type pair to its table mapping and, for
warehouse types, to a pooled connection. both caches here are process-wide
state owned by one object rather than module globals, so tests can build a
registry around a fixture config.

- the application list is parsed once, on first use, and kept until reload()
- pools are created lazily, one per distinct connection string

both are guarded by a lock so concurrent first access ends up with a single
winner that everybody else sees.
"""

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import yaml
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError

from insightforge.config import Settings
from insightforge.errors import ApplicationConfigInvalid, ApplicationNotFound, BackendUnavailable
from insightforge.log import get_logger
from insightforge.models.application import (
    INTERNAL_APPLICATION,
    InternalApplication,
    LongTableApplication,
    WarehouseApplication,
    WideTableApplication,
    applications_adapter,
)
from insightforge.models.query import InsightType

logger = get_logger(__name__)

_APPLICATION_CLASSES = {
    InsightType.WAREHOUSE_LONG: LongTableApplication,
    InsightType.WAREHOUSE_WIDE: WideTableApplication,
}


def _default_engine_factory(url: str) -> Engine:
    return create_engine(url, pool_pre_ping=True)


class ConnectionPoolRegistry:
    """One SQLAlchemy engine (= connection pool) per connection string."""

    def __init__(self, engine_factory: Callable[[str], Engine] = _default_engine_factory) -> None:
        self._engine_factory = engine_factory
        self._engines: dict[str, Engine] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> Engine:
        engine = self._engines.get(url)
        if engine is not None:
            return engine
        with self._lock:
            # somebody may have won the race while we waited
            engine = self._engines.get(url)
            if engine is None:
                engine = self._engine_factory(url)
                self._engines[url] = engine
                logger.info("Warehouse pool created  backend=%s", describe_url(url))
        return engine

    def __len__(self) -> int:
        return len(self._engines)

    def dispose_all(self) -> None:
        """Close every pool - only meant for process shutdown."""
        with self._lock:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()


def describe_url(url: str) -> str:
    # backend + host, never credentials
    try:
        parsed = make_url(url)
    except ArgumentError:
        return "unparseable url"
    return f"{parsed.get_backend_name()}://{parsed.host or ''}"


@dataclass(frozen=True)
class Resolution:
    application: InternalApplication | LongTableApplication | WideTableApplication
    connection: Engine | None = None


class SchemaRegistry:
    """Resolves insights to table mappings and connections."""

    def __init__(self, settings: Settings, pools: ConnectionPoolRegistry | None = None) -> None:
        self.settings = settings
        self.pools = pools or ConnectionPoolRegistry()
        self._applications: list[WarehouseApplication] | None = None
        self._lock = threading.Lock()

    def applications(self) -> list[WarehouseApplication]:
        """Parsed application list, cached for the life of the registry."""
        apps = self._applications
        if apps is not None:
            return apps
        with self._lock:
            if self._applications is None:
                self._applications = self._parse()
                logger.info("Loaded %d warehouse applications", len(self._applications))
            return self._applications

    def reload(self) -> None:
        """Drop the cached application list; the next lookup re-parses."""
        with self._lock:
            self._applications = None

    def _raw_config(self) -> Any:
        settings = self.settings
        if settings.warehouse_applications_file is not None:
            try:
                text = settings.warehouse_applications_file.read_text()
            except OSError as e:
                raise ApplicationConfigInvalid(
                    f"Cannot read applications file {settings.warehouse_applications_file}: {e}"
                ) from e
            try:
                # yaml is a superset of json so this covers both
                return yaml.safe_load(text) or []
            except yaml.YAMLError as e:
                raise ApplicationConfigInvalid(f"Invalid applications file: {e}") from e

        if settings.warehouse_applications_json:
            try:
                return json.loads(settings.warehouse_applications_json)
            except json.JSONDecodeError as e:
                raise ApplicationConfigInvalid(f"Invalid applications json: {e}") from e
        return []

    def _parse(self) -> list[WarehouseApplication]:
        raw = self._raw_config()
        if not isinstance(raw, list):
            raise ApplicationConfigInvalid("Warehouse applications must be a list")

        entries = []
        for item in raw:
            if not isinstance(item, dict):
                raise ApplicationConfigInvalid(f"Application entry must be a mapping: {item!r}")
            # older configs only had long tables and no "type" key
            entries.append({"type": "longTable", **item})

        try:
            return applications_adapter.validate_python(entries)
        except ValidationError as e:
            raise ApplicationConfigInvalid(f"Invalid warehouse application config: {e}") from e

    def find_application(
        self, insight_id: str, insight_type: InsightType
    ) -> LongTableApplication | WideTableApplication:
        """Linear lookup by name and kind - both kinds share one namespace."""
        cls = _APPLICATION_CLASSES.get(insight_type)
        if cls is None:
            raise ApplicationNotFound(insight_id, insight_type.value)
        for app in self.applications():
            if app.name == insight_id and isinstance(app, cls):
                return app
        raise ApplicationNotFound(insight_id, insight_type.value)

    def resolve(self, insight_id: str, insight_type: InsightType | str) -> Resolution:
        """Map an insight to its schema and (for warehouses) a pooled engine.

        Raises:
            ApplicationNotFound: no matching application.
            ApplicationConfigInvalid: the configured list doesn't parse.
            BackendUnavailable: warehouse disabled or no connection string.
        """
        try:
            insight_type = InsightType(insight_type)
        except ValueError:
            raise ApplicationNotFound(insight_id, str(insight_type)) from None

        if insight_type == InsightType.INTERNAL:
            return Resolution(application=INTERNAL_APPLICATION)

        application = self.find_application(insight_id, insight_type)

        if not self.settings.warehouse_enabled:
            raise BackendUnavailable("Warehouse is not enabled")
        url = application.database_url or self.settings.warehouse_url
        if not url:
            raise BackendUnavailable(
                f"No warehouse connection configured for application '{application.name}'"
            )
        try:
            engine = self.pools.get(url)
        except (ArgumentError, ImportError) as e:
            # bad url or missing driver package; don't echo the url itself
            raise BackendUnavailable(
                f"Cannot create warehouse pool for application '{application.name}': "
                f"{type(e).__name__}"
            ) from e
        return Resolution(application=application, connection=engine)
