"""Typed errors raised by the insights engine.

everything here is raised synchronously - compile errors before a statement
ever reaches storage, execution errors wrapping whatever the driver threw.
callers can catch InsightsError to handle the whole family.
"""


class InsightsError(Exception):
    """Base class for all engine errors."""


class ApplicationNotFound(InsightsError):
    """No application matches the insight id / insight type pair."""

    def __init__(self, insight_id: str, insight_type: str) -> None:
        self.insight_id = insight_id
        self.insight_type = insight_type
        super().__init__(f"Application '{insight_id}' ({insight_type}) not found")


class BackendUnavailable(InsightsError):
    """Warehouse disabled by configuration or the connection can't be opened."""


class ApplicationConfigInvalid(InsightsError):
    """The configured application list doesn't parse or is missing a field."""


class UnsupportedOperator(InsightsError, ValueError):
    """Operator isn't supported for the given value type."""

    def __init__(self, value_type: str, operator: str) -> None:
        self.value_type = value_type
        self.operator = operator
        super().__init__(f"Unsupported operator '{operator}' for type '{value_type}'")


class InvalidTimeUnit(InsightsError, ValueError):
    """Unknown date bucket unit."""

    def __init__(self, unit: str) -> None:
        self.unit = unit
        super().__init__(f"Invalid date unit: {unit}")


class UnsafeIdentifier(InsightsError, ValueError):
    """Identifier would need escaping to be interpolated into sql."""


class UnknownField(InsightsError):
    """Filter, group or metric references a column the schema doesn't declare."""

    def __init__(self, field: str, application: str) -> None:
        self.field = field
        self.application = application
        super().__init__(f"Unknown field '{field}' for application '{application}'")


class StatementExecutionFailed(InsightsError):
    """The backend rejected or failed a compiled statement.

    keeps the original driver error around (also chained via __cause__) but
    the message only names the insight and backend kind - never the url.
    """

    def __init__(self, insight_id: str, backend: str, original: BaseException) -> None:
        self.insight_id = insight_id
        self.backend = backend
        self.original = original
        super().__init__(
            f"Statement failed for insight '{insight_id}' on {backend} backend: {original}"
        )
