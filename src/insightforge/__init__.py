"""insightforge - time-bucketed event insights over internal and warehouse stores."""

from insightforge.engine import InsightsEngine
from insightforge.models.query import EventsQuery, InsightQuery, Series

__all__ = ["EventsQuery", "InsightQuery", "InsightsEngine", "Series"]
