"""Basic usage example for insightforge."""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Add parent to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent / "data"))

from generate_sample_data import generate_sample_data

from insightforge import InsightsEngine
from insightforge.config import Settings


def print_series(series) -> None:
    for s in series:
        values = ", ".join(str(p.value) for p in s.data)
        print(f"   {s.name}: [{values}]")


def main():
    """Demonstrate insightforge capabilities."""
    # in-memory internal store with a month of sample events
    engine = InsightsEngine(Settings(), internal_executor=generate_sample_data())

    today = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    last_week = {"startAt": today - timedelta(days=7), "endAt": today}

    print("=" * 60)
    print("insightforge Website Analytics Demo")
    print("=" * 60)

    # 1. All events per day
    print("\n1. Events per day (last 7 days):")
    series = engine.query(
        {
            "insightId": "site-1",
            "insightType": "internal",
            "metrics": [{"name": "$all_event"}],
            "time": last_week,
        }
    )
    print("   dates: " + ", ".join(p.date for p in series[0].data))
    print_series(series)

    # 2. Several metrics, events vs sessions
    print("\n2. Pageviews and signup sessions:")
    series = engine.query(
        {
            "insightId": "site-1",
            "insightType": "internal",
            "metrics": [{"name": "pageview"}, {"name": "signup", "math": "sessions"}],
            "time": last_week,
        }
    )
    print_series(series)

    # 3. Grouped by a column
    print("\n3. Pageviews by country:")
    series = engine.query(
        {
            "insightId": "site-1",
            "insightType": "internal",
            "metrics": [{"name": "pageview"}],
            "groups": [{"value": "country"}],
            "time": last_week,
        }
    )
    print_series(series)

    # 4. Filters and custom groups
    print("\n4. Chrome pageviews, pricing vs everything else:")
    query = {
        "insightId": "site-1",
        "insightType": "internal",
        "metrics": [{"name": "pageview"}],
        "filters": [{"name": "browser", "operator": "equals", "value": "Chrome"}],
        "groups": [
            {
                "value": "url_path",
                "customGroups": [{"filterOperator": "contains", "filterValue": "pricing"}],
            }
        ],
        "time": last_week,
    }
    print_series(engine.query(query))

    # 5. Show generated SQL
    print("\n5. Generated SQL for the query above:")
    print(engine.show_sql(query))

    # 6. Raw events, page by page
    print("\n6. Latest events:")
    page = engine.query_events(
        {"insightId": "site-1", "insightType": "internal", "time": last_week, "limit": 5}
    )
    for item in page.items:
        print(f"   #{item['id']} {item['event_name']} {item['url_path']}")
    print(f"   next cursor: {page.next_cursor}")

    # 7. Event names seen over the last 30 days
    print("\n7. Event names:")
    for row in engine.list_event_names("site-1", "internal"):
        print(f"   {row['name']}: {row['count']}")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)

    engine.close()


if __name__ == "__main__":
    main()
