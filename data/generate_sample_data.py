"""Generate sample website events for insightforge testing."""

import random
from datetime import UTC, datetime, timedelta
from pathlib import Path

from insightforge.executor.duckdb_executor import DuckDBExecutor

WEBSITES = ["site-1", "site-2"]
EVENT_NAMES = ["pageview", "pageview", "pageview", "pageview", "signup", "purchase"]
PATHS = ["/", "/home", "/pricing", "/blog", "/signup", "/checkout"]
REFERRERS = ["google.com", "google.com", "bing.com", "news.ycombinator.com", None]
BROWSERS = ["Chrome", "Chrome", "Safari", "Firefox", "Edge"]
OPERATING_SYSTEMS = ["macOS", "Windows", "Linux", "iOS", "Android"]
COUNTRIES = ["US", "US", "US", "DE", "GB", "FR", "CA", None]


def generate_events(count: int, start: datetime, days: int = 30) -> list[tuple]:
    """Generate website_event rows spread over `days` days from `start`.

    events come in sessions of 1-8 hits, a few minutes apart, so the
    sessions metric comes out noticeably lower than the event count.
    """
    rows: list[tuple] = []
    event_id = 0
    session_no = 0
    while event_id < count:
        session_no += 1
        website = random.choice(WEBSITES)
        browser = random.choice(BROWSERS)
        os_name = random.choice(OPERATING_SYSTEMS)
        country = random.choice(COUNTRIES)
        referrer = random.choice(REFERRERS)
        at = start + timedelta(seconds=random.randint(0, days * 86400 - 1))

        for _ in range(random.randint(1, 8)):
            event_id += 1
            rows.append(
                (
                    event_id,
                    website,
                    f"s{session_no}",
                    random.choice(EVENT_NAMES),
                    random.choice(PATHS),
                    referrer,
                    browser,
                    os_name,
                    country,
                    int(at.timestamp() * 1000),  # created_at, epoch ms
                )
            )
            at += timedelta(seconds=random.randint(5, 300))
            if event_id >= count:
                break

    # ids must increase with time for keyset pagination to read naturally
    rows.sort(key=lambda row: row[-1])
    return [(i + 1, *row[1:]) for i, row in enumerate(rows)]


def generate_sample_data(db_path: str | None = None, count: int = 5000) -> DuckDBExecutor:
    """Fill the internal store with sample events.

    Args:
        db_path: DuckDB file to write, or None for in-memory only.
        count: Number of events to generate.

    Returns:
        Executor over the populated store.
    """
    random.seed(42)  # Reproducible data

    # last 30 days, so the listing commands see the data too
    start = (datetime.now(UTC) - timedelta(days=30)).replace(hour=0, minute=0, second=0, microsecond=0)
    executor = DuckDBExecutor(db_path)
    executor.execute("DELETE FROM website_event")
    executor.insert_events(generate_events(count, start))
    return executor


if __name__ == "__main__":
    import sys

    db_path = sys.argv[1] if len(sys.argv) > 1 else str(Path(__file__).parent / "insights.duckdb")
    executor = generate_sample_data(db_path)

    # Print summary
    result = executor.execute(
        "SELECT website_id, count(*) AS events, count(DISTINCT session_id) AS sessions "
        "FROM website_event GROUP BY website_id ORDER BY website_id"
    )
    for row in result.data:
        print(f"{row['website_id']}: {row['events']} events, {row['sessions']} sessions")
    print(f"Data written to {db_path}")

    executor.close()
