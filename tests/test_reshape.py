"""Tests for the result reshaper."""

from decimal import Decimal
from typing import Any

from insightforge.models.query import InsightQuery, TimeRange
from insightforge.reshape import OTHERS_LABEL, bucket_axis, reshape


def make_query(**kwargs: Any) -> InsightQuery:
    data = {
        "insightId": "site-1",
        "insightType": "internal",
        "metrics": [{"name": "pageview"}],
        "time": {"startAt": "2025-08-01T00:00:00Z", "endAt": "2025-08-04T00:00:00Z"},
        **kwargs,
    }
    return InsightQuery.model_validate(data)


def as_dicts(series) -> list[dict]:
    return [s.model_dump() for s in series]


class TestBucketAxis:
    def test_days(self):
        time = TimeRange(start_at="2025-08-01T00:00:00Z", end_at="2025-08-04T00:00:00Z")
        assert bucket_axis(time) == ["2025-08-01", "2025-08-02", "2025-08-03"]

    def test_partial_first_bucket(self):
        """A window starting mid-day still includes that day."""
        time = TimeRange(start_at="2025-08-01T15:00:00Z", end_at="2025-08-02T10:00:00Z")
        assert bucket_axis(time) == ["2025-08-01", "2025-08-02"]

    def test_hours(self):
        time = TimeRange(
            start_at="2025-08-01T00:00:00Z", end_at="2025-08-01T03:00:00Z", unit="hour"
        )
        assert bucket_axis(time) == [
            "2025-08-01 00:00:00",
            "2025-08-01 01:00:00",
            "2025-08-01 02:00:00",
        ]

    def test_months_across_year_end(self):
        time = TimeRange(
            start_at="2024-11-15T00:00:00Z", end_at="2025-02-01T00:00:00Z", unit="month"
        )
        assert bucket_axis(time) == ["2024-11-01", "2024-12-01", "2025-01-01"]

    def test_year(self):
        time = TimeRange(
            start_at="2024-06-01T00:00:00Z", end_at="2025-06-01T00:00:00Z", unit="year"
        )
        assert bucket_axis(time) == ["2024-01-01", "2025-01-01"]

    def test_zero_length_window(self):
        time = TimeRange(start_at="2025-08-01T05:00:00Z", end_at="2025-08-01T05:00:00Z")
        assert bucket_axis(time) == ["2025-08-01"]

    def test_timezone(self):
        """Buckets are wall-clock days in the query's timezone."""
        time = TimeRange(
            start_at="2025-08-01T00:00:00Z",
            end_at="2025-08-02T00:00:00Z",
            timezone="America/New_York",
        )
        assert bucket_axis(time) == ["2025-07-31", "2025-08-01"]


class TestReshape:
    def test_zero_fill(self):
        """Buckets without rows read 0."""
        rows = [{"date": "2025-08-02", "pageview": 3}]
        assert as_dicts(reshape(make_query(), rows)) == [
            {
                "name": "pageview",
                "data": [
                    {"date": "2025-08-01", "value": 0},
                    {"date": "2025-08-02", "value": 3},
                    {"date": "2025-08-03", "value": 0},
                ],
            }
        ]

    def test_no_rows_still_one_series_per_metric(self):
        query = make_query(metrics=[{"name": "pageview"}, {"name": "signup"}])
        series = reshape(query, [])
        assert [s.name for s in series] == ["pageview", "signup"]
        assert all(p.value == 0 for s in series for p in s.data)
        assert len(series[0].data) == 3

    def test_grouped_series_names_and_order(self):
        """Metrics in request order, then labels sorted; nulls become 'null'."""
        query = make_query(
            metrics=[{"name": "signup"}, {"name": "pageview"}],
            groups=[{"value": "country"}],
        )
        rows = [
            {"date": "2025-08-01", "signup": 1, "pageview": 4, "%country": "US"},
            {"date": "2025-08-01", "signup": 0, "pageview": 2, "%country": None},
            {"date": "2025-08-02", "signup": 2, "pageview": 1, "%country": "DE"},
        ]
        series = reshape(query, rows)
        assert [s.name for s in series] == [
            "signup-DE",
            "signup-US",
            "signup-null",
            "pageview-DE",
            "pageview-US",
            "pageview-null",
        ]
        assert [p.value for p in series[4].data] == [4, 0, 0]

    def test_multiple_groups_joined(self):
        query = make_query(groups=[{"value": "country"}, {"value": "browser"}])
        rows = [{"date": "2025-08-01", "pageview": 1, "%country": "US", "%browser": "Chrome"}]
        assert reshape(query, rows)[0].name == "pageview-US-Chrome"

    def test_custom_group_labels(self):
        """First matching bucket names the row; no match falls into others."""
        query = make_query(
            groups=[
                {
                    "value": "country",
                    "customGroups": [
                        {"filterOperator": "equals", "filterValue": "US"},
                        {"filterOperator": "in list", "filterValue": ["DE", "FR"]},
                    ],
                }
            ]
        )
        rows = [
            {"date": "2025-08-01", "pageview": 3, "%country|equals|US": 1, "%country|in list|DE,FR": 0},
            {"date": "2025-08-01", "pageview": 1, "%country|equals|US": 0, "%country|in list|DE,FR": 1},
            {"date": "2025-08-02", "pageview": 2, "%country|equals|US": 0, "%country|in list|DE,FR": 0},
        ]
        series = {s.name: [p.value for p in s.data] for s in reshape(query, rows)}
        assert series == {
            f"pageview-{OTHERS_LABEL}": [0, 2, 0],
            "pageview-equals US": [3, 0, 0],
            "pageview-in list DE,FR": [1, 0, 0],
        }

    def test_overlapping_custom_groups_count_once(self):
        """A row in both buckets is counted only in the first one declared."""
        query = make_query(
            groups=[
                {
                    "value": "amount",
                    "type": "number",
                    "customGroups": [
                        {"filterOperator": "greater than", "filterValue": 10},
                        {"filterOperator": "greater than", "filterValue": 100},
                    ],
                }
            ]
        )
        rows = [
            {
                "date": "2025-08-01",
                "pageview": 4,
                "%amount|greater than|10": 1,
                "%amount|greater than|100": 1,
            },
            {
                "date": "2025-08-01",
                "pageview": 2,
                "%amount|greater than|10": 1,
                "%amount|greater than|100": 0,
            },
        ]
        series = {s.name: [p.value for p in s.data] for s in reshape(query, rows)}
        assert series["pageview-greater than 10"] == [6, 0, 0]
        assert series.get("pageview-greater than 100", [0, 0, 0]) == [0, 0, 0]

    def test_values_are_plain_numbers(self):
        """Decimals from the driver become ints (or floats) and None becomes 0."""
        rows = [
            {"date": "2025-08-01", "pageview": Decimal("5")},
            {"date": "2025-08-02", "pageview": None},
            {"date": "2025-08-03", "pageview": Decimal("2.5")},
        ]
        values = [p.value for p in reshape(make_query(), rows)[0].data]
        assert values == [5, 0, 2.5]
        assert isinstance(values[0], int)

    def test_duplicate_rows_summed(self):
        rows = [
            {"date": "2025-08-01", "pageview": 2},
            {"date": "2025-08-01", "pageview": 3},
        ]
        assert reshape(make_query(), rows)[0].data[0].value == 5

    def test_unexpected_bucket_kept(self):
        """Dates outside the computed axis are merged in, in order."""
        rows = [{"date": "2025-07-31", "pageview": 1}]
        dates = [p.date for p in reshape(make_query(), rows)[0].data]
        assert dates == ["2025-07-31", "2025-08-01", "2025-08-02", "2025-08-03"]
