"""Result reshaper: raw aggregate rows -> dense, named time series.

rows come back one per (bucket x group combination) with a "date" column,
one column per metric and one "%"-prefixed column per group projection. we
turn them into:

    [{"name": "signup-US", "data": [{"date": "2025-08-01", "value": 3}, ...]}, ...]

every series covers every bucket in the window (plus any bucket a row
reported that the window calculation didn't produce), missing buckets are 0.
series order is metrics in request order, then group labels sorted - it has
to be stable or chart legends reshuffle on every refresh.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from insightforge.compiler.dates import resolve_unit
from insightforge.compiler.identifiers import DATE_COLUMN, GroupKey, decode_alias
from insightforge.models.query import InsightQuery, Series, SeriesPoint, TimeRange, TimeUnit

NULL_LABEL = "null"
OTHERS_LABEL = "$others"  # row matched none of a group's custom buckets

_LABEL_FORMATS = {
    TimeUnit.MINUTE: "%Y-%m-%d %H:%M:00",
    TimeUnit.HOUR: "%Y-%m-%d %H:00:00",
    TimeUnit.DAY: "%Y-%m-%d",
    TimeUnit.MONTH: "%Y-%m-01",
    TimeUnit.YEAR: "%Y-01-01",
}


def _truncate(value: datetime, unit: TimeUnit) -> datetime:
    if unit == TimeUnit.MINUTE:
        return value.replace(second=0, microsecond=0)
    if unit == TimeUnit.HOUR:
        return value.replace(minute=0, second=0, microsecond=0)
    if unit == TimeUnit.DAY:
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == TimeUnit.MONTH:
        return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return value.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)


def _step(value: datetime, unit: TimeUnit) -> datetime:
    if unit == TimeUnit.MINUTE:
        return value + timedelta(minutes=1)
    if unit == TimeUnit.HOUR:
        return value + timedelta(hours=1)
    if unit == TimeUnit.DAY:
        return value + timedelta(days=1)
    if unit == TimeUnit.MONTH:
        if value.month == 12:
            return value.replace(year=value.year + 1, month=1)
        return value.replace(month=value.month + 1)
    return value.replace(year=value.year + 1)


def bucket_axis(time: TimeRange) -> list[str]:
    """Labels for every bucket starting inside [start_at, end_at).

    computed in wall-clock time of the query's timezone, same as the sql
    side. a zero-length window still gets the bucket containing start_at.
    """
    unit = resolve_unit(time.unit)
    fmt = _LABEL_FORMATS[unit]
    start = time.start_at.astimezone(time.tz)
    end = time.end_at.astimezone(time.tz)

    current = _truncate(start, unit)
    labels = []
    while current < end:
        labels.append(current.strftime(fmt))
        current = _step(current, unit)
    if not labels:
        labels.append(_truncate(start, unit).strftime(fmt))
    return labels


def _number(value: Any) -> int | float:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _custom_label(key: GroupKey) -> str:
    return f"{key.operator} {key.literal}".strip()


def _is_flag_set(value: Any) -> bool:
    return bool(value) and value not in ("0", "false")


class _ColumnLayout:
    """Which result column is what, decoded from the aliases."""

    def __init__(self, query: InsightQuery, columns: list[str]) -> None:
        self.metrics = [m.name for m in query.metrics]
        # group value -> [(column, key)], ordered like the request's groups
        declared = [g.value for g in query.groups]
        grouped: dict[str, list[tuple[str, GroupKey]]] = defaultdict(list)
        for column in columns:
            key = decode_alias(column)
            if key is not None:
                grouped[key.value].append((column, key))
        order = [v for v in declared if v in grouped]
        order += [v for v in grouped if v not in declared]
        self.groups = [(value, grouped[value]) for value in order]

    def labels(self, row: dict[str, Any]) -> tuple[str, ...]:
        labels = []
        for _value, columns in self.groups:
            if not columns[0][1].is_custom:
                raw = row.get(columns[0][0])
                labels.append(NULL_LABEL if raw is None else str(raw))
                continue
            label = OTHERS_LABEL
            for column, key in columns:
                if _is_flag_set(row.get(column)):
                    label = _custom_label(key)
                    break
            labels.append(label)
        return tuple(labels)


def reshape(query: InsightQuery, rows: list[dict[str, Any]]) -> list[Series]:
    """Merge sparse rows into dense per-series arrays."""
    axis = bucket_axis(query.time)
    seen = set(axis)
    for row in rows:
        label = str(row[DATE_COLUMN])
        if label not in seen:
            seen.add(label)
            axis.append(label)
    axis.sort()

    columns = list(rows[0].keys()) if rows else []
    layout = _ColumnLayout(query, columns)

    # (metric index, group labels) -> date -> value
    values: dict[tuple[int, tuple[str, ...]], dict[str, int | float]] = defaultdict(
        lambda: defaultdict(int)
    )
    for row in rows:
        date = str(row[DATE_COLUMN])
        labels = layout.labels(row)
        for index, metric in enumerate(layout.metrics):
            values[(index, labels)][date] += _number(row.get(metric))

    if not query.groups:
        # ungrouped metrics always get a series, even with no rows at all
        for index in range(len(layout.metrics)):
            values.setdefault((index, ()), defaultdict(int))

    series = []
    for index, labels in sorted(values):
        name = layout.metrics[index]
        if labels:
            name = f"{name}-{'-'.join(labels)}"
        points = values[(index, labels)]
        series.append(
            Series(
                name=name,
                data=[SeriesPoint(date=d, value=points.get(d, 0)) for d in axis],
            )
        )
    return series
