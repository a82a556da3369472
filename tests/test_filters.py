"""Tests for the filter operator compiler.

predicates are checked by shape and by running them against a small duckdb
table, so the null handling and LIKE escaping get exercised for real.
"""

from collections.abc import Generator
from typing import Any

import pytest

from insightforge.compiler.filters import SUPPORTED_OPERATORS, compile_bucket_flag, compile_filter
from insightforge.compiler.fragments import ParamBinder
from insightforge.errors import UnsupportedOperator
from insightforge.executor.duckdb_executor import DuckDBExecutor
from insightforge.models.application import DateEncoding
from insightforge.models.query import ValueType


@pytest.fixture
def items() -> Generator[DuckDBExecutor, None, None]:
    executor = DuckDBExecutor()
    executor.conn.execute(
        "CREATE TABLE items (name VARCHAR, price DOUBLE, day VARCHAR, seen_at BIGINT)"
    )
    executor.conn.executemany(
        "INSERT INTO items VALUES (?, ?, ?, ?)",
        [
            ("apple", 1.5, "2025-08-01", 1754006400000),  # 2025-08-01 00:00 UTC
            ("banana", 3.0, "2025-08-02", 1754092800000),  # 2025-08-02 00:00 UTC
            ("100%_off", 5.0, "2025-08-03", 1754179200000),  # 2025-08-03 00:00 UTC
            ("100x off", 7.0, None, None),
            (None, None, None, None),
        ],
    )
    yield executor
    executor.close()


def count_matching(
    executor: DuckDBExecutor,
    value_type: str,
    operator: str,
    value: Any,
    column: str,
    date_encoding: DateEncoding = DateEncoding.DATETIME,
) -> int:
    binder = ParamBinder()
    predicate = compile_filter(value_type, operator, value, column, binder, date_encoding)
    result = executor.execute(f"SELECT count(*) AS n FROM items WHERE {predicate}", binder.params)
    return result.data[0]["n"]


class TestStringOperators:
    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            ("equals", "apple", 1),
            ("not equals", "apple", 3),  # null rows never match a comparison
            ("contains", "an", 1),
            ("contains", "100", 2),
            ("not contains", "100", 2),
            ("in list", ["apple", "banana"], 2),
            ("not in list", ["apple"], 3),
            ("is null", None, 1),
            ("is not null", None, 4),
        ],
    )
    def test_string_operator(self, items: DuckDBExecutor, operator: str, value: Any, expected: int):
        """Each string operator selects the expected rows."""
        assert count_matching(items, "string", operator, value, '"name"') == expected

    def test_contains_escapes_wildcards(self, items: DuckDBExecutor):
        """% and _ in the operand match literally."""
        assert count_matching(items, "string", "contains", "%_", '"name"') == 1
        assert count_matching(items, "string", "contains", "_", '"name"') == 1

    def test_contains_uses_portable_escape(self):
        binder = ParamBinder()
        sql = compile_filter("string", "contains", "50%", '"name"', binder)
        assert sql == "\"name\" LIKE :p0 ESCAPE '!'"
        assert binder.params == {"p0": "%50!%%"}

    def test_empty_in_list(self, items: DuckDBExecutor):
        """Empty lists compile to constant predicates instead of IN ()."""
        binder = ParamBinder()
        assert compile_filter("string", "in list", [], '"name"', binder) == "1 = 0"
        assert compile_filter("string", "not in list", [], '"name"', binder) == "1 = 1"
        assert binder.params == {}
        assert count_matching(items, "string", "in list", [], '"name"') == 0
        assert count_matching(items, "string", "not in list", [], '"name"') == 5


class TestNumberOperators:
    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            ("greater than", 3, 2),
            ("greater than or equal", 3, 3),
            ("less than", "3", 1),  # string operands get coerced
            ("less than or equal", 3.0, 2),
            ("between", [1.5, 5], 3),  # inclusive on both ends
            ("equals", 7, 1),
            ("in list", [1.5, 7], 2),
        ],
    )
    def test_number_operator(self, items: DuckDBExecutor, operator: str, value: Any, expected: int):
        assert count_matching(items, "number", operator, value, '"price"') == expected

    def test_between_needs_two_values(self):
        """A single bound isn't a range."""
        with pytest.raises(UnsupportedOperator):
            compile_filter("number", "between", [1], '"price"', ParamBinder())

    def test_operands_are_bound(self):
        """Values only ever appear as placeholders."""
        binder = ParamBinder()
        sql = compile_filter("number", "between", [10, 20], '"price"', binder)
        assert sql == '"price" BETWEEN :p0 AND :p1'
        assert binder.params == {"p0": 10, "p1": 20}


class TestDateOperators:
    def test_date_column_comparison(self, items: DuckDBExecutor):
        """Operands are converted to the column's storage format first."""
        assert (
            count_matching(
                items, "date", "between", ["2025-08-01", "2025-08-02"], '"day"', DateEncoding.DATE
            )
            == 2
        )

    def test_epoch_ms_column(self, items: DuckDBExecutor):
        """Same operand against an epoch-ms column."""
        assert (
            count_matching(
                items,
                "date",
                "greater than or equal",
                "2025-08-02T00:00:00Z",
                '"seen_at"',
                DateEncoding.TIMESTAMP_MS,
            )
            == 2
        )

    def test_date_operand_encoding(self):
        binder = ParamBinder()
        compile_filter(
            "date", "less than", "2025-08-01T00:00:00Z", '"ts"', binder, DateEncoding.TIMESTAMP
        )
        assert binder.params == {"p0": 1754006400}


class TestUnsupportedOperators:
    @pytest.mark.parametrize(
        "value_type,operator",
        [
            ("string", "greater than"),
            ("number", "contains"),
            ("other", "between"),
            ("string", "matches"),
            ("bogus", "equals"),
        ],
    )
    def test_rejected(self, value_type: str, operator: str):
        """Invalid type/operator pairs fail before any sql is produced."""
        with pytest.raises(UnsupportedOperator):
            compile_filter(value_type, operator, "x", '"name"', ParamBinder())

    def test_operator_table_covers_every_type(self):
        assert set(SUPPORTED_OPERATORS) == set(ValueType)
        for operators in SUPPORTED_OPERATORS.values():
            assert {"equals", "is null", "in list"} <= operators


class TestBucketFlag:
    def test_flag_wraps_predicate(self):
        binder = ParamBinder()
        sql = compile_bucket_flag("string", "equals", "US", '"country"', binder)
        assert sql == 'CASE WHEN "country" = :p0 THEN 1 ELSE 0 END'

    def test_flag_counts(self, items: DuckDBExecutor):
        """Null rows land in the 0 bucket rather than disappearing."""
        binder = ParamBinder()
        flag = compile_bucket_flag("number", "greater than", 2, '"price"', binder)
        result = items.execute(
            f"SELECT sum({flag}) AS hits, count(*) AS total FROM items", binder.params
        )
        assert result.data == [{"hits": 3, "total": 5}]
