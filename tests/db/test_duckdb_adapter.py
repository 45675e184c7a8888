"""Tests for DuckDB adapter."""

import pytest

from db2bridge.db.base import validate_identifier
from db2bridge.db.duckdb import DuckDBAdapter


def test_duckdb_adapter_memory():
    """Test DuckDB adapter with in-memory database."""
    adapter = DuckDBAdapter(":memory:")
    assert adapter.dialect == "duckdb"
    assert adapter.raw_connection is not None
    assert adapter.identifier_case == "preserve"
    assert not adapter.supports_update_row_limit


def test_duckdb_adapter_execute():
    """Test executing queries."""
    adapter = DuckDBAdapter()
    result = adapter.execute("SELECT 1 as x, 2 as y")
    assert adapter.fetch_dicts(result) == [{"x": 1, "y": 2}]


def test_duckdb_adapter_from_url_variations():
    """Test various memory URL formats."""
    for url in ["duckdb:///:memory:", "duckdb:///"]:
        adapter = DuckDBAdapter.from_url(url)
        assert adapter.fetch_dicts(adapter.execute("SELECT 1 AS one")) == [{"one": 1}]


def test_duckdb_adapter_from_url_file(tmp_path):
    """Test creating adapter from a file URL."""
    path = tmp_path / "legacy.duckdb"
    adapter = DuckDBAdapter.from_url(f"duckdb:///{path}")
    adapter.execute("CREATE TABLE t (x INT)")
    adapter.close()

    assert path.exists()


def test_duckdb_adapter_from_url_invalid():
    with pytest.raises(ValueError, match="Invalid DuckDB URL"):
        DuckDBAdapter.from_url("db2://host/lib")


def test_fetch_dicts_preserves_case():
    adapter = DuckDBAdapter()
    rows = adapter.fetch_dicts(adapter.execute("SELECT 1 AS ICITEM, 2 AS throughkey_CTDEPT"))

    assert rows == [{"ICITEM": 1, "throughkey_CTDEPT": 2}]


def test_fetch_dicts_upper_cases_like_db2():
    adapter = DuckDBAdapter(identifier_case="upper")
    rows = adapter.fetch_dicts(adapter.execute("SELECT 1 AS aggregate, 2 AS throughkey_CTDEPT"))

    assert rows == [{"AGGREGATE": 1, "THROUGHKEY_CTDEPT": 2}]
    assert adapter.fold_identifier("present") == "PRESENT"


def test_rowcount_reports_affected_rows():
    adapter = DuckDBAdapter()
    adapter.execute("CREATE TABLE t (x INT)")

    assert adapter.rowcount(adapter.execute("INSERT INTO t VALUES (1), (2), (3)")) == 3
    assert adapter.rowcount(adapter.execute("UPDATE t SET x = 0 WHERE x > 1")) == 2
    assert adapter.rowcount(adapter.execute("DELETE FROM t WHERE x = 5")) == 0


def test_duckdb_adapter_get_columns():
    adapter = DuckDBAdapter()
    adapter.execute("CREATE TABLE ITMAST (ICITEM VARCHAR, ICCOST INT)")

    assert {c["column_name"] for c in adapter.get_columns("ITMAST")} == {"ICITEM", "ICCOST"}
    assert {c["column_name"] for c in adapter.get_columns("itmast", "MAIN")} == {"ICITEM", "ICCOST"}
    assert adapter.get_columns("ITMAST", "other") == []


@pytest.mark.parametrize("name", ["ICITEM", "LIB.ITMAST", "F#ITEM", "_tmp$1"])
def test_validate_identifier_accepts(name):
    assert validate_identifier(name) == name


@pytest.mark.parametrize("name", ["", "1ITEM", "ITMAST; DROP TABLE x", "a-b"])
def test_validate_identifier_rejects(name):
    with pytest.raises(ValueError, match="Invalid table name"):
        validate_identifier(name, "table name")
