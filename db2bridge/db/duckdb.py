"""DuckDB database adapter."""

from typing import Any, Literal

import duckdb

from db2bridge.db.base import BaseDatabaseAdapter


class DuckDBAdapter(BaseDatabaseAdapter):
    """DuckDB database adapter.

    Wraps DuckDB connection to provide unified adapter interface. Passing
    ``identifier_case="upper"`` makes result keys behave like a DB2 connection,
    which upper-cases every returned identifier.
    """

    def __init__(self, path: str = ":memory:", identifier_case: Literal["preserve", "upper"] = "preserve"):
        """Initialize DuckDB adapter.

        Args:
            path: Database file path or ":memory:" for in-memory database
            identifier_case: Casing applied to result column names
        """
        self.conn = duckdb.connect(path)
        self.identifier_case = identifier_case

    def execute(self, sql: str) -> Any:
        """Execute SQL and return DuckDB relation."""
        return self.conn.execute(sql)

    def fetch_dicts(self, result: Any) -> list[dict[str, Any]]:
        """Fetch all rows keyed by column name."""
        columns = [self.fold_identifier(col[0]) for col in result.description]
        return [dict(zip(columns, row)) for row in result.fetchall()]

    def rowcount(self, result: Any) -> int:
        """DuckDB reports affected rows as a single-row result."""
        row = result.fetchone()
        return int(row[0]) if row else 0

    def get_columns(self, table_name: str, schema: str | None = None) -> list[dict]:
        """Get columns for a table."""
        params = [table_name]
        schema_filter = ""
        if schema:
            schema_filter = "AND lower(schema_name) = lower(?)"
            params.append(schema)
        result = self.conn.execute(
            f"""
            SELECT column_name, data_type
            FROM duckdb_columns()
            WHERE lower(table_name) = lower(?) {schema_filter}
        """,
            params,
        )
        rows = result.fetchall()
        return [{"column_name": row[0], "data_type": row[1]} for row in rows]

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()

    @property
    def dialect(self) -> str:
        """Get SQLGlot dialect name."""
        return "duckdb"

    @property
    def raw_connection(self) -> Any:
        """Get underlying DuckDB connection."""
        return self.conn

    @classmethod
    def from_url(cls, url: str) -> "DuckDBAdapter":
        """Create adapter from connection URL.

        Args:
            url: Connection URL (e.g., "duckdb:///:memory:" or "duckdb:///path/to/db.duckdb")

        Returns:
            DuckDBAdapter instance
        """
        if not url.startswith("duckdb://"):
            raise ValueError(f"Invalid DuckDB URL: {url}")

        # duckdb:///:memory: -> :memory:
        # duckdb:///tmp/app.db -> /tmp/app.db
        # duckdb:/// -> :memory:
        db_path = url[len("duckdb://") :]

        if db_path in ("/:memory:", ":memory:", "", "/"):
            db_path = ":memory:"

        return cls(db_path)
