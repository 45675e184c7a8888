"""Base database adapter interface."""

import re
from abc import ABC, abstractmethod
from typing import Any, Literal

# Pattern for valid SQL identifiers: starts with letter or underscore,
# followed by letters, digits, or underscores. Also allows dots for
# qualified names (schema.table).
_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_#$@]*(\.[a-zA-Z_][a-zA-Z0-9_#$@]*)*$")


def validate_identifier(value: str, name: str = "identifier") -> str:
    """Validate that a value is a safe SQL identifier.

    Prevents SQL injection by ensuring identifiers only contain safe characters.
    Allows letters, digits, underscores, dots (for qualified names) and the
    ``#``, ``$`` and ``@`` characters IBM i system names may carry.
    Must start with a letter or underscore.

    Args:
        value: The identifier value to validate
        name: Human-readable name for error messages (e.g., "table name", "schema")

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        ValueError: If the identifier contains invalid characters
    """
    if not value:
        raise ValueError(f"Invalid {name}: cannot be empty")

    if not _IDENTIFIER_PATTERN.match(value):
        raise ValueError(
            f"Invalid {name}: '{value}'. "
            f"Identifiers must start with a letter or underscore and contain only "
            f"letters, digits, underscores, and dots."
        )

    return value


class BaseDatabaseAdapter(ABC):
    """Abstract base class for database adapters.

    Adapters execute the SQL compiled by query builders. DB2-class engines
    return result identifiers upper-cased regardless of how the query spelled
    them; adapters for such engines set ``identifier_case = "upper"`` so that
    :meth:`fetch_dicts` reports keys the way the engine would.
    """

    #: Casing applied to result column names ("preserve" or "upper").
    identifier_case: Literal["preserve", "upper"] = "preserve"

    #: Whether UPDATE statements accept a trailing ``FETCH FIRST 1 ROW ONLY``.
    supports_update_row_limit: bool = False

    @abstractmethod
    def execute(self, sql: str) -> Any:
        """Execute SQL and return result object.

        Args:
            sql: SQL query to execute

        Returns:
            Database-specific result object
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_dicts(self, result: Any) -> list[dict[str, Any]]:
        """Fetch all rows as dictionaries keyed by result column name.

        Args:
            result: Result object from execute()

        Returns:
            List of row dictionaries, keys cased per ``identifier_case``
        """
        raise NotImplementedError

    @abstractmethod
    def rowcount(self, result: Any) -> int:
        """Number of rows affected by an INSERT, UPDATE or DELETE.

        Args:
            result: Result object from execute()
        """
        raise NotImplementedError

    @abstractmethod
    def get_columns(self, table_name: str, schema: str | None = None) -> list[dict]:
        """Get columns for a table, matching the table name case-insensitively.

        Args:
            table_name: Name of table
            schema: Schema name (optional)

        Returns:
            List of dicts with 'column_name' and 'data_type' keys
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        raise NotImplementedError

    @property
    @abstractmethod
    def dialect(self) -> str:
        """Get SQLGlot dialect name.

        Returns:
            Dialect name (e.g., 'duckdb', 'postgres')
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def raw_connection(self) -> Any:
        """Get underlying database connection object."""
        raise NotImplementedError

    def fold_identifier(self, name: str) -> str:
        """Apply the engine's result identifier casing to a column name."""
        if self.identifier_case == "upper":
            return name.upper()
        return name
