"""Database adapter abstraction layer."""

from db2bridge.db.base import BaseDatabaseAdapter

__all__ = ["BaseDatabaseAdapter"]


def __getattr__(name):
    """Lazy import database adapters to avoid importing optional dependencies."""
    if name == "DuckDBAdapter":
        from db2bridge.db.duckdb import DuckDBAdapter

        return DuckDBAdapter
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
