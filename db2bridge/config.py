"""Configuration file format for db2bridge."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class DuckDBConnection(BaseModel):
    """DuckDB connection configuration."""

    type: Literal["duckdb"] = "duckdb"
    path: str = Field(..., description="Path to DuckDB database file or :memory:")
    identifier_case: Literal["preserve", "upper"] = Field(
        default="preserve", description="Casing of result column names ('upper' behaves like DB2)"
    )


Connection = DuckDBConnection


class EntityDefaults(BaseModel):
    """Defaults applied to entity definitions that do not set these keys."""

    auto_select_mapped: bool = Field(default=True, description="Select only mapped columns by default")
    apply_maps_on_output: bool = Field(default=True, description="Serialize attributes under human names")
    filter_active_only: bool = Field(default=True, description="Only return active rows")
    active_delete_code: str = Field(default="A", description="delete_code value of active rows")
    filter_by_company: bool = Field(default=True, description="Only return rows of the default company")
    default_company: str | int = Field(default="1", description="Default company_number")


class QueryLogConfig(BaseModel):
    """Query log settings."""

    enabled: bool = Field(default=False, description="Record executed SQL from startup")
    channels: list[Literal["stderr", "default"]] = Field(
        default_factory=lambda: ["default"], description="Channels to echo SQL to"
    )


class BridgeConfig(BaseModel):
    """db2bridge configuration file format.

    Can be saved as db2bridge.yaml or db2bridge.json.

    Example YAML:
        entities_dir: ./entities
        connection:
          type: duckdb
          path: data/legacy.db
          identifier_case: upper
        defaults:
          default_company: "1"
        query_log:
          enabled: true
          channels: [stderr]
    """

    entities_dir: str = Field(default=".", description="Directory containing entity definition files")
    connection: Connection | None = Field(default=None, description="Database connection configuration")
    defaults: EntityDefaults = Field(default_factory=EntityDefaults, description="Entity definition defaults")
    query_log: QueryLogConfig = Field(default_factory=QueryLogConfig, description="Query log settings")
    prevent_lazy_loading: bool = Field(default=False, description="Raise on lazy relation loads")

    def resolve_paths(self, base_dir: Path | None = None) -> "BridgeConfig":
        """Resolve relative paths to absolute paths.

        Args:
            base_dir: Base directory for resolving relative paths (defaults to cwd)

        Returns:
            New config with resolved paths
        """
        base = base_dir or Path.cwd()

        entities_path = Path(self.entities_dir)
        if not entities_path.is_absolute():
            entities_path = (base / entities_path).resolve()

        connection = self.connection
        if connection and connection.path != ":memory:":
            db_p = Path(connection.path)
            if not db_p.is_absolute():
                db_p = (base / db_p).resolve()
            connection = connection.model_copy(update={"path": str(db_p)})

        return self.model_copy(update={"entities_dir": str(entities_path), "connection": connection})


def load_config(config_path: Path) -> BridgeConfig:
    """Load configuration from YAML or JSON file.

    Args:
        config_path: Path to config file (db2bridge.yaml or db2bridge.json)

    Returns:
        Loaded and validated configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file format is invalid
    """
    import json

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        import yaml

        with open(config_path) as f:
            data = yaml.safe_load(f)
    elif suffix == ".json":
        with open(config_path) as f:
            data = json.load(f)
    else:
        raise ValueError(f"Unsupported config format: {suffix}. Use .yaml, .yml, or .json")

    config = BridgeConfig(**(data or {}))

    # Resolve relative paths relative to config file directory
    return config.resolve_paths(config_path.parent)


def find_config(start_dir: Path | None = None) -> Path | None:
    """Find config file by searching up the directory tree.

    Searches for db2bridge.yaml, db2bridge.yml, or db2bridge.json.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    current = (start_dir or Path.cwd()).resolve()

    # Search up to root
    while True:
        for name in ["db2bridge.yaml", "db2bridge.yml", "db2bridge.json"]:
            config_path = current / name
            if config_path.exists():
                return config_path

        parent = current.parent
        if parent == current:
            # Reached root
            break
        current = parent

    return None


def build_connection_string(config: BridgeConfig) -> str:
    """Build database connection string from config.

    Args:
        config: db2bridge configuration

    Returns:
        Connection string for Bridge
    """
    if not config.connection:
        return "duckdb:///:memory:"

    if isinstance(config.connection, DuckDBConnection):
        return f"duckdb:///{config.connection.path}"
    raise ValueError(f"Unknown connection type: {type(config.connection)}")
