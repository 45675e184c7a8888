"""Loaders for entity type definition files."""

import logging
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from db2bridge.core.entity_type import EntityType

if TYPE_CHECKING:
    from db2bridge.config import EntityDefaults
    from db2bridge.core.bridge import Bridge


def substitute_env_vars(content: str) -> str:
    """Substitute environment variables in YAML content.

    Supports:
    - ${ENV_VAR} - replaced with environment variable value
    - ${ENV_VAR:-default} - replaced with value or default if not set
    - $ENV_VAR - simple form without braces

    Unset variables without a default are left as written.

    Examples:
        >>> os.environ['LEGACY_SCHEMA'] = 'PRODLIB'
        >>> substitute_env_vars('table: ${LEGACY_SCHEMA}.ITEMS')
        'table: PRODLIB.ITEMS'
        >>> substitute_env_vars('table: ${MISSING:-TESTLIB}.ITEMS')
        'table: TESTLIB.ITEMS'
    """

    def replace_braced(match):
        name, sep, default = match.group(1).partition(":-")
        value = os.environ.get(name)
        if value is not None:
            return value
        return default if sep else match.group(0)

    content = re.sub(r"\$\{([^}]+)\}", replace_braced, content)

    def replace_simple(match):
        return os.environ.get(match.group(1), match.group(0))

    return re.sub(r"\$([A-Z_][A-Z0-9_]*)", replace_simple, content)


def parse_entities(path: str | Path, defaults: "EntityDefaults | None" = None) -> list[EntityType]:
    """Parse entity type definitions from a YAML file.

    File structure:
    ```yaml
    entities:
      - name: items
        table: ${LEGACY_SCHEMA:-TESTLIB}.ITEMS
        maps:
          ICITEM: item_number
        extensions:
          - table: ITEMS_EXT
            join: {IXITEM: ICITEM}
            maps:
              IXNOTE: note
        relationships:
          - name: warehouse
            type: many_to_one
            related: warehouses
            foreign_key: ICWHSE
            primary_key: WHWHSE
    ```

    Args:
        path: Path to the definition file
        defaults: Values for the filter and projection settings an entry does not set

    Returns:
        Parsed entity types, not yet registered with any bridge
    """
    path = Path(path)
    data = yaml.safe_load(substitute_env_vars(path.read_text())) or {}

    base: dict[str, Any] = defaults.model_dump() if defaults is not None else {}
    entities = []
    for definition in data.get("entities") or []:
        entities.append(EntityType(**{**base, **definition}))
    return entities


def load_from_directory(
    bridge: "Bridge", directory: str | Path, defaults: "EntityDefaults | None" = None
) -> list[str]:
    """Load all entity definition files under a directory into a bridge.

    Files that fail to parse are logged and skipped; entity names that are
    already registered are left as they are.

    Args:
        bridge: Bridge to add entity types to
        directory: Directory searched recursively for .yml and .yaml files
        defaults: Entity definition defaults (see :func:`parse_entities`)

    Returns:
        Names of the entity types added

    Example:
        >>> bridge = Bridge()
        >>> load_from_directory(bridge, "entities/")
        ['items', 'warehouses']
    """
    directory = Path(directory)
    if not directory.exists():
        raise ValueError(f"Directory {directory} does not exist")

    added = []
    for file_path in sorted(directory.rglob("*")):
        if not file_path.is_file() or file_path.suffix.lower() not in {".yml", ".yaml"}:
            continue
        try:
            entity_types = parse_entities(file_path, defaults=defaults)
        except Exception as e:
            logging.warning("Could not parse %s: %s", file_path, e)
            continue

        for entity_type in entity_types:
            if entity_type.name in bridge.graph.entities:
                continue
            bridge.add_entity(entity_type)
            added.append(entity_type.name)
    return added
