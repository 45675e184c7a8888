"""Bidirectional mapping between raw column names and human field names."""

from collections.abc import Mapping
from typing import Any


class NameMapper:
    """Translates human field names to raw columns and back.

    The base map is merged with zero or more extension maps. On a raw column
    present in several maps, the base map wins, then extensions in the order
    they were added. Human names need not be unique; the reverse index keeps the
    first raw column seen for each human name.

    Args:
        maps: Raw column name -> human field name for the base table
    """

    def __init__(self, maps: Mapping[str, str] | None = None):
        self._maps: dict[str, str] = dict(maps or {})
        self._extension_maps: dict[str, dict[str, str]] = {}
        self._all_maps: dict[str, str] | None = None
        self._reverse_maps: dict[str, str] | None = None

    def _invalidate(self) -> None:
        self._all_maps = None
        self._reverse_maps = None

    @property
    def maps(self) -> dict[str, str]:
        """Base table mappings (raw -> human)."""
        return dict(self._maps)

    def set_maps(self, maps: Mapping[str, str]) -> None:
        self._maps = dict(maps)
        self._invalidate()

    def add_extension(self, name: str, maps: Mapping[str, str]) -> None:
        """Merge an extension table's mappings after the existing ones."""
        self._extension_maps[name] = dict(maps)
        self._invalidate()

    def remove_extension(self, name: str) -> None:
        if self._extension_maps.pop(name, None) is not None:
            self._invalidate()

    @property
    def all_maps(self) -> dict[str, str]:
        """Base and extension mappings merged (raw -> human)."""
        if self._all_maps is None:
            merged = dict(self._maps)
            for ext_maps in self._extension_maps.values():
                for raw, human in ext_maps.items():
                    merged.setdefault(raw, human)
            self._all_maps = merged
        return self._all_maps

    @property
    def reverse_maps(self) -> dict[str, str]:
        """Human -> raw index over :attr:`all_maps`, first raw column wins."""
        if self._reverse_maps is None:
            reverse: dict[str, str] = {}
            for raw, human in self.all_maps.items():
                reverse.setdefault(human, raw)
            self._reverse_maps = reverse
        return self._reverse_maps

    def has_maps(self) -> bool:
        return bool(self._maps)

    def translate(self, name: Any) -> Any:
        """Human name (or list of names) to raw column; unmapped names pass through."""
        if isinstance(name, (list, tuple)):
            return [self.translate(n) for n in name]
        if not isinstance(name, str):
            return name
        return self.reverse_maps.get(name, name)

    def translate_qualified(self, name: Any) -> Any:
        """Translate only the segment after the last ``.`` of a qualified name.

        ``items.item_number`` becomes ``items.ICITEM``; unqualified names are
        translated as a whole. Lists are translated element-wise.
        """
        if isinstance(name, (list, tuple)):
            return [self.translate_qualified(n) for n in name]
        if not isinstance(name, str):
            return name
        prefix, dot, column = name.rpartition(".")
        if not dot:
            return self.translate(name)
        return f"{prefix}.{self.translate(column)}"

    def untranslate(self, name: Any) -> Any:
        """Raw column (or list of columns) to human name; unmapped names pass through."""
        if isinstance(name, (list, tuple)):
            return [self.untranslate(n) for n in name]
        if not isinstance(name, str):
            return name
        return self.all_maps.get(name, name)

    def apply(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Rename the keys of a raw row to human names.

        When several raw columns in the row map to the same human name, the
        first one in map order wins (base map, then extensions), the same
        column :meth:`translate` picks. An unmapped key equal to a human name
        is dropped when a mapped column supplies that name.
        """
        all_maps = self.all_maps
        owners: dict[str, str] = {}
        for raw, human in all_maps.items():
            if raw in row:
                owners.setdefault(human, raw)

        result: dict[str, Any] = {}
        for key, value in row.items():
            human = all_maps.get(key)
            if human is None:
                if key not in owners:
                    result.setdefault(key, value)
            elif owners[human] == key:
                result[human] = value
        return result

    def mapped_columns(self, extensions: list[str] | None = None) -> list[str]:
        """Raw columns of the base map plus those of the named extensions."""
        columns = list(self._maps)
        for name in extensions or []:
            for raw in self._extension_maps.get(name, {}):
                if raw not in columns:
                    columns.append(raw)
        return columns


class AliasTable:
    """Restores the caller's spelling of projection aliases on result rows.

    DB2-class engines return every identifier upper-cased. Each named
    projection records ``upper(alias) -> alias``; rows are then normalised
    by looking their keys up case-insensitively. A later alias whose upper
    form collides with an earlier one replaces it.
    """

    def __init__(self):
        self._aliases: dict[str, str] = {}

    def __bool__(self) -> bool:
        return bool(self._aliases)

    def __contains__(self, alias: str) -> bool:
        return alias.upper() in self._aliases

    def record(self, alias: str) -> None:
        self._aliases[alias.upper()] = alias

    def copy(self) -> "AliasTable":
        table = AliasTable()
        table._aliases = dict(self._aliases)
        return table

    def normalize(self, row: Mapping[str, Any]) -> dict[str, Any]:
        if not self._aliases:
            return dict(row)
        return {self._aliases.get(key.upper(), key): value for key, value in row.items()}
