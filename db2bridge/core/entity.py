"""Entity instances backed by a raw-column attribute store."""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from db2bridge.core.casts import cast_value
from db2bridge.sql.builder import column_ref
from db2bridge.validation import LazyLoadingError

if TYPE_CHECKING:
    from db2bridge.core.bridge import Bridge
    from db2bridge.core.entity_type import EntityType
    from db2bridge.relations.base import Relation

logger = logging.getLogger(__name__)

_MISSING = object()

# Attributes stored on the instance itself rather than in the attribute store
_INTERNAL = frozenset({"bridge", "entity_type", "exists", "select_all"})


class Entity:
    """One row of an entity type.

    Attributes live in a single store keyed by raw column name. Reads accept
    raw or human names; writes always land on the raw column. Attribute access
    (``item.description``) and item access (``item["ICDESC"]``) both go
    through :meth:`get` and :meth:`set`.

    Args:
        bridge: Bridge the entity reads and writes through
        entity_type: Entity type describing the table
        attributes: Raw attribute values
        exists: Whether the row was loaded from the database
    """

    def __init__(
        self,
        bridge: "Bridge",
        entity_type: "EntityType",
        attributes: Mapping[str, Any] | None = None,
        exists: bool = False,
    ):
        object.__setattr__(self, "bridge", bridge)
        object.__setattr__(self, "entity_type", entity_type)
        object.__setattr__(self, "exists", exists)
        object.__setattr__(self, "select_all", False)
        object.__setattr__(self, "_attributes", dict(attributes or {}))
        object.__setattr__(self, "_original", dict(attributes or {}) if exists else {})
        object.__setattr__(self, "_relations", {})
        object.__setattr__(self, "_extension_data", {})
        object.__setattr__(self, "_skip_mapping", False)

    # ------------------------------------------------------------------
    # Attribute access
    # ------------------------------------------------------------------

    @property
    def mapper(self):
        return self.entity_type.mapper

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        value = self.get(name, _MISSING)
        if value is not _MISSING:
            return value
        mapper = self.mapper
        if name in mapper.reverse_maps or name in mapper.all_maps:
            return None
        raise AttributeError(f"'{self.entity_type.name}' entity has no attribute or relation '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _INTERNAL or name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self.set(name, value)

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: str) -> bool:
        return self._resolve_key(name) is not None

    def __repr__(self) -> str:
        return f"<{self.entity_type.name} {self.attributes()!r}>"

    def _resolve_key(self, name: str) -> str | None:
        attributes = self._attributes
        if name in attributes:
            return name
        raw = self.mapper.translate(name)
        if raw in attributes:
            return raw
        human = self.mapper.untranslate(name)
        if human in attributes:
            return human
        return None

    def _cast(self, key: str, value: Any) -> Any:
        cast = self.entity_type.cast_for(key)
        return cast_value(value, cast) if cast else value

    def get(self, name: str, default: Any = None) -> Any:
        """Read an attribute or relation by raw or human name.

        Lookup order: raw key, translated human name, untranslated raw name,
        loaded relation, lazily loaded relation.
        """
        key = self._resolve_key(name)
        if key is not None:
            return self._cast(key, self._attributes[key])
        if name in self._relations:
            return self._relations[name]
        if self.entity_type.relations.has(name):
            return self.get_relation_value(name)
        return default

    def set(self, name: str, value: Any) -> None:
        """Write an attribute; the value is always stored under the raw column."""
        self._attributes[self.mapper.translate(name)] = value

    def fill(self, attributes: Mapping[str, Any]) -> "Entity":
        for name, value in attributes.items():
            self.set(name, value)
        return self

    def raw(self, column: str, default: Any = None) -> Any:
        """Raw attribute value without casts, matching the column case-insensitively."""
        if column in self._attributes:
            return self._attributes[column]
        upper = column.upper()
        for key, value in self._attributes.items():
            if key.upper() == upper:
                return value
        return default

    def key_values(self, columns: list[str]) -> list[Any]:
        return [self.raw(column) for column in columns]

    def pop_raw(self, column: str) -> Any:
        """Remove an attribute that is not part of the row, such as a join alias."""
        value = self._attributes.pop(column, None)
        self._original.pop(column, None)
        return value

    def raw_attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    def attributes(self) -> dict[str, Any]:
        """Attributes under human names, or raw names while casts are applied."""
        if self._skip_mapping or not self.entity_type.apply_maps_on_output:
            return dict(self._attributes)
        return self.mapper.apply(self._attributes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize attributes and loaded relations.

        Casts run against raw column names first; human names are applied
        afterwards.
        """
        self._skip_mapping = True
        try:
            data = {key: self._cast(key, value) for key, value in self.attributes().items()}
        finally:
            self._skip_mapping = False

        if self.entity_type.apply_maps_on_output:
            data = self.mapper.apply(data)

        for name, value in self._relations.items():
            if isinstance(value, Entity):
                data[name] = value.to_dict()
            elif isinstance(value, list):
                data[name] = [item.to_dict() if isinstance(item, Entity) else item for item in value]
            else:
                data[name] = value
        return data

    # ------------------------------------------------------------------
    # Dirty tracking and persistence
    # ------------------------------------------------------------------

    def original(self) -> dict[str, Any]:
        return dict(self._original)

    def dirty(self) -> dict[str, Any]:
        """Raw columns whose value differs from the last synced state."""
        return {
            key: value
            for key, value in self._attributes.items()
            if key not in self._original or self._original[key] != value
        }

    def is_dirty(self, *names: str) -> bool:
        dirty = self.dirty()
        if not names:
            return bool(dirty)
        return any(self.mapper.translate(name) in dirty for name in names)

    def sync_original(self) -> "Entity":
        self._original = dict(self._attributes)
        return self

    def _base_columns(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """Attributes that are columns of the base table.

        Rows fetched with extensions joined also carry extension columns, and
        with ``select_all`` every column of the extension table. The catalogue
        decides what belongs to the base table; without one, mapped extension
        columns are left out.
        """
        known = self.bridge.table_columns(self.entity_type.table)
        if known:
            return {key: value for key, value in attributes.items() if key.upper() in known}
        extension_columns = {raw for ext in self.entity_type.extensions for raw in ext.maps}
        return {key: value for key, value in attributes.items() if key not in extension_columns}

    def _keyed_query(self):
        """Unscoped query matching this row by every original base column.

        Legacy tables have no primary keys, so the whole original row is the key.
        """
        query = self.entity_type.query(self.bridge).without_scopes()
        for key, value in self._base_columns(self._original).items():
            query.where(column_ref(key), "=", value)
        return query.limit(1)

    def save(self) -> bool:
        """Insert a new row or update the dirty columns of an existing one."""
        query = self.entity_type.query(self.bridge).without_scopes()
        if not self.exists:
            query.insert(self._attributes)
            self.exists = True
            self.sync_original()
            return True

        dirty = self._base_columns(self.dirty())
        if dirty:
            self._keyed_query().update(dirty)
        self.sync_original()
        return True

    def update(self, attributes: Mapping[str, Any] | None = None, **values: Any) -> bool:
        self.fill({**(attributes or {}), **values})
        return self.save()

    def delete(self) -> bool:
        if not self.exists:
            return False
        self._keyed_query().delete()
        self.exists = False
        return True

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    @property
    def relations(self) -> dict[str, Any]:
        return dict(self._relations)

    def relation_loaded(self, name: str) -> bool:
        return name in self._relations

    def set_relation(self, name: str, value: Any) -> "Entity":
        self._relations[name] = value
        return self

    def relation(self, name: str) -> "Relation":
        """Relation query constrained to this entity, for further filtering."""
        relation = self.entity_type.relation(self.bridge, name)
        if self.select_all:
            relation.query.select_all()
        relation.add_constraints(self)
        return relation

    def get_relation_value(self, name: str) -> Any:
        """Load a relation on first access and cache it."""
        if name not in self._relations:
            if self.bridge.prevent_lazy_loading:
                raise LazyLoadingError(self.entity_type.name, name)
            logger.debug("Lazy loading %s.%s", self.entity_type.name, name)
            self._relations[name] = self.relation(name).get_results()
        return self._relations[name]

    def load(self, *names: str, **constraints) -> "Entity":
        """Eager load relations onto this already fetched entity."""
        query = self.entity_type.query(self.bridge).with_(*names, **constraints)
        if self.select_all:
            query.select_all()
        query.eager_load_relations([self])
        return self

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    def load_extension(self, name: str) -> dict[str, Any] | None:
        """Fetch the first extension row for this entity without joining it."""
        return self.entity_type.extension_composer.load(self, name)

    def extension_data(self, name: str) -> dict[str, Any] | None:
        extension = self.entity_type.get_extension(name)
        if extension is None:
            return None
        return self._extension_data.get(extension.name)

    def set_extension_data(self, name: str, data: dict[str, Any] | None) -> None:
        self._extension_data[name] = data

    def count_extension_records(self, name: str) -> int:
        return self.entity_type.extension_composer.count_records(self, name)

    def has_extension_records(self, name: str) -> bool:
        return self.count_extension_records(name) > 0

    def has_multiple_extension_records(self, name: str) -> bool:
        return self.count_extension_records(name) > 1
