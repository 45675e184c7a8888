"""Entity type definitions."""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, PrivateAttr

from db2bridge.core.casts import DEFAULT_MAPPED_CASTS, CastType
from db2bridge.core.entity import Entity
from db2bridge.core.extension import Extension, ExtensionComposer
from db2bridge.core.filtering import ACTIVE_SCOPE, COMPANY_SCOPE, active_scope, company_scope
from db2bridge.core.name_map import NameMapper
from db2bridge.core.query import AUTO_SELECT_SCOPE, EntityQuery, auto_select_mapped_scope
from db2bridge.core.relationship import Relationship
from db2bridge.relations.resolver import RelationResolver

if TYPE_CHECKING:
    from db2bridge.core.bridge import Bridge
    from db2bridge.relations.base import Relation


class EntityType(BaseModel):
    """Entity type (legacy table) definition.

    An entity type names a physical table, maps its raw columns to human field
    names and declares extension tables and relationships. It assembles three
    services by composition: a :class:`NameMapper`, a :class:`RelationResolver`
    and an :class:`ExtensionComposer`. Auto-registers with the current bridge
    context if available.

    Example:
        >>> items = EntityType(
        ...     name="items",
        ...     table="test_items",
        ...     maps={"ICITEM": "item_number", "ICDESC": "description"},
        ... )
    """

    name: str = Field(..., description="Unique entity type name")
    table: str = Field(..., description="Physical table name (schema.table)")
    description: str | None = Field(None, description="Human-readable description")

    maps: dict[str, str] = Field(default_factory=dict, description="Raw column -> human field name")
    extensions: list[Extension] = Field(default_factory=list, description="Extension tables")
    relationships: list[Relationship] = Field(default_factory=list, description="Relationships to other entities")
    casts: dict[str, CastType] = Field(
        default_factory=dict, description="Attribute casts keyed by raw or human column name"
    )

    auto_select_mapped: bool = Field(True, description="Select only mapped columns when none are selected")
    apply_maps_on_output: bool = Field(True, description="Serialize attributes under human names")
    filter_active_only: bool = Field(True, description="Only return rows whose delete_code is active")
    active_delete_code: str = Field("A", description="delete_code value of active rows")
    filter_by_company: bool = Field(True, description="Only return rows of the default company")
    default_company: str | int = Field("1", description="company_number value of the default company")

    _mapper: NameMapper = PrivateAttr()
    _relations: RelationResolver = PrivateAttr()
    _extension_composer: ExtensionComposer = PrivateAttr()
    _resolved_casts: dict[str, str] = PrivateAttr()

    def __init__(self, **data):
        super().__init__(**data)

        # Auto-register with current bridge if in context
        from .registry import auto_register_entity

        auto_register_entity(self)

    def model_post_init(self, __context: Any) -> None:
        self._mapper = NameMapper(self.maps)
        for extension in self.extensions:
            self._mapper.add_extension(extension.name, extension.maps)
        self._relations = RelationResolver(self.relationships, entity_name=self.name)
        self._extension_composer = ExtensionComposer(self.extensions)

        casts = {self._mapper.translate(column): cast for column, cast in self.casts.items()}
        for human, cast in DEFAULT_MAPPED_CASTS.items():
            raw = self._mapper.translate(human)
            # Only columns that are actually mapped
            if raw != human and raw not in casts:
                casts[raw] = cast
        self._resolved_casts = casts

    def __hash__(self) -> int:
        return hash(self.name)

    @property
    def mapper(self) -> NameMapper:
        return self._mapper

    @property
    def relations(self) -> RelationResolver:
        return self._relations

    @property
    def extension_composer(self) -> ExtensionComposer:
        return self._extension_composer

    @property
    def resolved_casts(self) -> dict[str, str]:
        """Casts keyed by raw column, including default mapped casts."""
        return dict(self._resolved_casts)

    def cast_for(self, column: str) -> str | None:
        """Cast declared for a raw column, if any."""
        return self._resolved_casts.get(column)

    def get_relationship(self, name: str) -> Relationship | None:
        """Get relationship by name."""
        for relationship in self.relationships:
            if relationship.name == name:
                return relationship
        return None

    def get_extension(self, name: str) -> Extension | None:
        """Get extension by name or table."""
        return self._extension_composer.get(name)

    def global_scopes(self) -> dict[str, Callable[[EntityQuery], None]]:
        """Scopes applied to every query of this type, in order."""
        scopes: dict[str, Callable[[EntityQuery], None]] = {}
        if self.auto_select_mapped:
            scopes[AUTO_SELECT_SCOPE] = auto_select_mapped_scope
        if self.filter_active_only:
            scopes[ACTIVE_SCOPE] = active_scope
        if self.filter_by_company:
            scopes[COMPANY_SCOPE] = company_scope
        return scopes

    def query(self, bridge: "Bridge") -> EntityQuery:
        return EntityQuery(bridge, self)

    def new(self, bridge: "Bridge", attributes: dict[str, Any] | None = None) -> Entity:
        """Create an unsaved entity, translating attribute names."""
        entity = Entity(bridge, self)
        if attributes:
            entity.fill(attributes)
        return entity

    def hydrate(self, bridge: "Bridge", row: dict[str, Any], select_all: bool = False) -> Entity:
        """Build a persisted entity from a fetched row."""
        entity = Entity(bridge, self, attributes=row, exists=True)
        entity.select_all = select_all
        return entity

    def relation(self, bridge: "Bridge", name: str) -> "Relation":
        """Build a fresh relation object for the named relationship."""
        return self._relations.relation(bridge, self, name)
