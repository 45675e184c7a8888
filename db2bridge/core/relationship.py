"""Relationship definitions between entity types."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

RelationshipType = Literal["many_to_one", "one_to_one", "one_to_many", "one_to_one_through", "one_to_many_through"]

THROUGH_TYPES = ("one_to_one_through", "one_to_many_through")


def _columns(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class Relationship(BaseModel):
    """Represents a relationship between entity types.

    Every key accepts one column or an ordered list of columns; lists of equal
    length pair up position by position to form a composite key. Column names
    may be raw or human; they are translated with the mapper of the entity that
    owns them.

    Relationship types:
    - many_to_one: this entity holds ``foreign_key`` referencing ``primary_key`` on ``related``
    - one_to_one: ``related`` holds ``foreign_key`` referencing ``primary_key`` here, one row
    - one_to_many: ``related`` holds ``foreign_key`` referencing ``primary_key`` here
    - one_to_one_through / one_to_many_through: ``through`` holds
      ``through_foreign_key`` referencing ``primary_key`` here, and ``related``
      holds ``foreign_key`` referencing ``through_primary_key`` on ``through``

    ``primary_key`` defaults to the ``foreign_key`` column names (and
    ``through_primary_key`` to the ``foreign_key`` names for through types),
    matching tables that share column names across keys.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Accessor name of the relation on the entity")
    type: RelationshipType = Field(..., description="Type of relationship")
    related: str = Field(..., description="Name of the related entity type")
    foreign_key: str | list[str] = Field(..., description="Referencing key column(s)")
    primary_key: str | list[str] | None = Field(default=None, description="Referenced key column(s)")
    through: str | None = Field(default=None, description="Intermediate entity type for through relationships")
    through_foreign_key: str | list[str] | None = Field(
        default=None, description="Key column(s) on the intermediate entity referencing this entity"
    )
    through_primary_key: str | list[str] | None = Field(
        default=None, description="Key column(s) on the intermediate entity referenced by the related entity"
    )
    default: Any = Field(
        default=None,
        description="Value for an unmatched to-one relation: None, True (empty entity) or a dict of attributes",
    )

    @model_validator(mode="after")
    def _check_keys(self) -> "Relationship":
        if self.type in THROUGH_TYPES:
            if not self.through:
                raise ValueError(f"Relationship '{self.name}': type '{self.type}' requires 'through'")
            if self.through_foreign_key is None:
                raise ValueError(f"Relationship '{self.name}': type '{self.type}' requires 'through_foreign_key'")
            self._check_pair("through_foreign_key", self.through_foreign_key, "primary_key", self.primary_key)
            self._check_pair("foreign_key", self.foreign_key, "through_primary_key", self.through_primary_key)
        elif self.through or self.through_foreign_key is not None or self.through_primary_key is not None:
            raise ValueError(f"Relationship '{self.name}': through keys are only valid for through types")
        else:
            self._check_pair("foreign_key", self.foreign_key, "primary_key", self.primary_key)
        return self

    def _check_pair(self, left_name: str, left: Any, right_name: str, right: Any) -> None:
        if right is None:
            if not _columns(left):
                raise ValueError(f"Relationship '{self.name}': '{left_name}' must name at least one column")
            return
        if isinstance(left, list) != isinstance(right, list):
            raise ValueError(
                f"Relationship '{self.name}': '{left_name}' and '{right_name}' must both be lists or both be "
                f"single columns"
            )
        if len(_columns(left)) != len(_columns(right)):
            raise ValueError(
                f"Relationship '{self.name}': '{left_name}' has {len(_columns(left))} column(s) but "
                f"'{right_name}' has {len(_columns(right))}"
            )
        if not _columns(left):
            raise ValueError(f"Relationship '{self.name}': '{left_name}' must name at least one column")

    @property
    def is_through(self) -> bool:
        return self.type in THROUGH_TYPES

    @property
    def is_to_many(self) -> bool:
        return self.type in ("one_to_many", "one_to_many_through")

    @property
    def foreign_key_columns(self) -> list[str]:
        """Get foreign key as list of columns (normalizes single string to list)."""
        return _columns(self.foreign_key)

    @property
    def primary_key_columns(self) -> list[str]:
        """Referenced columns; for through types, the local columns on this entity."""
        if self.primary_key is not None:
            return _columns(self.primary_key)
        if self.is_through:
            return _columns(self.through_foreign_key)
        return self.foreign_key_columns

    @property
    def through_foreign_key_columns(self) -> list[str]:
        return _columns(self.through_foreign_key)

    @property
    def through_primary_key_columns(self) -> list[str]:
        if self.through_primary_key is not None:
            return _columns(self.through_primary_key)
        return self.foreign_key_columns
