"""Automatic filtering of inactive and other-company rows.

Legacy tables flag deleted rows with a delete code and hold rows for several
companies. Entity types that map ``delete_code`` or ``company_number`` get
global scopes restricting queries to active rows of the default company.
"""

from typing import TYPE_CHECKING, Any

from db2bridge.sql.builder import column_ref

if TYPE_CHECKING:
    from db2bridge.core.query import EntityQuery

ACTIVE_SCOPE = "active"
COMPANY_SCOPE = "company"


def base_column_for(query: "EntityQuery", human: str) -> str | None:
    """Raw base table column mapped to ``human``, if any."""
    for raw, name in query.mapper.maps.items():
        if name == human:
            return raw
    return None


def active_scope(query: "EntityQuery") -> None:
    raw = base_column_for(query, "delete_code")
    if raw is None:
        return
    query.where(column_ref(f"{query.table}.{raw}"), "=", query.entity_type.active_delete_code)


def company_scope(query: "EntityQuery") -> None:
    raw = base_column_for(query, "company_number")
    if raw is None:
        return
    query.where(column_ref(f"{query.table}.{raw}"), "=", query.entity_type.default_company)


def for_company(query: "EntityQuery", company: Any) -> "EntityQuery":
    """Replace the default company filter with an explicit company."""
    query.without_scope(COMPANY_SCOPE)
    raw = base_column_for(query, "company_number")
    if raw is None:
        return query
    return query.where(column_ref(f"{query.table}.{raw}"), "=", company)
