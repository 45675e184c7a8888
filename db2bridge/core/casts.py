"""Attribute value casts."""

from collections.abc import Callable
from typing import Any, Literal

CastType = Literal["integer", "float", "string", "boolean"]

# Human field names cast by default whenever an entity maps them.
DEFAULT_MAPPED_CASTS: dict[str, CastType] = {
    "company_number": "integer",
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "y", "yes")
    return bool(value)


def _to_string(value: Any) -> str:
    # Fixed-width CHAR columns come back space padded
    return str(value).rstrip() if isinstance(value, str) else str(value)


_CASTERS: dict[str, Callable[[Any], Any]] = {
    "integer": lambda v: int(str(v).strip()) if isinstance(v, str) else int(v),
    "float": lambda v: float(str(v).strip()) if isinstance(v, str) else float(v),
    "string": _to_string,
    "boolean": _to_bool,
}


def cast_value(value: Any, cast: str) -> Any:
    """Cast a raw attribute value.

    ``None`` is never cast. Blank strings cast to ``None`` for numeric casts.

    Raises:
        ValueError: If the cast type is unknown
    """
    caster = _CASTERS.get(cast)
    if caster is None:
        raise ValueError(f"Unknown cast type '{cast}'. Must be one of: {', '.join(_CASTERS)}")
    if value is None:
        return None
    if cast in ("integer", "float") and isinstance(value, str) and not value.strip():
        return None
    return caster(value)


def is_valid_cast(cast: str) -> bool:
    return cast in _CASTERS
