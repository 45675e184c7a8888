"""Global registry for auto-registration of entity types."""

from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .bridge import Bridge

# Thread-local context for current bridge
_current_bridge: ContextVar["Bridge | None"] = ContextVar("current_bridge", default=None)


def get_current_bridge() -> "Bridge | None":
    """Get the current bridge from context."""
    return _current_bridge.get()


def set_current_bridge(bridge: "Bridge | None"):
    """Set the current bridge context."""
    _current_bridge.set(bridge)


def auto_register_entity(entity_type):
    """Auto-register entity type with current bridge if available."""
    bridge = get_current_bridge()
    if bridge is not None:
        # Skip types already added explicitly with add_entity()
        if entity_type.name not in bridge.graph.entities:
            bridge.add_entity(entity_type)
