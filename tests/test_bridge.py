"""Tests for the bridge API and entity registry."""

import pytest

from db2bridge import Bridge, EntityType, EntityValidationError
from db2bridge.config import BridgeConfig, DuckDBConnection
from db2bridge.core.registry import get_current_bridge


def test_context_manager_auto_registers():
    with Bridge() as bridge:
        assert get_current_bridge() is bridge
        EntityType(name="items", table="ITMAST", maps={"ICITEM": "item_number"})

    assert get_current_bridge() is None
    assert bridge.list_entities() == ["items"]


def test_auto_register_flag():
    bridge = Bridge(auto_register=True)
    EntityType(name="items", table="ITMAST")

    assert "items" in bridge.list_entities()


def test_add_entity_validates():
    bridge = Bridge()

    with pytest.raises(EntityValidationError) as exc_info:
        bridge.add_entity(
            EntityType(
                name="broken",
                table="ITMAST; DROP TABLE x",
                maps={"ICITEM": "item_number", "IC-DESC": "description"},
                relationships=[
                    {"name": "item_number", "type": "many_to_one", "related": "x", "foreign_key": "A"}
                ],
            )
        )

    message = str(exc_info.value)
    assert message.startswith("Entity 'broken' validation failed:")
    assert "Invalid table name" in message
    assert "Invalid column name: 'IC-DESC'" in message
    assert "shadows a mapped column" in message


def test_duplicate_entity():
    bridge = Bridge()
    bridge.add_entity(EntityType(name="items", table="ITMAST"))

    with pytest.raises(ValueError, match="already exists"):
        bridge.add_entity(EntityType(name="items", table="ITMAST"))


def test_unknown_entity(bridge):
    with pytest.raises(KeyError):
        bridge.get_entity("missing")
    with pytest.raises(KeyError):
        bridge.query("missing")


def test_validate_graph():
    bridge = Bridge()
    bridge.add_entity(
        EntityType(
            name="items",
            table="ITMAST",
            relationships=[
                {"name": "warehouse", "type": "many_to_one", "related": "warehouses", "foreign_key": "ICWHSE"},
                {
                    "name": "bins",
                    "type": "one_to_many_through",
                    "related": "bins",
                    "through": "locations",
                    "through_foreign_key": "LCITEM",
                    "foreign_key": "BNLOC",
                    "primary_key": "ICITEM",
                    "through_primary_key": "LCCODE",
                },
            ],
        )
    )

    errors = bridge.validate()
    assert "references unknown entity 'warehouses'" in errors[0]
    assert "references unknown entity 'bins'" in errors[1]
    assert "goes through unknown entity 'locations'" in errors[2]


def test_graph_edges(bridge):
    edges = bridge.graph.edges("departments")

    assert [e.name for e in edges] == ["categories", "items", "first_item", "items_single"]
    assert {e.through for e in edges} == {None, "categories"}
    assert bridge.validate() == []


def test_table_columns_are_read_from_the_catalogue(bridge):
    assert {"ICITEM", "ICDESC", "ICCOMP"} <= bridge.table_columns("test_items")
    assert bridge.table_columns("main.test_items") == bridge.table_columns("test_items")
    assert bridge.table_columns("missing_table") == frozenset()


def test_raw_expression_is_not_translated(bridge):
    costs = bridge.query("items").order_by("item_number").limit(1).pluck(bridge.raw("ICCOST * 2"))

    assert costs == [200]


def test_bridge_load_on_empty_list(bridge):
    assert bridge.load([], "category") == []


def test_unsupported_connection():
    with pytest.raises(NotImplementedError):
        Bridge("db2://host/LIB")


def test_from_config(tmp_path):
    entities = tmp_path / "entities"
    entities.mkdir()
    (entities / "items.yml").write_text(
        "entities:\n  - name: items\n    table: test_items\n    maps:\n      ICITEM: item_number\n"
    )
    config = BridgeConfig(
        entities_dir=str(entities),
        connection=DuckDBConnection(path=str(tmp_path / "legacy.duckdb"), identifier_case="upper"),
        query_log={"enabled": True, "channels": ["default"]},
        prevent_lazy_loading=True,
    )

    bridge = Bridge.from_config(config)
    try:
        assert bridge.list_entities() == ["items"]
        assert bridge.adapter.identifier_case == "upper"
        assert bridge.query_log.enabled
        assert bridge.prevent_lazy_loading
        assert bridge.connection_string == f"duckdb:///{tmp_path / 'legacy.duckdb'}"
    finally:
        bridge.close()


def test_from_config_without_entities_dir(tmp_path):
    bridge = Bridge.from_config(BridgeConfig(entities_dir=str(tmp_path / "missing")))

    assert bridge.list_entities() == []
    assert bridge.connection_string == "duckdb:///:memory:"
