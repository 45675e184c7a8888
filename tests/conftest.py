"""Pytest configuration and fixtures."""

import pytest

from db2bridge import Bridge, EntityType
from db2bridge.db.duckdb import DuckDBAdapter

SCHEMA = """
CREATE TABLE test_items (
    ICITEM VARCHAR, ICDESC VARCHAR, ICCOMP VARCHAR DEFAULT '1', ICDLTC VARCHAR DEFAULT 'A',
    ICCOST INTEGER DEFAULT 0, ICDATE INTEGER DEFAULT 0
);
CREATE TABLE test_item_extensions (EXITEM VARCHAR, EXCOMP VARCHAR, EXDATA VARCHAR, EXNOTE VARCHAR);
CREATE TABLE test_item_details (DTITEM VARCHAR, DTINFO VARCHAR);
CREATE TABLE test_warehouses (WHCOMP VARCHAR, WHCODE VARCHAR, WHDESC VARCHAR, WHDLTC VARCHAR DEFAULT 'A');
CREATE TABLE test_departments (
    DPCODE VARCHAR, DPNAME VARCHAR, DPCOMP VARCHAR DEFAULT '1', DPDLTC VARCHAR DEFAULT 'A'
);
CREATE TABLE test_categories (
    CTCODE VARCHAR, CTNAME VARCHAR, CTCOMP VARCHAR DEFAULT '1', CTDEPT VARCHAR, CTDLTC VARCHAR DEFAULT 'A'
);
CREATE TABLE test_items_rel (
    ITCODE VARCHAR, ITNAME VARCHAR, ITCAT VARCHAR, ITCOMP VARCHAR DEFAULT '1', ITDLTC VARCHAR DEFAULT 'A'
);

INSERT INTO test_items VALUES
    ('ITEM001', 'Widget', '1', 'A', 100, 20240115),
    ('ITEM002', 'Gadget', '1', 'A', 250, 20240201),
    ('ITEM003', 'Old part', '1', 'D', 50, 0),
    ('ITEM004', 'Other company', '2', 'A', 75, 0),
    ('ITEM005', 'Bare item', '1', 'A', 10, 0);
INSERT INTO test_item_extensions VALUES
    ('ITEM001', '1', 'ext one', 'note one'),
    ('ITEM002', '1', 'ext two a', NULL),
    ('ITEM002', '1', 'ext two b', NULL);
INSERT INTO test_item_details VALUES ('ITEM001', 'detail one');
INSERT INTO test_warehouses VALUES
    ('1', 'MAIN', 'Main warehouse', 'A'),
    ('1', 'EAST', 'East warehouse', 'A'),
    ('2', 'MAIN', 'Company two warehouse', 'A');
INSERT INTO test_departments VALUES
    ('D1', 'Hardware', '1', 'A'),
    ('D2', 'Software', '1', 'A'),
    ('D3', 'Empty', '1', 'A');
INSERT INTO test_categories VALUES
    ('C1', 'Tools', '1', 'D1', 'A'),
    ('C2', 'Parts', '1', 'D1', 'A'),
    ('C1', 'Tools (company 2)', '2', 'D1', 'A'),
    ('C3', 'Apps', '1', 'D2', 'A'),
    ('C4', 'Unused', '1', 'D2', 'A');
INSERT INTO test_items_rel VALUES
    ('I1', 'Hammer', 'C1', '1', 'A'),
    ('I2', 'Wrench', 'C1', '1', 'A'),
    ('I3', 'Bolt', 'C2', '1', 'A'),
    ('I4', 'Company two hammer', 'C1', '2', 'A'),
    ('I5', 'Editor', 'C3', '1', 'A'),
    ('I6', 'Loose part', NULL, '1', 'A');
"""

ITEM_MAPS = {
    "ICITEM": "item_number",
    "ICDESC": "description",
    "ICCOMP": "company_number",
    "ICDLTC": "delete_code",
    "ICCOST": "cost",
    "ICDATE": "created_date",
}

THROUGH_KEYS = {
    "related": "item_rels",
    "through": "categories",
    "through_foreign_key": ["CTDEPT", "CTCOMP"],
    "foreign_key": ["ITCAT", "ITCOMP"],
    "primary_key": ["DPCODE", "DPCOMP"],
    "through_primary_key": ["CTCODE", "CTCOMP"],
}


def seed(adapter: DuckDBAdapter) -> None:
    for statement in SCHEMA.split(";"):
        if statement.strip():
            adapter.raw_connection.execute(statement)


def define_entities(bridge: Bridge) -> None:
    bridge.add_entity(
        EntityType(name="items", table="test_items", maps=ITEM_MAPS, casts={"description": "string"})
    )
    bridge.add_entity(
        EntityType(
            name="items_ext",
            table="test_items",
            maps={k: v for k, v in ITEM_MAPS.items() if k != "ICDATE"},
            extensions=[
                {
                    "table": "test_item_extensions",
                    "join": {"EXITEM": "ICITEM", "EXCOMP": "ICCOMP"},
                    "columns": ["*"],
                    "maps": {
                        "EXITEM": "ext_item_number",
                        "EXCOMP": "ext_company",
                        "EXDATA": "ext_data",
                        "EXNOTE": "ext_note",
                    },
                },
                {
                    "table": "test_item_details",
                    "join": {"DTITEM": "ICITEM"},
                    "columns": ["DTITEM", "DTINFO"],
                    "maps": {"DTITEM": "detail_item", "DTINFO": "detail_info"},
                },
            ],
        )
    )
    bridge.add_entity(
        EntityType(
            name="warehouses",
            table="test_warehouses",
            maps={
                "WHCOMP": "company_number",
                "WHCODE": "warehouse_code",
                "WHDESC": "description",
                "WHDLTC": "delete_code",
            },
        )
    )
    bridge.add_entity(
        EntityType(
            name="departments",
            table="test_departments",
            maps={
                "DPCODE": "department_code",
                "DPNAME": "department_name",
                "DPCOMP": "company_number",
                "DPDLTC": "delete_code",
            },
            relationships=[
                {
                    "name": "categories",
                    "type": "one_to_many",
                    "related": "categories",
                    "foreign_key": ["CTDEPT", "CTCOMP"],
                    "primary_key": ["DPCODE", "DPCOMP"],
                },
                {"name": "items", "type": "one_to_many_through", **THROUGH_KEYS},
                {"name": "first_item", "type": "one_to_one_through", **THROUGH_KEYS},
                {
                    "name": "items_single",
                    "type": "one_to_many_through",
                    "related": "item_rels",
                    "through": "categories",
                    "through_foreign_key": "CTDEPT",
                    "foreign_key": "ITCAT",
                    "primary_key": "DPCODE",
                    "through_primary_key": "CTCODE",
                },
            ],
        )
    )
    bridge.add_entity(
        EntityType(
            name="categories",
            table="test_categories",
            maps={
                "CTCODE": "category_code",
                "CTNAME": "category_name",
                "CTCOMP": "company_number",
                "CTDEPT": "department_code",
                "CTDLTC": "delete_code",
            },
            relationships=[
                {
                    "name": "items",
                    "type": "one_to_many",
                    "related": "item_rels",
                    "foreign_key": ["ITCAT", "ITCOMP"],
                    "primary_key": ["CTCODE", "CTCOMP"],
                },
                {
                    "name": "items_single",
                    "type": "one_to_many",
                    "related": "item_rels",
                    "foreign_key": "ITCAT",
                    "primary_key": "CTCODE",
                },
                {
                    "name": "first_item",
                    "type": "one_to_one",
                    "related": "item_rels",
                    "foreign_key": ["ITCAT", "ITCOMP"],
                    "primary_key": ["CTCODE", "CTCOMP"],
                },
            ],
        )
    )
    bridge.add_entity(
        EntityType(
            name="item_rels",
            table="test_items_rel",
            maps={
                "ITCODE": "item_code",
                "ITNAME": "item_name",
                "ITCAT": "category_code",
                "ITCOMP": "company_number",
                "ITDLTC": "delete_code",
            },
            relationships=[
                {
                    "name": "category",
                    "type": "many_to_one",
                    "related": "categories",
                    "foreign_key": ["ITCAT", "ITCOMP"],
                    "primary_key": ["CTCODE", "CTCOMP"],
                },
                {
                    "name": "category_single",
                    "type": "many_to_one",
                    "related": "categories",
                    "foreign_key": "ITCAT",
                    "primary_key": "CTCODE",
                },
                {
                    "name": "category_or_default",
                    "type": "many_to_one",
                    "related": "categories",
                    "foreign_key": ["ITCAT", "ITCOMP"],
                    "primary_key": ["CTCODE", "CTCOMP"],
                    "default": {"CTNAME": "Unassigned"},
                },
            ],
        )
    )


@pytest.fixture(autouse=True)
def reset_registry():
    """Clear the current bridge before and after each test.

    This ensures test isolation when using auto-registration.
    """
    from db2bridge.core.registry import set_current_bridge

    set_current_bridge(None)

    yield

    set_current_bridge(None)


@pytest.fixture
def make_bridge():
    """Factory seeding an adapter with the legacy test tables and wrapping it in a bridge.

    Every bridge made is closed after the test.
    """
    bridges = []

    def make(adapter):
        seed(adapter)
        bridge = Bridge(adapter)
        define_entities(bridge)
        bridges.append(bridge)
        return bridge

    yield make

    for bridge in bridges:
        bridge.close()


@pytest.fixture
def bridge(make_bridge):
    """In-memory DuckDB bridge seeded with the legacy test tables and entity types."""
    return make_bridge(DuckDBAdapter())


@pytest.fixture
def upper_bridge(make_bridge):
    """Same as ``bridge`` but every result identifier comes back upper-cased, as on DB2."""
    return make_bridge(DuckDBAdapter(identifier_case="upper"))


@pytest.fixture
def query_log(bridge):
    """The bridge's query log, enabled and empty."""
    bridge.query_log.enable("default")
    bridge.query_log.clear()
    return bridge.query_log
