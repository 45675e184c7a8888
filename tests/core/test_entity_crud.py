"""Tests for creating, updating and deleting entities through human names."""

from db2bridge.db.duckdb import DuckDBAdapter


def _find(bridge, number):
    return bridge.query("items").unfiltered().where("item_number", number).first()


def test_create_translates_attribute_names(bridge):
    item = bridge.query("items").create(
        {"item_number": "ITEM010", "description": "New item", "company_number": "1", "delete_code": "A", "cost": 5}
    )

    assert item.exists
    assert not item.is_dirty()
    stored = _find(bridge, "ITEM010")
    assert stored.description == "New item"
    assert stored.cost == 5
    assert stored.created_date == 0


def test_bridge_create_and_new(bridge):
    item = bridge.new("items", {"item_number": "ITEM011", "ICDESC": "Raw key"})

    assert not item.exists
    assert item.raw_attributes() == {"ICITEM": "ITEM011", "ICDESC": "Raw key"}
    item.save()
    assert _find(bridge, "ITEM011").description == "Raw key"

    bridge.create("items", {"item_number": "ITEM012"})
    assert _find(bridge, "ITEM012") is not None


def test_string_cast_strips_padding(bridge):
    bridge.create("items", {"item_number": "ITEM013", "description": "Padded   "})

    item = _find(bridge, "ITEM013")
    assert item.description == "Padded"
    assert item.raw("ICDESC") == "Padded   "


def test_attribute_writes_land_on_raw_column(bridge):
    item = _find(bridge, "ITEM001")
    item.description = "Via human name"

    assert item.dirty() == {"ICDESC": "Via human name"}
    assert item.is_dirty("description")
    assert not item.is_dirty("cost")
    item["ICDESC"] = "Via raw name"
    assert item.description == "Via raw name"


def test_save_updates_only_the_matching_row(bridge):
    item = _find(bridge, "ITEM001")
    item.description = "Changed"
    item.save()

    assert _find(bridge, "ITEM001").description == "Changed"
    assert _find(bridge, "ITEM002").description == "Gadget"
    assert not item.is_dirty()


def test_update_and_delete(bridge):
    item = _find(bridge, "ITEM002")
    item.update(cost=300)

    assert _find(bridge, "ITEM002").cost == 300

    assert item.delete()
    assert _find(bridge, "ITEM002") is None
    assert not item.exists
    assert not item.delete()


def test_save_without_changes_runs_no_query(bridge, query_log):
    item = _find(bridge, "ITEM001")
    query_log.clear()

    assert item.save()
    assert query_log.entries() == []


def test_mass_update_returns_affected_rows(bridge):
    updated = bridge.query("items").where("cost", ">", 90).update({"description": "Pricey"})

    assert updated == 2
    assert bridge.query("items").where("description", "Pricey").count() == 2
    # The company scope kept ITEM004 out of the update
    assert _find(bridge, "ITEM004").description == "Other company"


def test_mass_delete_and_batch_insert(bridge):
    inserted = bridge.table("test_warehouses").insert(
        [
            {"WHCOMP": "1", "WHCODE": "WEST", "WHDESC": "West"},
            {"WHCOMP": "1", "WHCODE": "SOUTH"},
        ]
    )

    assert inserted == 2
    assert bridge.query("warehouses").count() == 4
    assert bridge.query("warehouses").where_in("warehouse_code", ["WEST", "SOUTH"]).delete() == 2
    assert bridge.query("warehouses").count() == 2


def test_insert_translates_human_keys(bridge):
    bridge.query("warehouses").insert({"company_number": "1", "warehouse_code": "NORTH", "description": "North"})

    row = bridge.query("warehouses").where("warehouse_code", "NORTH").first()
    assert row.description == "North"
    assert row.delete_code == "A"


def test_insert_collapses_human_and_raw_spelling_of_one_column(bridge):
    inserted = bridge.query("warehouses").insert(
        {"company_number": "1", "warehouse_code": "WEST", "WHCODE": "IGNORED", "WHDESC": "West"}
    )

    assert inserted == 1
    assert bridge.query("warehouses").where("description", "West").value("warehouse_code") == "WEST"


class RowLimitAdapter(DuckDBAdapter):
    """DuckDB adapter that records statements the way a DB2 connection would receive them."""

    supports_update_row_limit = True

    def __init__(self):
        super().__init__()
        self.statements = []

    def execute(self, sql):
        self.statements.append(sql)
        return super().execute(sql.replace(" FETCH FIRST 1 ROW ONLY", ""))


def test_single_row_update_uses_row_limit(make_bridge):
    adapter = RowLimitAdapter()
    bridge = make_bridge(adapter)

    item = bridge.query("items").where("item_number", "ITEM001").first()
    item.update(description="Limited")

    update = [s for s in adapter.statements if s.startswith("UPDATE")][-1]
    assert update.endswith("FETCH FIRST 1 ROW ONLY")
    assert "ICITEM = 'ITEM001'" in update
    assert "ICCOST = 100" in update
