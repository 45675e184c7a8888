"""Tests for many-to-one, one-to-many and one-to-one relations over composite keys."""

import pytest

from db2bridge import Entity, LazyLoadingError, RelationNotFoundError
from db2bridge.relations.base import composite_key, eager_condition


def _item(bridge, code):
    return bridge.query("item_rels").with_all_companies().where("item_code", code).first()


def _category(bridge, code, company="1"):
    return bridge.query("categories").for_company(company).where("category_code", code).first()


def test_composite_key():
    assert composite_key(["C1", 1]) == ("C1", "1")
    assert composite_key(["C1", "1"]) == composite_key(["C1", 1])
    assert composite_key(["C1", None]) is None


def test_eager_condition_shapes():
    single = eager_condition(["t.A"], [["x"], ["y"]])
    composite = eager_condition(["t.A", "t.B"], [["x", "1"], ["y", "2"]])

    assert single.sql() == "t.A IN ('x', 'y')"
    assert composite.sql() == "((t.A = 'x' AND t.B = '1') OR (t.A = 'y' AND t.B = '2'))"
    assert eager_condition(["t.A"], []).sql() == "0 = 1"


def test_lazy_belongs_to(bridge):
    category = _item(bridge, "I1").category

    assert isinstance(category, Entity)
    assert category.category_name == "Tools"


def test_lazy_belongs_to_is_cached(bridge, query_log):
    item = _item(bridge, "I1")
    query_log.clear()

    item.category
    item.category
    assert len(query_log.entries()) == 1
    assert item.relation_loaded("category")


def test_lazy_belongs_to_distinguishes_companies(bridge):
    category = _item(bridge, "I4").relation("category").with_all_companies().get_results()

    assert category.category_name == "Tools (company 2)"


def test_single_column_belongs_to(bridge):
    assert _item(bridge, "I3").category_single.category_name == "Parts"


def test_null_key_returns_default_without_query(bridge, query_log):
    item = _item(bridge, "I6")
    query_log.clear()

    assert item.category is None
    fallback = item.category_or_default
    assert isinstance(fallback, Entity)
    assert not fallback.exists
    assert fallback.category_name == "Unassigned"
    assert query_log.entries() == []


def test_null_key_has_many_is_empty_without_query(bridge, query_log):
    category = bridge.new("categories", {"category_name": "Unsaved"})

    assert category.items == []
    assert query_log.entries() == []


def test_lazy_has_many(bridge):
    items = _category(bridge, "C1").items

    assert sorted(i.item_code for i in items) == ["I1", "I2"]


def test_lazy_has_many_single_column_spans_companies(bridge):
    relation = _category(bridge, "C1").relation("items_single").with_all_companies()

    assert sorted(i.item_code for i in relation.get_results()) == ["I1", "I2", "I4"]


def test_relation_query_can_be_constrained(bridge):
    hammers = _category(bridge, "C1").relation("items").where("item_name", "Hammer").get()

    assert [i.item_code for i in hammers] == ["I1"]


def test_lazy_has_one(bridge):
    assert _category(bridge, "C2").first_item.item_name == "Bolt"
    assert _category(bridge, "C4").first_item is None


def test_eager_belongs_to_selects_exact_composite_keys(bridge, query_log):
    items = (
        bridge.query("item_rels")
        .with_all_companies()
        .where_in("item_code", ["I1", "I4"])
        .order_by("item_code")
        .with_(category=lambda rel: rel.with_all_companies())
        .get()
    )

    assert [i.category.category_name for i in items] == ["Tools", "Tools (company 2)"]
    assert len(query_log.entries()) == 2
    eager_sql = query_log.entries()[1].sql
    assert "(test_categories.CTCODE = 'C1' AND test_categories.CTCOMP = '1')" in eager_sql
    assert "(test_categories.CTCODE = 'C1' AND test_categories.CTCOMP = '2')" in eager_sql


def test_eager_has_many_matches_per_parent(bridge):
    categories = bridge.query("categories").order_by("category_code").with_("items").get()
    counts = {c.category_code: len(c.items) for c in categories}

    assert counts == {"C1": 2, "C2": 1, "C3": 1, "C4": 0}
    assert sorted(i.item_code for i in categories[0].items) == ["I1", "I2"]


def test_dictionary_has_one_entry_per_distinct_key(bridge):
    categories = bridge.query("categories").get()
    relation = bridge.get_entity("categories").relation(bridge, "items")
    relation.add_eager_constraints(categories)

    dictionary = relation.build_dictionary(relation.get_eager())
    assert set(dictionary) == {("C1", "1"), ("C2", "1"), ("C3", "1")}
    assert len(dictionary[("C1", "1")]) == 2


def test_eager_has_one_is_first_wins(bridge):
    categories = (
        bridge.query("categories")
        .order_by("category_code")
        .with_(first_item=lambda rel: rel.order_by_desc("item_code"))
        .get()
    )

    assert [c.first_item.item_code if c.first_item else None for c in categories] == ["I2", "I3", "I5", None]


def test_eager_belongs_to_is_last_wins(bridge):
    items = (
        bridge.query("item_rels")
        .where("item_code", "I1")
        .with_(category_single=lambda rel: rel.with_all_companies().order_by("company_number"))
        .get()
    )

    # Both C1 categories match on CTCODE alone; the last one returned is kept
    assert items[0].category_single.category_name == "Tools (company 2)"


def test_eager_with_all_null_keys_matches_nothing(bridge):
    items = bridge.query("item_rels").where("item_code", "I6").with_("category", "category_or_default").get()

    assert items[0].category is None
    assert items[0].category_or_default.category_name == "Unassigned"


def test_nested_eager_loads(bridge):
    departments = bridge.query("departments").order_by("department_code").with_("categories.items").get()
    hardware = departments[0]

    assert sorted(c.category_code for c in hardware.categories) == ["C1", "C2"]
    assert all(c.relation_loaded("items") for c in hardware.categories)
    data = hardware.to_dict()
    assert {item["item_code"] for c in data["categories"] for item in c["items"]} == {"I1", "I2", "I3"}


def test_load_on_fetched_entities(bridge):
    category = _category(bridge, "C1")
    category.load("items")

    assert category.relation_loaded("items")
    items = bridge.query("item_rels").where_in("item_code", ["I1", "I3"]).get()
    bridge.load(items, "category")
    assert sorted(i.category.category_code for i in items) == ["C1", "C2"]


def test_select_all_propagates_to_relations(bridge):
    categories = bridge.query("categories").select_all().order_by("category_code").with_("items").get()
    eager_child = categories[0].items[0]
    lazy_child = categories[0].relation("items").get_results()[0]

    assert eager_child.select_all
    assert lazy_child.select_all


def test_prevent_lazy_loading(bridge):
    bridge.prevent_lazy_loading = True
    item = _item(bridge, "I1")

    with pytest.raises(LazyLoadingError, match="'category'"):
        item.category

    eager = bridge.query("item_rels").where("item_code", "I1").with_("category").get()[0]
    assert eager.category.category_name == "Tools"


def test_unknown_relation(bridge):
    item = _item(bridge, "I1")

    with pytest.raises(RelationNotFoundError, match="no relation named 'nope'"):
        item.relation("nope")
    with pytest.raises(KeyError):
        bridge.query("item_rels").with_("nope").get()
