"""Unit tests for building and updating property definitions."""

import pytest

from brainbase.core.exceptions import PropertyNotFoundError, ValidationError
from brainbase.properties.registry import build_property, reorder, update_property_definition


@pytest.fixture
def schema() -> list[dict]:
    props: list[dict] = []
    for spec in (
        {"id": "p-name", "name": "Name", "type": "text"},
        {"id": "p-price", "name": "Price", "type": "number"},
        {"id": "p-qty", "name": "Qty", "type": "number"},
    ):
        props.append(build_property(spec, props))
    return props


class TestBuildProperty:
    """Tests for build_property."""

    def test_assigns_order_and_flags(self, schema):
        assert [p["order"] for p in schema] == [0, 1, 2]
        assert schema[0]["is_system"] is False
        assert schema[0]["is_visible"] is True

    def test_generates_id(self, schema):
        prop = build_property({"name": "Notes", "type": "rich_text"}, schema)
        assert prop["id"]
        assert prop["order"] == 3

    def test_system_property(self, schema):
        prop = build_property({"name": "Created", "type": "created_time"}, schema)
        assert prop["is_system"] is True

    def test_unknown_type(self, schema):
        with pytest.raises(ValidationError, match="Unknown property type"):
            build_property({"name": "X", "type": "hologram"}, schema)

    def test_duplicate_name_is_case_insensitive(self, schema):
        with pytest.raises(ValidationError, match="already exists"):
            build_property({"name": " price ", "type": "number"}, schema)

    def test_empty_name(self, schema):
        with pytest.raises(ValidationError, match="must not be empty"):
            build_property({"name": "  ", "type": "text"}, schema)

    def test_duplicate_id(self, schema):
        with pytest.raises(ValidationError, match="id 'p-name' already exists"):
            build_property({"id": "p-name", "name": "Other", "type": "text"}, schema)

    def test_bad_config_is_reported_on_config(self, schema):
        with pytest.raises(ValidationError) as exc_info:
            build_property({"name": "Stage", "type": "select", "config": {}}, schema)
        assert exc_info.value.details["errors"][0]["field"] == "config"

    def test_formula_dependencies_are_derived(self, schema):
        prop = build_property(
            {
                "name": "Total",
                "type": "formula",
                "config": {"expression": "{Price} * {qty}"},
            },
            schema,
        )
        assert prop["config"]["dependencies"] == ["p-price", "p-qty"]

    def test_formula_unknown_reference(self, schema):
        with pytest.raises(ValidationError, match="Unknown property reference"):
            build_property(
                {"name": "Total", "type": "formula", "config": {"expression": "{Cost} * 2"}},
                schema,
            )

    def test_formula_self_reference(self, schema):
        with pytest.raises(ValidationError, match="Circular reference"):
            build_property(
                {
                    "id": "p-loop",
                    "name": "Loop",
                    "type": "formula",
                    "config": {"expression": "{Loop} + 1"},
                },
                schema,
            )

    def test_rollup_requires_relation_on_same_database(self, schema):
        with pytest.raises(ValidationError, match="is not a relation property"):
            build_property(
                {
                    "name": "Count",
                    "type": "rollup",
                    "config": {"relation_property_id": "p-price", "rollup_function": "count"},
                },
                schema,
            )


class TestUpdateProperty:
    """Tests for update_property_definition."""

    def test_rename(self, schema):
        updated = update_property_definition(schema[1], {"name": "Cost"}, schema)
        assert updated["name"] == "Cost"
        assert updated["id"] == "p-price"

    def test_rename_to_own_name_is_allowed(self, schema):
        updated = update_property_definition(schema[1], {"name": "PRICE"}, schema)
        assert updated["name"] == "PRICE"

    def test_type_cannot_change(self, schema):
        with pytest.raises(ValidationError, match="cannot be changed"):
            update_property_definition(schema[1], {"type": "text"}, schema)

    def test_unknown_key(self, schema):
        with pytest.raises(ValidationError, match="Cannot update order"):
            update_property_definition(schema[1], {"order": 7}, schema)

    def test_config_is_merged_and_revalidated(self, schema):
        updated = update_property_definition(schema[1], {"config": {"precision": 2}}, schema)
        assert updated["config"]["precision"] == 2
        with pytest.raises(ValidationError):
            update_property_definition(schema[1], {"config": {"precision": -1}}, schema)

    def test_formula_update_cannot_close_a_cycle(self, schema):
        total = build_property(
            {
                "id": "p-total",
                "name": "Total",
                "type": "formula",
                "config": {"expression": "{Price} * 2"},
            },
            schema,
        )
        schema.append(total)
        double = build_property(
            {
                "id": "p-double",
                "name": "Double",
                "type": "formula",
                "config": {"expression": "{Total} * 2"},
            },
            schema,
        )
        schema.append(double)

        with pytest.raises(ValidationError, match="Circular reference"):
            update_property_definition(total, {"config": {"expression": "{Double} + 1"}}, schema)


class TestReorder:
    """Tests for reorder."""

    def test_listed_first_rest_keep_order(self, schema):
        result = reorder(schema, ["p-qty"])
        assert [p["id"] for p in result] == ["p-qty", "p-name", "p-price"]
        assert [p["order"] for p in result] == [0, 1, 2]

    def test_unknown_id(self, schema):
        with pytest.raises(PropertyNotFoundError):
            reorder(schema, ["p-missing"])
