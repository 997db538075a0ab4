"""Unit tests for property type handlers."""

from datetime import date, datetime, timezone

import pytest

from brainbase.models.view import FilterOperator
from brainbase.properties import (
    CheckboxPropertyHandler,
    CurrencyPropertyHandler,
    DatePropertyHandler,
    EmailPropertyHandler,
    FilePropertyHandler,
    FormulaPropertyHandler,
    MultiSelectPropertyHandler,
    NumberPropertyHandler,
    RelationPropertyHandler,
    RollupPropertyHandler,
    SelectPropertyHandler,
    TextPropertyHandler,
    URLPropertyHandler,
    get_property_handler,
    list_property_types,
)

OPTIONS = {
    "options": [
        {"id": "todo", "name": "Todo"},
        {"id": "done", "name": "Done"},
    ]
}


class TestHandlerLookup:
    """Tests for the handler registry."""

    def test_lookup_by_string(self):
        assert get_property_handler("text") is TextPropertyHandler
        assert get_property_handler("relation") is RelationPropertyHandler

    def test_unknown_type(self):
        assert get_property_handler("hologram") is None

    def test_every_listed_type_has_a_handler(self):
        for prop_type in list_property_types():
            assert get_property_handler(prop_type).property_type.value == prop_type

    def test_computed_types_are_read_only(self):
        assert FormulaPropertyHandler.is_read_only()
        assert RollupPropertyHandler.is_read_only()
        assert not TextPropertyHandler.is_read_only()


class TestTextHandlers:
    """Tests for text-like handlers."""

    def test_serialize(self):
        assert TextPropertyHandler.serialize(None) is None
        assert TextPropertyHandler.serialize(12) == "12"

    def test_rejects_non_string(self):
        with pytest.raises(ValueError, match="requires string"):
            TextPropertyHandler.validate(12)

    def test_length_limits(self):
        assert TextPropertyHandler.validate("abc", {"max_length": 3})
        with pytest.raises(ValueError, match="max length"):
            TextPropertyHandler.validate("abcd", {"max_length": 3})
        with pytest.raises(ValueError, match="min length"):
            TextPropertyHandler.validate("a", {"min_length": 2})

    def test_regex(self):
        assert TextPropertyHandler.validate("AB-12", {"regex": r"^[A-Z]+-\d+$"})
        with pytest.raises(ValueError, match="does not match"):
            TextPropertyHandler.validate("ab", {"regex": r"^[A-Z]+$"})

    def test_invalid_regex_in_config(self):
        with pytest.raises(ValueError, match="Invalid regex"):
            TextPropertyHandler.validate_config({"regex": "("})

    def test_email_is_normalized(self):
        assert EmailPropertyHandler.serialize("  Ada@Example.COM ") == "ada@example.com"
        with pytest.raises(ValueError, match="Invalid email"):
            EmailPropertyHandler.validate("not-an-email")

    def test_url(self):
        assert URLPropertyHandler.validate("https://example.com/a")
        with pytest.raises(ValueError, match="Invalid URL"):
            URLPropertyHandler.validate("example dot com")


class TestNumberHandlers:
    """Tests for numeric handlers."""

    def test_serialize(self):
        assert NumberPropertyHandler.serialize("42") == 42
        assert NumberPropertyHandler.serialize("2.5") == 2.5
        assert NumberPropertyHandler.serialize("") is None

    def test_rejects_booleans(self):
        with pytest.raises(ValueError):
            NumberPropertyHandler.serialize(True)
        with pytest.raises(ValueError):
            NumberPropertyHandler.validate(False)

    def test_bounds(self):
        config = {"min_value": 0, "max_value": 10}
        assert NumberPropertyHandler.validate(10, config)
        with pytest.raises(ValueError, match=">= 0"):
            NumberPropertyHandler.validate(-1, config)
        with pytest.raises(ValueError, match="<= 10"):
            NumberPropertyHandler.validate(11, config)

    def test_precision_applied_on_write(self):
        assert NumberPropertyHandler.serialize_with_config(3.14159, {"precision": 2}) == 3.14

    def test_invalid_config(self):
        with pytest.raises(ValueError, match="precision"):
            NumberPropertyHandler.validate_config({"precision": 20})
        with pytest.raises(ValueError, match="min_value"):
            NumberPropertyHandler.validate_config({"min_value": 5, "max_value": 1})

    def test_currency_defaults(self):
        config = CurrencyPropertyHandler.validate_config({"currency": "eur"})
        assert config == {"currency": "EUR", "precision": 2}


class TestCheckboxHandler:
    """Tests for CheckboxPropertyHandler."""

    @pytest.mark.parametrize("value", [True, "yes", "1", 1, "Checked"])
    def test_truthy(self, value):
        assert CheckboxPropertyHandler.serialize(value) is True

    @pytest.mark.parametrize("value", [False, None, "no", 0, ""])
    def test_falsy(self, value):
        assert CheckboxPropertyHandler.serialize(value) is False

    def test_rejects_other_strings(self):
        with pytest.raises(ValueError):
            CheckboxPropertyHandler.validate("maybe")

    def test_default(self):
        assert CheckboxPropertyHandler.default() is False


class TestDateHandler:
    """Tests for DatePropertyHandler."""

    def test_date_only(self):
        assert DatePropertyHandler.serialize_with_config("2024-03-05", {}) == "2024-03-05"

    def test_datetime_truncated_without_include_time(self):
        value = datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)
        assert DatePropertyHandler.serialize_with_config(value, {}) == "2024-03-05"

    def test_include_time_normalizes_to_utc(self):
        result = DatePropertyHandler.serialize_with_config(
            "2024-03-05T10:00:00+02:00", {"include_time": True}
        )
        assert result == "2024-03-05T08:00:00+00:00"

    def test_z_suffix_is_utc(self):
        assert DatePropertyHandler.deserialize("2024-03-05T08:00:00Z") == datetime(
            2024, 3, 5, 8, 0, tzinfo=timezone.utc
        )

    def test_deserialize_date(self):
        assert DatePropertyHandler.deserialize("2024-03-05") == date(2024, 3, 5)

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid date"):
            DatePropertyHandler.validate("not a date")


class TestSelectHandlers:
    """Tests for select and multi-select handlers."""

    def test_option_id_resolves_to_name(self):
        assert SelectPropertyHandler.serialize_with_config("todo", OPTIONS) == "Todo"
        assert SelectPropertyHandler.serialize_with_config("Done", OPTIONS) == "Done"

    def test_unknown_option_rejected(self):
        with pytest.raises(ValueError, match="Invalid option 'Blocked'"):
            SelectPropertyHandler.validate("Blocked", OPTIONS)

    def test_allow_new(self):
        assert SelectPropertyHandler.validate("Blocked", {**OPTIONS, "allow_new": True})

    def test_config_normalization(self):
        config = SelectPropertyHandler.validate_config({"options": ["Low", {"name": "High"}]})
        assert [o["name"] for o in config["options"]] == ["Low", "High"]
        assert all(o["id"] and o["color"] for o in config["options"])
        assert config["allow_new"] is False

    def test_duplicate_option_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate option name"):
            SelectPropertyHandler.validate_config({"options": ["A", "A"]})

    def test_options_required(self):
        with pytest.raises(ValueError, match="requires an options list"):
            SelectPropertyHandler.validate_config({})

    def test_multi_select_dedupes_and_resolves(self):
        result = MultiSelectPropertyHandler.serialize_with_config(["todo", "Todo", "done"], OPTIONS)
        assert result == ["Todo", "Done"]

    def test_multi_select_operators(self):
        assert FilterOperator.CONTAINS in MultiSelectPropertyHandler.filter_operators
        assert FilterOperator.CONTAINS not in SelectPropertyHandler.filter_operators


class TestRelationHandler:
    """Tests for RelationPropertyHandler."""

    def test_serialize_dedupes_ids(self):
        assert RelationPropertyHandler.serialize(["a", {"id": "b"}, "a", ""]) == ["a", "b"]
        assert RelationPropertyHandler.serialize([]) is None

    def test_config_defaults(self):
        config = RelationPropertyHandler.validate_config({"target_database_id": "db-1"})
        assert config["relation_type"] == "many_to_many"
        assert config["on_source_delete"] == "set_null"
        assert config["on_target_delete"] == "set_null"
        assert config["allow_multiple"] is True
        assert config["create_inverse"] is True

    def test_many_to_one_allows_single_target(self):
        config = RelationPropertyHandler.validate_config(
            {"target_database_id": "db-1", "relation_type": "many_to_one"}
        )
        assert config["allow_multiple"] is False
        with pytest.raises(ValueError, match="single linked record"):
            RelationPropertyHandler.validate(["a", "b"], config)

    def test_limit(self):
        with pytest.raises(ValueError, match="at most 2"):
            RelationPropertyHandler.validate(["a", "b", "c"], {"limit": 2})

    def test_requires_target_database(self):
        with pytest.raises(ValueError, match="target_database_id"):
            RelationPropertyHandler.validate_config({})

    def test_invalid_policy(self):
        with pytest.raises(ValueError, match="on_source_delete"):
            RelationPropertyHandler.validate_config(
                {"target_database_id": "db-1", "on_source_delete": "explode"}
            )

    def test_inverse_config_swaps_direction(self):
        config = RelationPropertyHandler.validate_config(
            {
                "target_database_id": "projects",
                "relation_type": "many_to_one",
                "on_target_delete": "restrict",
            }
        )
        inverse = RelationPropertyHandler.inverse_config(config, "tasks", "p-project")
        assert inverse["target_database_id"] == "tasks"
        assert inverse["target_property_id"] == "p-project"
        assert inverse["relation_type"] == "one_to_many"
        assert inverse["on_source_delete"] == "restrict"
        assert inverse["on_target_delete"] == "set_null"
        assert inverse["create_inverse"] is False


class TestComputedHandlers:
    """Tests for formula and rollup config validation."""

    def test_formula_defaults(self):
        config = FormulaPropertyHandler.validate_config({"expression": "1 + 1"})
        assert config["return_type"] == "any"
        assert config["error_handling"] == "return_null"
        assert config["cache_enabled"] is True
        assert config["dependencies"] == []

    def test_formula_syntax_error(self):
        with pytest.raises(ValueError):
            FormulaPropertyHandler.validate_config({"expression": "1 +"})

    def test_formula_cannot_be_written(self):
        with pytest.raises(ValueError, match="computed"):
            FormulaPropertyHandler.validate(1)

    def test_rollup_defaults_to_throw(self):
        config = RollupPropertyHandler.validate_config(
            {"relation_property_id": "rel", "rollup_function": "COUNT"}
        )
        assert config["rollup_function"] == "count"
        assert config["error_handling"] == "throw"
        assert config["target_property_id"] is None

    def test_rollup_requires_target_for_sum(self):
        with pytest.raises(ValueError, match="requires target_property_id"):
            RollupPropertyHandler.validate_config(
                {"relation_property_id": "rel", "rollup_function": "sum"}
            )

    def test_rollup_unknown_function(self):
        with pytest.raises(ValueError, match="Invalid rollup_function"):
            RollupPropertyHandler.validate_config(
                {"relation_property_id": "rel", "rollup_function": "mode"}
            )


class TestFileHandler:
    def test_bare_url(self):
        assert FilePropertyHandler.serialize("https://cdn.example.com/a/report.pdf") == [
            {"name": "report.pdf", "url": "https://cdn.example.com/a/report.pdf"}
        ]

    def test_max_files(self):
        with pytest.raises(ValueError, match="At most 1"):
            FilePropertyHandler.validate(["https://x/a", "https://x/b"], {"max_files": 1})
