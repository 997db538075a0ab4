"""Unit tests for static formula validation."""

from brainbase.formula.validator import (
    FormulaValidator,
    levenshtein,
    suggest,
    validate_expression,
)

PROPERTIES = [
    {"id": "p-name", "name": "Name", "type": "text", "config": {}},
    {"id": "p-price", "name": "Price", "type": "number", "config": {}},
    {"id": "p-done", "name": "Done", "type": "checkbox", "config": {}},
    {"id": "p-due", "name": "Due", "type": "date", "config": {}},
    {
        "id": "p-total",
        "name": "Total",
        "type": "formula",
        "config": {"expression": "{Price} * 2", "return_type": "number"},
    },
    {"id": "p-rel", "name": "Items", "type": "relation", "config": {}},
    {
        "id": "p-count",
        "name": "Item Count",
        "type": "rollup",
        "config": {"relation_property_id": "p-rel", "rollup_function": "count"},
    },
]


def validate(expression: str, **kwargs):
    return FormulaValidator(PROPERTIES, **kwargs).validate(expression)


class TestSuggestions:
    """Tests for edit-distance suggestions."""

    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_suggest_is_case_insensitive_and_bounded(self):
        assert suggest("PRICE", ["Price", "Prize", "Name"]) == ["Price", "Prize"]
        assert suggest("xyz", ["Price", "Name"]) == []


class TestValidExpressions:
    """Tests for expressions that validate cleanly."""

    def test_valid_expression(self):
        result = validate("{Price} * 2 + {Item Count}")
        assert result["is_valid"] is True
        assert result["errors"] == []
        assert result["dependencies"] == ["p-price", "p-count"]
        assert result["return_type"] == "number"
        assert result["estimated_complexity"] > 0

    def test_references_by_id(self):
        result = validate("{p-price} + 1")
        assert result["dependencies"] == ["p-price"]

    def test_module_level_helper(self):
        assert validate_expression("{Price} + 1", PROPERTIES)["is_valid"] is True


class TestErrors:
    """Tests for syntax and semantic errors."""

    def test_syntax_error(self):
        result = validate("{Price} +")
        assert result["is_valid"] is False
        assert result["errors"][0]["type"] == "syntax"
        assert result["return_type"] == "any"
        assert result["estimated_complexity"] == 0

    def test_unknown_property_with_suggestion(self):
        result = validate("{Pric} + 1")
        assert result["is_valid"] is False
        error = result["errors"][0]
        assert error["type"] == "semantic"
        assert error["message"] == "Unknown property 'Pric'. Did you mean 'Price'?"
        assert error["suggestions"][0] == "Price"

    def test_unknown_property_without_suggestion(self):
        result = validate("{Completely Different}")
        assert result["errors"][0]["message"] == "Unknown property 'Completely Different'"
        assert result["errors"][0]["suggestions"] == []

    def test_unknown_function(self):
        result = validate('UPPR("a")')
        assert result["is_valid"] is False
        assert "Unknown function 'UPPR'" in result["errors"][0]["message"]
        assert "UPPER" in result["errors"][0]["suggestions"]

    def test_too_many_arguments(self):
        result = validate('LEN("a", "b")')
        assert result["errors"][0]["message"] == "LEN expects 1 argument(s), got 2"

    def test_too_few_arguments_for_optional_parameters(self):
        result = validate("ROUND()")
        assert result["errors"][0]["message"] == "ROUND expects 1 to 2 argument(s), got 0"

    def test_circular_dependency(self):
        # Price would read Total, which already reads Price
        result = validate("{Total} + 1", property_id="p-price")
        assert result["is_valid"] is False
        error = result["errors"][0]
        assert error["type"] == "circular_dependency"
        assert error["message"] == "Circular reference: Price -> Total -> Price"

    def test_self_reference(self):
        result = validate("{Total} + 1", property_id="p-total")
        assert result["errors"][0]["type"] == "circular_dependency"

    def test_cycles_ignored_without_property_id(self):
        assert validate("{Total} + 1")["is_valid"] is True


class TestWarnings:
    """Tests for non-fatal warnings."""

    def test_complexity_warning(self):
        result = validate("1 + 2 + 3", max_complexity=3)
        assert result["is_valid"] is True
        assert [w["type"] for w in result["warnings"]] == ["performance"]

    def test_deep_nesting_warning(self):
        expression = "ABS(" * 11 + "1" + ")" * 11
        result = validate(expression, max_complexity=10_000)
        messages = [w["message"] for w in result["warnings"]]
        assert "Function calls are nested 11 levels deep" in messages
        assert "Formula has 11 function calls; consider simplifying" in messages

    def test_text_in_arithmetic_warns(self):
        result = validate("{Name} * 2")
        assert result["is_valid"] is True
        assert result["warnings"][0]["type"] == "type_coercion"


class TestReturnTypeInference:
    """Tests for inferred result types."""

    def test_comparison_is_boolean(self):
        assert validate("{Price} > 3")["return_type"] == "boolean"

    def test_concatenation_is_text(self):
        assert validate('{Name} & "!"')["return_type"] == "text"
        assert validate('{Name} + "!"')["return_type"] == "text"

    def test_date_arithmetic(self):
        assert validate("{Due} + 7")["return_type"] == "date"
        assert validate("{Due} - {Due}")["return_type"] == "number"

    def test_function_return_type(self):
        assert validate("NOW()")["return_type"] == "date"
        assert validate('UPPER({Name})')["return_type"] == "text"

    def test_if_with_agreeing_branches(self):
        assert validate("IF({Done}, 1, 2)")["return_type"] == "number"

    def test_if_with_mixed_branches(self):
        assert validate('IF({Done}, 1, "a")')["return_type"] == "any"

    def test_formula_reference_uses_declared_return_type(self):
        assert validate("{Total}")["return_type"] == "number"

    def test_rollup_reference(self):
        assert validate("{Item Count}")["return_type"] == "number"
