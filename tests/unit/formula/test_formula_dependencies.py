"""Unit tests for dependency tracking between computed properties."""

from brainbase.formula.dependencies import (
    FormulaDependencyGraph,
    expression_dependencies,
    property_dependencies,
    resolve_reference,
)

PROPERTIES = [
    {"id": "p-price", "name": "Price", "type": "number", "config": {}},
    {"id": "p-qty", "name": "Quantity", "type": "number", "config": {}},
    {
        "id": "p-total",
        "name": "Total",
        "type": "formula",
        "config": {"expression": "{Price} * {Quantity}"},
    },
    {
        "id": "p-tax",
        "name": "Tax",
        "type": "formula",
        "config": {"expression": "{Total} * 0.2"},
    },
    {"id": "p-rel", "name": "Items", "type": "relation", "config": {}},
    {
        "id": "p-count",
        "name": "Item Count",
        "type": "rollup",
        "config": {"relation_property_id": "p-rel", "rollup_function": "count"},
    },
]


class TestResolveReference:
    """Tests for matching references against properties."""

    def test_matches_id(self):
        assert resolve_reference("p-price", PROPERTIES)["name"] == "Price"

    def test_matches_name_case_insensitively(self):
        assert resolve_reference("quantity", PROPERTIES)["id"] == "p-qty"

    def test_unknown_reference(self):
        assert resolve_reference("Discount", PROPERTIES) is None


class TestExpressionDependencies:
    """Tests for resolving the references of an expression."""

    def test_resolves_ids_without_duplicates(self):
        ids, unknown = expression_dependencies("{Price} + {price} + {Quantity}", PROPERTIES)
        assert ids == ["p-price", "p-qty"]
        assert unknown == []

    def test_reports_unknown_references(self):
        ids, unknown = expression_dependencies("{Price} + {Discount}", PROPERTIES)
        assert ids == ["p-price"]
        assert unknown == ["Discount"]

    def test_formula_property_dependencies(self):
        assert property_dependencies(PROPERTIES[2], PROPERTIES) == {"p-price", "p-qty"}

    def test_rollup_depends_on_its_relation(self):
        assert property_dependencies(PROPERTIES[5], PROPERTIES) == {"p-rel"}

    def test_stored_property_has_no_dependencies(self):
        assert property_dependencies(PROPERTIES[0], PROPERTIES) == set()

    def test_unparseable_formula_falls_back_to_stored_list(self):
        prop = {
            "id": "p-bad",
            "name": "Bad",
            "type": "formula",
            "config": {"expression": "{Price} +", "dependencies": ["p-price"]},
        }
        assert property_dependencies(prop, PROPERTIES) == {"p-price"}


class TestFormulaDependencyGraph:
    """Tests for FormulaDependencyGraph."""

    def test_from_properties(self):
        graph = FormulaDependencyGraph.from_properties(PROPERTIES)
        assert graph.get_dependencies("p-total") == {"p-price", "p-qty"}
        assert graph.get_dependents("p-total") == {"p-tax"}
        assert graph.get_dependents("p-rel") == {"p-count"}

    def test_affected_is_transitive(self):
        graph = FormulaDependencyGraph.from_properties(PROPERTIES)
        assert graph.get_affected("p-price") == ["p-total", "p-tax"]
        assert graph.get_affected("p-tax") == []

    def test_evaluation_order_respects_dependencies(self):
        graph = FormulaDependencyGraph.from_properties(PROPERTIES)
        order = graph.get_evaluation_order({"p-tax", "p-total", "p-price"})
        assert order.index("p-price") < order.index("p-total") < order.index("p-tax")

    def test_evaluation_order_empty_on_cycle(self):
        graph = FormulaDependencyGraph()
        graph.set_dependencies("a", {"b"})
        graph.set_dependencies("b", {"a"})
        assert graph.get_evaluation_order({"a", "b"}) == []

    def test_self_reference_is_a_cycle(self):
        graph = FormulaDependencyGraph()
        assert graph.find_cycle("a", {"a"}) == ["a", "a"]

    def test_add_property_rejects_cycle(self):
        graph = FormulaDependencyGraph()
        assert graph.add_property("a", {"b"}) == (True, None)
        assert graph.add_property("b", {"c"}) == (True, None)

        success, error = graph.add_property("c", {"a"})
        assert success is False
        assert error == "Circular reference: c -> a -> b -> c"
        # The failed definition leaves the graph untouched
        assert graph.get_dependencies("c") == set()

    def test_replacing_dependencies_drops_old_edges(self):
        graph = FormulaDependencyGraph()
        graph.set_dependencies("total", {"price"})
        graph.set_dependencies("total", {"qty"})
        assert graph.get_dependents("price") == set()
        assert graph.get_dependents("qty") == {"total"}

    def test_remove_property(self):
        graph = FormulaDependencyGraph.from_properties(PROPERTIES)
        graph.remove_property("p-tax")
        assert graph.get_affected("p-price") == ["p-total"]
