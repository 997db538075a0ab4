"""
Static validation of formula expressions.

Checks an expression against a database's properties without evaluating
it against real data. Used by editors to preview errors, dependencies
and the inferred result type.
"""

from typing import Any

from brainbase.core.config import settings
from brainbase.core.exceptions import FormulaSyntaxError
from brainbase.formula.dependencies import FormulaDependencyGraph, resolve_reference
from brainbase.formula.functions import FORMULA_FUNCTIONS, get_function
from brainbase.formula.parser import (
    BinaryOpNode,
    BooleanNode,
    FunctionCallNode,
    NumberNode,
    PropertyRefNode,
    StringNode,
    UnaryOpNode,
    estimate_complexity,
    function_call_depth,
    parse_formula,
    walk,
)
from brainbase.models.property import PropertyType
from brainbase.properties import RollupPropertyHandler, get_property_handler

MAX_FUNCTION_CALLS = 10
MAX_NESTING_DEPTH = 10
MAX_SUGGESTION_DISTANCE = 2

COMPARISON_OPERATORS = frozenset({"=", "!=", "<", ">", "<=", ">=", "AND", "OR"})


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def suggest(name: str, candidates: list[str]) -> list[str]:
    """Candidates within edit distance 2 of ``name``, closest first."""
    lowered = name.lower()
    scored = [(levenshtein(lowered, c.lower()), c) for c in candidates]
    return [c for distance, c in sorted(scored) if distance <= MAX_SUGGESTION_DISTANCE]


def _issue(kind: str, message: str, position: int | None = None, suggestions=None) -> dict:
    return {
        "type": kind,
        "message": message,
        "position": position,
        "suggestions": suggestions or [],
    }


def property_data_type(prop: dict[str, Any]) -> str:
    """Value type a property contributes to an expression."""
    config = prop.get("config") or {}
    if prop["type"] == PropertyType.FORMULA.value:
        return config.get("return_type") or "any"
    if prop["type"] == PropertyType.ROLLUP.value:
        try:
            return RollupPropertyHandler.result_data_type(config)
        except (KeyError, ValueError):
            return "any"
    handler = get_property_handler(prop["type"])
    return handler.data_type if handler else "any"


class FormulaValidator:
    """Validates one expression against a database schema."""

    def __init__(
        self,
        properties: list[dict[str, Any]],
        *,
        property_id: str | None = None,
        max_complexity: int | None = None,
    ) -> None:
        self.properties = list(properties)
        self.property_id = property_id
        self.max_complexity = max_complexity or settings.formula_max_complexity

    def validate(self, expression: str) -> dict[str, Any]:
        """
        Validate an expression.

        Returns:
            {"is_valid", "errors", "warnings", "dependencies", "return_type",
            "estimated_complexity"}
        """
        errors: list[dict[str, Any]] = []
        warnings: list[dict[str, Any]] = []

        try:
            ast = parse_formula(expression)
        except FormulaSyntaxError as e:
            errors.append(_issue("syntax", e.details["error"], e.position))
            return self._result(errors, warnings, [], "any", 0)

        dependencies = self._check_references(ast, errors)
        self._check_functions(ast, errors)
        self._check_cycles(dependencies, errors)

        complexity = estimate_complexity(ast)
        if complexity > self.max_complexity:
            warnings.append(
                _issue(
                    "performance",
                    f"Formula complexity {complexity} exceeds recommended maximum "
                    f"of {self.max_complexity}",
                )
            )
        calls = sum(1 for node in walk(ast) if isinstance(node, FunctionCallNode))
        if calls > MAX_FUNCTION_CALLS:
            warnings.append(
                _issue("performance", f"Formula has {calls} function calls; consider simplifying")
            )
        depth = function_call_depth(ast)
        if depth > MAX_NESTING_DEPTH:
            warnings.append(
                _issue("performance", f"Function calls are nested {depth} levels deep")
            )

        return_type = self._infer(ast, warnings)
        return self._result(errors, warnings, dependencies, return_type, complexity)

    @staticmethod
    def _result(errors, warnings, dependencies, return_type, complexity) -> dict[str, Any]:
        return {
            "is_valid": not errors,
            "errors": errors,
            "warnings": warnings,
            "dependencies": dependencies,
            "return_type": return_type,
            "estimated_complexity": complexity,
        }

    def _check_references(self, ast: Any, errors: list[dict[str, Any]]) -> list[str]:
        names = [p["name"] for p in self.properties]
        dependencies: list[str] = []
        for node in walk(ast):
            if not isinstance(node, PropertyRefNode):
                continue
            prop = resolve_reference(node.name, self.properties)
            if prop is None:
                suggestions = suggest(node.name, names)
                message = f"Unknown property '{node.name}'"
                if suggestions:
                    message += f". Did you mean '{suggestions[0]}'?"
                errors.append(_issue("semantic", message, node.position, suggestions))
            elif prop["id"] not in dependencies:
                dependencies.append(prop["id"])
        return dependencies

    def _check_functions(self, ast: Any, errors: list[dict[str, Any]]) -> None:
        for node in walk(ast):
            if not isinstance(node, FunctionCallNode):
                continue
            spec = get_function(node.name)
            if spec is None:
                suggestions = suggest(node.name, sorted(FORMULA_FUNCTIONS))
                message = f"Unknown function '{node.name}'"
                if suggestions:
                    message += f". Did you mean '{suggestions[0]}'?"
                errors.append(_issue("semantic", message, node.position, suggestions))
            elif not spec.accepts(len(node.arguments)):
                if spec.max_args is None:
                    expected = f"at least {spec.min_args}"
                elif spec.min_args == spec.max_args:
                    expected = str(spec.min_args)
                else:
                    expected = f"{spec.min_args} to {spec.max_args}"
                errors.append(
                    _issue(
                        "semantic",
                        f"{node.name} expects {expected} argument(s), got {len(node.arguments)}",
                        node.position,
                    )
                )

    def _check_cycles(self, dependencies: list[str], errors: list[dict[str, Any]]) -> None:
        if self.property_id is None:
            return
        # The search stops at property_id, so its stored edges are never followed
        graph = FormulaDependencyGraph.from_properties(self.properties)
        chain = graph.find_cycle(self.property_id, set(dependencies))
        if chain:
            names = {p["id"]: p["name"] for p in self.properties}
            errors.append(
                _issue(
                    "circular_dependency",
                    "Circular reference: " + " -> ".join(names.get(pid, pid) for pid in chain),
                )
            )

    # ------------------------------------------------------------------
    # Return type inference
    # ------------------------------------------------------------------

    def _infer(self, node: Any, warnings: list[dict[str, Any]]) -> str:
        if isinstance(node, NumberNode):
            return "number"
        if isinstance(node, StringNode):
            return "text"
        if isinstance(node, BooleanNode):
            return "null" if node.value is None else "boolean"
        if isinstance(node, PropertyRefNode):
            prop = resolve_reference(node.name, self.properties)
            return property_data_type(prop) if prop else "any"
        if isinstance(node, UnaryOpNode):
            operand = self._infer(node.operand, warnings)
            if node.operator == "NOT":
                return "boolean"
            self._warn_coercion(operand, node.operator, warnings)
            return "number"
        if isinstance(node, BinaryOpNode):
            return self._infer_binary(node, warnings)
        if isinstance(node, FunctionCallNode):
            arg_types = [self._infer(arg, warnings) for arg in node.arguments]
            if node.name == "IF" and len(arg_types) >= 2:
                branches = set(arg_types[1:])
                return branches.pop() if len(branches) == 1 else "any"
            spec = get_function(node.name)
            return spec.return_type if spec else "any"
        return "any"

    def _infer_binary(self, node: BinaryOpNode, warnings: list[dict[str, Any]]) -> str:
        left = self._infer(node.left, warnings)
        right = self._infer(node.right, warnings)
        op = node.operator
        if op in COMPARISON_OPERATORS:
            return "boolean"
        if op == "&":
            return "text"
        if op == "+" and "text" in (left, right):
            return "text"
        if op in ("+", "-") and left == "date" and right == "number":
            return "date"
        if op == "-" and left == right == "date":
            return "number"
        for side in (left, right):
            self._warn_coercion(side, op, warnings)
        return "number"

    @staticmethod
    def _warn_coercion(operand_type: str, op: str, warnings: list[dict[str, Any]]) -> None:
        if operand_type in ("text", "boolean", "array"):
            warnings.append(
                _issue(
                    "type_coercion",
                    f"Operator '{op}' applied to a {operand_type} value; it will be "
                    f"converted to a number",
                )
            )


def validate_expression(
    expression: str,
    properties: list[dict[str, Any]],
    property_id: str | None = None,
) -> dict[str, Any]:
    return FormulaValidator(properties, property_id=property_id).validate(expression)
