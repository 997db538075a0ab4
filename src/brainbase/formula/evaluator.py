"""Formula evaluator for BrainBase.

Evaluates parsed formula ASTs against a record's property values and
optional caller-supplied variables. Every visited node counts against a
step budget so a runaway expression always terminates.
"""

import math
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta
from typing import Any

from brainbase.core.exceptions import FormulaLimitError, FormulaRuntimeError
from brainbase.formula.functions import check_text_length, get_function
from brainbase.formula.parser import (
    BinaryOpNode,
    BooleanNode,
    FunctionCallNode,
    NumberNode,
    PropertyRefNode,
    StringNode,
    UnaryOpNode,
    VariableNode,
)

PropertyLookup = Callable[[str], Any]

DEFAULT_MAX_STEPS = 10_000


def _tidy(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class FormulaEvaluator:
    """
    Evaluates formula ASTs against record data.

    Property references are looked up through ``fields`` (a mapping keyed by
    the name used in the expression) or through a ``lookup`` callable when
    referenced values must be computed on demand.
    """

    def __init__(
        self,
        fields: Mapping[str, Any] | None = None,
        *,
        lookup: PropertyLookup | None = None,
        variables: Mapping[str, Any] | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        formula: str = "",
    ) -> None:
        self._fields = dict(fields or {})
        self._lookup = lookup
        self._variables = dict(variables or {})
        self._max_steps = max_steps
        self._formula = formula
        self.steps = 0

    def evaluate(self, ast: Any, fields: Mapping[str, Any] | None = None) -> Any:
        """
        Evaluate an AST.

        Args:
            ast: Root node from the parser
            fields: Optional property values replacing the constructor's

        Raises:
            FormulaRuntimeError: Unknown function, bad arity or a failing function
            FormulaLimitError: Step budget exhausted
        """
        if fields is not None:
            self._fields = dict(fields)
        self.steps = 0
        return self._eval(ast)

    def _eval(self, node: Any) -> Any:
        self.steps += 1
        if self.steps > self._max_steps:
            raise FormulaLimitError(self._formula, "step", self._max_steps)

        if isinstance(node, NumberNode):
            return node.value
        if isinstance(node, StringNode):
            return node.value
        if isinstance(node, BooleanNode):
            return node.value
        if isinstance(node, PropertyRefNode):
            if self._lookup is not None:
                return self._lookup(node.name)
            return self._fields.get(node.name)
        if isinstance(node, VariableNode):
            return self._variables.get(node.name)
        if isinstance(node, FunctionCallNode):
            return self._eval_function(node)
        if isinstance(node, BinaryOpNode):
            return self._eval_binary(node)
        if isinstance(node, UnaryOpNode):
            return self._eval_unary(node)

        raise FormulaRuntimeError(self._formula, f"Unknown node type: {type(node).__name__}")

    def _eval_function(self, node: FunctionCallNode) -> Any:
        spec = get_function(node.name)
        if spec is None:
            raise FormulaRuntimeError(self._formula, f"Unknown function: {node.name}")
        if not spec.accepts(len(node.arguments)):
            raise FormulaRuntimeError(
                self._formula,
                f"{node.name} does not accept {len(node.arguments)} argument(s)",
            )

        # Only the chosen branch of IF is evaluated
        if node.name == "IF":
            condition = self._eval(node.arguments[0])
            if condition:
                return self._eval(node.arguments[1])
            return self._eval(node.arguments[2]) if len(node.arguments) > 2 else None

        args = [self._eval(arg) for arg in node.arguments]
        try:
            return spec.func(*args)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise FormulaRuntimeError(self._formula, f"{node.name}: {e}") from e

    def _eval_binary(self, node: BinaryOpNode) -> Any:
        op = node.operator

        if op == "AND":
            return bool(self._eval(node.left)) and bool(self._eval(node.right))
        if op == "OR":
            return bool(self._eval(node.left)) or bool(self._eval(node.right))

        left = self._eval(node.left)
        right = self._eval(node.right)

        if op == "+":
            return self._add(left, right)
        if op == "-":
            return self._subtract(left, right)
        if op == "*":
            return self._arith(left, right, lambda a, b: a * b)
        if op == "/":
            return self._arith(left, right, lambda a, b: a / b if b != 0 else None)
        if op == "%":
            return self._arith(left, right, lambda a, b: a % b if b != 0 else None)
        if op == "^":
            return self._power(left, right)
        if op == "&":
            return self._concat(
                "" if left is None else str(left), "" if right is None else str(right)
            )
        if op == "=":
            return self._equal(left, right)
        if op == "!=":
            return not self._equal(left, right)
        if op in ("<", ">", "<=", ">="):
            return self._compare(op, left, right)

        raise FormulaRuntimeError(self._formula, f"Unknown operator: {op}")

    def _eval_unary(self, node: UnaryOpNode) -> Any:
        operand = self._eval(node.operand)
        if node.operator == "NOT":
            return not operand
        if node.operator == "-":
            if operand is None:
                return None
            try:
                return _tidy(-float(operand))
            except (ValueError, TypeError):
                return None
        raise FormulaRuntimeError(self._formula, f"Unknown unary operator: {node.operator}")

    # ==========================================================================
    # Operator Implementations
    # ==========================================================================

    def _add(self, left: Any, right: Any) -> Any:
        """Addition with type coercion; falls back to concatenation for text."""
        if left is None and right is None:
            return None
        if left is None:
            return right
        if right is None:
            return left

        if isinstance(left, (date, datetime)) and _is_number(right):
            return self._shift(left, right)

        try:
            return _tidy(float(left) + float(right))
        except (ValueError, TypeError):
            return self._concat(str(left), str(right))

    def _subtract(self, left: Any, right: Any) -> Any:
        if left is None or right is None:
            return None
        if isinstance(left, (date, datetime)) and isinstance(right, (date, datetime)):
            return self._days_between(left, right)
        if isinstance(left, (date, datetime)) and _is_number(right):
            return self._shift(left, -right)
        return self._arith(left, right, lambda a, b: a - b)

    def _concat(self, left: str, right: str) -> str:
        try:
            check_text_length(len(left) + len(right))
        except ValueError as e:
            raise FormulaRuntimeError(self._formula, str(e)) from e
        return left + right

    def _shift(self, moment: date | datetime, days: float) -> date | datetime:
        try:
            return moment + timedelta(days=days)
        except (ValueError, TypeError, OverflowError) as e:
            raise FormulaRuntimeError(self._formula, f"Date out of range: {e}") from e

    def _days_between(self, left: date | datetime, right: date | datetime) -> int:
        # A date-only side compares by calendar day
        if not isinstance(left, datetime) or not isinstance(right, datetime):
            left = left.date() if isinstance(left, datetime) else left
            right = right.date() if isinstance(right, datetime) else right
        try:
            return (left - right).days
        except (TypeError, OverflowError) as e:
            raise FormulaRuntimeError(self._formula, f"Cannot subtract dates: {e}") from e

    def _power(self, left: Any, right: Any) -> Any:
        if left is None or right is None:
            return None
        try:
            base, exponent = float(left), float(right)
        except (ValueError, TypeError):
            return None
        try:
            return _tidy(math.pow(base, exponent))
        except (ValueError, OverflowError) as e:
            raise FormulaRuntimeError(
                self._formula, f"Cannot raise {left} to the power {right}"
            ) from e

    @staticmethod
    def _arith(left: Any, right: Any, op: Callable[[float, float], float | None]) -> Any:
        if left is None or right is None:
            return None
        try:
            return _tidy(op(float(left), float(right)))
        except (ValueError, TypeError, OverflowError):
            return None

    @staticmethod
    def _equal(left: Any, right: Any) -> bool:
        if left is None and right is None:
            return True
        if left is None or right is None:
            return False
        if _is_number(left) or _is_number(right):
            try:
                return float(left) == float(right)
            except (ValueError, TypeError):
                pass
        return left == right

    @staticmethod
    def _compare(op: str, left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        try:
            a, b = float(left), float(right)
        except (ValueError, TypeError):
            a, b = str(left), str(right)
        if op == "<":
            return a < b
        if op == ">":
            return a > b
        if op == "<=":
            return a <= b
        return a >= b


def evaluate_formula(
    formula_ast: Any,
    fields: Mapping[str, Any],
    variables: Mapping[str, Any] | None = None,
) -> Any:
    """Evaluate a parsed formula against plain field values."""
    return FormulaEvaluator(fields, variables=variables).evaluate(formula_ast)
