"""Formula parser for BrainBase.

Two stages: the Lark lexer splits an expression into typed tokens, then
the LALR parser builds an immutable AST. Parsed ASTs are cached per
expression string so repeated evaluation of the same property is cheap.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedInput

from brainbase.core.exceptions import FormulaSyntaxError
from brainbase.formula.grammar import FORMULA_GRAMMAR


# =============================================================================
# AST node types
# =============================================================================


@dataclass(frozen=True)
class NumberNode:
    value: float | int


@dataclass(frozen=True)
class StringNode:
    value: str


@dataclass(frozen=True)
class BooleanNode:
    value: bool | None  # None represents BLANK


@dataclass(frozen=True)
class PropertyRefNode:
    """Reference to a property by id or name."""

    name: str
    position: int | None = None


@dataclass(frozen=True)
class VariableNode:
    name: str
    position: int | None = None


@dataclass(frozen=True)
class FunctionCallNode:
    name: str
    arguments: tuple[Any, ...]
    position: int | None = None


@dataclass(frozen=True)
class BinaryOpNode:
    operator: str
    left: Any
    right: Any


@dataclass(frozen=True)
class UnaryOpNode:
    operator: str
    operand: Any


# =============================================================================
# Tokens
# =============================================================================


@dataclass(frozen=True)
class FormulaToken:
    """A lexed piece of an expression."""

    kind: str  # number, string, boolean, property, variable, function, operator, parenthesis, comma
    value: str
    position: int


_TOKEN_KINDS = {
    "NUMBER": "number",
    "STRING": "string",
    "BOOLEAN": "boolean",
    "FIELD_REF": "property",
    "BRACKET_REF": "property",
    "VARIABLE": "variable",
    "FUNCTION_NAME": "function",
}

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}


def _unescape(body: str) -> str:
    out: list[str] = []
    chars = iter(body)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_ESCAPES.get(nxt, nxt))
        else:
            out.append(ch)
    return "".join(out)


class FormulaTransformer(Transformer):
    """Transform the Lark parse tree into AST nodes."""

    @v_args(inline=True)
    def number(self, token):
        value = float(token)
        if value.is_integer() and "e" not in token.lower() and "." not in token:
            return NumberNode(int(value))
        return NumberNode(value)

    @v_args(inline=True)
    def string(self, token):
        return StringNode(_unescape(str(token)[1:-1]))

    @v_args(inline=True)
    def boolean(self, token):
        val = str(token).upper()
        if val == "TRUE":
            return BooleanNode(True)
        if val == "FALSE":
            return BooleanNode(False)
        return BooleanNode(None)

    @v_args(inline=True)
    def property_ref(self, token):
        return PropertyRefNode(str(token)[1:-1].strip(), token.start_pos)

    @v_args(inline=True)
    def variable(self, token):
        return VariableNode(str(token)[1:], token.start_pos)

    def function_call(self, items):
        name_token = items[0]
        args = tuple(items[1]) if len(items) > 1 and items[1] is not None else ()
        return FunctionCallNode(str(name_token).upper(), args, name_token.start_pos)

    def arguments(self, items):
        return list(items)

    @v_args(inline=True)
    def add(self, left, right):
        return BinaryOpNode("+", left, right)

    @v_args(inline=True)
    def sub(self, left, right):
        return BinaryOpNode("-", left, right)

    @v_args(inline=True)
    def mul(self, left, right):
        return BinaryOpNode("*", left, right)

    @v_args(inline=True)
    def div(self, left, right):
        return BinaryOpNode("/", left, right)

    @v_args(inline=True)
    def mod(self, left, right):
        return BinaryOpNode("%", left, right)

    @v_args(inline=True)
    def pow(self, left, right):
        return BinaryOpNode("^", left, right)

    @v_args(inline=True)
    def string_concat(self, left, right):
        return BinaryOpNode("&", left, right)

    @v_args(inline=True)
    def eq(self, left, right):
        return BinaryOpNode("=", left, right)

    @v_args(inline=True)
    def ne(self, left, right):
        return BinaryOpNode("!=", left, right)

    @v_args(inline=True)
    def lt(self, left, right):
        return BinaryOpNode("<", left, right)

    @v_args(inline=True)
    def gt(self, left, right):
        return BinaryOpNode(">", left, right)

    @v_args(inline=True)
    def le(self, left, right):
        return BinaryOpNode("<=", left, right)

    @v_args(inline=True)
    def ge(self, left, right):
        return BinaryOpNode(">=", left, right)

    @v_args(inline=True)
    def and_op(self, left, right):
        return BinaryOpNode("AND", left, right)

    @v_args(inline=True)
    def or_op(self, left, right):
        return BinaryOpNode("OR", left, right)

    @v_args(inline=True)
    def not_op(self, operand):
        return UnaryOpNode("NOT", operand)

    @v_args(inline=True)
    def neg(self, operand):
        return UnaryOpNode("-", operand)

    @v_args(inline=True)
    def pos(self, operand):
        return operand


class FormulaParser:
    """
    Parser for BrainBase formulas.

    Parses formula strings into an AST that can be evaluated.
    """

    def __init__(self) -> None:
        self._parser = Lark(
            FORMULA_GRAMMAR,
            parser="lalr",
            transformer=FormulaTransformer(),
        )
        self._lexer = Lark(FORMULA_GRAMMAR, parser="lalr", lexer="basic")

    def tokenize(self, formula: str) -> list[FormulaToken]:
        """
        Split a formula into tokens without building a tree.

        Raises:
            FormulaSyntaxError: On characters no token matches
        """
        tokens: list[FormulaToken] = []
        try:
            for tok in self._lexer.lex(formula):
                value = str(tok)
                if tok.type in _TOKEN_KINDS:
                    kind = _TOKEN_KINDS[tok.type]
                elif value in ("(", ")"):
                    kind = "parenthesis"
                elif value == ",":
                    kind = "comma"
                else:
                    kind = "operator"
                tokens.append(FormulaToken(kind, value, tok.start_pos))
        except UnexpectedInput as e:
            raise FormulaSyntaxError(formula, _describe(e), getattr(e, "pos_in_stream", None))
        return tokens

    def parse(self, formula: str) -> Any:
        """
        Parse a formula string into an AST.

        Raises:
            FormulaSyntaxError: If formula syntax is invalid
        """
        if not formula or not formula.strip():
            raise FormulaSyntaxError(formula, "Expression is empty", 0)
        try:
            return self._parser.parse(formula)
        except UnexpectedInput as e:
            raise FormulaSyntaxError(formula, _describe(e), getattr(e, "pos_in_stream", None))
        except LarkError as e:
            raise FormulaSyntaxError(formula, str(e))

    def validate(self, formula: str) -> tuple[bool, str | None]:
        """Check syntax only. Returns (is_valid, error_message)."""
        try:
            self.parse(formula)
            return True, None
        except FormulaSyntaxError as e:
            return False, e.details["error"]


def _describe(error: UnexpectedInput) -> str:
    pos = getattr(error, "pos_in_stream", None)
    token = getattr(error, "token", None)
    if token is not None and getattr(token, "type", None) == "$END":
        return "Unexpected end of expression"
    if token is not None:
        return f"Unexpected token {str(token)!r} at position {pos}"
    char = getattr(error, "char", None)
    if char is not None:
        return f"Unexpected character {char!r} at position {pos}"
    return "Invalid formula syntax"


# =============================================================================
# Module-level helpers
# =============================================================================

_default_parser: FormulaParser | None = None


def get_parser() -> FormulaParser:
    global _default_parser
    if _default_parser is None:
        _default_parser = FormulaParser()
    return _default_parser


@lru_cache(maxsize=1024)
def parse_formula(formula: str) -> Any:
    """Parse with the shared parser; results are cached per expression."""
    return get_parser().parse(formula)


def tokenize_formula(formula: str) -> list[FormulaToken]:
    return get_parser().tokenize(formula)


def iter_children(node: Any) -> tuple[Any, ...]:
    if isinstance(node, BinaryOpNode):
        return (node.left, node.right)
    if isinstance(node, UnaryOpNode):
        return (node.operand,)
    if isinstance(node, FunctionCallNode):
        return node.arguments
    return ()


def walk(node: Any) -> Iterator[Any]:
    """Pre-order traversal of an AST."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(iter_children(current)))


def collect_property_refs(node: Any) -> list[str]:
    seen: dict[str, None] = {}
    for n in walk(node):
        if isinstance(n, PropertyRefNode):
            seen.setdefault(n.name, None)
    return list(seen)


def ast_depth(node: Any) -> int:
    children = iter_children(node)
    if not children:
        return 1
    return 1 + max(ast_depth(child) for child in children)


def function_call_depth(node: Any) -> int:
    """Deepest nesting of function calls inside one another."""
    inner = max((function_call_depth(c) for c in iter_children(node)), default=0)
    return inner + 1 if isinstance(node, FunctionCallNode) else inner


# Weighted penalty per function call on top of the node count
FUNCTION_CALL_WEIGHT = 2


def estimate_complexity(node: Any) -> int:
    """Node count plus a penalty per function call; advisory only."""
    score = 0
    for n in walk(node):
        score += 1
        if isinstance(n, FunctionCallNode):
            score += FUNCTION_CALL_WEIGHT
    return score
