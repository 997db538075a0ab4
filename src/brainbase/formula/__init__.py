"""Formula engine for BrainBase.

Parses formula expressions into an AST (Lark LALR grammar), evaluates
them with a step budget, and tracks dependencies between computed
properties. ``resolver`` and ``validator`` build on these and are
imported from their modules directly.
"""

from brainbase.formula.dependencies import FormulaDependencyGraph
from brainbase.formula.evaluator import FormulaEvaluator, evaluate_formula
from brainbase.formula.functions import FORMULA_FUNCTIONS, get_function, register_function
from brainbase.formula.parser import FormulaParser, parse_formula, tokenize_formula

__all__ = [
    "FORMULA_FUNCTIONS",
    "FormulaDependencyGraph",
    "FormulaEvaluator",
    "FormulaParser",
    "evaluate_formula",
    "get_function",
    "parse_formula",
    "register_function",
    "tokenize_formula",
]
