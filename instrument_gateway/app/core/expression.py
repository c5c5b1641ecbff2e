"""
Restricted arithmetic formulas for analog conversion.

A formula such as ``adcval * (vref / 256)`` is parsed once with :mod:`ast`
and checked against a whitelist of node types. Only numeric literals, the
variables ``adcval`` and ``vref``, the binary operators ``+ - * / // % **``,
unary ``+``/``-`` and parentheses are accepted. Evaluation walks the checked
tree directly, so nothing is passed to ``eval``.
"""

import ast
import math
import operator
from typing import Callable, Dict

from instrument_gateway.app.core.gateway_exceptions import ExpressionError


ALLOWED_VARIABLES = frozenset({"adcval", "vref"})

_BINARY_OPERATORS: Dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: Dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class CompiledExpression:
    """A validated analog formula, evaluated against adcval and vref"""

    def __init__(self, source: str, tree: ast.Expression):
        self.source = source
        self._tree = tree

    def __repr__(self):
        return f"CompiledExpression({self.source!r})"

    def __eq__(self, other):
        return isinstance(other, CompiledExpression) and other.source == self.source

    def __hash__(self):
        return hash(self.source)

    def evaluate(self, adcval: float, vref: float) -> float:
        variables = {"adcval": float(adcval), "vref": float(vref)}
        try:
            result = _evaluate_node(self._tree.body, variables)
        except ZeroDivisionError:
            raise ExpressionError(f"Division by zero evaluating '{self.source}'")
        except OverflowError:
            raise ExpressionError(f"Numeric overflow evaluating '{self.source}'")

        if isinstance(result, complex):
            raise ExpressionError(f"Formula '{self.source}' produced a complex result")
        result = float(result)
        if not math.isfinite(result):
            raise ExpressionError(f"Formula '{self.source}' produced a non-finite result")
        return result


def compile_expression(source: str) -> CompiledExpression:
    """Parse and validate a formula, raising ExpressionError if it is not allowed"""
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError("Formula is empty")

    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Formula '{source}' is not valid: {e.msg}")

    for node in ast.walk(tree):
        _check_node(node, source)

    return CompiledExpression(source.strip(), tree)


def _check_node(node: ast.AST, source: str) -> None:
    if isinstance(node, (ast.Expression, ast.BinOp, ast.UnaryOp, ast.Load)):
        return
    if type(node) in _BINARY_OPERATORS or type(node) in _UNARY_OPERATORS:
        return
    if isinstance(node, ast.Constant):
        # bool is an int subclass; True/False are not numbers here
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"Formula '{source}' contains a non-numeric literal {node.value!r}")
        return
    if isinstance(node, ast.Name):
        if node.id not in ALLOWED_VARIABLES:
            raise ExpressionError(
                f"Formula '{source}' uses unknown variable '{node.id}' "
                f"(allowed: {', '.join(sorted(ALLOWED_VARIABLES))})"
            )
        return
    raise ExpressionError(f"Formula '{source}' contains unsupported syntax: {type(node).__name__}")


def _evaluate_node(node: ast.AST, variables: Dict[str, float]):
    if isinstance(node, ast.Constant):
        # Float arithmetic throughout keeps huge integer powers bounded
        return float(node.value)
    if isinstance(node, ast.Name):
        return variables[node.id]
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPERATORS[type(node.op)](_evaluate_node(node.operand, variables))
    if isinstance(node, ast.BinOp):
        left = _evaluate_node(node.left, variables)
        right = _evaluate_node(node.right, variables)
        return _BINARY_OPERATORS[type(node.op)](left, right)
    raise ExpressionError(f"Unsupported node {type(node).__name__}")
