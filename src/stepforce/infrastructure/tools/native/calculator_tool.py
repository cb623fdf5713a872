# ============================================
# CALCULATOR TOOL
# ============================================

import ast
import math
import operator
from typing import Any, Dict

from stepforce.core.interfaces.tools import ExecutionContext
from stepforce.infrastructure.tools.native.base import Tool

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

# Largest integer result, in decimal digits. Sizes are checked before an
# operation runs so no single step can stall the event loop.
MAX_DIGITS = 1000


def _round(value: Any, ndigits: Any = None) -> Any:
    if ndigits is None:
        return round(value)
    if not isinstance(ndigits, int) or abs(ndigits) > MAX_DIGITS:
        raise ValueError(f"round() precision must be an integer within {MAX_DIGITS}")
    return round(value, ndigits)


_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS = {
    "abs": abs,
    "round": _round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "log": math.log,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}

_CONSTANTS = {"pi": math.pi, "e": math.e}


class CalculatorTool(Tool):
    """Evaluates arithmetic expressions without executing code"""

    @property
    def name(self) -> str:
        return "calculator"

    @property
    def description(self) -> str:
        return "Perform mathematical calculations. Supports + - * / // % **, parentheses and sqrt, log, sin, cos, tan, abs, round, min, max, pi, e."

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Mathematical expression to evaluate, e.g. '(2 + 3) * 4'",
                }
            },
            "required": ["expression"],
        }

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        expression = params["expression"]
        try:
            tree = ast.parse(expression, mode="eval")
            value = _evaluate(tree.body)
        except ZeroDivisionError:
            return {"success": False, "error": "Division by zero"}
        except (SyntaxError, ValueError, TypeError, OverflowError) as e:
            return {"success": False, "error": f"Invalid expression: {e}"}

        return {"success": True, "result": {"expression": expression, "value": value}}


def _evaluate(node: ast.AST) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value

    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        return _check_size(_BINARY_OPS[type(node.op)](left, right))

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _check_size(_UNARY_OPS[type(node.op)](_evaluate(node.operand)))

    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in _FUNCTIONS:
        if node.keywords:
            raise ValueError("keyword arguments are not supported")
        args = [_evaluate(arg) for arg in node.args]
        return _check_size(_FUNCTIONS[node.func.id](*args))

    raise ValueError(f"unsupported element '{type(node).__name__}'")


def _digits(value: Any) -> float:
    """Approximate decimal digit count of a number's magnitude."""
    magnitude = abs(value)
    if magnitude <= 1:
        return 1
    if isinstance(magnitude, int):
        return magnitude.bit_length() * math.log10(2)
    return math.log10(magnitude)


def _check_power(base: Any, exponent: Any) -> None:
    if isinstance(exponent, complex) or exponent <= 0 or abs(base) <= 1:
        return
    if _digits(base) * exponent > MAX_DIGITS:
        raise ValueError(f"result would exceed {MAX_DIGITS} digits")


def _check_size(value: Any) -> Any:
    if isinstance(value, int) and _digits(value) > MAX_DIGITS:
        raise ValueError(f"result exceeds {MAX_DIGITS} digits")
    return value
