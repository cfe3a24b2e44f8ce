"""Arithmetic evaluation over a whitelisted AST.

Only numeric literals, arithmetic operators, parentheses, and the names in
``FUNCTIONS``/``CONSTANTS`` are accepted; anything else (attribute access,
subscripts, arbitrary calls, comprehensions) is rejected before evaluation.
"""

from __future__ import annotations

import ast
import math
import operator
from typing import Any, Callable

from conduit.errors import ToolError
from conduit.tools.base import BaseTool

_BINARY: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

FUNCTIONS: dict[str, Callable[..., Any]] = {
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "sqrt": math.sqrt,
    "log": math.log,
    "ln": math.log,
    "log10": math.log10,
    "log2": math.log2,
    "exp": math.exp,
    "abs": abs,
    "floor": math.floor,
    "ceil": math.ceil,
    "round": round,
    "min": min,
    "max": max,
    "pow": math.pow,
}

CONSTANTS: dict[str, float] = {"pi": math.pi, "e": math.e, "tau": math.tau}

MAX_EXPONENT = 10_000
MAX_EXPRESSION_LENGTH = 500
# Integers wider than this cannot be rendered as decimal text (~4200 digits)
MAX_RESULT_BITS = 14_000


def _eval(node: ast.AST) -> Any:
    if isinstance(node, ast.Expression):
        return _eval(node.body)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        raise ToolError(f"Unsupported literal: {node.value!r}")
    if isinstance(node, ast.BinOp):
        op = _BINARY.get(type(node.op))
        if op is None:
            raise ToolError(f"Unsupported operator: {type(node.op).__name__}")
        left, right = _eval(node.left), _eval(node.right)
        if op is operator.pow:
            if abs(right) > MAX_EXPONENT:
                raise ToolError("Exponent too large")
            if isinstance(left, int) and isinstance(right, int) and right > 0:
                if abs(left).bit_length() * right > MAX_RESULT_BITS:
                    raise ToolError("Result too large")
        return _check_size(op(left, right))
    if isinstance(node, ast.UnaryOp):
        op = _UNARY.get(type(node.op))
        if op is None:
            raise ToolError(f"Unsupported operator: {type(node.op).__name__}")
        return op(_eval(node.operand))
    if isinstance(node, ast.Name):
        if node.id in CONSTANTS:
            return CONSTANTS[node.id]
        raise ToolError(f"Unknown name: {node.id}")
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
            raise ToolError("Unsupported function call")
        if node.keywords:
            raise ToolError("Keyword arguments are not supported")
        return FUNCTIONS[node.func.id](*(_eval(arg) for arg in node.args))
    raise ToolError(f"Unsupported expression: {type(node).__name__}")


def _check_size(value: Any) -> Any:
    if isinstance(value, int) and value.bit_length() > MAX_RESULT_BITS:
        raise ToolError("Result too large")
    return value


def evaluate(expression: str) -> float | int:
    """Evaluate ``expression``; ``^`` is accepted as exponentiation."""
    expression = expression.strip()
    if not expression:
        raise ToolError("Expression is empty")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ToolError("Expression is too long")
    try:
        tree = ast.parse(expression.replace("^", "**"), mode="eval")
    except SyntaxError as e:
        raise ToolError(f"Invalid expression: {e.msg}") from e
    try:
        value = _eval(tree)
    except ZeroDivisionError as e:
        raise ToolError("Division by zero") from e
    except (ValueError, TypeError, OverflowError) as e:
        raise ToolError(str(e)) from e
    if isinstance(value, complex):
        raise ToolError("Result is not a real number")
    return value


def format_number(value: float | int, precision: int | None = None) -> str:
    """Render a result; integral values have no decimal point ("22", not "22.0")."""
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ToolError("Result is not a finite number")
        if precision is not None:
            value = round(value, precision)
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


class CalculatorTool(BaseTool):
    def __init__(self, cache_ttl: float = 3600.0) -> None:
        self._cache_ttl = cache_ttl

    @property
    def name(self) -> str:
        return "calculate"

    @property
    def description(self) -> str:
        return "Performs mathematical calculations with high precision"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Arithmetic expression, e.g. '2 + 2 * 10' or 'sqrt(16)'.",
                },
                "precision": {
                    "type": "integer",
                    "description": "Decimal places to round the result to.",
                },
            },
            "required": ["expression"],
        }

    @property
    def cache_ttl(self) -> float:
        return self._cache_ttl

    def normalize_args(self, args: dict[str, Any]) -> dict[str, Any]:
        expression = str(args.get("expression") or "").strip()
        if not expression:
            raise ToolError("Missing required argument: expression")
        normalized: dict[str, Any] = {"expression": expression}
        precision = args.get("precision")
        if precision is not None:
            try:
                normalized["precision"] = int(precision)
            except (TypeError, ValueError) as e:
                raise ToolError("precision must be an integer") from e
        return normalized

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        expression: str = kwargs["expression"]
        precision: int | None = kwargs.get("precision")
        result = format_number(evaluate(expression), precision)
        output: dict[str, Any] = {"result": result, "expression": expression}
        if precision is not None:
            output["precision"] = precision
        return output
