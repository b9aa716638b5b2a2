"""Single-variable arithmetic formulas for DPS value scaling.

A configured formula is a suffix applied to the value, e.g. ``/2.3-10.86``
or ``*2.3+25``. It is compiled once, when the topic descriptor is built;
only numbers, the value itself, ``+ - * /``, unary minus and parentheses
are accepted.
"""

from __future__ import annotations

import ast
import operator
from collections.abc import Callable
from typing_extensions import override

from tuya_mqtt.exceptions import FormulaError

__all__ = ["Formula"]

_VARIABLE = "x"

_BIN_OPS: dict[type[ast.operator], Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS: dict[type[ast.unaryop], Callable[[float], float]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def _check(node: ast.AST, source: str) -> None:
    if isinstance(node, ast.Expression):
        _check(node.body, source)
    elif isinstance(node, ast.BinOp):
        if type(node.op) not in _BIN_OPS:
            raise FormulaError(source, f"operator {type(node.op).__name__} is not allowed")
        _check(node.left, source)
        _check(node.right, source)
    elif isinstance(node, ast.UnaryOp):
        if type(node.op) not in _UNARY_OPS:
            raise FormulaError(source, f"operator {type(node.op).__name__} is not allowed")
        _check(node.operand, source)
    elif isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, int | float):
            raise FormulaError(source, f"constant {node.value!r} is not a number")
    elif isinstance(node, ast.Name):
        if node.id != _VARIABLE:
            raise FormulaError(source, f"unknown name {node.id!r}")
    else:
        raise FormulaError(source, f"{type(node).__name__} is not allowed")


def _evaluate(node: ast.AST, x: float) -> float:
    match node:
        case ast.Expression(body=body):
            return _evaluate(body, x)
        case ast.BinOp(left=left, op=op, right=right):
            return _BIN_OPS[type(op)](_evaluate(left, x), _evaluate(right, x))
        case ast.UnaryOp(op=op, operand=operand):
            return _UNARY_OPS[type(op)](_evaluate(operand, x))
        case ast.Constant(value=value):
            return float(value)
        case _:
            return x


class Formula:
    """A compiled ``x <suffix>`` expression."""

    __slots__ = ("_tree", "suffix")

    def __init__(self, suffix: str) -> None:
        self.suffix: str = suffix.strip()
        source = f"{_VARIABLE}{self.suffix}"
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as exc:
            raise FormulaError(self.suffix, f"syntax error: {exc.msg}") from exc
        _check(tree, self.suffix)
        self._tree: ast.Expression = tree

    def __call__(self, x: float) -> float:
        """Evaluate the formula; ZeroDivisionError propagates to the caller."""
        return _evaluate(self._tree, float(x))

    @override
    def __repr__(self) -> str:
        return f"Formula({self.suffix!r})"

    @override
    def __eq__(self, other: object) -> bool:
        return isinstance(other, Formula) and other.suffix == self.suffix

    @override
    def __hash__(self) -> int:
        return hash(self.suffix)
