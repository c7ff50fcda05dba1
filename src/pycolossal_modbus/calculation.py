"""
Calculation engine: resolve tag references, substitute live values, evaluate in a sandbox.

Expressions are user-authored configuration, so evaluation never reaches ``eval``.
The substituted text is parsed with ``ast`` and walked by a small interpreter that
only knows numeric literals, arithmetic operators and a fixed table of math
functions. All arithmetic is done in float so exponentiation overflows instead of
building huge integers.
"""

import ast
import logging
import math
import operator
from typing import Any, Callable, Iterable, Mapping

from .codec import format_number
from .errors import CalculationError, EvaluationError, UnknownTagError, UnsupportedOperandError
from .normalize import find_references, substitute_references
from .types import BooleanValue, CalculationChannel, Device, IntegerValue, RealValue, TagValue

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 1024
MAX_NESTING_DEPTH = 64

_BINARY_OPS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sqrt": math.sqrt,
    "exp": math.exp,
    "log": math.log,
    "log10": math.log10,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "floor": math.floor,
    "ceil": math.ceil,
}

_CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}


def _eval_node(node: ast.AST, depth: int = 0) -> float:
    if depth > MAX_NESTING_DEPTH:
        raise EvaluationError("Expression nested too deeply")
    if isinstance(node, ast.Expression):
        return _eval_node(node.body, depth + 1)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise EvaluationError(f"Unsupported literal: {node.value!r}")
        return float(node.value)
    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise EvaluationError(f"Unsupported operator: {type(node.op).__name__}")
        left = _eval_node(node.left, depth + 1)
        right = _eval_node(node.right, depth + 1)
        return float(op(left, right))
    if isinstance(node, ast.UnaryOp):
        uop = _UNARY_OPS.get(type(node.op))
        if uop is None:
            raise EvaluationError(f"Unsupported operator: {type(node.op).__name__}")
        return float(uop(_eval_node(node.operand, depth + 1)))
    if isinstance(node, ast.Name):
        if node.id in _CONSTANTS:
            return _CONSTANTS[node.id]
        raise EvaluationError(f"Unknown name: {node.id!r}")
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise EvaluationError(f"Unsupported function: {ast.unparse(node.func)!r}")
        if node.keywords:
            raise EvaluationError(f"Keyword arguments not allowed in {node.func.id}()")
        args = [_eval_node(a, depth + 1) for a in node.args]
        return float(_FUNCTIONS[node.func.id](*args))
    raise EvaluationError(f"Unsupported syntax: {type(node).__name__}")


def evaluate_arithmetic(text: str) -> float:
    """Evaluate a purely numeric expression; raises EvaluationError on any failure."""
    if len(text) > MAX_EXPRESSION_LENGTH:
        raise EvaluationError(f"Expression longer than {MAX_EXPRESSION_LENGTH} characters", expression=text)
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError as e:
        raise EvaluationError(f"Syntax error: {e.msg}", expression=text) from e
    except (ValueError, RecursionError, MemoryError) as e:
        raise EvaluationError(f"Cannot parse expression: {type(e).__name__}", expression=text) from e
    try:
        result = _eval_node(tree)
    except EvaluationError as e:
        e.expression = text
        raise
    except ZeroDivisionError as e:
        raise EvaluationError("Division by zero", expression=text) from e
    except (OverflowError, ValueError, TypeError) as e:
        raise EvaluationError(f"{type(e).__name__}: {e}", expression=text) from e
    if not math.isfinite(result):
        raise EvaluationError(f"Non-finite result: {result!r}", expression=text)
    return result


def _literal(reference: str, value: TagValue) -> str:
    if isinstance(value, IntegerValue):
        return format_number(value.value)
    if isinstance(value, RealValue):
        if not math.isfinite(value.value):
            raise UnsupportedOperandError(reference, f"Tag {reference} holds non-finite value {value.value!r}")
        return format_number(value.value, real=True)
    if isinstance(value, BooleanValue):
        raise UnsupportedOperandError(reference, f"Boolean tag {reference} cannot be used in an expression")
    raise UnsupportedOperandError(reference, f"Tag {reference} has unknown value type {type(value).__name__}")


def substitute(expression: str, tags: Mapping[str, TagValue]) -> str:
    """
    Replace each tag reference with the numeric literal of its current value.

    Every distinct reference is resolved exactly once. Any unresolved reference fails
    the whole substitution.
    """
    literals: dict[str, str] = {}
    for ref in find_references(expression):
        if ref not in tags:
            raise UnknownTagError(ref)
        literals[ref] = _literal(ref, tags[ref])
    return substitute_references(expression, literals)


def evaluate_expression(expression: str, tags: Mapping[str, TagValue]) -> float:
    """Substitute tag values into an expression and evaluate it. Constant expressions are valid."""
    substituted = substitute(expression, tags)
    logger.debug("Evaluating %r as %r", expression, substituted)
    return evaluate_arithmetic(substituted)


def collect_tags(devices: Iterable[Device]) -> dict[str, TagValue]:
    """Union of all device channels' current values, keyed by channel name."""
    tags: dict[str, TagValue] = {}
    for device in devices:
        tags.update(device.tag_values())
    return tags


def evaluate_channel(channel: CalculationChannel, tags: Mapping[str, TagValue]) -> float:
    """
    Evaluate one calculation channel in place.

    Success replaces the stored value and clears the error. Failure records the error,
    keeps the last good value, and re-raises.
    """
    try:
        result = evaluate_expression(channel.expression, tags)
    except CalculationError as e:
        channel.error = str(e)
        raise
    channel.value = result
    channel.error = None
    return result


def evaluate_all(
    channels: Iterable[CalculationChannel],
    tags: Mapping[str, TagValue],
) -> list[tuple[CalculationChannel, CalculationError]]:
    """Evaluate every enabled channel in id order; failures are collected, never abort siblings."""
    failures: list[tuple[CalculationChannel, CalculationError]] = []
    for channel in sorted(channels, key=lambda c: c.id):
        if not channel.enabled:
            continue
        try:
            evaluate_channel(channel, tags)
        except CalculationError as e:
            logger.debug("Calculation %s failed: %s", channel.name, e)
            failures.append((channel, e))
    return failures
