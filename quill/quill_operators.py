"""
The operator table.

Operators are selected by priority (lower binds tighter, ties go to the
leftmost occurrence). Binary handlers replace the three-node window around
the symbol, unary handlers the two-node window starting at it.
"""
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from quill.quill_datatypes import (
    Node, SymbolNode, ValueNode, WordNode, Context,
    ScriptSyntaxError, ScriptTypeError,
    is_unary_position, replace_range, type_name,
)
from quill.quill_printer import Printer

OperatorHandler = Callable[[Any, List[Node], int, Context], None]

NUMBER = (float, "number")
BOOLEAN = (bool, "boolean")


@dataclass(frozen=True)
class OperatorDefinition:
    symbol: str
    priority: float
    handler: OperatorHandler
    unary_priority: Optional[float] = None

    def priority_at(self, buffer: List[Node], index: int) -> float:
        """Context-sensitive signs bind tighter in unary position."""
        if self.unary_priority is not None and is_unary_position(buffer, index):
            return self.unary_priority
        return self.priority


# =================================================================
# Operand helpers
# =================================================================

def _operand(ev, buffer: List[Node], index: int, symbol: SymbolNode, context: Context) -> Any:
    if index < 0 or index >= len(buffer):
        raise ScriptSyntaxError(f'missing operand for "{symbol.text}"', symbol, context.source)
    return ev.evaluate_node(buffer[index], context)


def _expect(value: Any, kind: tuple, side: str, node: Node, symbol: SymbolNode, context: Context):
    cls, label = kind
    if not isinstance(value, cls):
        raise ScriptTypeError(
            f'expect a {label} on the {side} of "{symbol.text}" (got {type_name(value)})',
            node, context.source,
        )


def create_binary_operator(left: tuple, right: tuple, compute: Callable[[Any, Any], Any]) -> OperatorHandler:
    """Builds a handler that type-checks both operands before computing."""
    def handler(ev, buffer, i, context):
        symbol = buffer[i]
        a = _operand(ev, buffer, i - 1, symbol, context)
        b = _operand(ev, buffer, i + 1, symbol, context)
        _expect(a, left, "left", buffer[i - 1], symbol, context)
        _expect(b, right, "right", buffer[i + 1], symbol, context)
        replace_range(buffer, i - 1, 3, ValueNode.at(compute(a, b), symbol))
    return handler


# =================================================================
# Numeric semantics
# =================================================================

def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def ieee_power(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except OverflowError:
        return math.inf
    except (ValueError, ZeroDivisionError):
        if a == 0 and b < 0:
            return math.inf
        return math.nan


def to_int32(value: float) -> int:
    """Truncates a number to a signed 32-bit integer (non-finite -> 0)."""
    if not math.isfinite(value):
        return 0
    n = int(value) & 0xFFFFFFFF
    return n - 0x100000000 if n >= 0x80000000 else n


def _bitwise(compute: Callable[[int, int], int]) -> Callable[[float, float], float]:
    return lambda a, b: float(to_int32(compute(to_int32(a), to_int32(b))))


def strict_equals(a: Any, b: Any) -> bool:
    """Same kind and equal value for scalars; identity for aggregates and functions."""
    match a:
        case None:
            return b is None
        case bool():
            return isinstance(b, bool) and a == b
        case float():
            return isinstance(b, float) and a == b
        case str():
            return isinstance(b, str) and a == b
    return a is b


# =================================================================
# Special handlers
# =================================================================

def _sign(negate: bool) -> OperatorHandler:
    def handler(ev, buffer, i, context):
        symbol = buffer[i]
        b = _operand(ev, buffer, i + 1, symbol, context)
        _expect(b, NUMBER, "right", buffer[i + 1], symbol, context)
        if is_unary_position(buffer, i):
            replace_range(buffer, i, 2, ValueNode.at(-b if negate else b, symbol))
            return
        a = _operand(ev, buffer, i - 1, symbol, context)
        _expect(a, NUMBER, "left", buffer[i - 1], symbol, context)
        replace_range(buffer, i - 1, 3, ValueNode.at(a - b if negate else a + b, symbol))
    return handler


def _not(ev, buffer, i, context):
    symbol = buffer[i]
    operand = _operand(ev, buffer, i + 1, symbol, context)
    _expect(operand, BOOLEAN, "right", buffer[i + 1], symbol, context)
    replace_range(buffer, i, 2, ValueNode.at(not operand, symbol))


def _stringify(ev, buffer, i, context):
    symbol = buffer[i]
    if i + 1 >= len(buffer):
        raise ScriptSyntaxError('expect a word or value following "#"', symbol, context.source)
    target = buffer[i + 1]
    if isinstance(target, WordNode):
        text = target.text
    else:
        text = Printer().pformat(ev.evaluate_node(target, context))
    replace_range(buffer, i, 2, ValueNode.at(text, symbol))


def _equality(negate: bool) -> OperatorHandler:
    def handler(ev, buffer, i, context):
        symbol = buffer[i]
        a = _operand(ev, buffer, i - 1, symbol, context)
        b = _operand(ev, buffer, i + 1, symbol, context)
        result = strict_equals(a, b)
        replace_range(buffer, i - 1, 3, ValueNode.at(result != negate, symbol))
    return handler


def _assign(ev, buffer, i, context):
    symbol = buffer[i]
    if i == 0:
        raise ScriptSyntaxError("no variable name given", symbol, context.source)
    name = buffer[i - 1]
    if not isinstance(name, WordNode):
        raise ScriptSyntaxError("expect a word as variable name", name, context.source)
    value = ev.evaluate_value(buffer[i + 1:], symbol, context)
    context.store.assign(name.text, value)
    replace_range(buffer, i - 1, len(buffer) - i + 1, ValueNode.at(value, name))


# =================================================================
# The Table
# =================================================================

OPERATOR_LIST: tuple[OperatorDefinition, ...] = (
    OperatorDefinition('**', 1, create_binary_operator(NUMBER, NUMBER, ieee_power)),
    OperatorDefinition('!', 2, _not),
    OperatorDefinition('#', 2, _stringify),
    OperatorDefinition('*', 3, create_binary_operator(NUMBER, NUMBER, lambda a, b: a * b)),
    OperatorDefinition('/', 3, create_binary_operator(NUMBER, NUMBER, _divide)),
    OperatorDefinition('+', 4, _sign(negate=False), unary_priority=2),
    OperatorDefinition('-', 4, _sign(negate=True), unary_priority=2),
    OperatorDefinition('<', 6, create_binary_operator(NUMBER, NUMBER, lambda a, b: a < b)),
    OperatorDefinition('>', 6, create_binary_operator(NUMBER, NUMBER, lambda a, b: a > b)),
    OperatorDefinition('<=', 6, create_binary_operator(NUMBER, NUMBER, lambda a, b: a <= b)),
    OperatorDefinition('>=', 6, create_binary_operator(NUMBER, NUMBER, lambda a, b: a >= b)),
    OperatorDefinition('==', 7, _equality(negate=False)),
    OperatorDefinition('!=', 7, _equality(negate=True)),
    OperatorDefinition('&', 8, create_binary_operator(NUMBER, NUMBER, _bitwise(lambda a, b: a & b))),
    OperatorDefinition('^', 9, create_binary_operator(NUMBER, NUMBER, _bitwise(lambda a, b: a ^ b))),
    OperatorDefinition('|', 10, create_binary_operator(NUMBER, NUMBER, _bitwise(lambda a, b: a | b))),
    OperatorDefinition('&&', 11, create_binary_operator(BOOLEAN, BOOLEAN, lambda a, b: a and b)),
    OperatorDefinition('||', 12, create_binary_operator(BOOLEAN, BOOLEAN, lambda a, b: a or b)),
    OperatorDefinition('=', math.inf, _assign),
)

# A utility map. (symbol -> definition)
OPERATORS: Dict[str, OperatorDefinition] = {op.symbol: op for op in OPERATOR_LIST}
