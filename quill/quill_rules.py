"""
The structural rule table.

Each rule is a fixed-width pattern of node matchers paired with a handler.
The evaluator scans its buffer left to right and, at each start position,
tests the rules in table order; the first match fires and its handler's
return value replaces the matched span with a single value node.
"""
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence

from quill.quill_datatypes import (
    Node, NumberNode, WordNode, StringNode, SymbolNode, SpanNode, ValueNode,
    Context, QuillFunction, ScriptFunction, NO_VALUE,
    ScriptSyntaxError, ScriptTypeError, ScriptRangeError, ScriptReferenceError,
    is_symbol, is_unary_position, split_top_level, type_name,
)

Matcher = Callable[[List[Node], int], bool]
RuleHandler = Callable[[Any, List[Node], Context], Any]


@dataclass(frozen=True)
class Rule:
    name: str
    pattern: Sequence[Matcher]
    handler: RuleHandler

    def matches(self, buffer: List[Node], start: int) -> bool:
        if start + len(self.pattern) > len(buffer):
            return False
        return all(m(buffer, start + k) for k, m in enumerate(self.pattern))


# =================================================================
# Matchers
# =================================================================

POSTFIX_SYMBOLS = ('.',)
NAME_PREFIXES = ('$', '.', '#', '@')


def _kind(cls) -> Matcher:
    return lambda buffer, i: isinstance(buffer[i], cls)


def _symbol(text: str) -> Matcher:
    return lambda buffer, i: is_symbol(buffer[i], text)


def _span(delimiter: str) -> Matcher:
    return lambda buffer, i: isinstance(buffer[i], SpanNode) and buffer[i].delimiter == delimiter


def _has_postfix(buffer: List[Node], i: int) -> bool:
    if i + 1 >= len(buffer):
        return False
    nxt = buffer[i + 1]
    return isinstance(nxt, SpanNode) or is_symbol(nxt, *POSTFIX_SYMBOLS)


def _word_reference(buffer: List[Node], i: int) -> bool:
    """A word read as a variable, not an assignment target or a name operand."""
    if not isinstance(buffer[i], WordNode):
        return False
    if i + 1 < len(buffer) and is_symbol(buffer[i + 1], '='):
        return False
    return not (i > 0 and is_symbol(buffer[i - 1], *NAME_PREFIXES))


def _unary_sign(text: str) -> Matcher:
    return lambda buffer, i: is_symbol(buffer[i], text) and is_unary_position(buffer, i)


def _bare(matcher: Matcher) -> Matcher:
    """Matches only when no postfix form (call, index, member) follows."""
    return lambda buffer, i: matcher(buffer, i) and not _has_postfix(buffer, i)


def _last(matcher: Matcher) -> Matcher:
    """Matches only the final node of the buffer."""
    return lambda buffer, i: i == len(buffer) - 1 and matcher(buffer, i)


NUMBER = _kind(NumberNode)
WORD = _kind(WordNode)
GLOB = _kind(StringNode)
VALUE = _kind(ValueNode)
WORD_REF = _word_reference
DOT = _symbol('.')
DOLLAR = _symbol('$')
EQUAL = _symbol('=')
HASH = _symbol('#')
AT = _symbol('@')
MINUS = _unary_sign('-')
PLUS = _unary_sign('+')
PARENTHESIS = _span('(')
BRACKET = _span('[')
BRACE = _span('{')


# =================================================================
# Helpers
# =================================================================

_RADIX = {'B': 2, 'O': 8, 'H': 16}
_DIGITS = '0123456789ABCDEF'


def parse_number(node: NumberNode, context: Context) -> float:
    """Parses a number literal according to its radix suffix.

    Decimal literals (suffix `D` or none) may carry a fraction; binary, octal
    and hexadecimal literals keep only their integer part.
    """
    text, suffix = node.text, node.suffix
    if suffix in ('', 'D'):
        try:
            result = float(text)
        except ValueError:
            raise ScriptSyntaxError("invalid number", node, context.source) from None
    elif suffix in _RADIX:
        base = _RADIX[suffix]
        digits = _DIGITS[:base]
        integer, _, fraction = text.partition('.')
        valid = integer and all(c in digits for c in integer.upper() + fraction.upper())
        if not valid or '.' in fraction:
            raise ScriptSyntaxError("invalid number", node, context.source)
        result = float(int(integer, base))
    else:
        raise ScriptSyntaxError("unrecognized number", node, context.source)
    if math.isnan(result):
        raise ScriptSyntaxError("invalid number", node, context.source)
    return result


def _lookup(word: WordNode, context: Context) -> Any:
    owner = context.store.find_owner(word.text)
    if owner is None:
        raise ScriptReferenceError(f'variable "{word.text}" is not defined', word, context.source)
    return owner.bindings[word.text]


def _expect_function(value: Any, referrer: Node, context: Context) -> QuillFunction:
    if not isinstance(value, QuillFunction):
        raise ScriptTypeError(f"invalid function call ({type_name(value)})", referrer, context.source)
    return value


def _create_function(name: WordNode | None, params: SpanNode, body: SpanNode,
                     context: Context) -> ScriptFunction:
    names = []
    for part in split_top_level(params.body, ','):
        if len(part) != 1 or not isinstance(part[0], WordNode):
            where = part[0] if part else params
            raise ScriptSyntaxError("expect a word as parameter name", where, context.source)
        names.append(part[0].text)
    return ScriptFunction(
        names, body.body, context.store, context.source,
        name=name.text if name is not None else None,
    )


def _negate(ev, operand: Node, sign: SymbolNode, context: Context, negate: bool) -> float:
    match operand:
        case NumberNode():
            value = parse_number(operand, context)
        case WordNode():
            value = _lookup(operand, context)
        case _:
            value = ev.evaluate_value(operand.body, operand, context)
    if not isinstance(value, float):
        raise ScriptTypeError(
            f'invalid operand for "{sign.text}" ({type_name(value)})', operand, context.source
        )
    return -value if negate else value


# =================================================================
# Handlers
# =================================================================

def _number(ev, parts, context):
    return parse_number(parts[0], context)


def _word(ev, parts, context):
    return _lookup(parts[0], context)


def _glob(ev, parts, context):
    return parts[0].value


def _assign_dollar(ev, parts, context):
    value = parts[0].value
    context.store.assign(parts[2].text, value)
    return value


def _assign_equal(ev, parts, context):
    value = ev.evaluate_value(parts[2].body, parts[2], context)
    context.store.assign(parts[0].text, value)
    return NO_VALUE


def _member(ev, parts, context):
    target, key = parts[0].value, parts[2].text
    if not isinstance(target, dict):
        raise ScriptTypeError(f"invalid index access ({type_name(target)})", parts[1], context.source)
    if key not in target:
        raise ScriptReferenceError(f'unknown index "{key}"', parts[2], context.source)
    return target[key]


def _invoke(ev, parts, context):
    fn = _expect_function(parts[0].value, parts[0], context)
    return ev.call(fn, parts[1].body, parts[1], context)


def _invoke_callback(ev, parts, context):
    fn = _expect_function(parts[0].value, parts[0], context)
    block = parts[1]
    callback = ScriptFunction([], block.body, context.store, context.source, inline=True)
    return ev.call(fn, [ValueNode.at(callback, block)], block, context)


def _word_string(ev, parts, context):
    return parts[1].text


def _named_function(ev, parts, context):
    fn = _create_function(parts[1], parts[2], parts[3], context)
    context.store[parts[1].text] = fn
    return fn


def _anonymous_function(ev, parts, context):
    return _create_function(None, parts[1], parts[2], context)


def _negative(ev, parts, context):
    return _negate(ev, parts[1], parts[0], context, negate=True)


def _positive(ev, parts, context):
    return _negate(ev, parts[1], parts[0], context, negate=False)


def _parenthesis(ev, parts, context):
    return ev.evaluate_value(parts[0].body, parts[0], context)


def _array(ev, parts, context):
    span = parts[0]
    values = []
    for element in split_top_level(span.body, ','):
        if not element:
            raise ScriptSyntaxError("missing array element", span, context.source)
        values.append(ev.evaluate_value(element, element[0], context))
    return values


def _index(ev, parts, context):
    target, span = parts[0].value, parts[1]
    index = ev.evaluate_value(span.body, span, context)
    if isinstance(target, (list, str)):
        if not isinstance(index, float) or not math.isfinite(index):
            raise ScriptTypeError(
                "expect a finite number as array/string index", span, context.source
            )
        normalized = index + len(target) if index < 0 else index
        if normalized < 0 or normalized >= len(target) or normalized != int(normalized):
            raise ScriptRangeError(f"index({index:g}) out of range", span, context.source)
        return target[int(normalized)]
    if isinstance(target, dict):
        if not isinstance(index, str):
            raise ScriptTypeError("expect a string as dict index", span, context.source)
        if index not in target:
            raise ScriptRangeError(f'unknown dict index "{index}"', span, context.source)
        return target[index]
    raise ScriptTypeError(f"invalid index access ({type_name(target)})", span, context.source)


def _dict(ev, parts, context):
    span = parts[0]
    entries = split_top_level(span.body, ',')
    if entries and not entries[-1]:
        entries.pop()  # trailing comma
    out = {}
    for entry in entries:
        colon = next((k for k, node in enumerate(entry) if is_symbol(node, ':')), None)
        if not entry or colon is None or colon == 0 or colon == len(entry) - 1:
            where = entry[0] if entry else span
            raise ScriptSyntaxError("expect a key:value pair as dict entry", where, context.source)
        key = ev.evaluate_value(entry[:colon], entry[0], context)
        if not isinstance(key, str):
            raise ScriptTypeError("expect a string as dict key", entry[0], context.source)
        out[key] = ev.evaluate_value(entry[colon + 1:], entry[colon], context)
    return out


# =================================================================
# The Table
# =================================================================

RULES: tuple[Rule, ...] = (
    Rule("function(named)", (AT, WORD, PARENTHESIS, BRACE), _named_function),
    Rule("function(anonymous)", (AT, PARENTHESIS, BRACE), _anonymous_function),
    Rule("word(string)", (HASH, WORD), _word_string),
    Rule("assignment(equal)", (WORD, EQUAL, _last(PARENTHESIS)), _assign_equal),
    Rule("assignment(dollar)", (VALUE, DOLLAR, WORD), _assign_dollar),
    Rule("member", (VALUE, DOT, WORD), _member),
    Rule("invoke", (VALUE, PARENTHESIS), _invoke),
    Rule("invoke(callback)", (VALUE, BRACE), _invoke_callback),
    Rule("index", (VALUE, BRACKET), _index),
    Rule("negative(number)", (MINUS, NUMBER), _negative),
    Rule("negative(word)", (MINUS, _bare(WORD)), _negative),
    Rule("negative(parenthesis)", (MINUS, _bare(PARENTHESIS)), _negative),
    Rule("positive(number)", (PLUS, NUMBER), _positive),
    Rule("positive(word)", (PLUS, _bare(WORD)), _positive),
    Rule("positive(parenthesis)", (PLUS, _bare(PARENTHESIS)), _positive),
    Rule("number", (NUMBER,), _number),
    Rule("word", (WORD_REF,), _word),
    Rule("glob", (GLOB,), _glob),
    Rule("parenthesis", (PARENTHESIS,), _parenthesis),
    Rule("array", (BRACKET,), _array),
    Rule("dict", (BRACE,), _dict),
)
