"""
Defines the core data types for the Quill language runtime.

This module provides the syntax node variants handed to the evaluator by the
parser, the function values, the Store (variable scope) and the error taxonomy
shared by the engine and every native function.
"""

from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from quill.quill_interpreter import Evaluator


# =================================================================
# Error Taxonomy
# =================================================================

class ScriptError(Exception):
    """Base class for every fault raised while evaluating a Quill script.

    The message is annotated with the line, column and source name of the
    node whose evaluation failed.
    """
    kind = "Error"

    def __init__(self, message: str, referrer: Any = None, source: Optional[str] = None):
        self.message = message
        self.line = getattr(referrer, "line", None)
        self.column = getattr(referrer, "column", None)
        self.source = source
        super().__init__(self._annotated())

    def _annotated(self) -> str:
        if self.line is None:
            return f"{self.message} (@{self.source})" if self.source else self.message
        return f"{self.message} (Ln {self.line}, Col {self.column} @{self.source})"


class ScriptSyntaxError(ScriptError):
    """Malformed structural pattern: missing name, colon or argument."""
    kind = "SyntaxError"


class ScriptTypeError(ScriptError):
    """Operand or argument of the wrong runtime kind."""
    kind = "TypeError"


class ScriptRangeError(ScriptError):
    """Correctly-typed value outside its legal domain."""
    kind = "RangeError"


class ScriptReferenceError(ScriptError):
    """Unresolved identifier or dict key."""
    kind = "ReferenceError"


# =================================================================
# Syntax Nodes
# =================================================================

@dataclass
class Node:
    """A positioned record from the upstream parser."""
    line: int
    column: int
    offset: int


@dataclass
class NumberNode(Node):
    text: str
    suffix: str = ""  # '', 'B', 'O', 'H' or 'D'


@dataclass
class WordNode(Node):
    text: str


@dataclass
class StringNode(Node):
    """A delimited string (glob); `raw` keeps the delimiters."""
    raw: str

    @property
    def value(self) -> str:
        raw = self.raw
        if len(raw) >= 2 and raw[-1] == raw[0]:
            return raw[1:-1]
        return raw[1:]


@dataclass
class SymbolNode(Node):
    text: str


@dataclass
class SpanNode(Node):
    delimiter: str  # '(', '[' or '{'
    body: List[Node] = field(default_factory=list)


@dataclass
class ValueNode(Node):
    """A terminal node already carrying a computed runtime value."""
    value: Any

    @classmethod
    def at(cls, value: Any, referrer: Node) -> 'ValueNode':
        return cls(referrer.line, referrer.column, referrer.offset, value)


# =================================================================
# Runtime Values
# =================================================================

class _NoValue:
    """Marker for a statement that produced no value."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "NO_VALUE"


NO_VALUE = _NoValue()


class QuillFunction(ABC):
    """Abstract base class for all Function Values."""
    name: Optional[str] = None


class ScriptFunction(QuillFunction):
    """A function defined in Quill with `@`.

    This is a closure bundling the parameter names, the unevaluated body
    nodes and the Store in which it was defined. An inline function (the
    callback form `value { body }`) evaluates its body directly in the
    captured Store instead of a fresh child Store.
    """
    def __init__(self, params: List[str], body: List[Node], closure: 'Store',
                 source: str, name: Optional[str] = None, inline: bool = False):
        self.params = list(params)
        self.body = list(body)
        self.closure = closure
        self.source = source
        self.name = name
        self.inline = inline

    def __repr__(self) -> str:
        label = self.name or "anonymous"
        return f"<ScriptFunction {label}({', '.join(self.params)})>"


class NativeFunction(QuillFunction):
    """A host-implemented operation exposed as a Function Value.

    The handler has the shape `(args, referrer, context) -> value`, where
    `args` is the list of evaluated arguments.
    """
    def __init__(self, handler, min_args: int = 0, max_args: Optional[float] = None,
                 name: Optional[str] = None, help: Optional[str] = None):
        self.handler = handler
        self.min_args = min_args
        self.max_args = min_args if max_args is None else max_args
        self.name = name or getattr(handler, "__name__", None)
        self.help = help

    @classmethod
    def from_python(cls, func, name: Optional[str] = None) -> 'NativeFunction':
        """Wraps a plain host callable; see `quill.quill_native.from_python`."""
        from quill.quill_native import from_python
        return from_python(func, name=name)

    def __repr__(self) -> str:
        return f"<NativeFunction {self.name} [{self.min_args}, {self.max_args}]>"


def type_name(value: Any) -> str:
    """Returns the Quill name of a runtime value's kind."""
    match value:
        case None:
            return "null"
        case bool():
            return "boolean"
        case float():
            return "number"
        case str():
            return "string"
        case list():
            return "array"
        case dict():
            return "dict"
        case QuillFunction():
            return "function"
        case _NoValue():
            return "undefined"
        case _:
            return type(value).__name__


# =================================================================
# Variable Store
# =================================================================

class Store:
    """A scope's name-to-value bindings plus a link to its enclosing Store.

    Lookup walks the chain outward. Assignment mutates the nearest Store
    that already defines the name, or defines it locally if no Store in the
    chain does.
    """
    def __init__(self, parent: Optional['Store'] = None, bindings: Optional[Dict[str, Any]] = None):
        self.bindings: Dict[str, Any] = dict(bindings or {})
        self.parent = parent

    def find_owner(self, name: str) -> Optional['Store']:
        """Finds the Store in the chain that defines name."""
        store = self
        while store is not None:
            if name in store.bindings:
                return store
            store = store.parent
        return None

    def __contains__(self, name: str) -> bool:
        return self.find_owner(name) is not None

    def __getitem__(self, name: str) -> Any:
        owner = self.find_owner(name)
        if owner is None:
            raise KeyError(name)
        return owner.bindings[name]

    def __setitem__(self, name: str, value: Any):
        """Defines name in this Store only."""
        self.bindings[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        owner = self.find_owner(name)
        return owner.bindings[name] if owner is not None else default

    def assign(self, name: str, value: Any) -> 'Store':
        """Lexical assignment; returns the Store that received the binding."""
        owner = self.find_owner(name) or self
        owner.bindings[name] = value
        return owner

    def keys(self):
        """Returns a view of the names bound in this Store only."""
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Store bindings=[{keys}]{parent_id}>"


@dataclass
class Context:
    """What every handler sees: the current Store, the source name used in
    diagnostics, and the evaluator driving the reduction."""
    store: Store
    source: str
    evaluator: 'Evaluator'

    def with_store(self, store: Store, source: Optional[str] = None) -> 'Context':
        return Context(store, source or self.source, self.evaluator)


# =================================================================
# Buffer Helpers
# =================================================================

def replace_range(buffer: List[Node], start: int, width: int, replacement: Node):
    """Replaces `width` nodes starting at `start` with one node."""
    buffer[start:start + width] = [replacement]


def is_symbol(node: Any, *texts: str) -> bool:
    return isinstance(node, SymbolNode) and (not texts or node.text in texts)


def is_unary_position(buffer: List[Node], index: int) -> bool:
    """A sign is unary at buffer start or immediately after a symbol."""
    return index == 0 or isinstance(buffer[index - 1], SymbolNode)


def split_top_level(nodes: List[Node], separator: str) -> List[List[Node]]:
    """Splits a node list on a separator symbol at the same nesting depth.

    Nested spans are single nodes, so only top-level separators count. An
    empty input yields no parts.
    """
    if not nodes:
        return []
    parts: List[List[Node]] = [[]]
    for node in nodes:
        if is_symbol(node, separator):
            parts.append([])
        else:
            parts[-1].append(node)
    return parts
