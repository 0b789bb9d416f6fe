"""
The core Quill interpreter: the reduction engine.

A statement's node buffer is reduced by repeatedly applying the structural
rule table and then the operator table until it collapses to one value node.
Calls and definitions re-enter the engine on the callee's argument and body
nodes.
"""
import os
import sys
from typing import Any, Dict, List, Optional

from quill.quill_datatypes import (
    Node, SymbolNode, ValueNode, SpanNode, WordNode, StringNode, NumberNode,
    Context, Store, QuillFunction, ScriptFunction, NativeFunction, NO_VALUE,
    ScriptSyntaxError, ScriptTypeError, ScriptRangeError,
    split_top_level,
)
from quill.quill_rules import RULES
from quill.quill_operators import OPERATORS
from quill.quill_native import invoke_native

def describe_node(node: Node) -> str:
    match node:
        case SymbolNode(text=text):
            return f'symbol "{text}"'
        case WordNode(text=text):
            return f'word "{text}"'
        case NumberNode(text=text, suffix=suffix):
            return f'number "{text}{suffix}"'
        case StringNode():
            return "string"
        case SpanNode(delimiter=delimiter):
            return f'"{delimiter}"'
        case ValueNode():
            return "value"
    return type(node).__name__


class Evaluator:
    """Drives the rule and operator tables over node buffers."""

    def __init__(self, max_depth: Optional[int] = None):
        # None leaves recursion bounded only by the Python stack
        if max_depth is None and os.environ.get("QUILL_MAX_DEPTH"):
            max_depth = int(os.environ["QUILL_MAX_DEPTH"])
        self.max_depth = max_depth
        self.call_stack: List[Dict[str, Any]] = []
        self.side_effects: List[Dict[str, Any]] = []
        self.current_node: Optional[Node] = None

    def _dbg(self, *parts):
        if os.environ.get("QUILL_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # ------------------------------------------------------------------
    # Statement lists and expressions
    # ------------------------------------------------------------------

    def evaluate(self, nodes: List[Node], context: Context) -> Any:
        """Evaluates a statement list; returns the last statement's value.

        Statements are separated by top-level `;` symbols. An empty list or an
        empty trailing statement yields NO_VALUE.
        """
        result = NO_VALUE
        for statement in split_top_level(nodes, ';'):
            result = self.reduce(list(statement), context) if statement else NO_VALUE
        return result

    def evaluate_value(self, nodes: List[Node], referrer: Node, context: Context) -> Any:
        """Evaluates a sub-expression that must produce a value."""
        if not nodes:
            raise ScriptSyntaxError("expect an expression", referrer, context.source)
        value = self.evaluate(nodes, context)
        if value is NO_VALUE:
            raise ScriptSyntaxError("expect a value", nodes[0], context.source)
        return value

    def evaluate_node(self, node: Node, context: Context) -> Any:
        """Evaluates a single buffer node; value nodes return their value unchanged."""
        match node:
            case ValueNode(value=value):
                return value
            case SymbolNode(text=text):
                raise ScriptSyntaxError(f'unexpected symbol "{text}"', node, context.source)
        return self.evaluate_value([node], node, context)

    def evaluate_arguments(self, arg_nodes: List[Node], referrer: Node, context: Context) -> List[Any]:
        """Splits raw argument nodes on top-level commas and evaluates each."""
        values = []
        for part in split_top_level(arg_nodes, ','):
            if not part:
                raise ScriptSyntaxError("missing argument", referrer, context.source)
            values.append(self.evaluate_value(part, part[0], context))
        return values

    # ------------------------------------------------------------------
    # Reduction
    # ------------------------------------------------------------------

    def reduce(self, buffer: List[Node], context: Context) -> Any:
        """Reduces a node buffer in place until it is a single value node."""
        while self._apply_rule(buffer, context) or self._apply_operator(buffer, context):
            pass
        if len(buffer) == 1 and isinstance(buffer[0], ValueNode):
            return buffer[0].value
        offender = next((n for n in buffer if not isinstance(n, ValueNode)), None)
        if offender is None:
            offender = buffer[1]
        raise ScriptSyntaxError(f"unexpected {describe_node(offender)}", offender, context.source)

    def _apply_rule(self, buffer: List[Node], context: Context) -> bool:
        for start in range(len(buffer)):
            for rule in RULES:
                if not rule.matches(buffer, start):
                    continue
                width = len(rule.pattern)
                parts = buffer[start:start + width]
                self.current_node = parts[0]
                self._dbg("RULE", rule.name, "at", f"{parts[0].line}:{parts[0].column}")
                value = rule.handler(self, parts, context)
                buffer[start:start + width] = [ValueNode.at(value, parts[0])]
                return True
        return False

    def _apply_operator(self, buffer: List[Node], context: Context) -> bool:
        best = None
        for i, node in enumerate(buffer):
            if not isinstance(node, SymbolNode) or node.text not in OPERATORS:
                continue
            op = OPERATORS[node.text]
            priority = op.priority_at(buffer, i)
            if best is None or priority < best[0]:
                best = (priority, i, op)
        if best is None:
            return False
        _, index, op = best
        self.current_node = buffer[index]
        self._dbg("OP", op.symbol, "at", f"{buffer[index].line}:{buffer[index].column}")
        op.handler(self, buffer, index, context)
        return True

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def _push_frame(self, fn: QuillFunction, referrer: Node, context: Context):
        self.call_stack.append({
            'name': fn.name or '<anonymous>',
            'func': fn,
            'call_site': (referrer.line, referrer.column),
            'source': context.source,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def call(self, fn: QuillFunction, arg_nodes: List[Node], referrer: Node, context: Context) -> Any:
        """Invokes a Function Value with unevaluated argument nodes.

        An exception leaving the innermost call gets a `call_trace` snapshot
        of the stack, so the host can report where evaluation stopped.
        """
        if self.max_depth is not None and len(self.call_stack) >= self.max_depth:
            raise ScriptRangeError("maximum call depth exceeded", referrer, context.source)
        self._push_frame(fn, referrer, context)
        try:
            match fn:
                case NativeFunction():
                    return invoke_native(fn, arg_nodes, referrer, context)
                case ScriptFunction():
                    return self._call_script(fn, arg_nodes, referrer, context)
                case _:
                    raise ScriptTypeError("invalid function call", referrer, context.source)
        except Exception as exc:
            if getattr(exc, 'call_trace', None) is None:
                exc.call_trace = list(self.call_stack)
            raise
        finally:
            self._pop_frame()

    def _call_script(self, fn: ScriptFunction, arg_nodes: List[Node], referrer: Node, context: Context) -> Any:
        args = self.evaluate_arguments(arg_nodes, referrer, context)
        if len(args) > len(fn.params):
            raise ScriptRangeError(
                f"{fn.name or 'function'} expects at most {len(fn.params)} arguments, got {len(args)}",
                referrer, context.source,
            )
        if fn.inline:
            store = fn.closure
        else:
            store = Store(parent=fn.closure)
            for i, name in enumerate(fn.params):
                store[name] = args[i] if i < len(args) else None
        result = self.evaluate(fn.body, context.with_store(store, fn.source))
        return None if result is NO_VALUE else result

    def call_with_values(self, fn: QuillFunction, values: List[Any], referrer: Node, context: Context) -> Any:
        """Invokes a Function Value with already-evaluated arguments."""
        nodes: List[Node] = []
        for k, value in enumerate(values):
            if k:
                nodes.append(SymbolNode(referrer.line, referrer.column, referrer.offset, ','))
            nodes.append(ValueNode.at(value, referrer))
        return self.call(fn, nodes, referrer, context)

    # ------------------------------------------------------------------
    # Program entry
    # ------------------------------------------------------------------

    def run(self, nodes: List[Node], store: Store, source: str = "<script>") -> Any:
        """Evaluates a top-level program in the given Store."""
        return self.evaluate(nodes, Context(store, source, self))
