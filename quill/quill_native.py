"""
The Native Function Adapter.

Host-implemented operations are wrapped as `NativeFunction` values with a
declared inclusive arity. On invocation the adapter receives the raw argument
nodes from the call site, reduces each comma-separated argument through the
engine, checks the count and calls the host handler with the evaluated
values, the call-site node and the current context.
"""
import inspect
import math
import weakref
from typing import Any, Callable, List, Optional

from quill.quill_datatypes import (
    Node, Context, NativeFunction, QuillFunction, NO_VALUE,
    ScriptError, ScriptTypeError, ScriptRangeError, ScriptReferenceError,
    type_name,
)

# Function Value -> usage string, attached at registration time.
HELP_REGISTRY: 'weakref.WeakKeyDictionary[QuillFunction, str]' = weakref.WeakKeyDictionary()


def inject_help(usage: str, fn: QuillFunction) -> QuillFunction:
    """Attaches a usage string to a Function Value and returns it."""
    if isinstance(fn, NativeFunction):
        fn.help = usage
    HELP_REGISTRY[fn] = usage
    return fn


def get_help(fn: QuillFunction) -> Optional[str]:
    if isinstance(fn, NativeFunction) and fn.help:
        return fn.help
    return HELP_REGISTRY.get(fn)


def native(usage: str, min_args: int, max_args: Optional[float] = None):
    """A decorator to mark library methods as native Quill functions."""
    def decorate(func):
        func._quill_native = (usage, min_args, min_args if max_args is None else max_args)
        return func
    return decorate


def create_native(handler: Callable, min_args: int, max_args: Optional[float] = None,
                  usage: Optional[str] = None, name: Optional[str] = None) -> NativeFunction:
    return NativeFunction(handler, min_args, max_args, name=name, help=usage)


def collect_natives(library: Any) -> dict:
    """Builds a name -> NativeFunction mapping from the @native methods of an object.

    Method `_type_of` becomes `typeOf`; a trailing underscore (used for names
    that clash with Python keywords, e.g. `_if_`) is dropped.
    """
    out = {}
    for attr, member in inspect.getmembers(library):
        spec = getattr(member, "_quill_native", None)
        if spec is None or not callable(member):
            continue
        usage, min_args, max_args = spec
        name = script_name(attr)
        out[name] = create_native(member, min_args, max_args, usage=usage, name=name)
    return out


def script_name(attr: str) -> str:
    head, *rest = attr.strip('_').split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def from_python(func: Callable, name: Optional[str] = None) -> NativeFunction:
    """Wraps a plain host callable taking positional runtime values.

    The arity is read from the callable's signature: required positional
    parameters set the minimum, *args makes the maximum unbounded.
    """
    min_args = 0
    max_args: float = 0
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        params = None
    if params is None:
        min_args, max_args = 0, math.inf
    else:
        for p in params:
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
                max_args += 1
                if p.default is p.empty:
                    min_args += 1
            elif p.kind is p.VAR_POSITIONAL:
                max_args = math.inf

    def handler(args, referrer, context):
        return func(*args)

    handler.__name__ = name or getattr(func, "__name__", "native")
    doc = inspect.getdoc(func)
    usage = doc.splitlines()[0] if doc else None
    return NativeFunction(handler, min_args, max_args, name=handler.__name__, help=usage)


# =================================================================
# Boundary helpers
# =================================================================

def to_runtime(value: Any, referrer: Node, context: Context) -> Any:
    """Normalises a host value into a Quill runtime value."""
    match value:
        case None | bool() | float() | str() | QuillFunction():
            return value
        case int():
            return float(value)
        case list():
            return [to_runtime(v, referrer, context) for v in value]
        case tuple():
            return [to_runtime(v, referrer, context) for v in value]
        case dict():
            out = {}
            for k, v in value.items():
                if not isinstance(k, str):
                    raise ScriptTypeError("expect strings as dict keys", referrer, context.source)
                out[k] = to_runtime(v, referrer, context)
            return out
        case _ if callable(value):
            return from_python(value)
    raise ScriptTypeError(
        f"native function returned an unsupported value ({type_name(value)})",
        referrer, context.source,
    )


def translate_fault(exc: Exception, referrer: Node, context: Context) -> ScriptError:
    """Maps a host-level exception onto the Quill error taxonomy."""
    message = str(exc) or type(exc).__name__
    match exc:
        case TypeError():
            cls = ScriptTypeError
        case IndexError():
            cls = ScriptRangeError
        case LookupError():
            cls = ScriptReferenceError
            if isinstance(exc, KeyError) and exc.args:
                message = f'unknown key "{exc.args[0]}"'
        case ValueError() | ArithmeticError():
            cls = ScriptRangeError
        case _:
            cls = ScriptTypeError
    return cls(message, referrer, context.source)


def invoke_native(fn: NativeFunction, arg_nodes: List[Node], referrer: Node, context: Context) -> Any:
    """Evaluates the raw argument nodes and calls the host operation."""
    args = context.evaluator.evaluate_arguments(arg_nodes, referrer, context)
    count = len(args)
    if count < fn.min_args or count > fn.max_args:
        raise ScriptTypeError(
            f"{fn.name or 'function'} expects {describe_arity(fn)}, got {count}",
            referrer, context.source,
        )
    try:
        result = fn.handler(args, referrer, context)
    except ScriptError:
        raise
    except RecursionError:
        raise
    except Exception as exc:
        raise translate_fault(exc, referrer, context) from exc
    if result is NO_VALUE:
        return None
    return to_runtime(result, referrer, context)


def describe_arity(fn: NativeFunction) -> str:
    lo, hi = fn.min_args, fn.max_args
    if lo == hi:
        return f"{lo} argument{'s' if lo != 1 else ''}"
    if hi == math.inf:
        return f"at least {lo} argument{'s' if lo != 1 else ''}"
    return f"{lo} to {int(hi)} arguments"
