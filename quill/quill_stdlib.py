# quill_stdlib.py

import functools
import math
import os
import random
import re
from typing import Any, List, Optional

import pystache

from quill.quill_datatypes import (
    Node, Context, QuillFunction, ScriptFunction, NativeFunction,
    ScriptSyntaxError, ScriptTypeError, ScriptRangeError, ScriptReferenceError,
    type_name,
)
from quill.quill_native import native, collect_natives, create_native, get_help
from quill.quill_operators import strict_equals, ieee_power
from quill.quill_printer import Printer, format_number
from quill.quill_serialize import serialize, deserialize

# ===================================================================
# 1. Shared helpers
# ===================================================================


def _fail(cls, message: str, referrer: Node, context: Context):
    raise cls(message, referrer, context.source)


def _require(value: Any, kind: type, message: str, referrer: Node, context: Context):
    if not isinstance(value, kind):
        _fail(ScriptTypeError, message, referrer, context)
    return value


def normalize_index(index: float, size: int, referrer: Node, context: Context,
                    allow_end: bool = False) -> int:
    """Maps a possibly negative index onto [0, size), or [0, size] when allow_end."""
    if not math.isfinite(index) or index != int(index):
        _fail(ScriptRangeError, f"invalid index ({format_number(index)})", referrer, context)
    normalized = int(index) + size if index < 0 else int(index)
    limit = size if allow_end else size - 1
    if normalized < 0 or normalized > limit:
        _fail(ScriptRangeError, f"index({format_number(index)}) out of range", referrer, context)
    return normalized


def slice_bounds(size: int, start: Optional[float], end: Optional[float]) -> tuple[int, int]:
    """Relative slice bounds: negative values count from the end, fractions truncate."""
    def clamp(value, default):
        if value is None:
            return default
        if math.isnan(value):
            return 0
        if math.isinf(value):
            return size if value > 0 else 0
        n = int(value)
        return max(size + n, 0) if n < 0 else min(n, size)
    return clamp(start, 0), clamp(end, size)


def invoke_callback(fn: QuillFunction, values: List[Any], referrer: Node, context: Context) -> Any:
    """Calls a script or native callback with as many of `values` as it accepts."""
    if isinstance(fn, ScriptFunction):
        values = values[:len(fn.params)]
    elif isinstance(fn, NativeFunction) and fn.max_args != math.inf:
        values = values[:int(fn.max_args)]
    return context.evaluator.call_with_values(fn, values, referrer, context)


def to_number(value: Any) -> float:
    """Numeric conversion: booleans and null map to 0/1, unparsable input to NaN."""
    match value:
        case None:
            return 0.0
        case bool():
            return 1.0 if value else 0.0
        case float():
            return value
        case str():
            return _parse_numeric_text(value)
    return math.nan


_DECIMAL = re.compile(r'[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?')
_RADIX_PREFIX = {'0x': 16, '0o': 8, '0b': 2}


def _parse_numeric_text(text: str) -> float:
    s = text.strip()
    if not s:
        return 0.0
    if _DECIMAL.fullmatch(s):
        return float(s)
    unsigned = s.lstrip('+-')
    if unsigned == 'Infinity':
        return -math.inf if s.startswith('-') else math.inf
    base = _RADIX_PREFIX.get(s[:2].lower())
    if base is not None:
        try:
            return float(int(s[2:], base))
        except ValueError:
            return math.nan
    return math.nan


def is_truthy(value: Any) -> bool:
    match value:
        case None:
            return False
        case bool():
            return value
        case float():
            return value != 0 and not math.isnan(value)
        case str():
            return value != ""
    return True


# ===================================================================
# 2. Core
# ===================================================================


class CoreLib:
    """Root-level builtins: reflection, conversion, output and control flow."""

    def __init__(self, evaluator):
        self.evaluator = evaluator
        self.printer = Printer()

    # --- Reflection ---
    @native("help(function)", 1)
    def _help(self, args, referrer, context):
        fn = _require(args[0], QuillFunction, "expect a function", referrer, context)
        usage = get_help(fn)
        if usage is None and isinstance(fn, ScriptFunction):
            usage = f"{fn.name or 'function'}({', '.join(fn.params)})"
        return usage

    @native("dir(dict?)", 0, 1)
    def _dir(self, args, referrer, context):
        if not args:
            names, store = [], context.store
            while store is not None:
                names.extend(k for k in store.keys() if k not in names)
                store = store.parent
            return names
        target = _require(args[0], dict, "expect a dict", referrer, context)
        return list(target.keys())

    @native("exist(name)", 1)
    def _exist(self, args, referrer, context):
        name = _require(args[0], str, "expect a string as variable name", referrer, context)
        return name in context.store

    @native("get(name)", 1)
    def _get(self, args, referrer, context):
        name = _require(args[0], str, "expect a string as variable name", referrer, context)
        owner = context.store.find_owner(name)
        if owner is None:
            _fail(ScriptReferenceError, f'variable "{name}" is not defined', referrer, context)
        return owner.bindings[name]

    @native("set(name, value)", 2)
    def _set(self, args, referrer, context):
        name = _require(args[0], str, "expect a string as variable name", referrer, context)
        context.store.assign(name, args[1])
        return args[1]

    @native("typeOf(value)", 1)
    def _type_of(self, args, referrer, context):
        return type_name(args[0])

    # --- Conversion ---
    @native("number(value)", 1)
    def _number(self, args, referrer, context):
        return to_number(args[0])

    @native("string(value)", 1)
    def _string(self, args, referrer, context):
        return self.printer.pformat(args[0])

    @native("boolean(value)", 1)
    def _boolean(self, args, referrer, context):
        return is_truthy(args[0])

    # --- Output ---
    @native("print(values...)", 0, math.inf)
    def _print(self, args, referrer, context):
        message = " ".join(self.printer.to_text(v) for v in args)
        self.evaluator._dbg("print()", repr(message))
        self.evaluator.side_effects.append({'topics': ['stdout'], 'message': message})
        return None

    # --- Control flow ---
    @native("if(condition) { ... }", 1)
    def _if_(self, args, referrer, context):
        condition = _require(args[0], bool, "expect a boolean as condition", referrer, context)

        def branch(branch_args, branch_referrer, branch_context):
            body = _require(branch_args[0], QuillFunction, "expect a function as branch",
                            branch_referrer, branch_context)
            if not condition:
                return None
            return invoke_callback(body, [], branch_referrer, branch_context)

        return create_native(branch, 1, usage="branch(callback)", name="branch")

    @native("ifElse(condition, thenFn, elseFn)", 3)
    def _if_else(self, args, referrer, context):
        condition = _require(args[0], bool, "expect a boolean as condition", referrer, context)
        for fn in args[1:]:
            _require(fn, QuillFunction, "expect functions as branches", referrer, context)
        chosen = args[1] if condition else args[2]
        return invoke_callback(chosen, [], referrer, context)

    @native("while(conditionFn) { ... }", 1)
    def _while_(self, args, referrer, context):
        condition = _require(args[0], QuillFunction, "expect a function as condition", referrer, context)
        max_iters_env = os.environ.get("QUILL_MAX_LOOP_ITERS")
        max_iters = int(max_iters_env) if max_iters_env else None

        def loop(loop_args, loop_referrer, loop_context):
            body = _require(loop_args[0], QuillFunction, "expect a function as loop body",
                            loop_referrer, loop_context)
            count = 0
            while True:
                flag = invoke_callback(condition, [], loop_referrer, loop_context)
                if not isinstance(flag, bool):
                    _fail(ScriptTypeError, "expect a boolean from the loop condition",
                          loop_referrer, loop_context)
                if not flag:
                    return None
                count += 1
                if max_iters is not None and count > max_iters:
                    _fail(ScriptRangeError, f"loop exceeded {max_iters} iterations",
                          loop_referrer, loop_context)
                invoke_callback(body, [], loop_referrer, loop_context)

        return create_native(loop, 1, usage="loop(callback)", name="loop")


# ===================================================================
# 3. Array
# ===================================================================


class ArrayLib:
    """The `Array` namespace. Mutating operations change the array in place."""

    @native("Array.create(size = 0, init = null)", 0, 2)
    def _create(self, args, referrer, context):
        if not args:
            return []
        size = _require(args[0], float, "expect a number as array size", referrer, context)
        if size < 0 or not math.isfinite(size):
            _fail(ScriptRangeError, "invalid array size", referrer, context)
        init = args[1] if len(args) > 1 else None
        return [init] * int(size)

    @native("Array.clone(array)", 1)
    def _clone(self, args, referrer, context):
        return list(_require(args[0], list, "expect an array to clone", referrer, context))

    @native("Array.of(values...)", 0, math.inf)
    def _of(self, args, referrer, context):
        return list(args)

    @native("Array.sizeOf(array)", 1)
    def _size_of(self, args, referrer, context):
        return len(_require(args[0], list, "expect an array", referrer, context))

    @native("Array.set(array, index, value)", 3)
    def _set(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to modify", referrer, context)
        index = _require(args[1], float, "expect a number as index", referrer, context)
        array[normalize_index(index, len(array), referrer, context)] = args[2]
        return None

    @native("Array.push(array, data...)", 2, math.inf)
    def _push(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to modify", referrer, context)
        array.extend(args[1:])
        return None

    @native("Array.unshift(array, data...)", 2, math.inf)
    def _unshift(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to modify", referrer, context)
        # Elements go to the front one by one, so the last argument ends up first
        for item in args[1:]:
            array.insert(0, item)
        return None

    @native("Array.pop(array)", 1)
    def _pop(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to modify", referrer, context)
        return array.pop() if array else None

    @native("Array.shift(array)", 1)
    def _shift(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to modify", referrer, context)
        return array.pop(0) if array else None

    @native("Array.slice(array, start = 0, end = Array.sizeOf(array))", 1, 3)
    def _slice(self, args, referrer, context):
        array = _require(args[0], list, "expect an array as source", referrer, context)
        start = _require(args[1], float, "expect a number as begin index", referrer, context) if len(args) > 1 else None
        end = _require(args[2], float, "expect a number as end index", referrer, context) if len(args) > 2 else None
        lo, hi = slice_bounds(len(array), start, end)
        return array[lo:hi]

    @native("Array.insert(array, index, data...)", 3, math.inf)
    def _insert(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to operate on", referrer, context)
        index = _require(args[1], float, "expect a number as start index", referrer, context)
        at = normalize_index(index, len(array), referrer, context, allow_end=True)
        array[at:at] = args[2:]
        return None

    @native("Array.remove(array, index, count = 1)", 2, 3)
    def _remove(self, args, referrer, context):
        array = _require(args[0], list, "expect an array as the first argument", referrer, context)
        index = _require(args[1], float, "expect a number as start index", referrer, context)
        at = normalize_index(index, len(array), referrer, context)
        count = 1.0
        if len(args) == 3:
            count = _require(args[2], float, "expect a number as removing count", referrer, context)
            if count < 0 or math.isnan(count):
                _fail(ScriptRangeError, "invalid removing count", referrer, context)
        end = len(array) if math.isinf(count) else at + int(count)
        del array[at:end]
        return None

    @native("Array.clear(array)", 1)
    def _clear(self, args, referrer, context):
        _require(args[0], list, "expect an array to operate on", referrer, context).clear()
        return None

    @native("Array.flat(arrays, depth = 1)", 1, 2)
    def _flat(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to flat", referrer, context)
        depth = 1.0
        if len(args) == 2:
            depth = _require(args[1], float, "expect a number as depth", referrer, context)
        if depth <= 0 or math.isnan(depth):
            _fail(ScriptRangeError, "invalid depth", referrer, context)

        def flatten(items, level):
            out = []
            for item in items:
                if isinstance(item, list) and level >= 1:
                    out.extend(flatten(item, level - 1))
                else:
                    out.append(item)
            return out

        return flatten(array, depth)

    @native("Array.unpack(array, names, loose = false)", 2, 3)
    def _unpack(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to unpack", referrer, context)
        names = _require(args[1], list, "expect an array of strings as variable names", referrer, context)
        for name in names:
            _require(name, str, "expect strings as variable names", referrer, context)
        loose = False
        if len(args) == 3:
            loose = _require(args[2], bool, "expect a boolean as loose option", referrer, context)
        if len(names) > len(array) and not loose:
            _fail(ScriptRangeError, "not enough values in the given array", referrer, context)
        for i, name in enumerate(names):
            context.store.assign(name, array[i] if i < len(array) else None)
        return None

    @native("Array.indexOf(array, value)", 2)
    def _index_of(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to search in", referrer, context)
        return next((i for i, item in enumerate(array) if strict_equals(item, args[1])), -1)

    @native("Array.lastIndexOf(array, value)", 2)
    def _last_index_of(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to search in", referrer, context)
        for i in range(len(array) - 1, -1, -1):
            if strict_equals(array[i], args[1]):
                return i
        return -1

    @native("Array.includes(array, value)", 2)
    def _includes(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to check", referrer, context)
        target = args[1]
        if isinstance(target, float) and math.isnan(target):
            return any(isinstance(v, float) and math.isnan(v) for v in array)
        return any(strict_equals(item, target) for item in array)

    @native("Array.sort(array, compareFn?)", 1, 2)
    def _sort(self, args, referrer, context):
        array = _require(args[0], list, "expect an array as the first argument", referrer, context)
        if len(args) == 2:
            compare_fn = _require(args[1], QuillFunction, "expect a function as the second argument",
                                  referrer, context)

            def compare(a, b):
                result = invoke_callback(compare_fn, [a, b], referrer, context)
                if not isinstance(result, float):
                    _fail(ScriptTypeError, "expect a number from the compare function", referrer, context)
                return 0 if math.isnan(result) else (result > 0) - (result < 0)

            array.sort(key=functools.cmp_to_key(compare))
            return array
        kinds = {type_name(v) for v in array}
        if len(kinds) > 1 or not kinds <= {"number", "string"}:
            _fail(ScriptTypeError, "expect numbers or strings to sort without a compare function",
                  referrer, context)
        array.sort()
        return array

    @native("Array.forEach(array, callback)", 2)
    def _for_each(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to iterate", referrer, context)
        fn = _require(args[1], QuillFunction, "expect a function as callback", referrer, context)
        for i, item in enumerate(list(array)):
            invoke_callback(fn, [item, float(i), array], referrer, context)
        return None

    @native("Array.map(array, callback)", 2)
    def _map(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to map", referrer, context)
        fn = _require(args[1], QuillFunction, "expect a function as callback", referrer, context)
        return [invoke_callback(fn, [item, float(i), array], referrer, context)
                for i, item in enumerate(list(array))]

    @native("Array.filter(array, callback)", 2)
    def _filter(self, args, referrer, context):
        array = _require(args[0], list, "expect an array to filter", referrer, context)
        fn = _require(args[1], QuillFunction, "expect a function as callback", referrer, context)
        out = []
        for i, item in enumerate(list(array)):
            keep = invoke_callback(fn, [item, float(i), array], referrer, context)
            if not isinstance(keep, bool):
                _fail(ScriptTypeError, "expect a boolean from the filter callback", referrer, context)
            if keep:
                out.append(item)
        return out


# ===================================================================
# 4. String
# ===================================================================


class StringLib:
    """The `String` namespace."""

    @native("String.join(strings, separator = '')", 1, 2)
    def _join(self, args, referrer, context):
        strings = _require(args[0], list, "expect an array of strings to join", referrer, context)
        for s in strings:
            _require(s, str, "expect strings to join", referrer, context)
        separator = ""
        if len(args) == 2:
            separator = _require(args[1], str, "expect a string as separator", referrer, context)
        return separator.join(strings)

    @native("String.toLowerCase(string)", 1)
    def _to_lower_case(self, args, referrer, context):
        return _require(args[0], str, "expect a string to convert", referrer, context).lower()

    @native("String.toUpperCase(string)", 1)
    def _to_upper_case(self, args, referrer, context):
        return _require(args[0], str, "expect a string to convert", referrer, context).upper()

    @native("String.slice(string, start = 0, end = String.sizeOf(string))", 1, 3)
    def _slice(self, args, referrer, context):
        string = _require(args[0], str, "expect a string as source", referrer, context)
        start = _require(args[1], float, "expect a number as begin index", referrer, context) if len(args) > 1 else None
        end = _require(args[2], float, "expect a number as end index", referrer, context) if len(args) > 2 else None
        lo, hi = slice_bounds(len(string), start, end)
        return string[lo:hi]

    @native("String.sizeOf(string)", 1)
    def _size_of(self, args, referrer, context):
        return len(_require(args[0], str, "expect a string", referrer, context))

    @native("String.split(string, separator?)", 1, 2)
    def _split(self, args, referrer, context):
        string = _require(args[0], str, "expect a string to split", referrer, context)
        if len(args) == 1:
            return [string]
        separator = _require(args[1], str, "expect a string as separator", referrer, context)
        if separator == "":
            return list(string)
        return string.split(separator)

    @native("String.indexOf(string, search)", 2)
    def _index_of(self, args, referrer, context):
        string = _require(args[0], str, "expect a string to search in", referrer, context)
        search = _require(args[1], str, "expect a string to search for", referrer, context)
        return string.find(search)

    @native("String.trim(string)", 1)
    def _trim(self, args, referrer, context):
        return _require(args[0], str, "expect a string to trim", referrer, context).strip()

    @native("String.render(template, view = {})", 1, 2)
    def _render(self, args, referrer, context):
        template = _require(args[0], str, "expect a string as template", referrer, context)
        view = {}
        if len(args) == 2:
            view = _require(args[1], dict, "expect a dict as view", referrer, context)
        renderer = pystache.Renderer(escape=lambda u: u, missing_tags='ignore')
        return renderer.render(template, _mustache_view(view))


def _mustache_view(value: Any) -> Any:
    # Integral numbers render without a fraction
    match value:
        case bool() | None:
            return value
        case float():
            return int(value) if math.isfinite(value) and value == int(value) else value
        case list():
            return [_mustache_view(v) for v in value]
        case dict():
            return {k: _mustache_view(v) for k, v in value.items()}
    return value


# ===================================================================
# 5. Dict
# ===================================================================


class DictLib:
    """The `Dict` namespace."""

    @native("Dict.keys(dict)", 1)
    def _keys(self, args, referrer, context):
        return list(_require(args[0], dict, "expect a dict", referrer, context).keys())

    @native("Dict.values(dict)", 1)
    def _values(self, args, referrer, context):
        return list(_require(args[0], dict, "expect a dict", referrer, context).values())

    @native("Dict.has(dict, key)", 2)
    def _has(self, args, referrer, context):
        target = _require(args[0], dict, "expect a dict", referrer, context)
        key = _require(args[1], str, "expect a string as key", referrer, context)
        return key in target

    @native("Dict.set(dict, key, value)", 3)
    def _set(self, args, referrer, context):
        target = _require(args[0], dict, "expect a dict to modify", referrer, context)
        key = _require(args[1], str, "expect a string as key", referrer, context)
        target[key] = args[2]
        return None

    @native("Dict.remove(dict, key)", 2)
    def _remove(self, args, referrer, context):
        target = _require(args[0], dict, "expect a dict to modify", referrer, context)
        key = _require(args[1], str, "expect a string as key", referrer, context)
        target.pop(key, None)
        return None

    @native("Dict.clone(dict)", 1)
    def _clone(self, args, referrer, context):
        return dict(_require(args[0], dict, "expect a dict to clone", referrer, context))

    @native("Dict.merge(dicts...)", 1, math.inf)
    def _merge(self, args, referrer, context):
        out = {}
        for source in args:
            out.update(_require(source, dict, "expect dicts to merge", referrer, context))
        return out


# ===================================================================
# 6. Math
# ===================================================================


def _ieee(compute):
    """Domain faults yield NaN and overflow yields Infinity, as in IEEE arithmetic."""
    def run(x):
        try:
            return compute(x)
        except OverflowError:
            return math.inf
        except ValueError:
            return math.nan
    return run


def _log(x: float) -> float:
    if x == 0:
        return -math.inf
    if x < 0 or math.isnan(x):
        return math.nan
    return math.log(x)


def _round(x: float) -> float:
    if not math.isfinite(x):
        return x
    return float(math.floor(x + 0.5))


class MathLib:
    """The `Math` namespace. Every argument must be a number."""

    UNARY = {
        'abs': abs,
        'floor': lambda x: x if not math.isfinite(x) else float(math.floor(x)),
        'ceil': lambda x: x if not math.isfinite(x) else float(math.ceil(x)),
        'round': _round,
        'sqrt': _ieee(math.sqrt),
        'exp': _ieee(math.exp),
        'log': _log,
        'sin': _ieee(math.sin),
        'cos': _ieee(math.cos),
        'tan': _ieee(math.tan),
    }

    def bindings(self) -> dict:
        out = collect_natives(self)
        for name, compute in self.UNARY.items():
            out[name] = create_native(self._unary(name, compute), 1,
                                      usage=f"Math.{name}(x)", name=name)
        out['PI'] = math.pi
        out['E'] = math.e
        return out

    @staticmethod
    def _unary(name, compute):
        def handler(args, referrer, context):
            x = _require(args[0], float, f"expect a number for Math.{name}", referrer, context)
            return float(compute(x))
        handler.__name__ = name
        return handler

    @native("Math.pow(base, exponent)", 2)
    def _pow(self, args, referrer, context):
        base = _require(args[0], float, "expect a number as base", referrer, context)
        exponent = _require(args[1], float, "expect a number as exponent", referrer, context)
        return ieee_power(base, exponent)

    @native("Math.min(values...)", 0, math.inf)
    def _min(self, args, referrer, context):
        values = [_require(v, float, "expect numbers", referrer, context) for v in args]
        if any(math.isnan(v) for v in values):
            return math.nan
        return min(values, default=math.inf)

    @native("Math.max(values...)", 0, math.inf)
    def _max(self, args, referrer, context):
        values = [_require(v, float, "expect numbers", referrer, context) for v in args]
        if any(math.isnan(v) for v in values):
            return math.nan
        return max(values, default=-math.inf)

    @native("Math.random()", 0)
    def _random(self, args, referrer, context):
        return random.random()


# ===================================================================
# 7. JSON / YAML
# ===================================================================


class DataLib:
    """`parse`/`stringify` for one text format (the `JSON` and `YAML` namespaces)."""

    def __init__(self, fmt: str):
        self.fmt = fmt

    @native("parse(text)", 1)
    def _parse(self, args, referrer, context):
        text = _require(args[0], str, "expect a string to parse", referrer, context)
        try:
            return deserialize(text, fmt=self.fmt)
        except ValueError as e:
            _fail(ScriptSyntaxError, str(e), referrer, context)

    @native("stringify(value, indent?)", 1, 2)
    def _stringify(self, args, referrer, context):
        indent = None
        if len(args) == 2:
            indent = int(_require(args[1], float, "expect a number as indent", referrer, context))
        return serialize(args[0], fmt=self.fmt, indent=indent)


# ===================================================================
# 8. Root bindings
# ===================================================================


def build_root_bindings(evaluator) -> dict:
    """Returns the name -> value mapping installed in a runner's root Store."""
    bindings = {
        'true': True,
        'false': False,
        'null': None,
        'NaN': math.nan,
        'infinity': math.inf,
    }
    bindings.update(collect_natives(CoreLib(evaluator)))
    bindings['Array'] = collect_natives(ArrayLib())
    bindings['String'] = collect_natives(StringLib())
    bindings['Dict'] = collect_natives(DictLib())
    bindings['Math'] = MathLib().bindings()
    bindings['JSON'] = collect_natives(DataLib('json'))
    bindings['YAML'] = collect_natives(DataLib('yaml'))
    return bindings
