"""
A display formatter for Quill runtime values.
"""
import math

from quill.quill_datatypes import QuillFunction, ScriptFunction, NativeFunction, _NoValue


class Printer:
    """Formats Quill values into short, human-readable strings.

    `pformat` is the `string()` form: strings are quoted and nested
    aggregates are summarised. `to_text` is the `print` form: strings are
    written as-is.
    """

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def to_text(self, obj):
        if isinstance(obj, str):
            return obj
        return self.pformat(obj)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, QuillFunction):
            return self._pformat_function
        if isinstance(obj, dict):
            return self._pformat_dict
        if isinstance(obj, list):
            return self._pformat_array
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            float: self._pformat_number,
            int: self._pformat_number,
            bool: self._pformat_bool,
            type(None): self._pformat_null,
            _NoValue: self._pformat_undefined,
            list: self._pformat_array,
            dict: self._pformat_dict,
            ScriptFunction: self._pformat_function,
            NativeFunction: self._pformat_function,
        }

    def _pformat_number(self, obj, level):
        return format_number(obj)

    def _pformat_str(self, obj, level):
        # Prefer single quotes; switch to double quotes when only that avoids escaping
        if "'" in obj and '"' not in obj:
            return f'"{obj}"'
        return f"'{obj}'"

    def _pformat_bool(self, obj, level):
        return 'true' if obj else 'false'

    def _pformat_null(self, obj, level):
        return 'null'

    def _pformat_undefined(self, obj, level):
        return 'undefined'

    def _pformat_function(self, obj, level):
        return '<function>'

    def _pformat_dict(self, obj, level):
        return '<dict>'

    def _pformat_array(self, obj, level):
        if level > 0:
            return '<array>'
        items = ', '.join(self.pformat(item, level + 1) for item in obj)
        return f"(size: {len(obj)}) [{items}]"


def format_number(value) -> str:
    """Formats a number the way scripts expect to read it back."""
    if math.isnan(value):
        return 'NaN'
    if math.isinf(value):
        return 'Infinity' if value > 0 else '-Infinity'
    if value == int(value) and abs(value) < 1e21:
        return str(int(value))
    return repr(float(value))
