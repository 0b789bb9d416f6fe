from __future__ import annotations

import datetime
import json
import math
from typing import Any, Optional
import collections.abc

import yaml

from quill.quill_datatypes import QuillFunction


# --------------------------
# Helpers
# --------------------------

def _to_runtime(obj: Any) -> Any:
    # Parsed data -> Quill values: every number is a float, mapping keys are strings
    if isinstance(obj, bool) or obj is None or isinstance(obj, str):
        return obj
    if isinstance(obj, (int, float)):
        return float(obj)
    if isinstance(obj, list):
        return [_to_runtime(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {str(k): _to_runtime(v) for k, v in obj.items()}
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    return str(obj)


def _to_builtin(obj: Any, in_array: bool = False) -> Any:
    # Quill values -> JSON-compatible Python data
    if isinstance(obj, bool) or obj is None or isinstance(obj, str):
        return obj
    if isinstance(obj, float):
        if not math.isfinite(obj):
            return None
        return int(obj) if obj == int(obj) else obj
    if isinstance(obj, list):
        return [_to_builtin(x, in_array=True) for x in obj]
    if isinstance(obj, dict):
        return {k: _to_builtin(v) for k, v in obj.items() if not isinstance(v, QuillFunction)}
    if isinstance(obj, QuillFunction) and in_array:
        return None
    raise TypeError(f"cannot serialize a {type(obj).__name__}")


# --------------------------
# Public API
# --------------------------

def deserialize(text: str, *, fmt: str) -> Any:
    """
    Convert text to Quill runtime values.
    Supported fmt: 'json', 'yaml'.
    Malformed input raises ValueError.
    """
    f = (fmt or '').lower()
    if f == 'json':
        try:
            return _to_runtime(json.loads(text))
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON: {e.msg} at line {e.lineno} column {e.colno}") from e
    if f == 'yaml':
        try:
            return _to_runtime(yaml.safe_load(text))
        except yaml.YAMLError as e:
            raise ValueError(f"invalid YAML: {e}") from e
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def serialize(value: Any,
              *,
              fmt: str,
              indent: Optional[int] = None) -> str:
    """
    Convert a Quill runtime value into a textual representation.
    - fmt: 'json' | 'yaml'
    - JSON output is compact unless an indent is given; functions are dropped
      from dicts and become null inside arrays.
    """
    f = (fmt or '').lower()
    built = _to_builtin(value)
    if f == 'json':
        if indent:
            return json.dumps(built, ensure_ascii=False, indent=indent)
        return json.dumps(built, ensure_ascii=False, separators=(',', ':'))
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


__all__ = [
    "deserialize",
    "serialize",
]
