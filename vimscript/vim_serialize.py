"""
JSON / YAML conversion of runtime values.

Used by the `json_encode()` / `json_decode()` builtins and by the runner
configuration loader. Funcrefs serialize as their name; a value that has
no vimscript counterpart raises `ExpectedType`.
"""

from __future__ import annotations

import collections.abc
import json
from typing import Any, Optional

import yaml

from vimscript.vim_datatypes import FuncRef, format_float
from vimscript.vim_errors import CyclicReference, Expected, ExpectedType


def to_builtin(value: Any, _seen: Optional[set] = None) -> Any:
    """Runtime value -> plain JSON/YAML-safe data."""
    seen = _seen if _seen is not None else set()
    match value:
        case FuncRef():
            return value.name
        case list() | dict():
            if id(value) in seen:
                raise CyclicReference("List" if isinstance(value, list) else "Object")
            seen.add(id(value))
            try:
                if isinstance(value, list):
                    return [to_builtin(x, seen) for x in value]
                return {str(k): to_builtin(v, seen) for k, v in value.items()}
            finally:
                seen.discard(id(value))
        case float():
            # JSON has no inf/nan literals.
            if value != value or value in (float("inf"), float("-inf")):
                return format_float(value)
            return value
        case None | bool() | int() | str():
            return value
    raise ExpectedType("Value", type(value).__name__)


def from_builtin(obj: Any) -> Any:
    """Plain parsed data -> runtime value (mappings become dicts with string keys)."""
    if isinstance(obj, (str, bytes)):
        return obj.decode("utf-8", errors="replace") if isinstance(obj, bytes) else obj
    if isinstance(obj, collections.abc.Mapping):
        return {str(k): from_builtin(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [from_builtin(x) for x in obj]
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    # Dates and other YAML scalars have no runtime type.
    return str(obj)


def serialize(value: Any, fmt: str = "json", *, pretty: bool = False) -> str:
    data = to_builtin(value)
    match fmt:
        case "json":
            if pretty:
                return json.dumps(data, indent=2, ensure_ascii=False)
            return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        case "yaml":
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    raise Expected(f"format json or yaml, got {fmt!r}")


def deserialize(text: str, fmt: str = "json") -> Any:
    match fmt:
        case "json":
            try:
                return from_builtin(json.loads(text))
            except json.JSONDecodeError as e:
                raise Expected(f"valid JSON ({e.msg} at {e.pos})") from e
        case "yaml":
            try:
                return from_builtin(yaml.safe_load(text))
            except yaml.YAMLError as e:
                raise Expected(f"valid YAML ({e})") from e
    raise Expected(f"format json or yaml, got {fmt!r}")
