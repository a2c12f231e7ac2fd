"""
Defines the runtime value model for the vimscript engine.

Values are plain Python objects wherever a native type fits:

    Integer  -> int          Str    -> str
    Number   -> float        Bool   -> bool
    List     -> list         Object -> dict (string keys)
    Nil      -> None         Function -> FuncRef

Lists and dicts are shared handles: every alias sees in-place mutation,
and only `deep_copy` produces an independent clone. The coercion and
operator helpers below implement the language's (deliberately weak)
typing rules on top of those objects.
"""

import copy
import math
import sys
from typing import Any, Dict, Iterator, List, Optional

from vimscript.vim_errors import CyclicReference, DivisionByZero, Expected, ExpectedType, NotABool

# Alias used where the language-level name reads better than `None`.
Nil = None

# Codes returned by the `type()` builtin (and exposed as v:t_*).
TYPE_CODES: Dict[str, int] = {
    "Integer": 0,
    "Str": 1,
    "Function": 2,
    "List": 3,
    "Object": 4,
    "Number": 5,
    "Bool": 6,
    "Nil": 7,
}

_INT_MAX = sys.maxsize
_INT_MIN = -sys.maxsize - 1


class FuncRef:
    """A reference to a function by name, resolved each time it is called.

    References to `s:` functions remember the script id that was active
    when they were created so they can be called from another script.
    """
    def __init__(self, name: str, script_id: Any = None):
        self.name = name
        self.script_id = script_id

    def __repr__(self) -> str:
        return f"FuncRef({self.name!r})"

    def __eq__(self, other):
        if not isinstance(other, FuncRef):
            return NotImplemented
        return self.name == other.name and self.script_id == other.script_id

    def __hash__(self):
        return hash((self.name, self.script_id))


class VimFunction:
    """A user function: parameter names plus the captured body lines.

    The body is tokenized once, when `function ... endfunction` is read,
    and replayed on each call.
    """
    def __init__(self, name: str, params: List[str], body: Optional[list] = None):
        self.name = name
        self.params = params
        self.body = body if body is not None else []

    def __repr__(self) -> str:
        return f"<VimFunction {self.name}({', '.join(self.params)}) lines={len(self.body)}>"


# =================================================================
# Type inspection
# =================================================================

def kind_of(value: Any) -> str:
    """Returns the language-level type name of a runtime value."""
    match value:
        case bool():
            return "Bool"
        case int():
            return "Integer"
        case float():
            return "Number"
        case str():
            return "Str"
        case list():
            return "List"
        case dict():
            return "Object"
        case FuncRef():
            return "Function"
        case None:
            return "Nil"
    raise ExpectedType("Value", type(value).__name__)


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float))


def type_code(value: Any) -> int:
    return TYPE_CODES[kind_of(value)]


# =================================================================
# Coercions
# =================================================================

def to_bool(value: Any, ctx=None) -> bool:
    """Truthiness. A FuncRef is true only if its target exists (needs ctx)."""
    match value:
        case None:
            return False
        case bool():
            return value
        case int() | float():
            return value != 0
        case str() | list() | dict():
            return len(value) > 0
        case FuncRef():
            return ctx.function_exists(value) if ctx is not None else True
    raise ExpectedType("Bool", type(value).__name__)


def as_bool(value: Any) -> bool:
    """Strict boolean: accepts Bool or the Integers 0 and 1."""
    if isinstance(value, bool):
        return value
    if is_integer(value) and value in (0, 1):
        return bool(value)
    raise NotABool(kind_of(value))


def to_int(value: Any) -> int:
    match value:
        case bool():
            return int(value)
        case int():
            return value
        case float():
            # Saturating truncation, NaN maps to zero.
            if math.isnan(value):
                return 0
            if math.isinf(value):
                return _INT_MAX if value > 0 else _INT_MIN
            return int(value)
        case None:
            return 0
    raise ExpectedType("Integer", kind_of(value))


def to_num(value: Any) -> float:
    match value:
        case bool() | int():
            try:
                return float(value)
            except OverflowError:
                # Integers beyond the float range saturate.
                return math.inf if value > 0 else -math.inf
        case float():
            return value
        case None:
            return 0.0
    raise ExpectedType("Number", kind_of(value))


def format_float(value: float) -> str:
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return repr(value)


def to_string(value: Any) -> str:
    """Formats any value as text (used by `.`, `echo` and `execute`)."""
    match value:
        case str():
            return value
        case bool():
            return "v:true" if value else "v:false"
        case int():
            return str(value)
        case float():
            return format_float(value)
        case None:
            return ""
    from vimscript.vim_printer import Printer
    return Printer().pformat(value)


# =================================================================
# Operators
# =================================================================

def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def add(a: Any, b: Any) -> Any:
    if is_integer(a) and is_integer(b):
        return a + b
    return to_num(a) + to_num(b)


def sub(a: Any, b: Any) -> Any:
    if is_integer(a) and is_integer(b):
        return a - b
    return to_num(a) - to_num(b)


def mul(a: Any, b: Any) -> Any:
    if is_integer(a) and is_integer(b):
        return a * b
    return to_num(a) * to_num(b)


def div(a: Any, b: Any) -> Any:
    if is_integer(a) and is_integer(b):
        if b == 0:
            raise DivisionByZero()
        return _trunc_div(a, b)
    x, y = to_num(a), to_num(b)
    if y == 0:
        raise DivisionByZero()
    return x / y


def mod(a: Any, b: Any) -> Any:
    if is_integer(a) and is_integer(b):
        if b == 0:
            raise DivisionByZero()
        return a - _trunc_div(a, b) * b
    x, y = to_num(a), to_num(b)
    if y == 0:
        raise DivisionByZero()
    if math.isinf(x):
        return math.nan
    return math.fmod(x, y)


def negate(a: Any) -> Any:
    if is_integer(a):
        return -a
    return -to_num(a)


def concat(a: Any, b: Any) -> str:
    return to_string(a) + to_string(b)


def _comparable(a: Any, b: Any) -> bool:
    ka, kb = kind_of(a), kind_of(b)
    return ka == kb and ka in ("Integer", "Number", "Str")


def less_than(a: Any, b: Any) -> bool:
    # Mismatched kinds compare as false rather than failing.
    return _comparable(a, b) and a < b


def less_equal(a: Any, b: Any) -> bool:
    return _comparable(a, b) and a <= b


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality; values of different kinds are never equal."""
    ka, kb = kind_of(a), kind_of(b)
    if ka != kb:
        return False
    if ka == "List":
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if ka == "Object":
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    return a == b


# =================================================================
# Indexing, iteration and container mutation
# =================================================================

def index(value: Any, key: Any) -> Any:
    """Total indexing: anything missing or out of range yields Nil."""
    match value:
        case list() | str():
            if not is_numeric(key):
                return None
            i = to_int(key)
            n = len(value)
            if -n <= i < n:
                return value[i]
            return None
        case dict():
            return value.get(to_string(key))
    return None


def iterate(value: Any) -> Iterator[Any]:
    match value:
        case list():
            return iter(list(value))
        case dict():
            return iter([[k, v] for k, v in list(value.items())])
        case str():
            return iter(list(value))
    return iter(())


def deep_copy(value: Any) -> Any:
    return copy.deepcopy(value)


def length(value: Any) -> int:
    match value:
        case str() | list() | dict():
            return len(value)
        case bool():
            raise ExpectedType("List", "Bool")
        case int() | float():
            return len(to_string(value))
        case None:
            return 0
    raise ExpectedType("List", kind_of(value))


def insert(target: Any, item: Any, idx: Any = 0) -> list:
    if not isinstance(target, list):
        raise ExpectedType("List", kind_of(target))
    if item is target:
        raise CyclicReference("List")
    target.insert(to_int(idx), item)
    return target


def append(target: Any, item: Any) -> list:
    if not isinstance(target, list):
        raise ExpectedType("List", kind_of(target))
    if item is target:
        raise CyclicReference("List")
    target.append(item)
    return target


def extend(target: Any, other: Any, where: Any = None) -> Any:
    """Extends a List with a List, or an Object with an Object.

    For Lists `where` is the insertion index (default: the end); for
    Objects it is 'force' (default) or 'keep'.
    """
    if isinstance(target, list):
        if not isinstance(other, list):
            raise ExpectedType("List", kind_of(other))
        if any(x is target for x in other):
            raise CyclicReference("List")
        at = len(target) if where is None else to_int(where)
        target[at:at] = list(other)
        return target
    if isinstance(target, dict):
        if not isinstance(other, dict):
            raise ExpectedType("Object", kind_of(other))
        if any(v is target for v in other.values()):
            raise CyclicReference("Object")
        keep = where is not None and to_string(where) == "keep"
        for k, v in list(other.items()):
            if keep and k in target:
                continue
            target[k] = v
        return target
    raise ExpectedType("List", kind_of(target))


def set_item(target: Any, key: Any, item: Any) -> None:
    """`let target[key] = item`."""
    if item is target:
        raise CyclicReference(kind_of(target))
    if isinstance(target, list):
        i = to_int(key)
        if not -len(target) <= i < len(target):
            raise Expected(f"list index in range, got {i}")
        target[i] = item
    elif isinstance(target, dict):
        target[to_string(key)] = item
    else:
        raise ExpectedType("List", kind_of(target))
