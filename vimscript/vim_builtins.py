"""
Builtin functions, variables and commands.

Every `_name` method of `StdLib` is registered as the builtin function
`name`; every `_name` method of `StdCommands` as the command `name`. A
method that needs the interpreter or the host state declares keyword-only
`ctx` / `state` parameters and the engine passes them in.
"""

import functools
import inspect
import math
import sys

from vimscript.vim_datatypes import (
    TYPE_CODES, FuncRef, append, deep_copy, extend, index, insert, is_integer, is_numeric,
    iterate, kind_of, length, less_than, to_bool, to_int, to_num, to_string, type_code,
    values_equal,
)
from vimscript.vim_errors import (
    Expected, ExpectedType, FunctionUndefined, NamespaceError, VariableUndefined,
)
from vimscript.vim_printer import Printer
from vimscript.vim_serialize import deserialize, serialize

VERSION = 900

BUILTIN_VARIABLES = {
    "true": True,
    "false": False,
    "null": None,
    "none": None,
    "version": VERSION,
    "t_number": TYPE_CODES["Integer"],
    "t_string": TYPE_CODES["Str"],
    "t_func": TYPE_CODES["Function"],
    "t_list": TYPE_CODES["List"],
    "t_dict": TYPE_CODES["Object"],
    "t_float": TYPE_CODES["Number"],
    "t_bool": TYPE_CODES["Bool"],
    "t_none": TYPE_CODES["Nil"],
}


def _members(obj):
    for name, member in inspect.getmembers(obj):
        if name.startswith('_') and not name.startswith('__') and callable(member):
            yield name[1:], member


def _require_list(value, what="List"):
    if not isinstance(value, list):
        raise ExpectedType(what, kind_of(value))
    return value


def _apply(ctx, state, func, key, val):
    """Runs a map()/filter() callback: an expression string or a Funcref."""
    if isinstance(func, FuncRef):
        return ctx.call_funcref(func, [key, val], state)
    builtin = ctx.variables.builtin
    saved = builtin.get("key"), builtin.get("val")
    builtin["key"], builtin["val"] = key, val
    try:
        return ctx.evaluator.eval(to_string(func), state)
    finally:
        builtin["key"], builtin["val"] = saved


class StdLib:
    """Python implementations of the builtin functions."""
    def __init__(self, ctx):
        self.ctx = ctx

    def register(self):
        for name, member in _members(self):
            self.ctx.builtin(name, member)
        self.ctx.builtin("execute", self._exec)
        for name, value in BUILTIN_VARIABLES.items():
            self.ctx.variables.insert_builtin(name, value)
        self.ctx.variables.insert_builtin("errors", [])
        StdCommands().register(self.ctx)

    # --- Evaluation ---
    def _eval(self, *parts, ctx, state):
        return ctx.eval("".join(to_string(p) for p in parts), state)

    def _exec(self, *parts, ctx, state):
        text = parts[0] if len(parts) == 1 else "".join(to_string(p) for p in parts)
        ctx.execute_text(text, state)
        return None

    def _call(self, func, arglist, *, ctx, state):
        args = list(_require_list(arglist))
        if isinstance(func, FuncRef):
            return ctx.call_funcref(func, args, state)
        return ctx.call_function(to_string(func), args, state)

    def _function(self, name, *, ctx):
        if isinstance(name, FuncRef):
            return name
        ref = ctx.make_funcref(to_string(name))
        if not ctx.function_exists(ref):
            raise FunctionUndefined(ref.name)
        return ref

    def _exists(self, name, *, ctx):
        text = to_string(name)
        try:
            if text.startswith("*"):
                return text[1:] in ctx.functions
            return text in ctx.variables
        except NamespaceError:
            return False

    def _type(self, value):
        return type_code(value)

    def _garbagecollect(self, atexit=None):
        return 0

    # --- Strings ---
    def _char2nr(self, a):
        text = to_string(a)
        return ord(text[0]) if text else 0

    def _nr2char(self, n):
        code = to_int(n)
        if not 0 <= code <= sys.maxunicode or 0xD800 <= code <= 0xDFFF:
            raise ExpectedType("character code", str(code))
        return chr(code)

    def _tolower(self, a): return to_string(a).lower()
    def _toupper(self, a): return to_string(a).upper()
    def _strlen(self, a): return len(to_string(a).encode("utf-8"))
    def _strchars(self, a): return len(to_string(a))
    def _trim(self, a): return to_string(a).strip()

    def _stridx(self, haystack, needle, start=0):
        return to_string(haystack).find(to_string(needle), to_int(start))

    def _repeat(self, a, count):
        n = max(to_int(count), 0)
        if isinstance(a, list):
            return a * n
        return to_string(a) * n

    def _str2nr(self, text, base=10):
        s = to_string(text).strip()
        b = to_int(base)
        if b not in (2, 8, 10, 16):
            raise ExpectedType("base 2, 8, 10 or 16", str(b))
        sign = -1 if s.startswith("-") else 1
        s = s.lstrip("+-")
        prefixes = {16: ("0x", "0X"), 8: ("0o", "0O"), 2: ("0b", "0B")}
        if s.startswith(prefixes.get(b, ())):
            s = s[2:]
        digits = "0123456789abcdefghijklmnopqrstuvwxyz"[:b]
        end = 0
        while end < len(s) and s[end].lower() in digits:
            end += 1
        return sign * int(s[:end], b) if end else 0

    def _str2float(self, text):
        s = to_string(text).strip()
        end = len(s)
        while end > 0:
            try:
                return float(s[:end])
            except ValueError:
                end -= 1
        return 0.0

    def _split(self, text, sep=None, keepempty=False):
        s = to_string(text)
        if sep is None or to_string(sep) == "":
            parts = s.split()
        else:
            parts = s.split(to_string(sep))
        if not to_bool(keepempty):
            parts = [p for p in parts if p]
        return parts

    def _join(self, items, sep=" "):
        return to_string(sep).join(to_string(x) for x in _require_list(items))

    def _string(self, value):
        return Printer().pformat(value)

    # --- Lists and objects ---
    def _len(self, a): return length(a)

    def _empty(self, a):
        if isinstance(a, FuncRef):
            return False
        return not to_bool(a)

    def _get(self, container, key, default=None):
        match container:
            case dict():
                return container.get(to_string(key), default)
            case list():
                i = to_int(key)
                return container[i] if -len(container) <= i < len(container) else default
        return default

    def _insert(self, target, item, idx=0): return insert(target, item, idx)
    def _add(self, target, item): return append(target, item)
    def _extend(self, target, other, where=None): return extend(target, other, where)

    def _remove(self, container, key, end=None):
        if isinstance(container, dict):
            k = to_string(key)
            if k not in container:
                raise Expected(f"key {k!r}")
            return container.pop(k)
        target = _require_list(container)
        n = len(target)
        i = to_int(key)
        if not -n <= i < n:
            raise Expected(f"list index in range, got {i}")
        if end is None:
            return target.pop(i)
        j = to_int(end)
        i, j = i % n, j % n
        removed = target[i:j + 1]
        del target[i:j + 1]
        return removed

    def _copy(self, a):
        match a:
            case list():
                return list(a)
            case dict():
                return dict(a)
        return a

    def _deepcopy(self, a): return deep_copy(a)

    def _filter(self, container, func, *, ctx, state):
        if isinstance(container, dict):
            for k, v in list(container.items()):
                if not to_bool(_apply(ctx, state, func, k, v), ctx):
                    del container[k]
            return container
        target = _require_list(container)
        kept = [v for i, v in enumerate(list(target)) if to_bool(_apply(ctx, state, func, i, v), ctx)]
        target[:] = kept
        return target

    def _map(self, container, func, *, ctx, state):
        if isinstance(container, dict):
            for k, v in list(container.items()):
                container[k] = _apply(ctx, state, func, k, v)
            return container
        target = _require_list(container)
        for i, v in enumerate(list(target)):
            target[i] = _apply(ctx, state, func, i, v)
        return target

    def _sort(self, items, func=None, *, ctx, state):
        target = _require_list(items)
        if func is None or (isinstance(func, str) and func == ""):
            key = functools.cmp_to_key(
                lambda a, b: -1 if _sort_less(a, b) else (1 if _sort_less(b, a) else 0))
        else:
            key = functools.cmp_to_key(lambda a, b: to_int(
                ctx.call_funcref(func, [a, b], state) if isinstance(func, FuncRef)
                else ctx.call_function(to_string(func), [a, b], state)))
        target.sort(key=key)
        return target

    def _reverse(self, items):
        target = _require_list(items)
        target.reverse()
        return target

    def _uniq(self, items):
        target = _require_list(items)
        out = []
        for v in target:
            if not out or not values_equal(out[-1], v):
                out.append(v)
        target[:] = out
        return target

    def _range(self, start, end=None, stride=1):
        step = to_int(stride)
        if step == 0:
            raise Expected("non-zero stride")
        if end is None:
            return list(range(to_int(start)))
        stop = to_int(end) + (1 if step > 0 else -1)
        return list(range(to_int(start), stop, step))

    def _index(self, items, value, start=0):
        target = _require_list(items)
        for i in range(to_int(start), len(target)):
            if values_equal(target[i], value):
                return i
        return -1

    def _count(self, container, value):
        values = container.values() if isinstance(container, dict) else iterate(container)
        return sum(1 for v in values if values_equal(v, value))

    def _max(self, container):
        values = list(container.values()) if isinstance(container, dict) else _require_list(container)
        return max((to_int(v) for v in values), default=0)

    def _min(self, container):
        values = list(container.values()) if isinstance(container, dict) else _require_list(container)
        return min((to_int(v) for v in values), default=0)

    def _flatten(self, items, depth=None):
        limit = -1 if depth is None else to_int(depth)
        return _flatten(_require_list(items), limit)

    def _has_key(self, obj, key):
        if not isinstance(obj, dict):
            raise ExpectedType("Object", kind_of(obj))
        return to_string(key) in obj

    def _keys(self, obj):
        if not isinstance(obj, dict):
            raise ExpectedType("Object", kind_of(obj))
        return list(obj.keys())

    def _values(self, obj):
        if not isinstance(obj, dict):
            raise ExpectedType("Object", kind_of(obj))
        return list(obj.values())

    def _items(self, obj):
        if not isinstance(obj, dict):
            raise ExpectedType("Object", kind_of(obj))
        return [[k, v] for k, v in obj.items()]

    # --- Math ---
    def _float2nr(self, x): return to_int(to_num(x))

    def _abs(self, x):
        return abs(x) if is_integer(x) else abs(to_num(x))

    def _round(self, x):
        v = to_num(x)
        if not math.isfinite(v):
            return v
        return math.copysign(math.floor(abs(v) + 0.5), v)

    def _ceil(self, x): return _rounded(math.ceil, to_num(x))
    def _floor(self, x): return _rounded(math.floor, to_num(x))
    def _trunc(self, x): return _rounded(math.trunc, to_num(x))
    def _fmod(self, a, b): return _safe(math.fmod, to_num(a), to_num(b))
    def _exp(self, x): return _safe(math.exp, to_num(x))
    def _log(self, x): return _safe(math.log, to_num(x))
    def _log10(self, x): return _safe(math.log10, to_num(x))

    def _pow(self, x, y):
        a, b = to_num(x), to_num(y)
        return _safe(math.pow, a, b, overflow=_pow_overflow(a, b))

    def _sqrt(self, x): return _safe(math.sqrt, to_num(x))
    def _sin(self, x): return _safe(math.sin, to_num(x))
    def _cos(self, x): return _safe(math.cos, to_num(x))
    def _tan(self, x): return _safe(math.tan, to_num(x))
    def _asin(self, x): return _safe(math.asin, to_num(x))
    def _acos(self, x): return _safe(math.acos, to_num(x))
    def _atan(self, x): return math.atan(to_num(x))
    def _atan2(self, y, x): return math.atan2(to_num(y), to_num(x))

    def _sinh(self, x):
        v = to_num(x)
        return _safe(math.sinh, v, overflow=math.copysign(math.inf, v))

    def _cosh(self, x): return _safe(math.cosh, to_num(x))
    def _tanh(self, x): return math.tanh(to_num(x))

    # --- Bitwise ---
    def _and(self, a, b): return to_int(a) & to_int(b)
    def _or(self, a, b): return to_int(a) | to_int(b)
    def _xor(self, a, b): return to_int(a) ^ to_int(b)
    def _invert(self, a): return ~to_int(a)

    # --- Assertions ---
    # A failed assertion appends a message to v:errors and returns 1.
    def _assert_equal(self, expected, actual, msg=None, *, ctx):
        return _check(ctx, values_equal(expected, actual),
                      msg, f"Expected {Printer().pformat(expected)} but got {Printer().pformat(actual)}")

    def _assert_notequal(self, expected, actual, msg=None, *, ctx):
        return _check(ctx, not values_equal(expected, actual),
                      msg, f"Expected not equal to {Printer().pformat(expected)}")

    def _assert_true(self, actual, msg=None, *, ctx):
        return _check(ctx, actual is True or (is_integer(actual) and actual != 0),
                      msg, f"Expected True but got {Printer().pformat(actual)}")

    def _assert_false(self, actual, msg=None, *, ctx):
        return _check(ctx, actual is False or (is_integer(actual) and actual == 0),
                      msg, f"Expected False but got {Printer().pformat(actual)}")

    # --- Serialization ---
    def _json_encode(self, value): return serialize(value, "json")
    def _json_decode(self, text): return deserialize(to_string(text), "json")


def _sort_less(a, b) -> bool:
    # Numbers sort before strings, strings before containers.
    ra, rb = _sort_rank(a), _sort_rank(b)
    if ra != rb:
        return ra < rb
    if ra == 0:
        return to_num(a) < to_num(b)
    if ra == 1:
        return less_than(a, b)
    return False


def _sort_rank(value) -> int:
    if is_numeric(value) and not isinstance(value, bool):
        return 0
    if isinstance(value, str):
        return 1
    return 2


def _flatten(items, depth):
    out = []
    for item in items:
        if isinstance(item, list) and depth != 0:
            out.extend(_flatten(item, depth - 1))
        else:
            out.append(item)
    return out


def _safe(func, *args, overflow=math.inf):
    # Domain errors give nan (log of zero gives -inf), range errors give `overflow`.
    try:
        return func(*args)
    except ValueError:
        if args == (0,) and func in (math.log, math.log10):
            return -math.inf
        return math.nan
    except OverflowError:
        return overflow


def _pow_overflow(x, y):
    if x < 0 and y.is_integer() and y % 2:
        return -math.inf
    return math.inf


def _rounded(func, v):
    return v if not math.isfinite(v) else float(func(v))


def _check(ctx, ok, msg, default):
    if ok:
        return 0
    ctx.variables.builtin["errors"].append(to_string(msg) if msg is not None else default)
    return 1


class StdCommands:
    """Builtin `:commands`."""

    def register(self, ctx):
        for name, member in _members(self):
            ctx.command(name, member)

    def _call(self, cmd_range, bang, args, ctx, state):
        ctx.eval(args, state)

    def _echo(self, cmd_range, bang, args, ctx, state):
        if not args.strip():
            state.echo("")
            return
        state.echo(to_string(ctx.eval(args, state)))

    def _unlet(self, cmd_range, bang, args, ctx, state):
        names = args.split()
        if not names:
            raise Expected("variable name")
        for name in names:
            if not ctx.remove_var(name) and not bang:
                raise VariableUndefined(name)
