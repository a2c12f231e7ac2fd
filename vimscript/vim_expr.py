"""
The expression engine.

An expression is evaluated in four stages:

1. lex the text into tokens (literals, identifiers, operators);
2. mark `name(` sites as pending calls;
3. replace every other identifier by its value (`&name` reads a host option);
4. reduce the token list until a single value is left.

Stage 4 runs a fixed sequence of reduction passes over the whole token
list, repeating the sequence until nothing changes. The order of the
passes is what gives the operators their precedence: calls, list
literals, indexing, object literals, grouping parentheses, unary
operators, then the binary operator levels from tightest to loosest.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from vimscript.vim_datatypes import (
    FuncRef, add, concat, div, index, is_integer, less_equal, less_than,
    mod, mul, negate, sub, to_bool, to_int, to_string, values_equal,
)
from vimscript.vim_errors import InvalidExpression, UnexpectedSymbol, UnterminatedString


# =================================================================
# Tokens
# =================================================================

@dataclass
class Op:
    text: str


@dataclass
class Var:
    name: str


@dataclass
class Call:
    """A `name(` site whose arguments are not reduced yet."""
    name: str


@dataclass(eq=False)
class Val:
    value: Any


def _is_op(tok, *texts) -> bool:
    return isinstance(tok, Op) and (not texts or tok.text in texts)


# =================================================================
# Stage 1: lexing
# =================================================================

_OP_CHARS = "+-*/%.!<>=,[]{}():&"
_TWO_CHAR_OPS = ("==", "!=", "<=", ">=", "..")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "e": "\x1b", "0": "\0", "\\": "\\", '"': '"'}

_HEX = re.compile(r"0[xX][0-9a-fA-F]+")
_OCT = re.compile(r"0[oO][0-7]+")
_BIN = re.compile(r"0[bB][01]+")
_FLOAT = re.compile(r"\d+\.\d+(?:[eE][+-]?\d+)?")
_DEC = re.compile(r"\d+")


def _lex_string(expr: str, i: int) -> Tuple[str, int]:
    quote = expr[i]
    buf = []
    j = i + 1
    n = len(expr)
    while j < n:
        c = expr[j]
        if c == "\\" and j + 1 < n:
            nxt = expr[j + 1]
            if quote == '"':
                buf.append(_ESCAPES.get(nxt, nxt))
                j += 2
                continue
            if nxt == "'":
                buf.append("'")
                j += 2
                continue
        if c == quote:
            if quote == "'" and expr[j + 1:j + 2] == "'":
                buf.append("'")
                j += 2
                continue
            return "".join(buf), j + 1
        buf.append(c)
        j += 1
    raise UnterminatedString(expr[i:])


def _lex_number(expr: str, i: int) -> Tuple[Any, int]:
    for pattern, base in ((_HEX, 16), (_OCT, 8), (_BIN, 2)):
        m = pattern.match(expr, i)
        if m:
            return int(m.group(0)[2:], base), m.end()
    m = _FLOAT.match(expr, i)
    if m:
        return float(m.group(0)), m.end()
    m = _DEC.match(expr, i)
    # Leading zeros are decimal: "077" is 77.
    return int(m.group(0), 10), m.end()


def lex(expr: str) -> list:
    tokens = []
    i = 0
    n = len(expr)
    while i < n:
        c = expr[i]
        if c.isspace():
            i += 1
        elif c in "'\"":
            value, i = _lex_string(expr, i)
            tokens.append(Val(value))
        elif c.isdigit():
            value, i = _lex_number(expr, i)
            tokens.append(Val(value))
        elif c.isalpha() or c == "_":
            j = i + 1
            while j < n and (expr[j].isalnum() or expr[j] in "_:#"):
                j += 1
            tokens.append(Var(expr[i:j]))
            i = j
        elif c in _OP_CHARS:
            two = expr[i:i + 2]
            if two in _TWO_CHAR_OPS:
                tokens.append(Op("." if two == ".." else two))
                i += 2
            else:
                tokens.append(Op(c))
                i += 1
        else:
            raise UnexpectedSymbol(c)
    return tokens


# =================================================================
# Binary operator levels (tightest first)
# =================================================================

def _greater_than(a, b):
    return less_than(b, a)


def _greater_equal(a, b):
    return less_equal(b, a)


def _not_equal(a, b):
    return not values_equal(a, b)


_LEVELS: List[Dict[str, Callable[[Any, Any], Any]]] = [
    {"*": mul, "/": div, "%": mod},
    {"+": add, "-": sub},
    {".": concat},
    {"<": less_than, "<=": less_equal, ">": _greater_than, ">=": _greater_equal,
     "==": values_equal, "!=": _not_equal},
]
_PRECEDENCE = {op: len(_LEVELS) - n for n, level in enumerate(_LEVELS) for op in level}

# Tokens after which a bracket or paren opens a new operand.
_CLOSERS = (")", "]", "}")


def _starts_operand(tokens: list, i: int) -> bool:
    """True when position i is at the start of an operand (nothing or an operator before it)."""
    if i == 0:
        return True
    prev = tokens[i - 1]
    return isinstance(prev, Op) and prev.text not in _CLOSERS


# =================================================================
# Evaluator
# =================================================================

class Evaluator:
    """Evaluates expression text against a VimScriptCtx."""

    def __init__(self, ctx):
        self.ctx = ctx

    def eval(self, expr: str, state) -> Any:
        tokens = lex(expr)
        if not tokens:
            raise InvalidExpression(expr)
        tokens = self._mark_calls(tokens)
        tokens = self._substitute(tokens, state)
        return self._reduce(tokens, state, expr)

    # --- Stage 2 ---

    def _mark_calls(self, tokens: list) -> list:
        out = []
        for i, tok in enumerate(tokens):
            if isinstance(tok, Var) and i + 1 < len(tokens) and _is_op(tokens[i + 1], "("):
                out.append(Call(tok.name))
            else:
                out.append(tok)
        return out

    # --- Stage 3 ---

    def _substitute(self, tokens: list, state) -> list:
        out = []
        for tok in tokens:
            if isinstance(tok, Var):
                if out and _is_op(out[-1], "&"):
                    out[-1] = Val(state.get_option(tok.name))
                else:
                    out.append(Val(self.ctx.lookup(tok.name)))
            else:
                out.append(tok)
        return out

    # --- Stage 4 ---

    def _reduce(self, tokens: list, state, expr: str) -> Any:
        passes = (
            self._funcref_calls,
            self._direct_calls,
            self._list_literals,
            self._indexing,
            self._object_literals,
            self._parens,
            self._unary,
        )
        while len(tokens) > 1:
            changed = False
            for reduction in passes:
                if reduction(tokens, state):
                    changed = True
            for level in _LEVELS:
                if self._binary(tokens, level):
                    changed = True
            if not changed:
                self.ctx._dbg("EXPR stuck", expr, tokens)
                raise InvalidExpression(expr)
        if not isinstance(tokens[0], Val):
            raise InvalidExpression(expr)
        return tokens[0].value

    @staticmethod
    def _collect_args(tokens: list, open_idx: int) -> Optional[Tuple[list, int]]:
        """Reads `( v, v, ... )` starting at open_idx once every argument is a value."""
        j = open_idx + 1
        n = len(tokens)
        if j < n and _is_op(tokens[j], ")"):
            return [], j
        args = []
        while j < n:
            tok = tokens[j]
            if not isinstance(tok, Val):
                return None
            args.append(tok.value)
            j += 1
            if j >= n:
                return None
            if _is_op(tokens[j], ")"):
                return args, j
            if not _is_op(tokens[j], ","):
                return None
            j += 1
        return None

    def _funcref_calls(self, tokens: list, state) -> bool:
        changed = False
        i = 0
        while i < len(tokens) - 1:
            tok = tokens[i]
            if isinstance(tok, Val) and isinstance(tok.value, FuncRef) and _is_op(tokens[i + 1], "("):
                collected = self._collect_args(tokens, i + 1)
                if collected is not None:
                    args, close = collected
                    tokens[i:close + 1] = [Val(self.ctx.call_funcref(tok.value, args, state))]
                    changed = True
            i += 1
        return changed

    def _direct_calls(self, tokens: list, state) -> bool:
        changed = False
        i = 0
        while i < len(tokens) - 1:
            tok = tokens[i]
            if isinstance(tok, Call):
                collected = self._collect_args(tokens, i + 1)
                if collected is not None:
                    args, close = collected
                    tokens[i:close + 1] = [Val(self.ctx.call_function(tok.name, args, state))]
                    changed = True
            i += 1
        return changed

    def _list_literals(self, tokens: list, state) -> bool:
        changed = False
        i = 0
        while i < len(tokens) - 1:
            if _is_op(tokens[i], "[") and _starts_operand(tokens, i):
                end = next((k for k in range(i + 1, len(tokens)) if _is_op(tokens[k], "]")), None)
                if end is not None:
                    items = self._split_parts(tokens[i + 1:end])
                    if items is not None and all(len(p) == 1 and isinstance(p[0], Val) for p in items):
                        tokens[i:end + 1] = [Val([p[0].value for p in items])]
                        changed = True
            i += 1
        return changed

    @staticmethod
    def _split_parts(inner: list) -> Optional[List[list]]:
        """Splits tokens on commas, dropping empty parts."""
        parts, current = [], []
        for tok in inner:
            if _is_op(tok, ","):
                if current:
                    parts.append(current)
                current = []
            else:
                current.append(tok)
        if current:
            parts.append(current)
        return parts

    def _indexing(self, tokens: list, state) -> bool:
        changed = False
        i = 0
        while i < len(tokens) - 2:
            if isinstance(tokens[i], Val) and _is_op(tokens[i + 1], "["):
                reduced = self._index_or_slice(tokens, i)
                if reduced is not None:
                    value, end = reduced
                    tokens[i:end + 1] = [Val(value)]
                    changed = True
                    continue
            i += 1
        return changed

    @staticmethod
    def _index_or_slice(tokens: list, i: int) -> Optional[Tuple[Any, int]]:
        base = tokens[i].value
        rest = tokens[i + 2:i + 6]
        # base [ key ]
        if len(rest) >= 2 and isinstance(rest[0], Val) and _is_op(rest[1], "]"):
            return index(base, rest[0].value), i + 3
        # base [ lo? : hi? ]
        lo = hi = None
        j = i + 2
        if j < len(tokens) and isinstance(tokens[j], Val):
            lo = tokens[j].value
            j += 1
        if not (j < len(tokens) and _is_op(tokens[j], ":")):
            return None
        j += 1
        if j < len(tokens) and isinstance(tokens[j], Val):
            hi = tokens[j].value
            j += 1
        if not (j < len(tokens) and _is_op(tokens[j], "]")):
            return None
        return _slice(base, lo, hi), j

    def _object_literals(self, tokens: list, state) -> bool:
        changed = False
        i = 0
        while i < len(tokens) - 1:
            if _is_op(tokens[i], "{") and _starts_operand(tokens, i):
                end = next((k for k in range(i + 1, len(tokens)) if _is_op(tokens[k], "}")), None)
                if end is not None:
                    parts = self._split_parts(tokens[i + 1:end])
                    if all(len(p) == 3 and isinstance(p[0], Val) and _is_op(p[1], ":")
                           and isinstance(p[2], Val) for p in parts):
                        obj = {to_string(p[0].value): p[2].value for p in parts}
                        tokens[i:end + 1] = [Val(obj)]
                        changed = True
            i += 1
        return changed

    def _parens(self, tokens: list, state) -> bool:
        changed = False
        i = 0
        while i < len(tokens) - 2:
            if (_is_op(tokens[i], "(") and isinstance(tokens[i + 1], Val)
                    and _is_op(tokens[i + 2], ")") and _starts_operand(tokens, i)):
                tokens[i:i + 3] = [tokens[i + 1]]
                changed = True
            i += 1
        return changed

    def _unary(self, tokens: list, state) -> bool:
        changed = False
        # Right to left so chains like `!!x` collapse in one pass.
        i = len(tokens) - 2
        while i >= 0:
            tok = tokens[i]
            if (_is_op(tok, "-", "!", "+") and isinstance(tokens[i + 1], Val)
                    and _starts_operand(tokens, i)
                    and not (i + 2 < len(tokens) and _is_op(tokens[i + 2], "[", "("))):
                operand = tokens[i + 1].value
                match tok.text:
                    case "-":
                        result = negate(operand)
                    case "!":
                        result = not to_bool(operand, self.ctx)
                    case _:
                        result = operand if is_integer(operand) else negate(negate(operand))
                tokens[i:i + 2] = [Val(result)]
                changed = True
            i -= 1
        return changed

    def _binary(self, tokens: list, level: Dict[str, Callable]) -> bool:
        changed = False
        i = 0
        while i < len(tokens) - 2:
            lhs, op, rhs = tokens[i], tokens[i + 1], tokens[i + 2]
            if (isinstance(lhs, Val) and isinstance(op, Op) and op.text in level
                    and isinstance(rhs, Val) and self._binds(tokens, i, _PRECEDENCE[op.text])):
                tokens[i:i + 3] = [Val(level[op.text](lhs.value, rhs.value))]
                changed = True
                continue
            i += 1
        return changed

    @staticmethod
    def _binds(tokens: list, i: int, prec: int) -> bool:
        """Whether `tokens[i] op tokens[i+2]` may reduce now without stealing an operand."""
        if i > 0:
            prev = tokens[i - 1]
            if not isinstance(prev, Op):
                return False
            if prev.text in _PRECEDENCE and _PRECEDENCE[prev.text] >= prec:
                return False
            if prev.text in ("-", "!", "+") and _starts_operand(tokens, i - 1):
                return False
        if i + 3 < len(tokens):
            nxt = tokens[i + 3]
            if not isinstance(nxt, Op):
                return False
            if nxt.text in ("[", "("):
                return False
            if nxt.text in _PRECEDENCE and _PRECEDENCE[nxt.text] > prec:
                return False
        return True


def _slice(base: Any, lo: Any, hi: Any) -> Any:
    """Inclusive slice `base[lo : hi]` of a List or Str."""
    if not isinstance(base, (list, str)):
        return None
    n = len(base)
    start = to_int(lo) if lo is not None else 0
    end = to_int(hi) if hi is not None else n - 1
    if start < 0:
        start = max(n + start, 0)
    if end < 0:
        end += n
    if end < start:
        return base[:0]
    return base[start:end + 1]
