"""
The vimscript execution engine.

`VimScriptCtx` interprets a stream of `Line`s directly, without building
an AST. Nesting is tracked with a `Section` (which block we are in) and
an orthogonal `RunTy` mode:

    NOW          execute each line
    SKIP         scan without executing, still matching nested blocks
    SKIP_END_IF  an earlier branch already ran: consume up to `endif`
    CAPTURE      append each line to a function body

Loops and functions are replayed from a cloned line source rather than
re-tokenized: a loop body is run once per element from a clone taken at
its first line, and a function body is captured once at definition time.
"""

import inspect
import os
import re
import sys
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional

from vimscript.vim_datatypes import (
    FuncRef, VimFunction, add, concat, div, index, iterate, kind_of, mul, set_item, sub,
    to_bool, to_string,
)
from vimscript.vim_errors import (
    CallDepthExceeded, CommandUndefined, Exit, Expected, ExpectedType, FunctionUndefined,
    NamespaceError, TimeOut, UnexpectedEof, UnexpectedKeyword, VariableUndefined, VimError,
    WrongArgCount, is_control_fault,
)
from vimscript.vim_expr import Evaluator
from vimscript.vim_namespace import Namespace, Scope
from vimscript.vim_tokenizer import CmdRange, Line, LineReplay, LineSource, Tokenizer

DEFAULT_TIMEOUT = 5.0
MAX_FUNCTION_DEPTH = 100


def default_timeout() -> float:
    """The watchdog budget, overridable through VIMSCRIPT_TIMEOUT."""
    env = os.environ.get("VIMSCRIPT_TIMEOUT")
    if env is not None:
        try:
            return float(env)
        except ValueError:
            pass
    return DEFAULT_TIMEOUT


# =================================================================
# Handler interfaces
# =================================================================

class Command(ABC):
    """An imperative `:command` registered by name."""
    @abstractmethod
    def execute(self, cmd_range: CmdRange, bang: bool, args: str, ctx: "VimScriptCtx", state) -> None:
        raise NotImplementedError


class BuiltinFunction(ABC):
    """A function implemented in Python and callable from expressions."""
    @abstractmethod
    def execute(self, args: List[Any], ctx: "VimScriptCtx", state) -> Any:
        raise NotImplementedError


class PyCommand(Command):
    """Adapts a plain callable `(range, bang, args, ctx, state)`."""
    def __init__(self, func: Callable):
        self.func = func

    def execute(self, cmd_range, bang, args, ctx, state):
        self.func(cmd_range, bang, args, ctx, state)


class PyFunction(BuiltinFunction):
    """Adapts a Python callable, checking arity against its signature.

    Positional parameters with defaults are optional trailing arguments.
    Keyword-only `ctx` / `state` parameters are filled in by the engine.
    """
    def __init__(self, func: Callable, name: Optional[str] = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "<builtin>")
        params = inspect.signature(func).parameters.values()
        positional = [p for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
        self.count = len(positional)
        self.required = sum(1 for p in positional if p.default is p.empty)
        self.variadic = any(p.kind is p.VAR_POSITIONAL for p in params)
        keyword_only = {p.name for p in params if p.kind is p.KEYWORD_ONLY}
        self.wants_ctx = "ctx" in keyword_only
        self.wants_state = "state" in keyword_only

    def execute(self, args, ctx, state):
        if len(args) < self.required or (len(args) > self.count and not self.variadic):
            raise WrongArgCount(self.count, len(args))
        kwargs = {}
        if self.wants_ctx:
            kwargs["ctx"] = ctx
        if self.wants_state:
            kwargs["state"] = state
        return self.func(*args, **kwargs)

    def __repr__(self):
        return f"<PyFunction {self.name}/{self.count}>"


# =================================================================
# Sections, modes and control signals
# =================================================================

class Section(Enum):
    SCRIPT = "script"
    FUNCTION = "function"
    IF = "if"
    WHILE = "while"
    FOR = "for"


class RunTy(Enum):
    NOW = "now"
    SKIP = "skip"
    SKIP_END_IF = "skip-endif"
    CAPTURE = "capture"


_KEYWORD_ALIASES = {
    "fu": "function", "fun": "function", "func": "function",
    "endf": "endfunction", "endfun": "endfunction", "endfunc": "endfunction",
    "wh": "while", "endw": "endwhile", "endwh": "endwhile",
    "endfo": "endfor",
    "el": "else", "elsei": "elseif", "en": "endif", "endi": "endif",
    "exe": "execute", "exec": "execute",
    "sil": "silent", "unsil": "unsilent",
    "fini": "finish", "retu": "return", "brea": "break", "con": "continue",
}

_OPENERS = {"while": Section.WHILE, "for": Section.FOR, "function": Section.FUNCTION}
_CLOSERS = {
    "endif": Section.IF,
    "endwhile": Section.WHILE,
    "endfor": Section.FOR,
    "endfunction": Section.FUNCTION,
}
_COMPOUND = {"+": add, "-": sub, "*": mul, "/": div, ".": concat}

_NAME = re.compile(r"[A-Za-z_][\w:#]*")
_FOR_HEADER = re.compile(r"^\s*(.+?)\s+in\s+(.+)$", re.DOTALL)
_FUNCTION_HEADER = re.compile(r"^\s*([A-Za-z_][\w:#]*)\s*\(([^)]*)\)(.*)$", re.DOTALL)
_ITEM_TARGET = re.compile(r"^([A-Za-z_][\w:#]*)\s*\[(.+)\]$", re.DOTALL)


class _Return(Exception):
    def __init__(self, value):
        super().__init__("return")
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


# =================================================================
# Patterns (for-loop variables and `let [a, b] = ...`)
# =================================================================

def parse_pattern(text: str):
    """Parses `name`, `[p, ...]` or `{name, ...}` into a pattern tree.

    A pattern is a name string or a ('list' | 'object', [patterns]) tuple.
    """
    pattern, rest = _parse_pattern(text)
    if rest.strip():
        raise Expected(f"end of pattern before {rest.strip()!r}")
    return pattern


def _parse_pattern(text: str):
    text = text.lstrip()
    if text[:1] in ("[", "{"):
        kind, close = ("list", "]") if text[0] == "[" else ("object", "}")
        items = []
        text = text[1:].lstrip()
        if text.startswith(close):
            return (kind, items), text[1:]
        while True:
            item, text = _parse_pattern(text)
            if kind == "object" and not isinstance(item, str):
                raise Expected("name in object pattern")
            items.append(item)
            text = text.lstrip()
            if text.startswith(","):
                text = text[1:]
                continue
            if text.startswith(close):
                return (kind, items), text[1:]
            raise Expected(close)
    m = _NAME.match(text)
    if not m:
        raise Expected("variable name")
    return m.group(0), text[m.end():]


def bind_pattern(pattern, value: Any, bind: Callable[[str, Any], None]):
    if isinstance(pattern, str):
        bind(pattern, value)
        return
    kind, items = pattern
    if kind == "list":
        if not isinstance(value, list):
            raise ExpectedType("List", kind_of(value))
        if len(value) != len(items):
            raise Expected(f"{len(items)} values, got {len(value)}")
        for item, v in zip(items, value):
            bind_pattern(item, v, bind)
    else:
        if not isinstance(value, dict):
            raise ExpectedType("Object", kind_of(value))
        for name in items:
            bind(name, value.get(name.split(":")[-1]))


def split_assignment(text: str):
    """Splits `lhs op= rhs` on the first bare `=`; returns (lhs, op, rhs)."""
    quote = None
    for i, c in enumerate(text):
        if quote:
            if c == quote:
                quote = None
            continue
        if c in "'\"":
            quote = c
            continue
        if c != "=":
            continue
        prev = text[i - 1] if i > 0 else ""
        nxt = text[i + 1:i + 2]
        if nxt in ("=", "~") or prev in ("=", "!", "<", ">"):
            continue
        if prev and prev in _COMPOUND:
            lhs = text[:i - 1]
            if prev == ".":
                lhs = lhs.rstrip(".")
            return lhs.strip(), prev, text[i + 1:].strip()
        return text[:i].strip(), "", text[i + 1:].strip()
    raise Expected("=")


def parse_function_header(text: str):
    m = _FUNCTION_HEADER.match(text)
    if not m:
        raise Expected("Name(args)")
    name = m.group(1)
    params = [p.strip() for p in m.group(2).split(",") if p.strip()]
    for p in params:
        if not re.fullmatch(r"[A-Za-z_]\w*", p):
            raise Expected(f"parameter name, got {p!r}")
    return name, params


# =================================================================
# The context
# =================================================================

class VimScriptCtx:
    """Owns namespaces, registrations and the watchdog for one interpreter."""

    def __init__(self, timeout: Optional[float] = None, load_builtins: bool = True,
                 max_function_depth: int = MAX_FUNCTION_DEPTH):
        self.variables = Namespace()
        self.functions = Namespace()
        self.commands: Dict[str, Command] = {}
        self.timeout = default_timeout() if timeout is None else timeout
        self.max_function_depth = max_function_depth
        self.deadline: Optional[float] = None
        self.silence_depth = 0
        self.current_line: Optional[Line] = None
        self.evaluator = Evaluator(self)
        self.debug = False
        self._depth = 0
        self._function_depth = 0
        self._loop_depth = 0
        if load_builtins:
            from vimscript.vim_builtins import StdLib
            StdLib(self).register()

    def _dbg(self, *parts):
        if self.debug or os.environ.get("VIMSCRIPT_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # --- Host API ---

    def run(self, script: str, state) -> None:
        """Executes script text; `finish`/`exit` count as success."""
        with self._entry():
            try:
                self._run_inner(Tokenizer(script), Section.SCRIPT, RunTy.NOW, state)
            except Exit:
                self._dbg("EXIT")

    def eval(self, expr: str, state) -> Any:
        with self._entry():
            return self.evaluator.eval(expr, state)

    def run_function(self, name: str, args: List[Any], state) -> Any:
        with self._entry():
            return self.call_function(name, list(args), state)

    def command(self, name: str, handler):
        """Registers a command; a later registration replaces an earlier one."""
        if not isinstance(handler, Command):
            handler = PyCommand(handler)
        self.commands[name] = handler

    def builtin(self, name: str, handler):
        """Registers a builtin function; a later registration replaces an earlier one."""
        if not isinstance(handler, BuiltinFunction):
            handler = PyFunction(handler, name)
        self.functions.insert_builtin(name, handler)

    def insert_var(self, name: str, value: Any):
        self.variables.insert(name, value)

    def remove_var(self, name: str) -> bool:
        return self.variables.remove(name)

    def lookup(self, name: str) -> Any:
        found, value = self.variables.find(name)
        if not found:
            raise VariableUndefined(name)
        return value

    def set_buffer(self, id_: Optional[Hashable]):
        self.variables.set_buffer(id_)
        self.functions.set_buffer(id_)

    def set_window(self, id_: Optional[Hashable]):
        self.variables.set_window(id_)
        self.functions.set_window(id_)

    def set_script(self, id_: Optional[Hashable]):
        self.variables.set_script(id_)
        self.functions.set_script(id_)

    def enter_local(self, barrier: bool = True):
        self.variables.enter_local(barrier)
        self.functions.enter_local(barrier)

    def leave_local(self):
        self.variables.leave_local()
        self.functions.leave_local()

    # --- Watchdog ---

    @contextmanager
    def _entry(self):
        if self._depth == 0:
            self.deadline = time.monotonic() + self.timeout
            self.current_line = None
        frames = self.variables.depth, self.functions.depth
        self._depth += 1
        try:
            yield
        except RecursionError:
            # Converted once the stack has unwound to the outermost entry.
            if self._depth > 1:
                raise
            self._unwind(*frames)
            raise CallDepthExceeded(self.max_function_depth) from None
        finally:
            self._depth -= 1

    def _unwind(self, variable_frames: int, function_frames: int):
        """Restores the counters and frames an aborted run may have left behind."""
        while self.variables.depth > variable_frames:
            self.variables.leave_local()
        while self.functions.depth > function_frames:
            self.functions.leave_local()
        self._function_depth = 0
        self._loop_depth = 0
        self.silence_depth = 0

    def _check_deadline(self):
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise TimeOut(self.timeout)

    @contextmanager
    def _script_scope(self, script_id: Optional[Hashable]):
        if script_id is None:
            yield
            return
        previous = self.functions.active_id(Scope.SCRIPT)
        self.set_script(script_id)
        try:
            yield
        finally:
            self.set_script(previous)

    # --- Functions ---

    def make_funcref(self, name: str) -> FuncRef:
        script_id = self.functions.active_id(Scope.SCRIPT) if name.startswith("s:") else None
        return FuncRef(name, script_id)

    def function_exists(self, ref: FuncRef) -> bool:
        try:
            with self._script_scope(ref.script_id):
                return ref.name in self.functions
        except NamespaceError:
            return False

    def call_funcref(self, ref: FuncRef, args: List[Any], state) -> Any:
        with self._script_scope(ref.script_id):
            return self.call_function(ref.name, args, state)

    def call_function(self, name: str, args: List[Any], state) -> Any:
        found, func = self.functions.find(name)
        if not found:
            found, ref = self.variables.find(name)
            if found and isinstance(ref, FuncRef):
                return self.call_funcref(ref, args, state)
            raise FunctionUndefined(name)
        if isinstance(func, BuiltinFunction):
            return func.execute(list(args), self, state)
        if isinstance(func, VimFunction):
            return self._call_vim_function(func, args, state)
        raise FunctionUndefined(name)

    def _call_vim_function(self, func: VimFunction, args: List[Any], state) -> Any:
        if len(args) != len(func.params):
            raise WrongArgCount(len(func.params), len(args))
        if self._function_depth >= self.max_function_depth:
            raise CallDepthExceeded(self.max_function_depth)
        self._dbg("CALL", func.name, "argc", len(args))
        self.enter_local()
        saved_loops, self._loop_depth = self._loop_depth, 0
        self._function_depth += 1
        try:
            for param, arg in zip(func.params, args):
                self.variables.declare(param, arg)
            self._run_inner(LineReplay(func.body), Section.SCRIPT, RunTy.NOW, state)
        except _Return as ret:
            return ret.value
        finally:
            self._function_depth -= 1
            self._loop_depth = saved_loops
            self.leave_local()
        return None

    # --- The interpreter loop ---

    def _run_inner(self, source: LineSource, section: Section, mode: RunTy, state,
                   body: Optional[List[Line]] = None) -> Optional[Line]:
        """Consumes lines until the end of `section`; returns its closing line."""
        for line in source:
            self._check_deadline()
            keyword = _KEYWORD_ALIASES.get(line.command, line.command)
            match keyword:
                case "if":
                    self._open_if(line, source, mode, state, body)
                case "elseif" | "else":
                    if section is not Section.IF:
                        raise UnexpectedKeyword(keyword)
                    mode = self._next_branch(keyword, line, mode, state, body)
                case "while" | "for" | "function":
                    self._open_block(_OPENERS[keyword], line, source, mode, state, body)
                case "endif" | "endwhile" | "endfor" | "endfunction":
                    if section is not _CLOSERS[keyword]:
                        raise UnexpectedKeyword(keyword)
                    return line
                case _:
                    if mode is RunTy.CAPTURE:
                        body.append(line)
                    elif mode is RunTy.NOW:
                        self._execute_line(keyword, line, state)
        if section is not Section.SCRIPT:
            raise UnexpectedEof(section.value)
        return None

    def _condition(self, line: Line, state) -> bool:
        self.current_line = line
        return to_bool(self.evaluator.eval(line.params, state), self)

    def _open_if(self, line, source, mode, state, body):
        if mode is RunTy.NOW:
            taken = self._condition(line, state)
            self._run_inner(source, Section.IF, RunTy.NOW if taken else RunTy.SKIP, state)
        elif mode is RunTy.CAPTURE:
            self._capture_nested(Section.IF, line, source, state, body)
        else:
            # Inside a skipped region no branch of a nested if may run.
            self._run_inner(source, Section.IF, RunTy.SKIP_END_IF, state)

    def _next_branch(self, keyword, line, mode, state, body) -> RunTy:
        match mode:
            case RunTy.CAPTURE:
                body.append(line)
                return mode
            case RunTy.NOW:
                return RunTy.SKIP_END_IF
            case RunTy.SKIP:
                if keyword == "else" or self._condition(line, state):
                    return RunTy.NOW
                return mode
        return mode

    def _open_block(self, section, line, source, mode, state, body):
        if mode is RunTy.NOW:
            match section:
                case Section.FOR:
                    self._run_for(line, source, state)
                case Section.WHILE:
                    self._run_while(line, source, state)
                case Section.FUNCTION:
                    self._define_function(line, source, state)
        elif mode is RunTy.CAPTURE:
            self._capture_nested(section, line, source, state, body)
        else:
            self._run_inner(source, section, RunTy.SKIP, state)

    def _capture_nested(self, section, line, source, state, body):
        body.append(line)
        closing = self._run_inner(source, section, RunTy.CAPTURE, state, body)
        body.append(closing)

    def _define_function(self, line: Line, source: LineSource, state):
        self.current_line = line
        name, params = parse_function_header(line.params)
        func = VimFunction(name, params)
        self._run_inner(source, Section.FUNCTION, RunTy.CAPTURE, state, func.body)
        self.functions.insert(name, func)
        self._dbg("DEFINE", name, "lines", len(func.body))

    def _replay(self, start: LineSource, section: Section, state):
        try:
            self._run_inner(start.clone(), section, RunTy.NOW, state)
        except _Continue:
            pass

    def _run_for(self, line: Line, source: LineSource, state):
        self.current_line = line
        m = _FOR_HEADER.match(line.params)
        if not m:
            raise Expected("for {var} in {expr}")
        pattern = parse_pattern(m.group(1))
        items = list(iterate(self.evaluator.eval(m.group(2), state)))
        start = source.clone()
        self._loop_depth += 1
        try:
            for item in items:
                self.enter_local(barrier=False)
                try:
                    bind_pattern(pattern, item, self.variables.declare)
                    self._replay(start, Section.FOR, state)
                finally:
                    self.leave_local()
        except _Break:
            pass
        finally:
            self._loop_depth -= 1
        self._run_inner(source, Section.FOR, RunTy.SKIP, state)

    def _run_while(self, line: Line, source: LineSource, state):
        start = source.clone()
        self._loop_depth += 1
        try:
            while self._condition(line, state):
                self._check_deadline()
                self._replay(start, Section.WHILE, state)
        except _Break:
            pass
        finally:
            self._loop_depth -= 1
        self._run_inner(source, Section.WHILE, RunTy.SKIP, state)

    # --- Single statements ---

    def _execute_line(self, keyword: str, line: Line, state):
        self.current_line = line
        self._dbg("LINE", line.lineno, str(line))
        match keyword:
            case "let":
                self._let(line, state)
            case "silent":
                self._silent(line, state)
            case "unsilent":
                self._unsilent(line, state)
            case "execute":
                self._execute(line, state)
            case "finish" | "exit":
                raise Exit()
            case "return":
                if self._function_depth == 0:
                    raise UnexpectedKeyword("return")
                value = self.evaluator.eval(line.params, state) if line.params.strip() else None
                raise _Return(value)
            case "break" | "continue":
                if self._loop_depth == 0:
                    raise UnexpectedKeyword(keyword)
                raise _Break() if keyword == "break" else _Continue()
            case _:
                handler = self.commands.get(line.command)
                if handler is None:
                    raise CommandUndefined(line.command)
                handler.execute(line.range, line.bang, line.params, self, state)

    def _let(self, line: Line, state):
        if not line.range.is_current or line.bang:
            raise Expected("let without range or bang")
        target, op, expr = split_assignment(line.params)
        value = self.evaluator.eval(expr, state)
        if op:
            value = _COMPOUND[op](self._read_target(target, state), value)
        self._assign(target, value, state)

    def _read_target(self, target: str, state) -> Any:
        m = _ITEM_TARGET.match(target)
        if m:
            return index(self.lookup(m.group(1)), self.evaluator.eval(m.group(2), state))
        return self.lookup(target)

    def _assign(self, target: str, value: Any, state):
        if target.startswith(("[", "{")):
            bind_pattern(parse_pattern(target), value, self.variables.insert)
            return
        m = _ITEM_TARGET.match(target)
        if m:
            container = self.lookup(m.group(1))
            set_item(container, self.evaluator.eval(m.group(2), state), value)
            return
        if not _NAME.fullmatch(target):
            raise Expected(f"variable name, got {target!r}")
        self.variables.insert(target, value)

    def _run_nested(self, line: Line, state):
        nested = Line.parse(line.params, line.lineno)
        if nested is not None:
            self._run_inner(LineReplay([nested]), Section.SCRIPT, RunTy.NOW, state)

    def _silent(self, line: Line, state):
        self.silence_depth += 1
        state.set_silent(True)
        try:
            self._run_nested(line, state)
        except VimError as err:
            if not line.bang or is_control_fault(err):
                raise
            self._dbg("SILENT! swallowed", type(err).__name__, err)
        finally:
            self.silence_depth -= 1
            state.set_silent(self.silence_depth > 0)

    def _unsilent(self, line: Line, state):
        saved, self.silence_depth = self.silence_depth, 0
        state.set_silent(False)
        try:
            self._run_nested(line, state)
        finally:
            self.silence_depth = saved
            state.set_silent(saved > 0)

    def _execute(self, line: Line, state):
        self.execute_text(self.evaluator.eval(line.params, state), state)

    def execute_text(self, value: Any, state):
        """Runs a String, or a List of lines, in the current script.

        Unlike `run`, a `finish` here stops the enclosing script as well.
        """
        text = "\n".join(to_string(v) for v in value) if isinstance(value, list) else to_string(value)
        with self._entry():
            self._run_inner(Tokenizer(text), Section.SCRIPT, RunTy.NOW, state)
