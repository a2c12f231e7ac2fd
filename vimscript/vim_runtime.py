"""
Host-facing runtime: the `State` boundary, configuration and `ScriptRunner`.

`VimScriptCtx.run` / `eval` raise on every fault. `ScriptRunner` wraps a
context for hosts that prefer a structured result: it never raises for a
script fault and returns an `ExecutionResult` instead.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from vimscript.vim_datatypes import kind_of
from vimscript.vim_errors import (
    Exit, ExpectedType, LookupFault, NamespaceError, StructuralError, TimeOut, ValueFault,
    VariableUndefined, VimIOError, WrongArgCount,
)
from vimscript.vim_interpreter import VimScriptCtx, default_timeout
from vimscript.vim_namespace import Scope
from vimscript.vim_serialize import deserialize


class State(ABC):
    """The capabilities a host exposes to scripts."""

    @abstractmethod
    def set_silent(self, silent: bool) -> None:
        raise NotImplementedError

    @abstractmethod
    def echo(self, message: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_option(self, name: str) -> Any:
        """Value of `&name`; raises a VimError when the option is unknown."""
        raise NotImplementedError

    def report_error(self, message: str) -> None:
        self.echo(message)


class RecordingState(State):
    """A State that records output as side-effect dicts instead of drawing it."""

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        self.options: Dict[str, Any] = dict(options or {})
        self.silent = False
        self.side_effects: List[Dict] = []

    def set_silent(self, silent: bool) -> None:
        self.silent = silent

    def echo(self, message: str) -> None:
        if self.silent:
            return
        self.side_effects.append({'topics': ['stdout'], 'message': str(message)})

    def get_option(self, name: str) -> Any:
        if name not in self.options:
            raise VariableUndefined(f"&{name}")
        return self.options[name]

    def report_error(self, message: str) -> None:
        self.side_effects.append({'topics': ['stderr'], 'message': str(message)})

    @property
    def output(self) -> List[str]:
        return [e['message'] for e in self.side_effects if e.get('topics') == ['stdout']]


# =================================================================
# Configuration
# =================================================================

@dataclass
class RunnerConfig:
    timeout: float = field(default_factory=default_timeout)
    options: Dict[str, Any] = field(default_factory=dict)
    globals: Dict[str, Any] = field(default_factory=dict)
    debug: bool = False


def load_config(path) -> RunnerConfig:
    """Reads a YAML runner configuration.

    Recognized keys: timeout, options, globals, debug. Missing keys keep
    their defaults.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise VimIOError(str(p), e.strerror or str(e)) from e
    data = deserialize(text, "yaml") or {}
    if not isinstance(data, dict):
        raise ExpectedType("Object", kind_of(data))
    config = RunnerConfig()
    if data.get("timeout") is not None:
        config.timeout = float(data["timeout"])
    for key in ("options", "globals"):
        section = data.get(key) or {}
        if not isinstance(section, dict):
            raise ExpectedType("Object", kind_of(section))
        setattr(config, key, section)
    config.debug = bool(data.get("debug", False))
    return config


# =================================================================
# Results and the runner
# =================================================================

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Dict] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with the line number if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line'):
            if not msg.startswith("Error on line "):
                return f"Error on line {self.error_token['line']}: {msg}"
        return msg


class ScriptRunner:
    """Runs script text against one long-lived context and host state."""

    def __init__(self, config: Optional[RunnerConfig] = None, state: Optional[State] = None):
        self.config = config or RunnerConfig()
        self.state = state if state is not None else RecordingState(self.config.options)
        self.ctx = VimScriptCtx(timeout=self.config.timeout)
        self.ctx.debug = self.config.debug
        for name, value in self.config.globals.items():
            self.ctx.insert_var(f"g:{name}", value)

    @classmethod
    def from_config(cls, path, state: Optional[State] = None) -> "ScriptRunner":
        return cls(load_config(path), state)

    def handle_script(self, source: str) -> ExecutionResult:
        mark = self._mark()
        try:
            self.ctx.run(source, self.state)
        except Exception as e:
            return self._error_result(e, mark)
        return ExecutionResult(status='success', side_effects=self._effects_since(mark))

    def handle_expr(self, expr: str) -> ExecutionResult:
        mark = self._mark()
        try:
            value = self.ctx.eval(expr, self.state)
        except Exit:
            value = None
        except Exception as e:
            return self._error_result(e, mark)
        return ExecutionResult(status='success', value=value, side_effects=self._effects_since(mark))

    def run_file(self, path) -> ExecutionResult:
        """Runs a script file with `s:` bound to that file."""
        p = Path(path)
        mark = self._mark()
        try:
            source = p.read_text(encoding="utf-8")
        except OSError as e:
            return self._error_result(VimIOError(str(p), e.strerror or str(e)), mark)
        previous = self.ctx.variables.active_id(Scope.SCRIPT)
        self.ctx.set_script(str(p.resolve()))
        try:
            return self.handle_script(source)
        finally:
            self.ctx.set_script(previous)

    # --- Helpers ---

    def _mark(self) -> int:
        effects = getattr(self.state, 'side_effects', None)
        return len(effects) if effects is not None else 0

    def _effects_since(self, mark: int) -> List[Dict]:
        effects = getattr(self.state, 'side_effects', None)
        return list(effects[mark:]) if effects is not None else []

    def _error_result(self, e: Exception, mark: int) -> ExecutionResult:
        err_msg, err_token = self._format_runtime_error(e)
        result = ExecutionResult(status='error', error_message=err_msg, error_token=err_token)
        self.state.report_error(result.format_error())
        result.side_effects = self._effects_since(mark)
        return result

    def _format_runtime_error(self, e: Exception) -> tuple[str, Optional[dict]]:
        match e:
            case VimIOError() as io:
                return f"IOError: {io.path}: {io.reason}", None
            case TimeOut() as t:
                msg = f"TimeOut: script exceeded {t.budget:g}s"
            case LookupFault() as lf:
                msg = f"{type(lf).__name__}: {lf.name}"
            case WrongArgCount():
                msg = f"WrongArgCount: {e}"
            case StructuralError() | NamespaceError() | ValueFault():
                msg = f"{type(e).__name__}: {e}"
            case _:
                msg = f"InternalError: {e}"

        token = None
        line = self.ctx.current_line
        if line is not None:
            token = {'line': line.lineno, 'text': str(line)}
        return msg, token
