from vimscript.vim_errors import VimError
from vimscript.vim_interpreter import BuiltinFunction, Command, VimScriptCtx
from vimscript.vim_runtime import (
    ExecutionResult, RecordingState, RunnerConfig, ScriptRunner, State, load_config,
)
from vimscript.vim_tokenizer import CmdRange, Line

__all__ = [
    "BuiltinFunction",
    "CmdRange",
    "Command",
    "ExecutionResult",
    "Line",
    "RecordingState",
    "RunnerConfig",
    "ScriptRunner",
    "State",
    "VimError",
    "VimScriptCtx",
    "load_config",
]
