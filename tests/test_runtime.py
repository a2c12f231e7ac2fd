import pytest

from vimscript import RecordingState, RunnerConfig, ScriptRunner, State, load_config
from vimscript.vim_errors import ExpectedType, VariableUndefined, VimIOError
from vimscript.vim_interpreter import DEFAULT_TIMEOUT, VimScriptCtx


def assert_ok(res, expected=None):
    assert res.status == 'success', res.error_message
    if expected is not None:
        assert res.value == expected


def assert_error(res, contains: str | None = None):
    assert res.status == 'error', f"expected error, got success: {res.value!r}"
    if contains is not None:
        assert contains in (res.error_message or ""), f"error did not contain {contains!r}: {res.error_message!r}"


def stdout(res):
    return [e['message'] for e in res.side_effects if e.get('topics') == ['stdout']]


def stderr(res):
    return [e['message'] for e in res.side_effects if e.get('topics') == ['stderr']]


def test_script_output_is_recorded_as_side_effects():
    res = ScriptRunner().handle_script("echo 'hi' | echo 1 + 1")
    assert_ok(res)
    assert stdout(res) == ["hi", "2"]


def test_side_effects_are_per_call():
    runner = ScriptRunner()
    runner.handle_script("echo 'first'")
    res = runner.handle_script("echo 'second'")
    assert stdout(res) == ["second"]


def test_expression_result():
    assert_ok(ScriptRunner().handle_expr("1 + 2"), 3)


def test_state_persists_between_calls():
    runner = ScriptRunner()
    assert_ok(runner.handle_script("let g:count = 41"))
    assert_ok(runner.handle_expr("g:count + 1"), 42)


def test_errors_carry_the_failing_line():
    res = ScriptRunner().handle_script("let g:a = 1\nlet g:b = nosuch")
    assert_error(res, "VariableUndefined: nosuch")
    assert res.error_token['line'] == 2
    assert res.format_error() == "Error on line 2: VariableUndefined: nosuch"
    assert stderr(res) == ["Error on line 2: VariableUndefined: nosuch"]


def test_structural_errors_are_reported():
    assert_error(ScriptRunner().handle_script("if 1"), "UnexpectedEof")
    assert_error(ScriptRunner().handle_script("endwhile"), "UnexpectedKeyword")
    assert_error(ScriptRunner().handle_expr("1 +"), "InvalidExpression")


def test_finish_is_success():
    res = ScriptRunner().handle_script("echo 'a' | finish | echo 'b'")
    assert_ok(res)
    assert stdout(res) == ["a"]


def test_timeout_is_reported():
    runner = ScriptRunner(RunnerConfig(timeout=0.1))
    assert_error(runner.handle_script("while 1 | endwhile"), "TimeOut")


def test_run_file(tmp_path):
    script = tmp_path / "plugin.vim"
    script.write_text("let s:x = 1\nlet g:seen = s:x\necho 'loaded'\n", encoding="utf-8")
    runner = ScriptRunner()
    res = runner.run_file(script)
    assert_ok(res)
    assert stdout(res) == ["loaded"]
    assert_ok(runner.handle_expr("g:seen"), 1)
    # s: belongs to the file; outside of it no script is active
    assert_error(runner.handle_expr("s:x"), "NamespaceNotDefined")


def test_run_missing_file(tmp_path):
    res = ScriptRunner().run_file(tmp_path / "missing.vim")
    assert_error(res, "IOError")
    assert res.error_token is None
    assert res.format_error().startswith("IOError")


def test_custom_state_receives_errors_through_echo():
    class EchoState(State):
        def __init__(self):
            self.lines = []

        def set_silent(self, silent):
            pass

        def echo(self, message):
            self.lines.append(message)

        def get_option(self, name):
            raise VariableUndefined(name)

    state = EchoState()
    res = ScriptRunner(state=state).handle_script("echo 1 | Nope")
    assert_error(res, "CommandUndefined: Nope")
    assert state.lines == ["1", "Error on line 1: CommandUndefined: Nope"]
    assert res.side_effects == []


def test_recording_state_options():
    state = RecordingState({"tabstop": 8})
    assert state.get_option("tabstop") == 8
    with pytest.raises(VariableUndefined):
        state.get_option("shiftwidth")


# --- Configuration ---

def test_load_config(tmp_path):
    path = tmp_path / "vimscript.yaml"
    path.write_text("timeout: 2\noptions:\n  tabstop: 4\nglobals:\n  name: vim\ndebug: false\n",
                    encoding="utf-8")
    config = load_config(path)
    assert config.timeout == 2.0
    assert config.options == {"tabstop": 4}
    assert config.globals == {"name": "vim"}
    assert config.debug is False

    runner = ScriptRunner.from_config(path)
    assert runner.ctx.timeout == 2.0
    assert_ok(runner.handle_expr("&tabstop"), 4)
    assert_ok(runner.handle_expr("g:name"), "vim")


def test_empty_config_uses_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    config = load_config(path)
    assert config.options == {}
    assert config.globals == {}


def test_config_errors(tmp_path):
    with pytest.raises(VimIOError):
        load_config(tmp_path / "missing.yaml")
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ExpectedType):
        load_config(path)


def test_timeout_env_override(monkeypatch):
    monkeypatch.setenv("VIMSCRIPT_TIMEOUT", "1.5")
    assert RunnerConfig().timeout == 1.5
    assert VimScriptCtx().timeout == 1.5
    monkeypatch.setenv("VIMSCRIPT_TIMEOUT", "soon")
    assert VimScriptCtx().timeout == DEFAULT_TIMEOUT


def test_debug_tracing_goes_to_stderr(capsys):
    runner = ScriptRunner(RunnerConfig(debug=True))
    assert_ok(runner.handle_script("let g:x = 1"))
    err = capsys.readouterr().err
    assert "[DBG]" in err
    assert "let g:x = 1" in err


# --- Faults never escape the runner ---

@pytest.mark.parametrize("expr, error", [
    ("nr2char(-1)", "ExpectedType"),
    ("str2nr('12', 37)", "ExpectedType"),
    ("1 / 0", "DivisionByZero"),
])
def test_builtin_faults_become_error_results(expr, error):
    assert_error(ScriptRunner().handle_expr(expr), error)


def test_overflow_is_a_value_not_a_crash():
    assert_ok(ScriptRunner().handle_expr("exp(1000)"), float("inf"))


def test_runaway_recursion_is_reported():
    runner = ScriptRunner()
    res = runner.handle_script("function! F() | call F() | endfunction | call F()")
    assert_error(res, "CallDepthExceeded")
    assert_ok(runner.handle_expr("1 + 1"), 2)


def test_host_exceptions_are_internal_errors():
    runner = ScriptRunner()

    def explode():
        raise RuntimeError("boom")
    runner.ctx.builtin("explode", explode)
    assert_error(runner.handle_expr("explode()"), "InternalError: boom")


def test_finish_inside_an_expression_is_success():
    runner = ScriptRunner()
    assert_ok(runner.handle_expr("execute('finish')"))
