import builtins

import pytest

import vimscript_cli


def _feed(monkeypatch, lines):
    it = iter(lines)

    def fake_input(prompt: str) -> str:
        try:
            return next(it)
        except StopIteration:
            raise EOFError
    monkeypatch.setattr(builtins, "input", fake_input)


def test_repl_quit_immediately(monkeypatch, capsys):
    _feed(monkeypatch, ["quit"])
    vimscript_cli.repl()
    out = capsys.readouterr().out
    assert "vimscript REPL v0.1" in out


def test_repl_prints_side_effects_and_values(monkeypatch, capsys):
    _feed(monkeypatch, [
        "echo 'hello from vim'",
        "let g:n = 2",
        "=g:n + 1",
        "=[1, 'a']",
    ])
    vimscript_cli.repl()
    out, err = capsys.readouterr()
    assert "hello from vim" in out
    assert "\n3\n" in out
    assert "[1, 'a']" in out
    assert "Exiting." in out
    assert err == ""


def test_repl_errors_print_to_stderr(monkeypatch, capsys):
    _feed(monkeypatch, ["let g:x = nosuch", "=1"])
    vimscript_cli.repl()
    out, err = capsys.readouterr()
    assert "Error on line 1: VariableUndefined: nosuch" in err
    assert "\n1\n" in out


def test_run_script_file(tmp_path, capsys):
    script = tmp_path / "hello.vim"
    script.write_text("let s:greeting = 'hi'\necho s:greeting\n", encoding="utf-8")
    vimscript_cli.run_script_file(str(script))
    assert capsys.readouterr().out == "hi\n"


def test_run_script_file_failure_exits_nonzero(tmp_path, capsys):
    script = tmp_path / "bad.vim"
    script.write_text("echo 1\n\ncall Missing()\n", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        vimscript_cli.run_script_file(str(script))
    assert exc.value.code == 1
    out, err = capsys.readouterr()
    assert out == "1\n"
    assert "Error on line 3: FunctionUndefined: Missing" in err


def test_main_with_config(tmp_path, monkeypatch, capsys):
    config = tmp_path / "config.yaml"
    config.write_text("globals:\n  who: world\n", encoding="utf-8")
    script = tmp_path / "greet.vim"
    script.write_text("echo 'hello ' . g:who\n", encoding="utf-8")
    monkeypatch.setattr("sys.argv", ["vimscript", "-c", str(config), str(script)])
    vimscript_cli.main()
    assert capsys.readouterr().out == "hello world\n"
