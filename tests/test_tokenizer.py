import pytest

from vimscript.vim_tokenizer import CmdRange, Line, LineReplay, Tokenizer


def parse(text: str) -> Line:
    line = Line.parse(text)
    assert line is not None, f"{text!r} parsed to nothing"
    return line


def commands(source) -> list:
    return [line.command for line in source]


@pytest.mark.parametrize("text, expected", [
    ("Test", CmdRange.current_line()),
    ("3Test", CmdRange.line(3)),
    ("1,Test", CmdRange.range_from(1)),
    (",1Test", CmdRange.range_to(1)),
    ("1,4Test", CmdRange.range(1, 4)),
    (",Test", CmdRange.whole()),
    ("%Test", CmdRange.whole()),
    ("/smth/Test", CmdRange.select("smth")),
    ("/smt\\/h/Test", CmdRange.select("smt\\/h")),
])
def test_range_prefix(text, expected):
    line = parse(text)
    assert line.range == expected
    assert line.command == "Test"


def test_bang_without_args():
    line = parse("Test!")
    assert line.bang is True
    assert line.params == ""


def test_bang_with_args():
    line = parse("Test! some cmd")
    assert line.bang is True
    assert line.params == "some cmd"


def test_plain_args_have_no_bang():
    line = parse("echo 'x'")
    assert line.bang is False
    assert line.command == "echo"
    assert line.params == "'x'"


def test_leading_colon_is_ignored():
    assert parse(":let x = 1").command == "let"


def test_blank_and_comment_lines_parse_to_nothing():
    assert Line.parse("   ") is None
    assert Line.parse('" just a comment') is None


def test_line_equality_ignores_line_number():
    assert Line.parse("Test", 1) == Line.parse("Test", 7)


def test_line_str_round_trips_the_statement():
    assert str(parse("1,4Test! x")) == "1,4Test! x"
    assert str(parse("%Test")) == "%Test"


def test_tokenizer_splits_on_bar_and_newline():
    src = "let a = 1 | echo a\nTest!"
    lines = list(Tokenizer(src))
    assert [l.command for l in lines] == ["let", "echo", "Test"]
    assert [l.lineno for l in lines] == [1, 1, 2]


def test_comment_line_keeps_bars():
    src = 'Test\n" note | not a command\nTest'
    lines = list(Tokenizer(src))
    assert [l.command for l in lines] == ["Test", "Test"]
    assert [l.lineno for l in lines] == [1, 3]


def test_backslash_continues_a_line():
    src = "let a = 1 + \\\n 2\nTest"
    lines = list(Tokenizer(src))
    assert lines[0].command == "let"
    assert lines[0].params.split() == ["a", "=", "1", "+", "2"]
    assert lines[1].lineno == 3


def test_tokenizer_clone_restarts_from_current_position():
    tok = Tokenizer("a | b | c")
    assert next(tok).command == "a"
    clone = tok.clone()
    assert commands(clone) == ["b", "c"]
    # a clone does not advance its source
    assert commands(tok) == ["b", "c"]


def test_replay_clone():
    lines = list(Tokenizer("a|b|c"))
    replay = LineReplay(lines)
    next(replay)
    clone = replay.clone()
    assert commands(clone) == ["b", "c"]
    assert next(replay).command == "b"
