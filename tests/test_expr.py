import math

import pytest

from vimscript.vim_errors import (
    DivisionByZero, ExpectedType, FunctionUndefined, InvalidExpression, NamespaceNotDefined,
    UnexpectedSymbol, UnknownNamespace, UnterminatedString, VariableUndefined, WrongArgCount,
)
from vimscript.vim_interpreter import VimScriptCtx
from vimscript.vim_runtime import RecordingState


def ev(expr: str, ctx: VimScriptCtx | None = None, state=None):
    ctx = ctx or VimScriptCtx()
    return ctx.eval(expr, state or RecordingState())


def assert_int(value, expected):
    assert type(value) is int, f"expected Integer, got {value!r}"
    assert value == expected


# --- Literals ---

@pytest.mark.parametrize("text, expected", [
    ("0", 0),
    ("09", 9),
    ("077", 77),
    ("0xD", 13),
    ("0o77", 63),
    ("0b101", 5),
])
def test_integer_literals(text, expected):
    assert_int(ev(text), expected)


def test_float_literals():
    assert ev("1.5") == 1.5
    assert ev("1.5e2") == 150.0


def test_string_literals():
    assert ev("'it''s'") == "it's"
    assert ev('"a\\tb"') == "a\tb"
    assert ev("'a\\nb'") == "a\\nb"


# --- Arithmetic ---

def test_integer_arithmetic_stays_integer():
    assert_int(ev("1 + 1"), 2)
    assert_int(ev("7 / 2"), 3)
    assert_int(ev("-7 / 2"), -3)
    assert_int(ev("-7 % 2"), -1)


def test_float_operand_promotes_to_number():
    value = ev("1.0 + 1")
    assert type(value) is float
    assert value == 2.0
    assert ev("3 * 0.5") == 1.5


def test_precedence_and_grouping():
    assert ev("1 + 2 * 3") == 7
    assert ev("(1 + 2) * 3") == 9
    assert ev("1 + 2 * (3 + 4)") == 15
    assert ev("10 - 2 - 3") == 5
    assert ev("2 * -3") == -6


def test_unary_operators():
    assert ev("-1") == -1
    assert ev("!0") is True
    assert ev("!1") is False
    assert ev("!v:true") is False
    assert ev("!!'x'") is True


def test_division_by_zero():
    with pytest.raises(DivisionByZero):
        ev("1 / 0")
    with pytest.raises(DivisionByZero):
        ev("1.0 / 0")


def test_string_arithmetic_is_a_type_error():
    with pytest.raises(ExpectedType):
        ev("'x' + 1")


# --- Concatenation and comparison ---

def test_concat_is_string_based():
    assert ev("'' . 1.1") == "1.1"
    assert ev("1 . ''") == "1"
    assert ev("'a' .. 'b'") == "ab"
    assert ev("'n=' . 1 + 2") == "n=3"


def test_comparisons():
    assert ev("1 <= 1") is True
    assert ev("2 > 1") is True
    assert ev("'a' < 'b'") is True
    assert ev("'a' == 'a'") is True
    assert ev("1 != 2") is True


def test_cross_type_comparison_is_false_not_an_error():
    assert ev("1 < 'a'") is False
    assert ev("'a' >= 1") is False
    assert ev("1 == '1'") is False


def test_structural_equality():
    assert ev("[1, 2] == [1, 2]") is True
    assert ev("{'a': [1]} == {'a': [1]}") is True
    assert ev("[1] == [2]") is False


# --- Containers and indexing ---

def test_indexing_global_list():
    ctx = VimScriptCtx()
    ctx.insert_var("g:a", [1])
    assert_int(ev("g:a[0]", ctx), 1)
    assert_int(ev("g:a[0] + 1", ctx), 2)
    assert ev("g:a[5]", ctx) is None


def test_indexing_literals():
    assert ev("[1, 2, 3][-1]") == 3
    assert ev("'abc'[1]") == "b"
    assert ev("{'a': 1, 'b': [2]}['b'][0]") == 2
    assert ev("{'a': 1}['zz']") is None


def test_slices_are_inclusive():
    assert ev("[1, 2, 3][1:2]") == [2, 3]
    assert ev("'hello'[1:3]") == "ell"
    assert ev("[1, 2, 3][ : ]") == [1, 2, 3]


def test_nested_list_literals():
    assert ev("[1, [2, [3]]]") == [1, [2, [3]]]
    assert ev("[]") == []
    assert ev("{}") == {}


# --- Calls, variables and options ---

def test_builtin_calls():
    assert ev("len([1, 2, 3])") == 3
    assert ev("toupper('ab') . 'c'") == "ABc"
    assert ev("abs(-3)") == 3
    assert ev("max([1, 5, 3]) + 1") == 6


def test_option_reads_go_through_state():
    state = RecordingState({"tabstop": 4})
    assert ev("&tabstop * 2", state=state) == 8
    with pytest.raises(VariableUndefined):
        ev("&nosuch", state=state)


def test_builtin_variables():
    assert ev("v:true") is True
    assert ev("v:null") is None
    assert ev("v:t_list") == 3


def test_lookup_errors():
    with pytest.raises(VariableUndefined):
        ev("undefined_var")
    with pytest.raises(UnknownNamespace):
        ev("x:y")
    with pytest.raises(NamespaceNotDefined):
        ev("b:x")
    with pytest.raises(FunctionUndefined):
        ev("nosuch()")


def test_wrong_arg_count():
    with pytest.raises(WrongArgCount):
        ev("len(1, 2)")


# --- Malformed input ---

def test_unterminated_string():
    with pytest.raises(UnterminatedString):
        ev("'abc")


def test_unexpected_symbol():
    with pytest.raises(UnexpectedSymbol):
        ev("1 $ 2")


def test_dangling_operator_is_invalid():
    with pytest.raises(InvalidExpression):
        ev("1 +")
    with pytest.raises(InvalidExpression):
        ev("")


def test_math_results():
    assert math.isnan(ev("sqrt(-1)"))
    assert ev("sqrt(16)") == 4.0
