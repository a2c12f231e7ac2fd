import math

import pytest

from vimscript.vim_errors import CyclicReference, Expected, ExpectedType, VariableUndefined
from vimscript.vim_interpreter import VimScriptCtx
from vimscript.vim_runtime import RecordingState


@pytest.fixture
def vim():
    ctx = VimScriptCtx()
    state = RecordingState()

    class Vim:
        def eval(self, expr):
            return ctx.eval(expr, state)

        def run(self, script):
            ctx.run(script, state)

    v = Vim()
    v.ctx = ctx
    v.state = state
    return v


@pytest.mark.parametrize("expr, expected", [
    ("char2nr('A')", 65),
    ("nr2char(66)", "B"),
    ("tolower('AbC')", "abc"),
    ("toupper('ab')", "AB"),
    ("strlen('héllo')", 6),
    ("strchars('héllo')", 5),
    ("stridx('hello', 'll')", 2),
    ("stridx('hello', 'z')", -1),
    ("str2nr('0x1F', 16)", 31),
    ("str2nr('42abc')", 42),
    ("str2nr('-7')", -7),
    ("str2float('1.5e1x')", 15.0),
    ("repeat('ab', 3)", "ababab"),
    ("trim('  x  ')", "x"),
    ("split('a,b,,c', ',')", ["a", "b", "c"]),
    ("split(' a  b ')", ["a", "b"]),
    ("join(['a', 1], '-')", "a-1"),
    ("string([1, 'a'])", "[1, 'a']"),
])
def test_string_functions(vim, expr, expected):
    assert vim.eval(expr) == expected


@pytest.mark.parametrize("expr, expected", [
    ("get([1, 2], 5, 'd')", "d"),
    ("get([1, 2], -1)", 2),
    ("get({'a': 1}, 'a')", 1),
    ("len({'a': 1})", 1),
    ("len('abc')", 3),
    ("empty([])", True),
    ("empty('x')", False),
    ("sort([3, 1, 2])", [1, 2, 3]),
    ("sort(['b', 2, 'a', 1])", [1, 2, "a", "b"]),
    ("reverse([1, 2])", [2, 1]),
    ("uniq([1, 1, 2, 1])", [1, 2, 1]),
    ("range(3)", [0, 1, 2]),
    ("range(2, 4)", [2, 3, 4]),
    ("range(4, 0, -2)", [4, 2, 0]),
    ("index([1, 2, 3], 2)", 1),
    ("index([1, 2, 3], 9)", -1),
    ("count([1, 2, 1], 1)", 2),
    ("max([3, 7, 2])", 7),
    ("min([3, 7, 2])", 2),
    ("flatten([1, [2, [3]]])", [1, 2, 3]),
    ("flatten([1, [2, [3]]], 1)", [1, 2, [3]]),
    ("has_key({'a': 1}, 'a')", True),
    ("keys({'a': 1, 'b': 2})", ["a", "b"]),
    ("values({'a': 1, 'b': 2})", [1, 2]),
    ("items({'a': 1})", [["a", 1]]),
    ("map([1, 2, 3], 'v:val * 2')", [2, 4, 6]),
    ("filter([1, 2, 3, 4], 'v:val % 2 == 0')", [2, 4]),
    ("map({'a': 1}, 'v:key . v:val')", {"a": "a1"}),
])
def test_container_functions(vim, expr, expected):
    assert vim.eval(expr) == expected


@pytest.mark.parametrize("expr, expected", [
    ("float2nr(3.7)", 3),
    ("abs(-2.5)", 2.5),
    ("round(2.5)", 3.0),
    ("round(-2.5)", -3.0),
    ("ceil(1.2)", 2.0),
    ("floor(-1.2)", -2.0),
    ("trunc(-1.7)", -1.0),
    ("fmod(7.0, 2.0)", 1.0),
    ("pow(2, 3)", 8.0),
    ("exp(0)", 1.0),
    ("log10(100)", 2.0),
    ("and(12, 10)", 8),
    ("or(12, 10)", 14),
    ("xor(12, 10)", 6),
    ("invert(0)", -1),
])
def test_numeric_functions(vim, expr, expected):
    assert vim.eval(expr) == expected


def test_float_edge_cases(vim):
    assert vim.eval("log(0)") == -math.inf
    assert vim.eval("atan2(1, 1)") == pytest.approx(math.pi / 4)
    assert vim.eval("sin(0)") == 0.0


@pytest.mark.parametrize("expr, expected", [
    ("type(1)", 0),
    ("type('a')", 1),
    ("type([])", 3),
    ("type({})", 4),
    ("type(1.0)", 5),
    ("type(v:true)", 6),
    ("type(v:null)", 7),
    ("type(function('len'))", 2),
])
def test_type_codes(vim, expr, expected):
    assert vim.eval(expr) == expected


def test_container_mutation_in_place(vim):
    vim.run("let g:l = [1, 2, 3] | let g:x = remove(g:l, 0)")
    assert vim.eval("g:x") == 1
    assert vim.eval("g:l") == [2, 3]
    vim.run("call insert(g:l, 0) | call extend(g:l, [4, 5])")
    assert vim.eval("g:l") == [0, 2, 3, 4, 5]
    vim.run("let g:d = {'a': 1} | call remove(g:d, 'a')")
    assert vim.eval("g:d") == {}


def test_extend_rejects_self(vim):
    vim.run("let g:l = [1]")
    with pytest.raises(CyclicReference):
        vim.eval("extend(g:l, [g:l])")


def test_copy_is_shallow(vim):
    vim.run("let g:a = [[1]] | let g:b = copy(g:a) | call add(g:b[0], 2)")
    assert vim.eval("g:a") == [[1, 2]]


def test_exists(vim):
    assert vim.eval("exists('g:nope')") is False
    vim.run("let g:nope = 1")
    assert vim.eval("exists('g:nope')") is True
    assert vim.eval("exists('*len')") is True
    assert vim.eval("exists('*Missing')") is False


def test_eval_and_exec(vim):
    assert vim.eval("eval('1 + 2')") == 3
    assert vim.eval("exec('let g:z = 9')") is None
    assert vim.eval("g:z") == 9
    vim.eval("execute('let g:z = 10')")
    assert vim.eval("g:z") == 10


def test_json_functions(vim):
    assert vim.eval("json_encode({'a': [1, v:null, v:true]})") == '{"a":[1,null,true]}'
    assert vim.eval("""json_decode('{"a": [1, null]}')""") == {"a": [1, None]}


def test_assertions_record_errors(vim):
    assert vim.eval("assert_equal(1, 1)") == 0
    assert vim.eval("assert_equal(1, 2)") == 1
    assert vim.eval("assert_notequal(1, 2)") == 0
    assert vim.eval("assert_true(v:true)") == 0
    assert vim.eval("assert_false(1, 'custom')") == 1
    errors = vim.eval("v:errors")
    assert len(errors) == 2
    assert errors[0] == "Expected 1 but got 2"
    assert errors[1] == "custom"


def test_sort_with_function(vim):
    vim.run("function! Desc(a, b) | return b - a | endfunction")
    assert vim.eval("sort([1, 3, 2], 'Desc')") == [3, 2, 1]
    assert vim.eval("sort([1, 3, 2], function('Desc'))") == [3, 2, 1]


def test_call_builtin(vim):
    vim.run("function! Add(a, b) | return a + b | endfunction")
    assert vim.eval("call('Add', [1, 2])") == 3


def test_echo_formats_values(vim):
    vim.run("echo [1, 2] | echo 'a' . 1 | echo")
    assert vim.state.output == ["[1, 2]", "a1", ""]


def test_unlet(vim):
    vim.run("let g:u = 1 | unlet g:u")
    assert vim.eval("exists('g:u')") is False
    with pytest.raises(VariableUndefined):
        vim.run("unlet g:nope")
    vim.run("unlet! g:nope")
    with pytest.raises(Expected):
        vim.run("unlet")


def test_version_variable(vim):
    assert vim.eval("v:version") >= 900


@pytest.mark.parametrize("expr", [
    "nr2char(-1)",
    "nr2char(0x110000)",
    "nr2char(0xD800)",
    "str2nr('12', 37)",
    "str2nr('12', 1)",
])
def test_invalid_arguments_raise_typed_errors(vim, expr):
    with pytest.raises(ExpectedType):
        vim.eval(expr)


@pytest.mark.parametrize("expr, expected", [
    ("exp(1000)", math.inf),
    ("pow(10, 400)", math.inf),
    ("pow(-10, 401)", -math.inf),
    ("sinh(-1000)", -math.inf),
    ("cosh(1000)", math.inf),
    ("ceil(exp(1000))", math.inf),
    ("round(-exp(1000))", -math.inf),
    ("float2nr(exp(1000)) > 0", True),
    (f"{10 ** 400} + 1.0", math.inf),
    (f"-{10 ** 400} * 1.5", -math.inf),
])
def test_float_overflow_saturates(vim, expr, expected):
    assert vim.eval(expr) == expected


@pytest.mark.parametrize("expr", [
    "fmod(1.0, 0.0)",
    "sin(exp(1000))",
    "exp(1000) % 2.0",
    "floor(sqrt(-1))",
])
def test_float_domain_errors_give_nan(vim, expr):
    assert math.isnan(vim.eval(expr))


def test_execute_builtin_accepts_a_list_of_lines(vim):
    vim.eval("execute(['let g:a = 1', 'let g:b = g:a + 1'])")
    assert vim.eval("g:b") == 2
