import math

import pytest

from quill.quill_runtime import ScriptRunner
from quill.quill_datatypes import ScriptTypeError, ScriptRangeError, ScriptReferenceError


def run(src):
    return ScriptRunner().eval(src)


# --- Conversion ---

@pytest.mark.parametrize(
    "src,expected",
    [
        ("number(true)", 1),
        ("number(false)", 0),
        ("number(null)", 0),
        ("number('201')", 201),
        ("number(' 2.5 ')", 2.5),
        ("number('')", 0),
        ("number('1e3')", 1000),
        ("number('0x1F')", 31),
        ("number('0b101')", 5),
        ("number('-Infinity')", -math.inf),
        ("number(42)", 42),
    ],
)
def test_number_conversion(src, expected):
    assert run(src) == expected


@pytest.mark.parametrize("src", ["number('abc')", "number([])", "number({})", "number(number)", "number('0xZZ')"])
def test_number_conversion_to_nan(src):
    assert math.isnan(run(src))


@pytest.mark.parametrize(
    "src,expected",
    [
        ("string(1)", "1"),
        ("string(-2.5)", "-2.5"),
        ("string(NaN)", "NaN"),
        ("string(infinity)", "Infinity"),
        ("string(true)", "true"),
        ("string(null)", "null"),
        ("string('hi')", "'hi'"),
        ("string(\"it's\")", "\"it's\""),
        ("string([1, 'a', [2]])", "(size: 3) [1, 'a', <array>]"),
        ("string({#a: 1})", "<dict>"),
        ("string(print)", "<function>"),
    ],
)
def test_string_conversion(src, expected):
    assert run(src) == expected


@pytest.mark.parametrize(
    "src,expected",
    [
        ("boolean(0)", False),
        ("boolean(NaN)", False),
        ("boolean('')", False),
        ("boolean(null)", False),
        ("boolean(1)", True),
        ("boolean('a')", True),
        ("boolean([])", True),
        ("boolean({})", True),
    ],
)
def test_boolean_conversion(src, expected):
    assert run(src) is expected


@pytest.mark.parametrize(
    "src,expected",
    [
        ("typeOf(1)", "number"),
        ("typeOf('a')", "string"),
        ("typeOf(true)", "boolean"),
        ("typeOf(null)", "null"),
        ("typeOf([])", "array"),
        ("typeOf({})", "dict"),
        ("typeOf(print)", "function"),
        ("typeOf(@() { 1 })", "function"),
    ],
)
def test_type_of(src, expected):
    assert run(src) == expected


# --- Reflection ---

def test_dir_lists_dict_keys():
    assert run("dir({#foo: 1, #baz: 2})") == ["foo", "baz"]


def test_dir_without_argument_lists_visible_names():
    names = run("mine = 1; dir()")
    assert names[0] == "mine"
    assert "print" in names and "Array" in names


def test_set_get_exist():
    assert run("set('x', 666); 'x' $str; set('_', get); _(str)") == 666
    assert run("exist('print')") is True
    assert run("exist('nothing')") is False
    with pytest.raises(ScriptReferenceError):
        run("get('nothing')")
    with pytest.raises(ScriptTypeError):
        run("get(1)")


def test_set_assigns_to_the_enclosing_binding():
    assert run("x = 1; @f() { set('x', 2) }; f(); x") == 2


# --- Output ---

def test_print_records_side_effects():
    runner = ScriptRunner()
    result = runner.handle_script("print('a', 1, [true]); print()")
    assert result.status == "success"
    assert result.value is None
    assert result.side_effects == [
        {"topics": ["stdout"], "message": "a 1 (size: 1) [true]"},
        {"topics": ["stdout"], "message": ""},
    ]


def test_side_effects_reset_between_runs():
    runner = ScriptRunner()
    runner.handle_script("print(1)")
    assert runner.handle_script("2").side_effects == []


# --- Control flow ---

def test_if_runs_the_block_only_when_true():
    assert run("x = 0; if(true) { x = 1 }; x") == 1
    assert run("x = 0; if(false) { x = 1 }; x") == 0
    assert run("if(true) { 5 }") == 5
    assert run("if(false) { 5 }") is None


def test_if_accepts_a_function_value():
    assert run("if(1 < 2)(@() { 'yes' })") == "yes"


def test_if_condition_must_be_boolean():
    with pytest.raises(ScriptTypeError):
        run("if(1) { 2 }")


def test_if_else():
    assert run("ifElse(true, @() { 'a' }, @() { 'b' })") == "a"
    assert run("ifElse(false, @() { 'a' }, @() { 'b' })") == "b"
    with pytest.raises(ScriptTypeError):
        run("ifElse(null, @() { 'a' }, @() { 'b' })")
    with pytest.raises(ScriptTypeError):
        run("ifElse(true, 1, 2)")


def test_while_loop():
    src = "i = 0; sum = 0; while { i < 5 } { sum = sum + i; i = i + 1 }; sum"
    assert run(src) == 10


def test_while_loop_never_entered():
    assert run("n = 0; while { false } { n = 1 }; n") == 0


def test_while_condition_must_return_boolean():
    with pytest.raises(ScriptTypeError):
        run("while { 1 } { 2 }")


def test_while_iteration_cap(monkeypatch):
    monkeypatch.setenv("QUILL_MAX_LOOP_ITERS", "100")
    with pytest.raises(ScriptRangeError) as e:
        run("while { true } { 1 }")
    assert "100 iterations" in e.value.message

