import math

import pytest

from quill.quill_runtime import ScriptRunner
from quill.quill_datatypes import ScriptTypeError, ScriptRangeError


def run(src):
    return ScriptRunner().eval(src)


@pytest.mark.parametrize(
    "src,expected",
    [
        ("Array.create()", []),
        ("Array.create(3)", [None, None, None]),
        ("Array.create(2, 0)", [0, 0]),
        ("Array.of(1, 'a')", [1, "a"]),
        ("Array.of()", []),
        ("Array.sizeOf([1, 2, 3])", 3),
        ("a = [1, 2]; b = Array.clone(a); Array.push(b, 3); [a, b]", [[1, 2], [1, 2, 3]]),
        ("a = [1, 2, 3]; Array.set(a, -1, 9); a", [1, 2, 9]),
        ("a = [1]; Array.push(a, 2, 3); a", [1, 2, 3]),
        ("a = [3]; Array.unshift(a, 1, 2); a", [2, 1, 3]),
        ("a = [1, 2]; [Array.pop(a), a]", [2, [1]]),
        ("a = [1, 2]; [Array.shift(a), a]", [1, [2]]),
        ("Array.pop([])", None),
        ("Array.shift([])", None),
        ("a = [1, 4]; Array.insert(a, 1, 2, 3); a", [1, 2, 3, 4]),
        ("a = [1]; Array.insert(a, 1, 2); a", [1, 2]),
        ("a = [1, 2, 3, 4]; Array.remove(a, 1); a", [1, 3, 4]),
        ("a = [1, 2, 3, 4]; Array.remove(a, 1, 2); a", [1, 4]),
        ("a = [1, 2, 3, 4]; Array.remove(a, -3, infinity); a", [1]),
        ("a = [1, 2]; Array.clear(a); a", []),
    ],
)
def test_array_basics(src, expected):
    assert run(src) == expected


@pytest.mark.parametrize(
    "src,expected",
    [
        ("Array.slice([0, 1, 2, 3])", [0, 1, 2, 3]),
        ("Array.slice([0, 1, 2, 3], 1)", [1, 2, 3]),
        ("Array.slice([0, 1, 2, 3], 1, 3)", [1, 2]),
        ("Array.slice([0, 1, 2, 3], -2)", [2, 3]),
        ("Array.slice([0, 1, 2, 3], 1, -1)", [1, 2]),
        ("Array.slice([0, 1, 2, 3], 3, 1)", []),
        ("Array.slice([0, 1, 2, 3], -10, 10)", [0, 1, 2, 3]),
    ],
)
def test_array_slice(src, expected):
    assert run(src) == expected


def test_slice_returns_a_copy():
    assert run("a = [1, 2]; b = Array.slice(a); Array.push(b, 3); a") == [1, 2]


@pytest.mark.parametrize(
    "src,expected",
    [
        ("Array.flat([1, [2, [3, [4]]]])", [1, 2, [3, [4]]]),
        ("Array.flat([1, [2, [3, [4]]]], 2)", [1, 2, 3, [4]]),
        ("Array.flat([1, [2, [3, [4]]]], infinity)", [1, 2, 3, 4]),
    ],
)
def test_array_flat(src, expected):
    assert run(src) == expected


def test_array_unpack():
    assert run("Array.unpack([1, 2], ['a', 'b']); a + b") == 3
    assert run("Array.unpack([1], ['a', 'b'], true); b") is None
    with pytest.raises(ScriptRangeError):
        run("Array.unpack([1], ['a', 'b'])")
    with pytest.raises(ScriptTypeError):
        run("Array.unpack([1], [1])")


@pytest.mark.parametrize(
    "src,expected",
    [
        ("Array.indexOf([1, 2, 1], 1)", 0),
        ("Array.lastIndexOf([1, 2, 1], 1)", 2),
        ("Array.indexOf([1, 2], 3)", -1),
        ("Array.indexOf(['1'], 1)", -1),
        ("Array.indexOf([NaN], NaN)", -1),
        ("Array.includes([NaN], NaN)", True),
        ("Array.includes([1, 'a'], 'a')", True),
        ("Array.includes([1], '1')", False),
    ],
)
def test_array_search(src, expected):
    assert run(src) == expected


def test_array_sort():
    assert run("Array.sort([3, 1, 2])") == [1, 2, 3]
    assert run("Array.sort(['b', 'a'])") == ["a", "b"]
    assert run("Array.sort([1, 3, 2], @(a, b) { b - a })") == [3, 2, 1]
    assert run("a = [2, 1]; Array.sort(a); a") == [1, 2]


@pytest.mark.parametrize(
    "src",
    [
        "Array.sort([1, 'a'])",
        "Array.sort([[1], [2]])",
        "Array.sort([1, 2], @(a, b) { true })",
    ],
)
def test_array_sort_errors(src):
    with pytest.raises(ScriptTypeError):
        run(src)


def test_array_iteration():
    assert run("Array.map([1, 2, 3], @(x, i) { x * 10 + i })") == [10, 21, 32]
    assert run("Array.map([1, 2], @(x) { x * 2 })") == [2, 4]
    assert run("Array.filter([1, 2, 3, 4], @(x) { x > 2 })") == [3, 4]
    assert run("sum = 0; Array.forEach([1, 2, 3], @(x) { sum = sum + x }); sum") == 6
    assert run("Array.map([1, 2], @(x, i, arr) { Array.sizeOf(arr) })") == [2, 2]


def test_array_iteration_with_native_callback():
    assert run("Array.map([1, 2], string)") == ["1", "2"]


def test_filter_callback_must_return_boolean():
    with pytest.raises(ScriptTypeError):
        run("Array.filter([1], @(x) { x })")


@pytest.mark.parametrize(
    "src,error",
    [
        ("Array.create(-1)", ScriptRangeError),
        ("Array.create('a')", ScriptTypeError),
        ("Array.set([1], 1, 0)", ScriptRangeError),
        ("Array.set([1], 0.5, 0)", ScriptRangeError),
        ("Array.insert([1], 2, 0)", ScriptRangeError),
        ("Array.remove([1], 0, -1)", ScriptRangeError),
        ("Array.flat([1], 0)", ScriptRangeError),
        ("Array.push('a', 1)", ScriptTypeError),
        ("Array.push([])", ScriptTypeError),
        ("Array.map([1], 1)", ScriptTypeError),
    ],
)
def test_array_errors(src, error):
    with pytest.raises(error):
        run(src)


def test_numbers_returned_by_natives_are_floats():
    size = run("Array.sizeOf([1])")
    assert isinstance(size, float)
    assert not math.isnan(size)
