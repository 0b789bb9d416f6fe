import math

import pytest

from quill.quill_printer import Printer, format_number
from quill.quill_datatypes import NO_VALUE, NativeFunction, ScriptFunction, Store


@pytest.fixture
def printer():
    return Printer()


# Test cases: (id, object, expected_string)
FORMAT_TEST_CASES = [
    ("str", "hello", "'hello'"),
    ("str_with_single_quote", "it's", '"it\'s"'),
    ("str_with_both_quotes", "a'b\"c", "'a'b\"c'"),
    ("int_float", 123.0, "123"),
    ("float", -1.5, "-1.5"),
    ("bool_true", True, "true"),
    ("bool_false", False, "false"),
    ("null", None, "null"),
    ("undefined", NO_VALUE, "undefined"),
    ("nan", math.nan, "NaN"),
    ("inf", math.inf, "Infinity"),
    ("neg_inf", -math.inf, "-Infinity"),
    ("empty_array", [], "(size: 0) []"),
    ("array", [1.0, "a", None], "(size: 3) [1, 'a', null]"),
    ("nested_array", [[1.0], {"a": 1.0}], "(size: 2) [<array>, <dict>]"),
    ("dict", {"a": 1.0}, "<dict>"),
    ("native", NativeFunction(lambda a, r, c: None, 0), "<function>"),
    ("script_fn", ScriptFunction(["x"], [], Store(), "<script>"), "<function>"),
]


@pytest.mark.parametrize("case_id, obj, expected", FORMAT_TEST_CASES, ids=[c[0] for c in FORMAT_TEST_CASES])
def test_pformat(printer, case_id, obj, expected):
    assert printer.pformat(obj) == expected


def test_to_text_writes_strings_raw(printer):
    assert printer.to_text("hello") == "hello"
    assert printer.to_text(2.0) == "2"
    assert printer.to_text(["x"]) == "(size: 1) ['x']"


@pytest.mark.parametrize(
    "value,expected",
    [
        (0.0, "0"),
        (-0.0, "0"),
        (0.1, "0.1"),
        (1e21, "1e+21"),
        (1e20, "100000000000000000000"),
        (1.5e-7, "1.5e-07"),
    ],
)
def test_format_number(value, expected):
    assert format_number(value) == expected
