import pytest

from quill.quill_parser import parse_source
from quill.quill_runtime import ScriptRunner
from quill.quill_datatypes import (
    ScriptError, ScriptTypeError, ScriptReferenceError, ScriptSyntaxError,
)


def stderr_messages(res):
    return [e['message'] for e in res.side_effects if e.get('topics') == ['stderr']]


def test_runtime_type_error_traces_and_stderr():
    runner = ScriptRunner()
    res = runner.handle_script("1 + 'a'")
    assert res.status == 'error'
    msg = res.error_message or ''

    assert msg.splitlines()[0] == (
        'TypeError: expect a number on the right of "+" (got string) (Ln 1, Col 5 @<script>)'
    )
    # Source context with a caret under the offending operand
    assert msg.splitlines()[1:3] == ["1 | 1 + 'a'", "        ^"]
    assert res.error_token == {'kind': 'TypeError', 'line': 1, 'col': 5, 'source': '<script>'}

    assert stderr_messages(res) == [msg]


def test_format_error_prefixes_the_location():
    res = ScriptRunner().handle_script("x = 1;\nundefinedName")
    assert res.status == 'error'
    assert res.format_error().startswith("<script>:2:1: ReferenceError:")


def test_format_error_is_empty_on_success():
    res = ScriptRunner().handle_script("1")
    assert res.status == 'success'
    assert res.format_error() == ""


def test_stacktrace_shows_function_chain():
    script = """
@boom(x) { x / 'zero' };
@callBoom(y) { boom(y) };
@outer(z) { callBoom(z) };
outer(5)
"""
    res = ScriptRunner().handle_script(script)
    assert res.status == 'error'
    msg = res.error_message or ''

    assert msg.startswith("TypeError:")
    assert "Quill stacktrace:" in msg
    trace = msg.split("Quill stacktrace:")[1]
    assert trace.index("(outer @5:6)") < trace.index("(callBoom @4:21)") < trace.index("(boom @3:20)")
    # Source context points into the failing body
    assert "2 | @boom(x) { x / 'zero' };" in msg


def test_call_stack_is_cleared_between_runs():
    runner = ScriptRunner()
    assert runner.handle_script("@f() { 1 + null }; f()").status == 'error'
    assert runner.evaluator.call_stack == []
    res = runner.handle_script("1 + null")
    assert "Quill stacktrace:" not in res.error_message


def test_parse_error_emits_stderr():
    res = ScriptRunner().handle_script("[1, 2")
    assert res.status == 'error'
    assert res.error_message.startswith("SyntaxError:")
    assert stderr_messages(res)


def test_max_depth_error_is_reported():
    runner = ScriptRunner(max_depth=16)
    res = runner.handle_script("@f() { f() }; f()")
    assert res.status == 'error'
    assert res.error_message.startswith("RangeError: maximum call depth exceeded")


def test_deeply_nested_parentheses_are_reported():
    depth = 3000
    src = "(" * depth + "1" + ")" * depth
    with pytest.raises(ScriptError):
        ScriptRunner().eval(src)
    res = ScriptRunner().handle_script(src)
    assert res.status == 'error'
    assert res.error_message.split(":")[0] in ("RangeError", "SyntaxError")


def test_repeated_failing_runs_leave_no_frames_behind():
    runner = ScriptRunner()
    nodes = parse_source("@f() { missing }; f()")
    for _ in range(70):
        with pytest.raises(ScriptReferenceError) as e:
            runner.run_nodes(nodes)
        assert runner.evaluator.call_stack == []
        assert [frame['name'] for frame in e.value.call_trace] == ['f']


def test_eval_raises_script_errors_directly():
    runner = ScriptRunner(source_name="inline")
    with pytest.raises(ScriptTypeError) as e:
        runner.eval("true + 1")
    assert e.value.kind == "TypeError"
    assert e.value.source == "inline"
    assert str(e.value).endswith("(Ln 1, Col 1 @inline)")
    with pytest.raises(ScriptSyntaxError):
        runner.eval("(1")


def test_unexpected_exception_is_reported_as_internal_error(monkeypatch):
    runner = ScriptRunner()

    def explode(nodes, store, source):
        raise RuntimeError("engine fault")

    monkeypatch.setattr(runner.evaluator, "run", explode)
    res = runner.handle_script("1")
    assert res.status == 'error'
    assert res.error_message.startswith("InternalError: engine fault")
