import importlib
import sys

import pytest


def _load_repl_module():
    """Import the `python -m quill` entry module without running it."""
    return importlib.import_module("quill.__main__")


def _feed(monkeypatch, repl, lines):
    it = iter(lines)

    def fake_input(prompt: str) -> str:
        try:
            return next(it)
        except StopIteration:
            raise EOFError from None
    monkeypatch.setattr("builtins.input", fake_input)
    monkeypatch.setattr(sys, "argv", ["quill"])


def test_repl_exit_immediately(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["exit"])

    repl.main()
    out = capsys.readouterr().out
    assert "Quill REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit." in out


def test_repl_prints_side_effects_and_values(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [
        "print('hello from quill')",
        "1 + 2",
        "",
        "exit",
    ])

    repl.main()
    out, err = capsys.readouterr()
    assert "hello from quill" in out
    assert "\n3\n" in out
    assert "TypeError" not in err


def test_repl_keeps_bindings_between_lines(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["x = 40", "x + 2", "exit"])

    repl.main()
    out = capsys.readouterr().out
    assert "\n42\n" in out


def test_repl_errors_print_to_stderr(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["1 + 'a'", "exit"])

    repl.main()
    out, err = capsys.readouterr()
    assert "Quill REPL v0.1" in out
    assert "repl:1:5: TypeError:" in err


def test_repl_eof_quits(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [])

    repl.main()
    out = capsys.readouterr().out
    assert "Exiting." in out


def test_script_file_runs(monkeypatch, capsys, tmp_path):
    repl = _load_repl_module()
    script = tmp_path / "hello.quill"
    script.write_text("print('hi'); [1, 2]", encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["quill", str(script)])

    repl.main()
    out = capsys.readouterr().out
    assert out == "hi\n(size: 2) [1, 2]\n"


def test_script_file_error_exits_nonzero(monkeypatch, capsys, tmp_path):
    repl = _load_repl_module()
    script = tmp_path / "bad.quill"
    script.write_text("nope", encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["quill", str(script)])

    with pytest.raises(SystemExit) as e:
        repl.main()
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert 'ReferenceError: variable "nope" is not defined (Ln 1, Col 1 @bad.quill)' in err


def test_missing_script_file(monkeypatch, capsys, tmp_path):
    repl = _load_repl_module()
    with pytest.raises(SystemExit):
        repl.run_script_file(str(tmp_path / "missing.quill"))
    assert "file not found" in capsys.readouterr().err
