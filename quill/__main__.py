import sys
from pathlib import Path

from quill.quill_datatypes import NO_VALUE
from quill.quill_printer import Printer
from quill.quill_runtime import ScriptRunner, ExecutionResult


def _print_result(result: ExecutionResult) -> bool:
    # Print side effects (from `print`)
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return False
    if result.value is not None and result.value is not NO_VALUE:
        print(Printer().to_text(result.value))
    return True


def run_script_file(file_path: str):
    """Run a Quill script file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    runner = ScriptRunner(source_name=p.name)
    if not _print_result(runner.handle_script(source)):
        raise SystemExit(1)


def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1 and not sys.argv[1].startswith("-"):
        run_script_file(sys.argv[1])
        return

    print("Quill REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(source_name="repl", keep_bindings=True)
    while True:
        try:
            line = input(">> ").strip()
        except EOFError:
            print("\nExiting.")
            break
        if not line:
            continue
        if line == "exit":
            break
        _print_result(runner.handle_script(line))


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
