# quill_runtime.py

import inspect
from typing import Any, List, Optional, Literal, Dict
from dataclasses import dataclass, field

from quill.quill_datatypes import Node, Store, ScriptError, ScriptRangeError
from quill.quill_interpreter import Evaluator
from quill.quill_parser import parse_source
from quill.quill_native import from_python, script_name
from quill.quill_stdlib import build_root_bindings

# ===================================================================
# 1. Host binding
# ===================================================================


def quill_api_method(func):
    """A decorator to explicitly mark methods as safe for Quill execution."""
    func._is_quill_api = True
    return func


# ===================================================================
# 2. Script Execution
# ===================================================================

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Prefixes the error message with `source:line:col` when it is known."""
        if self.status != 'error':
            return ""
        msg = self.error_message or "InternalError"
        token = self.error_token or {}
        if token.get('line') is None:
            return msg
        return f"{token.get('source')}:{token['line']}:{token.get('col')}: {msg}"


class ScriptRunner:
    """Tokenizes and executes Quill code against a root Store of builtins."""

    def __init__(self, host_object: Any = None, source_name: str = "<script>",
                 max_depth: Optional[int] = None, keep_bindings: bool = False):
        self.host_object = host_object
        self.source_name = source_name
        self.evaluator = Evaluator(max_depth=max_depth)  # Each runner has its own evaluator/side_effects
        self._builtins = build_root_bindings(self.evaluator)
        self.root_scope = Store(bindings=self._builtins)
        # With keep_bindings (the REPL), every run shares one program Store
        self.program_scope: Optional[Store] = Store(parent=self.root_scope) if keep_bindings else None
        # Track which host API names we have bound into the root scope
        self._host_api_names: set[str] = set()
        self._bind_host_api_methods()

    def _bind_host_api_methods(self):
        """Bind @quill_api_method methods of the host into the root scope."""
        for n in self._host_api_names:
            # Restore any builtin the host method shadowed
            if n in self._builtins:
                self.root_scope[n] = self._builtins[n]
            else:
                self.root_scope.bindings.pop(n, None)
        self._host_api_names = set()

        host = self.host_object
        if not host:
            return

        for name, member in inspect.getmembers(host):
            if not callable(member):
                continue
            # Decorator may mark the bound method or the underlying function
            is_api = getattr(member, "_is_quill_api", False)
            if not is_api:
                func = getattr(member, "__func__", None)
                if func is not None:
                    is_api = getattr(func, "_is_quill_api", False)
            if not is_api:
                continue
            quill_name = script_name(name)
            self.root_scope[quill_name] = from_python(member, name=quill_name)
            self._host_api_names.add(quill_name)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run_nodes(self, nodes: List[Node]) -> Any:
        """Evaluates a pre-parsed node sequence in a program Store.

        Script faults propagate as ScriptError subclasses; a Python
        RecursionError is reported as a RangeError.
        """
        program = self.program_scope if self.program_scope is not None else Store(parent=self.root_scope)
        try:
            return self.evaluator.run(list(nodes), program, self.source_name)
        except RecursionError:
            raise self._depth_error() from None

    def eval(self, source: str) -> Any:
        """Evaluates source text and raises script faults directly."""
        self.evaluator.call_stack.clear()
        self.evaluator.current_node = None
        try:
            nodes = parse_source(source, self.source_name)
        except RecursionError:
            raise self._depth_error() from None
        return self.run_nodes(nodes)

    def _depth_error(self) -> ScriptRangeError:
        return ScriptRangeError(
            "maximum call depth exceeded", self.evaluator.current_node, self.source_name
        )

    def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        # Clear side effects for each run
        self.evaluator.side_effects.clear()
        self._bind_host_api_methods()
        try:
            result = self.eval(source_code)
        except Exception as e:
            # Faults outside the taxonomy are reported as InternalError
            return self._error_result(e, source_code)
        return ExecutionResult(
            status='success',
            value=result,
            side_effects=self.evaluator.side_effects,
        )

    def _error_result(self, e: Exception, source: str) -> ExecutionResult:
        err_msg, err_token = self._format_runtime_error(e, source)
        # Emit consolidated stderr side-effect
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': err_msg})
        return ExecutionResult(
            status='error',
            error_message=err_msg,
            error_token=err_token,
            side_effects=self.evaluator.side_effects,
        )

    # ------------------------------------------------------------------
    # Error formatting
    # ------------------------------------------------------------------

    def _format_runtime_error(self, e: Exception, source: str) -> tuple[str, Optional[dict]]:
        match e:
            case ScriptError():
                kind, line, col = e.kind, e.line, e.column
                msg = f"{kind}: {e}"
            case _:
                kind = "InternalError"
                node = self.evaluator.current_node
                line = getattr(node, 'line', None)
                col = getattr(node, 'column', None)
                msg = f"{kind}: {e}"

        token = None
        if line is not None:
            token = {'kind': kind, 'line': line, 'col': col, 'source': self.source_name}
            context = self._source_context(source, line, col)
            if context:
                msg = f"{msg}\n{context}"

        trace = self._format_stacktrace(getattr(e, 'call_trace', None) or [])
        if trace:
            msg += "\n" + trace
        return msg, token

    def _source_context(self, source: str, line: int, col: Optional[int]) -> str:
        """The failing source line under its number, with a caret at the column."""
        lines = source.splitlines()
        if not 1 <= line <= len(lines):
            return ""
        gutter = f"{line} | "
        shown = gutter + lines[line - 1]
        if col is None:
            return shown
        return f"{shown}\n{' ' * (len(gutter) + col - 1)}^"

    def _format_stacktrace(self, frames: List[Dict[str, Any]]) -> str:
        if not frames:
            return ""
        calls = []
        for frame in frames:
            line, col = frame.get('call_site') or (None, None)
            where = f" @{line}:{col}" if line is not None else ""
            calls.append(f"({frame.get('name') or '<call>'}{where})")
        return "Quill stacktrace: " + " ".join(calls)
