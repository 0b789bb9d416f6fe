"""
Source text to syntax nodes: the koine grammar plus the Quill transformer.
"""
from pathlib import Path
from typing import List, Optional

from koine import Parser

from quill.quill_datatypes import Node, ScriptSyntaxError
from quill.quill_transformer import QuillTransformer

GRAMMAR_PATH = Path(__file__).parent / "grammar" / "quill_grammar.yaml"

_parser: Optional[Parser] = None


def get_parser() -> Parser:
    """Builds the koine parser once per process."""
    global _parser
    if _parser is None:
        _parser = Parser.from_file(str(GRAMMAR_PATH))
    return _parser


def parse_source(source: str, source_name: str = "<script>") -> List[Node]:
    """Parses source text into a list of top-level syntax nodes.

    Malformed input (an unbalanced span) raises ScriptSyntaxError at the
    position koine reports.
    """
    parse_out = get_parser().parse(source)
    if isinstance(parse_out, dict) and 'status' in parse_out:
        if parse_out.get('status') != 'success':
            where = parse_out.get('error_node') or {}
            line, col = where.get('line'), where.get('col')
            referrer = Node(line, col, 0) if line is not None else None
            message = parse_out.get('error_message') or "invalid syntax"
            raise ScriptSyntaxError(message, referrer, source_name)
        ast_node = parse_out.get('ast')
    else:
        ast_node = parse_out
    return QuillTransformer(source).transform(ast_node)
