"""
Transforms the raw koine parse tree into Quill syntax nodes.
"""
from typing import Any, List

from quill.quill_datatypes import (
    Node, NumberNode, WordNode, StringNode, SymbolNode, SpanNode,
)

RADIX_SUFFIXES = ('B', 'O', 'H', 'D')

SPAN_TAGS = {'paren': '(', 'bracket': '[', 'brace': '{'}
STRING_TAGS = ('single_string', 'double_string', 'backtick_string')


class QuillTransformer:
    """Builds positioned syntax nodes from koine AST dicts.

    Koine reports 1-based line and column; the 0-based offset is recovered
    from the source text.
    """

    def __init__(self, source: str):
        self._line_starts = [0]
        for i, ch in enumerate(source):
            if ch == '\n':
                self._line_starts.append(i + 1)

    def _position(self, node: dict) -> tuple[int, int, int]:
        line = node.get('line') or 1
        col = node.get('col') or 1
        offset = self._line_starts[min(line, len(self._line_starts)) - 1] + col - 1
        return line, col, offset

    def transform(self, node: Any) -> List[Node]:
        """Returns the flat list of nodes produced by `node`."""
        # Lists (repetitions) are spliced into the surrounding node list
        if isinstance(node, list):
            out: List[Node] = []
            for item in node:
                out.extend(self.transform(item))
            return out
        if not isinstance(node, dict):
            return []

        tag = node.get('tag')
        children = node.get('children') or []

        match tag:
            case 'program' | 'node':
                return self.transform(children)
            case 'paren' | 'bracket' | 'brace':
                span = SpanNode(*self._position(node), SPAN_TAGS[tag])
                span.body = self.transform(children)
                return [span]
            case 'number':
                text, suffix = node['text'], ''
                if text[-1] in RADIX_SUFFIXES:
                    text, suffix = text[:-1], text[-1]
                return [NumberNode(*self._position(node), text, suffix)]
            case 'word':
                return [WordNode(*self._position(node), node['text'])]
            case 'symbol':
                return [SymbolNode(*self._position(node), node['text'])]
            case _ if tag in STRING_TAGS:
                return [StringNode(*self._position(node), node['text'])]
            case '_' | 'end_of_input':
                return []
        raise ValueError(f"unknown parse node {tag!r}")
