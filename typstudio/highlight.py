"""Syntax highlighting for the Typst source overlay.

The highlighter walks an already-parsed tree and emits nested, escaped
HTML. Concatenating the leaves of the tree in traversal order gives back the
source text, so stripping the tags from the output (and unescaping) gives
back the source as well.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from functools import lru_cache

from pygments.lexers import get_lexer_by_name
from pygments.token import Token

# Keys are dotted node kinds; lookups fall back to shorter prefixes so
# "Comment.Single" and "Comment.Multiline" both land on "Comment".
TOKEN_CLASSES: dict[str, str] = {
    "Comment": "comment",
    "Keyword": "keyword",
    "Generic.Strong": "markup",
    "Generic.Emph": "markup",
    "Generic.Heading": "heading",
    "Generic.Subheading": "heading",
    "Literal.String.Backtick": "code",
    "Literal.String": "string",
    "Literal.Number": "number",
    "Name.Function": "function",
    "Name.Variable": "function",
    "Name.Builtin": "function",
    "Name.Label": "label",
    "Operator": "operator",
    "Equation": "math",
}

HIGHLIGHT_CSS = """
.typst-highlighted { margin: 0; white-space: pre-wrap; font-family: monospace; }
.comment { color: #6a9955; font-style: italic; }
.keyword { color: #c586c0; }
.markup { color: #d7ba7d; }
.string { color: #ce9178; }
.number { color: #b5cea8; }
.heading { color: #569cd6; font-weight: bold; }
.code { color: #9cdcfe; }
.math { color: #4ec9b0; }
.function { color: #dcdcaa; }
.label { color: #f48771; }
.operator { color: #d4d4d4; }
"""


@dataclass(frozen=True)
class SyntaxNode:
    """One node of a parsed source tree; leaves carry text, containers children."""

    kind: str
    text: str = ""
    children: tuple[SyntaxNode, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children


def classify(kind: str) -> str:
    """Map a node kind to its CSS class, or "" when it is not highlighted."""
    parts = kind.split(".")
    while parts:
        css_class = TOKEN_CLASSES.get(".".join(parts))
        if css_class is not None:
            return css_class
        parts.pop()
    return ""


def highlight(tree: SyntaxNode) -> str:
    """Render `tree` as nested `<span class=...>` markup.

    Traversal uses an explicit stack so arbitrarily deep trees cannot
    exhaust the interpreter's recursion limit.
    """
    parts: list[str] = []
    # (node, closing): closing entries emit the end tag of a classified container.
    stack: list[tuple[SyntaxNode, bool]] = [(tree, False)]
    while stack:
        node, closing = stack.pop()
        if closing:
            parts.append("</span>")
            continue

        css_class = classify(node.kind)
        if node.is_leaf:
            escaped = html.escape(node.text, quote=True)
            if css_class:
                parts.append(f'<span class="{css_class}">{escaped}</span>')
            else:
                parts.append(escaped)
            continue

        if css_class:
            parts.append(f'<span class="{css_class}">')
            stack.append((node, True))
        stack.extend((child, False) for child in reversed(node.children))
    return "".join(parts)


@lru_cache(maxsize=1)
def _typst_lexer():
    return get_lexer_by_name("typst", stripnl=False, ensurenl=False)


def _token_kind(token_type) -> str:
    if token_type is Token:
        return "Text"
    name = str(token_type)
    return name[len("Token."):] if name.startswith("Token.") else name


def _close_frame(stack: list[tuple[str, list[SyntaxNode]]]) -> None:
    kind, children = stack.pop()
    stack[-1][1].append(SyntaxNode(kind, children=tuple(children)))


def parse_source(source: str) -> SyntaxNode:
    """Tokenize Typst source into a tree of token leaves.

    Math spans (`$ ... $`) and content blocks (`[ ... ]`) become containers.
    Text the lexer does not account for is kept as plain `Text` leaves.
    """
    root_children: list[SyntaxNode] = []
    stack: list[tuple[str, list[SyntaxNode]]] = [("Markup", root_children)]
    position = 0

    for index, token_type, value in _typst_lexer().get_tokens_unprocessed(source):
        if index < position:
            value = value[position - index:]
            index = position
        if not value:
            continue
        if index > position:
            stack[-1][1].append(SyntaxNode("Text", source[position:index]))
        position = index + len(value)

        leaf = SyntaxNode(_token_kind(token_type), value)
        is_punctuation = leaf.kind.startswith("Punctuation")

        if is_punctuation and value == "$":
            if any(kind == "Equation" for kind, _ in stack[1:]):
                stack[-1][1].append(leaf)
                while stack[-1][0] != "Equation":
                    _close_frame(stack)
                _close_frame(stack)
            else:
                stack.append(("Equation", [leaf]))
            continue

        if is_punctuation and value == "[":
            stack.append(("ContentBlock", [leaf]))
            continue

        if is_punctuation and value == "]" and stack[-1][0] == "ContentBlock":
            stack[-1][1].append(leaf)
            _close_frame(stack)
            continue

        stack[-1][1].append(leaf)

    if position < len(source):
        stack[-1][1].append(SyntaxNode("Text", source[position:]))
    while len(stack) > 1:
        _close_frame(stack)
    return SyntaxNode("Markup", children=tuple(root_children))


def highlight_source(source: str) -> str:
    """Parse and highlight `source` for the editor overlay."""
    return f'<pre class="typst-highlighted"><code>{highlight(parse_source(source))}</code></pre>'
