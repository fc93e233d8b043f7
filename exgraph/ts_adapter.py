"""
Convert tree-sitter-elixir parse trees into exgraph trees.

For callers that only have source text. tree-sitter and the Elixir grammar
are optional; parse_elixir() raises ImportError when they are missing.

Node types without a quoted-form equivalent become generic nodes that the
classifier reports as UNRECOGNIZED.
"""

import logging
import re
import sys
from typing import Any

from exgraph.tree import LINE, NIL, Atom, alias

logger = logging.getLogger(__name__)

# Tree-sitter imports (optional)
TREE_SITTER_BASE_AVAILABLE = False
try:
    from tree_sitter import Language, Parser

    TREE_SITTER_BASE_AVAILABLE = True
except ImportError:
    pass

TREE_SITTER_ELIXIR_AVAILABLE = False
try:
    import tree_sitter_elixir  # noqa: F401

    TREE_SITTER_ELIXIR_AVAILABLE = TREE_SITTER_BASE_AVAILABLE
except ImportError:
    pass

# Head of nodes with no quoted-form equivalent
UNKNOWN_PREFIX = "ts:"

_SKIPPED_TYPES = frozenset({"comment"})

_BLOCK_KEYS = {
    "do_block": "do",
    "else_block": "else",
    "after_block": "after",
    "rescue_block": "rescue",
    "catch_block": "catch",
}

# Single-character escapes; anything else after a backslash stands for itself
_SIMPLE_ESCAPES = {
    "0": "\0",
    "a": "\a",
    "b": "\b",
    "d": "\x7f",
    "e": "\x1b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "s": " ",
    "t": "\t",
    "v": "\v",
    "\n": "",
}

_ESCAPE_RE = re.compile(
    r"\\(x\{[0-9a-fA-F]+\}|x[0-9a-fA-F]{1,2}|u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|.)",
    re.DOTALL,
)

_parser = None


def _get_parser():
    global _parser
    if _parser is None:
        if not TREE_SITTER_ELIXIR_AVAILABLE:
            raise ImportError("tree-sitter-elixir not available")
        import tree_sitter_elixir

        parser = Parser()
        parser.language = Language(tree_sitter_elixir.language())
        _parser = parser
    return _parser


def parse_elixir(source: str) -> Any:
    """Parse Elixir source and convert it to an exgraph tree.

    A single top-level expression is returned as-is; several are wrapped in
    a ``__block__``; empty source yields None.

    Raises:
        ImportError: If tree-sitter-elixir is not available.
    """
    source_bytes = source.encode("utf-8")
    tree = _get_parser().parse(source_bytes)
    return ElixirTreeConverter(source_bytes).convert_body(tree.root_node)


def unescape(text: str) -> str:
    """Decode Elixir backslash escapes (``\\n``, ``\\x41``, ``\\u{1F600}``...)."""

    def _replace(match: re.Match) -> str:
        body = match.group(1)
        if len(body) > 1 and body[0] in "xu":
            code = int(body[1:].strip("{}"), 16)
            return chr(code) if code <= sys.maxunicode else match.group(0)
        return _SIMPLE_ESCAPES.get(body, body)

    return _ESCAPE_RE.sub(_replace, text)


class ElixirTreeConverter:
    """Walks a tree-sitter-elixir tree and emits quoted-form values."""

    def __init__(self, source: bytes):
        self.source = source

    def text(self, node) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8")

    def meta(self, node) -> list:
        return [(LINE, node.start_point[0] + 1)]

    def children(self, node) -> list:
        return [c for c in node.named_children if c.type not in _SKIPPED_TYPES]

    def convert_body(self, node) -> Any:
        """Convert a body/source/block node to one expression or a ``__block__``."""
        exprs = [self.convert(c) for c in self.children(node)]
        if not exprs:
            return None
        if len(exprs) == 1:
            return exprs[0]
        return (Atom("__block__"), self.meta(node), exprs)

    def convert(self, node) -> Any:
        handler = getattr(self, f"_convert_{node.type}", None)
        if handler is not None:
            return handler(node)
        logger.debug(f"No conversion for tree-sitter node type {node.type}")
        return (
            f"{UNKNOWN_PREFIX}{node.type}",
            self.meta(node),
            [self.convert(c) for c in self.children(node)],
        )

    # -------------------------------------------------------------------------
    # Terminals
    # -------------------------------------------------------------------------

    def _convert_integer(self, node):
        text = self.text(node).replace("_", "")
        try:
            return int(text, 0)
        except ValueError:
            return int(text, 10)

    def _convert_float(self, node):
        return float(self.text(node).replace("_", ""))

    def _convert_char(self, node):
        # ?a, ?\n, ?\x41
        value = unescape(self.text(node)[1:])
        return ord(value[0]) if value else 0

    def _convert_boolean(self, node):
        return self.text(node) == "true"

    def _convert_nil(self, node):
        return NIL

    def _convert_atom(self, node):
        return Atom(self.text(node)[1:])

    def _convert_quoted_atom(self, node):
        return Atom(self._quoted_text(node))

    def _convert_keyword(self, node):
        return Atom(self.text(node).rstrip().rstrip(":"))

    def _convert_quoted_keyword(self, node):
        return Atom(self._quoted_text(node))

    def _convert_identifier(self, node):
        return (Atom(self.text(node)), self.meta(node), None)

    def _convert_alias(self, node):
        return alias(*self.text(node).split("."))

    def _content(self, node, raw: bool = False) -> str | None:
        """Text of a quoted_content or escape_sequence child, escapes decoded."""
        if node.type == "quoted_content":
            return self.text(node)
        if node.type == "escape_sequence":
            return self.text(node) if raw else unescape(self.text(node))
        return None

    def _quoted_text(self, node) -> str:
        return "".join(
            text for text in (self._content(c) for c in node.named_children) if text is not None
        )

    def _string_parts(self, node, raw: bool = False) -> list:
        parts = []
        for child in node.named_children:
            text = self._content(child, raw)
            if text is not None:
                if parts and isinstance(parts[-1], str):
                    parts[-1] += text
                else:
                    parts.append(text)
            elif child.type == "interpolation":
                parts.append(self.convert_body(child))
        return parts

    def _convert_string(self, node):
        parts = self._string_parts(node)
        if all(isinstance(p, str) for p in parts):
            return "".join(parts)
        return (Atom("<<>>"), self.meta(node), parts)

    def _convert_charlist(self, node):
        parts = self._string_parts(node)
        if all(isinstance(p, str) for p in parts):
            return [ord(ch) for ch in "".join(parts)]
        return (f"{UNKNOWN_PREFIX}charlist", self.meta(node), parts)

    def _convert_sigil(self, node):
        name = ""
        modifiers = []
        for child in node.named_children:
            if child.type == "sigil_name":
                name = self.text(child)
            elif child.type == "sigil_modifiers":
                modifiers = [ord(ch) for ch in self.text(child)]
        # sigil macros decode their own escapes
        content = (Atom("<<>>"), [], self._string_parts(node, raw=True))
        return (Atom(f"sigil_{name}"), self.meta(node), [content, modifiers])

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def _items(self, node, flatten: bool = True) -> list:
        """Convert children; keyword pairs are spliced in, or kept as one trailing list."""
        items = []
        for child in self.children(node):
            if child.type == "keywords" and flatten:
                items.extend(self._pairs(child))
            elif child.type == "keywords":
                items.append(self._pairs(child))
            else:
                items.append(self.convert(child))
        return items

    def _pairs(self, node) -> list:
        pairs = []
        for pair in self.children(node):
            key = pair.child_by_field_name("key")
            value = pair.child_by_field_name("value")
            if key is None or value is None:
                continue
            pairs.append((self.convert(key), self.convert(value)))
        return pairs

    def _convert_keywords(self, node):
        return self._pairs(node)

    def _convert_list(self, node):
        # [h | t] arrives as a trailing `|` operator, which is already a cons cell
        return self._items(node)

    def _convert_tuple(self, node):
        items = self._items(node, flatten=False)
        if len(items) == 2:
            return (items[0], items[1])
        return (Atom("{}"), self.meta(node), items)

    def _convert_bitstring(self, node):
        return (Atom("<<>>"), self.meta(node), self._items(node))

    def _map_entries(self, content) -> list:
        entries = []
        for child in self.children(content):
            if child.type == "keywords":
                entries.extend(self._pairs(child))
            elif child.type == "binary_operator" and self._operator(child) == "=>":
                entries.append(
                    (
                        self.convert(child.child_by_field_name("left")),
                        self.convert(child.child_by_field_name("right")),
                    )
                )
            elif child.type == "binary_operator" and self._operator(child) == "|":
                base = self.convert(child.child_by_field_name("left"))
                right = child.child_by_field_name("right")
                updates = self._pairs(right) if right.type == "keywords" else [self.convert(right)]
                entries.append((Atom("|"), [], [base, updates]))
            else:
                entries.append(self.convert(child))
        return entries

    def _convert_map(self, node):
        struct = None
        entries = []
        for child in self.children(node):
            if child.type == "struct":
                struct = self.convert_body(child)
            elif child.type == "map_content":
                entries = self._map_entries(child)
        map_node = (Atom("%{}"), self.meta(node), entries)
        if struct is None:
            return map_node
        return (Atom("%"), self.meta(node), [struct, map_node])

    # -------------------------------------------------------------------------
    # Operators
    # -------------------------------------------------------------------------

    def _operator(self, node) -> str:
        op = node.child_by_field_name("operator")
        return " ".join(self.text(op).split()) if op is not None else ""

    def _convert_unary_operator(self, node):
        op = self._operator(node)
        operand = self.convert(node.child_by_field_name("operand"))
        return (Atom(op), self.meta(node), [operand])

    def _convert_binary_operator(self, node):
        op = self._operator(node)
        left_node = node.child_by_field_name("left")
        left = self.convert(left_node)
        right = self.convert(node.child_by_field_name("right"))
        meta = self.meta(node)
        if op == "not in":
            return (Atom("not"), meta, [(Atom("in"), meta, [left, right])])
        if op == "//" and left_node.type == "binary_operator" and self._operator(left_node) == "..":
            start, end = left[2]
            return (Atom("..//"), meta, [start, end, right])
        return (Atom(op), meta, [left, right])

    # -------------------------------------------------------------------------
    # Calls and blocks
    # -------------------------------------------------------------------------

    def _arguments(self, node) -> list:
        for child in self.children(node):
            if child.type == "arguments":
                return self._items(child, flatten=False)
        return []

    def _block_value(self, block) -> Any:
        """Convert the contents of a do/else/after/rescue/catch block."""
        inner = [c for c in self.children(block) if c.type not in _BLOCK_KEYS]
        if any(c.type == "stab_clause" for c in inner):
            return [self.convert(c) for c in inner if c.type == "stab_clause"]
        exprs = []
        for child in inner:
            if child.type == "body":
                exprs.extend(self.convert(c) for c in self.children(child))
            else:
                exprs.append(self.convert(child))
        if not exprs:
            return None
        if len(exprs) == 1:
            return exprs[0]
        return (Atom("__block__"), self.meta(block), exprs)

    def _do_options(self, node) -> list:
        # else/after/rescue/catch blocks nest inside do_block in the grammar
        options = []
        for child in self.children(node):
            key = _BLOCK_KEYS.get(child.type)
            if key is None:
                continue
            options.append((Atom(key), self._block_value(child)))
            if key == "do":
                for inner in self.children(child):
                    inner_key = _BLOCK_KEYS.get(inner.type)
                    if inner_key is not None:
                        options.append((Atom(inner_key), self._block_value(inner)))
        return options

    def _convert_call(self, node):
        target = node.child_by_field_name("target")
        args = self._arguments(node)
        options = self._do_options(node)
        if options:
            args = args + [options]
        meta = self.meta(node)
        if target is None:
            return (f"{UNKNOWN_PREFIX}call", meta, args)
        if target.type == "dot":
            return (self._dot_target(target), meta, args)
        return (Atom(self.text(target)), meta, args)

    def _dot_target(self, dot) -> tuple:
        left = dot.child_by_field_name("left")
        right = dot.child_by_field_name("right")
        receiver = self.convert(left)
        if right is None:
            return (Atom("."), self.meta(dot), [receiver])
        return (Atom("."), self.meta(dot), [receiver, Atom(self.text(right))])

    def _convert_dot(self, node):
        return (self._dot_target(node), self.meta(node), [])

    def _convert_access_call(self, node):
        target, key = [self.convert(c) for c in self.children(node)][:2]
        access = (Atom("."), [], [alias("Access"), Atom("get")])
        return (access, self.meta(node), [target, key])

    def _convert_anonymous_function(self, node):
        clauses = [self.convert(c) for c in self.children(node) if c.type == "stab_clause"]
        return (Atom("fn"), self.meta(node), clauses)

    def _convert_stab_clause(self, node):
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        head = []
        if left is not None:
            if left.type == "binary_operator" and self._operator(left) == "when":
                guard = self.convert(left.child_by_field_name("right"))
                params = left.child_by_field_name("left")
                patterns = self._items(params) if params.type == "arguments" else [self.convert(params)]
                head = [(Atom("when"), self.meta(left), patterns + [guard])]
            elif left.type == "arguments":
                head = self._items(left)
            else:
                head = [self.convert(left)]
        body = self.convert_body(right) if right is not None else None
        return (Atom("->"), self.meta(node), [head, body])

    def _convert_block(self, node):
        return self.convert_body(node)

    def _convert_body(self, node):
        return self.convert_body(node)
