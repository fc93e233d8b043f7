"""
Shape classification for Elixir syntax trees.

classify() maps any value to exactly one Shape. It never raises: values that
match no known form map to Shape.UNRECOGNIZED, which lowers to a generic
Expression.

Check order matters where forms overlap:

1. Booleans before integers (``bool`` is an ``int`` subclass), and the
   ``true``/``false``/``nil`` atoms before other atoms.
2. Lists: cons tail, then keyword list, then charlist, then plain list.
3. The 1-tuple wildcard before any tuple form; 2-tuples are tuple literals.
4. 3-tuples: a non-list args slot marks a bound name (variable or ``_``);
   otherwise the head name and arity select an operator, constructor,
   special form, or finally a local call. A ``.`` head is a remote or
   anonymous-function call.

Pattern mode reads the same trees as match patterns: names become
VariablePattern, aggregates become their *Pattern shapes, and forms that
cannot appear in a pattern classify as UNRECOGNIZED.
"""

import enum
from typing import Any

from exgraph.context import Mode
from exgraph.tree import Atom, call_args, is_keyword_list, is_node, keyword_get

MAX_CODEPOINT = 0x10FFFF


class Shape(enum.Enum):
    # Terminals
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    NIL = "nil"
    ATOM = "atom"
    VARIABLE = "variable"
    WILDCARD = "wildcard"

    # Aggregates and literal constructors
    CHARLIST = "charlist"
    BINARY = "binary"
    LIST = "list"
    KEYWORD_LIST = "keyword_list"
    TUPLE = "tuple"
    MAP = "map"
    STRUCT = "struct"
    SIGIL = "sigil"
    RANGE = "range"
    ALIAS = "alias"
    MODULE_ATTRIBUTE = "module_attribute"

    # Operators
    COMPARISON = "comparison"
    LOGICAL = "logical"
    UNARY_LOGICAL = "unary_logical"
    ARITHMETIC = "arithmetic"
    UNARY_ARITHMETIC = "unary_arithmetic"
    PIPE = "pipe"
    STRING_CONCAT = "string_concat"
    LIST_OPERATOR = "list_operator"
    MATCH = "match"
    IN = "in"
    CAPTURE = "capture"
    BINARY_SEGMENT = "binary_segment"

    # Calls
    LOCAL_CALL = "local_call"
    REMOTE_CALL = "remote_call"
    ANONYMOUS_CALL = "anonymous_call"
    ANONYMOUS_FUNCTION = "anonymous_function"
    BLOCK = "block"

    # Control flow
    IF = "if"
    UNLESS = "unless"
    COND = "cond"
    CASE = "case"
    WITH = "with"
    RECEIVE = "receive"
    FOR = "for"
    TRY = "try"
    RAISE = "raise"
    MATCH_CLAUSE = "match_clause"
    COND_CLAUSE = "cond_clause"
    GUARD = "guard"
    GENERATOR = "generator"

    # Patterns
    LITERAL_PATTERN = "literal_pattern"
    VARIABLE_PATTERN = "variable_pattern"
    PIN_PATTERN = "pin_pattern"
    TUPLE_PATTERN = "tuple_pattern"
    LIST_PATTERN = "list_pattern"
    MAP_PATTERN = "map_pattern"
    STRUCT_PATTERN = "struct_pattern"
    BINARY_PATTERN = "binary_pattern"
    AS_PATTERN = "as_pattern"
    RESCUE_PATTERN = "rescue_pattern"

    UNRECOGNIZED = "unrecognized"


# =============================================================================
# Dispatch tables: name -> (shape, required arity or None for any)
# =============================================================================

COMPARISON_OPERATORS = frozenset({"==", "!=", "===", "!==", "<", ">", "<=", ">="})
LOGICAL_OPERATORS = frozenset({"and", "or", "&&", "||"})
ARITHMETIC_OPERATORS = frozenset({"+", "-", "*", "/", "div", "rem"})

_BINARY_OPERATORS: dict[str, Shape] = {
    **{op: Shape.COMPARISON for op in COMPARISON_OPERATORS},
    **{op: Shape.LOGICAL for op in LOGICAL_OPERATORS},
    **{op: Shape.ARITHMETIC for op in ARITHMETIC_OPERATORS},
    "|>": Shape.PIPE,
    "<>": Shape.STRING_CONCAT,
    "++": Shape.LIST_OPERATOR,
    "--": Shape.LIST_OPERATOR,
    "|": Shape.LIST_OPERATOR,
    "=": Shape.MATCH,
    "in": Shape.IN,
    "..": Shape.RANGE,
    "::": Shape.BINARY_SEGMENT,
    "<-": Shape.GENERATOR,
    "%": Shape.STRUCT,
}

_UNARY_OPERATORS: dict[str, Shape] = {
    "-": Shape.UNARY_ARITHMETIC,
    "+": Shape.UNARY_ARITHMETIC,
    "not": Shape.UNARY_LOGICAL,
    "!": Shape.UNARY_LOGICAL,
    "&": Shape.CAPTURE,
    "^": Shape.PIN_PATTERN,
    "@": Shape.MODULE_ATTRIBUTE,
}

_CONSTRUCTORS: dict[str, Shape] = {
    "{}": Shape.TUPLE,
    "%{}": Shape.MAP,
    "__aliases__": Shape.ALIAS,
    "__block__": Shape.BLOCK,
    "fn": Shape.ANONYMOUS_FUNCTION,
}

# Special forms whose final argument is a keyword list holding ``do:``
_DO_FORMS: dict[str, tuple[Shape, int | None]] = {
    "if": (Shape.IF, 2),
    "unless": (Shape.UNLESS, 2),
    "cond": (Shape.COND, 1),
    "case": (Shape.CASE, 2),
    "receive": (Shape.RECEIVE, 1),
    "try": (Shape.TRY, 1),
    "with": (Shape.WITH, None),
    "for": (Shape.FOR, None),
}

RAISE_FORMS = frozenset({"raise", "reraise", "throw", "exit"})

_PATTERN_FORMS: dict[str, tuple[Shape, int | None]] = {
    "{}": (Shape.TUPLE_PATTERN, None),
    "%{}": (Shape.MAP_PATTERN, None),
    "%": (Shape.STRUCT_PATTERN, 2),
    "<<>>": (Shape.BINARY_PATTERN, None),
    "=": (Shape.AS_PATTERN, 2),
    "^": (Shape.PIN_PATTERN, 1),
    "::": (Shape.BINARY_SEGMENT, 2),
    "<>": (Shape.STRING_CONCAT, 2),
    "++": (Shape.LIST_OPERATOR, 2),
    "|": (Shape.LIST_OPERATOR, 2),
    "when": (Shape.GUARD, None),
    "__aliases__": (Shape.ALIAS, None),
    "@": (Shape.MODULE_ATTRIBUTE, 1),
    "in": (Shape.RESCUE_PATTERN, 2),
    "->": (Shape.MATCH_CLAUSE, 2),
}


# =============================================================================
# Predicates shared with the builders
# =============================================================================


def is_charlist(value: list) -> bool:
    """True when every element is a valid Unicode code point (vacuous for [])."""
    return all(
        isinstance(item, int) and not isinstance(item, bool) and 0 <= item <= MAX_CODEPOINT
        for item in value
    )


def is_cons_cell(value: Any) -> bool:
    return is_node(value) and value[0] == Atom("|") and len(call_args(value)) == 2


def binary_bytes(args: list) -> bytes | None:
    """Bytes of a ``<<>>`` made only of byte integers and strings, else None."""
    out = bytearray()
    for segment in args:
        if isinstance(segment, bool):
            return None
        if isinstance(segment, int) and 0 <= segment <= 255:
            out.append(segment)
        elif isinstance(segment, str):
            try:
                out.extend(segment.encode("utf-8"))
            except UnicodeEncodeError:
                # lone surrogates have no UTF-8 form
                return None
        else:
            return None
    return bytes(out)


def _has_do(args: list) -> bool:
    return bool(args) and is_keyword_list(args[-1]) and keyword_get(args[-1], "do") is not None


def _is_stab(args: list) -> bool:
    return len(args) == 2 and isinstance(args[0], list)


# =============================================================================
# Classification
# =============================================================================


def classify(node: Any, mode: Mode = Mode.EXPRESSION) -> Shape:
    """Classify a tree node.

    Args:
        node: Any value; trees follow the encoding in ``exgraph.tree``.
        mode: Expression or pattern reading of the node.

    Returns:
        The node's Shape. Unknown input yields Shape.UNRECOGNIZED.
    """
    if mode is Mode.PATTERN:
        return _classify_pattern(node)
    return _classify_expression(node)


def _classify_expression(node: Any) -> Shape:
    if isinstance(node, bool):
        return Shape.BOOLEAN
    if node is None:
        return Shape.NIL
    if isinstance(node, Atom):
        if node.name in ("true", "false"):
            return Shape.BOOLEAN
        if node.name == "nil":
            return Shape.NIL
        return Shape.ATOM
    if isinstance(node, int):
        return Shape.INTEGER
    if isinstance(node, float):
        return Shape.FLOAT
    if isinstance(node, str):
        return Shape.STRING
    if isinstance(node, list):
        if node and is_cons_cell(node[-1]):
            return Shape.LIST
        if is_keyword_list(node):
            return Shape.KEYWORD_LIST
        if is_charlist(node):
            return Shape.CHARLIST
        return Shape.LIST
    if isinstance(node, tuple):
        if len(node) == 1 and node[0] == Atom("_"):
            return Shape.WILDCARD
        if len(node) == 2:
            return Shape.TUPLE
        if is_node(node):
            return _classify_form(node)
    return Shape.UNRECOGNIZED


def _classify_form(node: tuple) -> Shape:
    head, _meta, args = node

    if not isinstance(head, Atom):
        return _classify_dot_call(head, args)

    if not isinstance(args, list):
        if args is None or isinstance(args, Atom):
            return Shape.WILDCARD if head.name == "_" else Shape.VARIABLE
        return Shape.UNRECOGNIZED

    name = head.name
    arity = len(args)

    if arity == 2 and name in _BINARY_OPERATORS:
        return _BINARY_OPERATORS[name]
    if arity == 1 and name in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[name]
    if name == "..//" and arity == 3:
        return Shape.RANGE
    if name == "when" and arity >= 2:
        return Shape.GUARD
    if name == "->" and _is_stab(args):
        return Shape.COND_CLAUSE

    if name in _CONSTRUCTORS:
        return _CONSTRUCTORS[name]
    if name == "<<>>":
        return Shape.BINARY if binary_bytes(args) is not None else Shape.UNRECOGNIZED
    if name.startswith("sigil_") and arity == 2:
        return Shape.SIGIL

    if name in _DO_FORMS:
        shape, required = _DO_FORMS[name]
        if (required is None or arity == required) and _has_do(args):
            return shape
    if name in RAISE_FORMS and 1 <= arity <= 3:
        return Shape.RAISE

    return Shape.LOCAL_CALL


def _classify_dot_call(head: Any, args: Any) -> Shape:
    if not (is_node(head) and head[0] == Atom(".") and isinstance(args, list)):
        return Shape.UNRECOGNIZED
    target = call_args(head)
    if len(target) == 2 and isinstance(target[1], Atom):
        return Shape.REMOTE_CALL
    if len(target) == 1:
        return Shape.ANONYMOUS_CALL
    return Shape.UNRECOGNIZED


def _classify_pattern(node: Any) -> Shape:
    if node is None or isinstance(node, (bool, int, float, str)):
        return Shape.LITERAL_PATTERN
    if isinstance(node, Atom):
        return Shape.LITERAL_PATTERN
    if isinstance(node, list):
        return Shape.LIST_PATTERN
    if isinstance(node, tuple):
        if len(node) == 1 and node[0] == Atom("_"):
            return Shape.WILDCARD
        if len(node) == 2:
            return Shape.TUPLE_PATTERN
        if is_node(node):
            return _classify_pattern_form(node)
    return Shape.UNRECOGNIZED


def _classify_pattern_form(node: tuple) -> Shape:
    head, _meta, args = node
    if not isinstance(head, Atom):
        return Shape.UNRECOGNIZED

    if not isinstance(args, list):
        if args is None or isinstance(args, Atom):
            return Shape.WILDCARD if head.name == "_" else Shape.VARIABLE_PATTERN
        return Shape.UNRECOGNIZED

    name = head.name
    arity = len(args)

    if name in _PATTERN_FORMS:
        shape, required = _PATTERN_FORMS[name]
        if required is None or arity == required:
            if shape is Shape.MATCH_CLAUSE and not isinstance(args[0], list):
                return Shape.UNRECOGNIZED
            if shape is Shape.GUARD and arity < 2:
                return Shape.UNRECOGNIZED
            return shape
    if name in ("-", "+") and arity == 1:
        return Shape.UNARY_ARITHMETIC
    if name.startswith("sigil_") and arity == 2:
        return Shape.SIGIL
    return Shape.UNRECOGNIZED
