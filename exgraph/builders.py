"""
Builder registry: one pure builder per Shape.

A builder receives the node, the identifier already assigned to it and the
extraction context, and returns the node's own statements plus the children
that still need lowering. Builders never recurse: the lowering driver turns
each ChildRequest into a relative identifier and an edge from the parent.

Every builder emits exactly one ``rdf:type`` statement for its resource.
"""

from __future__ import annotations

import base64
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from exgraph import vocab as v
from exgraph.context import ExtractionContext, Mode
from exgraph.graph import Statement, datatype_property, object_property, type_statement
from exgraph.shapes import Shape, binary_bytes, classify, is_cons_cell
from exgraph.tree import (
    Atom,
    alias_name,
    call_args,
    call_name,
    is_node,
    is_var,
    keyword_get,
    node_line,
    split_do_block,
    stab_clauses,
)


@dataclass(frozen=True, slots=True)
class ChildRequest:
    """A child subtree to lower under ``{parent}/{role}``.

    Attributes:
        node: The child tree node.
        role: Structural role, used as the relative identifier suffix.
        predicate: Property linking the parent to the child.
        mode: Classification mode for the child (None inherits the parent's).
    """

    node: Any
    role: str
    predicate: str
    mode: Mode | None = None


@dataclass(slots=True)
class BuildResult:
    statements: list[Statement]
    children: list[ChildRequest] = field(default_factory=list)


Builder = Callable[[Any, str, ExtractionContext], BuildResult]

BUILDERS: dict[Shape, Builder] = {}

# Class asserted for each shape
SHAPE_CLASSES: dict[Shape, str] = {
    Shape.INTEGER: v.INTEGER_LITERAL,
    Shape.FLOAT: v.FLOAT_LITERAL,
    Shape.STRING: v.STRING_LITERAL,
    Shape.BOOLEAN: v.BOOLEAN_LITERAL,
    Shape.NIL: v.NIL_LITERAL,
    Shape.ATOM: v.ATOM_LITERAL,
    Shape.VARIABLE: v.VARIABLE,
    Shape.WILDCARD: v.WILDCARD_PATTERN,
    Shape.CHARLIST: v.CHARLIST_LITERAL,
    Shape.BINARY: v.BINARY_LITERAL,
    Shape.LIST: v.LIST_LITERAL,
    Shape.KEYWORD_LIST: v.KEYWORD_LIST_LITERAL,
    Shape.TUPLE: v.TUPLE_LITERAL,
    Shape.MAP: v.MAP_LITERAL,
    Shape.STRUCT: v.STRUCT_LITERAL,
    Shape.SIGIL: v.SIGIL_LITERAL,
    Shape.RANGE: v.RANGE_LITERAL,
    Shape.ALIAS: v.MODULE_REFERENCE,
    Shape.MODULE_ATTRIBUTE: v.MODULE_ATTRIBUTE,
    Shape.COMPARISON: v.COMPARISON_OPERATOR,
    Shape.LOGICAL: v.LOGICAL_OPERATOR,
    Shape.UNARY_LOGICAL: v.LOGICAL_OPERATOR,
    Shape.ARITHMETIC: v.ARITHMETIC_OPERATOR,
    Shape.UNARY_ARITHMETIC: v.ARITHMETIC_OPERATOR,
    Shape.PIPE: v.PIPE_OPERATOR,
    Shape.STRING_CONCAT: v.STRING_CONCAT_OPERATOR,
    Shape.LIST_OPERATOR: v.LIST_OPERATOR,
    Shape.MATCH: v.MATCH_OPERATOR,
    Shape.IN: v.IN_OPERATOR,
    Shape.CAPTURE: v.CAPTURE_OPERATOR,
    Shape.BINARY_SEGMENT: v.BINARY_SEGMENT,
    Shape.LOCAL_CALL: v.LOCAL_CALL,
    Shape.REMOTE_CALL: v.REMOTE_CALL,
    Shape.ANONYMOUS_CALL: v.ANONYMOUS_CALL,
    Shape.ANONYMOUS_FUNCTION: v.ANONYMOUS_FUNCTION,
    Shape.BLOCK: v.BLOCK,
    Shape.IF: v.IF_EXPRESSION,
    Shape.UNLESS: v.UNLESS_EXPRESSION,
    Shape.COND: v.COND_EXPRESSION,
    Shape.CASE: v.CASE_EXPRESSION,
    Shape.WITH: v.WITH_EXPRESSION,
    Shape.RECEIVE: v.RECEIVE_EXPRESSION,
    Shape.FOR: v.FOR_COMPREHENSION,
    Shape.TRY: v.TRY_EXPRESSION,
    Shape.RAISE: v.RAISE_EXPRESSION,
    Shape.MATCH_CLAUSE: v.MATCH_CLAUSE,
    Shape.COND_CLAUSE: v.COND_CLAUSE,
    Shape.GUARD: v.GUARD_CLAUSE,
    Shape.GENERATOR: v.GENERATOR,
    Shape.LITERAL_PATTERN: v.LITERAL_PATTERN,
    Shape.VARIABLE_PATTERN: v.VARIABLE_PATTERN,
    Shape.PIN_PATTERN: v.PIN_PATTERN,
    Shape.TUPLE_PATTERN: v.TUPLE_PATTERN,
    Shape.LIST_PATTERN: v.LIST_PATTERN,
    Shape.MAP_PATTERN: v.MAP_PATTERN,
    Shape.STRUCT_PATTERN: v.STRUCT_PATTERN,
    Shape.BINARY_PATTERN: v.BINARY_PATTERN,
    Shape.AS_PATTERN: v.AS_PATTERN,
    Shape.RESCUE_PATTERN: v.RESCUE_PATTERN,
    Shape.UNRECOGNIZED: v.EXPRESSION,
}


def register(*shapes: Shape) -> Callable[[Builder], Builder]:
    """Register a builder for one or more shapes."""

    def decorator(func: Builder) -> Builder:
        for shape in shapes:
            BUILDERS[shape] = func
        return func

    return decorator


def build(shape: Shape, node: Any, resource_id: str, context: ExtractionContext) -> BuildResult:
    """Run the builder registered for ``shape``."""
    return BUILDERS[shape](node, resource_id, context)


def module_iri(base_iri: str, module_name: str) -> str:
    return base_iri + quote(module_name, safe=".:", errors="surrogatepass")


# =============================================================================
# Shared helpers
# =============================================================================


def _typed(resource_id: str, shape: Shape, node: Any) -> list[Statement]:
    statements = [type_statement(resource_id, SHAPE_CLASSES[shape])]
    line = node_line(node)
    if line is not None:
        statements.append(datatype_property(resource_id, v.START_LINE, line))
    return statements


def _operator(node: Any) -> str:
    return call_name(node) or ""


def _elements(
    items: list, predicate: str = v.HAS_ELEMENT, mode: Mode | None = None, prefix: str = ""
) -> list[ChildRequest]:
    return [ChildRequest(item, f"{prefix}{i}", predicate, mode) for i, item in enumerate(items)]


def _list_children(items: list) -> list[ChildRequest]:
    """Element requests for a list, splitting off a ``[h | t]`` tail."""
    if items and is_cons_cell(items[-1]):
        head, tail = call_args(items[-1])
        children = _elements(items[:-1] + [head])
        children.append(ChildRequest(tail, "tail", v.HAS_TAIL))
        return children
    return _elements(items)


def _map_children(args: list) -> list[ChildRequest]:
    """Key/value requests for ``%{}`` arguments, including ``%{base | k: v}``."""
    children = []
    entries = args
    if len(args) == 1 and is_cons_cell(args[0]):
        base, updates = call_args(args[0])
        children.append(ChildRequest(base, "subject", v.HAS_SUBJECT))
        entries = updates if isinstance(updates, list) else [updates]
    for i, entry in enumerate(entries):
        if isinstance(entry, tuple) and len(entry) == 2:
            key, value = entry
            children.append(ChildRequest(key, f"key{i}", v.HAS_KEY))
            children.append(ChildRequest(value, f"value{i}", v.HAS_VALUE))
        else:
            children.append(ChildRequest(entry, str(i), v.HAS_ELEMENT))
    return children


def _struct_parts(
    node: Any, resource_id: str, context: ExtractionContext
) -> tuple[list[Statement], list[ChildRequest]]:
    module, fields = call_args(node)
    statements = []
    children = []
    name = alias_name(module)
    if name is not None:
        statements.append(
            object_property(resource_id, v.REFERS_TO_MODULE, module_iri(context.base_iri, name))
        )
    else:
        children.append(ChildRequest(module, "module", v.REFERS_TO_MODULE))
    if call_name(fields) == "%{}":
        children.extend(_map_children(call_args(fields)))
    return statements, children


def _literal_properties(node: Any, resource_id: str) -> list[Statement]:
    """Value property of a terminal node (shared by literals and literal patterns)."""
    if isinstance(node, bool):
        return [datatype_property(resource_id, v.ATOM_VALUE, "true" if node else "false")]
    if node is None:
        return [datatype_property(resource_id, v.ATOM_VALUE, "nil")]
    if isinstance(node, Atom):
        if node.name in ("true", "false", "nil"):
            return [datatype_property(resource_id, v.ATOM_VALUE, node.name)]
        return [datatype_property(resource_id, v.ATOM_VALUE, f":{node.name}")]
    if isinstance(node, int):
        return [datatype_property(resource_id, v.INTEGER_VALUE, node, v.XSD_INTEGER)]
    if isinstance(node, float):
        return [datatype_property(resource_id, v.FLOAT_VALUE, node, v.XSD_DOUBLE)]
    if isinstance(node, str):
        return [datatype_property(resource_id, v.STRING_VALUE, node, v.XSD_STRING)]
    return []


def _clauses(block: Any, prefix: str, predicate: str, mode: Mode) -> list[ChildRequest]:
    return [
        ChildRequest(c, f"{prefix}{i}", predicate, mode)
        for i, c in enumerate(stab_clauses(block))
    ]


# =============================================================================
# Terminals
# =============================================================================


@register(
    Shape.INTEGER,
    Shape.FLOAT,
    Shape.STRING,
    Shape.BOOLEAN,
    Shape.NIL,
    Shape.ATOM,
)
def build_literal(node, resource_id, context):
    shape = classify(node, Mode.EXPRESSION)
    return BuildResult(_typed(resource_id, shape, node) + _literal_properties(node, resource_id))


@register(Shape.CHARLIST)
def build_charlist(node, resource_id, context):
    value = "".join(chr(c) for c in node)
    return BuildResult(
        _typed(resource_id, Shape.CHARLIST, node)
        + [datatype_property(resource_id, v.CHARLIST_VALUE, value, v.XSD_STRING)]
    )


@register(Shape.BINARY)
def build_binary(node, resource_id, context):
    data = binary_bytes(call_args(node)) or b""
    encoded = base64.b64encode(data).decode("ascii")
    return BuildResult(
        _typed(resource_id, Shape.BINARY, node)
        + [datatype_property(resource_id, v.BINARY_VALUE, encoded, v.XSD_BASE64)]
    )


@register(Shape.VARIABLE, Shape.VARIABLE_PATTERN)
def build_variable(node, resource_id, context):
    shape = Shape.VARIABLE_PATTERN if context.mode is Mode.PATTERN else Shape.VARIABLE
    return BuildResult(
        _typed(resource_id, shape, node)
        + [datatype_property(resource_id, v.NAME, node[0].name)]
    )


@register(Shape.WILDCARD)
def build_wildcard(node, resource_id, context):
    return BuildResult(
        _typed(resource_id, Shape.WILDCARD, node) + [datatype_property(resource_id, v.NAME, "_")]
    )


@register(Shape.UNRECOGNIZED)
def build_generic(node, resource_id, context):
    return BuildResult([type_statement(resource_id, v.EXPRESSION)])


# =============================================================================
# Aggregates and literal constructors
# =============================================================================


@register(Shape.LIST, Shape.LIST_PATTERN)
def build_list(node, resource_id, context):
    shape = Shape.LIST_PATTERN if context.mode is Mode.PATTERN else Shape.LIST
    return BuildResult(_typed(resource_id, shape, node), _list_children(node))


@register(Shape.KEYWORD_LIST)
def build_keyword_list(node, resource_id, context):
    children = []
    for i, (key, value) in enumerate(node):
        children.append(ChildRequest(key, f"key{i}", v.HAS_KEY))
        children.append(ChildRequest(value, f"value{i}", v.HAS_VALUE))
    return BuildResult(_typed(resource_id, Shape.KEYWORD_LIST, node), children)


@register(Shape.TUPLE, Shape.TUPLE_PATTERN)
def build_tuple(node, resource_id, context):
    shape = Shape.TUPLE_PATTERN if context.mode is Mode.PATTERN else Shape.TUPLE
    items = list(node) if len(node) == 2 else call_args(node)
    return BuildResult(_typed(resource_id, shape, node), _elements(items))


@register(Shape.MAP, Shape.MAP_PATTERN)
def build_map(node, resource_id, context):
    shape = Shape.MAP_PATTERN if context.mode is Mode.PATTERN else Shape.MAP
    return BuildResult(_typed(resource_id, shape, node), _map_children(call_args(node)))


@register(Shape.STRUCT, Shape.STRUCT_PATTERN)
def build_struct(node, resource_id, context):
    shape = Shape.STRUCT_PATTERN if context.mode is Mode.PATTERN else Shape.STRUCT
    statements, children = _struct_parts(node, resource_id, context)
    return BuildResult(_typed(resource_id, shape, node) + statements, children)


@register(Shape.BINARY_PATTERN)
def build_binary_pattern(node, resource_id, context):
    return BuildResult(
        _typed(resource_id, Shape.BINARY_PATTERN, node), _elements(call_args(node))
    )


@register(Shape.SIGIL)
def build_sigil(node, resource_id, context):
    name = call_name(node) or ""
    content, modifiers = call_args(node)
    statements = _typed(resource_id, Shape.SIGIL, node)
    statements.append(datatype_property(resource_id, v.SIGIL_CHAR, name[len("sigil_"):]))

    children = []
    parts = call_args(content) if call_name(content) == "<<>>" else [content]
    text = []
    for i, part in enumerate(parts):
        if isinstance(part, str):
            text.append(part)
        else:
            # interpolated segment
            children.append(ChildRequest(part, str(i), v.HAS_ELEMENT, Mode.EXPRESSION))
    statements.append(datatype_property(resource_id, v.SIGIL_CONTENT, "".join(text)))

    if isinstance(modifiers, list):
        modifiers = "".join(
            chr(c) for c in modifiers if isinstance(c, int) and not isinstance(c, bool)
        )
    if isinstance(modifiers, str) and modifiers:
        statements.append(datatype_property(resource_id, v.SIGIL_MODIFIERS, modifiers))
    return BuildResult(statements, children)


@register(Shape.RANGE)
def build_range(node, resource_id, context):
    args = call_args(node)
    children = [
        ChildRequest(args[0], "start", v.RANGE_START),
        ChildRequest(args[1], "end", v.RANGE_END),
    ]
    if len(args) == 3:
        children.append(ChildRequest(args[2], "step", v.RANGE_STEP))
    return BuildResult(_typed(resource_id, Shape.RANGE, node), children)


@register(Shape.ALIAS)
def build_alias(node, resource_id, context):
    statements = _typed(resource_id, Shape.ALIAS, node)
    name = alias_name(node)
    if name is not None:
        statements.append(datatype_property(resource_id, v.MODULE_NAME, name))
    return BuildResult(statements)


@register(Shape.MODULE_ATTRIBUTE)
def build_module_attribute(node, resource_id, context):
    statements = _typed(resource_id, Shape.MODULE_ATTRIBUTE, node)
    (target,) = call_args(node)
    children = []
    name = call_name(target)
    if name is not None:
        statements.append(datatype_property(resource_id, v.ATTRIBUTE_NAME, name))
        values = call_args(target)
        if len(values) == 1:
            children.append(ChildRequest(values[0], "value", v.HAS_VALUE, Mode.EXPRESSION))
    return BuildResult(statements, children)


# =============================================================================
# Operators
# =============================================================================


@register(
    Shape.COMPARISON,
    Shape.LOGICAL,
    Shape.ARITHMETIC,
    Shape.PIPE,
    Shape.STRING_CONCAT,
    Shape.LIST_OPERATOR,
    Shape.MATCH,
    Shape.IN,
    Shape.BINARY_SEGMENT,
)
def build_binary_operator(node, resource_id, context):
    shape = classify(node, context.mode)
    left, right = call_args(node)
    statements = _typed(resource_id, shape, node)
    statements.append(datatype_property(resource_id, v.OPERATOR_SYMBOL, _operator(node)))
    return BuildResult(
        statements,
        [
            ChildRequest(left, "left", v.HAS_LEFT_OPERAND),
            ChildRequest(right, "right", v.HAS_RIGHT_OPERAND),
        ],
    )


@register(Shape.UNARY_LOGICAL, Shape.UNARY_ARITHMETIC)
def build_unary_operator(node, resource_id, context):
    shape = Shape.UNARY_LOGICAL if _operator(node) in ("not", "!") else Shape.UNARY_ARITHMETIC
    (operand,) = call_args(node)
    statements = _typed(resource_id, shape, node)
    statements.append(datatype_property(resource_id, v.OPERATOR_SYMBOL, _operator(node)))
    return BuildResult(statements, [ChildRequest(operand, "operand", v.HAS_OPERAND)])


@register(Shape.CAPTURE)
def build_capture(node, resource_id, context):
    """``&1``, ``&fun/2``, ``&Mod.fun/2``, ``&Mod.fun`` or ``&(expr)``."""
    (target,) = call_args(node)
    statements = _typed(resource_id, Shape.CAPTURE, node)
    statements.append(datatype_property(resource_id, v.OPERATOR_SYMBOL, "&"))

    if isinstance(target, int) and not isinstance(target, bool):
        statements.append(datatype_property(resource_id, v.CAPTURE_INDEX, target))
        return BuildResult(statements)

    function_ref, arity = target, None
    if call_name(target) == "/" and len(call_args(target)) == 2:
        ref, maybe_arity = call_args(target)
        if isinstance(maybe_arity, int) and not isinstance(maybe_arity, bool):
            function_ref, arity = ref, maybe_arity

    named = _captured_function(function_ref)
    if named is None:
        return BuildResult(statements, [ChildRequest(target, "operand", v.HAS_OPERAND)])

    module, function = named
    if module is not None:
        statements.append(datatype_property(resource_id, v.CAPTURE_MODULE_NAME, module))
    statements.append(datatype_property(resource_id, v.CAPTURE_FUNCTION_NAME, function))
    if arity is not None:
        statements.append(datatype_property(resource_id, v.CAPTURE_ARITY, arity))
    return BuildResult(statements)


def _captured_function(ref: Any) -> tuple[str | None, str] | None:
    """Return ``(module, function)`` for a named function reference."""
    if not is_node(ref):
        return None
    head, _meta, args = ref
    if is_node(head) and head[0] == Atom(".") and args == []:
        target = call_args(head)
        if len(target) == 2 and isinstance(target[1], Atom):
            module = alias_name(target[0])
            if module is None:
                return None
            return module.lstrip(":"), target[1].name
        return None
    if isinstance(head, Atom) and (args is None or isinstance(args, Atom)):
        # &fun/2 arrives as a bare name before the arity
        return None, head.name
    return None


@register(Shape.PIN_PATTERN)
def build_pin(node, resource_id, context):
    (pinned,) = call_args(node)
    statements = _typed(resource_id, Shape.PIN_PATTERN, node)
    if is_var(pinned):
        statements.append(datatype_property(resource_id, v.NAME, pinned[0].name))
        return BuildResult(statements)
    return BuildResult(statements, [ChildRequest(pinned, "operand", v.HAS_OPERAND, Mode.EXPRESSION)])


@register(Shape.AS_PATTERN)
def build_as_pattern(node, resource_id, context):
    left, right = call_args(node)
    return BuildResult(
        _typed(resource_id, Shape.AS_PATTERN, node),
        [
            ChildRequest(left, "left", v.HAS_PATTERN),
            ChildRequest(right, "right", v.HAS_PATTERN),
        ],
    )


@register(Shape.RESCUE_PATTERN)
def build_rescue_pattern(node, resource_id, context):
    binding, exceptions = call_args(node)
    return BuildResult(
        _typed(resource_id, Shape.RESCUE_PATTERN, node),
        [
            ChildRequest(binding, "pattern", v.HAS_PATTERN, Mode.PATTERN),
            ChildRequest(exceptions, "exception", v.HAS_EXCEPTION, Mode.EXPRESSION),
        ],
    )


@register(Shape.LITERAL_PATTERN)
def build_literal_pattern(node, resource_id, context):
    return BuildResult(
        _typed(resource_id, Shape.LITERAL_PATTERN, node) + _literal_properties(node, resource_id)
    )


# =============================================================================
# Calls
# =============================================================================


@register(Shape.LOCAL_CALL)
def build_local_call(node, resource_id, context):
    args = call_args(node)
    statements = _typed(resource_id, Shape.LOCAL_CALL, node)
    statements.append(datatype_property(resource_id, v.NAME, node[0].name))
    statements.append(datatype_property(resource_id, v.ARITY, len(args)))
    return BuildResult(statements, _elements(args, v.HAS_ARGUMENT, Mode.EXPRESSION, "arg"))


@register(Shape.REMOTE_CALL)
def build_remote_call(node, resource_id, context):
    (receiver, function), args = call_args(node[0]), call_args(node)
    statements = _typed(resource_id, Shape.REMOTE_CALL, node)
    statements.append(datatype_property(resource_id, v.ARITY, len(args)))
    children = []
    module = alias_name(receiver)
    if module is not None:
        statements.append(datatype_property(resource_id, v.NAME, f"{module}.{function.name}"))
        statements.append(datatype_property(resource_id, v.MODULE_NAME, module))
    else:
        statements.append(datatype_property(resource_id, v.NAME, function.name))
        children.append(ChildRequest(receiver, "receiver", v.HAS_RECEIVER))
    statements.append(datatype_property(resource_id, v.FUNCTION_NAME, function.name))
    children.extend(_elements(args, v.HAS_ARGUMENT, Mode.EXPRESSION, "arg"))
    return BuildResult(statements, children)


@register(Shape.ANONYMOUS_CALL)
def build_anonymous_call(node, resource_id, context):
    (function,) = call_args(node[0])
    args = call_args(node)
    statements = _typed(resource_id, Shape.ANONYMOUS_CALL, node)
    statements.append(datatype_property(resource_id, v.ARITY, len(args)))
    children = [ChildRequest(function, "receiver", v.HAS_RECEIVER)]
    children.extend(_elements(args, v.HAS_ARGUMENT, Mode.EXPRESSION, "arg"))
    return BuildResult(statements, children)


@register(Shape.ANONYMOUS_FUNCTION)
def build_anonymous_function(node, resource_id, context):
    return BuildResult(
        _typed(resource_id, Shape.ANONYMOUS_FUNCTION, node),
        _clauses(call_args(node), "", v.HAS_CLAUSE, Mode.PATTERN),
    )


@register(Shape.BLOCK)
def build_block(node, resource_id, context):
    return BuildResult(
        _typed(resource_id, Shape.BLOCK, node),
        _elements(call_args(node), v.HAS_STATEMENT, Mode.EXPRESSION),
    )


@register(Shape.RAISE)
def build_raise(node, resource_id, context):
    args = call_args(node)
    statements = _typed(resource_id, Shape.RAISE, node)
    statements.append(datatype_property(resource_id, v.FUNCTION_NAME, node[0].name))
    return BuildResult(statements, _elements(args, v.HAS_ARGUMENT, Mode.EXPRESSION, "arg"))


# =============================================================================
# Control flow
# =============================================================================


@register(Shape.IF, Shape.UNLESS)
def build_conditional(node, resource_id, context):
    shape = Shape.UNLESS if call_name(node) == "unless" else Shape.IF
    condition, options = call_args(node)
    children = [ChildRequest(condition, "condition", v.HAS_CONDITION, Mode.EXPRESSION)]
    children.append(
        ChildRequest(keyword_get(options, "do"), "then", v.HAS_THEN_BRANCH, Mode.EXPRESSION)
    )
    else_branch = keyword_get(options, "else")
    if else_branch is not None:
        children.append(ChildRequest(else_branch, "else", v.HAS_ELSE_BRANCH, Mode.EXPRESSION))
    return BuildResult(_typed(resource_id, shape, node), children)


@register(Shape.COND)
def build_cond(node, resource_id, context):
    (options,) = call_args(node)
    return BuildResult(
        _typed(resource_id, Shape.COND, node),
        _clauses(keyword_get(options, "do"), "", v.HAS_CLAUSE, Mode.EXPRESSION),
    )


@register(Shape.CASE)
def build_case(node, resource_id, context):
    subject, options = call_args(node)
    children = [ChildRequest(subject, "subject", v.HAS_SUBJECT, Mode.EXPRESSION)]
    children.extend(_clauses(keyword_get(options, "do"), "", v.HAS_CLAUSE, Mode.PATTERN))
    return BuildResult(_typed(resource_id, Shape.CASE, node), children)


@register(Shape.RECEIVE)
def build_receive(node, resource_id, context):
    (options,) = call_args(node)
    statements = _typed(resource_id, Shape.RECEIVE, node)
    children = _clauses(keyword_get(options, "do"), "", v.HAS_CLAUSE, Mode.PATTERN)
    after = stab_clauses(keyword_get(options, "after"))
    statements.append(datatype_property(resource_id, v.HAS_AFTER_TIMEOUT, bool(after)))
    if after:
        children.append(ChildRequest(after[0], "after", v.HAS_AFTER_CLAUSE, Mode.PATTERN))
    return BuildResult(statements, children)


@register(Shape.COND_CLAUSE)
def build_cond_clause(node, resource_id, context):
    head, body = call_args(node)
    if len(head) == 1:
        children = [ChildRequest(head[0], "condition", v.HAS_CONDITION, Mode.EXPRESSION)]
    else:
        children = _elements(head, v.HAS_CONDITION, Mode.EXPRESSION, "condition")
    children.append(ChildRequest(body, "body", v.HAS_BODY, Mode.EXPRESSION))
    return BuildResult(_typed(resource_id, Shape.COND_CLAUSE, node), children)


@register(Shape.MATCH_CLAUSE)
def build_match_clause(node, resource_id, context):
    """``patterns -> body``; a single ``when`` head is split into patterns and guard."""
    head, body = call_args(node)
    guard = None
    if len(head) == 1 and call_name(head[0]) == "when" and len(call_args(head[0])) >= 2:
        *head, guard = call_args(head[0])

    if len(head) == 1:
        children = [ChildRequest(head[0], "pattern", v.HAS_PATTERN, Mode.PATTERN)]
    else:
        children = _elements(head, v.HAS_PATTERN, Mode.PATTERN, "pattern")
    if guard is not None:
        children.append(ChildRequest(guard, "guard", v.HAS_GUARD, Mode.EXPRESSION))
    children.append(ChildRequest(body, "body", v.HAS_BODY, Mode.EXPRESSION))
    return BuildResult(_typed(resource_id, Shape.MATCH_CLAUSE, node), children)


@register(Shape.GUARD)
def build_guard(node, resource_id, context):
    *patterns, guard = call_args(node)
    if len(patterns) == 1:
        children = [ChildRequest(patterns[0], "pattern", v.HAS_PATTERN, Mode.PATTERN)]
    else:
        children = _elements(patterns, v.HAS_PATTERN, Mode.PATTERN, "pattern")
    children.append(ChildRequest(guard, "guard", v.HAS_GUARD, Mode.EXPRESSION))
    return BuildResult(_typed(resource_id, Shape.GUARD, node), children)


@register(Shape.GENERATOR)
def build_generator(node, resource_id, context):
    pattern, source = call_args(node)
    statements = _typed(resource_id, Shape.GENERATOR, node)
    statements.append(datatype_property(resource_id, v.OPERATOR_SYMBOL, "<-"))
    return BuildResult(
        statements,
        [
            ChildRequest(pattern, "pattern", v.HAS_PATTERN, Mode.PATTERN),
            ChildRequest(source, "source", v.HAS_SOURCE, Mode.EXPRESSION),
        ],
    )


@register(Shape.WITH)
def build_with(node, resource_id, context):
    clauses, options = split_do_block(call_args(node))
    statements = _typed(resource_id, Shape.WITH, node)
    children = _elements(clauses, v.HAS_CLAUSE, Mode.EXPRESSION)
    children.append(ChildRequest(keyword_get(options, "do"), "body", v.HAS_BODY, Mode.EXPRESSION))
    else_clauses = _clauses(keyword_get(options, "else"), "else", v.HAS_ELSE_CLAUSE, Mode.PATTERN)
    statements.append(datatype_property(resource_id, v.HAS_ELSE, bool(else_clauses)))
    children.extend(else_clauses)
    return BuildResult(statements, children)


@register(Shape.FOR)
def build_for(node, resource_id, context):
    qualifiers, options = split_do_block(call_args(node))
    children = []
    generators = 0
    filters = 0
    for qualifier in qualifiers:
        if call_name(qualifier) == "<-":
            children.append(
                ChildRequest(qualifier, f"generator{generators}", v.HAS_GENERATOR, Mode.EXPRESSION)
            )
            generators += 1
        elif isinstance(qualifier, list):
            # trailing options such as into: or uniq: given before do:
            continue
        else:
            children.append(
                ChildRequest(qualifier, f"filter{filters}", v.HAS_FILTER, Mode.EXPRESSION)
            )
            filters += 1

    body = keyword_get(options, "do")
    reducer_clauses = stab_clauses(body)
    if reducer_clauses:
        children.extend(_clauses(body, "body", v.HAS_CLAUSE, Mode.PATTERN))
    else:
        children.append(ChildRequest(body, "body", v.HAS_BODY, Mode.EXPRESSION))
    return BuildResult(_typed(resource_id, Shape.FOR, node), children)


@register(Shape.TRY)
def build_try(node, resource_id, context):
    (options,) = call_args(node)
    children = [ChildRequest(keyword_get(options, "do"), "body", v.HAS_BODY, Mode.EXPRESSION)]
    children.extend(_clauses(keyword_get(options, "rescue"), "rescue", v.HAS_RESCUE_CLAUSE, Mode.PATTERN))
    children.extend(_clauses(keyword_get(options, "catch"), "catch", v.HAS_CATCH_CLAUSE, Mode.PATTERN))
    children.extend(_clauses(keyword_get(options, "else"), "else", v.HAS_ELSE_CLAUSE, Mode.PATTERN))
    after = keyword_get(options, "after")
    if after is not None:
        children.append(ChildRequest(after, "after", v.HAS_AFTER_CLAUSE, Mode.EXPRESSION))
    return BuildResult(_typed(resource_id, Shape.TRY, node), children)


def _check_registry() -> None:
    missing = [shape.name for shape in Shape if shape not in BUILDERS]
    if missing:
        raise RuntimeError(f"No builder registered for shapes: {', '.join(missing)}")


_check_registry()
