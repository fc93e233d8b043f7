"""
Guard and control-flow extractors built on top of the lowering driver.

Both extractors optionally hold a LoweringDriver. When a driver is present
and the context's gate is open, each guard, condition, branch or clause is
lowered and linked with an object edge. Otherwise the extractor emits the
flag-only form: boolean ``has*`` properties, and a GuardClause blank node for
guards. Consumers that only understand flag-only graphs rely on that form.

IRIs of control-flow expressions:

    {base_iri}cond/{containing_function}/{index}     if, unless, cond
    {base_iri}case/{containing_function}/{index}
    {base_iri}with/{containing_function}/{index}
    {base_iri}receive/{containing_function}/{index}
    {base_iri}for/{containing_function}/{index}
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any

from exgraph import vocab as v
from exgraph.builders import SHAPE_CLASSES
from exgraph.context import ExtractionContext, Mode
from exgraph.graph import (
    BlankNode,
    Statement,
    datatype_property,
    object_property,
    type_statement,
)
from exgraph.lowering import LoweringDriver, Produced
from exgraph.shapes import Shape, classify
from exgraph.tree import call_args, call_name, keyword_get, node_line, split_do_block, stab_clauses

logger = logging.getLogger(__name__)

_IRI_KINDS = {
    Shape.IF: "cond",
    Shape.UNLESS: "cond",
    Shape.COND: "cond",
    Shape.CASE: "case",
    Shape.WITH: "with",
    Shape.RECEIVE: "receive",
    Shape.FOR: "for",
}


@dataclass(slots=True)
class CollaboratorResult:
    """Output of a collaborator: its resource, statements and successor context."""

    resource_id: str
    statements: list[Statement] = field(default_factory=list)
    context: ExtractionContext | None = None

    def to_dict(self) -> dict:
        return {
            "resource": self.resource_id,
            "statements": [s.to_dict() for s in self.statements],
        }


class _DriverClient:
    """Shared logic for extractors that may delegate to the lowering driver."""

    def __init__(self, driver: LoweringDriver | None = None):
        self.driver = driver

    def builds_expressions(self, context: ExtractionContext) -> bool:
        return self.driver is not None and context.gate_open

    def _lower(
        self, node: Any, resource_id: str, context: ExtractionContext, mode: Mode
    ) -> Produced | None:
        """Lower ``node`` at a fixed identifier, or return None to fall back to flags."""
        if not self.builds_expressions(context):
            return None
        result = self.driver.lower(node, context.with_mode(mode), resource_id=resource_id)
        if not isinstance(result, Produced):
            logger.debug(f"Driver skipped {resource_id} ({result.reason}); using flag")
            return None
        return result

    def _edge_or_flag(
        self,
        subject: str,
        predicate: str,
        node: Any,
        role: str,
        context: ExtractionContext,
        out: list[Statement],
        mode: Mode = Mode.EXPRESSION,
    ) -> ExtractionContext:
        """Append an edge to the lowered ``node``, or a ``True`` flag; return the context."""
        lowered = self._lower(node, f"{subject}/{role}", context, mode)
        if lowered is None:
            out.append(datatype_property(subject, predicate, True, v.XSD_BOOLEAN))
            return context
        out.extend(lowered.statements)
        out.append(object_property(subject, predicate, lowered.resource_id))
        return lowered.context.with_mode(context.mode)


# =============================================================================
# Guards
# =============================================================================


def guard_blank_node(clause_id: str) -> BlankNode:
    """Deterministic blank node for the guard of ``clause_id``."""
    digest = hashlib.sha1(clause_id.encode("utf-8", "surrogatepass")).hexdigest()[:16]
    return BlankNode(f"guard{digest}")


class GuardExtractor(_DriverClient):
    """Links a clause head to its guard expression."""

    def extract(
        self, clause_id: str, guard: Any, context: ExtractionContext
    ) -> CollaboratorResult:
        """Produce the guard statements for one clause.

        Args:
            clause_id: Identifier of the clause (or function head) owning the guard.
            guard: Guard expression tree, or None when the clause has no guard.
            context: Current extraction context.

        Returns:
            CollaboratorResult whose statements link ``clause_id`` via hasGuard.
        """
        if guard is None:
            return CollaboratorResult(clause_id, [], context)

        lowered = self._lower(guard, f"{clause_id}/guard", context, Mode.EXPRESSION)
        if lowered is not None:
            statements = list(lowered.statements)
            statements.append(object_property(clause_id, v.HAS_GUARD, lowered.resource_id))
            return CollaboratorResult(
                clause_id, statements, lowered.context.with_mode(context.mode)
            )

        guard_node = guard_blank_node(clause_id)
        return CollaboratorResult(
            clause_id,
            [
                type_statement(guard_node, v.GUARD_CLAUSE),
                object_property(clause_id, v.HAS_GUARD, guard_node),
            ],
            context,
        )


# =============================================================================
# Control flow
# =============================================================================


def control_flow_iri(
    base_iri: str, kind: str, containing_function: str, index: int
) -> str:
    return f"{base_iri}{kind}/{containing_function}/{index}"


class ControlFlowExtractor(_DriverClient):
    """Builds statements for if/unless/cond/case/with/receive/for expressions."""

    def extract(
        self,
        node: Any,
        context: ExtractionContext,
        containing_function: str = "unknown/0",
        index: int = 0,
    ) -> CollaboratorResult | None:
        """Extract one control-flow expression.

        Args:
            node: The control-flow tree node.
            context: Current extraction context.
            containing_function: ``Module/name/arity`` fragment of the enclosing function.
            index: Position of the expression within the enclosing function.

        Returns:
            CollaboratorResult, or None when ``node`` is not a control-flow form.
        """
        shape = classify(node, Mode.EXPRESSION)
        kind = _IRI_KINDS.get(shape)
        if kind is None:
            return None

        iri = control_flow_iri(context.base_iri, kind, containing_function, index)
        statements = [type_statement(iri, SHAPE_CLASSES[shape])]
        line = node_line(node)
        if line is not None:
            statements.append(datatype_property(iri, v.START_LINE, line))

        if shape in (Shape.IF, Shape.UNLESS):
            context = self._conditional(iri, node, context, statements)
        elif shape is Shape.COND:
            (options,) = call_args(node)
            context = self._clauses(
                iri, stab_clauses(keyword_get(options, "do")), Mode.EXPRESSION, context, statements
            )
        elif shape is Shape.CASE:
            context = self._case(iri, node, context, statements)
        elif shape is Shape.WITH:
            context = self._with(iri, node, context, statements)
        elif shape is Shape.RECEIVE:
            context = self._receive(iri, node, context, statements)
        else:
            context = self._comprehension(iri, node, context, statements)

        return CollaboratorResult(iri, statements, context)

    def _conditional(self, iri, node, context, out):
        condition, options = call_args(node)
        context = self._edge_or_flag(iri, v.HAS_CONDITION, condition, "condition", context, out)
        context = self._edge_or_flag(
            iri, v.HAS_THEN_BRANCH, keyword_get(options, "do"), "then", context, out
        )
        else_branch = keyword_get(options, "else")
        if else_branch is not None:
            context = self._edge_or_flag(iri, v.HAS_ELSE_BRANCH, else_branch, "else", context, out)
        return context

    def _clauses(self, iri, clauses, mode, context, out, predicate=v.HAS_CLAUSE, prefix=""):
        """One edge per clause in full mode; a single ``hasClause`` flag otherwise."""
        if not clauses:
            return context
        if not self.builds_expressions(context):
            out.append(datatype_property(iri, predicate, True, v.XSD_BOOLEAN))
            return context
        for i, clause in enumerate(clauses):
            lowered = self._lower(clause, f"{iri}/{prefix}{i}", context, mode)
            if lowered is None:
                out.append(datatype_property(iri, predicate, True, v.XSD_BOOLEAN))
                continue
            out.extend(lowered.statements)
            out.append(object_property(iri, predicate, lowered.resource_id))
            context = lowered.context.with_mode(context.mode)
        return context

    def _case(self, iri, node, context, out):
        subject, options = call_args(node)
        clauses = stab_clauses(keyword_get(options, "do"))
        lowered = self._lower(subject, f"{iri}/subject", context, Mode.EXPRESSION)
        if lowered is not None:
            out.extend(lowered.statements)
            out.append(object_property(iri, v.HAS_SUBJECT, lowered.resource_id))
            context = lowered.context.with_mode(context.mode)
        elif any(_has_guard(clause) for clause in clauses):
            out.append(datatype_property(iri, v.HAS_GUARD, True, v.XSD_BOOLEAN))
        return self._clauses(iri, clauses, Mode.PATTERN, context, out)

    def _with(self, iri, node, context, out):
        clauses, options = split_do_block(call_args(node))
        else_clauses = stab_clauses(keyword_get(options, "else"))
        out.append(datatype_property(iri, v.HAS_ELSE, bool(else_clauses)))
        context = self._clauses(iri, clauses, Mode.EXPRESSION, context, out)
        if self.builds_expressions(context):
            context = self._edge_or_flag(iri, v.HAS_BODY, keyword_get(options, "do"), "body", context, out)
            context = self._clauses(
                iri, else_clauses, Mode.PATTERN, context, out, v.HAS_ELSE_CLAUSE, "else"
            )
        return context

    def _receive(self, iri, node, context, out):
        (options,) = call_args(node)
        after = stab_clauses(keyword_get(options, "after"))
        out.append(datatype_property(iri, v.HAS_AFTER_TIMEOUT, bool(after)))
        context = self._clauses(
            iri, stab_clauses(keyword_get(options, "do")), Mode.PATTERN, context, out
        )
        if after and self.builds_expressions(context):
            context = self._edge_or_flag(
                iri, v.HAS_AFTER_CLAUSE, after[0], "after", context, out, Mode.PATTERN
            )
        return context

    def _comprehension(self, iri, node, context, out):
        qualifiers, options = split_do_block(call_args(node))
        generators = [q for q in qualifiers if call_name(q) == "<-"]
        filters = [q for q in qualifiers if call_name(q) != "<-" and not isinstance(q, list)]
        context = self._clauses(
            iri, generators, Mode.EXPRESSION, context, out, v.HAS_GENERATOR, "generator"
        )
        context = self._clauses(iri, filters, Mode.EXPRESSION, context, out, v.HAS_FILTER, "filter")
        if self.builds_expressions(context):
            context = self._edge_or_flag(iri, v.HAS_BODY, keyword_get(options, "do"), "body", context, out)
        return context


def _has_guard(clause: Any) -> bool:
    head = call_args(clause)[0] if call_args(clause) else []
    return isinstance(head, list) and len(head) == 1 and call_name(head[0]) == "when"
