"""
Lowering driver: syntax tree in, flat set of graph statements out.

Each call runs gate-check, classify, assign identity, build, recurse into
children, merge. The root identifier comes from ``next_root`` (or is fixed
by the caller); every descendant gets ``relative(parent, role)``, so child
identifiers depend only on structure.

Example:
    from exgraph import LoweringDriver, fresh_context, var
    from exgraph.tree import node

    driver = LoweringDriver()
    context = fresh_context(full_mode=True)
    result = driver.lower(node(">", [var("x"), 1]), context)
    if result.produced:
        statements, context = result.statements, result.context
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from exgraph.builders import build
from exgraph.context import ExtractionContext, Mode, next_root, relative
from exgraph.errors import LineageMismatchError
from exgraph.graph import Statement, object_property
from exgraph.shapes import Shape, classify
from exgraph.tree import Atom, is_node

logger = logging.getLogger(__name__)

# Reserved cache key recording which lineage filled the cache
_CACHE_OWNER = "__lineage__"


@dataclass(frozen=True, slots=True)
class Skipped:
    """The gate rejected the call: no identity consumed, no statements."""

    reason: str

    @property
    def produced(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class Produced:
    """A lowered tree: its root identifier, all statements, and the successor context."""

    resource_id: str
    statements: frozenset[Statement]
    context: ExtractionContext

    @property
    def produced(self) -> bool:
        return True


LoweringResult = Produced | Skipped


def structural_key(node: Any) -> Any:
    """Hashable key for a tree with metadata stripped and terminals type-tagged.

    Type tags keep ``1``, ``1.0`` and ``True`` apart.
    """
    if isinstance(node, bool):
        return ("bool", node)
    if node is None:
        return ("none",)
    if isinstance(node, int):
        return ("int", node)
    if isinstance(node, float):
        return ("float", node)
    if isinstance(node, str):
        return ("str", node)
    if isinstance(node, Atom):
        return ("atom", node.name)
    if isinstance(node, list):
        return ("list", tuple(structural_key(item) for item in node))
    if is_node(node):
        return ("node", structural_key(node[0]), structural_key(node[2]))
    if isinstance(node, tuple):
        return ("tuple", tuple(structural_key(item) for item in node))
    try:
        hash(node)
        return ("other", type(node).__name__, node)
    except TypeError:
        return ("other", type(node).__name__, repr(node))


def _is_absent(node: Any) -> bool:
    return node is None or (
        is_node(node) and node[0] == Atom("__block__") and node[2] == []
    )


class LoweringDriver:
    """Recursive entry point for turning trees into statements.

    The driver holds no state between calls; all state lives in the
    ExtractionContext passed in and the successor returned.
    """

    def gate(self, node: Any, context: ExtractionContext) -> Skipped | None:
        """Return a Skipped result if this call must not produce output."""
        if _is_absent(node):
            return Skipped("absent")
        if not context.full_mode:
            return Skipped("flag_only")
        if not context.first_party:
            return Skipped("vendored")
        return None

    def lower(
        self,
        node: Any,
        context: ExtractionContext,
        resource_id: str | None = None,
    ) -> LoweringResult:
        """Lower one top-level tree.

        Args:
            node: Root of the tree to lower.
            context: Current (not superseded) extraction context.
            resource_id: Fixed identifier for the root. When omitted, the
                next root identifier is taken from the context.

        Returns:
            Skipped when gated out, otherwise Produced with the successor context.

        Raises:
            StaleContextError: If ``context`` was already superseded.
            LineageMismatchError: If the context carries a cache filled by
                another lineage.
        """
        context.check_current()

        skipped = self.gate(node, context)
        if skipped is not None:
            logger.debug(f"Skipped lowering ({skipped.reason}) for {context.file_path}")
            return skipped

        cache = self._open_cache(context)
        if cache is not None:
            hit = cache.get((context.mode, structural_key(node)))
            if hit is not None:
                logger.debug(f"Structural cache hit at root: {hit[0]}")
                return Produced(hit[0], hit[1], context.successor(cache=cache))

        if resource_id is None:
            resource_id, context = next_root(context)

        statements: set[Statement] = set()
        self._lower_node(node, resource_id, context.mode, context, cache, statements)

        if cache is not None:
            context = context.successor(cache=cache)
        return Produced(resource_id, frozenset(statements), context)

    def lower_many(
        self, nodes: list[Any], context: ExtractionContext
    ) -> tuple[list[LoweringResult], ExtractionContext]:
        """Lower several top-level trees, threading the context between them."""
        results = []
        for tree in nodes:
            result = self.lower(tree, context)
            if isinstance(result, Produced):
                context = result.context
            results.append(result)
        return results, context

    def _open_cache(self, context: ExtractionContext) -> dict | None:
        if context.cache is None:
            return None
        cache = dict(context.cache)
        owner = cache.get(_CACHE_OWNER)
        if owner is not None and owner is not context.lineage:
            raise LineageMismatchError(
                f"Structural cache was filled by {owner!r}, not by {context.lineage!r}"
            )
        cache[_CACHE_OWNER] = context.lineage
        return cache

    def _lower_node(
        self,
        node: Any,
        resource_id: str,
        mode: Mode,
        context: ExtractionContext,
        cache: dict | None,
        out: set[Statement],
    ) -> str:
        """Lower ``node`` at ``resource_id`` into ``out``; return the identifier used.

        The returned identifier differs from ``resource_id`` only on a cache hit.
        """
        key = None
        if cache is not None:
            key = (mode, structural_key(node))
            hit = cache.get(key)
            if hit is not None:
                out.update(hit[1])
                return hit[0]

        shape = classify(node, mode)
        if shape is Shape.UNRECOGNIZED:
            logger.debug(f"Unrecognized {mode.value} shape at {resource_id}: {type(node).__name__}")

        result = build(shape, node, resource_id, context.with_mode(mode))
        own = set(result.statements)
        for request in result.children:
            child_id = self._lower_node(
                request.node,
                relative(resource_id, request.role),
                request.mode or mode,
                context,
                cache,
                own,
            )
            own.add(object_property(resource_id, request.predicate, child_id))

        if key is not None:
            cache[key] = (resource_id, frozenset(own))
        out.update(own)
        return resource_id


_default_driver = LoweringDriver()


def lower(node: Any, context: ExtractionContext, resource_id: str | None = None) -> LoweringResult:
    """Lower ``node`` with a shared stateless driver."""
    return _default_driver.lower(node, context, resource_id)
