"""
Extraction context and identity generation.

An ExtractionContext is an immutable value threaded through one top-level
lowering call. Every operation that consumes an identifier or grows the
structural cache returns a successor context; the caller must use the
successor from then on. Each context belongs to a lineage (one per top-level
call) that records the newest generation issued, so reusing a superseded
context, or mixing contexts of two lineages, fails immediately.

Identifiers come in two forms:

- root:      ``{namespace}/{counter}``
- relative:  ``{parent}/{role}``

Relative identifiers depend only on the parent identifier and the child's
structural role, which keeps them stable across re-runs.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any
from urllib.parse import quote

from exgraph.config import DEFAULT_BASE_IRI, ExtractionConfig, project_file
from exgraph.errors import StaleContextError


class Mode(enum.Enum):
    """Classification mode for shapes that read differently in patterns."""

    EXPRESSION = "expression"
    PATTERN = "pattern"


class _Lineage:
    """Mutable record shared by every context derived from one fresh context."""

    __slots__ = ("latest",)

    def __init__(self) -> None:
        self.latest = 0

    def __repr__(self) -> str:
        return f"_Lineage(latest={self.latest})"


@dataclass(frozen=True, slots=True)
class ExtractionContext:
    """Immutable state for one top-level lowering call.

    Attributes:
        base_iri: Base IRI of the produced graph.
        namespace: Root identifier namespace; defaults to ``{base_iri}expr``.
        full_mode: Whether full expression extraction is enabled.
        first_party: Whether the source unit is project code (not vendored).
        file_path: Path of the source unit, when known.
        counter: Next root counter value.
        cache: Structural cache (None disables caching).
        mode: Classification mode for the node being lowered.
        generation: Position of this context in its lineage.
    """

    base_iri: str = DEFAULT_BASE_IRI
    namespace: str | None = None
    full_mode: bool = False
    first_party: bool = True
    file_path: str | None = None
    counter: int = 0
    cache: Mapping[Any, Any] | None = field(default=None, compare=False, repr=False)
    mode: Mode = Mode.EXPRESSION
    generation: int = 0
    lineage: _Lineage = field(default_factory=_Lineage, compare=False, repr=False)

    @classmethod
    def for_source_unit(
        cls,
        config: ExtractionConfig,
        file_path: str | None,
        namespace: str | None = None,
    ) -> ExtractionContext:
        """Create a fresh context for one source unit.

        The namespace is derived from the unit path so that units lowered in
        parallel never share an identifier space.
        """
        if namespace is None and file_path is not None:
            quoted = quote(file_path, safe="/", errors="surrogatepass")
            namespace = f"{config.base_iri}expr/{quoted}"
        return cls(
            base_iri=config.base_iri,
            namespace=namespace,
            full_mode=config.include_expressions,
            first_party=project_file(file_path),
            file_path=file_path,
            cache={} if config.structural_cache else None,
        )

    @property
    def root_namespace(self) -> str:
        return self.namespace if self.namespace is not None else f"{self.base_iri}expr"

    @property
    def gate_open(self) -> bool:
        """True when this context allows full extraction."""
        return self.full_mode and self.first_party

    @property
    def caching(self) -> bool:
        return self.cache is not None

    def with_mode(self, mode: Mode) -> ExtractionContext:
        """Same context, different classification mode (not a successor)."""
        if mode is self.mode:
            return self
        return replace(self, mode=mode)

    def check_current(self) -> None:
        """Raise StaleContextError if a successor of this context exists."""
        if self.generation != self.lineage.latest:
            raise StaleContextError(self.generation, self.lineage.latest)

    def successor(self, **changes: Any) -> ExtractionContext:
        """Return the next context in this lineage, superseding this one."""
        self.check_current()
        self.lineage.latest += 1
        cache = changes.pop("cache", self.cache)
        if cache is not None and not isinstance(cache, MappingProxyType):
            cache = MappingProxyType(dict(cache))
        return replace(
            self,
            cache=cache,
            generation=self.lineage.latest,
            **changes,
        )


def fresh_context(**kwargs: Any) -> ExtractionContext:
    """Create a context with a new lineage (one per top-level call)."""
    if kwargs.pop("structural_cache", False):
        kwargs.setdefault("cache", {})
    return ExtractionContext(**kwargs)


def next_root(context: ExtractionContext) -> tuple[str, ExtractionContext]:
    """Issue the next root identifier.

    Returns:
        ``(identifier, successor_context)``. The input context is superseded.

    Raises:
        StaleContextError: If ``context`` was already superseded.
    """
    identifier = f"{context.root_namespace}/{context.counter}"
    return identifier, context.successor(counter=context.counter + 1)


def relative(parent: str, role: str | int) -> str:
    """Identifier of the child filling ``role`` under ``parent``."""
    return f"{parent}/{role}"
