"""
Graph statements produced by lowering.

A statement is one (subject, predicate, object) triple. Subjects are resource
identifiers (plain strings) or blank nodes; objects are resource identifiers,
blank nodes, or typed literals.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from exgraph.vocab import (
    RDF_TYPE,
    XSD_BOOLEAN,
    XSD_DOUBLE,
    XSD_INTEGER,
    XSD_STRING,
)


@dataclass(frozen=True, slots=True)
class Literal:
    """A typed literal value (string, integer, float or boolean)."""

    value: str | int | float | bool
    datatype: str

    @classmethod
    def of(cls, value: str | int | float | bool) -> "Literal":
        """Infer the XSD datatype from a Python value."""
        # bool first: it is an int subclass
        if isinstance(value, bool):
            return cls(value, XSD_BOOLEAN)
        if isinstance(value, int):
            return cls(value, XSD_INTEGER)
        if isinstance(value, float):
            return cls(value, XSD_DOUBLE)
        return cls(str(value), XSD_STRING)

    def to_dict(self) -> dict:
        return {"value": self.value, "datatype": self.datatype}


@dataclass(frozen=True, slots=True)
class BlankNode:
    """An anonymous node, used by flag-only output for guard clauses."""

    label: str

    def __str__(self) -> str:
        return f"_:{self.label}"


Subject = Union[str, BlankNode]
Object = Union[str, BlankNode, Literal]


@dataclass(frozen=True, slots=True)
class Statement:
    subject: Subject
    predicate: str
    object: Object

    @property
    def is_literal(self) -> bool:
        return isinstance(self.object, Literal)

    def to_dict(self) -> dict:
        obj = self.object.to_dict() if isinstance(self.object, Literal) else str(self.object)
        return {"s": str(self.subject), "p": self.predicate, "o": obj}


def type_statement(subject: Subject, cls: str) -> Statement:
    """The single "is-a" statement for a resource."""
    return Statement(subject, RDF_TYPE, cls)


def datatype_property(
    subject: Subject, predicate: str, value: str | int | float | bool, datatype: str | None = None
) -> Statement:
    literal = Literal(value, datatype) if datatype else Literal.of(value)
    return Statement(subject, predicate, literal)


def object_property(subject: Subject, predicate: str, target: str | BlankNode) -> Statement:
    return Statement(subject, predicate, target)


# =============================================================================
# Query helpers
# =============================================================================


def types_of(statements: Iterable[Statement], subject: Subject) -> set[str]:
    """All classes asserted for ``subject``."""
    return {
        s.object
        for s in statements
        if s.subject == subject and s.predicate == RDF_TYPE
    }


def objects(statements: Iterable[Statement], subject: Subject, predicate: str) -> list:
    """Objects of ``(subject, predicate, ?)``, literal values unwrapped."""
    found = []
    for s in statements:
        if s.subject == subject and s.predicate == predicate:
            found.append(s.object.value if isinstance(s.object, Literal) else s.object)
    return found


def resources(statements: Iterable[Statement]) -> set[Subject]:
    """Every subject that carries an "is-a" statement."""
    return {s.subject for s in statements if s.predicate == RDF_TYPE}


def graph_to_dicts(statements: Iterable[Statement]) -> list[dict]:
    """Serialize statements in a stable order for JSON output or diffing."""
    return sorted(
        (s.to_dict() for s in statements),
        key=lambda d: (d["s"], d["p"], repr(d["o"])),
    )
