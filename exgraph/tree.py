"""
Python encoding of Elixir quoted-form syntax trees.

The engine reads trees produced by a parser (or by ``exgraph.ts_adapter``)
in the following shape:

- ``int``, ``float``, ``str``, ``True``/``False``: terminals
- ``Atom("name")``: a bare symbolic name (``NIL`` is the nil sentinel)
- ``list``: a source list; a trailing ``(Atom("|"), meta, [h, t])`` is a cons tail
- 2-tuple: a two-element tuple literal
- ``(head, meta, args)``: an interior node; ``args`` is a list for calls and
  operators, ``None`` or an ``Atom`` for a bound name reference
- ``(Atom("_"),)``: the wildcard

Trees are never mutated. Helpers here only inspect or construct them.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Atom:
    """An Elixir atom such as ``:ok`` or an operator name like ``:+``."""

    name: str

    def __repr__(self) -> str:
        return f":{self.name}"


NIL = Atom("nil")
TRUE = Atom("true")
FALSE = Atom("false")
WILDCARD = (Atom("_"),)

# Metadata keys consulted by the engine
LINE = Atom("line")


def node(name: str, args: list | None = None, line: int | None = None) -> tuple:
    """Build an interior node ``(Atom(name), meta, args)``."""
    meta = [(LINE, line)] if line is not None else []
    return (Atom(name), meta, [] if args is None else args)


def var(name: str, line: int | None = None) -> tuple:
    """Build a bound-name reference ``(Atom(name), meta, None)``."""
    meta = [(LINE, line)] if line is not None else []
    return (Atom(name), meta, None)


def alias(*segments: str) -> tuple:
    """Build a module alias such as ``Enum`` or ``MyApp.Users``."""
    return (Atom("__aliases__"), [], [Atom(s) for s in segments])


def remote(receiver: Any, function: str, args: list | None = None) -> tuple:
    """Build a remote call ``receiver.function(args)``."""
    return ((Atom("."), [], [receiver, Atom(function)]), [], [] if args is None else args)


def block(*statements: Any) -> tuple:
    return (Atom("__block__"), [], list(statements))


def clause(head: list, body: Any) -> tuple:
    """Build a stab clause ``head -> body``."""
    return (Atom("->"), [], [head, body])


def is_node(value: Any) -> bool:
    """True for a 3-tuple with a list of metadata in the middle."""
    return isinstance(value, tuple) and len(value) == 3 and isinstance(value[1], list)


def is_var(value: Any) -> bool:
    """True for a bound-name reference (args position not a list)."""
    return (
        is_node(value)
        and isinstance(value[0], Atom)
        and (value[2] is None or isinstance(value[2], Atom))
    )


def call_name(value: Any) -> str | None:
    """Return the atom name heading an interior node, or None."""
    if is_node(value) and isinstance(value[0], Atom):
        return value[0].name
    return None


def call_args(value: Any) -> list:
    """Return the argument list of an interior node ([] for names)."""
    if is_node(value) and isinstance(value[2], list):
        return value[2]
    return []


def node_line(value: Any) -> int | None:
    """Return the source line recorded in a node's metadata, if any."""
    if not is_node(value):
        return None
    for entry in value[1]:
        if isinstance(entry, tuple) and len(entry) == 2 and entry[0] == LINE:
            line = entry[1]
            if isinstance(line, int) and not isinstance(line, bool):
                return line
    return None


def keyword_get(keywords: Any, key: str, default: Any = None) -> Any:
    """Look up ``key`` in a keyword list like ``[(Atom("do"), body)]``."""
    if not isinstance(keywords, list):
        return default
    for entry in keywords:
        if (
            isinstance(entry, tuple)
            and len(entry) == 2
            and isinstance(entry[0], Atom)
            and entry[0].name == key
        ):
            return entry[1]
    return default


def is_keyword_list(value: Any) -> bool:
    """True for a non-empty list whose items are all ``(Atom, value)`` pairs."""
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(
            isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], Atom)
            for item in value
        )
    )


def alias_name(value: Any) -> str | None:
    """Render ``{:__aliases__, _, [:A, :B]}`` as ``"A.B"``; atoms as ``":mod"``."""
    if call_name(value) == "__aliases__":
        parts = []
        for segment in call_args(value):
            if isinstance(segment, Atom):
                parts.append(segment.name)
            else:
                return None
        return ".".join(parts) if parts else None
    if isinstance(value, Atom):
        return f":{value.name}"
    return None


def split_do_block(args: list) -> tuple[list, list]:
    """Split trailing ``do:`` keyword options off a call's argument list."""
    if args and is_keyword_list(args[-1]) and keyword_get(args[-1], "do", _MISSING) is not _MISSING:
        return args[:-1], args[-1]
    return args, []


def stab_clauses(value: Any) -> list:
    """Return the ``->`` clauses held by a ``do``/``else`` block value."""
    if isinstance(value, list):
        return [item for item in value if call_name(item) == "->"]
    return []


_MISSING = object()
