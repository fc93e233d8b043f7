"""Exceptions raised by exgraph.

Only caller contract violations and invalid configuration raise. Malformed or
unrecognized trees are lowered to generic expressions instead.
"""


class ExgraphError(Exception):
    """Base exception for exgraph."""


class ContextMisuseError(ExgraphError):
    """An extraction context was used in a way its lineage does not allow.

    This is a programming error in the caller. It is never retried or
    caught inside the engine.
    """


class StaleContextError(ContextMisuseError):
    """A context that has already been superseded by its successor was reused."""

    def __init__(self, generation: int, latest: int):
        self.generation = generation
        self.latest = latest
        super().__init__(
            f"Context generation {generation} is stale: its lineage has "
            f"already advanced to generation {latest}"
        )


class LineageMismatchError(ContextMisuseError):
    """Two contexts from independent top-level calls were mixed."""


class ConfigError(ExgraphError, ValueError):
    """Raised when an extraction configuration fails validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid extraction config: " + "; ".join(errors))
