"""exgraph: lower Elixir syntax trees into semantic graph statements."""

__version__ = "0.3.0"

from exgraph.collaborators import CollaboratorResult, ControlFlowExtractor, GuardExtractor
from exgraph.config import (
    ExtractionConfig,
    load_config,
    project_file,
    should_extract_full,
)
from exgraph.context import ExtractionContext, Mode, fresh_context, next_root, relative
from exgraph.errors import (
    ConfigError,
    ContextMisuseError,
    ExgraphError,
    LineageMismatchError,
    StaleContextError,
)
from exgraph.graph import BlankNode, Literal, Statement
from exgraph.lowering import LoweringDriver, Produced, Skipped, lower
from exgraph.shapes import Shape, classify
from exgraph.tree import NIL, WILDCARD, Atom, alias, block, node, remote, var

__all__ = [
    "__version__",
    "Atom",
    "BlankNode",
    "CollaboratorResult",
    "ConfigError",
    "ContextMisuseError",
    "ControlFlowExtractor",
    "ExgraphError",
    "ExtractionConfig",
    "ExtractionContext",
    "GuardExtractor",
    "LineageMismatchError",
    "Literal",
    "LoweringDriver",
    "Mode",
    "NIL",
    "Produced",
    "Shape",
    "Skipped",
    "StaleContextError",
    "Statement",
    "WILDCARD",
    "alias",
    "block",
    "classify",
    "fresh_context",
    "load_config",
    "lower",
    "next_root",
    "node",
    "project_file",
    "relative",
    "remote",
    "should_extract_full",
    "var",
]
