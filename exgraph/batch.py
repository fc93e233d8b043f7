"""
Fan-out lowering over many source units.

Each unit gets its own ExtractionContext (and so its own lineage and
identifier namespace), so units can be lowered in any order or in parallel
without coordination. Large batches run in a ProcessPoolExecutor; small ones
run sequentially to avoid process spawn overhead. Both paths return identical
results in input order.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from exgraph.config import ExtractionConfig
from exgraph.context import ExtractionContext
from exgraph.graph import Statement
from exgraph.lowering import LoweringDriver, Produced

logger = logging.getLogger(__name__)

# Below this many units, sequential lowering beats process startup
MIN_UNITS_FOR_PARALLEL = 15


@dataclass(frozen=True, slots=True)
class SourceUnit:
    """One source file (or other unit) and the top-level trees it owns."""

    path: str
    trees: tuple = ()


@dataclass(slots=True)
class UnitResult:
    path: str
    full_mode: bool
    root_ids: list[str] = field(default_factory=list)
    statements: frozenset[Statement] = frozenset()
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "full_mode": self.full_mode,
            "roots": self.root_ids,
            "statements": len(self.statements),
            "skipped": self.skipped,
        }


def _lower_unit(args: tuple[SourceUnit, ExtractionConfig]) -> UnitResult:
    """Lower every tree of one unit under a fresh context.

    Must be at module level for ProcessPoolExecutor pickling.
    """
    unit, config = args
    context = ExtractionContext.for_source_unit(config, unit.path)
    results, _ = LoweringDriver().lower_many(list(unit.trees), context)

    root_ids = []
    statements: set[Statement] = set()
    skipped = 0
    for result in results:
        if isinstance(result, Produced):
            root_ids.append(result.resource_id)
            statements.update(result.statements)
        else:
            skipped += 1
    return UnitResult(
        path=unit.path,
        full_mode=context.gate_open,
        root_ids=root_ids,
        statements=frozenset(statements),
        skipped=skipped,
    )


def lower_units(
    units: list[SourceUnit],
    config: ExtractionConfig | None = None,
    max_workers: int | None = None,
    parallel: bool | None = None,
) -> list[UnitResult]:
    """Lower many source units, in parallel when the batch is large.

    Args:
        units: Units to lower; paths should be distinct.
        config: Extraction settings (defaults when omitted).
        max_workers: Worker process cap (defaults to min(cpu_count, 8)).
        parallel: Force (True) or forbid (False) the process pool; by default
            it is used at MIN_UNITS_FOR_PARALLEL units or more.

    Returns:
        One UnitResult per unit, in input order.
    """
    config = config or ExtractionConfig.default()
    units = list(units)
    args_list: list[tuple[Any, ExtractionConfig]] = [(unit, config) for unit in units]

    use_pool = len(units) >= MIN_UNITS_FOR_PARALLEL if parallel is None else parallel
    if use_pool and units:
        max_workers = max_workers or min(os.cpu_count() or 4, 8)
        logger.info(f"Lowering {len(units)} units with {max_workers} workers")
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(_lower_unit, args_list))

    return [_lower_unit(args) for args in args_list]


def merge_statements(results: list[UnitResult]) -> frozenset[Statement]:
    """Union of every unit's statements (the caller-owned accumulator)."""
    merged: set[Statement] = set()
    for result in results:
        merged.update(result.statements)
    return frozenset(merged)
