"""
Budget selector: pick the advisory entries worth building under a size budget.

Two strategies:

- ``select_greedy``: walks entries in the order given (callers pass them
  sorted by benefit/size descending) and stops at the first entry that
  would push the total over the budget. O(n), no backtracking.
- ``select_exact``: 0/1 knapsack by dynamic programming over integer KB.
  Optimal, but the table is O(entries x budget) in memory, so it is meant
  for short recommendation lists and modest budgets.

Sizes and budgets are in KB. ``parse_size`` turns "512", "64K", "10M" or
"2G" into KB.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Sequence

from indexadvisor.advisory.records import AdvisoryEntry
from indexadvisor.config import SelectionStrategy
from indexadvisor.exceptions import BudgetError

logger = logging.getLogger(__name__)

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([KMG]?)B?\s*$", re.IGNORECASE)
_SIZE_MULTIPLIERS = {"": 1, "K": 1, "M": 1024, "G": 1024 * 1024}


@dataclass
class Selection:
    """Entries chosen by a selector, in input order."""

    entries: list[AdvisoryEntry] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)
    budget_kb: int = 0

    @property
    def total_size(self) -> int:
        return compute_config_size(self.entries)

    @property
    def total_benefit(self) -> float:
        return sum(e.benefit for e in self.entries)


def parse_size(value: str) -> int:
    """
    Parse a storage size into KB.

    Unsuffixed numbers are KB; K, M and G (optionally followed by B) mean
    KB, MB and GB. The size must be positive.
    """
    m = _SIZE_PATTERN.match(value)
    if not m:
        raise BudgetError(
            f"Invalid size '{value}'. Use a number optionally suffixed with K, M or G."
        )
    size_kb = int(m.group(1)) * _SIZE_MULTIPLIERS[m.group(2).upper()]
    if size_kb <= 0:
        raise BudgetError(f"Invalid size '{value}'. Budget must be positive.")
    return size_kb


def compute_config_size(entries: Sequence[AdvisoryEntry]) -> int:
    """Total size of a set of entries, in KB."""
    return sum(e.size_kb for e in entries)


def _validate(entries: Sequence[AdvisoryEntry], budget_kb: int) -> None:
    if isinstance(budget_kb, bool) or not isinstance(budget_kb, int) or budget_kb <= 0:
        raise BudgetError(f"Budget must be a positive number of KB, got {budget_kb!r}")
    for i, entry in enumerate(entries):
        if isinstance(entry.size_kb, bool) or not isinstance(entry.size_kb, int) or entry.size_kb < 0:
            raise BudgetError(f"Entry {i} ({entry.table}) has malformed size {entry.size_kb!r}")
        if math.isnan(entry.benefit):
            raise BudgetError(f"Entry {i} ({entry.table}) has malformed benefit")


def select_greedy(entries: Sequence[AdvisoryEntry], budget_kb: int) -> Selection:
    """Accept entries in order until the next one no longer fits."""
    _validate(entries, budget_kb)

    selection = Selection(budget_kb=budget_kb)
    used = 0
    for i, entry in enumerate(entries):
        if used + entry.size_kb > budget_kb:
            logger.debug(
                "Budget of %dKB reached at entry %d (%s, %dKB)",
                budget_kb, i, entry.table, entry.size_kb,
            )
            break
        used += entry.size_kb
        selection.entries.append(entry)
        selection.indices.append(i)

    if entries and not selection.entries:
        logger.warning(
            "Budget of %dKB is smaller than the first recommendation (%dKB)",
            budget_kb, entries[0].size_kb,
        )
    return selection


def select_exact(entries: Sequence[AdvisoryEntry], budget_kb: int) -> Selection:
    """
    Maximise total benefit with total size <= budget.

    Builds a (len(entries)+1) x (budget_kb+1) table, so memory grows with
    both the number of entries and the budget.
    """
    _validate(entries, budget_kb)

    n = len(entries)
    best = [[0.0] * (budget_kb + 1) for _ in range(n + 1)]

    for i in range(1, n + 1):
        size = entries[i - 1].size_kb
        benefit = entries[i - 1].benefit
        prev = best[i - 1]
        row = best[i]
        for w in range(budget_kb + 1):
            row[w] = prev[w]
            if size <= w and prev[w - size] + benefit > row[w]:
                row[w] = prev[w - size] + benefit

    chosen: list[int] = []
    w = budget_kb
    for i in range(n, 0, -1):
        if best[i][w] != best[i - 1][w]:
            chosen.append(i - 1)
            w -= entries[i - 1].size_kb
    chosen.reverse()

    return Selection(
        entries=[entries[i] for i in chosen],
        indices=chosen,
        budget_kb=budget_kb,
    )


def select(
    entries: Sequence[AdvisoryEntry],
    budget_kb: int,
    strategy: SelectionStrategy = SelectionStrategy.GREEDY,
) -> Selection:
    """Run the selector for ``strategy``."""
    if strategy == SelectionStrategy.EXACT:
        return select_exact(entries, budget_kb)
    return select_greedy(entries, budget_kb)
