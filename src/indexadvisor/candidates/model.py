"""
Index candidate model and its total order.

A candidate is a proposed index: an ordered list of columns on one table.
Candidate lists passed between the scanner, merge engine and composite
builder are always sorted by ``compare_candidates``:

1. relation id
2. number of columns
3. column ids, position by position

Two candidates are duplicates iff they compare equal. Column types are
not part of the key; they only pick an operator class.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Iterable


@functools.total_ordering
@dataclass(eq=False)
class Candidate:
    """
    A proposed (possibly multi-column) index.

    Attributes:
        relid: Id of the table the index is on.
        columns: Column ids (attribute numbers), in index key order.
        types: Column type names, parallel to ``columns``.
        pages: Estimated index size in pages (set by the oracle).
        index_id: Id of the hypothetical index (set during evaluation).
        used: Whether the oracle chose this index for its plan.
        benefit: Share of the cost saving attributed to this index.
    """

    relid: int
    columns: tuple[int, ...]
    types: tuple[str, ...] = ()
    pages: int = 0
    index_id: int | None = None
    used: bool = False
    benefit: float = 0.0

    def __post_init__(self) -> None:
        self.columns = tuple(self.columns)
        self.types = tuple(self.types)
        if not self.columns:
            raise ValueError("a candidate needs at least one column")
        if self.types and len(self.types) != len(self.columns):
            raise ValueError("types must be parallel to columns")

    @classmethod
    def single(cls, relid: int, column: int, type_name: str = "") -> "Candidate":
        """Create a single-column candidate."""
        return cls(relid=relid, columns=(column,), types=(type_name,))

    @property
    def ncols(self) -> int:
        return len(self.columns)

    @property
    def key(self) -> tuple[int, int, tuple[int, ...]]:
        """Sort / equality key."""
        return (self.relid, len(self.columns), self.columns)

    def shares_column(self, other: "Candidate") -> bool:
        """True if both candidates index at least one common column."""
        return not set(self.columns).isdisjoint(other.columns)

    def combine(self, other: "Candidate") -> "Candidate":
        """A new composite candidate: this candidate's columns, then ``other``'s."""
        return Candidate(
            relid=self.relid,
            columns=self.columns + other.columns,
            types=_pad_types(self) + _pad_types(other),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Candidate):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: "Candidate") -> bool:
        return self.key < other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        cols = ",".join(str(c) for c in self.columns)
        return f"{self.relid}_({cols})"


def _pad_types(candidate: Candidate) -> tuple[str, ...]:
    return candidate.types or ("",) * candidate.ncols


def compare_candidates(c1: Candidate, c2: Candidate) -> int:
    """
    Three-way comparison implementing the candidate total order.

    Returns a negative number, zero, or a positive number.
    """
    result = c1.relid - c2.relid
    if result == 0:
        result = c1.ncols - c2.ncols
        if result == 0:
            for a, b in zip(c1.columns, c2.columns):
                result = a - b
                if result != 0:
                    break
    return result


def is_sorted(candidates: list[Candidate]) -> bool:
    """True if the list is strictly ascending (sorted and duplicate free)."""
    return all(
        compare_candidates(a, b) < 0 for a, b in zip(candidates, candidates[1:])
    )


def format_candidates(candidates: Iterable[Candidate]) -> str:
    """Render candidates for debug logging: ``16384_(1,2), 16384_(3)``."""
    return ", ".join(str(c) for c in candidates)
