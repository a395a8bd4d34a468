"""
Composite (multi-column) candidate construction.

Given the candidates of two conjuncts of the same AND, build every
multi-column candidate that would let one index serve both conditions.
For a pair ``a``/``b`` on the same table both key orders are proposed,
``a+b`` and ``b+a``, since column order decides which predicates an
index can serve.

Both inputs are sorted by relation id first, so matching tables are found
with a merge-join style scan: advance whichever side has the smaller
relation id, then take the cross product of the two runs for that table.
"""

from __future__ import annotations

import logging

from indexadvisor.candidates.merge import merge_candidates
from indexadvisor.candidates.model import (
    Candidate,
    compare_candidates,
    format_candidates,
)

logger = logging.getLogger(__name__)


def _run_end(candidates: list[Candidate], start: int) -> int:
    """Index one past the last candidate sharing ``candidates[start]``'s table."""
    relid = candidates[start].relid
    end = start + 1
    while end < len(candidates) and candidates[end].relid == relid:
        end += 1
    return end


def _pair_composites(
    cand1: Candidate,
    cand2: Candidate,
    max_keys: int,
) -> list[Candidate]:
    """Sorted composites for one pair; empty if the pair does not qualify."""
    if cand1.ncols + cand2.ncols > max_keys:
        return []
    if cand1.shares_column(cand2):
        return []

    forward = cand1.combine(cand2)
    backward = cand2.combine(cand1)

    cmp = compare_candidates(forward, backward)
    if cmp == 0:
        return [forward]
    if cmp < 0:
        return [forward, backward]
    return [backward, forward]


def build_composite_candidates(
    list1: list[Candidate],
    list2: list[Candidate],
    max_keys: int = 32,
) -> list[Candidate]:
    """
    Build composite candidates from two sorted candidate lists.

    Args:
        list1: Sorted candidates of the conjuncts seen so far.
        list2: Sorted candidates of the next conjunct.
        max_keys: Maximum index width; wider composites are not built.

    Returns:
        A new sorted, duplicate-free list of composite candidates.
    """
    composites: list[Candidate] = []

    if not list1 or not list2:
        return composites

    i = j = 0
    while i < len(list1) and j < len(list2):
        rel1 = list1[i].relid
        rel2 = list2[j].relid

        if rel1 < rel2:
            i = _run_end(list1, i)
            continue
        if rel1 > rel2:
            j = _run_end(list2, j)
            continue

        end1 = _run_end(list1, i)
        end2 = _run_end(list2, j)

        for cand2 in list2[j:end2]:
            for cand1 in list1[i:end1]:
                pair = _pair_composites(cand1, cand2, max_keys)
                if pair:
                    composites = merge_candidates(pair, composites)

        i, j = end1, end2

    if composites and logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "build_composite_candidates: {%s} x {%s} -> {%s}",
            format_candidates(list1),
            format_candidates(list2),
            format_candidates(composites),
        )

    return composites
