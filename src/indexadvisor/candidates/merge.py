"""
Ordered merge of candidate lists.

Both inputs must already be sorted by ``compare_candidates``. The merge
is a single two-pointer pass, so it stays linear even when composite
construction makes candidate lists grow quickly.
"""

from __future__ import annotations

import logging

from indexadvisor.candidates.model import (
    Candidate,
    compare_candidates,
    format_candidates,
)

logger = logging.getLogger(__name__)


def merge_candidates(
    list1: list[Candidate],
    list2: list[Candidate],
) -> list[Candidate]:
    """
    Merge two sorted candidate lists into one sorted, duplicate-free list.

    When both lists hold the same candidate, the entry from ``list1`` is
    kept. Merging with an empty list returns the other list unchanged.
    Neither input is modified.
    """
    if not list1:
        return list2
    if not list2:
        return list1

    merged: list[Candidate] = []
    i = j = 0

    while i < len(list1) and j < len(list2):
        cmp = compare_candidates(list1[i], list2[j])

        if cmp <= 0:
            merged.append(list1[i])
            i += 1
            # identical candidates: drop the one from list2
            if cmp == 0:
                j += 1
        else:
            merged.append(list2[j])
            j += 1

    # only one of these has anything left
    merged.extend(list1[i:])
    merged.extend(list2[j:])

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "merge_candidates: |%d| + |%d| -> |%d| {%s}",
            len(list1), len(list2), len(merged), format_candidates(merged),
        )

    return merged
