"""
Relevance filter: drop candidates that cannot or need not be built.

A candidate is irrelevant if
(a) its table is a system or temporary table, or
(b) an existing valid, non-expression, non-partial index has exactly the
    same key columns in the same order.

The scanner already skips ineligible tables, but composites can be formed
from candidates produced before a table's eligibility was known, so the
table check is repeated here.

Only exact matches count as redundant: a candidate that is a prefix of a
wider existing index is kept.
"""

from __future__ import annotations

import logging
from typing import Sequence

from indexadvisor.candidates.model import Candidate, format_candidates
from indexadvisor.catalog.base import Catalog, ExistingIndex

logger = logging.getLogger(__name__)


def matches_existing_index(candidate: Candidate, index: ExistingIndex) -> bool:
    """True if ``index`` has exactly the candidate's key columns, in order."""
    if len(index.columns) != candidate.ncols:
        return False
    return all(a == b for a, b in zip(candidate.columns, index.columns))


def remove_irrelevant_candidates(
    candidates: list[Candidate],
    catalog: Catalog,
) -> list[Candidate]:
    """
    Filter a query's candidate list.

    Order is preserved, so a sorted input gives a sorted output.
    """
    eligible: dict[int, bool] = {}
    indexes: dict[int, Sequence[ExistingIndex]] = {}
    relevant: list[Candidate] = []

    for cand in candidates:
        relid = cand.relid

        if relid not in eligible:
            eligible[relid] = catalog.table_eligible(relid)
            if not eligible[relid]:
                logger.debug(
                    "Index candidate(s) on an unsupported relation (%d) found", relid
                )
        if not eligible[relid]:
            continue

        if relid not in indexes:
            indexes[relid] = [
                idx for idx in catalog.existing_indexes(relid) if idx.is_plain
            ]

        match = next(
            (idx for idx in indexes[relid] if matches_existing_index(cand, idx)),
            None,
        )
        if match is not None:
            logger.debug(
                "Candidate %s matches existing index %s; ignoring it",
                cand, match.name or match.columns,
            )
            continue

        relevant.append(cand)

    logger.debug(
        "Relevant candidates: |%d| {%s}", len(relevant), format_candidates(relevant)
    )
    return relevant
