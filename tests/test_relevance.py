"""
Tests for the relevance filter.
"""

from __future__ import annotations

from indexadvisor.candidates.model import Candidate
from indexadvisor.candidates.relevance import (
    matches_existing_index,
    remove_irrelevant_candidates,
)
from indexadvisor.catalog.base import ExistingIndex
from indexadvisor.catalog.static import StaticCatalog


def c(relid: int, *columns: int) -> Candidate:
    return Candidate(relid=relid, columns=columns)


class TestMatchesExistingIndex:
    def test_exact_match(self) -> None:
        assert matches_existing_index(c(100, 3, 5), ExistingIndex((3, 5)))

    def test_order_matters(self) -> None:
        assert not matches_existing_index(c(100, 5, 3), ExistingIndex((3, 5)))

    def test_prefix_is_not_a_match(self) -> None:
        assert not matches_existing_index(c(100, 3), ExistingIndex((3, 5)))
        assert not matches_existing_index(c(100, 3, 5, 1), ExistingIndex((3, 5)))


class TestRemoveIrrelevantCandidates:
    def test_existing_index_removes_same_column_order_only(self, catalog) -> None:
        # orders has an index on (status, amount) = (3, 5)
        result = remove_irrelevant_candidates([c(100, 3, 5), c(100, 5, 3)], catalog)
        assert result == [c(100, 5, 3)]

    def test_primary_key_removes_single_column_candidate(self, catalog) -> None:
        result = remove_irrelevant_candidates([c(100, 1), c(100, 2), c(200, 1)], catalog)
        assert result == [c(100, 2)]

    def test_prefix_of_existing_index_is_kept(self, catalog) -> None:
        assert remove_irrelevant_candidates([c(100, 3)], catalog) == [c(100, 3)]

    def test_ineligible_tables_are_dropped(self, catalog) -> None:
        result = remove_irrelevant_candidates([c(100, 2), c(400, 1), c(1259, 2)], catalog)
        assert result == [c(100, 2)]

    def test_order_is_preserved(self, catalog) -> None:
        cands = [c(100, 2), c(100, 4), c(100, 1, 2), c(100, 2, 4), c(500, 2)]
        assert remove_irrelevant_candidates(cands, catalog) == cands

    def test_non_plain_indexes_do_not_count(self) -> None:
        catalog = StaticCatalog.from_dict({
            "tables": [{
                "name": "events",
                "relid": 700,
                "columns": [{"name": "a"}, {"name": "b"}, {"name": "c"}],
                "indexes": [
                    {"columns": ["a"], "valid": False},
                    {"columns": ["b"], "partial": True},
                    {"columns": ["c"], "expression": True},
                ],
            }]
        })
        cands = [c(700, 1), c(700, 2), c(700, 3)]
        assert remove_irrelevant_candidates(cands, catalog) == cands

    def test_empty(self, catalog) -> None:
        assert remove_irrelevant_candidates([], catalog) == []
