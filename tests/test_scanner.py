"""
Tests for the candidate scanner.

Queries are built by hand so the tests pin down the traversal rules
independently of the SQL front end.
"""

from __future__ import annotations

import logging

import pytest

from conftest import CUSTOMERS, ORDERS, orders_query
from indexadvisor.candidates.model import Candidate, is_sorted
from indexadvisor.candidates.scanner import CandidateScanner, ScopeStack
from indexadvisor.config import Config
from indexadvisor.query.tree import (
    Aggref,
    BoolExpr,
    BoolOp,
    Const,
    FuncExpr,
    OpaqueNode,
    OpExpr,
    Param,
    Query,
    RangeTableEntry,
    RelabelType,
    SortGroupClause,
    SubLink,
    SubLinkKind,
    TargetEntry,
    Var,
)


def c(relid: int, *columns: int) -> Candidate:
    return Candidate(relid=relid, columns=columns)


def eq(var: Var, value=1) -> OpExpr:
    return OpExpr("=", (var, Const(value)))


@pytest.fixture
def scanner(catalog) -> CandidateScanner:
    return CandidateScanner(catalog, Config())


class TestScopeStack:
    def test_frames_are_popped_on_exit(self) -> None:
        scopes = ScopeStack()
        with scopes.frame((ORDERS,)):
            with scopes.frame((CUSTOMERS,)):
                assert len(scopes) == 2
                assert scopes.resolve(Var(1, 1)) == CUSTOMERS
                assert scopes.resolve(Var(1, 1, levels_up=1)) == ORDERS
            assert len(scopes) == 1
        assert len(scopes) == 0

    def test_frames_are_popped_on_error(self) -> None:
        scopes = ScopeStack()
        with pytest.raises(RuntimeError):
            with scopes.frame((ORDERS,)):
                raise RuntimeError("boom")
        assert len(scopes) == 0

    def test_out_of_range_references(self) -> None:
        scopes = ScopeStack()
        with scopes.frame((ORDERS,)):
            assert scopes.resolve(Var(2, 1)) is None
            assert scopes.resolve(Var(1, 1, levels_up=1)) is None


class TestFilterScanning:
    def test_conjunction_builds_composites(self, scanner) -> None:
        result = scanner.scan(orders_query())
        assert result == [c(100, 2), c(100, 4), c(100, 2, 4), c(100, 4, 2)]
        assert is_sorted(result)

    def test_three_conjuncts(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            where=BoolExpr(BoolOp.AND, (eq(Var(1, 2)), eq(Var(1, 3)), eq(Var(1, 4)))),
        )
        result = scanner.scan(query)
        # each conjunct pairs with the single-column candidates before it
        assert result == [
            c(100, 2), c(100, 3), c(100, 4),
            c(100, 2, 3), c(100, 2, 4), c(100, 3, 2), c(100, 3, 4), c(100, 4, 2), c(100, 4, 3),
        ]
        assert is_sorted(result)

    def test_or_merges_without_composites(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            where=BoolExpr(BoolOp.OR, (eq(Var(1, 2)), eq(Var(1, 4)))),
        )
        assert scanner.scan(query) == [c(100, 2), c(100, 4)]

    def test_not(self, scanner) -> None:
        query = Query(range_table=(ORDERS,), where=BoolExpr(BoolOp.NOT, (eq(Var(1, 3)),)))
        assert scanner.scan(query) == [c(100, 3)]

    def test_non_indexable_operator_is_ignored(self, scanner) -> None:
        query = Query(range_table=(ORDERS,), where=OpExpr("~~", (Var(1, 3), Const("a%"))))
        assert scanner.scan(query) == []

    def test_configured_operators(self, catalog) -> None:
        scanner = CandidateScanner(catalog, Config(), operators=["~~"])
        query = Query(range_table=(ORDERS,), where=OpExpr("~~", (Var(1, 3), Const("a%"))))
        assert scanner.scan(query) == [c(100, 3)]

    def test_join_condition_gives_both_sides(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS, CUSTOMERS),
            where=BoolExpr(BoolOp.AND, (
                OpExpr("=", (Var(1, 2), Var(2, 1))),
                eq(Var(2, 3), "EU"),
            )),
        )
        result = scanner.scan(query)
        assert result == [c(100, 2), c(200, 1), c(200, 3), c(200, 1, 3), c(200, 3, 1)]

    def test_relabel_and_functions(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            where=OpExpr(">", (RelabelType(Var(1, 4), "date"), FuncExpr("now"))),
        )
        assert scanner.scan(query) == [c(100, 4)]

    def test_params_and_constants_contribute_nothing(self, scanner) -> None:
        query = Query(range_table=(ORDERS,), where=OpExpr("=", (Param(1), Const(1))))
        assert scanner.scan(query) == []


class TestColumnEligibility:
    def test_small_table_is_skipped(self, scanner) -> None:
        tiny = RangeTableEntry.relation(300, "tiny")
        assert scanner.scan(Query(range_table=(tiny,), where=eq(Var(1, 2)))) == []

    def test_min_table_rows_is_configurable(self, catalog) -> None:
        scanner = CandidateScanner(catalog, Config(min_table_rows=0))
        tiny = RangeTableEntry.relation(300, "tiny")
        assert scanner.scan(Query(range_table=(tiny,), where=eq(Var(1, 2)))) == [c(300, 2)]

    def test_temporary_and_system_tables_are_skipped(self, scanner) -> None:
        scratch = RangeTableEntry.relation(400, "scratch")
        pg_class = RangeTableEntry.relation(1259, "pg_class")
        assert scanner.scan(Query(range_table=(scratch,), where=eq(Var(1, 1)))) == []
        assert scanner.scan(Query(range_table=(pg_class,), where=eq(Var(1, 2)))) == []

    def test_system_columns_are_skipped(self, scanner) -> None:
        assert scanner.scan(Query(range_table=(ORDERS,), where=eq(Var(1, 0)))) == []
        assert scanner.scan(Query(range_table=(ORDERS,), where=eq(Var(1, -1)))) == []

    def test_unresolvable_reference_is_logged(self, scanner, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            assert scanner.scan(Query(range_table=(ORDERS,), where=eq(Var(3, 1)))) == []
        assert "does not resolve" in caplog.text


class TestSubqueries:
    def test_correlated_reference_two_levels_out(self, scanner) -> None:
        order_items = RangeTableEntry.relation(500, "order_items")
        innermost = Query(
            range_table=(order_items,),
            where=BoolExpr(BoolOp.AND, (
                OpExpr("=", (Var(1, 2), Var(1, 2, levels_up=2))),   # orders.customer_id
                OpExpr("=", (Var(1, 3), Var(1, 3, levels_up=1))),   # customers.region
            )),
        )
        middle = Query(range_table=(CUSTOMERS,), where=SubLink(SubLinkKind.EXISTS, innermost))
        outer = Query(range_table=(ORDERS,), where=SubLink(SubLinkKind.EXISTS, middle))

        result = scanner.scan(outer)

        assert c(100, 2) in result
        assert c(200, 3) in result
        assert result == [
            c(100, 2), c(200, 3), c(500, 2), c(500, 3), c(500, 2, 3), c(500, 3, 2),
        ]

    def test_in_subselect_scans_test_expression_in_outer_scope(self, scanner) -> None:
        sub = Query(range_table=(CUSTOMERS,), where=eq(Var(1, 3), "EU"))
        query = Query(
            range_table=(ORDERS,),
            where=SubLink(SubLinkKind.ANY, sub, OpExpr("=", (Var(1, 2), Param(1)))),
        )
        assert scanner.scan(query) == [c(100, 2), c(200, 3)]

    def test_from_subquery_is_scanned(self, scanner) -> None:
        sub = Query(range_table=(CUSTOMERS,), where=eq(Var(1, 3), "EU"))
        query = Query(
            range_table=(ORDERS, RangeTableEntry.sub_select(sub, "c")),
            where=eq(Var(1, 2)),
        )
        assert scanner.scan(query) == [c(100, 2), c(200, 3)]

    def test_references_into_subquery_output_give_nothing(self, scanner) -> None:
        sub = Query(range_table=(CUSTOMERS,))
        query = Query(range_table=(RangeTableEntry.sub_select(sub, "c"),), where=eq(Var(1, 1)))
        assert scanner.scan(query) == []


class TestGroupAndSort:
    def test_group_by_used_when_filter_has_nothing(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            target_list=(
                TargetEntry(Var(1, 3), 1, "status"),
                TargetEntry(Aggref("count"), 2, "count"),
            ),
            group_clause=(SortGroupClause(1),),
            sort_clause=(SortGroupClause(2),),
        )
        assert scanner.scan(query) == [c(100, 3)]

    def test_sort_used_when_filter_and_group_have_nothing(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            target_list=(
                TargetEntry(Var(1, 1), 1, "id"),
                TargetEntry(Var(1, 4), 2, None, junk=True),
            ),
            sort_clause=(SortGroupClause(2, descending=True),),
        )
        assert scanner.scan(query) == [c(100, 4)]

    def test_filter_wins_over_group_and_sort(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            where=eq(Var(1, 2)),
            target_list=(TargetEntry(Var(1, 3), 1, "status"),),
            group_clause=(SortGroupClause(1),),
            sort_clause=(SortGroupClause(1),),
        )
        assert scanner.scan(query) == [c(100, 2)]

    def test_aggregate_arguments(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            target_list=(TargetEntry(Aggref("max", (Var(1, 5),)), 1, "max"),),
            sort_clause=(SortGroupClause(1),),
        )
        assert scanner.scan(query) == [c(100, 5)]

    def test_count_star_has_no_candidates(self, scanner) -> None:
        query = Query(
            range_table=(ORDERS,),
            target_list=(TargetEntry(Aggref("count"), 1, "count"),),
            sort_clause=(SortGroupClause(1),),
        )
        assert scanner.scan(query) == []

    def test_missing_target_entry_is_skipped(self, scanner, caplog) -> None:
        query = Query(range_table=(ORDERS,), sort_clause=(SortGroupClause(3),))
        with caplog.at_level(logging.WARNING):
            assert scanner.scan(query) == []
        assert "missing target entry" in caplog.text


class TestUnsupportedNodes:
    def test_unknown_node_is_logged_and_skipped(self, scanner, caplog) -> None:
        query = Query(
            range_table=(ORDERS,),
            where=BoolExpr(BoolOp.AND, (OpaqueNode("CaseExpr"), eq(Var(1, 2)))),
        )
        with caplog.at_level(logging.WARNING):
            result = scanner.scan(query)
        assert result == [c(100, 2)]
        assert "Unhandled expression node type: CaseExpr" in caplog.text
