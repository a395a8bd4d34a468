"""
Candidate scanner: walks a query tree and proposes index candidates.

Traversal rules:
- AND: scan each operand, merge its candidates into the running list, and
  build composite candidates against the candidates of the earlier
  operands. Composites therefore only span conjuncts.
- OR / NOT: scan and merge each operand, no composites.
- Operator: only indexable comparisons are descended into.
- Column reference: one single-column candidate if it resolves to an
  eligible, non-trivial table and a user column.
- Sub-select: scanned as a nested query; an ANY/ALL test expression is
  scanned in the enclosing scope.
- Unsupported nodes are logged and contribute nothing.

Nested queries push their range table onto a ``ScopeStack``; a column's
``levels_up`` picks the frame that resolves it, which is how correlated
references find the outer table.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Sequence

from indexadvisor.candidates.composite import build_composite_candidates
from indexadvisor.candidates.merge import merge_candidates
from indexadvisor.candidates.model import Candidate, format_candidates
from indexadvisor.catalog.base import Catalog
from indexadvisor.config import Config, get_config
from indexadvisor.query.tree import (
    Aggref,
    BoolExpr,
    BoolOp,
    Const,
    Expr,
    ExprList,
    FuncExpr,
    OpaqueNode,
    OpExpr,
    Param,
    Query,
    RangeKind,
    RangeTableEntry,
    RelabelType,
    SortGroupClause,
    SubLink,
    TargetEntry,
    Var,
)

logger = logging.getLogger(__name__)


class ScopeStack:
    """
    Range tables of the queries enclosing the node being scanned.

    Frame 0 is the innermost query.
    """

    def __init__(self) -> None:
        self._frames: list[tuple[RangeTableEntry, ...]] = []

    def __len__(self) -> int:
        return len(self._frames)

    @contextmanager
    def frame(self, range_table: tuple[RangeTableEntry, ...]) -> Iterator[None]:
        """Push a query's range table for the duration of the block."""
        self._frames.insert(0, range_table)
        try:
            yield
        finally:
            self._frames.pop(0)

    def resolve(self, var: Var) -> RangeTableEntry | None:
        """Range table entry a column reference points at, if it exists."""
        if var.levels_up < 0 or var.levels_up >= len(self._frames):
            return None
        range_table = self._frames[var.levels_up]
        if var.varno < 1 or var.varno > len(range_table):
            return None
        return range_table[var.varno - 1]


class CandidateScanner:
    """
    Generates sorted, duplicate-free single- and multi-column candidates.

    Usage:
        scanner = CandidateScanner(catalog)
        candidates = scanner.scan(query)
    """

    def __init__(
        self,
        catalog: Catalog,
        config: Config | None = None,
        operators: Sequence[str] | None = None,
    ) -> None:
        self.catalog = catalog
        self.config = config or get_config()
        self.operators = frozenset(
            operators if operators is not None else self.config.indexable_operators
        )

    def scan(self, query: Query) -> list[Candidate]:
        """Scan a top-level query."""
        candidates = self.scan_query(query, ScopeStack())
        logger.debug(
            "Generated candidates: |%d| {%s}",
            len(candidates), format_candidates(candidates),
        )
        return candidates

    def scan_query(self, query: Query, scopes: ScopeStack) -> list[Candidate]:
        """
        Scan one (sub-)query.

        The filter is scanned first; GROUP BY is only looked at when the
        filter produced nothing, and ORDER BY only when both did not.
        """
        candidates: list[Candidate] = []
        new_candidates: list[Candidate] = []

        with scopes.frame(query.range_table):
            for rte in query.range_table:
                if rte.kind == RangeKind.SUBQUERY and rte.subquery is not None:
                    candidates = merge_candidates(
                        candidates, self.scan_query(rte.subquery, scopes)
                    )

            if query.where is not None:
                new_candidates = self.scan_node(query.where, scopes)

            if not new_candidates and query.group_clause:
                new_candidates = self.scan_clause(
                    query.group_clause, query.target_list, scopes
                )

            if not new_candidates and query.sort_clause:
                new_candidates = self.scan_clause(
                    query.sort_clause, query.target_list, scopes
                )

        return merge_candidates(candidates, new_candidates)

    def scan_clause(
        self,
        clause: Sequence[SortGroupClause],
        target_list: Sequence[TargetEntry],
        scopes: ScopeStack,
    ) -> list[Candidate]:
        """Scan the target expressions behind GROUP BY / ORDER BY items."""
        candidates: list[Candidate] = []
        for item in clause:
            if item.target_ref < 1 or item.target_ref > len(target_list):
                logger.warning(
                    "Sort/group clause references missing target entry %d",
                    item.target_ref,
                )
                continue
            target = target_list[item.target_ref - 1]
            candidates = merge_candidates(
                candidates, self.scan_node(target.expr, scopes)
            )
        return candidates

    def scan_node(self, node: Expr, scopes: ScopeStack) -> list[Candidate]:
        """Scan any expression node."""
        if isinstance(node, BoolExpr):
            if node.op == BoolOp.AND:
                return self._scan_and(node, scopes)
            candidates: list[Candidate] = []
            for arg in node.args:
                candidates = merge_candidates(candidates, self.scan_node(arg, scopes))
            return candidates

        if isinstance(node, OpExpr):
            if node.operator not in self.operators:
                return []
            candidates = []
            for arg in node.args:
                candidates = merge_candidates(candidates, self.scan_node(arg, scopes))
            return candidates

        if isinstance(node, Var):
            return self._scan_var(node, scopes)

        if isinstance(node, SubLink):
            candidates = self.scan_query(node.subselect, scopes)
            # EXISTS and scalar sub-selects have no test expression
            if node.testexpr is not None:
                candidates = merge_candidates(
                    candidates, self.scan_node(node.testexpr, scopes)
                )
            return candidates

        if isinstance(node, Query):
            return self.scan_query(node, scopes)

        if isinstance(node, Aggref):
            # count(*) has no arguments
            if not node.args:
                return []
            return self.scan_node(ExprList(node.args), scopes)

        if isinstance(node, ExprList):
            candidates = []
            for item in node.items:
                candidates = merge_candidates(candidates, self.scan_node(item, scopes))
            return candidates

        if isinstance(node, RelabelType):
            return self.scan_node(node.arg, scopes)

        if isinstance(node, (FuncExpr, Const, Param)):
            return []

        kind = node.kind if isinstance(node, OpaqueNode) else type(node).__name__
        logger.warning("Unhandled expression node type: %s", kind)
        return []

    def _scan_and(self, node: BoolExpr, scopes: ScopeStack) -> list[Candidate]:
        candidates: list[Candidate] = []
        composites: list[Candidate] = []

        for arg in node.args:
            arg_candidates = self.scan_node(arg, scopes)
            new_composites = build_composite_candidates(
                candidates, arg_candidates, self.config.max_index_keys
            )
            candidates = merge_candidates(candidates, arg_candidates)
            composites = merge_candidates(composites, new_composites)

        return merge_candidates(candidates, composites)

    def _scan_var(self, var: Var, scopes: ScopeStack) -> list[Candidate]:
        rte = scopes.resolve(var)
        if rte is None:
            logger.warning(
                "Column reference (varno=%d, levels_up=%d) does not resolve",
                var.varno, var.levels_up,
            )
            return []

        # only relations have indexes
        if rte.kind != RangeKind.RELATION or rte.relid is None:
            return []

        # no indexes on hidden/system columns
        if var.attno <= 0:
            return []

        if not self.catalog.table_eligible(rte.relid):
            return []

        if not self.catalog.row_count_at_least(rte.relid, self.config.min_table_rows):
            return []

        return [Candidate.single(rte.relid, var.attno, var.type_name)]
