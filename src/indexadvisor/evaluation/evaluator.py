"""
Hypothetical evaluator: which candidates would the optimizer actually use?

For one query:

1. scan for candidates and drop irrelevant ones
2. estimate the query as-is (baseline)
3. inside the oracle's hypothetical scope, register every candidate and
   estimate again
4. if the new plan is cheaper on startup or total cost, walk it and keep
   the candidates it scans
5. split the total cost saved between them by index size
6. after the scope is gone, hand each kept candidate to the sink

Oracle failures surface as ``OracleError``, sink failures as
``PersistenceError``; either aborts the current query only. The scope is
always closed before persistence, so hypothetical indexes never outlive
the estimate that needed them.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Sequence

from indexadvisor.advisory.store import AdvisorySink
from indexadvisor.candidates.model import Candidate, format_candidates
from indexadvisor.candidates.relevance import remove_irrelevant_candidates
from indexadvisor.candidates.scanner import CandidateScanner
from indexadvisor.catalog.base import Catalog
from indexadvisor.config import Config, get_config
from indexadvisor.evaluation.guard import ReentrancyGuard
from indexadvisor.exceptions import OracleError, PersistenceError
from indexadvisor.oracle.base import CostOracle, Estimate, PlanNode
from indexadvisor.query.tree import Query

logger = logging.getLogger(__name__)


# ── Plan walk ────────────────────────────────────────────────────────────

INDEX_SCAN_KINDS = frozenset({"Index Scan", "Index Only Scan", "Bitmap Index Scan"})

# Node kinds whose inputs may hold index scans
PASS_THROUGH_KINDS = frozenset({
    "Result", "ProjectSet", "ModifyTable", "Append", "Merge Append",
    "Recursive Union", "BitmapAnd", "BitmapOr", "Nested Loop", "Merge Join",
    "Hash Join", "Seq Scan", "Sample Scan", "Bitmap Heap Scan", "Tid Scan",
    "Tid Range Scan", "Subquery Scan", "Function Scan", "Table Function Scan",
    "Values Scan", "CTE Scan", "Named Tuplestore Scan", "WorkTable Scan",
    "Foreign Scan", "Custom Scan", "Materialize", "Memoize", "Sort",
    "Incremental Sort", "Group", "Aggregate", "WindowAgg", "Unique",
    "Gather", "Gather Merge", "Hash", "SetOp", "LockRows", "Limit",
})


def _mark_used(node: PlanNode, by_index_id: dict[int, Candidate]) -> None:
    if node.kind in INDEX_SCAN_KINDS:
        cand = by_index_id.get(node.index_id) if node.index_id is not None else None
        if cand is not None:
            cand.used = True
    elif node.kind not in PASS_THROUGH_KINDS:
        logger.warning("Unhandled plan node type: %s", node.kind)
        return

    for child in node.subplans + node.children:
        _mark_used(child, by_index_id)


def mark_used_candidates(plan: PlanNode, candidates: Sequence[Candidate]) -> list[Candidate]:
    """
    Flag the candidates whose hypothetical index ``plan`` scans.

    Returns the used candidates in their original order.
    """
    by_index_id = {c.index_id: c for c in candidates if c.index_id is not None}
    _mark_used(plan, by_index_id)
    return [c for c in candidates if c.used]


def apportion_benefit(candidates: Sequence[Candidate], cost_saved: float) -> None:
    """
    Split ``cost_saved`` between candidates in proportion to their pages.

    If no candidate has a size the saving is split evenly.
    """
    if not candidates:
        return

    total_pages = sum(c.pages for c in candidates)
    for cand in candidates:
        if total_pages > 0:
            cand.benefit = cost_saved * cand.pages / total_pages
        else:
            cand.benefit = cost_saved / len(candidates)


# ── Timing ───────────────────────────────────────────────────────────────


class PhaseTimer:
    """Collects wall-clock milliseconds per named phase."""

    def __init__(self) -> None:
        self.timings: dict[str, float] = {}

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            self.timings[name] = self.timings.get(name, 0.0) + elapsed
            logger.debug("profile: %s %.3f ms", name, elapsed)


# ── Evaluator ────────────────────────────────────────────────────────────


@dataclass
class EvaluationResult:
    """
    Outcome of evaluating one query.

    Attributes:
        candidates: Relevant candidates that were tried.
        used: Candidates the optimizer chose, with benefit set.
        recorded: Number of records handed to the sink.
        skipped: True if the evaluator was already active and did nothing.
        timings: Milliseconds per phase.
    """

    candidates: list[Candidate] = field(default_factory=list)
    used: list[Candidate] = field(default_factory=list)
    startup_cost_before: float = 0.0
    total_cost_before: float = 0.0
    startup_cost_after: float = 0.0
    total_cost_after: float = 0.0
    recorded: int = 0
    skipped: bool = False
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def startup_cost_saved(self) -> float:
        return self.startup_cost_before - self.startup_cost_after

    @property
    def total_cost_saved(self) -> float:
        return self.total_cost_before - self.total_cost_after

    @property
    def improved(self) -> bool:
        return bool(self.used) and (self.startup_cost_saved > 0 or self.total_cost_saved > 0)

    @property
    def percent_saved(self) -> float:
        if self.total_cost_before <= 0:
            return 0.0
        return self.total_cost_saved * 100.0 / self.total_cost_before


class HypotheticalEvaluator:
    """
    Runs the per-query pipeline against a cost oracle and records advice.

    Example:
        evaluator = HypotheticalEvaluator(catalog, oracle, MemoryAdvisoryStore())
        result = evaluator.evaluate(query)
        for cand in result.used:
            print(cand, cand.benefit)
    """

    def __init__(
        self,
        catalog: Catalog,
        oracle: CostOracle,
        sink: AdvisorySink,
        config: Config | None = None,
    ) -> None:
        self.catalog = catalog
        self.oracle = oracle
        self.sink = sink
        self.config = config or get_config()
        self.scanner = CandidateScanner(catalog, self.config)
        self.guard = ReentrancyGuard()

    def evaluate(self, query: Query, baseline: Estimate | None = None) -> EvaluationResult:
        """
        Evaluate one query.

        Args:
            query: The query tree.
            baseline: Estimate without hypothetical indexes, if the caller
                already has one.
        """
        with self.guard.enter() as outermost:
            if not outermost:
                logger.debug("Evaluator already active; ignoring nested request")
                return EvaluationResult(skipped=True)
            return self._evaluate(query, baseline)

    def _evaluate(self, query: Query, baseline: Estimate | None) -> EvaluationResult:
        timer = PhaseTimer()
        result = EvaluationResult(timings=timer.timings)

        with timer.phase("scan"):
            candidates = self.scanner.scan(query)
        with timer.phase("filter"):
            candidates = remove_irrelevant_candidates(candidates, self.catalog)
        result.candidates = candidates

        if not candidates:
            return result

        if baseline is None:
            baseline = self._call_oracle(lambda: self.oracle.estimate(query), query)
        result.startup_cost_before = baseline.startup_cost
        result.total_cost_before = baseline.total_cost

        self._call_oracle(lambda: self._replan(query, candidates, result, timer), query)

        logger.debug(
            "Cost saved: (%.2f, %.2f) - (%.2f, %.2f) = (%.2f, %.2f)",
            result.startup_cost_before, result.total_cost_before,
            result.startup_cost_after, result.total_cost_after,
            result.startup_cost_saved, result.total_cost_saved,
        )

        if not result.used:
            return result

        apportion_benefit(result.used, result.total_cost_saved)
        logger.debug("Used candidates: |%d| {%s}", len(result.used), format_candidates(result.used))

        with timer.phase("save"):
            self._persist(result.used)
        result.recorded = len(result.used)

        logger.info(
            "Recorded %d index candidate(s), total cost saved %.2f (%.1f%%)",
            result.recorded, result.total_cost_saved, result.percent_saved,
        )
        return result

    def _replan(
        self,
        query: Query,
        candidates: list[Candidate],
        result: EvaluationResult,
        timer: PhaseTimer,
    ) -> None:
        with self.oracle.hypothetical_scope():
            with timer.phase("register"):
                for cand in candidates:
                    hypo = self.oracle.register_hypothetical(cand.relid, cand.columns, cand.types)
                    cand.index_id = hypo.index_id
                    cand.pages = hypo.pages

            with timer.phase("replan"):
                estimate = self.oracle.estimate(
                    query, [c.index_id for c in candidates if c.index_id is not None]
                )
            result.startup_cost_after = estimate.startup_cost
            result.total_cost_after = estimate.total_cost

            if (
                estimate.startup_cost < result.startup_cost_before
                or estimate.total_cost < result.total_cost_before
            ):
                with timer.phase("mark-used"):
                    result.used = mark_used_candidates(estimate.plan, candidates)

    def _call_oracle(self, fn, query: Query):
        try:
            return fn()
        except OracleError:
            raise
        except PersistenceError:
            raise
        except Exception as e:
            raise OracleError(
                f"Cost oracle failed: {e}", query=query.sql or None, operation="estimate"
            ) from e

    def _persist(self, used: Sequence[Candidate]) -> None:
        for cand in used:
            try:
                self.sink.record(
                    cand.relid,
                    cand.columns,
                    self.config.pages_to_kb(cand.pages),
                    cand.benefit,
                )
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(
                    f"Could not record advice for {cand}: {e}",
                    sink=type(self.sink).__name__,
                    expected_shape="record(relid, columns, size_kb, benefit)",
                ) from e
