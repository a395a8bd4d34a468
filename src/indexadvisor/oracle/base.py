"""
Cost oracle port.

The oracle is the query optimizer: it turns a query, plus any hypothetical
indexes registered with it, into an estimated plan and its cost. The
advisor never estimates costs itself.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Iterator, Protocol, Sequence, runtime_checkable

from indexadvisor.query.tree import Query


@dataclass(frozen=True)
class PlanNode:
    """
    One node of an estimated plan.

    Attributes:
        kind: Plan node type as the optimizer names it ("Index Scan", ...).
        index_id: Id of the index the node scans, if any.
        children: Input plans (outer/inner, append members, bitmap inputs).
        subplans: Init-plans and sub-plans hanging off this node.
        startup_cost: Estimated cost before the first row.
        total_cost: Estimated cost for all rows.
        relation: Relation the node scans, for messages.
    """

    kind: str
    index_id: int | None = None
    children: tuple["PlanNode", ...] = ()
    subplans: tuple["PlanNode", ...] = ()
    startup_cost: float = 0.0
    total_cost: float = 0.0
    relation: str | None = None

    def walk(self) -> Iterator["PlanNode"]:
        """Depth-first iteration over this node and everything below it."""
        yield self
        for child in self.subplans + self.children:
            yield from child.walk()


@dataclass(frozen=True)
class Estimate:
    """An estimated plan and its cost."""

    plan: PlanNode
    startup_cost: float
    total_cost: float

    @classmethod
    def from_plan(cls, plan: PlanNode) -> "Estimate":
        return cls(plan=plan, startup_cost=plan.startup_cost, total_cost=plan.total_cost)


@dataclass(frozen=True)
class HypotheticalIndex:
    """A hypothetical index registered with the oracle."""

    index_id: int
    pages: int
    relid: int = 0
    columns: tuple[int, ...] = field(default=())
    name: str = ""


@runtime_checkable
class CostOracle(Protocol):
    """
    Plan cost estimator with hypothetical index support.

    All registrations must happen inside ``hypothetical_scope()``; the
    scope undoes every catalog effect on exit, whether the block finished
    or raised.
    """

    def estimate(
        self,
        query: Query,
        hypothetical_index_ids: Sequence[int] | None = None,
    ) -> Estimate:
        """Estimate ``query``; without ids this is the baseline estimate."""
        ...

    def register_hypothetical(
        self,
        relid: int,
        columns: Sequence[int],
        type_hints: Sequence[str] = (),
    ) -> HypotheticalIndex: ...

    def unregister_hypothetical(self, index_id: int) -> None: ...

    def hypothetical_scope(self) -> AbstractContextManager[None]: ...
