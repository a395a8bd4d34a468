"""
Shared fixtures: a static schema and a scripted cost oracle.

Relation ids and column numbers used throughout the tests:

    orders       100  id(1) customer_id(2) status(3) created_at(4) amount(5)
    customers    200  id(1) name(2) region(3) created_at(4)
    tiny         300  id(1) val(2)                  (1 row)
    scratch      400  id(1) val(2)                  (temporary)
    order_items  500  id(1) order_id(2) product_id(3) quantity(4)
    pg_class    1259  oid(1) relname(2)             (system)
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Sequence

import pytest

from indexadvisor.advisory.store import MemoryAdvisoryStore
from indexadvisor.catalog.static import StaticCatalog
from indexadvisor.config import Config, reset_config
from indexadvisor.exceptions import OracleError
from indexadvisor.oracle.base import Estimate, HypotheticalIndex, PlanNode
from indexadvisor.query.tree import (
    BoolExpr,
    BoolOp,
    Const,
    OpExpr,
    Query,
    RangeTableEntry,
    Var,
)


SCHEMA = {
    "tables": [
        {
            "name": "orders",
            "relid": 100,
            "rows": 250000,
            "columns": [
                {"name": "id", "type": "int4"},
                {"name": "customer_id", "type": "int4"},
                {"name": "status", "type": "text"},
                {"name": "created_at", "type": "timestamptz"},
                {"name": "amount", "type": "numeric"},
            ],
            "indexes": [
                {"columns": ["id"], "name": "orders_pkey"},
                {"columns": ["status", "amount"], "name": "orders_status_amount"},
            ],
        },
        {
            "name": "customers",
            "relid": 200,
            "rows": 5000,
            "columns": [
                {"name": "id", "type": "int4"},
                {"name": "name", "type": "text"},
                {"name": "region", "type": "text"},
                {"name": "created_at", "type": "timestamptz"},
            ],
            "indexes": [{"columns": ["id"], "name": "customers_pkey"}],
        },
        {
            "name": "tiny",
            "relid": 300,
            "rows": 1,
            "columns": [{"name": "id"}, {"name": "val"}],
        },
        {
            "name": "scratch",
            "relid": 400,
            "temporary": True,
            "columns": [{"name": "id"}, {"name": "val"}],
        },
        {
            "name": "order_items",
            "relid": 500,
            "rows": 1000000,
            "columns": [
                {"name": "id"},
                {"name": "order_id"},
                {"name": "product_id"},
                {"name": "quantity"},
            ],
        },
        {
            "name": "pg_class",
            "relid": 1259,
            "system": True,
            "columns": [{"name": "oid", "type": "oid"}, {"name": "relname", "type": "name"}],
        },
    ]
}


ORDERS = RangeTableEntry.relation(100, "orders")
CUSTOMERS = RangeTableEntry.relation(200, "customers")


def orders_query() -> Query:
    """SELECT * FROM orders WHERE customer_id = 42 AND created_at > '2024-01-01'"""
    return Query(
        range_table=(ORDERS,),
        where=BoolExpr(BoolOp.AND, (
            OpExpr("=", (Var(1, 2, "int4"), Const(42))),
            OpExpr(">", (Var(1, 4, "timestamptz"), Const("2024-01-01"))),
        )),
        sql="SELECT * FROM orders WHERE customer_id = 42 AND created_at > '2024-01-01'",
    )


class FakeOracle:
    """
    Scripted ``CostOracle``.

    Estimates without hypothetical indexes return ``baseline``. With
    indexes, the plan scans every registered index whose (relid, columns)
    is in ``chooses`` and costs ``improved``; if none is chosen the
    baseline comes back.
    """

    def __init__(
        self,
        baseline: tuple[float, float] = (10.0, 1000.0),
        improved: tuple[float, float] = (5.0, 400.0),
        chooses: set[tuple[int, tuple[int, ...]]] | None = None,
        pages: dict[tuple[int, tuple[int, ...]], int] | None = None,
        fail: str | None = None,
    ) -> None:
        self.baseline = baseline
        self.improved = improved
        self.chooses = chooses or set()
        self.pages = pages or {}
        self.fail = fail

        self.registered: dict[int, HypotheticalIndex] = {}
        self.next_id = 9000
        self.scope_depth = 0
        self.scopes_entered = 0
        self.estimate_calls: list[list[int]] = []

    def estimate(
        self,
        query: Query,
        hypothetical_index_ids: Sequence[int] | None = None,
    ) -> Estimate:
        ids = list(hypothetical_index_ids or ())
        if self.fail == "estimate" or (self.fail == "replan" and ids):
            raise RuntimeError("planner unavailable")
        self.estimate_calls.append(ids)

        chosen = [
            self.registered[i] for i in ids
            if i in self.registered
            and (self.registered[i].relid, self.registered[i].columns) in self.chooses
        ]
        if not chosen:
            startup, total = self.baseline
            return Estimate.from_plan(
                PlanNode("Seq Scan", startup_cost=startup, total_cost=total)
            )

        startup, total = self.improved
        plan = PlanNode(
            "Nested Loop",
            children=tuple(PlanNode("Index Scan", index_id=h.index_id) for h in chosen),
            startup_cost=startup,
            total_cost=total,
        )
        return Estimate.from_plan(plan)

    def register_hypothetical(
        self,
        relid: int,
        columns: Sequence[int],
        type_hints: Sequence[str] = (),
    ) -> HypotheticalIndex:
        assert self.scope_depth > 0, "registration outside hypothetical scope"
        if self.fail == "register":
            raise OracleError("could not create hypothetical index", operation="register")

        self.next_id += 1
        hypo = HypotheticalIndex(
            index_id=self.next_id,
            pages=self.pages.get((relid, tuple(columns)), 10 * len(columns)),
            relid=relid,
            columns=tuple(columns),
        )
        self.registered[hypo.index_id] = hypo
        return hypo

    def unregister_hypothetical(self, index_id: int) -> None:
        self.registered.pop(index_id, None)

    @contextmanager
    def hypothetical_scope(self) -> Iterator[None]:
        self.scope_depth += 1
        self.scopes_entered += 1
        try:
            yield
        finally:
            self.scope_depth -= 1
            self.registered.clear()


@pytest.fixture(autouse=True)
def _clean_config(monkeypatch):
    """Keep INDEXADVISOR_* settings from leaking between tests."""
    import os

    for key in list(os.environ):
        if key.startswith("INDEXADVISOR_"):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def catalog() -> StaticCatalog:
    return StaticCatalog.from_dict(SCHEMA)


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def store() -> MemoryAdvisoryStore:
    return MemoryAdvisoryStore()
