"""
Tests for the PostgreSQL catalog and the hypopg oracle.

Both run against a scripted connection: each statement is answered by a
responder function, so no server is needed.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

import psycopg
import pytest

from indexadvisor.candidates.model import Candidate
from indexadvisor.candidates.relevance import remove_irrelevant_candidates
from indexadvisor.catalog.base import ExistingIndex
from indexadvisor.catalog.postgres import PostgresCatalog
from indexadvisor.config import Config
from indexadvisor.exceptions import CatalogError, OracleError
from indexadvisor.oracle.hypopg import HypoPGOracle
from indexadvisor.query.tree import Query


Responder = Callable[[str, tuple | None], list[tuple]]


class ScriptedCursor:
    def __init__(self, conn: "ScriptedConnection") -> None:
        self.conn = conn
        self._rows: list[tuple] = []

    def __enter__(self) -> "ScriptedCursor":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def execute(self, query, params=None) -> None:
        text = str(query)
        self.conn.executed.append((text, params))
        self._rows = self.conn.respond(text, params)

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return self._rows


class ScriptedConnection:
    def __init__(self, respond: Responder) -> None:
        self.respond = respond
        self.executed: list[tuple[str, tuple | None]] = []
        self.transactions: list[bool] = []

    def cursor(self) -> ScriptedCursor:
        return ScriptedCursor(self)

    @contextmanager
    def transaction(self, force_rollback: bool = False) -> Iterator[None]:
        self.transactions.append(force_rollback)
        yield


RELATIONS = {
    100: ("orders", "public", "p", 120, 250000.0),
    101: ("events", "sales", "p", 0, 0.0),
    102: ("scratch", "pg_temp_3", "t", 10, 500.0),
    1259: ("pg_class", "pg_catalog", "p", 14, 412.0),
}


def catalog_responder(text: str, params: tuple | None) -> list[tuple]:
    if "FROM pg_class c" in text:
        row = RELATIONS.get(params[0])
        return [row] if row else []
    if "FROM pg_attribute" in text:
        return [(1, "id", "integer"), (2, "customer_id", "integer"), (3, "status", "text")]
    if "FROM pg_index" in text:
        return [
            ("orders_pkey", [1], 1, True, False, False),
            ("orders_lower_status", [0], 1, True, True, False),
            ("orders_status_open", [3], 1, True, False, True),
            ("orders_customer_covering", [2, 3], 1, True, False, False),
        ]
    if "to_regclass" in text:
        return [(100,)] if params[0] in ("orders", "public.orders") else [(None,)]
    raise AssertionError(f"unexpected query: {text}")


class TestPostgresCatalog:
    @pytest.fixture
    def conn(self) -> ScriptedConnection:
        return ScriptedConnection(catalog_responder)

    def test_eligibility(self, conn) -> None:
        catalog = PostgresCatalog(conn)
        assert catalog.table_eligible(100)
        assert catalog.table_eligible(101)
        assert not catalog.table_eligible(102)
        assert not catalog.table_eligible(1259)

    def test_row_counts_come_from_statistics(self, conn) -> None:
        catalog = PostgresCatalog(conn)
        assert catalog.row_count_at_least(100, 2)
        assert not catalog.row_count_at_least(101, 2)

    def test_relation_names(self, conn) -> None:
        catalog = PostgresCatalog(conn)
        assert catalog.relation_name(100) == "orders"
        assert catalog.relation_name(101) == "sales.events"
        assert catalog.relation_id("orders") == 100
        assert catalog.relation_id("nowhere") is None

    def test_columns(self, conn) -> None:
        catalog = PostgresCatalog(conn)
        assert [(c.attno, c.name, c.type_name) for c in catalog.columns(100)] == [
            (1, "id", "integer"), (2, "customer_id", "integer"), (3, "status", "text"),
        ]

    def test_existing_indexes(self, conn) -> None:
        indexes = PostgresCatalog(conn).existing_indexes(100)
        assert indexes[0] == ExistingIndex((1,), name="orders_pkey")
        assert indexes[0].is_plain
        assert indexes[1].is_expression and not indexes[1].is_plain
        assert indexes[2].is_partial and not indexes[2].is_plain

    def test_include_columns_are_not_keys(self, conn) -> None:
        catalog = PostgresCatalog(conn)
        covering = catalog.existing_indexes(100)[3]
        assert covering.columns == (2,)

        kept = remove_irrelevant_candidates(
            [Candidate(relid=100, columns=(2,)), Candidate(relid=100, columns=(2, 3))],
            catalog,
        )
        assert kept == [Candidate(relid=100, columns=(2, 3))]

    def test_lookups_are_cached(self, conn) -> None:
        catalog = PostgresCatalog(conn)
        catalog.table_eligible(100)
        catalog.relation_name(100)
        catalog.row_count_at_least(100, 2)
        catalog.existing_indexes(100)
        catalog.existing_indexes(100)
        assert len(conn.executed) == 2

    def test_unknown_relation(self, conn) -> None:
        with pytest.raises(CatalogError) as exc_info:
            PostgresCatalog(conn).table_eligible(4242)
        assert exc_info.value.relation == "4242"

    def test_driver_errors_are_wrapped(self) -> None:
        def failing(text, params):
            raise psycopg.OperationalError("server closed the connection")

        with pytest.raises(CatalogError, match="server closed"):
            PostgresCatalog(ScriptedConnection(failing)).columns(100)


EXPLAIN_ROW = [{"Plan": {"Node Type": "Seq Scan", "Startup Cost": 0.0, "Total Cost": 4580.0}}]


class TestHypoPGOracle:
    def oracle(self, respond: Responder) -> tuple[HypoPGOracle, ScriptedConnection]:
        conn = ScriptedConnection(respond)
        catalog = PostgresCatalog(ScriptedConnection(catalog_responder))
        return HypoPGOracle(conn, catalog, Config(statement_timeout_ms=250)), conn

    def test_check_extension(self) -> None:
        oracle, _ = self.oracle(lambda text, params: [(True,)])
        oracle.check_extension()

    def test_missing_extension(self) -> None:
        oracle, _ = self.oracle(lambda text, params: [(False,)])
        with pytest.raises(OracleError, match="CREATE EXTENSION hypopg"):
            oracle.check_extension()

    def test_estimate(self) -> None:
        oracle, conn = self.oracle(
            lambda text, params: [(EXPLAIN_ROW,)] if "EXPLAIN" in text else []
        )
        estimate = oracle.estimate(Query(sql="SELECT * FROM orders WHERE customer_id = 42"))

        assert estimate.total_cost == pytest.approx(4580.0)
        assert estimate.plan.kind == "Seq Scan"
        timeout, explain = conn.executed
        assert "statement_timeout" in timeout[0]
        assert "EXPLAIN (FORMAT JSON)" in explain[0]

    def test_estimate_needs_sql_text(self) -> None:
        oracle, _ = self.oracle(lambda text, params: [])
        with pytest.raises(OracleError):
            oracle.estimate(Query())

    def test_estimate_failure(self) -> None:
        def failing(text, params):
            raise psycopg.errors.QueryCanceled("canceling statement due to statement timeout")

        oracle, _ = self.oracle(failing)
        with pytest.raises(OracleError) as exc_info:
            oracle.estimate(Query(sql="SELECT 1"))
        assert exc_info.value.query == "SELECT 1"
        assert exc_info.value.operation == "estimate"

    def test_scope_rolls_back_and_resets(self) -> None:
        oracle, conn = self.oracle(lambda text, params: [])
        with pytest.raises(RuntimeError):
            with oracle.hypothetical_scope():
                raise RuntimeError("boom")

        assert conn.transactions == [True]
        assert conn.executed[-1][0] == "SELECT hypopg_reset()"

    def test_unregister(self) -> None:
        oracle, conn = self.oracle(lambda text, params: [(True,)])
        oracle.unregister_hypothetical(13543)
        assert conn.executed == [("SELECT hypopg_drop_index(%s)", (13543,))]
