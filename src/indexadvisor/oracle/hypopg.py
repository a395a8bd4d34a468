"""
HypoPG-backed cost oracle.

HypoPG is a PostgreSQL extension that creates virtual indexes that don't
physically exist but are visible to the planner. This allows asking
"would this index help?" without the cost of actually building it.

Usage requires the ``hypopg`` extension in the target database and an
autocommit psycopg connection; ``hypothetical_scope()`` opens its own
transaction and always rolls it back.
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from typing import Iterator, Sequence

import psycopg
from psycopg import sql

from indexadvisor.catalog.base import Catalog, column_names
from indexadvisor.config import Config, get_config
from indexadvisor.exceptions import OracleError
from indexadvisor.oracle.base import Estimate, HypotheticalIndex
from indexadvisor.oracle.plan import parse_explain_json
from indexadvisor.query.tree import Query

logger = logging.getLogger(__name__)


class HypoPGOracle:
    """
    ``CostOracle`` on top of PostgreSQL's planner and hypopg.

    Example::

        with psycopg.connect(dsn, autocommit=True) as conn:
            oracle = HypoPGOracle(conn, catalog)
            oracle.check_extension()
            baseline = oracle.estimate(query)
    """

    def __init__(
        self,
        conn: psycopg.Connection,
        catalog: Catalog,
        config: Config | None = None,
    ) -> None:
        self.conn = conn
        self.catalog = catalog
        self.config = config or get_config()
        self._registered: list[int] = []

    def check_extension(self) -> None:
        """Raise OracleError unless hypopg is installed."""
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'hypopg')"
                )
                row = cur.fetchone()
        except psycopg.Error as e:
            raise OracleError(f"Could not check for hypopg: {e}", operation="check") from e

        if not row or not row[0]:
            raise OracleError(
                "HypoPG extension is not installed. "
                "Install with: CREATE EXTENSION hypopg;",
                operation="check",
            )

    def estimate(
        self,
        query: Query,
        hypothetical_index_ids: Sequence[int] | None = None,
    ) -> Estimate:
        """EXPLAIN the query; registered hypothetical indexes are visible to it."""
        if not query.sql:
            raise OracleError("Query has no SQL text to explain", operation="estimate")

        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    sql.SQL("SET statement_timeout = {}").format(
                        sql.Literal(self.config.statement_timeout_ms)
                    )
                )
                cur.execute(sql.SQL("EXPLAIN (FORMAT JSON) ") + sql.SQL(query.sql))
                row = cur.fetchone()
        except psycopg.Error as e:
            raise OracleError(
                f"EXPLAIN failed: {e}", query=query.sql, operation="estimate"
            ) from e

        if row is None:
            raise OracleError("EXPLAIN returned no rows", query=query.sql, operation="estimate")

        estimate = parse_explain_json(row[0])
        logger.debug(
            "Estimate with %d hypothetical index(es): %.2f..%.2f",
            len(hypothetical_index_ids or ()), estimate.startup_cost, estimate.total_cost,
        )
        return estimate

    def register_hypothetical(
        self,
        relid: int,
        columns: Sequence[int],
        type_hints: Sequence[str] = (),
    ) -> HypotheticalIndex:
        """Create a hypothetical btree index and size it."""
        table = self.catalog.relation_name(relid)
        names = column_names(self.catalog, relid, columns)

        create_sql = sql.SQL("CREATE INDEX ON {} USING btree ({})").format(
            sql.Identifier(*table.split(".")),
            sql.SQL(", ").join(sql.Identifier(name) for name in names),
        )

        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT indexrelid, indexname FROM hypopg_create_index(%s)",
                    (create_sql.as_string(self.conn),),
                )
                row = cur.fetchone()
                if row is None:
                    raise OracleError(
                        f"hypopg did not create an index on {table}",
                        operation="register",
                    )
                index_id, index_name = int(row[0]), row[1]

                cur.execute("SELECT hypopg_relation_size(%s)", (index_id,))
                size_row = cur.fetchone()
        except psycopg.Error as e:
            raise OracleError(
                f"Could not register hypothetical index on {table}: {e}",
                operation="register",
            ) from e

        size_bytes = int(size_row[0]) if size_row and size_row[0] is not None else 0
        pages = math.ceil(size_bytes / self.config.block_size)
        self._registered.append(index_id)

        return HypotheticalIndex(
            index_id=index_id,
            pages=pages,
            relid=relid,
            columns=tuple(columns),
            name=index_name,
        )

    def unregister_hypothetical(self, index_id: int) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT hypopg_drop_index(%s)", (index_id,))
        except psycopg.Error as e:
            raise OracleError(
                f"Could not drop hypothetical index {index_id}: {e}",
                operation="unregister",
            ) from e
        if index_id in self._registered:
            self._registered.remove(index_id)

    @contextmanager
    def hypothetical_scope(self) -> Iterator[None]:
        """
        Transaction that is always rolled back, followed by hypopg_reset().

        hypopg keeps its indexes in backend memory, outside transactional
        control, hence the explicit reset.
        """
        try:
            with self.conn.transaction(force_rollback=True):
                yield
        finally:
            self._reset()

    def _reset(self) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT hypopg_reset()")
        except psycopg.Error as e:
            logger.warning("hypopg_reset() failed: %s", e)
        self._registered.clear()
