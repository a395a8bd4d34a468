"""
Advisory sinks.

The evaluator hands every chosen candidate to a sink through
``record(relid, columns, size_kb, benefit)``. Two sinks ship:

- ``MemoryAdvisoryStore``: keeps records in process (offline use, tests)
- ``PostgresAdvisoryStore``: INSERTs into the ``index_advisory`` table

Usage:
    store = MemoryAdvisoryStore()
    store.record(16384, (2, 1), 16, 125.0)
    entries = store.entries(catalog)
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

from indexadvisor.advisory.records import AdvisoryEntry, AdvisoryRecord, group_records
from indexadvisor.catalog.base import Catalog
from indexadvisor.exceptions import PersistenceError

logger = logging.getLogger(__name__)


ADVISORY_TABLE_DDL = """\
CREATE TABLE index_advisory (
    reloid      oid,
    attrs       int2[],
    profit      real,
    index_size  integer,
    backend_pid integer,
    timestamp   timestamptz
);
CREATE INDEX advise_index_backend_pid ON index_advisory (backend_pid);
"""

ADVISORY_TABLE_SHAPE = (
    "(reloid oid, attrs int2[], profit real, index_size integer [KB], "
    "backend_pid integer, timestamp timestamptz)"
)


def _table_error_detail(table: str) -> str:
    return (
        f'Index advisor uses the "{table}" table to store its advisory. You '
        f'should have INSERT permissions on a table or an (INSERT-able) view named '
        f'"{table}". Also, make sure that you are NOT running the index advisor '
        f"under a read-only transaction."
    )


def _table_error_hint(table: str) -> str:
    return (
        f'Please create the "{table}" table using ADVISORY_TABLE_DDL '
        f"(index-advisor ddl prints it)."
    )


@runtime_checkable
class AdvisorySink(Protocol):
    """Destination for advisory records."""

    def record(
        self,
        relid: int,
        columns: Sequence[int],
        size_kb: int,
        benefit: float,
    ) -> None: ...


class MemoryAdvisoryStore:
    """Advisory records held in a list."""

    def __init__(self) -> None:
        self.records: list[AdvisoryRecord] = []

    def record(
        self,
        relid: int,
        columns: Sequence[int],
        size_kb: int,
        benefit: float,
    ) -> None:
        self.records.append(
            AdvisoryRecord(relid=relid, columns=tuple(columns), size_kb=size_kb, benefit=benefit)
        )

    def entries(self, catalog: Catalog) -> list[AdvisoryEntry]:
        return group_records(self.records, catalog)

    def clear(self) -> None:
        self.records.clear()


class PostgresAdvisoryStore:
    """
    Sink writing to an ``index_advisory`` table or INSERT-able view.

    Rows are tagged with the backend pid, and ``entries()`` reads back only
    this session's rows, grouped the same way ``group_records`` does.
    """

    def __init__(self, conn, table: str = "index_advisory") -> None:
        self.conn = conn
        self.table = table
        self._checked = False

    def _error(self, message: str) -> PersistenceError:
        return PersistenceError(
            message,
            sink=self.table,
            expected_shape=f"{_table_error_detail(self.table)} Columns: {ADVISORY_TABLE_SHAPE}",
            hint=_table_error_hint(self.table),
        )

    def check_table(self) -> None:
        """Make sure the advisory relation exists and is a table or a view."""
        import psycopg

        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT c.relkind FROM pg_class c WHERE c.oid = to_regclass(%s)",
                    (self.table,),
                )
                row = cur.fetchone()
        except psycopg.Error as e:
            raise self._error(f"Could not look up relation \"{self.table}\": {e}") from e

        if row is None:
            raise self._error(f'relation "{self.table}" does not exist.')
        if row[0] not in ("r", "v", "p"):
            raise self._error(f'"{self.table}" is not a table or view.')
        self._checked = True

    def record(
        self,
        relid: int,
        columns: Sequence[int],
        size_kb: int,
        benefit: float,
    ) -> None:
        import psycopg
        from psycopg import sql

        if not self._checked:
            self.check_table()

        statement = sql.SQL(
            "INSERT INTO {} VALUES (%s, %s::int2[], %s, %s, pg_backend_pid(), now())"
        ).format(sql.Identifier(*self.table.split(".")))

        try:
            with self.conn.cursor() as cur:
                cur.execute(statement, (relid, list(columns), benefit, size_kb))
        except psycopg.Error as e:
            raise self._error(f"Could not save advice into \"{self.table}\": {e}") from e

        logger.debug("Saved advice for relation %d columns %s", relid, list(columns))

    def entries(self) -> list[AdvisoryEntry]:
        """Grouped advisory surface for this session, best gain first."""
        import psycopg
        from psycopg import sql

        query = sql.SQL(
            """
            SELECT c.relname, a.attrs, MAX(a.index_size), SUM(a.profit),
                   ARRAY(SELECT att.attname
                         FROM unnest(a.attrs) WITH ORDINALITY AS k(attnum, ord)
                         JOIN pg_attribute att
                           ON att.attrelid = a.reloid AND att.attnum = k.attnum
                         ORDER BY k.ord)
            FROM {} a
            JOIN pg_class c ON c.oid = a.reloid
            WHERE a.backend_pid = pg_backend_pid()
            GROUP BY c.relname, a.reloid, a.attrs
            ORDER BY SUM(a.profit) / GREATEST(MAX(a.index_size), 1) DESC
            """
        ).format(sql.Identifier(*self.table.split(".")))

        try:
            with self.conn.cursor() as cur:
                cur.execute(query)
                rows = cur.fetchall()
        except psycopg.Error as e:
            raise self._error(f"Could not read advice from \"{self.table}\": {e}") from e

        return [
            AdvisoryEntry(
                table=relname,
                columns=tuple(names),
                column_ids=tuple(attrs),
                size_kb=int(size),
                benefit=float(benefit),
            )
            for relname, attrs, size, benefit, names in rows
        ]

    def clear(self) -> None:
        """Delete this session's rows."""
        from psycopg import sql

        with self.conn.cursor() as cur:
            cur.execute(
                sql.SQL("DELETE FROM {} WHERE backend_pid = pg_backend_pid()").format(
                    sql.Identifier(*self.table.split("."))
                )
            )
