"""
Live catalog backed by PostgreSQL's pg_catalog.

Every lookup is one small query; results are cached per relid for the
lifetime of the catalog object, which is expected to be one advisory run.
"""

from __future__ import annotations

import logging
from typing import Sequence

import psycopg

from indexadvisor.catalog.base import ColumnDef, ExistingIndex
from indexadvisor.exceptions import CatalogError

logger = logging.getLogger(__name__)


_RELATION_SQL = """
SELECT c.relname, n.nspname, c.relpersistence, c.relpages, c.reltuples
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE c.oid = %s
"""

_COLUMNS_SQL = """
SELECT a.attnum, a.attname, format_type(a.atttypid, a.atttypmod)
FROM pg_attribute a
WHERE a.attrelid = %s AND a.attnum > 0 AND NOT a.attisdropped
ORDER BY a.attnum
"""

# indkey lists key columns first, then INCLUDE columns
_INDEXES_SQL = """
SELECT ic.relname, i.indkey::int2[], i.indnkeyatts, i.indisvalid,
       i.indexprs IS NOT NULL, i.indpred IS NOT NULL
FROM pg_index i
JOIN pg_class ic ON ic.oid = i.indexrelid
WHERE i.indrelid = %s
"""

_SYSTEM_SCHEMAS = frozenset({"pg_catalog", "information_schema", "pg_toast"})


class PostgresCatalog:
    """
    ``Catalog`` over a psycopg connection.

    System tables are those in pg_catalog, information_schema or pg_toast;
    temporary tables are those with relpersistence 't'. Row counts come
    from the planner statistics (relpages / reltuples), so unanalysed
    tables look empty.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn
        self._relations: dict[int, tuple] = {}
        self._columns: dict[int, list[ColumnDef]] = {}
        self._indexes: dict[int, list[ExistingIndex]] = {}

    def _fetch(self, query: str, params: tuple) -> list[tuple]:
        try:
            with self.conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()
        except psycopg.Error as e:
            raise CatalogError(f"Catalog query failed: {e}") from e

    def _relation(self, relid: int) -> tuple:
        if relid not in self._relations:
            rows = self._fetch(_RELATION_SQL, (relid,))
            if not rows:
                raise CatalogError(f"Relation {relid} does not exist", relation=str(relid))
            self._relations[relid] = rows[0]
        return self._relations[relid]

    def table_eligible(self, relid: int) -> bool:
        _, schema, persistence, _, _ = self._relation(relid)
        return schema not in _SYSTEM_SCHEMAS and persistence != "t"

    def existing_indexes(self, relid: int) -> Sequence[ExistingIndex]:
        if relid not in self._indexes:
            self._indexes[relid] = [
                ExistingIndex(
                    columns=tuple(int(k) for k in (indkey or ())[:nkeyatts]),
                    valid=bool(valid),
                    is_expression=bool(has_exprs),
                    is_partial=bool(has_pred),
                    name=name,
                )
                for name, indkey, nkeyatts, valid, has_exprs, has_pred in self._fetch(
                    _INDEXES_SQL, (relid,)
                )
            ]
        return self._indexes[relid]

    def row_count_at_least(self, relid: int, n: int) -> bool:
        _, _, _, relpages, reltuples = self._relation(relid)
        return relpages >= n and reltuples >= n

    def relation_id(self, name: str) -> int | None:
        rows = self._fetch("SELECT to_regclass(%s)::oid", (name,))
        if not rows or rows[0][0] is None:
            return None
        return int(rows[0][0])

    def relation_name(self, relid: int) -> str:
        relname, schema, _, _, _ = self._relation(relid)
        return relname if schema == "public" else f"{schema}.{relname}"

    def columns(self, relid: int) -> Sequence[ColumnDef]:
        if relid not in self._columns:
            self._columns[relid] = [
                ColumnDef(attno=int(attno), name=name, type_name=type_name)
                for attno, name, type_name in self._fetch(_COLUMNS_SQL, (relid,))
            ]
        return self._columns[relid]
