"""
Static catalog: a schema described in a JSON or YAML document.

Used for offline candidate generation and in tests. The document looks
like::

    {
      "tables": [
        {
          "name": "orders",
          "relid": 16384,
          "rows": 250000,
          "columns": [
            {"name": "id", "type": "int4"},
            {"name": "customer_id", "type": "int4"}
          ],
          "indexes": [{"columns": ["id"], "name": "orders_pkey"}]
        }
      ]
    }

Column ids are 1-based positions in ``columns``. Relation ids default to
16384 + position when omitted.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from indexadvisor.catalog.base import ColumnDef, ExistingIndex
from indexadvisor.exceptions import CatalogError

FIRST_USER_RELID = 16384


class ColumnSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str = "int4"


class IndexSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    columns: list[str]
    name: str = ""
    valid: bool = True
    expression: bool = False
    partial: bool = False


class TableSpec(BaseModel):
    """One table of the static schema."""

    model_config = ConfigDict(frozen=True)

    name: str
    relid: int | None = None
    rows: int = Field(default=1000, ge=0)
    system: bool = False
    temporary: bool = False
    columns: list[ColumnSpec] = Field(default_factory=list)
    indexes: list[IndexSpec] = Field(default_factory=list)


class SchemaSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    tables: list[TableSpec] = Field(default_factory=list)


class StaticCatalog:
    """
    In-memory ``Catalog`` built from a ``SchemaSpec``.

    Example::

        catalog = StaticCatalog.from_file(Path("schema.json"))
        relid = catalog.relation_id("orders")
    """

    def __init__(self, schema: SchemaSpec) -> None:
        self._tables: dict[int, TableSpec] = {}
        self._by_name: dict[str, int] = {}
        self._columns: dict[int, list[ColumnDef]] = {}
        self._indexes: dict[int, list[ExistingIndex]] = {}

        for position, table in enumerate(schema.tables):
            relid = table.relid if table.relid is not None else FIRST_USER_RELID + position
            if relid in self._tables:
                raise CatalogError(f"Duplicate relation id {relid}", relation=relid)

            columns = [
                ColumnDef(attno=i, name=col.name, type_name=col.type)
                for i, col in enumerate(table.columns, start=1)
            ]
            attnos = {col.name: col.attno for col in columns}

            indexes = []
            for idx in table.indexes:
                unknown = [c for c in idx.columns if c not in attnos]
                if unknown and not idx.expression:
                    raise CatalogError(
                        f"Index {idx.name or idx.columns} on {table.name} "
                        f"references unknown column(s) {', '.join(unknown)}",
                        relation=table.name,
                    )
                indexes.append(ExistingIndex(
                    columns=tuple(attnos.get(c, 0) for c in idx.columns),
                    valid=idx.valid,
                    is_expression=idx.expression,
                    is_partial=idx.partial,
                    name=idx.name,
                ))

            self._tables[relid] = table
            self._by_name[table.name.lower()] = relid
            self._columns[relid] = columns
            self._indexes[relid] = indexes

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StaticCatalog":
        try:
            return cls(SchemaSpec.model_validate(data))
        except ValidationError as e:
            raise CatalogError(f"Invalid schema description: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> "StaticCatalog":
        """Load a schema description from a JSON or YAML file."""
        try:
            text = path.read_text()
        except OSError as e:
            raise CatalogError(f"Cannot read schema file {path}: {e}") from e

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        return cls.from_dict(data or {})

    def _table(self, relid: int) -> TableSpec:
        try:
            return self._tables[relid]
        except KeyError:
            raise CatalogError(f"Unknown relation id {relid}", relation=relid) from None

    # ── Catalog protocol ────────────────────────────────────────────────

    def table_eligible(self, relid: int) -> bool:
        table = self._table(relid)
        return not (table.system or table.temporary)

    def existing_indexes(self, relid: int) -> Sequence[ExistingIndex]:
        self._table(relid)
        return self._indexes[relid]

    def row_count_at_least(self, relid: int, n: int) -> bool:
        return self._table(relid).rows >= n

    def relation_id(self, name: str) -> int | None:
        # schema qualification is ignored: names are unique here
        return self._by_name.get(name.split(".")[-1].lower())

    def relation_name(self, relid: int) -> str:
        return self._table(relid).name

    def columns(self, relid: int) -> Sequence[ColumnDef]:
        self._table(relid)
        return self._columns[relid]
