"""
Catalog port.

The advisor never reads storage metadata directly; it asks a ``Catalog``.
Two adapters ship with the package:

- ``StaticCatalog``: a schema described in JSON / YAML (offline use, tests)
- ``PostgresCatalog``: live ``pg_catalog`` queries through psycopg
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class ColumnDef:
    """A user column of a table."""

    attno: int
    name: str
    type_name: str


@dataclass(frozen=True)
class ExistingIndex:
    """
    An index that already exists on a table.

    Attributes:
        columns: Key column ids, in key order (0 for expression keys).
        valid: Whether the index is usable by the planner.
        is_expression: Whether any key is an expression.
        is_partial: Whether the index has a WHERE predicate.
        name: Index name, for messages.
    """

    columns: tuple[int, ...]
    valid: bool = True
    is_expression: bool = False
    is_partial: bool = False
    name: str = ""

    @property
    def is_plain(self) -> bool:
        """Valid, non-expression, non-partial: the only kind we compare against."""
        return self.valid and not self.is_expression and not self.is_partial


@runtime_checkable
class Catalog(Protocol):
    """Read-only view of tables, columns and indexes."""

    def table_eligible(self, relid: int) -> bool:
        """False for system and temporary tables."""
        ...

    def existing_indexes(self, relid: int) -> Sequence[ExistingIndex]: ...

    def row_count_at_least(self, relid: int, n: int) -> bool: ...

    def relation_id(self, name: str) -> int | None:
        """Resolve a (possibly schema-qualified) table name."""
        ...

    def relation_name(self, relid: int) -> str: ...

    def columns(self, relid: int) -> Sequence[ColumnDef]: ...


def column_names(catalog: Catalog, relid: int, attnos: Sequence[int]) -> list[str]:
    """Map column ids to names, keeping the given order."""
    by_attno = {col.attno: col.name for col in catalog.columns(relid)}
    return [by_attno.get(attno, str(attno)) for attno in attnos]
