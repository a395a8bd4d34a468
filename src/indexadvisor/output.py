"""
Rendering of recommendations.

Two plain-text forms, both consumed by people and scripts:

    /* 1. orders(customer_id,created_at): size=2048 KB, profit=1520.35 */
    /* Total size = 2048KB */

and the matching DDL:

    create index idx_orders_1 on orders (customer_id,created_at);

Entries are numbered by their position in the full recommendation list,
so a budget selection keeps the numbers the unrestricted report used.
"""

from __future__ import annotations

from typing import Sequence

from rich.table import Table

from indexadvisor.advisory.records import AdvisoryEntry
from indexadvisor.candidates.model import Candidate
from indexadvisor.catalog.base import Catalog, column_names


def _numbers(entries: Sequence[AdvisoryEntry], numbers: Sequence[int] | None) -> Sequence[int]:
    if numbers is None:
        return range(1, len(entries) + 1)
    if len(numbers) != len(entries):
        raise ValueError("numbers must be parallel to entries")
    return numbers


def index_name(table: str, number: int) -> str:
    return f"idx_{table.replace('.', '_')}_{number}"


def recommendation_lines(
    entries: Sequence[AdvisoryEntry],
    numbers: Sequence[int] | None = None,
) -> list[str]:
    """Comment lines describing each entry, followed by the total size."""
    lines = [
        f"/* {n}. {e.table}({','.join(e.columns)}): size={e.size_kb} KB, profit={e.benefit:.2f} */"
        for n, e in zip(_numbers(entries, numbers), entries)
    ]
    lines.append(f"/* Total size = {sum(e.size_kb for e in entries)}KB */")
    return lines


def create_index_statements(
    entries: Sequence[AdvisoryEntry],
    numbers: Sequence[int] | None = None,
) -> list[str]:
    """CREATE INDEX statements for each entry."""
    return [
        f"create index {index_name(e.table, n)} on {e.table} ({','.join(e.columns)});"
        for n, e in zip(_numbers(entries, numbers), entries)
    ]


def candidates_table(title: str, candidates: Sequence[Candidate], catalog: Catalog) -> Table:
    """Rich table listing candidates with table and column names."""
    table = Table(title=title, show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Table", style="cyan")
    table.add_column("Columns", style="green")
    table.add_column("Key", style="dim")

    for i, cand in enumerate(candidates, 1):
        table.add_row(
            str(i),
            catalog.relation_name(cand.relid),
            ", ".join(column_names(catalog, cand.relid, cand.columns)),
            str(cand),
        )
    return table
