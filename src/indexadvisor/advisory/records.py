"""
Advisory records and the grouped advisory surface.

The evaluator produces one ``AdvisoryRecord`` per chosen candidate per
query. The selector and the report consume ``AdvisoryEntry`` values: the
records grouped by (table, columns), with the largest size seen and the
summed benefit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

from indexadvisor.catalog.base import Catalog, column_names


@dataclass(frozen=True)
class AdvisoryRecord:
    """One recommendation for one query."""

    relid: int
    columns: tuple[int, ...]
    size_kb: int
    benefit: float


class AdvisoryEntry(BaseModel):
    """
    A recommendation aggregated over the workload.

    ``columns`` holds column names for display; ``column_ids`` the ids the
    candidate was built from.
    """

    model_config = ConfigDict(frozen=True)

    table: str
    columns: tuple[str, ...]
    column_ids: tuple[int, ...] = ()
    size_kb: int = Field(ge=0)
    benefit: float

    @property
    def gain(self) -> float:
        """Benefit per KB; entries without size sort first."""
        if self.size_kb == 0:
            return float("inf")
        return self.benefit / self.size_kb


def group_records(
    records: Iterable[AdvisoryRecord],
    catalog: Catalog,
) -> list[AdvisoryEntry]:
    """
    Group raw records by (relation, columns).

    Sizes are the maximum seen, benefits are summed, and the result is
    ordered by benefit/size descending.
    """
    groups: dict[tuple[int, tuple[int, ...]], list[float]] = {}
    for rec in records:
        key = (rec.relid, rec.columns)
        if key in groups:
            size, benefit = groups[key]
            groups[key] = [max(size, rec.size_kb), benefit + rec.benefit]
        else:
            groups[key] = [rec.size_kb, rec.benefit]

    entries = [
        AdvisoryEntry(
            table=catalog.relation_name(relid),
            columns=tuple(column_names(catalog, relid, columns)),
            column_ids=columns,
            size_kb=int(size),
            benefit=benefit,
        )
        for (relid, columns), (size, benefit) in groups.items()
    ]
    entries.sort(key=lambda e: e.gain, reverse=True)
    return entries
