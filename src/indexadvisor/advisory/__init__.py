"""
Advisory records, sinks and budget selection.
"""

from indexadvisor.advisory.records import AdvisoryEntry, AdvisoryRecord, group_records
from indexadvisor.advisory.selector import (
    Selection,
    compute_config_size,
    parse_size,
    select,
    select_exact,
    select_greedy,
)
from indexadvisor.advisory.store import (
    ADVISORY_TABLE_DDL,
    AdvisorySink,
    MemoryAdvisoryStore,
    PostgresAdvisoryStore,
)

__all__ = [
    "ADVISORY_TABLE_DDL",
    "AdvisoryEntry",
    "AdvisoryRecord",
    "AdvisorySink",
    "MemoryAdvisoryStore",
    "PostgresAdvisoryStore",
    "Selection",
    "compute_config_size",
    "group_records",
    "parse_size",
    "select",
    "select_exact",
    "select_greedy",
]
