"""
Cost oracle port and PostgreSQL adapters.

``HypoPGOracle`` lives in ``indexadvisor.oracle.hypopg`` and is imported
on demand.
"""

from indexadvisor.oracle.base import CostOracle, Estimate, HypotheticalIndex, PlanNode
from indexadvisor.oracle.plan import hypothetical_index_id, parse_explain_json

__all__ = [
    "CostOracle",
    "Estimate",
    "HypotheticalIndex",
    "PlanNode",
    "hypothetical_index_id",
    "parse_explain_json",
]
