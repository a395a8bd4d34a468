"""
PostgreSQL adapter: EXPLAIN (FORMAT JSON) -> PlanNode tree.

Hypothetical indexes created by hypopg show up in EXPLAIN with names like
``<13543>btree_orders_customer_id``; the number in angle brackets is the
hypothetical index id. Real indexes carry no id.
"""

from __future__ import annotations

import json
import re
from typing import Any

from indexadvisor.exceptions import OracleError
from indexadvisor.oracle.base import Estimate, PlanNode

_HYPO_NAME = re.compile(r"^<(\d+)>")

# EXPLAIN lists init-plans and sub-plans among "Plans"
_SUBPLAN_RELATIONSHIPS = frozenset({"InitPlan", "SubPlan"})


def hypothetical_index_id(index_name: str | None) -> int | None:
    """Extract the hypopg index id from an EXPLAIN index name."""
    if not index_name:
        return None
    m = _HYPO_NAME.match(index_name)
    return int(m.group(1)) if m else None


def parse_plan_node(node: dict[str, Any]) -> PlanNode:
    """Translate one EXPLAIN JSON plan node (and its inputs)."""
    children: list[PlanNode] = []
    subplans: list[PlanNode] = []

    for child in node.get("Plans", []):
        parsed = parse_plan_node(child)
        if child.get("Parent Relationship") in _SUBPLAN_RELATIONSHIPS:
            subplans.append(parsed)
        else:
            children.append(parsed)

    return PlanNode(
        kind=node.get("Node Type", ""),
        index_id=hypothetical_index_id(node.get("Index Name")),
        children=tuple(children),
        subplans=tuple(subplans),
        startup_cost=float(node.get("Startup Cost", 0.0)),
        total_cost=float(node.get("Total Cost", 0.0)),
        relation=node.get("Relation Name"),
    )


def parse_explain_json(raw: Any) -> Estimate:
    """
    Translate EXPLAIN (FORMAT JSON) output into an ``Estimate``.

    Accepts the JSON text, the list EXPLAIN returns, or the unwrapped
    ``{"Plan": ...}`` object.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise OracleError(f"EXPLAIN output is not valid JSON: {e}") from e

    if isinstance(raw, list):
        if not raw:
            raise OracleError("EXPLAIN output is empty")
        raw = raw[0]

    if not isinstance(raw, dict) or "Plan" not in raw:
        raise OracleError("EXPLAIN output has no 'Plan' object")

    return Estimate.from_plan(parse_plan_node(raw["Plan"]))
