"""
SQL front end: pglast parse tree -> resolved query tree.

pglast gives us PostgreSQL's raw parse tree: names, not ids. This module
does the part of parse analysis the advisor needs:

- FROM items become range table entries (tables resolved through the
  catalog, aliases honoured); JOIN ... ON / USING conditions are ANDed
  into the filter
- column references are resolved against the scope stack, innermost
  query first, and become ``Var(varno, attno, levels_up)``
- BETWEEN, IN lists and IN (SELECT ...) are rewritten the way the planner
  sees them
- GROUP BY / ORDER BY items point at target entries (select-list
  matches, output names, ordinals, or appended junk entries)

Usage:
    from indexadvisor.query.builder import build_query_tree

    query = build_query_tree("SELECT * FROM orders WHERE customer_id = 42", catalog)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from pglast import parse_sql
from pglast.enums import A_Expr_Kind, BoolExprType, SortByDir, SubLinkType
from pglast.parser import ParseError

from indexadvisor.catalog.base import Catalog
from indexadvisor.exceptions import CatalogError, WorkloadError
from indexadvisor.query.tree import (
    Aggref,
    BoolExpr,
    BoolOp,
    Const,
    Expr,
    FuncExpr,
    OpaqueNode,
    OpExpr,
    Param,
    Query,
    RangeKind,
    RangeTableEntry,
    RelabelType,
    SortGroupClause,
    SubLink,
    SubLinkKind,
    TargetEntry,
    Var,
    conjunction,
)

logger = logging.getLogger(__name__)


AGGREGATE_FUNCTIONS = frozenset({
    "count", "sum", "avg", "min", "max", "array_agg", "string_agg",
    "bool_and", "bool_or", "every", "bit_and", "bit_or", "json_agg",
    "jsonb_agg", "json_object_agg", "jsonb_object_agg", "stddev",
    "stddev_pop", "stddev_samp", "variance", "var_pop", "var_samp",
})

_SUBLINK_KINDS = {
    SubLinkType.EXISTS_SUBLINK: SubLinkKind.EXISTS,
    SubLinkType.ANY_SUBLINK: SubLinkKind.ANY,
    SubLinkType.ALL_SUBLINK: SubLinkKind.ALL,
    SubLinkType.EXPR_SUBLINK: SubLinkKind.EXPR,
    SubLinkType.ARRAY_SUBLINK: SubLinkKind.ARRAY,
}


def _tag(node: Any) -> str:
    return type(node).__name__


def _name(nodes: Sequence[Any] | None) -> str:
    """Last component of a qualified name list (String nodes)."""
    if not nodes:
        return ""
    return getattr(nodes[-1], "sval", "") or ""


# ── Scope ────────────────────────────────────────────────────────────────


@dataclass
class _Binding:
    """A FROM item as seen by column resolution."""

    name: str
    varno: int
    kind: RangeKind
    # name -> (attno, type); None when the item's columns are unknown
    columns: dict[str, tuple[int, str]] | None


@dataclass
class _Frame:
    """One query level under construction."""

    range_table: list[RangeTableEntry] = field(default_factory=list)
    bindings: list[_Binding] = field(default_factory=list)
    ctes: dict[str, Query] = field(default_factory=dict)
    quals: list[Expr] = field(default_factory=list)


# ── Builder ──────────────────────────────────────────────────────────────


class QueryBuilder:
    """
    Turns SELECT statements into ``Query`` trees using a catalog.

    Example:
        builder = QueryBuilder(catalog)
        query = builder.build("SELECT a FROM t WHERE b > 10 ORDER BY a")
    """

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def build(self, sql: str) -> Query:
        """Parse and resolve a single SELECT statement."""
        try:
            stmts = parse_sql(sql)
        except ParseError as e:
            raise WorkloadError(f"Could not parse statement: {e}", source=sql) from e

        if not stmts or len(stmts) != 1:
            raise WorkloadError(
                f"Expected exactly one statement, got {len(stmts or ())}", source=sql
            )

        stmt = stmts[0].stmt
        if _tag(stmt) != "SelectStmt":
            raise WorkloadError(
                f"Only SELECT statements can be analysed, got {_tag(stmt)}", source=sql
            )

        query = self._select(stmt, [])
        return Query(
            range_table=query.range_table,
            where=query.where,
            target_list=query.target_list,
            group_clause=query.group_clause,
            sort_clause=query.sort_clause,
            sql=sql.strip().rstrip(";"),
        )

    # -- statements --------------------------------------------------------

    def _select(self, node: Any, scopes: list[_Frame]) -> Query:
        frame = _Frame()
        scopes = scopes + [frame]

        if node.withClause is not None:
            for cte in node.withClause.ctes or ():
                frame.ctes[cte.ctename] = self._select(cte.ctequery, scopes[:-1] + [_Frame()])

        # UNION / INTERSECT / EXCEPT: each arm is a sub-select of this level
        if node.larg is not None and node.rarg is not None:
            for i, arm in enumerate((node.larg, node.rarg), start=1):
                sub = self._select(arm, scopes[:-1] + [_Frame()])
                self._add_entry(frame, RangeTableEntry.sub_select(sub, f"*SELECT* {i}"), None)
            return Query(range_table=tuple(frame.range_table))

        if node.valuesLists:
            first = node.valuesLists[0]
            return Query(
                target_list=tuple(
                    TargetEntry(self._expr(e, scopes), resno=i, name=f"column{i}")
                    for i, e in enumerate(first, start=1)
                )
            )

        for item in node.fromClause or ():
            self._from_item(item, scopes)

        where = None
        if node.whereClause is not None:
            where = self._expr(node.whereClause, scopes)
        where = conjunction(*frame.quals, where)

        targets = self._target_list(node.targetList or (), scopes)

        group_clause: list[SortGroupClause] = []
        for item in node.groupClause or ():
            group_clause.append(
                SortGroupClause(self._target_ref(item, targets, scopes, prefer_output=False))
            )

        sort_clause: list[SortGroupClause] = []
        for item in node.sortClause or ():
            ref = self._target_ref(item.node, targets, scopes, prefer_output=True)
            sort_clause.append(
                SortGroupClause(ref, descending=item.sortby_dir == SortByDir.SORTBY_DESC)
            )

        return Query(
            range_table=tuple(frame.range_table),
            where=where,
            target_list=tuple(targets),
            group_clause=tuple(group_clause),
            sort_clause=tuple(sort_clause),
        )

    # -- FROM --------------------------------------------------------------

    def _add_entry(
        self,
        frame: _Frame,
        rte: RangeTableEntry,
        columns: dict[str, tuple[int, str]] | None,
    ) -> int:
        frame.range_table.append(rte)
        varno = len(frame.range_table)
        frame.bindings.append(_Binding(rte.name, varno, rte.kind, columns))
        return varno

    def _from_item(self, item: Any, scopes: list[_Frame]) -> None:
        frame = scopes[-1]
        tag = _tag(item)

        if tag == "RangeVar":
            alias = item.alias.aliasname if item.alias is not None else item.relname
            cte = None if item.schemaname else self._find_cte(item.relname, scopes)
            if cte is not None:
                rte = RangeTableEntry(kind=RangeKind.CTE, name=alias, subquery=cte)
                self._add_entry(frame, rte, _output_columns(cte))
                return

            qualified = f"{item.schemaname}.{item.relname}" if item.schemaname else item.relname
            relid = self.catalog.relation_id(qualified)
            if relid is None:
                raise CatalogError(f'relation "{qualified}" does not exist', relation=qualified)
            columns = {
                col.name: (col.attno, col.type_name) for col in self.catalog.columns(relid)
            }
            self._add_entry(frame, RangeTableEntry.relation(relid, alias), columns)

        elif tag == "RangeSubselect":
            alias = item.alias.aliasname if item.alias is not None else ""
            # only LATERAL sub-selects see their siblings
            sub_scopes = scopes if item.lateral else scopes[:-1] + [_Frame()]
            sub = self._select(item.subquery, sub_scopes)
            self._add_entry(frame, RangeTableEntry.sub_select(sub, alias), _output_columns(sub))

        elif tag == "JoinExpr":
            start = len(frame.bindings)
            self._from_item(item.larg, scopes)
            middle = len(frame.bindings)
            self._from_item(item.rarg, scopes)

            for using in item.usingClause or ():
                name = using.sval
                left = self._lookup_in(frame.bindings[start:middle], name, levels_up=0)
                right = self._lookup_in(frame.bindings[middle:], name, levels_up=0)
                if left is None or right is None:
                    raise WorkloadError(f'column "{name}" in USING clause does not exist')
                frame.quals.append(OpExpr("=", (left, right)))

            if item.quals is not None:
                frame.quals.append(self._expr(item.quals, scopes))

        elif tag == "RangeFunction":
            alias = item.alias.aliasname if item.alias is not None else ""
            self._add_entry(frame, RangeTableEntry(kind=RangeKind.FUNCTION, name=alias), None)

        else:
            logger.warning("Unsupported FROM item: %s", tag)
            self._add_entry(frame, RangeTableEntry(kind=RangeKind.FUNCTION, name=tag), None)

    def _find_cte(self, name: str, scopes: list[_Frame]) -> Query | None:
        for frame in reversed(scopes):
            if name in frame.ctes:
                return frame.ctes[name]
        return None

    # -- column references -------------------------------------------------

    def _lookup_in(self, bindings: Sequence[_Binding], column: str, levels_up: int) -> Var | None:
        for binding in bindings:
            if binding.columns is not None and column in binding.columns:
                attno, type_name = binding.columns[column]
                return Var(binding.varno, attno, type_name, levels_up)
        return None

    def _column_ref(self, node: Any, scopes: list[_Frame]) -> Expr:
        fields = node.fields
        if _tag(fields[-1]) == "A_Star":
            return OpaqueNode("A_Star")

        names = [f.sval for f in fields]
        column = names[-1]
        qualifier = names[-2] if len(names) >= 2 else None

        for levels_up, frame in enumerate(reversed(scopes)):
            if qualifier is None:
                var = self._lookup_in(frame.bindings, column, levels_up)
                if var is not None:
                    return var
                continue

            for binding in frame.bindings:
                if binding.name != qualifier:
                    continue
                if binding.columns is None:
                    return Var(binding.varno, 0, "", levels_up)
                if column not in binding.columns:
                    raise CatalogError(
                        f'column {qualifier}.{column} does not exist', relation=qualifier
                    )
                attno, type_name = binding.columns[column]
                return Var(binding.varno, attno, type_name, levels_up)

        logger.warning("Could not resolve column reference %s", ".".join(names))
        return OpaqueNode("ColumnRef")

    # -- select list, GROUP BY, ORDER BY -----------------------------------

    def _target_list(self, items: Sequence[Any], scopes: list[_Frame]) -> list[TargetEntry]:
        targets: list[TargetEntry] = []
        for item in items:
            val = item.val
            if _tag(val) == "ColumnRef" and _tag(val.fields[-1]) == "A_Star":
                qualifier = val.fields[-2].sval if len(val.fields) >= 2 else None
                for binding in scopes[-1].bindings:
                    if binding.columns is None:
                        continue
                    if qualifier is not None and binding.name != qualifier:
                        continue
                    for name, (attno, type_name) in binding.columns.items():
                        targets.append(
                            TargetEntry(
                                Var(binding.varno, attno, type_name),
                                resno=len(targets) + 1,
                                name=name,
                            )
                        )
                continue

            targets.append(
                TargetEntry(
                    self._expr(val, scopes),
                    resno=len(targets) + 1,
                    name=item.name or _output_name(val),
                )
            )
        return targets

    def _target_ref(
        self,
        node: Any,
        targets: list[TargetEntry],
        scopes: list[_Frame],
        prefer_output: bool,
    ) -> int:
        """
        Target entry number for a GROUP BY / ORDER BY item.

        A matching target entry is appended as junk when none exists.
        """
        visible = [t for t in targets if not t.junk]

        if _tag(node) == "A_Const":
            value = _const_value(node)
            if isinstance(value, int) and not isinstance(value, bool):
                if not 1 <= value <= len(visible):
                    raise WorkloadError(f"position {value} is not in select list")
                return visible[value - 1].resno

        if _tag(node) == "ColumnRef" and len(node.fields) == 1 and _tag(node.fields[0]) == "String":
            name = node.fields[0].sval
            by_name = [t for t in visible if t.name == name]
            input_column = self._lookup_in(scopes[-1].bindings, name, levels_up=0)
            if by_name and (prefer_output or input_column is None):
                return by_name[0].resno

        expr = self._expr(node, scopes)
        for target in targets:
            if target.expr == expr:
                return target.resno

        targets.append(TargetEntry(expr, resno=len(targets) + 1, junk=True))
        return len(targets)

    # -- expressions -------------------------------------------------------

    def _expr(self, node: Any, scopes: list[_Frame]) -> Expr:
        tag = _tag(node)

        if tag == "ColumnRef":
            return self._column_ref(node, scopes)

        if tag == "A_Const":
            return Const(_const_value(node))

        if tag == "ParamRef":
            return Param(node.number or 0)

        if tag == "TypeCast":
            return RelabelType(self._expr(node.arg, scopes), _name(node.typeName.names))

        if tag == "A_Expr":
            return self._a_expr(node, scopes)

        if tag == "BoolExpr":
            args = tuple(self._expr(a, scopes) for a in node.args)
            if node.boolop == BoolExprType.AND_EXPR:
                return conjunction(*args)
            if node.boolop == BoolExprType.OR_EXPR:
                return BoolExpr(BoolOp.OR, args)
            return BoolExpr(BoolOp.NOT, args)

        if tag == "SubLink":
            return self._sublink(node, scopes)

        if tag == "FuncCall":
            name = _name(node.funcname).lower()
            args = tuple(self._expr(a, scopes) for a in node.args or ())
            if name in AGGREGATE_FUNCTIONS and node.over is None:
                return Aggref(name, () if node.agg_star else args)
            return FuncExpr(name, args)

        return OpaqueNode(tag)

    def _a_expr(self, node: Any, scopes: list[_Frame]) -> Expr:
        kind = node.kind
        op = _name(node.name)

        def operand(n: Any) -> Expr:
            return self._expr(n, scopes)

        if kind == A_Expr_Kind.AEXPR_OP:
            if node.lexpr is None:
                return OpExpr(op, (operand(node.rexpr),))
            return OpExpr(op, (operand(node.lexpr), operand(node.rexpr)))

        if kind in (A_Expr_Kind.AEXPR_BETWEEN, A_Expr_Kind.AEXPR_BETWEEN_SYM):
            arg = operand(node.lexpr)
            low, high = (operand(n) for n in node.rexpr)
            return BoolExpr(BoolOp.AND, (OpExpr(">=", (arg, low)), OpExpr("<=", (arg, high))))

        if kind in (A_Expr_Kind.AEXPR_NOT_BETWEEN, A_Expr_Kind.AEXPR_NOT_BETWEEN_SYM):
            arg = operand(node.lexpr)
            low, high = (operand(n) for n in node.rexpr)
            return BoolExpr(BoolOp.OR, (OpExpr("<", (arg, low)), OpExpr(">", (arg, high))))

        if kind == A_Expr_Kind.AEXPR_IN:
            arg = operand(node.lexpr)
            items = tuple(OpExpr(op, (arg, operand(n))) for n in node.rexpr)
            if len(items) == 1:
                return items[0]
            # x IN (...) is an OR of equalities, x NOT IN (...) an AND of <>
            return BoolExpr(BoolOp.OR if op == "=" else BoolOp.AND, items)

        if kind in (A_Expr_Kind.AEXPR_LIKE, A_Expr_Kind.AEXPR_ILIKE):
            return OpExpr(op, (operand(node.lexpr), operand(node.rexpr)))

        if kind in (A_Expr_Kind.AEXPR_OP_ANY, A_Expr_Kind.AEXPR_OP_ALL):
            return OpaqueNode("ScalarArrayOpExpr")

        if kind in (A_Expr_Kind.AEXPR_DISTINCT, A_Expr_Kind.AEXPR_NOT_DISTINCT):
            return OpaqueNode("DistinctExpr")

        if kind == A_Expr_Kind.AEXPR_NULLIF:
            return OpaqueNode("NullIfExpr")

        return OpaqueNode(f"A_Expr:{getattr(kind, 'name', kind)}")

    def _sublink(self, node: Any, scopes: list[_Frame]) -> Expr:
        kind = _SUBLINK_KINDS.get(node.subLinkType)
        if kind is None:
            return OpaqueNode("SubLink")

        subselect = self._select(node.subselect, scopes)

        testexpr = None
        if kind in (SubLinkKind.ANY, SubLinkKind.ALL) and node.testexpr is not None:
            # IN (SELECT ...) has no operator name; it means = ANY
            op = _name(node.operName) or "="
            testexpr = OpExpr(op, (self._expr(node.testexpr, scopes), Param(1)))

        return SubLink(kind, subselect, testexpr)


def _const_value(node: Any) -> Any:
    if getattr(node, "isnull", False):
        return None
    val = getattr(node, "val", None)
    if val is None:
        return None
    tag = _tag(val)
    if tag == "Integer":
        return int(val.ival or 0)
    if tag == "Float":
        return float(val.fval)
    if tag == "Boolean":
        return bool(val.boolval)
    if tag == "String":
        return val.sval
    if tag == "BitString":
        return val.bsval
    return None


def _output_name(node: Any) -> str | None:
    tag = _tag(node)
    if tag == "ColumnRef":
        last = node.fields[-1]
        return getattr(last, "sval", None)
    if tag == "FuncCall":
        return _name(node.funcname).lower()
    if tag == "TypeCast":
        return _output_name(node.arg)
    return None


def _output_columns(query: Query) -> dict[str, tuple[int, str]]:
    columns: dict[str, tuple[int, str]] = {}
    for target in query.target_list:
        if target.junk or not target.name or target.name in columns:
            continue
        type_name = target.expr.type_name if isinstance(target.expr, Var) else ""
        columns[target.name] = (target.resno, type_name)
    return columns


def build_query_tree(sql: str, catalog: Catalog) -> Query:
    """Parse one SELECT statement and resolve it against ``catalog``."""
    return QueryBuilder(catalog).build(sql)
