"""
Immutable query expression tree.

A resolved, analyzer-style representation of a SELECT statement: every
column reference already points at a range table entry (``varno``) in a
query ``levels_up`` levels out from where it appears. The scanner walks
this tree; nothing here is mutated after construction.

Node kinds (the ``Expr`` union):
- Var:          column reference
- OpExpr:       binary / unary operator application
- BoolExpr:     AND / OR / NOT
- SubLink:      sub-select inside an expression (EXISTS, IN, scalar)
- Aggref:       aggregate call
- FuncExpr:     non-aggregate function call
- Const, Param: literals and parameters
- RelabelType:  type cast wrapper
- ExprList:     plain list of expressions
- OpaqueNode:   anything else, kept only so it can be reported
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class BoolOp(str, Enum):
    """Boolean connectives."""
    AND = "and"
    OR = "or"
    NOT = "not"


class SubLinkKind(str, Enum):
    """Sub-select flavours."""
    EXISTS = "exists"
    ANY = "any"          # x IN (SELECT ...), x = ANY (SELECT ...)
    ALL = "all"
    EXPR = "expr"        # scalar sub-select
    ARRAY = "array"


class RangeKind(str, Enum):
    """What a range table entry refers to."""
    RELATION = "relation"
    SUBQUERY = "subquery"
    FUNCTION = "function"
    VALUES = "values"
    CTE = "cte"


@dataclass(frozen=True)
class Var:
    """
    A column reference.

    Attributes:
        varno: 1-based position in the range table that resolves it.
        attno: Column number in the referenced relation (<= 0 for system
            columns and whole-row references).
        type_name: Column type name.
        levels_up: How many query levels out the range table lives.
    """
    varno: int
    attno: int
    type_name: str = ""
    levels_up: int = 0


@dataclass(frozen=True)
class OpExpr:
    operator: str
    args: tuple["Expr", ...]


@dataclass(frozen=True)
class BoolExpr:
    op: BoolOp
    args: tuple["Expr", ...]


@dataclass(frozen=True)
class SubLink:
    """
    A sub-select used inside an expression.

    ``testexpr`` is the comparison against the sub-select's output for
    ANY / ALL links (``x = <param>``); EXISTS and scalar links have none.
    """
    kind: SubLinkKind
    subselect: "Query"
    testexpr: "Expr | None" = None


@dataclass(frozen=True)
class Aggref:
    name: str
    args: tuple["Expr", ...] = ()


@dataclass(frozen=True)
class FuncExpr:
    name: str
    args: tuple["Expr", ...] = ()


@dataclass(frozen=True)
class Const:
    value: Any = None


@dataclass(frozen=True)
class Param:
    number: int = 0


@dataclass(frozen=True)
class RelabelType:
    arg: "Expr"
    type_name: str = ""


@dataclass(frozen=True)
class ExprList:
    items: tuple["Expr", ...] = ()


@dataclass(frozen=True)
class OpaqueNode:
    """A construct the tree does not model; ``kind`` names it for logging."""
    kind: str


Expr = Union[
    Var, OpExpr, BoolExpr, SubLink, Aggref, FuncExpr, Const, Param,
    RelabelType, ExprList, OpaqueNode, "Query",
]


@dataclass(frozen=True)
class RangeTableEntry:
    """
    One FROM-list item.

    Attributes:
        kind: Relation, sub-select, function, ...
        relid: Table id (relations only).
        name: Table name or alias, for messages.
        subquery: The nested query (sub-selects only).
    """
    kind: RangeKind
    relid: int | None = None
    name: str = ""
    subquery: "Query | None" = None

    @classmethod
    def relation(cls, relid: int, name: str = "") -> "RangeTableEntry":
        return cls(kind=RangeKind.RELATION, relid=relid, name=name)

    @classmethod
    def sub_select(cls, query: "Query", name: str = "") -> "RangeTableEntry":
        return cls(kind=RangeKind.SUBQUERY, name=name, subquery=query)


@dataclass(frozen=True)
class TargetEntry:
    """A select-list item; ``junk`` entries exist only for GROUP/ORDER BY."""
    expr: Expr
    resno: int
    name: str | None = None
    junk: bool = False


@dataclass(frozen=True)
class SortGroupClause:
    """A GROUP BY or ORDER BY item, pointing at a 1-based target entry."""
    target_ref: int
    descending: bool = False


@dataclass(frozen=True)
class Query:
    """
    A (sub-)query.

    Attributes:
        range_table: FROM-list entries; ``Var.varno`` indexes into this.
        where: Filter predicate, join conditions included.
        target_list: Select-list plus junk entries.
        group_clause: GROUP BY items.
        sort_clause: ORDER BY items.
        sql: Source text, if known.
    """
    range_table: tuple[RangeTableEntry, ...] = ()
    where: Expr | None = None
    target_list: tuple[TargetEntry, ...] = ()
    group_clause: tuple[SortGroupClause, ...] = ()
    sort_clause: tuple[SortGroupClause, ...] = ()
    sql: str = field(default="", compare=False)

    def target(self, ref: int) -> TargetEntry:
        """Target entry referenced by a sort/group clause."""
        return self.target_list[ref - 1]


def conjunction(*exprs: Expr | None) -> Expr | None:
    """AND together the non-empty expressions, flattening nested ANDs."""
    args: list[Expr] = []
    for expr in exprs:
        if expr is None:
            continue
        if isinstance(expr, BoolExpr) and expr.op == BoolOp.AND:
            args.extend(expr.args)
        else:
            args.append(expr)

    if not args:
        return None
    if len(args) == 1:
        return args[0]
    return BoolExpr(BoolOp.AND, tuple(args))
