"""
Query representation and the SQL front end.

- tree.py: immutable, resolved query tree the scanner walks
- builder.py: pglast parse tree -> query tree
"""

from indexadvisor.query.tree import (
    Aggref,
    BoolExpr,
    BoolOp,
    Const,
    Expr,
    ExprList,
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

__all__ = [
    "Aggref",
    "BoolExpr",
    "BoolOp",
    "Const",
    "Expr",
    "ExprList",
    "FuncExpr",
    "OpaqueNode",
    "OpExpr",
    "Param",
    "Query",
    "RangeKind",
    "RangeTableEntry",
    "RelabelType",
    "SortGroupClause",
    "SubLink",
    "SubLinkKind",
    "TargetEntry",
    "Var",
    "conjunction",
]
