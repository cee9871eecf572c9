"""
tally intermediate representation.

The expression AST produced by the parser and consumed by the evaluator.
"""

from .expressions import (
    ArrayLiteral,
    Assignment,
    BinaryExpr,
    BinaryOp,
    CallExpr,
    ConvertExpr,
    ConvertKind,
    DateLiteral,
    Expr,
    FunctionDef,
    Identifier,
    IfExpr,
    IndexAccess,
    LambdaExpr,
    Literal,
    MarkdownLiteral,
    MutatingCall,
    NumberLiteral,
    ObjectLiteral,
    PercentExpr,
    PropertyAccess,
    QuantityLiteral,
    TypeCheck,
    UnaryExpr,
    UnaryOp,
    ZonedExpr,
)

__all__ = [
    "ArrayLiteral",
    "Assignment",
    "BinaryExpr",
    "BinaryOp",
    "CallExpr",
    "ConvertExpr",
    "ConvertKind",
    "DateLiteral",
    "Expr",
    "FunctionDef",
    "Identifier",
    "IfExpr",
    "IndexAccess",
    "LambdaExpr",
    "Literal",
    "MarkdownLiteral",
    "MutatingCall",
    "NumberLiteral",
    "ObjectLiteral",
    "PercentExpr",
    "PropertyAccess",
    "QuantityLiteral",
    "TypeCheck",
    "UnaryExpr",
    "UnaryOp",
    "ZonedExpr",
]
