"""
Expression AST for the tally calculator language.

Supports:
- Arithmetic: +, -, *, /, %, mod, ^, and bitwise &, |, <<, >>
- Numbers in decimal, hexadecimal (0xFF) and binary (0b1010)
- Quantities: 5 m, 3.2 kg, 100 USD, 9.81 m/s^2
- Percentages: 10%, 20% of 50
- Unit conversion: 5 km to mi, 0xFF to binary, now to "Asia/Tokyo"
- Dates: 25.12.2024, tomorrow, friday, now@Europe/Berlin
- Comparison and logic: ==, !=, <, >, <=, >=, and, or, not, ??
- Conditionals: if/elif/else, cond ? a : b
- Assignment: x = 5, x += 1, x -= 1, x *= 2, x /= 2
- Functions: f(x) = x^2, x => x * 2, (a, b) => a + b
- Collections: [1, 2, 3], {name: "x"}, a[0], o.name, push!(a, 4)
- Type checks: x is length, x is not null
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class BinaryOp(StrEnum):
    """Binary operators for expressions."""

    # Arithmetic
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    POW = "^"
    # Bitwise / pipe
    BIT_AND = "&"
    PIPE = "|"
    SHL = "<<"
    SHR = ">>"
    # Comparison
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    # Logical
    AND = "and"
    OR = "or"
    COALESCE = "??"


class UnaryOp(StrEnum):
    """Unary operators for expressions."""

    NEG = "-"
    POS = "+"
    NOT = "not"


class ConvertKind(StrEnum):
    """What a ``to``/``in`` conversion targets."""

    UNIT = "unit"
    BASE = "base"
    TIMEZONE = "timezone"


# ---------------------------------------------------------------------------
# AST node types
# ---------------------------------------------------------------------------


class NumberLiteral(BaseModel):
    """A numeric literal; ``base`` records hex/binary spelling."""

    value: Decimal = Field(description="The numeric value")
    base: str | None = Field(default=None, description="'hex' or 'binary' when not decimal")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        if self.base == "hex":
            return hex(int(self.value))
        if self.base == "binary":
            return bin(int(self.value))
        return str(self.value)


class QuantityLiteral(BaseModel):
    """A number with a unit attached: 5 m, 9.81 m^2, 100 USD."""

    value: Decimal = Field(description="Magnitude")
    unit: str = Field(description="Unit expression text")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"


class Literal(BaseModel):
    """A literal value: str, bool, or None (null)."""

    value: str | bool | None = Field(description="The literal value")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        if self.value is None:
            return "null"
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return f'"{self.value}"'


class DateLiteral(BaseModel):
    """A calendar date written 25.12.2024 or 25/12/2024 (day first)."""

    year: int
    month: int
    day: int

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.day:02d}.{self.month:02d}.{self.year:04d}"


class MarkdownLiteral(BaseModel):
    """A prose line that evaluates to a markdown value."""

    text: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.text


class Identifier(BaseModel):
    """A bare name: variable, special name (today, total, pi), or unit."""

    name: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.name


class BinaryExpr(BaseModel):
    """Binary operation: left op right."""

    op: BinaryOp
    left: Expr
    right: Expr

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"({self.left} {self.op.value} {self.right})"


class UnaryExpr(BaseModel):
    """Unary operation: op operand."""

    op: UnaryOp
    operand: Expr

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        if self.op == UnaryOp.NOT:
            return f"not {self.operand}"
        return f"{self.op.value}{self.operand}"


class PercentExpr(BaseModel):
    """Postfix percentage: 10%, rate%."""

    operand: Expr

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.operand}%"


class ConvertExpr(BaseModel):
    """Conversion: value to km, value to hex, value in "Europe/Paris"."""

    operand: Expr
    target: str = Field(description="Unit expression, base name, or timezone")
    kind: ConvertKind = ConvertKind.UNIT

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        target = f'"{self.target}"' if self.kind == ConvertKind.TIMEZONE else self.target
        return f"({self.operand} to {target})"


class ZonedExpr(BaseModel):
    """Timezone placement: now@Europe/Berlin, 25.12.2024@UTC."""

    operand: Expr
    zone: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.operand}@{self.zone}"


class CallExpr(BaseModel):
    """Call: callee(arg1, arg2, ...). The callee is usually an Identifier."""

    callee: Expr
    args: list[Expr] = Field(default_factory=list, description="Arguments")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        args_str = ", ".join(str(a) for a in self.args)
        return f"{self.callee}({args_str})"


class MutatingCall(BaseModel):
    """In-place collection update: push!(items, 4). Rebinds the first argument."""

    name: str
    args: list[Expr] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        args_str = ", ".join(str(a) for a in self.args)
        return f"{self.name}!({args_str})"


class LambdaExpr(BaseModel):
    """Anonymous function: x => body, (a, b) => body."""

    params: list[str]
    body: Expr

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"({', '.join(self.params)}) => {self.body}"


class FunctionDef(BaseModel):
    """Named function definition: name(a, b) = body."""

    name: str
    params: list[str]
    body: Expr

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.name}({', '.join(self.params)}) = {self.body}"


class Assignment(BaseModel):
    """
    Variable binding: name = value.

    With ``op`` set this is a compound assignment (``x += 5``) that combines
    the current binding with the value.
    """

    name: str
    value: Expr
    op: BinaryOp | None = None

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.name} {self.op.value if self.op else ''}= {self.value}"


class ArrayLiteral(BaseModel):
    """Array literal: [a, b, c]."""

    items: list[Expr] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return "[" + ", ".join(str(i) for i in self.items) + "]"


class ObjectLiteral(BaseModel):
    """Object literal: {key: value, ...}, insertion ordered."""

    entries: list[tuple[str, Expr]] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return "{" + ", ".join(f"{k}: {v}" for k, v in self.entries) + "}"


class PropertyAccess(BaseModel):
    """Property access: target.name."""

    target: Expr
    name: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.target}.{self.name}"


class IndexAccess(BaseModel):
    """Index access: target[index]."""

    target: Expr
    index: Expr

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.target}[{self.index}]"


class IfExpr(BaseModel):
    """
    Conditional expression: if cond: val elif cond: val else: val.

    The ternary ``cond ? a : b`` parses to an IfExpr without elif branches.
    """

    condition: Expr = Field(description="If condition")
    then_expr: Expr = Field(description="Value when condition is true")
    elif_branches: list[tuple[Expr, Expr]] = Field(
        default_factory=list, description="(condition, value) pairs"
    )
    else_expr: Expr = Field(description="Value when all conditions are false")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        parts = [f"if {self.condition}: {self.then_expr}"]
        for cond, val in self.elif_branches:
            parts.append(f"elif {cond}: {val}")
        parts.append(f"else: {self.else_expr}")
        return " ".join(parts)


class TypeCheck(BaseModel):
    """Type test: x is length, x is not null."""

    operand: Expr
    type_name: str
    negated: bool = False

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        op = "is not" if self.negated else "is"
        return f"({self.operand} {op} {self.type_name})"


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

Expr = (
    NumberLiteral
    | QuantityLiteral
    | Literal
    | DateLiteral
    | MarkdownLiteral
    | Identifier
    | BinaryExpr
    | UnaryExpr
    | PercentExpr
    | ConvertExpr
    | ZonedExpr
    | CallExpr
    | MutatingCall
    | LambdaExpr
    | FunctionDef
    | Assignment
    | ArrayLiteral
    | ObjectLiteral
    | PropertyAccess
    | IndexAccess
    | IfExpr
    | TypeCheck
)

# Rebuild models for recursive forward references
BinaryExpr.model_rebuild()
UnaryExpr.model_rebuild()
PercentExpr.model_rebuild()
ConvertExpr.model_rebuild()
ZonedExpr.model_rebuild()
CallExpr.model_rebuild()
MutatingCall.model_rebuild()
LambdaExpr.model_rebuild()
FunctionDef.model_rebuild()
Assignment.model_rebuild()
ArrayLiteral.model_rebuild()
ObjectLiteral.model_rebuild()
PropertyAccess.model_rebuild()
IndexAccess.model_rebuild()
IfExpr.model_rebuild()
TypeCheck.model_rebuild()
