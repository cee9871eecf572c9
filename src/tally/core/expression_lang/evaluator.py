"""
Expression evaluator for the tally calculator language.

A tree-walking interpreter over the typed AST. Evaluation is pure apart
from binding names in the scope it is given (assignments, function
definitions, and ``name!`` collection updates). Everything else it needs
(history, currency rates, the recursion ceiling, the clock) arrives
through ``EvaluationContext``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from decimal import ROUND_FLOOR, Decimal, localcontext

from tally.core import decimal_math
from tally.core.decimal_math import DECIMAL_CONTEXT, is_integer
from tally.core.errors import (
    InvalidOperandError,
    RecursionLimitExceededError,
    UndefinedVariableError,
)
from tally.core.expression_lang import quantity_ops
from tally.core.expression_lang.builtins import (
    BUILTINS,
    RELATIVE_DATES,
    at_zone,
    calendar_date,
    date_difference,
    rezone,
    shift_date,
)
from tally.core.expression_lang.callables import call_value
from tally.core.expression_lang.collections import MUTATING_FUNCTIONS, array_add, array_remove
from tally.core.expression_lang.context import EvaluationContext, Scope
from tally.core.expression_lang.formatter import format_decimal, format_value
from tally.core.expression_lang.parser import parse_expr
from tally.core.ir.expressions import (
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
from tally.core.units import dimensions as dims
from tally.core.units.conversion import convert_between
from tally.core.values import (
    FALSE,
    NULL,
    TRUE,
    Array,
    Boolean,
    Date,
    Function,
    Lambda,
    Markdown,
    Null,
    Number,
    NumberBase,
    Object,
    Percentage,
    Quantity,
    String,
    Value,
    freeze_scope,
    is_callable,
    is_truthy,
    make_array,
    make_object,
    make_quantity,
)
from tally.core.values import type_name as value_type_name

logger = logging.getLogger(__name__)

# Interpreter frames used per named-function call, with room to spare.
_FRAMES_PER_CALL = 30

VALUE_TYPES = frozenset(
    {
        "number",
        "quantity",
        "percentage",
        "string",
        "boolean",
        "null",
        "date",
        "array",
        "object",
        "function",
        "markdown",
    }
)


def evaluate(
    expr: Expr,
    scope: Scope | None = None,
    context: EvaluationContext | None = None,
) -> Value:
    """Evaluate an expression.

    Args:
        expr: Parsed expression AST.
        scope: Variable bindings; assignments and definitions are written here.
        context: History, currency rates, recursion ceiling, and clock.

    Returns:
        The computed value.

    Raises:
        EvaluationError: If evaluation fails. Evaluation stops at the first error.
    """
    scope = {} if scope is None else scope
    ctx = context or EvaluationContext()
    with localcontext(DECIMAL_CONTEXT), _stack_headroom(ctx.recursion_limit):
        try:
            return interpret(expr, scope, ctx)
        except RecursionError as e:
            logger.debug("Host stack exhausted before the recursion ceiling")
            raise RecursionLimitExceededError("<expression>", ctx.recursion_limit) from e


def evaluate_source(
    source: str,
    scope: Scope | None = None,
    context: EvaluationContext | None = None,
) -> Value:
    """Parse and evaluate one line of source text."""
    return evaluate(parse_expr(source), scope, context)


@contextmanager
def _stack_headroom(recursion_limit: int) -> Iterator[None]:
    """
    Let the host stack outlast the named-function ceiling.

    Raises the interpreter-wide recursion limit for the duration of the
    evaluation and restores it afterwards, so it affects other threads
    evaluating at the same time.
    """
    previous = sys.getrecursionlimit()
    needed = recursion_limit * _FRAMES_PER_CALL + 1000
    if needed > previous:
        sys.setrecursionlimit(needed)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


def interpret(expr: Expr, scope: Scope, ctx: EvaluationContext) -> Value:
    """Dispatch evaluation to the appropriate handler."""
    if isinstance(expr, NumberLiteral):
        base = NumberBase(expr.base) if expr.base else None
        return Number(expr.value, base)

    if isinstance(expr, QuantityLiteral):
        return make_quantity(expr.value, dims.parse_unit_expression(expr.unit))

    if isinstance(expr, Literal):
        return _interpret_literal(expr)

    if isinstance(expr, MarkdownLiteral):
        return Markdown(expr.text)

    if isinstance(expr, Identifier):
        return _interpret_identifier(expr, scope, ctx)

    if isinstance(expr, BinaryExpr):
        return _interpret_binary(expr, scope, ctx)

    if isinstance(expr, UnaryExpr):
        return _interpret_unary(expr, scope, ctx)

    if isinstance(expr, PercentExpr):
        return _interpret_percent(expr, scope, ctx)

    if isinstance(expr, ConvertExpr):
        return _interpret_convert(expr, scope, ctx)

    if isinstance(expr, CallExpr):
        return _interpret_call(expr, scope, ctx)

    if isinstance(expr, MutatingCall):
        return _interpret_mutating_call(expr, scope, ctx)

    if isinstance(expr, LambdaExpr):
        return Lambda(params=tuple(expr.params), body=expr.body, closure=freeze_scope(scope))

    if isinstance(expr, FunctionDef):
        function = Function(name=expr.name, params=tuple(expr.params), body=expr.body)
        scope[expr.name] = function
        return function

    if isinstance(expr, Assignment):
        return _interpret_assignment(expr, scope, ctx)

    if isinstance(expr, DateLiteral):
        return calendar_date(expr.year, expr.month, expr.day, ctx)

    if isinstance(expr, ZonedExpr):
        return _interpret_zoned(expr, scope, ctx)

    if isinstance(expr, ArrayLiteral):
        return make_array([interpret(item, scope, ctx) for item in expr.items])

    if isinstance(expr, ObjectLiteral):
        return make_object({key: interpret(item, scope, ctx) for key, item in expr.entries})

    if isinstance(expr, PropertyAccess):
        return _interpret_property(expr, scope, ctx)

    if isinstance(expr, IndexAccess):
        return _interpret_index(expr, scope, ctx)

    if isinstance(expr, IfExpr):
        return _interpret_if(expr, scope, ctx)

    if isinstance(expr, TypeCheck):
        return _interpret_type_check(expr, scope, ctx)

    raise InvalidOperandError(f"Unknown expression type: {type(expr).__name__}")


def _interpret_literal(expr: Literal) -> Value:
    if expr.value is None:
        return NULL
    if isinstance(expr.value, bool):
        return TRUE if expr.value else FALSE
    return String(expr.value)


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


def _interpret_identifier(expr: Identifier, scope: Scope, ctx: EvaluationContext) -> Value:
    """Variable, then special name, then date keyword, then unit (a quantity of one)."""
    name = expr.name
    if name in scope:
        return scope[name]

    special = SPECIAL_NAMES.get(name)
    if special is not None:
        return special(ctx)

    relative = RELATIVE_DATES.get(name)
    if relative is not None:
        return relative(ctx, None)

    if dims.is_known_unit(name):
        return make_quantity(Decimal(1), dims.from_unit(name))

    raise UndefinedVariableError(name)


def _interpret_assignment(expr: Assignment, scope: Scope, ctx: EvaluationContext) -> Value:
    """``x = v`` binds; ``x += v`` and friends combine with the existing binding."""
    value = interpret(expr.value, scope, ctx)
    if expr.op is not None:
        if expr.name not in scope:
            raise UndefinedVariableError(expr.name)
        value = apply_arithmetic(expr.op, scope[expr.name], value, ctx)
    scope[expr.name] = value
    return value


def _interpret_zoned(expr: ZonedExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    """
    ``today@Europe/Berlin``: date keywords and literals are read in the zone,
    any other date keeps its wall-clock time and takes the zone.
    """
    operand = expr.operand
    if isinstance(operand, Identifier) and operand.name not in scope:
        relative = RELATIVE_DATES.get(operand.name)
        if relative is not None:
            return relative(ctx, expr.zone)
    if isinstance(operand, DateLiteral):
        return calendar_date(operand.year, operand.month, operand.day, ctx, expr.zone)
    return at_zone(interpret(operand, scope, ctx), expr.zone)


def _history(ctx: EvaluationContext) -> list[Value]:
    return [value for value in ctx.history if not isinstance(value, Markdown)]


def _previous(ctx: EvaluationContext) -> Value:
    history = _history(ctx)
    if not history:
        raise InvalidOperandError("No previous result")
    return history[-1]


def _aggregate(ctx: EvaluationContext, operation: str) -> Value:
    """
    Sum (or mean) of the numeric results in history.

    The first quantity fixes the units; compatible quantities are converted
    into them and incompatible ones are skipped. Plain numbers are added as
    they are. A history of only strings totals to their concatenation.
    """
    history = _history(ctx)
    numeric = [value for value in history if isinstance(value, Number | Quantity)]
    if not numeric:
        strings = [value.value for value in history if isinstance(value, String)]
        if operation == "total" and strings:
            return String("".join(strings))
        raise InvalidOperandError(f"No numeric values to {operation}")

    unit_source = next((value for value in numeric if isinstance(value, Quantity)), None)
    target = unit_source.dimensions if unit_source is not None else {}
    total = Decimal(0)
    count = 0
    for value in numeric:
        if isinstance(value, Number):
            total += value.value
        elif dims.are_compatible(value.dimensions, target):
            total += convert_between(value.value, value.dimensions, target, ctx.rates)
        else:
            logger.debug(f"Skipping incompatible {format_value(value)} in {operation}")
            continue
        count += 1

    if operation == "average":
        total /= count
    return make_quantity(total, target)


SPECIAL_NAMES: dict[str, Callable[[EvaluationContext], Value]] = {
    "total": lambda ctx: _aggregate(ctx, "total"),
    "average": lambda ctx: _aggregate(ctx, "average"),
    "prev": _previous,
    "pi": lambda ctx: Number(decimal_math.PI),
    "e": lambda ctx: Number(decimal_math.E),
}


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _interpret_binary(expr: BinaryExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    """Evaluate a binary expression."""
    # Short-circuit for logical operators
    if expr.op == BinaryOp.AND:
        left = interpret(expr.left, scope, ctx)
        if not is_truthy(left):
            return FALSE
        return Boolean(is_truthy(interpret(expr.right, scope, ctx)))

    if expr.op == BinaryOp.OR:
        left = interpret(expr.left, scope, ctx)
        if is_truthy(left):
            return TRUE
        return Boolean(is_truthy(interpret(expr.right, scope, ctx)))

    if expr.op == BinaryOp.COALESCE:
        left = interpret(expr.left, scope, ctx)
        if not isinstance(left, Null):
            return left
        return interpret(expr.right, scope, ctx)

    if expr.op == BinaryOp.PIPE:
        return _interpret_pipe(expr, scope, ctx)

    left = interpret(expr.left, scope, ctx)
    right = interpret(expr.right, scope, ctx)

    if expr.op == BinaryOp.EQ:
        return Boolean(quantity_ops.values_equal(left, right, ctx.rates))
    if expr.op == BinaryOp.NE:
        return Boolean(not quantity_ops.values_equal(left, right, ctx.rates))
    if expr.op in _ORDERINGS:
        order = quantity_ops.compare(left, right, ctx.rates)
        return Boolean(_ORDERINGS[expr.op](order))

    if expr.op in (BinaryOp.BIT_AND, BinaryOp.SHL, BinaryOp.SHR):
        return _bitwise(expr.op, left, right)

    return apply_arithmetic(expr.op, left, right, ctx)


_ORDERINGS: dict[BinaryOp, Callable[[int], bool]] = {
    BinaryOp.LT: lambda order: order < 0,
    BinaryOp.GT: lambda order: order > 0,
    BinaryOp.LE: lambda order: order <= 0,
    BinaryOp.GE: lambda order: order >= 0,
}


def _interpret_pipe(expr: BinaryExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    """``x | f`` calls ``f`` with ``x``; between two integers it is bitwise or."""
    left = interpret(expr.left, scope, ctx)
    target = expr.right
    if isinstance(target, Identifier) and target.name not in scope and target.name in BUILTINS:
        return BUILTINS[target.name]([left], scope, ctx)
    right = interpret(target, scope, ctx)
    if is_callable(right):
        return call_value(right, [left], scope, ctx)
    a, b, base = quantity_ops.integer_operands(left, right, "or")
    return Number(Decimal(a | b), base)


def _bitwise(op: BinaryOp, left: Value, right: Value) -> Value:
    a, b, base = quantity_ops.integer_operands(left, right, op.value)
    if op == BinaryOp.BIT_AND:
        return Number(Decimal(a & b), base)
    if b < 0:
        raise InvalidOperandError("Shift count cannot be negative")
    if op == BinaryOp.SHL:
        return Number(Decimal(a << b), base)
    return Number(Decimal(a >> b), base)


def apply_arithmetic(op: BinaryOp, left: Value, right: Value, ctx: EvaluationContext) -> Value:
    """Arithmetic over any pair of values: numbers, strings, dates, arrays."""
    if op == BinaryOp.ADD:
        if isinstance(left, String) or isinstance(right, String):
            return String(_as_text(left) + _as_text(right))
        if isinstance(left, Array):
            return array_add(left, right)
        if isinstance(left, Date):
            return shift_date(left, right, 1)
        if isinstance(right, Date):
            return shift_date(right, left, 1)
        return quantity_ops.add(left, right, ctx.rates)

    if op == BinaryOp.SUB:
        if isinstance(left, String) and isinstance(right, String):
            if right.value and left.value.endswith(right.value):
                return String(left.value[: -len(right.value)])
            return left
        if isinstance(left, Array):
            return array_remove(left, right, ctx)
        if isinstance(left, Date):
            if isinstance(right, Date):
                return date_difference(left, right)
            return shift_date(left, right, -1)
        return quantity_ops.subtract(left, right, ctx.rates)

    if op == BinaryOp.MUL:
        repeated = _repeat_string(left, right)
        if repeated is not None:
            return repeated
        return quantity_ops.multiply(left, right, ctx.rates)

    if op == BinaryOp.DIV:
        return quantity_ops.divide(left, right, ctx.rates)
    if op == BinaryOp.MOD:
        return quantity_ops.modulo(left, right, ctx.rates)
    if op == BinaryOp.POW:
        return quantity_ops.power(left, right)

    raise InvalidOperandError(f"Unknown binary op: {op}")


def _as_text(value: Value) -> str:
    return value.value if isinstance(value, String) else format_value(value)


def _repeat_string(left: Value, right: Value) -> String | None:
    """``"ab" * 3`` (either order) repeats the string."""
    if isinstance(left, String) and isinstance(right, Number):
        text, count = left.value, right.value
    elif isinstance(left, Number) and isinstance(right, String):
        text, count = right.value, left.value
    else:
        return None
    return String(text * max(int(count), 0))


def _interpret_unary(expr: UnaryExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    """Evaluate a unary expression."""
    value = interpret(expr.operand, scope, ctx)
    if expr.op == UnaryOp.NOT:
        return Boolean(not is_truthy(value))
    if expr.op == UnaryOp.NEG:
        return quantity_ops.negate(value)
    if not isinstance(value, Number | Quantity | Percentage):
        raise InvalidOperandError(f"Cannot apply unary + to a {value_type_name(value)}")
    return value


def _interpret_percent(expr: PercentExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    value = interpret(expr.operand, scope, ctx)
    if not isinstance(value, Number):
        raise InvalidOperandError(
            f"Only plain numbers can be percentages, not a {value_type_name(value)}"
        )
    return Percentage(value.value)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def _interpret_convert(expr: ConvertExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    value = interpret(expr.operand, scope, ctx)

    if expr.kind == ConvertKind.TIMEZONE:
        return rezone(value, expr.target)

    if expr.kind == ConvertKind.BASE:
        if not isinstance(value, Number):
            raise InvalidOperandError(
                f"Only plain numbers can be shown in {expr.target}, not a {value_type_name(value)}"
            )
        if expr.target == "decimal":
            return Number(value.value)
        if not is_integer(value.value):
            raise InvalidOperandError(f"Only integers can be shown in {expr.target}")
        return Number(value.value, NumberBase(expr.target))

    if isinstance(value, Array):
        return make_array(
            [quantity_ops.convert_to_unit(item, expr.target, ctx.rates) for item in value.items]
        )
    return quantity_ops.convert_to_unit(value, expr.target, ctx.rates)


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


def _interpret_call(expr: CallExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    """Builtin call, or a call of a function/lambda/partial value."""
    callee_expr = expr.callee
    if isinstance(callee_expr, Identifier) and callee_expr.name not in scope:
        name = callee_expr.name
        builtin = BUILTINS.get(name)
        if builtin is None:
            raise UndefinedVariableError(name, f"Unknown function: {name}")
        args = [interpret(arg, scope, ctx) for arg in expr.args]
        return builtin(args, scope, ctx)

    callee = interpret(callee_expr, scope, ctx)
    args = [interpret(arg, scope, ctx) for arg in expr.args]
    return call_value(callee, args, scope, ctx)


def _interpret_mutating_call(expr: MutatingCall, scope: Scope, ctx: EvaluationContext) -> Value:
    """``push!(items, 4)``: compute the new collection and rebind ``items``."""
    mutate = MUTATING_FUNCTIONS.get(expr.name)
    if mutate is None:
        raise UndefinedVariableError(f"{expr.name}!", f"Unknown function: {expr.name}!")
    if not expr.args or not isinstance(expr.args[0], Identifier):
        raise InvalidOperandError(f"{expr.name}!() needs a variable as its first argument")

    variable = expr.args[0].name
    if variable not in scope:
        raise UndefinedVariableError(variable)
    args = [scope[variable], *(interpret(arg, scope, ctx) for arg in expr.args[1:])]
    updated, result = mutate(args, scope, ctx)
    scope[variable] = updated
    return result


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------

_DATE_FIELDS: dict[str, Callable[[Date], int]] = {
    "year": lambda d: d.value.year,
    "month": lambda d: d.value.month,
    "day": lambda d: d.value.day,
    "hour": lambda d: d.value.hour,
    "minute": lambda d: d.value.minute,
    "second": lambda d: d.value.second,
    "weekday": lambda d: d.value.isoweekday(),
}


def _interpret_property(expr: PropertyAccess, scope: Scope, ctx: EvaluationContext) -> Value:
    target = interpret(expr.target, scope, ctx)
    match target:
        case Object(entries=entries):
            return entries.get(expr.name, NULL)
        case Array(items=items) if expr.name == "length":
            return Number(Decimal(len(items)))
        case String(value=text) if expr.name == "length":
            return Number(Decimal(len(text)))
        case Date() if expr.name in _DATE_FIELDS:
            return Number(Decimal(_DATE_FIELDS[expr.name](target)))
    raise InvalidOperandError(
        f"Cannot access property '{expr.name}' of a {value_type_name(target)}"
    )


def _interpret_index(expr: IndexAccess, scope: Scope, ctx: EvaluationContext) -> Value:
    """Arrays and strings take (negative) integer indexes; objects take keys."""
    target = interpret(expr.target, scope, ctx)
    index = interpret(expr.index, scope, ctx)

    if isinstance(target, Object):
        if isinstance(index, String):
            return target.entries.get(index.value, NULL)
        if isinstance(index, Number):
            return target.entries.get(format_decimal(index.value), NULL)
        raise InvalidOperandError(
            f"Object keys must be strings or numbers, not a {value_type_name(index)}"
        )

    if isinstance(target, Array | String):
        if not isinstance(index, Number):
            raise InvalidOperandError(f"Index must be a number, not a {value_type_name(index)}")
        items = target.items if isinstance(target, Array) else target.value
        position = int(index.value.to_integral_value(rounding=ROUND_FLOOR))
        if position < 0:
            position += len(items)
        if not 0 <= position < len(items):
            return NULL
        item = items[position]
        return String(item) if isinstance(item, str) else item

    raise InvalidOperandError(f"Cannot index a {value_type_name(target)}")


# ---------------------------------------------------------------------------
# Conditionals and type checks
# ---------------------------------------------------------------------------


def _interpret_if(expr: IfExpr, scope: Scope, ctx: EvaluationContext) -> Value:
    """Evaluate an if/elif/else expression."""
    if is_truthy(interpret(expr.condition, scope, ctx)):
        return interpret(expr.then_expr, scope, ctx)

    for cond, val in expr.elif_branches:
        if is_truthy(interpret(cond, scope, ctx)):
            return interpret(val, scope, ctx)

    return interpret(expr.else_expr, scope, ctx)


def _interpret_type_check(expr: TypeCheck, scope: Scope, ctx: EvaluationContext) -> Value:
    """``x is number``, ``x is length``, ``x is not null``."""
    value = interpret(expr.operand, scope, ctx)
    name = expr.type_name
    if name in VALUE_TYPES:
        result = value_type_name(value) == name
    elif name in dims.DIMENSION_TYPES or name in dims.DIMENSION_TYPE_ALIASES:
        result = isinstance(value, Quantity) and dims.matches_type(value.dimensions, name)
    else:
        raise InvalidOperandError(f"Unknown type: {name}")
    return Boolean(result != expr.negated)


__all__ = [
    "SPECIAL_NAMES",
    "VALUE_TYPES",
    "apply_arithmetic",
    "evaluate",
    "evaluate_source",
    "interpret",
]
