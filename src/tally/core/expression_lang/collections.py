"""
Array and object functions.

Every function here returns a new value; arrays and objects are never
changed in place. The ``name!`` variants in ``MUTATING_FUNCTIONS`` compute
the replacement collection and the call's result, and the evaluator
rebinds the variable they were called on.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from decimal import ROUND_FLOOR, Decimal

from tally.core.errors import ArityMismatchError, InvalidOperandError
from tally.core.expression_lang import quantity_ops
from tally.core.expression_lang.callables import call_predicate, call_value, require_arity
from tally.core.expression_lang.context import BuiltinFunction, EvaluationContext, Scope
from tally.core.expression_lang.formatter import format_decimal
from tally.core.values import (
    NULL,
    Array,
    Boolean,
    Null,
    Number,
    Object,
    Quantity,
    String,
    Value,
    make_array,
    make_object,
)
from tally.core.values import type_name as value_type_name

MutatingFunction = Callable[[list[Value], Scope, EvaluationContext], tuple[Value, Value]]


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def expect_args(
    args: list[Value],
    name: str,
    minimum: int,
    maximum: int | None = None,
    *,
    variadic: bool = False,
) -> None:
    maximum = minimum if maximum is None else maximum
    if len(args) >= minimum and (variadic or len(args) <= maximum):
        return
    if variadic:
        expected = f"at least {minimum}"
    elif minimum == maximum:
        expected = str(minimum)
    else:
        expected = f"{minimum} to {maximum}"
    raise ArityMismatchError(f"{name}() expects {expected} argument(s), got {len(args)}")


def array_arg(value: Value, name: str) -> Array:
    if not isinstance(value, Array):
        raise InvalidOperandError(f"{name}() expects an array, got a {value_type_name(value)}")
    return value


def object_arg(value: Value, name: str) -> Object:
    if not isinstance(value, Object):
        raise InvalidOperandError(f"{name}() expects an object, got a {value_type_name(value)}")
    return value


def int_arg(value: Value, name: str) -> int:
    if not isinstance(value, Number):
        raise InvalidOperandError(f"{name}() expects a number, got a {value_type_name(value)}")
    return int(value.value.to_integral_value(rounding=ROUND_FLOOR))


# ---------------------------------------------------------------------------
# Adding and removing elements
# ---------------------------------------------------------------------------


def _push(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "push", 2, variadic=True)
    return make_array(array_arg(args[0], "push").items + tuple(args[1:]))


def _pop(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "pop", 1)
    return make_array(array_arg(args[0], "pop").items[:-1])


def _shift(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "shift", 1)
    return make_array(array_arg(args[0], "shift").items[1:])


def _unshift(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "unshift", 2, variadic=True)
    return make_array(tuple(args[1:]) + array_arg(args[0], "unshift").items)


def _append(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "append", 2)
    return make_array(array_arg(args[0], "append").items + array_arg(args[1], "append").items)


def _prepend(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "prepend", 2)
    return make_array(array_arg(args[1], "prepend").items + array_arg(args[0], "prepend").items)


def _concat(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "concat", 1, variadic=True)
    items: list[Value] = []
    for arg in args:
        items.extend(array_arg(arg, "concat").items)
    return make_array(items)


def _slice(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "slice", 2, 3)
    items = array_arg(args[0], "slice").items
    start = int_arg(args[1], "slice")
    end = int_arg(args[2], "slice") if len(args) == 3 else None
    return make_array(items[start:end])


def _reverse(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "reverse", 1)
    if isinstance(args[0], String):
        return String(args[0].value[::-1])
    return make_array(array_arg(args[0], "reverse").items[::-1])


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def _first(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "first", 1)
    items = array_arg(args[0], "first").items
    return items[0] if items else NULL


def _last(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "last", 1)
    items = array_arg(args[0], "last").items
    return items[-1] if items else NULL


def _length(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "length", 1)
    match args[0]:
        case Array(items=items):
            return Number(Decimal(len(items)))
        case String(value=text):
            return Number(Decimal(len(text)))
        case Object(entries=entries):
            return Number(Decimal(len(entries)))
    raise InvalidOperandError(
        f"length() expects an array, string or object, got a {value_type_name(args[0])}"
    )


def _includes(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "includes", 2)
    container, needle = args
    if isinstance(container, String):
        if not isinstance(needle, String):
            raise InvalidOperandError("includes() on a string expects a string to look for")
        return Boolean(needle.value in container.value)
    items = array_arg(container, "includes").items
    return Boolean(any(quantity_ops.values_equal(item, needle, ctx.rates) for item in items))


def _numeric_items(items: tuple[Value, ...]) -> list[Value]:
    return [item for item in items if isinstance(item, Number | Quantity)]


def _sum(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "sum", 1)
    numbers = _numeric_items(array_arg(args[0], "sum").items)
    if not numbers:
        return Number(Decimal(0))
    return functools.reduce(lambda a, b: quantity_ops.add(a, b, ctx.rates), numbers)


def _average(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "average", 1)
    numbers = _numeric_items(array_arg(args[0], "average").items)
    if not numbers:
        return NULL
    total = functools.reduce(lambda a, b: quantity_ops.add(a, b, ctx.rates), numbers)
    return quantity_ops.divide(total, Number(Decimal(len(numbers))), ctx.rates)


def _range(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    """range(end), range(start, end) or range(start, end, step); end is exclusive."""
    expect_args(args, "range", 1, 3)
    bounds = [int_arg(arg, "range") for arg in args]
    if len(bounds) == 1:
        bounds.insert(0, 0)
    start, end, *rest = bounds
    step = rest[0] if rest else 1
    if step == 0:
        raise InvalidOperandError("range() step cannot be zero")
    return make_array([Number(Decimal(n)) for n in range(start, end, step)])


# ---------------------------------------------------------------------------
# Objects
# ---------------------------------------------------------------------------


def _keys(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "keys", 1)
    return make_array([String(key) for key in object_arg(args[0], "keys").entries])


def _values(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "values", 1)
    return make_array(list(object_arg(args[0], "values").entries.values()))


def _has(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "has", 2)
    entries = object_arg(args[0], "has").entries
    if not isinstance(args[1], String):
        raise InvalidOperandError("has() expects a string key")
    return Boolean(args[1].value in entries)


# ---------------------------------------------------------------------------
# Higher-order functions
# ---------------------------------------------------------------------------


def _filter(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "filter", 2)
    collection, predicate = args
    require_arity(predicate, 1, "filter")
    if isinstance(collection, Object):
        return make_object(
            {
                key: item
                for key, item in collection.entries.items()
                if call_predicate(predicate, [item], scope, ctx)
            }
        )
    items = array_arg(collection, "filter").items
    return make_array([item for item in items if call_predicate(predicate, [item], scope, ctx)])


def _map(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "map", 2)
    collection, transform = args
    require_arity(transform, 1, "map")
    if isinstance(collection, Object):
        return make_object(
            {
                key: call_value(transform, [item], scope, ctx)
                for key, item in collection.entries.items()
            }
        )
    items = array_arg(collection, "map").items
    return make_array([call_value(transform, [item], scope, ctx) for item in items])


def _reduce(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    """reduce(array, (acc, item) => ..., initial); without ``initial`` the first item seeds it."""
    expect_args(args, "reduce", 2, 3)
    items = list(array_arg(args[0], "reduce").items)
    reducer = args[1]
    require_arity(reducer, 2, "reduce")
    if len(args) == 3:
        accumulator = args[2]
    elif items:
        accumulator = items.pop(0)
    else:
        raise InvalidOperandError("reduce() of an empty array needs an initial value")
    for item in items:
        accumulator = call_value(reducer, [accumulator, item], scope, ctx)
    return accumulator


def _sorted_items(
    items: tuple[Value, ...], comparator: Value | None, scope: Scope, ctx: EvaluationContext
) -> list[Value]:
    if comparator is None:
        return sorted(
            items, key=functools.cmp_to_key(lambda a, b: quantity_ops.compare(a, b, ctx.rates))
        )

    require_arity(comparator, 2, "sort")

    def order(a: Value, b: Value) -> int:
        result = call_value(comparator, [a, b], scope, ctx)
        if not isinstance(result, Number):
            raise InvalidOperandError("sort() comparator must return a number")
        return (result.value > 0) - (result.value < 0)

    return sorted(items, key=functools.cmp_to_key(order))


def _sort(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "sort", 1, 2)
    items = array_arg(args[0], "sort").items
    comparator = args[1] if len(args) == 2 else None
    return make_array(_sorted_items(items, comparator, scope, ctx))


def _group_key(value: Value) -> str:
    match value:
        case String(value=text):
            return text
        case Number(value=number):
            return format_decimal(number)
        case Boolean(value=flag):
            return "true" if flag else "false"
        case Null():
            return "null"
    raise InvalidOperandError(f"Cannot use a {value_type_name(value)} as a groupBy key")


def _group_by(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "groupBy", 2)
    items = array_arg(args[0], "groupBy").items
    key_fn = args[1]
    require_arity(key_fn, 1, "groupBy")
    groups: dict[str, list[Value]] = {}
    for item in items:
        key = _group_key(call_value(key_fn, [item], scope, ctx))
        groups.setdefault(key, []).append(item)
    return make_object({key: make_array(members) for key, members in groups.items()})


def _find(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "find", 2)
    items = array_arg(args[0], "find").items
    require_arity(args[1], 1, "find")
    for item in items:
        if call_predicate(args[1], [item], scope, ctx):
            return item
    return NULL


def _find_index(args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    expect_args(args, "findIndex", 2)
    items = array_arg(args[0], "findIndex").items
    require_arity(args[1], 1, "findIndex")
    for index, item in enumerate(items):
        if call_predicate(args[1], [item], scope, ctx):
            return Number(Decimal(index))
    return Number(Decimal(-1))


COLLECTION_FUNCTIONS: dict[str, BuiltinFunction] = {
    "push": _push,
    "pop": _pop,
    "shift": _shift,
    "unshift": _unshift,
    "append": _append,
    "prepend": _prepend,
    "concat": _concat,
    "slice": _slice,
    "reverse": _reverse,
    "first": _first,
    "last": _last,
    "length": _length,
    "includes": _includes,
    "sum": _sum,
    "avg": _average,
    "average": _average,
    "range": _range,
    "keys": _keys,
    "values": _values,
    "has": _has,
    "filter": _filter,
    "map": _map,
    "reduce": _reduce,
    "sort": _sort,
    "groupBy": _group_by,
    "find": _find,
    "findIndex": _find_index,
}


# ---------------------------------------------------------------------------
# Mutating variants
# ---------------------------------------------------------------------------


def _rebinding(function: BuiltinFunction) -> MutatingFunction:
    """Mutating form of a function whose result is the new collection."""

    def mutate(args: list[Value], scope: Scope, ctx: EvaluationContext) -> tuple[Value, Value]:
        updated = function(args, scope, ctx)
        return updated, updated

    return mutate


def _pop_mut(args: list[Value], scope: Scope, ctx: EvaluationContext) -> tuple[Value, Value]:
    expect_args(args, "pop!", 1)
    items = array_arg(args[0], "pop!").items
    if not items:
        return args[0], NULL
    return make_array(items[:-1]), items[-1]


def _shift_mut(args: list[Value], scope: Scope, ctx: EvaluationContext) -> tuple[Value, Value]:
    expect_args(args, "shift!", 1)
    items = array_arg(args[0], "shift!").items
    if not items:
        return args[0], NULL
    return make_array(items[1:]), items[0]


MUTATING_FUNCTIONS: dict[str, MutatingFunction] = {
    "push": _rebinding(_push),
    "pop": _pop_mut,
    "shift": _shift_mut,
    "unshift": _rebinding(_unshift),
    "append": _rebinding(_append),
    "prepend": _rebinding(_prepend),
    "sort": _rebinding(_sort),
    "reverse": _rebinding(_reverse),
    "slice": _rebinding(_slice),
    "filter": _rebinding(_filter),
    "map": _rebinding(_map),
}


# ---------------------------------------------------------------------------
# Operators on collections
# ---------------------------------------------------------------------------


def array_add(left: Array, right: Value) -> Array:
    """``[1, 2] + [3]`` concatenates; ``[1, 2] + 3`` appends."""
    if isinstance(right, Array):
        return make_array(left.items + right.items)
    return make_array(left.items + (right,))


def array_remove(left: Array, right: Value, ctx: EvaluationContext) -> Array:
    """``a - x`` drops every element equal to ``x`` (or to any element of array ``x``)."""
    unwanted = right.items if isinstance(right, Array) else (right,)
    return make_array(
        [
            item
            for item in left.items
            if not any(quantity_ops.values_equal(item, u, ctx.rates) for u in unwanted)
        ]
    )

