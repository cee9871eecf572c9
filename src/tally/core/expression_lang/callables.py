"""
Calling functions, lambdas, and partial applications.

Lambdas run in a copy of the scope they captured; named functions run in a
copy of the caller's scope. Supplying fewer arguments than parameters
yields a ``Partial`` instead of an error. Named-function recursion is
bounded by an explicit per-name depth counter in the evaluation context.
"""

from __future__ import annotations

import logging

from tally.core.errors import ArityMismatchError, NotCallableError, RecursionLimitExceededError
from tally.core.expression_lang.context import EvaluationContext, Scope
from tally.core.ir.expressions import Expr
from tally.core.values import (
    Function,
    Lambda,
    Partial,
    Value,
    is_truthy,
    remaining_params,
)
from tally.core.values import type_name as value_type_name

logger = logging.getLogger(__name__)


def call_value(callee: Value, args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    """
    Apply a callable value to arguments.

    Raises:
        NotCallableError: If ``callee`` is not a function, lambda, or partial.
        ArityMismatchError: If more arguments are supplied than parameters.
        RecursionLimitExceededError: If a named function recurses too deeply.
    """
    match callee:
        case Lambda():
            return _call_lambda(callee, args, ctx)
        case Function():
            return _call_function(callee, args, scope, ctx)
        case Partial():
            return call_value(callee.target, [*callee.applied, *args], scope, ctx)
        case _:
            raise NotCallableError(f"A {value_type_name(callee)} is not callable")


def _bind(
    target: Function | Lambda, args: list[Value], label: str
) -> Partial | dict[str, Value]:
    params = target.params
    if len(args) > len(params):
        raise ArityMismatchError(
            f"{label} expects {len(params)} argument(s), got {len(args)}"
        )
    if len(args) < len(params):
        return Partial(target=target, applied=tuple(args), remaining=params[len(args) :])
    return dict(zip(params, args, strict=True))


def _call_lambda(fn: Lambda, args: list[Value], ctx: EvaluationContext) -> Value:
    bound = _bind(fn, args, "Lambda")
    if isinstance(bound, Partial):
        return bound
    frame: Scope = dict(fn.closure)
    frame.update(bound)
    return _evaluate_body(fn.body, frame, ctx)


def _call_function(fn: Function, args: list[Value], scope: Scope, ctx: EvaluationContext) -> Value:
    bound = _bind(fn, args, f"Function '{fn.name}'")
    if isinstance(bound, Partial):
        return bound

    depth = ctx.call_depth.get(fn.name, 0)
    if depth >= ctx.recursion_limit:
        logger.debug(f"Recursion ceiling {ctx.recursion_limit} reached in {fn.name}")
        raise RecursionLimitExceededError(fn.name, ctx.recursion_limit)

    ctx.call_depth[fn.name] = depth + 1
    try:
        frame: Scope = dict(scope)
        frame.update(bound)
        return _evaluate_body(fn.body, frame, ctx)
    except RecursionError as e:
        # host stack ran out first; report it against the function being run
        raise RecursionLimitExceededError(fn.name, ctx.recursion_limit) from e
    finally:
        if depth:
            ctx.call_depth[fn.name] = depth
        else:
            del ctx.call_depth[fn.name]


def _evaluate_body(body: Expr, frame: Scope, ctx: EvaluationContext) -> Value:
    from tally.core.expression_lang.evaluator import interpret

    return interpret(body, frame, ctx)


def require_arity(callee: Value, expected: int, operation: str) -> None:
    """Check a callback takes exactly ``expected`` more arguments."""
    if not isinstance(callee, Function | Lambda | Partial):
        raise NotCallableError(
            f"{operation} expects a function, got a {value_type_name(callee)}"
        )
    remaining = len(remaining_params(callee))
    if remaining != expected:
        raise ArityMismatchError(
            f"{operation} expects a function of {expected} argument(s), "
            f"got one of {remaining}"
        )


def call_predicate(
    callee: Value, args: list[Value], scope: Scope, ctx: EvaluationContext
) -> bool:
    return is_truthy(call_value(callee, args, scope, ctx))
