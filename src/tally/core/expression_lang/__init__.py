"""
The tally expression language.

Tokenizer and parser turn a line of text into the AST in ``tally.core.ir``;
the evaluator computes a value from it; the formatter renders the value.
"""

from .context import EvaluationContext, Scope
from .evaluator import evaluate, evaluate_source
from .formatter import format_value
from .parser import is_markdown_line, parse_expr
from .tokenizer import Token, TokenKind, tokenize

__all__ = [
    "EvaluationContext",
    "Scope",
    "evaluate",
    "evaluate_source",
    "format_value",
    "is_markdown_line",
    "parse_expr",
    "Token",
    "TokenKind",
    "tokenize",
]
