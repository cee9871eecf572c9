"""
Recursive descent parser for the tally calculator language.

Grammar (precedence low to high):
    statement   → func_def | assignment | expr
    func_def    → IDENT "(" params ")" "=" expr
    assignment  → IDENT ("=" | "+=" | "-=" | "*=" | "/=") expr
    expr        → lambda | if_expr | ternary
    lambda      → IDENT "=>" expr | "(" params ")" "=>" expr
    if_expr     → "if" expr ":" expr ("elif" expr ":" expr)* "else" ":" expr
    ternary     → pipe ("?" expr ":" expr)?
    pipe        → coalesce ("|" coalesce)*
    coalesce    → or_expr ("??" or_expr)*
    or_expr     → and_expr (("or" | "||") and_expr)*
    and_expr    → not_expr (("and" | "&&") not_expr)*
    not_expr    → ("not" | "!") not_expr | comparison
    comparison  → conversion (comp_op conversion)?
                | conversion "is" "not"? (type_name | "null")
    conversion  → bitwise (("to" | "in") target)*
    bitwise     → shift ("&" shift)*
    shift       → addition (("<<" | ">>") addition)*
    addition    → multiply (("+" | "-") multiply)*
    multiply    → unary (("*" | "/" | "%" | "mod" | "of") unary)*
    unary       → ("-" | "+") unary | power
    power       → postfix ("^" unary)?
    postfix     → primary ("(" args ")" | "." IDENT | "[" expr "]" | "%" | "@" zone)*
    zone        → STRING | IDENT ("/" IDENT)*
    primary     → NUMBER unit? | HEX | BINARY | DATE | STRING | "true" | "false" | "null"
                | IDENT | IDENT "!" "(" args ")" | "(" expr ")"
                | "[" (expr ("," expr)*)? "]" | "{" (key ":" expr ("," ...)*)? "}"
"""

from __future__ import annotations

import re
from decimal import Decimal

from tally.core.errors import ParseError
from tally.core.expression_lang.tokenizer import Token, TokenKind, tokenize
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
from tally.core.units.dimensions import is_known_unit

BASE_TARGETS: dict[str, str] = {
    "hex": "hex",
    "hexadecimal": "hex",
    "binary": "binary",
    "bin": "binary",
    "decimal": "decimal",
    "dec": "decimal",
}

_COMPOUND_ASSIGN: dict[TokenKind, BinaryOp] = {
    TokenKind.PLUS_ASSIGN: BinaryOp.ADD,
    TokenKind.MINUS_ASSIGN: BinaryOp.SUB,
    TokenKind.STAR_ASSIGN: BinaryOp.MUL,
    TokenKind.SLASH_ASSIGN: BinaryOp.DIV,
}

# "in" is both the conversion keyword and the inch symbol
_UNIT_NAME = frozenset({TokenKind.IDENT, TokenKind.IN})

# Tokens that can start an operand; a % followed by one of these is modulo.
_OPERAND_START = frozenset(
    {
        TokenKind.NUMBER,
        TokenKind.HEX,
        TokenKind.BINARY,
        TokenKind.DATE,
        TokenKind.STRING,
        TokenKind.IDENT,
        TokenKind.TRUE,
        TokenKind.FALSE,
        TokenKind.NULL,
        TokenKind.LPAREN,
        TokenKind.LBRACKET,
        TokenKind.LBRACE,
    }
)


class _Parser:
    """Recursive descent parser for calculator statements."""

    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx < len(self.tokens):
            return self.tokens[idx]
        return self.tokens[-1]  # EOF

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def expect(self, kind: TokenKind) -> Token:
        tok = self.current
        if tok.kind != kind:
            found = repr(tok.value) if tok.value else "end of input"
            raise ParseError(f"Expected {kind}, got {found}", tok.pos)
        return self.advance()

    def match(self, *kinds: TokenKind) -> Token | None:
        if self.current.kind in kinds:
            return self.advance()
        return None

    # -- Lookahead helpers --

    def _param_list_end(self, start: int) -> int | None:
        """Index of the ')' closing a plain identifier list opened at ``start``."""
        idx = start + 1
        if self.peek(idx).kind == TokenKind.RPAREN:
            return idx
        while True:
            if self.peek(idx).kind != TokenKind.IDENT:
                return None
            idx += 1
            kind = self.peek(idx).kind
            if kind == TokenKind.RPAREN:
                return idx
            if kind != TokenKind.COMMA:
                return None
            idx += 1

    def _at_function_def(self) -> bool:
        if self.current.kind != TokenKind.IDENT or self.peek(1).kind != TokenKind.LPAREN:
            return False
        end = self._param_list_end(1)
        return end is not None and self.peek(end + 1).kind == TokenKind.ASSIGN

    def _at_lambda(self) -> bool:
        if self.current.kind == TokenKind.IDENT:
            return self.peek(1).kind == TokenKind.FAT_ARROW
        if self.current.kind == TokenKind.LPAREN:
            end = self._param_list_end(0)
            return end is not None and self.peek(end + 1).kind == TokenKind.FAT_ARROW
        return False

    def _parse_params(self) -> list[str]:
        self.expect(TokenKind.LPAREN)
        params: list[str] = []
        if self.current.kind != TokenKind.RPAREN:
            params.append(self.expect(TokenKind.IDENT).value)
            while self.match(TokenKind.COMMA):
                params.append(self.expect(TokenKind.IDENT).value)
        self.expect(TokenKind.RPAREN)
        if len(set(params)) != len(params):
            raise ParseError("Duplicate parameter name", self.current.pos)
        return params

    # -- Grammar rules --

    def parse_statement(self) -> Expr:
        """Top-level: function definition, assignment, or expression."""
        if self._at_function_def():
            name = self.advance().value
            params = self._parse_params()
            self.expect(TokenKind.ASSIGN)
            body = self.parse_expr()
            return FunctionDef(name=name, params=params, body=body)

        if self.current.kind == TokenKind.IDENT and self.peek(1).kind == TokenKind.ASSIGN:
            name = self.advance().value
            self.advance()  # =
            value = self.parse_expr()
            return Assignment(name=name, value=value)

        if self.current.kind == TokenKind.IDENT and self.peek(1).kind in _COMPOUND_ASSIGN:
            name = self.advance().value
            op = _COMPOUND_ASSIGN[self.advance().kind]
            value = self.parse_expr()
            return Assignment(name=name, value=value, op=op)

        return self.parse_expr()

    def parse_expr(self) -> Expr:
        """lambda | if_expr | ternary"""
        if self._at_lambda():
            return self.parse_lambda()
        if self.current.kind == TokenKind.IF:
            return self.parse_if_expr()
        return self.parse_ternary()

    def parse_lambda(self) -> LambdaExpr:
        """IDENT '=>' expr | '(' params ')' '=>' expr"""
        if self.current.kind == TokenKind.IDENT:
            params = [self.advance().value]
        else:
            params = self._parse_params()
        self.expect(TokenKind.FAT_ARROW)
        body = self.parse_expr()
        return LambdaExpr(params=params, body=body)

    def parse_if_expr(self) -> IfExpr:
        """if cond: val (elif cond: val)* else: val"""
        self.expect(TokenKind.IF)
        condition = self.parse_ternary()
        self.expect(TokenKind.COLON)
        then_expr = self.parse_expr()

        elif_branches: list[tuple[Expr, Expr]] = []
        while self.match(TokenKind.ELIF):
            elif_cond = self.parse_ternary()
            self.expect(TokenKind.COLON)
            elif_val = self.parse_expr()
            elif_branches.append((elif_cond, elif_val))

        self.expect(TokenKind.ELSE)
        self.expect(TokenKind.COLON)
        else_expr = self.parse_expr()

        return IfExpr(
            condition=condition,
            then_expr=then_expr,
            elif_branches=elif_branches,
            else_expr=else_expr,
        )

    def parse_ternary(self) -> Expr:
        """pipe ('?' expr ':' expr)?"""
        condition = self.parse_pipe()
        if self.match(TokenKind.QUESTION):
            then_expr = self.parse_expr()
            self.expect(TokenKind.COLON)
            else_expr = self.parse_expr()
            return IfExpr(condition=condition, then_expr=then_expr, else_expr=else_expr)
        return condition

    def parse_pipe(self) -> Expr:
        """coalesce ('|' coalesce)*"""
        left = self.parse_coalesce()
        while self.match(TokenKind.PIPE):
            if self._at_lambda():
                right: Expr = self.parse_lambda()
            else:
                right = self.parse_coalesce()
            left = BinaryExpr(op=BinaryOp.PIPE, left=left, right=right)
        return left

    def parse_coalesce(self) -> Expr:
        """or_expr ('??' or_expr)*"""
        left = self.parse_or_expr()
        while self.match(TokenKind.COALESCE):
            right = self.parse_or_expr()
            left = BinaryExpr(op=BinaryOp.COALESCE, left=left, right=right)
        return left

    def parse_or_expr(self) -> Expr:
        """and_expr (('or' | '||') and_expr)*"""
        left = self.parse_and_expr()
        while self.match(TokenKind.OR, TokenKind.PIPE_PIPE):
            right = self.parse_and_expr()
            left = BinaryExpr(op=BinaryOp.OR, left=left, right=right)
        return left

    def parse_and_expr(self) -> Expr:
        """not_expr (('and' | '&&') not_expr)*"""
        left = self.parse_not_expr()
        while self.match(TokenKind.AND, TokenKind.AMP_AMP):
            right = self.parse_not_expr()
            left = BinaryExpr(op=BinaryOp.AND, left=left, right=right)
        return left

    def parse_not_expr(self) -> Expr:
        """('not' | '!') not_expr | comparison"""
        if self.match(TokenKind.NOT, TokenKind.BANG):
            operand = self.parse_not_expr()
            return UnaryExpr(op=UnaryOp.NOT, operand=operand)
        return self.parse_comparison()

    def parse_comparison(self) -> Expr:
        """conversion (comp_op conversion | 'is' ['not'] type_name)?"""
        left = self.parse_conversion()

        if self.match(TokenKind.IS):
            negated = bool(self.match(TokenKind.NOT))
            if self.match(TokenKind.NULL):
                type_name = "null"
            else:
                type_name = self.expect(TokenKind.IDENT).value
            return TypeCheck(operand=left, type_name=type_name, negated=negated)

        comp_ops: dict[TokenKind, BinaryOp] = {
            TokenKind.EQ: BinaryOp.EQ,
            TokenKind.NE: BinaryOp.NE,
            TokenKind.LT: BinaryOp.LT,
            TokenKind.GT: BinaryOp.GT,
            TokenKind.LE: BinaryOp.LE,
            TokenKind.GE: BinaryOp.GE,
        }
        if self.current.kind in comp_ops:
            op = comp_ops[self.current.kind]
            self.advance()
            right = self.parse_conversion()
            return BinaryExpr(op=op, left=left, right=right)

        return left

    def parse_conversion(self) -> Expr:
        """bitwise (('to' | 'in') target)*"""
        left = self.parse_bitwise()
        while self.match(TokenKind.TO, TokenKind.IN):
            if self.current.kind == TokenKind.STRING:
                target = self.advance().value
                left = ConvertExpr(operand=left, target=target, kind=ConvertKind.TIMEZONE)
            elif (
                self.current.kind == TokenKind.IDENT
                and self.current.value in BASE_TARGETS
                and self.peek(1).kind not in (TokenKind.STAR, TokenKind.SLASH, TokenKind.CARET)
            ):
                target = BASE_TARGETS[self.advance().value]
                left = ConvertExpr(operand=left, target=target, kind=ConvertKind.BASE)
            else:
                left = ConvertExpr(operand=left, target=self._parse_unit_text())
        return left

    def _parse_unit_text(self) -> str:
        """unit_term (('*' | '/') unit_term)*, returned as text like 'km/h'."""
        parts = [self._parse_unit_term()]
        while (
            self.current.kind in (TokenKind.STAR, TokenKind.SLASH)
            and self.peek(1).kind in _UNIT_NAME
        ):
            parts.append(self.advance().value)
            parts.append(self._parse_unit_term())
        return "".join(parts)

    def _parse_unit_term(self) -> str:
        """IDENT ('^' '-'? NUMBER)?"""
        if self.current.kind not in _UNIT_NAME:
            self.expect(TokenKind.IDENT)
        name = self.advance().value
        exponent = self._parse_unit_exponent()
        return f"{name}^{exponent}" if exponent else name

    def _parse_unit_exponent(self) -> str | None:
        if self.current.kind != TokenKind.CARET:
            return None
        sign_kind = self.peek(1).kind
        if sign_kind == TokenKind.NUMBER:
            self.advance()
            return self.advance().value
        if sign_kind == TokenKind.MINUS and self.peek(2).kind == TokenKind.NUMBER:
            self.advance()
            self.advance()
            return "-" + self.advance().value
        return None

    def parse_bitwise(self) -> Expr:
        """shift ('&' shift)*"""
        left = self.parse_shift()
        while self.match(TokenKind.AMP):
            right = self.parse_shift()
            left = BinaryExpr(op=BinaryOp.BIT_AND, left=left, right=right)
        return left

    def parse_shift(self) -> Expr:
        """addition (('<<' | '>>') addition)*"""
        left = self.parse_addition()
        while self.current.kind in (TokenKind.SHL, TokenKind.SHR):
            op = BinaryOp.SHL if self.current.kind == TokenKind.SHL else BinaryOp.SHR
            self.advance()
            right = self.parse_addition()
            left = BinaryExpr(op=op, left=left, right=right)
        return left

    def parse_addition(self) -> Expr:
        """multiply (('+' | '-') multiply)*"""
        left = self.parse_multiply()
        while self.current.kind in (TokenKind.PLUS, TokenKind.MINUS):
            op = BinaryOp.ADD if self.current.kind == TokenKind.PLUS else BinaryOp.SUB
            self.advance()
            right = self.parse_multiply()
            left = BinaryExpr(op=op, left=left, right=right)
        return left

    def parse_multiply(self) -> Expr:
        """unary (('*' | '/' | '%' | 'mod' | 'of') unary)*"""
        left = self.parse_unary()
        while self.current.kind in (
            TokenKind.STAR,
            TokenKind.SLASH,
            TokenKind.PERCENT,
            TokenKind.MOD,
            TokenKind.OF,
        ):
            kind = self.advance().kind
            right = self.parse_unary()
            if kind == TokenKind.STAR:
                left = BinaryExpr(op=BinaryOp.MUL, left=left, right=right)
            elif kind == TokenKind.SLASH:
                left = BinaryExpr(op=BinaryOp.DIV, left=left, right=right)
            elif kind == TokenKind.OF:
                # 20% of 50 is the percentage applied as a multiplier
                left = BinaryExpr(op=BinaryOp.MUL, left=right, right=left)
            else:
                left = BinaryExpr(op=BinaryOp.MOD, left=left, right=right)
        return left

    def parse_unary(self) -> Expr:
        """('-' | '+') unary | power"""
        if self.match(TokenKind.MINUS):
            operand = self.parse_unary()
            return UnaryExpr(op=UnaryOp.NEG, operand=operand)
        if self.match(TokenKind.PLUS):
            operand = self.parse_unary()
            return UnaryExpr(op=UnaryOp.POS, operand=operand)
        return self.parse_power()

    def parse_power(self) -> Expr:
        """postfix ('^' unary)?  (right-associative)"""
        base = self.parse_postfix()
        if self.match(TokenKind.CARET):
            exponent = self.parse_unary()
            return BinaryExpr(op=BinaryOp.POW, left=base, right=exponent)
        return base

    def parse_postfix(self) -> Expr:
        """primary (call | '.' IDENT | '[' expr ']' | '%')*"""
        expr = self.parse_primary()
        while True:
            if self.current.kind == TokenKind.LPAREN:
                expr = CallExpr(callee=expr, args=self._parse_args())
            elif self.match(TokenKind.DOT):
                name = self.expect(TokenKind.IDENT).value
                expr = PropertyAccess(target=expr, name=name)
            elif self.match(TokenKind.LBRACKET):
                index = self.parse_expr()
                self.expect(TokenKind.RBRACKET)
                expr = IndexAccess(target=expr, index=index)
            elif (
                self.current.kind == TokenKind.PERCENT
                and self.peek(1).kind not in _OPERAND_START
            ):
                self.advance()
                expr = PercentExpr(operand=expr)
            elif self.match(TokenKind.AT):
                expr = ZonedExpr(operand=expr, zone=self._parse_zone())
            else:
                return expr

    def _parse_zone(self) -> str:
        """STRING | IDENT ('/' IDENT)*, the slashes written without spaces."""
        if self.current.kind == TokenKind.STRING:
            return self.advance().value
        parts = [self.expect(TokenKind.IDENT)]
        while (
            self.current.kind == TokenKind.SLASH
            and self.peek(1).kind == TokenKind.IDENT
            and self.current.pos == parts[-1].pos + len(parts[-1].value)
            and self.peek(1).pos == self.current.pos + 1
        ):
            self.advance()
            parts.append(self.advance())
        return "/".join(part.value for part in parts)

    def _parse_args(self) -> list[Expr]:
        """'(' (expr (',' expr)*)? ')'"""
        self.expect(TokenKind.LPAREN)
        args: list[Expr] = []
        if self.current.kind != TokenKind.RPAREN:
            args.append(self.parse_expr())
            while self.match(TokenKind.COMMA):
                args.append(self.parse_expr())
        self.expect(TokenKind.RPAREN)
        return args

    def parse_primary(self) -> Expr:
        """literal | quantity | identifier | mutating call | group | array | object"""
        tok = self.current

        # Parenthesized expression
        if tok.kind == TokenKind.LPAREN:
            self.advance()
            expr = self.parse_expr()
            self.expect(TokenKind.RPAREN)
            return expr

        if tok.kind == TokenKind.LBRACKET:
            return self._parse_array_literal()

        if tok.kind == TokenKind.LBRACE:
            return self._parse_object_literal()

        if tok.kind == TokenKind.NUMBER:
            self.advance()
            return self._parse_number(tok)
        if tok.kind == TokenKind.HEX:
            self.advance()
            return NumberLiteral(value=Decimal(int(tok.value, 16)), base="hex")
        if tok.kind == TokenKind.BINARY:
            self.advance()
            return NumberLiteral(value=Decimal(int(tok.value, 2)), base="binary")
        if tok.kind == TokenKind.DATE:
            self.advance()
            day, month, year = re.split(r"[./]", tok.value)
            return DateLiteral(year=int(year), month=int(month), day=int(day))
        if tok.kind == TokenKind.STRING:
            self.advance()
            return Literal(value=tok.value)
        if tok.kind == TokenKind.TRUE:
            self.advance()
            return Literal(value=True)
        if tok.kind == TokenKind.FALSE:
            self.advance()
            return Literal(value=False)
        if tok.kind == TokenKind.NULL:
            self.advance()
            return Literal(value=None)

        if tok.kind == TokenKind.IDENT:
            self.advance()
            if self.current.kind == TokenKind.BANG and self.peek(1).kind == TokenKind.LPAREN:
                self.advance()  # !
                return MutatingCall(name=tok.value, args=self._parse_args())
            return Identifier(name=tok.value)

        found = repr(tok.value) if tok.value else "end of input"
        raise ParseError(f"Unexpected token: {found}", tok.pos)

    def _parse_number(self, tok: Token) -> Expr:
        """NUMBER, absorbing a directly following unit name (and ^exponent)."""
        value = Decimal(tok.value)
        unit_tok = self.current
        # "5 in" is inches unless a conversion target follows
        if unit_tok.kind == TokenKind.IN and self.peek(1).kind not in (
            TokenKind.IDENT,
            TokenKind.STRING,
        ):
            self.advance()
            exponent = self._parse_unit_exponent()
            return QuantityLiteral(value=value, unit=f"in^{exponent}" if exponent else "in")
        if unit_tok.kind != TokenKind.IDENT or not is_known_unit(unit_tok.value):
            return NumberLiteral(value=value)
        # "5 m(" or "5 m =" are not quantities
        if self.peek(1).kind in (TokenKind.LPAREN, TokenKind.ASSIGN, TokenKind.FAT_ARROW):
            return NumberLiteral(value=value)
        self.advance()
        exponent = self._parse_unit_exponent()
        unit = f"{unit_tok.value}^{exponent}" if exponent else unit_tok.value
        return QuantityLiteral(value=value, unit=unit)

    def _parse_array_literal(self) -> ArrayLiteral:
        """'[' (expr (',' expr)*)? ']'"""
        self.expect(TokenKind.LBRACKET)
        items: list[Expr] = []
        if self.current.kind != TokenKind.RBRACKET:
            items.append(self.parse_expr())
            while self.match(TokenKind.COMMA):
                if self.current.kind == TokenKind.RBRACKET:
                    break
                items.append(self.parse_expr())
        self.expect(TokenKind.RBRACKET)
        return ArrayLiteral(items=items)

    def _parse_object_literal(self) -> ObjectLiteral:
        """'{' (key ':' expr (',' key ':' expr)*)? '}'"""
        self.expect(TokenKind.LBRACE)
        entries: list[tuple[str, Expr]] = []
        while self.current.kind != TokenKind.RBRACE:
            key_tok = self.current
            if key_tok.kind not in (TokenKind.IDENT, TokenKind.STRING):
                raise ParseError("Expected object key", key_tok.pos)
            self.advance()
            self.expect(TokenKind.COLON)
            entries.append((key_tok.value, self.parse_expr()))
            if not self.match(TokenKind.COMMA):
                break
        self.expect(TokenKind.RBRACE)
        return ObjectLiteral(entries=entries)


def is_markdown_line(source: str) -> bool:
    """Headings (``# Title``) and quotes (``> note``) are prose, not expressions."""
    stripped = source.lstrip()
    return stripped.startswith(("# ", "## ", "### ", ">")) or stripped == "#"


def parse_expr(source: str) -> Expr:
    """Parse a statement into an AST.

    Args:
        source: Statement text (e.g., "5 km + 300 m to mi", "f(x) = x^2")

    Returns:
        Parsed expression AST.

    Raises:
        ParseError: If the text cannot be tokenized or parsed.
    """
    if is_markdown_line(source):
        return MarkdownLiteral(text=source.strip())

    try:
        tokens = tokenize(source)
        parser = _Parser(tokens)
        if parser.current.kind == TokenKind.EOF:
            raise ParseError("Empty expression", 0)
        expr = parser.parse_statement()

        # Ensure all tokens consumed
        if parser.current.kind != TokenKind.EOF:
            raise ParseError(
                f"Unexpected token after expression: {parser.current.value!r}",
                parser.current.pos,
            )
    except ParseError as e:
        if e.context is None:
            raise e.with_source(source) from None
        raise

    return expr
