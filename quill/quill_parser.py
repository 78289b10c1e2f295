"""
Builds the Quill AST from a token list.

Recursive descent with one method per precedence tier. The binary operator
tiers are handled by a single precedence-climbing method driven by
BINARY_PRECEDENCE; every binary tier is left-associative.
"""
from typing import List, Optional

from quill.quill_lexer import Token, TokenKind
from quill.quill_datatypes import (
    ParseError, Expression,
    NumericLiteral, StringLiteral, Identifier, UnaryOp, BinaryOp, TernaryOp,
    Loop, Conditional, Closure, Declaration, FunctionDeclaration, FunctionCall,
    ListExpression,
)

# Loosest binding first.
BINARY_PRECEDENCE = [
    TokenKind.LOGICAL,
    TokenKind.COMPARISON,
    TokenKind.ADDITIVE,
    TokenKind.MULTIPLICATIVE,
    TokenKind.MODULO,
    TokenKind.EXPONENTIATION,
]

# Tokens that may follow `@` without parentheses.
PRIMITIVE_TOKENS = (TokenKind.IDENTIFIER, TokenKind.NUMBER, TokenKind.STRING)


def _describe(token: Optional[Token]) -> str:
    if token is None:
        return "end of input"
    return f"{token.kind.value} {token.text!r}"


class Parser:
    """Parses one token list into a single expression tree."""

    def __init__(self, tokens: List[Token]):
        self.tokens = list(tokens)
        self.pos = 0

    # --- Token cursor ---

    def _peek(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _at(self, *kinds: TokenKind) -> bool:
        tok = self._peek()
        return tok is not None and tok.kind in kinds

    def _advance(self) -> Token:
        tok = self._peek()
        if tok is None:
            raise ParseError("Unexpected end of input")
        self.pos += 1
        return tok

    def _expect(self, kind: TokenKind, what: str) -> Token:
        tok = self._peek()
        if tok is None or tok.kind is not kind:
            raise ParseError(f"Expected {what}, got {_describe(tok)}")
        self.pos += 1
        return tok

    # --- Entry point ---

    def parse(self) -> Expression:
        if not self.tokens:
            raise ParseError("Unexpected end of input")
        expr = self.parse_sequence()
        if self._peek() is not None:
            raise ParseError(f"Unexpected token: {_describe(self._peek())}")
        return expr

    # --- Tiers, outermost first ---

    def parse_sequence(self) -> Expression:
        left = self.parse_declaration()
        while self._at(TokenKind.SEPARATOR):
            operator = self._advance().text
            right = self.parse_declaration()
            left = BinaryOp(operator, left, right)
        return left

    def parse_declaration(self) -> Expression:
        if not self._at(TokenKind.DECLARATION):
            return self.parse_assignment()
        qualifier = self._advance().text
        name = self._expect(TokenKind.IDENTIFIER, f"identifier after '{qualifier}'").text
        self._expect(TokenKind.ASSIGNMENT, f"'=' after '{qualifier} {name}'")
        initializer = self.parse_assignment()
        return Declaration(qualifier, name, initializer)

    def parse_assignment(self) -> Expression:
        left = self.parse_function_declaration()
        while self._at(TokenKind.ASSIGNMENT):
            operator = self._advance().text
            right = self.parse_function_declaration()
            left = BinaryOp(operator, left, right)
        return left

    def parse_function_declaration(self) -> Expression:
        if not self._at(TokenKind.FUNC):
            return self.parse_loop()
        self._advance()  # func
        params = self.parse_function_params()
        self._expect(TokenKind.ARROW, "'=>' after function parameters")
        body = self.parse_loop()
        if not isinstance(body, Closure):
            body = Closure(body)
        return FunctionDeclaration(params, body)

    def parse_function_params(self) -> List[str]:
        if self._at(TokenKind.IDENTIFIER):
            return [self._advance().text]
        if not self._at(TokenKind.OPEN_PAREN):
            raise ParseError(f"Expected parentheses or identifier for function inputs, got {_describe(self._peek())}")
        self._advance()  # (
        params: List[str] = []
        while not self._at(TokenKind.CLOSE_PAREN):
            params.append(self._expect(TokenKind.IDENTIFIER, "identifier in function inputs").text)
            if self._at(TokenKind.SEPARATOR):
                self._advance()
            elif not self._at(TokenKind.CLOSE_PAREN):
                raise ParseError(
                    f"Expected ',' or ')' in function inputs, got {_describe(self._peek())}"
                )
        self._advance()  # )
        return params

    def parse_loop(self) -> Expression:
        if not self._at(TokenKind.LOOP):
            return self.parse_conditional()
        keyword = self._advance().text
        condition = self.parse_conditional()
        body = self.parse_conditional()
        if not isinstance(body, Closure):
            raise ParseError(f"Expected closure as '{keyword}' body")
        return Loop(condition, body, keyword)

    def parse_conditional(self) -> Expression:
        if not self._at(TokenKind.IF):
            return self.parse_ternary()
        self._advance()  # if
        condition = self.parse_ternary()
        success = self.parse_ternary()
        if not isinstance(success, Closure):
            raise ParseError("Expected closure as 'if' body")
        failure = None
        if self._at(TokenKind.ELSE):
            self._advance()
            failure = self.parse_ternary()
            if not isinstance(failure, Closure):
                raise ParseError("Expected closure as 'else' body")
        return Conditional(condition, success, failure)

    def parse_ternary(self) -> Expression:
        condition = self.parse_binary()
        while self._at(TokenKind.TERNARY_OPEN):
            self._advance()  # ?
            success = self.parse_binary()
            self._expect(TokenKind.TERNARY_CONTINUE, "':' after ternary expression")
            failure = self.parse_binary()
            condition = TernaryOp(condition, success, failure)
        return condition

    def parse_binary(self, level: int = 0) -> Expression:
        if level >= len(BINARY_PRECEDENCE):
            return self.parse_call()
        kind = BINARY_PRECEDENCE[level]
        left = self.parse_binary(level + 1)
        while self._at(kind):
            operator = self._advance().text
            right = self.parse_binary(level + 1)
            left = BinaryOp(operator, left, right)
        return left

    def parse_call(self) -> Expression:
        callee = self.parse_unary()
        while True:
            if self._at(TokenKind.CALL):
                self._advance()  # @
                if self._at(*PRIMITIVE_TOKENS):
                    callee = FunctionCall(callee, [self.parse_unary()])
                    continue
                if not self._at(TokenKind.OPEN_PAREN):
                    raise ParseError(
                        f"Expected primitive or argument list for function call, got {_describe(self._peek())}"
                    )
                callee = FunctionCall(callee, self.parse_call_args())
            elif self._at(TokenKind.OPEN_PAREN):
                callee = FunctionCall(callee, self.parse_call_args())
            else:
                return callee

    def parse_call_args(self) -> List[Expression]:
        self._advance()  # (
        args: List[Expression] = []
        while not self._at(TokenKind.CLOSE_PAREN):
            if self._peek() is None:
                raise ParseError("Expected ')' to close argument list, got end of input")
            args.append(self.parse_assignment())
            if self._at(TokenKind.SEPARATOR):
                self._advance()
            elif not self._at(TokenKind.CLOSE_PAREN):
                raise ParseError(
                    f"Expected ',' or ')' in function arguments, got {_describe(self._peek())}"
                )
        self._advance()  # )
        return args

    def parse_unary(self) -> Expression:
        tok = self._peek()
        if tok is not None and (tok.kind is TokenKind.UNARY or (tok.kind is TokenKind.ADDITIVE and tok.text == "-")):
            self._advance()
            return UnaryOp(tok.text, self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> Expression:
        tok = self._peek()
        if tok is None:
            raise ParseError("Unexpected end of input")

        match tok.kind:
            case TokenKind.NUMBER:
                self._advance()
                return NumericLiteral(_parse_number(tok.text))
            case TokenKind.STRING:
                self._advance()
                return StringLiteral(tok.text[1:-1].replace("\\n", "\n"))
            case TokenKind.IDENTIFIER:
                self._advance()
                return Identifier(tok.text)
            case TokenKind.OPEN_LIST:
                return self.parse_list()
            case TokenKind.OPEN_CLOSURE:
                self._advance()
                body = self.parse_sequence()
                self._expect(TokenKind.CLOSE_CLOSURE, "'}' to close block")
                return Closure(body)
            case TokenKind.OPEN_PAREN:
                self._advance()
                expr = self.parse_sequence()
                self._expect(TokenKind.CLOSE_PAREN, "')' to close parenthesized expression")
                return expr
            case _:
                raise ParseError(f"Unexpected token: {_describe(tok)}")

    def parse_list(self) -> Expression:
        self._advance()  # [
        elements: List[Expression] = []
        while not self._at(TokenKind.CLOSE_LIST):
            if self._peek() is None:
                raise ParseError("Expected ']' to close list, got end of input")
            elements.append(self.parse_declaration())
            if self._at(TokenKind.SEPARATOR):
                self._advance()
            elif not self._at(TokenKind.CLOSE_LIST):
                raise ParseError(
                    f"Expected ',' or ']' in list literal, got {_describe(self._peek())}"
                )
        self._advance()  # ]
        return ListExpression(elements)


def _parse_number(text: str) -> float:
    if text == "Infinity":
        return float("inf")
    if text == "NaN":
        return float("nan")
    return float(text)


def parse(tokens: List[Token]) -> Expression:
    """Parses a token list into a single-rooted expression tree."""
    try:
        return Parser(tokens).parse()
    except RecursionError:
        raise ParseError("Expression is nested too deeply") from None
