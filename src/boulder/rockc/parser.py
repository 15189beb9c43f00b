"""
Rock Recursive Descent Parser
=============================

This module implements a recursive descent parser for Rock. It takes the
token stream produced by the lexer and builds the AST of one source file.

Grammar (Simplified EBNF)
-------------------------
program      ::= item*
item         ::= use | macro | function | struct | enum | impl
use          ::= 'use' STRING ';'?
macro        ::= 'macro' IDENT '=' '-'? literal ';'?
function     ::= 'fn' IDENT '(' params? ')' ('->' type)? block
param        ::= '&'? 'self' | IDENT ':' type ('=' expr)?
type         ::= '&' type | IDENT
struct       ::= 'struct' IDENT '{' (IDENT ':' type (',' | ';')?)* '}'
enum         ::= 'enum' IDENT '{' (IDENT ('=' '-'? INT)? ','?)* '}'
impl         ::= 'impl' IDENT '{' function* '}'

block        ::= '{' statement* '}'
statement    ::= let | if | while | loop | for | return | break | continue
               | assert | panic | interrupt | block
               | expr (assign_op expr)?
let          ::= 'let' IDENT (':' type)? ('=' expr)?
if           ::= 'if' expr block ('else' (if | block))?
while        ::= 'while' expr block
loop         ::= 'loop' block
for          ::= 'for' IDENT 'in' expr ('..' | '..=') expr block
return       ::= 'return' expr?
assert       ::= 'assert' expr ('=' expr)?
panic        ::= '?' expr
interrupt    ::= '@' INT

Semicolons after statements and items are optional.

Expression Precedence (lowest to highest)
-----------------------------------------
1.  logical_or     ||
2.  logical_and    &&
3.  bitwise_or     |
4.  bitwise_xor    ^
5.  bitwise_and    &
6.  equality       == !=
7.  relational     < > <= >=
8.  shift          << >>
9.  additive       + -
10. multiplicative * / %
11. unary          - ! ~ & (reference)
12. postfix        call () index [] field . path ::
13. primary        literal, IDENT, self, '(' expr ')'

'&' is the reference sigil when it starts an operand and bitwise AND when
it sits between two operands. Assignment is a statement, not an
expression, which is what lets 'assert a = b' mean equality.

Error Recovery
--------------
Syntax errors are recorded on parser.errors. Inside a block the parser
skips to the next statement boundary (';', a statement keyword, or the
block's closing '}', skipping nested braces); at top level it skips to the
next item keyword. A single mistake therefore costs one statement, not the
whole file.

Example Usage
-------------
>>> from boulder.rockc.lexer import RockLexer
>>> from boulder.rockc.parser import RockParser
>>> tokens = list(RockLexer('fn start() -> u8 { return 42 }', "main.rock").tokenize())
>>> program = RockParser(tokens, "main.rock").parse()
>>> program.declarations[0].name
'start'
"""

from typing import Callable, List, Optional
import logging

from boulder.errors import SourceLocation
from boulder.rockc.lexer import RockLexer, Token, TokenType
from boulder.rockc.types import RockType, BaseType, type_from_name
from boulder.rockc.ast import (
    ProgramNode,
    Declaration,
    ImportDeclaration,
    MacroConstDeclaration,
    FunctionNode,
    ParameterNode,
    StructDeclaration,
    StructField,
    EnumDeclaration,
    EnumVariant,
    ImplBlock,
    Statement,
    BlockStatement,
    LetStatement,
    AssignStatement,
    AssignmentOperator,
    IndexAssignStatement,
    IfStatement,
    WhileStatement,
    LoopStatement,
    ForRangeStatement,
    ReturnStatement,
    BreakStatement,
    ContinueStatement,
    AssertStatement,
    PanicStatement,
    InterruptStatement,
    ExpressionStatement,
    Expression,
    BinaryExpression,
    BinaryOperator,
    UnaryExpression,
    UnaryOperator,
    CallExpression,
    IndexExpression,
    FieldAccessExpression,
    RangeExpression,
    IdentifierExpression,
    IntegerLiteral,
    BoolLiteral,
    StringLiteral,
)
from boulder.rockc.errors import (
    RockSyntaxError,
    UnexpectedTokenError,
    MissingTokenError,
    DefaultParameterOrderError,
    ErrorCollector,
)

logger = logging.getLogger(__name__)


# Tokens that begin a statement; recovery stops in front of them.
STATEMENT_START = {
    TokenType.LET, TokenType.IF, TokenType.WHILE, TokenType.LOOP,
    TokenType.FOR, TokenType.RETURN, TokenType.BREAK, TokenType.CONTINUE,
    TokenType.ASSERT, TokenType.QUESTION, TokenType.AT,
}

# Tokens that begin a top-level item.
ITEM_START = {
    TokenType.FN, TokenType.STRUCT, TokenType.ENUM, TokenType.IMPL,
    TokenType.USE, TokenType.MACRO,
}

ASSIGNMENT_OPERATORS = {
    TokenType.ASSIGN: AssignmentOperator.ASSIGN,
    TokenType.PLUS_ASSIGN: AssignmentOperator.ADD_ASSIGN,
    TokenType.MINUS_ASSIGN: AssignmentOperator.SUB_ASSIGN,
    TokenType.STAR_ASSIGN: AssignmentOperator.MUL_ASSIGN,
    TokenType.SLASH_ASSIGN: AssignmentOperator.DIV_ASSIGN,
    TokenType.PERCENT_ASSIGN: AssignmentOperator.MOD_ASSIGN,
    TokenType.AND_ASSIGN: AssignmentOperator.AND_ASSIGN,
    TokenType.OR_ASSIGN: AssignmentOperator.OR_ASSIGN,
    TokenType.XOR_ASSIGN: AssignmentOperator.XOR_ASSIGN,
    TokenType.LSHIFT_ASSIGN: AssignmentOperator.LSHIFT_ASSIGN,
    TokenType.RSHIFT_ASSIGN: AssignmentOperator.RSHIFT_ASSIGN,
}

UNARY_OPERATORS = {
    TokenType.MINUS: UnaryOperator.NEGATE,
    TokenType.NOT: UnaryOperator.LOGICAL_NOT,
    TokenType.TILDE: UnaryOperator.BITWISE_NOT,
    TokenType.AMPERSAND: UnaryOperator.REFERENCE,
}

LITERAL_TOKENS = {
    TokenType.NUMBER, TokenType.BINARY, TokenType.CHAR_LITERAL,
    TokenType.STRING, TokenType.TRUE, TokenType.FALSE,
}


class RockParser:
    """
    Recursive descent parser for one Rock source file.

    Usage:
        parser = RockParser(tokens, "main.rock", source.splitlines())
        program = parser.parse()
        if parser.errors:
            ...

    Attributes:
        tokens: Token list ending with EOF
        filename: Source filename for error messages
        source_lines: Original source lines for error context
        errors: Syntax errors found by parse()
    """

    def __init__(
        self,
        tokens: List[Token],
        filename: str = "<input>",
        source_lines: Optional[List[str]] = None,
        max_errors: int = 50,
    ):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines or []
        self.max_errors = max_errors
        self.errors: List[RockSyntaxError] = []
        self._pos = 0
        # Struct name while parsing an impl block (types 'self')
        self._impl_owner: Optional[str] = None

    def parse(self) -> ProgramNode:
        """
        Parse the token stream into a ProgramNode.

        Never raises for syntax errors; check the errors attribute.
        """
        self._pos = 0
        self.errors = []
        declarations: List[Declaration] = []

        while not self._at_end():
            start = self._pos
            try:
                declarations.append(self._parse_item())
            except RockSyntaxError as e:
                self._report(e)
                self._synchronize_item(start)

        logger.debug(
            f"{self.filename}: {len(declarations)} declarations, "
            f"{len(self.errors)} syntax errors"
        )
        return ProgramNode(
            location=SourceLocation(self.filename, 1, 1),
            declarations=declarations,
            filename=self.filename,
        )

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        pos = self._pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _advance(self) -> Token:
        token = self._peek()
        if not self._at_end():
            self._pos += 1
        return token

    def _check(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, description: str) -> Token:
        """
        Consume a token of the given type.

        Raises:
            MissingTokenError: If the current token has another type
        """
        if self._check(token_type):
            return self._advance()
        current = self._peek()
        raise MissingTokenError(
            description,
            found=self._describe(current),
            location=current.location,
            source_line=self._source_line(current.line),
        )

    def _unexpected(self, token: Token, expected: str) -> UnexpectedTokenError:
        return UnexpectedTokenError(
            self._describe(token),
            expected=expected,
            location=token.location,
            source_line=self._source_line(token.line),
        )

    @staticmethod
    def _describe(token: Token) -> str:
        return "end of file" if token.type == TokenType.EOF else token.lexeme

    def _source_line(self, line: int) -> Optional[str]:
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    def _skip_semicolons(self) -> None:
        while self._match(TokenType.SEMICOLON):
            pass

    # =========================================================================
    # Error Recovery
    # =========================================================================

    def _report(self, error: RockSyntaxError) -> None:
        """Record an error; past the cap, jump to EOF to end the parse."""
        if len(self.errors) < self.max_errors:
            self.errors.append(error)
        if len(self.errors) >= self.max_errors:
            self._pos = len(self.tokens) - 1

    def _synchronize_statement(self, start: int) -> None:
        """Skip to the next statement boundary at the current brace depth."""
        if self._pos == start:
            self._advance()

        depth = 0
        while not self._at_end():
            token_type = self._peek().type
            if depth == 0:
                if token_type == TokenType.SEMICOLON:
                    self._advance()
                    return
                if token_type == TokenType.RBRACE or token_type in STATEMENT_START:
                    return
            if token_type == TokenType.LBRACE:
                depth += 1
            elif token_type == TokenType.RBRACE:
                depth -= 1
            self._advance()

    def _synchronize_item(self, start: int) -> None:
        """Skip to the next top-level item keyword outside any braces."""
        if self._pos == start:
            self._advance()

        depth = 0
        while not self._at_end():
            token_type = self._peek().type
            if depth <= 0 and token_type in ITEM_START:
                return
            if token_type == TokenType.LBRACE:
                depth += 1
            elif token_type == TokenType.RBRACE:
                depth -= 1
            self._advance()

    def _synchronize_method(self, start: int) -> None:
        """Skip to the next 'fn' or the closing '}' of an impl block."""
        if self._pos == start:
            self._advance()

        depth = 0
        while not self._at_end():
            token_type = self._peek().type
            if depth == 0 and token_type in (TokenType.FN, TokenType.RBRACE):
                return
            if token_type == TokenType.LBRACE:
                depth += 1
            elif token_type == TokenType.RBRACE:
                depth -= 1
            self._advance()

    # =========================================================================
    # Top-Level Items
    # =========================================================================

    def _parse_item(self) -> Declaration:
        token = self._peek()

        if token.type == TokenType.USE:
            return self._parse_use()
        if token.type == TokenType.MACRO:
            return self._parse_macro()
        if token.type == TokenType.FN:
            return self._parse_function()
        if token.type == TokenType.STRUCT:
            return self._parse_struct()
        if token.type == TokenType.ENUM:
            return self._parse_enum()
        if token.type == TokenType.IMPL:
            return self._parse_impl()

        raise self._unexpected(token, "'fn', 'struct', 'enum', 'impl', 'use' or 'macro'")

    def _parse_use(self) -> ImportDeclaration:
        location = self._advance().location
        path = self._expect(TokenType.STRING, "import path string")
        self._skip_semicolons()
        return ImportDeclaration(location=location, path=path.value)

    def _parse_macro(self) -> MacroConstDeclaration:
        """macro NAME = literal"""
        location = self._advance().location
        name = self._expect(TokenType.IDENTIFIER, "constant name")
        self._expect(TokenType.ASSIGN, "=")

        negative = self._match(TokenType.MINUS)
        token = self._peek()
        if token.type not in LITERAL_TOKENS:
            raise self._unexpected(token, "a literal value")
        value = self._parse_primary()
        if negative:
            if not isinstance(value, IntegerLiteral):
                raise self._unexpected(token, "an integer after '-'")
            value = IntegerLiteral(
                location=negative.location,
                value=-value.value,
                text="-" + value.text,
                radix=value.radix,
                width=value.width,
            )

        self._skip_semicolons()
        return MacroConstDeclaration(location=location, name=name.value, value=value)

    def _parse_function(self) -> FunctionNode:
        """fn name(params) -> type { body }"""
        location = self._expect(TokenType.FN, "fn").location
        name = self._expect(TokenType.IDENTIFIER, "function name").value

        self._expect(TokenType.LPAREN, "(")
        parameters = self._parse_parameter_list(name)
        self._expect(TokenType.RPAREN, ")")

        return_type = None
        if self._match(TokenType.ARROW):
            return_type = self._parse_type()

        body = self._parse_block()
        self._skip_semicolons()

        return FunctionNode(
            location=location,
            name=name,
            parameters=parameters,
            return_type=return_type,
            body=body,
            owner=self._impl_owner,
        )

    def _parse_parameter_list(self, function_name: str) -> List[ParameterNode]:
        parameters: List[ParameterNode] = []

        while not self._check(TokenType.RPAREN) and not self._at_end():
            parameters.append(self._parse_parameter(len(parameters)))
            if not self._match(TokenType.COMMA):
                break

        # Once a default appears, every later parameter needs one too.
        seen_default = False
        for param in parameters:
            if param.default is not None:
                seen_default = True
            elif seen_default and not param.is_self:
                self._report(DefaultParameterOrderError(
                    function_name,
                    param.name,
                    location=param.location,
                    source_line=self._source_line(param.location.line),
                ))
                break

        return parameters

    def _parse_parameter(self, index: int) -> ParameterNode:
        """'self', '&self' or 'name: type (= default)?'."""
        token = self._peek()

        if token.type == TokenType.SELF or (
            token.type == TokenType.AMPERSAND and self._peek(1).type == TokenType.SELF
        ):
            self._match(TokenType.AMPERSAND)
            self._advance()
            if self._impl_owner is None or index != 0:
                raise RockSyntaxError(
                    "'self' is only allowed as the first parameter of a method",
                    location=token.location,
                    source_line=self._source_line(token.line),
                )
            return ParameterNode(
                location=token.location,
                name="self",
                param_type=RockType(BaseType.NAMED, self._impl_owner, True),
                is_self=True,
            )

        name = self._expect(TokenType.IDENTIFIER, "parameter name")
        self._expect(TokenType.COLON, ":")
        param_type = self._parse_type()

        default = None
        if self._match(TokenType.ASSIGN):
            default = self._parse_expression()

        return ParameterNode(
            location=name.location,
            name=name.value,
            param_type=param_type,
            default=default,
        )

    def _parse_type(self) -> RockType:
        """'&' type | IDENT"""
        if self._match(TokenType.AMPERSAND):
            if self._check(TokenType.AMPERSAND, TokenType.AND):
                raise self._unexpected(self._peek(), "a type name (references do not nest)")
            name = self._expect(TokenType.IDENTIFIER, "type name")
            return type_from_name(name.value, is_reference=True)
        name = self._expect(TokenType.IDENTIFIER, "type name")
        return type_from_name(name.value)

    def _parse_struct(self) -> StructDeclaration:
        location = self._advance().location
        name = self._expect(TokenType.IDENTIFIER, "struct name").value
        self._expect(TokenType.LBRACE, "{")

        fields: List[StructField] = []
        while not self._check(TokenType.RBRACE) and not self._at_end():
            field_name = self._expect(TokenType.IDENTIFIER, "field name")
            self._expect(TokenType.COLON, ":")
            field_type = self._parse_type()
            fields.append(StructField(
                location=field_name.location, name=field_name.value, field_type=field_type,
            ))
            self._match(TokenType.COMMA, TokenType.SEMICOLON)

        self._expect(TokenType.RBRACE, "}")
        self._skip_semicolons()
        return StructDeclaration(location=location, name=name, fields=fields)

    def _parse_enum(self) -> EnumDeclaration:
        location = self._advance().location
        name = self._expect(TokenType.IDENTIFIER, "enum name").value
        self._expect(TokenType.LBRACE, "{")

        variants: List[EnumVariant] = []
        while not self._check(TokenType.RBRACE) and not self._at_end():
            variant = self._expect(TokenType.IDENTIFIER, "variant name")
            value = None
            if self._match(TokenType.ASSIGN):
                value = self._parse_unary()
            variants.append(EnumVariant(location=variant.location, name=variant.value, value=value))
            if not self._match(TokenType.COMMA):
                break

        self._expect(TokenType.RBRACE, "}")
        self._skip_semicolons()
        return EnumDeclaration(location=location, name=name, variants=variants)

    def _parse_impl(self) -> ImplBlock:
        location = self._advance().location
        type_name = self._expect(TokenType.IDENTIFIER, "type name").value
        self._expect(TokenType.LBRACE, "{")

        methods: List[FunctionNode] = []
        self._impl_owner = type_name
        try:
            while not self._check(TokenType.RBRACE) and not self._at_end():
                start = self._pos
                try:
                    methods.append(self._parse_function())
                except RockSyntaxError as e:
                    self._report(e)
                    self._synchronize_method(start)
        finally:
            self._impl_owner = None

        self._expect(TokenType.RBRACE, "}")
        self._skip_semicolons()
        return ImplBlock(location=location, type_name=type_name, methods=methods)

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> BlockStatement:
        """'{' statement* '}' with statement-level recovery."""
        location = self._expect(TokenType.LBRACE, "{").location
        statements: List[Statement] = []

        while not self._check(TokenType.RBRACE) and not self._at_end():
            start = self._pos
            try:
                stmt = self._parse_statement()
                if stmt is not None:
                    statements.append(stmt)
            except RockSyntaxError as e:
                self._report(e)
                self._synchronize_statement(start)

        self._expect(TokenType.RBRACE, "}")
        return BlockStatement(location=location, statements=statements)

    def _parse_statement(self) -> Optional[Statement]:
        token = self._peek()

        if token.type == TokenType.SEMICOLON:
            self._advance()
            return None

        handlers = {
            TokenType.LET: self._parse_let,
            TokenType.IF: self._parse_if,
            TokenType.WHILE: self._parse_while,
            TokenType.LOOP: self._parse_loop,
            TokenType.FOR: self._parse_for,
            TokenType.RETURN: self._parse_return,
            TokenType.BREAK: self._parse_break,
            TokenType.CONTINUE: self._parse_continue,
            TokenType.ASSERT: self._parse_assert,
            TokenType.QUESTION: self._parse_panic,
            TokenType.AT: self._parse_interrupt,
            TokenType.LBRACE: self._parse_block,
        }
        handler = handlers.get(token.type)
        stmt = handler() if handler else self._parse_expression_statement()
        self._skip_semicolons()
        return stmt

    def _parse_let(self) -> LetStatement:
        location = self._advance().location
        name = self._expect(TokenType.IDENTIFIER, "variable name").value

        declared_type = None
        if self._match(TokenType.COLON):
            declared_type = self._parse_type()

        initializer = None
        if self._match(TokenType.ASSIGN):
            initializer = self._parse_expression()

        return LetStatement(
            location=location, name=name, declared_type=declared_type, initializer=initializer,
        )

    def _parse_if(self) -> IfStatement:
        location = self._advance().location
        condition = self._parse_expression()
        then_branch = self._parse_block()

        else_branch = None
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                else_branch = self._parse_if()
            else:
                else_branch = self._parse_block()

        return IfStatement(
            location=location, condition=condition,
            then_branch=then_branch, else_branch=else_branch,
        )

    def _parse_while(self) -> WhileStatement:
        location = self._advance().location
        condition = self._parse_expression()
        body = self._parse_block()
        return WhileStatement(location=location, condition=condition, body=body)

    def _parse_loop(self) -> LoopStatement:
        location = self._advance().location
        return LoopStatement(location=location, body=self._parse_block())

    def _parse_for(self) -> ForRangeStatement:
        """for IDENT in start..end / start..=end"""
        location = self._advance().location
        variable = self._expect(TokenType.IDENTIFIER, "loop variable").value
        self._expect(TokenType.IN, "in")

        start = self._parse_expression()
        range_token = self._peek()
        if range_token.type not in (TokenType.DOT_DOT, TokenType.DOT_DOT_EQ):
            raise self._unexpected(range_token, "'..' or '..='")
        self._advance()
        end = self._parse_expression()

        loop_range = RangeExpression(
            location=start.location,
            start=start,
            end=end,
            inclusive=range_token.type == TokenType.DOT_DOT_EQ,
        )
        body = self._parse_block()
        return ForRangeStatement(location=location, variable=variable, range=loop_range, body=body)

    def _parse_return(self) -> ReturnStatement:
        location = self._advance().location
        value = None
        if not self._check(TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF):
            value = self._parse_expression()
        return ReturnStatement(location=location, value=value)

    def _parse_break(self) -> BreakStatement:
        return BreakStatement(location=self._advance().location)

    def _parse_continue(self) -> ContinueStatement:
        return ContinueStatement(location=self._advance().location)

    def _parse_assert(self) -> AssertStatement:
        """assert expr | assert expr = expr"""
        location = self._advance().location
        condition = self._parse_expression()
        expected = None
        if self._match(TokenType.ASSIGN):
            expected = self._parse_expression()
        return AssertStatement(location=location, condition=condition, expected=expected)

    def _parse_panic(self) -> PanicStatement:
        location = self._advance().location
        return PanicStatement(location=location, payload=self._parse_expression())

    def _parse_interrupt(self) -> InterruptStatement:
        location = self._advance().location
        number = self._peek()
        if number.type not in (TokenType.NUMBER, TokenType.BINARY):
            raise self._unexpected(number, "interrupt number")
        self._advance()
        return InterruptStatement(location=location, number=number.value)

    def _parse_expression_statement(self) -> Statement:
        """Expression statement, assignment, or bit-index assignment."""
        expr = self._parse_expression()

        op_token = self._peek()
        if op_token.type not in ASSIGNMENT_OPERATORS:
            return ExpressionStatement(location=expr.location, expression=expr)

        self._advance()
        operator = ASSIGNMENT_OPERATORS[op_token.type]
        value = self._parse_expression()

        if isinstance(expr, IndexExpression):
            if operator != AssignmentOperator.ASSIGN:
                raise RockSyntaxError(
                    f"'{op_token.lexeme}' cannot be used on a bit index",
                    location=op_token.location,
                    hint="write 'x[i] = value' to set a single bit",
                    source_line=self._source_line(op_token.line),
                )
            return IndexAssignStatement(
                location=expr.location, target=expr.target, index=expr.index, value=value,
            )

        return AssignStatement(location=expr.location, target=expr, operator=operator, value=value)

    # =========================================================================
    # Expressions
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_logical_or()

    def _parse_logical_or(self) -> Expression:
        return self._parse_binary(self._parse_logical_and, {
            TokenType.OR: BinaryOperator.LOGICAL_OR,
        })

    def _parse_logical_and(self) -> Expression:
        return self._parse_binary(self._parse_bitwise_or, {
            TokenType.AND: BinaryOperator.LOGICAL_AND,
        })

    def _parse_bitwise_or(self) -> Expression:
        return self._parse_binary(self._parse_bitwise_xor, {
            TokenType.PIPE: BinaryOperator.BITWISE_OR,
        })

    def _parse_bitwise_xor(self) -> Expression:
        return self._parse_binary(self._parse_bitwise_and, {
            TokenType.CARET: BinaryOperator.BITWISE_XOR,
        })

    def _parse_bitwise_and(self) -> Expression:
        return self._parse_binary(self._parse_equality, {
            TokenType.AMPERSAND: BinaryOperator.BITWISE_AND,
        })

    def _parse_equality(self) -> Expression:
        return self._parse_binary(self._parse_relational, {
            TokenType.EQ: BinaryOperator.EQUAL,
            TokenType.NE: BinaryOperator.NOT_EQUAL,
        })

    def _parse_relational(self) -> Expression:
        return self._parse_binary(self._parse_shift, {
            TokenType.LT: BinaryOperator.LESS,
            TokenType.GT: BinaryOperator.GREATER,
            TokenType.LE: BinaryOperator.LESS_EQ,
            TokenType.GE: BinaryOperator.GREATER_EQ,
        })

    def _parse_shift(self) -> Expression:
        return self._parse_binary(self._parse_additive, {
            TokenType.LSHIFT: BinaryOperator.LEFT_SHIFT,
            TokenType.RSHIFT: BinaryOperator.RIGHT_SHIFT,
        })

    def _parse_additive(self) -> Expression:
        return self._parse_binary(self._parse_multiplicative, {
            TokenType.PLUS: BinaryOperator.ADD,
            TokenType.MINUS: BinaryOperator.SUBTRACT,
        })

    def _parse_multiplicative(self) -> Expression:
        return self._parse_binary(self._parse_unary, {
            TokenType.STAR: BinaryOperator.MULTIPLY,
            TokenType.SLASH: BinaryOperator.DIVIDE,
            TokenType.PERCENT: BinaryOperator.MODULO,
        })

    def _parse_binary(
        self,
        operand_parser: Callable[[], Expression],
        operators: dict[TokenType, BinaryOperator],
    ) -> Expression:
        """Left-associative binary level over operand_parser."""
        expr = operand_parser()

        while self._peek().type in operators:
            op_token = self._advance()
            right = operand_parser()
            expr = BinaryExpression(
                location=expr.location,
                operator=operators[op_token.type],
                left=expr,
                right=right,
            )

        return expr

    def _parse_unary(self) -> Expression:
        """Prefix operators; a leading '&' is the reference sigil."""
        token = self._peek()

        if token.type in UNARY_OPERATORS:
            self._advance()
            operand = self._parse_unary()
            return UnaryExpression(
                location=token.location,
                operator=UNARY_OPERATORS[token.type],
                operand=operand,
            )

        # '&&x' lexes as one token; as a prefix it is a reference to a reference
        if token.type == TokenType.AND:
            raise self._unexpected(token, "an expression (references do not nest)")

        return self._parse_postfix()

    def _parse_postfix(self) -> Expression:
        """Calls, index chains, field access and '::' paths."""
        expr = self._parse_primary()

        while True:
            if self._check(TokenType.LPAREN):
                expr = self._parse_call(expr)

            elif self._match(TokenType.LBRACKET):
                index = self._parse_expression()
                self._expect(TokenType.RBRACKET, "]")
                expr = IndexExpression(location=expr.location, target=expr, index=index)

            elif self._match(TokenType.DOT):
                member = self._expect(TokenType.IDENTIFIER, "field or method name")
                expr = FieldAccessExpression(
                    location=expr.location, object_expr=expr, field_name=member.value,
                )

            elif self._check(TokenType.DOUBLE_COLON):
                if not isinstance(expr, IdentifierExpression):
                    raise self._unexpected(self._peek(), "a type name before '::'")
                self._advance()
                member = self._expect(TokenType.IDENTIFIER, "variant or function name")
                expr = FieldAccessExpression(
                    location=expr.location, field_name=member.value, type_name=expr.name,
                )

            else:
                break

        return expr

    def _parse_call(self, callee: Expression) -> CallExpression:
        paren = self._advance()

        if isinstance(callee, IdentifierExpression) and callee.name != "self":
            function_name, receiver, type_name = callee.name, None, None
        elif isinstance(callee, FieldAccessExpression):
            function_name = callee.field_name
            receiver = callee.object_expr
            type_name = callee.type_name
        else:
            raise RockSyntaxError(
                "expression cannot be called",
                location=paren.location,
                source_line=self._source_line(paren.line),
            )

        arguments: List[Expression] = []
        while not self._check(TokenType.RPAREN) and not self._at_end():
            arguments.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN, ")")

        return CallExpression(
            location=callee.location,
            function_name=function_name,
            arguments=arguments,
            receiver=receiver,
            type_name=type_name,
        )

    def _parse_primary(self) -> Expression:
        token = self._peek()

        if token.type == TokenType.NUMBER:
            self._advance()
            radix = 16 if token.lexeme[:2].lower() == "0x" else 10
            return IntegerLiteral(
                location=token.location, value=token.value, text=token.lexeme,
                radix=radix, width=token.width,
            )

        if token.type == TokenType.BINARY:
            self._advance()
            return IntegerLiteral(
                location=token.location, value=token.value, text=token.lexeme,
                radix=2, width=token.width,
            )

        if token.type == TokenType.CHAR_LITERAL:
            self._advance()
            return IntegerLiteral(
                location=token.location, value=token.value, text=token.lexeme,
                radix=10, width=token.width,
            )

        if token.type == TokenType.STRING:
            self._advance()
            return StringLiteral(location=token.location, value=token.value)

        if token.type in (TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return BoolLiteral(location=token.location, value=token.type == TokenType.TRUE)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return IdentifierExpression(location=token.location, name=token.value)

        if token.type == TokenType.SELF:
            self._advance()
            return IdentifierExpression(location=token.location, name="self")

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN, ")")
            return expr

        raise self._unexpected(token, "an expression")


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source(source: str, filename: str = "<input>", max_errors: int = 50) -> ProgramNode:
    """
    Lex and parse one Rock source buffer.

    Args:
        source: The Rock source code
        filename: Source filename for error messages
        max_errors: Stop recording errors after this many

    Returns:
        The root ProgramNode

    Raises:
        RockCompilationError: If any lexical or syntax error was found
    """
    lexer = RockLexer(source, filename)
    tokens = list(lexer.tokenize())
    parser = RockParser(tokens, filename, source.splitlines(), max_errors)
    program = parser.parse()

    collector = ErrorCollector(max_errors)
    collector.extend(lexer.errors)
    collector.extend(parser.errors)
    collector.raise_if_errors()
    return program
