# =============================================================================
# test_parser.py - Rock Parser Unit Tests
# =============================================================================
# Tests for the Rock recursive descent parser.
#
# Test coverage includes:
#   - Top-level items: use, macro, fn, struct, enum, impl
#   - Parameters with defaults and the default ordering rule
#   - Statements: let, assignment, bit-index assignment, control flow,
#     for-range, assert, panic, interrupt
#   - Expression precedence and postfix chains
#   - Error recovery: several syntax errors reported in one parse
# =============================================================================

import pytest

from boulder.rockc.lexer import RockLexer
from boulder.rockc.parser import RockParser, parse_source
from boulder.rockc.types import BaseType, TYPE_U8, TYPE_I32
from boulder.rockc.ast import (
    ASTPrinter,
    AssertStatement,
    AssignStatement,
    AssignmentOperator,
    BinaryExpression,
    BinaryOperator,
    BlockStatement,
    CallExpression,
    EnumDeclaration,
    ExpressionStatement,
    FieldAccessExpression,
    ForRangeStatement,
    FunctionNode,
    IdentifierExpression,
    IfStatement,
    ImplBlock,
    ImportDeclaration,
    IndexAssignStatement,
    IndexExpression,
    IntegerLiteral,
    InterruptStatement,
    LetStatement,
    LoopStatement,
    MacroConstDeclaration,
    PanicStatement,
    ReturnStatement,
    StringLiteral,
    StructDeclaration,
    UnaryExpression,
    UnaryOperator,
    WhileStatement,
)
from boulder.rockc.errors import (
    DefaultParameterOrderError,
    MissingTokenError,
    RockCompilationError,
    UnexpectedTokenError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def parse(source: str):
    """Parse source and return (program, errors)."""
    tokens = list(RockLexer(source, "test.rock").tokenize())
    parser = RockParser(tokens, "test.rock", source.splitlines())
    return parser.parse(), parser.errors


def parse_ok(source: str):
    program, errors = parse(source)
    assert errors == [], [str(e) for e in errors]
    return program


def body_of(source: str) -> list:
    """Statements of a start() function wrapped around the given body."""
    program = parse_ok(f"fn start() {{\n{source}\n}}")
    return program.declarations[0].body.statements


def expr_of(source: str):
    """Parse a single expression statement."""
    statements = body_of(source)
    assert isinstance(statements[0], ExpressionStatement)
    return statements[0].expression


# =============================================================================
# Top-Level Items
# =============================================================================

class TestItems:
    """Parsing of top-level declarations."""

    def test_use(self):
        """'use' takes a string path; the semicolon is optional."""
        program = parse_ok('use "lib/math.rock"\nuse "io.rock";')
        assert [d.path for d in program.declarations] == ["lib/math.rock", "io.rock"]
        assert all(isinstance(d, ImportDeclaration) for d in program.declarations)

    def test_macro(self):
        """Macro constants bind a name to a literal."""
        decl = parse_ok("macro LIMIT = 10").declarations[0]
        assert isinstance(decl, MacroConstDeclaration)
        assert decl.name == "LIMIT"
        assert decl.value.value == 10

    def test_negative_macro(self):
        """A leading minus folds into the literal."""
        decl = parse_ok("macro LOW = -5").declarations[0]
        assert decl.value.value == -5
        assert decl.value.text == "-5"

    def test_string_macro(self):
        decl = parse_ok('macro NAME = "rock"').declarations[0]
        assert isinstance(decl.value, StringLiteral)

    def test_macro_needs_literal(self):
        """Macro values must be literals."""
        _, errors = parse("macro X = y")
        assert isinstance(errors[0], UnexpectedTokenError)

    def test_function(self):
        """Name, parameters, return type and body."""
        fn = parse_ok("fn add(a: u8, b: u8) -> u8 { return a + b }").declarations[0]
        assert isinstance(fn, FunctionNode)
        assert fn.name == "add"
        assert [p.name for p in fn.parameters] == ["a", "b"]
        assert fn.parameters[0].param_type == TYPE_U8
        assert fn.return_type == TYPE_U8
        assert isinstance(fn.body.statements[0], ReturnStatement)
        assert fn.owner is None

    def test_function_without_return_type(self):
        fn = parse_ok("fn start() { }").declarations[0]
        assert fn.return_type is None
        assert fn.body.statements == []

    def test_reference_parameter(self):
        """'&u8' parameters are reference types."""
        fn = parse_ok("fn bump(x: &u8) { }").declarations[0]
        assert fn.parameters[0].param_type.is_reference
        assert fn.parameters[0].param_type.base_type == BaseType.U8

    def test_struct(self):
        """Fields may be separated by commas, semicolons or nothing."""
        decl = parse_ok("struct Point { x: i32, y: i32; z: i32 }").declarations[0]
        assert isinstance(decl, StructDeclaration)
        assert [f.name for f in decl.fields] == ["x", "y", "z"]
        assert decl.fields[0].field_type == TYPE_I32

    def test_struct_field_of_struct_type(self):
        decl = parse_ok("struct Line { a: Point, b: Point }").declarations[0]
        assert decl.fields[0].field_type.is_named
        assert decl.fields[0].field_type.name == "Point"

    def test_enum(self):
        """Variants with and without explicit values."""
        decl = parse_ok("enum Color { Red, Green = 5, Blue, }").declarations[0]
        assert isinstance(decl, EnumDeclaration)
        assert [v.name for v in decl.variants] == ["Red", "Green", "Blue"]
        assert decl.variants[0].value is None
        assert decl.variants[1].value.value == 5

    def test_impl(self):
        """Methods in an impl block record their owner and typed self."""
        source = """
        impl Counter {
            fn bump(&self) { self.count += 1 }
            fn new() -> Counter { let c: Counter; return c }
        }
        """
        decl = parse_ok(source).declarations[0]
        assert isinstance(decl, ImplBlock)
        assert decl.type_name == "Counter"
        bump, new = decl.methods
        assert bump.owner == "Counter"
        assert bump.qualified_name == "Counter::bump"
        assert bump.takes_self
        assert bump.parameters[0].is_self
        assert bump.parameters[0].param_type.is_reference
        assert bump.parameters[0].param_type.name == "Counter"
        assert not new.takes_self

    def test_self_outside_impl(self):
        """'self' is only a parameter of methods."""
        _, errors = parse("fn f(self) { }")
        assert len(errors) == 1
        assert "'self'" in errors[0].message

    def test_self_not_first(self):
        _, errors = parse("impl P { fn f(a: u8, self) { } }")
        assert len(errors) == 1


# =============================================================================
# Default Parameters
# =============================================================================

class TestDefaults:
    """Default values and their ordering rule."""

    def test_defaults_parsed(self):
        fn = parse_ok("fn f(a: u8, b: bool = true, c: u8 = 3) { }").declarations[0]
        assert fn.parameters[0].default is None
        assert fn.parameters[1].default.value is True
        assert fn.parameters[2].default.value == 3

    def test_default_followed_by_required(self):
        """A required parameter after a default one is a syntax error."""
        _, errors = parse("fn f(a: u8 = 1, b: u8) { }")
        assert len(errors) == 1
        assert isinstance(errors[0], DefaultParameterOrderError)
        assert errors[0].message == "parameter 'b' of 'f' needs a default value"

    def test_function_still_parsed_after_order_error(self):
        """The ordering error does not lose the function."""
        program, errors = parse("fn f(a: u8 = 1, b: u8) { }\nfn start() { }")
        assert len(errors) == 1
        assert [d.name for d in program.declarations] == ["f", "start"]


# =============================================================================
# Statements
# =============================================================================

class TestStatements:
    """Statement forms inside function bodies."""

    def test_let_forms(self):
        """let with type, initializer or both."""
        stmts = body_of("let a: u8\nlet b = 1\nlet c: u16 = 2")
        assert all(isinstance(s, LetStatement) for s in stmts)
        assert stmts[0].declared_type == TYPE_U8 and stmts[0].initializer is None
        assert stmts[1].declared_type is None and stmts[1].initializer.value == 1
        assert stmts[2].declared_type.base_type == BaseType.U16

    def test_semicolons_optional(self):
        """Statements may end with ';', several, or none."""
        stmts = body_of("let a = 1; let b = 2;; a = b")
        assert len(stmts) == 3

    def test_compound_assignment(self):
        stmt = body_of("x <<= 2")[0]
        assert isinstance(stmt, AssignStatement)
        assert stmt.operator == AssignmentOperator.LSHIFT_ASSIGN

    def test_field_assignment(self):
        stmt = body_of("p.x = 3")[0]
        assert isinstance(stmt, AssignStatement)
        assert isinstance(stmt.target, FieldAccessExpression)
        assert stmt.target.field_name == "x"

    def test_bit_index_assignment(self):
        """'x[i] = v' is a bit-index assignment, not a plain assignment."""
        stmt = body_of("mask[4] = 1")[0]
        assert isinstance(stmt, IndexAssignStatement)
        assert stmt.target.name == "mask"
        assert stmt.index.value == 4
        assert stmt.value.value == 1

    def test_compound_bit_index_rejected(self):
        """Only '=' may be used on a bit index."""
        _, errors = parse("fn start() { mask[4] += 1 }")
        assert len(errors) == 1
        assert "bit index" in errors[0].message

    def test_if_else_chain(self):
        stmt = body_of("if a { } else if b { } else { }")[0]
        assert isinstance(stmt, IfStatement)
        assert isinstance(stmt.else_branch, IfStatement)
        assert isinstance(stmt.else_branch.else_branch, BlockStatement)

    def test_while_and_loop(self):
        stmts = body_of("while x < 3 { x += 1 }\nloop { break }")
        assert isinstance(stmts[0], WhileStatement)
        assert isinstance(stmts[1], LoopStatement)

    def test_for_exclusive(self):
        stmt = body_of("for i in 0..10 { }")[0]
        assert isinstance(stmt, ForRangeStatement)
        assert stmt.variable == "i"
        assert stmt.range.start.value == 0
        assert stmt.range.end.value == 10
        assert not stmt.range.inclusive

    def test_for_inclusive(self):
        stmt = body_of("for i in 0..=n { }")[0]
        assert stmt.range.inclusive
        assert isinstance(stmt.range.end, IdentifierExpression)

    def test_for_requires_range(self):
        _, errors = parse("fn start() { for i in 10 { } }")
        assert len(errors) >= 1

    def test_return_without_value(self):
        stmt = body_of("return")[0]
        assert isinstance(stmt, ReturnStatement)
        assert stmt.value is None

    def test_assert_forms(self):
        """'assert e' and 'assert a = b'."""
        plain, equality = body_of("assert x > 1\nassert f() = 3")
        assert isinstance(plain, AssertStatement)
        assert not plain.is_equality
        assert equality.is_equality
        assert equality.expected.value == 3

    def test_panic(self):
        stmt = body_of('? "boom"')[0]
        assert isinstance(stmt, PanicStatement)
        assert stmt.payload.value == "boom"

    def test_interrupt(self):
        stmt = body_of("@3")[0]
        assert isinstance(stmt, InterruptStatement)
        assert stmt.number == 3

    def test_nested_block(self):
        stmt = body_of("{ let a = 1 }")[0]
        assert isinstance(stmt, BlockStatement)


# =============================================================================
# Expressions
# =============================================================================

class TestExpressions:
    """Precedence, associativity and postfix forms."""

    def test_multiplication_binds_tighter(self):
        expr = expr_of("1 + 2 * 3")
        assert expr.operator == BinaryOperator.ADD
        assert expr.right.operator == BinaryOperator.MULTIPLY

    def test_left_associative(self):
        expr = expr_of("10 - 4 - 3")
        assert expr.operator == BinaryOperator.SUBTRACT
        assert isinstance(expr.left, BinaryExpression)
        assert expr.right.value == 3

    def test_comparison_below_shift(self):
        expr = expr_of("a << 1 < b")
        assert expr.operator == BinaryOperator.LESS
        assert expr.left.operator == BinaryOperator.LEFT_SHIFT

    def test_logical_lowest(self):
        expr = expr_of("a == 1 || b & 2 != 0")
        assert expr.operator == BinaryOperator.LOGICAL_OR
        assert expr.right.operator == BinaryOperator.BITWISE_AND

    def test_parentheses(self):
        expr = expr_of("(1 + 2) * 3")
        assert expr.operator == BinaryOperator.MULTIPLY

    def test_unary_and_reference(self):
        neg = expr_of("-x")
        ref = expr_of("&x")
        assert isinstance(neg, UnaryExpression) and neg.operator == UnaryOperator.NEGATE
        assert ref.operator == UnaryOperator.REFERENCE

    def test_nested_reference_rejected(self):
        """'&&x' would be a reference to a reference."""
        _, errors = parse("fn start() { let a = &&x }")
        assert len(errors) == 1

    def test_plain_call(self):
        call = expr_of("toggle(1, 2)")
        assert isinstance(call, CallExpression)
        assert call.function_name == "toggle"
        assert len(call.arguments) == 2
        assert call.receiver is None and call.type_name is None

    def test_method_call(self):
        call = expr_of("p.move_by(3)")
        assert call.function_name == "move_by"
        assert call.receiver.name == "p"

    def test_static_call(self):
        call = expr_of("Point::new()")
        assert call.type_name == "Point"
        assert call.function_name == "new"
        assert call.receiver is None

    def test_enum_path(self):
        path = expr_of("Color::Red")
        assert isinstance(path, FieldAccessExpression)
        assert path.is_path
        assert path.type_name == "Color"

    def test_bit_read(self):
        expr = expr_of("mask[3]")
        assert isinstance(expr, IndexExpression)

    def test_chained_field_access(self):
        expr = expr_of("line.a.x")
        assert expr.field_name == "x"
        assert expr.object_expr.field_name == "a"

    def test_literal_kinds(self):
        binary = expr_of("0b0011")
        hexa = expr_of("0x1F")
        char = expr_of("'A'")
        assert isinstance(binary, IntegerLiteral)
        assert (binary.radix, binary.width) == (2, 4)
        assert (hexa.radix, hexa.value) == (16, 31)
        assert char.value == 65

    def test_call_on_literal_rejected(self):
        _, errors = parse("fn start() { 3() }")
        assert len(errors) == 1


# =============================================================================
# Error Recovery
# =============================================================================

class TestRecovery:
    """Syntax errors are collected and parsing continues."""

    def test_missing_token(self):
        _, errors = parse("fn start(a: u8 { }")
        assert isinstance(errors[0], MissingTokenError)
        assert errors[0].message.startswith("expected ')'")

    def test_errors_in_several_statements(self):
        """One bad statement does not hide a later one."""
        source = """
        fn start() {
            let = 1
            let b = 2
            let = 3
        }
        """
        program, errors = parse(source)
        assert len(errors) == 2
        statements = program.declarations[0].body.statements
        assert [s.name for s in statements] == ["b"]

    def test_errors_in_several_items(self):
        """Recovery at top level skips to the next item keyword."""
        program, errors = parse("fn a( { }\nstruct { }\nfn ok() { }")
        assert len(errors) == 2
        assert program.declarations[-1].name == "ok"

    def test_stray_top_level_token(self):
        program, errors = parse("42\nfn start() { }")
        assert len(errors) == 1
        assert isinstance(errors[0], UnexpectedTokenError)
        assert program.declarations[0].name == "start"

    def test_max_errors(self):
        """Parsing stops recording after max_errors."""
        source = "fn start() {\n" + "let = 1\n" * 10 + "}"
        tokens = list(RockLexer(source, "t.rock").tokenize())
        parser = RockParser(tokens, "t.rock", max_errors=3)
        parser.parse()
        assert len(parser.errors) == 3

    def test_error_location(self):
        _, errors = parse("fn start() {\n    let 5 = x\n}")
        assert errors[0].location.line == 2
        assert errors[0].location.column == 9


# =============================================================================
# Convenience Function and Printer
# =============================================================================

class TestParseSource:
    """parse_source() and the AST printer."""

    def test_parse_source_raises(self):
        with pytest.raises(RockCompilationError) as exc_info:
            parse_source("fn start( { }", "bad.rock")
        assert "bad.rock:1:" in str(exc_info.value)
        assert exc_info.value.diagnostics[0].kind.value == "syntax"

    def test_parse_source_includes_lexical_errors(self):
        with pytest.raises(RockCompilationError) as exc_info:
            parse_source("fn start() { let a = $ }")
        assert "invalid character" in str(exc_info.value)

    def test_printer(self):
        program = parse_source(
            "fn start() -> u8 {\n  for i in 0..3 { x[i] = 1 }\n  return 0\n}", "p.rock",
        )
        text = ASTPrinter().print(program)
        lines = text.splitlines()
        assert lines[0] == "Program p.rock"
        assert "Function start() -> u8" in text
        assert "For i in 0..3" in text
        assert "SetBit x[i] = 1" in text
        assert "Return 0" in text
