# =============================================================================
# test_lowering.py - Semantic Lowering Tests
# =============================================================================
# Tests for type checking, constant folding and call binding.
#
# Test coverage includes:
#   - Macro constants folded into every use
#   - Literal typing: untyped decimals, binary/hex/char widths
#   - Literal range and binary width checks
#   - Default parameters filled in at call sites
#   - Bit-index targets, break/continue placement, assignment targets
#   - Struct, enum, method and reference typing, struct containment cycles
#   - Declarations that would share a name in the generated C
#   - Every path of a function with a return type returning a value
#   - Error accumulation across a whole unit
# =============================================================================

import pytest

from boulder.rockc.ast import (
    CallExpression,
    ExpressionStatement,
    ForRangeStatement,
    LetStatement,
    ReturnStatement,
)
from boulder.rockc.errors import (
    ArityError,
    DuplicateConstantError,
    DuplicateDeclarationError,
    ErrorCollector,
    InvalidAssignmentTargetError,
    InvalidBitIndexTargetError,
    InvalidBreakContinueError,
    LiteralRangeError,
    NonConstantDefaultError,
    RockCompilationError,
    RockTypeError,
    SemanticError,
    UndeclaredIdentifierError,
    UnknownMemberError,
    UnresolvedConstantError,
)
from boulder.rockc.lowering import SemanticLowering, function_symbol, literal_constant
from boulder.rockc.parser import parse_source
from boulder.rockc.resolver import CompilationUnit, SourceModule
from boulder.rockc.types import (
    TYPE_BOOL,
    TYPE_I32,
    TYPE_I64,
    TYPE_U8,
    TYPE_U16,
    TYPE_U64,
)


# =============================================================================
# Helper Functions
# =============================================================================

def lower(source: str):
    """Lower a single-file program; returns (unit, collector)."""
    program = parse_source(source, "test.rock")
    unit = CompilationUnit(
        entry_path="test.rock",
        modules=[SourceModule("test.rock", program)],
        declarations=list(program.declarations),
    )
    collector = ErrorCollector()
    SemanticLowering(collector, {"test.rock": source.splitlines()}).lower(unit)
    return unit, collector


def lower_ok(source: str):
    unit, collector = lower(source)
    assert not collector.has_errors(), collector.report()
    return unit


def errors_of(source: str) -> list:
    _, collector = lower(source)
    return collector.errors


def function(unit: CompilationUnit, name: str):
    for decl in unit.declarations:
        if getattr(decl, "name", None) == name:
            return decl
    raise KeyError(name)


def statements(unit: CompilationUnit, name: str = "start") -> list:
    return function(unit, name).body.statements


def let_types(source: str) -> dict:
    """Resolved types of the let statements in start()."""
    unit = lower_ok(source)
    return {
        stmt.name: stmt.resolved_type
        for stmt in statements(unit)
        if isinstance(stmt, LetStatement)
    }


# =============================================================================
# Macro Constants
# =============================================================================

class TestMacros:
    """Compile-time constants."""

    def test_macro_folded(self):
        """A macro reference carries the macro's constant value."""
        unit = lower_ok("macro M = 10\nfn start() -> i32 { return M }")
        ret = statements(unit)[0]
        assert isinstance(ret, ReturnStatement)
        assert ret.value.constant.value == 10
        assert ret.value.resolved_type == TYPE_I32

    def test_macro_in_expression_folds(self):
        unit = lower_ok("macro M = 10\nfn start() -> i32 { return M * 2 + 1 }")
        assert statements(unit)[0].value.constant.value == 21

    def test_string_macro(self):
        unit = lower_ok('macro NAME = "rock"\nfn start() { print(NAME) }')
        call = statements(unit)[0].expression
        assert call.arguments[0].constant.value == "rock"

    def test_duplicate_macro(self):
        errors = errors_of("macro M = 1\nmacro M = 2\nfn start() { }")
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateConstantError)
        assert errors[0].message == "redeclaration of macro constant 'M'"
        assert errors[0].hint == "'M' was first declared at test.rock:1:1"

    def test_unresolved_constant(self):
        """Unknown upper-case names are reported as missing constants."""
        errors = errors_of("macro LIMIT = 3\nfn start() -> i32 { return LIMT }")
        assert isinstance(errors[0], UnresolvedConstantError)
        assert errors[0].message == "unresolved constant 'LIMT'"
        assert errors[0].hint == "did you mean 'LIMIT'?"

    def test_assign_to_macro(self):
        errors = errors_of("macro M = 1\nfn start() { M = 2 }")
        assert isinstance(errors[0], RockTypeError)
        assert "macro constant 'M'" in errors[0].message


# =============================================================================
# Literal Typing
# =============================================================================

class TestLiteralTyping:
    """Types given to literals and the variables they initialize."""

    def test_decimal_defaults(self):
        """Untyped decimals are i32, then i64, then u64 by value."""
        types = let_types(
            "fn start() { let a = 5\nlet b = 3000000000\nlet c = 10000000000000000000 }"
        )
        assert types == {"a": TYPE_I32, "b": TYPE_I64, "c": TYPE_U64}

    def test_binary_width_decides_type(self):
        """0b000000001111 is written with 12 bits, so it is a u16."""
        types = let_types("fn start() { let m = 0b000000001111\nlet n = 0b1 }")
        assert types == {"m": TYPE_U16, "n": TYPE_U8}

    def test_hex_and_char(self):
        types = let_types("fn start() { let h = 0x1234\nlet c = 'A' }")
        assert types == {"h": TYPE_U16, "c": TYPE_U8}

    def test_literal_constant_helper(self):
        program = parse_source("fn start() { 0b0011 }")
        literal = program.declarations[0].body.statements[0].expression
        constant = literal_constant(literal)
        assert (constant.value, constant.type, constant.width) == (3, TYPE_U8, 4)
        assert not constant.untyped

    def test_untyped_adopts_declared_type(self):
        unit = lower_ok("fn start() { let a: u8 = 200 }")
        assert statements(unit)[0].initializer.resolved_type == TYPE_U8

    def test_literal_out_of_range(self):
        errors = errors_of("fn start() { let a: u8 = 256 }")
        assert len(errors) == 1
        assert isinstance(errors[0], LiteralRangeError)
        assert errors[0].message == "literal 256 does not fit in 'u8' (range is 0..255)"

    def test_negative_into_unsigned(self):
        errors = errors_of("fn start() { let a: u16 = -1 }")
        assert isinstance(errors[0], LiteralRangeError)

    def test_binary_wider_than_target(self):
        """A 12-bit binary literal does not fit a u8 even though its value does."""
        errors = errors_of("fn start() { let m: u8 = 0b000000001111 }")
        assert isinstance(errors[0], LiteralRangeError)
        assert "12-bit binary literal" in errors[0].message

    def test_macro_range_checked_at_use(self):
        errors = errors_of("macro BIG = 300\nfn start() { let a: u8 = BIG }")
        assert errors[0].message.startswith("literal BIG (300) does not fit in 'u8'")

    def test_constant_division_by_zero(self):
        errors = errors_of("fn start() -> i32 { return 1 / 0 }")
        assert isinstance(errors[0], SemanticError)
        assert "division by zero" in errors[0].message

    def test_c_division_semantics(self):
        """Constant division truncates toward zero."""
        unit = lower_ok("fn start() -> i32 { return -7 / 2 }")
        assert statements(unit)[0].value.constant.value == -3

    def test_typed_fold_wraps(self):
        unit = lower_ok("fn start() -> u8 { return 0xFF + 0x01 }")
        assert statements(unit)[0].value.constant.value == 0


# =============================================================================
# Arithmetic Types
# =============================================================================

class TestArithmeticTypes:
    """Result types of binary operators on variables."""

    def test_untyped_operand_adopts_other_type(self):
        types = let_types("fn start() { let a: u8 = 1\nlet b = a + 1 }")
        assert types["b"] == TYPE_U8

    def test_wider_operand_wins(self):
        types = let_types("fn start() { let a: u8 = 1\nlet c: u16 = 2\nlet d = a + c }")
        assert types["d"] == TYPE_U16

    def test_shift_takes_left_type(self):
        types = let_types("fn start() { let a: u8 = 1\nlet c: u16 = 2\nlet s = a << c }")
        assert types["s"] == TYPE_U8

    def test_comparison_is_bool(self):
        types = let_types("fn start() { let a: u8 = 1\nlet t = a < 3 }")
        assert types["t"] == TYPE_BOOL

    def test_bool_arithmetic_rejected(self):
        errors = errors_of("fn start() { let a = true + 1 }")
        assert isinstance(errors[0], RockTypeError)


# =============================================================================
# Calls and Default Parameters
# =============================================================================

class TestCalls:
    """Call binding, arity and defaults."""

    SOURCE = """
    fn f(a: u8, b: bool = true, c: u8 = 3) -> u8 { return a }
    fn start() {
        f(1)
        f(1, false)
        f(1, false, 9)
    }
    """

    def calls(self) -> list:
        unit = lower_ok(self.SOURCE)
        return [s.expression for s in statements(unit) if isinstance(s, ExpressionStatement)]

    def test_defaults_filled(self):
        """Missing trailing arguments are replaced by the parameter defaults."""
        first, second, third = self.calls()
        assert [a.constant.value for a in first.resolved_arguments] == [1, True, 3]
        assert [a.constant.value for a in second.resolved_arguments] == [1, False, 3]
        assert [a.constant.value for a in third.resolved_arguments] == [1, False, 9]

    def test_defaults_are_copies(self):
        """Each call site gets its own copy of the default expression."""
        first, second, _ = self.calls()
        assert first.resolved_arguments[2] is not second.resolved_arguments[2]

    def test_written_arguments_unchanged(self):
        first, _, _ = self.calls()
        assert len(first.arguments) == 1

    def test_callee_and_symbol(self):
        first, _, _ = self.calls()
        assert first.callee.name == "f"
        assert first.symbol == "f"
        assert first.builtin is None

    def test_too_few_arguments(self):
        errors = errors_of("fn f(a: u8, b: u8 = 1) { }\nfn start() { f() }")
        assert isinstance(errors[0], ArityError)
        assert errors[0].message == "'f' expects 1 to 2 arguments, got 0"

    def test_too_many_arguments(self):
        errors = errors_of("fn f(a: u8) { }\nfn start() { f(1, 2) }")
        assert errors[0].message == "'f' expects 1 argument, got 2"

    def test_argument_type_checked(self):
        errors = errors_of('fn f(a: u8) { }\nfn start() { f("x") }')
        assert isinstance(errors[0], RockTypeError)
        assert errors[0].hint == "expected 'u8', got 'str'"

    def test_non_constant_default(self):
        errors = errors_of("fn g() -> u8 { return 1 }\nfn f(a: u8 = g()) { }\nfn start() { }")
        assert isinstance(errors[0], NonConstantDefaultError)
        assert errors[0].message == "default value of 'a' in 'f' is not a constant"

    def test_macro_default(self):
        unit = lower_ok("macro D = 7\nfn f(a: u8 = D) { }\nfn start() { f() }")
        call = statements(unit)[0].expression
        assert call.resolved_arguments[0].constant.value == 7

    def test_undeclared_function(self):
        errors = errors_of("fn toggle() { }\nfn start() { togle() }")
        assert isinstance(errors[0], UndeclaredIdentifierError)
        assert errors[0].hint == "did you mean 'toggle'?"

    def test_builtins(self):
        unit = lower_ok("fn start() { let p = alloc(4)\nfree(p)\nprint(1)\nlog(true) }")
        alloc_let, free_call, print_call, log_call = statements(unit)
        assert alloc_let.resolved_type.is_reference
        assert free_call.expression.builtin == "free"
        assert print_call.expression.builtin == "print"
        assert log_call.expression.builtin == "log"

    def test_user_function_replaces_builtin(self):
        unit = lower_ok("fn print(x: u8) { }\nfn start() { print(1) }")
        call = statements(unit)[0].expression
        assert call.builtin is None
        assert call.callee.name == "print"
        assert call.symbol == "print"

    def test_print_struct_rejected(self):
        errors = errors_of("struct P { x: u8 }\nfn start() { let p: P\nprint(p) }")
        assert "cannot output" in errors[0].message

    def test_entry_with_required_parameter(self):
        errors = errors_of("fn start(a: u8) { }")
        assert "entry function 'start'" in errors[0].message

    def test_entry_with_default_parameter(self):
        lower_ok("fn start(a: u8 = 1) -> u8 { return a }")


# =============================================================================
# Statements
# =============================================================================

class TestStatements:
    """Statement-level checks."""

    def test_break_outside_loop(self):
        errors = errors_of("fn start() { break }")
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidBreakContinueError)
        assert errors[0].message == "'break' statement not within a loop"

    def test_continue_inside_loops(self):
        lower_ok("fn start() { loop { break }\nwhile true { continue }\nfor i in 0..3 { continue } }")

    def test_break_in_if_inside_loop(self):
        lower_ok("fn start() { loop { if true { break } } }")

    def test_bit_index_on_string(self):
        errors = errors_of('fn start() { let s = "hi"\ns[0] = 1 }')
        assert isinstance(errors[0], InvalidBitIndexTargetError)
        assert errors[0].message == "cannot set a bit of 's' of type 'str'"

    def test_bit_index_out_of_range(self):
        errors = errors_of("fn start() { let x: u8 = 0\nx[8] = 1 }")
        assert isinstance(errors[0], LiteralRangeError)
        assert "bit index must be below 8" in errors[0].message

    def test_bit_index_on_integer(self):
        lower_ok("fn start() { let x: u16 = 0\nx[15] = 1\nx[3] = true }")

    def test_assign_to_call(self):
        errors = errors_of("fn g() -> u8 { return 1 }\nfn start() { g() = 2 }")
        assert isinstance(errors[0], InvalidAssignmentTargetError)

    def test_undeclared_variable(self):
        errors = errors_of("fn start() { let led = 1\nledd = 2 }")
        assert isinstance(errors[0], UndeclaredIdentifierError)
        assert errors[0].message == "undeclared identifier 'ledd'"
        assert errors[0].hint == "did you mean 'led'?"

    def test_variable_out_of_scope(self):
        errors = errors_of("fn start() { { let a = 1 }\na = 2 }")
        assert isinstance(errors[0], UndeclaredIdentifierError)

    def test_shadowing_allowed(self):
        types = let_types('fn start() { let a = 1\nlet a = "x" }')
        assert str(types["a"]) == "str"

    def test_let_without_type_or_value(self):
        errors = errors_of("fn start() { let a }")
        assert "cannot infer the type of 'a'" in errors[0].message

    def test_return_type_checked(self):
        errors = errors_of('fn start() -> u8 { return "x" }')
        assert isinstance(errors[0], RockTypeError)

    def test_missing_return_value(self):
        errors = errors_of("fn start() -> u8 { return }")
        assert "must return a value of type 'u8'" in errors[0].message

    def test_condition_must_be_bool(self):
        errors = errors_of('fn start() { if "x" { } }')
        assert errors[0].message == "condition must be a bool"

    def test_assert_equality_types(self):
        errors = errors_of('fn start() { assert 1 = "one" }')
        assert "cannot compare" in errors[0].message

    def test_compound_division_by_zero(self):
        errors = errors_of("fn start() { let a: u8 = 4\na /= 0 }")
        assert errors[0].message == "division by zero"

    def test_interrupt_range(self):
        errors = errors_of("fn start() { @4294967296 }")
        assert isinstance(errors[0], LiteralRangeError)


# =============================================================================
# For-Range Counters
# =============================================================================

class TestForRange:
    """Counter types of for-range loops."""

    def counter(self, source: str):
        unit = lower_ok(source)
        loop = [s for s in statements(unit) if isinstance(s, ForRangeStatement)][0]
        return loop.counter_type

    def test_untyped_bounds(self):
        assert self.counter("fn start() { for i in 0..10 { } }") == TYPE_I32

    def test_typed_bound_wins(self):
        assert self.counter("fn start() { let n: u8 = 5\nfor i in 0..n { } }") == TYPE_U8

    def test_common_type_of_typed_bounds(self):
        source = "fn start() { let a: u8 = 0\nlet b: u16 = 5\nfor i in a..=b { } }"
        assert self.counter(source) == TYPE_U16

    def test_literal_must_fit_counter(self):
        errors = errors_of("fn start() { let n: u8 = 5\nfor i in n..300 { } }")
        assert isinstance(errors[0], LiteralRangeError)

    def test_counter_visible_in_body_only(self):
        errors = errors_of("fn start() { for i in 0..3 { }\nlet x = i }")
        assert isinstance(errors[0], UndeclaredIdentifierError)


# =============================================================================
# Structs, Enums and Methods
# =============================================================================

class TestTypes:
    """User-defined types."""

    SHAPES = """
    struct Point { x: i32, y: i32 }
    enum Color { Red, Green = 5, Blue }
    impl Point {
        fn shift(&self, dx: i32 = 1) { self.x += dx }
        fn origin() -> Point { let p: Point; return p }
    }
    """

    def test_enum_values(self):
        unit = lower_ok(self.SHAPES + "fn start() { }")
        color = function(unit, "Color")
        assert [v.resolved_value for v in color.variants] == [0, 5, 6]

    def test_enum_variant_constant(self):
        unit = lower_ok(self.SHAPES + "fn start() -> i32 { let c = Color::Blue\nreturn 0 }")
        let = statements(unit)[0]
        assert let.initializer.constant.value == 6
        assert let.resolved_type.name == "Color"

    def test_unknown_variant(self):
        errors = errors_of(self.SHAPES + "fn start() { let c = Color::Purple }")
        assert isinstance(errors[0], UnknownMemberError)
        assert errors[0].message == "'Color' has no variant 'Purple'"

    def test_field_types(self):
        unit = lower_ok(self.SHAPES + "fn start() { let p: Point\nlet x = p.x }")
        assert statements(unit)[1].resolved_type == TYPE_I32

    def test_unknown_field(self):
        errors = errors_of(self.SHAPES + "fn start() { let p: Point\np.z = 1 }")
        assert isinstance(errors[0], UnknownMemberError)
        assert errors[0].message == "'Point' has no field 'z'"

    def test_method_call_binding(self):
        unit = lower_ok(self.SHAPES + "fn start() { let p: Point\np.shift() }")
        call = statements(unit)[1].expression
        assert isinstance(call, CallExpression)
        assert call.symbol == "Point_shift"
        assert not call.receiver_is_reference
        assert call.resolved_arguments[0].constant.value == 1

    def test_method_on_reference_receiver(self):
        unit = lower_ok(self.SHAPES + "fn start() { let p: Point\nlet r = &p\nr.shift(2) }")
        assert statements(unit)[2].expression.receiver_is_reference

    def test_static_call(self):
        unit = lower_ok(self.SHAPES + "fn start() { let p = Point::origin() }")
        let = statements(unit)[0]
        assert let.initializer.symbol == "Point_origin"
        assert let.resolved_type.name == "Point"

    def test_static_method_called_on_value(self):
        errors = errors_of(self.SHAPES + "fn start() { let p: Point\np.origin() }")
        assert "takes no self" in errors[0].message

    def test_unknown_type(self):
        errors = errors_of("fn start() { let p: Nowhere }")
        assert errors[0].message == "unknown type 'Nowhere'"

    def test_recursive_struct(self):
        errors = errors_of("struct Node { next: Node }\nfn start() { }")
        assert "cannot contain itself" in errors[0].message

    def test_duplicate_function(self):
        errors = errors_of("fn f() { }\nfn f() { }\nfn start() { }")
        assert isinstance(errors[0], DuplicateDeclarationError)
        assert errors[0].message == "redeclaration of 'f'"

    def test_duplicate_method(self):
        errors = errors_of("struct P { x: u8 }\nimpl P { fn f() { }\nfn f() { } }\nfn start() { }")
        assert errors[0].message == "redeclaration of 'P::f'"

    def test_mutually_contained_structs(self):
        errors = errors_of("struct A { b: B }\nstruct B { a: A }\nfn start() { }")
        assert len(errors) == 1
        assert isinstance(errors[0], RockTypeError)
        assert errors[0].message == "structs contain each other by value (A -> B -> A); use a reference"
        assert errors[0].location.line == 2

    def test_longer_containment_cycle(self):
        source = "struct A { b: B }\nstruct B { c: C }\nstruct C { a: A }\nfn start() { }"
        errors = errors_of(source)
        assert [e.message for e in errors] == [
            "structs contain each other by value (A -> B -> C -> A); use a reference",
        ]

    def test_containment_through_reference_allowed(self):
        lower_ok("struct A { b: B }\nstruct B { a: &A }\nfn start() { }")

    def test_shared_field_type_is_not_a_cycle(self):
        lower_ok("struct P { x: u8 }\nstruct L { a: P\nb: P }\nstruct M { l: L\np: P }\nfn start() { }")


# =============================================================================
# Generated C Names
# =============================================================================

class TestGeneratedNames:
    """Declarations that would share a name at C file scope."""

    def test_struct_and_function(self):
        errors = errors_of("struct P { x: u8 }\nfn P() { }\nfn start() { }")
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateDeclarationError)
        assert errors[0].message == "'P' clashes with 'P': both are named 'P' in C"
        assert errors[0].location.line == 2
        assert errors[0].hint == "'P' was first declared at test.rock:1:1"

    def test_enum_constant_and_function(self):
        errors = errors_of("enum C { R }\nfn C_R() { }\nfn start() { }")
        assert len(errors) == 1
        assert errors[0].message == "'C_R' clashes with 'C::R': both are named 'C_R' in C"

    def test_method_and_function(self):
        source = """
        struct P { x: u8 }
        impl P { fn get(&self) -> u8 { return self.x } }
        fn P_get() { }
        fn start() { }
        """
        errors = errors_of(source)
        assert len(errors) == 1
        assert errors[0].message == "'P_get' clashes with 'P::get': both are named 'P_get' in C"

    def test_function_declared_before_method(self):
        source = "fn P_get() { }\nstruct P { x: u8 }\nimpl P { fn get() { } }\nfn start() { }"
        errors = errors_of(source)
        assert [e.message for e in errors] == [
            "'P::get' clashes with 'P_get': both are named 'P_get' in C",
        ]

    def test_type_redeclaration_reported_once(self):
        errors = errors_of("struct S { x: u8 }\nenum S { A }\nfn start() { }")
        assert [e.message for e in errors] == ["redeclaration of 'S'"]

    def test_compound_name_reserved(self):
        errors = errors_of("enum bl { rt_x }\nfn start() { }")
        assert len(errors) == 1
        assert isinstance(errors[0], SemanticError)
        assert errors[0].message == "'bl::rt_x' would be named 'bl_rt_x' in C, which is reserved"

    def test_local_may_reuse_function_name(self):
        """Locals are renamed by the code generator, so they never clash."""
        lower_ok("fn f() -> i32 { return 3 }\nfn start() -> i32 { let f = 2\nreturn f + f() }")

    def test_distinct_names_accepted(self):
        lower_ok("struct P { x: u8 }\nimpl P { fn get() { } }\nenum C { R }\nfn get() { }\nfn R() { }\nfn start() { }")


# =============================================================================
# Return Paths
# =============================================================================

class TestReturnPaths:
    """A function with a return type must return on every path."""

    def test_falls_off_end(self):
        errors = errors_of("fn f() -> i32 { let a: i32 = 1 }\nfn start() { }")
        assert len(errors) == 1
        assert isinstance(errors[0], RockTypeError)
        assert errors[0].message == "'f' can reach its end without returning a value of type 'i32'"
        assert errors[0].location.line == 1

    def test_empty_body(self):
        errors = errors_of("fn f() -> u8 { }\nfn start() { }")
        assert "can reach its end" in errors[0].message

    def test_if_without_else(self):
        errors = errors_of("fn f(a: u8) -> u8 { if a == 0 { return 1 } }\nfn start() { }")
        assert "can reach its end" in errors[0].message

    def test_one_branch_returns(self):
        source = "fn f(a: u8) -> u8 { if a == 0 { return 1 } else { let b = a } }\nfn start() { }"
        assert "can reach its end" in errors_of(source)[0].message

    def test_loop_with_break(self):
        errors = errors_of("fn f() -> u8 { loop { break } }\nfn start() { }")
        assert "can reach its end" in errors[0].message

    def test_while_with_condition(self):
        errors = errors_of("fn f(a: bool) -> u8 { while a { return 1 } }\nfn start() { }")
        assert "can reach its end" in errors[0].message

    def test_method_named_in_message(self):
        errors = errors_of("struct P { x: u8 }\nimpl P { fn get(&self) -> u8 { } }\nfn start() { }")
        assert errors[0].message == "'P::get' can reach its end without returning a value of type 'u8'"

    @pytest.mark.parametrize("body", [
        "return 1",
        "if a == 0 { return 1 } else { return 2 }",
        "if a == 0 { return 1 } else if a == 1 { return 2 } else { ? \"no\" }",
        "? 3",
        "loop { }",
        "loop { if a == 0 { return 1 } }",
        "loop { for i in 0..3 { break } }",
        "while true { }",
        "let b = a\nreturn b",
        "{ return 1 }",
    ])
    def test_every_path_ends(self, body):
        lower_ok(f"fn f(a: u8) -> u8 {{ {body} }}\nfn start() {{ }}")

    def test_unit_function_may_fall_off(self):
        lower_ok("fn f(a: u8) { if a == 0 { return } }\nfn start() { }")


# =============================================================================
# References
# =============================================================================

class TestReferences:
    """Reference types and copies."""

    def test_reference_and_copy(self):
        """'&x' yields a reference; reading a reference variable copies the value."""
        types = let_types("fn start() { let x: u8 = 1\nlet r = &x\nlet y = r }")
        assert types["r"] == TYPE_U8.reference()
        assert types["y"] == TYPE_U8

    def test_reference_parameter_accepts_reference(self):
        lower_ok("fn bump(v: &u8) { v += 1 }\nfn start() { let x: u8 = 1\nbump(&x) }")

    def test_reference_parameter_rejects_value(self):
        errors = errors_of("fn bump(v: &u8) { }\nfn start() { let x: u8 = 1\nbump(x) }")
        assert errors[0].hint == "expected '&u8', got 'u8'"

    def test_reference_to_temporary(self):
        errors = errors_of("fn start() { let r = &3 }")
        assert "temporary" in errors[0].message


# =============================================================================
# Error Accumulation and Naming
# =============================================================================

class TestAccumulation:
    """Lowering reports every problem in one run."""

    def test_errors_across_functions(self):
        source = """
        fn a() { break }
        fn b() { let x: u8 = 999 }
        fn start() { undefined_name = 1 }
        """
        errors = errors_of(source)
        assert [type(e) for e in errors] == [
            InvalidBreakContinueError, LiteralRangeError, UndeclaredIdentifierError,
        ]

    def test_errors_carry_source_line(self):
        errors = errors_of("fn start() {\n    break\n}")
        text = str(errors[0])
        assert text.splitlines()[0] == "test.rock:2:5: error: 'break' statement not within a loop"
        assert text.splitlines()[1] == "        break"

    def test_max_errors(self):
        source = "fn start() {\n" + "break\n" * 10 + "}"
        program = parse_source(source, "t.rock")
        unit = CompilationUnit("t.rock", declarations=list(program.declarations))
        collector = ErrorCollector(max_errors=4)
        SemanticLowering(collector).lower(unit)
        assert collector.error_count() == 4
        with pytest.raises(RockCompilationError) as exc_info:
            collector.raise_if_errors()
        assert "stopped after reaching the error limit" in str(exc_info.value)

    def test_reserved_names_mangled(self):
        unit = lower_ok("fn int() { }\nfn bl_rt_x() { }\nfn start() { int()\nbl_rt_x() }")
        first, second = [s.expression for s in statements(unit)]
        assert first.symbol == "rock_int"
        assert second.symbol == "rock_bl_rt_x"
        assert function_symbol(function(unit, "start")) == "start"
