# =============================================================================
# test_interpreter.py - Rock Interpreter Tests
# =============================================================================
# Tests for running lowered programs without a C compiler.
#
# Test coverage includes:
#   - Default parameters filled in at every call site
#   - Range loop iteration counts (including ranges ending at the type
#     maximum), while/loop with break and continue
#   - Bit-index reads and read-modify-write stores
#   - Integer wrapping, C division semantics and the division-by-zero panic
#   - References, struct copies and methods mutating through self
#   - The panic pipeline under each feature combination
#   - Step, depth and entry point checks
# =============================================================================

import pytest

from boulder.rockc.compiler import RockCompiler
from boulder.rockc.config import CompilerOptions, FeatureToggles
from boulder.rockc.errors import RockRuntimeError
from boulder.rockc.interpreter import Interpreter, format_value, run_unit
from boulder.rockc.resolver import InMemoryLoader


# =============================================================================
# Helper Functions
# =============================================================================

def lowered(source: str, features=None):
    """Compile a single-file program and return its lowered unit."""
    options = CompilerOptions(features=features or FeatureToggles())
    result = RockCompiler(options).compile_source(source, "main.rock", InMemoryLoader({}))
    return result.unit


def run(source: str, features=None, **kwargs):
    """Compile and interpret a program; returns the ExecutionResult."""
    features = features or FeatureToggles()
    return Interpreter(lowered(source, features), features, **kwargs).run()


OFF = FeatureToggles(logging=False, printing=False, heap_allocator=False)


# =============================================================================
# Default Parameters
# =============================================================================

class TestDefaultParameters:
    """Every combination of written and defaulted arguments."""

    ROUTE = """
    fn route(n: u8 = 0, flag: bool = true) -> u8 {
        if n == 0 && flag { return 1 }
        if n == 0 && !flag { return 2 }
        if n != 0 && flag { return 3 }
        return 4
    }
    """

    @pytest.mark.parametrize("args, branch", [
        ("", 1),
        ("0", 1),
        ("0, true", 1),
        ("0, false", 2),
        ("5, true", 3),
        ("5, false", 4),
        ("5", 3),
    ])
    def test_truth_table(self, args, branch):
        """A missing argument behaves exactly like its default written out."""
        result = run(self.ROUTE + f"fn start() -> u8 {{ return route({args}) }}")
        assert result.exit_value == branch

    def test_entry_defaults(self):
        """start() itself may take defaulted parameters."""
        assert run("fn start(a: u8 = 3) -> u8 { return a }").exit_value == 3

    def test_method_default(self):
        source = """
        struct Counter { n: u8 }
        impl Counter { fn inc(&self, by: u8 = 1) { self.n += by } }
        fn start() -> u8 {
            let c: Counter
            c.inc()
            c.inc(5)
            return c.n
        }
        """
        assert run(source).exit_value == 6


# =============================================================================
# Loops
# =============================================================================

class TestLoops:
    """Iteration counts and loop control."""

    def test_exclusive_range_count(self):
        source = "fn start() -> i32 { let count = 0\nfor i in 0..10 { count += 1 }\nreturn count }"
        assert run(source).exit_value == 10

    def test_inclusive_range_count(self):
        source = "fn start() -> i32 { let count = 0\nfor i in 0..=10 { count += 1 }\nreturn count }"
        assert run(source).exit_value == 11

    def test_counter_values(self):
        result = run("fn start() { for i in 0..3 { print(i) } }")
        assert result.output == ["0", "1", "2"]

    def test_empty_range(self):
        result = run("fn start() { for i in 5..5 { print(i) } }")
        assert result.output == []

    def test_inclusive_range_at_type_maximum(self):
        """A range ending at 255 stops there instead of wrapping a u8 counter."""
        source = """
        fn start() -> i32 {
            let n: u8 = 255
            let count = 0
            for i in 250..=n { count += 1 }
            return count
        }
        """
        assert run(source, max_steps=1000).exit_value == 6

    def test_inclusive_range_last_values(self):
        result = run("fn start() { let n: i8 = 127\nfor i in 125..=n { print(i) } }")
        assert result.output == ["125", "126", "127"]

    def test_inclusive_range_continue(self):
        source = """
        fn start() {
            let n: u8 = 255
            for i in 252..=n {
                if i == 253 { continue }
                print(i)
            }
        }
        """
        assert run(source, max_steps=1000).output == ["252", "254", "255"]

    def test_empty_inclusive_range(self):
        assert run("fn start() { for i in 3..=2 { print(i) } }").output == []

    def test_while_break_continue(self):
        """Sum of the odd numbers up to 10."""
        source = """
        fn start() -> i32 {
            let n = 0
            let total = 0
            while true {
                n += 1
                if n > 10 { break }
                if n % 2 == 0 { continue }
                total += n
            }
            return total
        }
        """
        assert run(source).exit_value == 25

    def test_loop_break(self):
        source = "fn start() -> u8 { let n: u8 = 0\nloop { n += 1\nif n == 4 { break } }\nreturn n }"
        assert run(source).exit_value == 4


# =============================================================================
# Bit Indexing
# =============================================================================

class TestBitIndex:
    """Bit 0 is the least significant bit."""

    def test_set_bit_four(self):
        """Setting bit 4 of 0b1111 gives 0b11111."""
        source = "fn start() -> u16 { let mask = 0b000000001111\nmask[4] = 0b1\nreturn mask }"
        assert run(source).exit_value == 31

    def test_clear_bit(self):
        source = "fn start() -> u8 { let x: u8 = 0xFF\nx[0] = 0\nreturn x }"
        assert run(source).exit_value == 254

    def test_bool_bit_value(self):
        source = "fn start() -> u8 { let x: u8 = 0\nx[7] = true\nreturn x }"
        assert run(source).exit_value == 128

    def test_read_bit(self):
        source = "fn start() -> u8 { let x: u8 = 0b00001000\nlet i: u8 = 3\nreturn x[i] }"
        assert run(source).exit_value == 1

    def test_variable_index_out_of_range(self):
        source = "fn start() { let x: u8 = 0\nlet i: u8 = 9\nx[i] = 1 }"
        with pytest.raises(RockRuntimeError, match="bit index 9 out of range"):
            run(source)

    def test_string_index(self):
        assert run('fn start() -> u8 { let s = "AB"\nreturn s[1] }').exit_value == 66


# =============================================================================
# Integer Arithmetic
# =============================================================================

class TestArithmetic:
    """Stores and arithmetic wrap like the generated C."""

    def test_compound_wraps(self):
        source = "fn start() -> u8 { let a: u8 = 250\na += 10\nreturn a }"
        assert run(source).exit_value == 4

    def test_narrow_arithmetic_wraps(self):
        source = "fn start() -> u8 { let a: u8 = 200\nlet b = a + 100\nreturn b }"
        assert run(source).exit_value == 44

    def test_signed_overflow(self):
        source = "fn start() -> i32 { let c: i8 = 127\nc += 1\nreturn c }"
        result = run(source)
        assert result.exit_value == -128
        assert result.exit_status == 128

    def test_division_truncates(self):
        source = "fn start() -> i32 { let a: i32 = -7\nreturn a / 2 }"
        assert run(source).exit_value == -3

    def test_runtime_division_by_zero(self):
        """A zero divisor goes through the panic pipeline, like bl_rt_divisor."""
        source = 'fn start() -> i32 { let z: i32 = 0\nprint("before")\nreturn 1 / z }'
        result = run(source)
        assert result.panicked
        assert result.panic_payload == "division by zero"
        assert result.exit_status == 101
        assert result.output == ["before", "panic: division by zero"]

    def test_runtime_remainder_by_zero_assignment(self):
        source = "fn start() -> u8 { let a: u8 = 7\nlet z: u8 = 0\na %= z\nreturn a }"
        result = run(source, OFF)
        assert result.panic_payload == "division by zero"
        assert result.exit_status == 101

    def test_short_circuit(self):
        """The right operand of '&&' is not evaluated when the left is false."""
        source = 'fn boom() -> bool { ? "evaluated" }\nfn start() { if false && boom() { } }'
        assert not run(source).panicked

    def test_local_named_like_function(self):
        source = "fn f() -> i32 { return 3 }\nfn start() -> i32 { let f = 2\nreturn f + f() }"
        assert run(source).exit_value == 5


# =============================================================================
# References and Structs
# =============================================================================

class TestReferences:
    """References share storage; struct values are copied."""

    def test_reference_parameter(self):
        source = """
        fn bump(v: &u8) { v += 1 }
        fn start() -> u8 {
            let x: u8 = 1
            bump(&x)
            bump(&x)
            return x
        }
        """
        assert run(source).exit_value == 3

    def test_rebinding(self):
        """Assigning a reference to a reference rebinds; a value writes through."""
        source = """
        fn start() -> u8 {
            let a: u8 = 1
            let b: u8 = 2
            let r = &a
            r = &b
            r = 5
            return a + b
        }
        """
        assert run(source).exit_value == 6

    def test_struct_copy(self):
        source = """
        struct P { x: u8 }
        fn start() -> u8 {
            let a: P
            a.x = 1
            let b = a
            b.x = 9
            return a.x
        }
        """
        assert run(source).exit_value == 1

    def test_heap_block(self):
        source = "fn start() -> u8 { let p = alloc(1)\np = 42\nlet v = p\nfree(p)\nreturn v }"
        assert run(source).exit_value == 42

    def test_heap_disabled(self):
        """Without the allocator alloc() yields a null reference."""
        source = "fn start() { let p = alloc(1)\np = 42 }"
        features = FeatureToggles(heap_allocator=False)
        with pytest.raises(RockRuntimeError, match="null reference"):
            run(source, features)


# =============================================================================
# Output, Interrupts and Panics
# =============================================================================

class TestRuntimeFacilities:
    """print, log, interrupts and the panic pipeline."""

    def test_print_and_log(self):
        result = run('fn start() { print("hi")\nprint(true)\nlog(7) }')
        assert result.output == ["hi", "true"]
        assert result.log == ["7"]

    def test_output_disabled(self):
        result = run('fn start() { print("hi")\nlog(7) }', OFF)
        assert result.output == []
        assert result.log == []

    def test_interrupts(self):
        seen = []
        result = run("fn start() { @3\n@7 }", interrupt_hook=seen.append)
        assert result.interrupts == [3, 7]
        assert seen == [3, 7]

    def test_string_panic(self):
        result = run('fn start() { ? "boom"\nprint("after") }')
        assert result.panicked
        assert result.panic_payload == "boom"
        assert result.exit_status == 101
        assert result.output == ["panic: boom"]
        assert result.log == ["panic: boom"]

    def test_integer_panic_status(self):
        """An integer payload becomes the exit status, truncated to a byte."""
        result = run("fn start() { ? 300 }")
        assert result.panic_payload == 300
        assert result.exit_status == 44

    def test_panic_with_everything_disabled(self):
        """The pipeline still stops the program when every sink is gone."""
        result = run('fn start() { ? "boom"\nprint("after") }', OFF)
        assert result.panicked
        assert result.exit_status == 101
        assert result.output == []

    def test_panic_in_callee(self):
        source = "fn fail() { ? 9 }\nfn start() -> u8 { fail()\nreturn 1 }"
        result = run(source)
        assert result.panicked
        assert result.exit_status == 9

    def test_failed_assert(self):
        result = run("fn start() {\n    assert 1 = 2\n}")
        assert result.panicked
        assert result.panic_payload == "assertion failed at main.rock:2"
        assert result.exit_status == 101

    def test_passing_assert(self):
        result = run("fn start() { let a: u8 = 1\nassert a = 1\nassert a == 1 }")
        assert not result.panicked

    def test_unit_exit_status(self):
        assert run("fn start() { }").exit_status == 0

    def test_format_value(self):
        assert format_value(True) == "true"
        assert format_value(-3) == "-3"


# =============================================================================
# Limits and Entry Point
# =============================================================================

class TestLimits:
    """Runaway programs are stopped."""

    def test_step_limit(self):
        with pytest.raises(RockRuntimeError, match="step limit of 50 statements exceeded"):
            run("fn start() { loop { } }", max_steps=50)

    def test_depth_limit(self):
        with pytest.raises(RockRuntimeError, match="call depth exceeded 10"):
            run("fn f() { f() }\nfn start() { f() }", max_depth=10)

    def test_missing_entry(self):
        unit = lowered("fn helper() { }")
        with pytest.raises(RockRuntimeError, match="entry function 'start' is not defined"):
            Interpreter(unit).run()

    def test_other_entry(self):
        unit = lowered("fn other() -> u8 { return 5 }\nfn start() { }")
        assert Interpreter(unit).run("other").exit_value == 5

    def test_run_unit(self):
        assert run_unit(lowered("fn start() -> u8 { return 2 }")).exit_status == 2

    def test_runs_are_independent(self):
        unit = lowered('fn start() { print("x") }')
        interpreter = Interpreter(unit)
        interpreter.run()
        assert interpreter.run().output == ["x"]
