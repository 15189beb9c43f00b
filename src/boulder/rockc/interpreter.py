"""
Rock Interpreter
================

This module executes a lowered CompilationUnit directly, without going
through a C compiler. It is used by 'rockc --run' and by the test suite to
check what a program does, and it follows the generated C closely:

- Integer stores wrap to the declared type (two's complement)
- Arithmetic on sub-32-bit types wraps to the operand type, as the
  generated casts do
- Division and remainder truncate toward zero; a zero divisor panics with
  "division by zero", as bl_rt_divisor does in the generated C
- An inclusive range stops on its last value, so 'for i in 250..=n' with
  n: u8 = 255 runs six times
- '&&' and '||' short-circuit
- References are Cell objects; reading a reference dereferences it
- Structs are dictionaries of field cells, copied on assignment
- print() and log() append lines to the result instead of writing
- A panic runs the same pipeline as the C runtime: release the heap, log
  the payload, print the payload, stop with the payload status. Steps
  whose feature is disabled are skipped.

Usage:
    result = Interpreter(unit, FeatureToggles()).run()
    print(result.output, result.exit_status)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional
import logging

from boulder.rockc.ast import (
    ASTVisitor,
    AssertStatement,
    AssignmentOperator,
    AssignStatement,
    BinaryExpression,
    BinaryOperator,
    BlockStatement,
    BreakStatement,
    CallExpression,
    ContinueStatement,
    Expression,
    ExpressionStatement,
    FieldAccessExpression,
    ForRangeStatement,
    FunctionNode,
    IdentifierExpression,
    IfStatement,
    IndexAssignStatement,
    IndexExpression,
    InterruptStatement,
    LetStatement,
    LoopStatement,
    PanicStatement,
    ReturnStatement,
    StructDeclaration,
    UnaryExpression,
    UnaryOperator,
    WhileStatement,
)
from boulder.rockc.config import FeatureToggles
from boulder.rockc.errors import RockRuntimeError
from boulder.rockc.lowering import COMPOUND_OPERATORS
from boulder.rockc.resolver import CompilationUnit
from boulder.rockc.runtime import DIVISION_BY_ZERO, PANIC_STATUS_STR
from boulder.rockc.types import RockType, c_divide, c_remainder, wrap_integer

logger = logging.getLogger(__name__)


# =============================================================================
# Runtime Values
# =============================================================================

class Cell:
    """A storage location; references are Cells held in other Cells."""

    __slots__ = ("value",)

    def __init__(self, value: Any = None):
        self.value = value

    def __repr__(self) -> str:
        return f"Cell({self.value!r})"


@dataclass
class StructValue:
    """
    A struct instance.

    Attributes:
        type_name: Struct name
        fields: Field name -> storage cell
    """
    type_name: str
    fields: dict[str, Cell] = field(default_factory=dict)

    def copy(self) -> "StructValue":
        """Value copy: nested structs are copied, references keep their target."""
        return StructValue(
            self.type_name,
            {name: Cell(copy_value(cell.value)) for name, cell in self.fields.items()},
        )


def copy_value(value: Any) -> Any:
    if isinstance(value, StructValue):
        return value.copy()
    return value


@dataclass
class ExecutionResult:
    """
    Outcome of running a program.

    Attributes:
        exit_value: Value returned by the entry function (None for unit)
        output: Lines written by print()
        log: Lines written by log()
        interrupts: Interrupt numbers raised with '@N', in order
        panicked: True if the program panicked (including failed asserts)
        panic_payload: The panic payload
    """
    exit_value: Any = None
    output: list[str] = field(default_factory=list)
    log: list[str] = field(default_factory=list)
    interrupts: list[int] = field(default_factory=list)
    panicked: bool = False
    panic_payload: Any = None

    @property
    def exit_status(self) -> int:
        """Process exit status the generated program would report."""
        if self.panicked:
            if isinstance(self.panic_payload, str):
                return PANIC_STATUS_STR
            return int(self.panic_payload) & 0xFF
        if isinstance(self.exit_value, (bool, int)):
            return int(self.exit_value) & 0xFF
        return 0


# Control flow signals
class _Panic(Exception):
    def __init__(self, payload: Any):
        super().__init__(payload)
        self.payload = payload


class _Return(Exception):
    def __init__(self, value: Any):
        super().__init__()
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


def format_value(value: Any) -> str:
    """Text print() and log() write for a scalar value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Interpreter
# =============================================================================

class Interpreter(ASTVisitor):
    """
    Tree-walking interpreter for lowered Rock programs.

    Attributes:
        unit: Lowered CompilationUnit (semantic lowering must have succeeded)
        features: Runtime facilities available to the program
        max_steps: Statements executed before the run is aborted
        max_depth: Maximum call depth
        interrupt_hook: Optional callable receiving each interrupt number
    """

    def __init__(
        self,
        unit: CompilationUnit,
        features: Optional[FeatureToggles] = None,
        max_steps: int = 1_000_000,
        max_depth: int = 64,
        interrupt_hook: Optional[Callable[[int], None]] = None,
    ):
        self.unit = unit
        self.features = features or FeatureToggles()
        self.max_steps = max_steps
        self.max_depth = max_depth
        self.interrupt_hook = interrupt_hook

        self._structs = {decl.name: decl for decl in unit.of_type(StructDeclaration)}

        # Per-run state
        self._result = ExecutionResult()
        self._heap: list[Cell] = []
        self._scopes: list[dict[str, Cell]] = []
        self._steps = 0
        self._depth = 0

    # =========================================================================
    # Entry Point
    # =========================================================================

    def run(self, entry: str = "start") -> ExecutionResult:
        """
        Run the program from its entry function.

        Args:
            entry: Name of a top-level function taking no required arguments

        Returns:
            ExecutionResult with output, interrupts and exit value

        Raises:
            RockRuntimeError: If the entry function does not exist, or the
                program exceeds the step or depth limits
        """
        function = next(
            (f for f in self.unit.of_type(FunctionNode) if f.name == entry), None,
        )
        if function is None:
            raise RockRuntimeError(f"entry function '{entry}' is not defined")
        if any(param.default is None for param in function.parameters):
            raise RockRuntimeError(f"entry function '{entry}' requires arguments")

        self._result = ExecutionResult()
        self._heap = []
        self._steps = 0
        self._depth = 0

        args = [self._argument(param.default, param.param_type) for param in function.parameters]
        try:
            self._result.exit_value = self._invoke(function, args)
            self._release_heap()
        except _Panic as panic:
            self._result.panicked = True
            self._result.panic_payload = panic.payload
        except RecursionError:
            raise RockRuntimeError(
                f"call depth exceeded the interpreter stack in '{entry}'", location=function.location,
            ) from None

        logger.debug(
            f"ran {entry}: {self._steps} statements, exit status {self._result.exit_status}"
        )
        return self._result

    # =========================================================================
    # Calls and Frames
    # =========================================================================

    def _invoke(self, function: FunctionNode, args: list[Any]) -> Any:
        if self._depth >= self.max_depth:
            raise RockRuntimeError(
                f"call depth exceeded {self.max_depth} in '{function.qualified_name}'",
                location=function.location,
            )

        saved_scopes = self._scopes
        self._scopes = [{
            param.name: Cell(value) for param, value in zip(function.parameters, args)
        }]
        self._depth += 1
        try:
            self._execute_block(function.body)
            value = None
        except _Return as ret:
            value = ret.value
        finally:
            self._depth -= 1
            self._scopes = saved_scopes

        return_type = function.return_type
        if return_type is None or return_type.is_unit:
            return None
        if value is None and not return_type.is_reference:
            return self._zero_value(return_type)
        return self._convert(value, return_type)

    def _lookup(self, name: str, node) -> Cell:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        raise RockRuntimeError(f"'{name}' is not defined", location=node.location)

    def _declare(self, name: str, value: Any) -> None:
        self._scopes[-1][name] = Cell(value)

    def _zero_value(self, rock_type: Optional[RockType]) -> Any:
        if rock_type is None or rock_type.is_reference:
            return None
        if rock_type.is_bool:
            return False
        if rock_type.is_str:
            return ""
        if rock_type.is_named:
            struct = self._structs.get(rock_type.name)
            if struct is None:
                return 0
            return StructValue(struct.name, {
                f.name: Cell(self._zero_value(f.field_type)) for f in struct.fields
            })
        return 0

    @staticmethod
    def _convert(value: Any, rock_type: Optional[RockType]) -> Any:
        """Apply the implicit conversion of a store to a slot of rock_type."""
        if rock_type is None or rock_type.is_reference:
            return value
        if rock_type.is_integer:
            return wrap_integer(int(value), rock_type)
        if rock_type.is_bool:
            return bool(value)
        return copy_value(value)

    def _argument(self, expr: Expression, param_type: Optional[RockType]) -> Any:
        if param_type is not None and param_type.is_reference:
            return self._pointer(expr)
        return self._convert(self._eval(expr), param_type)

    # =========================================================================
    # Statements
    # =========================================================================

    def _step(self, node) -> None:
        self._steps += 1
        if self._steps > self.max_steps:
            raise RockRuntimeError(
                f"step limit of {self.max_steps} statements exceeded", location=node.location,
            )

    def _execute_block(self, block: BlockStatement) -> None:
        self._scopes.append({})
        try:
            for stmt in block.statements:
                self._step(stmt)
                self.visit(stmt)
        finally:
            self._scopes.pop()

    def visit_BlockStatement(self, node: BlockStatement) -> None:
        self._execute_block(node)

    def visit_LetStatement(self, node: LetStatement) -> None:
        var_type = node.resolved_type
        if node.initializer is None:
            value = self._zero_value(var_type)
        elif var_type is not None and var_type.is_reference:
            value = self._pointer(node.initializer)
        else:
            value = self._convert(self._eval(node.initializer), var_type)
        self._declare(node.name, value)

    def visit_AssignStatement(self, node: AssignStatement) -> None:
        target_type = node.target.resolved_type
        value_type = node.value.resolved_type

        if node.operator == AssignmentOperator.ASSIGN:
            if target_type.is_reference and value_type is not None and value_type.is_reference:
                self._binding_cell(node.target).value = self._pointer(node.value)
                return
            cell = self._lvalue_cell(node.target)
            cell.value = self._convert(self._eval(node.value), target_type.dereference())
            return

        cell = self._lvalue_cell(node.target)
        value = self._eval(node.value)
        slot_type = target_type.dereference()
        result = self._arithmetic(COMPOUND_OPERATORS[node.operator], cell.value, value, node)
        cell.value = wrap_integer(result, slot_type)

    def visit_IndexAssignStatement(self, node: IndexAssignStatement) -> None:
        cell = self._lvalue_cell(node.target)
        slot_type = node.target.resolved_type.dereference()
        index = int(self._eval(node.index))
        bit = int(self._eval(node.value)) & 1
        if not 0 <= index < slot_type.bit_width:
            raise RockRuntimeError(
                f"bit index {index} out of range for '{slot_type}'", location=node.index.location,
            )
        current = wrap_integer(cell.value, slot_type) & ((1 << slot_type.bit_width) - 1)
        updated = (current & ~(1 << index)) | (bit << index)
        cell.value = wrap_integer(updated, slot_type)

    def visit_IfStatement(self, node: IfStatement) -> None:
        if self._eval(node.condition):
            self._execute_block(node.then_branch)
        elif node.else_branch is not None:
            self.visit(node.else_branch)

    def visit_WhileStatement(self, node: WhileStatement) -> None:
        while self._eval(node.condition):
            if self._loop_iteration(node.body):
                break

    def visit_LoopStatement(self, node: LoopStatement) -> None:
        while True:
            self._step(node)
            if self._loop_iteration(node.body):
                break

    def visit_ForRangeStatement(self, node: ForRangeStatement) -> None:
        counter_type = node.counter_type
        counter = Cell(self._convert(self._eval(node.range.start), counter_type))
        self._scopes.append({node.variable: counter})
        try:
            end = self._eval(node.range.end)
            running = counter.value <= end if node.range.inclusive else counter.value < end
            while running:
                if self._loop_iteration(node.body):
                    break
                self._step(node)
                if node.range.inclusive:
                    # Stop on the last value instead of stepping past it, so
                    # a range ending at the type maximum does not wrap.
                    running = counter.value < self._eval(node.range.end)
                    if running:
                        counter.value = wrap_integer(counter.value + 1, counter_type)
                else:
                    counter.value = wrap_integer(counter.value + 1, counter_type)
                    running = counter.value < self._eval(node.range.end)
        finally:
            self._scopes.pop()

    def _loop_iteration(self, body: BlockStatement) -> bool:
        """Run one iteration; True when the loop should stop."""
        try:
            self._execute_block(body)
        except _Break:
            return True
        except _Continue:
            pass
        return False

    def visit_ReturnStatement(self, node: ReturnStatement) -> None:
        if node.value is None:
            raise _Return(None)
        value_type = node.value.resolved_type
        if value_type is not None and value_type.is_reference:
            raise _Return(self._pointer(node.value))
        raise _Return(self._eval(node.value))

    def visit_BreakStatement(self, node: BreakStatement) -> None:
        raise _Break()

    def visit_ContinueStatement(self, node: ContinueStatement) -> None:
        raise _Continue()

    def visit_AssertStatement(self, node: AssertStatement) -> None:
        if node.is_equality:
            holds = self._eval(node.condition) == self._eval(node.expected)
        else:
            holds = bool(self._eval(node.condition))
        if not holds:
            position = f"{Path(node.location.filename).name}:{node.location.line}"
            self._panic(f"assertion failed at {position}")

    def visit_PanicStatement(self, node: PanicStatement) -> None:
        payload = self._eval(node.payload)
        if not isinstance(payload, str):
            payload = int(payload)
        self._panic(payload)

    def visit_InterruptStatement(self, node: InterruptStatement) -> None:
        self._result.interrupts.append(node.number)
        if self.interrupt_hook is not None:
            self.interrupt_hook(node.number)

    def visit_ExpressionStatement(self, node: ExpressionStatement) -> None:
        self._eval(node.expression)

    # -------------------------------------------------------------------------
    # Runtime Facilities
    # -------------------------------------------------------------------------

    def _panic(self, payload: Any) -> None:
        """Release, log, print, stop: the runtime's panic pipeline."""
        if self.features.heap_allocator:
            self._release_heap()
        text = f"panic: {payload}"
        if self.features.logging:
            self._result.log.append(text)
        if self.features.printing:
            self._result.output.append(text)
        raise _Panic(payload)

    def _release_heap(self) -> None:
        for block in self._heap:
            block.value = None
        self._heap = []

    # =========================================================================
    # Expressions
    # =========================================================================

    def _eval(self, expr: Expression) -> Any:
        """Value of an expression (references dereferenced)."""
        if expr.constant is not None:
            return expr.constant.value

        if isinstance(expr, IdentifierExpression):
            value = self._lookup(expr.name, expr).value
            return self._deref(value, expr) if self._is_reference(expr) else value

        if isinstance(expr, FieldAccessExpression):
            value = self._field_cell(expr).value
            return self._deref(value, expr) if self._is_reference(expr) else value

        if isinstance(expr, BinaryExpression):
            return self._binary(expr)
        if isinstance(expr, UnaryExpression):
            return self._unary(expr)
        if isinstance(expr, CallExpression):
            value = self._call(expr)
            return self._deref(value, expr) if self._is_reference(expr) else value
        if isinstance(expr, IndexExpression):
            return self._index(expr)

        raise RockRuntimeError(f"cannot evaluate {type(expr).__name__}", location=expr.location)

    @staticmethod
    def _is_reference(expr: Expression) -> bool:
        return expr.resolved_type is not None and expr.resolved_type.is_reference

    @staticmethod
    def _deref(pointer: Optional[Cell], expr: Expression) -> Any:
        if pointer is None:
            raise RockRuntimeError("null reference", location=expr.location)
        return pointer.value

    def _pointer(self, expr: Expression) -> Optional[Cell]:
        """Cell a reference-typed expression points at."""
        if isinstance(expr, UnaryExpression) and expr.operator == UnaryOperator.REFERENCE:
            if self._is_reference(expr.operand):
                return self._pointer(expr.operand)
            return self._lvalue_cell(expr.operand)
        if isinstance(expr, IdentifierExpression):
            return self._lookup(expr.name, expr).value
        if isinstance(expr, FieldAccessExpression):
            return self._field_cell(expr).value
        if isinstance(expr, CallExpression):
            return self._call(expr)
        raise RockRuntimeError("expression is not a reference", location=expr.location)

    def _binding_cell(self, expr: Expression) -> Cell:
        """Cell holding a variable or field itself (a reference is not followed)."""
        if isinstance(expr, IdentifierExpression):
            return self._lookup(expr.name, expr)
        if isinstance(expr, FieldAccessExpression):
            return self._field_cell(expr)
        raise RockRuntimeError("expression is not assignable", location=expr.location)

    def _lvalue_cell(self, expr: Expression) -> Cell:
        """Cell an assignment writes to (references are written through)."""
        cell = self._binding_cell(expr)
        if self._is_reference(expr):
            if cell.value is None:
                raise RockRuntimeError("null reference", location=expr.location)
            return cell.value
        return cell

    def _struct(self, expr: Expression) -> StructValue:
        if self._is_reference(expr):
            value = self._deref(self._pointer(expr), expr)
        elif isinstance(expr, (IdentifierExpression, FieldAccessExpression)):
            value = self._lvalue_cell(expr).value
        else:
            value = self._eval(expr)
        if not isinstance(value, StructValue):
            raise RockRuntimeError("value is not a struct", location=expr.location)
        return value

    def _field_cell(self, expr: FieldAccessExpression) -> Cell:
        return self._struct(expr.object_expr).fields[expr.field_name]

    def _binary(self, expr: BinaryExpression) -> Any:
        op = expr.operator

        if op == BinaryOperator.LOGICAL_AND:
            return bool(self._eval(expr.left)) and bool(self._eval(expr.right))
        if op == BinaryOperator.LOGICAL_OR:
            return bool(self._eval(expr.left)) or bool(self._eval(expr.right))

        left = self._eval(expr.left)
        right = self._eval(expr.right)
        if op == BinaryOperator.EQUAL:
            return left == right
        if op == BinaryOperator.NOT_EQUAL:
            return left != right
        if op == BinaryOperator.LESS:
            return left < right
        if op == BinaryOperator.GREATER:
            return left > right
        if op == BinaryOperator.LESS_EQ:
            return left <= right
        if op == BinaryOperator.GREATER_EQ:
            return left >= right

        return wrap_integer(self._arithmetic(op, left, right, expr), expr.resolved_type)

    def _arithmetic(self, op: BinaryOperator, left: int, right: int, node) -> int:
        left, right = int(left), int(right)
        if op in (BinaryOperator.DIVIDE, BinaryOperator.MODULO):
            if right == 0:
                self._panic(DIVISION_BY_ZERO)
            return c_divide(left, right) if op == BinaryOperator.DIVIDE else c_remainder(left, right)
        if op in (BinaryOperator.LEFT_SHIFT, BinaryOperator.RIGHT_SHIFT):
            if right < 0:
                raise RockRuntimeError("negative shift count", location=node.location)
            return left << right if op == BinaryOperator.LEFT_SHIFT else left >> right
        if op == BinaryOperator.ADD:
            return left + right
        if op == BinaryOperator.SUBTRACT:
            return left - right
        if op == BinaryOperator.MULTIPLY:
            return left * right
        if op == BinaryOperator.BITWISE_AND:
            return left & right
        if op == BinaryOperator.BITWISE_OR:
            return left | right
        return left ^ right

    def _unary(self, expr: UnaryExpression) -> Any:
        op = expr.operator
        if op == UnaryOperator.REFERENCE:
            return self._pointer(expr)
        value = self._eval(expr.operand)
        if op == UnaryOperator.LOGICAL_NOT:
            return not value
        if op == UnaryOperator.NEGATE:
            return wrap_integer(-int(value), expr.resolved_type)
        return wrap_integer(~int(value), expr.resolved_type)

    def _index(self, expr: IndexExpression) -> int:
        target = self._eval(expr.target)
        index = int(self._eval(expr.index))
        if isinstance(target, str):
            data = target.encode("utf-8")
            if index == len(data):
                return 0
            if not 0 <= index < len(data):
                raise RockRuntimeError(
                    f"string index {index} out of range", location=expr.index.location,
                )
            return data[index]
        target_type = expr.target.resolved_type.dereference()
        raw = target & ((1 << target_type.bit_width) - 1)
        return (raw >> index) & 1

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    def _call(self, expr: CallExpression) -> Any:
        if expr.builtin is not None:
            return self._builtin(expr)

        function = expr.callee
        if function is None or expr.resolved_arguments is None:
            raise RockRuntimeError(
                f"call to '{expr.function_name}' was not resolved", location=expr.location,
            )

        parameters = function.parameters
        args = []
        if expr.receiver is not None:
            parameters = parameters[1:]
            if expr.receiver_is_reference:
                args.append(self._pointer(expr.receiver))
            elif isinstance(expr.receiver, (IdentifierExpression, FieldAccessExpression)):
                args.append(self._lvalue_cell(expr.receiver))
            else:
                # Temporary receiver
                args.append(Cell(self._eval(expr.receiver)))

        for argument, param in zip(expr.resolved_arguments, parameters):
            args.append(self._argument(argument, param.param_type))
        return self._invoke(function, args)

    def _builtin(self, expr: CallExpression) -> Any:
        argument = expr.resolved_arguments[0]
        name = expr.builtin

        if name == "print":
            if self.features.printing:
                self._result.output.append(format_value(self._eval(argument)))
            return None
        if name == "log":
            if self.features.logging:
                self._result.log.append(format_value(self._eval(argument)))
            return None
        if name == "alloc":
            if not self.features.heap_allocator:
                return None
            self._eval(argument)
            block = Cell(0)
            self._heap.append(block)
            return block

        if self.features.heap_allocator:
            block = self._pointer(argument)
            if block in self._heap:
                self._heap.remove(block)
        return None


def run_unit(unit: CompilationUnit, features: Optional[FeatureToggles] = None, entry: str = "start") -> ExecutionResult:
    """Convenience wrapper: interpret a lowered unit."""
    return Interpreter(unit, features).run(entry)
