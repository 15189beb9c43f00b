"""
Rock C Code Generator
=====================

This module turns a lowered CompilationUnit into one self-contained C
translation unit. All analysis has already happened in semantic lowering;
the generator only reads node annotations.

Output Layout
-------------
1. Header comment (no timestamps, so output is reproducible)
2. #include lines (stdio.h only when printing or logging is enabled)
3. Runtime block (see runtime.py)
4. Enum typedefs, then struct typedefs in dependency order
5. Function prototypes
6. Function definitions, in program order
7. int main(void) wrapper calling start(), when the unit defines start

Lowering Rules
--------------
| Rock                       | C                                              |
|----------------------------|------------------------------------------------|
| macro M = 5; M * 2         | 10 (folded, the macro never appears)           |
| 0b1010, 0x0F               | 0xA, 0x0F (hex, padded to the written width)   |
| let x: u64 = 5             | uint64_t x = 5ULL;                             |
| let p: Point               | Point p = {0};                                 |
| x[4] = v                   | x = (T)((x & ~((T)1 << (4))) | ...);          |
| x[i]                       | (((x) >> (i)) & 1)                             |
| s[i]  (s: str)             | ((uint8_t)(s)[i])                              |
| a == b  (str)              | bl_rt_str_eq(a, b)                             |
| for i in a..b              | for (T i = a; i < b; i++)                      |
| for i in a..=b             | for (T i = a, bl_rt_last = !(i <= b); !bl_rt_last; |
|                            |      bl_rt_last = !(i < b), i += !bl_rt_last)  |
| a / d  (d not constant)    | (a / ((T)bl_rt_divisor((uint64_t)(d))))        |
| loop { }                   | for (;;) { }                                   |
| @3                         | bl_rt_interrupt(3);                            |
| ? "boom" / ? 7             | bl_rt_panic_str("boom"); / bl_rt_panic_int(7); |
| impl Point { fn f(&self) } | T Point_f(Point *self)                         |
| p.f()                      | Point_f(&p)                                    |
| Color::Red                 | Color_Red                                      |

Arithmetic on types narrower than 32 bits is cast back to the operand type
so the generated program wraps exactly like the interpreter. Rock names
that collide with C keywords or the runtime get a 'rock_' prefix, and a
local variable that reuses the C name of a function, type or enum constant
is renamed with a 'rock_l_' prefix.
"""

from pathlib import Path
from typing import Optional
import logging
import math

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
    ConstantValue,
    ContinueStatement,
    EnumDeclaration,
    Expression,
    ExpressionStatement,
    FieldAccessExpression,
    ForRangeStatement,
    FunctionNode,
    IdentifierExpression,
    IfStatement,
    ImplBlock,
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
from boulder.rockc.errors import RockError
from boulder.rockc.lowering import function_symbol
from boulder.rockc.resolver import CompilationUnit
from boulder.rockc.runtime import generate_runtime, runtime_includes
from boulder.rockc.types import RockType, TYPE_UNIT, c_identifier, c_local_identifier, c_type_name

logger = logging.getLogger(__name__)


class CodeGenError(RockError):
    """Unit reached the code generator without the annotations it needs."""


# =============================================================================
# C Literal Helpers
# =============================================================================

_INT32_MAX = (1 << 31) - 1
_INT64_MIN = -(1 << 63)


def c_integer_literal(value: int, rock_type: RockType, radix: int = 10, width: int = 0) -> str:
    """
    Spell an integer constant in C.

    Args:
        value: The integer value
        rock_type: Type the value is used at (selects the suffix)
        radix: 2 or 16 to emit hex, 10 for decimal
        width: Written bit width, used to pad hex digits

    Returns:
        C literal text such as '42', '0x0F', '5ULL' or '(-3)'
    """
    bits = rock_type.bit_width
    if bits == 64:
        suffix = "LL" if rock_type.is_signed else "ULL"
    elif not rock_type.is_signed and value > _INT32_MAX:
        suffix = "U"
    else:
        suffix = ""

    if value < 0:
        if value == _INT64_MIN:
            return "(-9223372036854775807LL - 1)"
        return f"(-{-value}{suffix})"

    if radix in (2, 16):
        digits = max(1, math.ceil((width or bits or 8) / 4))
        return f"0x{value:0{digits}X}{suffix}"
    return f"{value}{suffix}"


def c_string_literal(text: str) -> str:
    """Spell a Rock string as a C string literal (octal escapes for non-ASCII)."""
    out = []
    for byte in text.encode("utf-8"):
        char = chr(byte)
        if char in ('"', "\\"):
            out.append("\\" + char)
        elif 32 <= byte < 127:
            out.append(char)
        else:
            out.append(f"\\{byte:03o}")
    return '"' + "".join(out) + '"'


# =============================================================================
# Code Generator
# =============================================================================

class CodeGenerator(ASTVisitor):
    """
    Generates C source from a lowered CompilationUnit.

    Statement visitors emit lines; expression helpers return C text.
    Values are read through _expr() (references dereferenced) and pointers
    through _pointer() (references passed as they are).

    Usage:
        generator = CodeGenerator(FeatureToggles())
        c_source = generator.generate(unit)
    """

    def __init__(self, features: Optional[FeatureToggles] = None, emit_main: bool = True):
        """
        Args:
            features: Runtime facilities the program may use
            emit_main: Emit an int main(void) wrapper when 'start' exists
        """
        self.features = features or FeatureToggles()
        self.emit_main = emit_main

        # Output lines and current indentation depth
        self._output: list[str] = []
        self._indent = 0

        # Enum names, used to tell enums from structs when zero-initializing
        self._enums: set[str] = set()

        # C names declared at file scope; locals reusing one are renamed
        self._globals: set[str] = set()

        # Function being generated
        self._function: Optional[FunctionNode] = None

    def generate(self, unit: CompilationUnit) -> str:
        """
        Generate C source for a lowered unit.

        Args:
            unit: CompilationUnit annotated by semantic lowering

        Returns:
            Complete C translation unit (ends with a newline)
        """
        self._output = []
        self._indent = 0
        self._enums = {decl.name for decl in unit.of_type(EnumDeclaration)}

        functions = self._functions(unit)
        self._globals = self._file_scope_names(unit, functions)

        self._emit_header(unit)
        for line in runtime_includes(self.features):
            self._emit(line)
        self._emit()
        for line in generate_runtime(self.features):
            self._emit(line)

        self._emit_types(unit)
        self._emit_prototypes(functions)
        for function in functions:
            self._generate_function(function)

        entry = next((f for f in functions if f.name == "start" and not f.owner), None)
        if self.emit_main and entry is not None:
            self._emit_main(entry)

        text = "\n".join(self._output).rstrip("\n") + "\n"
        logger.debug(f"generated {len(text)} bytes of C for {len(functions)} functions")
        return text

    @staticmethod
    def _functions(unit: CompilationUnit) -> list[FunctionNode]:
        functions = []
        for decl in unit.declarations:
            if isinstance(decl, FunctionNode):
                functions.append(decl)
            elif isinstance(decl, ImplBlock):
                functions.extend(decl.methods)
        return functions

    @staticmethod
    def _file_scope_names(unit: CompilationUnit, functions: list[FunctionNode]) -> set[str]:
        names = {function_symbol(function) for function in functions}
        for struct in unit.of_type(StructDeclaration):
            names.add(c_identifier(struct.name))
        for enum in unit.of_type(EnumDeclaration):
            name = c_identifier(enum.name)
            names.add(name)
            names.update(f"{name}_{variant.name}" for variant in enum.variants)
        return names

    # =========================================================================
    # Emission Helpers
    # =========================================================================

    def _emit(self, line: str = "") -> None:
        if line:
            self._output.append("    " * self._indent + line)
        else:
            self._output.append("")

    def _type(self, rock_type: Optional[RockType]) -> str:
        return c_type_name(rock_type or TYPE_UNIT, c_identifier)

    def _var(self, name: str) -> str:
        return c_local_identifier(name, self._globals)

    def _declarator(self, rock_type: Optional[RockType], name: str) -> str:
        """Type and name as in a declaration: 'uint8_t x', 'Point *p'."""
        c_type = self._type(rock_type)
        if c_type.endswith("*"):
            return c_type + name
        return f"{c_type} {name}"

    def _emit_header(self, unit: CompilationUnit) -> None:
        source = Path(unit.entry_path).name if unit.entry_path else "<input>"
        self._emit("/*")
        self._emit(f" * Generated by rockc from {source}.")
        self._emit(" * Do not edit: changes are lost when the program is recompiled.")
        self._emit(" */")
        self._emit()

    # =========================================================================
    # Type Definitions
    # =========================================================================

    def _emit_types(self, unit: CompilationUnit) -> None:
        enums = unit.of_type(EnumDeclaration)
        structs = unit.of_type(StructDeclaration)
        if not enums and not structs:
            return

        self._emit("/* Types */")
        self._emit()
        for enum in enums:
            name = c_identifier(enum.name)
            self._emit(f"typedef enum {name} {{")
            self._indent += 1
            for variant in enum.variants:
                self._emit(f"{name}_{variant.name} = {variant.resolved_value},")
            self._indent -= 1
            self._emit(f"}} {name};")
            self._emit()

        for struct in structs:
            name = c_identifier(struct.name)
            self._emit(f"typedef struct {name} {name};")
        if structs:
            self._emit()

        for struct in self._struct_order(structs):
            self._emit(f"struct {c_identifier(struct.name)} {{")
            self._indent += 1
            if not struct.fields:
                self._emit("uint8_t _unused;")
            for struct_field in struct.fields:
                self._emit(self._declarator(struct_field.field_type, c_identifier(struct_field.name)) + ";")
            self._indent -= 1
            self._emit("};")
            self._emit()

    @staticmethod
    def _struct_order(structs: list[StructDeclaration]) -> list[StructDeclaration]:
        """Program order, except that a struct follows the structs it holds by value."""
        by_name = {struct.name: struct for struct in structs}
        ordered: list[StructDeclaration] = []
        placed: set[str] = set()

        def place(struct: StructDeclaration, visiting: set[str]) -> None:
            if struct.name in placed or struct.name in visiting:
                return
            visiting.add(struct.name)
            for struct_field in struct.fields:
                field_type = struct_field.field_type
                if field_type.is_named and not field_type.is_reference and field_type.name in by_name:
                    place(by_name[field_type.name], visiting)
            placed.add(struct.name)
            ordered.append(struct)

        for struct in structs:
            place(struct, set())
        return ordered

    # =========================================================================
    # Functions
    # =========================================================================

    def _signature(self, function: FunctionNode) -> str:
        params = []
        for param in function.parameters:
            params.append(self._declarator(param.param_type, self._var(param.name)))
        param_text = ", ".join(params) if params else "void"
        return self._declarator(function.return_type, f"{function_symbol(function)}({param_text})")

    def _emit_prototypes(self, functions: list[FunctionNode]) -> None:
        if not functions:
            return
        self._emit("/* Prototypes */")
        self._emit()
        for function in functions:
            self._emit(self._signature(function) + ";")
        self._emit()

    def _generate_function(self, function: FunctionNode) -> None:
        self._function = function
        self._emit(self._signature(function) + " {")
        self._indent += 1
        for stmt in function.body.statements:
            self.visit(stmt)
        self._indent -= 1
        self._emit("}")
        self._emit()
        self._function = None

    def _emit_main(self, entry: FunctionNode) -> None:
        args = ", ".join(self._expr(param.default) for param in entry.parameters)
        call = f"{function_symbol(entry)}({args})"
        return_type = entry.return_type or TYPE_UNIT

        self._emit("int main(void) {")
        self._indent += 1
        if return_type.is_integer or return_type.is_bool or return_type.name in self._enums:
            self._emit(f"int status = (int){call};")
        else:
            self._emit(f"{call};")
            self._emit("int status = 0;")
        if self.features.heap_allocator:
            self._emit("bl_rt_heap_release_all();")
        self._emit("return status;")
        self._indent -= 1
        self._emit("}")

    # =========================================================================
    # Statements
    # =========================================================================

    def _emit_block_body(self, block: BlockStatement) -> None:
        self._indent += 1
        for stmt in block.statements:
            self.visit(stmt)
        self._indent -= 1

    def visit_BlockStatement(self, node: BlockStatement) -> None:
        self._emit("{")
        self._emit_block_body(node)
        self._emit("}")

    def visit_LetStatement(self, node: LetStatement) -> None:
        var_type = node.resolved_type
        if var_type is None:
            raise CodeGenError(f"type of '{node.name}' was not resolved", location=node.location)
        name = self._var(node.name)

        if node.initializer is None:
            init = self._zero_value(var_type)
        elif var_type.is_reference:
            init = self._pointer(node.initializer)
        else:
            init = self._expr(node.initializer)
        self._emit(f"{self._declarator(var_type, name)} = {init};")

    def _zero_value(self, var_type: RockType) -> str:
        if var_type.is_reference:
            return "0"
        if var_type.is_bool:
            return "false"
        if var_type.is_str:
            return '""'
        if var_type.is_named:
            if var_type.name in self._enums:
                return f"({c_identifier(var_type.name)})0"
            return "{0}"
        return "0"

    def visit_AssignStatement(self, node: AssignStatement) -> None:
        target_type = node.target.resolved_type
        value_type = node.value.resolved_type
        if node.operator == AssignmentOperator.ASSIGN:
            if target_type.is_reference and value_type is not None and value_type.is_reference:
                self._emit(f"{self._pointer(node.target)} = {self._pointer(node.value)};")
            else:
                self._emit(f"{self._expr(node.target)} = {self._expr(node.value)};")
            return
        value = self._expr(node.value)
        if node.operator in (AssignmentOperator.DIV_ASSIGN, AssignmentOperator.MOD_ASSIGN):
            value = self._divisor(node.value, value)
        self._emit(f"{self._expr(node.target)} {node.operator.value} {value};")

    def visit_IndexAssignStatement(self, node: IndexAssignStatement) -> None:
        target = self._expr(node.target)
        c_type = self._type(node.target.resolved_type.dereference())
        index = self._expr(node.index)
        value = self._expr(node.value)
        self._emit(
            f"{target} = ({c_type})(({target} & ~(({c_type})1 << ({index}))) | "
            f"(({c_type})(({value}) & 1) << ({index})));"
        )

    def visit_IfStatement(self, node: IfStatement) -> None:
        self._emit(f"if ({self._condition(node.condition)}) {{")
        self._emit_block_body(node.then_branch)
        else_branch = node.else_branch
        if isinstance(else_branch, IfStatement):
            # Chained 'else if' continues on the closing brace line.
            self._emit_else_if(else_branch)
            return
        if else_branch is not None:
            self._emit("} else {")
            self._emit_block_body(else_branch)
        self._emit("}")

    def _emit_else_if(self, node: IfStatement) -> None:
        self._emit(f"}} else if ({self._condition(node.condition)}) {{")
        self._emit_block_body(node.then_branch)
        else_branch = node.else_branch
        if isinstance(else_branch, IfStatement):
            self._emit_else_if(else_branch)
            return
        if else_branch is not None:
            self._emit("} else {")
            self._emit_block_body(else_branch)
        self._emit("}")

    def visit_WhileStatement(self, node: WhileStatement) -> None:
        self._emit(f"while ({self._condition(node.condition)}) {{")
        self._emit_block_body(node.body)
        self._emit("}")

    def visit_LoopStatement(self, node: LoopStatement) -> None:
        self._emit("for (;;) {")
        self._emit_block_body(node.body)
        self._emit("}")

    def visit_ForRangeStatement(self, node: ForRangeStatement) -> None:
        name = self._var(node.variable)
        c_type = self._type(node.counter_type)
        start = self._expr(node.range.start)
        end = self._expr(node.range.end)
        if node.range.inclusive:
            # Stop before incrementing past the end, so an end at the type's
            # maximum cannot wrap the counter.
            last = "bl_rt_last"
            self._emit(
                f"for ({c_type} {name} = {start}, {last} = !({name} <= {end}); !{last}; "
                f"{last} = !({name} < {end}), {name} += !{last}) {{"
            )
        else:
            self._emit(f"for ({c_type} {name} = {start}; {name} < {end}; {name}++) {{")
        self._emit_block_body(node.body)
        self._emit("}")

    def visit_ReturnStatement(self, node: ReturnStatement) -> None:
        if node.value is None:
            self._emit("return;")
            return
        return_type = self._function.return_type if self._function else None
        if return_type is not None and return_type.is_reference:
            self._emit(f"return {self._pointer(node.value)};")
        else:
            self._emit(f"return {self._expr(node.value)};")

    def visit_BreakStatement(self, node: BreakStatement) -> None:
        self._emit("break;")

    def visit_ContinueStatement(self, node: ContinueStatement) -> None:
        self._emit("continue;")

    def visit_AssertStatement(self, node: AssertStatement) -> None:
        if node.is_equality:
            condition = self._equality(node.condition, node.expected)
        else:
            condition = self._condition(node.condition)
        position = f"{Path(node.location.filename).name}:{node.location.line}"
        self._emit(f"if (!({condition})) {{")
        self._indent += 1
        self._emit(f"bl_rt_panic_str({c_string_literal('assertion failed at ' + position)});")
        self._indent -= 1
        self._emit("}")

    def visit_PanicStatement(self, node: PanicStatement) -> None:
        payload_type = node.payload.resolved_type.dereference()
        payload = self._expr(node.payload)
        if payload_type.is_str:
            self._emit(f"bl_rt_panic_str({payload});")
        else:
            self._emit(f"bl_rt_panic_int((int64_t)({payload}));")

    def visit_InterruptStatement(self, node: InterruptStatement) -> None:
        suffix = "U" if node.number > _INT32_MAX else ""
        self._emit(f"bl_rt_interrupt({node.number}{suffix});")

    def visit_ExpressionStatement(self, node: ExpressionStatement) -> None:
        self._emit(f"{self._expr(node.expression)};")

    # =========================================================================
    # Expressions
    # =========================================================================

    def _condition(self, expr: Expression) -> str:
        text = self._expr(expr)
        if text.startswith("(") and text.endswith(")") and self._balanced(text[1:-1]):
            return text[1:-1]
        return text

    @staticmethod
    def _balanced(text: str) -> bool:
        depth = 0
        for char in text:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth < 0:
                    return False
        return depth == 0

    def _constant(self, expr: Expression) -> str:
        constant: ConstantValue = expr.constant
        value = constant.value
        if constant.type.is_bool:
            return "true" if value else "false"
        if constant.type.is_str:
            return c_string_literal(value)
        if constant.type.is_named:
            return f"(({c_identifier(constant.type.name)}){value})"

        use_type = expr.resolved_type if expr.resolved_type and expr.resolved_type.is_integer else constant.type
        return c_integer_literal(value, use_type, constant.radix, constant.width)

    def _expr(self, expr: Expression) -> str:
        """C text for the value of an expression."""
        if isinstance(expr, FieldAccessExpression) and expr.is_path:
            return f"{c_identifier(expr.type_name)}_{expr.field_name}"
        if expr.constant is not None:
            return self._constant(expr)

        if isinstance(expr, IdentifierExpression):
            name = self._var(expr.name)
            if expr.resolved_type is not None and expr.resolved_type.is_reference:
                return f"(*{name})"
            return name

        if isinstance(expr, FieldAccessExpression):
            text = self._field(expr)
            if expr.resolved_type is not None and expr.resolved_type.is_reference:
                return f"(*{text})"
            return text

        if isinstance(expr, BinaryExpression):
            return self._binary(expr)
        if isinstance(expr, UnaryExpression):
            return self._unary(expr)
        if isinstance(expr, CallExpression):
            text = self._call(expr)
            if expr.resolved_type is not None and expr.resolved_type.is_reference:
                return f"(*{text})"
            return text
        if isinstance(expr, IndexExpression):
            return self._index(expr)

        raise CodeGenError(f"cannot generate {type(expr).__name__}", location=expr.location)

    def _pointer(self, expr: Expression) -> str:
        """C text for a reference-typed expression (no dereference)."""
        if isinstance(expr, UnaryExpression) and expr.operator == UnaryOperator.REFERENCE:
            operand = expr.operand
            if operand.resolved_type is not None and operand.resolved_type.is_reference:
                return self._pointer(operand)
            return f"&{self._expr(operand)}"
        if isinstance(expr, IdentifierExpression):
            return self._var(expr.name)
        if isinstance(expr, FieldAccessExpression) and not expr.is_path:
            return self._field(expr)
        if isinstance(expr, CallExpression):
            return self._call(expr)
        return self._expr(expr)

    def _field(self, expr: FieldAccessExpression) -> str:
        obj = expr.object_expr
        name = c_identifier(expr.field_name)
        if obj.resolved_type is not None and obj.resolved_type.is_reference:
            return f"{self._pointer(obj)}->{name}"
        return f"{self._expr(obj)}.{name}"

    def _narrow(self, text: str, result_type: Optional[RockType]) -> str:
        """Cast arithmetic on sub-int types back to the result type."""
        if result_type is not None and result_type.is_integer and result_type.bit_width < 32:
            return f"(({self._type(result_type)}){text})"
        return text

    def _equality(self, left: Expression, right: Expression) -> str:
        left_type = left.resolved_type.dereference() if left.resolved_type else None
        if left_type is not None and left_type.is_str:
            return f"bl_rt_str_eq({self._expr(left)}, {self._expr(right)})"
        return f"{self._expr(left)} == {self._expr(right)}"

    def _divisor(self, expr: Expression, text: str) -> str:
        """Divisor text; a value only known at run time goes through bl_rt_divisor."""
        if expr.constant is not None:
            return text
        c_type = self._type(expr.resolved_type.dereference())
        return f"(({c_type})bl_rt_divisor((uint64_t)({text})))"

    def _binary(self, expr: BinaryExpression) -> str:
        op = expr.operator
        left_type = expr.left.resolved_type.dereference() if expr.left.resolved_type else None

        if op in (BinaryOperator.EQUAL, BinaryOperator.NOT_EQUAL) and left_type and left_type.is_str:
            equal = f"bl_rt_str_eq({self._expr(expr.left)}, {self._expr(expr.right)})"
            return equal if op == BinaryOperator.EQUAL else f"(!{equal})"

        right = self._expr(expr.right)
        if op in (BinaryOperator.DIVIDE, BinaryOperator.MODULO):
            right = self._divisor(expr.right, right)
        text = f"({self._expr(expr.left)} {op.value} {right})"
        if op.is_comparison or op.is_logical:
            return text
        return self._narrow(text, expr.resolved_type)

    def _unary(self, expr: UnaryExpression) -> str:
        op = expr.operator
        if op == UnaryOperator.REFERENCE:
            return self._pointer(expr)
        text = f"({op.value}{self._expr(expr.operand)})"
        if op == UnaryOperator.LOGICAL_NOT:
            return text
        return self._narrow(text, expr.resolved_type)

    def _index(self, expr: IndexExpression) -> str:
        target_type = expr.target.resolved_type.dereference()
        target = self._expr(expr.target)
        index = self._expr(expr.index)
        if target_type.is_str:
            return f"((uint8_t)({target})[{index}])"
        return f"((({target}) >> ({index})) & 1)"

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    def _call(self, expr: CallExpression) -> str:
        if expr.builtin is not None:
            return self._builtin_call(expr)
        if expr.callee is None or expr.resolved_arguments is None:
            raise CodeGenError(f"call to '{expr.function_name}' was not resolved", location=expr.location)

        parameters = expr.callee.parameters
        args = []
        if expr.receiver is not None:
            parameters = parameters[1:]
            if expr.receiver_is_reference:
                args.append(self._pointer(expr.receiver))
            else:
                args.append(f"&{self._expr(expr.receiver)}")

        for argument, param in zip(expr.resolved_arguments, parameters):
            if param.param_type is not None and param.param_type.is_reference:
                args.append(self._pointer(argument))
            else:
                args.append(self._expr(argument))
        return f"{expr.symbol}({', '.join(args)})"

    def _builtin_call(self, expr: CallExpression) -> str:
        argument = expr.resolved_arguments[0]
        name = expr.builtin

        if name in ("print", "log"):
            enabled = self.features.printing if name == "print" else self.features.logging
            if not enabled:
                return "((void)0)"
            arg_type = argument.resolved_type.dereference()
            value = self._expr(argument)
            if arg_type.is_str:
                return f"bl_rt_{name}_str({value})"
            if arg_type.is_bool:
                return f"bl_rt_{name}_bool({value})"
            if arg_type.is_integer and arg_type.bit_width == 64 and not arg_type.is_signed:
                return f"bl_rt_{name}_uint({value})"
            return f"bl_rt_{name}_int((int64_t)({value}))"

        if name == "alloc":
            if not self.features.heap_allocator:
                return "((uint8_t *)0)"
            return f"bl_rt_alloc({self._expr(argument)})"

        if not self.features.heap_allocator:
            return "((void)0)"
        return f"bl_rt_free({self._pointer(argument)})"


def generate_c(unit: CompilationUnit, features: Optional[FeatureToggles] = None, emit_main: bool = True) -> str:
    """Convenience wrapper: generate C for a lowered unit."""
    return CodeGenerator(features, emit_main).generate(unit)
