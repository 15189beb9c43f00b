"""
Rock Semantic Lowering
======================

This module checks a resolved CompilationUnit and annotates its AST so the
code generator and the interpreter can work without any further analysis.

Passes
------
Lowering runs over the whole unit in four steps:

1. Symbol collection: functions, structs, enums, impl methods (keyed by
   'Type::method') and macro constants. Duplicates are reported here.
2. Type declarations: struct field types, enum variant values (explicit or
   auto-incremented from the previous variant).
3. Signatures: parameter types, and default values folded to constants.
4. Bodies: every function and method body, in program order.

What Gets Annotated
-------------------
- Expression.resolved_type on every expression
- Expression.constant on every compile-time constant, including every
  reference to a macro (so macro names never reach the C output)
- CallExpression.resolved_arguments, callee, builtin, symbol and
  receiver_is_reference
- LetStatement.resolved_type, ForRangeStatement.counter_type
- EnumVariant.resolved_value

Constant Folding
----------------
Operators over constant operands fold with C semantics: division and
remainder truncate toward zero, comparisons produce bools. Folds of
untyped decimal literals stay untyped and are retyped by value (i32, then
i64, then u64); as soon as a typed operand takes part the result wraps to
the operand type's width. A constant division by zero is an error.

Type Checking
-------------
Checks are deliberately minimal: constants against declared scalar types
(value range, binary literal width), bool/str/reference compatibility,
struct and enum names, member existence, bit-index targets, assignment
targets, and break/continue placement. Errors are accumulated in the
ErrorCollector; lowering never stops at the first one.

A few more checks keep the generated C compilable:

- Two declarations may not map to one C name ('fn P_get' and method
  'P::get' both become P_get).
- Structs may not contain each other by value, directly or through a
  chain of other structs.
- A function with a return type must return (or panic) on every path.

Builtins
--------
print(x), log(x)    any integer, bool, str or enum value
alloc(size: u32)    returns &u8
free(ptr: &u8)

A user function with the same name replaces the builtin.
"""

from dataclasses import dataclass
from difflib import get_close_matches
from typing import Iterator, Optional
import copy
import logging
import operator

from boulder.errors import SourceLocation
from boulder.rockc.ast import (
    ASTVisitor,
    AssignmentOperator,
    AssignStatement,
    AssertStatement,
    BinaryExpression,
    BinaryOperator,
    BlockStatement,
    BoolLiteral,
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
    IntegerLiteral,
    InterruptStatement,
    LetStatement,
    LoopStatement,
    MacroConstDeclaration,
    PanicStatement,
    ParameterNode,
    RangeExpression,
    ReturnStatement,
    StringLiteral,
    StructDeclaration,
    UnaryExpression,
    UnaryOperator,
    WhileStatement,
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
    RockTypeError,
    SemanticError,
    UndeclaredIdentifierError,
    UnknownMemberError,
    UnresolvedConstantError,
)
from boulder.rockc.resolver import CompilationUnit
from boulder.rockc.types import (
    BaseType,
    C_RESERVED,
    RUNTIME_PREFIX,
    RockType,
    TYPE_BOOL,
    TYPE_STR,
    TYPE_U8,
    TYPE_U8_REF,
    TYPE_U32,
    TYPE_UNIT,
    c_divide,
    c_identifier,
    c_remainder,
    common_type,
    literal_type_for,
    unsigned_type_for_width,
    wrap_integer,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Builtins
# =============================================================================

@dataclass(frozen=True)
class BuiltinFunction:
    """
    A function provided by the runtime rather than by Rock source.

    Attributes:
        name: Name used in Rock source
        parameter: Type of the single parameter (None accepts any printable value)
        return_type: Result type
    """
    name: str
    parameter: Optional[RockType]
    return_type: RockType


BUILTINS = {
    "print": BuiltinFunction("print", None, TYPE_UNIT),
    "log": BuiltinFunction("log", None, TYPE_UNIT),
    "alloc": BuiltinFunction("alloc", TYPE_U32, TYPE_U8_REF),
    "free": BuiltinFunction("free", TYPE_U8_REF, TYPE_UNIT),
}


def function_symbol(function: FunctionNode) -> str:
    """C name of a function: 'name', or 'Type_method' for methods."""
    if function.owner:
        return f"{c_identifier(function.owner)}_{function.name}"
    return c_identifier(function.name)


# =============================================================================
# Constant Folding Tables
# =============================================================================

_ARITHMETIC = {
    BinaryOperator.ADD: operator.add,
    BinaryOperator.SUBTRACT: operator.sub,
    BinaryOperator.MULTIPLY: operator.mul,
    BinaryOperator.DIVIDE: c_divide,
    BinaryOperator.MODULO: c_remainder,
    BinaryOperator.BITWISE_AND: operator.and_,
    BinaryOperator.BITWISE_OR: operator.or_,
    BinaryOperator.BITWISE_XOR: operator.xor,
    BinaryOperator.LEFT_SHIFT: operator.lshift,
    BinaryOperator.RIGHT_SHIFT: operator.rshift,
}

_COMPARE = {
    BinaryOperator.EQUAL: operator.eq,
    BinaryOperator.NOT_EQUAL: operator.ne,
    BinaryOperator.LESS: operator.lt,
    BinaryOperator.GREATER: operator.gt,
    BinaryOperator.LESS_EQ: operator.le,
    BinaryOperator.GREATER_EQ: operator.ge,
}

_SHIFTS = (BinaryOperator.LEFT_SHIFT, BinaryOperator.RIGHT_SHIFT)

# Compound assignment -> the binary operator it applies
COMPOUND_OPERATORS = {
    AssignmentOperator.ADD_ASSIGN: BinaryOperator.ADD,
    AssignmentOperator.SUB_ASSIGN: BinaryOperator.SUBTRACT,
    AssignmentOperator.MUL_ASSIGN: BinaryOperator.MULTIPLY,
    AssignmentOperator.DIV_ASSIGN: BinaryOperator.DIVIDE,
    AssignmentOperator.MOD_ASSIGN: BinaryOperator.MODULO,
    AssignmentOperator.AND_ASSIGN: BinaryOperator.BITWISE_AND,
    AssignmentOperator.OR_ASSIGN: BinaryOperator.BITWISE_OR,
    AssignmentOperator.XOR_ASSIGN: BinaryOperator.BITWISE_XOR,
    AssignmentOperator.LSHIFT_ASSIGN: BinaryOperator.LEFT_SHIFT,
    AssignmentOperator.RSHIFT_ASSIGN: BinaryOperator.RIGHT_SHIFT,
}


def literal_constant(node: IntegerLiteral) -> ConstantValue:
    """
    Constant for an integer literal.

    Binary, hex and char literals carry their written width and take the
    smallest unsigned type that holds it. Decimal literals are untyped.
    """
    if node.width and node.value >= 0:
        return ConstantValue(
            node.value, unsigned_type_for_width(node.width), node.radix, node.width,
        )
    return ConstantValue(
        node.value, literal_type_for(node.value), node.radix, node.width,
        untyped=not node.width,
    )


# =============================================================================
# Scopes
# =============================================================================

@dataclass
class LocalVariable:
    """
    A parameter or let-bound variable visible in a function body.

    Attributes:
        name: Variable name
        var_type: Declared or inferred type (None if it could not be determined)
        location: Where the variable was declared
    """
    name: str
    var_type: Optional[RockType]
    location: SourceLocation


# =============================================================================
# Semantic Lowering
# =============================================================================

class SemanticLowering(ASTVisitor):
    """
    Checks and annotates a CompilationUnit.

    Statement visitors return nothing; expression visitors return the
    expression's type (None after an error, so callers can stay quiet
    instead of cascading).

    Usage:
        collector = ErrorCollector()
        SemanticLowering(collector).lower(unit)
        collector.raise_if_errors()
    """

    def __init__(self, errors: ErrorCollector, source_lines: Optional[dict[str, list[str]]] = None):
        """
        Args:
            errors: Collector receiving semantic errors
            source_lines: Optional filename -> lines map used to quote
                source text in error messages
        """
        self.errors = errors
        self.source_lines = source_lines or {}

        # Unit-wide symbol tables
        self.functions: dict[str, FunctionNode] = {}
        self.methods: dict[tuple[str, str], FunctionNode] = {}
        self.structs: dict[str, StructDeclaration] = {}
        self.enums: dict[str, EnumDeclaration] = {}
        self.macros: dict[str, MacroConstDeclaration] = {}

        # Current function context
        self._scopes: list[dict[str, LocalVariable]] = []
        self._function: Optional[FunctionNode] = None
        self._loop_depth = 0

    # =========================================================================
    # Entry Point
    # =========================================================================

    def lower(self, unit: CompilationUnit) -> CompilationUnit:
        """Check and annotate every declaration of the unit in place."""
        self._collect(unit)
        self._check_generated_names(unit)
        self._lower_macros()
        self._lower_type_declarations(unit)
        for function in self._all_functions(unit):
            self._lower_signature(function)
        self._check_entry_point()

        lowered = 0
        for function in self._all_functions(unit):
            if self.errors.should_stop():
                break
            self._lower_function(function)
            lowered += 1

        logger.debug(
            f"lowered {lowered} functions, {len(self.structs)} structs, "
            f"{len(self.enums)} enums, {len(self.macros)} macros"
        )
        return unit

    def _check_entry_point(self) -> None:
        entry = self.functions.get("start")
        if entry is not None and any(p.default is None for p in entry.parameters):
            self._type_error("entry function 'start' cannot take parameters without defaults", entry)

    @staticmethod
    def _all_functions(unit: CompilationUnit) -> Iterator[FunctionNode]:
        for decl in unit.declarations:
            if isinstance(decl, FunctionNode):
                yield decl
            elif isinstance(decl, ImplBlock):
                yield from decl.methods

    # =========================================================================
    # Error Helpers
    # =========================================================================

    def _line(self, location: Optional[SourceLocation]) -> Optional[str]:
        if location is None:
            return None
        lines = self.source_lines.get(location.filename)
        if lines and 0 < location.line <= len(lines):
            return lines[location.line - 1]
        return None

    def _type_error(self, message: str, node, expected=None, actual=None) -> None:
        self.errors.add(RockTypeError(
            message,
            expected_type=str(expected) if expected is not None else None,
            actual_type=str(actual) if actual is not None else None,
            location=node.location,
            source_line=self._line(node.location),
        ))

    def _report_unknown(self, node: IdentifierExpression) -> None:
        """Unknown name: upper-case names are taken to be macro constants."""
        name = node.name
        if name.isupper():
            self.errors.add(UnresolvedConstantError(
                name,
                location=node.location,
                source_line=self._line(node.location),
                similar_names=get_close_matches(name, list(self.macros), n=3),
            ))
            return

        visible = [var for scope in self._scopes for var in scope]
        self.errors.add(UndeclaredIdentifierError(
            name,
            location=node.location,
            source_line=self._line(node.location),
            similar_identifiers=get_close_matches(name, visible + list(self.macros), n=3),
        ))

    # =========================================================================
    # Symbol Collection
    # =========================================================================

    def _collect(self, unit: CompilationUnit) -> None:
        types: dict[str, object] = {}

        for decl in unit.declarations:
            if isinstance(decl, MacroConstDeclaration):
                original = self.macros.get(decl.name)
                if original is not None:
                    self.errors.add(DuplicateConstantError(
                        decl.name,
                        location=decl.location,
                        original_location=original.location,
                        source_line=self._line(decl.location),
                    ))
                else:
                    self.macros[decl.name] = decl

            elif isinstance(decl, FunctionNode):
                self._declare_once(self.functions, decl.name, decl.name, decl)

            elif isinstance(decl, (StructDeclaration, EnumDeclaration)):
                if self._declare_once(types, decl.name, decl.name, decl):
                    if isinstance(decl, StructDeclaration):
                        self.structs[decl.name] = decl
                    else:
                        self.enums[decl.name] = decl

            elif isinstance(decl, ImplBlock):
                for method in decl.methods:
                    self._declare_once(
                        self.methods,
                        (decl.type_name, method.name),
                        method.qualified_name,
                        method,
                    )

    def _declare_once(self, table: dict, key, display_name: str, decl) -> bool:
        original = table.get(key)
        if original is not None:
            self.errors.add(DuplicateDeclarationError(
                display_name,
                location=decl.location,
                original_location=original.location,
                source_line=self._line(decl.location),
            ))
            return False
        table[key] = decl
        return True

    def _check_generated_names(self, unit: CompilationUnit) -> None:
        """
        Report declarations that would share one name in the generated C.

        Functions, types, 'Enum_Variant' constants and 'Type_method'
        functions all live at C file scope, so 'fn P' next to 'struct P',
        or 'fn Color_Red' next to 'Color::Red', cannot both be emitted.
        Duplicates already reported by _collect are skipped.
        """
        taken: dict[str, tuple[str, object]] = {}

        def claim(c_name: str, display_name: str, node, compound: bool = False) -> None:
            if compound and (c_name in C_RESERVED or c_name.startswith(RUNTIME_PREFIX)):
                self.errors.add(SemanticError(
                    f"'{display_name}' would be named '{c_name}' in C, which is reserved",
                    location=node.location,
                    source_line=self._line(node.location),
                ))
                return
            original = taken.get(c_name)
            if original is None:
                taken[c_name] = (display_name, node)
                return
            original_name, original_node = original
            self.errors.add(DuplicateDeclarationError(
                display_name,
                location=node.location,
                original_location=original_node.location,
                source_line=self._line(node.location),
                original_name=original_name,
                c_name=c_name,
            ))

        for decl in unit.declarations:
            if isinstance(decl, FunctionNode):
                if self.functions.get(decl.name) is decl:
                    claim(function_symbol(decl), decl.name, decl)
            elif isinstance(decl, StructDeclaration):
                if self.structs.get(decl.name) is decl:
                    claim(c_identifier(decl.name), decl.name, decl)
            elif isinstance(decl, EnumDeclaration):
                if self.enums.get(decl.name) is not decl:
                    continue
                claim(c_identifier(decl.name), decl.name, decl)
                variants: set[str] = set()
                for variant in decl.variants:
                    if variant.name in variants:
                        continue
                    variants.add(variant.name)
                    claim(
                        f"{c_identifier(decl.name)}_{variant.name}",
                        f"{decl.name}::{variant.name}",
                        variant,
                        compound=True,
                    )
            elif isinstance(decl, ImplBlock):
                for method in decl.methods:
                    if self.methods.get((decl.type_name, method.name)) is method:
                        claim(function_symbol(method), method.qualified_name, method, compound=True)

    def _lower_macros(self) -> None:
        for macro in self.macros.values():
            if macro.value is not None:
                self._lower_expression(macro.value)

    def _check_type(self, rock_type: Optional[RockType], node) -> bool:
        """Report named types that are neither structs nor enums."""
        if rock_type is None or not rock_type.is_named:
            return True
        if rock_type.name in self.structs or rock_type.name in self.enums:
            return True
        self._type_error(f"unknown type '{rock_type.name}'", node)
        return False

    # =========================================================================
    # Type Declarations
    # =========================================================================

    def _lower_type_declarations(self, unit: CompilationUnit) -> None:
        for decl in unit.declarations:
            if isinstance(decl, StructDeclaration):
                self._lower_struct(decl)
            elif isinstance(decl, EnumDeclaration):
                self._lower_enum(decl)
            elif isinstance(decl, ImplBlock):
                if decl.type_name not in self.structs and decl.type_name not in self.enums:
                    self._type_error(f"impl for unknown type '{decl.type_name}'", decl)
        self._check_struct_cycles()

    def _lower_struct(self, decl: StructDeclaration) -> None:
        seen: dict[str, object] = {}
        for struct_field in decl.fields:
            self._declare_once(seen, struct_field.name, f"{decl.name}.{struct_field.name}", struct_field)
            if not self._check_type(struct_field.field_type, struct_field):
                continue
            field_type = struct_field.field_type
            if field_type.is_named and field_type.name == decl.name and not field_type.is_reference:
                self._type_error(
                    f"struct '{decl.name}' cannot contain itself; use '&{decl.name}'",
                    struct_field,
                )

    def _check_struct_cycles(self) -> None:
        """Report structs that contain each other by value through other structs."""
        done: set[str] = set()
        path: list[str] = []

        def visit(name: str) -> None:
            path.append(name)
            for struct_field in self.structs[name].fields:
                field_type = struct_field.field_type
                if field_type is None or not field_type.is_named or field_type.is_reference:
                    continue
                target = field_type.name
                if target == name or target not in self.structs or target in done:
                    continue
                if target in path:
                    cycle = " -> ".join(path[path.index(target):] + [target])
                    self._type_error(
                        f"structs contain each other by value ({cycle}); use a reference",
                        struct_field,
                    )
                    continue
                visit(target)
            path.pop()
            done.add(name)

        for name in self.structs:
            if name not in done:
                visit(name)

    def _lower_enum(self, decl: EnumDeclaration) -> None:
        seen: dict[str, object] = {}
        next_value = 0
        for variant in decl.variants:
            self._declare_once(seen, variant.name, f"{decl.name}::{variant.name}", variant)
            if variant.value is not None:
                self._lower_expression(variant.value)
                constant = variant.value.constant
                if constant is None or not constant.type.is_integer:
                    self._type_error(
                        f"value of '{decl.name}::{variant.name}' must be an integer constant",
                        variant,
                    )
                else:
                    next_value = constant.value
            variant.resolved_value = next_value
            next_value += 1

    # =========================================================================
    # Signatures
    # =========================================================================

    def _lower_signature(self, function: FunctionNode) -> None:
        seen: dict[str, object] = {}
        for param in function.parameters:
            self._declare_once(seen, param.name, param.name, param)
            if not self._check_type(param.param_type, param):
                continue
            if param.default is not None:
                self._lower_default(function, param)
        self._check_type(function.return_type, function)

    def _lower_default(self, function: FunctionNode, param: ParameterNode) -> None:
        """Fold a default value; only literals and macros may appear in it."""
        default = param.default
        if self._is_constant_form(default):
            self._lower_expression(default)
            if default.constant is not None:
                self._check_assignable(default, param.param_type)
                return
        self.errors.add(NonConstantDefaultError(
            function.qualified_name,
            param.name,
            location=default.location,
            source_line=self._line(default.location),
        ))

    def _is_constant_form(self, expr: Expression) -> bool:
        if isinstance(expr, (IntegerLiteral, BoolLiteral, StringLiteral)):
            return True
        if isinstance(expr, IdentifierExpression):
            return expr.name in self.macros
        if isinstance(expr, UnaryExpression):
            return expr.operator != UnaryOperator.REFERENCE and self._is_constant_form(expr.operand)
        if isinstance(expr, BinaryExpression):
            return self._is_constant_form(expr.left) and self._is_constant_form(expr.right)
        if isinstance(expr, FieldAccessExpression):
            return expr.is_path
        return False

    # =========================================================================
    # Function Bodies
    # =========================================================================

    def _lower_function(self, function: FunctionNode) -> None:
        self._function = function
        self._loop_depth = 0
        self._scopes = [{
            param.name: LocalVariable(param.name, param.param_type, param.location)
            for param in function.parameters
        }]
        try:
            if function.body is not None:
                self.visit(function.body)
        finally:
            self._scopes = []
            self._function = None

        return_type = function.return_type or TYPE_UNIT
        if function.body is not None and not return_type.is_unit and not self._terminates(function.body):
            self._type_error(
                f"'{function.qualified_name}' can reach its end without returning a value "
                f"of type '{return_type}'",
                function,
            )
        logger.debug(f"lowered {function.qualified_name}")

    def _terminates(self, stmt) -> bool:
        """
        True when control cannot run past the end of a statement.

        'return' and '?' end the function. A block ends it when any of its
        statements does, an 'if' when it has an else and both branches do,
        and 'loop' (or 'while' on a constant true) when no 'break' leaves it.
        """
        if isinstance(stmt, (ReturnStatement, PanicStatement)):
            return True
        if isinstance(stmt, BlockStatement):
            return any(self._terminates(inner) for inner in stmt.statements)
        if isinstance(stmt, IfStatement):
            return (
                stmt.else_branch is not None
                and self._terminates(stmt.then_branch)
                and self._terminates(stmt.else_branch)
            )
        if isinstance(stmt, LoopStatement):
            return not self._breaks_out(stmt.body)
        if isinstance(stmt, WhileStatement):
            condition = stmt.condition.constant
            return condition is not None and bool(condition.value) and not self._breaks_out(stmt.body)
        return False

    def _breaks_out(self, stmt) -> bool:
        """True if a 'break' in stmt leaves the loop whose body contains it."""
        if isinstance(stmt, BreakStatement):
            return True
        if isinstance(stmt, BlockStatement):
            return any(self._breaks_out(inner) for inner in stmt.statements)
        if isinstance(stmt, IfStatement):
            return self._breaks_out(stmt.then_branch) or (
                stmt.else_branch is not None and self._breaks_out(stmt.else_branch)
            )
        return False

    def _lookup(self, name: str) -> Optional[LocalVariable]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def _declare(self, name: str, var_type: Optional[RockType], location: SourceLocation) -> None:
        # Shadowing is allowed, including within the same block.
        self._scopes[-1][name] = LocalVariable(name, var_type, location)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def visit_BlockStatement(self, node: BlockStatement) -> None:
        self._scopes.append({})
        try:
            for stmt in node.statements:
                if self.errors.should_stop():
                    break
                self.visit(stmt)
        finally:
            self._scopes.pop()

    def visit_LetStatement(self, node: LetStatement) -> None:
        init_type = None
        if node.initializer is not None:
            init_type = self._lower_expression(node.initializer)

        resolved = None
        if node.declared_type is not None:
            if self._check_type(node.declared_type, node):
                resolved = node.declared_type
                if node.initializer is not None:
                    self._check_assignable(node.initializer, resolved)
        elif node.initializer is None:
            self._type_error(
                f"cannot infer the type of '{node.name}' without an initializer", node,
            )
        elif init_type is not None and init_type.is_unit:
            self._type_error(
                f"cannot bind '{node.name}' to an expression with no value", node,
            )
        elif init_type is not None:
            constant = node.initializer.constant
            if self._yields_reference(node.initializer):
                resolved = init_type
            elif constant is not None and constant.untyped:
                resolved = constant.type
            else:
                resolved = init_type.dereference()

        node.resolved_type = resolved
        self._declare(node.name, resolved, node.location)

    def visit_AssignStatement(self, node: AssignStatement) -> None:
        target_type = self._lower_assignment_target(node.target)
        value_type = self._lower_expression(node.value)
        if target_type is None:
            return

        target_value = target_type.dereference()
        if node.operator == AssignmentOperator.ASSIGN:
            if target_type.is_reference and value_type is not None and value_type.is_reference:
                # Reference to reference rebinds the target.
                self._check_assignable(node.value, target_type)
            else:
                self._check_assignable(node.value, target_value)
            return

        if not target_value.is_integer:
            self._type_error(
                f"operator '{node.operator.value}' needs an integer target",
                node, expected="integer", actual=target_value,
            )
            return
        if value_type is not None and not value_type.dereference().is_integer:
            self._type_error(
                f"operator '{node.operator.value}' needs an integer value",
                node.value, expected="integer", actual=value_type,
            )
            return

        constant = node.value.constant
        if constant is not None and constant.value == 0 and node.operator in (
            AssignmentOperator.DIV_ASSIGN, AssignmentOperator.MOD_ASSIGN,
        ):
            self.errors.add(SemanticError(
                "division by zero",
                location=node.value.location,
                source_line=self._line(node.value.location),
            ))

    def visit_IndexAssignStatement(self, node: IndexAssignStatement) -> None:
        target_type = self._lower_assignment_target(node.target, bit_index=True)
        index_type = self._lower_expression(node.index)
        value_type = self._lower_expression(node.value)
        if target_type is None:
            return

        target_value = target_type.dereference()
        if not target_value.is_integer:
            self.errors.add(InvalidBitIndexTargetError(
                self._describe(node.target),
                str(target_type),
                location=node.target.location,
                source_line=self._line(node.target.location),
            ))
            return

        self._check_bit_index(node.index, index_type, target_value)

        if value_type is not None:
            value = value_type.dereference()
            if not (value.is_integer or value.is_bool):
                self._type_error(
                    "bit value must be an integer or bool",
                    node.value, expected="integer", actual=value_type,
                )

    def visit_IfStatement(self, node: IfStatement) -> None:
        self._lower_condition(node.condition)
        self.visit(node.then_branch)
        if node.else_branch is not None:
            self.visit(node.else_branch)

    def visit_WhileStatement(self, node: WhileStatement) -> None:
        self._lower_condition(node.condition)
        self._lower_loop_body(node.body)

    def visit_LoopStatement(self, node: LoopStatement) -> None:
        self._lower_loop_body(node.body)

    def visit_ForRangeStatement(self, node: ForRangeStatement) -> None:
        counter = self._lower_range(node.range)
        node.counter_type = counter
        self._scopes.append({
            node.variable: LocalVariable(node.variable, counter, node.location),
        })
        try:
            self._lower_loop_body(node.body)
        finally:
            self._scopes.pop()

    def _lower_loop_body(self, body: BlockStatement) -> None:
        self._loop_depth += 1
        try:
            self.visit(body)
        finally:
            self._loop_depth -= 1

    def _lower_range(self, node: RangeExpression) -> Optional[RockType]:
        """Type the range bounds; the counter takes the bounds' common type."""
        start_type = self._lower_expression(node.start)
        end_type = self._lower_expression(node.end)
        if start_type is None or end_type is None:
            return None

        start_type = start_type.dereference()
        end_type = end_type.dereference()
        for bound, bound_type in ((node.start, start_type), (node.end, end_type)):
            if not bound_type.is_integer:
                self._type_error(
                    "range bounds must be integers", bound,
                    expected="integer", actual=bound_type,
                )
                return None

        typed = [
            bound_type
            for bound, bound_type in ((node.start, start_type), (node.end, end_type))
            if bound.constant is None or not bound.constant.untyped
        ]
        if len(typed) == 2:
            counter = common_type(typed[0], typed[1])
        elif typed:
            counter = typed[0]
        else:
            counter = common_type(start_type, end_type)

        self._check_assignable(node.start, counter)
        self._check_assignable(node.end, counter)
        node.resolved_type = counter
        return counter

    def visit_ReturnStatement(self, node: ReturnStatement) -> None:
        function = self._function
        expected = function.return_type or TYPE_UNIT

        if node.value is None:
            if not expected.is_unit:
                self._type_error(
                    f"'{function.qualified_name}' must return a value of type '{expected}'",
                    node,
                )
            return

        value_type = self._lower_expression(node.value)
        if expected.is_unit:
            if value_type is not None and not value_type.is_unit:
                self._type_error(
                    f"'{function.qualified_name}' does not return a value",
                    node.value, expected=expected, actual=value_type,
                )
            return
        self._check_assignable(node.value, expected)

    def visit_BreakStatement(self, node: BreakStatement) -> None:
        self._check_in_loop("break", node)

    def visit_ContinueStatement(self, node: ContinueStatement) -> None:
        self._check_in_loop("continue", node)

    def _check_in_loop(self, keyword: str, node) -> None:
        if self._loop_depth == 0:
            self.errors.add(InvalidBreakContinueError(
                keyword, location=node.location, source_line=self._line(node.location),
            ))

    def visit_AssertStatement(self, node: AssertStatement) -> None:
        if not node.is_equality:
            self._lower_condition(node.condition)
            return

        actual = self._lower_expression(node.condition)
        expected = self._lower_expression(node.expected)
        if actual is None or expected is None:
            return
        actual = actual.dereference()
        expected = expected.dereference()
        if not self._comparable(actual, expected):
            self._type_error(
                f"cannot compare '{actual}' with '{expected}'",
                node, expected=actual, actual=expected,
            )

    def visit_PanicStatement(self, node: PanicStatement) -> None:
        payload_type = self._lower_expression(node.payload)
        if payload_type is None:
            return
        payload = payload_type.dereference()
        if not (payload.is_scalar or self._is_enum(payload)):
            self._type_error(
                f"cannot panic with a value of type '{payload}'", node.payload,
            )

    def visit_InterruptStatement(self, node: InterruptStatement) -> None:
        if not TYPE_U32.can_hold(node.number):
            self.errors.add(LiteralRangeError(
                str(node.number), "u32", "interrupt number",
                location=node.location, source_line=self._line(node.location),
            ))

    def visit_ExpressionStatement(self, node: ExpressionStatement) -> None:
        self._lower_expression(node.expression)

    # -------------------------------------------------------------------------
    # Statement Helpers
    # -------------------------------------------------------------------------

    def _lower_condition(self, expr: Expression) -> None:
        cond_type = self._lower_expression(expr)
        if cond_type is None:
            return
        cond_type = cond_type.dereference()
        if not (cond_type.is_bool or cond_type.is_integer):
            self._type_error("condition must be a bool", expr, expected=TYPE_BOOL, actual=cond_type)

    def _lower_assignment_target(self, target: Expression, bit_index: bool = False) -> Optional[RockType]:
        """Type an assignment target, reporting targets that cannot be assigned."""
        if isinstance(target, IdentifierExpression):
            var = self._lookup(target.name)
            if var is None:
                if target.name in self.macros:
                    self._type_error(f"cannot assign to macro constant '{target.name}'", target)
                else:
                    self._report_unknown(target)
                return None
            target.resolved_type = var.var_type
            return var.var_type

        if isinstance(target, FieldAccessExpression) and not target.is_path:
            target_type = self._lower_expression(target)
            if target_type is not None and not self._is_lvalue(target):
                self.errors.add(InvalidAssignmentTargetError(
                    location=target.location, source_line=self._line(target.location),
                ))
                return None
            return target_type

        self._lower_expression(target)
        if bit_index and target.resolved_type is not None:
            self.errors.add(InvalidBitIndexTargetError(
                self._describe(target),
                str(target.resolved_type),
                location=target.location,
                source_line=self._line(target.location),
            ))
            return None
        self.errors.add(InvalidAssignmentTargetError(
            location=target.location, source_line=self._line(target.location),
        ))
        return None

    def _check_bit_index(self, index: Expression, index_type: Optional[RockType], target: RockType) -> None:
        if index_type is None:
            return
        if not index_type.dereference().is_integer:
            self._type_error("bit index must be an integer", index, expected="integer", actual=index_type)
            return
        constant = index.constant
        if constant is not None and not 0 <= constant.value < target.bit_width:
            self.errors.add(LiteralRangeError(
                str(constant.value), str(target), f"bit index must be below {target.bit_width}",
                location=index.location, source_line=self._line(index.location),
            ))

    def _is_lvalue(self, expr: Expression) -> bool:
        if isinstance(expr, IdentifierExpression):
            return self._lookup(expr.name) is not None
        if isinstance(expr, FieldAccessExpression) and not expr.is_path:
            object_type = expr.object_expr.resolved_type
            if object_type is not None and object_type.is_reference:
                return True
            return self._is_lvalue(expr.object_expr)
        return False

    @staticmethod
    def _yields_reference(expr: Expression) -> bool:
        """True for '&x' and calls returning a reference; reading a variable copies its value."""
        if isinstance(expr, UnaryExpression):
            return expr.operator == UnaryOperator.REFERENCE
        return isinstance(expr, CallExpression)

    @staticmethod
    def _describe(expr: Expression) -> str:
        if isinstance(expr, IdentifierExpression):
            return expr.name
        if isinstance(expr, FieldAccessExpression) and not expr.is_path:
            return f"{SemanticLowering._describe(expr.object_expr)}.{expr.field_name}"
        return "expression"

    # =========================================================================
    # Type Compatibility
    # =========================================================================

    def _is_enum(self, rock_type: RockType) -> bool:
        return rock_type.is_named and rock_type.name in self.enums

    def _comparable(self, left: RockType, right: RockType) -> bool:
        if left.is_integer and right.is_integer:
            return True
        if left.is_bool and right.is_bool:
            return True
        if left.is_str and right.is_str:
            return True
        return self._is_enum(left) and left == right

    def _check_assignable(self, expr: Expression, target: Optional[RockType]) -> None:
        """
        Check that a value can be stored in a slot of the target type.

        Constants are checked by value: the literal must fit the target's
        range, and a binary literal may not be written wider than the
        target. Untyped constants take the target type once they pass.
        """
        actual = expr.resolved_type
        if target is None or actual is None:
            return

        if target.is_reference:
            if not actual.is_reference or actual.dereference() != target.dereference():
                self._type_error("mismatched types", expr, expected=target, actual=actual)
            return

        value = actual.dereference()
        constant = expr.constant

        if target.is_integer:
            if constant is not None and constant.type.is_integer:
                if self._check_literal_fits(expr, constant, target) and constant.untyped:
                    expr.resolved_type = target
                return
            if not value.is_integer:
                self._type_error("mismatched types", expr, expected=target, actual=actual)
            return

        if value != target:
            self._type_error("mismatched types", expr, expected=target, actual=actual)

    def _check_literal_fits(self, expr: Expression, constant: ConstantValue, target: RockType) -> bool:
        if isinstance(expr, IntegerLiteral):
            text = expr.text or str(expr.value)
        elif isinstance(expr, IdentifierExpression):
            text = f"{expr.name} ({constant.value})"
        else:
            text = str(constant.value)

        reason = ""
        if not target.can_hold(constant.value):
            reason = f"range is {target.min_value}..{target.max_value}"
        elif constant.radix == 2 and constant.width > target.bit_width:
            reason = f"{constant.width}-bit binary literal"
        if not reason:
            return True

        self.errors.add(LiteralRangeError(
            text, str(target), reason,
            location=expr.location, source_line=self._line(expr.location),
        ))
        return False

    # =========================================================================
    # Expressions
    # =========================================================================

    def _lower_expression(self, expr: Optional[Expression]) -> Optional[RockType]:
        if expr is None:
            return None
        expr.resolved_type = self.visit(expr)
        return expr.resolved_type

    def visit_IntegerLiteral(self, node: IntegerLiteral) -> Optional[RockType]:
        node.constant = literal_constant(node)
        if not node.constant.type.can_hold(node.value):
            self.errors.add(LiteralRangeError(
                node.text or str(node.value), str(node.constant.type), "wider than 64 bits",
                location=node.location, source_line=self._line(node.location),
            ))
        return node.constant.type

    def visit_BoolLiteral(self, node: BoolLiteral) -> RockType:
        node.constant = ConstantValue(node.value, TYPE_BOOL)
        return TYPE_BOOL

    def visit_StringLiteral(self, node: StringLiteral) -> RockType:
        node.constant = ConstantValue(node.value, TYPE_STR)
        return TYPE_STR

    def visit_IdentifierExpression(self, node: IdentifierExpression) -> Optional[RockType]:
        var = self._lookup(node.name)
        if var is not None:
            return var.var_type

        macro = self.macros.get(node.name)
        if macro is not None:
            value = macro.value
            if value is None:
                return None
            if value.resolved_type is None:
                self._lower_expression(value)
            node.constant = value.constant
            return value.resolved_type

        if node.name in self.functions:
            self._type_error(f"function '{node.name}' used as a value", node)
            return None

        self._report_unknown(node)
        return None

    def visit_UnaryExpression(self, node: UnaryExpression) -> Optional[RockType]:
        op = node.operator

        if op == UnaryOperator.REFERENCE:
            operand_type = self._lower_expression(node.operand)
            if operand_type is None:
                return None
            if not self._is_lvalue(node.operand):
                self._type_error("cannot take a reference to a temporary value or constant", node)
                return None
            return operand_type.reference()

        operand_type = self._lower_expression(node.operand)
        if operand_type is None:
            return None
        operand_type = operand_type.dereference()
        constant = node.operand.constant

        if op == UnaryOperator.LOGICAL_NOT:
            if not (operand_type.is_bool or operand_type.is_integer):
                self._type_error("operator '!' needs a bool", node, expected=TYPE_BOOL, actual=operand_type)
                return None
            if constant is not None:
                node.constant = ConstantValue(not constant.value, TYPE_BOOL)
            return TYPE_BOOL

        if not operand_type.is_integer:
            self._type_error(
                f"operator '{op.value}' needs an integer", node,
                expected="integer", actual=operand_type,
            )
            return None

        if constant is not None:
            if op == UnaryOperator.NEGATE:
                raw = -constant.value
                if constant.untyped or not constant.type.can_hold(raw):
                    result_type = literal_type_for(raw)
                else:
                    result_type = constant.type
                node.constant = ConstantValue(raw, result_type, untyped=constant.untyped)
                return result_type
            node.constant = self._integer_constant(~constant.value, constant.type, constant.untyped)
            return node.constant.type
        return operand_type

    def visit_BinaryExpression(self, node: BinaryExpression) -> Optional[RockType]:
        left_type = self._lower_expression(node.left)
        right_type = self._lower_expression(node.right)
        if left_type is None or right_type is None:
            return None
        left_type = left_type.dereference()
        right_type = right_type.dereference()
        op = node.operator

        if op.is_logical:
            for operand, operand_type in ((node.left, left_type), (node.right, right_type)):
                if not (operand_type.is_bool or operand_type.is_integer):
                    self._type_error(
                        f"operator '{op.value}' needs bool operands", operand,
                        expected=TYPE_BOOL, actual=operand_type,
                    )
                    return None
            result_type = TYPE_BOOL
        elif op in (BinaryOperator.EQUAL, BinaryOperator.NOT_EQUAL):
            if not self._comparable(left_type, right_type):
                self._type_error(
                    f"cannot compare '{left_type}' with '{right_type}'", node,
                    expected=left_type, actual=right_type,
                )
                return None
            result_type = TYPE_BOOL
        else:
            for operand, operand_type in ((node.left, left_type), (node.right, right_type)):
                if not operand_type.is_integer:
                    self._type_error(
                        f"operator '{op.value}' needs integer operands", operand,
                        expected="integer", actual=operand_type,
                    )
                    return None
            if op.is_comparison:
                result_type = TYPE_BOOL
            else:
                result_type = self._arithmetic_type(node, left_type, right_type)

        if node.left.constant is not None and node.right.constant is not None:
            node.constant = self._fold_binary(node, result_type)
            if node.constant is not None:
                return node.constant.type
        return result_type

    @staticmethod
    def _arithmetic_type(node: BinaryExpression, left: RockType, right: RockType) -> RockType:
        """An untyped literal operand adopts the other operand's type."""
        left_untyped = node.left.constant is not None and node.left.constant.untyped
        right_untyped = node.right.constant is not None and node.right.constant.untyped
        if node.operator in _SHIFTS:
            return left
        if left_untyped and not right_untyped:
            return right
        if right_untyped and not left_untyped:
            return left
        return common_type(left, right)

    def _fold_binary(self, node: BinaryExpression, result_type: RockType) -> Optional[ConstantValue]:
        left = node.left.constant
        right = node.right.constant
        op = node.operator

        if op == BinaryOperator.LOGICAL_AND:
            return ConstantValue(bool(left.value) and bool(right.value), TYPE_BOOL)
        if op == BinaryOperator.LOGICAL_OR:
            return ConstantValue(bool(left.value) or bool(right.value), TYPE_BOOL)
        if op.is_comparison:
            return ConstantValue(_COMPARE[op](left.value, right.value), TYPE_BOOL)

        if op in (BinaryOperator.DIVIDE, BinaryOperator.MODULO) and right.value == 0:
            self.errors.add(SemanticError(
                "division by zero in constant expression",
                location=node.location,
                source_line=self._line(node.location),
            ))
            return None
        if op in _SHIFTS and right.value < 0:
            return None

        raw = _ARITHMETIC[op](left.value, right.value)
        untyped = left.untyped and right.untyped
        if untyped:
            folded_type = literal_type_for(raw)
            if not folded_type.can_hold(raw):
                self.errors.add(SemanticError(
                    "constant expression does not fit in 64 bits",
                    location=node.location,
                    source_line=self._line(node.location),
                ))
                return None
            return ConstantValue(raw, folded_type, untyped=True)

        radix = 16 if left.radix != 10 and right.radix != 10 else 10
        width = result_type.bit_width if radix == 16 else 0
        return ConstantValue(wrap_integer(raw, result_type), result_type, radix, width)

    @staticmethod
    def _integer_constant(raw: int, rock_type: RockType, untyped: bool) -> ConstantValue:
        if untyped:
            return ConstantValue(raw, literal_type_for(raw), untyped=True)
        return ConstantValue(wrap_integer(raw, rock_type), rock_type)

    def visit_IndexExpression(self, node: IndexExpression) -> Optional[RockType]:
        target_type = self._lower_expression(node.target)
        index_type = self._lower_expression(node.index)
        if target_type is None or index_type is None:
            return None
        target_type = target_type.dereference()

        if target_type.is_integer:
            self._check_bit_index(node.index, index_type, target_type)
            target, index = node.target.constant, node.index.constant
            if target is not None and index is not None and 0 <= index.value < target_type.bit_width:
                node.constant = ConstantValue((target.value >> index.value) & 1, TYPE_U8)
            return TYPE_U8

        if target_type.is_str:
            if not index_type.dereference().is_integer:
                self._type_error("string index must be an integer", node.index)
                return None
            target, index = node.target.constant, node.index.constant
            if target is not None and index is not None:
                data = target.value.encode("utf-8")
                if 0 <= index.value < len(data):
                    node.constant = ConstantValue(data[index.value], TYPE_U8)
            return TYPE_U8

        self._type_error(f"cannot index a value of type '{target_type}'", node)
        return None

    def visit_FieldAccessExpression(self, node: FieldAccessExpression) -> Optional[RockType]:
        if node.is_path:
            return self._lower_variant(node)

        object_type = self._lower_expression(node.object_expr)
        if object_type is None:
            return None
        struct = self.structs.get(object_type.name) if object_type.is_named else None
        if struct is None:
            self._type_error(f"type '{object_type}' has no fields", node)
            return None

        for struct_field in struct.fields:
            if struct_field.name == node.field_name:
                return struct_field.field_type

        self.errors.add(UnknownMemberError(
            struct.name, node.field_name, "field",
            location=node.location,
            source_line=self._line(node.location),
            similar_members=get_close_matches(node.field_name, [f.name for f in struct.fields], n=3),
        ))
        return None

    def _lower_variant(self, node: FieldAccessExpression) -> Optional[RockType]:
        enum = self.enums.get(node.type_name)
        if enum is None:
            if node.type_name in self.structs:
                self._type_error(f"'{node.type_name}::{node.field_name}' is not a value", node)
            else:
                self._type_error(f"unknown type '{node.type_name}'", node)
            return None

        enum_type = RockType(BaseType.NAMED, enum.name)
        for variant in enum.variants:
            if variant.name == node.field_name:
                if variant.resolved_value is not None:
                    node.constant = ConstantValue(variant.resolved_value, enum_type)
                return enum_type

        self.errors.add(UnknownMemberError(
            enum.name, node.field_name, "variant",
            location=node.location,
            source_line=self._line(node.location),
            similar_members=get_close_matches(node.field_name, [v.name for v in enum.variants], n=3),
        ))
        return None

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    def visit_CallExpression(self, node: CallExpression) -> Optional[RockType]:
        if node.receiver is not None:
            return self._lower_method_call(node)
        if node.type_name is not None:
            return self._lower_path_call(node)

        function = self.functions.get(node.function_name)
        if function is not None:
            return self._bind_call(node, function, function.parameters)

        builtin = BUILTINS.get(node.function_name)
        if builtin is not None:
            return self._lower_builtin_call(node, builtin)

        self._lower_arguments(node)
        candidates = list(self.functions) + list(BUILTINS)
        self.errors.add(UndeclaredIdentifierError(
            node.function_name,
            location=node.location,
            source_line=self._line(node.location),
            similar_identifiers=get_close_matches(node.function_name, candidates, n=3),
        ))
        return None

    def _lower_arguments(self, node: CallExpression) -> None:
        for argument in node.arguments:
            self._lower_expression(argument)

    def _lower_method_call(self, node: CallExpression) -> Optional[RockType]:
        """recv.method(args): the receiver becomes the implicit self argument."""
        receiver_type = self._lower_expression(node.receiver)
        if receiver_type is None:
            self._lower_arguments(node)
            return None
        if not receiver_type.is_named:
            self._lower_arguments(node)
            self._type_error(
                f"cannot call method '{node.function_name}' on a value of type '{receiver_type}'",
                node,
            )
            return None

        owner = receiver_type.name
        method = self.methods.get((owner, node.function_name))
        if method is None:
            self._lower_arguments(node)
            self.errors.add(UnknownMemberError(
                owner, node.function_name, "method",
                location=node.location,
                source_line=self._line(node.location),
                similar_members=get_close_matches(
                    node.function_name, [m for t, m in self.methods if t == owner], n=3,
                ),
            ))
            return None

        if not method.takes_self:
            self._lower_arguments(node)
            self._type_error(
                f"'{method.qualified_name}' takes no self; call it as "
                f"{owner}::{method.name}()",
                node,
            )
            return None

        if not receiver_type.is_reference and not self._is_lvalue(node.receiver):
            self._type_error("method receiver must be a variable or a field", node.receiver)

        node.receiver_is_reference = receiver_type.is_reference
        return self._bind_call(node, method, method.parameters[1:])

    def _lower_path_call(self, node: CallExpression) -> Optional[RockType]:
        """Type::function(args): every parameter, including self, is explicit."""
        method = self.methods.get((node.type_name, node.function_name))
        if method is not None:
            return self._bind_call(node, method, method.parameters)

        self._lower_arguments(node)
        if node.type_name not in self.structs and node.type_name not in self.enums:
            self._type_error(f"unknown type '{node.type_name}'", node)
        else:
            self.errors.add(UnknownMemberError(
                node.type_name, node.function_name, "function",
                location=node.location,
                source_line=self._line(node.location),
                similar_members=get_close_matches(
                    node.function_name, [m for t, m in self.methods if t == node.type_name], n=3,
                ),
            ))
        return None

    def _bind_call(self, node: CallExpression, function: FunctionNode, parameters: list[ParameterNode]) -> RockType:
        """
        Check arguments against parameters and fill in defaults.

        Args:
            node: Call being lowered
            function: Called function or method
            parameters: Parameters the written arguments map to

        Returns:
            The function's return type (unit when it declares none)
        """
        self._lower_arguments(node)
        return_type = function.return_type or TYPE_UNIT
        node.callee = function
        node.symbol = function_symbol(function)

        arguments = node.arguments
        required = sum(1 for param in parameters if param.default is None)
        if len(arguments) > len(parameters) or len(arguments) < required:
            self.errors.add(ArityError(
                function.qualified_name, required, len(parameters), len(arguments),
                location=node.location, source_line=self._line(node.location),
            ))
            return return_type

        for argument, param in zip(arguments, parameters):
            self._check_assignable(argument, param.param_type)

        resolved = list(arguments)
        for param in parameters[len(arguments):]:
            resolved.append(copy.deepcopy(param.default))
        node.resolved_arguments = resolved
        return return_type

    def _lower_builtin_call(self, node: CallExpression, builtin: BuiltinFunction) -> RockType:
        self._lower_arguments(node)
        node.builtin = builtin.name

        if len(node.arguments) != 1:
            self.errors.add(ArityError(
                builtin.name, 1, 1, len(node.arguments),
                location=node.location, source_line=self._line(node.location),
            ))
            return builtin.return_type

        argument = node.arguments[0]
        if builtin.parameter is not None:
            self._check_assignable(argument, builtin.parameter)
        elif argument.resolved_type is not None:
            value = argument.resolved_type.dereference()
            if not (value.is_scalar or self._is_enum(value)):
                self._type_error(
                    f"'{builtin.name}' cannot output a value of type '{value}'", argument,
                )

        node.resolved_arguments = list(node.arguments)
        return builtin.return_type

