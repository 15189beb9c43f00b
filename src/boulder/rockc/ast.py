"""
Rock Abstract Syntax Tree (AST) Definitions
===========================================

This module defines the AST node types produced by the Rock parser and
consumed by semantic lowering, the code generator and the interpreter.

Node Hierarchy
--------------
ASTNode (base)
├── ProgramNode - root node of one source file
├── Declarations
│   ├── ImportDeclaration - use "path"
│   ├── MacroConstDeclaration - macro NAME = literal
│   ├── FunctionNode - fn name(params) -> type { body }
│   ├── ParameterNode - function parameter (with optional default)
│   ├── StructDeclaration / StructField
│   ├── EnumDeclaration / EnumVariant
│   └── ImplBlock - methods attached to a struct
├── Statements
│   ├── BlockStatement - { ... }
│   ├── LetStatement - let x: T = e
│   ├── AssignStatement - x = e, x += e, ...
│   ├── IndexAssignStatement - x[i] = e (sets one bit)
│   ├── IfStatement, WhileStatement, LoopStatement, ForRangeStatement
│   ├── ReturnStatement, BreakStatement, ContinueStatement
│   ├── AssertStatement - assert e / assert a = b
│   ├── PanicStatement - ? e
│   ├── InterruptStatement - @N
│   └── ExpressionStatement
└── Expressions
    ├── IntegerLiteral, BoolLiteral, StringLiteral
    ├── IdentifierExpression
    ├── BinaryExpression, UnaryExpression
    ├── CallExpression - f(x), p.m(x), Type::f(x)
    ├── IndexExpression - x[i]
    ├── FieldAccessExpression - p.x, Color::Red
    └── RangeExpression - a..b, a..=b

Annotations
-----------
The parser builds the tree; later passes never restructure it. Semantic
lowering only fills in annotation fields, all declared with compare=False
so they do not take part in equality and are skipped by generic_visit:

- Expression.resolved_type: type of the value
- Expression.constant: folded compile-time value, if any
- CallExpression.resolved_arguments: arguments with defaults filled in
- CallExpression.symbol: C name of the called procedure
- CallExpression.receiver_is_reference: method receiver already a pointer
- CallExpression.callee / builtin: called FunctionNode or builtin name
- EnumVariant.resolved_value: explicit or implicit variant value
- LetStatement.resolved_type: declared or inferred variable type
- ForRangeStatement.counter_type: type of the loop variable
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional, Union

from boulder.errors import SourceLocation
from boulder.rockc.types import RockType


# =============================================================================
# Compile-time Constants
# =============================================================================

@dataclass(frozen=True)
class ConstantValue:
    """
    A value known at compile time.

    Attributes:
        value: int, bool or str payload
        type: Type of the value
        radix: 2 or 16 when the value came straight from such a literal
        width: Written bit width of binary/hex/char literals (0 otherwise)
        untyped: True for decimal literals and folds of them only
    """
    value: Union[int, bool, str]
    type: RockType
    radix: int = 10
    width: int = 0
    untyped: bool = False


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        location: Source location where this node appears
    """
    location: SourceLocation

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}@{self.location.line}:{self.location.column}"


@dataclass
class Expression(ASTNode):
    """
    Base class for expression nodes.

    Attributes:
        resolved_type: Type of the expression (set by semantic lowering)
        constant: Folded value if the expression is a compile-time constant
    """
    resolved_type: Optional[RockType] = field(default=None, compare=False)
    constant: Optional[ConstantValue] = field(default=None, compare=False)


@dataclass
class Statement(ASTNode):
    """Base class for statement nodes."""
    pass


@dataclass
class Declaration(ASTNode):
    """Base class for top-level declarations."""
    pass


# =============================================================================
# Program Root Node
# =============================================================================

@dataclass
class ProgramNode(ASTNode):
    """
    Root node of one parsed file.

    Attributes:
        declarations: Top-level declarations in source order
        filename: File the declarations came from
    """
    declarations: list[Declaration] = field(default_factory=list)
    filename: str = "<input>"


# =============================================================================
# Declaration Nodes
# =============================================================================

@dataclass
class ImportDeclaration(Declaration):
    """use "path/to/file.rock" """
    path: str = ""


@dataclass
class MacroConstDeclaration(Declaration):
    """
    macro NAME = literal

    Attributes:
        name: Constant name
        value: The literal (an IntegerLiteral, BoolLiteral or StringLiteral)
    """
    name: str = ""
    value: Optional[Expression] = None


@dataclass
class ParameterNode(ASTNode):
    """
    Function parameter.

    Attributes:
        name: Parameter name ('self' for receivers)
        param_type: Declared type (for 'self', the owning struct type)
        default: Optional default-value expression
        is_self: True for a 'self' or '&self' receiver
    """
    name: str = ""
    param_type: Optional[RockType] = None
    default: Optional[Expression] = None
    is_self: bool = False


@dataclass
class FunctionNode(Declaration):
    """
    Function definition.

    Attributes:
        name: Function name
        parameters: Ordered parameter list
        return_type: Declared return type (None means unit)
        body: Function body
        owner: Struct name for methods declared in an impl block
    """
    name: str = ""
    parameters: list[ParameterNode] = field(default_factory=list)
    return_type: Optional[RockType] = None
    body: Optional["BlockStatement"] = None
    owner: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        """'Type::method' for methods, the plain name otherwise."""
        return f"{self.owner}::{self.name}" if self.owner else self.name

    @property
    def takes_self(self) -> bool:
        return bool(self.parameters) and self.parameters[0].is_self


@dataclass
class StructField(ASTNode):
    name: str = ""
    field_type: Optional[RockType] = None


@dataclass
class StructDeclaration(Declaration):
    """struct Name { field: type, ... }"""
    name: str = ""
    fields: list[StructField] = field(default_factory=list)


@dataclass
class EnumVariant(ASTNode):
    """
    One enum variant.

    Attributes:
        name: Variant name
        value: Optional explicit value (integer literal)
    """
    name: str = ""
    value: Optional[Expression] = None
    resolved_value: Optional[int] = field(default=None, compare=False)


@dataclass
class EnumDeclaration(Declaration):
    """enum Name { A, B = 5, C }"""
    name: str = ""
    variants: list[EnumVariant] = field(default_factory=list)


@dataclass
class ImplBlock(Declaration):
    """impl Type { fn ... }"""
    type_name: str = ""
    methods: list[FunctionNode] = field(default_factory=list)


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class BlockStatement(Statement):
    statements: list[Statement] = field(default_factory=list)


@dataclass
class LetStatement(Statement):
    """
    Local variable binding.

        let x: u8 = 5
        let y = x

    Attributes:
        name: Variable name
        declared_type: Type written in source (None when inferred)
        initializer: Optional initial value
        resolved_type: Declared or inferred type (annotation)
    """
    name: str = ""
    declared_type: Optional[RockType] = None
    initializer: Optional[Expression] = None
    resolved_type: Optional[RockType] = field(default=None, compare=False)


class AssignmentOperator(Enum):
    """Assignment operators; the value is the source spelling."""
    ASSIGN = "="
    ADD_ASSIGN = "+="
    SUB_ASSIGN = "-="
    MUL_ASSIGN = "*="
    DIV_ASSIGN = "/="
    MOD_ASSIGN = "%="
    AND_ASSIGN = "&="
    OR_ASSIGN = "|="
    XOR_ASSIGN = "^="
    LSHIFT_ASSIGN = "<<="
    RSHIFT_ASSIGN = ">>="


@dataclass
class AssignStatement(Statement):
    target: Optional[Expression] = None
    operator: AssignmentOperator = AssignmentOperator.ASSIGN
    value: Optional[Expression] = None


@dataclass
class IndexAssignStatement(Statement):
    """
    Bit-index assignment: target[index] = value

    Clears bit 'index' (0 = least significant) of the integer target and
    ORs in the low bit of value.
    """
    target: Optional[Expression] = None
    index: Optional[Expression] = None
    value: Optional[Expression] = None


@dataclass
class IfStatement(Statement):
    """
    Attributes:
        condition: Condition expression
        then_branch: Block run when the condition holds
        else_branch: Optional BlockStatement or chained IfStatement
    """
    condition: Optional[Expression] = None
    then_branch: Optional[BlockStatement] = None
    else_branch: Optional[Statement] = None


@dataclass
class WhileStatement(Statement):
    condition: Optional[Expression] = None
    body: Optional[BlockStatement] = None


@dataclass
class LoopStatement(Statement):
    """Unconditional loop; only break or return leave it."""
    body: Optional[BlockStatement] = None


@dataclass
class ForRangeStatement(Statement):
    """
    for variable in start..end { } / for variable in start..=end { }

    Attributes:
        variable: Loop variable, scoped to the body
        range: The range being iterated
        body: Loop body
        counter_type: Type of the loop variable (annotation)
    """
    variable: str = ""
    range: Optional["RangeExpression"] = None
    body: Optional[BlockStatement] = None
    counter_type: Optional[RockType] = field(default=None, compare=False)


@dataclass
class ReturnStatement(Statement):
    value: Optional[Expression] = None


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class AssertStatement(Statement):
    """
    assert condition        (boolean form, expected is None)
    assert actual = expected (equality form)
    """
    condition: Optional[Expression] = None
    expected: Optional[Expression] = None

    @property
    def is_equality(self) -> bool:
        return self.expected is not None


@dataclass
class PanicStatement(Statement):
    """? payload"""
    payload: Optional[Expression] = None


@dataclass
class InterruptStatement(Statement):
    """@number"""
    number: int = 0


@dataclass
class ExpressionStatement(Statement):
    expression: Optional[Expression] = None


# =============================================================================
# Expression Nodes
# =============================================================================

class BinaryOperator(Enum):
    """Binary operators; the value is the source (and C) spelling."""
    # Arithmetic
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    MODULO = "%"

    # Comparison
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS = "<"
    GREATER = ">"
    LESS_EQ = "<="
    GREATER_EQ = ">="

    # Logical
    LOGICAL_AND = "&&"
    LOGICAL_OR = "||"

    # Bitwise
    BITWISE_AND = "&"
    BITWISE_OR = "|"
    BITWISE_XOR = "^"
    LEFT_SHIFT = "<<"
    RIGHT_SHIFT = ">>"

    @property
    def is_comparison(self) -> bool:
        return self in _COMPARISONS

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR)


_COMPARISONS = {
    BinaryOperator.EQUAL, BinaryOperator.NOT_EQUAL, BinaryOperator.LESS,
    BinaryOperator.GREATER, BinaryOperator.LESS_EQ, BinaryOperator.GREATER_EQ,
}


class UnaryOperator(Enum):
    NEGATE = "-"
    LOGICAL_NOT = "!"
    BITWISE_NOT = "~"
    REFERENCE = "&"


@dataclass
class IntegerLiteral(Expression):
    """
    Integer literal.

    Attributes:
        value: Numeric value
        text: Source spelling ('0b0011', '0x1F', "'A'", '42')
        radix: 10, 2 or 16
        width: Written bit width for binary, hex and char literals, else 0
    """
    value: int = 0
    text: str = ""
    radix: int = 10
    width: int = 0


@dataclass
class BoolLiteral(Expression):
    value: bool = False


@dataclass
class StringLiteral(Expression):
    value: str = ""


@dataclass
class IdentifierExpression(Expression):
    """Reference to a variable, parameter, macro constant or 'self'."""
    name: str = ""


@dataclass
class BinaryExpression(Expression):
    operator: BinaryOperator = BinaryOperator.ADD
    left: Optional[Expression] = None
    right: Optional[Expression] = None


@dataclass
class UnaryExpression(Expression):
    operator: UnaryOperator = UnaryOperator.NEGATE
    operand: Optional[Expression] = None


@dataclass
class CallExpression(Expression):
    """
    Function or method call.

        f(a, b)           function_name='f'
        p.area()          receiver=p, function_name='area'
        Point::new(1, 2)  type_name='Point', function_name='new'

    Attributes:
        function_name: Called function or method name
        arguments: Arguments as written
        receiver: Object expression for method calls
        type_name: Type for path calls
        resolved_arguments: Arguments plus filled-in defaults (annotation)
        symbol: C procedure name (annotation)
        receiver_is_reference: Receiver already holds a pointer (annotation)
        callee: Called user function (annotation)
        builtin: Name of the called builtin, if any (annotation)
    """
    function_name: str = ""
    arguments: list[Expression] = field(default_factory=list)
    receiver: Optional[Expression] = None
    type_name: Optional[str] = None
    resolved_arguments: Optional[list[Expression]] = field(default=None, compare=False)
    symbol: Optional[str] = field(default=None, compare=False)
    receiver_is_reference: bool = field(default=False, compare=False)
    callee: Optional[FunctionNode] = field(default=None, compare=False, repr=False)
    builtin: Optional[str] = field(default=None, compare=False)


@dataclass
class IndexExpression(Expression):
    """target[index]: bit of an integer or byte of a string."""
    target: Optional[Expression] = None
    index: Optional[Expression] = None


@dataclass
class FieldAccessExpression(Expression):
    """
    Struct field access or enum variant path.

        p.x           object_expr=p, field_name='x'
        Color::Red    type_name='Color', field_name='Red'
    """
    object_expr: Optional[Expression] = None
    field_name: str = ""
    type_name: Optional[str] = None

    @property
    def is_path(self) -> bool:
        return self.object_expr is None


@dataclass
class RangeExpression(Expression):
    start: Optional[Expression] = None
    end: Optional[Expression] = None
    inclusive: bool = False


LITERAL_TYPES = (IntegerLiteral, BoolLiteral, StringLiteral)


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    visit() dispatches to visit_<ClassName>; nodes without a handler go to
    generic_visit, which walks the structural (non-annotation) children.

    Usage:
        class FunctionCounter(ASTVisitor):
            def __init__(self):
                self.count = 0

            def visit_FunctionNode(self, node):
                self.count += 1

        counter = FunctionCounter()
        counter.visit(program)
    """

    def visit(self, node: ASTNode):
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        for node_field in fields(node):
            if not node_field.compare:
                continue
            value = getattr(node, node_field.name)
            if isinstance(value, ASTNode):
                self.visit(value)
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, ASTNode):
                        self.visit(item)


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Pretty printer for AST debugging (rockc --ast).

    Usage:
        printer = ASTPrinter()
        print(printer.print(program))
    """

    def __init__(self):
        self.output: list[str] = []
        self.indent_level = 0

    def print(self, node: ASTNode) -> str:
        """Print the AST and return it as a string."""
        self.output = []
        self.indent_level = 0
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        self.output.append("  " * self.indent_level + text)

    def _nested(self, node: Optional[ASTNode]) -> None:
        if node is None:
            return
        self.indent_level += 1
        self.visit(node)
        self.indent_level -= 1

    # -------------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------------

    def visit_ProgramNode(self, node: ProgramNode):
        self._emit(f"Program {node.filename}")
        for decl in node.declarations:
            self._nested(decl)

    def visit_ImportDeclaration(self, node: ImportDeclaration):
        self._emit(f'Use "{node.path}"')

    def visit_MacroConstDeclaration(self, node: MacroConstDeclaration):
        self._emit(f"Macro {node.name} = {self._expr_str(node.value)}")

    def visit_FunctionNode(self, node: FunctionNode):
        params = []
        for param in node.parameters:
            text = "self" if param.is_self else f"{param.name}: {param.param_type}"
            if param.default is not None:
                text += f" = {self._expr_str(param.default)}"
            params.append(text)
        returns = f" -> {node.return_type}" if node.return_type else ""
        self._emit(f"Function {node.qualified_name}({', '.join(params)}){returns}")
        self._nested(node.body)

    def visit_StructDeclaration(self, node: StructDeclaration):
        self._emit(f"Struct {node.name}")
        self.indent_level += 1
        for struct_field in node.fields:
            self._emit(f"{struct_field.name}: {struct_field.field_type}")
        self.indent_level -= 1

    def visit_EnumDeclaration(self, node: EnumDeclaration):
        variants = []
        for variant in node.variants:
            if variant.value is not None:
                variants.append(f"{variant.name} = {self._expr_str(variant.value)}")
            else:
                variants.append(variant.name)
        self._emit(f"Enum {node.name} {{ {', '.join(variants)} }}")

    def visit_ImplBlock(self, node: ImplBlock):
        self._emit(f"Impl {node.type_name}")
        for method in node.methods:
            self._nested(method)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def visit_BlockStatement(self, node: BlockStatement):
        self._emit("Block")
        for stmt in node.statements:
            self._nested(stmt)

    def visit_LetStatement(self, node: LetStatement):
        declared = f": {node.declared_type}" if node.declared_type else ""
        init = f" = {self._expr_str(node.initializer)}" if node.initializer else ""
        self._emit(f"Let {node.name}{declared}{init}")

    def visit_AssignStatement(self, node: AssignStatement):
        self._emit(
            f"Assign {self._expr_str(node.target)} {node.operator.value} "
            f"{self._expr_str(node.value)}"
        )

    def visit_IndexAssignStatement(self, node: IndexAssignStatement):
        self._emit(
            f"SetBit {self._expr_str(node.target)}[{self._expr_str(node.index)}] = "
            f"{self._expr_str(node.value)}"
        )

    def visit_IfStatement(self, node: IfStatement):
        self._emit(f"If {self._expr_str(node.condition)}")
        self._nested(node.then_branch)
        if node.else_branch is not None:
            self._emit("Else")
            self._nested(node.else_branch)

    def visit_WhileStatement(self, node: WhileStatement):
        self._emit(f"While {self._expr_str(node.condition)}")
        self._nested(node.body)

    def visit_LoopStatement(self, node: LoopStatement):
        self._emit("Loop")
        self._nested(node.body)

    def visit_ForRangeStatement(self, node: ForRangeStatement):
        self._emit(f"For {node.variable} in {self._expr_str(node.range)}")
        self._nested(node.body)

    def visit_ReturnStatement(self, node: ReturnStatement):
        if node.value is not None:
            self._emit(f"Return {self._expr_str(node.value)}")
        else:
            self._emit("Return")

    def visit_BreakStatement(self, node: BreakStatement):
        self._emit("Break")

    def visit_ContinueStatement(self, node: ContinueStatement):
        self._emit("Continue")

    def visit_AssertStatement(self, node: AssertStatement):
        if node.is_equality:
            self._emit(
                f"Assert {self._expr_str(node.condition)} = {self._expr_str(node.expected)}"
            )
        else:
            self._emit(f"Assert {self._expr_str(node.condition)}")

    def visit_PanicStatement(self, node: PanicStatement):
        self._emit(f"Panic {self._expr_str(node.payload)}")

    def visit_InterruptStatement(self, node: InterruptStatement):
        self._emit(f"Interrupt @{node.number}")

    def visit_ExpressionStatement(self, node: ExpressionStatement):
        self._emit(f"Expr {self._expr_str(node.expression)}")

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def _expr_str(self, expr: Optional[Expression]) -> str:
        """Render an expression on one line."""
        if expr is None:
            return ""
        if isinstance(expr, IntegerLiteral):
            return expr.text or str(expr.value)
        if isinstance(expr, BoolLiteral):
            return "true" if expr.value else "false"
        if isinstance(expr, StringLiteral):
            return f'"{expr.value}"'
        if isinstance(expr, IdentifierExpression):
            return expr.name
        if isinstance(expr, BinaryExpression):
            return (
                f"({self._expr_str(expr.left)} {expr.operator.value} "
                f"{self._expr_str(expr.right)})"
            )
        if isinstance(expr, UnaryExpression):
            return f"({expr.operator.value}{self._expr_str(expr.operand)})"
        if isinstance(expr, CallExpression):
            args = ", ".join(self._expr_str(a) for a in expr.arguments)
            if expr.receiver is not None:
                return f"{self._expr_str(expr.receiver)}.{expr.function_name}({args})"
            if expr.type_name:
                return f"{expr.type_name}::{expr.function_name}({args})"
            return f"{expr.function_name}({args})"
        if isinstance(expr, IndexExpression):
            return f"{self._expr_str(expr.target)}[{self._expr_str(expr.index)}]"
        if isinstance(expr, FieldAccessExpression):
            if expr.is_path:
                return f"{expr.type_name}::{expr.field_name}"
            return f"{self._expr_str(expr.object_expr)}.{expr.field_name}"
        if isinstance(expr, RangeExpression):
            op = "..=" if expr.inclusive else ".."
            return f"{self._expr_str(expr.start)}{op}{self._expr_str(expr.end)}"
        return f"<{type(expr).__name__}>"
