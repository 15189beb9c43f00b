"""
Rock Type System
================

This module implements the small type system used by the Rock compiler.
Rock only checks types where the answer is cheap and unambiguous (literals
against declared scalar types, bit-index targets, member existence), so the
representation here is deliberately flat.

Supported Types
---------------
| Rock  | C            | Range                                   |
|-------|--------------|-----------------------------------------|
| u8    | uint8_t      | 0 .. 255                                |
| u16   | uint16_t     | 0 .. 65535                              |
| u32   | uint32_t     | 0 .. 4294967295                         |
| u64   | uint64_t     | 0 .. 2**64 - 1                          |
| i8    | int8_t       | -128 .. 127                             |
| i16   | int16_t      | -32768 .. 32767                         |
| i32   | int32_t      | -2**31 .. 2**31 - 1                     |
| i64   | int64_t      | -2**63 .. 2**63 - 1                     |
| bool  | bool         | true / false                            |
| str   | const char * | byte string                             |
| ()    | void         | unit (function without a return type)   |

Reference Types
---------------
A leading '&' marks a reference: '&u8' is a pointer to a u8 in the
generated C. References are a type-level marker only; they never transfer
ownership.

Named Types
-----------
Struct and enum names are kept as NAMED types. Whether a name refers to a
struct or an enum is looked up in the compilation unit's symbol tables.
Both lower to C typedefs with the same name, so code generation does not
need to know which one it is.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional


# =============================================================================
# Base Type Enumeration
# =============================================================================

class BaseType(Enum):
    """Fundamental Rock types."""
    UNIT = auto()
    BOOL = auto()
    STR = auto()
    U8 = auto()
    U16 = auto()
    U32 = auto()
    U64 = auto()
    I8 = auto()
    I16 = auto()
    I32 = auto()
    I64 = auto()
    NAMED = auto()      # struct or enum, see RockType.name


# (bits, signed, C name) per integer base type
_INTEGER_INFO = {
    BaseType.U8: (8, False, "uint8_t"),
    BaseType.U16: (16, False, "uint16_t"),
    BaseType.U32: (32, False, "uint32_t"),
    BaseType.U64: (64, False, "uint64_t"),
    BaseType.I8: (8, True, "int8_t"),
    BaseType.I16: (16, True, "int16_t"),
    BaseType.I32: (32, True, "int32_t"),
    BaseType.I64: (64, True, "int64_t"),
}


# =============================================================================
# Type Representation
# =============================================================================

@dataclass(frozen=True)
class RockType:
    """
    A Rock type.

    Attributes:
        base_type: The fundamental type
        name: Struct or enum name for NAMED types
        is_reference: True for '&T'

    Examples:
        - u8        : RockType(BaseType.U8)
        - &u8       : RockType(BaseType.U8, is_reference=True)
        - Point     : RockType(BaseType.NAMED, "Point")
        - &Point    : RockType(BaseType.NAMED, "Point", True)
    """
    base_type: BaseType
    name: Optional[str] = None
    is_reference: bool = False

    def __post_init__(self):
        if self.base_type == BaseType.NAMED and not self.name:
            raise ValueError("named type requires a name")
        if self.base_type == BaseType.UNIT and self.is_reference:
            raise ValueError("cannot take a reference to the unit type")

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    @property
    def is_integer(self) -> bool:
        """True for value (non-reference) integer types."""
        return not self.is_reference and self.base_type in _INTEGER_INFO

    @property
    def is_bool(self) -> bool:
        return not self.is_reference and self.base_type == BaseType.BOOL

    @property
    def is_str(self) -> bool:
        return not self.is_reference and self.base_type == BaseType.STR

    @property
    def is_unit(self) -> bool:
        return self.base_type == BaseType.UNIT

    @property
    def is_named(self) -> bool:
        return self.base_type == BaseType.NAMED

    @property
    def is_scalar(self) -> bool:
        """True for integers, bool and str (the printable types)."""
        return self.is_integer or self.is_bool or self.is_str

    @property
    def is_signed(self) -> bool:
        info = _INTEGER_INFO.get(self.base_type)
        return bool(info and info[1])

    @property
    def bit_width(self) -> int:
        """Width in bits of an integer type (0 for anything else)."""
        info = _INTEGER_INFO.get(self.base_type)
        return info[0] if info else 0

    @property
    def min_value(self) -> int:
        if self.is_signed:
            return -(1 << (self.bit_width - 1))
        return 0

    @property
    def max_value(self) -> int:
        if self.is_signed:
            return (1 << (self.bit_width - 1)) - 1
        return (1 << self.bit_width) - 1

    def can_hold(self, value: int) -> bool:
        """Return True if an integer value fits this integer type."""
        return self.min_value <= value <= self.max_value

    # -------------------------------------------------------------------------
    # Derived Types
    # -------------------------------------------------------------------------

    def reference(self) -> "RockType":
        """Return '&T' for this type (references do not nest)."""
        if self.is_reference:
            return self
        return RockType(self.base_type, self.name, True)

    def dereference(self) -> "RockType":
        """Return 'T' for '&T' (a value type is returned unchanged)."""
        if not self.is_reference:
            return self
        return RockType(self.base_type, self.name, False)

    def __str__(self) -> str:
        if self.base_type == BaseType.UNIT:
            base = "()"
        elif self.base_type == BaseType.NAMED:
            base = self.name
        else:
            base = self.base_type.name.lower()
        return f"&{base}" if self.is_reference else base


# =============================================================================
# Predefined Types
# =============================================================================

TYPE_UNIT = RockType(BaseType.UNIT)
TYPE_BOOL = RockType(BaseType.BOOL)
TYPE_STR = RockType(BaseType.STR)
TYPE_U8 = RockType(BaseType.U8)
TYPE_U16 = RockType(BaseType.U16)
TYPE_U32 = RockType(BaseType.U32)
TYPE_U64 = RockType(BaseType.U64)
TYPE_I8 = RockType(BaseType.I8)
TYPE_I16 = RockType(BaseType.I16)
TYPE_I32 = RockType(BaseType.I32)
TYPE_I64 = RockType(BaseType.I64)
TYPE_U8_REF = TYPE_U8.reference()

SCALAR_TYPES = {
    "u8": TYPE_U8,
    "u16": TYPE_U16,
    "u32": TYPE_U32,
    "u64": TYPE_U64,
    "i8": TYPE_I8,
    "i16": TYPE_I16,
    "i32": TYPE_I32,
    "i64": TYPE_I64,
    "bool": TYPE_BOOL,
    "str": TYPE_STR,
}


# =============================================================================
# Type Utilities
# =============================================================================

def type_from_name(name: str, is_reference: bool = False) -> RockType:
    """
    Build a type from the identifier written in source.

    Unknown names become NAMED types; semantic lowering reports the ones
    that are neither structs nor enums.
    """
    scalar = SCALAR_TYPES.get(name)
    if scalar is None:
        result = RockType(BaseType.NAMED, name)
    else:
        result = scalar
    return result.reference() if is_reference else result


def unsigned_type_for_width(bits: int) -> RockType:
    """Smallest unsigned type with at least the given number of bits."""
    for candidate in (TYPE_U8, TYPE_U16, TYPE_U32, TYPE_U64):
        if bits <= candidate.bit_width:
            return candidate
    return TYPE_U64


def literal_type_for(value: int) -> RockType:
    """
    Default type of an untyped decimal literal.

    Values that fit i32 are i32, larger ones i64, and only values beyond
    i64 become u64.
    """
    for candidate in (TYPE_I32, TYPE_I64, TYPE_U64):
        if candidate.can_hold(value):
            return candidate
    return TYPE_U64


def common_type(left: RockType, right: RockType) -> RockType:
    """Result type of an arithmetic operation: the wider operand wins."""
    if not right.is_integer:
        return left
    if not left.is_integer:
        return right
    if right.bit_width > left.bit_width:
        return right
    return left


def wrap_integer(value: int, rock_type: RockType) -> int:
    """Truncate an integer to the width of a type (two's complement)."""
    if not rock_type.is_integer:
        return value
    bits = rock_type.bit_width
    value &= (1 << bits) - 1
    if rock_type.is_signed and value >= (1 << (bits - 1)):
        value -= 1 << bits
    return value


def c_type_name(rock_type: RockType, name_mapper: Optional[Callable[[str], str]] = None) -> str:
    """
    Return the C spelling of a type.

    Args:
        rock_type: Type to render
        name_mapper: Optional mangling applied to struct/enum names

    Returns:
        C type text such as 'uint8_t', 'Point *' or 'const char *'
    """
    base = rock_type.base_type
    if base == BaseType.UNIT:
        return "void"
    if base == BaseType.BOOL:
        text = "bool"
    elif base == BaseType.STR:
        text = "const char *"
    elif base == BaseType.NAMED:
        text = name_mapper(rock_type.name) if name_mapper else rock_type.name
    else:
        text = _INTEGER_INFO[base][2]

    if rock_type.is_reference:
        if base == BaseType.STR:
            return "const char **"
        return f"{text} *"
    return text


# =============================================================================
# C Identifiers
# =============================================================================

# Names a Rock identifier may not keep in the generated C: C keywords, the
# standard names the runtime block relies on, and the program entry point.
C_RESERVED = frozenset({
    "auto", "break", "case", "char", "const", "continue", "default", "do",
    "double", "else", "enum", "extern", "float", "for", "goto", "if",
    "inline", "int", "long", "register", "restrict", "return", "short",
    "signed", "sizeof", "static", "struct", "switch", "typedef", "union",
    "unsigned", "void", "volatile", "while", "_Bool", "_Complex",
    "bool", "true", "false", "NULL", "main", "exit", "malloc", "free",
    "printf", "fprintf", "stderr", "stdout",
    "int8_t", "int16_t", "int32_t", "int64_t",
    "uint8_t", "uint16_t", "uint32_t", "uint64_t",
})

RUNTIME_PREFIX = "bl_rt_"
MANGLE_PREFIX = "rock_"

# c_identifier() never returns a name starting with this prefix.
LOCAL_PREFIX = MANGLE_PREFIX + "l_"


def c_identifier(name: str) -> str:
    """Return a Rock name as a C identifier that cannot clash with C or the runtime."""
    if name in C_RESERVED or name.startswith(RUNTIME_PREFIX) or name.startswith(MANGLE_PREFIX):
        return MANGLE_PREFIX + name
    return name


def c_local_identifier(name: str, taken: set[str]) -> str:
    """
    C name of a local variable or parameter.

    Rock locals may reuse the name of a function or type. In C they would
    hide it, so a local whose name is taken at file scope is renamed.

    Args:
        name: Rock variable name
        taken: C names declared at file scope (functions, types, enum constants)
    """
    c_name = c_identifier(name)
    if c_name in taken:
        return LOCAL_PREFIX + name
    return c_name


# =============================================================================
# C Integer Arithmetic
# =============================================================================

def c_divide(left: int, right: int) -> int:
    """Integer division truncating toward zero, as C does."""
    quotient = abs(left) // abs(right)
    return quotient if (left >= 0) == (right >= 0) else -quotient


def c_remainder(left: int, right: int) -> int:
    """Remainder with the sign of the dividend, as C does."""
    return left - right * c_divide(left, right)
