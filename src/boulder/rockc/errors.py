"""
Rock Compiler Error Hierarchy
=============================

This module defines the exception hierarchy for the Rock compiler (rockc).
All exceptions inherit from RockError, which itself inherits from the
toolchain-wide BoulderError.

Exception Hierarchy
-------------------
RockError (base for all rockc errors)
├── LexicalError - bad character sequences
│   ├── InvalidCharacterError - byte that starts no token
│   ├── UnterminatedStringError - missing closing quote
│   └── MalformedLiteralError - bad numeric or character literal
├── RockSyntaxError - grammar violations
│   ├── UnexpectedTokenError - token does not fit the grammar
│   ├── MissingTokenError - required token absent
│   └── DefaultParameterOrderError - default followed by non-default
├── ResolutionError - import and merge errors
│   ├── ImportNotFoundError - 'use' target cannot be located
│   ├── ImportCycleError - files import each other
│   └── DuplicateDefinitionError - same name defined in two files
├── SemanticError - well-formed but meaningless programs
│   ├── UnresolvedConstantError - unknown macro constant
│   ├── DuplicateConstantError - macro declared twice
│   ├── UndeclaredIdentifierError - unknown variable or function
│   ├── DuplicateDeclarationError - function/struct/enum declared twice
│   ├── ArityError - wrong number of call arguments
│   ├── RockTypeError - incompatible types
│   ├── LiteralRangeError - literal does not fit its target type
│   ├── InvalidBitIndexTargetError - bit-index on a non-integer
│   ├── UnknownMemberError - missing field, method or variant
│   ├── NonConstantDefaultError - default value is not constant
│   ├── InvalidBreakContinueError - break/continue outside a loop
│   └── InvalidAssignmentTargetError - assignment to a non-lvalue
├── RockCompilationError - aggregate report of collected errors
└── RockRuntimeError - interpreter failures

Error Message Format
--------------------
All errors include source location information and follow this format:

    filename:line:column: error: description
        source_line_text
        ^
    hint: suggestion for fixing

Example:
    blink.rock:5:12: error: undeclared identifier 'ledd'
        toggle(ledd)
               ^
    hint: did you mean 'led'?

Diagnostics
-----------
Every error converts to a Diagnostic record (kind, message, file, line,
column, hint) so tools can report errors without parsing text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from boulder.errors import BoulderError, SourceLocation


# =============================================================================
# Diagnostic Records
# =============================================================================

class ErrorKind(Enum):
    """Pass that produced a diagnostic."""
    LEXICAL = "lexical"
    SYNTAX = "syntax"
    RESOLUTION = "resolution"
    SEMANTIC = "semantic"
    RUNTIME = "runtime"


@dataclass(frozen=True)
class Diagnostic:
    """
    Structured form of a compiler error.

    Attributes:
        kind: Which pass reported it
        message: Short description without location prefix
        file: Source file name (empty when unknown)
        line: 1-indexed line (0 when unknown)
        column: 1-indexed column (0 when unknown)
        hint: Optional suggestion
    """
    kind: ErrorKind
    message: str
    file: str = ""
    line: int = 0
    column: int = 0
    hint: Optional[str] = None

    def __str__(self) -> str:
        prefix = f"{self.file}:{self.line}:{self.column}: " if self.file else ""
        return f"{prefix}{self.kind.value} error: {self.message}"


# =============================================================================
# Base Rock Exception
# =============================================================================

class RockError(BoulderError):
    """
    Base exception for all Rock compiler errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    kind = ErrorKind.SEMANTIC

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

            blink.rock:5:12: error: undeclared identifier 'ledd'
                toggle(ledd)
                       ^
            hint: did you mean 'led'?
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)

    def to_diagnostic(self) -> Diagnostic:
        """Convert to a structured Diagnostic record."""
        loc = self.location
        return Diagnostic(
            kind=self.kind,
            message=self.message,
            file=loc.filename if loc else "",
            line=loc.line if loc else 0,
            column=loc.column if loc else 0,
            hint=self.hint,
        )


class RockCompilationError(RockError):
    """
    Aggregate compilation error containing multiple errors.

    The message is an already formatted report from ErrorCollector; the
    structured records are available on the diagnostics attribute.
    """

    def __init__(self, report: str, diagnostics: Optional[List[Diagnostic]] = None):
        self.diagnostics = list(diagnostics or [])
        super().__init__(report)

    def _format_message(self) -> str:
        """Return message as-is, it is already a formatted report."""
        return self.message


class RockRuntimeError(RockError):
    """Error raised while interpreting a program."""

    kind = ErrorKind.RUNTIME


# =============================================================================
# Lexical Errors
# =============================================================================

class LexicalError(RockError):
    """
    Bad character sequence in source text.

    The lexer records these and keeps scanning, so one run can report
    every lexical problem in a file.
    """

    kind = ErrorKind.LEXICAL

    def __init__(
        self,
        message: str,
        text: str = "",
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.text = text
        super().__init__(message, location=location, hint=hint, source_line=source_line)


class InvalidCharacterError(LexicalError):
    """Character that cannot start any token."""

    def __init__(
        self,
        char: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.char = char
        super().__init__(
            f"invalid character '{char}' (0x{ord(char):02X})",
            text=char,
            location=location,
            source_line=source_line,
        )


class UnterminatedStringError(LexicalError):
    """
    Unterminated string literal.

    Example:
        print("hello)
    """

    def __init__(
        self,
        text: str = "",
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "unterminated string literal",
            text=text,
            location=location,
            hint="add closing '\"' to complete the string",
            source_line=source_line,
        )


class MalformedLiteralError(LexicalError):
    """
    Numeric or character literal that does not follow the literal rules.

    Examples:
        0b      (no binary digits)
        0b102   (non-binary digit)
        'ab'    (character literal holds more than one byte)
    """

    def __init__(
        self,
        text: str,
        reason: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.reason = reason
        super().__init__(
            f"malformed literal '{text}': {reason}",
            text=text,
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Syntax Errors
# =============================================================================

class RockSyntaxError(RockError):
    """
    Grammar violation found by the parser.

    The parser records these and skips to the next statement boundary.
    """

    kind = ErrorKind.SYNTAX


class UnexpectedTokenError(RockSyntaxError):
    """Token that does not fit the grammar at this point."""

    def __init__(
        self,
        found: str,
        expected: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.found = found
        self.expected = expected
        super().__init__(
            f"unexpected token '{found}'",
            location=location,
            hint=f"expected {expected}" if expected else None,
            source_line=source_line,
        )


class MissingTokenError(RockSyntaxError):
    """Required token (like ')' or '}') was not found."""

    def __init__(
        self,
        expected: str,
        found: str = "",
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.expected = expected
        self.found = found
        message = f"expected '{expected}'"
        if found:
            message += f", found '{found}'"
        super().__init__(message, location=location, source_line=source_line)


class DefaultParameterOrderError(RockSyntaxError):
    """
    Parameter without a default follows one with a default.

    Example:
        fn f(a: u8 = 1, b: u8) { }
    """

    def __init__(
        self,
        function_name: str,
        parameter: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.function_name = function_name
        self.parameter = parameter
        super().__init__(
            f"parameter '{parameter}' of '{function_name}' needs a default value",
            location=location,
            hint="once a parameter has a default, every later parameter must have one",
            source_line=source_line,
        )


# =============================================================================
# Resolution Errors
# =============================================================================

class ResolutionError(RockError):
    """Error while expanding 'use' directives into one compilation unit."""

    kind = ErrorKind.RESOLUTION


class ImportNotFoundError(ResolutionError):
    """'use' target could not be located or read."""

    def __init__(
        self,
        target: str,
        reason: str = "file not found",
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        search_paths: Optional[List[str]] = None,
    ):
        self.target = target
        self.reason = reason
        self.search_paths = search_paths or []

        hint = None
        if self.search_paths:
            hint = f"searched in: {', '.join(self.search_paths)}"

        super().__init__(
            f"cannot import '{target}': {reason}",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class ImportCycleError(ResolutionError):
    """
    Files import each other, directly or transitively.

    The chain lists canonical paths from the first file on the cycle back
    to itself.
    """

    def __init__(
        self,
        chain: List[str],
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.chain = list(chain)
        super().__init__(
            f"import cycle: {' -> '.join(self.chain)}",
            location=location,
            source_line=source_line,
        )


class DuplicateDefinitionError(ResolutionError):
    """Top-level name defined in two different files."""

    def __init__(
        self,
        name: str,
        first_origin: str,
        second_origin: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.name = name
        self.first_origin = first_origin
        self.second_origin = second_origin
        super().__init__(
            f"'{name}' is defined in both '{first_origin}' and '{second_origin}'",
            location=location,
            hint="rename one of the definitions",
            source_line=source_line,
        )


# =============================================================================
# Semantic Errors
# =============================================================================

class SemanticError(RockError):
    """
    Program is well-formed but violates the language rules.

    Semantic lowering accumulates these for the whole unit before
    reporting.
    """

    kind = ErrorKind.SEMANTIC


def _suggestion_hint(candidates: Optional[List[str]]) -> Optional[str]:
    if not candidates:
        return None
    suggestions = ", ".join(f"'{s}'" for s in candidates[:3])
    return f"did you mean {suggestions}?"


class UnresolvedConstantError(SemanticError):
    """Reference to a macro constant that was never declared."""

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar_names: Optional[List[str]] = None,
    ):
        self.name = name
        super().__init__(
            f"unresolved constant '{name}'",
            location=location,
            hint=_suggestion_hint(similar_names),
            source_line=source_line,
        )


class DuplicateConstantError(SemanticError):
    """Macro constant declared more than once."""

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.name = name
        self.original_location = original_location
        hint = None
        if original_location:
            hint = f"'{name}' was first declared at {original_location}"
        super().__init__(
            f"redeclaration of macro constant '{name}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UndeclaredIdentifierError(SemanticError):
    """Reference to a variable or function that is not in scope."""

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar_identifiers: Optional[List[str]] = None,
    ):
        self.identifier = identifier
        self.similar_identifiers = similar_identifiers or []
        super().__init__(
            f"undeclared identifier '{identifier}'",
            location=location,
            hint=_suggestion_hint(self.similar_identifiers),
            source_line=source_line,
        )


class DuplicateDeclarationError(SemanticError):
    """
    Function, struct, enum or method declared twice.

    Also raised for two different declarations that would get the same
    name in the generated C, such as 'fn P_get' next to method 'P::get'.
    """

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        original_name: Optional[str] = None,
        c_name: Optional[str] = None,
    ):
        self.identifier = identifier
        self.original_location = original_location
        self.original_name = original_name
        self.c_name = c_name
        if c_name:
            message = f"'{identifier}' clashes with '{original_name}': both are named '{c_name}' in C"
        else:
            message = f"redeclaration of '{identifier}'"
        hint = None
        if original_location:
            hint = f"'{original_name or identifier}' was first declared at {original_location}"
        super().__init__(
            message,
            location=location,
            hint=hint,
            source_line=source_line,
        )


class ArityError(SemanticError):
    """Call supplies too many arguments, or too few for the non-default parameters."""

    def __init__(
        self,
        function_name: str,
        minimum: int,
        maximum: int,
        actual: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.function_name = function_name
        self.minimum = minimum
        self.maximum = maximum
        self.actual = actual

        if minimum == maximum:
            word = "argument" if maximum == 1 else "arguments"
            expected = f"{maximum} {word}"
        else:
            expected = f"{minimum} to {maximum} arguments"
        super().__init__(
            f"'{function_name}' expects {expected}, got {actual}",
            location=location,
            source_line=source_line,
        )


class RockTypeError(SemanticError):
    """Incompatible types."""

    def __init__(
        self,
        message: str,
        expected_type: Optional[str] = None,
        actual_type: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.expected_type = expected_type
        self.actual_type = actual_type
        hint = None
        if expected_type and actual_type:
            hint = f"expected '{expected_type}', got '{actual_type}'"
        super().__init__(message, location=location, hint=hint, source_line=source_line)


class LiteralRangeError(SemanticError):
    """Literal value (or binary literal width) does not fit the target type."""

    def __init__(
        self,
        literal: str,
        type_name: str,
        reason: str = "",
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.literal = literal
        self.type_name = type_name
        message = f"literal {literal} does not fit in '{type_name}'"
        if reason:
            message += f" ({reason})"
        super().__init__(message, location=location, source_line=source_line)


class InvalidBitIndexTargetError(SemanticError):
    """Bit-index assignment on something that is not an integer."""

    def __init__(
        self,
        target: str,
        type_name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.target = target
        self.type_name = type_name
        super().__init__(
            f"cannot set a bit of '{target}' of type '{type_name}'",
            location=location,
            hint="bit-index assignment needs an integer variable",
            source_line=source_line,
        )


class UnknownMemberError(SemanticError):
    """Struct field, method or enum variant that does not exist."""

    def __init__(
        self,
        owner: str,
        member: str,
        what: str = "member",
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar_members: Optional[List[str]] = None,
    ):
        self.owner = owner
        self.member = member
        super().__init__(
            f"'{owner}' has no {what} '{member}'",
            location=location,
            hint=_suggestion_hint(similar_members),
            source_line=source_line,
        )


class NonConstantDefaultError(SemanticError):
    """Default parameter value that cannot be folded at compile time."""

    def __init__(
        self,
        function_name: str,
        parameter: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.function_name = function_name
        self.parameter = parameter
        super().__init__(
            f"default value of '{parameter}' in '{function_name}' is not a constant",
            location=location,
            hint="defaults may only use literals and macro constants",
            source_line=source_line,
        )


class InvalidBreakContinueError(SemanticError):
    """break or continue outside of a loop."""

    def __init__(
        self,
        keyword: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.keyword = keyword
        super().__init__(
            f"'{keyword}' statement not within a loop",
            location=location,
            source_line=source_line,
        )


class InvalidAssignmentTargetError(SemanticError):
    """
    Left side of an assignment cannot be assigned to.

    Examples:
        42 = x
        f() = x
    """

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "expression is not assignable",
            location=location,
            hint="assign to a variable, a struct field, or a reference",
            source_line=source_line,
        )


# =============================================================================
# Error Collection
# =============================================================================

class ErrorCollector:
    """
    Collects errors from every pass for batch reporting.

    Example:
        collector = ErrorCollector(max_errors=50)

        for function in functions:
            try:
                lower_function(function)
            except SemanticError as e:
                collector.add(e)
                if collector.should_stop():
                    break

        collector.raise_if_errors()
    """

    def __init__(self, max_errors: int = 50):
        """
        Initialize the error collector.

        Args:
            max_errors: Maximum errors to collect before passes should stop
        """
        self.errors: List[RockError] = []
        self.warnings: List[str] = []
        self.max_errors = max_errors

    def add(self, error: RockError) -> None:
        """Add an error, ignoring it once the cap has been reached."""
        if not self.should_stop():
            self.errors.append(error)

    def extend(self, errors: List[RockError]) -> None:
        """Add several errors in order."""
        for error in errors:
            self.add(error)

    def add_warning(self, message: str, location: Optional[SourceLocation] = None) -> None:
        """Add a warning message."""
        if location:
            self.warnings.append(f"{location}: warning: {message}")
        else:
            self.warnings.append(f"warning: {message}")

    def has_errors(self) -> bool:
        """Return True if any errors have been collected."""
        return len(self.errors) > 0

    def has_errors_of(self, *kinds: ErrorKind) -> bool:
        """Return True if any collected error is of one of the given kinds."""
        return any(error.kind in kinds for error in self.errors)

    def should_stop(self) -> bool:
        """Return True if max_errors has been reached."""
        return len(self.errors) >= self.max_errors

    def error_count(self) -> int:
        """Return the number of collected errors."""
        return len(self.errors)

    def diagnostics(self) -> List[Diagnostic]:
        """Return structured records for all collected errors, in order."""
        return [error.to_diagnostic() for error in self.errors]

    def report(self) -> str:
        """Format all errors and warnings for display."""
        lines = []

        for error in self.errors:
            lines.append(str(error))
            lines.append("")

        for warning in self.warnings:
            lines.append(warning)

        error_word = "error" if len(self.errors) == 1 else "errors"
        warning_word = "warning" if len(self.warnings) == 1 else "warnings"
        summary = f"{len(self.errors)} {error_word}, {len(self.warnings)} {warning_word}"
        if self.should_stop():
            summary += " (stopped after reaching the error limit)"
        lines.append(f"\n{summary}")

        return "\n".join(lines)

    def raise_if_errors(self) -> None:
        """Raise a RockCompilationError if any errors were collected."""
        if self.has_errors():
            raise RockCompilationError(self.report(), self.diagnostics())
