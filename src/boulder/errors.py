"""
Boulder Error Hierarchy
=======================

This module defines the root of the exception hierarchy for the Boulder
toolchain. Every exception raised by the compiler, the interpreter, or the
command-line tools inherits from BoulderError, so callers can catch all
toolchain errors with a single except clause:

    try:
        compile_rock(source)
    except BoulderError as e:
        print(f"Error: {e}")

Exception Hierarchy
-------------------
BoulderError (base)
└── RockError (compiler and interpreter errors, see boulder.rockc.errors)
    ├── LexicalError
    ├── RockSyntaxError
    ├── ResolutionError
    ├── SemanticError
    ├── RockCompilationError (aggregate report)
    └── RockRuntimeError (interpreter)

Source Locations
----------------
Errors, tokens and AST nodes all carry a SourceLocation. Locations render
as 'filename:line:column', the format understood by editors and IDEs:

    blink.rock:15:9: error: undeclared identifier 'ledd'
"""

from dataclasses import dataclass


# =============================================================================
# Base Exception Class
# =============================================================================

class BoulderError(Exception):
    """
    Base exception for all Boulder toolchain errors.
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A position in a source file.

    Locations are immutable: the lexer creates one per token and the parser
    copies them onto AST nodes, so a diagnostic raised by any later pass
    points back at the original text.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        offset: Byte offset from the start of the buffer (0-indexed)
    """
    filename: str
    line: int
    column: int
    offset: int = 0

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"
