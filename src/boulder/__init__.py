"""
Boulder - Toolchain for the Rock Language
=========================================

Boulder compiles Rock programs to portable C and can run them directly
with a reference interpreter.

Main Components
---------------
- **rockc**: the Rock compiler (lexer, parser, module resolver, semantic
  lowering, C code generator, runtime and interpreter)
- **cli**: the 'rockc' command-line tool

Quick Start
-----------
Compile a program:
    >>> from boulder import RockCompiler
    >>> result = RockCompiler().compile_file("hello.rock")
    >>> open("hello.c", "w").write(result.c_source)

Run it without a C compiler:
    >>> from boulder import Interpreter
    >>> Interpreter(result.unit).run().output

Or use the command-line tool:
    $ rockc hello.rock -o hello.c
    $ rockc hello.rock --run
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from boulder.errors import BoulderError, SourceLocation
from boulder.rockc import (
    RockCompiler,
    CompilerResult,
    CompilerOptions,
    FeatureToggles,
    compile_rock,
    Interpreter,
    ExecutionResult,
    RockError,
    RockCompilationError,
    RockRuntimeError,
)

__all__ = [
    "__version__",
    "BoulderError",
    "SourceLocation",
    "RockCompiler",
    "CompilerResult",
    "CompilerOptions",
    "FeatureToggles",
    "compile_rock",
    "Interpreter",
    "ExecutionResult",
    "RockError",
    "RockCompilationError",
    "RockRuntimeError",
]
