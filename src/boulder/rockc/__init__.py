"""
Rock Compiler
=============

This package implements rockc, the compiler for the Rock language. Rock is
a small statically typed language with fixed-width integers, structs with
methods, enums, compile-time macro constants and file imports; rockc
translates a program into a single self-contained C translation unit.

Pipeline
--------
    Rock source → Lexer → Parser → Module Resolver → Semantic Lowering
                → Code Generator → C

- **lexer**: source text to tokens
- **parser**: tokens to one ProgramNode per file
- **resolver**: 'use' imports to a merged CompilationUnit
- **lowering**: type checking, constant folding and call binding
- **codegen**: C emission, with the runtime block from **runtime**
- **interpreter**: direct execution of a lowered unit ('rockc --run')

Usage
-----
>>> from boulder.rockc import compile_rock
>>> c_source = compile_rock('''
... fn start() -> i32 {
...     print("Hello!")
...     return 0
... }
... ''')

Language Summary
----------------
- Types: u8/u16/u32/u64, i8/i16/i32/i64, bool, str, structs, enums, &T
- Literals: decimal, hex (0x), binary (0b, width taken from the digit count),
  char ('a'), strings
- Statements: let, assignment (=, +=, ...), bit-index assignment (x[i] = b),
  if/else, while, loop, for-range (a..b, a..=b), break, continue, return,
  assert, panic (?), interrupt (@N)
- Declarations: fn, struct, enum, impl, macro, use
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Imports
# =============================================================================

from boulder.rockc.compiler import RockCompiler, CompilerResult, compile_rock
from boulder.rockc.config import CompilerOptions, FeatureToggles
from boulder.rockc.errors import (
    RockError,
    RockCompilationError,
    RockRuntimeError,
    LexicalError,
    RockSyntaxError,
    ResolutionError,
    SemanticError,
    Diagnostic,
    ErrorKind,
    ErrorCollector,
)
from boulder.rockc.lexer import RockLexer, Token, TokenType
from boulder.rockc.parser import RockParser, parse_source
from boulder.rockc.resolver import (
    CompilationUnit,
    FileSystemLoader,
    InMemoryLoader,
    ModuleResolver,
)
from boulder.rockc.lowering import SemanticLowering
from boulder.rockc.codegen import CodeGenerator, generate_c
from boulder.rockc.interpreter import Interpreter, ExecutionResult

__all__ = [
    # Version
    "__version__",
    # Main API
    "RockCompiler",
    "CompilerResult",
    "compile_rock",
    "CompilerOptions",
    "FeatureToggles",
    # Errors
    "RockError",
    "RockCompilationError",
    "RockRuntimeError",
    "LexicalError",
    "RockSyntaxError",
    "ResolutionError",
    "SemanticError",
    "Diagnostic",
    "ErrorKind",
    "ErrorCollector",
    # Passes
    "RockLexer",
    "Token",
    "TokenType",
    "RockParser",
    "parse_source",
    "CompilationUnit",
    "FileSystemLoader",
    "InMemoryLoader",
    "ModuleResolver",
    "SemanticLowering",
    "CodeGenerator",
    "generate_c",
    # Interpreter
    "Interpreter",
    "ExecutionResult",
]
