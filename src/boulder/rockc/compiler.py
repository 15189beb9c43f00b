"""
Rock Compiler Main Module
=========================

This module provides the main compiler interface for Rock. It orchestrates
the complete compilation process:

    Source → Lex → Parse → Resolve imports → Lower → Generate → C

Usage
-----
Command line:
    $ rockc hello.rock -o hello.c

Programmatic:
    >>> from boulder.rockc import compile_rock
    >>> c_source = compile_rock('fn start() -> i32 { return 0 }')

Compilation Pipeline
--------------------
1. **Lexical Analysis**: Convert each file to tokens
2. **Parsing**: Build one ProgramNode per file
3. **Module Resolution**: Load 'use' targets and merge declarations into
   a CompilationUnit
4. **Semantic Lowering**: Type-check and annotate the unit
5. **Code Generation**: Emit one C translation unit

Error Handling
--------------
Every pass records its errors in a shared ErrorCollector, so one run
reports as many problems as possible. Lowering is skipped when lexing,
parsing or resolution failed; code generation is skipped on any error.
Only an unreadable entry file or an import cycle stops compilation early.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

from boulder.rockc.ast import ProgramNode
from boulder.rockc.codegen import CodeGenerator
from boulder.rockc.config import CompilerOptions, FeatureToggles
from boulder.rockc.errors import (
    Diagnostic,
    ErrorCollector,
    ErrorKind,
    ImportCycleError,
)
from boulder.rockc.lexer import RockLexer
from boulder.rockc.lowering import SemanticLowering
from boulder.rockc.parser import RockParser
from boulder.rockc.resolver import (
    CompilationUnit,
    FileSystemLoader,
    ModuleResolver,
    SourceLoader,
)

logger = logging.getLogger(__name__)


@dataclass
class CompilerResult:
    """
    Result of a compilation.

    Attributes:
        filename: Entry filename
        success: True if compilation succeeded
        c_source: Generated C (if successful)
        ast: ProgramNode of the entry file
        unit: Lowered CompilationUnit
        token_count: Tokens lexed across all files
        diagnostics: Structured error records
        warnings: Warning messages
    """
    filename: str = ""
    success: bool = False
    c_source: str = ""
    ast: Optional[ProgramNode] = None
    unit: Optional[CompilationUnit] = None
    token_count: int = 0
    diagnostics: list[Diagnostic] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class RockCompiler:
    """
    Rock to C compiler.

    Example:
        compiler = RockCompiler()
        result = compiler.compile_file("hello.rock")
        print(result.c_source)

    Attributes:
        options: Compiler configuration options
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        """
        Initialize the compiler.

        Args:
            options: Compiler configuration (uses defaults if None)
        """
        self.options = options or CompilerOptions()
        self._errors = ErrorCollector(self.options.max_errors)
        # Display filename -> source lines, for quoting in diagnostics
        self._source_lines: dict[str, list[str]] = {}
        self._token_count = 0
        self._level = logging.INFO if self.options.verbose else logging.DEBUG

    # =========================================================================
    # Public Interface
    # =========================================================================

    def compile_source(
        self,
        source: str,
        filename: str = "<input>",
        loader: Optional[SourceLoader] = None,
    ) -> CompilerResult:
        """
        Compile Rock source code to C.

        Args:
            source: Rock source of the entry file
            filename: Entry filename, used for diagnostics and as the base
                for relative 'use' paths
            loader: Where imports come from (the filesystem by default)

        Returns:
            CompilerResult with the generated C and the lowered unit

        Raises:
            RockCompilationError: If any error was found
        """
        self._errors = ErrorCollector(self.options.max_errors)
        self._source_lines = {}
        self._token_count = 0
        loader = loader or FileSystemLoader(self.options.search_paths)
        result = CompilerResult(filename=filename)

        entry_path = loader.canonicalize(filename)
        program = self._parse_file(filename, source)
        result.ast = program

        # Stage 3: Module resolution
        resolver = ModuleResolver(loader, self._parse_file, self._errors)
        try:
            unit = resolver.resolve(program, entry_path)
        except ImportCycleError as e:
            self._errors.add(e)
            return self._finish(result)
        result.unit = unit
        result.token_count = self._token_count
        logger.log(self._level, f"{filename}: {len(unit.modules)} modules, {self._token_count} tokens")

        # Stage 4: Semantic lowering
        if not self._errors.has_errors_of(ErrorKind.LEXICAL, ErrorKind.SYNTAX, ErrorKind.RESOLUTION):
            SemanticLowering(self._errors, self._source_lines).lower(unit)

        # Stage 5: Code generation
        if not self._errors.has_errors():
            generator = CodeGenerator(self.options.features, emit_main=self.options.emit_main)
            result.c_source = generator.generate(unit)
            result.success = True
            logger.log(self._level, f"{filename}: generated {len(result.c_source)} bytes of C")

        return self._finish(result)

    def compile_file(self, filepath: str) -> CompilerResult:
        """
        Compile a Rock source file to C.

        Args:
            filepath: Path to the entry .rock file

        Returns:
            CompilerResult with the generated C

        Raises:
            RockCompilationError: If compilation fails
            FileNotFoundError: If the entry file cannot be read
        """
        path = Path(filepath)
        if not path.is_file():
            raise FileNotFoundError(f"Source file not found: {filepath}")
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileNotFoundError(f"Cannot read source file {filepath}: {e}") from e
        return self.compile_source(source, str(path))

    # =========================================================================
    # Pipeline Stages
    # =========================================================================

    def _parse_file(self, filename: str, source: str) -> ProgramNode:
        """Lex and parse one file, recording its errors."""
        self._source_lines[filename] = source.splitlines()

        # Stage 1: Lexical analysis
        lexer = RockLexer(source, filename)
        tokens = list(lexer.tokenize())
        self._token_count += len(tokens)

        # Stage 2: Parsing
        parser = RockParser(tokens, filename, self._source_lines[filename], self.options.max_errors)
        program = parser.parse()

        self._errors.extend(lexer.errors)
        self._errors.extend(parser.errors)
        logger.debug(f"parsed {filename}: {len(tokens)} tokens, {len(program.declarations)} declarations")
        return program

    def _finish(self, result: CompilerResult) -> CompilerResult:
        result.diagnostics = self._errors.diagnostics()
        result.warnings = list(self._errors.warnings)
        self._errors.raise_if_errors()
        return result


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_rock(
    source: str,
    filename: str = "<input>",
    features: Optional[FeatureToggles] = None,
    loader: Optional[SourceLoader] = None,
) -> str:
    """
    Compile Rock source to C in one call.

    Args:
        source: Rock source code
        filename: Entry filename for diagnostics and relative imports
        features: Runtime facilities (all enabled by default)
        loader: Source loader for imports

    Returns:
        Generated C source

    Raises:
        RockCompilationError: If compilation fails
    """
    options = CompilerOptions(features=features or FeatureToggles())
    return RockCompiler(options).compile_source(source, filename, loader).c_source
