"""
rockc - Rock Compiler Command-Line Interface
============================================

This module implements the command-line interface for the Rock compiler.
It compiles a Rock program to a single C file, or runs it directly with
the interpreter.

Usage Examples
--------------
Basic compilation:
    $ rockc hello.rock

With output file:
    $ rockc hello.rock -o build/hello.c

With an import search path:
    $ rockc -I ./lib hello.rock

Run without a C compiler:
    $ rockc --run hello.rock

Full pipeline to a native binary:
    $ rockc hello.rock && cc hello.c -o hello

Without printf (e.g. for a bare-metal target):
    $ rockc --no-printing --no-logging hello.rock
"""

from dataclasses import replace
from pathlib import Path
from typing import Optional
import logging
import sys

import click

from boulder import __version__
from boulder.cli.errors import handle_cli_exception
from boulder.rockc import RockCompiler, CompilerOptions, FeatureToggles
from boulder.rockc.ast import ASTPrinter
from boulder.rockc.interpreter import Interpreter
from boulder.rockc.parser import parse_source

logger = logging.getLogger(__name__)


def _check_extension(ctx: click.Context, param: click.Parameter, value: Path) -> Path:
    if value.suffix != ".rock":
        raise click.BadParameter(f"expected a .rock file, got '{value.name}'")
    return value


def setup_logging(verbose: bool, quiet: bool) -> None:
    """Configure logging based on verbosity."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    callback=_check_extension,
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output C file (default: input.c)",
)
@click.option(
    "-I", "--include",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Add import search path (can be repeated)",
)
@click.option(
    "--run",
    is_flag=True,
    help="Interpret the program instead of writing C",
)
@click.option(
    "--ast",
    is_flag=True,
    help="Print the AST of the input file and exit (for debugging)",
)
@click.option("--no-logging", is_flag=True, help="Leave out log() and stderr output")
@click.option("--no-printing", is_flag=True, help="Leave out print() and stdout output")
@click.option("--no-heap", is_flag=True, help="Leave out alloc()/free()")
@click.option(
    "--max-errors",
    type=click.IntRange(min=1),
    default=50,
    show_default=True,
    help="Stop after this many errors",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output (debug logging)")
@click.option("-q", "--quiet", is_flag=True, help="Only report errors")
@click.version_option(version=__version__, prog_name="rockc")
def main(
    input_file: Path,
    output: Optional[Path],
    include: tuple[Path, ...],
    run: bool,
    ast: bool,
    no_logging: bool,
    no_printing: bool,
    no_heap: bool,
    max_errors: int,
    verbose: bool,
    quiet: bool,
) -> None:
    """
    Compile a Rock program to C.

    INPUT_FILE is the entry Rock source file (.rock). Files it imports with
    'use' are found relative to it, then in each -I directory.

    \b
    Examples:
        rockc hello.rock                 # Outputs hello.c
        rockc hello.rock -o out.c        # Specify output file
        rockc -I lib/ hello.rock         # Add import search path
        rockc --run hello.rock           # Interpret, exit with start()'s result
        rockc --ast hello.rock           # Dump the parsed AST

    \b
    Runtime features (also set by BOULDER_LOGGING, BOULDER_PRINTING and
    BOULDER_HEAP; the flags win):
        --no-logging    no log() output, panics are not logged
        --no-printing   no print() output, panics are not printed
        --no-heap       no alloc()/free()
    """
    if verbose and quiet:
        raise click.UsageError("-v and -q cannot be used together")
    setup_logging(verbose, quiet)

    if output is None:
        output = input_file.with_suffix(".c")

    features = FeatureToggles.from_env()
    if no_logging:
        features = replace(features, logging=False)
    if no_printing:
        features = replace(features, printing=False)
    if no_heap:
        features = replace(features, heap_allocator=False)

    options = CompilerOptions(
        features=features,
        search_paths=[str(p) for p in include],
        max_errors=max_errors,
        verbose=verbose,
    )

    try:
        # AST dump mode
        if ast:
            source = input_file.read_text(encoding="utf-8")
            program = parse_source(source, str(input_file), max_errors)
            click.echo(ASTPrinter().print(program))
            return

        compiler = RockCompiler(options)
        result = compiler.compile_file(str(input_file))

        for warning in result.warnings:
            logger.warning(warning)

        if run:
            execution = Interpreter(result.unit, features).run()
            for line in execution.output:
                click.echo(line)
            for line in execution.log:
                click.echo(line, err=True)
            logger.debug(f"exit status {execution.exit_status}")
            sys.exit(execution.exit_status)

        output.write_text(result.c_source, encoding="utf-8")

        if verbose:
            click.echo(f"Wrote {len(result.c_source)} bytes to {output}")
            click.echo(f"Tokenized: {result.token_count} tokens")
            click.echo(f"Modules: {len(result.unit.modules)}")

        if not quiet:
            click.echo(f"Compiled {input_file} -> {output}")

    except Exception as e:
        handle_cli_exception(e, verbose=verbose, error_type="Runtime" if run else None)


if __name__ == "__main__":
    main()
