"""
Rock Module Resolver
====================

This module expands 'use' directives into a single CompilationUnit.

    use "drivers/led.rock"

Resolution Rules
----------------
- A 'use' path is located by a SourceLoader, relative to the importing
  file first and then along the loader's search paths.
- Each distinct canonical path is read and parsed at most once, no matter
  how many files import it.
- An import cycle (a.rock uses b.rock, b.rock uses a.rock, directly or
  through other files) is an ImportCycleError. It aborts resolution: there
  is no meaningful order in which to merge the files.
- Importing the same file twice from one file is a warning; the second
  'use' is ignored.
- A missing import is an ImportNotFoundError; the remaining imports are
  still resolved so that one run reports every missing file.
- Declarations of all files are merged into one flat namespace, imported
  files first (dependency post-order, in 'use' order). The same top-level
  name defined in two different files is a DuplicateDefinitionError naming
  both files. Duplicates inside one file are left to semantic lowering.

Loaders
-------
The compiler core never touches the file system directly. Callers supply
a loader:

- FileSystemLoader: real files, canonical path = resolved absolute path
- InMemoryLoader: a dict of path -> source, for embedding and tests

Any object with locate(target, importer), read(path) and canonicalize(path)
methods works.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple
import logging
import posixpath

from boulder.errors import SourceLocation
from boulder.rockc.ast import (
    ProgramNode,
    Declaration,
    ImportDeclaration,
    MacroConstDeclaration,
    FunctionNode,
    StructDeclaration,
    EnumDeclaration,
    ImplBlock,
)
from boulder.rockc.errors import (
    ErrorCollector,
    ImportCycleError,
    ImportNotFoundError,
    DuplicateDefinitionError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Source Loaders
# =============================================================================

class SourceLoader(Protocol):
    """File-access collaborator used by the resolver."""

    def locate(self, target: str, importer: Optional[str]) -> str:
        """
        Return the canonical path of a 'use' target.

        Raises:
            FileNotFoundError: If the target cannot be found
        """
        ...

    def read(self, path: str) -> str:
        """Return the text of a canonical path (raises OSError on failure)."""
        ...

    def canonicalize(self, path: str) -> str:
        """Return the canonical form of a path given by the caller."""
        ...


class FileSystemLoader:
    """
    Loads Rock sources from disk.

    Attributes:
        search_paths: Directories tried after the importing file's directory
    """

    def __init__(self, search_paths: Optional[List[str]] = None):
        self.search_paths = list(search_paths or [])

    def candidates(self, target: str, importer: Optional[str]) -> List[Path]:
        base = Path(importer).parent if importer else Path(".")
        paths = [base / target]
        paths.extend(Path(p) / target for p in self.search_paths)
        return paths

    def locate(self, target: str, importer: Optional[str]) -> str:
        for candidate in self.candidates(target, importer):
            if candidate.is_file():
                return str(candidate.resolve())
        raise FileNotFoundError(target)

    def read(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    def canonicalize(self, path: str) -> str:
        return str(Path(path).resolve())


class InMemoryLoader:
    """
    Loads Rock sources from a dictionary.

    Paths are POSIX-style and normalized, so "lib/../util.rock" and
    "util.rock" name the same module.

    Example:
        loader = InMemoryLoader({
            "main.rock": 'use "util.rock"\\nfn start() { }',
            "util.rock": "fn helper() { }",
        })
    """

    def __init__(self, files: Dict[str, str], search_paths: Optional[List[str]] = None):
        self.files = {posixpath.normpath(path): text for path, text in files.items()}
        self.search_paths = list(search_paths or [])

    def locate(self, target: str, importer: Optional[str]) -> str:
        base = posixpath.dirname(importer) if importer else ""
        candidates = [posixpath.join(base, target)]
        candidates.extend(posixpath.join(p, target) for p in self.search_paths)
        for candidate in candidates:
            normalized = posixpath.normpath(candidate)
            if normalized in self.files:
                return normalized
        raise FileNotFoundError(target)

    def read(self, path: str) -> str:
        try:
            return self.files[posixpath.normpath(path)]
        except KeyError:
            raise FileNotFoundError(path) from None

    def canonicalize(self, path: str) -> str:
        return posixpath.normpath(path)


# =============================================================================
# Compilation Unit
# =============================================================================

@dataclass
class SourceModule:
    """One parsed file of a compilation unit."""
    path: str
    program: ProgramNode


@dataclass
class CompilationUnit:
    """
    Merged declarations reachable from an entry file.

    The unit is the only thing later passes receive: semantic lowering
    annotates its nodes, the code generator and interpreter read them.

    Attributes:
        entry_path: Canonical path of the entry file
        modules: Parsed files in merge order (imports before importers)
        declarations: Merged top-level declarations, 'use' items removed
    """
    entry_path: str
    modules: List[SourceModule] = field(default_factory=list)
    declarations: List[Declaration] = field(default_factory=list)

    @property
    def paths(self) -> List[str]:
        return [module.path for module in self.modules]

    def of_type(self, node_type: type) -> list:
        return [decl for decl in self.declarations if isinstance(decl, node_type)]


def declared_names(decl: Declaration) -> List[str]:
    """Top-level names a declaration introduces ('Type::method' for methods)."""
    if isinstance(decl, (FunctionNode, StructDeclaration, EnumDeclaration, MacroConstDeclaration)):
        return [decl.name]
    if isinstance(decl, ImplBlock):
        return [f"{decl.type_name}::{method.name}" for method in decl.methods]
    return []


# =============================================================================
# Resolver
# =============================================================================

class ModuleResolver:
    """
    Builds the transitive closure of 'use' imports.

    Usage:
        resolver = ModuleResolver(loader, parse_module, collector)
        unit = resolver.resolve(entry_program, entry_path)

    Args:
        loader: SourceLoader used to locate and read imports
        parse_module: Callable (path, text) -> ProgramNode; it is expected to
            record its own lexical and syntax errors
        errors: Collector receiving resolution errors
    """

    def __init__(
        self,
        loader: SourceLoader,
        parse_module: Callable[[str, str], ProgramNode],
        errors: ErrorCollector,
    ):
        self.loader = loader
        self.parse_module = parse_module
        self.errors = errors
        self._modules: Dict[str, ProgramNode] = {}
        self._order: List[str] = []
        self._stack: List[str] = []

    def resolve(self, entry: ProgramNode, entry_path: str) -> CompilationUnit:
        """
        Resolve all imports of an already parsed entry file.

        Raises:
            ImportCycleError: If the import graph contains a cycle
        """
        self._modules = {entry_path: entry}
        self._order = []
        self._stack = []

        self._visit(entry_path, entry)

        unit = CompilationUnit(
            entry_path=entry_path,
            modules=[SourceModule(path, self._modules[path]) for path in self._order],
        )
        unit.declarations = self._merge(unit.modules)
        logger.debug(
            f"resolved {len(unit.modules)} modules, {len(unit.declarations)} declarations"
        )
        return unit

    def _visit(self, path: str, program: ProgramNode) -> None:
        """Depth-first walk; appends path to the merge order when done."""
        self._stack.append(path)
        used: Dict[str, str] = {}

        for decl in program.declarations:
            if not isinstance(decl, ImportDeclaration):
                continue
            target = self._locate(decl, path)
            if target is None:
                continue

            if target in used:
                self.errors.add_warning(
                    f"duplicate import of '{decl.path}' (already imported as '{used[target]}')",
                    decl.location,
                )
                continue
            used[target] = decl.path

            if target in self._stack:
                chain = self._stack[self._stack.index(target):] + [target]
                raise ImportCycleError(chain, location=decl.location)

            if target in self._modules:
                continue

            imported = self._load(decl, target)
            if imported is None:
                continue
            self._modules[target] = imported
            self._visit(target, imported)

        self._stack.pop()
        self._order.append(path)

    def _locate(self, decl: ImportDeclaration, importer: str) -> Optional[str]:
        try:
            return self.loader.locate(decl.path, importer)
        except OSError:
            search_paths = getattr(self.loader, "search_paths", None)
            self.errors.add(ImportNotFoundError(
                decl.path, location=decl.location, search_paths=search_paths,
            ))
            return None

    def _load(self, decl: ImportDeclaration, target: str) -> Optional[ProgramNode]:
        try:
            text = self.loader.read(target)
        except (OSError, UnicodeDecodeError) as e:
            self.errors.add(ImportNotFoundError(
                decl.path, reason=f"cannot read file ({e})", location=decl.location,
            ))
            return None
        logger.debug(f"parsing imported module {target}")
        return self.parse_module(target, text)

    def _merge(self, modules: List[SourceModule]) -> List[Declaration]:
        """Flatten declarations, reporting names defined in two files."""
        merged: List[Declaration] = []
        origins: Dict[str, Tuple[str, SourceLocation]] = {}

        for module in modules:
            for decl in module.program.declarations:
                if isinstance(decl, ImportDeclaration):
                    continue

                clash = None
                for name in declared_names(decl):
                    origin = origins.get(name)
                    if origin is not None and origin[0] != module.path:
                        clash = name
                        self.errors.add(DuplicateDefinitionError(
                            name, origin[0], module.path, location=decl.location,
                        ))
                    elif origin is None:
                        origins[name] = (module.path, decl.location)

                # Drop a clashing free-standing declaration; impl blocks are kept
                # whole since their other methods may be fine.
                if clash is None or isinstance(decl, ImplBlock):
                    merged.append(decl)

        return merged
