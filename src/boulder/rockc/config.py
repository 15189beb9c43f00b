"""
Rock Compiler - Configuration
=============================

Compiler configuration: which runtime facilities the generated program may
use, where imports are searched, and how many errors to collect.

Configuration can come from:
- Default values (defined here)
- Environment variables (FeatureToggles.from_env)
- rockc command-line flags, which override both

Feature Toggles
---------------
Every facility is enabled by default. Turning one off removes it from the
generated C entirely, including the panic routine's use of it:

    BOULDER_LOGGING    log() shims writing to stderr
    BOULDER_PRINTING   print() shims writing to stdout
    BOULDER_HEAP       alloc()/free() and the allocation table

Accepted values: 1/0, true/false, yes/no, on/off (case-insensitive).
"""

from dataclasses import dataclass, field
from typing import List, Optional
import logging
import os

logger = logging.getLogger(__name__)


_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def parse_flag(value: str) -> Optional[bool]:
    """Parse an environment flag; None for an unrecognized value."""
    text = value.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


@dataclass(frozen=True)
class FeatureToggles:
    """
    Runtime facilities available to the generated program.

    Attributes:
        logging: Emit log shims and log panic payloads to stderr
        printing: Emit print shims and print panic payloads to stdout
        heap_allocator: Emit alloc/free shims and release the heap on panic
    """
    logging: bool = True
    printing: bool = True
    heap_allocator: bool = True

    @property
    def uses_stdio(self) -> bool:
        """True when the generated C needs stdio.h."""
        return self.logging or self.printing

    @classmethod
    def from_env(cls) -> "FeatureToggles":
        """
        Create FeatureToggles from environment variables.

        Environment variables (all optional):
            BOULDER_LOGGING: Enable the log facility
            BOULDER_PRINTING: Enable the print facility
            BOULDER_HEAP: Enable the heap allocator

        Unrecognized values are ignored and leave the default in place.

        Returns:
            FeatureToggles with values from environment variables
        """
        values = {}
        for attribute, variable in (
            ("logging", "BOULDER_LOGGING"),
            ("printing", "BOULDER_PRINTING"),
            ("heap_allocator", "BOULDER_HEAP"),
        ):
            if raw := os.environ.get(variable):
                flag = parse_flag(raw)
                if flag is None:
                    logger.warning(f"ignoring {variable}={raw!r}: expected 0/1, true/false, yes/no or on/off")
                else:
                    values[attribute] = flag
        return cls(**values)


@dataclass
class CompilerOptions:
    """
    Options for one compilation.

    Attributes:
        features: Runtime facilities for the generated program
        search_paths: Directories searched for 'use' targets after the
            importing file's own directory
        max_errors: Errors collected before passes stop
        emit_main: Emit an 'int main(void)' wrapper when 'start' exists
        verbose: Log pass progress at INFO instead of DEBUG
    """
    features: FeatureToggles = field(default_factory=FeatureToggles)
    search_paths: List[str] = field(default_factory=list)
    max_errors: int = 50
    emit_main: bool = True
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "CompilerOptions":
        """Default options with feature toggles taken from the environment."""
        return cls(features=FeatureToggles.from_env())
