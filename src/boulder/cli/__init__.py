"""
Boulder Command-Line Interface
==============================

This package provides the command-line tools for Boulder:

- **rockc**: Rock compiler (Rock source to C, or direct execution)

Each tool is implemented as a Click-based CLI application with
comprehensive help and error reporting.
"""

__all__ = ["rockc"]
