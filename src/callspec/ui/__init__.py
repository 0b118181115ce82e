"""Command-line surface."""

from callspec.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
