"""CLI utility functions for dubsense.

This module provides common utilities used across CLI commands including:
- Applying selection flags to a workspace
- Issue and error formatting
- Project path validation
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dubsense.build.diagnostics import BuildIssue, IssueSeverity
from dubsense.config.manifest import MANIFEST_FILES
from dubsense.workspace import DubWorkspace


@dataclass
class SelectionFlags:
    """Selections requested on the command line."""

    configuration: Optional[str] = None
    build_type: Optional[str] = None
    arch_type: Optional[str] = None
    compiler: Optional[str] = None


class SelectionApplier:
    """Applies command-line selections to a started workspace."""

    @staticmethod
    def apply(workspace: DubWorkspace, flags: SelectionFlags) -> None:
        """Apply selections in dependency order.

        The configuration goes first because the other setters need a valid
        one; the compiler goes before the arch type because it decides which
        arch types exist.

        Raises:
            ValueError: If a requested value is not available
        """
        if flags.configuration is not None:
            SelectionApplier._check(flags.configuration, workspace.configurations(), "configuration")
            workspace.set_configuration(flags.configuration)
        if flags.compiler is not None:
            if not workspace.set_compiler(flags.compiler) and workspace.compiler() != flags.compiler:
                raise ValueError(f"Compiler '{flags.compiler}' not found")
        if flags.build_type is not None:
            SelectionApplier._check(flags.build_type, workspace.build_types(), "build type")
            workspace.set_build_type(flags.build_type)
        if flags.arch_type is not None:
            SelectionApplier._check(flags.arch_type, workspace.arch_types(), "arch type")
            workspace.set_arch_type(flags.arch_type)

    @staticmethod
    def _check(value: str, available: List[str], what: str) -> None:
        if value not in available:
            raise ValueError(f"Unknown {what} '{value}'. Available: {', '.join(available) or 'none'}")


class IssuePrinter:
    """Prints build issues in compiler notation with ANSI colors."""

    COLORS = {
        IssueSeverity.ERROR: "\033[1;31m",
        IssueSeverity.WARNING: "\033[1;33m",
        IssueSeverity.DEPRECATION: "\033[1;36m",
    }
    RESET = "\033[0m"

    @staticmethod
    def print_issues(issues: List[BuildIssue], color: bool = True) -> None:
        for issue in issues:
            if color:
                print(f"{IssuePrinter.COLORS[issue.severity]}{issue.format()}{IssuePrinter.RESET}")
            else:
                print(issue.format())

    @staticmethod
    def summarize(issues: List[BuildIssue]) -> str:
        counts = {severity: 0 for severity in IssueSeverity}
        for issue in issues:
            counts[issue.severity] += 1
        return (
            f"{counts[IssueSeverity.ERROR]} error(s), "
            + f"{counts[IssueSeverity.WARNING]} warning(s), "
            + f"{counts[IssueSeverity.DEPRECATION]} deprecation(s)"
        )


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Invalid configuration")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class PathValidator:
    """Validates project paths and directories."""

    @staticmethod
    def validate_project_dir(project_dir: Path) -> None:
        """Validate that the project directory exists and holds a dub recipe.

        Raises:
            SystemExit: If the path is missing, not a directory, or has no recipe
        """
        if not project_dir.exists():
            print(f"{ErrorFormatter.RED}✗ Error: Path does not exist: {project_dir}{ErrorFormatter.RESET}")
            sys.exit(2)
        if not project_dir.is_dir():
            print(f"{ErrorFormatter.RED}✗ Error: Path is not a directory: {project_dir}{ErrorFormatter.RESET}")
            sys.exit(2)
        if not any((project_dir / name).is_file() for name in MANIFEST_FILES):
            print(
                f"{ErrorFormatter.RED}✗ Error: No dub.json or dub.sdl in {project_dir}{ErrorFormatter.RESET}"
            )
            sys.exit(2)
