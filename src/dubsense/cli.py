"""
Command-line interface for dubsense.

This module provides the `dubsense` CLI for checking dub projects and for
running the editor integration server.
"""

import argparse
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dubsense import __version__
from dubsense.build.diagnostics import IssueSeverity
from dubsense.cli_utils import (
    ErrorFormatter,
    IssuePrinter,
    PathValidator,
    SelectionApplier,
    SelectionFlags,
)
from dubsense.config.manifest import ManifestError
from dubsense.config.state import InvalidConfigurationError
from dubsense.daemon.server import run_server
from dubsense.workspace import DubWorkspace


@dataclass
class CheckArgs:
    """Arguments for the check command."""

    project_dir: Path
    selections: SelectionFlags = field(default_factory=SelectionFlags)
    verbose: bool = False


@dataclass
class PathsArgs:
    """Arguments for the paths command."""

    project_dir: Path
    selections: SelectionFlags = field(default_factory=SelectionFlags)


@dataclass
class ServeArgs:
    """Arguments for the serve command."""

    project_dir: Path
    parent_pid: Optional[int] = None
    foreground: bool = False


def _open_workspace(project_dir: Path, selections: SelectionFlags) -> DubWorkspace:
    workspace = DubWorkspace(project_dir)
    workspace.startup()
    SelectionApplier.apply(workspace, selections)
    return workspace


def check_command(args: CheckArgs) -> None:
    """Check a project for compile errors without producing binaries.

    Examples:
        dubsense check                       # Check default configuration
        dubsense check ~/code/myapp          # Check specific project
        dubsense check -c unittest -b unittest
        dubsense check --compiler ldc2 -a x86
    """
    try:
        workspace = _open_workspace(args.project_dir, args.selections)

        if args.verbose:
            print(f"Project: {workspace.name()} ({workspace.path()})")
            print(
                f"Configuration: {workspace.configuration()}, build type: {workspace.build_type()}, "
                + f"arch: {workspace.arch_type()}, compiler: {workspace.compiler()}"
            )
            print()

        start_time = time.time()
        issues = workspace.check()
        check_time = time.time() - start_time

        IssuePrinter.print_issues(issues, color=sys.stdout.isatty())
        summary = IssuePrinter.summarize(issues)

        if any(issue.severity == IssueSeverity.ERROR for issue in issues):
            ErrorFormatter.print_error("Check failed!", summary)
            sys.exit(1)

        ErrorFormatter.print_success(f"Check passed: {summary}")
        if args.verbose:
            print(f"Check time: {check_time:.2f}s")
        sys.exit(0)

    except (ManifestError, InvalidConfigurationError, ValueError) as e:
        ErrorFormatter.print_error("Cannot check project", str(e))
        sys.exit(2)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def paths_command(args: PathsArgs) -> None:
    """Print import paths, string import paths and source files.

    Examples:
        dubsense paths
        dubsense paths -c library -b release
    """
    try:
        workspace = _open_workspace(args.project_dir, args.selections)
        sections = (
            ("Import paths", workspace.imports()),
            ("String import paths", workspace.string_imports()),
            ("Source files", workspace.file_imports()),
        )
        for title, entries in sections:
            print(f"{title}:")
            for entry in entries:
                print(f"  {entry}")
        sys.exit(0 if workspace.imports() or workspace.file_imports() else 1)

    except (ManifestError, InvalidConfigurationError, ValueError) as e:
        ErrorFormatter.print_error("Cannot list paths", str(e))
        sys.exit(2)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e)


def configs_command(project_dir: Path) -> None:
    """Print the project's configurations and build types."""
    try:
        workspace = DubWorkspace(project_dir)
        workspace.startup()
        print("Configurations:")
        for name in workspace.configurations():
            marker = "*" if name == workspace.configuration() else " "
            print(f" {marker} {name}")
        print("Build types:")
        for name in workspace.build_types():
            print(f"   {name}")
        print("Arch types:")
        for name in workspace.arch_types():
            print(f"   {name}")
        sys.exit(0)

    except ManifestError as e:
        ErrorFormatter.print_error("Cannot read project", str(e))
        sys.exit(2)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e)


def serve_command(args: ServeArgs) -> None:
    """Serve requests for one project over stdin/stdout."""
    try:
        sys.exit(run_server(args.project_dir, parent_pid=args.parent_pid, foreground=args.foreground))
    except KeyboardInterrupt:
        sys.exit(130)


def _add_project_dir(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )


def _add_selection_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        dest="configuration",
        default=None,
        help="Configuration (default: the project's default configuration)",
    )
    parser.add_argument(
        "-b",
        "--build",
        dest="build_type",
        default=None,
        help="Build type (default: debug)",
    )
    parser.add_argument(
        "-a",
        "--arch",
        dest="arch_type",
        default=None,
        help="Arch type (default: x86_64)",
    )
    parser.add_argument(
        "--compiler",
        default=None,
        help="D compiler (default: $DC or the first of dmd, ldc2, gdc found)",
    )


def _selections(parsed_args: argparse.Namespace) -> SelectionFlags:
    return SelectionFlags(
        configuration=parsed_args.configuration,
        build_type=parsed_args.build_type,
        arch_type=parsed_args.arch_type,
        compiler=parsed_args.compiler,
    )


def main() -> None:
    """dubsense - check builds and import paths for dub projects."""
    parser = argparse.ArgumentParser(
        prog="dubsense",
        description="dubsense - check builds and import paths for dub projects",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"dubsense {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Check command
    check_parser = subparsers.add_parser(
        "check",
        help="Compile without output and report diagnostics",
    )
    _add_project_dir(check_parser)
    _add_selection_flags(check_parser)
    check_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show selections and timing",
    )

    # Paths command
    paths_parser = subparsers.add_parser(
        "paths",
        help="List import paths, string import paths and source files",
    )
    _add_project_dir(paths_parser)
    _add_selection_flags(paths_parser)

    # Configs command
    configs_parser = subparsers.add_parser(
        "configs",
        help="List configurations, build types and arch types",
    )
    _add_project_dir(configs_parser)

    # Serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Serve JSON requests on stdin/stdout for an editor",
    )
    _add_project_dir(serve_parser)
    serve_parser.add_argument(
        "--parent-pid",
        type=int,
        default=None,
        help="Exit when this process exits",
    )
    serve_parser.add_argument(
        "--foreground",
        action="store_true",
        help="Also log to stderr",
    )

    # Parse arguments
    parsed_args = parser.parse_args()

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    PathValidator.validate_project_dir(parsed_args.project_dir)

    if parsed_args.command == "check":
        check_command(
            CheckArgs(
                project_dir=parsed_args.project_dir,
                selections=_selections(parsed_args),
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "paths":
        paths_command(PathsArgs(project_dir=parsed_args.project_dir, selections=_selections(parsed_args)))
    elif parsed_args.command == "configs":
        configs_command(parsed_args.project_dir)
    elif parsed_args.command == "serve":
        serve_command(
            ServeArgs(
                project_dir=parsed_args.project_dir,
                parent_pid=parsed_args.parent_pid,
                foreground=parsed_args.foreground,
            )
        )


if __name__ == "__main__":
    main()
