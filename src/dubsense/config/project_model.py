"""
Project model queries answered by `dub describe`.

This module asks dub for the derived build settings of a project (import
paths, string import paths, source files) and for the resolved package
graph used by dependency listings.

Design:
    - One describe call answers all requested path lists together
    - Every failure (dub missing, timeout, non-zero exit, malformed output)
      is raised as BuildSettingsError
    - NUL-delimited list output is used so paths may contain any character
"""

import json
import re
import subprocess
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .build_settings import GeneratorSettings

PATH_FIELDS = ("import-paths", "string-import-paths", "source-files")
DESCRIBE_TIMEOUT = 120  # seconds
NUL_RUN = re.compile(r"(\x00+)")


class BuildSettingsError(Exception):
    """Raised when the project model cannot be queried."""

    pass


@dataclass(frozen=True)
class PathSet:
    """Derived path lists for one set of selections.

    The three lists are always replaced together.
    """

    import_paths: tuple[str, ...] = ()
    string_import_paths: tuple[str, ...] = ()
    source_files: tuple[str, ...] = ()

    @property
    def has_paths(self) -> bool:
        """True when there is anything to import from."""
        return bool(self.import_paths) or bool(self.source_files)


EMPTY_PATHS = PathSet()


@dataclass
class DubPackageInfo:
    """A package of the resolved dependency graph.

    Attributes:
        name: Package name
        ver: Resolved version
        path: Package directory
        description: Short description from the recipe
        homepage: Project homepage
        authors: Author names
        copyright: Copyright string
        license: License identifier
        dependencies: Dependency name -> resolved version
    """

    name: str
    ver: str = ""
    path: str = ""
    description: str = ""
    homepage: str = ""
    authors: List[str] = field(default_factory=list)
    copyright: str = ""
    license: str = ""
    dependencies: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def split_nul_lists(output: str, count: int) -> List[List[str]]:
    """Split dub's NUL-delimited multi-list output.

    dub joins the values of one list with a NUL and joins the lists with
    two NULs, so a run of 2*n NULs closes n lists. "a\\0b\\0\\0\\0\\0c"
    holds the three lists [a, b], [] and [c]; an empty first or last list
    shows up as a leading or trailing pair.

    Args:
        output: Raw stdout of `dub describe --data-list --data-0`
        count: Number of lists requested

    Returns:
        List of `count` string lists

    Raises:
        BuildSettingsError: If the output does not hold exactly `count` lists
    """
    output = output.rstrip("\r\n")
    lists: List[List[str]] = [[]]
    for token in NUL_RUN.split(output):
        if not token:
            continue
        if token[0] == "\0":
            # an odd run also carries one value separator
            lists.extend([] for _ in range(len(token) // 2))
        else:
            lists[-1].append(token)

    if len(lists) != count:
        raise BuildSettingsError(f"Expected {count} path lists from dub, got {len(lists)}")
    return lists


def packages_from_description(description: dict[str, Any]) -> List[DubPackageInfo]:
    """Build package records for every non-root package of a describe result.

    Args:
        description: Parsed JSON from `dub describe`

    Returns:
        One DubPackageInfo per dependency package, in dub's order
    """
    root = description.get("rootPackage")
    packages = description.get("packages", [])
    versions = {pkg.get("name"): pkg.get("version", "") for pkg in packages}

    result = []
    for pkg in packages:
        if pkg.get("name") == root:
            continue
        result.append(
            DubPackageInfo(
                name=pkg.get("name", ""),
                ver=pkg.get("version", ""),
                path=pkg.get("path", ""),
                description=pkg.get("description", ""),
                homepage=pkg.get("homepage", ""),
                authors=list(pkg.get("authors", [])),
                copyright=pkg.get("copyright", ""),
                license=pkg.get("license", ""),
                dependencies={dep: versions.get(dep, "") for dep in pkg.get("dependencies", [])},
            )
        )
    return result


class IBuildSettingsProvider(ABC):
    """Interface for answering build settings queries about a project."""

    @abstractmethod
    def list_build_settings(self, settings: GeneratorSettings, fields: Sequence[str]) -> List[List[str]]:
        """List several build settings in one query.

        Args:
            settings: Selections to evaluate the project with
            fields: dub data field names (e.g. "import-paths")

        Returns:
            One string list per requested field, in request order

        Raises:
            BuildSettingsError: If the query fails
        """
        pass

    @abstractmethod
    def describe(self, settings: GeneratorSettings) -> dict[str, Any]:
        """Describe the resolved project.

        Raises:
            BuildSettingsError: If the query fails
        """
        pass


class DubDescribeProvider(IBuildSettingsProvider):
    """Answers build settings queries by running `dub describe`."""

    def __init__(self, project_dir: Path, dub_binary: str = "dub", timeout: float = DESCRIBE_TIMEOUT):
        """Initialize provider.

        Args:
            project_dir: Project root holding the package recipe
            dub_binary: dub executable
            timeout: Seconds before a describe call is abandoned
        """
        self.project_dir = project_dir
        self.dub_binary = dub_binary
        self.timeout = timeout

    def _run(self, args: List[str]) -> str:
        cmd = [self.dub_binary] + args
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.project_dir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise BuildSettingsError(f"dub not found: {self.dub_binary}") from e
        except subprocess.TimeoutExpired as e:
            raise BuildSettingsError(f"dub describe timed out after {self.timeout}s") from e
        except OSError as e:
            raise BuildSettingsError(f"Failed to run dub: {e}") from e

        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            raise BuildSettingsError(f"dub describe failed (exit {result.returncode}): {detail}")
        return result.stdout

    def list_build_settings(self, settings: GeneratorSettings, fields: Sequence[str]) -> List[List[str]]:
        args = ["describe", "--data-list", "--data-0"]
        args.extend(f"--data={name}" for name in fields)
        args.extend(settings.selector_args())
        return split_nul_lists(self._run(args), len(fields))

    def describe(self, settings: GeneratorSettings) -> dict[str, Any]:
        output = self._run(["describe"] + settings.selector_args())
        try:
            description = json.loads(output)
        except json.JSONDecodeError as e:
            raise BuildSettingsError(f"Invalid JSON from dub describe: {e}") from e
        if not isinstance(description, dict):
            raise BuildSettingsError("Invalid JSON from dub describe: expected an object")
        return description
