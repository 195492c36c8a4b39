"""
D compiler resolution.

This module maps a compiler name (as a user or dub.json would write it) to a
concrete executable, and derives the build platform dub would target with it.

Supported compiler families:
    dmd   - dmd
    ldc   - ldc2, ldmd2
    gdc   - gdc, gdmd (version suffixes such as gdc-13 are accepted)
"""

import os
import platform as host_platform
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

COMPILER_FAMILIES = {
    "dmd": "dmd",
    "ldc2": "ldc",
    "ldmd2": "ldc",
    "gdc": "gdc",
    "gdmd": "gdc",
}

# Probed in order when neither $DC nor an explicit compiler is given
DEFAULT_COMPILER_CANDIDATES = ("dmd", "ldc2", "gdc")
FALLBACK_COMPILER = "dmd"

BASE_ARCH_TYPES = ["x86_64", "x86"]


class CompilerResolutionError(Exception):
    """Raised when a compiler name cannot be resolved to an executable."""

    pass


@dataclass(frozen=True)
class CompilerInfo:
    """A resolved compiler.

    Attributes:
        name: Compiler family (dmd, ldc or gdc)
        binary: Name the compiler was requested by
        path: Absolute path of the executable
    """

    name: str
    binary: str
    path: str


@dataclass(frozen=True)
class BuildPlatform:
    """Target platform description matched against dub platform filters.

    Attributes:
        platform: OS identifiers, e.g. ("linux", "posix")
        architecture: Architecture identifiers, e.g. ("x86_64",)
        compiler: Compiler family
        compiler_binary: Compiler executable name
    """

    platform: Tuple[str, ...]
    architecture: Tuple[str, ...]
    compiler: str
    compiler_binary: str

    def matches(self, spec: str) -> bool:
        """Check a dub platform spec such as "linux", "windows-x86" or "posix-dmd".

        Every dash-separated component has to name this platform's OS,
        architecture or compiler.
        """
        names = set(self.platform) | set(self.architecture) | {self.compiler}
        return all(part in names for part in spec.split("-"))


def compiler_family(binary: str) -> Optional[str]:
    """Get the compiler family for an executable name or path.

    Args:
        binary: Executable name or path (e.g. "ldc2", "/usr/bin/gdc-13")

    Returns:
        Family name, or None if the executable is not a known D compiler
    """
    stem = Path(binary).name.lower()
    if stem.endswith(".exe"):
        stem = stem[: -len(".exe")]
    stem = stem.split("-", 1)[0]
    return COMPILER_FAMILIES.get(stem)


def arch_types_for(compiler_name: str, os_name: Optional[str] = None) -> List[str]:
    """List the arch types dub accepts for a compiler family.

    Args:
        compiler_name: Compiler family (dmd, ldc or gdc)
        os_name: sys.platform value to evaluate for (defaults to the host)

    Returns:
        Arch type names
    """
    os_name = os_name or sys.platform
    types = list(BASE_ARCH_TYPES)
    if os_name.startswith("win") and compiler_name == "dmd":
        types.append("x86_mscoff")
    if compiler_name == "gdc":
        types.extend(["arm", "arm_thumb"])
    return types


def _host_os_names(os_name: str) -> Tuple[str, ...]:
    if os_name.startswith("win"):
        return ("windows",)
    if os_name == "darwin":
        return ("osx", "posix")
    if os_name.startswith("linux"):
        return ("linux", "posix")
    if os_name.startswith("freebsd"):
        return ("freebsd", "posix")
    return (os_name, "posix")


def _host_architecture() -> str:
    machine = host_platform.machine().lower()
    if machine in ("amd64", "x86_64", "x64"):
        return "x86_64"
    if machine in ("i386", "i686", "x86"):
        return "x86"
    if machine.startswith("arm"):
        return "arm"
    return machine


class CompilerResolver:
    """Resolves compiler names to executables found on PATH.

    Usage:
        resolver = CompilerResolver()
        compiler = resolver.resolve("ldc2")
        target = resolver.determine_platform(compiler, "x86_64")
    """

    def __init__(self, search_path: Optional[str] = None, os_name: Optional[str] = None):
        """
        Initialize compiler resolver.

        Args:
            search_path: PATH-style string to search (defaults to $PATH)
            os_name: sys.platform value to target (defaults to the host)
        """
        self.search_path = search_path
        self.os_name = os_name or sys.platform

    def _which(self, binary: str) -> Optional[str]:
        if os.sep in binary or (os.altsep and os.altsep in binary):
            candidate = Path(binary)
            return str(candidate.resolve()) if candidate.is_file() else None
        return shutil.which(binary, path=self.search_path)

    def resolve(self, name: str) -> CompilerInfo:
        """Resolve a compiler name to an executable.

        Args:
            name: Compiler executable name or path

        Returns:
            CompilerInfo for the executable

        Raises:
            CompilerResolutionError: If the name is empty, not a known D
                compiler, or cannot be found
        """
        if not name:
            raise CompilerResolutionError("No compiler name given")

        family = compiler_family(name)
        if family is None:
            raise CompilerResolutionError(f"Unknown compiler: {name}")

        path = self._which(name)
        if path is None:
            raise CompilerResolutionError(f"Compiler not found: {name}")

        return CompilerInfo(name=family, binary=name, path=path)

    def default_compiler(self, preferred: Optional[str] = None) -> str:
        """Choose the compiler dub would use when none is selected.

        Args:
            preferred: Compiler requested through $DC, if any

        Returns:
            Compiler executable name
        """
        if preferred:
            return preferred
        for candidate in DEFAULT_COMPILER_CANDIDATES:
            if self._which(candidate):
                return candidate
        return FALLBACK_COMPILER

    def determine_platform(self, compiler: CompilerInfo, arch_type: Optional[str] = None) -> BuildPlatform:
        """Describe the platform a build with this compiler targets.

        Args:
            compiler: Resolved compiler
            arch_type: Selected arch type (defaults to the host architecture)

        Returns:
            BuildPlatform for platform filter matching
        """
        arch = arch_type or _host_architecture()
        if arch == "x86_mscoff":
            architecture: Tuple[str, ...] = ("x86", "x86_mscoff")
        elif arch == "arm_thumb":
            architecture = ("arm", "arm_thumb")
        else:
            architecture = (arch,)

        return BuildPlatform(
            platform=_host_os_names(self.os_name),
            architecture=architecture,
            compiler=compiler.name,
            compiler_binary=compiler.binary,
        )
