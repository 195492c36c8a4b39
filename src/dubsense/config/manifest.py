"""
dub package manifest reader.

This module reads dub.json / dub.sdl package recipes and extracts what the
configuration service needs: configurations, custom build types and
dependencies.

Example dub.sdl:
    name "myapp"
    dependency "vibe-d" version="~>0.9"
    configuration "application" {
        targetType "executable"
    }
    configuration "unittest" {
        platforms "posix"
    }
    buildType "ci" {
        buildOptions "debugMode" "unittests"
    }

Usage:
    manifest = DubManifest(Path("."))
    configs = manifest.get_configurations()
    default = manifest.get_default_configuration(platform)
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .compilers import BuildPlatform

MANIFEST_FILES = ("dub.json", "dub.sdl", "package.json")

BUILTIN_BUILD_TYPES = [
    "plain",
    "debug",
    "release",
    "release-debug",
    "release-nobounds",
    "unittest",
    "docs",
    "ddox",
    "profile",
    "profile-gc",
    "cov",
    "unittest-cov",
]

APP_ENTRY_FILES = ("source/app.d", "source/main.d", "src/app.d", "src/main.d")
EXECUTABLE_TARGET_TYPES = {"executable"}


class ManifestError(Exception):
    """Exception raised for missing or unreadable package manifests."""

    pass


@dataclass
class ConfigurationInfo:
    """One configuration declared by a package."""

    name: str
    platforms: List[str] = field(default_factory=list)
    target_type: Optional[str] = None

    def supports(self, platform: Optional[BuildPlatform]) -> bool:
        if not self.platforms or platform is None:
            return True
        return any(platform.matches(spec) for spec in self.platforms)


SDL_TOKEN = re.compile(
    r"""
    (?P<space>[ \t\r\f]+|\\\r?\n)
    |(?P<comment>(?://|--|\#)[^\n]*|/\*.*?\*/)
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<raw>`[^`]*`)
    |(?P<error>/\*|["`])
    |(?P<newline>[\n;])
    |(?P<open>\{)
    |(?P<close>\})
    |(?P<equals>=)
    |(?P<word>[^\s{};"`=]+)
    """,
    re.VERBOSE | re.DOTALL,
)
SDL_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}


@dataclass
class SdlTag:
    """One SDL statement with the names of its enclosing tags."""

    name: str
    values: List[str] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    parents: Tuple[str, ...] = ()


def _sdl_tokens(text: str, source: Path) -> Iterator[Tuple[str, str, int]]:
    pos = 0
    lineno = 1
    while pos < len(text):
        match = SDL_TOKEN.match(text, pos)
        if match is None:
            raise ManifestError(f"Failed to parse {source} line {lineno}: unexpected {text[pos]!r}")
        kind = match.lastgroup
        if kind == "error":
            what = "comment" if match.group() == "/*" else "string"
            raise ManifestError(f"Failed to parse {source} line {lineno}: unterminated {what}")
        if kind not in ("space", "comment"):
            yield kind, match.group(), lineno
        lineno += match.group().count("\n")
        pos = match.end()


def _sdl_value(token: str) -> str:
    if token.startswith('"'):
        return re.sub(r"\\(.)", lambda m: SDL_ESCAPES.get(m.group(1), m.group(1)), token[1:-1])
    if token.startswith("`"):
        return token[1:-1]
    return token


def _sdl_tag(items: List[Tuple[str, str]], parents: Tuple[str, ...]) -> SdlTag:
    # a statement that starts with a value is an anonymous tag
    if items[0][0] == "word":
        tag, rest = SdlTag(name=items[0][1], parents=parents), items[1:]
    else:
        tag, rest = SdlTag(name="", parents=parents), items

    i = 0
    while i < len(rest):
        kind, token = rest[i]
        if i + 2 < len(rest) and rest[i + 1][0] == "equals":
            tag.attributes[token] = _sdl_value(rest[i + 2][1])
            i += 3
            continue
        if kind != "equals":
            tag.values.append(_sdl_value(token))
        i += 1
    return tag


def parse_sdl(text: str, source: Path) -> List[SdlTag]:
    """
    Split an SDL document into tags.

    Statements end at a newline, a semicolon or a brace, so one-line blocks
    such as `configuration "win" { platforms "windows" }` hold two tags.
    Comments (//, --, # and /* */) are dropped before values are read.

    Args:
        text: SDL source
        source: File name used in error messages

    Returns:
        Tags in document order, each with the names of its enclosing tags

    Raises:
        ManifestError: On unterminated strings or comments and unbalanced braces
    """
    tags: List[SdlTag] = []
    parents: List[str] = []
    items: List[Tuple[str, str]] = []

    def end_statement() -> Optional[SdlTag]:
        if not items:
            return None
        tag = _sdl_tag(items, tuple(parents))
        tags.append(tag)
        items.clear()
        return tag

    for kind, token, lineno in _sdl_tokens(text, source):
        if kind == "newline":
            end_statement()
        elif kind == "open":
            tag = end_statement()
            parents.append(tag.name if tag else "")
        elif kind == "close":
            end_statement()
            if not parents:
                raise ManifestError(f"Unbalanced braces in {source} line {lineno}")
            parents.pop()
        else:
            items.append((kind, token))

    end_statement()
    if parents:
        raise ManifestError(f"Unbalanced braces in {source}: missing '}}' for '{parents[-1]}'")
    return tags


def _dependency_spec(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        if "version" in value:
            return str(value["version"])
        if "path" in value:
            return f"path:{value['path']}"
        if "repository" in value:
            return str(value["repository"])
    return "*"


class DubManifest:
    """
    Parser for a dub package recipe.

    The recipe is read once at construction; create a new instance to pick
    up changes made on disk.
    """

    def __init__(self, project_dir: Path):
        """
        Load the package recipe found in a project directory.

        Args:
            project_dir: Directory containing dub.json or dub.sdl

        Raises:
            ManifestError: If no recipe exists or it cannot be parsed
        """
        self.project_dir = Path(project_dir)
        self.manifest_path = self.find_manifest(self.project_dir)

        self.name = ""
        self.target_type: Optional[str] = None
        self.configurations: List[ConfigurationInfo] = []
        self.build_types: List[str] = []
        self.dependencies: Dict[str, str] = {}

        try:
            text = self.manifest_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"Failed to read {self.manifest_path}: {e}") from e

        if self.manifest_path.suffix == ".sdl":
            self._parse_sdl(text)
        else:
            self._parse_json(text)

    @staticmethod
    def find_manifest(project_dir: Path) -> Path:
        """Locate the recipe file, preferring dub.json over dub.sdl.

        Raises:
            ManifestError: If the directory has no recipe
        """
        for filename in MANIFEST_FILES:
            candidate = project_dir / filename
            if candidate.is_file():
                return candidate
        raise ManifestError(
            f"No package manifest found in {project_dir} (expected one of: {', '.join(MANIFEST_FILES)})"
        )

    def _parse_json(self, text: str) -> None:
        try:
            recipe = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Failed to parse {self.manifest_path}: {e}") from e

        if not isinstance(recipe, dict):
            raise ManifestError(f"Failed to parse {self.manifest_path}: recipe must be an object")

        self.name = str(recipe.get("name", ""))
        self.target_type = recipe.get("targetType")

        for dep_name, spec in recipe.get("dependencies", {}).items():
            self.dependencies[dep_name] = _dependency_spec(spec)

        for config in recipe.get("configurations", []):
            if "name" not in config:
                raise ManifestError(f"Configuration without a name in {self.manifest_path}")
            self.configurations.append(
                ConfigurationInfo(
                    name=config["name"],
                    platforms=list(config.get("platforms", [])),
                    target_type=config.get("targetType"),
                )
            )
            for dep_name, spec in config.get("dependencies", {}).items():
                self.dependencies.setdefault(dep_name, _dependency_spec(spec))

        self.build_types = list(recipe.get("buildTypes", {}).keys())

    def _parse_sdl(self, text: str) -> None:
        current: Optional[ConfigurationInfo] = None

        for tag in parse_sdl(text, self.manifest_path):
            if not tag.parents:
                if tag.name == "name" and tag.values:
                    self.name = tag.values[0]
                elif tag.name == "targetType" and tag.values:
                    self.target_type = tag.values[0]
                elif tag.name == "configuration" and tag.values:
                    current = ConfigurationInfo(name=tag.values[0])
                    self.configurations.append(current)
                elif tag.name == "buildType" and tag.values:
                    self.build_types.append(tag.values[0])
                elif tag.name == "dependency" and tag.values:
                    self.dependencies[tag.values[0]] = _dependency_spec(tag.attributes)
            elif tag.parents == ("configuration",) and current is not None:
                if tag.name == "platforms":
                    current.platforms.extend(tag.values)
                elif tag.name == "targetType" and tag.values:
                    current.target_type = tag.values[0]
                elif tag.name == "dependency" and tag.values:
                    self.dependencies.setdefault(tag.values[0], _dependency_spec(tag.attributes))

    def _implicit_configuration(self) -> str:
        if self.target_type in EXECUTABLE_TARGET_TYPES:
            return "application"
        if any((self.project_dir / entry).is_file() for entry in APP_ENTRY_FILES):
            return "application"
        return "library"

    def get_configurations(self) -> List[str]:
        """
        Get all configuration names of the package.

        Returns:
            Declared configuration names, or dub's implicit default
            ("application" or "library") when none are declared
        """
        if not self.configurations:
            return [self._implicit_configuration()]
        return [config.name for config in self.configurations]

    def has_configuration(self, name: str) -> bool:
        """Check whether a configuration is declared (or implicit)."""
        return name in self.get_configurations()

    def get_default_configuration(self, platform: Optional[BuildPlatform] = None) -> Optional[str]:
        """
        Get the configuration dub selects by default.

        Args:
            platform: Build platform to filter configurations by

        Returns:
            First configuration supporting the platform, or None if every
            declared configuration is restricted to other platforms
        """
        if not self.configurations:
            return self._implicit_configuration()
        for config in self.configurations:
            if config.supports(platform):
                return config.name
        return None

    def get_build_types(self) -> List[str]:
        """
        Get dub's built-in build types followed by the custom ones.

        Returns:
            List of build type names
        """
        types = list(BUILTIN_BUILD_TYPES)
        for build_type in self.build_types:
            if build_type not in types:
                types.append(build_type)
        return types

    def get_dependency_names(self) -> List[str]:
        """Get names of all packages this package depends on."""
        return list(self.dependencies.keys())
