"""
Active build selections and derived path sets of one project.

This module holds the configuration, arch type, build type and compiler
currently selected for a project, together with the import paths, string
import paths and source files derived from them.

Design:
    - Setters validate before committing; an unknown value returns False and
      leaves every selection and path list untouched
    - After each accepted change the three path lists are recomputed in one
      provider query and swapped in as a single PathSet
    - A failed recomputation leaves all three lists empty and returns False
    - All mutation and snapshotting happens under one re-entrant lock, so a
      build started concurrently sees either the old or the new selections
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

from .build_settings import GeneratorSettings
from .compilers import (
    BASE_ARCH_TYPES,
    CompilerResolutionError,
    CompilerResolver,
    arch_types_for,
    compiler_family,
)
from .manifest import DubManifest
from .project_model import EMPTY_PATHS, PATH_FIELDS, IBuildSettingsProvider, PathSet

DEFAULT_ARCH_TYPE = "x86_64"
DEFAULT_BUILD_TYPE = "debug"


class InvalidConfigurationError(Exception):
    """Raised when an operation needs a valid configuration and there is none."""

    pass


@dataclass(frozen=True)
class BuildSelection:
    """Snapshot of the active selections."""

    configuration: str
    arch_type: str
    build_type: str
    compiler: str


class ConfigurationState:
    """
    Selections and derived path sets for one loaded project.

    Example usage:
        state = ConfigurationState(manifest, provider, CompilerResolver(), compiler="dmd")
        state.set_configuration(manifest.get_default_configuration())
        if not state.set_build_type("release"):
            print("release produced no import paths")
        print(state.import_paths)
    """

    def __init__(
        self,
        manifest: DubManifest,
        provider: IBuildSettingsProvider,
        resolver: CompilerResolver,
        compiler: str,
        configuration: str = "",
        arch_type: str = DEFAULT_ARCH_TYPE,
        build_type: str = DEFAULT_BUILD_TYPE,
    ):
        """
        Initialize configuration state.

        Args:
            manifest: Loaded package recipe
            provider: Answers build settings queries for path recomputation
            resolver: Resolves compiler names
            compiler: Initially selected compiler
            configuration: Initially selected configuration (may be invalid
                until the first successful set_configuration)
            arch_type: Initially selected arch type
            build_type: Initially selected build type
        """
        self.lock = threading.RLock()
        self._manifest = manifest
        self._provider = provider
        self._resolver = resolver
        self._configuration = configuration
        self._arch_type = arch_type
        self._build_type = build_type
        self._compiler = compiler
        self._paths: PathSet = EMPTY_PATHS

    # Getters

    @property
    def manifest(self) -> DubManifest:
        return self._manifest

    @property
    def configuration(self) -> str:
        return self._configuration

    @property
    def arch_type(self) -> str:
        return self._arch_type

    @property
    def build_type(self) -> str:
        return self._build_type

    @property
    def compiler(self) -> str:
        return self._compiler

    @property
    def paths(self) -> PathSet:
        return self._paths

    @property
    def import_paths(self) -> List[str]:
        return list(self._paths.import_paths)

    @property
    def string_import_paths(self) -> List[str]:
        return list(self._paths.string_import_paths)

    @property
    def source_files(self) -> List[str]:
        return list(self._paths.source_files)

    def configurations(self) -> List[str]:
        """Configurations declared by the project."""
        return self._manifest.get_configurations()

    def build_types(self) -> List[str]:
        """Built-in build types plus the project's custom ones."""
        return self._manifest.get_build_types()

    def arch_types(self) -> List[str]:
        """Arch types available with the selected compiler."""
        family = compiler_family(self._compiler)
        if family is None:
            return list(BASE_ARCH_TYPES)
        return arch_types_for(family, self._resolver.os_name)

    def selection(self) -> BuildSelection:
        """Take a consistent snapshot of the active selections."""
        with self.lock:
            return BuildSelection(
                configuration=self._configuration,
                arch_type=self._arch_type,
                build_type=self._build_type,
                compiler=self._compiler,
            )

    # Validation

    def is_valid(self) -> bool:
        return self._manifest.has_configuration(self._configuration)

    def validate_configuration(self) -> None:
        """Check the active configuration is declared by the project.

        Raises:
            InvalidConfigurationError: If it is not
        """
        if not self.is_valid():
            raise InvalidConfigurationError(
                f"Cannot use dub with invalid configuration '{self._configuration}' "
                + f"(available: {', '.join(self.configurations()) or 'none'})"
            )

    def reload(self, manifest: DubManifest) -> None:
        """Swap in a freshly loaded recipe. Paths are not recomputed."""
        with self.lock:
            self._manifest = manifest

    # Setters

    def set_configuration(self, name: str) -> bool:
        """
        Select a configuration and recompute paths.

        Returns:
            False if the configuration is not declared (nothing changes) or
            the new configuration has no import paths
        """
        with self.lock:
            if name not in self.configurations():
                logging.info(f"Rejected unknown configuration '{name}'")
                return False
            self._configuration = name
            return self.recompute_paths()

    def set_arch_type(self, name: str) -> bool:
        """
        Select an arch type and recompute paths.

        Returns:
            False if the arch type is not available for the compiler
            (nothing changes) or the new selection has no import paths

        Raises:
            InvalidConfigurationError: If the active configuration is invalid
        """
        with self.lock:
            if name not in self.arch_types():
                logging.info(f"Rejected unknown arch type '{name}'")
                return False
            self.validate_configuration()
            self._arch_type = name
            return self.recompute_paths()

    def set_build_type(self, name: str) -> bool:
        """
        Select a build type and recompute paths.

        Returns:
            False if the build type is unknown (nothing changes) or the new
            selection has no import paths

        Raises:
            InvalidConfigurationError: If the active configuration is invalid
        """
        with self.lock:
            if name not in self.build_types():
                logging.info(f"Rejected unknown build type '{name}'")
                return False
            self.validate_configuration()
            self._build_type = name
            return self.recompute_paths()

    def set_compiler(self, name: str) -> bool:
        """
        Select a compiler and recompute paths.

        Returns:
            False if the compiler cannot be resolved (nothing changes) or the
            new selection has no import paths

        Raises:
            InvalidConfigurationError: If the active configuration is invalid
        """
        with self.lock:
            try:
                self._resolver.resolve(name)
            except CompilerResolutionError as e:
                logging.info(f"Rejected compiler '{name}': {e}")
                return False
            self.validate_configuration()
            self._compiler = name
            return self.recompute_paths()

    # Derived paths

    def generator_settings(self, selection: Optional[BuildSelection] = None, **options: object) -> GeneratorSettings:
        """
        Build generator settings for a selection.

        Args:
            selection: Selections to use (defaults to the active ones)
            **options: GeneratorSettings flags (syntax_only, combined, ...)

        Returns:
            GeneratorSettings for dub

        Raises:
            CompilerResolutionError: If the selected compiler cannot be resolved
        """
        selection = selection or self.selection()
        compiler = self._resolver.resolve(selection.compiler)
        platform = self._resolver.determine_platform(compiler, selection.arch_type)
        return GeneratorSettings(
            platform=platform,
            config=selection.configuration,
            build_type=selection.build_type,
            compiler=compiler,
            arch_type=selection.arch_type,
            **options,  # type: ignore[arg-type]
        )

    def recompute_paths(self) -> bool:
        """
        Recompute import paths, string import paths and source files.

        Returns:
            True if there are import paths or source files, False if there
            are none or the project model could not be queried

        Raises:
            InvalidConfigurationError: If the active configuration is invalid
        """
        with self.lock:
            self.validate_configuration()
            try:
                settings = self.generator_settings(syntax_only=True, combined=True, run=False)
                lists = self._provider.list_build_settings(settings, PATH_FIELDS)
                if len(lists) != len(PATH_FIELDS):
                    raise ValueError(f"expected {len(PATH_FIELDS)} path lists, got {len(lists)}")
                paths = PathSet(
                    import_paths=tuple(p for p in lists[0] if p),
                    string_import_paths=tuple(p for p in lists[1] if p),
                    source_files=tuple(p for p in lists[2] if p),
                )
            except KeyboardInterrupt:
                raise
            except Exception as e:
                logging.warning(f"Exception while listing import paths: {e}")
                self._paths = EMPTY_PATHS
                return False

            self._paths = paths
            logging.info(
                f"Paths for {self._configuration}/{self._build_type}/{self._arch_type}: "
                + f"{len(paths.import_paths)} import, {len(paths.string_import_paths)} string import, "
                + f"{len(paths.source_files)} source"
            )
            return paths.has_paths
