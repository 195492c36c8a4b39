"""
Per-project dub workspace service.

This module ties together everything dubsense knows about one project: the
loaded package recipe, the active selections and derived paths, dependency
listings and check builds. One DubWorkspace is created per project; nothing
is shared between instances.

Lifecycle:
    workspace = DubWorkspace(Path("~/code/myapp"))
    workspace.startup()            # load recipe, pick defaults, compute paths
    workspace.set_build_type("unittest")
    issues = workspace.build().result()
    workspace.update().result()    # re-read the recipe after it changed on disk
    workspace.stop()

A build that is in flight while update() replaces the recipe keeps the
selections it started with; its result reflects whatever dub sees on disk.
"""

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .build.diagnostics import BuildIssue
from .build.engine import DubBuildEngine, IBuildEngine
from .build.orchestrator import BuildCallback, CheckBuildOrchestrator
from .config.compilers import CompilerResolutionError, CompilerResolver
from .config.manifest import DubManifest
from .config.project_model import (
    DubDescribeProvider,
    DubPackageInfo,
    IBuildSettingsProvider,
    packages_from_description,
)
from .config.state import ConfigurationState
from .config.tool_settings import ToolSettings

EventSink = Callable[[Dict[str, Any]], None]
UpdateCallback = Callable[[Optional[BaseException], Optional[bool]], None]

INVALID_DEFAULT_CONFIG_EVENT = {
    "type": "warning",
    "component": "dub",
    "detail": "invalid-default-config",
}


class WorkspaceError(Exception):
    """Raised when the workspace is used before startup or after stop."""

    pass


class DubWorkspace:
    """
    Service context for one dub project.

    All selection setters return plain booleans: False means the value was
    rejected or produced no import paths. Operations that need a valid
    configuration raise InvalidConfigurationError instead.
    """

    def __init__(
        self,
        project_dir: Path,
        settings: Optional[ToolSettings] = None,
        provider: Optional[IBuildSettingsProvider] = None,
        engine: Optional[IBuildEngine] = None,
        resolver: Optional[CompilerResolver] = None,
        broadcast: Optional[EventSink] = None,
        register_import_provider: bool = True,
        register_string_import_provider: bool = True,
        register_import_files_provider: bool = False,
    ):
        """
        Initialize workspace.

        Args:
            project_dir: Project root holding dub.json or dub.sdl
            settings: Tool settings (defaults to the environment)
            provider: Build settings provider (defaults to `dub describe`)
            engine: Build engine (defaults to `dub build`)
            resolver: Compiler resolver (defaults to a PATH lookup)
            broadcast: Receives event dictionaries such as warnings
            register_import_provider: Offer import paths to other components
            register_string_import_provider: Offer string import paths
            register_import_files_provider: Offer source files
        """
        self.project_dir = Path(project_dir).resolve()
        self.settings = settings or ToolSettings.from_env()
        self.resolver = resolver or CompilerResolver()
        self.provider = provider or DubDescribeProvider(self.project_dir, self.settings.dub_binary)
        self.engine = engine or DubBuildEngine(self.project_dir, self.settings.dub_binary)
        self.broadcast = broadcast
        self._providers = {
            "imports": register_import_provider,
            "string-imports": register_string_import_provider,
            "file-imports": register_import_files_provider,
        }
        self._state: Optional[ConfigurationState] = None
        self._orchestrator: Optional[CheckBuildOrchestrator] = None

    # Lifecycle

    @property
    def state(self) -> ConfigurationState:
        if self._state is None:
            raise WorkspaceError("Workspace has not been started")
        return self._state

    @property
    def is_started(self) -> bool:
        return self._state is not None

    def startup(self) -> bool:
        """
        Load the project and select dub's defaults.

        Returns:
            True if the default selections have import paths. False if the
            default configuration is not usable (an invalid-default-config
            warning is broadcast) or no paths were found.

        Raises:
            ManifestError: If the package recipe is missing or unreadable
        """
        manifest = DubManifest(self.project_dir)
        compiler_name = self.resolver.default_compiler(self.settings.preferred_compiler)

        platform = None
        try:
            compiler = self.resolver.resolve(compiler_name)
            platform = self.resolver.determine_platform(compiler)
        except CompilerResolutionError as e:
            logging.warning(f"Default compiler unavailable: {e}")

        configuration = manifest.get_default_configuration(platform) or ""
        self._state = ConfigurationState(
            manifest,
            self.provider,
            self.resolver,
            compiler=compiler_name,
            configuration=configuration,
        )
        self._orchestrator = CheckBuildOrchestrator(self._state, self.engine)

        logging.info(
            f"Loaded {manifest.name or self.project_dir.name} from {manifest.manifest_path} "
            + f"(configuration={configuration or 'none'}, compiler={compiler_name})"
        )

        if not self._state.is_valid():
            logging.warning("Dub Error: No configuration available")
            self._emit(INVALID_DEFAULT_CONFIG_EVENT)
            return False
        return self._state.recompute_paths()

    def stop(self) -> None:
        """Drop the loaded project."""
        self._state = None
        self._orchestrator = None

    def restart(self) -> None:
        """Re-read the package recipe from disk, keeping the selections."""
        manifest = DubManifest(self.project_dir)
        self.state.reload(manifest)
        logging.info(f"Reloaded {manifest.manifest_path}")

    def update(self, callback: Optional[UpdateCallback] = None) -> "Future[bool]":
        """
        Reload the recipe and recompute paths in the background.

        Args:
            callback: Optional callable receiving (error, has_paths)

        Returns:
            Future resolving to whether import paths are available
        """
        future: "Future[bool]" = Future()
        future.set_running_or_notify_cancel()
        if callback is not None:
            future.add_done_callback(lambda done: _deliver(done, callback))

        try:
            self.restart()
        except Exception as e:
            logging.error(f"Failed to reload project: {e}")
            future.set_exception(e)
            return future

        state = self.state

        def recompute() -> None:
            try:
                future.set_result(state.recompute_paths())
            except Exception as e:
                logging.error(f"Failed to update import paths: {e}")
                future.set_exception(e)

        threading.Thread(target=recompute, name="dubsense-update", daemon=True).start()
        return future

    def import_providers(self) -> List[str]:
        """Names of the path lists this workspace offers to other components."""
        return [name for name, enabled in self._providers.items() if enabled]

    def _emit(self, event: Dict[str, Any]) -> None:
        if self.broadcast is not None:
            self.broadcast(dict(event))

    # Validation and dependencies

    def validate_configuration(self) -> None:
        """Raise InvalidConfigurationError if the configuration is invalid."""
        self.state.validate_configuration()

    def dependencies(self) -> "Future[List[DubPackageInfo]]":
        """
        List every package of the resolved dependency graph except the root.

        The selections are checked and captured on the calling thread;
        `dub describe` runs in the background.

        Returns:
            Future resolving to the packages in dub's order. A failing
            describe (BuildSettingsError) is set on the future.

        Raises:
            InvalidConfigurationError: If the configuration is invalid
            CompilerResolutionError: If the selected compiler cannot be resolved
        """
        state = self.state
        with state.lock:
            state.validate_configuration()
            settings = state.generator_settings()

        future: "Future[List[DubPackageInfo]]" = Future()
        future.set_running_or_notify_cancel()
        provider = self.provider

        def describe() -> None:
            try:
                future.set_result(packages_from_description(provider.describe(settings)))
            except Exception as e:
                logging.error(f"Failed to list dependencies: {e}")
                future.set_exception(e)

        threading.Thread(target=describe, name="dubsense-describe", daemon=True).start()
        return future

    def root_dependencies(self) -> List[str]:
        """
        List the names of the root package's direct dependencies.

        Raises:
            InvalidConfigurationError: If the configuration is invalid
        """
        state = self.state
        state.validate_configuration()
        return state.manifest.get_dependency_names()

    # Paths

    def imports(self) -> List[str]:
        return self.state.import_paths

    def string_imports(self) -> List[str]:
        return self.state.string_import_paths

    def file_imports(self) -> List[str]:
        return self.state.source_files

    # Selections

    def configurations(self) -> List[str]:
        return self.state.configurations()

    def build_types(self) -> List[str]:
        return self.state.build_types()

    def arch_types(self) -> List[str]:
        return self.state.arch_types()

    def configuration(self) -> str:
        return self.state.configuration

    def set_configuration(self, configuration: str) -> bool:
        return self.state.set_configuration(configuration)

    def arch_type(self) -> str:
        return self.state.arch_type

    def set_arch_type(self, arch_type: str) -> bool:
        return self.state.set_arch_type(arch_type)

    def build_type(self) -> str:
        return self.state.build_type

    def set_build_type(self, build_type: str) -> bool:
        return self.state.set_build_type(build_type)

    def compiler(self) -> str:
        return self.state.compiler

    def set_compiler(self, compiler: str) -> bool:
        return self.state.set_compiler(compiler)

    # Project identity

    def name(self) -> str:
        return self.state.manifest.name

    def path(self) -> str:
        return str(self.project_dir)

    # Building

    def build(self, callback: Optional[BuildCallback] = None) -> "Future[List[BuildIssue]]":
        """
        Start a check-only build of the active selections.

        Raises:
            InvalidConfigurationError: If the configuration is invalid
        """
        return self._require_orchestrator().request_build(callback)

    def check(self) -> List[BuildIssue]:
        """Run a check-only build on the calling thread."""
        orchestrator = self._require_orchestrator()
        self.state.validate_configuration()
        return orchestrator.run_check()

    def _require_orchestrator(self) -> CheckBuildOrchestrator:
        if self._orchestrator is None:
            raise WorkspaceError("Workspace has not been started")
        return self._orchestrator


def _deliver(future: "Future[bool]", callback: UpdateCallback) -> None:
    error = future.exception()
    if error is not None:
        callback(error, None)
    else:
        callback(None, future.result())
