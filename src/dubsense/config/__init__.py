"""Configuration modules for dubsense."""

from .build_settings import GeneratorSettings
from .compilers import BuildPlatform, CompilerInfo, CompilerResolutionError, CompilerResolver
from .manifest import BUILTIN_BUILD_TYPES, DubManifest, ManifestError
from .project_model import (
    BuildSettingsError,
    DubDescribeProvider,
    DubPackageInfo,
    IBuildSettingsProvider,
    PathSet,
)
from .state import BuildSelection, ConfigurationState, InvalidConfigurationError
from .tool_settings import ToolSettings

__all__ = [
    "BUILTIN_BUILD_TYPES",
    "BuildPlatform",
    "BuildSelection",
    "BuildSettingsError",
    "CompilerInfo",
    "CompilerResolutionError",
    "CompilerResolver",
    "ConfigurationState",
    "DubDescribeProvider",
    "DubManifest",
    "DubPackageInfo",
    "GeneratorSettings",
    "IBuildSettingsProvider",
    "InvalidConfigurationError",
    "ManifestError",
    "PathSet",
    "ToolSettings",
]
