"""dubsense - check builds, diagnostics and import paths for dub projects."""

__version__ = "0.1.0"

from dubsense.build.diagnostics import BuildIssue, IssueSeverity, parse_build_output  # noqa: E402
from dubsense.workspace import DubWorkspace  # noqa: E402

__all__ = [
    "__version__",
    "BuildIssue",
    "DubWorkspace",
    "IssueSeverity",
    "parse_build_output",
]
