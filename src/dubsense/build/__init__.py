"""
Build components for dubsense.

This module provides:
- Diagnostic parsing of compiler output
- Build engine invocation (dub build)
- Check-only build orchestration
"""

from .diagnostics import (
    BuildIssue,
    DiagnosticParser,
    IssueSeverity,
    classify_line,
    parse_build_output,
)
from .engine import BuildEngineError, DubBuildEngine, IBuildEngine, is_harmless_failure
from .orchestrator import CheckBuildOrchestrator

__all__ = [
    "BuildEngineError",
    "BuildIssue",
    "CheckBuildOrchestrator",
    "DiagnosticParser",
    "DubBuildEngine",
    "IBuildEngine",
    "IssueSeverity",
    "classify_line",
    "is_harmless_failure",
    "parse_build_output",
]
