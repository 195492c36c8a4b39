"""Compiler diagnostic extraction.

This module turns the raw text a D compiler prints during a check-only build
into positioned, structured issues.

Design:
    - Every line is classified on its own; no state is carried across lines
    - Rules are tried in priority order (primary, continuation, deprecation)
    - Issues come out in the order their lines were emitted, never sorted
    - Lines that match no rule are dropped as log noise

Line shapes recognised:
    source/app.d(12,3): Error: undefined identifier `x`
    source/app.d(40): instantiated from here: `foo!int`
    source/app.d(7,5): std.foo is deprecated, use std.bar instead.
"""

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, List, Optional

PRIMARY_FORMAT = re.compile(
    r"(.*?)\((\d+)(?:,(\d+))?\): (Deprecation|Warning|Error): (.*)", re.IGNORECASE
)
CONTINUATION_FORMAT = re.compile(r"(.*?)\((\d+)(?:,(\d+))?\): (.*)")
DEPRECATION_FORMAT = re.compile(
    r"(.*?)\((\d+)(?:,(\d+))?\): (.*?) is deprecated, use (.*?) instead.$"
)

CONTINUATION_MARKER = "from"
DEPRECATION_MARKER = "is deprecated"

# Column used when the compiler omits it. Primary lines and the two
# secondary shapes deliberately disagree.
PRIMARY_DEFAULT_COLUMN = 0
SECONDARY_DEFAULT_COLUMN = 1


class IssueSeverity(IntEnum):
    """Severity of a build issue, serialized as its integer value."""

    ERROR = 0
    WARNING = 1
    DEPRECATION = 2

    @classmethod
    def from_string(cls, value: str) -> "IssueSeverity":
        """Convert a compiler severity word (any case) to IssueSeverity."""
        return cls[value.upper()]

    @property
    def label(self) -> str:
        """Severity word as the compiler prints it."""
        return self.name.capitalize()


@dataclass(frozen=True)
class BuildIssue:
    """One diagnostic reported by the compiler.

    Attributes:
        line: 1-based line number in `file`
        column: Column number (defaulted when the compiler omits it)
        file: Path exactly as the compiler printed it
        severity: Error, warning or deprecation
        message: Diagnostic text
    """

    line: int
    column: int
    file: str
    severity: IssueSeverity
    message: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "line": self.line,
            "column": self.column,
            "file": self.file,
            "type": int(self.severity),
            "text": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildIssue":
        """Create BuildIssue from dictionary."""
        return cls(
            line=data["line"],
            column=data.get("column", 0),
            file=data["file"],
            severity=IssueSeverity(data["type"]),
            message=data.get("text", ""),
        )

    def format(self) -> str:
        """Render the issue in the compiler's own notation."""
        return f"{self.file}({self.line},{self.column}): {self.severity.label}: {self.message}"


def _column(value: Optional[str], default: int) -> int:
    if not value:
        return default
    return int(value)


def classify_line(line: str) -> List[BuildIssue]:
    """Classify one line of compiler output.

    Args:
        line: A single output line without its line terminator

    Returns:
        Issues produced by the line, usually zero or one. A line carrying both
        the continuation and the deprecation markers can yield two.
    """
    match = PRIMARY_FORMAT.match(line)
    if match:
        return [
            BuildIssue(
                line=int(match.group(2)),
                column=_column(match.group(3), PRIMARY_DEFAULT_COLUMN),
                file=match.group(1),
                severity=IssueSeverity.from_string(match.group(4)),
                message=match.group(5),
            )
        ]

    issues = []
    if CONTINUATION_MARKER in line:
        cont = CONTINUATION_FORMAT.match(line)
        if cont:
            issues.append(
                BuildIssue(
                    line=int(cont.group(2)),
                    column=_column(cont.group(3), SECONDARY_DEFAULT_COLUMN),
                    file=cont.group(1),
                    severity=IssueSeverity.ERROR,
                    message=cont.group(4),
                )
            )

    if DEPRECATION_MARKER in line:
        depr = DEPRECATION_FORMAT.match(line)
        if depr:
            old_symbol, new_symbol = depr.group(4), depr.group(5)
            issues.append(
                BuildIssue(
                    line=int(depr.group(2)),
                    column=_column(depr.group(3), SECONDARY_DEFAULT_COLUMN),
                    file=depr.group(1),
                    severity=IssueSeverity.DEPRECATION,
                    message=f"{old_symbol} is deprecated, use {new_symbol} instead.",
                )
            )

    return issues


class DiagnosticParser:
    """Incremental parser fed line by line while a build is running.

    Usage:
        parser = DiagnosticParser()
        for line in build_output_lines:
            parser.feed(line)
        issues = parser.issues
    """

    def __init__(self) -> None:
        self._issues: List[BuildIssue] = []

    def feed(self, line: str) -> None:
        """Classify one output line and record any issues it produces."""
        self._issues.extend(classify_line(line.rstrip("\r\n")))

    def feed_output(self, output: str) -> None:
        """Feed a chunk of output that may span several lines."""
        for line in output.splitlines():
            self.feed(line)

    @property
    def issues(self) -> List[BuildIssue]:
        """Issues collected so far, in emission order."""
        return list(self._issues)


def parse_build_output(raw_output: str | Iterable[str]) -> List[BuildIssue]:
    """Parse the complete output of one check-only build.

    Args:
        raw_output: Captured stdout/stderr text, or an iterable of lines

    Returns:
        Issues in the order their lines appear in the output
    """
    parser = DiagnosticParser()
    if isinstance(raw_output, str):
        parser.feed_output(raw_output)
    else:
        for line in raw_output:
            parser.feed(line)
    return parser.issues
