"""Build engine invocation.

This module runs dub to compile a project and streams everything dub and the
compiler print to a caller-supplied sink, one line at a time.

Design:
    - Wraps subprocess.Popen with stderr merged into stdout
    - Output lines are delivered while the build is still running
    - A non-zero exit raises BuildEngineError; when dub reported the
      compiler's "failed with exit code" line, that line is the message
"""

import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from ..config.build_settings import GeneratorSettings

HARMLESS_FAILURE_FORMAT = re.compile(r"failed with exit code")

OutputSink = Callable[[str], None]


class BuildEngineError(Exception):
    """Raised when a build engine invocation fails."""

    pass


def is_harmless_failure(error: BaseException) -> bool:
    """Check whether a build failure only means the compiler reported errors.

    Args:
        error: Exception raised by the build engine

    Returns:
        True if the failure message contains "failed with exit code"
    """
    return HARMLESS_FAILURE_FORMAT.search(str(error)) is not None


class IBuildEngine(ABC):
    """Interface for compiling a project with given generator settings."""

    @abstractmethod
    def generate(self, settings: GeneratorSettings, on_output: OutputSink) -> None:
        """Build the project.

        Args:
            settings: Generator settings for the build
            on_output: Called with every output line, in emission order

        Raises:
            BuildEngineError: If the build fails
        """
        pass


class DubBuildEngine(IBuildEngine):
    """Builds projects by running `dub build`."""

    def __init__(self, project_dir: Path, dub_binary: str = "dub"):
        """Initialize build engine.

        Args:
            project_dir: Project root holding the package recipe
            dub_binary: dub executable
        """
        self.project_dir = project_dir
        self.dub_binary = dub_binary

    def build_command(self, settings: GeneratorSettings) -> list[str]:
        return [self.dub_binary] + settings.build_args()

    def build_environment(self, settings: GeneratorSettings) -> dict[str, str]:
        env = dict(os.environ)
        dflags = settings.env_dflags()
        if dflags:
            existing = env.get("DFLAGS", "").strip()
            env["DFLAGS"] = f"{existing} {dflags}".strip()
        return env

    def generate(self, settings: GeneratorSettings, on_output: OutputSink) -> None:
        cmd = self.build_command(settings)
        logging.debug(f"Running {' '.join(cmd)} in {self.project_dir}")

        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(self.project_dir),
                env=self.build_environment(settings),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise BuildEngineError(f"dub not found: {self.dub_binary}") from e
        except OSError as e:
            raise BuildEngineError(f"Failed to start dub: {e}") from e

        failure_line: Optional[str] = None
        last_line = ""
        assert process.stdout is not None
        try:
            with process.stdout:
                for raw_line in process.stdout:
                    line = raw_line.rstrip("\r\n")
                    if HARMLESS_FAILURE_FORMAT.search(line):
                        failure_line = line.strip()
                    if line.strip():
                        last_line = line.strip()
                    on_output(line)
        except BaseException:
            process.kill()
            process.wait()
            raise

        returncode = process.wait()
        if returncode != 0:
            if failure_line:
                raise BuildEngineError(failure_line)
            raise BuildEngineError(last_line or f"dub exited with status {returncode}")
