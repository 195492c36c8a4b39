"""
Check-only build orchestration.

This module runs a build that performs full semantic analysis but writes no
object files, feeds the output to the diagnostic parser as it arrives and
hands the resulting issue list back to the caller.

Design:
    - The configuration precondition is checked on the caller's thread; an
      invalid configuration fails the request before any work starts
    - Selections are snapshotted under the state lock, so a setter running
      while the build is in flight cannot change what is being built
    - Each request runs on its own thread and completes a Future; there is
      no cancellation and no timeout
    - "failed with exit code" failures only mean the compiler found errors;
      they are swallowed and the collected issues are returned
"""

import itertools
import logging
import threading
from concurrent.futures import Future
from typing import Callable, List, Optional

from ..config.state import BuildSelection, ConfigurationState
from .diagnostics import BuildIssue, DiagnosticParser
from .engine import BuildEngineError, IBuildEngine, is_harmless_failure

BuildCallback = Callable[[Optional[BaseException], Optional[List[BuildIssue]]], None]


class CheckBuildOrchestrator:
    """
    Runs check-only builds for one project.

    Example usage:
        orchestrator = CheckBuildOrchestrator(state, DubBuildEngine(project_dir))
        future = orchestrator.request_build()
        for issue in future.result():
            print(issue.format())
    """

    def __init__(self, state: ConfigurationState, engine: IBuildEngine):
        """
        Initialize orchestrator.

        Args:
            state: Configuration state providing the active selections
            engine: Build engine that runs the compiler
        """
        self.state = state
        self.engine = engine
        self._build_ids = itertools.count(1)

    def request_build(self, callback: Optional[BuildCallback] = None) -> "Future[List[BuildIssue]]":
        """
        Start a check-only build in the background.

        Args:
            callback: Optional callable receiving (error, issues) once the
                build finishes; exactly one of the two is None

        Returns:
            Future resolving to the issues in emission order, or failing with
            the build error

        Raises:
            InvalidConfigurationError: If the active configuration is invalid
        """
        with self.state.lock:
            self.state.validate_configuration()
            selection = self.state.selection()

        future: "Future[List[BuildIssue]]" = Future()
        future.set_running_or_notify_cancel()
        if callback is not None:
            future.add_done_callback(lambda done: _deliver(done, callback))

        build_id = next(self._build_ids)
        logging.info(
            f"Starting check build #{build_id}: config={selection.configuration}, "
            + f"build={selection.build_type}, arch={selection.arch_type}, compiler={selection.compiler}"
        )
        thread = threading.Thread(
            target=self._run,
            args=(build_id, selection, future),
            name=f"dubsense-build-{build_id}",
            daemon=True,
        )
        thread.start()
        return future

    def _run(self, build_id: int, selection: BuildSelection, future: "Future[List[BuildIssue]]") -> None:
        try:
            issues = self.run_check(selection)
        except Exception as e:
            logging.error(f"Check build #{build_id} failed: {e}")
            future.set_exception(e)
            return
        logging.info(f"Check build #{build_id} finished with {len(issues)} issues")
        future.set_result(issues)

    def run_check(self, selection: Optional[BuildSelection] = None) -> List[BuildIssue]:
        """
        Run a check-only build on the calling thread.

        Args:
            selection: Selections to build with (defaults to the active ones)

        Returns:
            Issues in emission order

        Raises:
            CompilerResolutionError: If the selected compiler cannot be resolved
            BuildEngineError: If the build fails for a reason other than
                compiler errors
        """
        settings = self.state.generator_settings(
            selection,
            syntax_only=True,
            temp_build=True,
        )

        parser = DiagnosticParser()
        try:
            self.engine.generate(settings, parser.feed)
        except BuildEngineError as e:
            if not is_harmless_failure(e):
                raise
            logging.debug(f"Ignoring harmless build failure: {e}")
        return parser.issues


def _deliver(future: "Future[List[BuildIssue]]", callback: BuildCallback) -> None:
    error = future.exception()
    if error is not None:
        callback(error, None)
    else:
        callback(None, future.result())
