"""
dubsense server - line-oriented JSON service for editor integrations

The server owns one DubWorkspace and answers requests read from stdin, one
JSON object per line, writing responses and events to stdout:

1. Loads the project on start and reports the result as a "loaded" event
2. Answers getters immediately and builds/updates when they finish, so
   responses can arrive out of request order
3. Logs to a rotating file (stdout carries protocol traffic only)
4. Shuts down on EOF, or when the watched parent process disappears

Architecture:
    Editor -> stdin -> Dispatcher -> DubWorkspace -> dub describe / dub build
       ^                                  |
       +------------ stdout <-------------+
"""

import json
import logging
import os
import signal
import sys
import threading
import time
from concurrent.futures import Future
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, TextIO

import psutil

from ..config.tool_settings import ToolSettings
from ..workspace import DubWorkspace
from .dispatcher import Dispatcher
from .messages import RequestError, WorkspaceRequest, WorkspaceResponse

PARENT_CHECK_INTERVAL = 5  # Check the parent process every 5 seconds
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: ToolSettings, foreground: bool = False) -> None:
    """Setup logging for the server."""
    settings.log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    # Console handler on stderr; stdout belongs to the protocol
    if foreground:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        str(settings.log_dir / "server.log"),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3,
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)


class StdioServer:
    """Reads requests from a text stream and writes responses to another."""

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        input_stream: TextIO | None = None,
        output_stream: TextIO | None = None,
        parent_pid: int | None = None,
    ):
        """Initialize server.

        Args:
            dispatcher: Routes requests to the workspace
            input_stream: Stream to read requests from (default: stdin)
            output_stream: Stream to write responses to (default: stdout)
            parent_pid: Process to watch; the server stops when it exits
        """
        self.dispatcher = dispatcher
        self.input_stream = input_stream or sys.stdin
        self.output_stream = output_stream or sys.stdout
        self.parent_pid = parent_pid
        self._write_lock = threading.Lock()
        self._stopping = threading.Event()

    def send(self, message: dict[str, Any]) -> None:
        """Write one message as a JSON line."""
        line = json.dumps(message)
        with self._write_lock:
            self.output_stream.write(line + "\n")
            self.output_stream.flush()

    def respond(self, request_id: Any, outcome: "Future[Any]") -> None:
        error = outcome.exception()
        if error is not None:
            logging.warning(f"Request {request_id} failed: {type(error).__name__}: {error}")
            self.send(WorkspaceResponse.failure(request_id, error).to_dict())
        else:
            self.send(WorkspaceResponse.success(request_id, outcome.result()).to_dict())

    def handle_line(self, line: str) -> None:
        """Parse and dispatch one request line."""
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            self.send(WorkspaceResponse.failure(None, RequestError(f"Invalid JSON: {e}")).to_dict())
            return

        request_id = data.get("id") if isinstance(data, dict) else None
        try:
            request = WorkspaceRequest.from_dict(data)
        except RequestError as e:
            self.send(WorkspaceResponse.failure(request_id, e).to_dict())
            return

        if self.dispatcher is None:
            raise RuntimeError("Server has no dispatcher")

        logging.debug(f"Request {request.request_id}: {request.subcmd}")
        outcome = self.dispatcher.dispatch(request)
        outcome.add_done_callback(lambda done: self.respond(request.request_id, done))

    def serve_forever(self) -> None:
        """Process requests until EOF or until the parent process exits."""
        if self.parent_pid is not None:
            threading.Thread(target=self._watch_parent, name="dubsense-parent-watch", daemon=True).start()

        try:
            for line in self.input_stream:
                if self._stopping.is_set():
                    break
                if not line.strip():
                    continue
                try:
                    self.handle_line(line)
                except KeyboardInterrupt:
                    raise
                except Exception as e:
                    logging.error(f"Server error: {e}", exc_info=True)
                    self.send(WorkspaceResponse.failure(None, e).to_dict())
        except KeyboardInterrupt:
            if not self._stopping.is_set():
                raise
            logging.info("Server stopped")
            return
        logging.info("Input closed, server stopping")

    def _watch_parent(self) -> None:
        while not self._stopping.is_set():
            time.sleep(PARENT_CHECK_INTERVAL)
            if self.parent_pid is not None and not psutil.pid_exists(self.parent_pid):
                logging.info(f"Parent process {self.parent_pid} is gone, shutting down")
                self.stop()
                return

    def stop(self) -> None:
        """Stop serving; interrupts a blocking read on stdin."""
        self._stopping.set()
        os.kill(os.getpid(), signal.SIGINT)


def run_server(
    project_dir: Path,
    parent_pid: int | None = None,
    foreground: bool = False,
    settings: ToolSettings | None = None,
) -> int:
    """Load a project and serve requests for it on stdin/stdout.

    Returns:
        Process exit code
    """
    settings = settings or ToolSettings.from_env()
    setup_logging(settings, foreground=foreground)

    server = StdioServer(parent_pid=parent_pid)
    workspace = DubWorkspace(project_dir, settings=settings, broadcast=server.send)
    server.dispatcher = Dispatcher(workspace)

    logging.info(f"Server started with PID {os.getpid()} for {workspace.project_dir}")
    try:
        loaded = workspace.startup()
    except KeyboardInterrupt:
        raise
    except Exception as e:
        logging.error(f"Failed to load project: {e}", exc_info=True)
        server.send({"type": "error", "component": "dub", "detail": str(e)})
        return 1

    server.send({"type": "loaded", "component": "dub", "result": loaded})

    try:
        server.serve_forever()
    finally:
        workspace.stop()
    return 0
