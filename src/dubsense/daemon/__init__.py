"""
dubsense server - editor-facing request handling

This package maps JSON requests onto a DubWorkspace and serves them over
stdin/stdout.
"""

from dubsense.daemon.dispatcher import Dispatcher
from dubsense.daemon.messages import RequestError, WorkspaceRequest, WorkspaceResponse
from dubsense.daemon.server import StdioServer, run_server

__all__ = [
    "Dispatcher",
    "RequestError",
    "StdioServer",
    "WorkspaceRequest",
    "WorkspaceResponse",
    "run_server",
]
