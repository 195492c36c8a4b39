"""
Typed message protocol for the dubsense server.

This module defines the dataclasses exchanged between an editor integration
and the server, one JSON object per line.

Request:
    {"id": 7, "cmd": "dub", "subcmd": "set:build-type", "build-type": "release"}

Response:
    {"id": 7, "ok": true, "result": true}
    {"id": 8, "ok": false, "error": "Cannot use dub with invalid configuration", "error_type": "InvalidConfigurationError"}

Event (unsolicited):
    {"type": "warning", "component": "dub", "detail": "invalid-default-config"}
"""

import time
from dataclasses import dataclass, field
from typing import Any

RESERVED_KEYS = {"id", "cmd", "subcmd"}


class RequestError(Exception):
    """Raised for malformed requests (missing subcmd, missing arguments, unknown subcmd)."""

    pass


@dataclass
class WorkspaceRequest:
    """Client → Server: one subcommand call.

    Attributes:
        subcmd: Subcommand name (e.g. "list:import")
        args: Remaining request keys (e.g. {"configuration": "unittest"})
        request_id: Client-chosen id echoed in the response
        cmd: Component name, always "dub"
        timestamp: Unix timestamp when the request was received
    """

    subcmd: str
    args: dict[str, Any] = field(default_factory=dict)
    request_id: Any = None
    cmd: str = "dub"
    timestamp: float = field(default_factory=time.time)

    def require(self, key: str) -> Any:
        """Get a required argument.

        Raises:
            RequestError: If the argument is missing
        """
        if key not in self.args:
            raise RequestError(f"{key} not in request")
        return self.args[key]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {"cmd": self.cmd, "subcmd": self.subcmd}
        if self.request_id is not None:
            data["id"] = self.request_id
        data.update(self.args)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "WorkspaceRequest":
        """Create WorkspaceRequest from a decoded JSON object.

        Raises:
            RequestError: If the object is not a request
        """
        if not isinstance(data, dict):
            raise RequestError("Request must be a JSON object")
        subcmd = data.get("subcmd")
        if not isinstance(subcmd, str) or not subcmd:
            raise RequestError("subcmd not in request")
        cmd = data.get("cmd", "dub")
        if cmd != "dub":
            raise RequestError(f"Unknown component: {cmd}")
        return cls(
            subcmd=subcmd,
            args={k: v for k, v in data.items() if k not in RESERVED_KEYS},
            request_id=data.get("id"),
            cmd=cmd,
        )


@dataclass
class WorkspaceResponse:
    """Server → Client: result of one request.

    Attributes:
        request_id: Id of the answered request
        ok: Whether the request succeeded
        result: JSON-compatible result (when ok)
        error: Error message (when not ok)
        error_type: Exception class name (when not ok)
    """

    request_id: Any
    ok: bool
    result: Any = None
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {"id": self.request_id, "ok": self.ok}
        if self.ok:
            data["result"] = self.result
        else:
            data["error"] = self.error
            data["error_type"] = self.error_type
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkspaceResponse":
        """Create WorkspaceResponse from dictionary."""
        return cls(
            request_id=data.get("id"),
            ok=bool(data.get("ok", False)),
            result=data.get("result"),
            error=data.get("error"),
            error_type=data.get("error_type"),
        )

    @classmethod
    def success(cls, request_id: Any, result: Any) -> "WorkspaceResponse":
        return cls(request_id=request_id, ok=True, result=result)

    @classmethod
    def failure(cls, request_id: Any, error: BaseException) -> "WorkspaceResponse":
        return cls(request_id=request_id, ok=False, error=str(error), error_type=type(error).__name__)
