"""
Subcommand dispatch for the dubsense server.

Maps request subcommands onto DubWorkspace operations and converts their
results into JSON-compatible values. Every dispatch returns a Future so the
server treats quick getters and background builds alike.
"""

from concurrent.futures import Future
from typing import Any, Callable, Dict, List

from ..build.diagnostics import BuildIssue
from ..config.project_model import DubPackageInfo
from ..workspace import DubWorkspace
from .messages import RequestError, WorkspaceRequest

Handler = Callable[[DubWorkspace, WorkspaceRequest], Any]


def _to_json(value: Any) -> Any:
    if isinstance(value, (BuildIssue, DubPackageInfo)):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return value


def _string_arg(request: WorkspaceRequest, key: str) -> str:
    value = request.require(key)
    if not isinstance(value, str):
        raise RequestError(f"{key} must be a string")
    return value


def _validate(workspace: DubWorkspace, request: WorkspaceRequest) -> None:
    workspace.validate_configuration()


COMMANDS: Dict[str, Handler] = {
    "update": lambda ws, req: ws.update(),
    "build": lambda ws, req: ws.build(),
    "revalidate-config": _validate,
    "list:dep": lambda ws, req: ws.dependencies(),
    "list:rootdep": lambda ws, req: ws.root_dependencies(),
    "list:import": lambda ws, req: ws.imports(),
    "list:string-import": lambda ws, req: ws.string_imports(),
    "list:file-import": lambda ws, req: ws.file_imports(),
    "list:configurations": lambda ws, req: ws.configurations(),
    "list:build-types": lambda ws, req: ws.build_types(),
    "list:arch-types": lambda ws, req: ws.arch_types(),
    "get:configuration": lambda ws, req: ws.configuration(),
    "set:configuration": lambda ws, req: ws.set_configuration(_string_arg(req, "configuration")),
    "get:arch-type": lambda ws, req: ws.arch_type(),
    "set:arch-type": lambda ws, req: ws.set_arch_type(_string_arg(req, "arch-type")),
    "get:build-type": lambda ws, req: ws.build_type(),
    "set:build-type": lambda ws, req: ws.set_build_type(_string_arg(req, "build-type")),
    "get:compiler": lambda ws, req: ws.compiler(),
    "set:compiler": lambda ws, req: ws.set_compiler(_string_arg(req, "compiler")),
    "get:name": lambda ws, req: ws.name(),
    "get:path": lambda ws, req: ws.path(),
}


class Dispatcher:
    """Routes requests to a workspace.

    Usage:
        dispatcher = Dispatcher(workspace)
        future = dispatcher.dispatch(WorkspaceRequest(subcmd="list:import"))
        print(future.result())
    """

    def __init__(self, workspace: DubWorkspace):
        self.workspace = workspace

    @staticmethod
    def commands() -> List[str]:
        """Names of all supported subcommands."""
        return sorted(COMMANDS)

    def dispatch(self, request: WorkspaceRequest) -> "Future[Any]":
        """
        Run a request.

        Args:
            request: Parsed request

        Returns:
            Future resolving to the JSON-compatible result. Failures,
            including malformed requests, are set on the future rather
            than raised.
        """
        outcome: "Future[Any]" = Future()
        outcome.set_running_or_notify_cancel()

        handler = COMMANDS.get(request.subcmd)
        if handler is None:
            outcome.set_exception(RequestError(f"Unknown subcmd: {request.subcmd}"))
            return outcome

        try:
            value = handler(self.workspace, request)
        except KeyboardInterrupt:
            raise
        except Exception as e:
            outcome.set_exception(e)
            return outcome

        if isinstance(value, Future):
            value.add_done_callback(lambda done: _chain(done, outcome))
        else:
            outcome.set_result(_to_json(value))
        return outcome


def _chain(inner: "Future[Any]", outer: "Future[Any]") -> None:
    error = inner.exception()
    if error is not None:
        outer.set_exception(error)
    else:
        outer.set_result(_to_json(inner.result()))
