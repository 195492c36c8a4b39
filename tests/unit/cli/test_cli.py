"""Tests for the dubsense command-line interface."""

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from dubsense.build.diagnostics import BuildIssue, IssueSeverity
from dubsense.cli import main
from dubsense.config.manifest import ManifestError
from dubsense.config.state import InvalidConfigurationError


@pytest.fixture
def project_dir(tmp_path):
    """Create a project directory with a dub.json so CLI validation passes."""
    (tmp_path / "dub.json").write_text(json.dumps({"name": "myapp"}))
    return tmp_path


@pytest.fixture
def mock_workspace():
    """Replace DubWorkspace in the CLI with a MagicMock."""
    with patch("dubsense.cli.DubWorkspace") as workspace_class:
        workspace = MagicMock()
        workspace.configurations.return_value = ["application", "unittest"]
        workspace.build_types.return_value = ["debug", "release"]
        workspace.arch_types.return_value = ["x86_64", "x86"]
        workspace.configuration.return_value = "application"
        workspace.compiler.return_value = "dmd"
        workspace_class.return_value = workspace
        yield workspace


ERROR = BuildIssue(
    line=3,
    column=5,
    file="source/app.d",
    severity=IssueSeverity.ERROR,
    message="undefined identifier `x`",
)
WARNING = BuildIssue(line=9, column=0, file="source/app.d", severity=IssueSeverity.WARNING, message="unreachable")


class TestCLICheck:
    """Tests for the 'dubsense check' command."""

    def test_check_clean(self, mock_workspace, project_dir, monkeypatch, capsys):
        mock_workspace.check.return_value = [WARNING]
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "source/app.d(9,0): Warning: unreachable" in out
        assert "0 error(s), 1 warning(s), 0 deprecation(s)" in out

    def test_check_with_errors(self, mock_workspace, project_dir, monkeypatch, capsys):
        mock_workspace.check.return_value = [ERROR, WARNING]
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert "source/app.d(3,5): Error: undefined identifier `x`" in out
        assert "Check failed" in out

    def test_check_applies_selections(self, mock_workspace, project_dir, monkeypatch):
        mock_workspace.check.return_value = []
        mock_workspace.set_compiler.return_value = True
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "dubsense",
                "check",
                "-c",
                "unittest",
                "-b",
                "release",
                "-a",
                "x86",
                "--compiler",
                "ldc2",
                str(project_dir),
            ],
        )

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
        mock_workspace.startup.assert_called_once()
        mock_workspace.set_configuration.assert_called_once_with("unittest")
        mock_workspace.set_build_type.assert_called_once_with("release")
        mock_workspace.set_arch_type.assert_called_once_with("x86")
        mock_workspace.set_compiler.assert_called_once_with("ldc2")

    def test_check_unknown_configuration(self, mock_workspace, project_dir, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", "-c", "bench", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2
        assert "Unknown configuration 'bench'" in capsys.readouterr().out
        mock_workspace.check.assert_not_called()

    def test_check_invalid_configuration(self, mock_workspace, project_dir, monkeypatch, capsys):
        mock_workspace.check.side_effect = InvalidConfigurationError("invalid configuration ''")
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2
        assert "Cannot check project" in capsys.readouterr().out

    def test_check_broken_manifest(self, mock_workspace, project_dir, monkeypatch):
        mock_workspace.startup.side_effect = ManifestError("Failed to parse dub.json")
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2

    def test_check_keyboard_interrupt(self, mock_workspace, project_dir, monkeypatch, capsys):
        mock_workspace.check.side_effect = KeyboardInterrupt()
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 130
        assert "Interrupted" in capsys.readouterr().out

    def test_check_unexpected_error(self, mock_workspace, project_dir, monkeypatch, capsys):
        mock_workspace.check.side_effect = RuntimeError("dub crashed")
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        assert "RuntimeError: dub crashed" in capsys.readouterr().out


class TestCLIPaths:
    """Tests for the 'dubsense paths' command."""

    def test_paths(self, mock_workspace, project_dir, monkeypatch, capsys):
        mock_workspace.imports.return_value = ["/p/source"]
        mock_workspace.string_imports.return_value = ["/p/views"]
        mock_workspace.file_imports.return_value = ["/p/source/app.d"]
        monkeypatch.setattr(sys, "argv", ["dubsense", "paths", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "Import paths:\n  /p/source" in out
        assert "String import paths:\n  /p/views" in out
        assert "Source files:\n  /p/source/app.d" in out

    def test_no_paths(self, mock_workspace, project_dir, monkeypatch):
        mock_workspace.imports.return_value = []
        mock_workspace.string_imports.return_value = []
        mock_workspace.file_imports.return_value = []
        monkeypatch.setattr(sys, "argv", ["dubsense", "paths", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1


class TestCLIConfigs:
    """Tests for the 'dubsense configs' command."""

    def test_configs(self, mock_workspace, project_dir, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["dubsense", "configs", str(project_dir)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert " * application" in out
        assert "   unittest" in out
        assert "   release" in out
        assert "   x86_64" in out


class TestCLIServe:
    """Tests for the 'dubsense serve' command."""

    def test_serve(self, project_dir, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["dubsense", "serve", "--parent-pid", "1234", str(project_dir)])

        with patch("dubsense.cli.run_server", return_value=0) as run_server:
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 0
        run_server.assert_called_once_with(project_dir, parent_pid=1234, foreground=False)


class TestCLIValidation:
    """Argument and path validation."""

    def test_no_command_shows_help(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["dubsense"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
        assert "usage:" in capsys.readouterr().out

    def test_version(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["dubsense", "--version"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("dubsense ")

    def test_missing_directory(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(tmp_path / "nope")])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2
        assert "Path does not exist" in capsys.readouterr().out

    def test_directory_without_recipe(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["dubsense", "check", str(tmp_path)])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2
        assert "No dub.json or dub.sdl" in capsys.readouterr().out
