"""Tests for the CLI entry point and the console presenter."""

import errno
import io
import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from rushgen.cli.main import build_parser, main
from rushgen.cli.presenter import ConsolePresenter
from rushgen.core.events import EventKind, GenerateEvent, Stage
from rushgen.core.pipeline import format_duration


def _run_ok(stdout="", stderr="", rc=0):
    return SimpleNamespace(stdout=stdout, stderr=stderr, returncode=rc)


class TestParser:
    def test_lazy_flag(self):
        args = build_parser().parse_args(["generate", "-l"])
        assert args.lazy is True
        assert build_parser().parse_args(["generate"]).lazy is False

    def test_global_options(self):
        args = build_parser().parse_args(["--config", "x/rush.json", "--log-level", "DEBUG", "generate", "--lazy"])
        assert args.config == "x/rush.json"
        assert args.log_level == "DEBUG"
        assert args.lazy is True


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 2
        assert "generate" in capsys.readouterr().out

    def test_missing_config_exits_non_zero(self, tmp_path, capsys):
        code = main(["--config", str(tmp_path / "missing.json"), "generate"])
        assert code == 1
        assert "ERROR" in capsys.readouterr().err

    @patch("subprocess.run", return_value=_run_ok(stdout="ok\n"))
    def test_generate_success(self, mock_run, make_workspace, capsys):
        path = make_workspace()
        code = main(["--config", str(path), "generate"])

        assert code == 0
        out = capsys.readouterr().out
        assert 'Starting "rush generate"' in out
        assert "Rush generate finished successfully." in out
        assert "rush link" in out
        verbs = [call.args[0][1] for call in mock_run.call_args_list]
        assert verbs == ["install", "shrinkwrap"]
        manifest = json.loads((path.parent / "common" / "package.json").read_text())
        assert "rush-foo" in manifest["dependencies"]

    def test_unexpected_os_error_exits_non_zero(self, make_workspace, capsys):
        path = make_workspace()
        (path.parent / "common" / "node_modules").mkdir(parents=True)
        with patch.object(Path, "glob", side_effect=PermissionError(errno.EACCES, "Permission denied")):
            code = main(["--config", str(path), "generate", "--lazy"])
        assert code == 1
        assert "ERROR during clean-node-modules: Permission denied" in capsys.readouterr().err

    def test_missing_config_names_stage(self, tmp_path, capsys):
        main(["--config", str(tmp_path / "missing.json"), "generate"])
        assert "ERROR during load-configuration" in capsys.readouterr().err

    @patch("subprocess.run", return_value=_run_ok(stderr="npm ERR! code E404", rc=1))
    def test_installer_failure_exits_non_zero(self, mock_run, make_workspace, capsys):
        path = make_workspace()
        assert main(["--config", str(path), "generate", "--lazy"]) == 1
        err = capsys.readouterr().err
        assert "during install" in err
        assert "E404" in err


class TestConsolePresenter:
    def _render(self, *events, verbose=False):
        out, err = io.StringIO(), io.StringIO()
        presenter = ConsolePresenter(out=out, err=err, verbose=verbose)
        for event in events:
            presenter.handle(event)
        return out.getvalue(), err.getvalue()

    def test_progress_and_finish(self):
        out, err = self._render(
            GenerateEvent(EventKind.STARTED, 'Starting "rush generate"', details={"lazy": True}),
            GenerateEvent(EventKind.PROGRESS, "Creating temp projects..."),
            GenerateEvent(EventKind.FINISHED, "done (1.00 seconds)", details={"hint": "next"}),
        )
        assert 'Starting "rush generate" (lazy)' in out
        assert "Creating temp projects..." in out
        assert out.rstrip().endswith("next")
        assert err == ""

    def test_stage_lines_only_when_verbose(self):
        events = (
            GenerateEvent(EventKind.STAGE_START, stage=Stage.INSTALL),
            GenerateEvent(EventKind.STAGE_END, stage=Stage.INSTALL, elapsed_seconds=2.5),
        )
        quiet, _ = self._render(*events)
        loud, _ = self._render(*events, verbose=True)
        assert quiet == ""
        assert "[install] done in 2.50 seconds" in loud

    def test_errors_and_warnings_go_to_stderr(self):
        out, err = self._render(
            GenerateEvent(EventKind.WARNING, "review file not updated"),
            GenerateEvent(EventKind.ERROR, "boom", stage=Stage.FREEZE),
        )
        assert out == ""
        assert "Warning: review file not updated" in err
        assert "ERROR during freeze: boom" in err


def test_format_duration():
    assert format_duration(1.234) == "1.23 seconds"
    assert format_duration(61.0) == "1 minute 1.0 seconds"
    assert format_duration(150.0) == "2 minutes 30.0 seconds"
