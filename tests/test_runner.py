"""Tests for the command-line entry point."""

import json

import pytest
import yaml

from fleetrun import runner
from fleetrun.errors import InitializationError


@pytest.fixture(autouse=True)
def no_log_handlers(monkeypatch):
    monkeypatch.setattr(runner, "configure_logging", lambda level: None)


def run_json(capsys, argv):
    code = runner.main(argv + ["--format", "json"])
    return code, json.loads(capsys.readouterr().out)


def test_command_run_json(capsys):
    code, output = run_json(capsys, ["command", "run", "echo hi", "--nodes", "local://,local://"])

    assert code == 0
    assert [item["status"] for item in output["items"]] == ["success", "success"]
    assert output["items"][0]["result"]["value"]["stdout"] == "hi\n"


def test_failure_sets_exit_code(capsys):
    code, output = run_json(capsys, ["command", "run", "exit 4", "--nodes", "local://"])

    assert code == 1
    error = output["items"][0]["result"]["error"]
    assert error["kind"] == "ExecutionError"
    assert error["details"]["exit_code"] == 4


def test_task_run_with_parameters(capsys, tmp_path):
    task = tmp_path / "task.sh"
    task.write_text("#!/bin/sh\ncat\n")
    task.chmod(0o755)

    code, output = run_json(
        capsys,
        ["task", "run", str(task), "message=somemessage", "--nodes", "local://", "--noop",
         "--input-method", "stdin"],
    )

    assert code == 0
    assert output["items"][0]["result"]["value"] == {"message": "somemessage", "_noop": True}


def test_file_upload(capsys, tmp_path):
    source = tmp_path / "a.txt"
    source.write_text("data")
    destination = tmp_path / "b.txt"

    code, _ = run_json(
        capsys, ["file", "upload", str(source), str(destination), "--nodes", "local://"]
    )

    assert code == 0
    assert destination.read_text() == "data"


def test_human_output(capsys):
    code = runner.main(["command", "run", "echo hi", "--nodes", "local://"])
    out = capsys.readouterr().out

    assert code == 0
    assert "Started" in out
    assert "Finished" in out
    assert "hi" in out


def test_configfile_supplies_nodes(capsys, tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text(yaml.safe_dump({"nodes": ["local://"], "concurrency": 1, "format": "json"}))

    code = runner.main(["command", "run", "echo conf", "--configfile", str(path)])
    output = json.loads(capsys.readouterr().out)

    assert code == 0
    assert output["items"][0]["result"]["value"]["stdout"] == "conf\n"


def test_missing_nodes(capsys):
    assert runner.main(["command", "run", "whoami"]) == 1
    assert "no nodes given" in capsys.readouterr().err


def test_bad_config(capsys, tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text(yaml.safe_dump({"concurrency": -1}))

    assert runner.main(["command", "run", "whoami", "--configfile", str(path)]) == 1
    assert "Configuration error" in capsys.readouterr().err


def test_bad_task_parameter(capsys):
    assert runner.main(["task", "run", "t.sh", "novalue", "--nodes", "local://"]) == 1
    assert "KEY=VALUE" in capsys.readouterr().err


def test_initialization_failure(capsys, tmp_path):
    code = runner.main(
        ["command", "run", "whoami", "--nodes", "web1",
         "--private-key", str(tmp_path / "missing")]
    )
    assert code == 1
    assert "Failed to initialize ssh transport" in capsys.readouterr().err


def test_dashboard_initialization_failure(capsys, monkeypatch):
    from fleetrun import dashboard

    def run(app):
        app.error = InitializationError("ssh", FileNotFoundError("SSH key not found"))

    monkeypatch.setattr(dashboard.Dashboard, "run", run)

    assert runner.main(["command", "run", "whoami", "--nodes", "local://", "--dashboard"]) == 1
    assert "Failed to initialize ssh transport" in capsys.readouterr().err
