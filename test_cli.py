"""Tests for the command-line interface."""

import json

from typer.testing import CliRunner

from forge3d.cli import app

runner = CliRunner()


def test_generate_rejects_invalid_input(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("BACKEND_URL=http://127.0.0.1:9\n")

    result = runner.invoke(app, [
        "generate", "a fox",
        "--width", "0", "--height", "10", "--depth", "10",
        "--env-file", str(env_file),
        "--json",
    ])

    assert result.exit_code == 2
    assert json.loads(result.stdout)["kind"] == "invalid_dimension"


def test_config_status(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("SLOYD_API_KEY=abc\n")

    result = runner.invoke(app, ["config", "--env-file", str(env_file)])

    assert result.exit_code == 0
    assert "Sloyd" in result.stdout
