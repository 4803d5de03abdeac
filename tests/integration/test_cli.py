"""
CLI tests using click's CliRunner against a temporary state file.
"""

import json

import pytest
from click.testing import CliRunner

from upa.cli.main import cli
from upa.utils.logger import setup_logging


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("UPA_STATE_FILE", "UPA_TOKEN_SECRET", "UPA_ADMIN_PASSCODE"):
        monkeypatch.delenv(name, raising=False)
    yield CliRunner()
    # Rebind the console handler away from the runner's captured stream
    setup_logging()


@pytest.fixture
def state_args(tmp_path):
    return ["--state-file", str(tmp_path / "state.json")]


def test_demo(runner):
    result = runner.invoke(cli, ["demo"])

    assert result.exit_code == 0, result.output
    assert "GPU: multiple_winners, price 160, winners [C]" in result.output
    assert "Voided for exceeding budget: D" in result.output
    assert "Demo complete" in result.output


def test_asset_add_list_remove(runner, state_args):
    result = runner.invoke(cli, state_args + ["asset", "add", "A9", "--name", "Extra", "--min-bid", "10", "--quantity", "3"])
    assert result.exit_code == 0, result.output
    assert "Asset added: A9" in result.output

    listing = runner.invoke(cli, state_args + ["asset", "list"])
    assert "A1: Enterprise Cloud Server" in listing.output
    assert "A9: Extra" in listing.output

    removed = runner.invoke(cli, state_args + ["asset", "remove", "A9"])
    assert removed.exit_code == 0
    assert "A9" not in runner.invoke(cli, state_args + ["asset", "list"]).output


def test_asset_remove_unknown_fails(runner, state_args):
    result = runner.invoke(cli, state_args + ["asset", "remove", "NOPE"])
    assert result.exit_code == 1
    assert "Unknown asset: NOPE" in result.output


def test_team_add(runner, state_args):
    result = runner.invoke(
        cli,
        state_args + ["team", "add", "T9", "--name", "Nine", "--username", "nine", "--budget", "1000"],
        input="pw\npw\n",
    )
    assert result.exit_code == 0, result.output

    listing = runner.invoke(cli, state_args + ["team", "list"])
    assert "T9: Nine (user nine), 1,000 / 1,000 VC" in listing.output


def test_state_show_and_history(runner, state_args):
    result = runner.invoke(cli, state_args + ["state", "show"])
    assert result.exit_code == 0, result.output
    assert "Phase: idle" in result.output

    history = runner.invoke(cli, state_args + ["history", "list", "--json"])
    assert history.exit_code == 0
    assert json.loads(history.output.strip().splitlines()[-1]) == []


def test_token_requires_secret(runner):
    result = runner.invoke(cli, ["token", "--passcode", "admin123"])
    assert result.exit_code == 1
    assert "UPA_TOKEN_SECRET" in result.output


def test_token_with_secret(runner, monkeypatch):
    monkeypatch.setenv("UPA_TOKEN_SECRET", "cli-secret")
    result = runner.invoke(cli, ["token", "--passcode", "admin123"])
    assert result.exit_code == 0, result.output
    assert result.output.strip()


def test_log_file_flag_writes_to_log_dir(runner, state_args, tmp_path, monkeypatch):
    monkeypatch.setenv("UPA_LOG_DIR", str(tmp_path / "applogs"))
    result = runner.invoke(cli, ["--log-file"] + state_args + ["asset", "add", "A9", "--name", "Extra", "--min-bid", "10"])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "applogs" / "upa.log").exists()


def test_no_log_file_by_default(runner, state_args, tmp_path):
    result = runner.invoke(cli, state_args + ["state", "show"])

    assert result.exit_code == 0, result.output
    assert not (tmp_path / "logs").exists()


@pytest.mark.parametrize("duration", ["0", "-5"])
def test_serve_rejects_bad_duration(runner, state_args, duration):
    result = runner.invoke(cli, state_args + ["serve", "--port", "0", f"--duration={duration}"])

    assert result.exit_code == 2
    assert "--duration" in result.output
    assert "Traceback" not in result.output
