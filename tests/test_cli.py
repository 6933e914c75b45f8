"""Tests for the CLI module."""

import pytest
import structlog
from click.testing import CliRunner
from conftest import FakeMailApi, figma_receipts

import subscription_scanner.cli as cli_module
from subscription_scanner import constants
from subscription_scanner.cli import cli
from subscription_scanner.exceptions import UnauthorizedError


@pytest.fixture(autouse=True)
def _reset_logging():
    """The scan command points structlog at the runner's stderr; undo that."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def state_db(tmp_path, monkeypatch):
    path = tmp_path / "state.db"
    monkeypatch.setattr(constants, "STATE_DB_PATH", path)
    return path


@pytest.fixture
def mailbox(monkeypatch):
    """Route the CLI's Gmail client to a fake mailbox holding Figma receipts."""
    api = FakeMailApi(figma_receipts())
    tokens = []

    def factory(token):
        tokens.append(token)
        return api

    monkeypatch.setattr(cli_module, "GmailApi", factory)
    api.tokens = tokens
    return api


def test_cli_help():
    """CLI --help should work and show commands."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "scan" in result.output
    assert "status" in result.output
    assert "auth" in result.output
    assert "cache" in result.output


def test_cli_version():
    """CLI --version should show version."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_scan_no_credentials(tmp_path, monkeypatch, state_db):
    """Scan without credentials should show clear error."""
    import subscription_scanner.auth as auth_module

    monkeypatch.delenv("GMAIL_ACCESS_TOKEN", raising=False)
    monkeypatch.setattr(auth_module, "CREDENTIALS_PATH", tmp_path / "nonexistent.json")
    monkeypatch.setattr(auth_module, "TOKEN_PATH", tmp_path / "token.json")
    monkeypatch.setattr(auth_module, "CONFIG_DIR", tmp_path)

    runner = CliRunner()
    result = runner.invoke(cli, ["scan"])
    assert result.exit_code != 0
    assert "Credentials file not found" in result.output


def test_scan_with_token(state_db, mailbox):
    """A scan with an explicit token lists the detected subscription."""
    runner = CliRunner()
    result = runner.invoke(cli, ["scan", "--token", "abc123"])
    assert result.exit_code == 0, result.output
    assert "Figma" in result.output
    assert mailbox.tokens == ["abc123"]
    assert state_db.exists()


def test_scan_token_from_environment(state_db, mailbox):
    runner = CliRunner()
    result = runner.invoke(cli, ["scan"], env={"GMAIL_ACCESS_TOKEN": "from-env"})
    assert result.exit_code == 0, result.output
    assert mailbox.tokens == ["from-env"]


def test_scan_options_shape_the_query(state_db, mailbox):
    runner = CliRunner()
    result = runner.invoke(cli, ["scan", "--token", "t", "--months", "2", "--no-category-filter", "-m", "3"])
    assert result.exit_code == 0, result.output
    assert mailbox.queries[0].startswith("newer_than:2m")
    assert len(mailbox.fetched) == 3


def test_scan_rejected_token(state_db, mailbox):
    mailbox.failures["profile"] = [UnauthorizedError("401", status=401)]
    runner = CliRunner()
    result = runner.invoke(cli, ["scan", "--token", "stale"])
    assert result.exit_code == 1
    assert "Gmail rejected the access token" in result.output


def test_second_scan_is_quick(state_db, mailbox):
    runner = CliRunner()
    runner.invoke(cli, ["scan", "--token", "t"])
    result = runner.invoke(cli, ["scan", "--token", "t"])
    assert result.exit_code == 0, result.output
    assert "Quick Scan" in result.output
    assert mailbox.calls["history"] == 1

    result = runner.invoke(cli, ["scan", "--token", "t", "--full"])
    assert result.exit_code == 0, result.output
    assert mailbox.calls["history"] == 1
    assert len(mailbox.fetched) == 12


def test_status_before_any_scan(state_db):
    runner = CliRunner()
    result = runner.invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "No scan recorded yet" in result.output


def test_status_after_scan(state_db, mailbox):
    runner = CliRunner()
    runner.invoke(cli, ["scan", "--token", "t"])
    result = runner.invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "Sync Status" in result.output
    assert "Full Scan" in result.output


def test_cache_info_empty(state_db):
    runner = CliRunner()
    result = runner.invoke(cli, ["cache", "info"])
    assert result.exit_code == 0
    assert "Cache is empty." in result.output


def test_cache_info_and_clear(state_db, mailbox):
    runner = CliRunner()
    runner.invoke(cli, ["scan", "--token", "t"])

    result = runner.invoke(cli, ["cache", "info"])
    assert result.exit_code == 0
    assert "Messages: 6" in result.output

    result = runner.invoke(cli, ["cache", "clear"])
    assert result.exit_code == 0
    assert "Cache cleared." in result.output

    assert "Cache is empty." in runner.invoke(cli, ["cache", "info"]).output
    assert "No scan recorded yet" in runner.invoke(cli, ["status"]).output
