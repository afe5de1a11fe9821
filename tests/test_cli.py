"""Tests for configuration helpers and CLI handlers that need no network."""

from argparse import Namespace

import pytest

from vault_calendar_sync import config, main
from vault_calendar_sync.exceptions import SetupError
from vault_calendar_sync.sync_history import SyncHistory


def test_get_env_required(monkeypatch):
    monkeypatch.delenv("VCS_TEST_MISSING", raising=False)
    with pytest.raises(ValueError):
        config.get_env("VCS_TEST_MISSING", required=True)
    assert config.get_env("VCS_TEST_MISSING", "fallback") == "fallback"


def test_get_int_env(monkeypatch):
    monkeypatch.setenv("VCS_TEST_INT", "12")
    assert config.get_int_env("VCS_TEST_INT", 3) == 12

    monkeypatch.setenv("VCS_TEST_INT", "twelve")
    with pytest.raises(ValueError):
        config.get_int_env("VCS_TEST_INT", 3)


@pytest.fixture
def history_db(tmp_path, monkeypatch):
    db_path = tmp_path / "history.db"
    monkeypatch.setattr(config, "SYNC_HISTORY_DB", db_path)
    return db_path


def test_cmd_status(history_db, capsys):
    SyncHistory().log_action("insert", block_id="AB12CD34")

    assert main.cmd_status(Namespace()) == 0

    out = capsys.readouterr().out
    assert "total_entries: 1" in out
    assert "insert ^AB12CD34" in out


def test_cmd_clear_history(history_db, capsys):
    SyncHistory().log_action("insert")

    assert main.cmd_clear_history(Namespace(yes=True)) == 0
    assert SyncHistory().get_stats()["total_entries"] == 0


def test_cmd_clear_history_cancelled(history_db, monkeypatch):
    SyncHistory().log_action("insert")
    monkeypatch.setattr("builtins.input", lambda prompt: "no")

    assert main.cmd_clear_history(Namespace(yes=False)) == 1
    assert SyncHistory().get_stats()["total_entries"] == 1


def test_cmd_agenda_missing_file(tmp_path, capsys):
    assert main.cmd_agenda(Namespace(query_file=str(tmp_path / "missing.yaml"))) == 1
    assert "Query file not found" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_open_synchronizer_requires_vault(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "VAULT_PATH", tmp_path / "no-vault")

    with pytest.raises(SetupError):
        async with main.open_synchronizer():
            pass


@pytest.mark.asyncio
async def test_open_synchronizer_requires_token(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "VAULT_PATH", tmp_path)
    monkeypatch.delenv("CALENDAR_ACCESS_TOKEN", raising=False)

    with pytest.raises(SetupError):
        async with main.open_synchronizer():
            pass
