"""Tests for environment-driven settings."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from pst_graph_migration.config.settings import (
    DEFAULT_SKIP_FOLDERS,
    ArchiveSettings,
    ImportSettings,
    load_settings,
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run each test in an empty directory without MIG_ variables."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("MIG_"):
            monkeypatch.delenv(key)


def test_nested_settings_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """MIG_<GROUP>__<FIELD> variables populate the nested groups."""
    pst = tmp_path / "mail.pst"
    pst.write_bytes(b"")
    monkeypatch.setenv("MIG_GRAPH__TENANT_ID", "t")
    monkeypatch.setenv("MIG_GRAPH__CLIENT_ID", "c")
    monkeypatch.setenv("MIG_GRAPH__CLIENT_SECRET", "s")
    monkeypatch.setenv("MIG_GRAPH__TARGET_MAILBOX", "user@example.com")
    monkeypatch.setenv("MIG_ARCHIVE__PST_FILE", str(pst))
    monkeypatch.setenv("MIG_ARCHIVE__SKIP_FOLDERS", '["Junk", "Outbox"]')
    monkeypatch.setenv("MIG_IMPORTS__DEFAULT_CALENDAR_NAMES", '["Calendar", "Agenda"]')
    monkeypatch.setenv("MIG_RETRY__ATTEMPTS", "5")

    settings = load_settings(env_file=None)

    assert settings.graph is not None
    assert settings.graph.target_mailbox == "user@example.com"
    assert "client_secret" not in repr(settings.graph)
    assert settings.archive is not None
    assert settings.archive.pst_file == pst.resolve()
    assert settings.archive.skip_folders == ["Junk", "Outbox"]
    assert settings.imports.default_calendar_names == ["calendar", "agenda"]
    assert settings.retry.attempts == 5


def test_env_file_is_loaded(tmp_path: Path) -> None:
    """Values can come from an explicit .env file."""
    env_file = tmp_path / "custom.env"
    env_file.write_text("MIG_IMPORTS__DELIVERY_WINDOW_SECONDS=120\n", encoding="utf-8")

    settings = load_settings(env_file=env_file)

    assert settings.graph is None
    assert settings.imports.delivery_window_seconds == 120


def test_archive_defaults(tmp_path: Path) -> None:
    """Skip-list and supported classes default to the built-in lists."""
    pst = tmp_path / "mail.pst"
    pst.write_bytes(b"")
    archive = ArchiveSettings(pst_file=pst)
    assert archive.skip_folders == DEFAULT_SKIP_FOLDERS
    assert "IPF.Contact" in archive.supported_folder_classes
    assert archive.anchor_folder_name == "Top of Personal Folders"


def test_missing_pst_file_is_rejected(tmp_path: Path) -> None:
    """The archive path must point at an existing file."""
    with pytest.raises(ValidationError):
        ArchiveSettings(pst_file=tmp_path / "missing.pst")


def test_import_settings_validation() -> None:
    """Unknown zones and empty alias lists are configuration errors."""
    with pytest.raises(ValidationError):
        ImportSettings(local_timezone="Mars/Olympus")
    with pytest.raises(ValidationError):
        ImportSettings(default_contact_folder_names=[])
    assert ImportSettings(message_id_domain=" @corp.example ").message_id_domain == "corp.example"


def test_list_settings_accept_comma_separated_values(tmp_path: Path) -> None:
    """Comma-separated strings are split and trimmed."""
    pst = tmp_path / "mail.pst"
    pst.write_bytes(b"")
    archive = ArchiveSettings(pst_file=pst, skip_folders="Junk, Outbox ,")
    assert archive.skip_folders == ["Junk", "Outbox"]
