"""End-to-end tests of a migration pass against in-memory fakes."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from fakes import BASE, MAILBOX, FakeArchive, FakeFolder, InMemoryGraph, archive_tree
from rich.console import Console

from pst_graph_migration.archive.items import ArchiveAppointment, ArchiveContact, ArchiveMessage
from pst_graph_migration.config.settings import (
    AppSettings,
    ArchiveSettings,
    GraphSettings,
    ImportSettings,
)
from pst_graph_migration.pipeline.orchestrator import MigrationOrchestrator, MigrationResult

BERLIN = ZoneInfo("Europe/Berlin")


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppSettings:
    """Settings for a fake archive file, isolated from any local .env."""
    monkeypatch.chdir(tmp_path)
    pst = tmp_path / "archive.pst"
    pst.write_bytes(b"!BDN")
    return AppSettings(
        graph=GraphSettings(
            tenant_id="tenant",
            client_id="client",
            client_secret="secret",
            target_mailbox=MAILBOX,
        ),
        archive=ArchiveSettings(pst_file=pst),
        imports=ImportSettings(local_timezone="Europe/Berlin"),
    )


def _source() -> FakeArchive:
    messages = [
        ArchiveMessage(
            message_class="IPM.Note",
            subject=f"Message {i}",
            sender_address="alice@example.com",
            delivery_time=datetime(2024, 2, 1, 8 + i, 0),
        )
        for i in range(3)
    ]
    contacts = [
        ArchiveContact(message_class="IPM.Contact", display_name="Bob", email_address="b@x.com"),
        ArchiveContact(message_class="IPM.Contact", display_name="Carol"),
    ]
    holiday = ArchiveAppointment(
        message_class="IPM.Appointment",
        subject="Christmas Eve",
        start=datetime(2024, 12, 24, 0, 0, tzinfo=BERLIN),
        end=datetime(2024, 12, 25, 0, 0, tzinfo=BERLIN),
    )
    return FakeArchive(
        archive_tree(
            FakeFolder("Inbox", "IPF.Note", items=list(messages)),
            FakeFolder("Kontakte", "IPF.Contact", items=list(contacts)),
            FakeFolder("Kalender", "IPF.Appointment", items=[holiday]),
        ),
    )


def _run(settings: AppSettings, archive: FakeArchive, graph: InMemoryGraph) -> MigrationResult:
    orchestrator = MigrationOrchestrator(
        settings=settings,
        archive=archive,
        graph=graph,
        console=Console(quiet=True),
        show_progress=False,
    )
    return asyncio.run(orchestrator.run())


def test_end_to_end_against_empty_destination(settings: AppSettings) -> None:
    """Inbox is created, locale defaults are aliased and every item is created once."""
    graph = InMemoryGraph()

    result = _run(settings, _source(), graph)

    assert result.folders.kind("mail").created == 1
    assert result.folders.kind("contact").skipped_existing == 1
    assert result.folders.kind("calendar").skipped_existing == 1
    assert len(graph.posts("/messages")) == 3
    assert graph.posts("/contacts") == [f"{BASE}/contacts", f"{BASE}/contacts"]
    assert graph.posts("/events") == [f"{BASE}/events"]

    event = graph.resources(f"{BASE}/events")[0]
    assert event["isAllDay"] is True
    assert event["start"]["dateTime"] == "2024-12-24T00:00:00.0000000"
    assert event["end"]["dateTime"] == "2024-12-25T00:00:00.0000000"
    assert result.folders.balanced
    assert result.items.balanced


def test_second_run_creates_nothing(settings: AppSettings) -> None:
    """Re-running the pass is a no-op: everything is found as existing."""
    graph = InMemoryGraph()
    _run(settings, _source(), graph)
    posts_after_first = len(graph.posts(""))

    second = _run(settings, _source(), graph)

    assert len(graph.posts("")) == posts_after_first
    assert second.folders.kind("mail").skipped_existing == 1
    assert second.items.kind("message").skipped_existing == 3
    assert second.items.kind("contact").skipped_existing == 2
    assert second.items.kind("event").skipped_existing == 1
    assert all(c.created == 0 for c in second.items.counters.values())


def test_folders_only_skips_item_import(settings: AppSettings) -> None:
    """folders_only reconciles containers without touching items."""
    graph = InMemoryGraph()
    orchestrator = MigrationOrchestrator(
        settings=settings,
        archive=_source(),
        graph=graph,
        console=Console(quiet=True),
        show_progress=False,
    )

    result = asyncio.run(orchestrator.run(folders_only=True))

    assert result.items.counters == {}
    assert graph.posts("") == [f"{BASE}/mailFolders"]


def test_missing_anchor_does_nothing(settings: AppSettings) -> None:
    """Archives without the anchor produce an empty result and no Graph calls."""
    graph = InMemoryGraph()
    archive = FakeArchive(archive_tree(FakeFolder("Inbox", "IPF.Note"), anchor="Other"))

    result = _run(settings, archive, graph)

    assert not result.anchor_found
    assert graph.calls == []


def test_missing_graph_or_archive_settings_are_rejected_up_front(settings: AppSettings) -> None:
    """The orchestrator refuses to start without both required sections."""
    for incomplete in (
        settings.model_copy(update={"graph": None}),
        settings.model_copy(update={"archive": None}),
    ):
        with pytest.raises(ValueError):
            MigrationOrchestrator(settings=incomplete, archive=_source(), graph=InMemoryGraph())
