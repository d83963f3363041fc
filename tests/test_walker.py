"""Tests for the per-folder item walker."""

from __future__ import annotations

import asyncio
from datetime import datetime

from fakes import BASE, MAILBOX, FakeFolder, InMemoryGraph

from pst_graph_migration.archive.base import UnreadableItemError
from pst_graph_migration.archive.items import ArchiveContact, ArchiveItem, ArchiveMessage
from pst_graph_migration.archive.normalizer import FolderFilter
from pst_graph_migration.config.settings import DEFAULT_SUPPORTED_ITEM_CLASSES
from pst_graph_migration.graph.directory import DirectoryCache
from pst_graph_migration.models.stats import ImportOutcome, ImportStatistics
from pst_graph_migration.pipeline.dedup import (
    ContactImporter,
    DedupPolicy,
    EventImporter,
    MessageImporter,
)
from pst_graph_migration.pipeline.reconciler import DefaultContainerAliases
from pst_graph_migration.pipeline.walker import ItemImportWalker

FILTER = FolderFilter.create(
    skip_folders=["Deleted Items"],
    supported_folder_classes=["IPF.Note", "IPF.Contact", "IPF.Appointment"],
)


def _message(subject: str, minute: int = 0) -> ArchiveMessage:
    return ArchiveMessage(
        message_class="IPM.Note",
        subject=subject,
        sender_address="alice@example.com",
        delivery_time=datetime(2024, 1, 1, 10, minute),
    )


def _walk(graph: InMemoryGraph, folder: FakeFolder, **importers: object) -> ImportStatistics:
    async def run() -> ImportStatistics:
        directory = await DirectoryCache(graph=graph, mailbox=MAILBOX).load()
        policy = DedupPolicy()
        walker = ItemImportWalker(
            directory=directory,
            aliases=DefaultContainerAliases(),
            folder_filter=FILTER,
            supported_item_classes=DEFAULT_SUPPORTED_ITEM_CLASSES,
            messages=importers.get("messages")
            or MessageImporter(graph=graph, mailbox=MAILBOX, policy=policy),
            contacts=ContactImporter(graph=graph, mailbox=MAILBOX, policy=policy),
            events=EventImporter(graph=graph, mailbox=MAILBOX, policy=policy),
        )
        return await walker.import_folder(folder)

    return asyncio.run(run())


def test_items_go_to_the_matching_mail_folder_and_subfolders_recurse() -> None:
    """Messages land in the same-named destination folder, including nested ones."""
    graph = InMemoryGraph()
    inbox_id = graph.seed_mail_folder("Inbox")
    sub_id = graph.seed_mail_folder("Receipts", parent_id=inbox_id)
    folder = FakeFolder(
        "Inbox",
        "IPF.Note",
        items=[_message("a", 1), _message("b", 5)],
        children=[FakeFolder("Receipts", "IPF.Note", items=[_message("c", 9)])],
    )

    stats = _walk(graph, folder)

    assert len(graph.resources(f"{BASE}/mailFolders/{inbox_id}/messages")) == 2
    assert len(graph.resources(f"{BASE}/mailFolders/{sub_id}/messages")) == 1
    assert stats.kind("message").created == 3


def test_unsupported_items_are_ignored_and_unresolved_mail_errors() -> None:
    """Unknown classes are not counted; messages without a folder are errors."""
    graph = InMemoryGraph()
    folder = FakeFolder(
        "Nowhere",
        "IPF.Note",
        items=[ArchiveItem(message_class="IPM.StickyNote"), _message("lost")],
    )

    stats = _walk(graph, folder)

    assert graph.posts("") == []
    assert stats.kind("message").errored_out == 1
    assert stats.kind("message").total == 1


def test_skipped_folders_are_not_read() -> None:
    """Skip-listed folders and their subtree are never iterated."""
    graph = InMemoryGraph()
    child = FakeFolder("Old", "IPF.Note", items=[_message("x")])
    folder = FakeFolder("Deleted Items", "IPF.Note", items=[_message("y")], children=[child])

    stats = _walk(graph, folder)

    assert stats.counters == {}
    assert folder.reads == 0
    assert child.reads == 0


def test_contacts_in_default_folder_use_default_collection() -> None:
    """Items of an aliased contacts folder go to /contacts."""
    graph = InMemoryGraph()
    folder = FakeFolder(
        "Contacts",
        "IPF.Contact",
        items=[ArchiveContact(message_class="IPM.Contact", display_name="Bob")],
    )

    stats = _walk(graph, folder)

    assert graph.posts("/contacts") == [f"{BASE}/contacts"]
    assert stats.kind("contact").created == 1


def test_unexpected_item_failure_is_counted_and_iteration_continues() -> None:
    """Any exception from an importer counts as an error for that item only."""
    graph = InMemoryGraph()
    graph.seed_mail_folder("Inbox")

    class FlakyImporter(MessageImporter):
        async def import_item(self, message: ArchiveMessage, folder_id: str) -> ImportOutcome:
            if message.subject == "bad":
                raise RuntimeError("unreadable attachment")
            return await super().import_item(message, folder_id)

    folder = FakeFolder("Inbox", "IPF.Note", items=[_message("bad"), _message("good", 3)])
    stats = _walk(
        graph,
        folder,
        messages=FlakyImporter(graph=graph, mailbox=MAILBOX, policy=DedupPolicy()),
    )

    counters = stats.kind("message")
    assert (counters.total, counters.created, counters.errored_out) == (2, 1, 1)


def test_unreadable_item_is_counted_and_the_folder_continues() -> None:
    """A corrupt archive item is an error; its siblings and subfolders still import."""
    graph = InMemoryGraph()
    inbox_id = graph.seed_mail_folder("Inbox")
    sub_id = graph.seed_mail_folder("Receipts", parent_id=inbox_id)

    class CorruptFolder(FakeFolder):
        def next_item(self) -> ArchiveItem | None:
            if self.position == 1:
                self.position += 1
                raise UnreadableItemError("bad record", position=1)
            return super().next_item()

    folder = CorruptFolder(
        "Inbox",
        "IPF.Note",
        items=[_message("a", 1), _message("broken", 3), _message("c", 5)],
        children=[FakeFolder("Receipts", "IPF.Note", items=[_message("d", 9)])],
    )

    stats = _walk(graph, folder)

    inbox = graph.resources(f"{BASE}/mailFolders/{inbox_id}/messages")
    assert [m["subject"] for m in inbox] == ["a", "c"]
    assert len(graph.resources(f"{BASE}/mailFolders/{sub_id}/messages")) == 1
    counters = stats.kind("message")
    assert (counters.total, counters.created, counters.errored_out) == (4, 3, 1)
    assert stats.balanced
