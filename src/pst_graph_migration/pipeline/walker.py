"""Per-folder item import over the archive tree."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from rich.progress import Progress, TaskID

from pst_graph_migration.archive.base import ArchiveFolder, UnreadableItemError
from pst_graph_migration.archive.cursor import iter_items
from pst_graph_migration.archive.items import (
    ArchiveAppointment,
    ArchiveContact,
    ArchiveItem,
    ArchiveMessage,
)
from pst_graph_migration.archive.normalizer import FolderFilter, effective_container_class
from pst_graph_migration.graph.directory import DestinationDirectory
from pst_graph_migration.models.stats import ImportOutcome, ImportStatistics
from pst_graph_migration.models.types import ContainerKind, ItemKind, container_kind_for
from pst_graph_migration.pipeline.dedup import ContactImporter, EventImporter, MessageImporter
from pst_graph_migration.pipeline.reconciler import DefaultContainerAliases

logger = logging.getLogger(__name__)

_ITEM_KIND_BY_CONTAINER: dict[ContainerKind, ItemKind] = {
    ContainerKind.mail: ItemKind.message,
    ContainerKind.contact: ItemKind.contact,
    ContainerKind.calendar: ItemKind.event,
}


@dataclass(frozen=True)
class FolderTargets:
    """Destination containers resolved once per source folder.

    ``None`` for contacts/events means the mailbox default collection.
    """

    mail_folder_id: str | None = None
    contact_folder_id: str | None = None
    calendar_id: str | None = None


def item_kind_for(item: ArchiveItem) -> ItemKind | None:
    """Return the destination kind of an archive item view."""
    if isinstance(item, ArchiveContact):
        return ItemKind.contact
    if isinstance(item, ArchiveAppointment):
        return ItemKind.event
    if isinstance(item, ArchiveMessage):
        return ItemKind.message
    return None


class ItemImportWalker:
    """Walks archive folders and imports their items through the importers."""

    def __init__(
        self,
        *,
        directory: DestinationDirectory,
        aliases: DefaultContainerAliases,
        folder_filter: FolderFilter,
        supported_item_classes: Iterable[str],
        messages: MessageImporter,
        contacts: ContactImporter,
        events: EventImporter,
        progress: Progress | None = None,
    ) -> None:
        """Initialize the walker.

        Args:
            directory: Reconciled destination snapshot.
            aliases: Default container names.
            folder_filter: Folder skip rules (same as the normalizer's).
            supported_item_classes: Message classes to import.
            messages: Message importer.
            contacts: Contact importer.
            events: Event importer.
            progress: Optional rich progress; one task per folder.
        """
        self._directory = directory
        self._aliases = aliases
        self._filter = folder_filter
        self._supported = frozenset(supported_item_classes)
        self._messages = messages
        self._contacts = contacts
        self._events = events
        self._progress = progress

    async def import_tree(self, anchor: ArchiveFolder) -> ImportStatistics:
        """Import every folder below ``anchor`` (the anchor's own items are not imported).

        Args:
            anchor: Anchor container of the archive.

        Returns:
            Item statistics for the whole tree.
        """
        stats = ImportStatistics()
        for child in anchor.subfolders():
            stats.merge(await self.import_folder(child, depth=0))
        return stats

    async def import_folder(self, folder: ArchiveFolder, depth: int = 0) -> ImportStatistics:
        """Import one folder's items, then recurse into its subfolders.

        Args:
            folder: Archive folder.
            depth: Depth below the anchor (0 = top level).

        Returns:
            Item statistics for the folder and its descendants.
        """
        stats = ImportStatistics()
        name = folder.display_name
        container_class = effective_container_class(folder)

        if self._filter.should_skip(name, container_class):
            logger.info("Skipping folder %r (%s) and its subfolders", name, container_class)
            return stats

        kind = container_kind_for(container_class)
        if kind is None:
            logger.debug("No destination kind for %r (%s)", name, container_class)
        else:
            targets = self.resolve_targets(name, kind)
            logger.info(
                "Importing %r (%d items, depth %d)",
                name,
                folder.content_count,
                depth,
                extra={"folder": name, "container_class": container_class},
            )
            await self._import_items(folder, kind, targets, stats)

        for child in folder.subfolders():
            stats.merge(await self.import_folder(child, depth=depth + 1))
        return stats

    def resolve_targets(self, name: str, kind: ContainerKind) -> FolderTargets:
        """Resolve the destination container for a source folder.

        Args:
            name: Source folder name.
            kind: Container kind of the source folder.

        Returns:
            FolderTargets with the matching id set (or left as default).
        """
        if kind == ContainerKind.mail:
            folder_id = self._directory.find_mail_folder_id(name)
            if folder_id is None:
                logger.warning("No destination mail folder for %r", name)
            return FolderTargets(mail_folder_id=folder_id)

        if self._aliases.is_default(kind, name):
            return FolderTargets()

        if kind == ContainerKind.contact:
            contact_folder = self._directory.contact_index.get(name)
            if contact_folder is None:
                logger.warning("No destination contact folder for %r; using default", name)
                return FolderTargets()
            return FolderTargets(contact_folder_id=contact_folder.id)

        calendar = self._directory.calendar_index.get(name)
        if calendar is None:
            logger.warning("No destination calendar for %r; using default", name)
            return FolderTargets()
        return FolderTargets(calendar_id=calendar.id)

    async def _import_items(
        self,
        folder: ArchiveFolder,
        kind: ContainerKind,
        targets: FolderTargets,
        stats: ImportStatistics,
    ) -> None:
        """Iterate a folder's items and dispatch each to its importer.

        Items the reader cannot decode count as errors of the folder's item kind.
        """
        task: TaskID | None = None
        if self._progress is not None:
            task = self._progress.add_task(
                f"[cyan]{folder.display_name}",
                total=folder.content_count,
            )

        def _unreadable(position: int, _exc: UnreadableItemError) -> None:
            if task is not None and self._progress is not None:
                self._progress.update(task, completed=position + 1)
            stats.record(_ITEM_KIND_BY_CONTAINER[kind], ImportOutcome.errored_out)

        try:
            for position, item in iter_items(folder, on_unreadable=_unreadable):
                if task is not None and self._progress is not None:
                    self._progress.update(task, completed=position + 1)
                if item.message_class not in self._supported:
                    continue
                item_kind = item_kind_for(item)
                if item_kind is None:
                    continue
                try:
                    outcome = await self._dispatch(item, targets)
                except Exception:
                    logger.exception(
                        "Failed to import %s #%d from %r",
                        item_kind,
                        position,
                        folder.display_name,
                    )
                    outcome = ImportOutcome.errored_out
                stats.record(item_kind, outcome)
        finally:
            if task is not None and self._progress is not None:
                self._progress.remove_task(task)

    async def _dispatch(self, item: ArchiveItem, targets: FolderTargets) -> ImportOutcome:
        """Send an item to the importer for its class."""
        if isinstance(item, ArchiveContact):
            return await self._contacts.import_item(item, targets.contact_folder_id)
        if isinstance(item, ArchiveAppointment):
            return await self._events.import_item(item, targets.calendar_id)
        if isinstance(item, ArchiveMessage):
            if targets.mail_folder_id is None:
                logger.warning("Message %r has no destination folder", item.subject)
                return ImportOutcome.errored_out
            return await self._messages.import_item(item, targets.mail_folder_id)
        raise TypeError(f"Unsupported archive item: {type(item).__name__}")
