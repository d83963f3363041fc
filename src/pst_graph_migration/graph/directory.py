"""Enumeration of existing destination folders and calendars."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pst_graph_migration.graph.client import GraphApi, user_path
from pst_graph_migration.models.folders import (
    DestinationCalendar,
    DestinationFolder,
    FolderIndex,
)

logger = logging.getLogger(__name__)

FOLDER_SELECT: tuple[str, ...] = ("id", "displayName", "parentFolderId")
CALENDAR_SELECT: tuple[str, ...] = ("id", "name", "isDefaultCalendar")


@dataclass
class DestinationDirectory:
    """Snapshot of the destination containers, mutated as folders are created.

    Owned by a single migration pass; nothing else mutates it concurrently.
    """

    mail_folders: list[DestinationFolder] = field(default_factory=list)
    contact_folders: list[DestinationFolder] = field(default_factory=list)
    calendars: list[DestinationCalendar] = field(default_factory=list)
    mail_index: FolderIndex[DestinationFolder] = field(default_factory=FolderIndex)
    contact_index: FolderIndex[DestinationFolder] = field(default_factory=FolderIndex)
    calendar_index: FolderIndex[DestinationCalendar] = field(default_factory=FolderIndex)

    @classmethod
    def build(
        cls,
        *,
        mail_folders: list[DestinationFolder],
        contact_folders: list[DestinationFolder],
        calendars: list[DestinationCalendar],
    ) -> DestinationDirectory:
        """Create a snapshot and index every container by name.

        Args:
            mail_folders: Mail folder tree (top-level folders with nested children).
            contact_folders: Flattened contact folders.
            calendars: Calendars.

        Returns:
            DestinationDirectory with populated indexes.
        """
        mail_index: FolderIndex[DestinationFolder] = FolderIndex()
        for top in mail_folders:
            for folder in top.walk():
                mail_index.add(folder)
        return cls(
            mail_folders=mail_folders,
            contact_folders=contact_folders,
            calendars=calendars,
            mail_index=mail_index,
            contact_index=FolderIndex(contact_folders),
            calendar_index=FolderIndex(calendars),
        )

    def add_mail_folder(
        self,
        folder: DestinationFolder,
        *,
        parent: DestinationFolder | None,
    ) -> None:
        """Register a newly created or adopted mail folder.

        Args:
            folder: The folder.
            parent: Its parent in the tree, or None for a top-level folder.
        """
        siblings = parent.children if parent is not None else self.mail_folders
        if all(existing.id != folder.id for existing in siblings):
            siblings.append(folder)
        self.mail_index.add(folder)

    def add_contact_folder(self, folder: DestinationFolder) -> None:
        """Register a newly created or adopted contact folder."""
        if all(existing.id != folder.id for existing in self.contact_folders):
            self.contact_folders.append(folder)
        self.contact_index.add(folder)

    def add_calendar(self, calendar: DestinationCalendar) -> None:
        """Register a newly created calendar."""
        self.calendars.append(calendar)
        self.calendar_index.add(calendar)

    def find_mail_folder_id(self, name: str) -> str | None:
        """Search the mail folder tree for a folder by name (case-insensitive).

        Args:
            name: Display name.

        Returns:
            Folder id of the first depth-first match, or None.
        """
        wanted = name.lower()
        for top in self.mail_folders:
            for folder in top.walk():
                if folder.name.lower() == wanted:
                    return folder.id
        return None


class DirectoryCache:
    """Lists the target mailbox's mail folders, contact folders and calendars."""

    def __init__(self, *, graph: GraphApi, mailbox: str) -> None:
        """Initialize the cache.

        Args:
            graph: Graph API client.
            mailbox: Target mailbox (UPN or id).
        """
        self._graph = graph
        self._base = user_path(mailbox)

    async def list_mail_folders(self) -> list[DestinationFolder]:
        """Return the full mail folder tree.

        Every level is read to the last page before descending into each
        folder's children, depth first.

        Returns:
            Top-level folders with nested ``children``.
        """
        return await self._mail_level(f"{self._base}/mailFolders")

    async def _mail_level(self, path: str) -> list[DestinationFolder]:
        """Fetch one level of mail folders and recurse into each."""
        payloads = await self._graph.list_values(path, select=FOLDER_SELECT)
        folders = [DestinationFolder.from_graph(p) for p in payloads]
        for folder in folders:
            folder.children = await self._mail_level(
                f"{self._base}/mailFolders/{folder.id}/childFolders",
            )
        return folders

    async def list_contact_folders(self) -> list[DestinationFolder]:
        """Return every contact folder, flattened into one list.

        Returns:
            Contact folders; each level is followed by its descendants.
        """
        return await self._contact_level(f"{self._base}/contactFolders")

    async def _contact_level(self, path: str) -> list[DestinationFolder]:
        """Fetch one level of contact folders and append their descendants."""
        payloads = await self._graph.list_values(path, select=FOLDER_SELECT)
        folders = [DestinationFolder.from_graph(p) for p in payloads]
        result = list(folders)
        for folder in folders:
            result.extend(
                await self._contact_level(
                    f"{self._base}/contactFolders/{folder.id}/childFolders",
                ),
            )
        return result

    async def list_calendars(self) -> list[DestinationCalendar]:
        """Return the mailbox's calendars."""
        payloads = await self._graph.list_values(
            f"{self._base}/calendars",
            select=CALENDAR_SELECT,
        )
        return [DestinationCalendar.from_graph(p) for p in payloads]

    async def load(self) -> DestinationDirectory:
        """Enumerate everything and build the lookup indexes.

        Returns:
            DestinationDirectory snapshot.

        Raises:
            GraphApiError: If any listing fails; there is no partial result.
        """
        mail_folders = await self.list_mail_folders()
        contact_folders = await self.list_contact_folders()
        calendars = await self.list_calendars()
        directory = DestinationDirectory.build(
            mail_folders=mail_folders,
            contact_folders=contact_folders,
            calendars=calendars,
        )
        logger.info(
            "Destination has %d mail folders, %d contact folders, %d calendars",
            sum(1 for top in mail_folders for _ in top.walk()),
            len(contact_folders),
            len(calendars),
        )
        return directory
