"""Creation of destination containers missing for the source folder tree."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from pst_graph_migration.config.settings import ImportSettings
from pst_graph_migration.graph.client import GraphApi, GraphApiError, user_path
from pst_graph_migration.graph.directory import FOLDER_SELECT, DestinationDirectory
from pst_graph_migration.graph.odata import eq
from pst_graph_migration.graph.payloads import calendar_payload, folder_payload
from pst_graph_migration.models.folders import (
    DestinationCalendar,
    DestinationFolder,
    SourceFolderDescriptor,
)
from pst_graph_migration.models.stats import ImportOutcome, ImportStatistics
from pst_graph_migration.models.types import ContainerKind, container_kind_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefaultContainerAliases:
    """Locale names of the mailbox's built-in contacts folder and calendar."""

    contact_folders: frozenset[str] = frozenset({"contacts", "kontakte"})
    calendars: frozenset[str] = frozenset({"calendar", "kalender"})

    @classmethod
    def from_settings(cls, settings: ImportSettings) -> DefaultContainerAliases:
        """Create aliases from import settings (names are already lower-cased)."""
        return cls(
            contact_folders=frozenset(settings.default_contact_folder_names),
            calendars=frozenset(settings.default_calendar_names),
        )

    def is_default(self, kind: ContainerKind | None, name: str) -> bool:
        """Return whether ``name`` denotes the built-in container of ``kind``.

        Args:
            kind: Container kind.
            name: Source folder name.

        Returns:
            True for the default contacts folder or default calendar.
        """
        lowered = name.strip().lower()
        if kind == ContainerKind.contact:
            return lowered in self.contact_folders
        if kind == ContainerKind.calendar:
            return lowered in self.calendars
        return False


class FolderReconciler:
    """Creates the mail folders, contact folders and calendars that are missing."""

    def __init__(
        self,
        *,
        graph: GraphApi,
        mailbox: str,
        directory: DestinationDirectory,
        aliases: DefaultContainerAliases,
    ) -> None:
        """Initialize the reconciler.

        Args:
            graph: Graph API client.
            mailbox: Target mailbox (UPN or id).
            directory: Destination snapshot; updated in place.
            aliases: Default container names.
        """
        self._graph = graph
        self._base = user_path(mailbox)
        self._directory = directory
        self._aliases = aliases

    async def reconcile(self, descriptors: Iterable[SourceFolderDescriptor]) -> ImportStatistics:
        """Reconcile the flattened source tree against the destination.

        Descriptors must be in depth-first, parent-before-children order. A
        skip-flagged descriptor excludes its whole subtree.

        Args:
            descriptors: Normalized source folders.

        Returns:
            Folder statistics keyed by container kind.
        """
        stats = ImportStatistics()
        skipped_depth: int | None = None

        for descriptor in descriptors:
            if skipped_depth is not None:
                if descriptor.depth > skipped_depth:
                    continue
                skipped_depth = None

            if descriptor.skip:
                logger.info("Skipping folder %r and its subfolders", descriptor.name)
                skipped_depth = descriptor.depth
                continue

            kind = container_kind_for(descriptor.container_class)
            if kind is None:
                continue

            outcome = await self._reconcile_one(descriptor, kind)
            stats.record(kind, outcome)
            logger.debug(
                "Folder %r (%s): %s",
                descriptor.name,
                kind,
                outcome,
                extra={"kind": kind.value, "folder": descriptor.name, "outcome": outcome.value},
            )
        return stats

    async def _reconcile_one(
        self,
        descriptor: SourceFolderDescriptor,
        kind: ContainerKind,
    ) -> ImportOutcome:
        """Ensure one container exists."""
        if self._aliases.is_default(kind, descriptor.name):
            logger.info("%r maps to the default %s container", descriptor.name, kind)
            return ImportOutcome.skipped_existing

        if kind == ContainerKind.calendar:
            return await self._ensure_calendar(descriptor.name)
        return await self._ensure_folder(descriptor, kind)

    async def _ensure_calendar(self, name: str) -> ImportOutcome:
        """Create a calendar unless one with the same name exists."""
        if self._directory.calendar_index.get(name) is not None:
            return ImportOutcome.skipped_existing
        try:
            created = await self._graph.post(
                f"{self._base}/calendars",
                body=calendar_payload(name),
            )
            calendar = DestinationCalendar.from_graph(created)
        except (GraphApiError, KeyError) as exc:
            logger.error("Failed to create calendar %r: %s", name, exc)
            return ImportOutcome.errored_out

        self._directory.add_calendar(calendar)
        logger.info("Created calendar %r", name)
        return ImportOutcome.created

    def _resolve_parent(
        self,
        descriptor: SourceFolderDescriptor,
        kind: ContainerKind,
    ) -> DestinationFolder | None:
        """Find the destination parent of a folder; None means the mailbox root."""
        if descriptor.depth == 0:
            return None
        index = (
            self._directory.mail_index
            if kind == ContainerKind.mail
            else self._directory.contact_index
        )
        parent = index.get(descriptor.parent_name)
        if parent is None:
            logger.warning(
                "Parent %r of %r not found; creating at mailbox root",
                descriptor.parent_name,
                descriptor.name,
            )
        return parent

    def _collection_path(self, kind: ContainerKind, parent: DestinationFolder | None) -> str:
        """Return the folder collection a new folder is created in."""
        segment = "mailFolders" if kind == ContainerKind.mail else "contactFolders"
        if parent is None:
            return f"{self._base}/{segment}"
        return f"{self._base}/{segment}/{parent.id}/childFolders"

    async def _ensure_folder(
        self,
        descriptor: SourceFolderDescriptor,
        kind: ContainerKind,
    ) -> ImportOutcome:
        """Create (or adopt) a mail or contact folder under its parent."""
        index = (
            self._directory.mail_index
            if kind == ContainerKind.mail
            else self._directory.contact_index
        )
        if index.get(descriptor.name) is not None:
            return ImportOutcome.skipped_existing

        parent = self._resolve_parent(descriptor, kind)
        path = self._collection_path(kind, parent)

        try:
            existing = await self._graph.list_values(
                path,
                filter=eq("displayName", descriptor.name),
                select=FOLDER_SELECT,
                top=1,
                follow_pages=False,
            )
            if existing:
                folder = DestinationFolder.from_graph(existing[0])
                outcome = ImportOutcome.skipped_existing
            else:
                created = await self._graph.post(path, body=folder_payload(descriptor.name))
                folder = DestinationFolder.from_graph(created)
                outcome = ImportOutcome.created
        except (GraphApiError, KeyError) as exc:
            logger.error("Failed to create %s folder %r: %s", kind, descriptor.name, exc)
            return ImportOutcome.errored_out

        if not folder.name:
            folder.name = descriptor.name
        if kind == ContainerKind.mail:
            self._directory.add_mail_folder(folder, parent=parent)
        else:
            self._directory.add_contact_folder(folder)

        if outcome == ImportOutcome.created:
            logger.info("Created %s folder %r", kind, descriptor.name)
        return outcome
