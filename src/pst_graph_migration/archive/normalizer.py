"""Flattening of the archive folder tree into folder descriptors."""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from pst_graph_migration.archive.base import ArchiveFolder
from pst_graph_migration.models.folders import SourceFolderDescriptor
from pst_graph_migration.models.types import ContainerClass

logger = logging.getLogger(__name__)

ANCHOR_FOLDER_NAME = "Top of Personal Folders"
ANCHOR_SEARCH_DEPTH = 2

_GUID_NAME_RE = re.compile(r"^\{.*\}$")


def is_guid_name(name: str) -> bool:
    """Return whether a folder name is a ``{GUID}``-style system folder."""
    return bool(_GUID_NAME_RE.match(name))


@dataclass(frozen=True)
class FolderFilter:
    """Decides which archive folders take part in the migration."""

    skip_folders: frozenset[str]
    supported_folder_classes: frozenset[str]

    @classmethod
    def create(
        cls,
        *,
        skip_folders: Iterable[str],
        supported_folder_classes: Iterable[str],
    ) -> FolderFilter:
        """Build a filter from configured name and class lists.

        Args:
            skip_folders: Display names to exclude.
            supported_folder_classes: Container classes to migrate.

        Returns:
            FolderFilter instance.
        """
        return cls(
            skip_folders=frozenset(skip_folders),
            supported_folder_classes=frozenset(supported_folder_classes),
        )

    def should_skip(self, name: str, container_class: str) -> bool:
        """Return whether a folder (and therefore its subtree) is excluded.

        Args:
            name: Folder display name.
            container_class: Effective container class.

        Returns:
            True for skip-listed names, unsupported classes and GUID names.
        """
        return (
            name in self.skip_folders
            or container_class not in self.supported_folder_classes
            or is_guid_name(name)
        )


def effective_container_class(folder: ArchiveFolder) -> str:
    """Return the folder's container class, defaulting to ``IPF.Note``."""
    return folder.container_class or ContainerClass.note.value


def find_anchor(
    root: ArchiveFolder,
    *,
    name: str = ANCHOR_FOLDER_NAME,
    max_depth: int = ANCHOR_SEARCH_DEPTH,
) -> ArchiveFolder | None:
    """Locate the anchor container by breadth-first search near the root.

    Args:
        root: Archive root folder (level 0).
        name: Display name of the anchor.
        max_depth: Deepest level searched.

    Returns:
        The first folder named ``name``, or None.
    """
    queue: deque[tuple[ArchiveFolder, int]] = deque([(root, 0)])
    while queue:
        folder, depth = queue.popleft()
        if folder.display_name == name:
            return folder
        if depth < max_depth:
            queue.extend((child, depth + 1) for child in folder.subfolders())
    return None


def normalize_tree(
    anchor: ArchiveFolder,
    *,
    folder_filter: FolderFilter,
) -> list[SourceFolderDescriptor]:
    """Flatten everything below ``anchor`` (exclusive) into descriptors.

    Args:
        anchor: The anchor container.
        folder_filter: Skip rules.

    Returns:
        Descriptors in depth-first, parent-before-children order.
    """
    descriptors: list[SourceFolderDescriptor] = []

    def _visit(folder: ArchiveFolder, depth: int, parent_name: str) -> None:
        """Emit a descriptor for ``folder`` and recurse into its children."""
        container_class = effective_container_class(folder)
        descriptors.append(
            SourceFolderDescriptor(
                name=folder.display_name,
                container_class=container_class,
                depth=depth,
                parent_name=parent_name,
                skip=folder_filter.should_skip(folder.display_name, container_class),
            ),
        )
        for child in folder.subfolders():
            _visit(child, depth + 1, folder.display_name)

    for top in anchor.subfolders():
        _visit(top, 0, anchor.display_name)
    return descriptors


def normalize_source_tree(
    root: ArchiveFolder,
    *,
    folder_filter: FolderFilter,
    anchor_name: str = ANCHOR_FOLDER_NAME,
) -> list[SourceFolderDescriptor]:
    """Find the anchor below ``root`` and flatten its subtree.

    Args:
        root: Archive root folder.
        folder_filter: Skip rules.
        anchor_name: Display name of the anchor container.

    Returns:
        Descriptors, or an empty list when the anchor is missing.
    """
    anchor = find_anchor(root, name=anchor_name)
    if anchor is None:
        logger.warning("%r not found in archive; nothing to migrate", anchor_name)
        return []
    return normalize_tree(anchor, folder_filter=folder_filter)


def describe_tree(descriptors: Iterable[SourceFolderDescriptor]) -> str:
    """Render descriptors as an indented plan, one folder per line.

    Args:
        descriptors: Normalized descriptors.

    Returns:
        Multi-line text; skipped folders are marked.
    """
    lines: list[str] = []
    for descriptor in descriptors:
        marker = " [skip]" if descriptor.skip else ""
        lines.append(
            f"{'  ' * descriptor.depth}{descriptor.name} ({descriptor.container_class}){marker}",
        )
    return "\n".join(lines)
