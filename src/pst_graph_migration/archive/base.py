"""Protocols implemented by archive readers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from pst_graph_migration.archive.items import ArchiveItem


class ArchiveError(RuntimeError):
    """Raised when the archive cannot be opened or read."""


class UnreadableItemError(ArchiveError):
    """Raised when a single item cannot be decoded; the cursor has already moved past it."""

    def __init__(self, message: str, *, position: int) -> None:
        super().__init__(message)
        self.position = position


class ArchiveFolder(Protocol):
    """A folder of the archive with a forward item cursor.

    The cursor is stateful: a folder must only be read by one walker at a time.
    """

    @property
    def display_name(self) -> str:
        """Return the folder's display name."""
        ...

    @property
    def container_class(self) -> str | None:
        """Return the container class (``IPF.Note`` ...) if the folder has one."""
        ...

    @property
    def content_count(self) -> int:
        """Return the number of items the folder reports."""
        ...

    def subfolders(self) -> Sequence[ArchiveFolder]:
        """Return child folders in archive order."""
        ...

    def reset_cursor(self) -> None:
        """Move the item cursor back to the first item."""
        ...

    def advance_cursor_to(self, index: int) -> None:
        """Position the item cursor at ``index``."""
        ...

    def next_item(self) -> ArchiveItem | None:
        """Return the item under the cursor and advance, or None when exhausted.

        Raises:
            UnreadableItemError: If the item under the cursor cannot be decoded.
        """
        ...


class ArchiveReader(Protocol):
    """An opened archive file."""

    def root_folder(self) -> ArchiveFolder:
        """Return the archive's root container."""
        ...

    def close(self) -> None:
        """Release the underlying file."""
        ...
