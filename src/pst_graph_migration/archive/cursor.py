"""Resumable, bounds-checked iteration over a folder's items."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from pst_graph_migration.archive.base import ArchiveFolder, UnreadableItemError
from pst_graph_migration.archive.items import ArchiveItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CursorStep:
    """Result of reading one position.

    ``next_position`` is None once the folder is exhausted; ``item`` is None
    when the position held nothing readable, in which case ``error`` says why.
    """

    item: ArchiveItem | None
    next_position: int | None
    error: UnreadableItemError | None = None

    @property
    def done(self) -> bool:
        """Return whether iteration should stop after this step."""
        return self.next_position is None


def step(folder: ArchiveFolder, position: int) -> CursorStep:
    """Read the item at ``position`` and compute where to continue.

    An unreadable item does not end the folder: the step carries the error
    and points at the following position.

    Args:
        folder: Archive folder.
        position: Zero-based item index.

    Returns:
        CursorStep with the item (or error) and the next position.

    Raises:
        ValueError: If ``position`` is negative.
    """
    if position < 0:
        raise ValueError(f"position must be >= 0, got {position}")

    count = folder.content_count
    if position >= count:
        return CursorStep(item=None, next_position=None)

    following = position + 1
    next_position = following if following < count else None

    folder.advance_cursor_to(position)
    try:
        item = folder.next_item()
    except UnreadableItemError as exc:
        logger.warning(
            "Unreadable item #%d in %r: %s",
            position,
            folder.display_name,
            exc,
            extra={"folder": folder.display_name, "position": position},
        )
        return CursorStep(item=None, next_position=next_position, error=exc)

    if item is None:
        # The reader ran dry before the reported count.
        return CursorStep(item=None, next_position=None)
    return CursorStep(item=item, next_position=next_position)


def iter_items(
    folder: ArchiveFolder,
    *,
    start: int = 0,
    on_unreadable: Callable[[int, UnreadableItemError], None] | None = None,
) -> Iterator[tuple[int, ArchiveItem]]:
    """Yield ``(position, item)`` pairs from ``start`` to the end of the folder.

    Args:
        folder: Archive folder.
        start: Position to resume from.
        on_unreadable: Called with the position and error of every item that
            could not be decoded; iteration continues after it.

    Yields:
        Position and item for every readable entry.
    """
    folder.reset_cursor()
    position: int | None = start
    while position is not None:
        current = position
        result = step(folder, current)
        if result.item is not None:
            yield current, result.item
        elif result.error is not None and on_unreadable is not None:
            on_unreadable(current, result.error)
        position = result.next_position
