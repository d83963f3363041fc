"""Source and destination folder models."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from pydantic import ConfigDict, Field

from pst_graph_migration.models.base import AppModel


class SourceFolderDescriptor(AppModel):
    """Flattened view of one archive folder below the anchor."""

    model_config = ConfigDict(frozen=True, validate_assignment=False, str_strip_whitespace=False)

    name: str
    container_class: str = Field(min_length=1)
    depth: int = Field(ge=0)
    parent_name: str
    skip: bool = False


@dataclass
class DestinationFolder:
    """A mail or contact folder in the destination mailbox."""

    name: str
    id: str
    parent_id: str | None = None
    children: list[DestinationFolder] = field(default_factory=list)

    @classmethod
    def from_graph(cls, payload: dict[str, object]) -> DestinationFolder:
        """Build a folder from a Graph ``mailFolder``/``contactFolder`` resource.

        Args:
            payload: JSON resource.

        Returns:
            DestinationFolder without children.
        """
        parent = payload.get("parentFolderId")
        return cls(
            name=str(payload.get("displayName") or ""),
            id=str(payload["id"]),
            parent_id=str(parent) if parent else None,
        )

    def walk(self) -> Iterator[DestinationFolder]:
        """Yield this folder and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class DestinationCalendar:
    """A calendar in the destination mailbox."""

    name: str
    id: str
    is_default: bool = False

    @classmethod
    def from_graph(cls, payload: dict[str, object]) -> DestinationCalendar:
        """Build a calendar from a Graph ``calendar`` resource."""
        return cls(
            name=str(payload.get("name") or ""),
            id=str(payload["id"]),
            is_default=bool(payload.get("isDefaultCalendar", False)),
        )


class FolderIndex[T: (DestinationFolder, DestinationCalendar)]:
    """Case-insensitive name → container lookup.

    When several containers share a name the first one registered wins.
    """

    def __init__(self, containers: Iterable[T] = ()) -> None:
        """Initialize the index.

        Args:
            containers: Containers to register, in priority order.
        """
        self._by_name: dict[str, T] = {}
        for container in containers:
            self.add(container)

    def get(self, name: str | None) -> T | None:
        """Return the container registered under ``name``, if any."""
        if not name:
            return None
        return self._by_name.get(name.lower())

    def add(self, container: T) -> None:
        """Register a container unless its name is already taken."""
        self._by_name.setdefault(container.name.lower(), container)
