"""In-memory stand-ins for the Graph API and the PST archive used by the tests."""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pst_graph_migration.archive.items import ArchiveItem
from pst_graph_migration.graph.client import GraphApiError, user_path
from pst_graph_migration.graph.odata import AllOf, AnyOf, Comparison, FilterExpr
from pst_graph_migration.graph.payloads import PROP_MESSAGE_DELIVERY_TIME
from pst_graph_migration.utils.dates import to_utc

MAILBOX = "user@example.com"
BASE = user_path(MAILBOX)

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_graph_datetime(value: str) -> datetime:
    """Parse a Graph timestamp (``Z`` suffix and/or seven fractional digits) as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return to_utc(datetime.fromisoformat(text))


def _resolve(resource: Any, path: str) -> Any:
    current = resource
    for part in path.split("/"):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _compare(actual: Any, op: str, expected: Any) -> bool:
    """Compare like Graph does: case-insensitive strings, parsed timestamps."""
    if actual is None:
        return False
    if isinstance(expected, datetime):
        try:
            left: Any = parse_graph_datetime(str(actual))
        except ValueError:
            return False
        right: Any = to_utc(expected)
    elif isinstance(expected, str):
        left, right = str(actual).casefold(), expected.casefold()
    else:
        left, right = actual, expected
    if op == "eq":
        return bool(left == right)
    if op == "ne":
        return bool(left != right)
    if op == "ge":
        return bool(left >= right)
    if op == "gt":
        return bool(left > right)
    if op == "le":
        return bool(left <= right)
    return bool(left < right)


def matches(expr: FilterExpr, resource: Mapping[str, Any]) -> bool:
    """Evaluate a ``$filter`` tree against a JSON resource."""
    if isinstance(expr, Comparison):
        return _compare(_resolve(resource, expr.field), expr.op, expr.value)
    if isinstance(expr, AllOf):
        return all(matches(clause, resource) for clause in expr.clauses)
    if isinstance(expr, AnyOf):
        items = _resolve(resource, expr.collection)
        if not isinstance(items, list):
            return False
        return any(isinstance(item, Mapping) and matches(expr.predicate, item) for item in items)
    raise TypeError(f"Unsupported filter node: {type(expr).__name__}")


class InMemoryGraph:
    """Graph fake storing resources per collection path.

    ``$filter`` expressions are evaluated with :func:`matches`; created
    messages get ``receivedDateTime`` from their delivery-time property, the
    way Exchange derives it.
    """

    def __init__(self) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.filters: list[str] = []
        self.failing_lists: set[str] = set()
        self.failing_posts: set[str] = set()
        self._next_id = 0

    def _new_id(self) -> str:
        self._next_id += 1
        return f"id-{self._next_id}"

    def _collection(self, path: str) -> list[dict[str, Any]]:
        return self.collections.setdefault(path, [])

    def seed_mail_folder(self, name: str, *, parent_id: str | None = None) -> str:
        """Add an existing mail folder and return its id."""
        folder_id = self._new_id()
        path = (
            f"{BASE}/mailFolders/{parent_id}/childFolders" if parent_id else f"{BASE}/mailFolders"
        )
        self._collection(path).append(
            {"id": folder_id, "displayName": name, "parentFolderId": parent_id},
        )
        self._collection(f"{BASE}/mailFolders/{folder_id}/childFolders")
        return folder_id

    def seed_contact_folder(self, name: str) -> str:
        """Add an existing contact folder and return its id."""
        folder_id = self._new_id()
        self._collection(f"{BASE}/contactFolders").append({"id": folder_id, "displayName": name})
        return folder_id

    def seed_calendar(self, name: str, *, is_default: bool = False) -> str:
        """Add an existing calendar and return its id."""
        calendar_id = self._new_id()
        self._collection(f"{BASE}/calendars").append(
            {"id": calendar_id, "name": name, "isDefaultCalendar": is_default},
        )
        return calendar_id

    def posts(self, suffix: str) -> list[str]:
        """Return POSTed paths ending with ``suffix``."""
        return [path for method, path in self.calls if method == "POST" and path.endswith(suffix)]

    def resources(self, path: str) -> list[dict[str, Any]]:
        """Return the resources stored under ``path``."""
        return self.collections.get(path, [])

    async def list_values(
        self,
        path: str,
        *,
        filter: FilterExpr | None = None,
        select: Sequence[str] | None = None,
        top: int | None = None,
        follow_pages: bool = True,
    ) -> list[dict[str, Any]]:
        self.calls.append(("GET", path))
        if path in self.failing_lists:
            raise GraphApiError("list failed", status_code=500, method="GET", url=path)
        values = self.collections.get(path, [])
        if filter is not None:
            self.filters.append(filter.render())
            values = [value for value in values if matches(filter, value)]
        if top is not None:
            values = values[:top]
        return copy.deepcopy(values)

    async def post(self, path: str, *, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("POST", path))
        if path in self.failing_posts:
            raise GraphApiError("post failed", status_code=400, method="POST", url=path)

        resource = copy.deepcopy(body)
        resource["id"] = self._new_id()
        segments = path.rsplit("/", 1)
        collection = segments[-1]

        if collection in ("mailFolders", "contactFolders", "childFolders"):
            if collection == "childFolders":
                resource["parentFolderId"] = segments[0].rsplit("/", 1)[-1]
            root = "contactFolders" if "/contactFolders" in path else "mailFolders"
            self._collection(f"{BASE}/{root}/{resource['id']}/childFolders")
        elif collection == "messages":
            for prop in resource.get("singleValueExtendedProperties", []):
                if prop["id"] == PROP_MESSAGE_DELIVERY_TIME:
                    resource["receivedDateTime"] = prop["value"]
        elif collection == "calendars":
            resource.setdefault("isDefaultCalendar", False)

        self._collection(path).append(resource)
        return copy.deepcopy(resource)


@dataclass
class FakeFolder:
    """Archive folder over a list of items."""

    display_name: str
    container_class: str | None = None
    items: list[ArchiveItem] = field(default_factory=list)
    children: list[FakeFolder] = field(default_factory=list)
    position: int = 0
    reads: int = 0

    @property
    def content_count(self) -> int:
        return len(self.items)

    def subfolders(self) -> list[FakeFolder]:
        return self.children

    def reset_cursor(self) -> None:
        self.position = 0

    def advance_cursor_to(self, index: int) -> None:
        self.position = index

    def next_item(self) -> ArchiveItem | None:
        if self.position >= len(self.items):
            return None
        item = self.items[self.position]
        self.position += 1
        self.reads += 1
        return item


@dataclass
class FakeArchive:
    """Archive reader over a fake folder tree."""

    root: FakeFolder
    closed: bool = False

    def root_folder(self) -> FakeFolder:
        return self.root

    def close(self) -> None:
        self.closed = True


def archive_tree(*top_level: FakeFolder, anchor: str = "Top of Personal Folders") -> FakeFolder:
    """Build ``root → anchor → top_level`` the way PST files nest folders."""
    return FakeFolder(
        display_name="",
        children=[FakeFolder(display_name=anchor, children=list(top_level))],
    )
