"""PST archive reader backed by libpff (``pypff``)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any

import pypff

from pst_graph_migration.archive.base import ArchiveError, ArchiveFolder, UnreadableItemError
from pst_graph_migration.archive.items import (
    ArchiveAppointment,
    ArchiveAttachment,
    ArchiveContact,
    ArchiveItem,
    ArchiveMessage,
)
from pst_graph_migration.models.types import ItemClass

logger = logging.getLogger(__name__)

# MAPI property tags (property id only; libpff reports entry types without the value type).
PR_MESSAGE_CLASS = 0x001A
PR_SUBJECT = 0x0037
PR_START_DATE = 0x0060
PR_END_DATE = 0x0061
PR_SENDER_NAME = 0x0C1A
PR_SENDER_EMAIL_ADDRESS = 0x0C1F
PR_DISPLAY_BCC = 0x0E02
PR_DISPLAY_CC = 0x0E03
PR_DISPLAY_TO = 0x0E04
PR_INTERNET_MESSAGE_ID = 0x1035
PR_DISPLAY_NAME = 0x3001
PR_EMAIL_ADDRESS = 0x3003
PR_CONTAINER_CLASS = 0x3613
PR_ATTACH_FILENAME = 0x3704
PR_ATTACH_LONG_FILENAME = 0x3707
PR_ATTACH_MIME_TAG = 0x370E
PR_GIVEN_NAME = 0x3A06
PR_BUSINESS_TELEPHONE_NUMBER = 0x3A08
PR_HOME_TELEPHONE_NUMBER = 0x3A09
PR_SURNAME = 0x3A11
PR_MOBILE_TELEPHONE_NUMBER = 0x3A1C
PR_BUSINESS_HOME_PAGE = 0x3A51

# Contact e-mail slots are PSETID_Address named properties. libpff resolves numeric
# named properties through the name-to-id map, so their entries carry the LID.
PID_LID_EMAIL1_DISPLAY_NAME = 0x8080
PID_LID_EMAIL1_EMAIL_ADDRESS = 0x8083


def _entries(item: Any) -> dict[int, Any]:
    """Collect an item's record entries keyed by property id (first wins)."""
    entries: dict[int, Any] = {}
    try:
        for set_index in range(item.number_of_record_sets):
            record_set = item.get_record_set(set_index)
            for entry_index in range(record_set.number_of_entries):
                entry = record_set.get_entry(entry_index)
                entries.setdefault(int(entry.entry_type), entry)
    except OSError as exc:
        logger.debug("Unreadable record set on item: %r", exc)
    return entries


def _string(entries: dict[int, Any], tag: int) -> str | None:
    """Return a string property, or None when absent/empty/unreadable."""
    entry = entries.get(tag)
    if entry is None:
        return None
    try:
        value = entry.get_data_as_string()
    except (OSError, ValueError):
        return None
    if not value or not str(value).strip():
        return None
    return str(value)


def _datetime(entries: dict[int, Any], tag: int) -> datetime | None:
    """Return a FILETIME property as a (naive UTC) datetime."""
    entry = entries.get(tag)
    if entry is None:
        return None
    try:
        value = entry.get_data_as_datetime()
    except (OSError, ValueError):
        return None
    return value if isinstance(value, datetime) else None


def _call(getter: Callable[[], Any]) -> Any:
    """Call a libpff getter, mapping read errors to None."""
    try:
        return getter()
    except OSError:
        return None


def _text(value: Any) -> str | None:
    """Decode a libpff body (bytes or str)."""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").rstrip("\x00")
    return str(value)


def _attachments(message: Any) -> tuple[ArchiveAttachment, ...]:
    """Build lazy attachment views for a message."""
    count = _call(lambda: message.number_of_attachments) or 0
    result: list[ArchiveAttachment] = []
    for index in range(count):
        attachment = message.get_attachment(index)
        entries = _entries(attachment)
        name = _string(entries, PR_ATTACH_LONG_FILENAME) or _string(entries, PR_ATTACH_FILENAME)
        if not name:
            logger.debug("Skipping unnamed attachment %d", index)
            continue

        def _read(att: Any = attachment) -> bytes:
            """Read the whole attachment stream."""
            size = att.get_size()
            att.seek_offset(0)
            return bytes(att.read_buffer(size)) if size else b""

        result.append(
            ArchiveAttachment(
                name=name,
                mime_type=_string(entries, PR_ATTACH_MIME_TAG),
                reader=_read,
            ),
        )
    return tuple(result)


def _to_item(message: Any) -> ArchiveItem:
    """Convert a libpff message into the matching archive view."""
    entries = _entries(message)
    message_class = _string(entries, PR_MESSAGE_CLASS) or ItemClass.note.value

    if message_class == ItemClass.contact:
        return ArchiveContact(
            message_class=message_class,
            display_name=_string(entries, PR_DISPLAY_NAME),
            given_name=_string(entries, PR_GIVEN_NAME),
            surname=_string(entries, PR_SURNAME),
            email_address=(
                _string(entries, PID_LID_EMAIL1_EMAIL_ADDRESS)
                or _string(entries, PR_EMAIL_ADDRESS)
            ),
            email_display_name=_string(entries, PID_LID_EMAIL1_DISPLAY_NAME),
            home_phone=_string(entries, PR_HOME_TELEPHONE_NUMBER),
            business_phone=_string(entries, PR_BUSINESS_TELEPHONE_NUMBER),
            mobile_phone=_string(entries, PR_MOBILE_TELEPHONE_NUMBER),
            business_home_page=_string(entries, PR_BUSINESS_HOME_PAGE),
            notes=_text(_call(message.get_plain_text_body)),
        )

    if message_class == ItemClass.appointment:
        return ArchiveAppointment(
            message_class=message_class,
            subject=_string(entries, PR_SUBJECT),
            start=_datetime(entries, PR_START_DATE),
            end=_datetime(entries, PR_END_DATE),
            body_html=_text(_call(message.get_html_body)),
            body_plain=_text(_call(message.get_plain_text_body)),
            attachments=_attachments(message),
        )

    return ArchiveMessage(
        message_class=message_class,
        subject=_string(entries, PR_SUBJECT),
        sender_name=_string(entries, PR_SENDER_NAME),
        sender_address=_string(entries, PR_SENDER_EMAIL_ADDRESS),
        display_to=_string(entries, PR_DISPLAY_TO),
        display_cc=_string(entries, PR_DISPLAY_CC),
        display_bcc=_string(entries, PR_DISPLAY_BCC),
        internet_message_id=_string(entries, PR_INTERNET_MESSAGE_ID),
        body_html=_text(_call(message.get_html_body)),
        body_plain=_text(_call(message.get_plain_text_body)),
        body_rtf=_text(_call(message.get_rtf_body)),
        client_submit_time=_call(message.get_client_submit_time),
        delivery_time=_call(message.get_delivery_time),
        creation_time=_call(message.get_creation_time),
        modification_time=_call(message.get_modification_time),
        attachments=_attachments(message),
    )


class PffFolder:
    """:class:`ArchiveFolder` over a ``pypff.folder``."""

    def __init__(self, folder: Any) -> None:
        """Wrap a libpff folder.

        Args:
            folder: ``pypff.folder`` instance.
        """
        self._folder = folder
        self._entries = _entries(folder)
        self._position = 0
        self._children: list[PffFolder] | None = None

    @property
    def display_name(self) -> str:
        """Return the folder name."""
        return str(_call(self._folder.get_name) or "")

    @property
    def container_class(self) -> str | None:
        """Return ``PR_CONTAINER_CLASS``."""
        return _string(self._entries, PR_CONTAINER_CLASS)

    @property
    def content_count(self) -> int:
        """Return the number of messages in the folder."""
        return int(_call(lambda: self._folder.number_of_sub_messages) or 0)

    def subfolders(self) -> Sequence[ArchiveFolder]:
        """Return child folders (read once, then cached)."""
        if self._children is None:
            count = int(_call(lambda: self._folder.number_of_sub_folders) or 0)
            self._children = [PffFolder(self._folder.get_sub_folder(i)) for i in range(count)]
        return self._children

    def reset_cursor(self) -> None:
        """Rewind to the first message."""
        self._position = 0

    def advance_cursor_to(self, index: int) -> None:
        """Move the cursor to ``index``."""
        self._position = index

    def next_item(self) -> ArchiveItem | None:
        """Read the message under the cursor and advance.

        Raises:
            UnreadableItemError: If libpff cannot decode the message.
        """
        if self._position >= self.content_count:
            return None
        index = self._position
        self._position += 1
        try:
            return _to_item(self._folder.get_sub_message(index))
        except (OSError, ValueError) as exc:
            raise UnreadableItemError(
                f"Cannot read item {index} of {self.display_name!r}: {exc}",
                position=index,
            ) from exc


class PffArchive:
    """:class:`ArchiveReader` over an opened PST/OST file."""

    def __init__(self, path: Path) -> None:
        """Open the archive.

        Args:
            path: Path to the PST file.

        Raises:
            ArchiveError: If libpff cannot open the file.
        """
        self._file = pypff.file()
        try:
            self._file.open(str(path))
        except OSError as exc:
            raise ArchiveError(f"Cannot open archive {path}: {exc}") from exc
        self._path = path

    def __enter__(self) -> PffArchive:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def root_folder(self) -> ArchiveFolder:
        """Return the root folder."""
        return PffFolder(self._file.get_root_folder())

    def close(self) -> None:
        """Close the file handle."""
        self._file.close()


def open_archive(path: Path) -> PffArchive:
    """Open a PST file for reading."""
    logger.info("Opening archive %s", path)
    return PffArchive(path)
