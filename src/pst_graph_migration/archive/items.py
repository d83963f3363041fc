"""Read-only views of archive items."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

type BodyType = Literal["html", "text"]


@dataclass(frozen=True)
class ArchiveAttachment:
    """A file attachment whose bytes are read on demand."""

    name: str
    mime_type: str | None
    reader: Callable[[], bytes] = field(repr=False, compare=False)

    def read_bytes(self) -> bytes:
        """Read the attachment content."""
        return self.reader()


@dataclass(frozen=True)
class ArchiveItem:
    """Base view; ``message_class`` drives dispatch (``IPM.Note``, ``IPM.Contact`` ...)."""

    message_class: str


@dataclass(frozen=True)
class ArchiveMessage(ArchiveItem):
    """An e-mail message."""

    subject: str | None = None
    sender_name: str | None = None
    sender_address: str | None = None
    display_to: str | None = None
    display_cc: str | None = None
    display_bcc: str | None = None
    internet_message_id: str | None = None
    body_html: str | None = None
    body_plain: str | None = None
    body_rtf: str | None = None
    client_submit_time: datetime | None = None
    delivery_time: datetime | None = None
    creation_time: datetime | None = None
    modification_time: datetime | None = None
    attachments: tuple[ArchiveAttachment, ...] = ()

    def body(self) -> tuple[str, BodyType]:
        """Return the first non-empty body variant (HTML, plain, RTF).

        Returns:
            ``(content, type)``; empty text when the message has no body.
        """
        if self.body_html and self.body_html.strip():
            return self.body_html, "html"
        if self.body_plain and self.body_plain.strip():
            return self.body_plain, "text"
        if self.body_rtf and self.body_rtf.strip():
            return self.body_rtf, "text"
        return "", "text"


@dataclass(frozen=True)
class ArchiveContact(ArchiveItem):
    """A contact card."""

    display_name: str | None = None
    given_name: str | None = None
    surname: str | None = None
    email_address: str | None = None
    email_display_name: str | None = None
    home_phone: str | None = None
    business_phone: str | None = None
    mobile_phone: str | None = None
    business_home_page: str | None = None
    notes: str | None = None

    @property
    def label(self) -> str:
        """Return a human-readable identifier for logs."""
        return self.display_name or self.email_address or "Unknown"


@dataclass(frozen=True)
class ArchiveAppointment(ArchiveItem):
    """A calendar appointment.

    ``all_day`` is None when the archive does not say; the importer then
    infers it from the start/end instants.
    """

    subject: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    location: str | None = None
    body_html: str | None = None
    body_plain: str | None = None
    all_day: bool | None = None
    attachments: tuple[ArchiveAttachment, ...] = ()

    def body(self) -> tuple[str, BodyType]:
        """Return the first non-empty body variant (HTML, plain)."""
        if self.body_html and self.body_html.strip():
            return self.body_html, "html"
        return self.body_plain or "", "text"
