"""Existence-check-then-create importers, one per item kind.

Each importer probes the destination with a ``$top=1`` filter built from
stable source fields and creates the item only when nothing matches. There is
no local state: re-running a pass relies entirely on these probes.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo

from pst_graph_migration.archive.items import ArchiveAppointment, ArchiveContact, ArchiveMessage
from pst_graph_migration.config.settings import ImportSettings
from pst_graph_migration.graph.client import GraphApi, GraphApiError, user_path
from pst_graph_migration.graph.odata import FilterExpr, all_of, any_of, eq, ge, le
from pst_graph_migration.graph.payloads import (
    contact_payload,
    event_payload,
    file_attachment_payload,
    message_payload,
)
from pst_graph_migration.models.stats import ImportOutcome
from pst_graph_migration.models.types import ItemKind
from pst_graph_migration.utils.dates import (
    all_day_bounds,
    graph_datetime,
    is_local_midnight,
    resolve_timezone,
    to_utc,
)

logger = logging.getLogger(__name__)

MESSAGE_SELECT: tuple[str, ...] = ("id", "subject", "receivedDateTime", "from")
CONTACT_SELECT: tuple[str, ...] = ("id", "displayName", "emailAddresses")
EVENT_SELECT: tuple[str, ...] = ("id", "subject", "start", "end")


class PartialImportError(Exception):
    """Raised when an item was created but some of its parts could not be added."""

    def __init__(self, message: str, *, resource_id: str | None, missing: tuple[str, ...]) -> None:
        super().__init__(message)
        self.resource_id = resource_id
        self.missing = missing


@dataclass(frozen=True)
class DedupPolicy:
    """Knobs shared by the importers."""

    best_effort_create_on_check_failure: bool = True
    delivery_window: timedelta = timedelta(seconds=60)
    timezone: tzinfo = UTC
    message_id_domain: str | None = None

    @classmethod
    def from_settings(cls, settings: ImportSettings) -> DedupPolicy:
        """Create a policy from import settings.

        Args:
            settings: Validated import settings.

        Returns:
            DedupPolicy instance.
        """
        return cls(
            best_effort_create_on_check_failure=settings.best_effort_create_on_check_failure,
            delivery_window=timedelta(seconds=settings.delivery_window_seconds),
            timezone=resolve_timezone(settings.local_timezone),
            message_id_domain=settings.message_id_domain,
        )


@dataclass(frozen=True)
class EventSpan:
    """Start/end instants of an event as they are sent to Graph."""

    start: datetime
    end: datetime
    all_day: bool


def event_span(appointment: ArchiveAppointment, tz: tzinfo) -> EventSpan | None:
    """Compute the UTC span of an appointment.

    All-day events are the appointment's explicit flag, or else inferred when
    both bounds sit on local midnight. They are normalized to midnight UTC of
    the local calendar day of the start, ending one day later.

    Args:
        appointment: Source appointment.
        tz: Zone the source calendar days are read in.

    Returns:
        EventSpan, or None when start or end is missing.
    """
    if appointment.start is None or appointment.end is None:
        return None
    start = to_utc(appointment.start)
    end = to_utc(appointment.end)

    all_day = appointment.all_day
    if all_day is None:
        all_day = is_local_midnight(start, tz) and is_local_midnight(end, tz)
    if all_day:
        start, end = all_day_bounds(start, tz)
    return EventSpan(start=start, end=end, all_day=all_day)


class _ItemImporter:
    """Shared probe/create flow."""

    kind: ItemKind

    def __init__(self, *, graph: GraphApi, mailbox: str, policy: DedupPolicy) -> None:
        """Initialize the importer.

        Args:
            graph: Graph API client.
            mailbox: Target mailbox (UPN or id).
            policy: Dedup policy.
        """
        self._graph = graph
        self._base = user_path(mailbox)
        self._policy = policy

    async def _exists(
        self,
        path: str,
        *,
        filter: FilterExpr,
        select: tuple[str, ...],
    ) -> bool:
        """Return whether at least one resource in ``path`` matches ``filter``."""
        found = await self._graph.list_values(
            path,
            filter=filter,
            select=select,
            top=1,
            follow_pages=False,
        )
        return bool(found)

    async def _check_then_create(
        self,
        *,
        label: str,
        probe: Callable[[], Awaitable[bool]] | None,
        create: Callable[[], Awaitable[None]],
    ) -> ImportOutcome:
        """Run one probe and create only when nothing matched.

        Args:
            label: Identifying field for logs (subject, name ...).
            probe: Existence check; None means the item cannot be identified.
            create: Creates the item.

        Returns:
            The item's outcome.
        """
        log_extra = {"kind": self.kind.value, "item": label}
        if probe is None:
            logger.warning("[%s] Unidentified, importing | %s", self.kind, label, extra=log_extra)
        else:
            try:
                exists = await probe()
            except GraphApiError as exc:
                if not self._policy.best_effort_create_on_check_failure:
                    logger.error(
                        "[%s] Existence check failed | %s: %s",
                        self.kind,
                        label,
                        exc,
                        extra=log_extra,
                    )
                    return ImportOutcome.errored_out
                logger.warning(
                    "[%s] Existence check failed, importing anyway | %s: %s",
                    self.kind,
                    label,
                    exc,
                    extra=log_extra,
                )
            else:
                if exists:
                    logger.info("[%s] Skipped existing | %s", self.kind, label, extra=log_extra)
                    return ImportOutcome.skipped_existing
                logger.info("[%s] Importing | %s", self.kind, label, extra=log_extra)

        try:
            await create()
        except GraphApiError as exc:
            logger.error("[%s] Create failed | %s: %s", self.kind, label, exc, extra=log_extra)
            return ImportOutcome.errored_out
        except PartialImportError as exc:
            logger.error(
                "[%s] Partially imported, will not be retried | %s: %s (missing: %s)",
                self.kind,
                label,
                exc,
                ", ".join(exc.missing),
                extra={
                    **log_extra,
                    "outcome": ImportOutcome.partial.value,
                    "resource_id": exc.resource_id,
                    "missing": list(exc.missing),
                },
            )
            return ImportOutcome.partial
        return ImportOutcome.created


class MessageImporter(_ItemImporter):
    """Imports e-mail messages into a mail folder."""

    kind = ItemKind.message

    def build_filter(self, message: ArchiveMessage) -> FilterExpr:
        """Match on subject, sender and a window around the delivery time.

        Args:
            message: Source message.

        Returns:
            Filter expression.
        """
        sender = (
            eq("from/emailAddress/address", message.sender_address)
            if message.sender_address
            else None
        )
        window: tuple[FilterExpr | None, FilterExpr | None] = (None, None)
        if message.delivery_time is not None:
            delivered = to_utc(message.delivery_time)
            window = (
                ge("receivedDateTime", delivered - self._policy.delivery_window),
                le("receivedDateTime", delivered + self._policy.delivery_window),
            )
        return all_of(eq("subject", message.subject or ""), sender, *window)

    async def import_item(self, message: ArchiveMessage, folder_id: str) -> ImportOutcome:
        """Import a message unless a matching one exists in the folder.

        Args:
            message: Source message.
            folder_id: Destination mail folder id.

        Returns:
            The item's outcome.
        """
        path = f"{self._base}/mailFolders/{folder_id}/messages"

        async def _probe() -> bool:
            """Look for the message in the destination folder."""
            return await self._exists(
                path,
                filter=self.build_filter(message),
                select=MESSAGE_SELECT,
            )

        async def _create() -> None:
            """Create the message with its attachments."""
            body = message_payload(message, message_id_domain=self._policy.message_id_domain)
            await self._graph.post(path, body=body)

        return await self._check_then_create(
            label=message.subject or "(no subject)",
            probe=_probe,
            create=_create,
        )


class ContactImporter(_ItemImporter):
    """Imports contacts into a contact folder or the default contacts."""

    kind = ItemKind.contact

    def build_filter(self, contact: ArchiveContact) -> FilterExpr | None:
        """Match on the primary e-mail address, else on the display name.

        Args:
            contact: Source contact.

        Returns:
            Filter expression, or None when the contact has neither.
        """
        if contact.email_address:
            return any_of("emailAddresses", eq("address", contact.email_address))
        if contact.display_name:
            return eq("displayName", contact.display_name)
        return None

    def collection_path(self, folder_id: str | None) -> str:
        """Return the contacts collection for a folder (None = default)."""
        if folder_id is None:
            return f"{self._base}/contacts"
        return f"{self._base}/contactFolders/{folder_id}/contacts"

    async def import_item(self, contact: ArchiveContact, folder_id: str | None) -> ImportOutcome:
        """Import a contact unless a matching one exists.

        Unidentifiable contacts (no address, no display name) are created
        unconditionally.

        Args:
            contact: Source contact.
            folder_id: Destination contact folder id, or None for the default.

        Returns:
            The item's outcome.
        """
        path = self.collection_path(folder_id)
        filter_expr = self.build_filter(contact)

        probe: Callable[[], Awaitable[bool]] | None = None
        if filter_expr is not None:
            expr = filter_expr

            async def _probe() -> bool:
                """Look for the contact in the destination collection."""
                return await self._exists(path, filter=expr, select=CONTACT_SELECT)

            probe = _probe

        async def _create() -> None:
            """Create the contact."""
            await self._graph.post(path, body=contact_payload(contact))

        return await self._check_then_create(label=contact.label, probe=probe, create=_create)


class EventImporter(_ItemImporter):
    """Imports appointments into a calendar or the default calendar."""

    kind = ItemKind.event

    def build_filter(self, appointment: ArchiveAppointment, span: EventSpan) -> FilterExpr:
        """Match on subject and exact (normalized) start and end.

        Args:
            appointment: Source appointment.
            span: Normalized span.

        Returns:
            Filter expression.
        """
        return all_of(
            eq("subject", appointment.subject or ""),
            eq("start/dateTime", graph_datetime(span.start)),
            eq("end/dateTime", graph_datetime(span.end)),
        )

    def collection_path(self, calendar_id: str | None) -> str:
        """Return the events collection for a calendar (None = default)."""
        if calendar_id is None:
            return f"{self._base}/events"
        return f"{self._base}/calendars/{calendar_id}/events"

    async def import_item(
        self,
        appointment: ArchiveAppointment,
        calendar_id: str | None,
    ) -> ImportOutcome:
        """Import an appointment unless a matching event exists.

        Args:
            appointment: Source appointment.
            calendar_id: Destination calendar id, or None for the default.

        Returns:
            The item's outcome.
        """
        label = appointment.subject or "(no subject)"
        span = event_span(appointment, self._policy.timezone)
        if span is None:
            logger.warning(
                "[%s] Missing start or end, not importable | %s",
                self.kind,
                label,
                extra={"kind": self.kind.value, "item": label},
            )
            return ImportOutcome.errored_out

        path = self.collection_path(calendar_id)

        async def _probe() -> bool:
            """Look for the event in the destination calendar."""
            return await self._exists(
                path,
                filter=self.build_filter(appointment, span),
                select=EVENT_SELECT,
            )

        async def _create() -> None:
            """Create the event, then upload its attachments."""
            body = event_payload(
                appointment,
                start=span.start,
                end=span.end,
                all_day=span.all_day,
            )
            created = await self._graph.post(path, body=body)
            if not appointment.attachments:
                return
            event_id = created.get("id")
            names = tuple(attachment.name for attachment in appointment.attachments)
            if not event_id:
                raise PartialImportError(
                    "created event has no id",
                    resource_id=None,
                    missing=names,
                )
            missing: list[str] = []
            for attachment in appointment.attachments:
                try:
                    await self._graph.post(
                        f"{self._base}/events/{event_id}/attachments",
                        body=file_attachment_payload(attachment),
                    )
                except GraphApiError as exc:
                    logger.warning("Attachment %r not uploaded: %s", attachment.name, exc)
                    missing.append(attachment.name)
            if missing:
                raise PartialImportError(
                    f"{len(missing)} of {len(names)} attachments not uploaded",
                    resource_id=str(event_id),
                    missing=tuple(missing),
                )

        return await self._check_then_create(label=label, probe=_probe, create=_create)
