"""JSON bodies for the Graph resources the migration creates."""

from __future__ import annotations

import base64
import uuid
from datetime import datetime
from typing import Any

from pst_graph_migration.archive.items import (
    ArchiveAppointment,
    ArchiveAttachment,
    ArchiveContact,
    ArchiveMessage,
    BodyType,
)
from pst_graph_migration.models.types import ItemClass
from pst_graph_migration.utils.dates import graph_datetime, odata_datetime
from pst_graph_migration.utils.email import normalize_address, split_recipients

FILE_ATTACHMENT_TYPE = "#microsoft.graph.fileAttachment"
DEFAULT_MESSAGE_ID_DOMAIN = "pst-graph-migration.invalid"

# Single-value extended properties (MAPI tags) written on imported messages.
PROP_MESSAGE_FLAGS = "Integer 0x0E07"
PROP_CLIENT_SUBMIT_TIME = "SystemTime 0x0039"
PROP_MESSAGE_DELIVERY_TIME = "SystemTime 0x0E06"
PROP_CREATION_TIME = "SystemTime 0x3007"
PROP_LAST_MODIFICATION_TIME = "SystemTime 0x3008"

# MSGFLAG_READ; also stops Exchange from treating the message as an unsent draft.
MESSAGE_FLAGS_READ = "1"


def _body(content: str, body_type: BodyType) -> dict[str, str]:
    """Build an ``itemBody``."""
    return {"contentType": "HTML" if body_type == "html" else "Text", "content": content}


def _email_address(address: str | None, name: str | None) -> dict[str, Any]:
    """Build a ``recipient`` with an ``emailAddress``."""
    email: dict[str, str] = {}
    if name:
        email["name"] = name
    if address:
        email["address"] = address
    return {"emailAddress": email}


def _recipients(value: str | None) -> list[dict[str, Any]]:
    """Convert a ``;``-separated display list into Graph recipients."""
    return [{"emailAddress": entry} for entry in split_recipients(value)]


def folder_payload(name: str) -> dict[str, Any]:
    """Body for creating a mail or contact folder."""
    return {"displayName": name}


def calendar_payload(name: str) -> dict[str, Any]:
    """Body for creating a calendar."""
    return {"name": name}


def file_attachment_payload(attachment: ArchiveAttachment) -> dict[str, Any]:
    """Build an inline ``fileAttachment`` with base64 content.

    Args:
        attachment: Archive attachment; its bytes are read here.

    Returns:
        Attachment resource body.
    """
    payload: dict[str, Any] = {
        "@odata.type": FILE_ATTACHMENT_TYPE,
        "name": attachment.name,
        "contentBytes": base64.b64encode(attachment.read_bytes()).decode("ascii"),
    }
    if attachment.mime_type:
        payload["contentType"] = attachment.mime_type
    return payload


def generate_message_id(domain: str) -> str:
    """Return a fresh RFC 5322 ``Message-ID`` (``<uuid@domain>``)."""
    return f"<{uuid.uuid4()}@{domain}>"


def _message_id_domain(message: ArchiveMessage, configured: str | None) -> str:
    """Pick the domain for a generated message id."""
    if configured:
        return configured
    sender = normalize_address(message.sender_address)
    if sender:
        return sender.rsplit("@", 1)[1]
    return DEFAULT_MESSAGE_ID_DOMAIN


def _extended_properties(message: ArchiveMessage, *, is_draft: bool) -> list[dict[str, str]]:
    """Build the MAPI timestamp (and read flag) properties for a message."""
    properties: list[dict[str, str]] = []
    if not is_draft:
        properties.append({"id": PROP_MESSAGE_FLAGS, "value": MESSAGE_FLAGS_READ})

    timestamps: list[tuple[str, datetime | None]] = [
        (PROP_CLIENT_SUBMIT_TIME, message.client_submit_time),
        (PROP_MESSAGE_DELIVERY_TIME, message.delivery_time),
        (PROP_CREATION_TIME, message.creation_time),
        (PROP_LAST_MODIFICATION_TIME, message.modification_time),
    ]
    for prop_id, value in timestamps:
        if value is not None:
            properties.append({"id": prop_id, "value": odata_datetime(value)})
    return properties


def message_payload(
    message: ArchiveMessage,
    *,
    message_id_domain: str | None = None,
) -> dict[str, Any]:
    """Build a ``message`` body for ``POST /mailFolders/{id}/messages``.

    The delivery time goes into ``PR_MESSAGE_DELIVERY_TIME`` so the created
    message's ``receivedDateTime`` matches the source and later duplicate
    probes find it.

    Args:
        message: Source message.
        message_id_domain: Domain for generated ``internetMessageId`` values.

    Returns:
        JSON body.
    """
    is_draft = message.message_class == ItemClass.draft
    content, body_type = message.body()

    payload: dict[str, Any] = {
        "subject": message.subject or "",
        "body": _body(content, body_type),
        "internetMessageId": message.internet_message_id
        or generate_message_id(_message_id_domain(message, message_id_domain)),
        "toRecipients": _recipients(message.display_to),
        "ccRecipients": _recipients(message.display_cc),
        "bccRecipients": _recipients(message.display_bcc),
        "isDraft": is_draft,
        "isRead": not is_draft,
    }
    if message.sender_address:
        sender = _email_address(message.sender_address, message.sender_name)
        payload["from"] = sender
        payload["sender"] = sender

    properties = _extended_properties(message, is_draft=is_draft)
    if properties:
        payload["singleValueExtendedProperties"] = properties

    if message.attachments:
        payload["attachments"] = [file_attachment_payload(a) for a in message.attachments]
    return payload


def contact_payload(contact: ArchiveContact) -> dict[str, Any]:
    """Build a ``contact`` body; fields the source lacks are omitted.

    Args:
        contact: Source contact.

    Returns:
        JSON body.
    """
    payload: dict[str, Any] = {
        "givenName": contact.given_name,
        "surname": contact.surname,
        "displayName": contact.display_name,
        "mobilePhone": contact.mobile_phone,
        "businessHomePage": contact.business_home_page,
        "personalNotes": contact.notes,
    }
    if contact.email_address:
        email: dict[str, str] = {"address": contact.email_address}
        name = contact.email_display_name or contact.display_name
        if name:
            email["name"] = name
        payload["emailAddresses"] = [email]
    if contact.home_phone:
        payload["homePhones"] = [contact.home_phone]
    if contact.business_phone:
        payload["businessPhones"] = [contact.business_phone]
    return {key: value for key, value in payload.items() if value}


def event_payload(
    appointment: ArchiveAppointment,
    *,
    start: datetime,
    end: datetime,
    all_day: bool,
) -> dict[str, Any]:
    """Build an ``event`` body with UTC start/end.

    Args:
        appointment: Source appointment.
        start: Start instant (already normalized for all-day events).
        end: End instant.
        all_day: Whether the event spans whole days.

    Returns:
        JSON body.
    """
    content, body_type = appointment.body()
    payload: dict[str, Any] = {
        "subject": appointment.subject or "",
        "body": _body(content, body_type),
        "start": {"dateTime": graph_datetime(start), "timeZone": "UTC"},
        "end": {"dateTime": graph_datetime(end), "timeZone": "UTC"},
        "isAllDay": all_day,
    }
    if appointment.location:
        payload["location"] = {"displayName": appointment.location}
    return payload
