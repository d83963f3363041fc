"""Shared enums and lightweight Pydantic models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from pst_graph_migration.models.base import AppModel
from pst_graph_migration.models.stats import ImportStatistics


class ContainerClass(StrEnum):
    """PST folder container classes that can be migrated."""

    note = "IPF.Note"
    contact = "IPF.Contact"
    appointment = "IPF.Appointment"


class ContainerKind(StrEnum):
    """Destination container kinds tracked in folder statistics."""

    mail = "mail"
    contact = "contact"
    calendar = "calendar"


class ItemKind(StrEnum):
    """Destination item kinds tracked in item statistics."""

    message = "message"
    contact = "contact"
    event = "event"


class ItemClass(StrEnum):
    """PST message classes with dedicated handling."""

    note = "IPM.Note"
    draft = "IPM.Note.Draft"
    contact = "IPM.Contact"
    appointment = "IPM.Appointment"


def container_kind_for(container_class: str) -> ContainerKind | None:
    """Map a PST container class to its destination kind.

    Args:
        container_class: Raw container class (e.g. ``IPF.Contact``).

    Returns:
        The container kind, or None when the class is not migrated.
    """
    if container_class == ContainerClass.note:
        return ContainerKind.mail
    if container_class == ContainerClass.contact:
        return ContainerKind.contact
    if container_class == ContainerClass.appointment:
        return ContainerKind.calendar
    return None


class SummaryReport(AppModel):
    """Summarized migration report emitted by the CLI."""

    created_at: datetime
    archive_path: str
    target_mailbox: str
    folders: ImportStatistics = Field(default_factory=ImportStatistics)
    items: ImportStatistics = Field(default_factory=ImportStatistics)
