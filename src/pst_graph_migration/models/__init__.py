"""Validated domain models (Pydantic)."""

from __future__ import annotations

from pst_graph_migration.models.folders import (
    DestinationCalendar,
    DestinationFolder,
    FolderIndex,
    SourceFolderDescriptor,
)
from pst_graph_migration.models.stats import ImportOutcome, ImportStatistics, KindCounters
from pst_graph_migration.models.types import (
    ContainerClass,
    ContainerKind,
    ItemClass,
    ItemKind,
    SummaryReport,
)

__all__ = [
    "ContainerClass",
    "ContainerKind",
    "DestinationCalendar",
    "DestinationFolder",
    "FolderIndex",
    "ImportOutcome",
    "ImportStatistics",
    "ItemClass",
    "ItemKind",
    "KindCounters",
    "SourceFolderDescriptor",
    "SummaryReport",
]
