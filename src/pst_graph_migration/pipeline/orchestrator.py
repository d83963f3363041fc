"""Single sequential migration pass: PST archive → Microsoft 365 mailbox."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from pst_graph_migration.archive.base import ArchiveReader
from pst_graph_migration.archive.normalizer import FolderFilter, find_anchor, normalize_tree
from pst_graph_migration.config.settings import AppSettings
from pst_graph_migration.graph.client import GraphApi
from pst_graph_migration.graph.directory import DirectoryCache
from pst_graph_migration.models.folders import SourceFolderDescriptor
from pst_graph_migration.models.stats import ImportStatistics
from pst_graph_migration.pipeline.dedup import (
    ContactImporter,
    DedupPolicy,
    EventImporter,
    MessageImporter,
)
from pst_graph_migration.pipeline.reconciler import DefaultContainerAliases, FolderReconciler
from pst_graph_migration.pipeline.walker import ItemImportWalker

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Outcome of one pass."""

    descriptors: list[SourceFolderDescriptor] = field(default_factory=list)
    folders: ImportStatistics = field(default_factory=ImportStatistics)
    items: ImportStatistics = field(default_factory=ImportStatistics)
    anchor_found: bool = True


def statistics_table(title: str, stats: ImportStatistics) -> Table:
    """Render statistics as a rich table, one row per kind.

    Args:
        title: Table title.
        stats: Statistics to show.

    Returns:
        Rich table.
    """
    table = Table(title=title)
    table.add_column("Kind", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Existing", justify="right", style="dim")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("Partial", justify="right", style="yellow")
    for kind, counters in sorted(stats.counters.items()):
        table.add_row(
            kind,
            str(counters.total),
            str(counters.created),
            str(counters.skipped_existing),
            str(counters.errored_out),
            str(counters.partial),
        )
    return table


class MigrationOrchestrator:
    """Coordinates normalization, reconciliation and item import."""

    def __init__(
        self,
        *,
        settings: AppSettings,
        archive: ArchiveReader,
        graph: GraphApi,
        console: Console | None = None,
        show_progress: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Application settings (``graph`` and ``archive`` required).
            archive: Opened source archive.
            graph: Graph API client.
            console: Rich console for status output.
            show_progress: Whether to render per-folder progress bars.

        Raises:
            ValueError: If required settings are missing.
        """
        if settings.graph is None or settings.archive is None:
            raise ValueError("Graph and archive settings are required")
        self._s = settings
        self._graph_settings = settings.graph
        self._archive_settings = settings.archive
        self._archive = archive
        self._graph = graph
        self._console = console or Console()
        self._show_progress = show_progress

    async def run(self, *, folders_only: bool = False) -> MigrationResult:
        """Run one migration pass.

        Args:
            folders_only: Reconcile folders but skip item import.

        Returns:
            Folder and item statistics.

        Raises:
            GraphApiError: If the destination cannot be enumerated.
        """
        settings = self._s
        graph_settings = self._graph_settings
        archive_settings = self._archive_settings
        console = self._console
        mailbox = graph_settings.target_mailbox

        console.print(
            f"[bold blue]PST → Microsoft 365 migration[/bold blue] for [bold]{mailbox}[/bold]",
        )
        console.print(f"  [dim]Archive:[/dim] {archive_settings.pst_file}")

        folder_filter = FolderFilter.create(
            skip_folders=archive_settings.skip_folders,
            supported_folder_classes=archive_settings.supported_folder_classes,
        )
        anchor = find_anchor(self._archive.root_folder(), name=archive_settings.anchor_folder_name)
        if anchor is None:
            logger.warning("%r not found in archive", archive_settings.anchor_folder_name)
            console.print(
                f"[yellow]⚠[/yellow] {archive_settings.anchor_folder_name!r} not found; "
                "nothing to migrate.",
            )
            return MigrationResult(anchor_found=False)

        descriptors = normalize_tree(anchor, folder_filter=folder_filter)
        console.print(
            f"[green]✔[/green] Found {len(descriptors)} source folders "
            f"({sum(1 for d in descriptors if d.skip)} flagged to skip).",
        )

        with console.status("[bold green]Loading destination folders...[/bold green]"):
            directory = await DirectoryCache(graph=self._graph, mailbox=mailbox).load()

        aliases = DefaultContainerAliases.from_settings(settings.imports)
        reconciler = FolderReconciler(
            graph=self._graph,
            mailbox=mailbox,
            directory=directory,
            aliases=aliases,
        )
        with console.status("[bold green]Reconciling folders...[/bold green]"):
            folder_stats = await reconciler.reconcile(descriptors)
        console.print(statistics_table("Folders", folder_stats))

        result = MigrationResult(descriptors=descriptors, folders=folder_stats)
        if folders_only:
            return result

        policy = DedupPolicy.from_settings(settings.imports)
        progress = (
            Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TaskProgressColumn(),
                TimeRemainingColumn(),
                console=console,
                transient=True,
            )
            if self._show_progress
            else None
        )
        walker = ItemImportWalker(
            directory=directory,
            aliases=aliases,
            folder_filter=folder_filter,
            supported_item_classes=archive_settings.supported_item_classes,
            messages=MessageImporter(graph=self._graph, mailbox=mailbox, policy=policy),
            contacts=ContactImporter(graph=self._graph, mailbox=mailbox, policy=policy),
            events=EventImporter(graph=self._graph, mailbox=mailbox, policy=policy),
            progress=progress,
        )
        if progress is None:
            result.items = await walker.import_tree(anchor)
        else:
            with progress:
                result.items = await walker.import_tree(anchor)

        console.print(statistics_table("Items", result.items))
        console.print("\n[bold green]Migration finished![/bold green]")
        return result
