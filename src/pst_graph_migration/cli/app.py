"""Typer CLI for the PST to Microsoft 365 migration tool."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.tree import Tree

from pst_graph_migration.archive.base import ArchiveError
from pst_graph_migration.archive.normalizer import (
    FolderFilter,
    describe_tree,
    normalize_source_tree,
)
from pst_graph_migration.config.settings import (
    AppSettings,
    ArchiveSettings,
    GraphSettings,
    StorageSettings,
    load_settings,
)
from pst_graph_migration.graph.auth import GraphAuthError
from pst_graph_migration.graph.client import GraphApiError, GraphClient, user_path
from pst_graph_migration.graph.directory import DestinationDirectory, DirectoryCache
from pst_graph_migration.models.folders import DestinationFolder
from pst_graph_migration.models.types import SummaryReport
from pst_graph_migration.pipeline.orchestrator import MigrationOrchestrator, MigrationResult
from pst_graph_migration.utils.logging import configure_logging

if TYPE_CHECKING:
    from pst_graph_migration.archive.pff_reader import PffArchive

logger = logging.getLogger(__name__)

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Idempotent PST → Microsoft 365 mailbox migration through Microsoft Graph.",
)


def env_file_option() -> Any:
    """Return a fresh `--env-file` option (Typer options are bound per command)."""
    return typer.Option(
        default=None,
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    )


def load_app_settings(*, env_file: Path | None) -> AppSettings:
    """Load application settings, exiting with code 2 on validation errors.

    Args:
        env_file: Optional path to a .env file to load in addition to environment variables.

    Returns:
        Validated application settings.
    """
    try:
        return load_settings(env_file=env_file)
    except ValidationError as exc:
        typer.echo(f"Invalid configuration:\n{exc}", err=True)
        raise typer.Exit(code=2) from None


def require_graph(settings: AppSettings) -> GraphSettings:
    """Return Graph settings or exit with code 2."""
    if settings.graph is None:
        typer.echo(
            "Missing Graph settings. Set MIG_GRAPH__TENANT_ID, MIG_GRAPH__CLIENT_ID, "
            "MIG_GRAPH__CLIENT_SECRET and MIG_GRAPH__TARGET_MAILBOX.",
            err=True,
        )
        raise typer.Exit(code=2)
    return settings.graph


def require_archive(settings: AppSettings) -> ArchiveSettings:
    """Return archive settings or exit with code 2."""
    if settings.archive is None:
        typer.echo("Missing archive settings. Set MIG_ARCHIVE__PST_FILE.", err=True)
        raise typer.Exit(code=2)
    return settings.archive


def open_pst(path: Path) -> PffArchive:
    """Open the PST file, exiting with a hint when libpff is unavailable.

    Args:
        path: PST file path.

    Returns:
        Opened archive.
    """
    try:
        from pst_graph_migration.archive.pff_reader import open_archive
    except ImportError:
        typer.echo(
            "Reading PST files needs libpff-python: pip install 'pst-graph-migration[pst]'",
            err=True,
        )
        raise typer.Exit(code=2) from None
    try:
        return open_archive(path)
    except ArchiveError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from None


def write_report(
    result: MigrationResult,
    *,
    storage: StorageSettings,
    graph_settings: GraphSettings,
    archive_settings: ArchiveSettings,
) -> Path:
    """Write the JSON summary report for a finished pass.

    Args:
        result: Pass result.
        storage: Storage settings (report directory).
        graph_settings: Validated Graph settings.
        archive_settings: Validated archive settings.

    Returns:
        Path of the written report.
    """
    report = SummaryReport(
        created_at=datetime.now(tz=UTC),
        archive_path=str(archive_settings.pst_file),
        target_mailbox=graph_settings.target_mailbox,
        folders=result.folders,
        items=result.items,
    )
    storage.reports_dir.mkdir(parents=True, exist_ok=True)
    stamp = report.created_at.strftime("%Y%m%dT%H%M%SZ")
    out_path = storage.reports_dir / f"summary-{stamp}.json"
    out_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    return out_path


@app.command("migrate")
def migrate_cmd(
    *,
    env_file: Path | None = env_file_option(),
    folders_only: bool = typer.Option(
        default=False,
        help="Create missing folders and calendars, but do not import items.",
    ),
) -> None:
    """Reconcile folders and import every item from the PST file.

    Args:
        env_file: Optional path to a .env file to load configuration from.
        folders_only: Whether to stop after folder reconciliation.
    """
    settings = load_app_settings(env_file=env_file)
    console = Console()
    configure_logging(settings=settings.logging, console=console)
    graph_settings = require_graph(settings)
    archive_settings = require_archive(settings)

    archive = open_pst(archive_settings.pst_file)

    async def _run() -> MigrationResult:
        """Run the pass with a managed Graph client."""
        async with GraphClient.from_settings(graph_settings, settings.retry) as graph:
            orchestrator = MigrationOrchestrator(
                settings=settings,
                archive=archive,
                graph=graph,
                console=console,
            )
            return await orchestrator.run(folders_only=folders_only)

    try:
        result = asyncio.run(_run())
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None
    except (GraphApiError, GraphAuthError, ArchiveError) as exc:
        logger.error("Migration aborted: %s", exc)
        typer.echo(f"Migration aborted: {exc}", err=True)
        raise typer.Exit(code=1) from None
    finally:
        archive.close()

    out_path = write_report(
        result,
        storage=settings.storage,
        graph_settings=graph_settings,
        archive_settings=archive_settings,
    )
    typer.echo(f"Wrote {out_path}")
    if not result.folders.balanced or not result.items.balanced:
        logger.error("Statistics do not add up; see %s", out_path)
        raise typer.Exit(code=1)


@app.command("graph-auth")
def graph_auth_cmd(
    *,
    env_file: Path | None = env_file_option(),
) -> None:
    """Acquire an app-only token and verify access to the target mailbox.

    Args:
        env_file: Optional path to a .env file to load configuration from.
    """
    settings = load_app_settings(env_file=env_file)
    configure_logging(settings=settings.logging)
    graph_settings = require_graph(settings)

    async def _probe() -> dict[str, object]:
        """Read the mailbox owner's profile."""
        async with GraphClient.from_settings(graph_settings, settings.retry) as graph:
            return await graph.get(
                user_path(graph_settings.target_mailbox),
                params={"$select": "id,displayName,mail,userPrincipalName"},
            )

    try:
        profile = asyncio.run(_probe())
    except GraphAuthError as exc:
        logger.error("Graph auth configuration error: %s", exc)
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from None
    except GraphApiError as exc:
        logger.error("Graph access check failed: %s", exc)
        typer.echo(f"Graph access check failed: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(f"Graph access OK for: {profile.get('mail') or profile.get('userPrincipalName')}")
    if profile.get("displayName"):
        typer.echo(f"displayName: {profile['displayName']}")


def _add_branch(tree: Tree, folder: DestinationFolder) -> None:
    """Add a mail folder and its children to a rich tree."""
    branch = tree.add(f"{folder.name} [dim]{folder.id}[/dim]")
    for child in folder.children:
        _add_branch(branch, child)


def directory_tree(directory: DestinationDirectory, *, mailbox: str) -> Tree:
    """Render the destination containers as a rich tree.

    Args:
        directory: Destination snapshot.
        mailbox: Target mailbox, used as the root label.

    Returns:
        Rich tree.
    """
    root = Tree(f"[bold]{mailbox}[/bold]")
    mail = root.add("[bold blue]Mail folders[/bold blue]")
    for folder in directory.mail_folders:
        _add_branch(mail, folder)
    contacts = root.add("[bold blue]Contact folders[/bold blue]")
    for folder in directory.contact_folders:
        contacts.add(f"{folder.name} [dim]{folder.id}[/dim]")
    calendars = root.add("[bold blue]Calendars[/bold blue]")
    for calendar in directory.calendars:
        marker = " [green](default)[/green]" if calendar.is_default else ""
        calendars.add(f"{calendar.name}{marker}")
    return root


@app.command("folders")
def folders_cmd(
    *,
    env_file: Path | None = env_file_option(),
) -> None:
    """List the destination mailbox's folders, contact folders and calendars.

    Args:
        env_file: Optional path to a .env file to load configuration from.
    """
    settings = load_app_settings(env_file=env_file)
    console = Console()
    configure_logging(settings=settings.logging, console=console)
    graph_settings = require_graph(settings)

    async def _load() -> DestinationDirectory:
        """Enumerate the destination containers."""
        async with GraphClient.from_settings(graph_settings, settings.retry) as graph:
            return await DirectoryCache(graph=graph, mailbox=graph_settings.target_mailbox).load()

    try:
        directory = asyncio.run(_load())
    except (GraphApiError, GraphAuthError) as exc:
        typer.echo(f"Listing folders failed: {exc}", err=True)
        raise typer.Exit(code=1) from None

    console.print(directory_tree(directory, mailbox=graph_settings.target_mailbox))


@app.command("plan")
def plan_cmd(
    *,
    env_file: Path | None = env_file_option(),
) -> None:
    """Show the source folders the migration would process (no Graph access).

    Args:
        env_file: Optional path to a .env file to load configuration from.
    """
    settings = load_app_settings(env_file=env_file)
    configure_logging(settings=settings.logging)
    archive_settings = require_archive(settings)

    archive = open_pst(archive_settings.pst_file)
    try:
        descriptors = normalize_source_tree(
            archive.root_folder(),
            folder_filter=FolderFilter.create(
                skip_folders=archive_settings.skip_folders,
                supported_folder_classes=archive_settings.supported_folder_classes,
            ),
            anchor_name=archive_settings.anchor_folder_name,
        )
    finally:
        archive.close()

    if not descriptors:
        typer.echo("No folders to migrate.")
        return
    typer.echo(describe_tree(descriptors))
    skipped = sum(1 for d in descriptors if d.skip)
    typer.echo(f"\n{len(descriptors)} folders, {skipped} flagged to skip")
