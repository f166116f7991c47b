"""
Command-line interface for playlist-sync.

This module implements the CLI using Click (with rich-click for colored
help). Every command is a thin caller of the SyncCoordinator, the
RatingAggregator and the MigrationService.

Commands:
    playlist-sync share <playlist-id>       Share a library playlist
    playlist-sync import <code|file.json>   Import by share code or file
    playlist-sync resolve <code>            Show the playlist behind a code
    playlist-sync list                      Browse community playlists
    playlist-sync library                   List local library playlists
    playlist-sync rate <record-id> <1-5>    Rate a shared playlist
    playlist-sync remove <record-id>        Make your shared playlist private
    playlist-sync delete <record-id>        Delete your shared playlist
    playlist-sync migrate                   Push local playlists to your account
    playlist-sync status                    Show migration status

Authentication:
    Without credentials, remote writes use an anonymous account (when the
    remote store is configured). Pass --email/--password, or set
    PLAYLIST_SYNC_EMAIL / PLAYLIST_SYNC_PASSWORD, to act as your account.

Exit Codes:
    0    Success
    1    Configuration error / unexpected error
    2    Local store error
    3    Remote store error outside of a sync operation (e.g. sign-in)
    4    Operation failed (not found, not owner, invalid input...)
    130  Interrupted
"""

import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

import rich_click as click

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100

from playlist_sync.core import (
    Config,
    ConfigError,
    LocalStore,
    LocalStoreError,
    OperationResult,
    PlaylistSyncError,
    RemoteError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from playlist_sync.core.models import SharedPlaylistRecord
from playlist_sync.remote import FirebaseAuthProvider, FirestoreRemoteStore
from playlist_sync.sharing import (
    CATEGORIES,
    SORT_KEYS,
    MigrationService,
    PlaylistFilters,
    SyncCoordinator,
)

logger = get_logger(__name__)


__version__ = "0.1.0"

EXIT_CONFIG = 1
EXIT_LOCAL_STORE = 2
EXIT_REMOTE = 3
EXIT_FAILED = 4
EXIT_INTERRUPTED = 130


@dataclass
class Services:
    """Objects shared by every command during one invocation."""
    config: Config
    store: LocalStore
    remote: FirestoreRemoteStore
    auth: FirebaseAuthProvider
    coordinator: SyncCoordinator
    migration: MigrationService

    async def close(self) -> None:
        await self.remote.close()
        await self.auth.close()
        self.store.close()


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--email",
    envvar="PLAYLIST_SYNC_EMAIL",
    default=None,
    help="Account email for signing in"
)
@click.option(
    "--password",
    envvar="PLAYLIST_SYNC_PASSWORD",
    default=None,
    help="Account password for signing in"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug messages on the console"
)
@click.version_option(__version__, prog_name="playlist-sync")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[Path],
    email: Optional[str],
    password: Optional[str],
    verbose: bool
) -> None:
    """
    playlist-sync: Share power hour playlists by code.

    Playlists are always saved locally first and mirrored to the
    community store when it is configured and reachable.

    \b
    EXAMPLES:
        playlist-sync share youtube_playlist_1718900000000_k3j9x0a2b --tag party
        playlist-sync import AB12CD34
        playlist-sync list --category highly-rated --sort-by downloads
        playlist-sync rate <record-id> 5 --review "Great mix"
        playlist-sync migrate
    """
    if (email is None) != (password is None):
        raise click.UsageError("--email and --password must be used together")
    ctx.obj = {
        "config_path": config_path,
        "email": email,
        "password": password,
        "console_level": logging.DEBUG if verbose else logging.INFO,
    }


def _load_configuration(config_path: Path | None) -> Config:
    """
    Load and validate configuration.

    Raises:
        ConfigError: If configuration is invalid or an explicit file is missing.
    """
    return load_config(config_path)


def _initialize_store(config: Config) -> LocalStore:
    """
    Create the storage directory and open the local store.

    Raises:
        LocalStoreError: If the database cannot be opened.
    """
    try:
        config.storage.directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LocalStoreError(
            f"Cannot create storage directory: {e}",
            details={"path": str(config.storage.directory)}
        ) from e
    return LocalStore(config.storage.database_path)


async def _open_services(config: Config, options: dict) -> Services:
    store = _initialize_store(config)
    remote = FirestoreRemoteStore(config.remote)
    auth = FirebaseAuthProvider(config.remote, store)
    if options["email"]:
        await auth.sign_in_with_password(options["email"], options["password"])
    coordinator = SyncCoordinator(store, remote, auth, config.sharing)
    return Services(
        config=config,
        store=store,
        remote=remote,
        auth=auth,
        coordinator=coordinator,
        migration=MigrationService(coordinator),
    )


def _run(ctx: click.Context, handler: Callable[[Services], Awaitable[int]]) -> None:
    """
    Run one command: load config, set up logging, open services, report.

    Raises:
        SystemExit: With the exit code of the handler or of the error.
    """
    options = ctx.obj
    exit_code = 0

    async def _main() -> int:
        services = await _open_services(config, options)
        try:
            if not services.remote.is_available():
                logger.debug("Remote store not configured, working locally")
            return await handler(services)
        finally:
            await services.close()

    try:
        config = _load_configuration(options["config_path"])
        setup_logging(config.storage.directory, options["console_level"])
        exit_code = asyncio.run(_main())

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        exit_code = EXIT_CONFIG

    except LocalStoreError as e:
        click.echo(f"Local store error: {e.message}", err=True)
        logger.error(f"Local store error: {e.message}", exc_info=True)
        exit_code = EXIT_LOCAL_STORE

    except RemoteError as e:
        click.echo(f"Remote error: {e.message}", err=True)
        logger.error(f"Remote error: {e.message}")
        exit_code = EXIT_REMOTE

    except PlaylistSyncError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        exit_code = EXIT_FAILED

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        exit_code = EXIT_INTERRUPTED

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        exit_code = EXIT_CONFIG

    finally:
        shutdown_logging()

    if exit_code:
        sys.exit(exit_code)


def _report_failure(result: OperationResult) -> int:
    click.echo(f"Error: {result.message}", err=True)
    return EXIT_FAILED


def _print_record(record: SharedPlaylistRecord) -> None:
    visibility = "public" if record.is_public else "private"
    click.echo(f"{record.name}  [{record.share_code}]")
    click.echo(f"  id:        {record.id} ({'remote' if record.is_remote else 'local'}, {visibility})")
    if record.creator_display_name:
        click.echo(f"  creator:   {record.creator_display_name}")
    click.echo(f"  clips:     {len(record.clips)}")
    click.echo(f"  rating:    {record.rating:.1f}   downloads: {record.download_count}")
    if record.tags:
        click.echo(f"  tags:      {', '.join(record.tags)}")
    if record.description:
        click.echo(f"  {record.description}")


# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument("playlist_id")
@click.option("--description", "-d", default="", help="Description shown to others")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable, max 10)")
@click.option("--private", is_flag=True, help="Only resolvable by exact share code")
@click.pass_context
def share(ctx: click.Context, playlist_id: str, description: str, tags: tuple[str, ...], private: bool) -> None:
    """Share a playlist from the local library."""

    async def handler(services: Services) -> int:
        playlist = services.store.get_playlist(playlist_id)
        if playlist is None:
            click.echo(f"No library playlist with id {playlist_id}", err=True)
            return EXIT_FAILED
        result = await services.coordinator.share(
            playlist, description=description, tags=tags, is_public=not private
        )
        click.echo(f"Share code: {result.record.share_code}")
        click.echo(result.message)
        return 0

    _run(ctx, handler)


@cli.command(name="import")
@click.argument("source")
@click.pass_context
def import_(ctx: click.Context, source: str) -> None:
    """Import a playlist by share code, or from a .json/.phpl file."""

    async def handler(services: Services) -> int:
        path = Path(source)
        if path.suffix and path.exists():
            result = await services.coordinator.import_file(path)
        else:
            result = await services.coordinator.import_code(source)
        if not result:
            return _report_failure(result)

        imported = result.value
        click.echo(imported.message)
        click.echo(f"Library id: {imported.playlist.id}")
        for attachment in imported.pending_attachments:
            click.echo(f"Please locate {attachment.name}: {attachment.path}")
        return 0

    _run(ctx, handler)


@cli.command()
@click.argument("code")
@click.pass_context
def resolve(ctx: click.Context, code: str) -> None:
    """Show the shared playlist behind a share code."""

    async def handler(services: Services) -> int:
        result = await services.coordinator.resolve_by_code(code)
        if not result:
            return _report_failure(result)
        _print_record(result.value)
        return 0

    _run(ctx, handler)


@cli.command(name="list")
@click.option("--category", "-c", type=click.Choice(CATEGORIES), default="new", show_default=True)
@click.option("--limit", "-n", type=click.IntRange(min=1), default=None, help="Maximum results")
@click.option("--tag", "-t", "tags", multiple=True, help="Keep playlists with any of these tags")
@click.option("--min-rating", type=click.FloatRange(0, 5), default=None)
@click.option("--creator", default=None, help="Creator name contains")
@click.option("--search", "-s", default=None, help="Name, description, creator or tags contain")
@click.option("--sort-by", type=click.Choice(SORT_KEYS), default=None)
@click.option("--asc", is_flag=True, help="Ascending sort order")
@click.option("--mine", is_flag=True, help="Only playlists you shared")
@click.pass_context
def list_(
    ctx: click.Context,
    category: str,
    limit: Optional[int],
    tags: tuple[str, ...],
    min_rating: Optional[float],
    creator: Optional[str],
    search: Optional[str],
    sort_by: Optional[str],
    asc: bool,
    mine: bool
) -> None:
    """Browse shared playlists."""
    filters = PlaylistFilters(
        tags=tags,
        min_rating=min_rating,
        creator=creator,
        search=search,
        sort_by=sort_by,
        descending=not asc,
    )

    async def handler(services: Services) -> int:
        if mine:
            result = await services.coordinator.list_mine()
        else:
            result = await services.coordinator.list(category, limit, filters)
        if not result:
            return _report_failure(result)
        if not result.value:
            click.echo("No playlists found")
        for record in result.value:
            _print_record(record)
        return 0

    _run(ctx, handler)


@cli.command()
@click.pass_context
def library(ctx: click.Context) -> None:
    """List playlists in the local library."""

    async def handler(services: Services) -> int:
        playlists = services.store.get_playlists()
        if not playlists:
            click.echo("The library is empty")
        for playlist in playlists:
            code = await services.coordinator.share_code_for(playlist.id)
            shared = f"  [{code}]" if code else ""
            click.echo(f"{playlist.id}  {playlist.name} ({len(playlist.clips)} clips){shared}")
        return 0

    _run(ctx, handler)


@cli.command()
@click.argument("record_id")
@click.argument("value", type=click.IntRange(1, 5), required=False)
@click.option("--review", default=None, help="Optional review text")
@click.option("--withdraw", is_flag=True, help="Remove your rating instead")
@click.pass_context
def rate(
    ctx: click.Context,
    record_id: str,
    value: Optional[int],
    review: Optional[str],
    withdraw: bool
) -> None:
    """Rate a shared playlist from 1 to 5 (requires an account)."""
    if value is None and not withdraw:
        raise click.UsageError("VALUE is required unless --withdraw is given")

    async def handler(services: Services) -> int:
        if withdraw:
            acting = await services.coordinator.acting_identity()
            result = await services.coordinator.ratings.remove_rating(record_id, acting)
        else:
            result = await services.coordinator.rate(record_id, value, review)
        if not result:
            return _report_failure(result)
        stats = await services.coordinator.ratings.stats(record_id)
        click.echo(f"Rating: {result.value:.1f} ({stats.total} ratings)")
        return 0

    _run(ctx, handler)


@cli.command()
@click.argument("record_id")
@click.pass_context
def remove(ctx: click.Context, record_id: str) -> None:
    """Remove your playlist from the community (keeps it by code)."""

    async def handler(services: Services) -> int:
        result = await services.coordinator.remove_from_community(record_id)
        if not result:
            return _report_failure(result)
        click.echo(f"'{result.value.name}' is now private")
        return 0

    _run(ctx, handler)


@cli.command()
@click.argument("record_id")
@click.confirmation_option(prompt="Delete this shared playlist with its ratings?")
@click.pass_context
def delete(ctx: click.Context, record_id: str) -> None:
    """Delete your shared playlist, its ratings and downloads."""

    async def handler(services: Services) -> int:
        result = await services.coordinator.delete(record_id)
        if not result:
            return _report_failure(result)
        click.echo(result.message)
        return 0

    _run(ctx, handler)


@cli.command()
@click.option("--pull", is_flag=True, help="Copy your account's playlists into the local library")
@click.option("--no-progress", is_flag=True, help="Disable the progress bar")
@click.pass_context
def migrate(ctx: click.Context, pull: bool, no_progress: bool) -> None:
    """Push local playlists into your account."""

    async def handler(services: Services) -> int:
        if pull:
            report = await services.migration.pull_to_local()
        else:
            report = await services.migration.migrate_all(progress=not no_progress)
        click.echo(report.message)
        for error in report.errors:
            click.echo(f"  {error}", err=True)
        return 0 if report.success else EXIT_FAILED

    _run(ctx, handler)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show identity and migration status."""

    async def handler(services: Services) -> int:
        acting = await services.coordinator.acting_identity()
        kind = "account" if acting.authenticated else "local profile"
        if acting.is_anonymous:
            kind = f"anonymous {kind}"
        click.echo(f"Identity:          {acting.display_name or acting.uid} ({kind})")
        click.echo(f"Remote store:      {'configured' if services.remote.is_available() else 'not configured'}")

        migration = await services.migration.status()
        click.echo(f"Local playlists:   {migration.local_playlists}")
        click.echo(f"Remote playlists:  {migration.remote_playlists}")
        click.echo(f"Need migration:    {migration.needs_migration}")
        click.echo(f"Shared (cached):   {len(services.store.get_all())}")
        return 0

    _run(ctx, handler)


def main() -> None:
    """Entry point for the `playlist-sync` console script."""
    cli()


if __name__ == "__main__":
    main()
