"""CLI interface for pydrivesync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import DriveClient
from .auth import OAuthManager, require_access_token
from .cli_progress import TransferProgressDisplay
from .config import config
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveNotFoundError,
    SyncIndexError,
)
from .output import OutputFormatter
from .sync import NullProgressObserver, SyncContext, SyncEngine, SyncIndex
from .utils import format_iso_timestamp

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--access-token",
    "-t",
    envvar="PYDRIVESYNC_ACCESS_TOKEN",
    help="Google OAuth access token (overrides the stored login)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pydrivesync")
@click.pass_context
def main(
    ctx: Any,
    access_token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pydrivesync - Keep a local folder and a Google Drive folder in sync."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["access_token"] = access_token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydrivesync").setLevel(logging.DEBUG)
        # httpx logs every request at INFO, keep that for -v only
        logging.getLogger("httpx").setLevel(logging.INFO)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--client-secret",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="OAuth client secret JSON (default: ~/.config/pydrivesync/client_secret.json)",
)
@click.option(
    "--token",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to store the token (default: ~/.config/pydrivesync/token.json)",
)
@click.pass_context
def login(ctx: Any, client_secret: Optional[Path], token: Optional[Path]) -> None:
    """Authorize pydrivesync to access your Google Drive.

    Opens a browser window for the Google consent screen and stores the
    resulting refreshable token for future runs.
    """
    out: OutputFormatter = ctx.obj["out"]
    manager = OAuthManager(client_secret_path=client_secret, token_path=token)

    try:
        out.info("Opening browser for Google authorization...")
        manager.run_login_flow()
    except DriveConfigError as e:
        out.error(str(e))
        out.info(
            "Download an OAuth client ID (Desktop app) from the Google Cloud "
            "console and save it as client_secret.json"
        )
        ctx.exit(1)

    out.success(f"Logged in. Token saved to {manager.token_path}")


@main.command()
@click.argument("folder_id", type=str, required=False, default="root")
@click.pass_context
def ls(ctx: Any, folder_id: str) -> None:
    """List files and folders in a Google Drive folder.

    FOLDER_ID: Drive folder ID (omit to list "My Drive")

    Examples:
        pydrivesync ls
        pydrivesync ls 1AbCdEfGhIjKlMnOp
    """
    out: OutputFormatter = ctx.obj["out"]
    access_token, refresher = require_access_token(ctx, out)

    try:
        with DriveClient(access_token=access_token, token_refresher=refresher) as client:
            entries = client.list_children(folder_id)
    except DriveNotFoundError:
        out.error(f"Folder not found: {folder_id}")
        ctx.exit(1)
        return  # Unreachable, but helps type checker
    except DriveAPIError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    entries.sort(key=lambda e: (not e.is_folder, e.name.lower()))

    if out.json_output:
        out.output_json([e.to_dict() for e in entries])
        return

    if not entries:
        # Empty folder, output nothing (like Unix ls)
        return

    out.output_table(
        [e.to_table_row() for e in entries],
        ["name", "id", "size", "modified"],
        {"name": "Name", "id": "ID", "size": "Size", "modified": "Modified"},
    )


def _resolve_index_path(
    local_root: Path, remote_folder_id: str, index_path: Optional[Path]
) -> Path:
    if index_path is not None:
        return index_path.expanduser()
    return config.get_index_path(local_root, remote_folder_id)


@main.command()
@click.option(
    "--folder",
    "-f",
    "folder",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Local folder to sync (created if missing)",
)
@click.option(
    "--remote-folder-id",
    "-d",
    required=True,
    help="ID of the Google Drive folder to sync with",
)
@click.option(
    "--pull-only", is_flag=True, help="Only download changes from Google Drive"
)
@click.option(
    "--no-index",
    is_flag=True,
    help="Do not read or write the persistent sync index",
)
@click.option(
    "--index-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Sync index database to use instead of the per-folder default",
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without syncing"
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable progress bars",
)
@click.pass_context
def sync(
    ctx: Any,
    folder: Path,
    remote_folder_id: str,
    pull_only: bool,
    no_index: bool,
    index_path: Optional[Path],
    dry_run: bool,
    no_progress: bool,
) -> None:
    """Sync a local folder with a Google Drive folder.

    Uploads new and changed local files, then downloads new and changed
    remote files, recreating the remote folder structure locally. Nothing
    is ever deleted on either side.

    Examples:
        pydrivesync sync -f ~/Documents -d 1AbCdEfGhIjKlMnOp
        pydrivesync sync -f ./photos -d 1AbC --pull-only   # Download only
        pydrivesync sync -f ./photos -d 1AbC --dry-run     # Preview changes
        pydrivesync sync -f ./photos -d 1AbC --no-index    # Ignore sync history
    """
    out: OutputFormatter = ctx.obj["out"]

    local_root = folder.expanduser()
    if local_root.exists() and not local_root.is_dir():
        out.error(f"Path is not a directory: {folder}")
        ctx.exit(1)
    if not remote_folder_id.strip():
        out.error("Remote folder ID must not be empty")
        ctx.exit(1)

    access_token, refresher = require_access_token(ctx, out)
    client = DriveClient(access_token=access_token, token_refresher=refresher)

    try:
        remote_root = client.get_file(remote_folder_id)
    except DriveNotFoundError:
        out.error(f"Remote folder not found: {remote_folder_id}")
        client.close()
        ctx.exit(1)
        return  # Unreachable, but helps type checker
    except DriveAPIError as e:
        out.error(f"Cannot access remote folder {remote_folder_id}: {e}")
        client.close()
        ctx.exit(1)
        return

    if not remote_root.is_folder:
        out.error(f"Not a folder: {remote_root.name} ({remote_folder_id})")
        client.close()
        ctx.exit(1)

    try:
        if no_index:
            sync_index = SyncIndex.in_memory()
        else:
            db_path = _resolve_index_path(local_root, remote_folder_id, index_path)
            sync_index = SyncIndex(db_path)
    except SyncIndexError as e:
        out.error(str(e))
        client.close()
        ctx.exit(1)
        return

    logger.debug(
        f"Sync index: {sync_index.db_path} ({len(sync_index)} record(s))"
        if sync_index.is_persistent
        else "Sync index: in-memory"
    )

    show_progress = not (no_progress or dry_run or out.quiet)

    def run_engine(context: SyncContext) -> dict:
        summary = SyncEngine(context).run(pull_only=pull_only)
        return summary.to_dict()

    try:
        with client, sync_index:
            context = SyncContext(
                client=client,
                local_root=local_root,
                remote_folder_id=remote_folder_id,
                index=sync_index,
                output=out,
                observer=NullProgressObserver(),
                dry_run=dry_run,
            )
            if show_progress:
                with TransferProgressDisplay(console=out.console) as display:
                    context.observer = display
                    stats = run_engine(context)
            else:
                stats = run_engine(context)
    except (SyncIndexError, DriveAuthenticationError, DriveConfigError) as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(stats)


@main.command()
@click.option(
    "--folder",
    "-f",
    "folder",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Local folder of the sync pair",
)
@click.option(
    "--remote-folder-id",
    "-d",
    required=True,
    help="Google Drive folder ID of the sync pair",
)
@click.option(
    "--index-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Sync index database to use instead of the per-folder default",
)
@click.option("--clear", is_flag=True, help="Forget all sync history for this pair")
@click.pass_context
def index(
    ctx: Any,
    folder: Path,
    remote_folder_id: str,
    index_path: Optional[Path],
    clear: bool,
) -> None:
    """Show or reset the sync index of a folder pair.

    After --clear the next sync treats every file as new.
    """
    out: OutputFormatter = ctx.obj["out"]
    db_path = _resolve_index_path(folder.expanduser(), remote_folder_id, index_path)

    if not db_path.exists():
        if out.json_output:
            out.output_json([])
        else:
            out.info(f"No sync index at {db_path}")
        return

    try:
        with SyncIndex(db_path) as sync_index:
            if clear:
                removed = sync_index.clear()
                if out.json_output:
                    out.output_json({"cleared": removed})
                else:
                    out.success(f"Cleared {removed} record(s) from {db_path}")
                return
            records = list(sync_index.records())
    except SyncIndexError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    rows = [
        {
            "local_path": r.local_path,
            "remote_id": r.remote_id,
            "last_synced_modified": format_iso_timestamp(r.last_synced_modified),
        }
        for r in records
    ]

    if out.json_output:
        out.output_json(rows)
        return

    out.info(f"Sync index: {db_path}")
    if not rows:
        out.info("No files synced yet")
        return

    out.output_table(
        rows,
        ["local_path", "remote_id", "last_synced_modified"],
        {
            "local_path": "Path",
            "remote_id": "Remote ID",
            "last_synced_modified": "Last synced",
        },
    )


if __name__ == "__main__":
    main()
