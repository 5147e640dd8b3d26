"""CLI interface for PySyncbox."""

import logging
import threading
from pathlib import Path
from typing import Any, Optional

import click

from .api import SyncboxClient
from .config import config
from .exceptions import SyncboxAPIError
from .output import OutputFormatter
from .utils import DEFAULT_POLL_INTERVAL, format_timestamp

logger = logging.getLogger(__name__)


def _wait_for_interrupt() -> None:
    """Block the main thread until Ctrl+C."""
    stop_event = threading.Event()
    while not stop_event.wait(1.0):
        pass


def _make_client(ctx: Any) -> Optional[SyncboxClient]:
    """Build an API client from the global options, or exit if unconfigured."""
    token = ctx.obj.get("token")
    server = ctx.obj.get("server")
    out: OutputFormatter = ctx.obj["out"]

    if not config.is_configured() and not token:
        out.error("API token not configured.")
        out.info("Run 'pysyncbox init' to configure your API token")
        ctx.exit(1)
        return None

    return SyncboxClient(api_token=token, server_url=server)


@click.group()
@click.option("--token", "-t", envvar="SYNCBOX_API_TOKEN", help="Syncbox API token")
@click.option("--server", "-s", envvar="SYNCBOX_SERVER_URL", help="Syncbox server URL")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pysyncbox")
@click.pass_context
def main(
    ctx: Any,
    token: Optional[str],
    server: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """PySyncbox - Keep a local folder in sync with a Syncbox server."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token
    ctx.obj["server"] = server
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pysyncbox").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--token",
    "-t",
    prompt="Enter your Syncbox API token",
    help="Syncbox API token",
)
@click.option("--server", "-s", default=None, help="Syncbox server URL")
@click.pass_context
def init(ctx: Any, token: str, server: Optional[str]) -> None:
    """Initialize Syncbox configuration.

    Stores your API token in ~/.config/pysyncbox/config for future use.
    """
    out: OutputFormatter = ctx.obj["out"]
    server = server or ctx.obj.get("server")

    out.info("Validating API token...")
    try:
        client = SyncboxClient(api_token=token, server_url=server)
        client.check_connection()
        out.success("✓ API token is valid")
    except SyncboxAPIError as e:
        out.error(f"API token validation failed: {e}")
        if not click.confirm("Save API token anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)
            return

    config.save_api_token(token)
    if server:
        config.save_server_url(server)

    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "✓ Configuration saved successfully"),
            ("Config file", str(config.get_config_path())),
            ("Server", server or config.server_url),
        ],
    )


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Check the connection to the Syncbox server."""
    out: OutputFormatter = ctx.obj["out"]
    client = _make_client(ctx)
    if client is None:
        return

    try:
        client.check_connection()
    except SyncboxAPIError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({"server": client.server_url, "connected": True})
    else:
        out.success(f"✓ Connected to {client.server_url}")


@main.command()
@click.pass_context
def folders(ctx: Any) -> None:
    """List all remote folders and their local sync paths."""
    out: OutputFormatter = ctx.obj["out"]
    client = _make_client(ctx)
    if client is None:
        return

    try:
        records = client.get_all_folders()
    except SyncboxAPIError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json([record.to_dict() for record in records])
        return
    if not records:
        out.info("No folders found")
        return

    out.output_table(
        [
            {
                "id": str(record.id),
                "name": record.name,
                "parent_id": "" if record.parent_id is None else str(record.parent_id),
                "sync_path": record.sync_path or "",
            }
            for record in records
        ],
        ["id", "name", "parent_id", "sync_path"],
        headers={
            "id": "ID",
            "name": "Name",
            "parent_id": "Parent",
            "sync_path": "Sync path",
        },
        title="Remote folders",
    )


@main.command()
@click.argument("folder_id", type=int)
@click.pass_context
def ls(ctx: Any, folder_id: int) -> None:
    """List the files of a remote folder.

    FOLDER_ID: ID of the remote folder
    """
    out: OutputFormatter = ctx.obj["out"]
    client = _make_client(ctx)
    if client is None:
        return

    try:
        records = client.list_files(folder_id)
    except SyncboxAPIError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json([record.to_dict() for record in records])
        return
    if not records:
        out.info("Folder is empty")
        return

    out.output_table(
        [
            {
                "id": str(record.id),
                "name": record.name,
                "size": record.size_formatted,
                "updated": format_timestamp(record.mtime),
            }
            for record in records
        ],
        ["id", "name", "size", "updated"],
        headers={"id": "ID", "name": "Name", "size": "Size", "updated": "Updated"},
        title=f"Folder {folder_id}",
    )


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--folder-id",
    "-f",
    type=int,
    default=None,
    help="Remote folder ID (a folder named after PATH is created if omitted)",
)
@click.option(
    "--direction",
    "-d",
    type=click.Choice(["both", "up", "down"]),
    default="both",
    help="Which way to sync (default: both)",
)
@click.pass_context
def sync(ctx: Any, path: str, folder_id: Optional[int], direction: str) -> None:
    """Run a one-shot sync of a local directory.

    PATH: Local directory to sync (files directly inside it only)

    Examples:
        pysyncbox sync ./docs                  # Create folder "docs" and sync
        pysyncbox sync ./docs -f 12            # Sync with folder 12
        pysyncbox sync ./docs -f 12 -d up      # Only upload local changes
    """
    from .sync import SyncConfigError, SyncEngine

    out: OutputFormatter = ctx.obj["out"]
    client = _make_client(ctx)
    if client is None:
        return

    engine = SyncEngine(client)
    if not out.json_output:
        engine.add_status_listener(out.info)

    try:
        session = engine.configure_sync(
            Path(path),
            remote_folder_id=folder_id,
            auto_sync=False,
            perform_initial_sync=False,
        )
        uploaded = downloaded = 0
        if direction in ("both", "up"):
            uploaded = engine.sync_local_to_remote()
        if direction in ("both", "down"):
            downloaded = engine.sync_remote_to_local()
    except SyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    finally:
        client.close()

    if out.json_output:
        out.output_json(
            {**session.to_dict(), "uploaded": uploaded, "downloaded": downloaded}
        )
    else:
        out.print_summary(
            "Sync Complete",
            [
                ("Local path", str(session.local_path)),
                ("Remote folder", str(session.remote_folder_id)),
                ("Uploaded", str(uploaded)),
                ("Downloaded / deleted", str(downloaded)),
            ],
        )


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--folder-id",
    "-f",
    type=int,
    default=None,
    help="Remote folder ID (a folder named after PATH is created if omitted)",
)
@click.option(
    "--no-initial-sync",
    is_flag=True,
    help="Skip the full sync before watching",
)
@click.option(
    "--poll-interval",
    type=float,
    default=DEFAULT_POLL_INTERVAL,
    help=f"Seconds between server polls (default: {DEFAULT_POLL_INTERVAL:g})",
)
@click.pass_context
def watch(
    ctx: Any,
    path: str,
    folder_id: Optional[int],
    no_initial_sync: bool,
    poll_interval: float,
) -> None:
    """Keep a local directory in sync until interrupted.

    PATH: Local directory to watch (files directly inside it only)

    Local changes are pushed as they happen and the server is polled for
    remote changes. Press Ctrl+C to stop.
    """
    from .sync import EngineSettings, SyncConfigError, SyncEngine

    out: OutputFormatter = ctx.obj["out"]
    client = _make_client(ctx)
    if client is None:
        return

    if poll_interval <= 0:
        out.error("Poll interval must be positive")
        ctx.exit(1)
        return

    engine = SyncEngine(client, EngineSettings(poll_interval=poll_interval))
    engine.add_status_listener(out.info)

    try:
        session = engine.configure_sync(
            Path(path),
            remote_folder_id=folder_id,
            auto_sync=True,
            perform_initial_sync=not no_initial_sync,
        )
    except SyncConfigError as e:
        out.error(str(e))
        client.close()
        ctx.exit(1)
        return

    out.info("Watching for changes. Press Ctrl+C to stop.")
    try:
        _wait_for_interrupt()
    except KeyboardInterrupt:
        out.warning("\nStopping...")
    finally:
        engine.stop(session)
        client.close()


if __name__ == "__main__":
    main()
