"""CLI entry point for the SISU folder sync.

Commands:
    sisusync upload          — batch run over every marker folder
    sisusync upload-one      — upload new files for one transaction id
    sisusync remove-suffix   — make transferred files eligible again
    sisusync refresh-cache   — rebuild the identifier → folder lookup
    sisusync create-markers  — seed empty marker documents in deal folders
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import click

from sisusync.config import (
    AUDIT_BACKEND,
    AUDIT_LOG_DIR,
    AUDIT_SPREADSHEET_NAME,
    GOOGLE_CREDENTIALS_BASE64,
    GOOGLE_SHARED_DRIVE_ID,
    MARKER_ROOTS,
    RUN_TIMEOUT_SECONDS,
    SISU_AUTH_HEADER,
    SISU_BASE_URL,
)

logger = logging.getLogger("sisusync")


def _validate_config(*, registry: bool = True) -> None:
    """Fail loudly if required config is missing."""
    missing = []
    if not GOOGLE_CREDENTIALS_BASE64:
        missing.append("GOOGLE_CREDENTIALS_BASE64")
    if not GOOGLE_SHARED_DRIVE_ID:
        missing.append("GOOGLE_SHARED_DRIVE_ID")
    if registry:
        if not SISU_BASE_URL:
            missing.append("SISU_BASE_URL")
        if not SISU_AUTH_HEADER:
            missing.append("SISU_AUTH_HEADER")
    if missing:
        click.echo(f"Error: Missing required config: {', '.join(missing)}", err=True)
        click.echo("Set these in secrets/internal.env or via SOPS.", err=True)
        sys.exit(1)


def _open_store():
    from sisusync.store.gdrive import GoogleDriveStore

    return GoogleDriveStore.from_base64(GOOGLE_CREDENTIALS_BASE64, GOOGLE_SHARED_DRIVE_ID)


def _open_audit_log():
    if AUDIT_BACKEND == "sheets":
        from sisusync.audit.sheets import SheetsAuditLog
        from sisusync.store.gdrive import load_credentials

        return SheetsAuditLog.from_credentials(
            load_credentials(GOOGLE_CREDENTIALS_BASE64), AUDIT_SPREADSHEET_NAME, GOOGLE_SHARED_DRIVE_ID
        )
    from sisusync.audit.log import JsonlAuditLog

    return JsonlAuditLog(AUDIT_LOG_DIR)


@asynccontextmanager
async def _open_services():
    """Yield ``(store, registry, audit_log)`` wired from config."""
    from sisusync.integrations.sisu import SisuRegistry

    async with SisuRegistry(SISU_BASE_URL, SISU_AUTH_HEADER) as registry:
        yield _open_store(), registry, _open_audit_log()


def _load_settings():
    """Settings from config; exits 1 on an invalid value."""
    from sisusync.config import ConfigError
    from sisusync.sync.runner import SyncSettings

    try:
        return SyncSettings.from_config()
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _run(coro, timeout: float) -> None:
    """Run a command coroutine under a deadline; exit 1 on a hard failure."""

    async def bounded():
        async with asyncio.timeout(timeout if timeout > 0 else None):
            await coro

    try:
        asyncio.run(bounded())
    except TimeoutError:
        click.echo(f"Error: run exceeded {timeout:g}s deadline and was cancelled.", err=True)
        sys.exit(1)
    except Exception as exc:
        logger.debug("Command failed", exc_info=True)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """SISU sync: upload Google Drive deal folders into SISU transactions."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        for noisy in ("httpx", "googleapiclient.discovery_cache"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


# ------------------------------------------------------------------
# sisusync upload
# ------------------------------------------------------------------


@cli.command()
@click.option("--include-closed", is_flag=True, help="Also upload to closed or inactive transactions.")
@click.option(
    "--timeout",
    default=RUN_TIMEOUT_SECONDS,
    show_default=True,
    type=float,
    help="Cancel the run after this many seconds (0=no limit).",
)
def upload(include_closed: bool, timeout: float) -> None:
    """Upload new files from every marker folder."""
    _validate_config()
    _run(_upload_async(_load_settings(), include_closed), timeout)


async def _upload_async(settings, include_closed: bool) -> None:
    from sisusync.sync.runner import SyncRunner

    async with _open_services() as (store, registry, audit_log):
        runner = SyncRunner(store, registry, audit_log, settings=settings)
        result = await runner.run_batch(include_closed=include_closed)

    s = result.summary
    click.echo(f"\nFolders: {s.folders_discovered} discovered, {s.folders_authoritative} authoritative")
    click.echo(f"Uploaded: {s.successes}  Failed: {s.failures}  Skipped: {s.skipped}")
    if s.multi_transaction_flags:
        click.echo(f"Multi-transaction identifiers: {s.multi_transaction_flags}")
        for flag in result.multi_transaction_flags:
            ids = ", ".join(str(t) for t in flag.transaction_ids)
            click.echo(f"  {flag.folder_path}: {flag.identifier} → {ids}")
    for failure in result.failures:
        target = failure.file_name or failure.folder_path or failure.identifier
        click.echo(f"  FAILED [{failure.stage}] {target}: {failure.detail}")


# ------------------------------------------------------------------
# sisusync upload-one
# ------------------------------------------------------------------


@cli.command("upload-one")
@click.argument("transaction_id")
@click.option(
    "--timeout",
    default=RUN_TIMEOUT_SECONDS,
    show_default=True,
    type=float,
    help="Cancel the run after this many seconds (0=no limit).",
)
def upload_one(transaction_id: str, timeout: float) -> None:
    """Upload new files for a single TRANSACTION_ID."""
    if not transaction_id.strip().isdigit():
        click.echo("Error: Transaction ID must be a number.", err=True)
        sys.exit(1)
    _validate_config()
    _run(_upload_one_async(_load_settings(), transaction_id), timeout)


async def _upload_one_async(settings, transaction_id: str) -> None:
    from sisusync.sync.runner import SyncRunner

    async with _open_services() as (store, registry, audit_log):
        runner = SyncRunner(store, registry, audit_log, settings=settings)
        result = await runner.run_for_identifier(transaction_id)

    click.echo(f"\nTransaction {result.transaction_id}: {result.message}")
    click.echo(f"Address: {result.address}")
    if result.folder_path:
        click.echo(f"Folder: {result.folder_path}")
        click.echo(f"Uploaded: {result.documents_uploaded}  Failed: {result.documents_failed}")
    for failure in result.failures:
        click.echo(f"  FAILED [{failure.stage}] {failure.file_name}: {failure.detail}")


# ------------------------------------------------------------------
# sisusync remove-suffix
# ------------------------------------------------------------------


@cli.command("remove-suffix")
@click.argument("identifier")
def remove_suffix_cmd(identifier: str) -> None:
    """Strip _UPLOADED from files under folders marked with IDENTIFIER."""
    if not identifier.strip():
        click.echo("Error: Identifier is required.", err=True)
        sys.exit(1)
    _validate_config(registry=False)
    _run(_remove_suffix_async(_load_settings(), identifier), RUN_TIMEOUT_SECONDS)


async def _remove_suffix_async(settings, identifier: str) -> None:
    from sisusync.sync.maintenance import remove_suffix

    result = await remove_suffix(
        _open_store(),
        identifier,
        marker_name=settings.marker_name,
        mode=settings.identifier_mode,
        max_depth=settings.max_ancestor_depth,
        mime_type=settings.mime_type,
        extensions=settings.extensions,
    )
    click.echo(f"\nFolders processed: {result.folders_processed}")
    click.echo(f"Files renamed: {result.files_renamed}")
    for old, new in result.renamed:
        click.echo(f"  {old} → {new}")
    for error in result.errors:
        click.echo(f"  FAILED {error}")


# ------------------------------------------------------------------
# sisusync refresh-cache
# ------------------------------------------------------------------


@cli.command("refresh-cache")
def refresh_cache() -> None:
    """Rebuild the identifier → folder lookup and report its size."""
    _validate_config(registry=False)
    _run(_refresh_cache_async(_load_settings()), RUN_TIMEOUT_SECONDS)


async def _refresh_cache_async(settings) -> None:
    from sisusync.sync.cache import LookupCache

    cache = LookupCache(
        _open_store(),
        settings.marker_name,
        mode=settings.identifier_mode,
        max_depth=settings.max_ancestor_depth,
    )
    stats = await cache.refresh()
    click.echo(
        f"\nCache refreshed in {stats.duration_seconds:.2f}s: "
        f"{stats.cached} cached of {stats.total_folders} folder(s), {stats.errors} error(s)"
    )


# ------------------------------------------------------------------
# sisusync create-markers
# ------------------------------------------------------------------


@cli.command("create-markers")
@click.option(
    "--root",
    "roots",
    multiple=True,
    help="folder_id[:depth[:subfolder]] (repeatable; defaults to MARKER_ROOTS).",
)
def create_markers_cmd(roots: tuple[str, ...]) -> None:
    """Create empty marker documents in deal folders that lack one."""
    from sisusync.sync.maintenance import parse_marker_root

    entries = list(roots) or MARKER_ROOTS
    if not entries:
        click.echo("Error: No marker roots given. Pass --root or set MARKER_ROOTS.", err=True)
        sys.exit(1)
    try:
        parsed = [parse_marker_root(e) for e in entries]
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    _validate_config(registry=False)
    _run(_create_markers_async(_load_settings(), parsed), RUN_TIMEOUT_SECONDS)


async def _create_markers_async(settings, roots) -> None:
    from sisusync.sync.maintenance import create_markers

    result = await create_markers(_open_store(), roots, marker_name=settings.marker_name)
    click.echo(f"\nFolders scanned: {result.folders_scanned}")
    click.echo(f"Created: {len(result.created)}  Skipped: {len(result.skipped)}  Errors: {len(result.errors)}")
    for path in result.created:
        click.echo(f"  + {path}")
    for path, error in result.errors:
        click.echo(f"  FAILED {path}: {error}")


if __name__ == "__main__":
    cli()
