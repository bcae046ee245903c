"""CLI command implementations"""

import signal
import threading
from pathlib import Path
from typing import Annotated, Optional

import typer
from sqlmodel import Session

from pubsync.config import Settings, load_config
from pubsync.core.errors import FatalSyncError
from pubsync.core.models import Collection
from pubsync.core.pipeline import build_sync_plan, find_orphans, prune, run_sync
from pubsync.core.plan import OpKind, SyncPlan
from pubsync.core.report import OrphanCandidate, SyncReport
from pubsync.crud.blobs import HttpFetcher, LocalBlobStore, MediaUploader
from pubsync.crud.database import init_db, make_engine, reset_db
from pubsync.crud.sql_repo import SQLStore
from pubsync.log import configure_logging


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling, then set up logging."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))
    configure_logging(settings.log_level)
    return settings


def _read_export(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        _fail(f"Cannot read export {path}", e)


def _echo_plan(plan: SyncPlan, show_all: bool) -> None:
    for op in plan:
        if show_all or op.kind is not OpKind.skip:
            typer.echo(f"  {op}")
    counts = plan.counts()
    typer.echo(
        f"Plan - {counts['create']} create, {counts['update']} update, "
        f"{counts['relink']} relink, {counts['skip']} skip"
    )
    if plan.ambiguous:
        typer.echo(f"Ambiguous media tie-breaks: {', '.join(plan.ambiguous)}")


def _echo_orphans(orphans: list[OrphanCandidate]) -> None:
    for o in orphans:
        typer.echo(f"  {o.reason.value}: {o.collection}/{o.id} {o.label}")
    typer.echo(f"{len(orphans)} orphan candidate(s)")


def _echo_report(report: SyncReport) -> None:
    for entry in report.errors:
        typer.echo(f"  error: {entry.identifier}: {entry.message}")
    for entry in report.warnings:
        typer.echo(f"  warning: {entry.identifier}: {entry.message}")
    typer.echo(
        f"Sync complete - "
        f"{report.created} created, "
        f"{report.updated} updated, "
        f"{report.relinked} relinked, "
        f"{report.skipped} skipped, "
        f"{len(report.errors)} error(s)"
        + (" (cancelled)" if report.cancelled else "")
    )


def init_cmd(
    reset: Annotated[bool, typer.Option("--reset", help="Drop and recreate all tables")] = False,
    ):
    """Initialize database schema. Use --reset to clear existing data."""
    settings = _settings()
    engine = make_engine(settings.db_url)
    if reset:
        reset_db(engine)
        typer.echo("Existing data cleared.")
    else:
        init_db(engine)
    typer.echo(f"Database initialized at: {settings.db_url}")


def plan_cmd(
    path: Annotated[str, typer.Argument(help="WordPress export (WXR) file")],
    show_all: Annotated[bool, typer.Option("--all", help="Also list skip operations")] = False,
    ):
    """Show what a sync would do, without changing anything."""
    settings = _settings()
    raw = _read_export(path)
    engine = make_engine(settings.db_url)
    init_db(engine)
    try:
        with Session(engine) as session:
            export, plan = build_sync_plan(raw, SQLStore(session), settings)
    except FatalSyncError as e:
        _fail(str(e))
    for identifier, reason in export.dropped:
        typer.echo(f"  dropped: {identifier}: {reason}")
    _echo_plan(plan, show_all)


def sync_cmd(
    path: Annotated[str, typer.Argument(help="WordPress export (WXR) file")],
    report_path: Annotated[Optional[str], typer.Option("--report", help="Write the JSON report here")] = None,
    batch_size: Annotated[Optional[int], typer.Option("--batch-size", help="Operations per batch")] = None,
    workers: Annotated[Optional[int], typer.Option("--workers", help="Threads per batch")] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Plan only; same as 'pubsync plan'")] = False,
    ):
    """Reconcile the export into the live store and report the outcome."""
    if dry_run:
        plan_cmd(path)
        return
    settings = _settings(overrides={"batch_size": batch_size, "max_workers": workers})
    raw = _read_export(path)
    engine = make_engine(settings.db_url)
    init_db(engine)

    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    fetcher = HttpFetcher(timeout=settings.fetch_timeout)
    try:
        uploader = MediaUploader(fetcher, LocalBlobStore(Path(settings.blob_dir), settings.blob_base_url))
        with Session(engine) as session:
            report = run_sync(raw, SQLStore(session), uploader, settings, cancel=cancel)
    finally:
        fetcher.close()
        signal.signal(signal.SIGINT, previous)

    if report_path:
        Path(report_path).write_text(report.model_dump_json(indent=2), encoding="utf-8")
    if report.fatal:
        _fail(report.errors[0].message)
    _echo_report(report)
    if report.orphans:
        typer.echo(f"{len(report.orphans)} orphan candidate(s); run 'pubsync orphans' to review.")


def orphans_cmd():
    """List categories and media that nothing in the live store uses."""
    settings = _settings()
    engine = make_engine(settings.db_url)
    init_db(engine)
    try:
        with Session(engine) as session:
            orphans = find_orphans(SQLStore(session), settings)
    except FatalSyncError as e:
        _fail(str(e))
    _echo_orphans(orphans)


def prune_cmd(
    confirm: Annotated[bool, typer.Option("--confirm", help="Actually delete the candidates")] = False,
    ):
    """Delete orphan candidates. Without --confirm only lists them."""
    settings = _settings()
    engine = make_engine(settings.db_url)
    init_db(engine)
    with Session(engine) as session:
        report = prune(SQLStore(session), settings, confirm=confirm)
    if report.fatal:
        _fail(report.errors[0].message)
    _echo_orphans(report.orphans)
    if not confirm:
        typer.echo("Nothing deleted; pass --confirm to prune.")
        return
    for entry in report.errors:
        typer.echo(f"  error: {entry.identifier}: {entry.message}")
    typer.echo(f"Prune complete - {report.deleted} deleted, {report.relinked} relinked, {report.skipped} kept")


def add_author_cmd(
    name: Annotated[str, typer.Argument(help="Display name of the author")],
    ):
    """Register a user that articles can be attributed to."""
    settings = _settings()
    engine = make_engine(settings.db_url)
    init_db(engine)
    with Session(engine) as session:
        store = SQLStore(session)
        existing = [u for u in store.find(Collection.users) if u.name.strip().casefold() == name.strip().casefold()]
        if existing:
            typer.echo(f"Author already exists: {existing[0].name} (id {existing[0].id})")
            return
        user = store.create(Collection.users, {"name": name.strip()})
    typer.echo(f"Added author: {user.name} (id {user.id})")
