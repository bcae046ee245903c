"""Sync orchestration: extract -> match -> plan -> apply -> orphan scan"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from pubsync.config import Settings
from pubsync.core.apply import ApplyPolicy, BatchApplier
from pubsync.core.errors import FatalSyncError, StoreUnavailable
from pubsync.core.extract import ExportSnapshot, extract_export
from pubsync.core.match import match_records
from pubsync.core.orphans import duplicate_candidates, prune_orphans, resolve_orphans
from pubsync.core.plan import SyncPlan
from pubsync.core.planner import build_plan
from pubsync.core.report import OrphanCandidate, SyncReport
from pubsync.core.snapshot import LiveSnapshot


logger = logging.getLogger(__name__)


def build_sync_plan(raw_export: bytes, store, settings: Settings) -> tuple[ExportSnapshot, SyncPlan]:
    """Extract, snapshot and match; returns the export and the plan without mutating anything.

    Raises ExportFormatError or StoreUnavailable.
    """
    export = extract_export(raw_export)
    live = LiveSnapshot.fetch(store)
    results = match_records(
        export.records, live, workers=settings.match_workers, slug_max_length=settings.slug_max_length,
    )
    plan = build_plan(
        results, live,
        default_author=settings.default_author,
        upload_unreferenced=settings.upload_unreferenced,
        slug_max_length=settings.slug_max_length,
    )
    return export, plan


def record_export_issues(export: ExportSnapshot, report: SyncReport) -> None:
    """Dropped records count as skipped; every drop and warning is listed."""
    for identifier, reason in export.dropped:
        report.skipped += 1
        report.warn(identifier, reason)
    for identifier, message in export.warnings:
        report.warn(identifier, message)


def find_orphans(store, settings: Settings, duplicates=None) -> list[OrphanCandidate]:
    """Orphan candidates of the current live state. Raises StoreUnavailable."""
    live = LiveSnapshot.fetch(store)
    return resolve_orphans(
        live,
        protected=settings.protected_categories,
        flag_media=settings.flag_unreferenced_media,
        duplicates=duplicate_candidates(live) if duplicates is None else duplicates,
    )


def run_sync(
    raw_export: bytes,
    store,
    uploader,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    on_complete: Optional[Callable[[SyncReport], None]] = None,
    ) -> SyncReport:
    """Run one full reconciliation pass and return its report.

    Fatal errors (unreadable export, unreachable store) produce a report with
    nothing applied and a single top-level error instead of raising.
    """
    settings = settings or Settings()
    started = datetime.now()
    try:
        export, plan = build_sync_plan(raw_export, store, settings)
    except FatalSyncError as e:
        logger.error("Sync aborted: %s", e)
        report = SyncReport.failed(str(e), started_at=started)
    else:
        report = SyncReport(started_at=started)
        record_export_issues(export, report)
        applier = BatchApplier(store, uploader, ApplyPolicy.from_settings(settings), cancel=cancel)
        report = applier.apply(plan, report)
        # Rescan after apply; duplicates flagged by the plan are re-derived from live state.
        try:
            report.orphans = find_orphans(store, settings)
        except StoreUnavailable as e:
            report.warn("orphans", f"orphan scan skipped: {e}")
        report.finish()

    logger.info("Sync finished: %s", report.summary())
    if on_complete is not None:
        on_complete(report)
    return report


def prune(store, settings: Settings, *, confirm: bool = False) -> SyncReport:
    """Resolve orphans of the live store and prune them (only with confirm)."""
    try:
        candidates = find_orphans(store, settings)
    except StoreUnavailable as e:
        logger.error("Prune aborted: %s", e)
        return SyncReport.failed(str(e))
    return prune_orphans(store, candidates, confirm=confirm, protected=settings.protected_categories)
