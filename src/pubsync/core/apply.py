"""Batch applier: executes a SyncPlan against the live store with per-operation failure isolation"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pubsync.core.errors import DependencyFailed, EntityNotFound, UploadFailed
from pubsync.core.models import Collection
from pubsync.core.plan import Operation, OpKind, SyncPlan, resolve_refs
from pubsync.core.report import SyncReport


logger = logging.getLogger(__name__)

# Failures that will not go away by trying again.
PERMANENT_ERRORS = (DependencyFailed, EntityNotFound, ValueError, TypeError)

MEDIA_FIELDS = ("filename", "url", "width", "height", "file_size_bytes")


@dataclass
class ApplyPolicy:
    """Batching, pacing and retry policy. Keys of delays/retries are op kinds
    ('create', 'update', 'relink') or 'upload' for media downloads + blob puts."""
    batch_size: int = 25
    batch_delay: float = 0.0
    delays: dict[str, float] = field(default_factory=dict)
    retries: dict[str, int] = field(default_factory=dict)    # total attempts; 1 = no retry
    retry_backoff: float = 0.5
    max_workers: int = 1

    @classmethod
    def from_settings(cls, settings) -> "ApplyPolicy":
        return cls(
            batch_size=settings.batch_size,
            batch_delay=settings.batch_delay,
            delays=dict(settings.delays),
            retries=dict(settings.retries),
            retry_backoff=settings.retry_backoff,
            max_workers=settings.max_workers,
        )

    def attempts(self, kind: str) -> int:
        return max(1, self.retries.get(kind, 1))

    def delay_after(self, batch: list[Operation]) -> float:
        delays = [self.delays[op.kind.value] for op in batch if op.kind.value in self.delays]
        return max(delays) if delays else self.batch_delay


def batches(plan: SyncPlan, size: int) -> list[list[Operation]]:
    """Split the mutating operations of every stage into chunks of at most size.

    Skips are left out so they never occupy a batch or trigger a delay.
    Stages are never mixed.
    """
    out = []
    for stage in plan.stages:
        work = [op for op in stage if op.kind is not OpKind.skip]
        for i in range(0, len(work), size):
            out.append(work[i:i + size])
    return out


class BatchApplier:
    def __init__(
        self,
        store,
        uploader=None,
        policy: Optional[ApplyPolicy] = None,
        cancel: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
        ):
        self.store = store
        self.uploader = uploader
        self.policy = policy or ApplyPolicy()
        self.cancel = cancel
        self.sleep = sleep

    def _retrying(self, kind: str) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.policy.attempts(kind)),
            wait=wait_exponential(multiplier=self.policy.retry_backoff, max=30),
            retry=retry_if_not_exception_type(PERMANENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )

    def _create_media(self, payload: dict) -> dict:
        if self.uploader is None:
            raise UploadFailed("no media uploader configured")
        uploaded = self._retrying("upload")(self.uploader.upload, payload["source_url"], payload.get("filename"))
        merged = {**payload, **uploaded}
        return {k: merged.get(k) for k in MEDIA_FIELDS}

    def execute(self, op: Operation, produced: dict[str, str]) -> str:
        """Apply one operation and return the id of the entity it touched."""
        payload = resolve_refs(op.payload, produced)
        if op.kind is OpKind.create:
            if op.collection is Collection.media:
                payload = self._create_media(payload)
            entity = self._retrying("create")(self.store.create, op.collection, payload)
        else:
            entity = self._retrying(op.kind.value)(self.store.update, op.collection, op.live_id, payload)
        logger.debug("Applied %s -> %s", op, entity.id)
        return entity.id

    def _attempt(self, op: Operation, produced: dict[str, str]) -> tuple[Operation, Optional[str], Optional[Exception]]:
        try:
            return op, self.execute(op, produced), None
        except Exception as e:
            return op, None, e

    def _run_batch(self, ops: list[Operation], produced: dict[str, str], pool: Optional[ThreadPoolExecutor]):
        if pool is not None and len(ops) > 1:
            return list(pool.map(lambda op: self._attempt(op, produced), ops))
        return [self._attempt(op, produced) for op in ops]

    def apply(self, plan: SyncPlan, report: Optional[SyncReport] = None) -> SyncReport:
        """Apply every operation of plan; one failure never stops the run."""
        report = report or SyncReport()
        report.orphans.extend(plan.orphans)
        report.ambiguous.extend(plan.ambiguous)
        produced: dict[str, str] = {}
        report.skipped += sum(1 for op in plan if op.kind is OpKind.skip)
        chunks = batches(plan, self.policy.batch_size)
        pool = ThreadPoolExecutor(max_workers=self.policy.max_workers) if self.policy.max_workers > 1 else None

        try:
            for index, batch in enumerate(chunks):
                if self.cancel is not None and self.cancel.is_set():
                    report.cancelled = True
                    logger.warning("Cancelled before batch %d of %d", index + 1, len(chunks))
                    break

                runnable = []
                for op in batch:
                    blocked = [d for d in op.depends_on if d not in produced]
                    if blocked:
                        report.skipped += 1
                        report.error(op.key, f"{op.kind.value} skipped: dependency {', '.join(blocked)} failed")
                        continue
                    runnable.append(op)

                for op, entity_id, exc in self._run_batch(runnable, produced, pool):
                    if exc is not None:
                        report.error(op.key, f"{op.kind.value} {op.collection.value} failed: {exc}")
                        logger.warning("Failed: %s: %s", op, exc)
                        continue
                    produced[op.op_id] = entity_id
                    if op.kind is OpKind.create:
                        report.created += 1
                    elif op.kind is OpKind.update:
                        report.updated += 1
                    else:
                        report.relinked += 1

                delay = self.policy.delay_after(batch)
                if delay > 0 and index < len(chunks) - 1:
                    self.sleep(delay)
        finally:
            if pool is not None:
                pool.shutdown(wait=True)

        logger.info("Applied plan: %s", report.summary())
        return report
