"""SyncReport: the auditable outcome of a sync or prune run"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OrphanReason(str, Enum):
    duplicate = "duplicate"
    unreferenced = "unreferenced"


class OrphanCandidate(BaseModel):
    """A live entity flagged for human review; never deleted by a sync pass."""
    collection: str
    id: str
    label: str
    reason: OrphanReason


class ReportEntry(BaseModel):
    identifier: str
    message: str


class SyncReport(BaseModel):
    created: int = 0
    updated: int = 0
    relinked: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: list[ReportEntry] = []
    warnings: list[ReportEntry] = []
    orphans: list[OrphanCandidate] = []
    ambiguous: list[str] = []
    cancelled: bool = False
    fatal: bool = False
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @classmethod
    def failed(cls, message: str, started_at: Optional[datetime] = None) -> "SyncReport":
        """Report for a run aborted by a fatal error: nothing applied, one top-level error."""
        report = cls(fatal=True, errors=[ReportEntry(identifier="run", message=message)])
        if started_at is not None:
            report.started_at = started_at
        report.finish()
        return report

    def error(self, identifier: str, message: str) -> None:
        self.errors.append(ReportEntry(identifier=identifier, message=message))

    def warn(self, identifier: str, message: str) -> None:
        self.warnings.append(ReportEntry(identifier=identifier, message=message))

    def finish(self) -> "SyncReport":
        self.finished_at = datetime.now()
        return self

    @property
    def applied(self) -> int:
        return self.created + self.updated + self.relinked + self.deleted

    def summary(self) -> str:
        """Single log line with every counter."""
        return (
            f"created={self.created} updated={self.updated} relinked={self.relinked} "
            f"skipped={self.skipped} deleted={self.deleted} errors={len(self.errors)} "
            f"warnings={len(self.warnings)} orphans={len(self.orphans)} "
            f"ambiguous={len(self.ambiguous)}"
            + (" cancelled" if self.cancelled else "")
            + (" FATAL" if self.fatal else "")
        )
