"""Match results and sync-plan types passed between matcher, planner and applier.

A plan is a list of stages. Every operation in a stage depends only on
operations of earlier stages, so a stage can be split into batches and each
batch applied in any order or in parallel.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from pubsync.core.errors import DependencyFailed
from pubsync.core.models import Collection
from pubsync.core.report import OrphanCandidate


class MatchOutcome(str, Enum):
    exact = "exact"
    fuzzy = "fuzzy"
    none = "none"


@dataclass
class MatchResult:
    """Identity resolution of one source record against the live snapshot."""
    record: Any                         # Article | CategoryRef | Attachment
    key: str
    outcome: MatchOutcome
    live_id: Optional[str] = None
    rationale: Optional[str] = None
    duplicates: tuple[str, ...] = ()    # same-key media ids that lost the tie-break
    ambiguous: bool = False             # tie-break had no quality signal

    @property
    def matched(self) -> bool:
        return self.outcome is not MatchOutcome.none


class OpKind(str, Enum):
    create = "create"
    update = "update"
    relink = "relink"
    skip = "skip"


@dataclass(frozen=True)
class Ref:
    """Reference to a live entity, or to the create operation that will produce it."""
    live_id: Optional[str] = None
    op_id: Optional[str] = None

    def resolve(self, produced: dict[str, str]) -> str:
        if self.live_id is not None:
            return self.live_id
        if self.op_id in produced:
            return produced[self.op_id]
        raise DependencyFailed(f"operation {self.op_id} produced no id")


def resolve_refs(payload: dict, produced: dict[str, str]) -> dict:
    """Return a copy of payload with every Ref (or list of Refs) replaced by a live id."""
    out = {}
    for name, value in payload.items():
        if isinstance(value, Ref):
            out[name] = value.resolve(produced)
        elif isinstance(value, list) and any(isinstance(v, Ref) for v in value):
            out[name] = [v.resolve(produced) if isinstance(v, Ref) else v for v in value]
        else:
            out[name] = value
    return out


@dataclass
class Operation:
    op_id: str
    kind: OpKind
    collection: Collection
    key: str                                # slug / title / filename, used in reports
    live_id: Optional[str] = None
    payload: dict = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    reason: Optional[str] = None

    def __str__(self) -> str:
        target = f" #{self.live_id}" if self.live_id else ""
        why = f" ({self.reason})" if self.reason else ""
        return f"{self.kind.value} {self.collection.value}{target} {self.key}{why}"


@dataclass
class SyncPlan:
    stages: list[list[Operation]] = field(default_factory=list)
    orphans: list[OrphanCandidate] = field(default_factory=list)
    ambiguous: list[str] = field(default_factory=list)

    @property
    def operations(self) -> list[Operation]:
        return [op for stage in self.stages for op in stage]

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return sum(len(s) for s in self.stages)

    def counts(self) -> dict[str, int]:
        """Number of operations per kind, every kind present."""
        counts = {kind.value: 0 for kind in OpKind}
        for op in self:
            counts[op.kind.value] += 1
        return counts

    @property
    def is_fixed_point(self) -> bool:
        """True when applying the plan would change nothing."""
        return all(op.kind is OpKind.skip for op in self)
