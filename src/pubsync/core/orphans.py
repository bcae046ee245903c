"""Orphan resolver: reachability over the category tree, media references, confirmed prune"""

import logging
from collections import defaultdict
from typing import Iterable, Mapping, Optional, Sequence

from pubsync.core.match import find_duplicate_media
from pubsync.core.models import Collection
from pubsync.core.report import OrphanCandidate, OrphanReason, SyncReport
from pubsync.core.snapshot import LiveSnapshot
from pubsync.core.utils.identity import normalize_category_title


logger = logging.getLogger(__name__)


def _strongly_connected(nodes: Sequence[str], edges: Mapping[str, Sequence[str]]) -> list[list[str]]:
    """Tarjan's algorithm, iterative. Components come out children-first."""
    index: dict[str, int] = {}
    low: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[list[str]] = []

    for root in nodes:
        if root in index:
            continue
        index[root] = low[root] = len(index)
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(edges.get(root, ())))]
        while work:
            node, successors = work[-1]
            for nxt in successors:
                if nxt not in index:
                    index[nxt] = low[nxt] = len(index)
                    stack.append(nxt)
                    on_stack.add(nxt)
                    work.append((nxt, iter(edges.get(nxt, ()))))
                    break
                if nxt in on_stack:
                    low[node] = min(low[node], index[nxt])
            else:
                work.pop()
                if work:
                    caller = work[-1][0]
                    low[caller] = min(low[caller], low[node])
                if low[node] == index[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    components.append(sorted(component))
    return components


def unreachable_categories(parents: Mapping[str, Optional[str]], referenced: Iterable[str]) -> set[str]:
    """Ids of categories with no post on themselves or on any descendant.

    parents maps category id -> parent id. Categories on a parent cycle share
    one verdict: reachable if a post references any of them or any child
    outside the cycle is reachable. Cycles are logged.
    """
    referenced = set(referenced)
    children: dict[str, list[str]] = defaultdict(list)
    for cat_id, parent in parents.items():
        if parent is not None and parent in parents:
            children[parent].append(cat_id)
    for kids in children.values():
        kids.sort()

    component_of: dict[str, int] = {}
    reachable: list[bool] = []
    for n, component in enumerate(_strongly_connected(sorted(parents), children)):
        for member in component:
            component_of[member] = n
        if len(component) > 1 or parents[component[0]] == component[0]:
            logger.warning("Category hierarchy cycle through %s", ", ".join(component))
        reachable.append(
            any(member in referenced for member in component)
            or any(
                component_of[child] != n and reachable[component_of[child]]
                for member in component
                for child in children[member]
            )
        )
    return {cat_id for cat_id in parents if not reachable[component_of[cat_id]]}


def duplicate_candidates(snapshot: LiveSnapshot) -> list[OrphanCandidate]:
    """Every live media asset that loses the quality tie-break to a same-key asset."""
    return [
        OrphanCandidate(collection=Collection.media.value, id=a.id, label=a.filename, reason=OrphanReason.duplicate)
        for group in find_duplicate_media(snapshot.media)
        for a in group.duplicates
    ]


def resolve_orphans(
    snapshot: LiveSnapshot,
    *,
    protected: Sequence[str] = (),
    flag_media: bool = True,
    duplicates: Sequence[OrphanCandidate] = (),
    ) -> list[OrphanCandidate]:
    """Unreachable categories and unreferenced media, merged with duplicate candidates."""
    keep = {normalize_category_title(t) for t in protected}
    parents = {c.id: c.parent for c in snapshot.categories}
    referenced = {c for p in snapshot.posts for c in p.categories}

    found: dict[tuple[str, str], OrphanCandidate] = {}
    for cat_id in unreachable_categories(parents, referenced):
        cat = snapshot.category_by_id[cat_id]
        if normalize_category_title(cat.title) in keep:
            continue
        found[(Collection.categories.value, cat_id)] = OrphanCandidate(
            collection=Collection.categories.value, id=cat_id, label=cat.title, reason=OrphanReason.unreferenced,
        )

    if flag_media:
        heroes = {p.hero_image for p in snapshot.posts if p.hero_image}
        for asset in snapshot.media:
            if asset.id not in heroes:
                found[(Collection.media.value, asset.id)] = OrphanCandidate(
                    collection=Collection.media.value, id=asset.id, label=asset.filename,
                    reason=OrphanReason.unreferenced,
                )

    # A duplicate stays a duplicate even if nothing references it.
    for dup in duplicates:
        found[(dup.collection, dup.id)] = dup

    orphans = sorted(found.values(), key=lambda o: (o.collection, o.label, o.id))
    logger.info("Found %d orphan candidates", len(orphans))
    return orphans


# --- prune ---

def _depth(cat_id: str, parents: Mapping[str, Optional[str]]) -> int:
    depth, seen = 0, {cat_id}
    parent = parents.get(cat_id)
    while parent is not None and parent not in seen:
        seen.add(parent)
        depth += 1
        parent = parents.get(parent)
    return depth


def _prune_order(candidates: Sequence[OrphanCandidate], parents: Mapping[str, Optional[str]]) -> list[OrphanCandidate]:
    """Media first, then categories deepest-first so children go before their parents."""
    media = [c for c in candidates if c.collection == Collection.media.value]
    cats = [c for c in candidates if c.collection == Collection.categories.value]
    cats.sort(key=lambda c: (-_depth(c.id, parents), c.id))
    return media + cats


def _prune_duplicate(store, candidate: OrphanCandidate, report: SyncReport) -> bool:
    """Re-point posts from a losing duplicate to the kept asset, then delete it."""
    current = LiveSnapshot(media=tuple(store.find(Collection.media)))
    keeper = next(
        (g.keep for g in find_duplicate_media(current.media) if any(d.id == candidate.id for d in g.duplicates)),
        None,
    )
    if keeper is None:
        return False
    for post in store.find(Collection.posts, {"hero_image": candidate.id}):
        store.update(Collection.posts, post.id, {"hero_image": keeper.id})
        report.relinked += 1
        logger.info("Relinked post %s hero %s -> %s", post.slug, candidate.id, keeper.id)
    store.delete(Collection.media, candidate.id)
    return True


def _still_orphaned(store, candidate: OrphanCandidate, protected: set[str]) -> bool:
    if candidate.collection == Collection.media.value:
        return (
            bool(store.find(Collection.media, {"id": candidate.id}))
            and not store.find(Collection.posts, {"hero_image": candidate.id})
        )
    cats = store.find(Collection.categories)
    current = {c.id: c for c in cats}
    if candidate.id not in current or normalize_category_title(current[candidate.id].title) in protected:
        return False
    referenced = {c for p in store.find(Collection.posts) for c in p.categories}
    return candidate.id in unreachable_categories({c.id: c.parent for c in cats}, referenced)


def prune_orphans(
    store,
    candidates: Sequence[OrphanCandidate],
    *,
    confirm: bool = False,
    protected: Sequence[str] = (),
    ) -> SyncReport:
    """Delete orphan candidates, but only with confirm=True.

    Each candidate is re-verified against the live store right before its
    delete; one that is no longer an orphan is skipped with a warning.
    """
    report = SyncReport(orphans=list(candidates))
    if not confirm:
        logger.info("Prune not confirmed; %d candidates listed, nothing deleted", len(candidates))
        return report.finish()

    keep = {normalize_category_title(t) for t in protected}
    parents = {c.id: c.parent for c in store.find(Collection.categories)}
    for candidate in _prune_order(candidates, parents):
        label = f"{candidate.collection}/{candidate.label}"
        try:
            if candidate.reason is OrphanReason.duplicate:
                deleted = _prune_duplicate(store, candidate, report)
            elif _still_orphaned(store, candidate, keep):
                store.delete(Collection(candidate.collection), candidate.id)
                deleted = True
            else:
                deleted = False
        except Exception as e:
            report.error(label, f"delete failed: {e}")
            logger.warning("Failed to delete %s: %s", label, e)
            continue
        if deleted:
            report.deleted += 1
            logger.info("Deleted %s (%s)", label, candidate.reason.value)
        else:
            report.skipped += 1
            report.warn(label, "no longer an orphan; kept")

    logger.info("Prune finished: %s", report.summary())
    return report.finish()
