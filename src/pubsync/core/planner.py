"""Plan builder: turns match results into a staged SyncPlan"""

import itertools
import logging
from graphlib import TopologicalSorter
from typing import Optional, Sequence

from pubsync.core.models import Article, Attachment, CategoryRef, Collection, Post
from pubsync.core.plan import MatchResult, Operation, OpKind, Ref, SyncPlan
from pubsync.core.report import OrphanCandidate, OrphanReason
from pubsync.core.snapshot import LiveSnapshot
from pubsync.core.utils.hashing import content_hash
from pubsync.core.utils.identity import normalize_category_title
from pubsync.core.utils.slug import SLUG_MAX_LENGTH, normalize_slug


logger = logging.getLogger(__name__)

COLLECTION_RANK = {Collection.categories: 0, Collection.media: 1, Collection.posts: 2}


def _attachment_quality(a: Attachment) -> tuple[int, int, str]:
    pixels = (a.width or 0) * (a.height or 0)
    return (-pixels, -(a.file_size_bytes or 0), a.external_id)


def category_keys(article: Article) -> list[str]:
    """Non-empty normalized category titles of an article, in export order."""
    keys = (normalize_category_title(n) for n in article.category_names)
    return list(dict.fromkeys(k for k in keys if k))


def stage_operations(operations: Sequence[Operation]) -> list[list[Operation]]:
    """Group operations into stages so every dependency lives in an earlier stage.

    Order inside a stage is categories, media, posts, then by key.
    """
    by_id = {op.op_id: op for op in operations}
    sorter = TopologicalSorter({op.op_id: [d for d in op.depends_on if d in by_id] for op in operations})
    sorter.prepare()
    stages = []
    while sorter.is_active():
        ready = [by_id[i] for i in sorter.get_ready()]
        ready.sort(key=lambda op: (COLLECTION_RANK[op.collection], op.key, op.op_id))
        stages.append(ready)
        sorter.done(*(op.op_id for op in ready))
    return stages


class PlanBuilder:
    def __init__(
        self,
        snapshot: LiveSnapshot,
        *,
        default_author: Optional[str] = None,
        upload_unreferenced: bool = False,
        slug_max_length: int = SLUG_MAX_LENGTH,
        ):
        self.snapshot = snapshot
        self.default_author = default_author
        self.upload_unreferenced = upload_unreferenced
        self.slug_max_length = slug_max_length
        self.operations: list[Operation] = []
        self.orphans: dict[str, OrphanCandidate] = {}
        self.ambiguous: list[str] = []
        self.category_refs: dict[str, Ref] = {}
        self.media_refs: dict[str, Ref] = {}       # attachment external id -> ref
        self._seq = itertools.count(1)
        self._users = {u.name.strip().casefold(): u.id for u in snapshot.users}

    def _add(self, kind: OpKind, collection: Collection, key: str, **kwargs) -> Operation:
        op = Operation(f"{collection.value}/{next(self._seq)}", kind, collection, key, **kwargs)
        self.operations.append(op)
        return op

    def build(self, results: Sequence[MatchResult]) -> SyncPlan:
        categories = [r for r in results if isinstance(r.record, CategoryRef)]
        attachments = [r for r in results if isinstance(r.record, Attachment)]
        articles = [r for r in results if isinstance(r.record, Article)]

        for result in categories:
            self._plan_category(result)
        heroes = {r.record.hero_attachment_ref for r in articles if r.record.hero_attachment_ref}
        self._plan_attachments(attachments, heroes)
        seen: set[str] = set()
        for result in articles:
            self._plan_article(result, seen)

        plan = SyncPlan(
            stages=stage_operations(self.operations),
            orphans=sorted(self.orphans.values(), key=lambda o: (o.collection, o.label, o.id)),
            ambiguous=self.ambiguous,
        )
        logger.info("Planned %d operations in %d stages: %s", len(plan), len(plan.stages), plan.counts())
        return plan

    # --- categories ---

    def _plan_category(self, result: MatchResult) -> None:
        name = result.record.external_name
        if not result.key:
            self._add(OpKind.skip, Collection.categories, name or "(empty)", reason="empty category key")
            return
        if result.key in self.category_refs:
            self._add(OpKind.skip, Collection.categories, name, reason="duplicate category in export")
            return
        if result.matched:
            self.category_refs[result.key] = Ref(live_id=result.live_id)
            self._add(
                OpKind.skip, Collection.categories, name,
                live_id=result.live_id, reason=result.rationale or "exists",
            )
            return
        op = self._add(
            OpKind.create, Collection.categories, name,
            payload={"title": name, "slug": normalize_slug(name, self.slug_max_length), "parent": None},
        )
        self.category_refs[result.key] = Ref(op_id=op.op_id)

    # --- media ---

    def _flag_duplicates(self, result: MatchResult) -> None:
        by_id = {m.id: m for m in self.snapshot.media}
        for media_id in result.duplicates:
            if media_id not in self.orphans:
                self.orphans[media_id] = OrphanCandidate(
                    collection=Collection.media.value,
                    id=media_id,
                    label=by_id[media_id].filename if media_id in by_id else media_id,
                    reason=OrphanReason.duplicate,
                )

    def _plan_attachments(self, results: Sequence[MatchResult], heroes: set[str]) -> None:
        pending: dict[str, list[Attachment]] = {}
        for result in results:
            att = result.record
            if result.matched:
                self.media_refs[att.external_id] = Ref(live_id=result.live_id)
                self._flag_duplicates(result)
                if result.ambiguous:
                    self.ambiguous.append(att.filename)
                self._add(
                    OpKind.skip, Collection.media, att.filename,
                    live_id=result.live_id, reason=result.rationale or "exists",
                )
            elif att.external_id in heroes or self.upload_unreferenced:
                pending.setdefault(result.key, []).append(att)
            else:
                self._add(OpKind.skip, Collection.media, att.filename, reason="unreferenced attachment")

        # One upload per logical image; same-key variants in the export share it.
        for key, group in pending.items():
            best = min(group, key=_attachment_quality)
            op = self._add(
                OpKind.create, Collection.media, best.filename,
                payload={
                    "source_url": best.source_url,
                    "filename": best.filename,
                    "width": best.width,
                    "height": best.height,
                    "file_size_bytes": best.file_size_bytes,
                },
            )
            for att in group:
                self.media_refs[att.external_id] = Ref(op_id=op.op_id)

    # --- articles ---

    def _authors(self, article: Article) -> list[str]:
        for name in (article.author_name, self.default_author):
            if name and name.strip().casefold() in self._users:
                return [self._users[name.strip().casefold()]]
        return []

    def _plan_article(self, result: MatchResult, seen: set[str]) -> None:
        article = result.record
        key = result.key
        if not key:
            self._add(OpKind.skip, Collection.posts, article.slug or article.external_id, reason="slug normalizes to empty")
            return
        if key in seen:
            self._add(OpKind.skip, Collection.posts, key, reason="duplicate slug in export")
            return
        seen.add(key)

        keys = category_keys(article)
        cat_refs = [self.category_refs[k] for k in keys if k in self.category_refs]
        hero = self.media_refs.get(article.hero_attachment_ref) if article.hero_attachment_ref else None
        pending = tuple(dict.fromkeys(r.op_id for r in [*cat_refs, hero] if r is not None and r.op_id))

        if not result.matched:
            self._add(
                OpKind.create, Collection.posts, key,
                payload={
                    "title": article.title,
                    "slug": key,
                    "body_html": article.body_html,
                    "published_at": article.published_at,
                    "categories": cat_refs,
                    "hero_image": hero,
                    "authors": self._authors(article),
                },
                depends_on=pending,
            )
            return

        post: Post = self.snapshot.post_by_id[result.live_id]
        changed = (
            content_hash(article.title, article.body_html, keys)
            != content_hash(post.title, post.body_html, self.snapshot.category_keys(post))
        )
        slug_fix = post.slug != key
        relink = hero is not None and (hero.op_id is not None or hero.live_id != post.hero_image)

        if changed or slug_fix:
            payload = {
                "title": article.title,
                "slug": key,
                "body_html": article.body_html,
                "published_at": article.published_at,
                "categories": cat_refs,
            }
            if relink:
                payload["hero_image"] = hero
            reason = "content changed" if changed else result.rationale
            self._add(
                OpKind.update, Collection.posts, key,
                live_id=post.id, payload=payload, depends_on=pending, reason=reason,
            )
        elif relink:
            self._add(
                OpKind.relink, Collection.posts, key,
                live_id=post.id, payload={"hero_image": hero},
                depends_on=(hero.op_id,) if hero.op_id else (), reason="hero image",
            )
        else:
            self._add(OpKind.skip, Collection.posts, key, live_id=post.id, reason="unchanged")


def build_plan(
    results: Sequence[MatchResult],
    snapshot: LiveSnapshot,
    *,
    default_author: Optional[str] = None,
    upload_unreferenced: bool = False,
    slug_max_length: int = SLUG_MAX_LENGTH,
    ) -> SyncPlan:
    """Convert match results into an ordered, staged SyncPlan."""
    return PlanBuilder(
        snapshot,
        default_author=default_author,
        upload_unreferenced=upload_unreferenced,
        slug_max_length=slug_max_length,
    ).build(results)
