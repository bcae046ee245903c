"""Identity resolution of source records against a live snapshot.

Matching is read-only: records can be matched in any order, or concurrently,
and always produce the same results.
"""

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Sequence

from pubsync.core.models import Article, Attachment, CategoryRef, MediaAsset
from pubsync.core.plan import MatchOutcome, MatchResult
from pubsync.core.snapshot import LiveSnapshot
from pubsync.core.utils.identity import normalize_category_title, normalize_media_basename
from pubsync.core.utils.slug import SLUG_MAX_LENGTH, normalize_slug


logger = logging.getLogger(__name__)


def quality_key(asset: MediaAsset) -> tuple[int, int, str]:
    """Sort key: most pixels, then largest file, then smallest id."""
    return (-(asset.pixels or 0), -(asset.file_size_bytes or 0), asset.id)


def rank_media(assets: Iterable[MediaAsset]) -> list[MediaAsset]:
    """Candidates best-first by the quality tie-break. Independent of input order."""
    return sorted(assets, key=quality_key)


def decided_by_id(ranked: Sequence[MediaAsset]) -> bool:
    """True if the top two candidates carry identical quality signals."""
    return len(ranked) > 1 and quality_key(ranked[0])[:2] == quality_key(ranked[1])[:2]


@dataclass(frozen=True)
class DuplicateGroup:
    key: str
    keep: MediaAsset
    duplicates: tuple[MediaAsset, ...]
    ambiguous: bool


def group_media(assets: Iterable[MediaAsset]) -> dict[str, list[MediaAsset]]:
    groups: dict[str, list[MediaAsset]] = defaultdict(list)
    for asset in assets:
        groups[normalize_media_basename(asset.filename)].append(asset)
    return groups


def find_duplicate_media(assets: Iterable[MediaAsset]) -> list[DuplicateGroup]:
    """Every basename key shared by more than one live asset, with the asset to keep.

    Assets whose filename yields no key are never grouped.
    """
    found = []
    for key, group in sorted(group_media(assets).items()):
        if not key or len(group) < 2:
            continue
        ranked = rank_media(group)
        found.append(DuplicateGroup(key, ranked[0], tuple(ranked[1:]), decided_by_id(ranked)))
    return found


class Matcher:
    """Builds the identity indexes of a snapshot once and matches records against them."""

    def __init__(self, snapshot: LiveSnapshot, slug_max_length: int = SLUG_MAX_LENGTH):
        self.snapshot = snapshot
        self.slug_max_length = slug_max_length
        self._posts_by_slug = {p.slug: p for p in snapshot.posts}
        self._posts_by_key = defaultdict(list)
        for post in snapshot.posts:
            self._posts_by_key[normalize_slug(post.slug, slug_max_length)].append(post)
        self._categories_by_key = defaultdict(list)
        for cat in snapshot.categories:
            self._categories_by_key[normalize_category_title(cat.title)].append(cat)
        self._media_by_key = group_media(snapshot.media)

    def match(self, record) -> MatchResult:
        if isinstance(record, Article):
            return self._match_article(record)
        if isinstance(record, CategoryRef):
            return self._match_category(record)
        if isinstance(record, Attachment):
            return self._match_attachment(record)
        raise TypeError(f"Unsupported source record: {type(record).__name__}")

    def _match_article(self, article: Article) -> MatchResult:
        key = normalize_slug(article.slug, self.slug_max_length)
        post = self._posts_by_slug.get(key)
        if post is not None:
            return MatchResult(article, key, MatchOutcome.exact, post.id)
        candidates = sorted(self._posts_by_key.get(key, []), key=lambda p: p.id) if key else []
        if candidates:
            post = candidates[0]
            return MatchResult(
                article, key, MatchOutcome.fuzzy, post.id,
                rationale=f"live slug '{post.slug}' normalizes to '{key}'",
            )
        return MatchResult(article, key, MatchOutcome.none)

    def _match_category(self, ref: CategoryRef) -> MatchResult:
        key = normalize_category_title(ref.external_name)
        candidates = sorted(self._categories_by_key.get(key, []), key=lambda c: c.id) if key else []
        if len(candidates) == 1:
            return MatchResult(ref, key, MatchOutcome.exact, candidates[0].id)
        if candidates:
            return MatchResult(
                ref, key, MatchOutcome.fuzzy, candidates[0].id,
                rationale=f"{len(candidates)} categories share this title; kept smallest id",
            )
        return MatchResult(ref, key, MatchOutcome.none)

    def _match_attachment(self, attachment: Attachment) -> MatchResult:
        key = normalize_media_basename(attachment.filename)
        ranked = rank_media(self._media_by_key.get(key, [])) if key else []
        if not ranked:
            return MatchResult(attachment, key, MatchOutcome.none)
        ambiguous = decided_by_id(ranked)
        rationale = None
        if len(ranked) > 1:
            rationale = f"kept best of {len(ranked)} same-key assets"
            if ambiguous:
                rationale += " (no quality signal, smallest id wins)"
        return MatchResult(
            attachment, key, MatchOutcome.exact, ranked[0].id,
            rationale=rationale,
            duplicates=tuple(a.id for a in ranked[1:]),
            ambiguous=ambiguous,
        )


def match_records(
    records: Sequence,
    snapshot: LiveSnapshot,
    *,
    workers: int = 1,
    slug_max_length: int = SLUG_MAX_LENGTH,
    ) -> list[MatchResult]:
    """Match every record; results are in record order regardless of workers."""
    matcher = Matcher(snapshot, slug_max_length)
    if workers > 1 and len(records) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(matcher.match, records))
    else:
        results = [matcher.match(r) for r in records]
    counts = defaultdict(int)
    for r in results:
        counts[r.outcome.value] += 1
    logger.info("Matched %d records: %s", len(results), dict(counts))
    return results
