"""WordPress WXR export parsing into typed source records"""

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import unquote

from pubsync.core.errors import ExportFormatError
from pubsync.core.models import Article, Attachment, CategoryRef
from pubsync.core.utils.identity import normalize_category_title


logger = logging.getLogger(__name__)

WP_NS = "http://wordpress.org/export/"          # versioned: .../1.0/, .../1.1/, .../1.2/
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"

ARTICLE_TYPE = "post"
ATTACHMENT_TYPE = "attachment"
PUBLISHED = "publish"

THUMBNAIL_META = "_thumbnail_id"
ATTACHMENT_META = "_wp_attachment_metadata"

# PHP-serialized metadata; the first width/height pair is the original upload.
_WIDTH_RE = re.compile(r's:5:"width";i:(\d+)')
_HEIGHT_RE = re.compile(r's:6:"height";i:(\d+)')
_FILESIZE_RE = re.compile(r's:8:"filesize";i:(\d+)')

_WP_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ExportSnapshot:
    """Records extracted from one export plus the record-level problems found."""
    records: list = field(default_factory=list)
    dropped: list[tuple[str, str]] = field(default_factory=list)    # (identifier, reason)
    warnings: list[tuple[str, str]] = field(default_factory=list)
    ignored: int = 0                                                # pages, revisions, drafts...

    @property
    def articles(self) -> list[Article]:
        return [r for r in self.records if isinstance(r, Article)]

    @property
    def categories(self) -> list[CategoryRef]:
        return [r for r in self.records if isinstance(r, CategoryRef)]

    @property
    def attachments(self) -> list[Attachment]:
        return [r for r in self.records if isinstance(r, Attachment)]


def _split_tag(tag: str) -> tuple[str, str]:
    """Return (namespace, local_name) for an ElementTree '{ns}name' tag."""
    if tag.startswith('{'):
        ns, _, local = tag[1:].partition('}')
        return ns, local
    return '', tag


def _children(elem: ET.Element, ns: str, name: str) -> list[ET.Element]:
    """Direct children with the given local name whose namespace starts with ns."""
    found = []
    for child in elem:
        child_ns, local = _split_tag(child.tag)
        if local == name and child_ns.startswith(ns):
            found.append(child)
    return found


def _text(elem: ET.Element, ns: str, name: str) -> str:
    """Stripped text of the first matching child, or ''."""
    matches = _children(elem, ns, name)
    if not matches or matches[0].text is None:
        return ''
    return matches[0].text.strip()


def _post_meta(item: ET.Element) -> dict[str, str]:
    meta = {}
    for pm in _children(item, WP_NS, 'postmeta'):
        key = _text(pm, WP_NS, 'meta_key')
        if key and key not in meta:
            meta[key] = _text(pm, WP_NS, 'meta_value')
    return meta


def _parse_wp_date(value: str) -> Optional[datetime]:
    if not value or value.startswith('0000'):
        return None
    try:
        return datetime.strptime(value, _WP_DATE_FORMAT)
    except ValueError:
        return None


def _published_at(item: ET.Element) -> Optional[datetime]:
    """Publish date from post_date_gmt, post_date, then RFC 822 pubDate."""
    for name in ('post_date_gmt', 'post_date'):
        parsed = _parse_wp_date(_text(item, WP_NS, name))
        if parsed is not None:
            return parsed
    pub = _text(item, '', 'pubDate')
    if not pub:
        return None
    try:
        parsed = parsedate_to_datetime(pub)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _metadata_int(pattern: re.Pattern, blob: str) -> Optional[int]:
    m = pattern.search(blob)
    return int(m.group(1)) if m else None


def _category_names(item: ET.Element) -> list[str]:
    """Display names from <category domain="category">, ordered, de-duplicated by key."""
    names: dict[str, str] = {}
    for cat in _children(item, '', 'category'):
        if cat.get('domain') != 'category':
            continue
        name = (cat.text or '').strip()
        key = normalize_category_title(name)
        if key and key not in names:
            names[key] = name
    return list(names.values())


def parse_attachment(item: ET.Element) -> Attachment:
    """Build an Attachment from an item; raises ValueError on missing required fields."""
    external_id = _text(item, WP_NS, 'post_id')
    url = _text(item, WP_NS, 'attachment_url')
    if not external_id:
        raise ValueError("missing post_id")
    if not url:
        raise ValueError("missing attachment_url")
    blob = _post_meta(item).get(ATTACHMENT_META, '')
    return Attachment(
        external_id=external_id,
        source_url=url,
        width=_metadata_int(_WIDTH_RE, blob),
        height=_metadata_int(_HEIGHT_RE, blob),
        file_size_bytes=_metadata_int(_FILESIZE_RE, blob),
    )


def parse_article(item: ET.Element) -> Article:
    """Build an Article from an item; raises ValueError naming the first missing field."""
    external_id = _text(item, WP_NS, 'post_id')
    title = _text(item, '', 'title')
    slug = unquote(_text(item, WP_NS, 'post_name'))
    published_at = _published_at(item)
    for field_name, value in (
        ('post_id', external_id), ('title', title), ('post_name', slug), ('publish date', published_at),
    ):
        if not value:
            raise ValueError(f"missing {field_name}")
    return Article(
        external_id=external_id,
        title=title,
        slug=slug,
        published_at=published_at,
        author_name=_text(item, DC_NS, 'creator') or None,
        body_html=_text(item, CONTENT_NS, 'encoded'),
        category_names=_category_names(item),
        hero_attachment_ref=_post_meta(item).get(THUMBNAIL_META) or None,
    )


def _channel(raw: bytes) -> ET.Element:
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as e:
        raise ExportFormatError(f"Invalid export XML: {e}") from e
    channel = root if _split_tag(root.tag)[1] == 'channel' else root.find('channel')
    if channel is None:
        raise ExportFormatError("Invalid export: no <channel> element")
    return channel


def extract_export(raw: bytes) -> ExportSnapshot:
    """Parse a WXR export. Raises ExportFormatError if the container is unreadable.

    Record-level problems never raise: the record is dropped (or its hero
    reference cleared) and the reason is kept on the snapshot.
    """
    channel = _channel(raw)
    snapshot = ExportSnapshot()
    articles: list[Article] = []
    attachments: dict[str, Attachment] = {}
    seen_ids: set[str] = set()

    for item in _children(channel, '', 'item'):
        post_type = _text(item, WP_NS, 'post_type')
        if post_type not in (ARTICLE_TYPE, ATTACHMENT_TYPE):
            snapshot.ignored += 1
            continue
        if post_type == ARTICLE_TYPE and _text(item, WP_NS, 'status') != PUBLISHED:
            snapshot.ignored += 1
            continue

        label = _text(item, WP_NS, 'post_name') or _text(item, '', 'title') or _text(item, WP_NS, 'post_id') or '?'
        try:
            record = parse_article(item) if post_type == ARTICLE_TYPE else parse_attachment(item)
        except ValueError as e:
            snapshot.dropped.append((label, f"{post_type} dropped: {e}"))
            continue
        if record.external_id in seen_ids:
            snapshot.dropped.append((label, f"duplicate external id {record.external_id}"))
            continue
        seen_ids.add(record.external_id)

        if isinstance(record, Attachment):
            attachments[record.external_id] = record
        else:
            articles.append(record)

    for article in articles:
        ref = article.hero_attachment_ref
        if ref and ref not in attachments:
            snapshot.warnings.append((article.slug, f"hero attachment {ref} not in export"))
            article.hero_attachment_ref = None

    categories: dict[str, CategoryRef] = {}
    declared = [_text(c, WP_NS, 'cat_name') for c in _children(channel, WP_NS, 'category')]
    for name in declared + [n for a in articles for n in a.category_names]:
        key = normalize_category_title(name)
        if not key:
            snapshot.dropped.append((name or '(empty)', "category name normalizes to an empty key"))
            continue
        categories.setdefault(key, CategoryRef(external_name=name.strip()))

    snapshot.records = [*categories.values(), *attachments.values(), *articles]
    logger.info(
        "Extracted %d categories, %d attachments, %d articles (%d dropped, %d ignored)",
        len(categories), len(attachments), len(articles), len(snapshot.dropped), snapshot.ignored,
    )
    return snapshot


def extract(raw: bytes) -> list:
    """Parse a WXR export into SourceRecords (categories, attachments, articles)."""
    return extract_export(raw).records
