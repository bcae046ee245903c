"""Shared fixtures for core unit tests"""

from typing import Optional
from xml.sax.saxutils import escape

import pytest

from pubsync.config import Settings
from pubsync.core.errors import UploadFailed
from pubsync.crud.blobs import Download, MediaUploader, MemoryBlobStore, SourceFetcher
from pubsync.crud.memory_repo import MemoryStore


HEADER = """\
<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
    xmlns:excerpt="http://wordpress.org/export/1.2/excerpt/"
    xmlns:content="http://purl.org/rss/1.0/modules/content/"
    xmlns:dc="http://purl.org/dc/elements/1.1/"
    xmlns:wp="http://wordpress.org/export/1.2/">
<channel>
<title>Blog</title>
<wp:wxr_version>1.2</wp:wxr_version>
"""

FOOTER = "</channel>\n</rss>\n"


def _meta(key: str, value: str) -> str:
    return (
        f"<wp:postmeta><wp:meta_key>{key}</wp:meta_key>"
        f"<wp:meta_value><![CDATA[{value}]]></wp:meta_value></wp:postmeta>"
    )


class WxrBuilder:
    """Builds a small WXR export in the shape WordPress writes it."""

    def __init__(self):
        self.categories: list[str] = []
        self.items: list[str] = []

    def category(self, name: str) -> "WxrBuilder":
        self.categories.append(
            f"<wp:category><wp:term_id>{len(self.categories) + 1}</wp:term_id>"
            f"<wp:cat_name><![CDATA[{name}]]></wp:cat_name></wp:category>"
        )
        return self

    def post(
        self,
        post_id: str,
        title: str,
        slug: str,
        *,
        categories=(),
        tags=(),
        thumbnail: Optional[str] = None,
        body: str = "<p>Body</p>",
        creator: str = "admin",
        status: str = "publish",
        post_type: str = "post",
        date: Optional[str] = "2020-05-01 10:00:00",
        pub_date: Optional[str] = None,
        ) -> "WxrBuilder":
        parts = [
            "<item>",
            f"<title>{escape(title)}</title>",
            f"<dc:creator><![CDATA[{creator}]]></dc:creator>",
            f"<content:encoded><![CDATA[{body}]]></content:encoded>",
            "<excerpt:encoded><![CDATA[]]></excerpt:encoded>",
            f"<wp:post_id>{post_id}</wp:post_id>",
            f"<wp:post_name>{slug}</wp:post_name>",
            f"<wp:status>{status}</wp:status>",
            f"<wp:post_type>{post_type}</wp:post_type>",
        ]
        if date:
            parts += [f"<wp:post_date>{date}</wp:post_date>", f"<wp:post_date_gmt>{date}</wp:post_date_gmt>"]
        if pub_date:
            parts.append(f"<pubDate>{pub_date}</pubDate>")
        parts += [f'<category domain="category"><![CDATA[{c}]]></category>' for c in categories]
        parts += [f'<category domain="post_tag"><![CDATA[{t}]]></category>' for t in tags]
        if thumbnail:
            parts.append(_meta("_thumbnail_id", thumbnail))
        parts.append("</item>")
        self.items.append("\n".join(parts))
        return self

    def attachment(
        self,
        post_id: str,
        url: str,
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        filesize: Optional[int] = None,
        ) -> "WxrBuilder":
        fields = []
        if width is not None:
            fields.append(f's:5:"width";i:{width};')
        if height is not None:
            fields.append(f's:6:"height";i:{height};')
        if filesize is not None:
            fields.append(f's:8:"filesize";i:{filesize};')
        blob = f"a:{len(fields)}:{{{''.join(fields)}}}"
        self.items.append("\n".join([
            "<item>",
            f"<title>{post_id}</title>",
            f"<wp:post_id>{post_id}</wp:post_id>",
            "<wp:status>inherit</wp:status>",
            "<wp:post_type>attachment</wp:post_type>",
            f"<wp:attachment_url>{url}</wp:attachment_url>",
            _meta("_wp_attachment_metadata", blob),
            "</item>",
        ]))
        return self

    def build(self) -> bytes:
        return (HEADER + "\n".join(self.categories + self.items) + FOOTER).encode("utf-8")


class StaticFetcher(SourceFetcher):
    """Serves fake image bytes for any URL; URLs in fail raise UploadFailed."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls: list[str] = []

    def fetch(self, url: str) -> Download:
        self.calls.append(url)
        if url in self.fail:
            raise UploadFailed(f"Download failed for {url}: 404")
        return Download(data=f"bytes of {url}".encode(), content_type="image/jpeg")


@pytest.fixture(name="builder")
def builder_fixture():
    return WxrBuilder()


@pytest.fixture(name="store")
def store_fixture():
    return MemoryStore()


@pytest.fixture(name="fetcher")
def fetcher_fixture():
    return StaticFetcher()


@pytest.fixture(name="blobs")
def blobs_fixture():
    return MemoryBlobStore()


@pytest.fixture(name="uploader")
def uploader_fixture(fetcher, blobs):
    return MediaUploader(fetcher, blobs)


@pytest.fixture(name="settings")
def settings_fixture():
    """Settings with no retries and no pacing so tests never sleep."""
    return Settings(retries={}, batch_delay=0.0, batch_size=10)
