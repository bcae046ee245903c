"""Blob storage and source-download collaborators used when creating media"""

import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from pubsync.core.errors import UploadFailed
from pubsync.core.utils.hashing import sha256_bytes
from pubsync.core.utils.identity import media_filename


logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class BlobRef:
    id: str
    url: str


@dataclass(frozen=True)
class Download:
    data: bytes
    content_type: str


class BlobStore(ABC):
    """Black-box "blob put"."""

    @abstractmethod
    def upload(self, data: bytes, content_type: str, suggested_name: str) -> BlobRef:
        raise NotImplementedError


class SourceFetcher(ABC):
    @abstractmethod
    def fetch(self, url: str) -> Download:
        """Return the bytes behind url. Raises UploadFailed."""
        raise NotImplementedError


def _blob_id(data: bytes, name: str) -> str:
    return f"{sha256_bytes(data)[:16]}-{name}"


@dataclass
class MemoryBlobStore(BlobStore):
    blobs: dict[str, tuple[bytes, str]] = field(default_factory=dict)
    base_url: str = "memory://blobs"

    def upload(self, data: bytes, content_type: str, suggested_name: str) -> BlobRef:
        blob_id = _blob_id(data, suggested_name)
        self.blobs[blob_id] = (data, content_type)
        return BlobRef(id=blob_id, url=f"{self.base_url}/{suggested_name}")


@dataclass
class LocalBlobStore(BlobStore):
    """Writes blobs under root; the public URL is base_url + file name."""
    root: Path
    base_url: str = "/media"

    def upload(self, data: bytes, content_type: str, suggested_name: str) -> BlobRef:
        self.root.mkdir(parents=True, exist_ok=True)
        name = media_filename(suggested_name) or _blob_id(data, "blob")
        target = self.root / name
        if target.exists() and target.read_bytes() != data:
            name = _blob_id(data, name)
            target = self.root / name
        try:
            target.write_bytes(data)
        except OSError as e:
            raise UploadFailed(f"Could not write {target}: {e}") from e
        return BlobRef(id=name, url=f"{self.base_url.rstrip('/')}/{name}")


class HttpFetcher(SourceFetcher):
    """Downloads attachment bytes from their original URL."""

    def __init__(self, client: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def fetch(self, url: str) -> Download:
        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UploadFailed(f"Download failed for {url}: {e}") from e
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return Download(data=response.content, content_type=content_type or guess_content_type(url))

    def close(self) -> None:
        self.client.close()


def guess_content_type(name: str) -> str:
    return mimetypes.guess_type(media_filename(name))[0] or DEFAULT_CONTENT_TYPE


class MediaUploader:
    """Fetch the source bytes of an attachment and put them in blob storage.

    Returns the media payload (filename, url, size) the store should record.
    """

    def __init__(self, fetcher: SourceFetcher, blobs: BlobStore):
        self.fetcher = fetcher
        self.blobs = blobs

    def upload(self, source_url: str, filename: Optional[str] = None) -> dict:
        name = filename or media_filename(source_url)
        download = self.fetcher.fetch(source_url)
        if not download.data:
            raise UploadFailed(f"Empty download for {source_url}")
        try:
            ref = self.blobs.upload(download.data, download.content_type, name)
        except UploadFailed:
            raise
        except Exception as e:
            raise UploadFailed(f"Blob upload failed for {name}: {e}") from e
        logger.debug("Uploaded %s (%d bytes) as %s", name, len(download.data), ref.id)
        return {"filename": name, "url": ref.url, "file_size_bytes": len(download.data)}
