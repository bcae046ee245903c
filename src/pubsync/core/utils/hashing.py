"""SHA-256 content hashing for post change detection"""

import hashlib
import json
from typing import Iterable


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256(content: str) -> str:
    """Return hex-encoded SHA-256 hash of content (64 chars)."""
    return sha256_bytes(content.encode("utf-8"))


def content_hash(title: str, body_html: str, category_keys: Iterable[str]) -> str:
    """Structural hash of the source-of-truth fields of a post.

    Category keys are compared as a set, so ordering in the export is irrelevant.
    """
    payload = {
        "title": (title or "").strip(),
        "body": (body_html or "").strip(),
        "categories": sorted(set(category_keys)),
    }
    return sha256(json.dumps(payload, ensure_ascii=False, sort_keys=True))
