"""
Digest Cache

Session-scoped cache for registry responses addressed by content digest.
Only GET requests for `blobs/sha256:<hex>` or `manifests/sha256:<hex>` are
eligible. Content at a digest never changes, so entries are never expired
or invalidated; they live as long as the backing store does.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DIGEST_KEY_PATTERN = re.compile(r"(blobs|manifests)/sha256:[a-f0-9]+$")


class KeyValueStore(Protocol):
    """Backing store for the cache. Must live no longer than the session."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class SessionStore:
    """In-memory store whose lifetime is the owning object's lifetime"""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


@dataclass(frozen=True)
class CacheEntry:
    body: Optional[bytes]
    content_digest: Optional[str]

    @property
    def body_text(self) -> Optional[str]:
        if self.body is None:
            return None
        return self.body.decode("utf-8", errors="replace")


def get_digest_key(method: str, url: str) -> Optional[str]:
    """
    Extract the digest key for a request, or None when it is not cacheable.

    Examples:
        ("GET", "https://r.io/v2/app/blobs/sha256:ab12") → "blobs/sha256:ab12"
        ("HEAD", "https://r.io/v2/app/blobs/sha256:ab12") → None
        ("GET", "https://r.io/v2/app/manifests/latest") → None
    """
    if method.upper() != "GET":
        return None
    match = DIGEST_KEY_PATTERN.search(urlparse(url).path)
    if not match:
        return None
    return match.group(0)


class DigestCache:
    """
    Best-effort cache of response bodies and Docker-Content-Digest headers.

    Storage failures are logged and swallowed; a broken store degrades to
    always-miss, it never fails the request that consulted it.
    """

    BODY_SUFFIX = "/body"
    DIGEST_SUFFIX = "/dockerContentDigest"

    def __init__(self, store: Optional[KeyValueStore] = None):
        self._store = store if store is not None else SessionStore()

    def get(self, method: str, url: str) -> Optional[CacheEntry]:
        key = get_digest_key(method, url)
        if not key:
            return None

        try:
            body = self._store.get(key + self.BODY_SUFFIX)
            digest = self._store.get(key + self.DIGEST_SUFFIX)
        except Exception as e:
            logger.warning(f"Digest cache read failed for {key}: {e}")
            return None

        if body is None and digest is None:
            return None
        if isinstance(body, str):
            body = body.encode("utf-8")
        return CacheEntry(body=body, content_digest=digest)

    def put(self, method: str, url: str, entry: CacheEntry) -> None:
        key = get_digest_key(method, url)
        if not key:
            return

        try:
            if entry.body is not None:
                self._store.set(key + self.BODY_SUFFIX, entry.body)
            if entry.content_digest:
                self._store.set(key + self.DIGEST_SUFFIX, entry.content_digest)
            logger.debug(f"Cached response for {key}")
        except Exception as e:
            logger.warning(f"Digest cache write failed for {key}: {e}")
