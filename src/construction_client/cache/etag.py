"""
ETag validation cache for GET responses.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from ..types import CacheEntry

logger = logging.getLogger("construction_client.cache.etag")


def extract_etag(headers: Mapping[str, str]) -> Optional[str]:
    """Extract ETag from response headers."""
    etag = headers.get("etag") or headers.get("ETag")
    return etag.strip() if etag else None


class EtagCache:
    """
    Maps a canonical GET signature to its last ETag and payload.

    One entry per signature, last write wins. Entries never expire on their
    own: the server decides freshness through 304 answers.

    Example:
        cache = EtagCache()
        headers.update(cache.conditional_headers(key))
        ...
        if response.status_code == 304:
            return cache.get(key).data
        cache.set(key, extract_etag(response.headers), payload)
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, etag: str, data: Any) -> CacheEntry:
        entry = CacheEntry(etag=etag, data=data)
        self._entries[key] = entry
        logger.debug(f"EtagCache.set: key={key}, etag={etag}")
        return entry

    def conditional_headers(self, key: str) -> Dict[str, str]:
        """Headers that turn a GET into a conditional GET, if cached."""
        entry = self._entries.get(key)
        if entry is None:
            return {}
        return {"If-None-Match": entry.etag}

    def invalidate(self, key: str) -> bool:
        if key in self._entries:
            del self._entries[key]
            return True
        return False

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)
