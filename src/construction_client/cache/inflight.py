"""
In-flight request registry (singleflight).

When identical calls are issued concurrently only the first one goes to the
network; the others attach to its entry and receive the same result.
"""
import asyncio
import logging
import time
from typing import Dict, Optional

from ..types import FetchResponse, InFlightEntry

logger = logging.getLogger("construction_client.cache.inflight")


class InFlightRegistry:
    """
    Maps a canonical GET signature or POST dedup key to a pending result.

    An entry is registered before the owning call first suspends and is
    removed exactly once when that call settles, whatever the outcome.
    Removal is keyed on entry identity: a late settle from an old owner never
    evicts a newer entry registered under the same key.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, InFlightEntry] = {}

    def get(self, key: str) -> Optional[InFlightEntry]:
        return self._entries.get(key)

    def has(self, key: str) -> bool:
        return key in self._entries

    def size(self) -> int:
        return len(self._entries)

    def register(self, key: str) -> InFlightEntry:
        """Create the entry for a new owning call."""
        if key in self._entries:
            raise KeyError(f"Request already in flight: {key}")
        future: "asyncio.Future[FetchResponse]" = asyncio.get_running_loop().create_future()
        entry = InFlightEntry(key=key, future=future, subscribers=1, started_at=time.time())
        self._entries[key] = entry
        logger.debug(f"InFlightRegistry.register: key={key}")
        return entry

    def join(self, entry: InFlightEntry) -> InFlightEntry:
        """Attach another caller to an existing entry."""
        entry.subscribers += 1
        logger.debug(f"InFlightRegistry.join: key={entry.key}, subscribers={entry.subscribers}")
        return entry

    def resolve(self, entry: InFlightEntry, response: FetchResponse) -> None:
        if not entry.future.done():
            entry.future.set_result(response)
        self.remove(entry)

    def reject(self, entry: InFlightEntry, error: BaseException) -> None:
        if not entry.future.done():
            entry.future.set_exception(error)
            # Mark retrieved: an entry may have no followers at all.
            entry.future.exception()
        self.remove(entry)

    def settle(
        self,
        entry: InFlightEntry,
        response: Optional[FetchResponse] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Complete the entry with a response or an error and drop it."""
        if error is not None:
            self.reject(entry, error)
        else:
            self.resolve(entry, response)  # type: ignore[arg-type]

    def remove(self, entry: InFlightEntry) -> bool:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
            logger.debug(
                f"InFlightRegistry.remove: key={entry.key}, subscribers={entry.subscribers}"
            )
            return True
        return False

    def clear(self) -> None:
        """Forget every entry. Pending followers are left to their owners."""
        self._entries.clear()
