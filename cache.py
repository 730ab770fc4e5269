"""Client-side query cache for fetched medication log months.

Holds one log set per month key, serves it without network calls while it
is fresh, and owns the background fetches that (re)populate it.

Every fetch is tagged with a per-key generation.  ``cancel``,
``invalidate`` and superseding fetches bump the generation, and a fetch
only writes its result if its generation is still current, so a late
response can never overwrite newer state (an optimistic patch, a newer
fetch, or a different month).

Not thread-safe: all access happens on the single event-loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date

from _constants import CACHE_MAX_MONTHS, TEMP_ID_PREFIX
from errors import LogAccessError
from models import MedicationLogEntry, MonthKey

__all__ = ["CacheSnapshot", "QueryCache"]

logger = logging.getLogger("meditrack.cache")

Loader = Callable[[], Awaitable[list[MedicationLogEntry]]]
Listener = Callable[[MonthKey], None]


@dataclass(frozen=True)
class CacheSnapshot:
    """Immutable copy of one cache entry, used for rollback."""

    entries: tuple[MedicationLogEntry, ...]
    stale: bool


@dataclass
class _Slot:
    entries: list[MedicationLogEntry]
    updated_at: float
    stale: bool = False


class QueryCache:
    """Bounded LRU cache of month key -> ordered log entries."""

    def __init__(self, maxsize: int = CACHE_MAX_MONTHS) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._maxsize = maxsize
        self._data: OrderedDict[MonthKey, _Slot] = OrderedDict()
        self._errors: dict[MonthKey, LogAccessError] = {}
        self._fetches: dict[MonthKey, asyncio.Task[list[MedicationLogEntry] | None]] = {}
        self._generations: dict[MonthKey, int] = {}
        self._listeners: list[Listener] = []

    # -- reads ---------------------------------------------------------------

    def read(self, key: MonthKey) -> list[MedicationLogEntry] | None:
        """Return the cached set, or ``None`` if missing or stale.  Never blocks."""
        slot = self._data.get(key)
        if slot is None or slot.stale:
            return None
        self._data.move_to_end(key)
        return list(slot.entries)

    def peek(self, key: MonthKey) -> list[MedicationLogEntry] | None:
        """Return the cached set even if stale."""
        slot = self._data.get(key)
        return None if slot is None else list(slot.entries)

    def is_stale(self, key: MonthKey) -> bool:
        slot = self._data.get(key)
        return slot is None or slot.stale

    def is_fetching(self, key: MonthKey) -> bool:
        task = self._fetches.get(key)
        return task is not None and not task.done()

    def error(self, key: MonthKey) -> LogAccessError | None:
        """Return the last fetch failure for *key*, cleared by the next write."""
        return self._errors.get(key)

    def snapshot(self, key: MonthKey) -> CacheSnapshot | None:
        slot = self._data.get(key)
        if slot is None:
            return None
        return CacheSnapshot(entries=tuple(slot.entries), stale=slot.stale)

    # -- writes --------------------------------------------------------------

    def write(self, key: MonthKey, entries: list[MedicationLogEntry]) -> None:
        """Replace the cached set for *key* wholesale."""
        self._put(key, _Slot(entries=list(entries), updated_at=time.monotonic()))
        self._errors.pop(key, None)
        self._notify(key)

    def invalidate(self, prefix: MonthKey) -> int:
        """Mark every key starting with *prefix* stale.

        In-flight fetches under the prefix are cancelled since their data may
        predate the change that caused the invalidation, and recorded fetch
        errors are cleared.  Listeners are notified for every affected key,
        including uncached ones whose fetch was cancelled or whose error was
        cleared.  Returns the number of cached keys marked stale.
        """
        n = len(prefix)
        affected: dict[MonthKey, None] = {}
        for key in [k for k in self._fetches if k[:n] == prefix]:
            if self.cancel(key):
                affected[key] = None
        for key in [k for k in self._errors if k[:n] == prefix]:
            del self._errors[key]
            affected[key] = None
        marked = [key for key in self._data if key[:n] == prefix]
        for key in marked:
            self._data[key].stale = True
            affected[key] = None
        logger.debug("Invalidated %d cached month(s) under %s", len(marked), prefix)
        for key in affected:
            self._notify(key)
        return len(marked)

    def patch(self, key: MonthKey, day: date, taken: bool) -> None:
        """Optimistically set *day*'s ``taken`` flag in place.

        Overwrites the existing entry for *day*, or appends a placeholder
        with a temporary id.  The patched entry is served as fresh.
        """
        slot = self._data.get(key)
        entries = [] if slot is None else list(slot.entries)
        for i, entry in enumerate(entries):
            if entry.date == day:
                entries[i] = entry.with_taken(taken)
                break
        else:
            entries.append(
                MedicationLogEntry(
                    id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
                    subject_id=key[1] if len(key) > 1 else "",
                    date=day,
                    taken=taken,
                )
            )
        self._put(key, _Slot(entries=entries, updated_at=time.monotonic()))
        self._notify(key)

    def restore(self, key: MonthKey, snapshot: CacheSnapshot | None) -> None:
        """Replace the entry for *key* with *snapshot*; ``None`` removes it."""
        if snapshot is None:
            self._data.pop(key, None)
        else:
            self._put(
                key,
                _Slot(
                    entries=list(snapshot.entries),
                    updated_at=time.monotonic(),
                    stale=snapshot.stale,
                ),
            )
        self._notify(key)

    def clear(self) -> None:
        """Cancel every fetch and drop all cached data."""
        for key in list(self._fetches):
            self.cancel(key)
        self._data.clear()
        self._errors.clear()

    # -- fetching ------------------------------------------------------------

    def fetch(
        self,
        key: MonthKey,
        loader: Loader,
        *,
        replace: bool = False,
    ) -> asyncio.Task[list[MedicationLogEntry] | None]:
        """Start a background fetch for *key*, or join the one in flight.

        With ``replace=True`` an in-flight fetch is cancelled and superseded.
        The task resolves to the fetched entries, or ``None`` if the fetch
        failed or was superseded before it could write.
        """
        existing = self._fetches.get(key)
        if existing is not None and not existing.done():
            if not replace:
                return existing
            self.cancel(key)
        generation = self._bump(key)
        task = asyncio.get_running_loop().create_task(self._run_fetch(key, loader, generation))
        self._fetches[key] = task
        return task

    def cancel(self, key: MonthKey) -> bool:
        """Cancel the in-flight fetch for *key* and discard any late result."""
        self._bump(key)
        task = self._fetches.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled in-flight fetch for %s", key)
        return True

    async def _run_fetch(
        self,
        key: MonthKey,
        loader: Loader,
        generation: int,
    ) -> list[MedicationLogEntry] | None:
        try:
            entries = await loader()
        except LogAccessError as exc:
            logger.warning("Fetch for %s failed: %s", key, exc)
            if self._generations.get(key) == generation:
                self._errors[key] = exc
                self._notify(key)
            return None
        finally:
            if self._fetches.get(key) is asyncio.current_task():
                del self._fetches[key]

        if self._generations.get(key) != generation:
            logger.debug("Discarding superseded fetch result for %s", key)
            return None
        self.write(key, entries)
        return entries

    # -- subscriptions -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the key on every change.  Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- internals -----------------------------------------------------------

    def _bump(self, key: MonthKey) -> int:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        return generation

    def _put(self, key: MonthKey, slot: _Slot) -> None:
        if key in self._data:
            del self._data[key]
        elif len(self._data) >= self._maxsize:
            evicted, _ = self._data.popitem(last=False)
            self._errors.pop(evicted, None)
        self._data[key] = slot

    def _notify(self, key: MonthKey) -> None:
        for listener in list(self._listeners):
            listener(key)

    def __len__(self) -> int:
        return len(self._data)
