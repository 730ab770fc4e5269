"""Optimistic day-toggle controller.

A toggle moves through four states:

    IDLE -> PENDING_OPTIMISTIC -> SETTLED_SUCCESS | SETTLED_FAILURE

The optimistic phase runs synchronously inside :meth:`toggle`: any
in-flight fetch for the month is cancelled, the month is snapshotted and
the day is patched before the remote upsert is even scheduled.  The
returned task settles the mutation: success invalidates every cached
medication-log month so the next read refetches authoritative data;
failure restores the snapshot.  Nothing is retried automatically.

When toggles for the same month overlap and one of them fails, no single
snapshot describes the right state any more; the month is instead marked
stale once the last of them settles, so it is refetched from the store.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from _constants import DEFAULT_DISPLAY_TIMEZONE, ENTITY_KIND
from cache import CacheSnapshot, QueryCache
from clients.medication import MedicationLogsClient
from errors import LogAccessError, NetworkFailure
from models import MedicationLogEntry, MonthKey, month_key, today_in

__all__ = [
    "MutationOutcome",
    "MutationState",
    "Notification",
    "OptimisticToggleController",
]

logger = logging.getLogger("meditrack.mutation")

ERROR_TITLE = "Error"
ERROR_DESCRIPTION = "Failed to update medication status. Please try again."


class MutationState(enum.Enum):
    IDLE = "idle"
    PENDING_OPTIMISTIC = "pending_optimistic"
    SETTLED_SUCCESS = "settled_success"
    SETTLED_FAILURE = "settled_failure"


@dataclass(frozen=True)
class Notification:
    """A dismissable, non-blocking message for the user."""

    title: str
    description: str
    variant: str = "default"
    duration: float = 3.0


@dataclass
class MutationOutcome:
    day: date
    taken: bool
    state: MutationState = MutationState.PENDING_OPTIMISTIC
    entry: MedicationLogEntry | None = None
    error: LogAccessError | None = None


def _log_notification(notification: Notification) -> None:
    logger.info("NOTIFY [%s] %s: %s", notification.variant, notification.title, notification.description)


class OptimisticToggleController:
    """Applies day toggles optimistically and reconciles them with the store."""

    def __init__(
        self,
        cache: QueryCache,
        client: MedicationLogsClient,
        subject_id: str,
        *,
        notify: Callable[[Notification], None] | None = None,
        display_tz: str = DEFAULT_DISPLAY_TIMEZONE,
    ) -> None:
        self._cache = cache
        self._client = client
        self._subject_id = subject_id
        self._notify = notify or _log_notification
        self._display_tz = display_tz
        self._sequence: dict[MonthKey, int] = {}
        self._pending: dict[MonthKey, int] = {}
        self._dirty: set[MonthKey] = set()
        self._tasks: set[asyncio.Task[MutationOutcome]] = set()
        self.state: MutationState = MutationState.IDLE
        self.last_outcome: MutationOutcome | None = None

    @property
    def subject_id(self) -> str:
        return self._subject_id

    def key_for(self, day: date) -> MonthKey:
        return month_key(self._subject_id, day.year, day.month)

    def is_pending(self, day: date | None = None) -> bool:
        if day is None:
            return bool(self._pending)
        return self.key_for(day) in self._pending

    def current_taken(self, day: date) -> bool:
        """Observed value for *day* in the cache; a missing entry means not taken."""
        for entry in self._cache.peek(self.key_for(day)) or []:
            if entry.date == day:
                return entry.taken
        return False

    def toggle(self, day: date, current_taken: bool | None = None) -> asyncio.Task[MutationOutcome]:
        """Flip *day* optimistically and return the task that settles it.

        The cache already shows the new value when this method returns.
        """
        key = self.key_for(day)
        if current_taken is None:
            current_taken = self.current_taken(day)
        taken = not current_taken

        self._cache.cancel(key)
        snapshot = self._cache.snapshot(key)
        self._cache.patch(key, day, taken)

        seq = self._sequence.get(key, 0) + 1
        self._sequence[key] = seq
        self._pending[key] = self._pending.get(key, 0) + 1
        self.state = MutationState.PENDING_OPTIMISTIC
        logger.debug("Optimistic toggle %s -> taken=%s", day, taken)

        outcome = MutationOutcome(day=day, taken=taken)
        task = asyncio.get_running_loop().create_task(self._settle(key, outcome, snapshot, seq))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending toggle to settle."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _upsert(self, outcome: MutationOutcome) -> MedicationLogEntry:
        try:
            return await self._client.set_taken(self._subject_id, outcome.day, outcome.taken)
        except LogAccessError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error saving toggle for %s", outcome.day)
            raise NetworkFailure(
                "Medication log service temporarily unavailable.", cause=exc
            ) from exc

    async def _settle(
        self,
        key: MonthKey,
        outcome: MutationOutcome,
        snapshot: CacheSnapshot | None,
        seq: int,
    ) -> MutationOutcome:
        try:
            entry = await self._upsert(outcome)
        except LogAccessError as exc:
            overlapped = (
                key in self._dirty
                or self._sequence.get(key) != seq
                or self._pending.get(key, 0) > 1
            )
            if overlapped:
                # Other toggles touched this month; the snapshot is not trustworthy.
                self._dirty.add(key)
            else:
                self._cache.restore(key, snapshot)
            outcome.state = MutationState.SETTLED_FAILURE
            outcome.error = exc
            logger.warning("Toggle for %s failed, rolled back: %s", outcome.day, exc)
            self._notify(
                Notification(
                    title=ERROR_TITLE,
                    description=ERROR_DESCRIPTION,
                    variant="destructive",
                    duration=5.0,
                )
            )
        else:
            outcome.state = MutationState.SETTLED_SUCCESS
            outcome.entry = entry
            self._cache.invalidate((ENTITY_KIND,))
            logger.info(
                "WRITE_OP toggle user=%s date=%s taken=%s",
                self._subject_id,
                outcome.day.isoformat(),
                outcome.taken,
            )
            self._notify(self._success_notification(outcome))
        finally:
            remaining = self._pending.get(key, 1) - 1
            if remaining > 0:
                self._pending[key] = remaining
            else:
                self._pending.pop(key, None)
                if key in self._dirty:
                    self._dirty.discard(key)
                    self._cache.invalidate(key)

        self.state = outcome.state
        self.last_outcome = outcome
        return outcome

    def _success_notification(self, outcome: MutationOutcome) -> Notification:
        if outcome.day == today_in(self._display_tz):
            title = "Today's medication"
        else:
            title = f"Medication status for {outcome.day.isoformat()}"
        if outcome.taken:
            description = "Marked as taken. Great job!"
        else:
            description = "Marked as not taken. Take care!"
        return Notification(title=title, description=description)
