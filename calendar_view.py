"""Month calendar view over the client-side query cache.

The view never talks to the network directly: it reads the cache, asks the
cache to fetch when its month is missing or stale, and hands toggles to the
:class:`~mutation.OptimisticToggleController`.
"""

from __future__ import annotations

import asyncio
import calendar
import functools
from datetime import date, timedelta

from _constants import DEFAULT_DISPLAY_TIMEZONE
from cache import QueryCache
from clients.medication import MedicationLogsClient
from errors import LogAccessError
from models import MedicationLogEntry, MonthKey, month_bounds, month_key, today_in
from mutation import MutationOutcome, OptimisticToggleController

__all__ = ["CalendarView", "render_month_grid"]

WEEKDAY_LABELS: tuple[str, ...] = ("Su", "Mo", "Tu", "We", "Th", "Fr", "Sa")
_CELL = 4


def render_month_grid(
    year: int,
    month: int,
    taken_days: set[date],
    *,
    today: date | None = None,
) -> str:
    """Render a Sunday-first text grid; taken days are bracketed, today is angled."""
    title = f"{calendar.month_name[month]} {year}"
    header = "".join(f" {label} " for label in WEEKDAY_LABELS).rstrip()
    lines = [title.center(_CELL * 7).rstrip(), header]

    first, last = month_bounds(year, month)
    # date.weekday() is Monday=0; shift so Sunday is column 0.
    cells = [" " * _CELL] * ((first.weekday() + 1) % 7)
    day = first
    while day <= last:
        if day in taken_days:
            cells.append(f"[{day.day:>2}]")
        elif day == today:
            cells.append(f"<{day.day:>2}>")
        else:
            cells.append(f" {day.day:>2} ")
        day += timedelta(days=1)

    for i in range(0, len(cells), 7):
        lines.append("".join(cells[i : i + 7]).rstrip())
    return "\n".join(lines)


class CalendarView:
    """One displayed month, backed by the shared cache."""

    def __init__(
        self,
        cache: QueryCache,
        client: MedicationLogsClient,
        controller: OptimisticToggleController,
        *,
        display_tz: str = DEFAULT_DISPLAY_TIMEZONE,
        initial: date | None = None,
    ) -> None:
        self._cache = cache
        self._client = client
        self._controller = controller
        self._subject_id = controller.subject_id
        self._display_tz = display_tz
        start = initial or today_in(display_tz)
        self._year = start.year
        self._month = start.month
        self._unsubscribe = cache.subscribe(self._on_cache_change)

    # -- month navigation ----------------------------------------------------

    @property
    def year(self) -> int:
        return self._year

    @property
    def month(self) -> int:
        return self._month

    @property
    def key(self) -> MonthKey:
        return month_key(self._subject_id, self._year, self._month)

    def show(self, year: int, month: int) -> asyncio.Task | None:
        """Display *month*, cancelling the fetch of the month being left."""
        if not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")
        if (year, month) != (self._year, self._month):
            self._cache.cancel(self.key)
            self._year, self._month = year, month
        return self.ensure_fetch()

    def next_month(self) -> asyncio.Task | None:
        if self._month == 12:
            return self.show(self._year + 1, 1)
        return self.show(self._year, self._month + 1)

    def previous_month(self) -> asyncio.Task | None:
        if self._month == 1:
            return self.show(self._year - 1, 12)
        return self.show(self._year, self._month - 1)

    # -- data ----------------------------------------------------------------

    def ensure_fetch(self) -> asyncio.Task | None:
        """Start a fetch if the displayed month is missing or stale."""
        if self._cache.read(self.key) is not None:
            return None
        return self._cache.fetch(self.key, self._loader())

    def refresh(self) -> asyncio.Task:
        """Refetch the displayed month, superseding any fetch in flight."""
        return self._cache.fetch(self.key, self._loader(), replace=True)

    def _loader(self) -> functools.partial:
        return functools.partial(
            self._client.fetch_month, self._subject_id, self._year, self._month
        )

    def _on_cache_change(self, key: MonthKey) -> None:
        if key != self.key or self._cache.error(key) is not None:
            return
        if self._cache.is_stale(key) and not self._cache.is_fetching(key):
            self.ensure_fetch()

    @property
    def entries(self) -> list[MedicationLogEntry]:
        """Cached entries for the month, stale ones included while refetching."""
        return self._cache.peek(self.key) or []

    @property
    def is_loading(self) -> bool:
        return self._cache.peek(self.key) is None and self.error is None

    @property
    def is_refreshing(self) -> bool:
        return self._cache.is_fetching(self.key)

    @property
    def error(self) -> LogAccessError | None:
        return self._cache.error(self.key)

    def taken_days(self) -> set[date]:
        return {entry.date for entry in self.entries if entry.taken}

    def days(self) -> list[date]:
        first, last = month_bounds(self._year, self._month)
        return [first + timedelta(days=i) for i in range((last - first).days + 1)]

    # -- interaction ---------------------------------------------------------

    def toggle(self, day: date) -> asyncio.Task[MutationOutcome]:
        """Flip *day* using the value currently shown."""
        if (day.year, day.month) == (self._year, self._month):
            return self._controller.toggle(day, current_taken=day in self.taken_days())
        return self._controller.toggle(day)

    def render(self) -> str:
        grid = render_month_grid(
            self._year,
            self._month,
            self.taken_days(),
            today=today_in(self._display_tz),
        )
        if self.error is not None:
            return f"{grid}\n\nCould not load medication logs: {self.error}"
        if self.is_loading:
            return f"{grid}\n\nLoading..."
        return grid

    def close(self) -> None:
        self._unsubscribe()
        self._cache.cancel(self.key)
