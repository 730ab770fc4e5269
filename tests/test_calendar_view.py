"""Tests for calendar_view.py -- month grid rendering and the cache-backed view."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from datetime import date

import pytest

from cache import QueryCache
from calendar_view import CalendarView, render_month_grid
from errors import LogAccessError, NetworkFailure
from models import MedicationLogEntry, month_key
from mutation import Notification, OptimisticToggleController

SUBJECT = "subject-1"


class FakeClient:
    """In-memory stand-in for MedicationLogsClient with a gated fetch."""

    def __init__(self) -> None:
        self.logs: dict[date, bool] = {}
        self.fetch_gate = asyncio.Event()
        self.fetch_gate.set()
        self.upsert_gate = asyncio.Event()
        self.upsert_gate.set()
        self.fetch_error: LogAccessError | None = None
        self.fetches: list[tuple[int, int]] = []

    async def fetch_month(self, subject_id: str, year: int, month: int) -> list[MedicationLogEntry]:
        self.fetches.append((year, month))
        await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return [
            MedicationLogEntry(id=f"id-{d}", subject_id=subject_id, date=d, taken=t)
            for d, t in sorted(self.logs.items())
            if (d.year, d.month) == (year, month)
        ]

    async def set_taken(self, subject_id: str, day: date, taken: bool) -> MedicationLogEntry:
        await self.upsert_gate.wait()
        self.logs[day] = taken
        return MedicationLogEntry(id=f"id-{day}", subject_id=subject_id, date=day, taken=taken)


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache()


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def notifications() -> list[Notification]:
    return []


@pytest.fixture
def view(
    cache: QueryCache, client: FakeClient, notifications: list[Notification]
) -> Generator[CalendarView, None, None]:
    controller = OptimisticToggleController(cache, client, SUBJECT, notify=notifications.append)
    v = CalendarView(cache, client, controller, initial=date(2024, 10, 15))
    yield v
    v.close()


async def _settle(view: CalendarView) -> None:
    while view.is_refreshing:
        await asyncio.sleep(0)


# ============================================================================
# render_month_grid
# ============================================================================


class TestRenderMonthGrid:
    def test_leap_february_layout(self) -> None:
        lines = render_month_grid(2024, 2, {date(2024, 2, 1)}).splitlines()
        assert lines[0] == "February 2024".center(28).rstrip()
        assert lines[1] == " Su  Mo  Tu  We  Th  Fr  Sa"
        # 1 February 2024 is a Thursday.
        assert lines[2] == " " * 16 + "[ 1]  2   3"
        assert lines[-1] == " 25  26  27  28  29"
        assert len(lines) == 7

    def test_today_marker(self) -> None:
        grid = render_month_grid(2024, 2, set(), today=date(2024, 2, 14))
        assert "<14>" in grid

    def test_taken_wins_over_today(self) -> None:
        grid = render_month_grid(2024, 2, {date(2024, 2, 14)}, today=date(2024, 2, 14))
        assert "[14]" in grid
        assert "<14>" not in grid

    def test_month_starting_on_sunday_has_no_padding(self) -> None:
        # 1 September 2024 is a Sunday.
        lines = render_month_grid(2024, 9, set()).splitlines()
        assert lines[2].startswith("  1   2")


# ============================================================================
# CalendarView
# ============================================================================


class TestLoading:
    async def test_loads_month_then_shows_taken_days(
        self, view: CalendarView, client: FakeClient
    ) -> None:
        client.logs = {date(2024, 10, 3): True, date(2024, 10, 4): False}
        client.fetch_gate.clear()

        task = view.ensure_fetch()
        assert view.is_loading
        assert view.render().endswith("Loading...")

        client.fetch_gate.set()
        await task
        assert not view.is_loading
        assert view.taken_days() == {date(2024, 10, 3)}
        assert "[ 3]" in view.render()

    async def test_fresh_month_is_served_from_cache(
        self, view: CalendarView, client: FakeClient
    ) -> None:
        await view.ensure_fetch()
        assert view.ensure_fetch() is None
        assert client.fetches == [(2024, 10)]

    async def test_days_cover_whole_month(self, view: CalendarView) -> None:
        view.show(2024, 2)
        days = view.days()
        assert days[0] == date(2024, 2, 1)
        assert days[-1] == date(2024, 2, 29)
        assert len(days) == 29


class TestNavigation:
    async def test_leaving_month_discards_its_late_response(
        self, view: CalendarView, cache: QueryCache, client: FakeClient
    ) -> None:
        client.logs = {date(2024, 10, 3): True, date(2024, 11, 7): True}
        client.fetch_gate.clear()

        october = view.ensure_fetch()
        await asyncio.sleep(0)
        november = view.next_month()
        assert (view.year, view.month) == (2024, 11)

        client.fetch_gate.set()
        with pytest.raises(asyncio.CancelledError):
            await october
        await november

        assert cache.peek(month_key(SUBJECT, 2024, 10)) is None
        assert view.taken_days() == {date(2024, 11, 7)}

    async def test_toggle_settling_during_next_month_load_refetches_it(
        self, view: CalendarView, client: FakeClient
    ) -> None:
        client.logs = {date(2024, 11, 7): True}
        await view.ensure_fetch()

        client.upsert_gate.clear()
        toggle = view.toggle(date(2024, 10, 9))
        client.fetch_gate.clear()
        november = view.next_month()
        await asyncio.sleep(0)

        client.upsert_gate.set()
        await toggle
        with pytest.raises(asyncio.CancelledError):
            await november
        assert view.is_refreshing

        client.fetch_gate.set()
        await _settle(view)
        assert not view.is_loading
        assert view.taken_days() == {date(2024, 11, 7)}
        assert client.fetches == [(2024, 10), (2024, 11), (2024, 11)]

    async def test_year_rollover(self, view: CalendarView) -> None:
        view.show(2024, 12)
        view.next_month()
        assert (view.year, view.month) == (2025, 1)
        view.previous_month()
        assert (view.year, view.month) == (2024, 12)

    def test_invalid_month_rejected(self, view: CalendarView) -> None:
        with pytest.raises(ValueError, match="between 1 and 12"):
            view.show(2024, 13)


class TestToggle:
    async def test_toggle_is_optimistic_then_refetched(
        self, view: CalendarView, client: FakeClient
    ) -> None:
        await view.ensure_fetch()
        day = date(2024, 10, 9)

        task = view.toggle(day)
        assert day in view.taken_days()

        await task
        await _settle(view)
        assert client.fetches == [(2024, 10), (2024, 10)]
        assert client.logs == {day: True}
        assert view.taken_days() == {day}
        assert all(not e.id.startswith("temp-") for e in view.entries)

    async def test_toggle_uses_displayed_value(
        self, view: CalendarView, client: FakeClient
    ) -> None:
        day = date(2024, 10, 9)
        client.logs = {day: True}
        await view.ensure_fetch()

        await view.toggle(day)
        await _settle(view)
        assert client.logs == {day: False}
        assert view.taken_days() == set()


class TestErrors:
    async def test_fetch_error_is_rendered_without_refetch_loop(
        self, view: CalendarView, client: FakeClient
    ) -> None:
        client.fetch_error = NetworkFailure("Medication log service temporarily unavailable.")
        await view.ensure_fetch()
        for _ in range(5):
            await asyncio.sleep(0)

        assert isinstance(view.error, NetworkFailure)
        assert not view.is_loading
        assert view.render().endswith(
            "Could not load medication logs: Medication log service temporarily unavailable."
        )
        assert client.fetches == [(2024, 10)]

    async def test_refresh_recovers_after_error(
        self, view: CalendarView, client: FakeClient
    ) -> None:
        client.fetch_error = NetworkFailure("offline")
        await view.ensure_fetch()
        client.fetch_error = None
        client.logs = {date(2024, 10, 1): True}

        await view.refresh()
        assert view.error is None
        assert view.taken_days() == {date(2024, 10, 1)}

    async def test_invalidation_retries_failed_month(
        self, view: CalendarView, cache: QueryCache, client: FakeClient
    ) -> None:
        client.fetch_error = NetworkFailure("offline")
        await view.ensure_fetch()
        client.fetch_error = None
        client.logs = {date(2024, 10, 1): True}

        cache.invalidate(("medicationLogs",))
        assert view.is_refreshing
        await _settle(view)

        assert view.error is None
        assert not view.is_loading
        assert view.taken_days() == {date(2024, 10, 1)}
        assert client.fetches == [(2024, 10), (2024, 10)]


class TestClose:
    async def test_closed_view_stops_refetching(
        self, view: CalendarView, cache: QueryCache, client: FakeClient
    ) -> None:
        await view.ensure_fetch()
        view.close()
        cache.invalidate(("medicationLogs",))
        assert not view.is_refreshing
        assert client.fetches == [(2024, 10)]
