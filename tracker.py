#!/usr/bin/env python3
"""Client session wiring: one cache, client, controller and view per session.

Nothing here is module-level state; a session is created at start-up,
passed by reference, and discarded on close.

Run ``python tracker.py`` to print the current month from a running server.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field

from _constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_DISPLAY_TIMEZONE,
    DEFAULT_SUBJECT_ID,
)
from cache import QueryCache
from calendar_view import CalendarView
from clients import BaseLogClient, MedicationLogsClient
from mutation import Notification, OptimisticToggleController

__all__ = ["TrackerSession"]

logger = logging.getLogger("meditrack.client")


@dataclass
class TrackerSession:
    """Holds the client-side components for one user session."""

    base: BaseLogClient
    subject_id: str = DEFAULT_SUBJECT_ID
    display_tz: str = DEFAULT_DISPLAY_TIMEZONE
    notify: Callable[[Notification], None] | None = None
    cache: QueryCache = field(init=False)
    client: MedicationLogsClient = field(init=False)
    controller: OptimisticToggleController = field(init=False)
    view: CalendarView = field(init=False)

    def __post_init__(self) -> None:
        self.cache = QueryCache()
        self.client = MedicationLogsClient(self.base)
        self.controller = OptimisticToggleController(
            self.cache,
            self.client,
            self.subject_id,
            notify=self.notify,
            display_tz=self.display_tz,
        )
        self.view = CalendarView(
            self.cache,
            self.client,
            self.controller,
            display_tz=self.display_tz,
        )

    @classmethod
    def from_env(cls, **kwargs: object) -> TrackerSession:
        """Build a session from MEDITRACK_* environment variables."""
        base = BaseLogClient(os.environ.get("MEDITRACK_API_BASE_URL", DEFAULT_API_BASE_URL))
        return cls(
            base=base,
            subject_id=os.environ.get("MEDITRACK_SUBJECT_ID", DEFAULT_SUBJECT_ID),
            display_tz=os.environ.get("DISPLAY_TIMEZONE", DEFAULT_DISPLAY_TIMEZONE),
            **kwargs,
        )

    async def close(self) -> None:
        await self.controller.drain()
        self.view.close()
        self.cache.clear()
        await self.base.close()

    async def __aenter__(self) -> TrackerSession:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()


async def _print_current_month() -> None:
    async with TrackerSession.from_env() as session:
        task = session.view.ensure_fetch()
        if task is not None:
            await task
        print(session.view.render())


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    asyncio.run(_print_current_month())
