"""Domain client for medication log operations.

Uses composition: holds a reference to :class:`BaseLogClient` for HTTP
transport and delegates all network I/O through ``self._base.request()``.
The ``list_*``/``upsert_*`` methods return result dicts; the ``fetch_*``
and ``set_*`` helpers raise the :mod:`errors` taxonomy instead, for callers
that drive the client-side cache.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from clients._base import BaseLogClient
from errors import StoreUnavailable, check_result
from models import MedicationLogEntry, month_bounds

__all__ = ["MedicationLogsClient"]

_ENDPOINT = "medication"


class MedicationLogsClient:
    """High-level operations on the ``/medication`` resource."""

    def __init__(self, base: BaseLogClient) -> None:
        self._base = base

    # -- result-dict methods ------------------------------------------------

    async def list_logs(
        self,
        subject_id: str,
        start_date: date,
        end_date: date,
    ) -> dict[str, Any]:
        """Fetch logs dated within ``[start_date, end_date]`` (inclusive)."""
        return await self._base.request(
            "GET",
            _ENDPOINT,
            params={
                "userId": subject_id,
                "startDate": start_date.isoformat(),
                "endDate": end_date.isoformat(),
            },
        )

    async def upsert_log(
        self,
        subject_id: str,
        day: date,
        taken: bool,
    ) -> dict[str, Any]:
        return await self._base.request(
            "POST",
            _ENDPOINT,
            data={"userId": subject_id, "date": day.isoformat(), "taken": taken},
        )

    # -- raising helpers ----------------------------------------------------

    async def fetch_month(self, subject_id: str, year: int, month: int) -> list[MedicationLogEntry]:
        """Return the subject's entries for one calendar month."""
        start, end = month_bounds(year, month)
        result = check_result(await self.list_logs(subject_id, start, end))
        data = result.get("data")
        if not isinstance(data, list):
            raise StoreUnavailable("Log API returned an unexpected response shape")
        try:
            return [MedicationLogEntry.from_json(item) for item in data if isinstance(item, dict)]
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreUnavailable("Log API returned malformed log entries", cause=exc) from exc

    async def set_taken(self, subject_id: str, day: date, taken: bool) -> MedicationLogEntry:
        result = check_result(await self.upsert_log(subject_id, day, taken))
        data = result.get("data")
        if not isinstance(data, dict):
            raise StoreUnavailable("Log API returned an unexpected response shape")
        try:
            return MedicationLogEntry.from_json(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreUnavailable("Log API returned a malformed log entry", cause=exc) from exc
