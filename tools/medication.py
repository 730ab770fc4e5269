"""Medication log MCP tools -- read and upsert daily logs."""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP
from starlette.concurrency import run_in_threadpool

from _constants import MAX_QUERY_DAYS
from _tooling import subject_id, tool_error_handler
from models import parse_day
from store import get_store

logger = logging.getLogger("meditrack.server")

__all__ = ["register"]


def register(mcp: FastMCP) -> None:
    """Register all medication log tools on the given FastMCP instance."""

    # ------------------------------------------------------------------
    # Read tools
    # ------------------------------------------------------------------

    @mcp.tool
    @tool_error_handler("Failed to fetch medication logs. Please try again.")
    async def medication_get_logs(start_date: str, end_date: str) -> dict[str, Any]:
        """Get medication logs for a date range (both ends inclusive).

        Days without a log were never toggled and count as not taken.

        Args:
            start_date: Start date in YYYY-MM-DD format.
            end_date: End date in YYYY-MM-DD format.
        """
        start = parse_day(start_date)
        end = parse_day(end_date)
        if end < start:
            raise ValueError("end_date must be on or after start_date.")
        day_span = (end - start).days + 1
        if day_span > MAX_QUERY_DAYS:
            raise ValueError(
                f"Date range spans {day_span} days, exceeding the maximum of "
                f"{MAX_QUERY_DAYS} days for read queries."
            )
        logs = await run_in_threadpool(get_store().find_range, subject_id(), start, end)
        return {
            "status": "success",
            "data": [log.to_json() for log in logs],
            "count": len(logs),
            "taken_count": sum(1 for log in logs if log.taken),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }

    # ------------------------------------------------------------------
    # Write tools
    # ------------------------------------------------------------------

    @mcp.tool
    @tool_error_handler("Failed to update medication log. Please try again.")
    async def medication_set_taken(date: str, taken: bool) -> dict[str, Any]:
        """Record whether medication was taken on a day.

        Args:
            date: Date in YYYY-MM-DD format.
            taken: True if the medication was taken that day.
        """
        day = parse_day(date)
        log = await run_in_threadpool(get_store().upsert, subject_id(), day, taken)
        logger.info(
            "WRITE_OP tool=medication_set_taken user=%s date=%s taken=%s",
            log.subject_id,
            day.isoformat(),
            taken,
        )
        return {"status": "success", "data": log.to_json()}

    @mcp.tool
    @tool_error_handler("Failed to toggle medication log. Please try again.")
    async def medication_toggle_day(date: str) -> dict[str, Any]:
        """Flip a day between taken and not taken.

        A day with no log counts as not taken, so its first toggle marks it taken.

        Args:
            date: Date in YYYY-MM-DD format.
        """
        day = parse_day(date)
        store = get_store()
        current = await run_in_threadpool(store.get, subject_id(), day)
        taken = not (current.taken if current is not None else False)
        log = await run_in_threadpool(store.upsert, subject_id(), day, taken)
        logger.info(
            "WRITE_OP tool=medication_toggle_day user=%s date=%s taken=%s",
            log.subject_id,
            day.isoformat(),
            taken,
        )
        return {"status": "success", "data": log.to_json()}
