"""Calendar MCP tools -- month overview of medication adherence."""

from __future__ import annotations

from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from starlette.concurrency import run_in_threadpool

from _tooling import display_timezone, subject_id, tool_error_handler
from calendar_view import render_month_grid
from models import month_bounds, today_in
from store import get_store

__all__ = ["register"]


def register(mcp: FastMCP) -> None:
    """Register calendar tools on the given FastMCP instance."""

    @mcp.tool
    @tool_error_handler("Failed to render medication calendar. Please try again.")
    async def calendar_render_month(year: int, month: int) -> dict[str, Any]:
        """Render a month as a text calendar with taken days in brackets.

        Args:
            year: Year (e.g. 2024).
            month: Month number (1-12).
        """
        if not 1 <= month <= 12:
            raise ToolError(f"month must be between 1 and 12, got {month}")
        start, end = month_bounds(year, month)
        logs = await run_in_threadpool(get_store().find_range, subject_id(), start, end)
        taken = {log.date for log in logs if log.taken}
        today = today_in(display_timezone())
        return {
            "status": "success",
            "calendar": render_month_grid(year, month, taken, today=today),
            "taken_days": sorted(day.isoformat() for day in taken),
            "days_in_month": end.day,
            "taken_count": len(taken),
        }
