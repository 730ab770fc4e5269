"""Log Access API -- HTTP JSON handlers over the medication log store.

Two endpoints share the ``/medication`` path:

    GET  /medication?userId=&startDate=&endDate=   inclusive range query
    POST /medication  {userId, date, taken}        upsert keyed by (userId, date)

No handler raises past this boundary: every failure becomes a JSON error
body with a non-2xx status.  The handlers are registered on the FastMCP
server as custom routes (see ``server.py``) and can also be served as a
standalone Starlette app via :func:`create_app`.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from _constants import MAX_SUBJECT_ID_LEN
from errors import InvalidRequest, StoreInitializationError, StoreUnavailable
from models import parse_day
from store import get_store

__all__ = [
    "SecurityHeadersMiddleware",
    "create_app",
    "health_check",
    "list_medication_logs",
    "upsert_medication_log",
]

logger = logging.getLogger("meditrack.server")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject hardening headers into every HTTP response."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


def _error(body: Any, status_code: int) -> JSONResponse:
    return JSONResponse({"error": body}, status_code=status_code)


def _parse_param_day(name: str, value: str) -> date:
    try:
        return parse_day(value)
    except ValueError as exc:
        raise InvalidRequest(f"Invalid {name}: {value!r}. Use YYYY-MM-DD.") from exc


def _check_subject_id(value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidRequest("userId must be a string")
    if len(value) > MAX_SUBJECT_ID_LEN:
        raise InvalidRequest(f"userId too long (max {MAX_SUBJECT_ID_LEN} characters)")
    return value


async def health_check(request: Request) -> JSONResponse:
    """Return 200 OK for health checks and load balancers."""
    return JSONResponse({"status": "ok"})


async def list_medication_logs(request: Request) -> JSONResponse:
    """Return the subject's logs whose date falls in ``[startDate, endDate]``."""
    params = request.query_params
    user_id = params.get("userId")
    start_raw = params.get("startDate")
    end_raw = params.get("endDate")

    if not user_id or not start_raw or not end_raw:
        return _error("Missing required parameters", 400)

    try:
        subject_id = _check_subject_id(user_id)
        start = _parse_param_day("startDate", start_raw)
        end = _parse_param_day("endDate", end_raw)
    except InvalidRequest as exc:
        return _error(exc.message, exc.status_code)

    try:
        store = get_store()
        logs = await run_in_threadpool(store.find_range, subject_id, start, end)
    except StoreInitializationError as exc:
        logger.error("GET /medication failed: store not initialized (%s)", exc.cause or exc)
        return JSONResponse(
            {"error": "Failed to fetch medication logs", **exc.to_dict()},
            status_code=500,
        )
    except StoreUnavailable:
        logger.exception("GET /medication failed for userId=%s", subject_id)
        return _error("Failed to fetch medication logs", 500)

    return JSONResponse([log.to_json() for log in logs])


async def upsert_medication_log(request: Request) -> JSONResponse:
    """Create or update the log for ``(userId, date)`` and return it."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError):
        return _error("Request body must be valid JSON", 400)
    if not isinstance(body, dict):
        return _error("Request body must be a JSON object", 400)

    user_id = body.get("userId")
    raw_date = body.get("date")
    taken = body.get("taken")

    if not user_id or not raw_date:
        return _error("Missing required fields", 400)

    try:
        subject_id = _check_subject_id(user_id)
        day = _parse_param_day("date", raw_date)
        if taken is not None and not isinstance(taken, bool):
            raise InvalidRequest("taken must be a boolean")
    except InvalidRequest as exc:
        return _error(exc.message, exc.status_code)

    try:
        store = get_store()
        log = await run_in_threadpool(store.upsert, subject_id, day, taken)
    except StoreUnavailable as exc:
        logger.exception("POST /medication failed for userId=%s date=%s", subject_id, day)
        return _error(exc.to_dict(), 500)

    logger.info(
        "WRITE_OP route=POST /medication user=%s date=%s taken=%s",
        subject_id,
        day.isoformat(),
        log.taken,
    )
    return JSONResponse(log.to_json())


def create_app() -> Starlette:
    """Standalone Starlette app serving the Log Access API."""
    routes = [
        Route("/health", endpoint=health_check, methods=["GET"]),
        Route("/medication", endpoint=list_medication_logs, methods=["GET"]),
        Route("/medication", endpoint=upsert_medication_log, methods=["POST"]),
    ]
    return Starlette(routes=routes, middleware=[Middleware(SecurityHeadersMiddleware)])
