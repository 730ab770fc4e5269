"""MediTrack server -- FastMCP app serving the medication Log Access API.

The HTTP JSON endpoints (``GET``/``POST /medication`` and ``/health``) are
mounted as custom routes next to the MCP tools, so one process serves the
calendar client and MCP-capable assistants alike.
"""

from __future__ import annotations

import importlib.metadata
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastmcp import FastMCP
from starlette.middleware import Middleware

import api
from _constants import DEFAULT_DB_PATH
from store import MedicationLogStore, set_store
from tools import load_domains

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("meditrack.server")

# Configure logging; LOG_LEVEL env var overrides the default INFO level.
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DB_PATH: str = os.environ.get("MEDITRACK_DB_PATH", DEFAULT_DB_PATH)

try:
    _APP_VERSION: str = importlib.metadata.version("meditrack")
except importlib.metadata.PackageNotFoundError:
    _APP_VERSION = os.environ.get("APP_VERSION", "dev")

# ---------------------------------------------------------------------------
# FastMCP instance
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Open the log store for the server's lifetime."""
    store = MedicationLogStore(DB_PATH)
    set_store(store)
    logger.info("MediTrack server %s starting up (db=%s)", _APP_VERSION, DB_PATH)
    try:
        yield
    finally:
        logger.info("MediTrack server shutting down")
        set_store(None)
        store.close()


mcp = FastMCP(name="meditrack", lifespan=_lifespan)

# Starlette Middleware descriptor passed to mcp.run() at startup.
_security_middleware = Middleware(api.SecurityHeadersMiddleware)

# ---------------------------------------------------------------------------
# HTTP routes
# ---------------------------------------------------------------------------

mcp.custom_route("/health", methods=["GET"])(api.health_check)
mcp.custom_route("/medication", methods=["GET"])(api.list_medication_logs)
mcp.custom_route("/medication", methods=["POST"])(api.upsert_medication_log)

# ---------------------------------------------------------------------------
# MCP tools
# ---------------------------------------------------------------------------

LOADED_DOMAINS: list[str] = load_domains(mcp)

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run(
        transport="http",
        host=os.environ.get("MCP_HOST", "127.0.0.1"),
        port=int(os.environ.get("MCP_PORT", "8100")),
        middleware=[_security_middleware],
    )
