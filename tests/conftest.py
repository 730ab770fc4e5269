"""Pytest configuration for MediTrack tests.

Sets environment variables before any test module imports server.py,
which reads its configuration at module level.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Generator

os.environ.setdefault("MEDITRACK_DB_PATH", ":memory:")
os.environ.setdefault("MEDITRACK_SUBJECT_ID", "subject-1")
os.environ.setdefault("DISPLAY_TIMEZONE", "America/Sao_Paulo")

import httpx
import pytest
import pytest_asyncio

import api
from clients import BaseLogClient, MedicationLogsClient
from store import MedicationLogStore, set_store

# Loopback so BaseLogClient accepts plain HTTP; ASGITransport never dials it.
API_BASE_URL = "http://127.0.0.1:8100"


@pytest.fixture
def store() -> Generator[MedicationLogStore, None, None]:
    """In-memory store installed as the active store for the test."""
    s = MedicationLogStore(":memory:")
    set_store(s)
    yield s
    set_store(None)
    s.close()


@pytest_asyncio.fixture
async def api_client(store: MedicationLogStore) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Raw httpx client talking to the Log Access API in-process."""
    transport = httpx.ASGITransport(app=api.create_app())
    async with httpx.AsyncClient(transport=transport, base_url=API_BASE_URL) as c:
        yield c


@pytest_asyncio.fixture
async def log_client(store: MedicationLogStore) -> AsyncGenerator[MedicationLogsClient, None]:
    """MedicationLogsClient wired to the Log Access API in-process."""
    base = BaseLogClient(API_BASE_URL, transport=httpx.ASGITransport(app=api.create_app()))
    yield MedicationLogsClient(base)
    await base.close()

