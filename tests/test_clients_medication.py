"""Tests for clients/medication.py -- MedicationLogsClient over respx-mocked HTTP."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from datetime import date

import httpx
import pytest
import pytest_asyncio
import respx

from clients._base import BaseLogClient
from clients.medication import MedicationLogsClient
from errors import InvalidRequest, NetworkFailure, StoreUnavailable

BASE_URL = "https://logs.example.com"
URL = f"{BASE_URL}/medication"
SUBJECT = "subject-1"


def _log(day: str, taken: bool, log_id: str = "abc") -> dict:
    return {
        "id": log_id,
        "userId": SUBJECT,
        "date": day,
        "taken": taken,
        "createdAt": "2024-02-01T10:00:00.000Z",
        "updatedAt": "2024-02-01T10:00:00.000Z",
    }


@pytest_asyncio.fixture
async def base_client() -> AsyncGenerator[BaseLogClient, None]:
    c = BaseLogClient(base_url=BASE_URL)
    yield c
    await c.close()


@pytest.fixture
def client(base_client: BaseLogClient) -> MedicationLogsClient:
    return MedicationLogsClient(base_client)


class TestListLogs:
    @respx.mock
    async def test_sends_range_params(self, client: MedicationLogsClient) -> None:
        route = respx.get(
            URL,
            params={"userId": SUBJECT, "startDate": "2024-02-01", "endDate": "2024-02-29"},
        ).mock(return_value=httpx.Response(200, json=[]))
        result = await client.list_logs(SUBJECT, date(2024, 2, 1), date(2024, 2, 29))
        assert route.called
        assert result == {"status": "success", "data": []}


class TestFetchMonth:
    @respx.mock
    async def test_requests_whole_month_and_parses(self, client: MedicationLogsClient) -> None:
        route = respx.get(URL).mock(
            return_value=httpx.Response(
                200, json=[_log("2024-02-01", True, "a"), _log("2024-02-29", False, "b")]
            )
        )
        entries = await client.fetch_month(SUBJECT, 2024, 2)
        params = route.calls.last.request.url.params
        assert params["startDate"] == "2024-02-01"
        assert params["endDate"] == "2024-02-29"
        assert [(e.id, e.date, e.taken) for e in entries] == [
            ("a", date(2024, 2, 1), True),
            ("b", date(2024, 2, 29), False),
        ]

    @respx.mock
    async def test_timestamp_dates_keep_calendar_day(self, client: MedicationLogsClient) -> None:
        respx.get(URL).mock(
            return_value=httpx.Response(200, json=[_log("2024-02-10T00:00:00.000Z", True)])
        )
        (entry,) = await client.fetch_month(SUBJECT, 2024, 2)
        assert entry.date == date(2024, 2, 10)

    @respx.mock
    async def test_400_raises_invalid_request(self, client: MedicationLogsClient) -> None:
        respx.get(URL).mock(
            return_value=httpx.Response(400, json={"error": "Missing required parameters"})
        )
        with pytest.raises(InvalidRequest):
            await client.fetch_month(SUBJECT, 2024, 2)

    @respx.mock
    async def test_500_raises_store_unavailable(self, client: MedicationLogsClient) -> None:
        respx.get(URL).mock(
            return_value=httpx.Response(500, json={"error": "Failed to fetch medication logs"})
        )
        with pytest.raises(StoreUnavailable, match="Failed to fetch medication logs"):
            await client.fetch_month(SUBJECT, 2024, 2)

    @respx.mock
    async def test_connect_error_raises_network_failure(
        self, client: MedicationLogsClient
    ) -> None:
        respx.get(URL).mock(side_effect=httpx.ConnectTimeout("timed out"))
        with pytest.raises(NetworkFailure):
            await client.fetch_month(SUBJECT, 2024, 2)

    @respx.mock
    async def test_malformed_entries_raise_store_unavailable(
        self, client: MedicationLogsClient
    ) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, json=[{"id": "x"}]))
        with pytest.raises(StoreUnavailable, match="malformed"):
            await client.fetch_month(SUBJECT, 2024, 2)

    @respx.mock
    async def test_non_list_body_raises(self, client: MedicationLogsClient) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, json={"logs": []}))
        with pytest.raises(StoreUnavailable, match="unexpected"):
            await client.fetch_month(SUBJECT, 2024, 2)


class TestSetTaken:
    @respx.mock
    async def test_posts_body_and_parses_entry(self, client: MedicationLogsClient) -> None:
        route = respx.post(URL).mock(
            return_value=httpx.Response(200, json=_log("2024-02-14", True, "srv"))
        )
        entry = await client.set_taken(SUBJECT, date(2024, 2, 14), True)
        body = json.loads(route.calls.last.request.content)
        assert body == {"userId": SUBJECT, "date": "2024-02-14", "taken": True}
        assert entry.id == "srv"
        assert entry.taken is True

    @respx.mock
    async def test_error_raises(self, client: MedicationLogsClient) -> None:
        respx.post(URL).mock(
            return_value=httpx.Response(500, json={"error": {"message": "write failed"}})
        )
        with pytest.raises(StoreUnavailable, match="write failed"):
            await client.set_taken(SUBJECT, date(2024, 2, 14), True)
