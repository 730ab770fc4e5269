"""Base HTTP transport for the medication Log Access API.

Provides ``BaseLogClient`` -- a thin async wrapper around
``httpx.AsyncClient``.  ``request`` never raises on transport or HTTP
errors: it returns a result dict instead, tagged with an ``error_type``
that :func:`errors.check_result` maps onto the error taxonomy:

    network            request did not complete (connect/read/timeout)
    invalid_request    HTTP 400
    store_unavailable  any other 4xx/5xx status

Redirects are disabled, and non-HTTPS base URLs are only accepted for
loopback hosts.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from typing import Any
from urllib.parse import urlparse

import httpx

__all__ = ["BaseLogClient"]

logger = logging.getLogger("meditrack.client")

_MAX_ERROR_LEN: int = 500


class BaseLogClient:
    """Async HTTP client for the Log Access API."""

    def __init__(
        self,
        base_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        parsed = urlparse(base_url)
        host = (parsed.hostname or "").lower()

        if parsed.scheme != "https" and not self._is_loopback(host):
            raise ValueError(
                f"Non-HTTPS base_url is only permitted for localhost. Got: {base_url}"
            )

        self._base_url: str = base_url.rstrip("/")
        self._http: httpx.AsyncClient = httpx.AsyncClient(
            follow_redirects=False,
            timeout=timeout or httpx.Timeout(connect=5.0, read=30.0, write=30.0, pool=5.0),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._http.aclose()

    async def __aenter__(self) -> BaseLogClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @staticmethod
    def _is_loopback(host: str) -> bool:
        """Check if host is a loopback address (localhost, 127.x.x.x, ::1, etc.)."""
        if host in ("localhost",):
            return True
        stripped = host.strip("[]")
        try:
            return ipaddress.ip_address(stripped).is_loopback
        except ValueError:
            return False

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request.  Returns a result dict; never raises on HTTP errors."""
        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        headers: dict[str, str] = {"Accept": "application/json"}
        if data is not None:
            headers["Content-Type"] = "application/json"

        try:
            response = await self._http.request(
                method,
                url,
                json=data,
                params=params,
                headers=headers,
            )
        except httpx.TransportError as exc:
            logger.warning("Log API %s %s transport error: %s", method, endpoint, exc)
            return {
                "status": "error",
                "error_type": "network",
                "message": "Medication log service temporarily unavailable.",
            }

        try:
            response_data = response.json()
        except (json.JSONDecodeError, ValueError):
            response_data = {"text": response.text[:_MAX_ERROR_LEN]}

        if response.status_code >= 400:
            logger.warning(
                "Log API %s %s returned status=%d",
                method,
                endpoint,
                response.status_code,
            )
            error_msg: Any = f"API error: {response.status_code}"
            if isinstance(response_data, dict) and response_data.get("error"):
                error_msg = response_data["error"]
                if isinstance(error_msg, dict):
                    error_msg = error_msg.get("message") or json.dumps(error_msg)
            error_msg = str(error_msg)
            if len(error_msg) > _MAX_ERROR_LEN:
                error_msg = error_msg[:_MAX_ERROR_LEN] + "..."
            return {
                "status": "error",
                "error_type": (
                    "invalid_request" if response.status_code == 400 else "store_unavailable"
                ),
                "message": error_msg,
                "status_code": response.status_code,
            }

        return {"status": "success", "data": response_data}
