"""Shared constants for the MediTrack server and client."""

from __future__ import annotations

ENTITY_KIND: str = "medicationLogs"
DEFAULT_DISPLAY_TIMEZONE: str = "America/Sao_Paulo"
DEFAULT_SUBJECT_ID: str = "default"
DEFAULT_DB_PATH: str = "meditrack.db"
DEFAULT_API_BASE_URL: str = "http://127.0.0.1:8100"
MAX_QUERY_DAYS: int = 366
MAX_SUBJECT_ID_LEN: int = 128
CACHE_MAX_MONTHS: int = 64
TEMP_ID_PREFIX: str = "temp-"
