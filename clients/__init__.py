"""HTTP clients for the medication Log Access API."""

from __future__ import annotations

from clients._base import BaseLogClient
from clients.medication import MedicationLogsClient

__all__ = ["BaseLogClient", "MedicationLogsClient"]
