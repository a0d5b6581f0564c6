"""Sensor telemetry ingestion and the bounded recent-readings window."""

from .ingestion import IngestionAdapter
from .store import TelemetryStore

__all__ = ["IngestionAdapter", "TelemetryStore"]
