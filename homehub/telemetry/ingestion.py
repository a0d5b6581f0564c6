"""Decodes sensor MQTT messages into readings for the telemetry store."""

from __future__ import annotations

import json
import logging
import math
from typing import Dict, Optional

from ..config import TelemetryConfig
from ..core.models import Reading
from ..core.protocols import Subscriber
from .store import TelemetryStore

LOGGER = logging.getLogger(__name__)

TEMPERATURE = "temperature"
HUMIDITY = "humidity"


class IngestionAdapter:
    """Routes "Temperature"/"Humidity" payloads into the telemetry store.

    Malformed payloads are logged and dropped; they never raise out of
    :meth:`handle_message`, so the MQTT subscription keeps running.
    """

    def __init__(
        self, store: TelemetryStore, config: Optional[TelemetryConfig] = None
    ) -> None:
        config = config or TelemetryConfig()
        self._store = store
        self._fields: Dict[str, str] = {
            config.temperature_topic: TEMPERATURE,
            config.humidity_topic: HUMIDITY,
        }

    @property
    def topics(self) -> list[str]:
        return list(self._fields)

    def subscribe(self, client: Subscriber) -> None:
        """Subscribe to every sensor topic at QoS 0.

        Raises whatever the client raises; at startup that is fatal.
        """
        for topic in self._fields:
            client.subscribe(topic, qos=0)
        LOGGER.info("Subscribed to sensor topics: %s", ", ".join(self._fields))

    def resubscribe(self, client: Subscriber) -> None:
        try:
            self.subscribe(client)
        except Exception:
            LOGGER.exception("Failed to re-subscribe to sensor topics")

    async def handle_message(self, topic: str, payload: bytes) -> Optional[Reading]:
        field = self._fields.get(topic)
        if field is None:
            LOGGER.debug("Ignoring message on unexpected topic %s", topic)
            return None

        value = _decode_number(payload)
        if value is None:
            LOGGER.warning("Discarding malformed %s payload: %r", topic, payload[:64])
            return None

        reading = Reading(**{field: value})
        await self._store.append(reading)
        return reading


def _decode_number(payload: bytes) -> Optional[float]:
    try:
        value = json.loads(payload)
    except (ValueError, TypeError):
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        value = float(value)
    except (OverflowError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value
