"""Bounded FIFO of the most recent sensor readings."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional

from ..constants import TELEMETRY_WINDOW_SIZE
from ..core.models import Reading
from ..core.snapshots import JsonSnapshot, SnapshotError

LOGGER = logging.getLogger(__name__)


class TelemetryStore:
    """Holds the last ``capacity`` readings, oldest first.

    Appends and reads are serialised by one ``asyncio.Lock``. The snapshot
    file is rewritten while the lock is held so the on-disk order always
    matches arrival order. A failed write is logged and the in-memory append
    stands.
    """

    def __init__(
        self,
        snapshot: Optional[JsonSnapshot] = None,
        *,
        capacity: int = TELEMETRY_WINDOW_SIZE,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._snapshot = snapshot
        self._capacity = capacity
        self._window: Deque[Reading] = deque(maxlen=capacity)
        self._lock = asyncio.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    async def load(self) -> int:
        """Populate the window from the snapshot file.

        Returns the number of readings restored. Raises ``SnapshotError`` when
        the file exists but cannot be decoded.
        """
        if self._snapshot is None:
            return 0

        document = self._snapshot.load()
        if not isinstance(document, list):
            raise SnapshotError(
                f"Telemetry snapshot {self._snapshot.path} must hold a JSON array"
            )
        try:
            readings = [Reading.from_dict(item) for item in document]
        except ValueError as exc:
            raise SnapshotError(
                f"Invalid reading in {self._snapshot.path}: {exc}"
            ) from exc

        async with self._lock:
            self._window.clear()
            self._window.extend(readings)
            count = len(self._window)

        LOGGER.info("Restored %d telemetry readings", count)
        return count

    async def append(self, reading: Reading) -> None:
        async with self._lock:
            # deque(maxlen=...) drops the head once full
            self._window.append(reading)
            self._flush_locked()

    async def snapshot(self) -> List[Reading]:
        async with self._lock:
            return list(self._window)

    def _flush_locked(self) -> None:
        if self._snapshot is None:
            return
        try:
            self._snapshot.save([reading.to_dict() for reading in self._window])
        except SnapshotError as exc:
            LOGGER.warning("Failed to persist telemetry window: %s", exc)
