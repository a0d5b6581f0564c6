"""Health reporting for the hub's components."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class HubState(str, Enum):
    STARTING = "starting"
    ACTIVE = "active"
    DEGRADED = "degraded"
    STOPPING = "stopping"


@dataclass(slots=True)
class ComponentStatus:
    name: str
    healthy: bool
    detail: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Tracks component statuses and the hub lifecycle state."""

    def __init__(self) -> None:
        self._status: Dict[str, ComponentStatus] = {}
        self._state = HubState.STARTING
        self._state_changed_at = datetime.now(timezone.utc)
        self._lock = asyncio.Lock()

    @property
    def state(self) -> HubState:
        return self._state

    async def update(
        self, name: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            self._status[name] = ComponentStatus(
                name=name, healthy=healthy, detail=detail
            )
            self._reconcile_locked()

    async def set_state(self, state: HubState) -> None:
        async with self._lock:
            self._transition_locked(state)
            self._reconcile_locked()

    def _reconcile_locked(self) -> None:
        # ACTIVE and DEGRADED follow component health once the hub is up
        healthy = all(status.healthy for status in self._status.values())
        if self._state is HubState.ACTIVE and not healthy:
            self._transition_locked(HubState.DEGRADED)
        elif self._state is HubState.DEGRADED and healthy:
            self._transition_locked(HubState.ACTIVE)

    def _transition_locked(self, state: HubState) -> None:
        if state is self._state:
            return
        self._state = state
        self._state_changed_at = datetime.now(timezone.utc)

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            components = [status.as_dict() for status in self._status.values()]
            state = self._state
            changed_at = self._state_changed_at

        return {
            "status": "ok" if state is HubState.ACTIVE else "degraded",
            "state": state.value,
            "stateChangedAt": changed_at.isoformat(timespec="seconds"),
            "components": components,
        }
