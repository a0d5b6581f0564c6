from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

from homehub.adapters import SolarTimeError
from homehub.core import JsonSnapshot, SolarCommand
from homehub.rules import RuleStore, empty_rules_document
from homehub.telemetry import TelemetryStore


class FakePublisher:
    """Records publishes; raises for topics listed in ``failing``."""

    def __init__(self, failing: Tuple[str, ...] = ()) -> None:
        self.published: List[Tuple[str, Union[bytes, str], int, bool]] = []
        self.failing = set(failing)

    def publish(self, topic, payload, qos=0, retain=False) -> None:
        if topic in self.failing:
            raise RuntimeError(f"broker refused {topic}")
        self.published.append((topic, payload, qos, retain))


class StubResolver:
    """Returns canned times per command, or raises when ``error`` is set."""

    def __init__(
        self,
        times: Optional[Dict[SolarCommand, str]] = None,
        *,
        error: Optional[str] = None,
    ) -> None:
        self.times = times or {
            SolarCommand.SUNRISE: "06:12",
            SolarCommand.SUNSET: "19:32",
        }
        self.error = error
        self.calls: List[Tuple[SolarCommand, float, float]] = []

    async def resolve(self, command, latitude, longitude) -> str:
        self.calls.append((command, latitude, longitude))
        if self.error is not None:
            raise SolarTimeError(self.error)
        return self.times[command]


@pytest.fixture
def rules_path(tmp_path: Path) -> Path:
    return tmp_path / "config.json"


@pytest.fixture
def telemetry_path(tmp_path: Path) -> Path:
    return tmp_path / "temperature.json"


@pytest.fixture
def resolver() -> StubResolver:
    return StubResolver()


@pytest.fixture
def rule_store(rules_path: Path, resolver: StubResolver) -> RuleStore:
    return RuleStore(JsonSnapshot(rules_path, empty=empty_rules_document), resolver)


@pytest.fixture
def telemetry_store(telemetry_path: Path) -> TelemetryStore:
    return TelemetryStore(JsonSnapshot(telemetry_path, empty=list))


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()
