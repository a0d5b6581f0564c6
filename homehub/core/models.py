"""Domain models for automation rules and telemetry readings."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

_CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class RuleValidationError(ValueError):
    """Raised when a rule payload cannot be turned into a Rule."""


class SolarCommand(str, Enum):
    NONE = ""
    SUNRISE = "sunrise"
    SUNSET = "sunset"

    @classmethod
    def parse(cls, value: Any) -> "SolarCommand":
        """Accept the enum value in any letter case (``sunSet`` included)."""
        if value is None:
            return cls.NONE
        if isinstance(value, SolarCommand):
            return value
        if not isinstance(value, str):
            raise RuleValidationError(f"Command must be a string, got {value!r}")
        normalised = value.strip().lower()
        for member in cls:
            if member.value == normalised:
                return member
        raise RuleValidationError(f"Unknown solar command {value!r}")


def is_clock_time(value: str) -> bool:
    return bool(_CLOCK_PATTERN.match(value))


@dataclass(frozen=True, slots=True)
class Rule:
    """A configured mapping from a local trigger time to an MQTT publish."""

    id: int
    topic: str
    message: str
    time: str = ""
    uses_solar_time: bool = False
    latitude: float = 0.0
    longitude: float = 0.0
    command: SolarCommand = SolarCommand.NONE

    def with_time(self, value: str) -> "Rule":
        return replace(self, time=value)

    def with_id(self, rule_id: int) -> "Rule":
        return replace(self, id=rule_id)

    def validate(self) -> None:
        if not self.topic:
            raise RuleValidationError("Topic must not be empty")
        if self.uses_solar_time:
            if self.command is SolarCommand.NONE:
                raise RuleValidationError(
                    "Solar rules need a command of 'sunrise' or 'sunset'"
                )
            if not -90.0 <= self.latitude <= 90.0:
                raise RuleValidationError(f"Latitude out of range: {self.latitude}")
            if not -180.0 <= self.longitude <= 180.0:
                raise RuleValidationError(f"Longitude out of range: {self.longitude}")
        elif not is_clock_time(self.time):
            raise RuleValidationError(f"Time must be HH:MM, got {self.time!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ID": self.id,
            "Topic": self.topic,
            "Message": self.message,
            "AdditionalCommand": self.uses_solar_time,
            "Time": self.time,
            "Longitude": self.longitude,
            "Latitude": self.latitude,
            "Command": self.command.value,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Rule":
        """Build and validate a rule from its snapshot/API representation."""
        if not isinstance(payload, Mapping):
            raise RuleValidationError("Rule must be a JSON object")

        rule_id = payload.get("ID")
        if isinstance(rule_id, bool) or not isinstance(rule_id, int):
            raise RuleValidationError(f"ID must be an integer, got {rule_id!r}")

        uses_solar_time = payload.get("AdditionalCommand", False)
        if not isinstance(uses_solar_time, bool):
            raise RuleValidationError("AdditionalCommand must be a boolean")

        rule = cls(
            id=rule_id,
            topic=_string(payload, "Topic"),
            message=_string(payload, "Message"),
            time=_string(payload, "Time"),
            uses_solar_time=uses_solar_time,
            latitude=_number(payload, "Latitude"),
            longitude=_number(payload, "Longitude"),
            command=SolarCommand.parse(payload.get("Command")),
        )
        rule.validate()
        return rule


def _string(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise RuleValidationError(f"{key} must be a string")
    return value


def _number(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key, 0.0)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleValidationError(f"{key} must be a number")
    try:
        result = float(value)
    except OverflowError:
        raise RuleValidationError(f"{key} must be finite") from None
    if not math.isfinite(result):
        raise RuleValidationError(f"{key} must be finite")
    return result


@dataclass(frozen=True, slots=True)
class Reading:
    """One telemetry sample; only one field is set per arrival."""

    temperature: Optional[float] = None
    humidity: Optional[float] = None

    def to_dict(self) -> Dict[str, float]:
        payload: Dict[str, float] = {}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.humidity is not None:
            payload["humidity"] = self.humidity
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Reading":
        if not isinstance(payload, Mapping):
            raise ValueError("Reading must be a JSON object")
        return cls(
            temperature=_optional_float(payload.get("temperature")),
            humidity=_optional_float(payload.get("humidity")),
        )


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected a number, got {value!r}")
    try:
        result = float(value)
    except OverflowError:
        raise ValueError("Reading value is out of range") from None
    if not math.isfinite(result):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return result
