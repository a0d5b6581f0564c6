"""Constants used across the homehub package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "homehub"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_RULES_SNAPSHOT = "config.json"
DEFAULT_TELEMETRY_SNAPSHOT = "temperature.json"

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883
DEFAULT_CLIENT_ID = APP_NAME

TEMPERATURE_TOPIC = "Temperature"
HUMIDITY_TOPIC = "Humidity"

TELEMETRY_WINDOW_SIZE = 10

DEFAULT_SOLAR_API_URL = "https://api.sunrise-sunset.org/json"

DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8080

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 3
