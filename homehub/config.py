"""Configuration loader for homehub."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from . import constants


@dataclass(slots=True)
class MQTTConfig:
    broker_host: str = constants.DEFAULT_BROKER_HOST
    broker_port: int = constants.DEFAULT_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: str = constants.DEFAULT_CLIENT_ID
    keepalive: int = 60
    connect_timeout_seconds: float = 30.0
    publish_timeout_seconds: float = 5.0


@dataclass(slots=True)
class TelemetryConfig:
    enabled: bool = True
    temperature_topic: str = constants.TEMPERATURE_TOPIC
    humidity_topic: str = constants.HUMIDITY_TOPIC
    snapshot_path: Path = Path(constants.DEFAULT_TELEMETRY_SNAPSHOT)


@dataclass(slots=True)
class RulesConfig:
    snapshot_path: Path = Path(constants.DEFAULT_RULES_SNAPSHOT)


@dataclass(slots=True)
class SolarConfig:
    base_url: str = constants.DEFAULT_SOLAR_API_URL
    timeout_seconds: float = 10.0


@dataclass(slots=True)
class SchedulerConfig:
    interval_seconds: float = 60.0
    refresh_solar_daily: bool = True


@dataclass(slots=True)
class ApiConfig:
    enabled: bool = True
    host: str = constants.DEFAULT_API_HOST
    port: int = constants.DEFAULT_API_PORT
    cors_origins: tuple[str, ...] = ("*",)


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False
    max_bytes: int = constants.DEFAULT_LOG_MAX_BYTES
    backup_count: int = constants.DEFAULT_LOG_BACKUP_COUNT


@dataclass(slots=True)
class HubConfig:
    mqtt: MQTTConfig
    telemetry: TelemetryConfig
    rules: RulesConfig
    solar: SolarConfig
    scheduler: SchedulerConfig
    api: ApiConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _parse_list(value: str, *, default: Iterable[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional(parser: ConfigParser, section: str, option: str) -> Optional[str]:
    value = parser.get(section, option, fallback=None)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_config(path: Optional[Path] = None) -> HubConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "mqtt": {
                "broker_host": constants.DEFAULT_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_BROKER_PORT),
                "client_id": constants.DEFAULT_CLIENT_ID,
                "keepalive": "60",
                "connect_timeout_seconds": "30",
                "publish_timeout_seconds": "5",
            },
            "telemetry": {
                "enabled": "true",
                "temperature_topic": constants.TEMPERATURE_TOPIC,
                "humidity_topic": constants.HUMIDITY_TOPIC,
                "snapshot_path": constants.DEFAULT_TELEMETRY_SNAPSHOT,
            },
            "rules": {
                "snapshot_path": constants.DEFAULT_RULES_SNAPSHOT,
            },
            "solar": {
                "base_url": constants.DEFAULT_SOLAR_API_URL,
                "timeout_seconds": "10",
            },
            "scheduler": {
                "interval_seconds": "60",
                "refresh_solar_daily": "true",
            },
            "api": {
                "enabled": "true",
                "host": constants.DEFAULT_API_HOST,
                "port": str(constants.DEFAULT_API_PORT),
                "cors_origins": "*",
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
                "max_bytes": str(constants.DEFAULT_LOG_MAX_BYTES),
                "backup_count": str(constants.DEFAULT_LOG_BACKUP_COUNT),
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    broker_host_value = parser.get("mqtt", "broker_host")
    broker_port_value = parser.getint(
        "mqtt", "broker_port", fallback=constants.DEFAULT_BROKER_PORT
    )

    if ":" in broker_host_value:
        host_part, port_part = broker_host_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            broker_host_value = host_part
            broker_port_value = parsed_port
            parser.set("mqtt", "broker_host", host_part)
            parser.set("mqtt", "broker_port", str(parsed_port))

    mqtt = MQTTConfig(
        broker_host=broker_host_value,
        broker_port=broker_port_value,
        username=_optional(parser, "mqtt", "username"),
        password=_optional(parser, "mqtt", "password"),
        client_id=parser.get("mqtt", "client_id"),
        keepalive=max(1, parser.getint("mqtt", "keepalive", fallback=60)),
        connect_timeout_seconds=max(
            1.0, parser.getfloat("mqtt", "connect_timeout_seconds", fallback=30.0)
        ),
        publish_timeout_seconds=max(
            0.1, parser.getfloat("mqtt", "publish_timeout_seconds", fallback=5.0)
        ),
    )

    telemetry = TelemetryConfig(
        enabled=parser.getboolean("telemetry", "enabled", fallback=True),
        temperature_topic=parser.get("telemetry", "temperature_topic"),
        humidity_topic=parser.get("telemetry", "humidity_topic"),
        snapshot_path=Path(parser.get("telemetry", "snapshot_path")).expanduser(),
    )

    rules = RulesConfig(
        snapshot_path=Path(parser.get("rules", "snapshot_path")).expanduser(),
    )

    solar = SolarConfig(
        base_url=parser.get("solar", "base_url"),
        timeout_seconds=max(
            1.0, parser.getfloat("solar", "timeout_seconds", fallback=10.0)
        ),
    )

    scheduler = SchedulerConfig(
        interval_seconds=max(
            1.0, parser.getfloat("scheduler", "interval_seconds", fallback=60.0)
        ),
        refresh_solar_daily=parser.getboolean(
            "scheduler", "refresh_solar_daily", fallback=True
        ),
    )

    api = ApiConfig(
        enabled=parser.getboolean("api", "enabled", fallback=True),
        host=parser.get("api", "host"),
        port=parser.getint("api", "port", fallback=constants.DEFAULT_API_PORT),
        cors_origins=tuple(
            _parse_list(parser.get("api", "cors_origins", fallback="*"), default=["*"])
        ),
    )

    log_path = _optional(parser, "logging", "path")
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path).expanduser() if log_path else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
        max_bytes=max(0, parser.getint("logging", "max_bytes")),
        backup_count=max(0, parser.getint("logging", "backup_count")),
    )

    return HubConfig(
        mqtt=mqtt,
        telemetry=telemetry,
        rules=rules,
        solar=solar,
        scheduler=scheduler,
        api=api,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )


def save_config(config: HubConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
