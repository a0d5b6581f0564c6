"""Adapter modules for external integrations."""

from .mqtt import MQTTClient, MQTTConnectionError
from .solar import SolarTimeError, SolarTimeResolver

__all__ = [
    "MQTTClient",
    "MQTTConnectionError",
    "SolarTimeError",
    "SolarTimeResolver",
]
