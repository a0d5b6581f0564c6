"""Protocol definitions for the hub's external collaborators."""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, Union

from .models import SolarCommand

MessageHandler = Callable[[str, bytes], Union[Awaitable[None], None]]


class Publisher(Protocol):
    """Anything that can push a payload onto a broker topic."""

    def publish(
        self,
        topic: str,
        payload: Union[bytes, str],
        qos: int = 0,
        retain: bool = False,
    ) -> None:
        """Publish a payload, raising on failure."""
        ...


class Subscriber(Protocol):
    def subscribe(self, topic: str, qos: int = 0) -> None:
        """Subscribe to a topic, raising on failure."""
        ...


class SolarResolver(Protocol):
    """Turns a coordinate and sunrise/sunset choice into a local HH:MM."""

    async def resolve(
        self, command: SolarCommand, latitude: float, longitude: float
    ) -> str:
        """Return the local trigger time.

        Raises:
            SolarTimeError: for transport, status or parse failures.
        """
        ...
