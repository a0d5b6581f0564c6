"""MQTT adapter encapsulating paho-mqtt client usage."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from typing import Any, Callable, List, Optional, Union

import paho.mqtt.client as mqtt

from ..config import MQTTConfig
from ..core.protocols import MessageHandler

LOGGER = logging.getLogger(__name__)
PAHO_LOGGER = logging.getLogger(f"{__name__}.paho")


class MQTTConnectionError(RuntimeError):
    """Raised when the MQTT client fails to connect, publish or subscribe."""


def _reason_value(reason_code: Any) -> int:
    # paho v2 hands over ReasonCode objects; older callers pass plain ints.
    return int(getattr(reason_code, "value", reason_code) or 0)


class MQTTClient:
    """Async-friendly wrapper over the threaded paho-mqtt client."""

    def __init__(self, config: MQTTConfig, *, client_id: Optional[str] = None) -> None:
        self.config = config
        self.client_id = client_id or config.client_id
        self.keepalive = config.keepalive

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected_event: Optional[asyncio.Event] = None
        self._disconnect_event: Optional[asyncio.Event] = None
        self._message_handler: Optional[MessageHandler] = None
        self._last_connect_rc: Optional[int] = None
        self._connected: bool = False
        self._disconnect_handlers: List[Callable[[int], None]] = []
        self._connect_handlers: List[Callable[[int], None]] = []

    async def connect(self, timeout: Optional[float] = None) -> None:
        """Connect to the MQTT broker and wait for acknowledgement."""

        timeout = timeout if timeout is not None else self.config.connect_timeout_seconds
        self._loop = asyncio.get_running_loop()
        self._connected_event = asyncio.Event()
        self._disconnect_event = asyncio.Event()
        self._last_connect_rc = None

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
        )
        client.enable_logger(PAHO_LOGGER)

        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        self._client = client

        LOGGER.info(
            "Connecting to MQTT broker %s:%s as %s",
            self.config.broker_host,
            self.config.broker_port,
            self.client_id,
        )

        client.connect_async(
            self.config.broker_host, self.config.broker_port, self.keepalive
        )
        client.loop_start()

        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)
            if self._last_connect_rc != 0:
                raise MQTTConnectionError(
                    f"MQTT broker rejected connection (rc={self._last_connect_rc})"
                )
        except asyncio.TimeoutError as exc:
            client.loop_stop()
            self._client = None
            raise MQTTConnectionError("Timed out connecting to MQTT broker") from exc
        except MQTTConnectionError:
            client.loop_stop()
            self._client = None
            raise

    async def disconnect(self, timeout: float = 5.0) -> None:
        """Gracefully disconnect from the broker."""

        if not self._client:
            return

        assert self._disconnect_event is not None

        self._client.disconnect()

        try:
            await asyncio.wait_for(self._disconnect_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Timed out waiting for MQTT disconnect acknowledgement")
        finally:
            self._client.loop_stop()
            self._client = None
        self._connected = False

    def publish(
        self, topic: str, payload: Union[bytes, str], qos: int = 0, retain: bool = False
    ) -> None:
        if not self._client:
            raise MQTTConnectionError("MQTT client not connected")

        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Publish to {topic} failed with rc={info.rc}")

    def subscribe(self, topic: str, qos: int = 0) -> None:
        if not self._client:
            raise MQTTConnectionError("MQTT client not connected")
        result, _ = self._client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Subscribe to {topic} failed with rc={result}")

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self._message_handler = handler

    def register_disconnect_handler(self, handler: Callable[[int], None]) -> None:
        self._disconnect_handlers.append(handler)

    def register_connect_handler(self, handler: Callable[[int], None]) -> None:
        self._connect_handlers.append(handler)

    def is_connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Internal callbacks bridging the threaded paho callbacks into asyncio
    # ------------------------------------------------------------------
    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        rc = _reason_value(reason_code)
        self._last_connect_rc = rc
        loop = self._loop
        if rc == 0:
            LOGGER.info("Connected to MQTT broker")
            self._connected = True
            if loop:
                for handler in self._connect_handlers:
                    loop.call_soon_threadsafe(handler, rc)
        else:
            LOGGER.error("MQTT connection failed with rc=%s", rc)
            self._connected = False
        if loop and self._connected_event:
            loop.call_soon_threadsafe(self._connected_event.set)

    def _on_disconnect(
        self, client, userdata, flags, reason_code=0, properties=None
    ) -> None:
        rc = _reason_value(reason_code)
        LOGGER.info("Disconnected from MQTT broker (rc=%s)", rc)
        self._connected = False
        loop = self._loop
        if not loop:
            return
        if self._disconnect_event:
            loop.call_soon_threadsafe(self._disconnect_event.set)
        for handler in self._disconnect_handlers:
            loop.call_soon_threadsafe(handler, rc)

    def _on_message(self, client, userdata, message: mqtt.MQTTMessage) -> None:
        handler = self._message_handler
        loop = self._loop
        if not handler or not loop:
            return

        try:
            result = handler(message.topic, message.payload)
            if asyncio.iscoroutine(result):
                future = asyncio.run_coroutine_threadsafe(result, loop)
                future.add_done_callback(_log_handler_failure)
        except Exception:  # pragma: no cover - defensive logging
            LOGGER.exception("MQTT message handler raised an exception")


def _log_handler_failure(future: concurrent.futures.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error(
            "MQTT message handler raised an exception",
            exc_info=(type(exc), exc, exc.__traceback__),
        )
