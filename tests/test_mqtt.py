"""Tests for the MQTT adapter."""

import asyncio
import logging
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest
import pytest_asyncio

from homehub.adapters import MQTTClient, MQTTConnectionError
from homehub.config import MQTTConfig


class FakeMqttClient:
    """Minimal fake paho-mqtt client for testing."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        events: dict,
        *,
        rc_connect: int = 0,
        rc_disconnect: int = 0,
        publish_rc: int = mqtt.MQTT_ERR_SUCCESS,
        subscribe_rc: int = mqtt.MQTT_ERR_SUCCESS,
        **kwargs,
    ):
        self._loop = loop
        self._events = events
        self._rc_connect = rc_connect
        self._rc_disconnect = rc_disconnect
        self._publish_rc = publish_rc
        self._subscribe_rc = subscribe_rc
        events["init_kwargs"] = kwargs

        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    # paho interface -------------------------------------------------
    def enable_logger(self, logger):
        self._events.setdefault("logger_enabled", True)

    def username_pw_set(self, username, password=None):
        self._events["auth"] = (username, password)

    def connect_async(self, host, port, keepalive):
        self._events["connect_args"] = (host, port, keepalive)
        if self.on_connect:
            self._loop.call_soon(
                self.on_connect, self, None, None, self._rc_connect, None
            )

    def loop_start(self):
        self._events["loop_start"] = self._events.get("loop_start", 0) + 1

    def loop_stop(self):
        self._events["loop_stop"] = self._events.get("loop_stop", 0) + 1

    def disconnect(self):
        self._events["disconnect_called"] = True
        if self.on_disconnect:
            self._loop.call_soon(
                self.on_disconnect, self, None, None, self._rc_disconnect, None
            )

    def publish(self, topic, payload, qos=0, retain=False):
        self._events.setdefault("published", []).append((topic, payload, qos, retain))
        return SimpleNamespace(rc=self._publish_rc)

    def subscribe(self, topic, qos=0):
        self._events.setdefault("subscribed", []).append((topic, qos))
        return self._subscribe_rc, 1


def _install(monkeypatch, events, **options):
    loop = asyncio.get_running_loop()

    def factory(*args, **kwargs):
        return FakeMqttClient(loop, events, **options, **kwargs)

    monkeypatch.setattr("homehub.adapters.mqtt.mqtt.Client", factory)


@pytest_asyncio.fixture
async def mqtt_client(monkeypatch):
    events: dict = {}
    _install(monkeypatch, events)

    config = MQTTConfig(
        broker_host="mqtt",
        broker_port=1883,
        username="server",
        password="secret",
        client_id="homehub-test",
    )

    client = MQTTClient(config)
    await client.connect()

    yield client, events

    await client.disconnect()


@pytest.mark.asyncio
async def test_connect_configures_client(mqtt_client):
    client, events = mqtt_client

    assert events["connect_args"] == ("mqtt", 1883, 60)
    assert events["auth"] == ("server", "secret")
    assert events["loop_start"] == 1
    assert events["init_kwargs"]["client_id"] == "homehub-test"
    assert client.is_connected()


@pytest.mark.asyncio
async def test_anonymous_connect_skips_credentials(monkeypatch):
    events: dict = {}
    _install(monkeypatch, events)

    client = MQTTClient(MQTTConfig())
    await client.connect()
    await client.disconnect()

    assert "auth" not in events


@pytest.mark.asyncio
async def test_publish_defaults_to_qos_zero(mqtt_client):
    client, events = mqtt_client

    client.publish("lights", "on")

    assert events["published"] == [("lights", "on", 0, False)]


@pytest.mark.asyncio
async def test_subscribe_records_topics(mqtt_client):
    client, events = mqtt_client

    client.subscribe("Temperature")

    assert events["subscribed"] == [("Temperature", 0)]


@pytest.mark.asyncio
async def test_message_handler_dispatches_async(monkeypatch):
    events: dict = {}
    _install(monkeypatch, events)

    client = MQTTClient(MQTTConfig())
    message_event = asyncio.Event()

    async def handler(topic: str, payload: bytes) -> None:
        events["handled"] = (topic, payload)
        message_event.set()

    client.set_message_handler(handler)
    await client.connect()

    message = SimpleNamespace(topic="Humidity", payload=b"48.5")
    client._on_message(client._client, None, message)  # type: ignore[arg-type]

    await asyncio.wait_for(message_event.wait(), timeout=1.0)
    await client.disconnect()

    assert events["handled"] == ("Humidity", b"48.5")


@pytest.mark.asyncio
async def test_publish_failure_raises(monkeypatch):
    events: dict = {}
    _install(monkeypatch, events, publish_rc=mqtt.MQTT_ERR_NO_CONN)

    client = MQTTClient(MQTTConfig())
    await client.connect()

    with pytest.raises(MQTTConnectionError):
        client.publish("lights", "on")

    await client.disconnect()


@pytest.mark.asyncio
async def test_subscribe_failure_raises(monkeypatch):
    events: dict = {}
    _install(monkeypatch, events, subscribe_rc=mqtt.MQTT_ERR_NO_CONN)

    client = MQTTClient(MQTTConfig())
    await client.connect()

    with pytest.raises(MQTTConnectionError):
        client.subscribe("Temperature")

    await client.disconnect()


def test_publish_without_connection_raises():
    client = MQTTClient(MQTTConfig())

    with pytest.raises(MQTTConnectionError):
        client.publish("lights", "on")


@pytest.mark.asyncio
async def test_connect_and_disconnect_handlers_invoked(monkeypatch):
    events: dict = {}
    _install(monkeypatch, events, rc_disconnect=7)

    client = MQTTClient(MQTTConfig())
    connected = asyncio.Event()
    disconnected = asyncio.Event()

    def _on_connect(rc: int) -> None:
        events["connect_rc"] = rc
        connected.set()

    def _on_disconnect(rc: int) -> None:
        events["disconnect_rc"] = rc
        disconnected.set()

    client.register_connect_handler(_on_connect)
    client.register_disconnect_handler(_on_disconnect)

    await client.connect()
    await asyncio.wait_for(connected.wait(), timeout=1.0)
    await client.disconnect()
    await asyncio.wait_for(disconnected.wait(), timeout=1.0)

    assert events["connect_rc"] == 0
    assert events["disconnect_rc"] == 7
    assert not client.is_connected()


@pytest.mark.asyncio
async def test_connect_failure_raises(monkeypatch):
    events: dict = {}
    _install(monkeypatch, events, rc_connect=5)

    client = MQTTClient(MQTTConfig())

    with pytest.raises(MQTTConnectionError, match="rc=5"):
        await client.connect()

    assert events["loop_stop"] == 1


@pytest.mark.asyncio
async def test_failing_async_handler_is_logged(monkeypatch, caplog):
    events: dict = {}
    _install(monkeypatch, events)

    client = MQTTClient(MQTTConfig())
    handled = asyncio.Event()

    async def handler(topic: str, payload: bytes) -> None:
        handled.set()
        raise OverflowError("int too large to convert to float")

    client.set_message_handler(handler)
    await client.connect()

    message = SimpleNamespace(topic="Temperature", payload=b"1" + b"0" * 400)
    with caplog.at_level(logging.ERROR, logger="homehub.adapters.mqtt"):
        client._on_message(client._client, None, message)  # type: ignore[arg-type]
        await asyncio.wait_for(handled.wait(), timeout=1.0)
        for _ in range(5):
            await asyncio.sleep(0)

    await client.disconnect()

    assert "MQTT message handler raised an exception" in caplog.text
    assert "OverflowError" in caplog.text
