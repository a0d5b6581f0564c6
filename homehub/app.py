"""Main application entry-point for homehub."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, List, Optional, Set

from .adapters import MQTTClient, MQTTConnectionError, SolarTimeResolver
from .api import ApiServer, create_app
from .config import HubConfig, load_config
from .core.snapshots import JsonSnapshot, SnapshotError
from .health import HealthReporter, HubState
from .logging import configure_logging
from .rules import RuleStore, empty_rules_document
from .scheduler import ActionDispatcher, DispatchResult, Scheduler
from .telemetry import IngestionAdapter, TelemetryStore

LOGGER = logging.getLogger(__name__)


class HubStartupError(RuntimeError):
    """Raised when the hub cannot reach a fully initialised state."""


class HubApp:
    """Owns the stores and wires them to MQTT, the scheduler and the API.

    Telemetry ingestion is a capability: with ``telemetry.enabled`` off the
    hub never subscribes to sensor topics and only serves rules.
    """

    def __init__(
        self,
        config: Optional[HubConfig] = None,
        *,
        mqtt_client: Optional[MQTTClient] = None,
        resolver: Optional[SolarTimeResolver] = None,
    ) -> None:
        self._config = config or load_config()
        self._health = HealthReporter()
        self._mqtt_client = mqtt_client or MQTTClient(self._config.mqtt)
        self._resolver = resolver or SolarTimeResolver(self._config.solar)

        self.telemetry = TelemetryStore(
            JsonSnapshot(self._config.telemetry.snapshot_path, empty=list)
        )
        self.rules = RuleStore(
            JsonSnapshot(self._config.rules.snapshot_path, empty=empty_rules_document),
            resolver=self._resolver,
        )
        self._ingestion: Optional[IngestionAdapter] = None
        if self._config.telemetry.enabled:
            self._ingestion = IngestionAdapter(self.telemetry, self._config.telemetry)

        self.scheduler = Scheduler(
            self.rules,
            ActionDispatcher(
                self._mqtt_client, timeout=self._config.mqtt.publish_timeout_seconds
            ),
            interval=self._config.scheduler.interval_seconds,
            refresh_solar_daily=self._config.scheduler.refresh_solar_daily,
            on_tick=self._on_tick,
        )
        self._api_server: Optional[ApiServer] = None
        self._mqtt_connected = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._background_tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def health(self) -> HealthReporter:
        return self._health

    @classmethod
    def start(cls, config: Optional[HubConfig] = None) -> int:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
            max_bytes=instance._config.logging.max_bytes,
            backup_count=instance._config.logging.backup_count,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("homehub received shutdown signal")
        except HubStartupError as exc:
            LOGGER.error("homehub failed to start: %s", exc)
            return 1
        return 0

    async def run(self) -> None:
        """Start every component, then wait until :meth:`shutdown`."""

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        LOGGER.info("homehub starting with config: %s", self._config.path)
        try:
            await self.start_services()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("homehub received shutdown signal")
            raise
        finally:
            await self.stop_services()

    def shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def start_services(self) -> None:
        await self._health.set_state(HubState.STARTING)

        if self._ingestion is not None:
            try:
                await self.telemetry.load()
            except SnapshotError as exc:
                raise HubStartupError(f"telemetry snapshot: {exc}") from exc
            await self._health.update("telemetry", True, None)

        await self._resolver.start()
        try:
            failed = await self.rules.load()
        except SnapshotError as exc:
            raise HubStartupError(f"rule snapshot: {exc}") from exc
        await self._report_rule_failures(failed)

        try:
            await self._mqtt_client.connect()
        except MQTTConnectionError as exc:
            await self._health.update("mqtt", False, str(exc))
            raise HubStartupError(f"mqtt: {exc}") from exc
        self._mqtt_connected = True
        await self._health.update("mqtt", True, None)

        if self._ingestion is not None:
            self._mqtt_client.set_message_handler(self._ingestion.handle_message)
            try:
                self._ingestion.subscribe(self._mqtt_client)
            except MQTTConnectionError as exc:
                raise HubStartupError(f"subscribe: {exc}") from exc
            self._mqtt_client.register_connect_handler(self._on_mqtt_reconnect)
        self._mqtt_client.register_disconnect_handler(self._on_mqtt_disconnect)

        self.scheduler.start()
        await self._health.update("scheduler", True, None)

        if self._config.api.enabled:
            await self._start_api()

        await self._health.set_state(HubState.ACTIVE)
        LOGGER.info("homehub active")

    async def stop_services(self) -> None:
        await self._health.set_state(HubState.STOPPING)

        await self.scheduler.stop()

        if self._api_server is not None:
            await self._api_server.stop()
            self._api_server = None

        if self._mqtt_connected:
            await self._mqtt_client.disconnect()
            self._mqtt_connected = False

        await self._resolver.stop()

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def _start_api(self) -> None:
        api = self._config.api
        app = create_app(
            self.rules,
            self.telemetry,
            self._health,
            cors_origins=api.cors_origins,
        )
        server = ApiServer(app, api.host, api.port)
        try:
            await server.start()
        except OSError as exc:
            await self._health.update("api", False, str(exc))
            raise HubStartupError(f"api: {exc}") from exc
        self._api_server = server
        await self._health.update("api", True, None)

    async def _report_rule_failures(self, failed: List[int]) -> None:
        if failed:
            detail = "solar resolution failed for rules " + ", ".join(
                str(rule_id) for rule_id in failed
            )
            await self._health.update("rules", False, detail)
        else:
            await self._health.update("rules", True, None)

    def _on_tick(self, results: List[DispatchResult]) -> None:
        failed = [result.rule_id for result in results if not result.success]
        detail = None
        if failed:
            detail = "publish failed for rules " + ", ".join(map(str, failed))
        self._spawn(self._health.update("scheduler", not failed, detail))

    def _on_mqtt_reconnect(self, rc: int) -> None:
        # paho drops subscriptions on a clean-session reconnect
        if self._ingestion is not None:
            self._ingestion.resubscribe(self._mqtt_client)
        self._spawn(self._health.update("mqtt", True, None))

    def _on_mqtt_disconnect(self, rc: int) -> None:
        self._spawn(self._health.update("mqtt", False, f"disconnected (rc={rc})"))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
