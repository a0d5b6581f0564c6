"""HTTP control surface over the rule and telemetry stores."""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from aiohttp import web

from .core.models import Rule, RuleValidationError
from .health import HealthReporter
from .rules import (
    RuleNotFoundError,
    RulePersistenceError,
    RuleResolutionError,
    RuleStore,
    UpsertOutcome,
)
from .telemetry import TelemetryStore

LOGGER = logging.getLogger(__name__)

RULES_KEY = web.AppKey("rules", RuleStore)
TELEMETRY_KEY = web.AppKey("telemetry", TelemetryStore)
HEALTH_KEY = web.AppKey("health", HealthReporter)

ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def build_cors_middleware(origins: Iterable[str]):
    allowed = tuple(origins) or ("*",)

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            response = await handler(request)

        origin = request.headers.get("Origin")
        if "*" in allowed:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    return cors_middleware


async def _read_rule(request: web.Request) -> Rule:
    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RuleValidationError("Invalid JSON format") from exc
    return Rule.from_dict(payload)


async def list_rules(request: web.Request) -> web.Response:
    rules = await request.app[RULES_KEY].list()
    return web.json_response([rule.to_dict() for rule in rules])


async def upsert_rule(request: web.Request) -> web.Response:
    try:
        rule = await _read_rule(request)
        outcome = await request.app[RULES_KEY].upsert(rule)
    except RuleValidationError as exc:
        return _error(400, str(exc))
    except RuleResolutionError as exc:
        return _error(502, str(exc))
    except RulePersistenceError:
        return _error(500, "Failed to save configuration")

    verb = "added" if outcome is UpsertOutcome.ADDED else "updated"
    return web.json_response({"message": f"Configuration {verb} successfully"})


async def update_rule(request: web.Request) -> web.Response:
    try:
        rule_id = int(request.match_info["id"])
    except ValueError:
        return _error(400, "Configuration id must be an integer")

    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Invalid configuration data")
    if isinstance(payload, dict):
        # the path id is authoritative; a body without ID is accepted
        payload = {**payload, "ID": rule_id}

    try:
        rule = Rule.from_dict(payload)
        stored = await request.app[RULES_KEY].update(rule_id, rule)
    except RuleValidationError as exc:
        return _error(400, str(exc))
    except RuleNotFoundError:
        return web.json_response({"message": "Configuration not found"}, status=404)
    except RuleResolutionError as exc:
        return _error(502, str(exc))
    except RulePersistenceError:
        return _error(500, "Failed to save configuration")

    return web.json_response(stored.to_dict())


async def clear_rules(request: web.Request) -> web.Response:
    try:
        await request.app[RULES_KEY].clear()
    except RulePersistenceError:
        return _error(500, "Failed to clear configurations")
    return web.json_response({"message": "All configurations cleared successfully"})


async def latest_data(request: web.Request) -> web.Response:
    readings = await request.app[TELEMETRY_KEY].snapshot()
    return web.json_response([reading.to_dict() for reading in readings])


async def health(request: web.Request) -> web.Response:
    snapshot = await request.app[HEALTH_KEY].snapshot()
    status = 200 if snapshot["status"] == "ok" else 503
    return web.json_response(snapshot, status=status)


def create_app(
    rules: RuleStore,
    telemetry: TelemetryStore,
    health_reporter: Optional[HealthReporter] = None,
    *,
    cors_origins: Iterable[str] = ("*",),
) -> web.Application:
    app = web.Application(middlewares=[build_cors_middleware(cors_origins)])
    app[RULES_KEY] = rules
    app[TELEMETRY_KEY] = telemetry
    app[HEALTH_KEY] = health_reporter or HealthReporter()

    app.router.add_get("/config", list_rules)
    app.router.add_post("/config", upsert_rule)
    app.router.add_delete("/config", clear_rules)
    app.router.add_put("/config/{id}", update_rule)
    app.router.add_get("/latest-data", latest_data)
    app.router.add_get("/healthz", health)
    return app


class ApiServer:
    """Runs the control application on a TCP site."""

    def __init__(self, app: web.Application, host: str, port: int) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        try:
            await self._site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            raise
        LOGGER.info("Control API listening on http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
