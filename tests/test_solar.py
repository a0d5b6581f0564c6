"""Tests for the sunrise/sunset resolver."""

import asyncio
from datetime import timezone

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from homehub.adapters import SolarTimeError, SolarTimeResolver
from homehub.config import SolarConfig
from homehub.core import SolarCommand


def _app(handler) -> web.Application:
    app = web.Application()
    app.router.add_get("/json", handler)
    return app


async def _resolve(server: TestServer, command: SolarCommand, *, timeout: float = 5.0) -> str:
    resolver = SolarTimeResolver(
        SolarConfig(base_url=str(server.make_url("/json")), timeout_seconds=timeout),
        tz=timezone.utc,
    )
    await resolver.start()
    try:
        return await resolver.resolve(command, 52.2297, 21.0122)
    finally:
        await resolver.stop()


@pytest.mark.asyncio
async def test_resolves_sunset_in_requested_timezone():
    seen = {}

    async def handler(request: web.Request) -> web.Response:
        seen.update(request.query)
        return web.json_response(
            {
                "results": {
                    "sunrise": "2024-06-21T02:14:51+00:00",
                    "sunset": "2024-06-21T19:00:47+00:00",
                },
                "status": "OK",
            }
        )

    async with TestServer(_app(handler)) as server:
        sunset = await _resolve(server, SolarCommand.SUNSET)
        sunrise = await _resolve(server, SolarCommand.SUNRISE)

    assert sunset == "19:00"
    assert sunrise == "02:14"
    assert seen["lat"] == "52.229700"
    assert seen["lng"] == "21.012200"
    assert seen["formatted"] == "0"


@pytest.mark.asyncio
async def test_accepts_zulu_suffix():
    async def handler(request: web.Request) -> web.Response:
        return web.json_response(
            {"results": {"sunset": "2024-01-05T15:32:10Z"}, "status": "OK"}
        )

    async with TestServer(_app(handler)) as server:
        assert await _resolve(server, SolarCommand.SUNSET) == "15:32"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"results": {"sunset": "2024-06-21T19:00:47+00:00"}, "status": "INVALID_REQUEST"},
        {"results": {"sunset": "yesterday evening"}, "status": "OK"},
        {"results": {"sunset": "2024-06-21T19:00:47"}, "status": "OK"},
        {"results": {}, "status": "OK"},
        {"status": "OK"},
        ["OK"],
    ],
)
async def test_bad_payloads_raise(body):
    async def handler(request: web.Request) -> web.Response:
        return web.json_response(body)

    async with TestServer(_app(handler)) as server:
        with pytest.raises(SolarTimeError):
            await _resolve(server, SolarCommand.SUNSET)


@pytest.mark.asyncio
async def test_non_json_body_raises():
    async def handler(request: web.Request) -> web.Response:
        return web.Response(text="<html>maintenance</html>")

    async with TestServer(_app(handler)) as server:
        with pytest.raises(SolarTimeError):
            await _resolve(server, SolarCommand.SUNRISE)


@pytest.mark.asyncio
async def test_http_error_status_raises():
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=503, text="busy")

    async with TestServer(_app(handler)) as server:
        with pytest.raises(SolarTimeError, match="HTTP 503"):
            await _resolve(server, SolarCommand.SUNSET)


@pytest.mark.asyncio
async def test_slow_response_times_out():
    async def handler(request: web.Request) -> web.Response:
        await asyncio.sleep(1)
        return web.json_response({"status": "OK"})

    async with TestServer(_app(handler)) as server:
        with pytest.raises(SolarTimeError, match="timed out"):
            await _resolve(server, SolarCommand.SUNSET, timeout=0.2)


@pytest.mark.asyncio
async def test_transport_failure_raises(unused_tcp_port):
    resolver = SolarTimeResolver(
        SolarConfig(base_url=f"http://127.0.0.1:{unused_tcp_port}/json")
    )
    await resolver.start()
    try:
        with pytest.raises(SolarTimeError, match="request failed"):
            await resolver.resolve(SolarCommand.SUNSET, 0.0, 0.0)
    finally:
        await resolver.stop()


@pytest.mark.asyncio
async def test_resolve_requires_start():
    resolver = SolarTimeResolver()

    with pytest.raises(SolarTimeError):
        await resolver.resolve(SolarCommand.SUNSET, 0.0, 0.0)
