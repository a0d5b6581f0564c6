"""Sunrise/sunset lookup against the sunrise-sunset.org HTTP API."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, tzinfo
from typing import Any, Optional

import aiohttp

from ..config import SolarConfig
from ..core.models import SolarCommand

LOGGER = logging.getLogger(__name__)


class SolarTimeError(RuntimeError):
    """Raised when a sunrise/sunset time cannot be resolved."""


class SolarTimeResolver:
    """Resolves the local HH:MM of sunrise or sunset for a coordinate.

    Transport errors, timeouts, a non-"OK" status and unparseable timestamps
    all surface as :class:`SolarTimeError`; no default time is ever returned.
    """

    def __init__(
        self,
        config: Optional[SolarConfig] = None,
        *,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.config = config or SolarConfig()
        self._tz = tz
        self._session: Optional[aiohttp.ClientSession] = None
        self._owns_session = False

    async def start(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        if self._session is not None:
            return
        if session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        else:
            self._session = session
            self._owns_session = False

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
        self._owns_session = False

    async def resolve(
        self, command: SolarCommand, latitude: float, longitude: float
    ) -> str:
        if command is SolarCommand.NONE:
            raise SolarTimeError("No solar command given")
        if self._session is None:
            raise SolarTimeError("Solar resolver not started")

        params = {
            "lat": f"{latitude:f}",
            "lng": f"{longitude:f}",
            "formatted": "0",
        }
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

        LOGGER.debug(
            "Requesting %s for lat=%s lng=%s", command.value, latitude, longitude
        )

        try:
            async with self._session.get(
                self.config.base_url, params=params, timeout=timeout
            ) as response:
                if response.status != 200:
                    raise SolarTimeError(
                        f"Solar API returned HTTP {response.status}"
                    )
                data = await response.json(content_type=None)
        except SolarTimeError:
            raise
        except asyncio.TimeoutError as exc:
            raise SolarTimeError("Solar API request timed out") from exc
        except aiohttp.ClientError as exc:
            raise SolarTimeError(f"Solar API request failed: {exc}") from exc
        except ValueError as exc:
            raise SolarTimeError(f"Failed to parse solar API response: {exc}") from exc

        return self._extract_time(data, command)

    def _extract_time(self, data: Any, command: SolarCommand) -> str:
        if not isinstance(data, dict):
            raise SolarTimeError("Solar API response is not a JSON object")

        status = data.get("status")
        if status != "OK":
            raise SolarTimeError(f"Solar API response status: {status}")

        results = data.get("results")
        raw = results.get(command.value) if isinstance(results, dict) else None
        if not isinstance(raw, str):
            raise SolarTimeError(f"Solar API response has no {command.value} time")

        try:
            moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise SolarTimeError(f"Failed to parse {command.value} time {raw!r}") from exc
        if moment.tzinfo is None:
            raise SolarTimeError(f"{command.value} time {raw!r} has no UTC offset")

        return moment.astimezone(self._tz).strftime("%H:%M")
