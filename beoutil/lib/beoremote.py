"""
BeoRemote HTTP/JSON API client (port 8080).

Only the calls the topology and watch commands need live here:

  GET /BeoZone/System/Products   — this product's view of every product
  GET /BeoNotify/Notifications   — endless notification stream
"""

import asyncio
import json
import logging

import aiohttp

from .errors import BeoRemoteError, BeoRemoteHTTPError
from .models import SystemDeviceView
from .notify import MAX_DECODE_ERRORS, NotificationStream, open_stream

logger = logging.getLogger(__name__)

BEOREMOTE_PORT = 8080
PRODUCTS_PATH = "/BeoZone/System/Products"
NOTIFICATIONS_PATH = "/BeoNotify/Notifications"


def _error_message(body: bytes) -> str | None:
    """Pull the message out of a BeoRemote {"error": {...}} body, if any."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("type")
    return None


class BeoRemoteClient:
    """Thin client for one product address."""

    def __init__(self, address: str, session: aiohttp.ClientSession, timeout: float = 5):
        self.address = address
        self.base_url = f"http://{address}:{BEOREMOTE_PORT}"
        self._session = session
        self._timeout = timeout

    def __repr__(self):
        return f"BeoRemoteClient({self.address!r})"

    async def _get_json(self, path: str):
        """GET a BeoRemote endpoint and parse its JSON body."""
        url = f"{self.base_url}{path}"
        async with self._session.get(
            url, timeout=aiohttp.ClientTimeout(total=self._timeout)
        ) as resp:
            body = await resp.read()
            if not 200 <= resp.status < 300:
                message = _error_message(body) if body else None
                raise BeoRemoteHTTPError(resp.status, message or resp.reason or "")
            try:
                return json.loads(body)
            except ValueError as e:
                raise BeoRemoteError(f"invalid JSON from {url}: {e}") from e

    async def get_system_products(self) -> list[SystemDeviceView]:
        data = await self._get_json(PRODUCTS_PATH)
        if not isinstance(data, dict):
            raise BeoRemoteError(f"{self.address}: unexpected products response")
        try:
            return [SystemDeviceView.from_dict(p) for p in data.get("products") or []]
        except (KeyError, TypeError, AttributeError) as e:
            raise BeoRemoteError(f"{self.address}: malformed product ({e})") from e

    async def open_notification_stream(
        self, cancel: asyncio.Event | None = None,
        max_decode_errors: int = MAX_DECODE_ERRORS,
    ) -> NotificationStream:
        return await open_stream(self._session, f"{self.base_url}{NOTIFICATIONS_PATH}",
                                 cancel=cancel, max_decode_errors=max_decode_errors)
