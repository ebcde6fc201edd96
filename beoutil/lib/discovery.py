# beoutil
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
mDNS discovery of BeoRemote products (_beoremote._tcp.local.).

Browses for a fixed time window and returns every product seen, keyed by
its jid.  Resolved advertisements are handed to a single collector task
through a queue; the collector keeps the most recently seen advertisement
per jid (last-write-wins, in arrival order).

Usage:
    products = await discover(5.0)
    for jid, record in products.items():
        print(record.name, record.addresses)
"""

import asyncio
import logging
from typing import NamedTuple

from zeroconf import IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from .errors import DiscoveryError
from .models import DeviceRecord

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_beoremote._tcp.local."
RESOLVE_TIMEOUT_MS = 3000


class Advertisement(NamedTuple):
    """One resolved mDNS answer: raw TXT strings plus IPv4 addresses."""

    text: list[str]
    addresses: list[str]


def split_txt(raw: bytes) -> list[str]:
    """Split a DNS TXT rdata blob into its length-prefixed strings."""
    strings = []
    i = 0
    while i < len(raw):
        length = raw[i]
        chunk = raw[i + 1:i + 1 + length]
        i += 1 + length
        if chunk:
            strings.append(chunk.decode("utf-8", errors="replace"))
    return strings


def parse_attributes(text: list[str]) -> dict[str, str]:
    """Turn ``key=value`` strings into a dict, splitting on the first '='."""
    attrs = {}
    for entry in text:
        key, sep, value = entry.partition("=")
        if sep:
            attrs[key] = value
    return attrs


def record_from_advertisement(ad: Advertisement) -> DeviceRecord | None:
    """Build a DeviceRecord, or None if the advertisement has no jid."""
    attrs = parse_attributes(ad.text)
    jid = attrs.get("jid")
    if not jid:
        return None
    return DeviceRecord(jid=jid, addresses=list(ad.addresses), name=attrs.get("name", ""))


async def collect(queue: asyncio.Queue, products: dict[str, DeviceRecord]) -> None:
    """Drain advertisements into *products* until a None sentinel arrives."""
    while True:
        ad = await queue.get()
        if ad is None:
            return
        record = record_from_advertisement(ad)
        if record is None:
            logger.debug("Ignoring advertisement without jid: %s", ad.text)
            continue
        if record.jid in products and products[record.jid].addresses != record.addresses:
            logger.debug("Product %s re-advertised with %s (was %s)",
                         record.jid, record.addresses, products[record.jid].addresses)
        products[record.jid] = record


async def _resolve(zc, service_type: str, name: str, queue: asyncio.Queue) -> None:
    info = AsyncServiceInfo(service_type, name)
    if not await info.async_request(zc, RESOLVE_TIMEOUT_MS):
        logger.debug("Could not resolve %s", name)
        return
    ad = Advertisement(
        text=split_txt(info.text or b""),
        addresses=info.parsed_addresses(IPVersion.V4Only),
    )
    logger.debug("Discovered %s at %s", name, ad.addresses)
    await queue.put(ad)


async def discover(timeout: float) -> dict[str, DeviceRecord]:
    """Browse for *timeout* seconds and return products keyed by jid.

    Raises ValueError for a missing/negative budget and DiscoveryError when
    the browse session cannot be started.  Finding nothing is not an error.
    """
    if timeout is None or timeout < 0:
        raise ValueError("discovery needs a non-negative time budget")

    try:
        aiozc = AsyncZeroconf(ip_version=IPVersion.V4Only)
    except OSError as e:
        raise DiscoveryError(f"cannot start mDNS: {e}") from e

    products: dict[str, DeviceRecord] = {}
    queue: asyncio.Queue = asyncio.Queue()
    resolving: set[asyncio.Task] = set()

    def on_service_state_change(zeroconf, service_type, name, state_change):
        if state_change not in (ServiceStateChange.Added, ServiceStateChange.Updated):
            return
        task = asyncio.ensure_future(_resolve(zeroconf, service_type, name, queue))
        resolving.add(task)
        task.add_done_callback(resolving.discard)

    collector = asyncio.create_task(collect(queue, products))
    browser = None
    try:
        try:
            browser = AsyncServiceBrowser(
                aiozc.zeroconf, SERVICE_TYPE, handlers=[on_service_state_change])
        except OSError as e:
            raise DiscoveryError(f"cannot browse {SERVICE_TYPE}: {e}") from e

        await asyncio.sleep(timeout)
    finally:
        if browser is not None:
            await browser.async_cancel()
        for task in list(resolving):
            task.cancel()
        if resolving:
            await asyncio.gather(*resolving, return_exceptions=True)
        queue.put_nowait(None)
        try:
            await collector
        finally:
            await aiozc.async_close()

    logger.info("Discovery finished: %d products", len(products))
    return products
