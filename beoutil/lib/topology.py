# beoutil
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
System topology: merge every cached product's view of the system.

Each product answers /BeoZone/System/Products with its own idea of which
products exist, whether they are online and how they are paired.  Views
can disagree or be stale, so we ask every cached product (first
responding address only) and fold the answers together:

  * cached products are visited in jid order, addresses in cached order
  * a product with no responding address contributes nothing
  * when two views describe the same jid the precedence policy decides
  * cached addresses are overlaid afterwards; products only known from a
    peer's view keep an empty address list

Queries run one at a time, so the worst case is the sum of all timeouts.
"""

import asyncio
import enum
import logging

import aiohttp

from .beoremote import BeoRemoteClient
from .errors import BeoRemoteError
from .models import DeviceRecord, SystemDeviceView, Topology, TopologyEntry

logger = logging.getLogger(__name__)


class MergePrecedence(str, enum.Enum):
    FIRST = "first"     # first responder's view wins
    ONLINE = "online"   # an online view replaces an earlier offline one
    SELF = "self"       # a product's own view of itself replaces peer views

    @classmethod
    def parse(cls, value) -> "MergePrecedence":
        try:
            return cls(value)
        except ValueError:
            logger.warning("Unknown merge precedence %r, using 'first'", value)
            return cls.FIRST


def _replaces(policy: MergePrecedence, current: tuple[SystemDeviceView, str],
              candidate: tuple[SystemDeviceView, str]) -> bool:
    """Should *candidate* (view, reporter jid) replace *current*?"""
    cur_view, cur_reporter = current
    new_view, new_reporter = candidate
    if policy is MergePrecedence.ONLINE:
        return new_view.online and not cur_view.online
    if policy is MergePrecedence.SELF:
        return new_reporter == new_view.jid and cur_reporter != cur_view.jid
    return False


async def query_product(record: DeviceRecord, session: aiohttp.ClientSession,
                        timeout: float = 5) -> list[SystemDeviceView] | None:
    """Ask *record* for its system products, trying each address in order.

    Returns None if no address answered.
    """
    for address in record.addresses:
        client = BeoRemoteClient(address, session, timeout=timeout)
        try:
            views = await client.get_system_products()
        except (aiohttp.ClientError, asyncio.TimeoutError, BeoRemoteError) as e:
            logger.debug("%s (%s) did not answer: %s", record.name or record.jid, address, e)
            continue
        logger.debug("%s (%s) reported %d products", record.name or record.jid,
                     address, len(views))
        return views
    return None


async def build_topology(cached: dict[str, DeviceRecord], session: aiohttp.ClientSession,
                         *, precedence: MergePrecedence | str = MergePrecedence.FIRST,
                         timeout: float = 5) -> Topology:
    """Merge the system views of every product in *cached*.  Never raises on partial data."""
    policy = precedence if isinstance(precedence, MergePrecedence) else MergePrecedence.parse(precedence)
    merged: dict[str, tuple[SystemDeviceView, str]] = {}
    responders = 0

    for jid in sorted(cached):
        views = await query_product(cached[jid], session, timeout=timeout)
        if views is None:
            logger.info("No response from %s", cached[jid].name or jid)
            continue
        responders += 1
        for view in views:
            candidate = (view, jid)
            current = merged.get(view.jid)
            if current is None or _replaces(policy, current, candidate):
                merged[view.jid] = candidate

    topology = Topology()
    for jid, (view, _reporter) in merged.items():
        record = cached.get(jid)
        topology[jid] = TopologyEntry(view=view, addresses=list(record.addresses) if record else [])

    logger.info("Topology: %d products from %d of %d responders",
                len(topology), responders, len(cached))
    return topology
