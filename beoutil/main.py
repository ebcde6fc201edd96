# beoutil
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
beoutil — control B&O products via the BeoRemote API.

Commands:
  find-products [--timeout S]   discover products over mDNS and cache them
  list-products                 merged topology of every cached product
  get-sources <product IP>      sources available to one product
  watch <product IP>            print notifications, reconnecting as needed

The discovery cache lives in ~/.beoutil (config key cache.path).
"""

import argparse
import asyncio
import logging
import signal
import sys

import aiohttp

from .lib.beoremote import BeoRemoteClient
from .lib.cache import load_products, save_products
from .lib.config import cfg
from .lib.discovery import discover
from .lib.errors import BeoutilError, NoProductsCached
from .lib.models import ROLE_MASTER, ROLE_SLAVE, Topology, TopologyEntry
from .lib.notify import MAX_DECODE_ERRORS
from .lib.topology import build_topology
from .lib.watch import format_notification, watch_notifications

logger = logging.getLogger("beoutil")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def print_table(header: list[str], rows: list[list[str]], out=None) -> None:
    out = out or sys.stdout
    widths = [max(len(str(c)) for c in col) for col in zip(header, *rows)]
    for row in [header, *rows]:
        out.write(" ".join(str(c).ljust(w) for c, w in zip(row, widths)).rstrip() + "\n")


def _join_addresses(addresses: list[str]) -> str:
    return ",".join(addresses) if addresses else "-"


def _topology_row(entry: TopologyEntry, role: str, prefix: str = "") -> list[str]:
    view = entry.view
    state = view.primary_experience.state if view.primary_experience else "-"
    return [prefix + view.friendly_name, role, _join_addresses(entry.addresses),
            view.jid, str(view.online).lower(), state or "-"]


def topology_rows(topology: Topology) -> list[list[str]]:
    """Rows for list-products: slaves are shown under their master."""
    rows = []
    for entry in topology.sorted_entries():
        role = entry.view.role
        if role == ROLE_SLAVE:
            continue
        rows.append(_topology_row(entry, role if role == ROLE_MASTER else "-"))
        if role == ROLE_MASTER:
            partner = topology.partner_of(entry.view.jid)
            if partner is None:
                rows.append([" + ?", ROLE_SLAVE, "-", entry.view.integrated.jid, "?", "-"])
            else:
                rows.append(_topology_row(partner, ROLE_SLAVE, prefix=" + "))
    return rows


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
async def do_find_products(args, cancel: asyncio.Event) -> int:
    print("Scanning for products...", file=sys.stderr)
    products = await discover(args.timeout)
    save_products(products)
    print(f"Found {len(products)} products.", file=sys.stderr)
    return 0


async def do_list_products(args, cancel: asyncio.Event) -> int:
    try:
        cached = load_products()
    except NoProductsCached:
        print("No products cached, run find-products first.", file=sys.stderr)
        return 1
    async with aiohttp.ClientSession() as session:
        topology = await build_topology(
            cached, session,
            precedence=cfg("topology", "precedence", default="first"),
            timeout=float(cfg("http", "timeout", default=5)),
        )
    if not topology:
        print("No products responded.", file=sys.stderr)
        return 0
    print_table(["NAME", "ROLE", "IP", "JID", "ONLINE", "STATE"], topology_rows(topology))
    return 0


async def do_get_sources(args, cancel: asyncio.Event) -> int:
    async with aiohttp.ClientSession() as session:
        client = BeoRemoteClient(args.address, session,
                                 timeout=float(cfg("http", "timeout", default=5)))
        products = await client.get_system_products()
    rows = [[p.friendly_name, s.friendly_name, s.id, str(s.linkable).lower()]
            for p in products for s in p.sources]
    print_table(["PRODUCT NAME", "SOURCE NAME", "SOURCE ID", "LINKABLE"], rows)
    return 0


async def do_watch(args, cancel: asyncio.Event) -> int:
    max_errors = int(cfg("watch", "max_decode_errors", default=MAX_DECODE_ERRORS))
    async with aiohttp.ClientSession() as session:
        client = BeoRemoteClient(args.address, session)

        async def opener():
            return await client.open_notification_stream(
                cancel=cancel, max_decode_errors=max_errors)

        await watch_notifications(
            opener,
            lambda n: print(format_notification(n), flush=True),
            reconnect_delay=float(cfg("watch", "reconnect_delay", default=1)),
        )
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beoutil", description="Control B&O products via the BeoRemote API")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    find = sub.add_parser("find-products", help="Discover products using mDNS")
    find.add_argument("--timeout", type=float,
                      default=float(cfg("discovery", "timeout", default=5)),
                      help="seconds to browse (default: %(default)s)")
    find.set_defaults(func=do_find_products)

    listing = sub.add_parser("list-products", help="List discovered products")
    listing.set_defaults(func=do_list_products)

    sources = sub.add_parser("get-sources", help="Get sources available to product")
    sources.add_argument("address", metavar="PRODUCT_IP")
    sources.set_defaults(func=do_get_sources)

    watch = sub.add_parser("watch", help="Watch notifications from product")
    watch.add_argument("address", metavar="PRODUCT_IP")
    watch.set_defaults(func=do_watch)
    return parser


async def run(args) -> int:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()

    def handle_signal():
        logger.debug("Signal received — shutting down")
        cancel.set()
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)
    try:
        return await args.func(args, cancel)
    except asyncio.CancelledError:
        return 130
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        return asyncio.run(run(args))
    except BeoutilError as e:
        print(f"beoutil: {e}", file=sys.stderr)
        return 1
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        print(f"beoutil: {str(e) or type(e).__name__}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
