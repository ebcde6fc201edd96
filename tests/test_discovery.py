#!/usr/bin/env python3
"""test mDNS discovery with zeroconf patched out"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from zeroconf import ServiceStateChange

from beoutil.lib import discovery
from beoutil.lib.discovery import (
    SERVICE_TYPE,
    Advertisement,
    collect,
    discover,
    parse_attributes,
    split_txt,
)
from beoutil.lib.errors import DiscoveryError
from beoutil.lib.models import DeviceRecord


def txt(*strings) -> bytes:
    """encode strings as DNS TXT rdata"""
    out = b""
    for s in strings:
        data = s.encode()
        out += bytes([len(data)]) + data
    return out


def test_split_txt():
    assert split_txt(txt("jid=abc", "name=Kitchen")) == ["jid=abc", "name=Kitchen"]
    assert split_txt(b"") == []
    assert split_txt(b"\x00" + txt("a=1")) == ["a=1"]


def test_parse_attributes_splits_on_first_equals():
    attrs = parse_attributes(["jid=a@b", "name=A=B", "flag", "empty="])
    assert attrs == {"jid": "a@b", "name": "A=B", "empty": ""}


@pytest.mark.asyncio
async def test_collect_last_advertisement_wins():
    queue = asyncio.Queue()
    products = {}
    for ad in [
        Advertisement(["jid=a", "name=Kitchen"], ["10.0.0.1"]),
        Advertisement(["name=Nameless"], ["10.0.0.9"]),
        Advertisement(["jid=b", "name=Den"], ["10.0.0.2"]),
        Advertisement(["jid=a", "name=Kitchen"], ["10.0.0.5", "10.0.0.6"]),
        None,
    ]:
        queue.put_nowait(ad)

    await collect(queue, products)

    assert products == {
        "a": DeviceRecord("a", ["10.0.0.5", "10.0.0.6"], "Kitchen"),
        "b": DeviceRecord("b", ["10.0.0.2"], "Den"),
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", [None, -1])
async def test_discover_rejects_bad_budget(timeout):
    with pytest.raises(ValueError):
        await discover(timeout)


def fake_zeroconf():
    aiozc = MagicMock()
    aiozc.async_close = AsyncMock()
    return aiozc


def fake_browser(announce=()):
    """AsyncServiceBrowser stand-in that announces *announce* names on creation"""
    browsers = []

    def factory(zc, service_type, handlers):
        browser = MagicMock()
        browser.async_cancel = AsyncMock()
        browser.service_type = service_type
        browsers.append(browser)
        for name in announce:
            for handler in handlers:
                handler(zeroconf=zc, service_type=service_type, name=name,
                        state_change=ServiceStateChange.Added)
        return browser

    return factory, browsers


def fake_service_info(answers):
    """AsyncServiceInfo stand-in resolving names from *answers*: name -> (txt, addrs)"""

    class FakeServiceInfo:
        def __init__(self, service_type, name):
            self.name = name
            self.text, self._addresses = answers.get(name, (None, []))

        async def async_request(self, zc, timeout):
            return self.name in answers

        def parsed_addresses(self, version=None):
            return list(self._addresses)

    return FakeServiceInfo


@pytest.mark.asyncio
async def test_discover_zero_budget_finds_nothing():
    aiozc = fake_zeroconf()
    factory, browsers = fake_browser()
    with patch.object(discovery, "AsyncZeroconf", return_value=aiozc), \
         patch.object(discovery, "AsyncServiceBrowser", side_effect=factory):
        products = await discover(0)

    assert products == {}
    assert browsers[0].service_type == SERVICE_TYPE
    browsers[0].async_cancel.assert_awaited_once()
    aiozc.async_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_discover_collects_resolved_products():
    answers = {
        "Kitchen._beoremote._tcp.local.": (txt("jid=a", "name=Kitchen"), ["10.0.0.1"]),
        "Den._beoremote._tcp.local.": (txt("jid=b", "name=Den"), ["10.0.0.2"]),
        "Kitchen (2)._beoremote._tcp.local.": (txt("jid=a", "name=Kitchen"), ["10.0.0.7"]),
        "Printer._beoremote._tcp.local.": (txt("name=Printer"), ["10.0.0.3"]),
    }
    aiozc = fake_zeroconf()
    factory, _ = fake_browser(announce=[*answers, "Vanished._beoremote._tcp.local."])
    with patch.object(discovery, "AsyncZeroconf", return_value=aiozc), \
         patch.object(discovery, "AsyncServiceBrowser", side_effect=factory), \
         patch.object(discovery, "AsyncServiceInfo", fake_service_info(answers)):
        products = await discover(0.05)

    assert products == {
        "a": DeviceRecord("a", ["10.0.0.7"], "Kitchen"),
        "b": DeviceRecord("b", ["10.0.0.2"], "Den"),
    }
    aiozc.async_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_discover_ignores_removed_services():
    answers = {"Den._beoremote._tcp.local.": (txt("jid=b", "name=Den"), ["10.0.0.2"])}
    aiozc = fake_zeroconf()

    def factory(zc, service_type, handlers):
        handlers[0](zeroconf=zc, service_type=service_type,
                    name="Den._beoremote._tcp.local.",
                    state_change=ServiceStateChange.Removed)
        browser = MagicMock()
        browser.async_cancel = AsyncMock()
        return browser

    with patch.object(discovery, "AsyncZeroconf", return_value=aiozc), \
         patch.object(discovery, "AsyncServiceBrowser", side_effect=factory), \
         patch.object(discovery, "AsyncServiceInfo", fake_service_info(answers)):
        assert await discover(0.01) == {}


@pytest.mark.asyncio
async def test_discover_reports_mdns_failure():
    with patch.object(discovery, "AsyncZeroconf", side_effect=OSError("no multicast")):
        with pytest.raises(DiscoveryError):
            await discover(1)


@pytest.mark.asyncio
async def test_discover_reports_browse_failure():
    aiozc = fake_zeroconf()
    with patch.object(discovery, "AsyncZeroconf", return_value=aiozc), \
         patch.object(discovery, "AsyncServiceBrowser", side_effect=OSError("denied")):
        with pytest.raises(DiscoveryError):
            await discover(1)
    aiozc.async_close.assert_awaited_once()
