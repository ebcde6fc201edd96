#!/usr/bin/env python3
"""pytest fixtures"""

import asyncio
import json

import pytest

import beoutil.lib.config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """never read the developer's real config or cache"""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("BEOUTIL_CONFIG", str(tmp_path / "missing-config.json"))
    monkeypatch.chdir(tmp_path)
    beoutil.lib.config.reload_config()
    yield
    beoutil.lib.config.reload_config()


def notification(ntype, kind, data, timestamp="2024-01-01T12:00:00.000"):
    """build one wire-format notification document"""
    return {"notification": {"timestamp": timestamp, "type": ntype, "kind": kind, "data": data}}


def volume_doc(level):
    return notification("VOLUME", "renderer", {
        "speaker": {"level": level, "muted": False, "range": {"minimum": 0, "maximum": 90}}
    })


def encode(*docs) -> bytes:
    """concatenate documents with no delimiters, like the product does"""
    return b"".join(json.dumps(doc).encode() for doc in docs)


class FakeContent:
    """stands in for aiohttp's StreamReader"""

    def __init__(self, chunks, hang=False):
        self.chunks = list(chunks)
        self.hang = hang

    async def iter_any(self):
        for chunk in self.chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk
            await asyncio.sleep(0)
        if self.hang:
            await asyncio.Event().wait()


class FakeResponse:
    """minimal aiohttp.ClientResponse for NotificationStream"""

    def __init__(self, chunks, hang=False, status=200):
        self.status = status
        self.reason = "OK"
        self.content = FakeContent(chunks, hang=hang)
        self.released = False

    def release(self):
        self.released = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.release()


@pytest.fixture
def fake_response():
    return FakeResponse
