#!/usr/bin/env python3
"""test config file lookup"""

import json

import beoutil.lib.config
from beoutil.lib.config import cfg, reload_config


def write_config(path, data):
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


def test_defaults_without_config_file():
    assert cfg("http", "timeout", default=5) == 5
    assert cfg("cache") is None


def test_override_path_wins(tmp_path, monkeypatch):
    write_config(tmp_path / "config.json", {"http": {"timeout": 9}})
    override = write_config(tmp_path / "override.json", {"http": {"timeout": 2}})
    monkeypatch.setenv("BEOUTIL_CONFIG", str(override))
    reload_config()
    assert cfg("http", "timeout", default=5) == 2


def test_falls_through_unusable_files(tmp_path, monkeypatch):
    broken = write_config(tmp_path / "broken.json", "{nope")
    monkeypatch.setenv("BEOUTIL_CONFIG", str(broken))
    user = tmp_path / ".config" / "beoutil"
    user.mkdir(parents=True)
    write_config(user / "config.json", ["not", "an", "object"])
    write_config(tmp_path / "config.json", {"watch": {"reconnect_delay": 3}})
    reload_config()
    assert cfg("watch", "reconnect_delay", default=1) == 3


def test_section_that_is_not_an_object(tmp_path):
    write_config(tmp_path / "config.json", {"topology": "online", "watch": {"reconnect_delay": None}})
    reload_config()
    assert cfg("topology", "precedence", default="first") == "first"
    assert cfg("topology") == "online"
    assert cfg("watch", "reconnect_delay", default=1) == 1


def test_config_is_read_once(tmp_path):
    config_file = write_config(tmp_path / "config.json", {"http": {"timeout": 7}})
    reload_config()
    config_file.write_text(json.dumps({"http": {"timeout": 8}}))
    assert cfg("http", "timeout") == 7
    assert beoutil.lib.config.reload_config() == {"http": {"timeout": 8}}
