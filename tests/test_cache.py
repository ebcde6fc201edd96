#!/usr/bin/env python3
"""test the discovery cache"""

import json

import pytest

import beoutil.lib.cache
import beoutil.lib.config
from beoutil.lib.cache import cache_path, load_products, save_products
from beoutil.lib.errors import CacheError, NoProductsCached
from beoutil.lib.models import DeviceRecord


def test_default_path_is_in_home(tmp_path):
    assert cache_path() == str(tmp_path / ".beoutil")


def test_path_from_config(tmp_path, monkeypatch):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"cache": {"path": str(tmp_path / "products.json")}}))
    monkeypatch.setenv("BEOUTIL_CONFIG", str(config_file))
    beoutil.lib.config.reload_config()
    assert cache_path() == str(tmp_path / "products.json")


def test_save_overwrites_whole_file(tmp_path):
    save_products({"a": DeviceRecord("a", ["10.0.0.1"], "Kitchen"),
                   "b": DeviceRecord("b", ["10.0.0.2"], "Den")})
    save_products({"c": DeviceRecord("c", ["10.0.0.3", "169.254.1.3"], "Hall")})

    on_disk = json.loads((tmp_path / ".beoutil").read_text())
    assert on_disk == {"c": {"addresses": ["10.0.0.3", "169.254.1.3"], "name": "Hall", "jid": "c"}}
    assert load_products() == {"c": DeviceRecord("c", ["10.0.0.3", "169.254.1.3"], "Hall")}


def test_missing_cache_is_distinct_condition():
    with pytest.raises(NoProductsCached):
        load_products()


def test_invalid_cache_is_an_error(tmp_path):
    (tmp_path / ".beoutil").write_text("{not json")
    with pytest.raises(CacheError) as excinfo:
        load_products()
    assert not isinstance(excinfo.value, NoProductsCached)


def test_malformed_entry_is_an_error(tmp_path):
    (tmp_path / ".beoutil").write_text(json.dumps({"a": {"name": "no jid"}}))
    with pytest.raises(CacheError):
        load_products()


def test_empty_directory_round_trips(tmp_path):
    save_products({})
    assert load_products() == {}


def test_failed_save_keeps_previous_cache(tmp_path, monkeypatch):
    save_products({"a": DeviceRecord("a", ["10.0.0.1"], "Kitchen")})

    def broken_replace(src, dst):
        raise OSError("disk full")

    with monkeypatch.context() as m:
        m.setattr(beoutil.lib.cache.os, "replace", broken_replace)
        with pytest.raises(CacheError):
            save_products({"b": DeviceRecord("b", ["10.0.0.2"], "Den")})

    assert load_products() == {
        "a": DeviceRecord("a", ["10.0.0.1"], "Kitchen")}
    assert not list(tmp_path.glob("*.tmp"))
