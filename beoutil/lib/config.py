"""
Shared configuration loader for beoutil.

Loads a single JSON config file.  Search order:
  1. $BEOUTIL_CONFIG                  (explicit override)
  2. ~/.config/beoutil/config.json    (per-user)
  3. config.json                      (CWD — handy for local dev)

Every key is optional; a missing file just means defaults everywhere.

Usage:
    from .config import cfg

    timeout     = cfg("discovery", "timeout", default=5)
    precedence  = cfg("topology", "precedence", default="first")
    cache_path  = cfg("cache", "path", default="~/.beoutil")
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

PRECEDENCE_POLICIES = ("first", "online", "self")


def _search_paths() -> list[str]:
    paths = []
    override = os.environ.get("BEOUTIL_CONFIG")
    if override:
        paths.append(override)
    paths.append(os.path.expanduser("~/.config/beoutil/config.json"))
    paths.append("config.json")
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about suspicious config values."""
    topo = config.get("topology")
    topo = topo if isinstance(topo, dict) else {}
    precedence = topo.get("precedence")
    if precedence is not None and precedence not in PRECEDENCE_POLICIES:
        logger.warning("Config %s: unknown topology.precedence '%s' — using 'first'",
                       path, precedence)
    watch = config.get("watch")
    watch = watch if isinstance(watch, dict) else {}
    max_errors = watch.get("max_decode_errors")
    if max_errors is not None and (not isinstance(max_errors, int) or max_errors < 1):
        logger.warning("Config %s: watch.max_decode_errors must be a positive integer", path)


def _read_file(path: str) -> dict | None:
    """Parse one candidate file; None if it is absent or unusable."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Ignoring config %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.error("Ignoring config %s: top level must be an object", path)
        return None
    return data


def load_config() -> dict:
    """Return the parsed config, reading it from disk on first use."""
    global _config
    if _config is None:
        _config = {}
        for path in _search_paths():
            data = _read_file(path)
            if data is not None:
                logger.debug("Config loaded from %s", path)
                _validate(data, path)
                _config = data
                break
        else:
            logger.debug("No config file found, using defaults")
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Look up ``section`` or ``section.key``, falling back to *default*.

    cfg("cache")                                → the whole "cache" object
    cfg("watch", "reconnect_delay", default=1)  → value, or 1 when unset
    """
    value = load_config().get(section)
    if key is not None:
        value = value.get(key) if isinstance(value, dict) else None
    return default if value is None else value


def reload_config() -> dict:
    """Drop the cached config and read it again."""
    global _config
    _config = None
    return load_config()
