"""
Discovery cache: the product directory written by ``find-products``.

The file holds one JSON object, jid → {"addresses": [...], "name": ..., "jid": ...},
and is rewritten whole on every discovery run.  A missing file means
"nothing discovered yet" (NoProductsCached), which callers report
differently from a broken file (CacheError).
"""

import json
import logging
import os
import tempfile

from .config import cfg
from .errors import CacheError, NoProductsCached
from .models import DeviceRecord

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = "~/.beoutil"


def cache_path(path: str | None = None) -> str:
    """Resolve the cache location (argument, then config, then ~/.beoutil)."""
    raw = path or cfg("cache", "path", default=DEFAULT_CACHE_PATH)
    resolved = os.path.expanduser(raw)
    if resolved.startswith("~"):
        raise CacheError("HOME is not set")
    return resolved


def save_products(products: dict[str, DeviceRecord], path: str | None = None) -> str:
    """Overwrite the cache with *products*.  Returns the path written."""
    target = cache_path(path)
    payload = {jid: record.to_dict() for jid, record in products.items()}

    # temp file in the same directory, then rename over the old cache
    try:
        fd, tmp = tempfile.mkstemp(dir=os.path.dirname(target) or ".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp, target)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
    except OSError as e:
        raise CacheError(f"cannot write {target}: {e}") from e
    logger.debug("Saved %d products to %s", len(products), target)
    return target


def load_products(path: str | None = None) -> dict[str, DeviceRecord]:
    """Read the whole cache back into DeviceRecords keyed by jid."""
    target = cache_path(path)
    try:
        with open(target) as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise NoProductsCached("no products cached") from None
    except json.JSONDecodeError as e:
        raise CacheError(f"invalid JSON in {target}: {e}") from e
    except OSError as e:
        raise CacheError(f"cannot read {target}: {e}") from e

    if not isinstance(raw, dict):
        raise CacheError(f"{target}: expected a JSON object")
    try:
        products = {jid: DeviceRecord.from_dict(entry) for jid, entry in raw.items()}
    except (KeyError, TypeError, AttributeError) as e:
        raise CacheError(f"{target}: malformed product entry ({e})") from e
    logger.debug("Loaded %d products from %s", len(products), target)
    return products
