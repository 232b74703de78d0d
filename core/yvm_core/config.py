"""
config.py — engine settings read from the environment

Environment variables:
  YVM_HOME              store root (default: ~/.yvm)
  YVM_INDEX_URL         remote release index; unset = embedded table only
  YVM_OFFLINE           "1" never touches the network for the catalog
  YVM_TIMEOUT           artifact download timeout in seconds (default 60)
  YVM_CATALOG_TIMEOUT   index fetch timeout in seconds (default 10)
  YVM_LOCK_TIMEOUT      store lock wait in seconds (default 120, empty = block)
  YVM_RETRIES           extra download attempts after a FetchError (default 2)

TLS (YVM_SSL_VERIFY, YVM_SSL_CERT), platform (YVM_TARGET_PLATFORM) and
the pre-fetched release list (YVM_RELEASES_LIST_JSON) are read where
they are used.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_CATALOG_TIMEOUT = 10.0
DEFAULT_LOCK_TIMEOUT = 120.0
DEFAULT_RETRIES = 2


def default_home():
    return os.path.join(os.path.expanduser("~"), ".yvm")


def _env_float(name, default):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r (using %s)", name, raw, default)
        return default


def _env_int(name, default):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning("Ignoring invalid %s=%r (using %s)", name, raw, default)
        return default


def _env_flag(name):
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    home: str
    index_url: Optional[str] = None
    offline: bool = False
    timeout: float = DEFAULT_TIMEOUT
    catalog_timeout: float = DEFAULT_CATALOG_TIMEOUT
    lock_timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT
    retries: int = DEFAULT_RETRIES
    ssl_noverify: bool = False

    @classmethod
    def from_env(cls):
        if "YVM_LOCK_TIMEOUT" in os.environ and not os.environ["YVM_LOCK_TIMEOUT"].strip():
            lock_timeout = None
        else:
            lock_timeout = _env_float("YVM_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)
        return cls(
            home=os.environ.get("YVM_HOME", "").strip() or default_home(),
            index_url=os.environ.get("YVM_INDEX_URL", "").strip() or None,
            offline=_env_flag("YVM_OFFLINE"),
            timeout=_env_float("YVM_TIMEOUT", DEFAULT_TIMEOUT),
            catalog_timeout=_env_float("YVM_CATALOG_TIMEOUT",
                                       DEFAULT_CATALOG_TIMEOUT),
            lock_timeout=lock_timeout,
            retries=_env_int("YVM_RETRIES", DEFAULT_RETRIES),
        )
