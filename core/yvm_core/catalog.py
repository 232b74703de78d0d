"""
catalog.py — release catalog

Builds the table of known compiler releases from one of:
  - the embedded table shipped with the package (data/releases.json),
  - a pre-fetched release list named by YVM_RELEASES_LIST_JSON,
  - a remote JSON index fetched over HTTPS (cached in the store root).

Two JSON shapes are understood. The index shape lists entries as
{"version", "platform", "url", "sha256"}; unknown fields are ignored.
The upstream release-list shape carries one platform's
{"builds": [{"version", "sha256"}], "releases": {version: artifact}}.
"""

import binascii
import json
import logging
import os
import tempfile
import urllib.error
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import CatalogSSLError, CatalogUnavailable, UnsupportedPlatform
from .net import is_ssl_error, open_url
from .platform import LINUX_AARCH64, LINUX_AMD64
from .resolver import parse_request
from .semver import Version, parse_semver

logger = logging.getLogger(__name__)

EMBEDDED_CATALOG_PATH = os.path.join(os.path.dirname(__file__), "data",
                                     "releases.json")

UPSTREAM_RELEASES_URL = "https://github.com/core-coin/ylem/releases/download"

# Platforms with published upstream binaries.
UPSTREAM_PLATFORMS = (LINUX_AMD64, LINUX_AARCH64)

CACHE_FILENAME = ".catalog.json"


def parse_sha256(value):
    """Decode a hex SHA-256 digest (optionally 0x-prefixed) to 32 bytes.

    Raises:
        ValueError: If the value is not 64 hex characters.
    """
    text = value.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    if len(text) != 64:
        raise ValueError(f"SHA-256 digest must be 64 hex characters: {value!r}")
    try:
        return binascii.unhexlify(text)
    except binascii.Error as e:
        raise ValueError(f"Invalid SHA-256 digest {value!r}: {e}") from e


@dataclass(frozen=True)
class ReleaseRecord:
    """One downloadable release for one platform."""
    version: Version
    platform: str
    source: str
    sha256: bytes

    @property
    def key(self):
        return (self.version, self.platform)

    @property
    def sha256_hex(self):
        return self.sha256.hex()

    @property
    def is_remote(self):
        return self.source.startswith(("http://", "https://"))


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------

class ReleaseEntry(BaseModel):
    """Index entry as found in remote or embedded JSON."""
    model_config = ConfigDict(extra="ignore")

    version: str
    platform: str
    url: str
    sha256: str

    @field_validator("version")
    @classmethod
    def _check_version(cls, v):
        parse_semver(v)
        return v

    @field_validator("sha256")
    @classmethod
    def _check_sha256(cls, v):
        parse_sha256(v)
        return v


class ReleaseIndex(BaseModel):
    model_config = ConfigDict(extra="ignore")

    releases: List[ReleaseEntry] = []


class UpstreamBuild(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str
    sha256: str


class UpstreamReleaseList(BaseModel):
    """Single-platform release list as published upstream."""
    model_config = ConfigDict(extra="ignore")

    builds: List[UpstreamBuild] = []
    releases: Dict[str, str] = {}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Catalog:
    """Read-only, version-ordered table of ReleaseRecords.

    Raises ValueError on construction if two records share
    (version, platform).
    """

    def __init__(self, records=()):
        records = list(records)
        seen = set()
        for record in records:
            if record.key in seen:
                raise ValueError(
                    f"Duplicate catalog entry: {record.version} ({record.platform})")
            seen.add(record.key)
        self._records = tuple(sorted(records,
                                     key=lambda r: (r.version, r.platform)))

    def __iter__(self):
        return iter(self._records)

    def __len__(self):
        return len(self._records)

    def __repr__(self):
        return f"Catalog({len(self._records)} releases)"

    @property
    def records(self):
        return self._records

    def platforms(self):
        return sorted({r.platform for r in self._records})

    def for_platform(self, platform):
        """Records for one platform, ascending by version."""
        return [r for r in self._records if r.platform == platform]

    def lookup(self, version_request, platform):
        """Return every record of `platform` matching the request, ascending.

        `version_request` is a VersionRequest or a request string.
        """
        if isinstance(version_request, str):
            version_request = parse_request(version_request)
        return [r for r in self.for_platform(platform)
                if version_request.matches(r.version)]

    # -- construction -------------------------------------------------------

    @classmethod
    def from_index(cls, data, base_dir=None):
        """Build a catalog from index-shaped JSON data.

        Relative source paths resolve against `base_dir`.

        Raises:
            ValueError: On schema violations or duplicate entries.
        """
        if isinstance(data, list):
            data = {"releases": data}
        try:
            index = ReleaseIndex.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid release index: {e}") from e

        records = []
        for entry in index.releases:
            records.append(ReleaseRecord(
                version=parse_semver(entry.version),
                platform=entry.platform,
                source=_resolve_source(entry.url, base_dir),
                sha256=parse_sha256(entry.sha256),
            ))
        return cls(records)

    @classmethod
    def from_upstream_list(cls, data, platform):
        """Build a catalog from an upstream single-platform release list.

        Raises:
            UnsupportedPlatform: If upstream publishes nothing for `platform`.
            ValueError: On schema violations.
        """
        if platform not in UPSTREAM_PLATFORMS:
            raise UnsupportedPlatform(
                f"No upstream ylem releases for platform {platform}")
        try:
            listing = UpstreamReleaseList.model_validate(data)
            checksums = {parse_semver(b.version): parse_sha256(b.sha256)
                         for b in listing.builds}
        except ValidationError as e:
            raise ValueError(f"Invalid release list: {e}") from e

        records = []
        for version_str, artifact in listing.releases.items():
            version = parse_semver(version_str)
            digest = checksums.get(version)
            if digest is None:
                logger.warning("Skipping ylem %s: no checksum in release list",
                               version_str)
                continue
            records.append(ReleaseRecord(
                version=version,
                platform=platform,
                source=f"{UPSTREAM_RELEASES_URL}/{version}/{artifact}",
                sha256=digest,
            ))
        return cls(records)

    @classmethod
    def from_json(cls, data, platform, base_dir=None):
        """Build a catalog from either JSON shape, detected by its keys."""
        if isinstance(data, dict) and "builds" in data:
            return cls.from_upstream_list(data, platform)
        return cls.from_index(data, base_dir=base_dir)


def _resolve_source(url, base_dir):
    if url.startswith(("http://", "https://", "file://")):
        return url
    if base_dir and not os.path.isabs(url):
        return os.path.normpath(os.path.join(base_dir, url))
    return url


def load_catalog_file(path, platform):
    """Load a catalog from a JSON file on disk.

    Raises:
        CatalogUnavailable: If the file is unreadable or malformed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Catalog.from_json(data, platform,
                                 base_dir=os.path.dirname(os.path.abspath(path)))
    except (OSError, json.JSONDecodeError, ValueError) as e:
        raise CatalogUnavailable(f"Cannot load release catalog {path}: {e}") from e


def load_embedded_catalog(platform):
    """Load the offline catalog.

    YVM_RELEASES_LIST_JSON, when set, names a pre-fetched list that
    replaces the table shipped with the package.
    """
    path = os.environ.get("YVM_RELEASES_LIST_JSON", "").strip() or EMBEDDED_CATALOG_PATH
    catalog = load_catalog_file(path, platform)
    logger.debug("Loaded %d release(s) from %s", len(catalog), path)
    return catalog


def fetch_remote_index(url, timeout=10, ssl_noverify=False):
    """Fetch and decode a remote release index.

    Returns:
        The decoded JSON document.

    Raises:
        CatalogSSLError: On SSL certificate verification failure.
        CatalogUnavailable: On any other network or decode failure.
    """
    logger.info("Fetching release index from %s", url)
    try:
        with open_url(url, timeout, ssl_noverify=ssl_noverify,
                      accept="application/json") as resp:
            body = resp.read().decode("utf-8")
        return json.loads(body)
    except (urllib.error.URLError, OSError) as e:
        if is_ssl_error(e):
            raise CatalogSSLError(f"SSL certificate verification failed: {e}") from e
        raise CatalogUnavailable(f"Failed to fetch release index: {e}") from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CatalogUnavailable(f"Invalid release index JSON: {e}") from e


def fetch_remote_catalog(url, platform, timeout=10, ssl_noverify=False):
    """Fetch a remote index and build a Catalog from it."""
    data = fetch_remote_index(url, timeout=timeout, ssl_noverify=ssl_noverify)
    try:
        catalog = Catalog.from_json(data, platform)
    except ValueError as e:
        raise CatalogUnavailable(f"Invalid release index: {e}") from e
    logger.info("Release index fetched: %d release(s)", len(catalog))
    return catalog


class CatalogCache:
    """Last successfully fetched remote index, kept under the store root."""

    def __init__(self, root):
        self.path = os.path.join(root, CACHE_FILENAME)

    def load(self, platform) -> Optional[Catalog]:
        """Return the cached catalog, or None when no cache exists."""
        if not os.path.exists(self.path):
            return None
        return load_catalog_file(self.path, platform)

    def refresh(self, url, platform, timeout=10, ssl_noverify=False):
        """Fetch the remote index and replace the cache.

        The cache file is only replaced after the fetched document parses
        into a valid Catalog; on any failure it is left untouched.
        """
        data = fetch_remote_index(url, timeout=timeout, ssl_noverify=ssl_noverify)
        try:
            catalog = Catalog.from_json(data, platform)
        except ValueError as e:
            raise CatalogUnavailable(f"Invalid release index: {e}") from e
        try:
            self._write(data)
        except OSError as e:
            logger.warning("Cannot write catalog cache %s: %s", self.path, e)
            return catalog
        logger.info("Release index cached: %d release(s)", len(catalog))
        return catalog

    def _write(self, data):
        cache_dir = os.path.dirname(self.path)
        os.makedirs(cache_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".catalog.", suffix=".tmp",
                                        dir=cache_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
