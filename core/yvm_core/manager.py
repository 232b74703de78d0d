"""
manager.py — the version manager context

Wires settings, platform, catalog, resolver, fetcher and store into the
operations the command line exposes. The download retry policy lives
here, not in the fetcher.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .catalog import CatalogCache, load_embedded_catalog
from .config import Settings
from .errors import CatalogUnavailable, DanglingActivePointer, FetchError
from .fetcher import fetch_and_verify
from .platform import current_platform
from .resolver import resolve
from .semver import Version
from .store import InstalledVersion, VersionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallResult:
    installed: InstalledVersion
    record: object
    fresh: bool


@dataclass(frozen=True)
class ReleaseStatus:
    version: Version
    record: Optional[object]
    installed: bool
    active: bool


class VersionManager:
    """Explicit handle on one store plus the catalog for one platform."""

    def __init__(self, settings=None, platform=None, store=None):
        self.settings = settings or Settings.from_env()
        self.platform = platform or current_platform()
        self.store = store or VersionStore(
            self.settings.home,
            lock_timeout=self.settings.lock_timeout,
            platform=self.platform,
        )
        self._catalog = None

    # -- catalog ------------------------------------------------------------

    def load_catalog(self):
        """Load the release catalog (memoised).

        With a remote index configured, a failed refresh falls back to the
        cached copy and then to the embedded table.
        """
        if self._catalog is not None:
            return self._catalog

        s = self.settings
        if s.offline or not s.index_url:
            self._catalog = load_embedded_catalog(self.platform)
            return self._catalog

        cache = CatalogCache(self.store.root)
        try:
            self._catalog = cache.refresh(s.index_url, self.platform,
                                          timeout=s.catalog_timeout,
                                          ssl_noverify=s.ssl_noverify)
            return self._catalog
        except CatalogUnavailable as e:
            logger.warning("%s", e)

        cached = None
        try:
            cached = cache.load(self.platform)
        except CatalogUnavailable as e:
            logger.warning("Ignoring unreadable catalog cache: %s", e)
        if cached is not None:
            logger.warning("Using cached release index from %s", cache.path)
            self._catalog = cached
        else:
            logger.warning("Using the embedded release table")
            self._catalog = load_embedded_catalog(self.platform)
        return self._catalog

    def resolve(self, request):
        return resolve(request, self.platform, self.load_catalog())

    # -- operations ---------------------------------------------------------

    def install(self, request, activate=None, retries=None,
                progress_callback=None):
        """Resolve `request`, download and verify it, and install it.

        Args:
            request: 'latest', an exact version, or a range.
            activate: True/None/False, see VersionStore.install.
            retries: Extra attempts after a FetchError (default from
                     settings). IntegrityError is never retried.
            progress_callback: Passed through to the fetcher.

        Returns:
            InstallResult; `fresh` is False when the version was already
            installed and nothing was downloaded.
        """
        record = self.resolve(request)

        if self.store.is_installed(record.version):
            existing = self.store.get(record.version)
            logger.info("ylem %s is already installed", record.version)
            if activate is not False:
                self.store.use(record.version, if_unset=activate is None)
            return InstallResult(installed=existing, record=record, fresh=False)

        self.store.prune_staging()

        retries = self.settings.retries if retries is None else retries
        attempt = 0
        while True:
            attempt += 1
            try:
                artifact = fetch_and_verify(
                    record,
                    self.store.staging_dir(),
                    timeout=self.settings.timeout,
                    ssl_noverify=self.settings.ssl_noverify,
                    progress_callback=progress_callback,
                )
                break
            except FetchError as e:
                if attempt > retries:
                    raise
                logger.warning("%s (attempt %d of %d, retrying)", e, attempt,
                               retries + 1)

        installed = self.store.install(record.version, artifact,
                                       digest=record.sha256_hex,
                                       activate=activate)
        return InstallResult(installed=installed, record=record, fresh=True)

    def use(self, version):
        self.store.use(version)

    def remove(self, version):
        self.store.remove(version)

    def active(self):
        return self.store.active()

    def active_executable(self):
        return self.store.active_executable()

    def list_installed(self):
        return self.store.list_installed()

    def list_releases(self) -> List[ReleaseStatus]:
        """Catalog records for this platform marked installed/active.

        Installed versions absent from the catalog are appended. A
        dangling pointer is logged, not raised, so listing still works.
        """
        installed = {iv.version for iv in self.store.list_installed()}
        try:
            current = self.store.active()
            active_version = current.version if current else None
        except DanglingActivePointer as e:
            logger.warning("%s", e)
            active_version = None

        rows = []
        seen = set()
        for record in self.load_catalog().for_platform(self.platform):
            seen.add(record.version)
            rows.append(ReleaseStatus(
                version=record.version,
                record=record,
                installed=record.version in installed,
                active=record.version == active_version,
            ))
        for version in sorted(installed - seen):
            rows.append(ReleaseStatus(
                version=version,
                record=None,
                installed=True,
                active=version == active_version,
            ))
        return rows
