"""yvm_core — version resolution and installation engine for ylem releases."""

__version__ = "0.3.0"

from .errors import (
    YvmError, CatalogUnavailable, CatalogSSLError, UnsupportedPlatform,
    InvalidVersionRequest, ResolutionError, VersionNotFound, NoSatisfyingVersion,
    FetchError, FetchSSLError, IntegrityError,
    NotInstalled, DanglingActivePointer, NoActiveVersion, StoreError,
    LockError, LockTimeout,
)
from .semver import Version, VersionPredicate, parse_semver
from .platform import current_platform, detect_platform, KNOWN_PLATFORMS
from .resolver import VersionRequest, parse_request, resolve
from .catalog import (
    Catalog, ReleaseRecord, CatalogCache,
    load_embedded_catalog, load_catalog_file, fetch_remote_catalog,
)
from .fetcher import fetch_and_verify
from .lock import exclusive_lock, with_exclusive_lock
from .store import InstalledVersion, VersionStore
from .config import Settings
from .manager import VersionManager, InstallResult, ReleaseStatus
