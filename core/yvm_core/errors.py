"""
errors.py — exception taxonomy for the yvm engine

Every failure the engine can report derives from YvmError, so callers can
catch the whole family at one place (the CLI does exactly that).
"""


class YvmError(Exception):
    """Base exception for yvm engine operations."""


# ---------------------------------------------------------------------------
# Catalog / platform
# ---------------------------------------------------------------------------

class CatalogUnavailable(YvmError):
    """Raised when the release catalog cannot be fetched or parsed."""


class CatalogSSLError(CatalogUnavailable):
    """Raised when the catalog fetch fails SSL certificate verification."""


class UnsupportedPlatform(YvmError):
    """Raised when the running OS/architecture has no release platform tag."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class InvalidVersionRequest(YvmError, ValueError):
    """Raised when a version request string cannot be parsed."""


class ResolutionError(YvmError):
    """Base exception for requests that match no catalog record."""


class VersionNotFound(ResolutionError):
    """Raised when an exact version has no record for the platform."""


class NoSatisfyingVersion(ResolutionError):
    """Raised when no platform record satisfies a range or 'latest'."""


# ---------------------------------------------------------------------------
# Fetch / verify
# ---------------------------------------------------------------------------

class FetchError(YvmError):
    """Raised on a transport failure while retrieving an artifact.

    Transient by nature; the caller decides whether to retry.
    """


class FetchSSLError(FetchError):
    """Raised when an artifact download fails SSL certificate verification."""


class IntegrityError(YvmError):
    """Raised when an artifact's SHA-256 does not match the catalog.

    Never retried automatically: it means corruption or tampering.
    """


# ---------------------------------------------------------------------------
# Store / lock
# ---------------------------------------------------------------------------

class NotInstalled(YvmError):
    """Raised when an operation names a version absent from the store."""


class DanglingActivePointer(YvmError):
    """Raised when the active pointer names a version that is not installed."""


class NoActiveVersion(YvmError):
    """Raised when a command needs the active version but none is set."""


class StoreError(YvmError):
    """Raised when the version store cannot be read or written on disk."""


class LockError(YvmError):
    """Raised when the store lock cannot be acquired."""


class LockTimeout(LockError):
    """Raised when the store lock is still held by another process after the timeout."""
