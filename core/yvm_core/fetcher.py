"""
fetcher.py — artifact retrieval with SHA-256 verification

Streams a release binary into a temporary file inside the store's
staging area, hashing it on the way, and only hands the path back once
the digest matches the catalog. Remote sources go through urllib;
embedded sources (plain paths or file:// URLs) are copied locally.

Retries are the caller's business: a FetchError is raised once and
never retried here.
"""

import hashlib
import hmac
import http.client
import logging
import os
import tempfile
import urllib.error
import urllib.parse
import urllib.request

from .errors import FetchError, FetchSSLError, IntegrityError
from .net import is_ssl_error, open_url

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


def _local_path(source):
    if source.startswith("file://"):
        return urllib.request.url2pathname(urllib.parse.urlparse(source).path)
    return source


def _copy_stream(read, tmp_fd, sha256, total, progress_callback):
    """Copy chunks from `read` to `tmp_fd`, hashing as we go."""
    done = 0
    while True:
        chunk = read(CHUNK_SIZE)
        if not chunk:
            break
        os.write(tmp_fd, chunk)
        sha256.update(chunk)
        done += len(chunk)
        if progress_callback:
            progress_callback(done, total)
    return done


def _discard(tmp_path):
    try:
        os.unlink(tmp_path)
    except FileNotFoundError:
        pass


def fetch_and_verify(record, staging_dir, timeout=60, ssl_noverify=False,
                     progress_callback=None):
    """Retrieve the artifact for `record` and verify its SHA-256.

    Args:
        record: ReleaseRecord to fetch.
        staging_dir: Directory for the temporary file; must be on the
                     same filesystem as the version store.
        timeout: HTTP timeout in seconds.
        ssl_noverify: If True, skip SSL certificate verification.
        progress_callback: Optional callable(bytes_done, total_bytes);
                           total_bytes is 0 when unknown.

    Returns:
        Path to the verified temporary file.

    Raises:
        FetchSSLError: On SSL certificate verification failure.
        FetchError: On any other transport failure.
        IntegrityError: On SHA-256 mismatch.
    """
    os.makedirs(staging_dir, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(
        prefix=f"ylem-{record.version}.", suffix=".download", dir=staging_dir)
    sha256 = hashlib.sha256()

    try:
        try:
            if record.is_remote:
                logger.info("Downloading ylem %s from %s", record.version,
                            record.source)
                with open_url(record.source, timeout,
                              ssl_noverify=ssl_noverify) as resp:
                    total = int(resp.headers.get("Content-Length", 0) or 0)
                    size = _copy_stream(resp.read, tmp_fd, sha256, total,
                                        progress_callback)
            else:
                path = _local_path(record.source)
                logger.info("Copying ylem %s from %s", record.version, path)
                with open(path, "rb") as src:
                    total = os.fstat(src.fileno()).st_size
                    size = _copy_stream(src.read, tmp_fd, sha256, total,
                                        progress_callback)
            os.fsync(tmp_fd)
        finally:
            os.close(tmp_fd)
    except (urllib.error.URLError, http.client.HTTPException, OSError,
            ValueError) as e:
        _discard(tmp_path)
        if is_ssl_error(e):
            raise FetchSSLError(f"SSL certificate verification failed: {e}") from e
        raise FetchError(f"Fetching ylem {record.version} failed: {e}") from e
    except BaseException:
        _discard(tmp_path)
        raise

    actual = sha256.digest()
    if not hmac.compare_digest(actual, record.sha256):
        _discard(tmp_path)
        raise IntegrityError(
            f"SHA-256 mismatch for ylem {record.version} ({record.platform}): "
            f"expected {record.sha256_hex}, got {actual.hex()}")

    logger.info("Verified ylem %s (%d bytes, sha256 %s)", record.version, size,
                actual.hex()[:16])
    return tmp_path
