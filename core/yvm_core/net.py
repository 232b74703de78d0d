"""
net.py — HTTPS helpers shared by the catalog and artifact fetchers

Uses only urllib/ssl from the standard library.
"""

import logging
import os
import ssl
import sys
import urllib.error
import urllib.request

from . import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"yvm/{__version__}"


def _load_windows_store_certs(ctx):
    """Load certificates from the Windows system certificate store.

    Corporate proxy CAs are installed there and are missing from
    Python's bundled CA list.

    Returns:
        Number of certificates loaded.
    """
    certs_loaded = 0
    for store_name in ("ROOT", "CA"):
        try:
            for cert, encoding, trust in ssl.enum_certificates(store_name):
                if encoding != "x509_asn":
                    continue
                try:
                    ctx.load_verify_locations(cadata=ssl.DER_cert_to_PEM_cert(cert))
                    certs_loaded += 1
                except ssl.SSLError:
                    logger.debug("Skipping unloadable certificate in %s store",
                                 store_name)
        except OSError as e:
            logger.debug("Cannot read Windows %s store: %s", store_name, e)
    return certs_loaded


def create_noverify_ssl_context():
    """SSL context without certificate checks.

    Artifact integrity still rests on the SHA-256 comparison.
    """
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def create_ssl_context(ssl_noverify=False):
    """Create an SSL context for yvm HTTPS requests.

    Environment:
      - YVM_SSL_VERIFY: "0" disables certificate verification.
      - YVM_SSL_CERT: path to a PEM CA bundle to trust instead.

    Returns:
        ssl.SSLContext or None (None = urllib defaults).
    """
    if ssl_noverify:
        logger.debug("SSL verification disabled by caller")
        return create_noverify_ssl_context()

    ssl_verify = os.environ.get("YVM_SSL_VERIFY", "1").strip()
    ssl_cert = os.environ.get("YVM_SSL_CERT", "").strip()

    if ssl_verify == "0":
        logger.warning(
            "SSL certificate verification disabled (YVM_SSL_VERIFY=0). "
            "Downloads are still checked against their SHA-256 digests.")
        return create_noverify_ssl_context()

    if ssl_cert:
        if not os.path.isfile(ssl_cert):
            logger.warning("YVM_SSL_CERT file not found: %s", ssl_cert)
            return None
        logger.info("Using custom CA bundle: %s", ssl_cert)
        return ssl.create_default_context(cafile=ssl_cert)

    if sys.platform == "win32":
        ctx = ssl.create_default_context()
        loaded = _load_windows_store_certs(ctx)
        if loaded:
            logger.debug("Loaded %d certificate(s) from Windows system store",
                         loaded)
        return ctx

    return None


def is_ssl_error(exc):
    """Check whether an exception is caused by SSL certificate verification."""
    if isinstance(exc, ssl.SSLError):
        return True
    # urllib wraps SSL errors in URLError
    if isinstance(exc, urllib.error.URLError):
        return isinstance(getattr(exc, "reason", None), ssl.SSLError)
    return False


def open_url(url, timeout, ssl_noverify=False, accept=None):
    """Open an HTTP(S) URL and return the response object.

    Network errors propagate as urllib/OSError exceptions; callers map
    them onto their own error types.
    """
    headers = {"User-Agent": USER_AGENT}
    if accept:
        headers["Accept"] = accept
    req = urllib.request.Request(url, headers=headers)
    return urllib.request.urlopen(req, timeout=timeout,
                                  context=create_ssl_context(ssl_noverify))
