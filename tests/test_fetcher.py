"""
Tests for yvm_core.fetcher — download/copy with SHA-256 verification.

Uses unittest.mock to avoid real network calls.
"""

import hashlib
import http.client
import os
import ssl
import urllib.error
from pathlib import Path
from unittest import mock

import pytest

from conftest import PLATFORM, make_response
from yvm_core import (
    FetchError,
    FetchSSLError,
    IntegrityError,
    ReleaseRecord,
    fetch_and_verify,
    parse_semver,
)

URLOPEN = "yvm_core.net.urllib.request.urlopen"


def _record(source, content=None, digest=None, version="0.8.1"):
    if digest is None:
        digest = hashlib.sha256(content).digest()
    return ReleaseRecord(version=parse_semver(version), platform=PLATFORM,
                         source=source, sha256=digest)


def _leftovers(staging):
    return os.listdir(staging) if os.path.isdir(staging) else []


class TestRemoteFetch:
    def test_download_success(self, tmp_path):
        content = b"fake ylem binary"
        staging = str(tmp_path / "staging")
        resp = make_response(content, {"Content-Length": str(len(content))})
        with mock.patch(URLOPEN, return_value=resp):
            path = fetch_and_verify(
                _record("https://example.com/ylem-0.8.1", content), staging)

        assert os.path.dirname(path) == staging
        with open(path, "rb") as f:
            assert f.read() == content

    def test_download_in_chunks(self, tmp_path):
        chunks = [b"a" * 8192, b"b" * 8192, b"c" * 10]
        content = b"".join(chunks)
        with mock.patch(URLOPEN, return_value=make_response(chunks)):
            path = fetch_and_verify(
                _record("https://example.com/ylem", content), str(tmp_path))
        assert Path(path).read_bytes() == content

    def test_checksum_mismatch(self, tmp_path):
        """SHA-256 mismatch raises IntegrityError and removes the temp file."""
        staging = str(tmp_path / "staging")
        record = _record("https://example.com/ylem", digest=bytes(32))
        with mock.patch(URLOPEN, return_value=make_response(b"tampered")):
            with pytest.raises(IntegrityError, match="SHA-256 mismatch"):
                fetch_and_verify(record, staging)
        assert _leftovers(staging) == []

    def test_network_error(self, tmp_path):
        staging = str(tmp_path / "staging")
        with mock.patch(URLOPEN,
                        side_effect=urllib.error.URLError("connection refused")):
            with pytest.raises(FetchError, match="failed"):
                fetch_and_verify(_record("https://example.com/ylem", b"x"), staging)
        assert _leftovers(staging) == []

    def test_http_error_status(self, tmp_path):
        err = urllib.error.HTTPError("https://example.com/ylem", 404, "Not Found",
                                     {}, None)
        with mock.patch(URLOPEN, side_effect=err):
            with pytest.raises(FetchError):
                fetch_and_verify(_record("https://example.com/ylem", b"x"),
                                 str(tmp_path))

    def test_connection_reset_mid_stream(self, tmp_path):
        staging = str(tmp_path / "staging")
        resp = make_response(b"")
        resp.read = mock.MagicMock(
            side_effect=[b"partial", ConnectionResetError("reset by peer")])
        with mock.patch(URLOPEN, return_value=resp):
            with pytest.raises(FetchError):
                fetch_and_verify(_record("https://example.com/ylem", b"x"), staging)
        assert _leftovers(staging) == []

    def test_incomplete_read(self, tmp_path):
        resp = make_response(b"")
        resp.read = mock.MagicMock(side_effect=http.client.IncompleteRead(b"ab"))
        with mock.patch(URLOPEN, return_value=resp):
            with pytest.raises(FetchError):
                fetch_and_verify(_record("https://example.com/ylem", b"x"),
                                 str(tmp_path))

    def test_ssl_error(self, tmp_path):
        exc = urllib.error.URLError(
            ssl.SSLCertVerificationError("CERTIFICATE_VERIFY_FAILED"))
        with mock.patch(URLOPEN, side_effect=exc):
            with pytest.raises(FetchSSLError, match="SSL certificate"):
                fetch_and_verify(_record("https://example.com/ylem", b"x"),
                                 str(tmp_path))

    def test_ssl_noverify_context(self, tmp_path):
        content = b"noverify"
        captured = []

        def capture(req, **kwargs):
            captured.append(kwargs.get("context"))
            return make_response(content)

        with mock.patch(URLOPEN, side_effect=capture):
            fetch_and_verify(_record("https://example.com/ylem", content),
                             str(tmp_path), ssl_noverify=True)
        assert captured[0].verify_mode == ssl.CERT_NONE

    def test_progress_callback(self, tmp_path):
        content = b"x" * 100
        calls = []
        resp = make_response(content, {"Content-Length": "100"})
        with mock.patch(URLOPEN, return_value=resp):
            fetch_and_verify(_record("https://example.com/ylem", content),
                             str(tmp_path),
                             progress_callback=lambda d, t: calls.append((d, t)))
        assert calls[-1] == (100, 100)

    def test_interrupt_cleans_up(self, tmp_path):
        staging = str(tmp_path / "staging")
        resp = make_response(b"")
        resp.read = mock.MagicMock(side_effect=[b"partial", KeyboardInterrupt()])
        with mock.patch(URLOPEN, return_value=resp):
            with pytest.raises(KeyboardInterrupt):
                fetch_and_verify(_record("https://example.com/ylem", b"x"), staging)
        assert _leftovers(staging) == []


class TestLocalFetch:
    def test_embedded_path_copied(self, tmp_path, make_artifact):
        src, _ = make_artifact(b"embedded ylem")
        with mock.patch(URLOPEN) as urlopen:
            path = fetch_and_verify(_record(src, b"embedded ylem"),
                                    str(tmp_path / "staging"))
        urlopen.assert_not_called()
        assert Path(path).read_bytes() == b"embedded ylem"
        assert os.path.exists(src)

    def test_file_url(self, tmp_path, make_artifact):
        src, _ = make_artifact(b"file url ylem")
        path = fetch_and_verify(_record(Path(src).as_uri(), b"file url ylem"),
                                str(tmp_path / "staging"))
        assert Path(path).read_bytes() == b"file url ylem"

    def test_embedded_mismatch(self, tmp_path, make_artifact):
        src, _ = make_artifact(b"corrupted")
        staging = str(tmp_path / "staging")
        with pytest.raises(IntegrityError):
            fetch_and_verify(_record(src, digest=b"\x01" * 32), staging)
        assert _leftovers(staging) == []

    def test_missing_embedded_file(self, tmp_path):
        staging = str(tmp_path / "staging")
        with pytest.raises(FetchError):
            fetch_and_verify(_record(str(tmp_path / "missing"), b"x"), staging)
        assert _leftovers(staging) == []
