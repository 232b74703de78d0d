"""
Shared test fixtures for the yvm test suite.

  - clean_env (autouse): strips YVM_* variables so the host cannot leak in,
    and forgets the memoised platform tag
  - make_artifact: writes a fake ylem binary, returns (path, sha256 hex)
  - release_files: artifacts for 0.8.0 / 0.8.1 / 0.9.0 plus an index JSON
  - catalog: Catalog built from release_files
  - store: VersionStore under tmp_path
  - manager: VersionManager using the release_files index as its
    embedded table (via YVM_RELEASES_LIST_JSON)
"""

import hashlib
import json
import os
from unittest import mock

import pytest

from yvm_core import Catalog, Settings, VersionManager, VersionStore
from yvm_core.platform import current_platform

PLATFORM = "linux-amd64"
VERSIONS = ("0.8.0", "0.8.1", "0.9.0")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("YVM_"):
            monkeypatch.delenv(name)
    current_platform.cache_clear()
    yield
    current_platform.cache_clear()


@pytest.fixture
def make_artifact(tmp_path):
    """Factory writing a fake binary; returns (path, sha256 hex)."""
    counter = {"n": 0}

    def _make(content=None, name=None):
        counter["n"] += 1
        content = content if content is not None else (
            b"\x7fELF fake ylem build %d" % counter["n"])
        path = tmp_path / (name or f"artifact-{counter['n']}.bin")
        path.write_bytes(content)
        return str(path), hashlib.sha256(content).hexdigest()

    return _make


@pytest.fixture
def release_files(tmp_path):
    """Write one artifact per version and an index referencing them.

    Returns:
        (index_path, {version: (artifact_path, sha256 hex)})
    """
    artifacts_dir = tmp_path / "artifacts"
    artifacts_dir.mkdir()
    entries = []
    files = {}
    for version in VERSIONS:
        content = f"ylem {version} for {PLATFORM}".encode()
        name = f"ylem-{PLATFORM}-v{version}"
        (artifacts_dir / name).write_bytes(content)
        digest = hashlib.sha256(content).hexdigest()
        files[version] = (str(artifacts_dir / name), digest)
        entries.append({
            "version": version,
            "platform": PLATFORM,
            "url": name,
            "sha256": digest,
        })
    # Same version published for another platform only
    entries.append({
        "version": "1.0.0",
        "platform": "macosx-aarch64",
        "url": "ylem-macosx-aarch64-v1.0.0",
        "sha256": "ab" * 32,
    })
    index_path = artifacts_dir / "releases.json"
    index_path.write_text(json.dumps({"releases": entries}))
    return str(index_path), files


@pytest.fixture
def catalog(release_files):
    index_path, _ = release_files
    with open(index_path) as f:
        data = json.load(f)
    return Catalog.from_index(data, base_dir=os.path.dirname(index_path))


@pytest.fixture
def store(tmp_path):
    return VersionStore(str(tmp_path / "store"), lock_timeout=5,
                        platform=PLATFORM)


@pytest.fixture
def manager(tmp_path, release_files, monkeypatch):
    index_path, _ = release_files
    monkeypatch.setenv("YVM_RELEASES_LIST_JSON", index_path)
    settings = Settings(home=str(tmp_path / "store"), offline=True,
                        lock_timeout=5, retries=2)
    return VersionManager(settings=settings, platform=PLATFORM)


def make_response(body, headers=None):
    """Build a mock urlopen() response usable as a context manager."""
    resp = mock.MagicMock()
    if isinstance(body, (list, tuple)):
        resp.read = mock.MagicMock(side_effect=list(body) + [b""])
    else:
        resp.read = mock.MagicMock(side_effect=[body, b""])
    resp.headers = headers or {}
    resp.__enter__ = mock.MagicMock(return_value=resp)
    resp.__exit__ = mock.MagicMock(return_value=False)
    return resp
