"""
store.py — on-disk version store

Layout under the store root:

    <root>/<version>/ylem-<version>   compiler binary
    <root>/<version>/.complete        completeness marker (verified digest)
    <root>/.active                    active version pointer
    <root>/.lock                      lock file for store mutations
    <root>/.staging/                  downloads and half-built installs

A version counts as installed only when its directory holds the
completeness marker. Installs assemble the directory in .staging/ and
publish it with a single rename under the store lock, so an interrupted
install never leaves a directory that looks installed.
"""

import logging
import os
import shutil
import stat
import tempfile
import time
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional

from .errors import (
    DanglingActivePointer, InvalidVersionRequest, NoActiveVersion, NotInstalled,
    StoreError,
)
from .lock import exclusive_lock
from .platform import current_platform, executable_name
from .semver import Version, parse_semver

logger = logging.getLogger(__name__)

ACTIVE_FILENAME = ".active"
LOCK_FILENAME = ".lock"
STAGING_DIRNAME = ".staging"
MARKER_FILENAME = ".complete"


@dataclass(frozen=True)
class InstalledVersion:
    version: Version
    install_path: str
    verified_digest: str

    @property
    def executable(self):
        """Path to the compiler binary, or None if it cannot be found."""
        for name in sorted(os.listdir(self.install_path)):
            if name.startswith("ylem"):
                return os.path.join(self.install_path, name)
        return None


def _make_executable(path):
    mode = os.stat(path).st_mode
    os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
             | stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH)


@contextmanager
def _store_errors(action):
    """Turn filesystem failures inside the block into StoreError."""
    try:
        yield
    except OSError as e:
        raise StoreError(f"Cannot {action}: {e}") from e


def _as_version(version):
    if isinstance(version, Version):
        return version
    try:
        return parse_semver(version)
    except ValueError as e:
        raise InvalidVersionRequest(f"Invalid version {version!r}: {e}") from e


class VersionStore:
    """Handle on one version store root.

    Mutations (install, use, remove, prune_staging) take the store lock
    around their filesystem changes; reads never lock and report whatever
    the filesystem shows at that moment.
    """

    def __init__(self, root, lock_timeout=None, platform=None):
        self.root = os.path.abspath(root)
        self.lock_timeout = lock_timeout
        self.platform = platform or current_platform()

    def __repr__(self):
        return f"VersionStore({self.root!r})"

    # -- paths --------------------------------------------------------------

    @property
    def active_path(self):
        return os.path.join(self.root, ACTIVE_FILENAME)

    @property
    def lock_path(self):
        return os.path.join(self.root, LOCK_FILENAME)

    def version_path(self, version):
        return os.path.join(self.root, str(_as_version(version)))

    def staging_dir(self):
        """Create and return the staging directory (same filesystem as root)."""
        path = os.path.join(self.root, STAGING_DIRNAME)
        with _store_errors(f"create staging directory {path}"):
            os.makedirs(path, exist_ok=True)
        return path

    def _locked(self):
        return exclusive_lock(self.lock_path, timeout=self.lock_timeout)

    # -- reads --------------------------------------------------------------

    def _read_installed(self, version):
        path = self.version_path(version)
        try:
            with open(os.path.join(path, MARKER_FILENAME), "r",
                      encoding="utf-8") as f:
                digest = f.read().strip()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise StoreError(f"Cannot read {path}: {e}") from e
        return InstalledVersion(version=version, install_path=path,
                                verified_digest=digest)

    def is_installed(self, version):
        return self._read_installed(_as_version(version)) is not None

    def get(self, version):
        """Return the InstalledVersion for `version`.

        Raises:
            NotInstalled: If the version has no complete directory.
        """
        version = _as_version(version)
        installed = self._read_installed(version)
        if installed is None:
            raise NotInstalled(f"ylem {version} is not installed")
        return installed

    def list_installed(self) -> List[InstalledVersion]:
        """All complete version directories, ascending by version."""
        try:
            names = os.listdir(self.root)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreError(f"Cannot list version store {self.root}: {e}") from e

        found = []
        for name in names:
            if name.startswith("."):
                continue
            try:
                version = parse_semver(name)
            except ValueError:
                continue
            if str(version) != name:
                continue
            installed = self._read_installed(version)
            if installed is not None:
                found.append(installed)
        found.sort(key=lambda iv: iv.version)
        return found

    def active_name(self) -> Optional[str]:
        """Raw pointer contents, unvalidated; None if unset."""
        try:
            with open(self.active_path, "r", encoding="utf-8") as f:
                text = f.read().strip()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise StoreError(f"Cannot read {self.active_path}: {e}") from e
        return text or None

    def active(self) -> Optional[InstalledVersion]:
        """The active InstalledVersion, or None if no version is active.

        Raises:
            DanglingActivePointer: If the pointer names a version that is
                not installed.
        """
        name = self.active_name()
        if name is None:
            return None
        try:
            version = parse_semver(name)
        except ValueError as e:
            raise DanglingActivePointer(
                f"Active version pointer {self.active_path} holds an invalid "
                f"version {name!r}") from e
        installed = self._read_installed(version)
        if installed is None:
            raise DanglingActivePointer(
                f"Active version {name} is not installed "
                f"(pointer: {self.active_path})")
        return installed

    def active_executable(self):
        """Path of the compiler binary of the active version.

        Raises:
            NoActiveVersion: If no version is active.
            DanglingActivePointer: If the active version is not installed.
            StoreError: If the active install holds no ylem binary.
        """
        current = self.active()
        if current is None:
            raise NoActiveVersion(
                "No active ylem version; run 'yvm install' or 'yvm use <version>'")
        with _store_errors(f"read {current.install_path}"):
            exe = current.executable
        if exe is None:
            raise StoreError(f"No ylem binary in {current.install_path}")
        return exe

    # -- mutations ----------------------------------------------------------

    def _write_active(self, version):
        fd, tmp_path = tempfile.mkstemp(prefix=".active.", suffix=".tmp",
                                        dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{version}\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.active_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _clear_active(self):
        try:
            os.unlink(self.active_path)
        except FileNotFoundError:
            pass

    def _stage(self, version, artifact_path, digest):
        """Assemble a complete version directory inside the staging area."""
        stage = tempfile.mkdtemp(prefix=f"{version}.", suffix=".install",
                                 dir=self.staging_dir())
        try:
            exe_name = executable_name(version, self.platform)
            if zipfile.is_zipfile(artifact_path):
                with zipfile.ZipFile(artifact_path) as zf:
                    zf.extractall(stage)
                os.unlink(artifact_path)
                exe = self._find_extracted_binary(stage)
                if exe is not None and os.path.basename(exe) != exe_name:
                    os.rename(exe, os.path.join(stage, exe_name))
            else:
                os.rename(artifact_path, os.path.join(stage, exe_name))
            exe_path = os.path.join(stage, exe_name)
            if os.path.exists(exe_path):
                _make_executable(exe_path)
            else:
                logger.warning("No ylem binary found in archive for %s", version)

            with open(os.path.join(stage, MARKER_FILENAME), "w",
                      encoding="utf-8") as f:
                f.write(f"{digest or ''}\n")
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            shutil.rmtree(stage, ignore_errors=True)
            raise
        return stage

    @staticmethod
    def _find_extracted_binary(stage):
        for dirpath, _, filenames in os.walk(stage):
            for name in sorted(filenames):
                if name.startswith("ylem"):
                    return os.path.join(dirpath, name)
        return None

    def install(self, version, verified_artifact_path, digest=None,
                activate=False):
        """Install a verified artifact as `version`.

        Idempotent: if the version is already installed the artifact is
        discarded and the existing install is returned.

        Args:
            version: Version or version string.
            verified_artifact_path: Verified file, normally inside
                staging_dir(); it is consumed (moved or deleted).
            digest: Verified hex digest recorded in the completeness marker.
            activate: True to always point .active at this version, None
                to do so only when no pointer exists, False to leave it.

        Returns:
            InstalledVersion.
        """
        version = _as_version(version)
        with _store_errors(f"stage ylem {version} in {self.root}"):
            os.makedirs(self.root, exist_ok=True)
            stage = self._stage(version, verified_artifact_path, digest)
        final = self.version_path(version)

        try:
            with self._locked(), _store_errors(f"install ylem {version}"):
                installed = self._read_installed(version)
                if installed is not None:
                    logger.info("ylem %s is already installed", version)
                else:
                    if os.path.lexists(final):
                        logger.warning("Removing incomplete install at %s", final)
                        shutil.rmtree(final)
                    os.rename(stage, final)
                    stage = None
                    installed = self._read_installed(version)
                    logger.info("Installed ylem %s to %s", version, final)

                if activate or (activate is None and self.active_name() is None):
                    self._write_active(version)
                    logger.info("Active ylem version set to %s", version)
                return installed
        finally:
            if stage is not None:
                shutil.rmtree(stage, ignore_errors=True)

    def use(self, version, if_unset=False):
        """Make an installed version active.

        Args:
            version: Version or version string.
            if_unset: Only write the pointer when no version is active.

        Returns:
            True if the pointer now names `version` because of this call.

        Raises:
            NotInstalled: If the version is not installed; the pointer is
                left as it was.
        """
        version = _as_version(version)
        with self._locked(), _store_errors(f"activate ylem {version}"):
            if self._read_installed(version) is None:
                raise NotInstalled(f"ylem {version} is not installed")
            if if_unset and self.active_name() is not None:
                return False
            self._write_active(version)
        logger.info("Active ylem version set to %s", version)
        return True

    def remove(self, version):
        """Delete an installed version.

        Removing the active version clears the pointer; no other version
        is activated in its place.

        Raises:
            NotInstalled: If the version is not installed.
        """
        version = _as_version(version)
        with self._locked(), _store_errors(f"remove ylem {version}"):
            if self._read_installed(version) is None:
                raise NotInstalled(f"ylem {version} is not installed")
            if self.active_name() == str(version):
                self._clear_active()
                logger.info("Cleared active version (was %s)", version)
            path = self.version_path(version)
            os.unlink(os.path.join(path, MARKER_FILENAME))
            shutil.rmtree(path, ignore_errors=True)
            if os.path.exists(path):
                logger.warning("Could not fully delete %s", path)
        logger.info("Removed ylem %s", version)

    def prune_staging(self, max_age=86400):
        """Delete staging entries older than `max_age` seconds.

        Returns:
            Number of entries removed.
        """
        staging = os.path.join(self.root, STAGING_DIRNAME)
        if not os.path.isdir(staging):
            return 0
        cutoff = time.time() - max_age
        removed = 0
        with self._locked(), _store_errors(f"prune {staging}"):
            for name in os.listdir(staging):
                path = os.path.join(staging, name)
                try:
                    if os.lstat(path).st_mtime >= cutoff:
                        continue
                    if os.path.isdir(path) and not os.path.islink(path):
                        shutil.rmtree(path)
                    else:
                        os.unlink(path)
                    removed += 1
                except FileNotFoundError:
                    continue
        if removed:
            logger.info("Pruned %d stale staging entr%s", removed,
                        "y" if removed == 1 else "ies")
        return removed
