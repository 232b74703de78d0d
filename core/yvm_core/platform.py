"""
platform.py — release platform tags

The tag of the running process is derived once from the OS and CPU
architecture and never changes afterwards.
"""

import functools
import logging
import os
import platform

from .errors import UnsupportedPlatform

logger = logging.getLogger(__name__)

LINUX_AMD64 = "linux-amd64"
LINUX_AARCH64 = "linux-aarch64"
MACOSX_AMD64 = "macosx-amd64"
MACOSX_AARCH64 = "macosx-aarch64"
WINDOWS_AMD64 = "windows-amd64"

KNOWN_PLATFORMS = (
    LINUX_AMD64,
    LINUX_AARCH64,
    MACOSX_AMD64,
    MACOSX_AARCH64,
    WINDOWS_AMD64,
)

_SYSTEMS = {
    "linux": "linux",
    "darwin": "macosx",
    "windows": "windows",
}

_ARCHES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}


def detect_platform(system=None, machine=None):
    """Map an OS name and machine string onto a platform tag.

    YVM_TARGET_PLATFORM, when set, overrides detection.

    Raises:
        UnsupportedPlatform: If the OS/architecture pair has no tag.
    """
    override = os.environ.get("YVM_TARGET_PLATFORM", "").strip()
    if override:
        if override not in KNOWN_PLATFORMS:
            raise UnsupportedPlatform(
                f"YVM_TARGET_PLATFORM={override!r} is not one of: "
                f"{', '.join(KNOWN_PLATFORMS)}")
        logger.debug("Platform overridden by YVM_TARGET_PLATFORM: %s", override)
        return override

    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    os_part = _SYSTEMS.get(system)
    arch_part = _ARCHES.get(machine)
    tag = f"{os_part}-{arch_part}"
    if os_part is None or arch_part is None or tag not in KNOWN_PLATFORMS:
        raise UnsupportedPlatform(
            f"Unsupported platform: {system}/{machine}")
    return tag


@functools.lru_cache(maxsize=None)
def current_platform():
    """Return the platform tag of this process (computed once)."""
    tag = detect_platform()
    logger.debug("Detected platform: %s", tag)
    return tag


def executable_name(version, platform_tag):
    """File name of the compiler binary inside a version directory."""
    name = f"ylem-{version}"
    if platform_tag.startswith("windows"):
        name += ".exe"
    return name
