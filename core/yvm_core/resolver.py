"""
resolver.py — maps a version request onto exactly one catalog record

Resolution is pure: it reads the catalog it is given and nothing else.
"""

from .errors import InvalidVersionRequest, NoSatisfyingVersion, VersionNotFound
from .semver import VersionPredicate, parse_semver

LATEST_ALIASES = ("", "latest", "*")

_PREDICATE_CHARS = set("<>=!^~|, ")


class VersionRequest:
    """A parsed user request: 'latest', an exact version, or a predicate."""

    LATEST = "latest"
    EXACT = "exact"
    RANGE = "range"

    def __init__(self, kind, text, version=None, predicate=None):
        self.kind = kind
        self.text = text
        self.version = version
        self.predicate = predicate

    def matches(self, version):
        if self.kind == self.LATEST:
            return True
        if self.kind == self.EXACT:
            return version == self.version
        return self.predicate.matches(version)

    def __repr__(self):
        return f"VersionRequest({self.kind}, {self.text!r})"


def parse_request(text):
    """Parse a request string.

    Raises:
        InvalidVersionRequest: If the text is not 'latest', a version,
            or a version predicate.
    """
    raw = (text or "").strip()
    if raw.lower() in LATEST_ALIASES:
        return VersionRequest(VersionRequest.LATEST, raw or "latest")

    if not (_PREDICATE_CHARS & set(raw)):
        try:
            return VersionRequest(VersionRequest.EXACT, raw,
                                  version=parse_semver(raw))
        except ValueError as e:
            raise InvalidVersionRequest(f"Invalid version request {raw!r}: {e}") from e

    try:
        predicate = VersionPredicate(raw)
    except ValueError as e:
        raise InvalidVersionRequest(f"Invalid version request {raw!r}: {e}") from e
    return VersionRequest(VersionRequest.RANGE, raw, predicate=predicate)


def resolve(request, platform, catalog):
    """Resolve a request to one ReleaseRecord for `platform`.

    Args:
        request: VersionRequest or request string.
        platform: Platform tag; records of other platforms are never chosen.
        catalog: Catalog to resolve against.

    Raises:
        VersionNotFound: Exact version absent for the platform.
        NoSatisfyingVersion: No platform record satisfies 'latest' or the range.
    """
    if isinstance(request, str):
        request = parse_request(request)

    candidates = catalog.for_platform(platform)

    if request.kind == VersionRequest.EXACT:
        for record in candidates:
            if record.version == request.version:
                return record
        elsewhere = sorted(r.platform for r in catalog
                           if r.version == request.version)
        hint = f" (available for: {', '.join(elsewhere)})" if elsewhere else ""
        raise VersionNotFound(
            f"ylem {request.version} is not available for {platform}{hint}")

    if request.kind == VersionRequest.LATEST:
        if not candidates:
            raise NoSatisfyingVersion(f"No ylem releases for {platform}")
        stable = [r for r in candidates if not r.version.is_prerelease]
        return (stable or candidates)[-1]

    matching = [r for r in candidates if request.predicate.matches(r.version)]
    if not matching:
        raise NoSatisfyingVersion(
            f"No ylem release for {platform} satisfies {request.text!r}")
    return matching[-1]
