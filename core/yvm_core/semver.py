"""
semver.py — version parsing and predicate matching (pure stdlib)

Versions are "major[.minor[.patch]][-prerelease][+build]"; missing
components read as 0, so "0.8" is 0.8.0. Predicates are comparator
sets such as ">=0.8.0 <0.9.0", ">=0.1.1,<0.2.0", "^0.8" or
"~1.2 || >=2.0.0".
"""

import functools
import re

_VERSION_RE = re.compile(
    r'^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?'
    r'(?:-([0-9A-Za-z.-]+))?'
    r'(?:\+([0-9A-Za-z.-]+))?$'
)

_COMPARATOR_RE = re.compile(r'^(==|=|!=|>=|<=|>|<|\^|~)?\s*(.+)$')


@functools.total_ordering
class Version:
    """A parsed semantic version.

    Build metadata is kept for display only; it takes no part in
    equality or ordering.
    """

    __slots__ = ('major', 'minor', 'patch', 'prerelease', 'build')

    def __init__(self, major, minor=0, patch=0, prerelease='', build=''):
        self.major = int(major)
        self.minor = int(minor)
        self.patch = int(patch)
        self.prerelease = prerelease or ''
        self.build = build or ''

    @property
    def release(self):
        """The (major, minor, patch) triple."""
        return (self.major, self.minor, self.patch)

    @property
    def is_prerelease(self):
        return bool(self.prerelease)

    def _key(self):
        # A release sorts above all of its prereleases.
        if not self.prerelease:
            return (self.release, 1, ())
        idents = []
        for part in self.prerelease.split('.'):
            if part.isdigit():
                idents.append((0, int(part), ''))
            else:
                idents.append((1, 0, part))
        return (self.release, 0, tuple(idents))

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def __str__(self):
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text

    def __repr__(self):
        return f"Version('{self}')"


def parse_semver(version_str):
    """Parse a version string into a Version.

    Raises:
        ValueError: If the string is empty, None, or not a version.
    """
    if not version_str or not isinstance(version_str, str):
        raise ValueError(f"Invalid version: {version_str!r}")
    m = _VERSION_RE.match(version_str.strip())
    if not m:
        raise ValueError(f"Invalid version: {version_str!r}")
    major, minor, patch, pre, build = m.groups()
    return Version(major, minor or 0, patch or 0, pre, build)


def _bump_caret(v, partial_parts):
    # Components the user left out are free to change
    if v.major or partial_parts == 1:
        return Version(v.major + 1)
    if v.minor or partial_parts == 2:
        return Version(0, v.minor + 1)
    return Version(0, 0, v.patch + 1)


def _comparator_check(op, bound, partial_parts):
    """Return a predicate function for a single comparator."""
    if op in ('', '=', '=='):
        return lambda v: v == bound
    if op == '!=':
        return lambda v: v != bound
    if op == '>':
        return lambda v: v > bound
    if op == '>=':
        return lambda v: v >= bound
    if op == '<':
        return lambda v: v < bound
    if op == '<=':
        return lambda v: v <= bound
    if op == '^':
        upper = _bump_caret(bound, partial_parts)
        return lambda v: bound <= v < upper
    # '~': patch-level changes, or minor-level when only the major was given
    if partial_parts == 1:
        upper = Version(bound.major + 1)
    else:
        upper = Version(bound.major, bound.minor + 1)
    return lambda v: bound <= v < upper


class VersionPredicate:
    """A set of comparator groups; groups are ORed, comparators ANDed.

    A prerelease version only matches when one of the comparators in the
    matching group names a prerelease of the same major.minor.patch.
    """

    def __init__(self, text):
        self.text = text
        self.groups = []
        for alternative in text.split('||'):
            tokens = [t for t in re.split(r'[\s,]+', alternative.strip()) if t]
            # Allow ">= 1.0.0" with a space after the operator.
            merged = []
            for token in tokens:
                if merged and merged[-1] in ('==', '=', '!=', '>=', '<=',
                                             '>', '<', '^', '~'):
                    merged[-1] += token
                else:
                    merged.append(token)
            if not merged:
                raise ValueError(f"Empty version predicate in {text!r}")
            self.groups.append([self._parse_comparator(t) for t in merged])

    @staticmethod
    def _parse_comparator(token):
        m = _COMPARATOR_RE.match(token)
        if not m:
            raise ValueError(f"Invalid comparator: {token!r}")
        op, ver_text = m.group(1) or '', m.group(2)
        bound = parse_semver(ver_text)
        partial_parts = ver_text.lstrip('v').split('-')[0].split('+')[0].count('.') + 1
        check = _comparator_check(op, bound, partial_parts)
        return (op, bound, check)

    def matches(self, version):
        for group in self.groups:
            if version.is_prerelease:
                allowed = any(b.is_prerelease and b.release == version.release
                              for _, b, _ in group)
                if not allowed:
                    continue
            if all(check(version) for _, _, check in group):
                return True
        return False

    def __repr__(self):
        return f"VersionPredicate({self.text!r})"
