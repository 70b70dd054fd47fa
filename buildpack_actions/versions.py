"""Version parsing and bumping utilities.

Buildpack versions are strict MAJOR.MINOR.PATCH: the CNB spec does not
allow pre-release or build metadata in [buildpack].version.
"""

from __future__ import annotations

import semver

from .errors import InvalidBump
from .models import Bump


def parse_version(version_str: str) -> semver.Version:
    """Parse a buildpack version string into a semver.Version.

    Raises:
        ValueError: If the string is not MAJOR.MINOR.PATCH or carries
            pre-release/build metadata.
    """
    version = semver.Version.parse(version_str)
    if version.prerelease or version.build:
        raise ValueError(f"{version_str} has pre-release or build metadata")
    return version


def is_valid_version(version_str: str) -> bool:
    try:
        parse_version(version_str)
    except ValueError:
        return False
    return True


def bump_version(version_str: str, bump: Bump, buildpack_id: str | None = None) -> str:
    """Apply a SemVer increment and return the new version string.

    Examples:
        bump_version("1.2.3", "major") → "2.0.0"
        bump_version("1.2.3", "minor") → "1.3.0"
        bump_version("1.2.3", "patch") → "1.2.4"

    Raises:
        InvalidBump: If version_str is not a valid buildpack version or the
            bump kind is unknown.
    """
    try:
        version = parse_version(version_str)
    except ValueError as exc:
        raise InvalidBump(version_str, str(exc), buildpack_id) from exc

    if bump == "major":
        return str(version.bump_major())
    if bump == "minor":
        return str(version.bump_minor())
    if bump == "patch":
        return str(version.bump_patch())
    raise InvalidBump(version_str, f"unknown bump kind {bump!r}", buildpack_id)


def highest_version(versions: list[str]) -> str | None:
    """Return the highest of the given versions, or None when empty."""
    if not versions:
        return None
    return str(max(parse_version(v) for v in versions))
