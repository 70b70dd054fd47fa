"""Tests for buildpack_actions.versions."""

from __future__ import annotations

import pytest

from buildpack_actions.errors import InvalidBump
from buildpack_actions.versions import (
    bump_version,
    highest_version,
    is_valid_version,
    parse_version,
)


class TestBumpVersion:
    @pytest.mark.parametrize(
        ("bump", "expected"),
        [("major", "2.0.0"), ("minor", "1.3.0"), ("patch", "1.2.4")],
    )
    def test_semver_rules(self, bump: str, expected: str) -> None:
        assert bump_version("1.2.3", bump) == expected  # type: ignore[arg-type]

    def test_invalid_version(self) -> None:
        with pytest.raises(InvalidBump, match="heroku/procfile") as exc_info:
            bump_version("1.2", "patch", "heroku/procfile")
        assert exc_info.value.version == "1.2"

    def test_unknown_bump(self) -> None:
        with pytest.raises(InvalidBump, match="unknown bump"):
            bump_version("1.2.3", "huge")  # type: ignore[arg-type]


class TestParseVersion:
    def test_rejects_prerelease(self) -> None:
        with pytest.raises(ValueError):
            parse_version("1.0.0-rc.1")

    def test_rejects_build_metadata(self) -> None:
        with pytest.raises(ValueError):
            parse_version("1.0.0+build.5")

    def test_is_valid_version(self) -> None:
        assert is_valid_version("0.0.1")
        assert not is_valid_version("v1.0.0")


class TestHighestVersion:
    def test_compares_numerically(self) -> None:
        assert highest_version(["1.9.0", "1.10.0", "1.2.0"]) == "1.10.0"

    def test_empty(self) -> None:
        assert highest_version([]) is None
