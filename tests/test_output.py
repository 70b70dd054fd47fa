"""Tests for buildpack_actions.output."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildpack_actions.output import format_output, set_output, set_summary


class TestFormatOutput:
    def test_single_line(self) -> None:
        assert format_output("version", "1.2.3") == "version=1.2.3\n"

    def test_multi_line_uses_heredoc(self) -> None:
        text = format_output("changelog", "## heroku/a\n\n- Change")

        header, *body, footer, trailing = text.split("\n")
        name, delimiter = header.split("<<")
        assert name == "changelog"
        assert delimiter.startswith("ghadelimiter_")
        assert body == ["## heroku/a", "", "- Change"]
        assert footer == delimiter
        assert trailing == ""


class TestGitHubFiles:
    def test_set_output_appends(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        output = tmp_path / "output"
        monkeypatch.setenv("GITHUB_OUTPUT", str(output))

        set_output("from_version", "1.0.0")
        set_output("to_version", "1.0.1")

        assert output.read_text() == "from_version=1.0.0\nto_version=1.0.1\n"

    def test_set_output_outside_actions(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
        monkeypatch.chdir(tmp_path)

        set_output("version", "1.0.0")

        assert list(tmp_path.iterdir()) == []

    def test_set_summary(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        summary = tmp_path / "summary.md"
        monkeypatch.setenv("GITHUB_STEP_SUMMARY", str(summary))

        set_summary("# One\n")
        set_summary("# Two")

        assert summary.read_text() == "# One\n# Two\n"
