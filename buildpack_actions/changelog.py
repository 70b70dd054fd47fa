"""Keep a Changelog parsing and editing.

Each buildpack keeps a CHANGELOG.md in the Keep a Changelog format::

    ## [Unreleased]

    ### Added

    - Something new.

    ## [1.2.3] - 2024-01-31

    - Something old.

    [unreleased]: https://github.com/org/repo/compare/v1.2.3...HEAD
    [1.2.3]: https://github.com/org/repo/releases/tag/v1.2.3

Reading goes through parse_changelog(). Edits are textual and scoped to
the sections they change, so the rest of a hand-written changelog is kept
byte for byte.
"""

from __future__ import annotations

import datetime
import re
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, Field

from .errors import ChangelogError
from .models import ChangelogEntry
from .versions import is_valid_version, parse_version

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t]*#*[ \t]*$")
_UNRELEASED_RE = re.compile(r"^\[?unreleased\]?$", re.IGNORECASE)
_VERSION_RE = re.compile(r"^\[?(\d+\.\d+\.\d+)\]?.*?(\d{4})[-/](\d{2})[-/](\d{2})")
_LINK_DEFINITION_RE = re.compile(r"^ {0,3}\[([^\]]+)\]:\s*\S+")
_FENCE_RE = re.compile(r"^ {0,3}(```|~~~)")
_CHANGED_RE = re.compile(r"^###[ \t]+Changed[ \t]*$")


class Changelog(BaseModel):
    """Parsed view of a CHANGELOG.md.

    Attributes:
        unreleased: Body of the Unreleased section, or None when the section
            is missing or empty.
        releases: Released entries keyed by version, in document order.
    """

    unreleased: str | None = None
    releases: dict[str, ChangelogEntry] = Field(default_factory=dict)


def _headings(lines: list[str]) -> list[tuple[int, int, str]]:
    """(line index, level, title) of every heading outside code fences."""
    found: list[tuple[int, int, str]] = []
    in_fence = False
    for index, line in enumerate(lines):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING_RE.match(line)
        if match:
            found.append((index, len(match.group(1)), match.group(2)))
    return found


def _trailing_definitions_start(lines: list[str]) -> int:
    """Index of the first line of the trailing link-definition block.

    Returns len(lines) when the document does not end in definitions.
    """
    start = len(lines)
    for index in range(len(lines) - 1, -1, -1):
        stripped = lines[index].strip()
        if not stripped:
            continue
        if _LINK_DEFINITION_RE.match(lines[index]):
            start = index
            continue
        break
    return start


def _sections(lines: list[str]) -> list[tuple[int, int, int, str]]:
    """(heading index, body start, body end, title) for every level-2 section."""
    headings = _headings(lines)
    limit = _trailing_definitions_start(lines)
    sections = []
    for position, (index, level, title) in enumerate(headings):
        if level != 2:
            continue
        end = limit
        for next_index, next_level, _ in headings[position + 1 :]:
            if next_level <= 2:
                end = min(end, next_index)
                break
        sections.append((index, index + 1, max(end, index + 1), title))
    return sections


def _body(lines: list[str]) -> str:
    """Section lines as written, without blank lines at either edge."""
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(lines[start:end])


def parse_changelog(text: str, buildpack_id: str = "") -> Changelog:
    """Parse the Unreleased section and every released version.

    Level-2 headings that are neither Unreleased nor a dated version are
    ignored. The trailing block of link reference definitions belongs to no
    section; definitions written inside a section stay part of its body.

    Raises:
        ChangelogError: If a version heading carries an impossible date or
            a version appears twice.
    """
    lines = text.splitlines()
    changelog = Changelog()
    for _, start, end, title in _sections(lines):
        body = _body(lines[start:end])
        if _UNRELEASED_RE.match(title):
            if body and changelog.unreleased is None:
                changelog.unreleased = body
            continue
        match = _VERSION_RE.match(title)
        if not match:
            continue
        version, year, month, day = match.groups()
        try:
            date = datetime.date(int(year), int(month), int(day))
        except ValueError as exc:
            raise ChangelogError(
                None, f"invalid date in heading {title!r}: {exc}"
            ) from exc
        if version in changelog.releases:
            raise ChangelogError(None, f"version {version} appears more than once")
        changelog.releases[version] = ChangelogEntry(
            buildpack_id=buildpack_id, version=version, date=date, body=body
        )
    return changelog


def dependency_bullets(dependency_updates: Mapping[str, str]) -> list[str]:
    """Bullets announcing new versions of composite dependencies."""
    return [
        f"- Updated `{dep}` to `{version}`."
        for dep, version in sorted(dependency_updates.items())
    ]


def merge_dependency_bullets(body: str, bullets: list[str]) -> str:
    """Add bullets to the "### Changed" sub-section, creating it if needed."""
    if not bullets:
        return body
    if not body:
        return "### Changed\n\n" + "\n".join(bullets)

    lines = body.splitlines()
    changed_at = next(
        (i for i, line in enumerate(lines) if _CHANGED_RE.match(line)), None
    )
    if changed_at is None:
        return body.rstrip() + "\n\n### Changed\n\n" + "\n".join(bullets)

    end = len(lines)
    for index in range(changed_at + 1, len(lines)):
        if lines[index].startswith("#"):
            end = index
            break
    # Insert after the last non-blank line of the Changed sub-section.
    insert_at = end
    while insert_at > changed_at + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1
    if insert_at == changed_at + 1:
        bullets = ["", *bullets]
    return "\n".join([*lines[:insert_at], *bullets, *lines[insert_at:]])


def promote_unreleased(
    text: str,
    version: str,
    date: datetime.date,
    dependency_updates: Mapping[str, str] | None = None,
) -> str | None:
    """Move the Unreleased section's body under a new version heading.

    A "## [version] - date" heading is inserted right after the Unreleased
    heading, which is left empty. Nothing outside the Unreleased section
    changes.

    Args:
        text: Current CHANGELOG.md contents.
        version: The version being released.
        date: Release date.
        dependency_updates: Dependency id → new version, announced as
            "Updated" bullets under "### Changed".

    Returns:
        The new changelog text, or None when there is nothing to release.

    Raises:
        ChangelogError: If dependency updates must be recorded but the
            changelog has no Unreleased section.
    """
    lines = text.splitlines()
    section = next((s for s in _sections(lines) if _UNRELEASED_RE.match(s[3])), None)
    bullets = dependency_bullets(dependency_updates or {})

    if section is None:
        if bullets:
            raise ChangelogError(None, "no Unreleased section to record updates in")
        return None

    heading, start, end, _ = section
    body = _body(lines[start:end])
    if not body and not bullets:
        return None
    body = merge_dependency_bullets(body, bullets)

    after = lines[end:]
    while after and not after[0].strip():
        after.pop(0)
    new_lines = [
        *lines[: heading + 1],
        "",
        f"## [{version}] - {date.isoformat()}",
        "",
        *body.splitlines(),
    ]
    if after:
        new_lines += ["", *after]
    return "\n".join(new_lines) + "\n"


def release_declarations(
    versions: Iterable[str],
    repository_url: str,
    starting_version: str | None = None,
) -> list[str]:
    """Link reference definitions for the Unreleased and version headings.

    ``versions`` must be ordered newest first, as they appear in the file.
    Versions older than ``starting_version`` are left out, for repositories
    whose early history predates tagging.
    """
    repository_url = repository_url.rstrip("/")
    selected = list(versions)
    if starting_version is not None:
        floor = parse_version(starting_version)
        selected = [v for v in selected if parse_version(v) >= floor]
    if not selected:
        return [f"[unreleased]: {repository_url}"]

    declarations = [f"[unreleased]: {repository_url}/compare/v{selected[0]}...HEAD"]
    for newer, older in zip(selected, selected[1:]):
        declarations.append(f"[{newer}]: {repository_url}/compare/v{older}...v{newer}")
    last = selected[-1]
    declarations.append(f"[{last}]: {repository_url}/releases/tag/v{last}")
    return declarations


def _is_release_definition(line: str) -> bool:
    match = _LINK_DEFINITION_RE.match(line)
    if not match:
        return False
    label = match.group(1)
    return label.lower() == "unreleased" or is_valid_version(label)


def update_link_declarations(
    text: str, repository_url: str, starting_version: str | None = None
) -> str:
    """Regenerate the trailing block of release link definitions.

    Existing definitions for "unreleased" and version labels are replaced;
    any other link definitions are kept.
    """
    lines = text.splitlines()
    start = _trailing_definitions_start(lines)
    kept_definitions = [
        line
        for line in lines[start:]
        if line.strip() and not _is_release_definition(line)
    ]
    content = lines[:start]
    while content and not content[-1].strip():
        content.pop()

    versions = list(parse_changelog(text).releases)
    declarations = release_declarations(versions, repository_url, starting_version)
    return "\n".join([*content, "", *declarations, *kept_definitions]) + "\n"
