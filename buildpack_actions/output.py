"""Console and GitHub Actions output helpers.

Progress is written to stderr so that stdout only carries each command's
structured result. Step outputs go to the file named by $GITHUB_OUTPUT
when running inside GitHub Actions.
"""

from __future__ import annotations

import os
import secrets
from pathlib import Path

import click


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of a command in terminal output.
    """
    click.echo(f"\n{'─' * 60}\n{msg}\n{'─' * 60}", err=True)


def info(msg: str) -> None:
    click.echo(f"  {msg}", err=True)


def warn(msg: str) -> None:
    click.echo(f"  Warning: {msg}", err=True)


def format_output(name: str, value: str) -> str:
    """Format one step output line.

    Multi-line values use the heredoc form with a random delimiter, as
    required by GitHub Actions.
    """
    if "\n" in value:
        delimiter = f"ghadelimiter_{secrets.token_hex(10)}"
        return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"
    return f"{name}={value}\n"


def set_output(name: str, value: str) -> None:
    """Emit a GitHub Actions step output; a no-op outside GitHub Actions."""
    github_output = os.environ.get("GITHUB_OUTPUT")
    if not github_output:
        return
    with open(github_output, "a") as fh:
        fh.write(format_output(name, value))


def set_summary(markdown: str) -> None:
    """Append markdown to the job summary; a no-op outside GitHub Actions."""
    summary = os.environ.get("GITHUB_STEP_SUMMARY")
    if not summary:
        return
    with Path(summary).open("a") as fh:
        fh.write(markdown.rstrip("\n") + "\n")
