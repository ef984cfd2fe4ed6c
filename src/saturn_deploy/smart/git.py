# ABOUTME: Git helpers for smart deploy: change sets and remote detection
# ABOUTME: Produces changed-file lists and auto-detects components from the git remote

"""Git integration for smart deploy."""

from __future__ import annotations

import asyncio
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from saturn_deploy.errors import GitError
from saturn_deploy.smart.config_file import generate_config, normalize_git_url

if TYPE_CHECKING:
    from saturn_deploy.smart.models import SmartConfig
    from saturn_deploy.utils.client import SaturnClient

logger = structlog.get_logger(__name__)


def run_git(args: list[str], cwd: str | Path | None = None) -> str:
    """Run a git command and return its stdout."""
    command = ["git", *args]
    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as e:
        raise GitError(command, 127, "git executable not found") from e

    if result.returncode != 0:
        raise GitError(command, result.returncode, result.stderr)
    return result.stdout


def get_changed_files(base_branch: str, cwd: str | Path | None = None) -> list[str]:
    """
    Files changed on HEAD since it diverged from base_branch.

    Uses the three-dot form so commits merged into the base branch after
    the fork point do not show up as changes.
    """
    output = run_git(["diff", "--name-only", f"{base_branch}...HEAD"], cwd=cwd)
    files = [line.strip() for line in output.splitlines() if line.strip()]
    logger.debug("Changed files", base=base_branch, count=len(files))
    return files


def get_git_remote_url(cwd: str | Path | None = None, remote: str = "origin") -> str:
    return run_git(["remote", "get-url", remote], cwd=cwd).strip()


async def auto_detect_config(
    client: SaturnClient,
    cwd: str | Path | None = None,
) -> SmartConfig | None:
    """
    Generate a config from the resources deployed from this repository.

    Resources are matched by normalized git remote URL, so SSH and HTTPS
    forms of the same repository are treated as equal.

    Returns:
        Generated config, or None when no resource uses this repository.
    """
    local = normalize_git_url(await asyncio.to_thread(get_git_remote_url, cwd))
    resources = await client.list_resources()

    matching = [
        r
        for r in resources
        if r.git_repository and normalize_git_url(r.git_repository) == local
    ]
    logger.info("Auto-detected resources", repository=local, matched=len(matching))

    if not matching:
        return None
    return generate_config(matching)
