# ABOUTME: Exception hierarchy for Saturn smart deploy
# ABOUTME: Config, git and wait errors share one base so callers can catch broadly

"""Exception hierarchy for saturn_deploy.

HTTP failures live next to the client (saturn_deploy.utils.client.SaturnError)
and wait failures next to the poller (saturn_deploy.smart.poller); both
derive from SaturnDeployError.
"""

from __future__ import annotations

from pathlib import Path


class SaturnDeployError(Exception):
    """Base exception for saturn_deploy."""


class ConfigError(SaturnDeployError):
    """Raised when a .saturn.yml file cannot be read or validated."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class GitError(SaturnDeployError):
    """Raised when a git command fails."""

    def __init__(self, command: list[str], returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git command failed ({' '.join(command)}): {detail}")
