# ABOUTME: Safety utilities for Saturn smart deploy tools
# ABOUTME: Refuses deploys in read-only mode and throttles repeated calls per repository

"""
Safety guard in front of the MCP tools.

Every tool call names an operation and a target: the repository it plans
or deploys, or the deployments it waits on. The guard answers with None
(go ahead) or an OperationBlocked the tool returns to the agent verbatim.

    operation              access   target
    ---------------------  -------  ------------------------------
    plan_smart_deploy      read     repository path
    run_smart_deploy       deploy   repository path
    wait_for_deployments   read     deployment UUIDs
    generate_smart_config  read     repository path (preview)
                           deploy   repository path (write=true)

Budgets are counted per (access, operation, target), so an agent looping
on one repository is throttled without starving work on another.
"""

from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable

    from saturn_deploy.config import SecuritySettings

logger = structlog.get_logger(__name__)

READ_ONLY_SETTING = "MCP_READ_ONLY"
RATE_LIMIT_SETTING = "MCP_RATE_LIMIT_CALLS"


class Access(str, Enum):
    """What a tool call does to the outside world."""

    READ = "read"
    DEPLOY = "deploy"


@dataclass(frozen=True)
class OperationBlocked:
    """A refused tool call, explained for the agent."""

    operation: str
    target: str
    reason: str
    setting: str
    retry_after: float | None = None

    def format_message(self) -> str:
        lines = [
            f"Refused: {self.operation} on {self.target}",
            self.reason,
        ]
        if self.retry_after is not None:
            lines.append(f"Retry in {math.ceil(self.retry_after)}s.")
        lines.append(f"Governed by {self.setting}.")
        return "\n".join(lines)


class SlidingWindowLimiter:
    """At most max_calls per key within any window_seconds span."""

    def __init__(self, max_calls: int = 100, window_seconds: float = 60) -> None:
        self._max_calls = max_calls
        self._window = window_seconds
        self._calls: defaultdict[str, deque[float]] = defaultdict(deque)

    def acquire(self, key: str) -> float:
        """Take a slot for key.

        Returns 0.0 when the call was counted, otherwise the seconds until
        the oldest call in the window expires and a slot frees up.
        """
        now = time.monotonic()
        calls = self._calls[key]
        while calls and now - calls[0] >= self._window:
            calls.popleft()

        if len(calls) >= self._max_calls:
            return self._window - (now - calls[0])

        calls.append(now)
        return 0.0

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._calls.clear()
        else:
            self._calls.pop(key, None)


class SafetyGuard:
    """
    Gatekeeper for tool operations.

    Reads (planning, status polling, config preview) are only throttled.
    Anything that queues a build or writes to the repository is refused
    outright in read-only mode.
    """

    def __init__(self, settings: SecuritySettings) -> None:
        self._settings = settings
        self._limiter = SlidingWindowLimiter(
            max_calls=settings.rate_limit_calls,
            window_seconds=settings.rate_limit_window,
        )

    def check(self, operation: str, target: str, access: Access) -> OperationBlocked | None:
        if access is Access.DEPLOY and self._settings.read_only:
            return OperationBlocked(
                operation=operation,
                target=target,
                reason="Deploys and repository writes are disabled (read-only mode).",
                setting=READ_ONLY_SETTING,
            )

        wait = self._limiter.acquire(f"{access.value}:{operation}:{target}")
        if wait:
            logger.warning("Tool call throttled", operation=operation, target=target, retry_after=wait)
            return OperationBlocked(
                operation=operation,
                target=target,
                reason=(
                    f"More than {self._settings.rate_limit_calls} calls in "
                    f"{self._settings.rate_limit_window}s for this target."
                ),
                setting=RATE_LIMIT_SETTING,
                retry_after=wait,
            )
        return None

    def check_plan(self, repo: str) -> OperationBlocked | None:
        return self.check("plan_smart_deploy", repo, Access.READ)

    def check_deploy(self, repo: str) -> OperationBlocked | None:
        return self.check("run_smart_deploy", repo, Access.DEPLOY)

    def check_wait(self, deployment_uuids: Iterable[str]) -> OperationBlocked | None:
        target = ",".join(sorted(set(deployment_uuids)))
        return self.check("wait_for_deployments", target, Access.READ)

    def check_config_generation(self, repo: str, write: bool) -> OperationBlocked | None:
        """Previewing a generated .saturn.yml is a read; writing it is not."""
        access = Access.DEPLOY if write else Access.READ
        return self.check("generate_smart_config", repo, access)
