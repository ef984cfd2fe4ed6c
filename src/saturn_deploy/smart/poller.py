# ABOUTME: Deployment completion poller with timeout and cancellation
# ABOUTME: Polls deployment statuses on a fixed tick until all reach a terminal state

"""
Deployment completion poller.

=============================================================================
HOW WAITING WORKS
=============================================================================

    tick 0 (immediately)     tick 1 (+interval)       tick 2 (+2*interval)
    ---------------------    ---------------------    --------------------
    dep-1: queued      *     dep-1: in_progress *     dep-1: finished   *
    dep-2: queued      *     dep-2: queued            dep-2: failed     *
                                                      -> all terminal, return

    * = on_status_change(uuid, status) fired

Each tick reads the status of every unfinished deployment concurrently
(asyncio.gather) and joins before sleeping until the next tick. The
callback fires only when a deployment's status differs from the last one
observed for it.

=============================================================================
HOW WAITING ENDS
=============================================================================

    all deployments terminal   -> results returned
    timeout elapsed            -> WaitTimeoutError(results)
    cancel_event set           -> WaitCancelledError(results), without
                                  waiting for the next tick
    task cancelled             -> asyncio.CancelledError; watcher.results
                                  still holds the last snapshot

Timeout and cancellation errors carry every deployment's last status and
whether it finished, so a caller can report which deployments succeeded.

A status read that fails for good, such as a 404 or an undecodable body,
finishes that one deployment with status "error". Exceptions
raised by on_status_change are logged and polling carries on.

The timeout bounds the whole wait. Individual status reads are bounded by
the client's own request timeout and retry policy.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import httpx
import structlog

from saturn_deploy.errors import SaturnDeployError
from saturn_deploy.utils.client import SaturnError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from saturn_deploy.utils.client import SaturnClient

    StatusCallback = Callable[[str, str], Awaitable[None] | None]

logger = structlog.get_logger(__name__)

SUCCESS_STATUS = "finished"
ERROR_STATUS = "error"
TERMINAL_STATUSES = frozenset({"finished", "failed", "cancelled", "cancelled-by-user", ERROR_STATUS})


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


@dataclass
class DeploymentStatus:
    """Last observed state of one deployment."""

    uuid: str
    status: str = ""
    finished: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.finished and self.status == SUCCESS_STATUS


class DeploymentWaitError(SaturnDeployError):
    """Waiting stopped before every deployment finished."""

    def __init__(self, message: str, results: dict[str, DeploymentStatus]) -> None:
        self.results = results
        super().__init__(message)

    @property
    def pending(self) -> list[str]:
        return [uuid for uuid, s in self.results.items() if not s.finished]

    @property
    def finished(self) -> list[str]:
        return [uuid for uuid, s in self.results.items() if s.finished]


class WaitTimeoutError(DeploymentWaitError):
    """The wait deadline elapsed."""


class WaitCancelledError(DeploymentWaitError):
    """The caller cancelled the wait."""


class DeploymentWatcher:
    """
    Polls deployments until they all reach a terminal status.

    Usage:
        watcher = DeploymentWatcher(client, poll_interval=3.0, on_status_change=report)
        try:
            results = await watcher.wait_for_all(uuids, timeout=600)
        except WaitTimeoutError as e:
            print("still running:", e.pending)
    """

    def __init__(
        self,
        client: SaturnClient,
        poll_interval: float = 3.0,
        on_status_change: StatusCallback | None = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self._client = client
        self._poll_interval = poll_interval
        self._on_status_change = on_status_change
        self._state: dict[str, DeploymentStatus] = {}

    @property
    def results(self) -> dict[str, DeploymentStatus]:
        """Snapshot of the current (or last) wait's per-deployment state."""
        return {uuid: replace(s) for uuid, s in self._state.items()}

    async def wait_for_all(
        self,
        uuids: Iterable[str],
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, DeploymentStatus]:
        """
        Wait until every deployment is terminal.

        Args:
            uuids: Deployment UUIDs (duplicates are polled once)
            timeout: Overall deadline in seconds, None to wait forever
            cancel_event: Set it to stop waiting early

        Returns:
            uuid -> DeploymentStatus, all finished

        Raises:
            WaitTimeoutError: Deadline elapsed first
            WaitCancelledError: cancel_event was set first
        """
        self._state = {uuid: DeploymentStatus(uuid=uuid) for uuid in dict.fromkeys(uuids)}
        if not self._state:
            return {}

        log = logger.bind(deployments=len(self._state), timeout=timeout)
        log.info("Waiting for deployments")

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                await self._poll_until_done(cancel_event)
        except TimeoutError as e:
            if not deadline.expired():
                raise
            results = self.results
            log.warning("Deployment wait timed out", pending=_pending(results))
            raise WaitTimeoutError(
                f"timed out after {timeout}s waiting for {len(_pending(results))} deployment(s)",
                results,
            ) from e

        log.info("All deployments finished")
        return self.results

    async def _poll_until_done(self, cancel_event: asyncio.Event | None) -> None:
        while True:
            self._raise_if_cancelled(cancel_event)

            pending = [s for s in self._state.values() if not s.finished]
            await asyncio.gather(*(self._check(s) for s in pending))

            if all(s.finished for s in self._state.values()):
                return

            await self._wait_tick(cancel_event)

    async def _wait_tick(self, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await asyncio.sleep(self._poll_interval)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self._poll_interval)
        except TimeoutError:
            return
        self._raise_if_cancelled(cancel_event)

    def _raise_if_cancelled(self, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            results = self.results
            logger.info("Deployment wait cancelled", pending=_pending(results))
            raise WaitCancelledError("deployment wait cancelled", results)

    async def _check(self, state: DeploymentStatus) -> None:
        log = logger.bind(deployment=state.uuid)
        try:
            deployment = await self._client.get_deployment(state.uuid)
        except SaturnError as e:
            if e.is_transient:
                log.warning("Deployment status unavailable, will retry", error=str(e))
                return
            log.warning("Deployment status read failed", error=str(e))
            await self._fail(state, str(e))
            return
        except httpx.HTTPError as e:
            log.warning("Deployment status unavailable, will retry", error=str(e))
            return
        except Exception as e:
            log.exception("Deployment status read raised unexpectedly")
            await self._fail(state, f"{type(e).__name__}: {e}")
            return

        await self._observe(state, deployment.status)
        if is_terminal(deployment.status):
            state.finished = True
            log.info("Deployment finished", status=deployment.status)

    async def _observe(self, state: DeploymentStatus, status: str) -> None:
        if status == state.status:
            return
        state.status = status
        if self._on_status_change is None:
            return
        try:
            outcome = self._on_status_change(state.uuid, status)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Status callback failed", deployment=state.uuid, status=status)

    async def _fail(self, state: DeploymentStatus, error: str) -> None:
        state.error = error
        state.finished = True
        await self._observe(state, ERROR_STATUS)


def _pending(results: dict[str, DeploymentStatus]) -> list[str]:
    return [uuid for uuid, s in results.items() if not s.finished]
