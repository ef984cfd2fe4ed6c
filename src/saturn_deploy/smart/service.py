# ABOUTME: Smart deploy workflow: resolve config, plan, deploy, wait
# ABOUTME: Composes planner, executor and poller over one Saturn client

"""Smart deploy workflow service."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from saturn_deploy.errors import ConfigError
from saturn_deploy.smart.config_file import load_config
from saturn_deploy.smart.executor import DeployExecutor, ExecutionReport
from saturn_deploy.smart.git import auto_detect_config, get_changed_files
from saturn_deploy.smart.planner import DeployPlanner
from saturn_deploy.smart.poller import DeploymentStatus, DeploymentWatcher

if TYPE_CHECKING:
    from collections.abc import Sequence

    from saturn_deploy.smart.models import DeployPlan, SmartConfig
    from saturn_deploy.smart.poller import StatusCallback
    from saturn_deploy.utils.client import SaturnClient

logger = structlog.get_logger(__name__)


@dataclass
class SmartDeployOutcome:
    plan: DeployPlan
    report: ExecutionReport
    statuses: dict[str, DeploymentStatus] | None = None

    @property
    def succeeded(self) -> bool:
        if not self.report.succeeded:
            return False
        if self.statuses is None:
            return True
        return all(s.succeeded for s in self.statuses.values())


class SmartDeployService:
    """
    Runs the smart deploy workflow against one repository checkout.

        service = SmartDeployService(client, repo_path=".")
        plan = await service.plan()
        outcome = await service.run(plan, wait=True, timeout=600)
    """

    def __init__(
        self,
        client: SaturnClient,
        repo_path: str | Path = ".",
        poll_interval: float = 3.0,
        concurrency: int = 1,
    ) -> None:
        self._client = client
        self._repo_path = Path(repo_path)
        self._planner = DeployPlanner(client)
        self._executor = DeployExecutor(client, concurrency=concurrency)
        self._poll_interval = poll_interval

    async def resolve_config(self) -> SmartConfig:
        """
        Load .saturn.yml, falling back to auto-detection from the git remote.

        Raises:
            ConfigError: If the file is invalid, or nothing can be detected
        """
        config = load_config(self._repo_path)
        if config is not None:
            return config

        logger.info("No config file, auto-detecting components", repo=str(self._repo_path))
        config = await auto_detect_config(self._client, self._repo_path)
        if config is None:
            raise ConfigError(
                "no .saturn.yml and no Saturn resource uses this repository's git remote",
                self._repo_path,
            )
        return config

    async def plan(
        self,
        base_branch: str | None = None,
        files: Sequence[str] | None = None,
        config: SmartConfig | None = None,
    ) -> DeployPlan:
        """
        Build a deploy plan.

        Args:
            base_branch: Branch to diff against; defaults to the config's
            files: Explicit change set; computed with git diff when omitted
            config: Explicit config; resolved from the repository when omitted
        """
        if config is None:
            config = await self.resolve_config()
        if base_branch:
            config = config.model_copy(update={"base_branch": base_branch})
        if files is None:
            files = await asyncio.to_thread(
                get_changed_files, config.base_branch, self._repo_path
            )
        return await self._planner.build_plan(list(files), config)

    async def run(
        self,
        plan: DeployPlan,
        force: bool = False,
        wait: bool = False,
        timeout: float | None = None,
        on_status_change: StatusCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SmartDeployOutcome:
        """
        Deploy a plan and optionally wait for the resulting deployments.

        Raises:
            WaitTimeoutError / WaitCancelledError: Only when wait=True; the
                error's results hold whatever finished before it stopped.
        """
        report = await self._executor.execute(plan, force=force)
        outcome = SmartDeployOutcome(plan=plan, report=report)

        if wait and report.deployment_uuids:
            watcher = DeploymentWatcher(
                self._client,
                poll_interval=self._poll_interval,
                on_status_change=on_status_change,
            )
            outcome.statuses = await watcher.wait_for_all(
                report.deployment_uuids, timeout=timeout, cancel_event=cancel_event
            )
        return outcome
