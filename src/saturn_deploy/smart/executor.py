# ABOUTME: Deploy executor for smart deploy plans
# ABOUTME: Deploys each plan component and aggregates per-component outcomes

"""Deploy executor with partial-failure semantics."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

from saturn_deploy.smart.models import DeployResult
from saturn_deploy.utils.client import SaturnError

if TYPE_CHECKING:
    from saturn_deploy.smart.models import DeployPlan, DeployPlanComponent
    from saturn_deploy.utils.client import SaturnClient

logger = structlog.get_logger(__name__)

RESOURCE_UUID_NOT_FOUND = "resource UUID not found"


@dataclass
class ExecutionReport:
    """Per-component results in plan order plus every queued deployment UUID."""

    results: list[DeployResult] = field(default_factory=list)
    deployment_uuids: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def failed(self) -> list[DeployResult]:
        return [r for r in self.results if not r.success]


class DeployExecutor:
    """
    Deploys every component of a plan.

    A failing component never stops the others; callers decide what an
    overall failure means by inspecting ExecutionReport.results.

    With concurrency=1 (default) deploy calls are issued one after another
    in plan order. A higher value fans calls out under a semaphore; results
    keep plan order either way and one failure never cancels another call.
    """

    def __init__(self, client: SaturnClient, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._client = client
        self._concurrency = concurrency

    async def execute(self, plan: DeployPlan, force: bool = False) -> ExecutionReport:
        """
        Deploy all plan components.

        Args:
            plan: Plan from DeployPlanner.build_plan
            force: Rebuild without cache

        Returns:
            ExecutionReport with one DeployResult per plan component
        """
        if self._concurrency == 1:
            results = [await self._deploy_component(c, force) for c in plan.components]
        else:
            semaphore = asyncio.Semaphore(self._concurrency)

            async def bounded(component: DeployPlanComponent) -> DeployResult:
                async with semaphore:
                    return await self._deploy_component(component, force)

            results = list(await asyncio.gather(*(bounded(c) for c in plan.components)))

        report = ExecutionReport(results=results)
        for result in results:
            report.deployment_uuids.extend(result.deployment_uuids)

        logger.info(
            "Smart deploy executed",
            components=len(results),
            failed=len(report.failed),
            deployments=len(report.deployment_uuids),
        )
        return report

    async def _deploy_component(
        self, component: DeployPlanComponent, force: bool
    ) -> DeployResult:
        log = logger.bind(component=component.name, resource=component.resource_name)

        if not component.resource_uuid:
            log.warning("Skipping component without resource UUID")
            return _failed(component, RESOURCE_UUID_NOT_FOUND)

        try:
            response = await self._client.deploy(component.resource_uuid, force=force)
        except (SaturnError, httpx.HTTPError) as e:
            log.warning("Component deploy failed", error=str(e))
            return _failed(component, str(e))
        except Exception as e:
            # Any other failure still belongs to this component alone
            log.exception("Component deploy raised unexpectedly")
            return _failed(component, f"{type(e).__name__}: {e}")

        message = response.deployments[0].message if response.deployments else ""
        log.info("Component deploy queued", deployments=response.deployment_uuids)
        return DeployResult(
            name=component.name,
            resource_name=component.resource_name,
            resource_uuid=component.resource_uuid,
            success=True,
            message=message,
            deployment_uuids=tuple(response.deployment_uuids),
        )


def _failed(component: DeployPlanComponent, error: str) -> DeployResult:
    return DeployResult(
        name=component.name,
        resource_name=component.resource_name,
        resource_uuid=component.resource_uuid,
        success=False,
        error=error,
    )
