# ABOUTME: Deploy plan builder for monorepo smart deploy
# ABOUTME: Matches changed files to components and expands the trigger graph

"""
Deploy plan builder.

=============================================================================
HOW A PLAN IS BUILT
=============================================================================

Given a change set, a config and the live resource directory:

1. DIRECT MATCHES
   Every component's path pattern is tested against every changed file.
   A component with at least one matching file is a direct entry;
   files_changed is its match count.

2. UUID RESOLUTION
   Each entry's resource name is looked up by exact name in a snapshot of
   GET /resources taken once per build. A name that is not found leaves
   resource_uuid empty. That is not an error here: the executor turns it
   into a per-component failure so other components still deploy.

3. TRIGGER EXPANSION
   Starting from each direct entry, triggers are followed breadth-first.
   A target that is not yet in the plan is added as "triggered" with
   triggered_by set to the direct entry the walk started from. The visited
   set guarantees termination when triggers form a cycle.

   config: shared -> [api, web]          changed: packages/shared/utils.ts

       shared (direct, 1 file)
       api    (triggered by shared)
       web    (triggered by shared)

=============================================================================
ORDERING
=============================================================================

Direct entries come first, sorted by component name. Triggered entries
follow in breadth-first discovery order (roots in name order, each trigger
list in declared order). The same inputs always give the same plan.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

import structlog

from saturn_deploy.smart.glob import glob_match
from saturn_deploy.smart.models import DeployPlan, DeployPlanComponent, PlanReason

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from saturn_deploy.smart.models import SmartComponent, SmartConfig
    from saturn_deploy.utils.client import Resource, SaturnClient

logger = structlog.get_logger(__name__)


def match_components(
    files: Sequence[str],
    components: Mapping[str, SmartComponent],
) -> dict[str, list[str]]:
    """
    Map component name -> changed files matching its pattern.

    Components without matches are left out. Duplicate files are counted
    as many times as they appear.
    """
    matches: dict[str, list[str]] = {}
    for name in sorted(components):
        pattern = components[name].path
        matched = [f for f in files if glob_match(pattern, f)]
        if matched:
            matches[name] = matched
    return matches


def resource_directory(resources: Sequence[Resource]) -> dict[str, str]:
    """Resource name -> UUID. The first resource wins on duplicate names."""
    directory: dict[str, str] = {}
    for resource in resources:
        directory.setdefault(resource.name, resource.uuid)
    return directory


def build_plan_from_snapshot(
    files: Sequence[str],
    config: SmartConfig,
    directory: Mapping[str, str],
) -> DeployPlan:
    """Build a plan against an already fetched name -> UUID directory."""
    components = config.components
    plan = DeployPlan(base_branch=config.base_branch, files_total=len(files))

    matches = match_components(files, components)
    for name, matched in matches.items():
        component = components[name]
        plan.components.append(
            DeployPlanComponent(
                name=name,
                resource_name=component.resource,
                resource_uuid=directory.get(component.resource, ""),
                files_changed=len(matched),
                reason=PlanReason.DIRECT,
            )
        )

    in_plan = {c.name for c in plan.components}
    for root in matches:
        _expand_triggers(root, components, directory, plan, in_plan)

    for entry in plan.unresolved:
        if entry.resource_name:
            logger.warning(
                "Resource not found for component",
                component=entry.name,
                resource=entry.resource_name,
            )

    return plan


def _expand_triggers(
    root: str,
    components: Mapping[str, SmartComponent],
    directory: Mapping[str, str],
    plan: DeployPlan,
    in_plan: set[str],
) -> None:
    """Breadth-first walk of the trigger graph from one direct entry."""
    visited = {root}
    queue: deque[tuple[str, list[str]]] = deque([(root, [root])])

    while queue:
        current, trail = queue.popleft()
        for target in components[current].triggers:
            if target not in components:
                logger.warning("Unknown trigger target", component=current, target=target)
                continue

            if target in visited:
                if target in trail:
                    cycle = [*trail[trail.index(target):], target]
                    if cycle not in plan.cycles:
                        plan.cycles.append(cycle)
                        logger.warning("Trigger cycle detected", cycle=" -> ".join(cycle))
                continue
            visited.add(target)

            if target not in in_plan:
                in_plan.add(target)
                component = components[target]
                plan.components.append(
                    DeployPlanComponent(
                        name=target,
                        resource_name=component.resource,
                        resource_uuid=directory.get(component.resource, ""),
                        files_changed=0,
                        reason=PlanReason.TRIGGERED,
                        triggered_by=root,
                    )
                )

            queue.append((target, [*trail, target]))


class DeployPlanner:
    """
    Builds deploy plans against a live Saturn resource directory.

    The directory is fetched once per build_plan() call and never cached
    across calls.
    """

    def __init__(self, client: SaturnClient) -> None:
        self._client = client

    async def build_plan(self, files: Sequence[str], config: SmartConfig) -> DeployPlan:
        """
        Compute which components must be deployed for a change set.

        Args:
            files: Changed file paths, relative to the repository root
            config: Loaded or auto-detected smart deploy config

        Returns:
            DeployPlan with direct entries followed by triggered entries

        Raises:
            SaturnError: If the resource directory cannot be fetched
        """
        directory = resource_directory(await self._client.list_resources())
        plan = build_plan_from_snapshot(files, config, directory)
        logger.info(
            "Built deploy plan",
            files=plan.files_total,
            direct=len(plan.direct),
            triggered=len(plan.triggered),
            unresolved=len(plan.unresolved),
        )
        return plan
