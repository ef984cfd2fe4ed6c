# ABOUTME: Data model for smart deploy: component config, deploy plan, results
# ABOUTME: Config is validated with pydantic, plan and results are plain dataclasses

"""
Smart deploy data model.

Two families of types live here:

1. CONFIG (pydantic): what a human writes in .saturn.yml

    version: 1
    base_branch: main
    components:
      api:
        path: "apps/api/**"
        resource: "my-api"
      shared:
        path: "packages/shared/**"
        triggers: [api, web]

2. PLAN / RESULT (dataclasses): what a single invocation computes. Built
   fresh from a change set, a config and a live resource snapshot; never
   persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field, field_validator

SUPPORTED_CONFIG_VERSION = 1

# =============================================================================
# CONFIG
# =============================================================================


class SmartComponent(BaseModel):
    """
    One named unit of the monorepo.

    `resource` is the Saturn resource name deployed when the component
    changes. It may be empty for components that only exist to trigger
    others (e.g. a shared library). `triggers` names other components;
    unknown names are tolerated here and skipped at plan time.
    """

    model_config = {"extra": "ignore"}

    path: str = Field(description="Glob pattern of files owned by the component")
    resource: str = Field(default="", description="Saturn resource name to deploy")
    triggers: list[str] = Field(
        default_factory=list, description="Components redeployed when this one changes"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("path pattern must not be empty")
        return v

    @field_validator("triggers", mode="before")
    @classmethod
    def validate_triggers(cls, v: object) -> object:
        # YAML "triggers:" with no items loads as None
        return [] if v is None else v


class SmartConfig(BaseModel):
    """Top-level .saturn.yml document."""

    model_config = {"extra": "ignore"}

    version: int = Field(default=SUPPORTED_CONFIG_VERSION)
    base_branch: str = Field(default="main")
    components: dict[str, SmartComponent] = Field(default_factory=dict)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        if v != SUPPORTED_CONFIG_VERSION:
            raise ValueError(
                f"unsupported config version {v} (supported: {SUPPORTED_CONFIG_VERSION})"
            )
        return v

    @field_validator("components", mode="before")
    @classmethod
    def validate_components(cls, v: object) -> object:
        return {} if v is None else v


# =============================================================================
# PLAN
# =============================================================================


class PlanReason(str, Enum):
    """Why a component is part of a deploy plan."""

    DIRECT = "direct"
    TRIGGERED = "triggered"


@dataclass
class DeployPlanComponent:
    """
    One component selected for deployment.

    `files_changed` counts matching files for direct entries and is 0 for
    triggered ones. `resource_uuid` is "" when the resource name was not
    found in the live directory; the executor reports that as a failure.
    """

    name: str
    resource_name: str
    resource_uuid: str = ""
    files_changed: int = 0
    reason: PlanReason = PlanReason.DIRECT
    triggered_by: str | None = None

    def __post_init__(self) -> None:
        if self.reason is PlanReason.TRIGGERED and not self.triggered_by:
            raise ValueError(f"triggered component '{self.name}' needs triggered_by")


@dataclass
class DeployPlan:
    """Ordered set of components to deploy for one change set."""

    base_branch: str
    files_total: int
    components: list[DeployPlanComponent] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)

    def get(self, name: str) -> DeployPlanComponent | None:
        for component in self.components:
            if component.name == name:
                return component
        return None

    @property
    def direct(self) -> list[DeployPlanComponent]:
        return [c for c in self.components if c.reason is PlanReason.DIRECT]

    @property
    def triggered(self) -> list[DeployPlanComponent]:
        return [c for c in self.components if c.reason is PlanReason.TRIGGERED]

    @property
    def unresolved(self) -> list[DeployPlanComponent]:
        """Components whose resource name did not resolve to a UUID."""
        return [c for c in self.components if not c.resource_uuid]

    @property
    def is_empty(self) -> bool:
        return not self.components


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class DeployResult:
    """Outcome of deploying one plan component."""

    name: str
    resource_name: str
    resource_uuid: str
    success: bool
    message: str = ""
    deployment_uuids: tuple[str, ...] = ()
    error: str = ""
