# ABOUTME: MCP server exposing Saturn smart deploy operations
# ABOUTME: Plan, deploy and wait tools guarded by read-only mode and audit logging

"""Saturn smart deploy MCP server."""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, Field

from saturn_deploy.config import ServerSettings, load_settings
from saturn_deploy.errors import ConfigError, GitError
from saturn_deploy.smart.config_file import config_path, load_config, write_config
from saturn_deploy.smart.git import auto_detect_config
from saturn_deploy.smart.poller import DeploymentWaitError, DeploymentWatcher, is_terminal
from saturn_deploy.smart.service import SmartDeployService
from saturn_deploy.utils.client import SaturnClient, SaturnError
from saturn_deploy.utils.logging import AuditLogger, configure_logging, set_correlation_id
from saturn_deploy.utils.safety import SafetyGuard

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from saturn_deploy.smart.models import DeployPlan
    from saturn_deploy.smart.poller import DeploymentStatus

MCPContext = Context[Any, Any]
logger = structlog.get_logger(__name__)

# Errors every tool reports back as text instead of failing the MCP call
TOOL_ERRORS = (SaturnError, httpx.HTTPError, ConfigError, GitError)

# =============================================================================
# SERVER STATE
# =============================================================================

_settings: ServerSettings | None = None
_client: SaturnClient | None = None
_safety_guard: SafetyGuard | None = None
_audit_logger: AuditLogger | None = None


@asynccontextmanager
async def lifespan(_server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Load config, open the Saturn client, close it on shutdown."""
    global _settings, _client, _safety_guard, _audit_logger

    logger.info("Starting Saturn deploy MCP server")

    _settings = load_settings()
    configure_logging(level=_settings.log_level, json_output=_settings.json_logs)
    _safety_guard = SafetyGuard(_settings.security)
    _audit_logger = AuditLogger(_settings.security.audit_log)

    instance = _settings.primary_instance
    if instance is None:
        logger.warning("SATURN_URL not set, tools will report missing configuration")
    else:
        _client = SaturnClient(
            instance=instance,
            policy=_settings.retry.policy,
            timeout=_settings.retry.request_timeout,
        )
        await _client.__aenter__()
        logger.info("Connected to Saturn", url=instance.url)

    yield {"settings": _settings, "client": _client}

    if _client is not None:
        await _client.__aexit__(None, None, None)
        _client = None
    logger.info("Saturn deploy MCP server stopped")


mcp = FastMCP("saturn-deploy", lifespan=lifespan)


def get_client() -> SaturnClient:
    if _client is None:
        raise ConfigError("Saturn instance not configured. Set SATURN_URL and SATURN_TOKEN.")
    return _client


def get_settings() -> ServerSettings:
    if not _settings:
        raise RuntimeError("Server not initialized")
    return _settings


def get_safety_guard() -> SafetyGuard:
    if not _safety_guard:
        raise RuntimeError("Server not initialized")
    return _safety_guard


def get_audit_logger() -> AuditLogger:
    if not _audit_logger:
        raise RuntimeError("Server not initialized")
    return _audit_logger


def get_service(repo_path: str | None) -> SmartDeployService:
    settings = get_settings()
    return SmartDeployService(
        get_client(),
        repo_path=repo_path or settings.deploy.repo_path,
        poll_interval=settings.deploy.poll_interval,
        concurrency=settings.deploy.concurrency,
    )


def _start_request(ctx: MCPContext) -> None:
    set_correlation_id(str(ctx.request_id) if hasattr(ctx, "request_id") else "")


# =============================================================================
# TEXT SUMMARIES
# =============================================================================


def summarize_plan(plan: DeployPlan) -> str:
    if plan.is_empty:
        return (
            f"No components affected by {plan.files_total} changed file(s) "
            f"(base: {plan.base_branch})."
        )

    lines = [
        f"Deploy plan: {len(plan.components)} component(s), "
        f"{plan.files_total} changed file(s) (base: {plan.base_branch})",
        "",
    ]
    for c in plan.components:
        if c.triggered_by:
            why = f"triggered by {c.triggered_by}"
        else:
            why = f"{c.files_changed} file(s) changed"
        uuid = c.resource_uuid or "UNRESOLVED"
        lines.append(f"- {c.name} -> {c.resource_name or '(no resource)'} [{uuid}] ({why})")

    for cycle in plan.cycles:
        lines.append(f"Note: trigger cycle {' -> '.join(cycle)}")
    return "\n".join(lines)


def summarize_statuses(statuses: dict[str, DeploymentStatus]) -> list[str]:
    lines = []
    for uuid, s in statuses.items():
        marker = "[OK]" if s.succeeded else ("[!]" if s.finished else "[..]")
        lines.append(f"  {uuid}: {s.status or 'unknown'} {marker}")
    return lines


# =============================================================================
# TOOLS
# =============================================================================


class PlanSmartDeployParams(BaseModel):
    """Parameters for plan_smart_deploy tool."""

    repo_path: str | None = Field(default=None, description="Repository checkout path")
    base_branch: str | None = Field(default=None, description="Branch to diff against")
    files: list[str] | None = Field(
        default=None, description="Changed files; computed with git diff when omitted"
    )


@mcp.tool()
async def plan_smart_deploy(params: PlanSmartDeployParams, ctx: MCPContext) -> str:
    """
    Show which components a change set would redeploy.

    Matches changed files against .saturn.yml (or auto-detected components)
    and expands triggers. Nothing is deployed.
    """
    _start_request(ctx)
    target = params.repo_path or str(get_settings().deploy.repo_path)

    blocked = get_safety_guard().check_plan(target)
    if blocked:
        get_audit_logger().log_blocked("plan_smart_deploy", target, blocked.reason)
        return blocked.format_message()

    try:
        plan = await get_service(params.repo_path).plan(
            base_branch=params.base_branch, files=params.files
        )
    except TOOL_ERRORS as e:
        get_audit_logger().log_error("plan_smart_deploy", target, str(e))
        return str(e)

    get_audit_logger().log("plan_smart_deploy", target, "success")
    return summarize_plan(plan)


class RunSmartDeployParams(BaseModel):
    """Parameters for run_smart_deploy tool."""

    repo_path: str | None = Field(default=None, description="Repository checkout path")
    base_branch: str | None = Field(default=None, description="Branch to diff against")
    files: list[str] | None = Field(default=None, description="Changed files override")
    force: bool = Field(default=False, description="Rebuild without cache")
    wait: bool = Field(default=True, description="Wait until deployments finish")
    timeout: float | None = Field(
        default=None, gt=0, description="Wait deadline in seconds (default from settings)"
    )


@mcp.tool()
async def run_smart_deploy(params: RunSmartDeployParams, ctx: MCPContext) -> str:
    """
    Deploy every component affected by a change set.

    Components whose resource cannot be resolved are reported as failed;
    the others are deployed anyway. With wait=true the tool polls until
    every deployment finishes or the timeout elapses.
    """
    _start_request(ctx)
    settings = get_settings()
    target = params.repo_path or str(settings.deploy.repo_path)

    blocked = get_safety_guard().check_deploy(target)
    if blocked:
        get_audit_logger().log_blocked("run_smart_deploy", target, blocked.reason)
        return blocked.format_message()

    async def report_status(uuid: str, status: str) -> None:
        logger.info("Deployment status changed", deployment=uuid, status=status)

    try:
        service = get_service(params.repo_path)
        await ctx.report_progress(0, 3, "Planning")
        plan = await service.plan(base_branch=params.base_branch, files=params.files)
        if plan.is_empty:
            get_audit_logger().log("run_smart_deploy", target, "nothing_to_deploy")
            return summarize_plan(plan)

        await ctx.report_progress(1, 3, f"Deploying {len(plan.components)} component(s)")
        outcome = await service.run(
            plan,
            force=params.force,
            wait=params.wait,
            timeout=params.timeout or settings.deploy.wait_timeout,
            on_status_change=report_status,
        )
    except DeploymentWaitError as e:
        get_audit_logger().log("run_smart_deploy", target, "wait_incomplete", {"pending": e.pending})
        return "\n".join([str(e), *summarize_statuses(e.results)])
    except TOOL_ERRORS as e:
        get_audit_logger().log_error("run_smart_deploy", target, str(e))
        return str(e)

    await ctx.report_progress(3, 3, "Complete")
    get_audit_logger().log_deploy_results(outcome.report.results, force=params.force)
    get_audit_logger().log(
        "run_smart_deploy", target, "success" if outcome.succeeded else "partial"
    )

    lines = [summarize_plan(plan), "", "Results:"]
    for r in outcome.report.results:
        if r.success:
            lines.append(f"- {r.name}: {r.message or 'queued'} {list(r.deployment_uuids)}")
        else:
            lines.append(f"- {r.name}: FAILED ({r.error})")
    if outcome.statuses is not None:
        lines.extend(["", "Deployments:", *summarize_statuses(outcome.statuses)])
    lines.extend(["", "All succeeded" if outcome.succeeded else "Some components failed"])
    return "\n".join(lines)


class WaitForDeploymentsParams(BaseModel):
    """Parameters for wait_for_deployments tool."""

    deployment_uuids: list[str] = Field(description="Deployment UUIDs to wait for")
    timeout: float | None = Field(default=None, gt=0, description="Deadline in seconds")


@mcp.tool()
async def wait_for_deployments(params: WaitForDeploymentsParams, ctx: MCPContext) -> str:
    """Wait until the given deployments reach a terminal status."""
    _start_request(ctx)
    settings = get_settings()
    target = ",".join(params.deployment_uuids)

    blocked = get_safety_guard().check_wait(params.deployment_uuids)
    if blocked:
        get_audit_logger().log_blocked("wait_for_deployments", target, blocked.reason)
        return blocked.format_message()

    total = len(set(params.deployment_uuids))
    done: set[str] = set()

    async def on_change(uuid: str, status: str) -> None:
        if is_terminal(status):
            done.add(uuid)
        await ctx.report_progress(len(done), total, f"{uuid}: {status}")

    try:
        watcher = DeploymentWatcher(
            get_client(), poll_interval=settings.deploy.poll_interval, on_status_change=on_change
        )
        statuses = await watcher.wait_for_all(
            params.deployment_uuids, timeout=params.timeout or settings.deploy.wait_timeout
        )
    except DeploymentWaitError as e:
        get_audit_logger().log("wait_for_deployments", target, "incomplete", {"pending": e.pending})
        return "\n".join([str(e), *summarize_statuses(e.results)])
    except TOOL_ERRORS as e:
        get_audit_logger().log_error("wait_for_deployments", target, str(e))
        return str(e)

    get_audit_logger().log("wait_for_deployments", target, "success")
    return "\n".join(["All deployments finished:", *summarize_statuses(statuses)])


class GenerateSmartConfigParams(BaseModel):
    """Parameters for generate_smart_config tool."""

    repo_path: str | None = Field(default=None, description="Repository checkout path")
    write: bool = Field(default=False, description="Write .saturn.yml to the repository")


@mcp.tool()
async def generate_smart_config(params: GenerateSmartConfigParams, ctx: MCPContext) -> str:
    """
    Generate a .saturn.yml from the Saturn resources deployed from this repository.

    Existing config files are never overwritten.
    """
    _start_request(ctx)
    repo = Path(params.repo_path or get_settings().deploy.repo_path)
    operation = "generate_smart_config"

    blocked = get_safety_guard().check_config_generation(str(repo), params.write)
    if blocked:
        get_audit_logger().log_blocked(operation, str(repo), blocked.reason)
        return blocked.format_message()

    try:
        if load_config(repo) is not None:
            return f"{config_path(repo)} already exists; not generating."
        config = await auto_detect_config(get_client(), repo)
        if config is None:
            return "No Saturn resource is deployed from this repository's git remote."
        written = write_config(repo, config) if params.write else None
    except TOOL_ERRORS as e:
        get_audit_logger().log_error(operation, str(repo), str(e))
        return str(e)

    get_audit_logger().log(operation, str(repo), "written" if written else "preview")
    lines = [f"Generated config with {len(config.components)} component(s):"]
    for name, component in config.components.items():
        lines.append(f"- {name}: {component.path} -> {component.resource}")
    if written:
        lines.extend(["", f"Written to {written}"])
    return "\n".join(lines)


# =============================================================================
# MCP RESOURCES
# =============================================================================


@mcp.resource("saturn://security")
async def get_security_resource() -> str:
    """Get current security and retry settings."""
    settings = get_settings()
    sec = settings.security

    return (
        "Security Settings:\n"
        f"  Read-only mode: {sec.read_only}\n"
        f"  Rate limit: {sec.rate_limit_calls} calls per {sec.rate_limit_window}s\n"
        f"  Retries: {settings.retry.max_retries} (base delay {settings.retry.base_delay}s)"
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


def main() -> None:
    """Run the Saturn deploy MCP server."""
    configure_logging(level="INFO")
    logger.info("Saturn deploy MCP server starting")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server interrupted")
        sys.exit(0)
    except Exception as e:
        logger.error("Server error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
