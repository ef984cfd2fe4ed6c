# ABOUTME: Structured logging with correlation IDs and deploy audit trails
# ABOUTME: Configures structlog processors and provides audit logging for smart deploy

"""
Structured logging with correlation IDs and audit trails.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

1. STRUCTURED LOGGING: every module logs through structlog with key/value
   fields (component=, deployment=, attempt=) instead of formatted strings.

2. CORRELATION IDs: one smart deploy run issues many API calls (resource
   listing, one deploy per component, a status read per deployment per
   tick). A correlation ID attached to every entry ties them together:

    {"correlation_id": "a1b2c3d4", "event": "Built deploy plan", "direct": 1}
    {"correlation_id": "a1b2c3d4", "event": "Component deploy queued", ...}
    {"correlation_id": "a1b2c3d4", "event": "Deployment finished", ...}

   The ID lives in a ContextVar, so concurrent asyncio tasks (the poller's
   per-tick fan-out) inherit the ID of the run that spawned them.

3. AUDIT LOGGING: who planned, deployed or waited on what, and how it
   ended. Written as JSON lines to a file, or to stdout via structlog.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable, MutableMapping
    from pathlib import Path

    from saturn_deploy.smart.models import DeployResult

# =============================================================================
# CORRELATION ID MANAGEMENT
# =============================================================================

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """
    Get current correlation ID or generate new one.

    IDs are the first 8 characters of a UUID4: unique enough within a run,
    short enough to read in a terminal.
    """
    cid = correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())[:8]
        correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    """Set correlation ID for current context ("" = generate on next access)."""
    correlation_id.set(cid)


def add_correlation_id(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor adding the correlation ID to every event."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structured logging. Call once at startup.

    Pipeline:
        merge_contextvars -> add_log_level -> TimeStamper(iso)
        -> add_correlation_id -> JSONRenderer | ConsoleRenderer

    Args:
        level: "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL".
               DEBUG includes one line per HTTP attempt.
        json_output: JSON for CI logs and aggregators, colored text otherwise.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Audit logger for smart deploy operations.

    Every entry records:
    - timestamp: UTC ISO 8601
    - correlation_id: run identifier
    - action: "plan_smart_deploy", "run_smart_deploy", "wait_for_deployments", ...
    - target: what was acted on (repository path, component, deployment UUID)
    - result: "success", "blocked", "error", "partial", "timeout", ...
    - details: optional context

    EXAMPLE ENTRIES:
    ----------------
    {"timestamp": "2024-01-15T10:30:00+00:00", "correlation_id": "abc12345",
     "action": "deploy_component", "target": "api", "result": "success",
     "details": {"resource_uuid": "uuid-1", "deployments": ["dep-1"]}}

    {"timestamp": "2024-01-15T10:30:00+00:00", "correlation_id": "abc12345",
     "action": "run_smart_deploy", "target": "/repo", "result": "blocked",
     "details": {"reason": "Server is running in read-only mode"}}
    """

    def __init__(self, log_path: Path | None = None) -> None:
        """
        Args:
            log_path: JSON-lines file to append to, or None for stdout.
        """
        self._log_path = log_path
        self._logger = structlog.get_logger("audit")

    def log(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record one auditable action. All helpers below delegate here."""
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "correlation_id": get_correlation_id(),
            "action": action,
            "target": target,
            "result": result,
        }
        if details:
            entry["details"] = details

        if self._log_path:
            with self._log_path.open("a") as f:
                f.write(json.dumps(entry) + "\n")
        else:
            self._logger.info(
                "audit",
                action=action,
                target=target,
                result=result,
                details=details,
            )

    def log_blocked(self, action: str, target: str, reason: str) -> None:
        """Record an operation refused by the safety guard."""
        self.log(action, target, "blocked", {"reason": reason})

    def log_error(self, action: str, target: str, error: str) -> None:
        self.log(action, target, "error", {"error": error})

    def log_deploy_results(self, results: Iterable[DeployResult], force: bool = False) -> None:
        """One "deploy_component" entry per component of an executed plan."""
        for r in results:
            details: dict[str, Any] = {"resource_uuid": r.resource_uuid, "force": force}
            if r.success:
                details["deployments"] = list(r.deployment_uuids)
            else:
                details["error"] = r.error
            self.log("deploy_component", r.name, "success" if r.success else "error", details)
