# ABOUTME: Saturn API client wrapper with retry logic and error classification
# ABOUTME: Provides async interface to the Saturn REST API with structured responses

"""
Saturn API client with retry logic and structured error handling.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module provides the HTTP client every smart-deploy operation goes
through. It handles:

1. HTTP COMMUNICATION: Making requests to the Saturn control plane
2. AUTHENTICATION: Attaching Bearer tokens to requests
3. ERROR CLASSIFICATION: Converting HTTP errors to SaturnError with a status
   code and request path, so callers branch on `error.is_not_found` instead
   of matching message strings
4. RETRY LOGIC: Retrying transient failures with exponential backoff

=============================================================================
SATURN REST API SURFACE USED HERE
=============================================================================

    GET /api/v1/resources                     - Every deployable resource
    GET /api/v1/deploy?uuid=<id>[&force=true] - Queue a deployment
    GET /api/v1/deployments/<uuid>            - Read one deployment's status

Errors come back as JSON with either a "message" or an "error" field:
    {"message": "Resource not found."}
    {"error": "Unauthenticated."}

=============================================================================
WHICH FAILURES ARE RETRIED?
=============================================================================

    Status / failure              Class       Behavior
    ---------------------------   ---------   ------------------------------
    400-499 (except 429)          terminal    raised on the first attempt
    429, 500-599                  transient   retried, last error raised
    timeouts, connection errors   transient   retried, last error raised
    task cancellation             -           propagates immediately

A 4xx means the request itself is wrong (bad UUID, expired token). Only the
server-side and network classes are retried.

Backoff doubles per attempt and has no jitter:

    attempt 1 -> fails -> sleep base_delay * 1
    attempt 2 -> fails -> sleep base_delay * 2
    attempt 3 -> fails -> sleep base_delay * 4
    attempt 4 -> fails -> raise last error      (max_retries=3)
"""

# =============================================================================
# IMPORTS
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from saturn_deploy.errors import SaturnDeployError

if TYPE_CHECKING:
    from saturn_deploy.config import SaturnInstance

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"

UNKNOWN_ERROR = "unknown error"


# =============================================================================
# SATURN ERROR CLASS
# =============================================================================


class SaturnError(SaturnDeployError):
    """
    Structured Saturn API error that can be raised and caught.

    Carries the HTTP status code and the request path so callers can
    classify failures without string matching:

        try:
            await client.deploy(uuid)
        except SaturnError as e:
            if e.is_not_found:
                ...
            elif e.is_unauthorized:
                ...

    Transport failures (timeouts, refused connections) are not wrapped;
    they surface as httpx.TransportError once retries are exhausted.
    """

    def __init__(
        self,
        code: int,
        message: str,
        path: str = "",
        details: str | None = None,
    ) -> None:
        """
        Initialize Saturn error.

        Args:
            code: HTTP status code (e.g., 404, 500)
            message: Human-readable message extracted from the response
            path: API path of the failed request (e.g., "/deploy")
            details: Additional error details (optional)
        """
        self.code = code
        self.message = message
        self.path = path
        self.details = details
        super().__init__(str(self))

    def __str__(self) -> str:
        """
        Format error for display.

        Example:
            "Saturn API error (404) on /deployments/abc: Deployment not found."
        """
        base = f"Saturn API error ({self.code})"
        if self.path:
            base += f" on {self.path}"
        base += f": {self.message}"
        if self.details:
            base += f" - {self.details}"
        return base

    # -------------------------------------------------------------------------
    # CLASSIFICATION
    # -------------------------------------------------------------------------

    @property
    def is_not_found(self) -> bool:
        return self.code == 404

    @property
    def is_unauthorized(self) -> bool:
        return self.code in (401, 403)

    @property
    def is_bad_request(self) -> bool:
        return self.code in (400, 422)

    @property
    def is_rate_limited(self) -> bool:
        return self.code == 429

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.code < 600

    @property
    def is_transient(self) -> bool:
        """True when sending the same request again may succeed."""
        return self.is_rate_limited or self.is_server_error


def is_transient_failure(exc: BaseException) -> bool:
    """
    Retry predicate used by the client.

    Transient: 429, 5xx and any httpx transport failure (timeouts,
    connection errors, protocol errors). Everything else, including
    asyncio.CancelledError, stops the retry loop.
    """
    if isinstance(exc, SaturnError):
        return exc.is_transient
    return isinstance(exc, httpx.TransportError)


def extract_error_message(response: httpx.Response) -> tuple[str, str | None]:
    """
    Pull a human-readable message out of an error response.

    Lookup order:
    1. JSON body field "message"
    2. JSON body field "error"
    3. Raw body text
    4. "unknown error" when the body is empty

    Returns:
        (message, details) where details is the "error" field when both
        "message" and "error" are present.
    """
    text = response.text.strip()
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        message = data.get("message")
        error = data.get("error")
        if message:
            return str(message), str(error) if error and error != message else None
        if error:
            return str(error), None

    return (text[:500] if text else UNKNOWN_ERROR), None


# =============================================================================
# RETRY POLICY
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable retry configuration for SaturnClient.

    The policy is passed to the client constructor and can be overridden
    per call without mutating the client:

        fast = client.policy.with_overrides(max_retries=0)
        await client.execute("GET", "/resources", policy=fast)

    Attributes:
        max_retries: Retries after the first attempt (total = max_retries + 1)
        base_delay: Seconds slept before the first retry; doubles each retry
    """

    max_retries: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def with_overrides(self, **changes: Any) -> RetryPolicy:
        """Return a copy of this policy with the given fields replaced."""
        return replace(self, **changes)


def _log_retry(retry_state: RetryCallState) -> None:
    """Tenacity before_sleep hook: record why and how long we back off."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying Saturn API request",
        attempt=retry_state.attempt_number,
        sleep=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc) if exc else None,
    )


# =============================================================================
# RESPONSE DATA CLASSES
# =============================================================================


@dataclass
class Resource:
    """
    Deployable Saturn resource (application, database or service).

    Only the fields the smart-deploy flow reads are kept:
    - uuid/name: resolution of config resource names to UUIDs
    - git_repository/base_directory: config auto-detection
    """

    uuid: str
    name: str
    type: str = ""
    status: str = ""
    git_repository: str | None = None
    base_directory: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Resource:
        """Create Resource from a /resources list item."""
        return cls(
            uuid=str(data.get("uuid", "")),
            name=str(data.get("name", "")),
            type=str(data.get("type") or ""),
            status=str(data.get("status") or ""),
            git_repository=data.get("git_repository"),
            base_directory=data.get("base_directory"),
        )


@dataclass
class DeploymentInfo:
    """One deployment queued by GET /deploy."""

    message: str
    resource_uuid: str
    deployment_uuid: str

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> DeploymentInfo:
        return cls(
            message=str(data.get("message", "")),
            resource_uuid=str(data.get("resource_uuid", "")),
            deployment_uuid=str(data.get("deployment_uuid", "")),
        )


@dataclass
class DeployResponse:
    """Response of GET /deploy: every deployment the request queued."""

    deployments: list[DeploymentInfo] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: Any) -> DeployResponse:
        items = data.get("deployments") if isinstance(data, dict) else None
        return cls(
            deployments=[
                DeploymentInfo.from_api_response(item)
                for item in items or []
                if isinstance(item, dict)
            ]
        )

    @property
    def deployment_uuids(self) -> list[str]:
        return [d.deployment_uuid for d in self.deployments if d.deployment_uuid]


@dataclass
class Deployment:
    """Status read of a single deployment (GET /deployments/<uuid>)."""

    deployment_uuid: str
    status: str
    application_name: str = ""
    commit: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Deployment:
        return cls(
            deployment_uuid=str(data.get("deployment_uuid", "")),
            status=str(data.get("status") or "unknown"),
            application_name=str(data.get("application_name") or ""),
            commit=data.get("commit"),
        )


# =============================================================================
# SATURN CLIENT
# =============================================================================


class SaturnClient:
    """
    Async Saturn API client with retry logic.

    LIFECYCLE:
    ----------
    Always use the context manager pattern so the connection pool is closed:

        async with SaturnClient(instance) as client:
            resources = await client.list_resources()

    TIMEOUTS:
    ---------
    `timeout` bounds a single HTTP request. It is unrelated to how long a
    caller waits for deployments to finish (see smart.poller).
    """

    def __init__(
        self,
        instance: SaturnInstance,
        policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize Saturn client.

        Args:
            instance: Saturn instance configuration (URL, token, etc.)
            policy: Retry policy; defaults to 3 retries with 1s base delay
            timeout: Per-request HTTP timeout in seconds
            transport: Optional httpx transport (tests, proxies)
        """
        self._instance = instance
        self._policy = policy or RetryPolicy()
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def __aenter__(self) -> SaturnClient:
        """Create the pooled HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=f"{self._instance.url}{API_PREFIX}",
            headers={
                "Authorization": f"Bearer {self._instance.token.get_secret_value()}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=self._timeout,
            verify=not self._instance.insecure,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        """Close the HTTP client, even when the block raised."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        policy: RetryPolicy | None = None,
    ) -> Any:
        """
        Make an HTTP request to the Saturn API, retrying transient failures.

        This is the CORE REQUEST METHOD. All typed operations use it.

        Args:
            method: HTTP method ("GET", "POST", "DELETE")
            path: API path below /api/v1 (e.g., "/resources")
            params: URL query parameters (optional)
            json_data: JSON request body (optional)
            policy: Per-call retry policy override (optional)

        Returns:
            Decoded JSON body (dict or list); {} for an empty body

        Raises:
            SaturnError: On API error (terminal immediately, transient after
                         retries are exhausted)
            httpx.TransportError: On network failure after retries
            RuntimeError: If client not initialized (forgot async with)
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        policy = policy or self._policy
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient_failure),
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=wait_exponential(multiplier=policy.base_delay, min=0),
            before_sleep=_log_retry,
            reraise=True,
        )

        result: Any = None
        async for attempt in retrying:
            with attempt:
                result = await self._send(
                    method,
                    path,
                    params=params,
                    json_data=json_data,
                    attempt=attempt.retry_state.attempt_number,
                )
        return result

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        json_data: dict[str, Any] | None,
        attempt: int,
    ) -> Any:
        """Single request attempt: send, classify, decode."""
        client = self._client
        if client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        log = logger.bind(method=method, path=path, instance=self._instance.name, attempt=attempt)
        log.debug("Making Saturn API request")

        response = await client.request(method, path, params=params, json=json_data)

        if response.status_code >= 400:
            message, details = extract_error_message(response)
            log.warning("Saturn API error", status=response.status_code, message=message)
            raise SaturnError(
                code=response.status_code,
                message=message,
                path=path,
                details=details,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            # A proxy or captive portal answering 2xx with HTML; never retried
            log.warning("Saturn API returned invalid JSON", status=response.status_code)
            raise SaturnError(
                code=response.status_code,
                message="invalid JSON response",
                path=path,
                details=response.text[:200] or None,
            ) from e

    # =========================================================================
    # OPERATIONS USED BY SMART DEPLOY
    # =========================================================================

    async def list_resources(self) -> list[Resource]:
        """
        List every deployable resource visible to the token.

        Saturn API: GET /api/v1/resources

        Returns:
            List of Resource objects
        """
        data = await self.execute("GET", "/resources")
        items = data if isinstance(data, list) else data.get("data") or []
        return [Resource.from_api_response(item) for item in items if isinstance(item, dict)]

    async def deploy(self, uuid: str, force: bool = False) -> DeployResponse:
        """
        Queue a deployment of one resource.

        Saturn API: GET /api/v1/deploy?uuid=<uuid>[&force=true]

        Args:
            uuid: Resource UUID
            force: Rebuild without cache

        Returns:
            DeployResponse listing the queued deployment(s)
        """
        params: dict[str, str] = {"uuid": uuid}
        if force:
            params["force"] = "true"
        data = await self.execute("GET", "/deploy", params=params)
        return DeployResponse.from_api_response(data)

    async def get_deployment(self, uuid: str) -> Deployment:
        """
        Read a deployment's current status.

        Saturn API: GET /api/v1/deployments/<uuid>
        """
        data = await self.execute("GET", f"/deployments/{uuid}")
        return Deployment.from_api_response(data if isinstance(data, dict) else {})
