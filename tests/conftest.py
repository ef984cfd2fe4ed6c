# ABOUTME: Pytest fixtures and configuration for Saturn smart deploy tests
# ABOUTME: Provides shared fixtures for unit and integration tests

import os
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from saturn_deploy.config import SaturnInstance, SecuritySettings, ServerSettings
from saturn_deploy.smart.models import SmartComponent, SmartConfig
from saturn_deploy.utils.client import (
    DeploymentInfo,
    DeployResponse,
    Resource,
    SaturnClient,
)
from saturn_deploy.utils.safety import SafetyGuard


@pytest.fixture
def saturn_instance() -> SaturnInstance:
    """Create a Saturn instance configuration."""
    return SaturnInstance(
        url="https://saturn.example.com",
        token=SecretStr("test-token"),
        name="test",
        insecure=True,
    )


@pytest.fixture
def mock_security_settings() -> SecuritySettings:
    """Create security settings that allow deploys."""
    return SecuritySettings(
        read_only=False,
        audit_log=None,
        rate_limit_calls=100,
        rate_limit_window=60,
    )


@pytest.fixture
def read_only_security_settings() -> SecuritySettings:
    """Create read-only security settings."""
    return SecuritySettings(
        read_only=True,
        audit_log=None,
        rate_limit_calls=100,
        rate_limit_window=60,
    )


@pytest.fixture
def mock_server_settings(
    saturn_instance: SaturnInstance,
    mock_security_settings: SecuritySettings,
) -> ServerSettings:
    """Create server settings pointing at the test instance."""
    return ServerSettings(
        saturn_url=saturn_instance.url,
        saturn_token=saturn_instance.token,
        saturn_insecure=saturn_instance.insecure,
        security=mock_security_settings,
    )


@pytest.fixture
def safety_guard(mock_security_settings: SecuritySettings) -> SafetyGuard:
    return SafetyGuard(mock_security_settings)


@pytest.fixture
def read_only_safety_guard(read_only_security_settings: SecuritySettings) -> SafetyGuard:
    return SafetyGuard(read_only_security_settings)


@pytest.fixture
def sample_resources() -> list[Resource]:
    """Resources of a monorepo with an API and a web frontend."""
    return [
        Resource(
            uuid="uuid-api",
            name="my-api",
            type="application",
            git_repository="git@github.com:acme/monorepo.git",
            base_directory="/apps/api",
        ),
        Resource(
            uuid="uuid-web",
            name="my-web",
            type="application",
            git_repository="https://github.com/acme/monorepo",
            base_directory="/apps/web",
        ),
        Resource(uuid="uuid-db", name="main-db", type="database"),
    ]


@pytest.fixture
def monorepo_config() -> SmartConfig:
    """Config where the shared package triggers both applications."""
    return SmartConfig(
        version=1,
        base_branch="main",
        components={
            "api": SmartComponent(path="apps/api/**", resource="my-api"),
            "web": SmartComponent(path="apps/web/**", resource="my-web"),
            "shared": SmartComponent(path="packages/shared/**", triggers=["api", "web"]),
        },
    )


@pytest.fixture
def mock_saturn_client(
    saturn_instance: SaturnInstance,
    sample_resources: list[Resource],
) -> AsyncMock:
    """Create a mock Saturn client that queues one deployment per call."""
    client = AsyncMock(spec=SaturnClient)
    client._instance = saturn_instance

    client.list_resources.return_value = sample_resources

    async def deploy(uuid: str, force: bool = False) -> DeployResponse:
        return DeployResponse(
            deployments=[
                DeploymentInfo(
                    message="Deployment queued.",
                    resource_uuid=uuid,
                    deployment_uuid=f"dep-{uuid}",
                )
            ]
        )

    client.deploy.side_effect = deploy
    return client


@pytest.fixture
def mock_context() -> MagicMock:
    """Create a mock MCP context."""
    ctx = MagicMock()
    ctx.request_id = "test-request-123"
    ctx.report_progress = AsyncMock()
    return ctx


# Integration test fixtures


@pytest.fixture
def saturn_url() -> str | None:
    return os.environ.get("SATURN_URL")


@pytest.fixture
def saturn_token() -> str | None:
    return os.environ.get("SATURN_TOKEN")


@pytest.fixture
async def live_saturn_client(
    saturn_url: str | None,
    saturn_token: str | None,
) -> AsyncIterator[SaturnClient | None]:
    """Create a live Saturn client for integration tests."""
    if not saturn_url or not saturn_token:
        yield None
        return

    instance = SaturnInstance(
        url=saturn_url,
        token=SecretStr(saturn_token),
        name="integration-test",
        insecure=os.environ.get("SATURN_INSECURE", "false").lower() == "true",
    )
    async with SaturnClient(instance) as client:
        yield client
