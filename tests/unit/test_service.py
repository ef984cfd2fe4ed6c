# ABOUTME: Unit tests for the smart deploy workflow service
# ABOUTME: Tests config resolution, planning from git and deploy-then-wait

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from saturn_deploy.errors import ConfigError
from saturn_deploy.smart.config_file import write_config
from saturn_deploy.smart.models import SmartConfig
from saturn_deploy.smart.poller import WaitTimeoutError
from saturn_deploy.smart.service import SmartDeployService
from saturn_deploy.utils.client import Deployment


@pytest.mark.unit
class TestResolveConfig:
    async def test_prefers_config_file(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        write_config(tmp_path, monorepo_config)
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path)

        with patch("saturn_deploy.smart.service.auto_detect_config") as detect:
            config = await service.resolve_config()

        assert config == monorepo_config
        detect.assert_not_called()

    async def test_falls_back_to_auto_detection(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path)

        with patch(
            "saturn_deploy.smart.service.auto_detect_config",
            AsyncMock(return_value=monorepo_config),
        ):
            assert await service.resolve_config() == monorepo_config

    async def test_nothing_to_resolve(self, mock_saturn_client: AsyncMock, tmp_path: Path):
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path)

        with patch("saturn_deploy.smart.service.auto_detect_config", AsyncMock(return_value=None)):
            with pytest.raises(ConfigError, match="no .saturn.yml"):
                await service.resolve_config()


@pytest.mark.unit
class TestPlan:
    async def test_uses_git_diff_against_base_branch(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path)
        changed = MagicMock(return_value=["apps/api/main.go"])

        with patch("saturn_deploy.smart.service.get_changed_files", changed):
            plan = await service.plan(config=monorepo_config, base_branch="release")

        changed.assert_called_once_with("release", tmp_path)
        assert plan.base_branch == "release"
        assert [c.name for c in plan.components] == ["api"]

    async def test_explicit_files_skip_git(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path)

        with patch("saturn_deploy.smart.service.get_changed_files") as changed:
            plan = await service.plan(config=monorepo_config, files=["apps/web/x.ts"])

        changed.assert_not_called()
        assert plan.base_branch == "main"
        assert [c.name for c in plan.components] == ["web"]


@pytest.mark.unit
class TestRun:
    async def test_shared_change_deploys_and_waits(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        mock_saturn_client.get_deployment.side_effect = lambda uuid: Deployment(
            deployment_uuid=uuid, status="finished"
        )
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path, poll_interval=0.01)

        plan = await service.plan(config=monorepo_config, files=["packages/shared/util.ts"])
        outcome = await service.run(plan, wait=True, timeout=5)

        deployed = [call.args[0] for call in mock_saturn_client.deploy.await_args_list]
        assert deployed == ["uuid-api", "uuid-web"]

        shared = outcome.report.results[0]
        assert shared.name == "shared"
        assert shared.success is False
        assert outcome.statuses is not None
        assert set(outcome.statuses) == {"dep-uuid-api", "dep-uuid-web"}
        assert not outcome.succeeded

    async def test_all_succeeded(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        mock_saturn_client.get_deployment.side_effect = lambda uuid: Deployment(
            deployment_uuid=uuid, status="finished"
        )
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path, poll_interval=0.01)

        plan = await service.plan(config=monorepo_config, files=["apps/api/main.go"])
        outcome = await service.run(plan, wait=True)

        assert outcome.succeeded

    async def test_without_wait_does_not_poll(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path)

        plan = await service.plan(config=monorepo_config, files=["apps/api/main.go"])
        outcome = await service.run(plan)

        assert outcome.statuses is None
        assert outcome.report.deployment_uuids == ["dep-uuid-api"]
        mock_saturn_client.get_deployment.assert_not_awaited()

    async def test_wait_timeout_propagates(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig, tmp_path: Path
    ):
        mock_saturn_client.get_deployment.side_effect = lambda uuid: Deployment(
            deployment_uuid=uuid, status="in_progress"
        )
        service = SmartDeployService(mock_saturn_client, repo_path=tmp_path, poll_interval=0.02)

        plan = await service.plan(config=monorepo_config, files=["apps/api/main.go"])
        with pytest.raises(WaitTimeoutError) as exc_info:
            await service.run(plan, wait=True, timeout=0.1)

        assert exc_info.value.pending == ["dep-uuid-api"]
