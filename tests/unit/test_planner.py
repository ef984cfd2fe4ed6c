# ABOUTME: Unit tests for deploy plan construction
# ABOUTME: Tests direct matches, trigger expansion, cycles and resource resolution

from unittest.mock import AsyncMock

import pytest

from saturn_deploy.smart.models import PlanReason, SmartComponent, SmartConfig
from saturn_deploy.smart.planner import (
    DeployPlanner,
    build_plan_from_snapshot,
    match_components,
    resource_directory,
)
from saturn_deploy.utils.client import Resource

DIRECTORY = {"my-api": "uuid-api", "my-web": "uuid-web"}


def _config(**components: SmartComponent) -> SmartConfig:
    return SmartConfig(components=components)


@pytest.mark.unit
class TestMatchComponents:
    def test_groups_files_by_component(self, monorepo_config: SmartConfig):
        matches = match_components(
            ["apps/api/main.go", "apps/api/go.mod", "README.md"],
            monorepo_config.components,
        )

        assert matches == {"api": ["apps/api/main.go", "apps/api/go.mod"]}

    def test_file_can_match_several_components(self):
        components = {
            "all": SmartComponent(path="**"),
            "api": SmartComponent(path="apps/api/**"),
        }

        matches = match_components(["apps/api/x.go"], components)

        assert set(matches) == {"all", "api"}


@pytest.mark.unit
class TestResourceDirectory:
    def test_first_duplicate_wins(self):
        directory = resource_directory(
            [
                Resource(uuid="u1", name="api"),
                Resource(uuid="u2", name="api"),
                Resource(uuid="u3", name="web"),
            ]
        )

        assert directory == {"api": "u1", "web": "u3"}


@pytest.mark.unit
class TestBuildPlan:
    def test_direct_change(self, monorepo_config: SmartConfig):
        plan = build_plan_from_snapshot(["apps/api/main.go"], monorepo_config, DIRECTORY)

        assert len(plan.components) == 1
        api = plan.components[0]
        assert api.name == "api"
        assert api.reason is PlanReason.DIRECT
        assert api.resource_uuid == "uuid-api"
        assert api.files_changed == 1
        assert plan.files_total == 1
        assert plan.base_branch == "main"

    def test_shared_change_triggers_dependents(self, monorepo_config: SmartConfig):
        plan = build_plan_from_snapshot(
            ["packages/shared/util.ts", "packages/shared/index.ts"], monorepo_config, DIRECTORY
        )

        assert [c.name for c in plan.components] == ["shared", "api", "web"]
        shared, api, web = plan.components
        assert shared.reason is PlanReason.DIRECT
        assert shared.files_changed == 2
        assert shared.resource_uuid == ""
        assert api.reason is PlanReason.TRIGGERED
        assert api.triggered_by == "shared"
        assert api.files_changed == 0
        assert web.resource_uuid == "uuid-web"

    def test_direct_wins_over_triggered(self, monorepo_config: SmartConfig):
        plan = build_plan_from_snapshot(
            ["packages/shared/a.ts", "apps/api/main.go"], monorepo_config, DIRECTORY
        )

        assert [c.name for c in plan.components] == ["api", "shared", "web"]
        assert plan.get("api").reason is PlanReason.DIRECT
        assert plan.get("api").files_changed == 1
        assert plan.get("web").triggered_by == "shared"

    def test_transitive_triggers(self):
        config = _config(
            a=SmartComponent(path="a/**", resource="ra", triggers=["b"]),
            b=SmartComponent(path="b/**", resource="rb", triggers=["c"]),
            c=SmartComponent(path="c/**", resource="rc"),
        )

        plan = build_plan_from_snapshot(["a/x"], config, {})

        assert [c.name for c in plan.components] == ["a", "b", "c"]
        assert plan.get("c").triggered_by == "a"

    def test_cycle_is_recorded_and_terminates(self):
        config = _config(
            a=SmartComponent(path="a/**", resource="ra", triggers=["b"]),
            b=SmartComponent(path="b/**", resource="rb", triggers=["a"]),
        )

        plan = build_plan_from_snapshot(["a/main.go"], config, {"ra": "1", "rb": "2"})

        assert [(c.name, c.reason) for c in plan.components] == [
            ("a", PlanReason.DIRECT),
            ("b", PlanReason.TRIGGERED),
        ]
        assert plan.get("b").triggered_by == "a"
        assert plan.cycles == [["a", "b", "a"]]

    def test_self_trigger(self):
        config = _config(a=SmartComponent(path="a/**", resource="ra", triggers=["a"]))

        plan = build_plan_from_snapshot(["a/x"], config, {})

        assert [c.name for c in plan.components] == ["a"]
        assert plan.cycles == [["a", "a"]]

    def test_unknown_trigger_target_is_skipped(self):
        config = _config(a=SmartComponent(path="a/**", resource="ra", triggers=["ghost"]))

        plan = build_plan_from_snapshot(["a/x"], config, {"ra": "1"})

        assert [c.name for c in plan.components] == ["a"]

    def test_unresolved_resource(self, monorepo_config: SmartConfig):
        plan = build_plan_from_snapshot(["apps/web/index.html"], monorepo_config, {})

        assert [c.name for c in plan.unresolved] == ["web"]

    def test_no_changes(self, monorepo_config: SmartConfig):
        plan = build_plan_from_snapshot([], monorepo_config, DIRECTORY)

        assert plan.is_empty
        assert plan.files_total == 0

    def test_same_input_same_plan(self, monorepo_config: SmartConfig):
        files = ["packages/shared/a.ts", "apps/web/b.ts"]

        first = build_plan_from_snapshot(files, monorepo_config, DIRECTORY)
        second = build_plan_from_snapshot(files, monorepo_config, DIRECTORY)

        assert first == second


@pytest.mark.unit
class TestDeployPlanner:
    async def test_fetches_resources_once(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig
    ):
        planner = DeployPlanner(mock_saturn_client)

        plan = await planner.build_plan(["packages/shared/a.ts"], monorepo_config)

        mock_saturn_client.list_resources.assert_awaited_once()
        assert plan.get("api").resource_uuid == "uuid-api"
        assert plan.get("web").resource_uuid == "uuid-web"

    async def test_empty_change_set_still_reads_directory(
        self, mock_saturn_client: AsyncMock, monorepo_config: SmartConfig
    ):
        plan = await DeployPlanner(mock_saturn_client).build_plan([], monorepo_config)

        assert plan.is_empty
        mock_saturn_client.list_resources.assert_awaited_once()
