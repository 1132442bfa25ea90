"""Tests for discovery and execution through the controller."""

import json
import logging
import sys

import pytest
from cucumber_messages import FAKE_CUCUMBER, URI, write_fake_project

from cucumber_runner.controller import CucumberTestController
from cucumber_runner.errors import ConfigError
from cucumber_runner.hierarchy import HierarchyNode
from cucumber_runner.reporter import DiagnosticStore
from cucumber_runner.runner import CucumberRunner
from cucumber_runner.tree import TestTree

BROKEN_CUCUMBER = """
import sys
sys.stderr.write("Error: cucumber config is broken\\n")
sys.exit(1)
"""


@pytest.fixture
def project(tmp_path):
    return write_fake_project(tmp_path)


@pytest.fixture
def controller(project) -> CucumberTestController:
    runner = CucumberRunner(project, command=[sys.executable, "-c", FAKE_CUCUMBER])
    return CucumberTestController(project, runner=runner, tree=TestTree())


def _calls(project) -> list:
    return [json.loads(line) for line in (project / "calls.jsonl").read_text().splitlines()]


class TestDiscovery:
    """Tests for discover() / discover_from_pickles()."""

    @pytest.mark.asyncio
    async def test_discover_from_pickles(self, controller, project):
        root = await controller.discover_from_pickles()

        assert controller.root is root
        assert "features/a.feature:10" in controller.tree
        assert "features/a.feature:21" in controller.tree
        assert _calls(project) == [["--dry-run", "--format", "message"]]

    @pytest.mark.asyncio
    async def test_discover_from_documents(self, controller):
        await controller.discover()
        assert controller.tree.get("features/User_login") is not None
        assert controller.tree.get("features/a.feature:19") is not None

    @pytest.mark.asyncio
    async def test_refresh_uses_discovery_mode(self, project):
        runner = CucumberRunner(project, command=[sys.executable, "-c", FAKE_CUCUMBER])
        controller = CucumberTestController(project, runner=runner, discovery="documents")
        await controller.refresh()
        assert controller.tree.get("features/User_login") is not None

    @pytest.mark.asyncio
    async def test_failed_dry_run_is_logged(self, tmp_path, caplog):
        runner = CucumberRunner(tmp_path, command=[sys.executable, "-c", BROKEN_CUCUMBER])
        controller = CucumberTestController(tmp_path, runner=runner)

        with caplog.at_level(logging.WARNING, logger="cucumber_runner"):
            root = await controller.discover_from_pickles()

        assert root.children == []
        assert "Error: cucumber config is broken" in caplog.text
        assert "exited with code 1" in caplog.text

    def test_invalid_discovery_mode(self, project):
        with pytest.raises(ConfigError):
            CucumberTestController(project, discovery="magic")


class TestBuildCucumberArgs:
    """Tests for build_cucumber_args()."""

    def test_lines_and_files(self, tmp_path):
        controller = CucumberTestController(tmp_path)
        nodes = [
            HierarchyNode(id=f"{URI}:10", name="s", uri=URI, line=10),
            HierarchyNode(id="features/User_login", name="User login", uri=URI),
        ]
        assert controller.build_cucumber_args(nodes) == [f"{URI}:10", URI]

    def test_absolute_uri_made_relative(self, tmp_path):
        controller = CucumberTestController(tmp_path)
        node = HierarchyNode(id="x", name="x", uri=str(tmp_path / "features" / "b.feature"), line=4)
        assert controller.build_cucumber_args([node]) == ["features/b.feature:4"]

    def test_folders_expand_to_children_without_duplicates(self, tmp_path):
        controller = CucumberTestController(tmp_path)
        leaf = HierarchyNode(id=f"{URI}:10", name="s", uri=URI, line=10)
        folder = HierarchyNode(id="features", name="features", children=[leaf])
        assert controller.build_cucumber_args([folder, leaf]) == [f"{URI}:10"]


class TestRunTests:
    """Tests for run_tests()."""

    @pytest.mark.asyncio
    async def test_run_everything(self, controller, project, report):
        diagnostics = DiagnosticStore()
        outcome = await controller.run_tests(report=report, diagnostics=diagnostics)

        assert outcome.exit_code == 0
        assert report.of_kind("failed")[0][1] == "features/a.feature:10"
        assert report.of_kind("passed") == [("passed", "features/a.feature:15", 5)]
        assert report.calls[-1] == ("end",)
        assert diagnostics.uris() == ["features/a.feature"]

        # Discovery ran first, then one direct run without path arguments.
        assert _calls(project) == [["--dry-run", "--format", "message"], ["--format", "message"]]

    @pytest.mark.asyncio
    async def test_run_selected_nodes_uses_tmp_config(self, controller, project, report):
        (project / "cucumber.json").write_text(json.dumps({"default": {"paths": ["features/"]}}))
        await controller.discover_from_pickles()
        rows = [controller.tree.get(f"{URI}:20"), controller.tree.get(f"{URI}:21")]

        await controller.run_tests(report=report, include=rows)

        assert _calls(project)[-1] == [
            f"{URI}:20",
            f"{URI}:21",
            "--config",
            "cucumber-test-runner.json",
            "--format",
            "message",
        ]
        # Only the rows are candidates, so the row pickle resolves to its row.
        assert report.of_kind("passed") == [("passed", f"{URI}:20", 5)]
