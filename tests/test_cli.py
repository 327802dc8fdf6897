import json

import pytest
from click.testing import CliRunner

from autodeploy.cli.main import main

from conftest import REPO, fake_analyzer, success


@pytest.fixture
def runner():
    return CliRunner()


def _invoke(runner, orchestrator, args):
    return runner.invoke(main, args, obj={"orchestrator": orchestrator, "analyzer": fake_analyzer})


class TestDeployCommands:
    def test_deploy_json(self, runner, orchestrator, adapter, connected):
        adapter.script = {"project-git-link": [success()]}
        result = _invoke(runner, orchestrator, ["--json", "deploy", "--project", "shop", "--owner", "u1",
                                                "--repo", REPO, "--provider", "vercel"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["status"] == "deployed"
        assert data["url"] == "https://shop.vercel.app"

    def test_deploy_with_provider_uses_detected_build(self, runner, orchestrator, adapter, connected):
        adapter.script = {"project-git-link": [success()]}
        result = _invoke(runner, orchestrator, ["--json", "deploy", "--project", "shop", "--owner", "u1",
                                                "--repo", REPO, "--provider", "vercel", "--output", "out"])
        assert result.exit_code == 0
        build = json.loads(result.output)["build_config"]
        assert build["build_command"] == "npm run build"
        assert build["output_directory"] == "out"

    def test_deploy_no_detect(self, runner, orchestrator, adapter, connected):
        adapter.script = {"project-git-link": [success()]}
        result = _invoke(runner, orchestrator, ["--json", "deploy", "--project", "shop", "--owner", "u1",
                                                "--repo", REPO, "--provider", "vercel", "--no-detect"])
        assert json.loads(result.output)["build_config"]["build_command"] is None

    def test_deploy_failure_exit_code(self, runner, orchestrator, adapter):
        result = _invoke(runner, orchestrator, ["deploy", "--project", "shop", "--owner", "u1",
                                                "--repo", REPO, "--provider", "vercel"])
        assert result.exit_code == 1
        assert "needs_setup" in result.output

    def test_status_and_logs(self, runner, orchestrator, adapter, connected):
        adapter.script = {"project-git-link": [success()]}
        record = orchestrator.deploy(project_id="shop", owner_id="u1", repository=REPO, provider="vercel")
        status = _invoke(runner, orchestrator, ["status", record.id])
        assert status.exit_code == 0
        assert "deployed" in status.output
        logs = _invoke(runner, orchestrator, ["--json", "logs", record.id, "--level", "success"])
        entries = json.loads(logs.output)
        assert {e["level"] for e in entries} == {"success"}
        assert entries[-1]["message"].startswith("Deployed to")

    def test_status_unknown(self, runner, orchestrator):
        result = _invoke(runner, orchestrator, ["status", "d-20240101-120000-zzzz"])
        assert result.exit_code == 2

    def test_rollback_without_prior(self, runner, orchestrator, adapter, connected):
        adapter.script = {"project-git-link": [success()]}
        record = orchestrator.deploy(project_id="shop", owner_id="u1", repository=REPO, provider="vercel")
        result = _invoke(runner, orchestrator, ["--json", "rollback", record.id])
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["code"] == "no_prior_deployment"


class TestCredentialCommands:
    def test_connect_demo(self, runner, orchestrator):
        result = _invoke(runner, orchestrator, ["connect", "vercel", "--owner", "u1", "--demo"])
        assert result.exit_code == 0
        assert "demo" in result.output

    def test_connect_prompts_for_token(self, runner, orchestrator, adapter):
        result = runner.invoke(main, ["connect", "vercel", "--owner", "u1"], input="tok_live\n",
                               obj={"orchestrator": orchestrator, "analyzer": fake_analyzer})
        assert result.exit_code == 0
        assert ("validate", "tok_live") in adapter.calls

    def test_disconnect(self, runner, orchestrator):
        _invoke(runner, orchestrator, ["connect", "vercel", "--owner", "u1", "--demo"])
        assert _invoke(runner, orchestrator, ["disconnect", "vercel", "--owner", "u1"]).exit_code == 0
        assert _invoke(runner, orchestrator, ["disconnect", "vercel", "--owner", "u1"]).exit_code == 2

    def test_connections(self, runner, orchestrator):
        empty = _invoke(runner, orchestrator, ["connections", "--owner", "u1"])
        assert empty.exit_code == 0
        assert "No providers connected" in empty.output
        _invoke(runner, orchestrator, ["connect", "vercel", "--owner", "u1", "--demo"])
        rows = json.loads(_invoke(runner, orchestrator, ["--json", "connections", "--owner", "u1"]).output)
        assert [(r["provider"], r["mode"]) for r in rows] == [("vercel", "demo")]

    def test_rotate(self, runner, orchestrator):
        _invoke(runner, orchestrator, ["connect", "vercel", "--owner", "u1", "--demo"])
        result = _invoke(runner, orchestrator, ["--json", "rotate"])
        assert result.exit_code == 0
        assert json.loads(result.output)["rotated"] == 1


def test_analyze_human(runner, orchestrator, tmp_path):
    (tmp_path / "Dockerfile").write_text("FROM node:20\n")
    result = _invoke(runner, orchestrator, ["analyze", str(tmp_path), "--report-dir", str(tmp_path / "out")])
    assert result.exit_code == 0
    assert "Docker" in result.output
    assert (tmp_path / "out" / "analysis.md").exists()


def test_providers_json(runner, orchestrator):
    rows = json.loads(_invoke(runner, orchestrator, ["--json", "providers"]).output)
    assert rows == [{"id": "vercel", "name": "Vercel", "domain": "vercel.app",
                     "strategies": ["project-git-link", "git-source-deployment"]}]
