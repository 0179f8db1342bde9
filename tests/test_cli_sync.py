# tests/test_cli_sync.py
import json
import os
import sys
import tempfile

from click.testing import CliRunner

from conftest import make_plan
from floorplan_editor.exceptions import TransientPersistenceError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
import sync_floorplan
from sync_floorplan import cli


def test_sync_writes_plan(monkeypatch):
    seen = {}

    async def fake_fetch(config, floor_plan_id):
        seen["base_url"] = config.api_base_url
        seen["max_retries"] = config.max_retries
        return make_plan(version="4")

    monkeypatch.setattr(sync_floorplan, "fetch_floor_plan", fake_fetch)
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        out = os.path.join(tmpdir, "plans", "fp-1.json")
        result = runner.invoke(cli, [
            "--base-url", "https://iwms.example.com/api/v1",
            "--floor-plan-id", "fp-1",
            "--output", out,
            "--max-retries", "5",
        ])
        assert result.exit_code == 0, result.output
        with open(out) as f:
            data = json.load(f)

    assert data["id"] == "fp-1"
    assert data["metadata"]["version"] == "4"
    assert "usableArea" in data["metadata"]
    assert "Wrote Level 1 (version 4, 1 spaces)" in result.output
    assert seen == {"base_url": "https://iwms.example.com/api/v1", "max_retries": 5}


def test_sync_reports_persistence_errors(monkeypatch):
    async def failing_fetch(config, floor_plan_id):
        raise TransientPersistenceError("GET /floor-plans/fp-1 failed after 4 attempts")

    monkeypatch.setattr(sync_floorplan, "fetch_floor_plan", failing_fetch)
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        result = runner.invoke(cli, [
            "--base-url", "http://localhost:3000/api/v1",
            "--floor-plan-id", "fp-1",
            "--output", os.path.join(tmpdir, "out.json"),
        ])
    assert result.exit_code == 1
    assert "failed after 4 attempts" in result.output


def test_base_url_from_environment(monkeypatch):
    async def fake_fetch(config, floor_plan_id):
        assert config.api_base_url == "http://env.example.com/api/v1"
        return make_plan()

    monkeypatch.setattr(sync_floorplan, "fetch_floor_plan", fake_fetch)
    runner = CliRunner(env={"FLOORPLAN_EDITOR_API_BASE_URL": "http://env.example.com/api/v1"})
    with tempfile.TemporaryDirectory() as tmpdir:
        result = runner.invoke(cli, [
            "--floor-plan-id", "fp-1",
            "--output", os.path.join(tmpdir, "out.json"),
        ])
    assert result.exit_code == 0, result.output
