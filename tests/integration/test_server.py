"""Integration tests for the Cardiac Triage MCP server."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from cardiotriage.core.rules.models import DEFAULT_RULES
from cardiotriage.core.server.app import create_app
from cardiotriage.core.server.main import _is_loopback_host, run


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    """Decode the JSON text block returned by a tool call."""
    content = getattr(result, "content", result)
    return json.loads(content[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    "analyze_report_text",
    "analyze_metrics",
    "validate_metrics",
    "compare_reports",
    "provider_summary",
]


@pytest.fixture
def client(fixed_clock):
    """Create an MCP client connected to a server with a fixed clock."""
    mcp = create_app(clock_override=fixed_clock)
    return Client(mcp)


def _call(client, tool: str, arguments: dict) -> dict:
    async def _go():
        async with client:
            return _payload(await client.call_tool(tool, arguments))
    return _run(_go())


class TestServerSurface:
    def test_server_starts_and_lists_tools(self, client):
        async def _check():
            async with client:
                tools = await client.list_tools()
                tool_names = [t.name for t in tools]
                for expected in ALL_EXPECTED_TOOLS:
                    assert expected in tool_names, f"Missing tool: {expected}"
        _run(_check())

    def test_health_check_reports_ruleset(self, client):
        data = _call(client, "health_check", {})
        assert data["status"] == "ok"
        assert data["ruleset_id"] == "cardiac_points"
        assert data["rulesets_loaded"] >= 2

    def test_ruleset_registry_resource(self, client):
        async def _check():
            async with client:
                contents = await client.read_resource("ruleset://cardiac/registry")
                data = json.loads(contents[0].text)
                ids = [r["id"] for r in data["rulesets"]]
                assert "cardiac_points" in ids
                assert "cardiac_points_wide_bands" in ids
                assert data["active_ruleset"] == "cardiac_points"
        _run(_check())

    def test_review_prompt_registered(self, client):
        async def _check():
            async with client:
                prompts = await client.list_prompts()
                assert "cardiac_report_review_prompt" in [p.name for p in prompts]
        _run(_check())


class TestAnalysisTools:
    def test_analyze_report_text(self, client, clinic_report, fixed_instant):
        data = _call(client, "analyze_report_text", {"text": clinic_report})
        assert data["status"] == "ok"
        analysis = data["analysis"]
        assert analysis["category"] == "High"
        assert analysis["triage"]["priority"] == "URGENT"
        assert analysis["metrics"]["ldl"] == 165
        assert analysis["meta"]["analysis_date"] == fixed_instant.isoformat()

    def test_short_text_rejected(self, client):
        data = _call(client, "analyze_report_text", {"text": "EF 55"})
        assert data["status"] == "error"
        assert "too short" in data["message"]

    def test_blank_text_rejected(self, client):
        data = _call(client, "analyze_report_text", {"text": "   "})
        assert data["status"] == "error"

    def test_analyze_metrics(self, client):
        metrics = {
            "age": 70, "sex": "male", "systolic": 190, "diastolic": 115, "ldl": 200,
            "lvef": 25, "pasp": 68, "bmi": 34, "fasting_blood_sugar": 180,
            "diabetes": True, "smoker": True, "family_history": True,
        }
        data = _call(client, "analyze_metrics", {"metrics_json": json.dumps(metrics)})
        assert data["analysis"]["category"] == "High"
        assert data["analysis"]["triage"]["priority"] == "IMMEDIATE"

    def test_analyze_metrics_bad_json(self, client):
        data = _call(client, "analyze_metrics", {"metrics_json": "{not json"})
        assert data["status"] == "error"
        assert "not valid JSON" in data["message"]

    def test_analyze_metrics_requires_object(self, client):
        data = _call(client, "analyze_metrics", {"metrics_json": "[1, 2]"})
        assert data["status"] == "error"

    def test_validate_metrics(self, client):
        data = _call(client, "validate_metrics", {"metrics_json": json.dumps({"age": 150})})
        assert data["is_valid"] is False
        assert any("age" in e.lower() for e in data["errors"])

    def test_compare_reports(self, client):
        baseline = "Blood Pressure: 160/100 mmHg. LDL: 180 mg/dL. LVEF: 40%"
        followup = "Blood Pressure: 128/78 mmHg. LDL: 100 mg/dL. LVEF: 50%"
        data = _call(client, "compare_reports", {"baseline_text": baseline, "followup_text": followup})
        comparison = data["comparison"]
        assert comparison["risk_percent_change"] < 0
        assert len(comparison["improvements"]) == 4

    def test_provider_summary(self, client, clinic_report):
        data = _call(client, "provider_summary", {"text": clinic_report})
        assert data["priority"] == "URGENT"
        assert data["summary"].startswith("=== CARDIAC TRIAGE ANALYSIS SUMMARY ===")


class TestRulesetSelection:
    def test_override_becomes_active(self, fixed_clock):
        import dataclasses

        custom = dataclasses.replace(DEFAULT_RULES, id="custom_rules", tags=("test",))
        client = Client(create_app(ruleset_override=custom, clock_override=fixed_clock))
        assert _call(client, "health_check", {})["ruleset_id"] == "custom_rules"

    def test_settings_select_packaged_alternate(self, monkeypatch, fixed_clock):
        monkeypatch.setenv("RULESET_ID", "cardiac_points_wide_bands")
        client = Client(create_app(clock_override=fixed_clock))
        assert _call(client, "health_check", {})["ruleset_id"] == "cardiac_points_wide_bands"

    def test_unknown_ruleset_falls_back(self, monkeypatch, fixed_clock):
        monkeypatch.setenv("RULESET_ID", "does_not_exist")
        client = Client(create_app(clock_override=fixed_clock))
        assert _call(client, "health_check", {})["ruleset_id"] == "cardiac_points"


class TestEntryPoint:
    @pytest.mark.parametrize("host", ["127.0.0.1", "localhost", "::1"])
    def test_loopback_hosts(self, host):
        assert _is_loopback_host(host)

    def test_public_host_is_not_loopback(self):
        assert not _is_loopback_host("0.0.0.0")

    def test_refuses_insecure_bind(self, monkeypatch):
        monkeypatch.setenv("CARDIO_HOST", "0.0.0.0")
        with pytest.raises(RuntimeError, match="non-loopback"):
            run()
