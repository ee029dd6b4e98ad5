from __future__ import annotations

import json

import httpx
import pytest

from deep_research.agents.orchestrator import ResearchOrchestrator, search_progress
from deep_research.agents.searcher import SearcherAgent
from deep_research.exceptions import ModelAuthenticationError
from deep_research.models.research import RunStatus
from deep_research.models.schemas import ResearchConfig
from deep_research.services.report_store import ReportStore
from tests.conftest import StubModelClient, StubSearcher, pipeline_responses

TOPIC = "renewable energy storage"


def _config(**overrides) -> ResearchConfig:
    values = {"apiKey": "test", "model": "test-model", "maxIterations": 5, "searchDepth": 3}
    values.update(overrides)
    return ResearchConfig.model_validate(values)


def _orchestrator(tmp_path, client, searcher=None, **kwargs) -> ResearchOrchestrator:
    return ResearchOrchestrator(
        TOPIC,
        kwargs.pop("config", _config()),
        store=ReportStore(tmp_path),
        client=client,
        searcher=searcher or StubSearcher(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_end_to_end_run_completes(tmp_path, stub_client, stub_searcher):
    orchestrator = _orchestrator(tmp_path, stub_client, stub_searcher)
    run = await orchestrator.run_research()

    assert run.status == RunStatus.COMPLETED
    assert run.progress == 100
    assert run.error is None
    assert len(run.plan) == 2
    assert len(run.findings) == 2
    assert len(run.synthesis.key_themes) == 2
    assert run.metrics is None  # only extracted when more than three subtopics

    # three of the four generated queries are searched per subtopic
    assert len(stub_searcher.queries) == 6
    assert run.findings[0].search_queries == ["query a", "query b", "query c", "query d"]
    assert len(run.findings[0].search_results) == 6

    phases = [record.phase for record in run.iterations]
    assert phases == ["planning", "search", "search", "analysis", "reporting"]
    assert all(agent.status == "idle" for agent in run.agents.values())

    store = ReportStore(tmp_path)
    report = store.read_report(run.id)
    assert report.startswith(f"# {TOPIC}")
    assert report == orchestrator.report

    snapshot = store.read_status(run.id)
    assert snapshot["status"] == "completed"
    assert snapshot["progress"] == 100
    assert snapshot["synthesis"]["keyThemes"][0]["theme"] == "Cost decline"
    assert snapshot["iterations"][0] == {
        "phase": "planning",
        "timestamp": snapshot["iterations"][0]["timestamp"],
        "subtopicsCount": 2,
    }
    assert "error" not in snapshot


@pytest.mark.asyncio
async def test_model_calls_follow_pipeline_order(tmp_path, stub_client):
    await _orchestrator(tmp_path, stub_client).run_research()

    assert stub_client.callers() == [
        "researcher.plan",
        "researcher.queries",
        "researcher.analyze",
        "researcher.queries",
        "researcher.analyze",
        "analyzer.synthesize",
        "reporter.detailed",
        "reporter.format",
    ]


@pytest.mark.asyncio
async def test_plan_is_capped_by_max_iterations(tmp_path, stub_client):
    run = await _orchestrator(
        tmp_path, stub_client, config=_config(maxIterations=1)
    ).run_research()

    assert len(run.plan) == 1
    assert len(run.findings) == 1


@pytest.mark.asyncio
async def test_formatted_report_keeps_topic_title(tmp_path):
    client = StubModelClient(
        pipeline_responses(
            **{"reporter.format": "# Improved Research Report\n\n## Overview\n\nStorage is growing fast."}
        )
    )
    run = await _orchestrator(tmp_path, client).run_research()

    report = ReportStore(tmp_path).read_report(run.id)
    assert report.splitlines()[0] == f"# {TOPIC}"
    assert "Improved Research Report" not in report
    assert "## Overview" in report


@pytest.mark.asyncio
async def test_draft_with_other_title_is_retitled(tmp_path):
    client = StubModelClient(
        pipeline_responses(**{"reporter.detailed": "# Grid Batteries\n\n## Overview\n\nbody"})
    )
    run = await _orchestrator(tmp_path, client).run_research()

    assert ReportStore(tmp_path).read_report(run.id).startswith(f"# {TOPIC}\n\n## Overview")


@pytest.mark.asyncio
async def test_metrics_extracted_for_larger_runs(tmp_path):
    plan = {"subtopics": [{"id": str(i), "question": f"Q{i}?"} for i in range(1, 6)]}
    client = StubModelClient(pipeline_responses(**{"researcher.plan": json.dumps(plan)}))
    run = await _orchestrator(tmp_path, client).run_research()

    assert len(run.findings) == 5
    assert run.metrics is not None
    assert "analyzer.metrics" in client.callers()


@pytest.mark.asyncio
async def test_non_json_plan_uses_default_plan(tmp_path):
    client = StubModelClient(pipeline_responses(**{"researcher.plan": "Here is my plan in prose."}))
    run = await _orchestrator(tmp_path, client, strict_planning=False).run_research()

    assert run.status == RunStatus.COMPLETED
    assert [s.question for s in run.plan] == [
        f"Core concepts of {TOPIC}",
        f"Applications of {TOPIC}",
        f"Latest developments in {TOPIC}",
    ]


@pytest.mark.asyncio
async def test_non_json_plan_fails_run_in_strict_mode(tmp_path):
    client = StubModelClient(pipeline_responses(**{"researcher.plan": "Here is my plan in prose."}))
    run = await _orchestrator(tmp_path, client, strict_planning=True).run_research()

    assert run.status == RunStatus.FAILED
    assert run.progress == 0
    assert "Research plan generation failed" in run.error
    assert ReportStore(tmp_path).read_report(run.id) is None


@pytest.mark.asyncio
async def test_provider_error_fails_run(tmp_path):
    client = StubModelClient(
        pipeline_responses(**{"researcher.plan": ModelAuthenticationError("researcher.plan")})
    )
    run = await _orchestrator(tmp_path, client).run_research()

    snapshot = ReportStore(tmp_path).read_status(run.id)
    assert snapshot["status"] == "failed"
    assert snapshot["progress"] == 0
    assert snapshot["error"] == "API key is invalid, check the configuration"
    assert snapshot["phase"].startswith("Failed:")


@pytest.mark.asyncio
async def test_search_timeouts_still_complete(tmp_path, stub_client, monkeypatch):
    async def fake_get(self, url, **kwargs):  # noqa: ARG001
        raise httpx.ConnectTimeout("timed out")

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)
    stub_client.responses["researcher.queries"] = json.dumps(["only query"])

    run = await _orchestrator(tmp_path, stub_client, SearcherAgent(timeout=0.01)).run_research()

    assert run.status == RunStatus.COMPLETED
    for finding in run.findings:
        assert len(finding.search_results) == 1
        assert finding.search_results[0].title == "only query - related information"


@pytest.mark.asyncio
async def test_report_write_failure_is_logged_not_fatal(tmp_path, stub_client, monkeypatch):
    orchestrator = _orchestrator(tmp_path, stub_client)

    def broken_write(run_id, content):
        raise OSError("disk full")

    monkeypatch.setattr(orchestrator.store, "write_report", broken_write)
    run = await orchestrator.run_research()

    assert run.status == RunStatus.COMPLETED
    assert orchestrator.report is not None


@pytest.mark.asyncio
async def test_cancelled_run_stops_writing(tmp_path, stub_client):
    orchestrator = _orchestrator(tmp_path, stub_client)
    store = orchestrator.store

    def cancel_during_planning(prompt):
        orchestrator.cancel()
        store.delete_run(orchestrator.run_id)
        return "not json"

    stub_client.responses["researcher.plan"] = cancel_during_planning
    run = await orchestrator.run_research()

    assert orchestrator.cancelled
    assert run.status == RunStatus.RUNNING
    assert store.read_status(run.id) is None
    assert store.read_report(run.id) is None
    assert stub_client.callers() == ["researcher.plan"]


def test_search_progress_spans_search_phase():
    assert search_progress(0, 4) == 15
    assert search_progress(2, 4) == 45
    assert search_progress(0, 0) == 15
