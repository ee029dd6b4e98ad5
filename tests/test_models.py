from __future__ import annotations

import pytest

from deep_research.models.research import (
    AgentUpdate,
    IterationRecord,
    ResearchRun,
    RunStatus,
    StatusPatch,
    Subtopic,
    new_run_id,
)
from deep_research.services.report_store import is_valid_run_id


def test_new_run_ids_are_unique_and_file_safe():
    ids = {new_run_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(is_valid_run_id(run_id) for run_id in ids)


def test_new_run_starts_running_with_idle_agents():
    run = ResearchRun(topic="solar")
    assert run.status == RunStatus.RUNNING
    assert run.phase == "Initializing"
    assert run.progress == 0
    assert set(run.agents) == {"researcher", "searcher", "analyzer", "reporter"}
    assert all(agent.status == "idle" for agent in run.agents.values())


def test_status_patch_updates_fields_and_agents():
    run = ResearchRun(topic="solar")
    StatusPatch(
        phase="Searching",
        progress=140,
        agents=[AgentUpdate("searcher", "active", "Searching 3 queries")],
    ).apply(run)

    assert run.phase == "Searching"
    assert run.progress == 100
    assert run.agents["searcher"].status == "active"
    assert run.agents["searcher"].last_action == "Searching 3 queries"
    assert run.agents["researcher"].status == "idle"


def test_status_patch_keeps_last_action_when_not_given():
    run = ResearchRun(topic="solar")
    StatusPatch(agents=[AgentUpdate("reporter", "active", "Drafting")]).apply(run)
    StatusPatch(agents=[AgentUpdate("reporter", "idle")]).apply(run)
    assert run.agents["reporter"].last_action == "Drafting"


def test_status_patch_rejects_unknown_agent():
    with pytest.raises(KeyError):
        StatusPatch(agents=[AgentUpdate("critic", "active")]).apply(ResearchRun(topic="solar"))


def test_terminal_status_cannot_change():
    run = ResearchRun(topic="solar")
    StatusPatch(status=RunStatus.COMPLETED, progress=100).apply(run)

    with pytest.raises(ValueError):
        StatusPatch(status=RunStatus.FAILED).apply(run)
    assert run.status == RunStatus.COMPLETED


def test_snapshot_uses_camel_case_and_omits_unset_values():
    run = ResearchRun(topic="solar")
    run.plan = [Subtopic(id="1", question="Q?", search_queries=["q"])]
    run.iterations.append(IterationRecord(phase="planning", subtopics_count=1))

    snapshot = run.to_snapshot()

    assert snapshot["plan"][0]["searchQueries"] == ["q"]
    assert snapshot["agents"]["researcher"] == {"status": "idle", "lastAction": ""}
    assert snapshot["iterations"][0]["subtopicsCount"] == 1
    assert "resultsCount" not in snapshot["iterations"][0]
    assert "error" not in snapshot
    assert "metrics" not in snapshot
    assert snapshot["synthesis"] is None


def test_topic_and_id_are_immutable():
    run = ResearchRun(topic="solar")
    with pytest.raises(ValueError):
        run.topic = "wind"
