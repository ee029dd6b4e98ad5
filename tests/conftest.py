from __future__ import annotations

import json
import os

# Keep test runs from writing rotating log files into the working tree.
os.environ.setdefault("LOG_DIR", "")

import pytest

from deep_research.models.research import SearchResult


class StubModelClient:
    """Model client returning canned text keyed by caller (e.g. "researcher.plan").

    A value may be a string, an exception instance (raised), or a callable
    taking the prompt and returning text.
    """

    def __init__(self, responses: dict | None = None, default: str = ""):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: list[dict] = []

    async def complete(self, *, system, prompt, temperature=0.7, max_tokens=4000, caller="agent"):
        self.calls.append(
            {"caller": caller, "system": system, "prompt": prompt, "temperature": temperature}
        )
        response = self.responses.get(caller, self.default)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return response

    def callers(self) -> list[str]:
        return [c["caller"] for c in self.calls]


class StubSearcher:
    """Searcher returning a fixed result list per query without touching the network."""

    def __init__(self, per_query: int = 2):
        self.per_query = per_query
        self.queries: list[str] = []

    async def search(self, query, max_results=10, *, source="duckduckgo"):
        self.queries.append(query)
        return [
            SearchResult(
                title=f"{query} result {i}",
                url=f"https://example.com/{len(self.queries)}/{i}",
                snippet=f"Snippet {i} about {query}",
            )
            for i in range(min(self.per_query, max_results))
        ]


PLAN_JSON = json.dumps(
    {
        "subtopics": [
            {
                "id": "1",
                "question": "Which storage technologies exist?",
                "importance": "high",
                "searchQueries": ["battery storage types", "pumped hydro"],
            },
            {
                "id": "2",
                "question": "What do they cost?",
                "importance": "medium",
                "searchQueries": ["storage cost per kWh"],
            },
        ]
    }
)

ANALYSIS_JSON = json.dumps(
    {
        "keyFindings": [
            {"point": "Lithium-ion dominates new installations", "importance": "high", "evidence": "market data"}
        ],
        "insights": ["Costs keep falling"],
        "followUpQuestions": ["How long do batteries last?"],
    }
)

SYNTHESIS_JSON = json.dumps(
    {
        "keyThemes": [
            {"theme": "Cost decline", "supportingPoints": ["cheaper cells"], "evidenceCount": 3},
            {"theme": "Grid integration", "supportingPoints": [], "evidenceCount": 1},
        ],
        "patterns": [{"pattern": "Scale drives price", "occurrence": "often", "significance": "high"}],
        "gaps": [],
        "contradictions": [],
        "overallConfidence": 0.8,
        "recommendations": ["Track long-duration storage"],
    }
)


def pipeline_responses(**overrides) -> dict:
    responses = {
        "researcher.plan": PLAN_JSON,
        "researcher.queries": json.dumps(["query a", "query b", "query c", "query d"]),
        "researcher.analyze": ANALYSIS_JSON,
        "analyzer.synthesize": SYNTHESIS_JSON,
        "analyzer.metrics": json.dumps({"metrics": [], "trends": []}),
        "reporter.detailed": "## Overview\n\nStorage is growing fast.",
        "reporter.format": "",
    }
    responses.update(overrides)
    return responses


@pytest.fixture
def stub_client():
    return StubModelClient(pipeline_responses())


@pytest.fixture
def stub_searcher():
    return StubSearcher()
