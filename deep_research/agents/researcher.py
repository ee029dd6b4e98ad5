from __future__ import annotations

from typing import Any

from loguru import logger

from deep_research.agents.base import BaseAgent, to_prompt_json
from deep_research.config import settings
from deep_research.exceptions import ModelResponseError, PlanningError
from deep_research.llm_client import ModelClient
from deep_research.models.research import (
    FindingAnalysis,
    ResearchPlan,
    SearchResult,
    Subtopic,
    ValidationVerdict,
)


def default_plan(topic: str) -> list[Subtopic]:
    """Three-subtopic plan used when the planner answer cannot be parsed."""
    return [
        Subtopic(
            id="1",
            question=f"Core concepts of {topic}",
            importance="high",
            search_queries=[f"{topic} definition", f"what is {topic}"],
        ),
        Subtopic(
            id="2",
            question=f"Applications of {topic}",
            importance="high",
            search_queries=[f"{topic} applications", f"{topic} use cases"],
        ),
        Subtopic(
            id="3",
            question=f"Latest developments in {topic}",
            importance="medium",
            search_queries=[f"{topic} latest", f"{topic} trends"],
        ),
    ]


class ResearcherAgent(BaseAgent):
    """Plans the research, writes search queries and analyzes what comes back."""

    name = "researcher"

    def __init__(
        self,
        client: ModelClient,
        run_id: str | None = None,
        *,
        strict_planning: bool | None = None,
    ):
        super().__init__(client, run_id=run_id)
        self.strict_planning = (
            settings.planner_strict if strict_planning is None else strict_planning
        )

    async def plan(self, topic: str) -> list[Subtopic]:
        """Decompose a topic into subtopics with search queries.

        Provider errors always propagate. Malformed output falls back to
        `default_plan` unless strict planning is enabled.
        """
        try:
            parsed: ResearchPlan = await self.call_json(
                "researcher.plan",
                ResearchPlan,
                default=None,
                temperature=0.7,
                max_tokens=2000,
                raise_model_errors=True,
                topic=topic,
            )
        except ModelResponseError as e:
            if self.strict_planning:
                raise PlanningError(str(e)) from e
            logger.warning(f"Planner output unusable for '{topic}', using default plan")
            return default_plan(topic)

        subtopics = [s for s in parsed.subtopics if s.question.strip()]
        if not subtopics:
            if self.strict_planning:
                raise PlanningError("planner returned no subtopics")
            return default_plan(topic)
        return subtopics

    async def generate_queries(
        self, subtopic: Subtopic, existing_queries: list[str] | None = None
    ) -> list[str]:
        """Ask for 3-5 new queries; fall back to the subtopic's own queries."""
        existing = existing_queries or []

        def fallback() -> list[str]:
            return list(subtopic.search_queries) or [subtopic.question]

        queries: list[str] = await self.call_json(
            "researcher.queries",
            list[str],
            default=fallback,
            temperature=0.8,
            max_tokens=1000,
            question=subtopic.question,
            existing=", ".join(existing) or "none",
        )
        cleaned = [q.strip() for q in queries if q.strip()]
        return cleaned or fallback()

    async def analyze_findings(
        self, search_results: list[SearchResult], subtopic: Subtopic
    ) -> FindingAnalysis:
        """Extract key findings, insights and follow-up questions. Never raises."""
        return await self.call_json(
            "researcher.analyze",
            FindingAnalysis,
            default=FindingAnalysis,
            temperature=0.6,
            max_tokens=2500,
            question=subtopic.question,
            results=to_prompt_json(search_results),
        )

    async def validate_information(self, info: Any) -> ValidationVerdict:
        """Fact-check a piece of information; neutral verdict on failure."""
        return await self.call_json(
            "researcher.validate",
            ValidationVerdict,
            default=ValidationVerdict,
            temperature=0.3,
            max_tokens=1000,
            info=to_prompt_json(info),
        )
