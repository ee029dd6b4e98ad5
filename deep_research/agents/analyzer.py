from __future__ import annotations

from typing import Any

from deep_research.agents.base import BaseAgent, to_prompt_json
from deep_research.models.research import (
    CrossValidation,
    FindingSet,
    MetricsExtraction,
    Synthesis,
)


class AnalyzerAgent(BaseAgent):
    """Synthesizes findings across subtopics.

    Every operation returns a typed default when the model call fails or its
    answer does not parse.
    """

    name = "analyzer"

    async def synthesize_findings(self, all_findings: list[FindingSet]) -> Synthesis:
        return await self.call_json(
            "analyzer.synthesize",
            Synthesis,
            default=Synthesis,
            temperature=0.5,
            max_tokens=3000,
            findings=to_prompt_json(all_findings),
        )

    async def cross_validate_sources(self, source_a: Any, source_b: Any) -> CrossValidation:
        return await self.call_json(
            "analyzer.cross_validate",
            CrossValidation,
            default=CrossValidation,
            temperature=0.4,
            max_tokens=2000,
            source_a=to_prompt_json(source_a),
            source_b=to_prompt_json(source_b),
        )

    async def extract_metrics(self, findings: list[FindingSet]) -> MetricsExtraction:
        return await self.call_json(
            "analyzer.metrics",
            MetricsExtraction,
            default=MetricsExtraction,
            temperature=0.3,
            max_tokens=2500,
            findings=to_prompt_json(findings),
        )
