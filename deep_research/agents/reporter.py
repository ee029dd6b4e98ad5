from __future__ import annotations

import re
from datetime import datetime, timezone

from loguru import logger

from deep_research.agents.base import BaseAgent, to_prompt_json, unwrap_code_fence
from deep_research.models.research import FindingSet, Synthesis
from deep_research.tools.web_utils import extract_domain, is_valid_url

FALLBACK_SUMMARY = "# Executive Summary\n\nThis report was compiled through multi-agent collaborative research."

_H1_PATTERN = re.compile(r"^#[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)


def _generated_at() -> str:
    return datetime.now(timezone.utc).isoformat()


def ensure_title(report: str, topic: str) -> str:
    """Make the first top-level heading read `# <topic>`.

    A differing first H1 is replaced; a report without one gets it prefixed.
    """
    heading = f"# {topic}"
    match = _H1_PATTERN.search(report)
    if match is None:
        return f"{heading}\n\n{report}"
    if match.group(1).strip() == topic.strip():
        return report
    return report[: match.start()] + heading + report[match.end() :]


def build_fallback_report(topic: str, findings: list[FindingSet]) -> str:
    """Assemble a report straight from structured findings, without the model."""
    sections: list[str] = []
    for index, finding in enumerate(findings, 1):
        points = [f"- {k.point}" for k in finding.analysis.key_findings if k.point.strip()]
        body = "\n".join(points) if points else "No findings available."
        sections.append(f"### {index}. {finding.subtopic_question}\n\n{body}")

    references: list[str] = []
    seen_urls: set[str] = set()
    for finding in findings:
        for result in finding.search_results:
            if not is_valid_url(result.url) or result.url in seen_urls:
                continue
            seen_urls.add(result.url)
            references.append(f"- [{result.title}]({result.url}) ({extract_domain(result.url)})")

    parts = [
        f"# {topic}",
        "## Executive Summary\n\nThis report was compiled through multi-agent collaborative research.",
        "## Key Findings\n\n" + ("\n\n".join(sections) if sections else "No findings available."),
        "## References\n\n"
        + ("\n".join(references) + "\n\n" if references else "")
        + "Compiled from web search results and AI analysis.",
        f"---\n*Report generated: {_generated_at()}*",
    ]
    return "\n\n".join(parts) + "\n"


class ReporterAgent(BaseAgent):
    """Writes the final Markdown report."""

    name = "reporter"

    async def generate_executive_summary(self, topic: str, synthesis: Synthesis | None) -> str:
        try:
            text = await self.complete(
                "reporter.summary",
                temperature=0.6,
                max_tokens=2000,
                topic=topic,
                synthesis=to_prompt_json(synthesis),
            )
        except Exception as e:
            logger.warning(f"Executive summary generation failed: {e}")
            return FALLBACK_SUMMARY
        return text.strip() or FALLBACK_SUMMARY

    async def generate_detailed_report(
        self, topic: str, findings: list[FindingSet], synthesis: Synthesis | None
    ) -> str:
        """Full report from the model, or the structured fallback on failure."""
        try:
            text = await self.complete(
                "reporter.detailed",
                temperature=0.5,
                max_tokens=8000,
                topic=topic,
                findings=to_prompt_json(findings),
                synthesis=to_prompt_json(synthesis),
                generated_at=_generated_at(),
            )
        except Exception as e:
            logger.warning(f"Detailed report generation failed: {e}")
            return build_fallback_report(topic, findings)

        report = unwrap_code_fence(text)
        if not report:
            return build_fallback_report(topic, findings)
        return ensure_title(report, topic)

    async def format_report(self, report_content: str, topic: str | None = None) -> str:
        """Polish headings and prose; the draft is returned as-is on failure.

        With `topic`, the polished text keeps `# <topic>` as its title.
        """
        try:
            text = await self.complete(
                "reporter.format",
                temperature=0.3,
                max_tokens=6000,
                report=report_content,
            )
        except Exception as e:
            logger.warning(f"Report formatting failed: {e}")
            return report_content

        formatted = unwrap_code_fence(text) or report_content
        return ensure_title(formatted, topic) if topic else formatted
