"""Deep Research - multi-agent research CLI

Runs one topic through the full pipeline and prints the report.
"""

import argparse
import asyncio
import sys

from deep_research.agents.orchestrator import ResearchOrchestrator
from deep_research.models.research import RunStatus
from deep_research.services.config_store import ConfigStore
from deep_research.services.report_store import ReportStore


async def run_research(topic: str, model: str | None = None, max_iterations: int | None = None) -> int:
    """Run research on the given topic. Returns a process exit code."""
    print(f"Research topic: {topic}")
    print("-" * 50)

    config = ConfigStore().load().merged({"model": model, "maxIterations": max_iterations})
    orchestrator = ResearchOrchestrator(topic, config, store=ReportStore())
    run = await orchestrator.run_research()

    print(f"\n[*] Run {run.id}: {run.status.value}")
    for record in run.iterations:
        counts = record.model_dump(by_alias=True, exclude={"phase", "timestamp"})
        print(f"  [+] {record.phase}: {counts}")

    if run.status != RunStatus.COMPLETED:
        print(f"\n[!] Error: {run.error or 'Unknown error'}")
        return 1

    if run.synthesis is not None:
        print(f"   Themes: {len(run.synthesis.key_themes)}")
        print(f"   Confidence: {run.synthesis.overall_confidence:.2f}")
    print(f"\n{'='*50}")
    print("REPORT:")
    print(f"{'='*50}")
    print(orchestrator.report or "")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Deep Research multi-agent research tool")
    parser.add_argument("--topic", "-t", required=True, help="Research topic")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--max-iterations", type=int, help="Maximum subtopics to research")

    args = parser.parse_args()
    if not args.topic.strip():
        parser.error("topic must not be empty")

    sys.exit(asyncio.run(run_research(args.topic.strip(), args.model, args.max_iterations)))


if __name__ == "__main__":
    main()
