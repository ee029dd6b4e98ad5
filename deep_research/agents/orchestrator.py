from __future__ import annotations

import asyncio

from loguru import logger

from deep_research.agents.analyzer import AnalyzerAgent
from deep_research.agents.reporter import ReporterAgent
from deep_research.agents.researcher import ResearcherAgent
from deep_research.agents.searcher import SearcherAgent
from deep_research.config import settings
from deep_research.exceptions import RunCancelledError
from deep_research.llm_client import ModelClient, get_client
from deep_research.models.research import (
    AgentUpdate,
    FindingSet,
    IterationRecord,
    ResearchRun,
    RunStatus,
    SearchResult,
    StatusPatch,
)
from deep_research.models.schemas import ResearchConfig
from deep_research.services import logger as log_service
from deep_research.services.report_store import ReportStore

# Progress checkpoints per phase
PLANNING_START = 5
PLANNING_END = 15
SEARCH_START = 15
SEARCH_END = 75
ANALYSIS_END = 90
COMPLETE = 100


def search_progress(index: int, total: int) -> int:
    """Progress when starting subtopic `index` of `total`."""
    if total <= 0:
        return SEARCH_START
    return SEARCH_START + int(index / total * (SEARCH_END - SEARCH_START))


class ResearchOrchestrator:
    """Drives one research run through its four phases.

    Flow:
      1. Planning: the researcher decomposes the topic into subtopics
      2. Search: for each subtopic, write queries, search, analyze results
      3. Analysis: synthesize all findings (plus metrics for larger runs)
      4. Reporting: draft the Markdown report, format it, store it

    Every state change is applied to the in-memory run and written to the
    report store as a full snapshot. Once cancelled, nothing more is written.
    """

    def __init__(
        self,
        topic: str,
        config: ResearchConfig,
        *,
        store: ReportStore,
        client: ModelClient | None = None,
        searcher: SearcherAgent | None = None,
        strict_planning: bool | None = None,
    ):
        self.config = config
        self.store = store
        self.run = ResearchRun(topic=topic)
        self.client = client if client is not None else get_client(config)
        self.researcher = ResearcherAgent(
            self.client, run_id=self.run.id, strict_planning=strict_planning
        )
        self.searcher = searcher or SearcherAgent()
        self.analyzer = AnalyzerAgent(self.client, run_id=self.run.id)
        self.reporter = ReporterAgent(self.client, run_id=self.run.id)
        self.report: str | None = None
        self._cancel_requested = False

    @property
    def run_id(self) -> str:
        return self.run.id

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Ask the run to stop at its next checkpoint."""
        if not self._cancel_requested:
            logger.info(f"Cancellation requested for run {self.run_id}")
        self._cancel_requested = True

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise RunCancelledError(self.run_id)

    # --- Persistence ---

    async def persist(self) -> None:
        """Write the current snapshot. Storage errors are logged, not raised."""
        if self._cancel_requested:
            return
        snapshot = self.run.to_snapshot()
        try:
            await asyncio.to_thread(self.store.write_status, self.run_id, snapshot)
        except Exception as e:
            log_service.log_storage_operation(
                "write_status", self.run_id, "error", error=str(e)
            )

    async def _update(self, patch: StatusPatch) -> None:
        patch.apply(self.run)
        await self.persist()

    async def _set_agents(self, *updates: AgentUpdate) -> None:
        await self._update(StatusPatch(agents=list(updates)))

    async def _record(self, record: IterationRecord) -> None:
        self.run.iterations.append(record)
        await self.persist()

    # --- Pipeline ---

    async def run_research(self) -> ResearchRun:
        """Run every phase and return the run.

        Failures end the run as failed with the error message recorded. A
        cancelled run stops quietly and keeps its last written snapshot.
        """
        logger.info(f"Starting research run {self.run_id}: {self.run.topic!r}")
        await self.persist()
        try:
            for phase in (
                self._planning_phase,
                self._search_phase,
                self._analysis_phase,
                self._reporting_phase,
            ):
                self._check_cancelled()
                await phase()
            self._check_cancelled()
            await self._update(
                StatusPatch(status=RunStatus.COMPLETED, phase="Research complete", progress=COMPLETE)
            )
            log_service.log_research_step(self.run_id, "complete", "success")
        except RunCancelledError:
            log_service.log_research_step(self.run_id, self.run.phase, "cancelled")
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.exception(f"Research run {self.run_id} failed: {message}")
            log_service.log_research_step(
                self.run_id, self.run.phase, "error", {"error": message}
            )
            await self._update(
                StatusPatch(
                    status=RunStatus.FAILED,
                    phase=f"Failed: {message}",
                    progress=0,
                    error=message,
                    agents=[AgentUpdate(name, "idle") for name in self.run.agents],
                )
            )
        return self.run

    async def _verify_connection(self) -> None:
        verify = getattr(self.client, "verify_connection", None)
        if verify is not None and settings.verify_model_connection:
            await verify()

    async def _planning_phase(self) -> None:
        log_service.log_research_step(self.run_id, "planning", "started")
        await self._update(
            StatusPatch(
                phase="Drafting research plan",
                progress=PLANNING_START,
                agents=[AgentUpdate("researcher", "active", "Drafting research plan")],
            )
        )
        await self._verify_connection()
        plan = await self.researcher.plan(self.run.topic)
        self.run.plan = plan[: self.config.max_iterations]

        await self._update(
            StatusPatch(
                phase=f"Plan ready: {len(self.run.plan)} subtopics",
                progress=PLANNING_END,
                agents=[AgentUpdate("researcher", "idle", "Research plan drafted")],
            )
        )
        await self._record(IterationRecord(phase="planning", subtopics_count=len(self.run.plan)))
        log_service.log_research_step(
            self.run_id, "planning", "completed", {"subtopics": len(self.run.plan)}
        )

    async def _search_subtopic(self, index: int, total: int) -> None:
        subtopic = self.run.plan[index]
        await self._update(
            StatusPatch(
                phase=f"Researching subtopic {index + 1}/{total}: {subtopic.question}",
                progress=search_progress(index, total),
                agents=[AgentUpdate("researcher", "active", "Generating search queries")],
            )
        )
        queries = await self.researcher.generate_queries(subtopic, subtopic.search_queries)
        selected = queries[: self.config.search_depth]

        await self._set_agents(
            AgentUpdate("researcher", "idle"),
            AgentUpdate("searcher", "active", f"Searching {len(selected)} queries"),
        )
        results: list[SearchResult] = []
        for query in selected:
            self._check_cancelled()
            results.extend(await self.searcher.search(query, settings.results_per_query))

        await self._set_agents(
            AgentUpdate("searcher", "idle", f"Found {len(results)} results"),
            AgentUpdate("researcher", "active", "Analyzing search results"),
        )
        analysis = await self.researcher.analyze_findings(results, subtopic)
        self.run.findings.append(
            FindingSet(
                subtopic_id=subtopic.id,
                subtopic_question=subtopic.question,
                search_queries=queries,
                search_results=results,
                analysis=analysis,
            )
        )
        await self._record(
            IterationRecord(
                phase="search",
                subtopic=subtopic.question,
                queries_count=len(queries),
                results_count=len(results),
                findings_count=len(analysis.key_findings),
            )
        )

    async def _search_phase(self) -> None:
        subtopics = self.run.plan or []
        total = len(subtopics)
        log_service.log_research_step(self.run_id, "search", "started", {"subtopics": total})
        for index in range(total):
            self._check_cancelled()
            await self._search_subtopic(index, total)

        await self._update(
            StatusPatch(
                phase="Search complete",
                progress=SEARCH_END,
                agents=[AgentUpdate("researcher", "idle"), AgentUpdate("searcher", "idle")],
            )
        )
        log_service.log_research_step(
            self.run_id, "search", "completed", {"findings": len(self.run.findings)}
        )

    async def _analysis_phase(self) -> None:
        log_service.log_research_step(self.run_id, "analysis", "started")
        await self._update(
            StatusPatch(
                phase="Synthesizing findings",
                progress=SEARCH_END,
                agents=[AgentUpdate("analyzer", "active", "Synthesizing findings")],
            )
        )
        synthesis = await self.analyzer.synthesize_findings(self.run.findings)
        self.run.synthesis = synthesis

        if len(self.run.findings) > settings.metrics_min_findings:
            await self._set_agents(AgentUpdate("analyzer", "active", "Extracting key metrics"))
            self.run.metrics = await self.analyzer.extract_metrics(self.run.findings)

        await self._update(
            StatusPatch(
                phase="Analysis complete",
                progress=ANALYSIS_END,
                agents=[AgentUpdate("analyzer", "idle", "Synthesis complete")],
            )
        )
        await self._record(
            IterationRecord(
                phase="analysis",
                key_themes_count=len(synthesis.key_themes),
                patterns_count=len(synthesis.patterns),
            )
        )
        log_service.log_research_step(
            self.run_id,
            "analysis",
            "completed",
            {"themes": len(synthesis.key_themes), "confidence": synthesis.overall_confidence},
        )

    async def _reporting_phase(self) -> None:
        log_service.log_research_step(self.run_id, "reporting", "started")
        await self._update(
            StatusPatch(
                phase="Writing report",
                progress=ANALYSIS_END,
                agents=[AgentUpdate("reporter", "active", "Drafting detailed report")],
            )
        )
        draft = await self.reporter.generate_detailed_report(
            self.run.topic, self.run.findings, self.run.synthesis
        )
        self._check_cancelled()
        await self._set_agents(AgentUpdate("reporter", "active", "Formatting report"))
        report = await self.reporter.format_report(draft, self.run.topic)
        self.report = report

        self._check_cancelled()
        try:
            await asyncio.to_thread(self.store.write_report, self.run_id, report)
        except Exception as e:
            log_service.log_storage_operation(
                "write_report", self.run_id, "error", error=str(e)
            )

        await self._set_agents(AgentUpdate("reporter", "idle", "Report written"))
        await self._record(IterationRecord(phase="reporting", report_length=len(report)))
        log_service.log_research_step(
            self.run_id, "reporting", "completed", {"report_length": len(report)}
        )
