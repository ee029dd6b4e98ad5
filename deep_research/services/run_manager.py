"""Registry of in-flight research runs.

Runs execute as background asyncio tasks. The registry is keyed by run id and
guarded by a lock; a run leaves it when its task finishes or when it is
cancelled.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger

from deep_research.agents.orchestrator import ResearchOrchestrator
from deep_research.agents.searcher import SearcherAgent
from deep_research.exceptions import InvalidTopicError
from deep_research.llm_client import ModelClient, get_client
from deep_research.models.schemas import ResearchConfig
from deep_research.services import logger as log_service
from deep_research.services.config_store import ConfigStore
from deep_research.services.report_store import ReportStore


class RunManager:
    def __init__(
        self,
        store: ReportStore,
        config_store: ConfigStore,
        *,
        client_factory: Callable[[ResearchConfig], ModelClient] = get_client,
        searcher_factory: Callable[[], SearcherAgent] = SearcherAgent,
    ):
        self.store = store
        self.config_store = config_store
        self.client_factory = client_factory
        self.searcher_factory = searcher_factory
        self._runs: dict[str, ResearchOrchestrator] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def register(self, orchestrator: ResearchOrchestrator) -> None:
        async with self._lock:
            self._runs[orchestrator.run_id] = orchestrator

    async def lookup(self, run_id: str) -> ResearchOrchestrator | None:
        async with self._lock:
            return self._runs.get(run_id)

    async def remove(self, run_id: str) -> ResearchOrchestrator | None:
        async with self._lock:
            self._tasks.pop(run_id, None)
            return self._runs.pop(run_id, None)

    async def active_run_ids(self) -> list[str]:
        async with self._lock:
            return list(self._runs)

    async def start(
        self, topic: str, override: dict[str, Any] | None = None
    ) -> ResearchOrchestrator:
        """Create a run for `topic` and execute it in the background.

        The initial snapshot is written before this returns, so the run's
        status is readable as soon as its id is handed out.
        """
        if not topic or not topic.strip():
            raise InvalidTopicError()

        config = self.config_store.load().merged(override)
        orchestrator = ResearchOrchestrator(
            topic.strip(),
            config,
            store=self.store,
            client=self.client_factory(config),
            searcher=self.searcher_factory(),
        )
        await self.register(orchestrator)
        await orchestrator.persist()

        run_id = orchestrator.run_id
        async with self._lock:
            task = asyncio.create_task(self._drive(orchestrator), name=f"research-{run_id}")
            self._tasks[run_id] = task
        task.add_done_callback(lambda done: self._discard_task(run_id, done))
        log_service.log_event(
            "research_started",
            f"Research run {orchestrator.run_id} started",
            topic=orchestrator.run.topic,
            model=config.model,
        )
        return orchestrator

    def _discard_task(self, run_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(run_id) is task:
            del self._tasks[run_id]

    async def _drive(self, orchestrator: ResearchOrchestrator) -> None:
        try:
            run = await orchestrator.run_research()
            log_service.log_event(
                "research_finished",
                f"Research run {run.id} finished",
                status=run.status.value,
                cancelled=orchestrator.cancelled,
            )
        finally:
            await self.remove(orchestrator.run_id)

    async def cancel(self, run_id: str) -> bool:
        """Stop a running run from writing further state. True if it was running."""
        orchestrator = await self.remove(run_id)
        if orchestrator is None:
            return False
        orchestrator.cancel()
        return True

    async def wait(self, run_id: str) -> None:
        """Block until the run's background task finishes, if it is still running."""
        async with self._lock:
            task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every in-flight run and wait for their tasks to unwind."""
        async with self._lock:
            orchestrators = list(self._runs.values())
            tasks = list(self._tasks.values())
            self._runs.clear()
            self._tasks.clear()
        for orchestrator in orchestrators:
            orchestrator.cancel()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Stopped {len(tasks)} research run(s) on shutdown")
