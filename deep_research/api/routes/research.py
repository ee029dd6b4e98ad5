from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from deep_research.api.deps import get_report_store, get_run_manager
from deep_research.config import settings
from deep_research.exceptions import InvalidTopicError
from deep_research.models.schemas import (
    MessageResponse,
    ReportResponse,
    ResearchRequest,
    ResearchStartResponse,
    RunListResponse,
    RunSummary,
)
from deep_research.services import logger as log_service
from deep_research.services.report_store import ReportStore
from deep_research.services.run_manager import RunManager

router = APIRouter(prefix="/api/research", tags=["research"])

TERMINAL_STATUSES = ("completed", "failed")


def _not_found(run_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"status": "not_found", "message": f"Research run {run_id} not found"},
    )


@router.post("/start", response_model=ResearchStartResponse)
async def start_research(
    request: ResearchRequest,
    run_manager: RunManager = Depends(get_run_manager),
):
    """Start a research run in the background. Poll its status with the returned id."""
    try:
        orchestrator = await run_manager.start(request.topic, request.config)
    except InvalidTopicError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValidationError as e:
        raise HTTPException(
            status_code=400, detail=e.errors(include_url=False, include_context=False)
        )

    return ResearchStartResponse(
        research_id=orchestrator.run_id,
        message="Research started",
    )


@router.get("/status/{run_id}")
async def get_status(
    run_id: str,
    store: ReportStore = Depends(get_report_store),
):
    """Latest status snapshot of a run."""
    snapshot = await asyncio.to_thread(store.read_status, run_id)
    if snapshot is None:
        return _not_found(run_id)
    return snapshot


@router.get("/report/{run_id}", response_model=ReportResponse)
async def get_report(
    run_id: str,
    store: ReportStore = Depends(get_report_store),
):
    """Markdown report of a completed run."""
    content = await asyncio.to_thread(store.read_report, run_id)
    if content is None:
        return JSONResponse(
            status_code=404,
            content={"success": False, "message": "Report not ready"},
        )
    return ReportResponse(content=content)


@router.get("/list", response_model=RunListResponse)
async def list_research(store: ReportStore = Depends(get_report_store)):
    """All stored runs, newest first."""
    runs = await asyncio.to_thread(store.list_runs)
    return RunListResponse(reports=[RunSummary(**r) for r in runs])


@router.get("/{run_id}/events")
async def stream_status(
    run_id: str,
    store: ReportStore = Depends(get_report_store),
):
    """SSE stream of status snapshots, sent whenever one changes, until the run ends."""
    if await asyncio.to_thread(store.read_status, run_id) is None:
        return _not_found(run_id)

    async def event_generator():
        last_payload = None
        while True:
            snapshot = await asyncio.to_thread(store.read_status, run_id)
            if snapshot is None:
                yield {"event": "not_found", "data": json.dumps({"id": run_id})}
                return

            payload = json.dumps(snapshot, ensure_ascii=False)
            if payload != last_payload:
                last_payload = payload
                yield {"event": "status", "data": payload}

            if snapshot.get("status") in TERMINAL_STATUSES:
                yield {"event": "done", "data": json.dumps({"status": snapshot["status"]})}
                return
            await asyncio.sleep(settings.status_poll_interval_seconds)

    return EventSourceResponse(event_generator())


@router.delete("/{run_id}", response_model=MessageResponse)
async def delete_research(
    run_id: str,
    run_manager: RunManager = Depends(get_run_manager),
    store: ReportStore = Depends(get_report_store),
):
    """Stop a running run and remove its files. Unknown ids succeed too."""
    was_running = await run_manager.cancel(run_id)
    removed = await asyncio.to_thread(store.delete_run, run_id)
    log_service.log_event(
        "research_deleted",
        f"Research run {run_id} deleted",
        was_running=was_running,
        removed=removed,
    )
    return MessageResponse(message="Research deleted")
