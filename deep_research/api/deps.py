from __future__ import annotations

from fastapi import Request

from deep_research.services.config_store import ConfigStore
from deep_research.services.report_store import ReportStore
from deep_research.services.run_manager import RunManager


def get_report_store(request: Request) -> ReportStore:
    return request.app.state.report_store


def get_config_store(request: Request) -> ConfigStore:
    return request.app.state.config_store


def get_run_manager(request: Request) -> RunManager:
    return request.app.state.run_manager
