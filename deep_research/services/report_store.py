"""Directory-backed store for run status snapshots and report files.

Each run owns two files keyed by its id: `<id>.status.json` (overwritten on
every status change) and `<id>.md` (written once when the report is done).
"""
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from deep_research.config import settings
from deep_research.services import logger as log_service

STATUS_SUFFIX = ".status.json"
REPORT_SUFFIX = ".md"

_RUN_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def is_valid_run_id(run_id: str) -> bool:
    return bool(run_id) and _RUN_ID_PATTERN.match(run_id) is not None


class ReportStore:
    def __init__(self, root: str | Path | None = None):
        self.root = Path(root if root is not None else settings.reports_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, run_id: str, suffix: str) -> Path:
        if not is_valid_run_id(run_id):
            raise ValueError(f"Invalid run id: {run_id!r}")
        return self.root / f"{run_id}{suffix}"

    # --- Status ---

    def write_status(self, run_id: str, snapshot: dict[str, Any]) -> None:
        path = self._path(run_id, STATUS_SUFFIX)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
        # Replace atomically so pollers never read a half-written snapshot.
        tmp_path.replace(path)
        log_service.log_storage_operation("write_status", run_id, "success")

    def read_status(self, run_id: str) -> dict[str, Any] | None:
        if not is_valid_run_id(run_id):
            return None
        path = self._path(run_id, STATUS_SUFFIX)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log_service.log_storage_operation("read_status", run_id, "error", error=str(e))
            return None
        return payload if isinstance(payload, dict) else None

    # --- Report ---

    def write_report(self, run_id: str, content: str) -> Path:
        path = self._path(run_id, REPORT_SUFFIX)
        path.write_text(content, encoding="utf-8")
        log_service.log_storage_operation(
            "write_report", run_id, "success", details=f"{len(content)} chars"
        )
        return path

    def read_report(self, run_id: str) -> str | None:
        if not is_valid_run_id(run_id):
            return None
        path = self._path(run_id, REPORT_SUFFIX)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            log_service.log_storage_operation("read_report", run_id, "error", error=str(e))
            return None

    # --- Listing / deletion ---

    def list_runs(self) -> list[dict[str, Any]]:
        """Summaries of every stored run, newest first."""
        runs: list[dict[str, Any]] = []
        for path in self.root.glob(f"*{STATUS_SUFFIX}"):
            run_id = path.name[: -len(STATUS_SUFFIX)]
            status = self.read_status(run_id)
            if status is None:
                continue
            timestamp = status.get("timestamp")
            runs.append(
                {
                    "id": run_id,
                    "topic": status.get("topic", ""),
                    "status": status.get("status", "unknown"),
                    "timestamp": timestamp if isinstance(timestamp, int) else 0,
                    "progress": status.get("progress", 0),
                }
            )
        runs.sort(key=lambda r: r["timestamp"], reverse=True)
        return runs

    def delete_run(self, run_id: str) -> bool:
        """Remove a run's files. Absent files are not an error."""
        if not is_valid_run_id(run_id):
            return False
        removed = False
        for suffix in (REPORT_SUFFIX, STATUS_SUFFIX):
            path = self._path(run_id, suffix)
            try:
                path.unlink()
                removed = True
            except FileNotFoundError:
                continue
        log_service.log_storage_operation(
            "delete_run", run_id, "success", details="removed" if removed else "absent"
        )
        return removed
