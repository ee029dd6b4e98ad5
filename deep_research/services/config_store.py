from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from deep_research.config import settings
from deep_research.models.schemas import ResearchConfig


class ConfigStore:
    """Global research configuration persisted as a single JSON file."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path if path is not None else settings.config_path)

    def load(self) -> ResearchConfig:
        """Stored configuration, or defaults when missing or unreadable."""
        if not self.path.exists():
            return ResearchConfig()
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            return ResearchConfig.model_validate(payload if isinstance(payload, dict) else {})
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable config at {self.path}: {e}")
            return ResearchConfig()

    def save(self, config: ResearchConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(config.model_dump(by_alias=True), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        logger.info(f"Saved research config to {self.path}")
