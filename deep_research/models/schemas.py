from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from deep_research.config import settings


class ResearchConfig(BaseModel):
    """Model and search configuration shared by every run unless overridden."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: str = Field(default_factory=lambda: settings.provider)
    api_key: str = Field(default_factory=lambda: settings.openai_api_key)
    api_endpoint: str = Field(default_factory=lambda: settings.openai_base_url)
    model: str = Field(default_factory=lambda: settings.default_model)
    max_iterations: int = Field(default_factory=lambda: settings.max_iterations, ge=1)
    search_depth: int = Field(default_factory=lambda: settings.search_depth, ge=1)

    def merged(self, override: dict[str, Any] | None) -> "ResearchConfig":
        """Return a copy with the explicitly provided override fields applied."""
        provided = {key: value for key, value in (override or {}).items() if value is not None}
        if not provided:
            return self.model_copy()
        # Aliased (camelCase) keys take precedence over field names during validation.
        return ResearchConfig.model_validate({**self.model_dump(), **provided})


# --- Requests ---


class ResearchRequest(BaseModel):
    topic: str = ""
    config: dict[str, Any] | None = None


# --- Responses ---


class ResearchStartResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    research_id: str
    message: str


class ReportResponse(BaseModel):
    success: bool = True
    content: str


class RunSummary(BaseModel):
    id: str
    topic: str
    status: str
    timestamp: int
    progress: int


class RunListResponse(BaseModel):
    success: bool = True
    reports: list[RunSummary]


class MessageResponse(BaseModel):
    success: bool = True
    message: str
