from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_serializer
from pydantic.alias_generators import to_camel

AGENT_NAMES = ("researcher", "searcher", "analyzer", "reporter")

_IMPORTANCE_ALIASES = {
    "high": "high",
    "高": "high",
    "medium": "medium",
    "mid": "medium",
    "中": "medium",
    "low": "low",
    "低": "low",
}


def now_ms() -> int:
    return int(time.time() * 1000)


def new_run_id() -> str:
    """Time-ordered run id, safe to use as a file name."""
    return f"{now_ms()}-{uuid4().hex[:6]}"


def _normalize_importance(value: Any) -> str:
    if isinstance(value, str):
        return _IMPORTANCE_ALIASES.get(value.strip().lower(), "medium")
    return "medium"


class CamelModel(BaseModel):
    """Base for records that serialise with camelCase keys in status snapshots."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


Importance = Literal["high", "medium", "low"]


# --- Plan ---


class Subtopic(CamelModel):
    """A decomposed research question with its search queries."""

    id: str
    question: str
    importance: Importance = "medium"
    search_queries: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("searchQueries", "searchTerms", "search_queries"),
        serialization_alias="searchQueries",
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("importance", mode="before")
    @classmethod
    def _coerce_importance(cls, value: Any) -> str:
        return _normalize_importance(value)


class ResearchPlan(CamelModel):
    """Shape the planner is asked to return."""

    subtopics: list[Subtopic]


# --- Search & findings ---


class SearchResult(CamelModel):
    title: str
    url: str = ""
    snippet: str = ""


class KeyFinding(CamelModel):
    point: str
    importance: Importance = "medium"
    evidence: str = ""

    @field_validator("importance", mode="before")
    @classmethod
    def _coerce_importance(cls, value: Any) -> str:
        return _normalize_importance(value)


class FindingAnalysis(CamelModel):
    key_findings: list[KeyFinding] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)


class FindingSet(CamelModel):
    """Search results and analysis gathered for one subtopic."""

    subtopic_id: str
    subtopic_question: str
    search_queries: list[str] = Field(default_factory=list)
    search_results: list[SearchResult] = Field(default_factory=list)
    analysis: FindingAnalysis = Field(default_factory=FindingAnalysis)


# --- Analysis ---


class KeyTheme(CamelModel):
    theme: str
    supporting_points: list[str] = Field(default_factory=list)
    evidence_count: int = 0


class Pattern(CamelModel):
    pattern: str
    occurrence: str = ""
    significance: str = ""


class Synthesis(CamelModel):
    key_themes: list[KeyTheme] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    contradictions: list[str] = Field(default_factory=list)
    overall_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    recommendations: list[str] = Field(default_factory=list)


class Metric(CamelModel):
    name: str
    value: str = ""
    unit: str = ""
    source: str = ""
    reliability: Importance = "medium"

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("reliability", mode="before")
    @classmethod
    def _coerce_reliability(cls, value: Any) -> str:
        return _normalize_importance(value)


class Trend(CamelModel):
    direction: str
    period: str = ""
    significance: str = ""


class MetricsExtraction(CamelModel):
    metrics: list[Metric] = Field(default_factory=list)
    trends: list[Trend] = Field(default_factory=list)


class CrossValidation(CamelModel):
    consistency: Importance = "low"
    agreements: list[str] = Field(default_factory=list)
    disagreements: list[str] = Field(default_factory=list)
    reconciliation: str = ""


class ValidationVerdict(CamelModel):
    is_valid: bool = True
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    issues: list[str] = Field(default_factory=list)


# --- Run state ---


class AgentState(CamelModel):
    status: Literal["idle", "active"] = "idle"
    last_action: str = ""


class IterationRecord(CamelModel):
    """Phase-completion log entry. Unset counters are omitted when serialised."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    phase: str
    timestamp: int = Field(default_factory=now_ms)
    subtopics_count: Optional[int] = None
    subtopic: Optional[str] = None
    queries_count: Optional[int] = None
    results_count: Optional[int] = None
    findings_count: Optional[int] = None
    key_themes_count: Optional[int] = None
    patterns_count: Optional[int] = None
    report_length: Optional[int] = None

    @model_serializer(mode="wrap")
    def _drop_unset(self, handler):
        return {key: value for key, value in handler(self).items() if value is not None}


def _default_agents() -> dict[str, AgentState]:
    return {name: AgentState() for name in AGENT_NAMES}


class ResearchRun(CamelModel):
    """One execution of the decompose, search, analyze, report pipeline."""

    id: str = Field(default_factory=new_run_id, frozen=True)
    topic: str = Field(frozen=True)
    status: RunStatus = RunStatus.RUNNING
    phase: str = "Initializing"
    progress: int = 0
    timestamp: int = Field(default_factory=now_ms)
    agents: dict[str, AgentState] = Field(default_factory=_default_agents)
    iterations: list[IterationRecord] = Field(default_factory=list)
    plan: Optional[list[Subtopic]] = None
    findings: list[FindingSet] = Field(default_factory=list)
    synthesis: Optional[Synthesis] = None
    metrics: Optional[MetricsExtraction] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)

    def to_snapshot(self) -> dict[str, Any]:
        """Serialised copy written to the status store."""
        exclude = set()
        if self.error is None:
            exclude.add("error")
        if self.metrics is None:
            exclude.add("metrics")
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "progress": self.progress,
        }


@dataclass
class AgentUpdate:
    name: str
    status: Literal["idle", "active"]
    last_action: Optional[str] = None


@dataclass
class StatusPatch:
    """Partial update of a run's status fields, applied by explicit assignment."""

    status: Optional[RunStatus] = None
    phase: Optional[str] = None
    progress: Optional[int] = None
    error: Optional[str] = None
    agents: list[AgentUpdate] = field(default_factory=list)

    def apply(self, run: ResearchRun) -> None:
        if self.status is not None and self.status != run.status:
            if run.is_terminal:
                raise ValueError(
                    f"Run {run.id} is already {run.status.value}; cannot move to {self.status.value}"
                )
            run.status = self.status
        if self.phase is not None:
            run.phase = self.phase
        if self.progress is not None:
            run.progress = max(0, min(100, int(self.progress)))
        if self.error is not None:
            run.error = self.error
        for update in self.agents:
            if update.name not in run.agents:
                raise KeyError(f"Unknown agent: {update.name}")
            state = run.agents[update.name]
            state.status = update.status
            if update.last_action is not None:
                state.last_action = update.last_action
