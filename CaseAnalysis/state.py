"""
state.py

Pydantic records shared across the case-analysis core (runs, findings,
evidence items, reports, cases and volumes) and the PipelineState
TypedDict that flows through the LangGraph pipeline.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, TypedDict

from pydantic import AliasChoices, BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

AgentType = Literal[
    "evidence_collector",
    "evidence_admissibility",
    "charge_qualification",
    "procedural_violations",
    "substantive_violations",
    "defense_strategy",
    "prosecution_weaknesses",
    "rights_violations",
    "aggregator",
]

RunStatus = Literal["pending", "running", "completed", "failed", "cancelled"]

Severity = Literal["critical", "high", "medium", "low", "info"]

EvidenceType = Literal[
    "document",
    "testimony",
    "expert_conclusion",
    "physical",
    "protocol",
    "audio_video",
    "other",
]

EvidenceStatus = Literal["admissible", "inadmissible", "questionable", "pending_review"]

CaseType = Literal["criminal", "civil", "administrative", "echr"]

OutputKind = Literal["structured", "raw_text", "parse_failed"]

# Labels agents use that are not registry evidence types.
_EVIDENCE_TYPE_ALIASES = {
    "expert_opinion": "expert_conclusion",
    "expert": "expert_conclusion",
    "digital": "audio_video",
    "audio": "audio_video",
    "video": "audio_video",
    "analytical": "document",
    "physical_evidence": "physical",
}

_EVIDENCE_TYPES = {
    "document", "testimony", "expert_conclusion", "physical",
    "protocol", "audio_video", "other",
}


def _as_list(value: Any) -> Any:
    """Coerce null to [] and a bare string to a one-element list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return value


# ---------------------------------------------------------------------------
# Case material
# ---------------------------------------------------------------------------

class CaseRecord(BaseModel):
    """The case an analysis runs against (read-only to the core)."""

    id: str = Field(default_factory=new_id)
    title: str = Field(default="", description="Case title")
    case_number: str = Field(default="", description="Court or internal case number")
    case_type: Optional[CaseType] = Field(
        default=None, description="Procedural domain used to select the applicable codes"
    )
    facts: str = Field(default="", description="Practitioner's statement of facts")
    legal_question: str = Field(default="", description="Question the analysis should answer")
    court_date: Optional[str] = Field(default=None, description="Next court date, ISO format")
    references_text: str = Field(
        default="", description="User-selected reference sources, one per line"
    )


class CaseVolume(BaseModel):
    """One unit of source material belonging to a case."""

    id: str = Field(default_factory=new_id)
    case_id: str
    volume_number: int = Field(..., ge=1, description="1-based volume number within the case")
    title: str = Field(default="")
    description: Optional[str] = None
    page_count: Optional[int] = Field(default=None, ge=0)
    ocr_completed: bool = Field(default=False, description="Whether text extraction finished")
    ocr_text: Optional[str] = Field(default=None, description="Raw extracted text")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Findings and evidence
# ---------------------------------------------------------------------------

class SourceCitation(BaseModel):
    """A reference source the agent used."""

    title: str
    category: str = ""
    reference: Optional[str] = None


class AgentFinding(BaseModel):
    """Structured observation attached to exactly one run."""

    id: str = Field(default_factory=new_id)
    run_id: Optional[str] = None
    case_id: Optional[str] = None
    finding_type: str = Field(default="general", description="Agent-specific finding label")
    severity: Severity = Field(..., description="critical | high | medium | low | info")
    title: str
    description: str = ""
    legal_basis: List[str] = Field(default_factory=list)
    evidence_refs: List[str] = Field(
        default_factory=list, description="Stable keys of the evidence items this finding is about"
    )
    volume_refs: List[str] = Field(default_factory=list)
    page_references: List[str] = Field(default_factory=list)
    recommendation: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "legal_basis", "evidence_refs", "volume_refs", "page_references", mode="before"
    )
    @classmethod
    def _coerce_lists(cls, value: Any) -> Any:
        return _as_list(value)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("finding_type", mode="before")
    @classmethod
    def _default_finding_type(cls, value: Any) -> Any:
        return value or "general"


class EvidenceCandidate(BaseModel):
    """An evidence item as emitted by an agent, before registry merge."""

    evidence_key: Optional[str] = Field(
        default=None, description="Stable external key supplied by the agent"
    )
    evidence_type: EvidenceType = "other"
    title: str
    description: Optional[str] = None
    page_reference: Optional[str] = None
    source_document: Optional[str] = None
    volume_id: Optional[str] = None
    volume_number: Optional[int] = None
    related_articles: List[str] = Field(default_factory=list)
    ai_analysis: Optional[str] = None

    @field_validator("evidence_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if value is None:
            return "other"
        label = str(value).strip().lower()
        label = _EVIDENCE_TYPE_ALIASES.get(label, label)
        return label if label in _EVIDENCE_TYPES else "other"

    @field_validator("related_articles", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> Any:
        return _as_list(value)


class AdmissibilityAssessment(BaseModel):
    """One agent's (or the practitioner's) view of an item's admissibility."""

    status: EvidenceStatus
    agent_type: Optional[str] = None
    run_id: Optional[str] = None
    finding_id: Optional[str] = None
    note: str = ""
    assessed_at: datetime = Field(default_factory=utcnow)


class EvidenceItem(BaseModel):
    """Registry entry for one piece of evidence, scoped to a case."""

    id: str = Field(default_factory=new_id)
    case_id: str
    volume_id: Optional[str] = None
    evidence_number: int = Field(..., ge=1, description="Sequence number within the case")
    evidence_key: str = Field(..., description="Stable key used to merge findings")
    evidence_type: EvidenceType = "other"
    title: str
    description: Optional[str] = None
    page_reference: Optional[str] = None
    source_document: Optional[str] = None
    admissibility_status: EvidenceStatus = "pending_review"
    admissibility_notes: str = ""
    assessments: List[AdmissibilityAssessment] = Field(default_factory=list)
    related_articles: List[str] = Field(default_factory=list)
    related_findings: List[str] = Field(
        default_factory=list, description="Ids of findings that reference this item"
    )
    violations_found: List[str] = Field(default_factory=list)
    ai_analysis: Optional[str] = None
    source_run_ids: List[str] = Field(default_factory=list)
    status_overridden: bool = Field(
        default=False, description="Set once the practitioner fixed the status by hand"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Runs and reports
# ---------------------------------------------------------------------------

class ReportSections(BaseModel):
    """Named sections of an aggregated report, as produced by the aggregator."""

    title: str = "Aggregated Analysis"
    executive_summary: str = Field(
        default="", validation_alias=AliasChoices("executive_summary", "executiveSummary")
    )
    evidence_summary: str = Field(
        default="", validation_alias=AliasChoices("evidence_summary", "evidenceSummary")
    )
    violations_summary: str = Field(
        default="", validation_alias=AliasChoices("violations_summary", "violationsSummary")
    )
    defense_strategy: str = Field(
        default="", validation_alias=AliasChoices("defense_strategy", "defenseStrategy")
    )
    prosecution_weaknesses: str = Field(
        default="",
        validation_alias=AliasChoices("prosecution_weaknesses", "prosecutionWeaknesses"),
    )
    recommendations: str = ""
    full_report: str = Field(
        default="", validation_alias=AliasChoices("full_report", "fullReport")
    )

    @field_validator("*", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class AgentAnalysisRun(BaseModel):
    """One execution of one agent against one case."""

    id: str = Field(default_factory=new_id)
    case_id: str
    agent_type: AgentType
    status: RunStatus = "pending"
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    analysis_result: Optional[str] = Field(default=None, description="Free-text analysis")
    summary: Optional[str] = None
    findings: List[AgentFinding] = Field(default_factory=list)
    evidence_items: List[EvidenceCandidate] = Field(default_factory=list)
    sources_used: List[SourceCitation] = Field(default_factory=list)
    report_sections: Optional[ReportSections] = None
    data_gaps: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    output_kind: Optional[OutputKind] = None
    model_used: Optional[str] = None
    tokens_used: int = Field(default=0, ge=0)
    error_message: Optional[str] = None


class ReportStatistics(BaseModel):
    total_evidence: int = 0
    admissible_evidence: int = 0
    critical_findings: int = 0
    high_findings: int = 0


class AggregatedReport(BaseModel):
    """Synthesized cross-agent document; at most one current per case."""

    id: str = Field(default_factory=new_id)
    case_id: str
    report_type: str = "full_analysis"
    title: str = "Aggregated Analysis"
    executive_summary: str = ""
    evidence_summary: str = ""
    violations_summary: str = ""
    defense_strategy: str = ""
    prosecution_weaknesses: str = ""
    recommendations: str = ""
    full_report: str = ""
    agent_runs: List[str] = Field(
        default_factory=list, description="Ids of the runs the report was built from"
    )
    aggregator_run_id: Optional[str] = None
    statistics: ReportStatistics = Field(default_factory=ReportStatistics)
    generated_at: datetime = Field(default_factory=utcnow)
    superseded: bool = False


SynthesisStatus = Literal["generated", "insufficient_input", "failed", "cancelled"]


class SynthesisOutcome(BaseModel):
    """Result of a report-generation request.

    ``insufficient_input`` is a refusal, not an error: ``reason`` explains
    which quorum was missed and no report or run is written.
    """

    status: SynthesisStatus
    report: Optional[AggregatedReport] = None
    run: Optional[AgentAnalysisRun] = None
    reason: Optional[str] = None
    completed_agents: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# PipelineState -- shared state flowing through the LangGraph pipeline
# ---------------------------------------------------------------------------

class PipelineState(TypedDict):
    """Complete state for one runAllAgents invocation."""

    case_id: str
    run_ids: List[str]                  # Runs created, in execution order
    completed_agents: List[str]
    failed_agents: List[str]            # failed or cancelled
    skipped_agents: List[str]           # e.g. aggregator below quorum
    cancelled: bool
    report_id: Optional[str]
