"""
parsing.py

Turns the raw text an agent returned into a tagged result.

The inference service sometimes answers with JSON and sometimes with
prose. Instead of parsing optimistically and silently falling back, the
answer is classified as one of:

    StructuredOutput   -- a JSON object that validated against AgentPayload
    RawTextOutput      -- prose, including prose that merely contains braces
    ParseFailedOutput  -- the answer is a JSON object (bare or fenced) that is
                          malformed, or any JSON object that fails the schema
"""

import json
import logging
import re
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from CaseAnalysis.state import AgentFinding, EvidenceCandidate, ReportSections, SourceCitation

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# LLM response schema
# ---------------------------------------------------------------------------

class AgentPayload(BaseModel):
    """The JSON object every agent prompt asks for.

    The aggregator additionally fills the report section keys; the
    other agents leave them out.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    summary: str = ""
    analysis: str = ""
    findings: List[AgentFinding] = Field(default_factory=list)
    evidence_items: List[EvidenceCandidate] = Field(
        default_factory=list,
        validation_alias=AliasChoices("evidence_items", "evidenceItems"),
    )
    sources: List[SourceCitation] = Field(default_factory=list)
    data_gaps: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    # Aggregator report sections
    title: Optional[str] = None
    executive_summary: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("executive_summary", "executiveSummary")
    )
    evidence_summary: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("evidence_summary", "evidenceSummary")
    )
    violations_summary: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("violations_summary", "violationsSummary")
    )
    defense_strategy: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("defense_strategy", "defenseStrategy")
    )
    prosecution_weaknesses: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("prosecution_weaknesses", "prosecutionWeaknesses"),
    )
    recommendations: Optional[str] = None
    full_report: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("full_report", "fullReport")
    )

    @field_validator(
        "findings", "evidence_items", "sources", "data_gaps", "warnings", mode="before"
    )
    @classmethod
    def _null_to_list(cls, value):
        return [] if value is None else value

    @field_validator("summary", "analysis", mode="before")
    @classmethod
    def _null_to_text(cls, value):
        return "" if value is None else value

    @field_validator("recommendations", mode="before")
    @classmethod
    def _join_recommendations(cls, value):
        # Agents sometimes return the checklist as an array.
        if isinstance(value, list):
            return "\n".join(f"- {item}" for item in value)
        return value

    def report_sections(self) -> Optional[ReportSections]:
        """Report sections if any were supplied, else None."""
        values = {
            "title": self.title,
            "executive_summary": self.executive_summary,
            "evidence_summary": self.evidence_summary,
            "violations_summary": self.violations_summary,
            "defense_strategy": self.defense_strategy,
            "prosecution_weaknesses": self.prosecution_weaknesses,
            "recommendations": self.recommendations,
            "full_report": self.full_report,
        }
        if all(v is None for k, v in values.items() if k != "title"):
            return None
        return ReportSections(**{k: v for k, v in values.items() if v is not None})


# ---------------------------------------------------------------------------
# Tagged result
# ---------------------------------------------------------------------------

class StructuredOutput(BaseModel):
    kind: Literal["structured"] = "structured"
    payload: AgentPayload
    raw_text: str = ""


class RawTextOutput(BaseModel):
    kind: Literal["raw_text"] = "raw_text"
    text: str


class ParseFailedOutput(BaseModel):
    kind: Literal["parse_failed"] = "parse_failed"
    error: str
    raw_text: str


AgentOutput = Annotated[
    Union[StructuredOutput, RawTextOutput, ParseFailedOutput],
    Field(discriminator="kind"),
]


def _extract_json_object(text: str) -> Optional[str]:
    """Return the outermost ``{...}`` span of *text*, or None."""
    stripped = _FENCE_RE.sub("", text.strip())
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1 or end <= start:
        return None
    return stripped[start:end + 1]


def _is_json_answer(text: str) -> bool:
    """True when the answer itself opens as JSON, bare or code-fenced."""
    stripped = text.strip()
    return stripped.startswith("{") or stripped.startswith("```")


def parse_agent_output(text: Optional[str]) -> AgentOutput:
    """Classify and, where possible, validate an agent's answer."""
    text = text or ""
    candidate = _extract_json_object(text)
    if candidate is None:
        return RawTextOutput(text=text)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        if not _is_json_answer(text):
            return RawTextOutput(text=text)
        logger.warning("Agent output is not valid JSON: %s", exc)
        return ParseFailedOutput(error=f"Invalid JSON: {exc}", raw_text=text)

    if not isinstance(data, dict):
        return ParseFailedOutput(error="Top-level JSON value is not an object", raw_text=text)

    try:
        payload = AgentPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("Agent output failed schema validation: %d error(s)", exc.error_count())
        return ParseFailedOutput(error=f"Schema validation failed: {exc}", raw_text=text)

    return StructuredOutput(payload=payload, raw_text=text)
