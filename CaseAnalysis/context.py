"""
context.py

Assembles and renders what each agent reads.

Extraction agents see the raw case material; every agent except the
evidence collector also sees the current evidence registry; the
aggregator sees the latest completed output of every other agent.
"""

import logging
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from CaseAnalysis import config
from CaseAnalysis.catalog import get_agent
from CaseAnalysis.state import AgentAnalysisRun, CaseRecord, CaseVolume, EvidenceItem
from CaseAnalysis.store.base import RunStore

logger = logging.getLogger(__name__)


class AgentContext(BaseModel):
    """Everything an agent may read for one invocation."""

    case: CaseRecord
    volumes: List[CaseVolume] = Field(default_factory=list)
    evidence: List[EvidenceItem] = Field(
        default_factory=list, description="Registry snapshot (empty for the collector)"
    )
    prior_runs: List[AgentAnalysisRun] = Field(
        default_factory=list, description="Completed runs the aggregator synthesizes"
    )
    user_sources: List[str] = Field(default_factory=list)
    omitted_sources: int = Field(default=0, description="User sources dropped by the cap")


def parse_user_sources(
    references_text: str, limit: Optional[int] = None
) -> Tuple[List[str], int]:
    """Split user-selected references into a capped list.

    Returns ``(sources, omitted)`` where *omitted* counts the references
    dropped by the cap. Blank lines and duplicates are ignored.
    """
    limit = config.MAX_USER_SOURCES if limit is None else limit
    seen = set()
    refs: List[str] = []
    for line in (references_text or "").splitlines():
        ref = line.strip().lstrip("-*").strip()
        if ref and ref not in seen:
            seen.add(ref)
            refs.append(ref)
    return refs[:limit], max(len(refs) - limit, 0)


def build_agent_context(
    store: RunStore,
    case_id: str,
    agent_type: str,
    prior_runs: Optional[List[AgentAnalysisRun]] = None,
) -> AgentContext:
    """Load the case material *agent_type* should read."""
    agent = get_agent(agent_type)
    case = store.get_case(case_id)
    volumes = store.list_volumes(case_id)
    evidence = [] if agent.agent_type == "evidence_collector" else store.list_evidence(case_id)
    sources, omitted = parse_user_sources(case.references_text)
    if omitted:
        logger.info("Case %s: %d user source(s) over the cap omitted", case_id, omitted)

    if agent.role == "synthesis" and prior_runs is None:
        prior_runs = [
            run for run in store.latest_runs(case_id).values()
            if run.status == "completed" and run.agent_type != agent.agent_type
        ]

    return AgentContext(
        case=case,
        volumes=volumes,
        evidence=evidence,
        prior_runs=prior_runs or [],
        user_sources=sources,
        omitted_sources=omitted,
    )


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n[... truncated]"


def render_context(context: AgentContext) -> str:
    """Render the context as the user message sent to the model."""
    case = context.case
    parts: List[str] = [f"CASE: {case.title}", f"NUMBER: {case.case_number}"]
    if case.case_type:
        parts.append(f"case_type: {case.case_type}")
    if case.facts:
        parts.append(f"FACTS: {case.facts}")
    if case.legal_question:
        parts.append(f"LEGAL QUESTION: {case.legal_question}")

    if context.volumes:
        parts.append("\nVOLUMES:")
        for vol in context.volumes:
            header = f"\n--- VOLUME {vol.volume_number}: {vol.title} ---"
            if vol.page_count:
                header += f" ({vol.page_count} pages)"
            parts.append(header)
            if vol.ocr_text:
                parts.append(_truncate(vol.ocr_text, config.MAX_VOLUME_CHARS))
            elif not vol.ocr_completed:
                parts.append("[text extraction not completed]")

    if context.evidence:
        parts.append("\nEVIDENCE REGISTRY:")
        for item in context.evidence:
            parts.append(
                f"- #{item.evidence_number} [{item.evidence_key}]: {item.title} "
                f"({item.evidence_type}) - {item.page_reference or 'N/A'} "
                f"- {item.admissibility_status}"
            )

    if context.prior_runs:
        parts.append("\nAGENT ANALYSES:")
        for run in sorted(context.prior_runs, key=lambda r: get_agent(r.agent_type).order):
            parts.append(f"\n--- {run.agent_type} ---")
            if run.summary:
                parts.append(f"Summary: {run.summary}")
            if run.analysis_result:
                parts.append(_truncate(run.analysis_result, config.MAX_PRIOR_ANALYSIS_CHARS))
            for finding in run.findings:
                parts.append(f"* [{finding.severity}] {finding.title}: {finding.description}")

    if context.user_sources:
        parts.append("\nUSER-SELECTED SOURCES (cite these when relevant):")
        parts.extend(f"{i}. {src}" for i, src in enumerate(context.user_sources, start=1))
        if context.omitted_sources:
            parts.append(
                f"NOTE: {context.omitted_sources} further source(s) omitted due to token budget."
            )

    return "\n".join(parts)
