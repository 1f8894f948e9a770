"""
report.py

Aggregated Report Synthesizer.

Once enough analysis agents have completed, runs the aggregator agent
over their latest outputs plus the evidence registry and writes a new
AggregatedReport. The aggregator is an ordinary run through the Agent
Run Controller; its failure is reported exactly like any other run's.
"""

import logging
from typing import List, Optional, Tuple

from CaseAnalysis import config
from CaseAnalysis.agents.base import CancellationToken
from CaseAnalysis.catalog import AGGREGATOR, get_agent
from CaseAnalysis.context import build_agent_context
from CaseAnalysis.controller import AgentRunController
from CaseAnalysis.state import (
    AgentAnalysisRun,
    AggregatedReport,
    EvidenceItem,
    ReportSections,
    ReportStatistics,
    SynthesisOutcome,
)
from CaseAnalysis.store.base import RunStore

logger = logging.getLogger(__name__)


def synthesis_inputs(store: RunStore, case_id: str) -> List[AgentAnalysisRun]:
    """Latest run of each analysis agent, where that run is completed."""
    runs = [
        run for agent_type, run in store.latest_runs(case_id).items()
        if get_agent(agent_type).role != "synthesis" and run.status == "completed"
    ]
    return sorted(runs, key=lambda r: get_agent(r.agent_type).order)


def compute_statistics(
    evidence: List[EvidenceItem], runs: List[AgentAnalysisRun]
) -> ReportStatistics:
    findings = [f for run in runs for f in run.findings]
    return ReportStatistics(
        total_evidence=len(evidence),
        admissible_evidence=sum(1 for i in evidence if i.admissibility_status == "admissible"),
        critical_findings=sum(1 for f in findings if f.severity == "critical"),
        high_findings=sum(1 for f in findings if f.severity == "high"),
    )


class AggregatedReportSynthesizer:
    """Builds aggregated reports behind a quorum gate."""

    def __init__(
        self,
        store: RunStore,
        controller: AgentRunController,
        quorum: Optional[int] = None,
    ):
        self.store = store
        self.controller = controller
        self.quorum = config.REPORT_QUORUM if quorum is None else quorum

    def check_quorum(self, case_id: str) -> Tuple[bool, List[AgentAnalysisRun]]:
        """Whether the quorum is met, plus the synthesis inputs counted."""
        inputs = synthesis_inputs(self.store, case_id)
        return len(inputs) >= self.quorum, inputs

    def generate(
        self, case_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> SynthesisOutcome:
        """Synthesize a new report for *case_id*.

        Below quorum nothing is written and the outcome is
        ``insufficient_input``. A failed or cancelled aggregator run
        writes no report, leaving the previous one current.
        """
        self.store.get_case(case_id)
        met, inputs = self.check_quorum(case_id)
        completed = [r.agent_type for r in inputs]

        if not met:
            reason = (
                f"Insufficient input: {len(inputs)} of {self.quorum} required "
                f"analysis agents completed"
            )
            logger.info("Report for case %s refused. %s", case_id, reason)
            return SynthesisOutcome(
                status="insufficient_input", reason=reason, completed_agents=completed
            )

        context = build_agent_context(self.store, case_id, AGGREGATOR, prior_runs=inputs)
        run = self.controller.run(case_id, AGGREGATOR, context, cancel_token)

        if run.status != "completed":
            return SynthesisOutcome(
                status="cancelled" if run.status == "cancelled" else "failed",
                run=run,
                reason=run.error_message,
                completed_agents=completed,
            )

        sections = run.report_sections or ReportSections(
            executive_summary=run.summary or "",
            full_report=run.analysis_result or "",
        )
        previous = self.store.latest_report(case_id)
        report = AggregatedReport(
            case_id=case_id,
            title=sections.title or "Aggregated Analysis",
            executive_summary=sections.executive_summary,
            evidence_summary=sections.evidence_summary,
            violations_summary=sections.violations_summary,
            defense_strategy=sections.defense_strategy,
            prosecution_weaknesses=sections.prosecution_weaknesses,
            recommendations=sections.recommendations,
            full_report=sections.full_report,
            agent_runs=[r.id for r in inputs],
            aggregator_run_id=run.id,
            statistics=compute_statistics(self.store.list_evidence(case_id), inputs),
        )
        self.store.insert_report(report)
        if previous is not None and not previous.superseded:
            previous.superseded = True
            self.store.update_report(previous)

        logger.info(
            "Report %s generated for case %s from %d run(s)",
            report.id, case_id, len(inputs),
        )
        return SynthesisOutcome(
            status="generated", report=report, run=run, completed_agents=completed
        )
