"""
Case Analysis Orchestrator - multi-agent legal case analysis.

Runs a fixed, ordered catalog of analysis agents against a case's source
material, records every run, merges the evidence they find into a
per-case registry, and synthesizes an aggregated report once enough
agents have completed.

Public API:
    PipelineOrchestrator         - run_single_agent / run_all_agents /
                                   generate_aggregated_report and the
                                   load_* read projections
    AgentRunController           - executes one agent run
    EvidenceRegistryAggregator   - deduplicated evidence registry
    AggregatedReportSynthesizer  - quorum-gated report synthesis
    InMemoryRunStore             - default run store
"""

from CaseAnalysis.controller import AgentRunController
from CaseAnalysis.orchestrator import PipelineOrchestrator
from CaseAnalysis.registry import EvidenceRegistryAggregator
from CaseAnalysis.report import AggregatedReportSynthesizer
from CaseAnalysis.store import InMemoryRunStore, RunStore

__all__ = [
    "AgentRunController",
    "AggregatedReportSynthesizer",
    "EvidenceRegistryAggregator",
    "InMemoryRunStore",
    "PipelineOrchestrator",
    "RunStore",
]
