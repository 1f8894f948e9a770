"""
orchestrator.py

Pipeline Orchestrator: the surface the calling layer talks to.

Every operation that starts agent work first takes the case's lease, so a
case never has two agents in flight. Different cases run independently.
While the lease is held the orchestrator exposes the agent currently
running for the case through ``current_agent``.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from CaseAnalysis.agents.base import AnalysisInvoker, CancellationToken
from CaseAnalysis.agents.llm_invoker import LLMAnalysisInvoker
from CaseAnalysis.catalog import get_agent
from CaseAnalysis.controller import AgentRunController
from CaseAnalysis.graph import build_pipeline_graph, initial_state
from CaseAnalysis.registry import EvidenceRegistryAggregator
from CaseAnalysis.report import AggregatedReportSynthesizer
from CaseAnalysis.state import (
    AgentAnalysisRun,
    AggregatedReport,
    EvidenceItem,
    PipelineState,
    SynthesisOutcome,
)
from CaseAnalysis.store.base import RunStore

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs agents for cases, one at a time per case."""

    def __init__(
        self,
        store: RunStore,
        invoker: Optional[AnalysisInvoker] = None,
        controller: Optional[AgentRunController] = None,
        registry: Optional[EvidenceRegistryAggregator] = None,
        synthesizer: Optional[AggregatedReportSynthesizer] = None,
        quorum: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        if controller is None:
            if invoker is None:
                invoker = LLMAnalysisInvoker()
            controller = AgentRunController(store, invoker, timeout=timeout)

        self.store = store
        self.controller = controller
        self.registry = registry or EvidenceRegistryAggregator(store)
        self.synthesizer = synthesizer or AggregatedReportSynthesizer(
            store, controller, quorum=quorum
        )
        self._graph = build_pipeline_graph(self)

        self._leases: Dict[str, threading.Lock] = {}
        self._current: Dict[str, str] = {}
        self._guard = threading.Lock()

    # ------------------------------------------------------------------
    # Lease
    # ------------------------------------------------------------------

    def _lease_for(self, case_id: str) -> threading.Lock:
        with self._guard:
            return self._leases.setdefault(case_id, threading.Lock())

    @contextmanager
    def _lease(self, case_id: str) -> Iterator[None]:
        lease = self._lease_for(case_id)
        if not lease.acquire(blocking=False):
            logger.info("Case %s is busy; waiting for the running work to finish", case_id)
            lease.acquire()
        try:
            yield
        finally:
            with self._guard:
                self._current.pop(case_id, None)
            lease.release()

    def _set_current(self, case_id: str, agent_type: Optional[str]) -> None:
        with self._guard:
            if agent_type is None:
                self._current.pop(case_id, None)
            else:
                self._current[case_id] = agent_type

    def current_agent(self, case_id: str) -> Optional[str]:
        """Agent running for *case_id* right now, or None when idle."""
        with self._guard:
            return self._current.get(case_id)

    def is_busy(self, case_id: str) -> bool:
        return self._lease_for(case_id).locked()

    # ------------------------------------------------------------------
    # Execution (callers must hold the case lease)
    # ------------------------------------------------------------------

    def execute_agent(
        self,
        case_id: str,
        agent_type: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AgentAnalysisRun:
        """Run one agent and fold a completed result into the registry."""
        self._set_current(case_id, agent_type)
        try:
            run = self.controller.run(case_id, agent_type, cancel_token=cancel_token)
            if run.status == "completed":
                self.registry.merge_run(run)
            return run
        finally:
            self._set_current(case_id, None)

    def execute_synthesis(
        self, case_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> SynthesisOutcome:
        self._set_current(case_id, "aggregator")
        try:
            return self.synthesizer.generate(case_id, cancel_token)
        finally:
            self._set_current(case_id, None)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def run_single_agent(
        self,
        case_id: str,
        agent_type: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AgentAnalysisRun:
        """Ad-hoc (re-)run of one agent.

        The aggregator run this way reads the latest completed analyses
        but writes no report; use ``generate_aggregated_report`` for that.
        """
        agent = get_agent(agent_type)
        self.store.get_case(case_id)
        with self._lease(case_id):
            run = self.execute_agent(case_id, agent.agent_type, cancel_token)
        if run.status != "completed":
            logger.warning(
                "Agent %s on case %s ended %s: %s",
                agent.agent_type, case_id, run.status, run.error_message,
            )
        return run

    def run_all_agents(
        self, case_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> PipelineState:
        """Run every catalog agent in order, continuing past failures."""
        self.store.get_case(case_id)
        with self._lease(case_id):
            logger.info("Pipeline started for case %s", case_id)
            final: PipelineState = self._graph.invoke(
                initial_state(case_id),
                config={"configurable": {"cancel_token": cancel_token}},
            )
        logger.info(
            "Pipeline finished for case %s: %d completed, %d failed, %d skipped%s",
            case_id,
            len(final["completed_agents"]),
            len(final["failed_agents"]),
            len(final["skipped_agents"]),
            " (cancelled)" if final["cancelled"] else "",
        )
        return final

    def generate_aggregated_report(
        self, case_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> SynthesisOutcome:
        self.store.get_case(case_id)
        with self._lease(case_id):
            return self.execute_synthesis(case_id, cancel_token)

    # ------------------------------------------------------------------
    # Read projections
    # ------------------------------------------------------------------

    def load_runs(self, case_id: str) -> List[AgentAnalysisRun]:
        """All runs of the case, newest first."""
        return self.store.list_runs(case_id)

    def load_latest_runs(self, case_id: str) -> Dict[str, AgentAnalysisRun]:
        return self.store.latest_runs(case_id)

    def load_evidence_registry(self, case_id: str) -> List[EvidenceItem]:
        return self.registry.load(case_id)

    def load_aggregated_report(self, case_id: str) -> Optional[AggregatedReport]:
        """The current (most recent) report, if any."""
        return self.store.latest_report(case_id)

    def update_evidence_item(self, item_id: str, changes: Dict[str, Any]) -> EvidenceItem:
        return self.registry.update_evidence_item(item_id, changes)
