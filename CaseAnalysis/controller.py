"""
controller.py

Agent Run Controller: drives exactly one agent run through

    running -> completed | failed | cancelled

and persists every transition. It is the only component that writes a
run's status. Invoker problems (errors, timeouts, malformed output) are
recorded on the run and never raised to the caller.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from time import monotonic
from typing import List, Optional

from CaseAnalysis import config
from CaseAnalysis.agents.base import AnalysisInvoker, CancellationToken, InvocationResult
from CaseAnalysis.catalog import get_agent
from CaseAnalysis.context import AgentContext, build_agent_context
from CaseAnalysis.parsing import ParseFailedOutput, RawTextOutput
from CaseAnalysis.state import AgentAnalysisRun, AgentFinding, utcnow
from CaseAnalysis.store.base import RunStore

logger = logging.getLogger(__name__)


class AgentRunController:
    """Executes single agent runs against the store and an invoker."""

    def __init__(
        self,
        store: RunStore,
        invoker: AnalysisInvoker,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self.store = store
        self.invoker = invoker
        self.timeout = config.AGENT_TIMEOUT_SECONDS if timeout is None else timeout
        self.poll_interval = (
            config.CANCEL_POLL_INTERVAL if poll_interval is None else poll_interval
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        case_id: str,
        agent_type: str,
        context: Optional[AgentContext] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AgentAnalysisRun:
        """Create a new run for (case, agent), execute it and return it.

        Always inserts a fresh record; earlier runs of the same agent are
        never touched, so a failed run can be retried safely.
        """
        agent = get_agent(agent_type)
        if context is None:
            context = build_agent_context(self.store, case_id, agent.agent_type)

        run = AgentAnalysisRun(
            case_id=case_id,
            agent_type=agent.agent_type,
            status="running",
            started_at=utcnow(),
        )
        self.store.insert_run(run)
        logger.info("Run %s started: agent=%s case=%s", run.id, agent.agent_type, case_id)

        if cancel_token is not None and cancel_token.cancelled:
            return self._finish_cancelled(run, cancel_token)

        # One worker per call: an abandoned call keeps its own thread and
        # never holds up the next run.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="agent-invoke")
        try:
            future = executor.submit(
                self.invoker.invoke, agent.agent_type, case_id, context, cancel_token
            )
            outcome = self._await(future, cancel_token)
        finally:
            executor.shutdown(wait=False)

        if outcome != "done":
            logger.warning(
                "Abandoning in-flight call for run %s (%s)", run.id, outcome
            )
            future.add_done_callback(
                lambda f, run_id=run.id: logger.info(
                    "Discarding late result for run %s", run_id
                )
            )
        if outcome == "cancelled":
            return self._finish_cancelled(run, cancel_token)
        if outcome == "timeout":
            return self._finish_failed(
                run, f"Agent {agent.agent_type} timed out after {self.timeout:g}s"
            )

        try:
            result: InvocationResult = future.result()
        except Exception as exc:
            logger.exception("Invoker raised for run %s", run.id)
            return self._finish_failed(run, f"Invoker raised: {exc}")

        return self._apply_result(run, result)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _await(self, future: Future, cancel_token: Optional[CancellationToken]) -> str:
        """Wait for *future*; returns ``done``, ``timeout`` or ``cancelled``."""
        deadline = monotonic() + self.timeout
        while True:
            remaining = deadline - monotonic()
            if remaining <= 0:
                return "done" if future.done() else "timeout"
            slice_ = remaining if cancel_token is None else min(remaining, self.poll_interval)
            done, _ = wait([future], timeout=slice_)
            if done:
                return "done"
            if cancel_token is not None and cancel_token.cancelled:
                return "cancelled"

    def _apply_result(self, run: AgentAnalysisRun, result: InvocationResult) -> AgentAnalysisRun:
        run.tokens_used = result.tokens_used
        run.model_used = result.model_used

        if result.error:
            return self._finish_failed(run, result.error)

        output = result.output
        if output is None:
            return self._finish_failed(run, "Invoker returned no output")

        run.output_kind = output.kind

        if isinstance(output, ParseFailedOutput):
            run.analysis_result = output.raw_text
            return self._finish_failed(run, f"Malformed agent output: {output.error}")

        if isinstance(output, RawTextOutput):
            run.analysis_result = output.text
            return self._finish_completed(run, [])

        payload = output.payload
        findings: List[AgentFinding] = [
            f.model_copy(update={"run_id": run.id, "case_id": run.case_id})
            for f in payload.findings
        ]
        run.summary = payload.summary or None
        run.analysis_result = payload.analysis or output.raw_text
        run.evidence_items = list(payload.evidence_items)
        run.sources_used = list(payload.sources)
        run.data_gaps = list(payload.data_gaps)
        run.warnings = list(payload.warnings)
        run.report_sections = payload.report_sections()
        return self._finish_completed(run, findings)

    def _finish_completed(
        self, run: AgentAnalysisRun, findings: List[AgentFinding]
    ) -> AgentAnalysisRun:
        run.findings = findings
        run.status = "completed"
        run.completed_at = utcnow()
        self.store.update_run(run)
        if findings:
            self.store.insert_findings(findings)
        logger.info(
            "Run %s completed: agent=%s findings=%d evidence=%d",
            run.id, run.agent_type, len(findings), len(run.evidence_items),
        )
        return run

    def _finish_failed(self, run: AgentAnalysisRun, message: str) -> AgentAnalysisRun:
        run.status = "failed"
        run.error_message = message
        run.completed_at = utcnow()
        self.store.update_run(run)
        logger.warning("Run %s failed: agent=%s error=%s", run.id, run.agent_type, message)
        return run

    def _finish_cancelled(
        self, run: AgentAnalysisRun, cancel_token: Optional[CancellationToken]
    ) -> AgentAnalysisRun:
        run.status = "cancelled"
        run.error_message = (cancel_token.reason if cancel_token else None) or "Cancelled"
        run.completed_at = utcnow()
        self.store.update_run(run)
        logger.info("Run %s cancelled: agent=%s", run.id, run.agent_type)
        return run
