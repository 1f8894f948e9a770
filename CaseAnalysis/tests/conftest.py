"""
Shared fixtures for the case-analysis tests.

No test contacts a model: ScriptedInvoker answers every agent from a
per-agent script and can be told to fail, raise or hang.
"""

import json
import threading

import pytest

from CaseAnalysis.agents.base import AnalysisInvoker, InvocationResult
from CaseAnalysis.controller import AgentRunController
from CaseAnalysis.orchestrator import PipelineOrchestrator
from CaseAnalysis.parsing import parse_agent_output
from CaseAnalysis.state import CaseRecord
from CaseAnalysis.store.memory import InMemoryRunStore


class ScriptedInvoker(AnalysisInvoker):
    """Answers from a script instead of a model.

    responses: agent -> answer text, or a list consumed one call at a time
    errors:    agent -> error message returned as a failed invocation
    hang:      agents whose call blocks until ``release`` is set
    """

    def __init__(self, responses=None, errors=None, hang=None, default=None):
        self.responses = dict(responses or {})
        self.errors = dict(errors or {})
        self.hang = set(hang or ())
        self.default = default if default is not None else json.dumps(
            {"summary": "Nothing of note.", "findings": []}
        )
        self.release = threading.Event()
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def invoke(self, agent_type, case_id, context, cancel_token=None):
        with self._lock:
            self.calls.append((agent_type, case_id, context))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if agent_type in self.hang:
                self.release.wait(timeout=10)
            if agent_type in self.errors:
                return InvocationResult(error=self.errors[agent_type])

            answer = self.responses.get(agent_type, self.default)
            if isinstance(answer, list):
                answer = answer.pop(0)
            if isinstance(answer, Exception):
                raise answer
            return InvocationResult(
                output=parse_agent_output(answer),
                tokens_used=42,
                model_used="scripted",
            )
        finally:
            with self._lock:
                self.active -= 1

    def called_agents(self):
        return [agent for agent, _, _ in self.calls]


def payload(summary="Done.", findings=None, evidence=None, **extra):
    """JSON answer in the shape the agent prompts ask for."""
    data = {"summary": summary, "analysis": f"{summary} Details.", "findings": findings or []}
    if evidence is not None:
        data["evidenceItems"] = evidence
    data.update(extra)
    return json.dumps(data)


COLLECTOR_ANSWER = payload(
    summary="Two items catalogued.",
    evidence=[
        {
            "evidence_key": "E-1",
            "evidence_type": "protocol",
            "title": "Search protocol",
            "page_reference": "v1 p.12",
            "volume_number": 1,
        },
        {
            "evidence_key": "E-2",
            "evidence_type": "testimony",
            "title": "Witness statement of A.",
            "page_reference": "v1 p.30",
            "volume_number": 1,
        },
    ],
)

ADMISSIBILITY_ANSWER = payload(
    summary="Search protocol is inadmissible.",
    findings=[
        {
            "finding_type": "inadmissible",
            "severity": "critical",
            "title": "Search without attesting witnesses",
            "description": "No attesting witnesses were present.",
            "legal_basis": ["Art. 170 CPC"],
            "evidence_refs": ["E-1"],
        },
        {
            "finding_type": "questionable",
            "severity": "medium",
            "title": "Statement not signed on every page",
            "evidence_refs": ["E-2"],
        },
    ],
)

QUALIFICATION_ANSWER = payload(
    summary="Qualification is doubtful.",
    findings=[
        {
            "finding_type": "qualification_issue",
            "severity": "high",
            "title": "Intent not established",
        }
    ],
)

AGGREGATOR_ANSWER = payload(
    summary="Overall assessment.",
    title="Aggregated Analysis",
    executiveSummary="The prosecution relies on tainted evidence.",
    evidenceSummary="Two items, one inadmissible.",
    violationsSummary="Search procedure breached.",
    defenseStrategy="Move to exclude the search protocol.",
    prosecutionWeaknesses="No independent corroboration.",
    recommendations=["File exclusion motion", "Request re-examination"],
    fullReport="Full text.",
)


@pytest.fixture
def make_payload():
    return payload


@pytest.fixture
def scripted_answers():
    return {
        "evidence_collector": COLLECTOR_ANSWER,
        "evidence_admissibility": ADMISSIBILITY_ANSWER,
        "charge_qualification": QUALIFICATION_ANSWER,
        "aggregator": AGGREGATOR_ANSWER,
    }


@pytest.fixture
def store():
    return InMemoryRunStore()


@pytest.fixture
def case(store):
    """A case with one volume of extracted text."""
    record = CaseRecord(
        title="State v. Doe",
        case_number="1-234/2024",
        case_type="criminal",
        facts="The defendant was detained after a search of the apartment.",
        legal_question="Is the search protocol admissible?",
        references_text="Criminal Procedure Code\n- ECHR Art. 6\nCriminal Procedure Code",
    )
    store.save_case(record)
    store.create_volume(record.id, title="Investigation file", ocr_text="Protocol of search ...")
    return record


@pytest.fixture
def invoker(scripted_answers):
    inv = ScriptedInvoker(responses=scripted_answers)
    yield inv
    inv.release.set()


@pytest.fixture
def controller(store, invoker):
    return AgentRunController(store, invoker, timeout=0.5, poll_interval=0.01)


@pytest.fixture
def orchestrator(store, controller):
    return PipelineOrchestrator(store, controller=controller)
