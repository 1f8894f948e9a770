"""
errors.py

Hard errors raised by the case-analysis core.

Agent failures, cancellations and an unmet report quorum are *not*
represented here: those are recorded as data on runs and synthesis
outcomes. Only conditions the caller cannot treat as a normal result
(unknown case, unknown agent, an unavailable store) are raised.
"""


class CaseAnalysisError(Exception):
    """Base class for every error raised by the package."""


class CaseNotFoundError(CaseAnalysisError):
    def __init__(self, case_id: str):
        super().__init__(f"Case not found: {case_id}")
        self.case_id = case_id


class UnknownAgentError(CaseAnalysisError):
    def __init__(self, agent_type: str):
        super().__init__(f"Unknown agent: {agent_type}")
        self.agent_type = agent_type


class RecordNotFoundError(CaseAnalysisError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class RunStoreError(CaseAnalysisError):
    """The run store could not complete a read or write."""
