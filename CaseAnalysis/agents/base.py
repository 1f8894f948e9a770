"""
base.py

Abstract base class for analysis invokers, the InvocationResult model and
the cancellation token handed to every call.

Every inference backend gets a thin invoker implementing this interface
so the run controller can call it uniformly.
"""

import threading
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from CaseAnalysis.context import AgentContext
from CaseAnalysis.parsing import AgentOutput


class CancellationToken:
    """Caller-owned flag telling in-flight work its result is no longer wanted."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class InvocationResult(BaseModel):
    """Standardised result returned by every invoker."""

    output: Optional[AgentOutput] = Field(
        default=None, description="Tagged agent answer; None when the call failed"
    )
    tokens_used: int = Field(default=0, ge=0)
    model_used: Optional[str] = None
    error: Optional[str] = Field(
        default=None, description="Error message if the invocation failed"
    )


class AnalysisInvoker(ABC):
    """Uniform interface to the external inference service."""

    @abstractmethod
    def invoke(
        self,
        agent_type: str,
        case_id: str,
        context: AgentContext,
        cancel_token: Optional[CancellationToken] = None,
    ) -> InvocationResult:
        """Run one agent against one case and return a standardised result.

        Parameters
        ----------
        agent_type:
            Catalog identity of the agent.
        case_id:
            The case being analysed.
        context:
            Case material assembled by ``CaseAnalysis.context``.
        cancel_token:
            Set by the caller when the answer is no longer wanted.
            Implementations that cannot abort a remote call may ignore it;
            the controller discards late results either way.

        Returns
        -------
        InvocationResult
        """
        ...
