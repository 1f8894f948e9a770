"""Invokers providing a uniform interface to the external inference service."""

from CaseAnalysis.agents.base import AnalysisInvoker, CancellationToken, InvocationResult
from CaseAnalysis.agents.llm_invoker import LLMAnalysisInvoker, get_chat_model

__all__ = [
    "AnalysisInvoker",
    "CancellationToken",
    "InvocationResult",
    "LLMAnalysisInvoker",
    "get_chat_model",
]
