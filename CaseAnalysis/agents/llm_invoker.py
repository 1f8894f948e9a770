"""
llm_invoker.py

Invoker backed by a langchain chat model.

Builds the agent's system prompt and the rendered case context, makes one
model call, and returns the tagged answer with token usage.
"""

import logging
from typing import Any, Optional

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_groq import ChatGroq

from CaseAnalysis import config
from CaseAnalysis.agents.base import AnalysisInvoker, CancellationToken, InvocationResult
from CaseAnalysis.context import AgentContext, render_context
from CaseAnalysis.parsing import parse_agent_output
from CaseAnalysis.prompts import build_system_prompt

logger = logging.getLogger(__name__)


def get_chat_model(provider: Optional[str] = None) -> Any:
    """Instantiate the configured chat model."""
    provider = (provider or config.LLM_PROVIDER).lower()
    if provider == "groq":
        return ChatGroq(model_name=config.LLM_MODEL, temperature=config.LLM_TEMPERATURE)
    if provider == "google":
        return ChatGoogleGenerativeAI(
            model=config.LLM_MODEL, temperature=config.LLM_TEMPERATURE
        )
    raise ValueError(f"Unsupported LLM provider: {provider}")


def _tokens_used(response: Any) -> int:
    usage = getattr(response, "usage_metadata", None) or {}
    return int(usage.get("total_tokens", 0) or 0)


def _model_used(response: Any) -> str:
    metadata = getattr(response, "response_metadata", None) or {}
    return metadata.get("model_name") or metadata.get("model") or config.LLM_MODEL


class LLMAnalysisInvoker(AnalysisInvoker):
    """Thin wrapper around a langchain chat model."""

    def __init__(self, llm: Any = None):
        self._llm = llm

    @property
    def llm(self) -> Any:
        if self._llm is None:
            self._llm = get_chat_model()
        return self._llm

    def invoke(
        self,
        agent_type: str,
        case_id: str,
        context: AgentContext,
        cancel_token: Optional[CancellationToken] = None,
    ) -> InvocationResult:
        """Run one agent prompt through the chat model.

        The remote call itself cannot be aborted; a token that is already
        set short-circuits before any request is made.
        """
        if cancel_token is not None and cancel_token.cancelled:
            return InvocationResult(error=cancel_token.reason or "Cancelled before invocation")

        try:
            messages = [
                {
                    "role": "system",
                    "content": build_system_prompt(
                        agent_type, with_user_sources=bool(context.user_sources)
                    ),
                },
                {"role": "user", "content": render_context(context)},
            ]
            logger.info("Invoking model for agent %s on case %s", agent_type, case_id)
            response = self.llm.invoke(messages)
            content = response.content if hasattr(response, "content") else str(response)
            if isinstance(content, list):
                # Multi-part content blocks
                content = "".join(
                    part.get("text", "") if isinstance(part, dict) else str(part)
                    for part in content
                )

            output = parse_agent_output(content)
            tokens = _tokens_used(response)
            logger.info(
                "Agent %s answered (%s, %d tokens)", agent_type, output.kind, tokens
            )
            return InvocationResult(
                output=output,
                tokens_used=tokens,
                model_used=_model_used(response),
            )

        except Exception as exc:
            error_msg = f"Inference call for {agent_type} failed: {exc}"
            logger.exception(error_msg)
            return InvocationResult(error=error_msg)
