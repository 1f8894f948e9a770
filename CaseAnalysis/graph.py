"""
graph.py

Defines and constructs the LangGraph pipeline behind runAllAgents.

One node per catalog entry, wired in catalog order from the catalog data.
After every node a conditional edge either continues to the next agent
or, once the caller's cancellation token is set, ends the pipeline.
A failed agent does not stop the pipeline.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from CaseAnalysis.agents.base import CancellationToken
from CaseAnalysis.catalog import AgentDefinition, ordered_agents
from CaseAnalysis.state import PipelineState

if TYPE_CHECKING:
    from CaseAnalysis.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


def _cancel_token(config: Optional[RunnableConfig]) -> Optional[CancellationToken]:
    return ((config or {}).get("configurable") or {}).get("cancel_token")


def initial_state(case_id: str) -> PipelineState:
    """Build a minimal initial state for one pipeline invocation."""
    return PipelineState(
        case_id=case_id,
        run_ids=[],
        completed_agents=[],
        failed_agents=[],
        skipped_agents=[],
        cancelled=False,
        report_id=None,
    )


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------

def make_agent_node(
    orchestrator: "PipelineOrchestrator", agent: AgentDefinition
) -> Callable[[PipelineState, RunnableConfig], Dict[str, Any]]:
    """Node that runs one analysis agent and records the outcome."""

    def agent_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        token = _cancel_token(config)
        if token is not None and token.cancelled:
            return {"cancelled": True}

        run = orchestrator.execute_agent(state["case_id"], agent.agent_type, token)
        updates: Dict[str, Any] = {"run_ids": state["run_ids"] + [run.id]}
        if run.status == "completed":
            updates["completed_agents"] = state["completed_agents"] + [agent.agent_type]
        else:
            logger.warning(
                "Agent %s %s on case %s; continuing with the next agent",
                agent.agent_type, run.status, state["case_id"],
            )
            updates["failed_agents"] = state["failed_agents"] + [agent.agent_type]
        if run.status == "cancelled":
            updates["cancelled"] = True
        return updates

    agent_node.__name__ = f"{agent.agent_type}_node"
    return agent_node


def make_synthesis_node(
    orchestrator: "PipelineOrchestrator", agent: AgentDefinition
) -> Callable[[PipelineState, RunnableConfig], Dict[str, Any]]:
    """Node that runs the aggregator through the report synthesizer."""

    def synthesis_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
        token = _cancel_token(config)
        if token is not None and token.cancelled:
            return {"cancelled": True}

        outcome = orchestrator.execute_synthesis(state["case_id"], token)
        if outcome.status == "insufficient_input":
            logger.info("Skipping %s: %s", agent.agent_type, outcome.reason)
            return {"skipped_agents": state["skipped_agents"] + [agent.agent_type]}

        updates: Dict[str, Any] = {"run_ids": state["run_ids"] + [outcome.run.id]}
        if outcome.status == "generated":
            updates["completed_agents"] = state["completed_agents"] + [agent.agent_type]
            updates["report_id"] = outcome.report.id
        else:
            updates["failed_agents"] = state["failed_agents"] + [agent.agent_type]
        if outcome.status == "cancelled":
            updates["cancelled"] = True
        return updates

    synthesis_node.__name__ = f"{agent.agent_type}_node"
    return synthesis_node


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------

def _continue_router(next_node: str) -> Callable[[PipelineState], str]:
    def router(state: PipelineState) -> str:
        return "stop" if state.get("cancelled") else "next"

    router.__name__ = f"route_to_{next_node}"
    return router


def build_pipeline_graph(orchestrator: "PipelineOrchestrator"):
    """Construct and compile the sequential agent pipeline.

    Returns the compiled graph ready for ``graph.invoke(state, config)``
    where ``config["configurable"]["cancel_token"]`` may carry a
    CancellationToken.
    """
    agents = ordered_agents()
    workflow = StateGraph(PipelineState)

    # -- Nodes --
    for agent in agents:
        if agent.role == "synthesis":
            workflow.add_node(agent.agent_type, make_synthesis_node(orchestrator, agent))
        else:
            workflow.add_node(agent.agent_type, make_agent_node(orchestrator, agent))

    # -- Edges --
    workflow.add_edge(START, agents[0].agent_type)
    for current, following in zip(agents, agents[1:]):
        workflow.add_conditional_edges(
            current.agent_type,
            _continue_router(following.agent_type),
            {"next": following.agent_type, "stop": END},
        )
    workflow.add_edge(agents[-1].agent_type, END)

    return workflow.compile()
