"""
catalog.py

Static, ordered registry of the analysis agents.

The catalog is data: the orchestrator and the pipeline graph iterate it
rather than naming agents, so adding, removing or reordering an agent only
touches AGENT_CATALOG.
"""

from typing import Dict, List, Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field

from CaseAnalysis.errors import UnknownAgentError
from CaseAnalysis.state import AgentType

AgentRole = Literal["extraction", "violations", "strategy", "synthesis"]


class AgentDefinition(BaseModel):
    """Identity, ordering and display metadata for one agent."""

    model_config = ConfigDict(frozen=True)

    agent_type: AgentType
    order: int = Field(..., ge=1, description="Fixed execution position")
    name: str
    description: str
    role: AgentRole
    scope: str = Field(description="One-line remit used in the agent's system prompt")


AGENT_CATALOG: Tuple[AgentDefinition, ...] = (
    AgentDefinition(
        agent_type="evidence_collector",
        order=1,
        name="Evidence Collector",
        description="Catalogs all evidence from case volumes",
        role="extraction",
        scope=(
            "to extract and catalog all evidence items from the case materials "
            "with completeness and traceability; no admissibility or weight analysis"
        ),
    ),
    AgentDefinition(
        agent_type="evidence_admissibility",
        order=2,
        name="Evidence Admissibility",
        description="Analyzes admissibility of each evidence",
        role="extraction",
        scope=(
            "to assess admissibility strictly as lawful acquisition and procedural "
            "compliance; no credibility, sufficiency or weight analysis"
        ),
    ),
    AgentDefinition(
        agent_type="charge_qualification",
        order=3,
        name="Charge Qualification",
        description="Verifies correctness of criminal charges",
        role="extraction",
        scope=(
            "to verify alignment between the alleged facts and the elements of the "
            "charged offense"
        ),
    ),
    AgentDefinition(
        agent_type="procedural_violations",
        order=4,
        name="Procedural Violations",
        description="Finds procedure code violations",
        role="violations",
        scope="to detect procedural breaches based only on the explicit timeline and documents",
    ),
    AgentDefinition(
        agent_type="substantive_violations",
        order=5,
        name="Substantive Violations",
        description="Finds criminal code violations",
        role="violations",
        scope="to identify misapplication or misinterpretation of substantive norms",
    ),
    AgentDefinition(
        agent_type="defense_strategy",
        order=6,
        name="Defense Strategy",
        description="Builds defense arguments",
        role="strategy",
        scope=(
            "to build a coherent defense strategy strictly from prior findings and "
            "explicit facts"
        ),
    ),
    AgentDefinition(
        agent_type="prosecution_weaknesses",
        order=7,
        name="Prosecution Weaknesses",
        description="Identifies prosecution gaps",
        role="strategy",
        scope="to identify gaps and weaknesses in the prosecution's position",
    ),
    AgentDefinition(
        agent_type="rights_violations",
        order=8,
        name="Rights Violations",
        description="Finds Constitution and ECHR violations",
        role="violations",
        scope="to identify violations of constitutional and Convention rights",
    ),
    AgentDefinition(
        agent_type="aggregator",
        order=9,
        name="Aggregator",
        description="Synthesizes all analyses into final report",
        role="synthesis",
        scope=(
            "to synthesize agent outputs into a unified report without introducing "
            "new facts or new legal references"
        ),
    ),
)

AGGREGATOR: AgentType = "aggregator"

_BY_TYPE: Dict[str, AgentDefinition] = {a.agent_type: a for a in AGENT_CATALOG}


def ordered_agents() -> List[AgentDefinition]:
    """Catalog entries in execution order."""
    return sorted(AGENT_CATALOG, key=lambda a: a.order)


def analysis_agents() -> List[AgentDefinition]:
    """Every agent except the aggregator, in execution order."""
    return [a for a in ordered_agents() if a.role != "synthesis"]


def get_agent(agent_type: str) -> AgentDefinition:
    try:
        return _BY_TYPE[agent_type]
    except KeyError:
        raise UnknownAgentError(agent_type) from None


def is_aggregator(agent_type: str) -> bool:
    return get_agent(agent_type).role == "synthesis"
