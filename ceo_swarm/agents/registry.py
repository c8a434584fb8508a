"""
Static catalog of the swarm's agents.

Order matters: it is the UI's rendering order and the order in which the
specialists take their turn during parallel work.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from ..core.errors import ConfigurationError

# Wire identity of the orchestrator role and the agent whose desk shows its activity.
ORCHESTRATOR_ACTOR = "KimiClaw"
ORCHESTRATOR_AGENT_ID = "kimi-cli"


@dataclass(frozen=True)
class AgentProfile:
    id: str
    name: str
    role: str
    strengths: Tuple[str, ...]
    description: str
    color: str
    desk_index: int
    work_label: str
    system_prompt: str  # persona used during swarm work
    chat_prompt: str    # persona used by the chat relay

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "strengths": list(self.strengths),
            "description": self.description,
            "color": self.color,
            "deskIndex": self.desk_index,
            "workLabel": self.work_label,
        }


AGENTS: Tuple[AgentProfile, ...] = (
    AgentProfile(
        id="kimi-cli",
        name="Kimi CLI",
        role="Planner",
        strengths=("Task decomposition", "Routing", "Tool calling", "Orchestration"),
        description="System planner & command-style executor. Breaks complex goals into actionable steps.",
        color="#3b82f6",
        desk_index=0,
        work_label="Orchestration & Planning",
        system_prompt=(
            "You are Kimi CLI, the orchestration planner. Break goals into structured, "
            "actionable sub-tasks. Be systematic and precise."
        ),
        chat_prompt="""You are Kimi CLI, a system planner and command-style executor AI agent. Your strengths:
- Task decomposition and routing
- Breaking complex goals into actionable steps
- Tool calling and orchestration
- Systematic, methodical approach
Respond in a clear, structured format. Use numbered steps for plans. Be concise and precise.""",
    ),
    AgentProfile(
        id="openclaw",
        name="OpenClaw",
        role="Creative",
        strengths=("Ideation", "Copywriting", "UX thinking", "Product strategy"),
        description="Creative & communication specialist. Generates ideas, names, copy, and product concepts.",
        color="#ef4444",
        desk_index=1,
        work_label="Creative & UX Strategy",
        system_prompt=(
            "You are OpenClaw, the creative specialist. Focus on ideation, naming, copy, "
            "UX strategy. Be bold and inventive."
        ),
        chat_prompt="""You are OpenClaw, a creative and communication specialist AI agent. Your strengths:
- Ideation and brainstorming
- Copywriting and content creation
- UX thinking and naming
- Product strategy and creative problem solving
Respond with creativity and flair. Offer multiple options when relevant. Think outside the box.""",
    ),
    AgentProfile(
        id="mac-mini",
        name="Mac Mini",
        role="Coder",
        strengths=("Clean code", "Architecture", "Debugging", "Documentation"),
        description="Coding & implementation specialist. Writes production-ready code and solves technical challenges.",
        color="#10b981",
        desk_index=2,
        work_label="Technical Implementation",
        system_prompt=(
            "You are Mac Mini, the technical implementer. Write code, design architecture, "
            "solve technical problems. Be precise with examples."
        ),
        chat_prompt="""You are Mac Mini, a coding and implementation specialist AI agent. Your strengths:
- Writing clean, production-ready code
- Debugging and optimization
- Architecture design
- Technical documentation
Respond with code examples when relevant. Be precise about technical details. Focus on implementation.""",
    ),
    AgentProfile(
        id="raspberry-pi",
        name="Raspberry Pi",
        role="Edge Automator",
        strengths=("Webhooks", "Automation", "Monitoring", "IoT patterns"),
        description="Automation & integrations specialist. Builds scripts, monitors, and connects systems.",
        color="#8b5cf6",
        desk_index=3,
        work_label="Automation & Integration",
        system_prompt=(
            "You are Raspberry Pi, the automation engineer. Build scripts, webhooks, "
            "integrations. Focus on reliability and efficiency."
        ),
        chat_prompt="""You are Raspberry Pi, an automation and integrations specialist AI agent. Your strengths:
- Webhooks and API integrations
- Lightweight scripts and monitoring
- Scheduled jobs and automation
- Edge computing and IoT patterns
Respond with practical automation solutions. Focus on efficiency and reliability.""",
    ),
)

_BY_ID: Dict[str, AgentProfile] = {agent.id: agent for agent in AGENTS}

AVAILABLE_MODELS: Tuple[Dict[str, str], ...] = (
    {"id": "google/gemini-3-flash-preview", "name": "Gemini 3 Flash", "category": "Fast"},
    {"id": "google/gemini-2.5-flash", "name": "Gemini 2.5 Flash", "category": "Balanced"},
    {"id": "google/gemini-2.5-pro", "name": "Gemini 2.5 Pro", "category": "Reasoning"},
    {"id": "google/gemini-2.5-flash-lite", "name": "Gemini 2.5 Flash Lite", "category": "Cheap"},
    {"id": "openai/gpt-5", "name": "GPT-5", "category": "Reasoning"},
    {"id": "openai/gpt-5-mini", "name": "GPT-5 Mini", "category": "Balanced"},
    {"id": "openai/gpt-5-nano", "name": "GPT-5 Nano", "category": "Cheap"},
    {"id": "openai/gpt-5.2", "name": "GPT-5.2", "category": "Reasoning"},
)


def agent_ids() -> List[str]:
    return [agent.id for agent in AGENTS]


def find_agent(agent_id: str) -> Optional[AgentProfile]:
    return _BY_ID.get(agent_id)


def get_agent(agent_id: str) -> AgentProfile:
    profile = _BY_ID.get(agent_id)
    if profile is None:
        raise ConfigurationError(f"Unknown agent: {agent_id}")
    return profile


def resolve_agents(requested: Optional[List[str]] = None) -> List[AgentProfile]:
    """Profiles for the requested ids, in request order; every agent when empty."""
    if not requested:
        return list(AGENTS)
    return [get_agent(agent_id) for agent_id in dict.fromkeys(requested)]


class ActorMap:
    """
    Routes wire `actor` labels to agent ids.

    The table is checked against the registry when built, so a typo fails at
    import time instead of silently misrouting events.
    """

    def __init__(self, table: Mapping[str, str], default: str):
        unknown = sorted({v for v in table.values() if v not in _BY_ID} | ({default} - set(_BY_ID)))
        if unknown:
            raise ConfigurationError(f"Actor map points at unknown agents: {', '.join(unknown)}")
        self._table = dict(table)
        self.default = default

    def resolve(self, actor: str) -> str:
        return self._table.get(actor, self.default)

    def __contains__(self, actor: str) -> bool:
        return actor in self._table


ACTOR_MAP = ActorMap(
    {ORCHESTRATOR_ACTOR: ORCHESTRATOR_AGENT_ID, **{agent.id: agent.id for agent in AGENTS}},
    default=ORCHESTRATOR_AGENT_ID,
)
