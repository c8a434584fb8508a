from .registry import (
    ACTOR_MAP,
    AGENTS,
    AVAILABLE_MODELS,
    ORCHESTRATOR_ACTOR,
    ORCHESTRATOR_AGENT_ID,
    ActorMap,
    AgentProfile,
    agent_ids,
    find_agent,
    get_agent,
    resolve_agents,
)
from .specialist_agent import SpecialistAgent
from .ceo_agent import CEOAgent, SwarmResult

__all__ = [
    "ACTOR_MAP",
    "AGENTS",
    "AVAILABLE_MODELS",
    "ORCHESTRATOR_ACTOR",
    "ORCHESTRATOR_AGENT_ID",
    "ActorMap",
    "AgentProfile",
    "agent_ids",
    "find_agent",
    "get_agent",
    "resolve_agents",
    "SpecialistAgent",
    "CEOAgent",
    "SwarmResult",
]
