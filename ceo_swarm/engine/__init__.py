from .base import SwarmEngine, PHASE_ACTIVITY, STREAM_ENDED_MESSAGE
from .chat_client import AgentChatClient
from .local import LocalSwarmEngine
from .remote import RemoteSwarmEngine

__all__ = [
    "SwarmEngine",
    "PHASE_ACTIVITY",
    "STREAM_ENDED_MESSAGE",
    "AgentChatClient",
    "LocalSwarmEngine",
    "RemoteSwarmEngine",
]
