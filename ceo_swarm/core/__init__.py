from .types import (
    Phase,
    DepthMode,
    TaskStatus,
    AgentEventType,
    EventType,
    Severity,
    ActivityLevel,
    CancelReason,
    IntegrationPermissions,
    RunConfig,
    ChatMessage,
    AgentTask,
    AgentEvent,
    OrchestrationEvent,
    RunState,
    AgentResponse,
)
from .errors import (
    SwarmError,
    ConfigurationError,
    BackendError,
    RateLimitError,
    QuotaExceededError,
    StreamError,
    StoreError,
    RunNotFoundError,
    OperationCancelled,
)
from .base_agent import Agent, AgentConfig
from .budget import TokenBudget, MAX_TOKENS_UPPER_BOUND
from .cancellation import CancellationToken, ResumableGate
from .llm import LLMProvider, create_llm_client
from .stream import SSEFrameParser, stream_agent_chat

__all__ = [
    "Phase",
    "DepthMode",
    "TaskStatus",
    "AgentEventType",
    "EventType",
    "Severity",
    "ActivityLevel",
    "CancelReason",
    "IntegrationPermissions",
    "RunConfig",
    "ChatMessage",
    "AgentTask",
    "AgentEvent",
    "OrchestrationEvent",
    "RunState",
    "AgentResponse",
    "SwarmError",
    "ConfigurationError",
    "BackendError",
    "RateLimitError",
    "QuotaExceededError",
    "StreamError",
    "StoreError",
    "RunNotFoundError",
    "OperationCancelled",
    "Agent",
    "AgentConfig",
    "TokenBudget",
    "MAX_TOKENS_UPPER_BOUND",
    "CancellationToken",
    "ResumableGate",
    "LLMProvider",
    "create_llm_client",
    "SSEFrameParser",
    "stream_agent_chat",
]
