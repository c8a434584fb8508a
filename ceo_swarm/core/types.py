from enum import Enum
from collections import deque
from typing import List, Dict, Any, Optional, Tuple, Deque
from dataclasses import dataclass, field, replace
import time
import uuid

from .errors import ConfigurationError


class Phase(Enum):
    IDLE = "idle"
    STRATEGIC_BREAKDOWN = "strategic-breakdown"
    PARALLEL_WORK = "parallel-work"
    INTERNAL_REVIEW = "internal-review"
    CONSOLIDATION = "consolidation"
    COMPLETE = "complete"
    PAUSED = "paused"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.ABORTED)


PHASE_LABELS: Dict[Phase, str] = {
    Phase.IDLE: "Idle",
    Phase.STRATEGIC_BREAKDOWN: "Phase A — Strategy",
    Phase.PARALLEL_WORK: "Phase B — Execution",
    Phase.INTERNAL_REVIEW: "Phase C — Review",
    Phase.CONSOLIDATION: "Phase D — Consolidation",
    Phase.COMPLETE: "Executive Output Ready",
    Phase.PAUSED: "Paused",
    Phase.ABORTED: "Aborted",
}


class DepthMode(Enum):
    FAST = "fast"
    BALANCED = "balanced"
    DEEP = "deep"

    @property
    def guidance(self) -> str:
        """Thoroughness instruction injected into phase prompts."""
        return {
            DepthMode.FAST: "Be brief: favour the few highest-impact points over coverage.",
            DepthMode.BALANCED: "Balance depth and brevity: cover the essentials with concrete detail.",
            DepthMode.DEEP: "Be exhaustive: cover edge cases, risks and alternatives in detail.",
        }[self]


class TaskStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class AgentEventType(Enum):
    PLANNING = "planning"
    RESEARCH = "research"
    TOOL_CALL = "tool_call"
    GENERATING = "generating"
    REVIEWING = "reviewing"
    COMPLETE = "complete"
    ERROR = "error"


class EventType(Enum):
    PHASE = "phase"
    AGENT_MESSAGE = "agent_message"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ERROR = "error"
    FINAL = "final"


class Severity(Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ActivityLevel(Enum):
    """Coarse ambient hint for the UI, decoupled from Phase."""
    IDLE = "idle"
    COLLABORATION = "collaboration"
    PROCESSING = "processing"
    SUCCESS = "success"


class CancelReason(Enum):
    USER_ABORT = "user_abort"
    TIMEOUT = "timeout"
    FAILURE = "failure"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class IntegrationPermissions:
    github: bool = False
    slack: bool = False
    docs: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"github": self.github, "slack": self.slack, "docs": self.docs}


@dataclass(frozen=True)
class RunConfig:
    """Everything one run needs. Immutable for the run's duration."""
    directive: str
    depth: DepthMode = DepthMode.BALANCED
    model: Optional[str] = None  # None lets the server pick its default
    token_cap: int = 8192
    tool_call_limit: int = 20
    integrations: IntegrationPermissions = field(default_factory=IntegrationPermissions)
    browser_automation: bool = False
    agents: Tuple[str, ...] = ()  # empty means every registered agent
    device_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.directive, str) or not self.directive.strip():
            raise ConfigurationError("directive is required")
        if not isinstance(self.depth, DepthMode):
            try:
                object.__setattr__(self, "depth", DepthMode(self.depth))
            except ValueError:
                raise ConfigurationError(f"Unknown depth mode: {self.depth!r}") from None
        if self.token_cap <= 0:
            raise ConfigurationError("token_cap must be positive")
        if self.tool_call_limit < 0:
            raise ConfigurationError("tool_call_limit cannot be negative")
        # One task per agent: collapse duplicates, first occurrence wins.
        object.__setattr__(self, "agents", tuple(dict.fromkeys(self.agents)))

    def to_request(self) -> Dict[str, Any]:
        """Run-start request body for the orchestrator endpoint."""
        body: Dict[str, Any] = {
            "goal": self.directive,
            "mode": self.depth.value,
            "budgets": {"maxTokens": self.token_cap, "maxToolCalls": self.tool_call_limit},
            "toolPermissions": {
                **self.integrations.to_dict(),
                "browserAutomation": self.browser_automation,
            },
        }
        if self.agents:
            body["agents"] = list(self.agents)
        if self.model:
            body["model"] = self.model
        if self.device_id:
            body["deviceId"] = self.device_id
        return body


@dataclass
class ChatMessage:
    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class AgentTask:
    """Per-agent record within a run. Only ever status-transitioned, never removed."""
    agent_id: str
    label: str
    status: TaskStatus = TaskStatus.PENDING
    output: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "label": self.label,
            "status": self.status.value,
            "output": self.output,
        }


@dataclass
class AgentEvent:
    """UI-facing activity entry, derived from the wire events."""
    agent_id: str
    type: AgentEventType
    label: str
    detail: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "agentId": self.agent_id,
            "type": self.type.value,
            "label": self.label,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        return data


@dataclass
class OrchestrationEvent:
    """The canonical server→client wire unit."""
    type: EventType
    actor: str
    safe_trace: str
    severity: Severity = Severity.INFO
    payload: Optional[Dict[str, Any]] = None
    ts: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "actor": self.actor,
            "ts": self.ts,
            "severity": self.severity.value,
            "safeTrace": self.safe_trace,
        }
        if self.payload is not None:
            data["payload"] = self.payload
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestrationEvent":
        """Parse a wire frame. Raises KeyError/ValueError/TypeError on malformed input."""
        payload = data.get("payload")
        if payload is not None and not isinstance(payload, dict):
            raise TypeError("payload must be an object")
        return cls(
            type=EventType(data["type"]),
            actor=str(data["actor"]),
            safe_trace=str(data.get("safeTrace", "")),
            severity=Severity(data.get("severity", Severity.INFO.value)),
            payload=payload,
            ts=int(data.get("ts") or now_ms()),
        )


@dataclass
class RunState:
    """
    Engine-private state of one run.

    Replaced wholesale by each run() call. The event logs are ring buffers:
    older entries fall off once the cap is reached.
    """
    phase: Phase = Phase.IDLE
    run_id: Optional[str] = None
    tasks: List[AgentTask] = field(default_factory=list)
    events: Deque[AgentEvent] = field(default_factory=lambda: deque(maxlen=80))
    ceo_events: Deque[OrchestrationEvent] = field(default_factory=lambda: deque(maxlen=100))
    final_output: str = ""
    error: Optional[str] = None

    @classmethod
    def new(cls, event_limit: int = 80, ceo_event_limit: int = 100, **kwargs) -> "RunState":
        return cls(
            events=deque(maxlen=event_limit),
            ceo_events=deque(maxlen=ceo_event_limit),
            **kwargs,
        )

    def task(self, agent_id: str) -> Optional[AgentTask]:
        return next((t for t in self.tasks if t.agent_id == agent_id), None)

    def snapshot(self) -> "RunState":
        """Detached copy for listeners; mutating it never touches the engine."""
        return replace(
            self,
            tasks=[replace(t) for t in self.tasks],
            events=deque(self.events, maxlen=self.events.maxlen),
            ceo_events=deque(self.ceo_events, maxlen=self.ceo_events.maxlen),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "runId": self.run_id,
            "tasks": [t.to_dict() for t in self.tasks],
            "events": [e.to_dict() for e in self.events],
            "ceoEvents": [e.to_dict() for e in self.ceo_events],
            "finalOutput": self.final_output,
            "error": self.error,
        }


@dataclass
class AgentResponse:
    """Response from an individual agent."""
    agent_id: str
    role: str
    content: str
    success: bool = True
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    execution_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "role": self.role,
            "content": self.content,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
            "execution_time_ms": self.execution_time_ms,
        }
