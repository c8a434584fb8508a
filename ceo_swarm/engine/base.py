"""
Client-side orchestration engine.

A SwarmEngine owns the RunState of one run at a time and rebuilds it from
OrchestrationEvents, whether those arrive over the server's event stream or
from an in-process CEOAgent. Callers only ever see detached snapshots.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Dict, List, Optional

import structlog

from ..agents.registry import ACTOR_MAP, ORCHESTRATOR_ACTOR, resolve_agents
from ..core.cancellation import CancellationToken
from ..core.errors import OperationCancelled
from ..core.types import (
    ActivityLevel,
    AgentEvent,
    AgentEventType,
    AgentTask,
    CancelReason,
    EventType,
    OrchestrationEvent,
    Phase,
    RunConfig,
    RunState,
    TaskStatus,
)
from ..core.utils import sanitize_trace

logger = structlog.get_logger(__name__)

StateListener = Callable[[RunState], None]
AgentEventListener = Callable[[AgentEvent], None]
ActivityListener = Callable[[ActivityLevel], None]

PHASE_ACTIVITY: Dict[Phase, ActivityLevel] = {
    Phase.STRATEGIC_BREAKDOWN: ActivityLevel.COLLABORATION,
    Phase.PARALLEL_WORK: ActivityLevel.PROCESSING,
    Phase.INTERNAL_REVIEW: ActivityLevel.COLLABORATION,
    Phase.CONSOLIDATION: ActivityLevel.PROCESSING,
    Phase.COMPLETE: ActivityLevel.SUCCESS,
    Phase.ABORTED: ActivityLevel.IDLE,
}

PHASE_EVENT_TYPES: Dict[Phase, AgentEventType] = {
    Phase.STRATEGIC_BREAKDOWN: AgentEventType.PLANNING,
    Phase.PARALLEL_WORK: AgentEventType.PLANNING,
    Phase.INTERNAL_REVIEW: AgentEventType.REVIEWING,
    Phase.CONSOLIDATION: AgentEventType.GENERATING,
}

STREAM_ENDED_MESSAGE = "Stream ended before the run completed"


class SwarmEngine(ABC):
    """
    Base engine: run lifecycle, event projection and snapshot fan-out.

    One run per instance at a time; a second run() while one is in flight is
    ignored. Subclasses only implement _execute(), which must feed every
    OrchestrationEvent of the run through project_event().
    """

    def __init__(
        self,
        *,
        event_limit: int = 80,
        ceo_event_limit: int = 100,
        activity_decay: float = 5.0,
        on_state_change: Optional[StateListener] = None,
        on_agent_event: Optional[AgentEventListener] = None,
        on_activity: Optional[ActivityListener] = None,
    ):
        self.event_limit = event_limit
        self.ceo_event_limit = ceo_event_limit
        self.activity_decay = activity_decay
        self.on_state_change = on_state_change
        self.on_agent_event = on_agent_event
        self.on_activity = on_activity

        self._state = RunState.new(event_limit, ceo_event_limit)
        self._token: Optional[CancellationToken] = None
        self._running = False
        self._subscribers: List[asyncio.Queue] = []
        self._activity = ActivityLevel.IDLE
        self._decay_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> RunState:
        return self._state.snapshot()

    @property
    def activity(self) -> ActivityLevel:
        return self._activity

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, config: RunConfig, timeout: Optional[float] = None) -> Optional[RunState]:
        """
        Run one directive to a terminal state and return the final snapshot.

        Returns None without doing anything when a run is already in flight.
        """
        if self._running:
            logger.warning("engine.run_rejected", run_id=self._state.run_id, phase=self._state.phase.value)
            return None

        profiles = resolve_agents(list(config.agents))
        token = CancellationToken()
        self._running = True
        self._token = token
        self._state = RunState.new(
            self.event_limit,
            self.ceo_event_limit,
            phase=Phase.STRATEGIC_BREAKDOWN,
            tasks=[AgentTask(agent_id=p.id, label=p.work_label) for p in profiles],
        )
        self._set_activity(PHASE_ACTIVITY[Phase.STRATEGIC_BREAKDOWN])
        self._notify()
        logger.info("engine.run_start", engine=type(self).__name__, agents=[p.id for p in profiles])

        timer = None
        if timeout:
            timer = asyncio.get_running_loop().call_later(timeout, token.cancel, CancelReason.TIMEOUT)

        try:
            await self._execute(config, token)
            if not self._state.phase.is_terminal:
                self._fail(STREAM_ENDED_MESSAGE)
        except OperationCancelled as e:
            if e.reason == CancelReason.TIMEOUT:
                self._fail(f"Run timed out after {timeout:g}s")
            elif e.reason == CancelReason.USER_ABORT:
                self._mark_aborted()
            else:
                self._fail(str(e))
        except Exception as e:
            logger.warning("engine.run_failed", error=sanitize_trace(str(e)))
            self._fail(sanitize_trace(str(e)) or type(e).__name__)
        finally:
            if timer is not None:
                timer.cancel()
            self._running = False
            self._token = None

        logger.info(
            "engine.run_end",
            run_id=self._state.run_id,
            phase=self._state.phase.value,
            error=self._state.error,
        )
        return self.state

    @abstractmethod
    async def _execute(self, config: RunConfig, token: CancellationToken) -> None:
        """Drive the run, projecting its events. Raise on failure."""
        pass

    def abort(self) -> None:
        """Stop the run in flight. A no-op when idle or already finished."""
        if self._token is None or self._state.phase.is_terminal:
            return
        self._token.cancel(CancelReason.USER_ABORT)
        self._mark_aborted()

    async def subscribe(self) -> AsyncIterator[RunState]:
        """Yield every snapshot from now on, ending after the first terminal one."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                snapshot = await queue.get()
                yield snapshot
                if snapshot.phase.is_terminal:
                    break
        finally:
            self._subscribers.remove(queue)

    def project_event(self, event: OrchestrationEvent) -> None:
        """Apply one wire event to the run state. Ignored once the run is terminal."""
        state = self._state
        if state.phase.is_terminal:
            return

        state.ceo_events.append(event)
        agent_id = ACTOR_MAP.resolve(event.actor)
        payload = event.payload or {}

        if event.type == EventType.PHASE:
            phase = _phase_of(payload)
            if phase is not None and phase in PHASE_EVENT_TYPES:
                state.phase = phase
                self._set_activity(PHASE_ACTIVITY[phase])
                self._record(AgentEvent(agent_id, PHASE_EVENT_TYPES[phase], event.safe_trace))
            else:
                logger.debug("engine.unknown_phase", trace=event.safe_trace)

        elif event.type == EventType.AGENT_MESSAGE:
            self._project_message(event, agent_id, payload)

        elif event.type in (EventType.TOOL_CALL, EventType.TOOL_RESULT):
            self._record(AgentEvent(agent_id, AgentEventType.TOOL_CALL, event.safe_trace))

        elif event.type == EventType.ERROR:
            message = payload.get("message") or event.safe_trace
            failed = state.task(str(payload.get("agentId", "")))
            if failed is not None and failed.status != TaskStatus.DONE:
                failed.status = TaskStatus.ERROR
            self._record(AgentEvent(agent_id, AgentEventType.ERROR, event.safe_trace))
            self._fail(message)
            return

        elif event.type == EventType.FINAL:
            final_output = payload.get("finalOutput") or ""
            if not isinstance(final_output, str) or not final_output.strip():
                self._fail("Run finished without output")
                return
            state.final_output = final_output
            state.run_id = payload.get("runId") or state.run_id
            state.phase = Phase.COMPLETE
            self._set_activity(PHASE_ACTIVITY[Phase.COMPLETE])
            self._record(AgentEvent(agent_id, AgentEventType.COMPLETE, event.safe_trace))

        self._notify()

    def _project_message(self, event: OrchestrationEvent, agent_id: str, payload: Dict) -> None:
        stage = payload.get("stage")
        task = None if event.actor == ORCHESTRATOR_ACTOR else self._state.task(agent_id)

        if task is not None and stage == "started":
            task.status = TaskStatus.RUNNING
            task.output = ""
            self._record(AgentEvent(agent_id, AgentEventType.GENERATING, event.safe_trace))
        elif task is not None and stage == "completed":
            task.status = TaskStatus.DONE
            output = payload.get("output")
            if isinstance(output, str) and output:
                task.output = output
            self._record(AgentEvent(
                agent_id, AgentEventType.COMPLETE, event.safe_trace, detail=payload.get("outputPreview")
            ))
        else:
            kind = (
                AgentEventType.REVIEWING
                if self._state.phase == Phase.INTERNAL_REVIEW
                else AgentEventType.PLANNING
            )
            detail = payload.get("breakdown") or payload.get("reviewPreview")
            self._record(AgentEvent(agent_id, kind, event.safe_trace, detail=detail))

    def _record(self, event: AgentEvent) -> None:
        self._state.events.append(event)
        if self.on_agent_event is not None:
            self.on_agent_event(event)

    def _mark_aborted(self) -> None:
        if self._state.phase.is_terminal:
            return
        self._state.phase = Phase.ABORTED
        self._set_activity(ActivityLevel.IDLE)
        logger.info("engine.aborted", run_id=self._state.run_id)
        self._notify()

    def _fail(self, message: str) -> None:
        if self._state.phase.is_terminal:
            return
        if self._token is not None:
            self._token.cancel(CancelReason.FAILURE)
        self._state.phase = Phase.ABORTED
        self._state.error = message or "Unknown error"
        self._set_activity(ActivityLevel.IDLE)
        logger.info("engine.failed", run_id=self._state.run_id, error=self._state.error)
        self._notify()

    def _set_activity(self, level: ActivityLevel) -> None:
        if self._decay_handle is not None:
            self._decay_handle.cancel()
            self._decay_handle = None
        if level != self._activity:
            self._activity = level
            if self.on_activity is not None:
                self.on_activity(level)
        if level == ActivityLevel.SUCCESS:
            self._decay_handle = asyncio.get_running_loop().call_later(
                self.activity_decay, self._set_activity, ActivityLevel.IDLE
            )

    def _notify(self) -> None:
        snapshot = self._state.snapshot()
        for queue in self._subscribers:
            queue.put_nowait(snapshot)
        if self.on_state_change is not None:
            self.on_state_change(snapshot)


def _phase_of(payload: Dict) -> Optional[Phase]:
    try:
        return Phase(payload.get("phase"))
    except ValueError:
        return None
