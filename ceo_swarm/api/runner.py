import asyncio
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog

from ..agents.ceo_agent import CEOAgent
from ..agents.registry import ORCHESTRATOR_ACTOR
from ..core.cancellation import CancellationToken
from ..core.errors import OperationCancelled, StoreError
from ..core.types import (
    CancelReason,
    EventType,
    OrchestrationEvent,
    Phase,
    RunConfig,
    Severity,
)
from ..core.utils import sanitize_trace
from ..storage.runs import RunRecord, RunStore
from .streaming import DONE_FRAME, encode_event

logger = structlog.get_logger(__name__)

CLIENT_GONE_MESSAGE = "Run cancelled: client disconnected"


class OrchestratorRun:
    """
    One server-side run: persists the record and streams the CEO's events.

    The record is inserted before the first phase. Every later write is
    best-effort: a store failure is logged and the run carries on.
    """

    def __init__(
        self,
        ceo: CEOAgent,
        run_config: RunConfig,
        store: RunStore,
        model: str,
        budgets: Optional[Dict[str, Any]] = None,
        tool_permissions: Optional[Dict[str, bool]] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.ceo = ceo
        self.run_config = run_config
        self.store = store
        self.cancel = CancellationToken()
        self.timeout_seconds = timeout_seconds
        self.events: List[OrchestrationEvent] = []
        self.record = RunRecord(
            goal=run_config.directive,
            mode=run_config.depth.value,
            model=model,
            agents=ceo.agent_ids,
            budgets=budgets or {},
            tool_permissions=tool_permissions or {},
            status="running",
            phase=Phase.STRATEGIC_BREAKDOWN.value,
            device_id=run_config.device_id,
            started_at=datetime.now(),
        )

    @property
    def run_id(self) -> str:
        return self.record.id

    async def start(self) -> RunRecord:
        """Create the run record. Raises StoreError; nothing has streamed yet."""
        self.record = await self.store.insert(self.record)
        logger.info("run.created", run_id=self.run_id, agents=self.record.agents, mode=self.record.mode)
        return self.record

    async def frames(self) -> AsyncIterator[str]:
        """
        Yield `data: <event>` frames, then the `[DONE]` sentinel.

        The protocol runs in its own task so a client that stops reading
        (closing this generator) cancels the run instead of stalling it.
        """
        queue: asyncio.Queue = asyncio.Queue()

        def emit(event: OrchestrationEvent) -> None:
            self.events.append(event)
            queue.put_nowait(encode_event(event))

        task = asyncio.ensure_future(self._execute(emit))
        task.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            while True:
                frame = await queue.get()
                if frame is None:
                    break
                yield frame
            if not task.cancelled() and task.exception() is not None:
                logger.error("run.crashed", run_id=self.run_id, error=str(task.exception()))
            yield DONE_FRAME
        finally:
            if not task.done():
                logger.info("run.client_gone", run_id=self.run_id)
                self.cancel.cancel(CancelReason.USER_ABORT)

    async def _execute(self, emit) -> None:
        timer = None
        if self.timeout_seconds:
            loop = asyncio.get_running_loop()
            timer = loop.call_later(self.timeout_seconds, self.cancel.cancel, CancelReason.TIMEOUT)

        try:
            result = await self.ceo.run(
                self.run_config,
                emit,
                cancel=self.cancel,
                recorder=self._record,
                run_id=self.run_id,
            )
        except OperationCancelled as e:
            if e.reason == CancelReason.TIMEOUT:
                message = f"Run timed out after {self.timeout_seconds}s"
                emit(OrchestrationEvent(
                    EventType.ERROR, ORCHESTRATOR_ACTOR, f"Error: {message}", Severity.ERROR,
                    {"message": message},
                ))
            else:
                message = CLIENT_GONE_MESSAGE
            await self._finish_with_error(message)
        except Exception as e:
            # The CEO has already emitted the error event.
            await self._finish_with_error(sanitize_trace(str(e)) or type(e).__name__)
        else:
            await self._record(
                final_output=result.final_output,
                phase=Phase.COMPLETE.value,
                status="complete",
                events=[ev.to_dict() for ev in self.events],
                completed_at=datetime.now(),
            )
            logger.info("run.finished", run_id=self.run_id, status="complete")
        finally:
            if timer is not None:
                timer.cancel()

    async def _finish_with_error(self, message: str) -> None:
        await self._record(
            status="error",
            error=message,
            phase=Phase.ABORTED.value,
            events=[ev.to_dict() for ev in self.events],
            completed_at=datetime.now(),
        )
        logger.info("run.finished", run_id=self.run_id, status="error", error=message)

    async def _record(self, **fields) -> None:
        try:
            self.record = await self.store.update(self.run_id, **fields)
        except StoreError as e:
            logger.warning("run.persist_failed", run_id=self.run_id, fields=sorted(fields), error=str(e))
