import uuid
from typing import Optional

import httpx
import structlog

from ..agents.ceo_agent import CEOAgent
from ..agents.registry import ORCHESTRATOR_AGENT_ID
from ..core.cancellation import CancellationToken, ResumableGate
from ..core.types import Phase, RunConfig, TaskStatus
from .base import SwarmEngine
from .chat_client import AgentChatClient

logger = structlog.get_logger(__name__)


class LocalSwarmEngine(SwarmEngine):
    """
    Runs the four-phase protocol in-process, one relay stream per generation.

    Nothing is persisted. The running agent's task output grows as deltas
    arrive, and the run can be paused between work units.
    """

    def __init__(
        self,
        chat_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.chat_url = chat_url
        self.http_client = http_client
        self._gate = ResumableGate()
        self._resume_phase: Optional[Phase] = None

    @property
    def is_paused(self) -> bool:
        return self._state.phase == Phase.PAUSED

    def pause(self) -> None:
        """Hold the run at its next phase or agent boundary."""
        if not self._running or self._state.phase.is_terminal or self.is_paused:
            return
        self._resume_phase = self._state.phase
        self._state.phase = Phase.PAUSED
        self._gate.close()
        logger.info("engine.paused", run_id=self._state.run_id, at=self._resume_phase.value)
        self._notify()

    def resume(self) -> None:
        if not self.is_paused:
            return
        self._state.phase = self._resume_phase or Phase.STRATEGIC_BREAKDOWN
        self._resume_phase = None
        self._gate.open()
        logger.info("engine.resumed", run_id=self._state.run_id, phase=self._state.phase.value)
        self._notify()

    async def _execute(self, config: RunConfig, token: CancellationToken) -> None:
        self._gate.open()
        self._resume_phase = None
        self._state.run_id = str(uuid.uuid4())

        client = AgentChatClient(
            self.chat_url,
            self.http_client,
            cancel=token,
            on_delta=self._append_delta,
        )
        ceo = CEOAgent.for_agents(
            list(config.agents),
            client.bind(ORCHESTRATOR_AGENT_ID),
            config.model or "",
            client_for=client.bind,
        )

        async def checkpoint() -> None:
            await self._gate.wait_open(token)

        await ceo.run(
            config,
            self.project_event,
            cancel=token,
            checkpoint=checkpoint,
            run_id=self._state.run_id,
        )

    def _append_delta(self, agent_id: str, text: str) -> None:
        task = self._state.task(agent_id)
        if task is None or task.status != TaskStatus.RUNNING or self._state.phase.is_terminal:
            return
        task.output += text
        self._notify()
