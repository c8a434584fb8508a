import time
import uuid
from typing import Dict, Any, Optional, List, Callable, Awaitable
from dataclasses import dataclass, field

import structlog

from ..core.base_agent import Agent, AgentConfig
from ..core.budget import MAX_TOKENS_UPPER_BOUND, TokenBudget
from ..core.cancellation import CancellationToken
from ..core.errors import ConfigurationError, OperationCancelled, SwarmError, from_status
from ..core.types import (
    AgentResponse,
    DepthMode,
    EventType,
    OrchestrationEvent,
    Phase,
    RunConfig,
    Severity,
)
from ..core.utils import preview, sanitize_trace
from .registry import ORCHESTRATOR_ACTOR, resolve_agents
from .specialist_agent import SpecialistAgent

logger = structlog.get_logger(__name__)

Emitter = Callable[[OrchestrationEvent], None]
Checkpoint = Callable[[], Awaitable[None]]
Recorder = Callable[..., Awaitable[None]]

BREAKDOWN_SYSTEM_PROMPT = "You are KimiClaw, the supreme AI orchestrator and CEO of a multi-agent swarm."
REVIEW_SYSTEM_PROMPT = "You are KimiClaw, reviewing your team's work as CEO."
CONSOLIDATION_SYSTEM_PROMPT = "You are KimiClaw. Produce a polished executive deliverable."

PHASE_TRACES: Dict[Phase, str] = {
    Phase.STRATEGIC_BREAKDOWN: "Phase A: Strategic Breakdown — decomposing directive",
    Phase.PARALLEL_WORK: "Phase B: Parallel Execution — dispatching to workers",
    Phase.INTERNAL_REVIEW: "Phase C: Internal Review — agents cross-review",
    Phase.CONSOLIDATION: "Phase D: Consolidation — producing executive output",
}

BREAKDOWN_PREVIEW_CHARS = 500
OUTPUT_PREVIEW_CHARS = 200


@dataclass
class SwarmResult:
    """Everything a finished run produced."""
    run_id: str
    final_output: str
    breakdown: str = ""
    task_plan: List[Dict[str, str]] = field(default_factory=list)
    agent_outputs: Dict[str, str] = field(default_factory=dict)
    review_output: str = ""
    events: List[OrchestrationEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "final_output": self.final_output,
            "breakdown": self.breakdown,
            "task_plan": self.task_plan,
            "agent_outputs": self.agent_outputs,
            "review_output": self.review_output,
            "events": [e.to_dict() for e in self.events],
        }


class CEOAgent(Agent):
    """
    CEO Agent (KimiClaw): drives the four-phase swarm protocol.

    Phases:
    - Strategic breakdown: split the directive into one subtask per agent
    - Parallel work: each specialist works on its subtask, one at a time
    - Internal review: critique the combined outputs
    - Consolidation: write the executive deliverable

    The same protocol backs the server endpoint and the client-local engine;
    only the emitter, checkpoint and recorder hooks differ.
    """

    def __init__(
        self,
        llm_client: Any,
        model: str,
        specialists: List[SpecialistAgent],
        max_tokens_upper_bound: int = MAX_TOKENS_UPPER_BOUND,
        **config_overrides
    ):
        if not specialists:
            raise ConfigurationError("At least one agent is required")
        config = AgentConfig(
            agent_id=ORCHESTRATOR_ACTOR,
            name=ORCHESTRATOR_ACTOR,
            role="Orchestrator",
            model=model,
            **config_overrides,
        )
        super().__init__(config, llm_client)
        self.specialists = specialists
        self.max_tokens_upper_bound = max_tokens_upper_bound

    @classmethod
    def for_agents(
        cls,
        agent_ids: Optional[List[str]],
        llm_client: Any,
        model: str,
        client_for: Optional[Callable[[str], Any]] = None,
        max_tokens_upper_bound: int = MAX_TOKENS_UPPER_BOUND,
        **config_overrides
    ) -> "CEOAgent":
        """
        Build the orchestrator and its team from registry ids.

        `client_for(agent_id)` supplies a per-agent LLM client; without it
        every agent shares `llm_client`.
        """
        specialists = [
            SpecialistAgent(
                profile,
                client_for(profile.id) if client_for else llm_client,
                model,
                **config_overrides,
            )
            for profile in resolve_agents(agent_ids)
        ]
        return cls(llm_client, model, specialists, max_tokens_upper_bound, **config_overrides)

    @property
    def agent_ids(self) -> List[str]:
        return [s.id for s in self.specialists]

    def _default_system_prompt(self) -> str:
        return BREAKDOWN_SYSTEM_PROMPT

    def _breakdown_prompt(self, run_config: RunConfig) -> str:
        team = ", ".join(f"{s.id} ({s.get_system_prompt().split('.')[0]})" for s in self.specialists)
        return f"""You are KimiClaw, the CEO orchestrator. Decompose this executive directive into exactly {len(self.specialists)} parallel subtasks, one per team member.

Team members: {team}

Directive: "{run_config.directive}"
Depth mode: {run_config.depth.value}
{run_config.depth.guidance}

Format each subtask as:
**[Agent ID]**: [specific, actionable subtask description]

Be precise and ensure no overlap between subtasks."""

    @staticmethod
    def _combined_outputs(outputs: Dict[str, str]) -> str:
        return "\n\n---\n\n".join(f"### {agent_id}\n{text}" for agent_id, text in outputs.items())

    @staticmethod
    def _review_prompt(directive: str, combined: str) -> str:
        return f"""As KimiClaw CEO, review all agent outputs for the directive: "{directive}"

{combined}

Identify conflicts, gaps, redundancies, and improvements. Provide a structured review with specific recommendations."""

    @staticmethod
    def _consolidation_prompt(directive: str, combined: str, review: str) -> str:
        return f"""Produce the FINAL EXECUTIVE OUTPUT for: "{directive}"

Agent outputs:
{combined}

Review notes:
{review}

Format as:
## Executive Summary
[2-3 sentence summary]

## Key Decisions
[Bullet list]

## Deliverables
[Numbered deliverables with details]

## Next Steps
[Recommended follow-up actions]

Be comprehensive but concise. This is the final deliverable for the CEO."""

    async def _generate(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int,
        cancel: Optional[CancellationToken]
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        return await _guarded(self._call_llm(messages, max_tokens=max_tokens), cancel)

    async def run(
        self,
        run_config: RunConfig,
        emit: Optional[Emitter] = None,
        *,
        cancel: Optional[CancellationToken] = None,
        checkpoint: Optional[Checkpoint] = None,
        recorder: Optional[Recorder] = None,
        run_id: Optional[str] = None
    ) -> SwarmResult:
        """
        Execute the four phases for one directive.

        Args:
            run_config: the run's directive, depth and token cap
            emit: receives every OrchestrationEvent in order
            cancel: fired to stop the run at the next await point
            checkpoint: awaited before every phase and every agent (pause gate)
            recorder: awaited with the fields to persist after each phase
            run_id: identifier reported in the final event

        Returns:
            SwarmResult. Raises OperationCancelled when cancelled and the
            original error (after emitting an error event) on failure.
        """
        run_id = run_id or str(uuid.uuid4())
        result = SwarmResult(run_id=run_id, final_output="")
        budget = TokenBudget.allocate(
            run_config.token_cap, len(self.specialists), self.max_tokens_upper_bound
        )
        start_time = time.time()
        current_agent: Optional[str] = None

        def send(event: OrchestrationEvent) -> None:
            result.events.append(event)
            if emit is not None:
                emit(event)

        async def enter(phase: Phase) -> None:
            await _checkpoint(cancel, checkpoint)
            logger.info("run.phase", run_id=run_id, phase=phase.value)
            send(OrchestrationEvent(
                EventType.PHASE, ORCHESTRATOR_ACTOR, PHASE_TRACES[phase], payload={"phase": phase.value}
            ))

        async def record(**fields) -> None:
            if recorder is not None:
                await recorder(**fields)

        logger.info(
            "run.start",
            run_id=run_id,
            agents=self.agent_ids,
            depth=run_config.depth.value,
            per_call=budget.per_call,
        )

        try:
            # Phase A: strategic breakdown
            await enter(Phase.STRATEGIC_BREAKDOWN)
            await record(phase=Phase.STRATEGIC_BREAKDOWN.value)
            result.breakdown = await self._generate(
                BREAKDOWN_SYSTEM_PROMPT, self._breakdown_prompt(run_config), budget.per_call, cancel
            )
            send(OrchestrationEvent(
                EventType.AGENT_MESSAGE,
                ORCHESTRATOR_ACTOR,
                "Task plan created",
                payload={"breakdown": preview(result.breakdown, BREAKDOWN_PREVIEW_CHARS)},
            ))
            result.task_plan = [
                {"agentId": s.id, "label": s.profile.work_label, "status": "pending"}
                for s in self.specialists
            ]
            await record(task_plan=result.task_plan, phase=Phase.PARALLEL_WORK.value)

            # Phase B: one specialist at a time
            await enter(Phase.PARALLEL_WORK)
            for specialist in self.specialists:
                await _checkpoint(cancel, checkpoint)
                current_agent = specialist.id
                send(OrchestrationEvent(
                    EventType.AGENT_MESSAGE,
                    specialist.id,
                    f"{specialist.id} starting work...",
                    payload={"stage": "started"},
                ))
                response = await _guarded(
                    specialist.process({
                        "directive": run_config.directive,
                        "breakdown": result.breakdown,
                        "depth": run_config.depth,
                        "max_tokens": budget.per_call,
                    }),
                    cancel,
                )
                if not response.success:
                    status = response.metadata.get("status_code")
                    if status:
                        raise from_status(status, response.error)
                    raise SwarmError(response.error or f"{specialist.id} failed")

                result.agent_outputs[specialist.id] = response.content
                send(OrchestrationEvent(
                    EventType.AGENT_MESSAGE,
                    specialist.id,
                    f"{specialist.id} completed work",
                    payload={
                        "stage": "completed",
                        "output": response.content,
                        "outputPreview": preview(response.content, OUTPUT_PREVIEW_CHARS),
                    },
                ))
                current_agent = None
            await record(agent_outputs=dict(result.agent_outputs), phase=Phase.INTERNAL_REVIEW.value)

            combined = self._combined_outputs(result.agent_outputs)

            # Phase C: internal review
            await enter(Phase.INTERNAL_REVIEW)
            result.review_output = await self._generate(
                REVIEW_SYSTEM_PROMPT,
                self._review_prompt(run_config.directive, combined),
                budget.per_call,
                cancel,
            )
            send(OrchestrationEvent(
                EventType.AGENT_MESSAGE,
                ORCHESTRATOR_ACTOR,
                "Internal review complete",
                payload={"reviewPreview": preview(result.review_output, OUTPUT_PREVIEW_CHARS)},
            ))
            await record(review_output=result.review_output, phase=Phase.CONSOLIDATION.value)

            # Phase D: consolidation
            await enter(Phase.CONSOLIDATION)
            final_output = await self._generate(
                CONSOLIDATION_SYSTEM_PROMPT,
                self._consolidation_prompt(run_config.directive, combined, result.review_output),
                budget.consolidation,
                cancel,
            )
            if not final_output.strip():
                raise SwarmError("Consolidation produced no output")
            if cancel is not None:
                cancel.raise_if_cancelled()

            result.final_output = final_output
            send(OrchestrationEvent(
                EventType.FINAL,
                ORCHESTRATOR_ACTOR,
                "Executive output ready",
                payload={"finalOutput": final_output, "runId": run_id},
            ))

        except OperationCancelled as e:
            logger.info("run.cancelled", run_id=run_id, reason=e.reason.value)
            raise
        except Exception as e:
            message = sanitize_trace(str(e)) or type(e).__name__
            payload: Dict[str, Any] = {"message": message}
            if current_agent:
                payload["agentId"] = current_agent
            logger.warning("run.failed", run_id=run_id, agent=current_agent, error=message)
            send(OrchestrationEvent(
                EventType.ERROR, ORCHESTRATOR_ACTOR, f"Error: {message}", Severity.ERROR, payload
            ))
            raise

        logger.info(
            "run.complete",
            run_id=run_id,
            elapsed_ms=int((time.time() - start_time) * 1000),
            chars=len(result.final_output),
        )
        return result

    async def process(
        self,
        input_data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> AgentResponse:
        """
        Run the swarm and wrap the outcome in an AgentResponse.

        Args:
            input_data: either 'run_config' (RunConfig) or 'directive' with
                optional 'depth' and 'max_tokens'
            context: optional 'emit' callback and 'cancel' token
        """
        start_time = time.time()
        context = context or {}

        try:
            run_config = input_data.get("run_config") or RunConfig(
                directive=input_data.get("directive", ""),
                depth=DepthMode(input_data.get("depth", DepthMode.BALANCED)),
                token_cap=input_data.get("max_tokens", 8192),
                agents=tuple(self.agent_ids),
            )
            result = await self.run(run_config, context.get("emit"), cancel=context.get("cancel"))
        except OperationCancelled:
            raise
        except SwarmError as e:
            return AgentResponse(
                agent_id=self.id,
                role=self.role,
                content="",
                success=False,
                error=sanitize_trace(str(e)),
                execution_time_ms=int((time.time() - start_time) * 1000)
            )

        return AgentResponse(
            agent_id=self.id,
            role=self.role,
            content=result.final_output,
            success=True,
            metadata={
                "run_id": result.run_id,
                "agents_used": list(result.agent_outputs),
            },
            execution_time_ms=int((time.time() - start_time) * 1000)
        )


async def _guarded(awaitable: Awaitable[Any], cancel: Optional[CancellationToken]) -> Any:
    if cancel is None:
        return await awaitable
    return await cancel.guard(awaitable)


async def _checkpoint(cancel: Optional[CancellationToken], checkpoint: Optional[Checkpoint]) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()
    if checkpoint is not None:
        await checkpoint()
    if cancel is not None:
        cancel.raise_if_cancelled()
