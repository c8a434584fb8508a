"""Tests for the four-phase protocol in agents/ceo_agent.py."""

import pytest

from ceo_swarm.agents.ceo_agent import CEOAgent
from ceo_swarm.agents.registry import get_agent
from ceo_swarm.agents.specialist_agent import SpecialistAgent
from ceo_swarm.core.cancellation import CancellationToken
from ceo_swarm.core.errors import (
    RATE_LIMIT_MESSAGE,
    ConfigurationError,
    OperationCancelled,
    RateLimitError,
    SwarmError,
)
from ceo_swarm.core.types import DepthMode, EventType, RunConfig, Severity
from tests.conftest import CONSOLIDATED, ScriptedLLMClient, scripted_reply

PHASES = ["strategic-breakdown", "parallel-work", "internal-review", "consolidation"]
TEAM = ["kimi-cli", "openclaw", "mac-mini", "raspberry-pi"]


def _of_type(events, event_type):
    return [e for e in events if e.type == event_type]


class TestCEOAgentRun:
    @pytest.mark.asyncio
    async def test_landing_page_run_walks_all_four_phases(self, scripted_llm, landing_page_config):
        events = []
        ceo = CEOAgent.for_agents(None, scripted_llm, "test-model")

        result = await ceo.run(landing_page_config, events.append, run_id="run-1")

        assert [e.payload["phase"] for e in _of_type(events, EventType.PHASE)] == PHASES

        stages = [
            (e.actor, e.payload.get("stage"))
            for e in _of_type(events, EventType.AGENT_MESSAGE)
            if e.payload and "stage" in e.payload
        ]
        assert stages == [(agent, stage) for agent in TEAM for stage in ("started", "completed")]

        finals = _of_type(events, EventType.FINAL)
        assert len(finals) == 1
        assert finals[0] is events[-1]
        assert finals[0].payload == {"finalOutput": CONSOLIDATED, "runId": "run-1"}
        assert not _of_type(events, EventType.ERROR)

        for header in ("## Executive Summary", "## Key Decisions", "## Deliverables", "## Next Steps"):
            assert header in result.final_output

        assert result.run_id == "run-1"
        assert list(result.agent_outputs) == TEAM
        assert result.events == events

    @pytest.mark.asyncio
    async def test_orchestrator_messages_carry_previews(self, scripted_llm, landing_page_config):
        events = []
        await CEOAgent.for_agents(None, scripted_llm, "test-model").run(landing_page_config, events.append)

        by_trace = {e.safe_trace: e for e in events if e.actor == "KimiClaw"}
        assert by_trace["Task plan created"].payload["breakdown"].startswith("**kimi-cli**")
        assert "reviewPreview" in by_trace["Internal review complete"].payload

        completed = [e for e in events if e.payload and e.payload.get("stage") == "completed"]
        for event in completed:
            assert event.payload["output"].endswith("deliverable for the assigned subtask.")
            assert len(event.payload["outputPreview"]) <= 200

    @pytest.mark.asyncio
    async def test_budget_split_reaches_the_backend(self, scripted_llm, landing_page_config):
        await CEOAgent.for_agents(None, scripted_llm, "test-model").run(landing_page_config)

        per_call = 8192 // 6
        assert len(scripted_llm.calls) == 7
        assert [c["max_tokens"] for c in scripted_llm.calls] == [per_call] * 6 + [per_call * 2]
        assert all(c["model"] == "test-model" for c in scripted_llm.calls)

    @pytest.mark.asyncio
    async def test_agent_subset_runs_in_request_order(self, scripted_llm):
        config = RunConfig(directive="Launch a landing page", agents=("mac-mini", "openclaw"))
        ceo = CEOAgent.for_agents(list(config.agents), scripted_llm, "test-model")

        result = await ceo.run(config)

        assert list(result.agent_outputs) == ["mac-mini", "openclaw"]
        assert [t["agentId"] for t in result.task_plan] == ["mac-mini", "openclaw"]
        assert all(t["status"] == "pending" for t in result.task_plan)

    @pytest.mark.asyncio
    async def test_recorder_sees_each_phase(self, scripted_llm, landing_page_config):
        recorded = []

        async def recorder(**fields):
            recorded.append(fields)

        await CEOAgent.for_agents(None, scripted_llm, "test-model").run(landing_page_config, recorder=recorder)

        assert [r["phase"] for r in recorded] == PHASES
        assert "task_plan" in recorded[1]
        assert set(recorded[2]["agent_outputs"]) == set(TEAM)
        assert recorded[3]["review_output"]

    @pytest.mark.asyncio
    async def test_checkpoint_runs_before_every_phase_and_agent(self, scripted_llm, landing_page_config):
        calls = []

        async def checkpoint():
            calls.append(len(scripted_llm.calls))

        await CEOAgent.for_agents(None, scripted_llm, "test-model").run(
            landing_page_config, checkpoint=checkpoint
        )

        assert len(calls) == 4 + 4

    @pytest.mark.asyncio
    async def test_rate_limited_agent_stops_the_run(self, landing_page_config):
        llm = ScriptedLLMClient(fail_on_call=3, error=RateLimitError())
        events = []

        with pytest.raises(RateLimitError):
            await CEOAgent.for_agents(None, llm, "test-model").run(landing_page_config, events.append)

        errors = _of_type(events, EventType.ERROR)
        assert len(errors) == 1
        assert errors[0].severity == Severity.ERROR
        assert errors[0].payload == {"message": RATE_LIMIT_MESSAGE, "agentId": "openclaw"}
        assert not _of_type(events, EventType.FINAL)
        assert len(llm.calls) == 3

    @pytest.mark.parametrize("fail_on_call,phase,agent_id", [
        (1, "strategic-breakdown", None),
        (2, "parallel-work", "kimi-cli"),
        (5, "parallel-work", "raspberry-pi"),
        (6, "internal-review", None),
        (7, "consolidation", None),
    ])
    @pytest.mark.asyncio
    async def test_failure_is_reported_in_the_phase_it_happened(
        self, landing_page_config, fail_on_call, phase, agent_id
    ):
        llm = ScriptedLLMClient(fail_on_call=fail_on_call)
        events = []

        with pytest.raises(SwarmError, match="backend exploded"):
            await CEOAgent.for_agents(None, llm, "test-model").run(landing_page_config, events.append)

        assert _of_type(events, EventType.PHASE)[-1].payload["phase"] == phase
        error = events[-1]
        assert error.type == EventType.ERROR
        assert error.payload.get("agentId") == agent_id
        assert error.safe_trace.startswith("Error: ")

    @pytest.mark.asyncio
    async def test_empty_consolidation_is_an_error(self, landing_page_config):
        def reply(messages):
            return "" if "FINAL EXECUTIVE OUTPUT" in messages[-1]["content"] else scripted_reply(messages)

        events = []
        with pytest.raises(SwarmError, match="no output"):
            await CEOAgent.for_agents(None, ScriptedLLMClient(reply), "test-model").run(
                landing_page_config, events.append
            )
        assert events[-1].type == EventType.ERROR
        assert not _of_type(events, EventType.FINAL)

    @pytest.mark.asyncio
    async def test_cancelled_before_start_emits_nothing(self, scripted_llm, landing_page_config):
        token = CancellationToken()
        token.cancel()
        events = []

        with pytest.raises(OperationCancelled):
            await CEOAgent.for_agents(None, scripted_llm, "test-model").run(
                landing_page_config, events.append, cancel=token
            )

        assert events == []
        assert scripted_llm.calls == []

    @pytest.mark.asyncio
    async def test_cancel_mid_run_stops_at_next_agent(self, scripted_llm, landing_page_config):
        token = CancellationToken()
        events = []

        def emit(event):
            events.append(event)
            if event.payload and event.payload.get("stage") == "completed":
                token.cancel()

        with pytest.raises(OperationCancelled):
            await CEOAgent.for_agents(None, scripted_llm, "test-model").run(
                landing_page_config, emit, cancel=token
            )

        assert [e.actor for e in events if e.payload and e.payload.get("stage") == "started"] == ["kimi-cli"]
        assert not _of_type(events, EventType.ERROR)
        assert not _of_type(events, EventType.FINAL)

    @pytest.mark.asyncio
    async def test_budget_too_small_is_rejected_up_front(self, scripted_llm):
        with pytest.raises(ConfigurationError):
            await CEOAgent.for_agents(None, scripted_llm, "test-model").run(
                RunConfig(directive="x", token_cap=3)
            )
        assert scripted_llm.calls == []


class TestCEOAgentConstruction:
    def test_requires_specialists(self, scripted_llm):
        with pytest.raises(ConfigurationError):
            CEOAgent(scripted_llm, "test-model", [])

    def test_for_agents_uses_per_agent_clients(self, scripted_llm):
        clients = {}

        def client_for(agent_id):
            clients[agent_id] = ScriptedLLMClient()
            return clients[agent_id]

        ceo = CEOAgent.for_agents(["openclaw", "mac-mini"], scripted_llm, "m", client_for=client_for)
        assert ceo.agent_ids == ["openclaw", "mac-mini"]
        assert [s.llm_client for s in ceo.specialists] == [clients["openclaw"], clients["mac-mini"]]
        assert ceo.llm_client is scripted_llm
        assert ceo.id == "KimiClaw"

    def test_unknown_agent_is_rejected(self, scripted_llm):
        with pytest.raises(ConfigurationError):
            CEOAgent.for_agents(["toaster"], scripted_llm, "m")


class TestCEOAgentProcess:
    @pytest.mark.asyncio
    async def test_process_wraps_the_result(self, scripted_llm):
        ceo = CEOAgent.for_agents(None, scripted_llm, "test-model")
        response = await ceo.process({"directive": "Launch a landing page", "depth": "fast"})

        assert response.success
        assert response.content == CONSOLIDATED
        assert response.metadata["agents_used"] == TEAM

    @pytest.mark.asyncio
    async def test_process_reports_failure(self):
        ceo = CEOAgent.for_agents(None, ScriptedLLMClient(fail_on_call=1), "test-model")
        response = await ceo.process({"directive": "Launch a landing page"})

        assert not response.success
        assert "backend exploded" in response.error


class TestSpecialistAgent:
    def test_prompt_carries_plan_and_depth_guidance(self, scripted_llm):
        agent = SpecialistAgent(get_agent("mac-mini"), scripted_llm, "m")
        prompt = agent.build_prompt("Ship it", "**mac-mini**: build", DepthMode.DEEP)

        assert '"Ship it"' in prompt
        assert "**mac-mini**: build" in prompt
        assert "You are mac-mini." in prompt
        assert DepthMode.DEEP.guidance in prompt

    @pytest.mark.asyncio
    async def test_missing_directive(self, scripted_llm):
        agent = SpecialistAgent(get_agent("mac-mini"), scripted_llm, "m")
        response = await agent.process({"breakdown": "plan"})
        assert not response.success
        assert scripted_llm.calls == []

    @pytest.mark.asyncio
    async def test_backend_status_is_kept(self):
        agent = SpecialistAgent(get_agent("mac-mini"), ScriptedLLMClient(fail_on_call=1, error=RateLimitError()), "m")
        response = await agent.process({"directive": "Ship it", "breakdown": "plan"})
        assert not response.success
        assert response.metadata["status_code"] == 429
