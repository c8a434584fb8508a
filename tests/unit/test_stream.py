"""Tests for core/stream.py."""

import asyncio
import json

import httpx
import pytest

from ceo_swarm.core.cancellation import CancellationToken
from ceo_swarm.core.errors import RATE_LIMIT_MESSAGE, BackendError, RateLimitError
from ceo_swarm.core.stream import SSEFrameParser, extract_delta, extract_relay_item, stream_agent_chat
from ceo_swarm.core.types import AgentEventType, OrchestrationEvent
from tests.conftest import RELAY_URL, relay_transport


def _frame(content: str) -> str:
    return f"data: {json.dumps({'choices': [{'delta': {'content': content}}]}, ensure_ascii=False)}\n"


class TestExtractDelta:
    def test_reads_nested_content(self):
        assert extract_delta({"choices": [{"delta": {"content": "hi"}}]}) == "hi"

    def test_missing_or_empty_content_is_none(self):
        assert extract_delta({"choices": [{"delta": {}}]}) is None
        assert extract_delta({"choices": [{"delta": {"content": ""}}]}) is None
        assert extract_delta({"choices": []}) is None
        assert extract_delta({"error": "nope"}) is None

    def test_relay_error_frame_becomes_a_failure(self):
        failure = extract_relay_item({"error": "Network error: connection reset"})
        assert isinstance(failure, BackendError)
        assert str(failure) == "Network error: connection reset"
        assert extract_relay_item({"choices": [{"delta": {"content": "hi"}}]}) == "hi"


class TestSSEFrameParser:
    def test_single_chunk(self):
        parser = SSEFrameParser()
        body = _frame("Hel") + _frame("lo") + "data: [DONE]\n"
        assert parser.feed(body.encode()) == ["Hel", "lo"]
        assert parser.done

    def test_every_split_point_reconstructs_the_text(self):
        body = (
            _frame("Launch ")
            + ": keep-alive comment\n"
            + _frame("the café 🚀 ")
            + "\n"
            + _frame("page")
            + "data: [DONE]\n"
        ).encode("utf-8")

        whole = "".join(SSEFrameParser().feed(body))
        assert whole == "Launch the café 🚀 page"

        for cut in range(1, len(body)):
            parser = SSEFrameParser()
            deltas = parser.feed(body[:cut]) + parser.feed(body[cut:]) + parser.flush()
            assert "".join(deltas) == whole, f"split at byte {cut}"

    def test_byte_by_byte_delivery(self):
        body = (_frame("ü") + _frame("ber") + "data: [DONE]\n").encode("utf-8")
        parser = SSEFrameParser()
        deltas = []
        for i in range(len(body)):
            deltas.extend(parser.feed(body[i:i + 1]))
        assert "".join(deltas) == "über"

    def test_done_sentinel_stops_parsing(self):
        parser = SSEFrameParser()
        assert parser.feed((_frame("a") + "data: [DONE]\n" + _frame("b")).encode()) == ["a"]
        assert parser.feed(_frame("c").encode()) == []
        assert parser.flush() == []

    def test_malformed_frame_is_skipped(self):
        parser = SSEFrameParser()
        body = _frame("a") + "data: {not json}\n" + _frame("b")
        deltas = parser.feed(body.encode())
        deltas += parser.feed(_frame("c").encode())
        deltas += parser.flush()
        assert "".join(deltas) == "abc"

    def test_flush_parses_unterminated_last_line(self):
        parser = SSEFrameParser()
        assert parser.feed(_frame("a").encode() + _frame("b").rstrip("\n").encode()) == ["a"]
        assert parser.flush() == ["b"]

    def test_crlf_line_endings(self):
        parser = SSEFrameParser()
        body = _frame("a").replace("\n", "\r\n") + "data: [DONE]\r\n"
        assert parser.feed(body.encode()) == ["a"]

    def test_custom_extractor_parses_orchestration_events(self):
        parser = SSEFrameParser(OrchestrationEvent.from_dict)
        good = {"type": "phase", "actor": "KimiClaw", "ts": 1, "severity": "info", "safeTrace": "Phase A"}
        bad = {"type": "nonsense", "actor": "KimiClaw"}
        body = f"data: {json.dumps(bad)}\n\ndata: {json.dumps(good)}\n\n"
        events = parser.feed(body.encode())
        assert len(events) == 1
        assert events[0].safe_trace == "Phase A"


class Recorder:
    def __init__(self):
        self.deltas = []
        self.events = []
        self.done = 0
        self.errors = []

    def callbacks(self):
        return {
            "on_delta": self.deltas.append,
            "on_event": self.events.append,
            "on_done": self._done,
            "on_error": self.errors.append,
        }

    def _done(self):
        self.done += 1


class TestStreamAgentChat:
    @pytest.mark.asyncio
    async def test_success_reports_deltas_and_lifecycle(self):
        requests = []
        recorder = Recorder()
        async with httpx.AsyncClient(transport=relay_transport(lambda m: "Hello world", requests=requests)) as client:
            await stream_agent_chat(
                [{"role": "user", "content": "hi"}],
                "openclaw",
                model="google/gemini-2.5-flash",
                max_tokens=256,
                url=RELAY_URL,
                http_client=client,
                **recorder.callbacks(),
            )

        assert "".join(recorder.deltas) == "Hello world"
        assert recorder.done == 1
        assert recorder.errors == []
        assert [e.type for e in recorder.events] == [
            AgentEventType.PLANNING,
            AgentEventType.GENERATING,
            AgentEventType.COMPLETE,
        ]
        assert requests[0]["agentId"] == "openclaw"
        assert requests[0]["model"] == "google/gemini-2.5-flash"
        assert requests[0]["maxTokens"] == 256
        assert "temperature" not in requests[0]

    @pytest.mark.asyncio
    async def test_rate_limit_surfaces_distinct_message(self):
        recorder = Recorder()
        async with httpx.AsyncClient(transport=relay_transport(status_code=429)) as client:
            await stream_agent_chat(
                [{"role": "user", "content": "hi"}], "kimi-cli",
                url=RELAY_URL, http_client=client, **recorder.callbacks(),
            )
        assert recorder.errors == [RATE_LIMIT_MESSAGE]
        assert recorder.done == 0

    @pytest.mark.asyncio
    async def test_embedded_error_message_is_used(self):
        recorder = Recorder()
        async with httpx.AsyncClient(transport=relay_transport(status_code=500, error="AI service error")) as client:
            await stream_agent_chat(
                [{"role": "user", "content": "hi"}], "kimi-cli",
                url=RELAY_URL, http_client=client, **recorder.callbacks(),
            )
        assert recorder.errors == ["AI service error"]

    @pytest.mark.asyncio
    async def test_missing_body_is_an_error(self):
        recorder = Recorder()
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b""))
        async with httpx.AsyncClient(transport=transport) as client:
            await stream_agent_chat(
                [{"role": "user", "content": "hi"}], "kimi-cli",
                url=RELAY_URL, http_client=client, **recorder.callbacks(),
            )
        assert recorder.errors == ["No response stream"]
        assert recorder.done == 0

    @pytest.mark.asyncio
    async def test_network_failure_is_an_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        recorder = Recorder()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await stream_agent_chat(
                [{"role": "user", "content": "hi"}], "kimi-cli",
                url=RELAY_URL, http_client=client, **recorder.callbacks(),
            )
        assert len(recorder.errors) == 1
        assert "Network error" in recorder.errors[0]

    @pytest.mark.asyncio
    async def test_cancellation_reports_done_not_error(self):
        token = CancellationToken()

        async def endless():
            yield (_frame("first") + "\n").encode()
            await asyncio.sleep(30)
            yield b"data: [DONE]\n\n"

        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=endless()))
        recorder = Recorder()

        def on_delta(text):
            recorder.deltas.append(text)
            token.cancel()

        callbacks = recorder.callbacks()
        callbacks["on_delta"] = on_delta
        async with httpx.AsyncClient(transport=transport) as client:
            await asyncio.wait_for(
                stream_agent_chat(
                    [{"role": "user", "content": "hi"}], "kimi-cli",
                    url=RELAY_URL, http_client=client, cancel=token, **callbacks,
                ),
                timeout=5,
            )

        assert recorder.errors == []
        assert recorder.done == 1
        assert recorder.events[-1].label == "Stopped by user"

    @pytest.mark.asyncio
    async def test_error_frame_mid_stream_is_an_error(self):
        body = _frame("Hello") + "\n" + 'data: {"error": "Network error: connection reset"}\n\n' + "data: [DONE]\n\n"
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=body.encode()))
        recorder = Recorder()
        async with httpx.AsyncClient(transport=transport) as client:
            await stream_agent_chat(
                [{"role": "user", "content": "hi"}], "mac-mini",
                url=RELAY_URL, http_client=client, **recorder.callbacks(),
            )

        assert recorder.deltas == ["Hello"]
        assert recorder.errors == ["Network error: connection reset"]
        assert recorder.done == 0
        assert recorder.events[-1].type == AgentEventType.GENERATING

    @pytest.mark.asyncio
    async def test_failure_callback_keeps_the_status(self):
        failures = []
        recorder = Recorder()
        async with httpx.AsyncClient(transport=relay_transport(status_code=429)) as client:
            await stream_agent_chat(
                [{"role": "user", "content": "hi"}], "kimi-cli",
                url=RELAY_URL, http_client=client, on_failure=failures.append, **recorder.callbacks(),
            )

        assert len(failures) == 1
        assert isinstance(failures[0], RateLimitError)
        assert failures[0].status_code == 429
        assert recorder.errors == [RATE_LIMIT_MESSAGE]
