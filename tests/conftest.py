"""Shared fixtures for CEO Swarm tests."""

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from ceo_swarm.core.types import RunConfig
from ceo_swarm.storage.runs import InMemoryRunStore

BREAKDOWN = """**kimi-cli**: Build the launch timeline.
**openclaw**: Write the hero copy.
**mac-mini**: Implement the page.
**raspberry-pi**: Wire the signup webhook."""

REVIEW = "No conflicts. Gap: analytics events are missing."

CONSOLIDATED = """## Executive Summary
The landing page is ready to launch.

## Key Decisions
- One call to action

## Deliverables
1. Timeline
2. Copy
3. Page
4. Webhook

## Next Steps
- Ship it"""


def _last_user(messages: List[Dict[str, str]]) -> str:
    return next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")


def _system(messages: List[Dict[str, str]]) -> str:
    return next((m["content"] for m in messages if m["role"] == "system"), "")


def scripted_reply(messages: List[Dict[str, str]]) -> str:
    """Answer each phase's prompt with canned text."""
    user = _last_user(messages)
    if "Decompose this executive directive" in user:
        return BREAKDOWN
    if "FINAL EXECUTIVE OUTPUT" in user:
        return CONSOLIDATED
    if "review all agent outputs" in user:
        return REVIEW
    name = _system(messages).split(",")[0].replace("You are ", "")
    return f"{name} deliverable for the assigned subtask."


def split_text(text: str, parts: int = 3) -> List[str]:
    size = max(1, len(text) // parts)
    return [text[i:i + size] for i in range(0, len(text), size)]


def sse_body(text: str) -> bytes:
    """Chat-completion event stream carrying `text`, ended by the sentinel."""
    frames = [
        f"data: {json.dumps({'choices': [{'index': 0, 'delta': {'content': piece}}]})}\n\n"
        for piece in split_text(text)
    ]
    frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


def parse_frames(body: str) -> List[Any]:
    """Decode a `data: ` frame stream; the sentinel comes back as the string '[DONE]'."""
    frames = []
    for block in body.split("\n\n"):
        if not block.startswith("data: "):
            continue
        payload = block[len("data: "):]
        frames.append(payload if payload == "[DONE]" else json.loads(payload))
    return frames


class ScriptedLLMClient:
    """OpenAI-shaped fake backend: canned replies, optional failure on the Nth call."""

    def __init__(
        self,
        reply: Callable[[List[Dict[str, str]]], str] = scripted_reply,
        fail_on_call: Optional[int] = None,
        error: Optional[BaseException] = None,
    ):
        self.reply = reply
        self.fail_on_call = fail_on_call
        self.error = error or RuntimeError("backend exploded")
        self.calls: List[Dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=self)

    async def create(self, model=None, messages=None, max_tokens=None, temperature=None, stream=False, **kwargs):
        self.calls.append({
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": stream,
        })
        if self.fail_on_call is not None and len(self.calls) >= self.fail_on_call:
            raise self.error

        await asyncio.sleep(0)
        text = self.reply(messages or [])
        if stream:
            return self._stream(text)
        message = SimpleNamespace(content=text, role="assistant", tool_calls=None)
        return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])

    async def _stream(self, text: str):
        for piece in split_text(text):
            yield {"object": "chat.completion.chunk", "choices": [{"index": 0, "delta": {"content": piece}}]}


def relay_transport(
    reply: Callable[[List[Dict[str, str]]], str] = scripted_reply,
    status_code: int = 200,
    error: str = "backend failure",
    requests: Optional[List[Dict[str, Any]]] = None,
) -> httpx.MockTransport:
    """Fake chat relay for the streaming primitive and the local engine."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if requests is not None:
            requests.append(body)
        if status_code != 200:
            return httpx.Response(status_code, json={"error": error})
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=sse_body(reply(body["messages"])),
        )

    return httpx.MockTransport(handler)


RELAY_URL = "http://relay.test/agent-chat"


@pytest.fixture
def scripted_llm() -> ScriptedLLMClient:
    return ScriptedLLMClient()


@pytest.fixture
def run_store() -> InMemoryRunStore:
    return InMemoryRunStore()


@pytest.fixture
def landing_page_config() -> RunConfig:
    return RunConfig(directive="Launch a landing page", depth="balanced")
