from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..agents.registry import ORCHESTRATOR_AGENT_ID
from ..core.cancellation import CancellationToken
from ..core.errors import SwarmError
from ..core.stream import stream_agent_chat
from ..core.types import AgentEvent

DeltaListener = Callable[[str, str], None]


class AgentChatClient:
    """
    OpenAI-shaped client whose completions go through the chat relay stream.

    Lets the agents run unchanged inside the client-local engine: each
    `chat.completions.create()` becomes one stream_agent_chat exchange, with
    every delta also handed to `on_delta(agent_id, text)`.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        cancel: Optional[CancellationToken] = None,
        on_delta: Optional[DeltaListener] = None,
        on_event: Optional[Callable[[AgentEvent], None]] = None,
        agent_id: str = ORCHESTRATOR_AGENT_ID,
    ):
        self.url = url
        self.http_client = http_client
        self.cancel = cancel
        self.on_delta = on_delta
        self.on_event = on_event
        self.agent_id = agent_id
        self.chat = self  # For compatibility with OpenAI interface
        self.completions = self

    def bind(self, agent_id: str) -> "AgentChatClient":
        """Same relay and hooks, speaking as another agent."""
        return AgentChatClient(
            self.url,
            self.http_client,
            cancel=self.cancel,
            on_delta=self.on_delta,
            on_event=self.on_event,
            agent_id=agent_id,
        )

    async def create(
        self,
        model: Optional[str] = None,
        messages: Optional[List[Dict[str, str]]] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> Any:
        parts: List[str] = []
        failures: List[SwarmError] = []

        def handle_delta(text: str) -> None:
            parts.append(text)
            if self.on_delta is not None:
                self.on_delta(self.agent_id, text)

        await stream_agent_chat(
            messages or [],
            self.agent_id,
            on_delta=handle_delta,
            on_event=self.on_event or (lambda event: None),
            on_done=lambda: None,
            on_error=lambda message: None,
            on_failure=failures.append,
            model=model or None,
            max_tokens=max_tokens,
            temperature=temperature,
            cancel=self.cancel,
            url=self.url,
            http_client=self.http_client,
        )

        if failures:
            raise failures[0]
        # A stopped stream reports on_done; surface it as cancellation here.
        if self.cancel is not None:
            self.cancel.raise_if_cancelled()

        message = SimpleNamespace(content="".join(parts), role="assistant", tool_calls=None)
        return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")], model=model)
