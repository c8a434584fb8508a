from typing import Optional

import httpx
import structlog

from ..core import errors
from ..core.cancellation import CancellationToken
from ..core.stream import SSEFrameParser, parse_error_body
from ..core.types import OrchestrationEvent, RunConfig
from .base import STREAM_ENDED_MESSAGE, SwarmEngine

logger = structlog.get_logger(__name__)


class RemoteSwarmEngine(SwarmEngine):
    """
    Projects the server orchestrator's event stream into local run state.

    The server owns the run and its persisted record; this engine only posts
    the run-start request and reads frames until the `[DONE]` sentinel.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.base_url = base_url
        self.http_client = http_client

    @property
    def run_url(self) -> str:
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/run"
        from ..config import config
        return config.run_url

    async def _execute(self, config: RunConfig, token: CancellationToken) -> None:
        client = self.http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None))
        try:
            await token.guard(self._consume(client, config))
        finally:
            if self.http_client is None:
                await client.aclose()

    async def _consume(self, client: httpx.AsyncClient, config: RunConfig) -> None:
        async with client.stream("POST", self.run_url, json=config.to_request()) as response:
            if not response.is_success:
                raw = await response.aread()
                raise errors.from_status(response.status_code, parse_error_body(raw))

            run_id = response.headers.get("x-run-id")
            if run_id:
                self._state.run_id = run_id
                self._notify()

            parser: SSEFrameParser[OrchestrationEvent] = SSEFrameParser(OrchestrationEvent.from_dict)
            received = 0
            async for chunk in response.aiter_bytes():
                for event in parser.feed(chunk):
                    received += 1
                    self.project_event(event)
                if parser.done:
                    break
            for event in parser.flush():
                received += 1
                self.project_event(event)

        logger.debug("engine.stream_closed", run_id=self._state.run_id, events=received, done=parser.done)
        if not self._state.phase.is_terminal:
            raise errors.StreamError(STREAM_ENDED_MESSAGE)
