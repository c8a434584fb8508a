"""
Streaming chat primitive.

One POST to the chat relay, answered with an OpenAI-style event stream:

    data: {"choices": [{"delta": {"content": "Hel"}}]}
    data: {"choices": [{"delta": {"content": "lo"}}]}
    data: [DONE]

Progress is reported through callbacks: on_delta per text fragment, on_event
for lifecycle markers (planning, generating, complete), then exactly one of
on_done / on_error. A user abort is reported through on_done, not on_error.
"""

import codecs
import json
import time
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar, Union

import httpx
import structlog

from . import errors
from .cancellation import CancellationToken
from .errors import OperationCancelled
from .types import AgentEvent, AgentEventType, ChatMessage
from .utils import sanitize_trace

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def extract_delta(payload: Any) -> Optional[str]:
    """Pull `choices[0].delta.content` out of one chat-completion chunk."""
    try:
        content = payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return content if isinstance(content, str) and content else None


def extract_relay_item(payload: Any) -> Union[str, errors.BackendError, None]:
    """Delta text, or the failure carried by a relay `{"error": "..."}` frame."""
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return errors.BackendError(payload["error"] or "AI service error")
    return extract_delta(payload)


def _frame_payload(line: str) -> Optional[str]:
    if line.endswith("\r"):
        line = line[:-1]
    if line.startswith(":") or not line.strip():
        return None
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].strip()


class SSEFrameParser(Generic[T]):
    """
    Incremental parser for newline-delimited `data: ` frames.

    Bytes may arrive split anywhere, including inside a UTF-8 sequence or a
    JSON object; nothing is parsed until its line is complete. A complete line
    that fails to parse is pushed back once and retried with the next chunk,
    then dropped if it still fails. `[DONE]` stops parsing for good.
    """

    def __init__(self, extract: Callable[[Any], Optional[T]] = extract_delta):
        self._extract = extract
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._deferred: Optional[str] = None
        self.done = False

    def feed(self, chunk: Union[bytes, str]) -> List[T]:
        if self.done:
            return []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        items: List[T] = []
        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]

            payload = _frame_payload(line)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self.done = True
                break

            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                if line != self._deferred:
                    self._deferred = line
                    self._buffer = line + "\n" + self._buffer
                    break
                logger.debug("sse.frame_skipped", frame=payload[:80])
                self._deferred = None
                continue

            self._deferred = None
            self._collect(data, items)
        return items

    def flush(self) -> List[T]:
        """Parse whatever is still buffered once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        if self.done or not remaining.strip():
            return []

        items: List[T] = []
        for line in remaining.split("\n"):
            payload = _frame_payload(line)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self.done = True
                break
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                continue
            self._collect(data, items)
        return items

    def _collect(self, data: Any, items: List[T]) -> None:
        try:
            item = self._extract(data)
        except (KeyError, ValueError, TypeError):
            logger.debug("sse.frame_unrecognized")
            return
        if item is not None:
            items.append(item)


def parse_error_body(raw: bytes) -> Optional[str]:
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return None


def _message_dict(message: Union[ChatMessage, Dict[str, str]]) -> Dict[str, str]:
    if isinstance(message, ChatMessage):
        return message.to_dict()
    return {"role": message["role"], "content": message["content"]}


async def stream_agent_chat(
    messages: Sequence[Union[ChatMessage, Dict[str, str]]],
    agent_id: str,
    *,
    on_delta: Callable[[str], None],
    on_event: Callable[[AgentEvent], None],
    on_done: Callable[[], None],
    on_error: Callable[[str], None],
    on_failure: Optional[Callable[[errors.SwarmError], None]] = None,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    cancel: Optional[CancellationToken] = None,
    url: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> None:
    """
    Run one streaming exchange with the chat relay.

    Never raises for transport, HTTP or parse problems; those reach on_error
    with a short message, and a relay `error` frame counts as one. The
    normalized error, HTTP status included, also goes to on_failure when
    given. Firing `cancel` stops the read and reports on_done.
    """
    if url is None:
        from ..config import config
        url = config.chat_url

    on_event(AgentEvent(agent_id, AgentEventType.PLANNING, "Analyzing request..."))

    body: Dict[str, Any] = {
        "messages": [_message_dict(m) for m in messages],
        "agentId": agent_id,
    }
    if model:
        body["model"] = model
    if max_tokens is not None:
        body["maxTokens"] = max_tokens
    if temperature is not None:
        body["temperature"] = temperature

    client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None))
    start_time = time.time()

    async def consume() -> None:
        async with client.stream("POST", url, json=body) as response:
            if not response.is_success:
                raw = await response.aread()
                raise errors.from_status(response.status_code, parse_error_body(raw))

            on_event(AgentEvent(agent_id, AgentEventType.GENERATING, "Generating response..."))

            parser: SSEFrameParser[Union[str, errors.BackendError]] = SSEFrameParser(extract_relay_item)
            received = False

            def deliver(items: List[Union[str, errors.BackendError]]) -> None:
                for item in items:
                    if isinstance(item, errors.BackendError):
                        raise item
                    on_delta(item)

            async for chunk in response.aiter_bytes():
                received = received or bool(chunk)
                deliver(parser.feed(chunk))
                if parser.done:
                    break
            if not received:
                raise errors.BackendError("No response stream", response.status_code)
            deliver(parser.flush())

    try:
        if cancel is not None:
            await cancel.guard(consume())
        else:
            await consume()
    except OperationCancelled:
        on_event(AgentEvent(agent_id, AgentEventType.COMPLETE, "Stopped by user"))
        on_done()
        return
    except Exception as exc:
        failure = errors.from_exception(exc)
        logger.warning(
            "chat.stream_failed",
            agent=agent_id,
            status=getattr(failure, "status_code", None),
            error=sanitize_trace(str(failure)),
        )
        if on_failure is not None:
            on_failure(failure)
        on_error(sanitize_trace(str(failure)))
        return
    finally:
        if http_client is None:
            await client.aclose()

    logger.debug("chat.stream_done", agent=agent_id, elapsed_ms=int((time.time() - start_time) * 1000))
    on_event(AgentEvent(agent_id, AgentEventType.COMPLETE, "Task complete"))
    on_done()
