"""Server-sent event framing shared by the run endpoint and the chat relay."""

import inspect
import json
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional, Union

import structlog

from ..core.errors import from_exception
from ..core.stream import DATA_PREFIX, DONE_SENTINEL
from ..core.types import OrchestrationEvent
from ..core.utils import sanitize_trace

logger = structlog.get_logger(__name__)

DONE_FRAME = f"{DATA_PREFIX}{DONE_SENTINEL}\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def encode_event(event: Union[OrchestrationEvent, Dict[str, Any]]) -> str:
    data = event.to_dict() if isinstance(event, OrchestrationEvent) else event
    return f"{DATA_PREFIX}{json.dumps(data, ensure_ascii=False)}\n\n"


def chunk_to_dict(chunk: Any) -> Dict[str, Any]:
    """Chat-completion chunk (SDK model or plain dict) as a JSON-ready dict."""
    if isinstance(chunk, dict):
        return chunk
    if hasattr(chunk, "model_dump"):
        return chunk.model_dump(exclude_none=True)
    raise TypeError(f"Unsupported chunk type: {type(chunk).__name__}")


async def relay_chunks(first: Optional[Any], rest: AsyncIterable[Any]) -> AsyncIterator[str]:
    """
    Re-frame a backend completion stream for the client.

    `first` is the chunk already pulled to confirm the backend accepted the
    request. A failure mid-stream is reported as an `error` frame before the
    terminating sentinel.
    """
    try:
        if first is not None:
            yield encode_event(chunk_to_dict(first))
        try:
            async for chunk in rest:
                yield encode_event(chunk_to_dict(chunk))
        except Exception as e:
            message = sanitize_trace(str(from_exception(e)))
            logger.warning("relay.stream_failed", error=message)
            yield encode_event({"error": message})
        yield DONE_FRAME
    finally:
        # The client may leave mid-relay; release the backend stream either way.
        await _close_stream(rest)


async def _close_stream(stream: Any) -> None:
    """aclose() for async generators, close() for SDK stream objects."""
    close = getattr(stream, "aclose", None) or getattr(stream, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result
