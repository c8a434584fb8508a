"""
Error taxonomy for the CEO swarm.

Transport and backend failures are normalized into BackendError subclasses at
the edge (LLM clients, streaming primitive). Everything above that edge only
has to distinguish three outcomes: success, failure (a SwarmError), and
cancellation (OperationCancelled, which is not a failure).
"""

import asyncio
from typing import Optional, TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .types import CancelReason


RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait and try again."
QUOTA_MESSAGE = "Usage limit reached. Please add credits to continue."


class SwarmError(Exception):
    """Base class for all CEO swarm errors."""


class ConfigurationError(SwarmError):
    """Invalid run configuration or missing credentials."""


class BackendError(SwarmError):
    """The generative backend could not be reached or refused the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(BackendError):
    def __init__(self, message: Optional[str] = None, status_code: int = 429):
        super().__init__(message or RATE_LIMIT_MESSAGE, status_code)


class QuotaExceededError(BackendError):
    def __init__(self, message: Optional[str] = None, status_code: int = 402):
        super().__init__(message or QUOTA_MESSAGE, status_code)


class StreamError(SwarmError):
    """An event stream ended in a state that cannot be recovered."""


class StoreError(SwarmError):
    """The run store rejected an insert, update or lookup."""


class RunNotFoundError(StoreError):
    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


class OperationCancelled(SwarmError):
    """Raised at an await point once the run's cancellation token fires."""

    def __init__(self, reason: "CancelReason", message: Optional[str] = None):
        super().__init__(message or f"Operation cancelled ({reason.value})")
        self.reason = reason


def from_status(status: int, message: Optional[str] = None) -> BackendError:
    """Build the BackendError matching an HTTP status from the backend."""
    # Limit errors keep their fixed user-facing wording; the backend text is dropped.
    if status == 429:
        return RateLimitError()
    if status == 402:
        return QuotaExceededError()
    return BackendError(message or f"Request failed ({status})", status)


def from_exception(exc: BaseException) -> SwarmError:
    """
    Normalize an exception raised by an LLM SDK or HTTP client.

    SDK status errors (openai / anthropic APIStatusError) expose `status_code`;
    those are mapped through from_status so rate limits keep their message.
    """
    if isinstance(exc, SwarmError):
        return exc

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return from_status(status, _sdk_message(exc))

    if isinstance(exc, asyncio.TimeoutError):
        return BackendError("Timed out waiting for the model")
    if isinstance(exc, httpx.HTTPError):
        return BackendError(f"Network error: {exc}" if str(exc) else "Network error")

    return BackendError(f"LLM call failed: {exc}" if str(exc) else f"LLM call failed: {type(exc).__name__}")


def _sdk_message(exc: BaseException) -> Optional[str]:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return getattr(exc, "message", None) or str(exc) or None
