from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from dataclasses import dataclass
import asyncio
import time

import structlog

from .errors import BackendError, OperationCancelled, from_exception
from .types import AgentResponse

logger = structlog.get_logger(__name__)


@dataclass
class AgentConfig:
    """Configuration for an agent."""
    agent_id: str
    name: str
    role: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 2048
    system_prompt: Optional[str] = None
    timeout_seconds: Optional[float] = None


class Agent(ABC):
    """Base class for the orchestrator and the specialist agents."""

    def __init__(self, config: AgentConfig, llm_client: Any):
        self.config = config
        self.llm_client = llm_client

    @property
    def id(self) -> str:
        return self.config.agent_id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def role(self) -> str:
        return self.config.role

    def get_system_prompt(self) -> str:
        """Get the system prompt for this agent."""
        if self.config.system_prompt:
            return self.config.system_prompt
        return self._default_system_prompt()

    @abstractmethod
    def _default_system_prompt(self) -> str:
        """Return the default system prompt for this agent type."""
        pass

    @abstractmethod
    async def process(
        self,
        input_data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> AgentResponse:
        """Process input and return a response."""
        pass

    async def _call_llm(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Make one non-streaming call to the LLM and return its text.

        Every failure leaves here as a SwarmError; cancellation passes through.
        """
        start_time = time.time()
        max_tokens = max_tokens or self.config.max_tokens

        try:
            call = self.llm_client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                temperature=self.config.temperature,
                max_tokens=max_tokens,
            )
            if self.config.timeout_seconds:
                response = await asyncio.wait_for(call, timeout=self.config.timeout_seconds)
            else:
                response = await call
        except OperationCancelled:
            raise
        except asyncio.TimeoutError:
            logger.warning("llm.call_timeout", agent=self.id, timeout=self.config.timeout_seconds)
            raise BackendError(f"{self.name} timed out after {self.config.timeout_seconds}s")
        except Exception as e:
            error = from_exception(e)
            logger.warning("llm.call_failed", agent=self.id, status=getattr(error, "status_code", None))
            if error is e:
                raise
            raise error from e

        content = response.choices[0].message.content or ""
        logger.info(
            "llm.call",
            agent=self.id,
            max_tokens=max_tokens,
            chars=len(content),
            elapsed_ms=int((time.time() - start_time) * 1000),
        )
        return content
