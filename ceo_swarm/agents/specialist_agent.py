import time
from typing import Dict, Any, Optional

import structlog

from ..core.base_agent import Agent, AgentConfig
from ..core.errors import OperationCancelled, SwarmError
from ..core.types import AgentResponse, DepthMode
from ..core.utils import sanitize_trace
from .registry import AgentProfile

logger = structlog.get_logger(__name__)


class SpecialistAgent(Agent):
    """
    Specialist Agent: executes one subtask of the CEO's breakdown.

    Every registered agent runs through this class during parallel work; the
    profile supplies the identity and the short role line used as the system
    prompt.
    """

    def __init__(self, profile: AgentProfile, llm_client: Any, model: str, **config_overrides):
        config = AgentConfig(
            agent_id=profile.id,
            name=profile.name,
            role=profile.role,
            model=model,
            system_prompt=profile.system_prompt,
            **config_overrides,
        )
        super().__init__(config, llm_client)
        self.profile = profile

    def _default_system_prompt(self) -> str:
        return "You are a specialist AI agent."

    def build_prompt(self, directive: str, breakdown: str, depth: DepthMode) -> str:
        return f"""Based on the CEO's strategic breakdown, execute YOUR assigned subtask.

CEO Directive: "{directive}"
Strategic Plan:
{breakdown}

You are {self.id}. Focus ONLY on your assigned subtask. Produce comprehensive, actionable output.
{depth.guidance}"""

    async def process(
        self,
        input_data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> AgentResponse:
        """
        Work on this agent's share of the breakdown.

        Args:
            input_data: 'directive', 'breakdown', optional 'depth' and 'max_tokens'
            context: unused

        Returns:
            AgentResponse with the full output text, or success=False with the
            error message. Cancellation is raised, not reported.
        """
        start_time = time.time()
        directive = input_data.get("directive", "")
        breakdown = input_data.get("breakdown", "")
        depth = DepthMode(input_data.get("depth", DepthMode.BALANCED))

        if not directive:
            return AgentResponse(
                agent_id=self.id,
                role=self.role,
                content="",
                success=False,
                error="No directive provided"
            )

        messages = [
            {"role": "system", "content": self.get_system_prompt()},
            {"role": "user", "content": self.build_prompt(directive, breakdown, depth)},
        ]

        try:
            content = await self._call_llm(messages, max_tokens=input_data.get("max_tokens"))
        except OperationCancelled:
            raise
        except SwarmError as e:
            logger.warning("specialist.failed", agent=self.id, error=sanitize_trace(str(e)))
            return AgentResponse(
                agent_id=self.id,
                role=self.role,
                content="",
                success=False,
                error=str(e),
                metadata={"status_code": getattr(e, "status_code", None)},
                execution_time_ms=int((time.time() - start_time) * 1000)
            )

        return AgentResponse(
            agent_id=self.id,
            role=self.role,
            content=content,
            success=True,
            metadata={"depth": depth.value},
            execution_time_ms=int((time.time() - start_time) * 1000)
        )
