from datetime import datetime
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..agents.ceo_agent import CEOAgent
from ..agents.registry import AGENTS, AVAILABLE_MODELS, ORCHESTRATOR_AGENT_ID, find_agent
from ..config import Config, config as default_config
from ..core.errors import (
    ConfigurationError,
    QuotaExceededError,
    RateLimitError,
    RunNotFoundError,
    StoreError,
    from_exception,
)
from ..core.budget import TokenBudget
from ..core.llm import LLMProvider, create_llm_client
from ..core.types import DepthMode, IntegrationPermissions, RunConfig
from ..core.utils import sanitize_trace
from ..storage.runs import InMemoryRunStore, RunStore
from .runner import OrchestratorRun
from .streaming import SSE_HEADERS, relay_chunks

logger = structlog.get_logger(__name__)

NOT_CONFIGURED_MESSAGE = "AI gateway not configured"


# Request Models
class Budgets(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_tokens: int = Field(default=8192, alias="maxTokens", gt=0)
    max_tool_calls: int = Field(default=20, alias="maxToolCalls", ge=0)


class ToolPermissions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    github: bool = False
    slack: bool = False
    docs: bool = False
    browser_automation: bool = Field(default=False, alias="browserAutomation")


class RunRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    goal: Optional[str] = Field(default=None, description="The executive directive")
    mode: DepthMode = Field(default=DepthMode.BALANCED, description="'fast', 'balanced' or 'deep'")
    agents: Optional[List[str]] = Field(default=None, description="Agent ids, registry order by default")
    model: Optional[str] = None
    budgets: Optional[Budgets] = None
    tool_permissions: Optional[ToolPermissions] = Field(default=None, alias="toolPermissions")
    device_id: Optional[str] = Field(default=None, alias="deviceId")


class ChatMessageModel(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: Optional[List[ChatMessageModel]] = None
    agent_id: Optional[str] = Field(default=None, alias="agentId")
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens")
    temperature: Optional[float] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    settings: Optional[Config] = None,
    llm_client: Any = None,
    store: Optional[RunStore] = None,
) -> FastAPI:
    """
    Build the orchestrator API.

    Args:
        settings: configuration, the environment-loaded config by default
        llm_client: backend client; created from settings on first use if absent
        store: run store, in-memory by default
    """
    settings = settings or default_config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api.start", provider=settings.llm_provider, configured=app.state.llm_client is not None or settings.validate())
        yield
        logger.info("api.stop")

    app = FastAPI(
        title="CEO Swarm",
        description="""
    A multi-agent orchestration engine featuring:
    - **KimiClaw (CEO)**: breaks a directive down, reviews, consolidates
    - **Kimi CLI**: orchestration and planning
    - **OpenClaw**: creative and UX strategy
    - **Mac Mini**: technical implementation
    - **Raspberry Pi**: automation and integration

    Runs stream their progress as server-sent events.
    """,
        version=__version__,
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.llm_client = llm_client
    app.state.store = store or InMemoryRunStore()

    def configured() -> bool:
        return app.state.llm_client is not None or settings.validate()

    def get_llm_client() -> Any:
        if app.state.llm_client is None:
            try:
                provider = LLMProvider(settings.llm_provider)
            except ValueError:
                raise ConfigurationError(f"Unknown provider: {settings.llm_provider}") from None
            app.state.llm_client = create_llm_client(
                provider,
                api_key=settings.get_api_key(),
                model=settings.llm_model,
                base_url=settings.gateway_base_url,
            )
        return app.state.llm_client

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error(400, f"Invalid request: {details}" if details else "Invalid request")

    # API Endpoints
    @app.get("/")
    async def root():
        return {
            "name": "CEO Swarm",
            "version": __version__,
            "status": "running",
            "agents": [agent.id for agent in AGENTS],
        }

    @app.get("/api")
    async def api_info():
        """API info endpoint."""
        return {
            "name": "CEO Swarm",
            "version": __version__,
            "status": "running",
            "agents": [agent.id for agent in AGENTS],
            "features": [
                "Four-phase orchestration (breakdown, work, review, consolidation)",
                "Server-sent event stream per run",
                "Run records with phase-by-phase persistence",
                "Per-agent chat relay",
                "Token budget split across generative calls",
            ]
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "llm_provider": settings.llm_provider,
            "llm_model": settings.llm_model,
            "gateway_configured": bool(settings.gateway_api_key),
            "anthropic_configured": bool(settings.anthropic_api_key),
        }

    @app.get("/agents")
    async def list_agents():
        return [agent.to_dict() for agent in AGENTS]

    @app.get("/models")
    async def list_models():
        return list(AVAILABLE_MODELS)

    @app.post("/run")
    @app.post("/api/ceo/run")
    async def start_run(request: RunRequest):
        """
        Start a swarm run and stream its events.

        The response is a `text/event-stream` of OrchestrationEvent frames,
        terminated by `data: [DONE]`.
        """
        if not configured():
            return _error(500, NOT_CONFIGURED_MESSAGE)
        if not request.goal or not request.goal.strip():
            return _error(400, "goal is required")

        agent_ids = list(dict.fromkeys(request.agents or [agent.id for agent in AGENTS]))
        if not agent_ids:
            return _error(400, "At least one agent is required")
        unknown = [a for a in agent_ids if find_agent(a) is None]
        if unknown:
            return _error(400, f"Unknown agent: {', '.join(unknown)}")

        budgets = request.budgets or Budgets(
            max_tokens=settings.default_max_tokens,
            max_tool_calls=settings.default_max_tool_calls,
        )
        permissions = request.tool_permissions or ToolPermissions()
        model = request.model or settings.llm_model

        try:
            llm = get_llm_client()
        except ConfigurationError as e:
            return _error(500, str(e))

        try:
            TokenBudget.allocate(budgets.max_tokens, len(agent_ids), settings.max_tokens_upper_bound)
            run_config = RunConfig(
                directive=request.goal,
                depth=request.mode,
                model=model,
                token_cap=budgets.max_tokens,
                tool_call_limit=budgets.max_tool_calls,
                integrations=IntegrationPermissions(
                    github=permissions.github,
                    slack=permissions.slack,
                    docs=permissions.docs,
                ),
                browser_automation=permissions.browser_automation,
                agents=tuple(agent_ids),
                device_id=request.device_id,
            )
            ceo = CEOAgent.for_agents(
                agent_ids,
                llm,
                model,
                max_tokens_upper_bound=settings.max_tokens_upper_bound,
                timeout_seconds=settings.timeout_seconds,
            )
        except ConfigurationError as e:
            return _error(400, str(e))

        run = OrchestratorRun(
            ceo,
            run_config,
            app.state.store,
            model,
            budgets=budgets.model_dump(by_alias=True),
            tool_permissions=permissions.model_dump(by_alias=True),
        )
        try:
            await run.start()
        except StoreError as e:
            logger.error("run.create_failed", error=str(e))
            return _error(500, str(e) or "Failed to create run")

        return StreamingResponse(
            run.frames(),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "X-Run-Id": run.run_id},
        )

    @app.get("/runs")
    async def list_runs(limit: int = Query(default=20, ge=1, le=100)):
        """List recent runs, newest first."""
        runs = await app.state.store.list_runs(limit)
        return [r.summary() for r in runs]

    @app.get("/runs/{run_id}")
    async def get_run(run_id: str):
        """Get the full record of one run."""
        try:
            record = await app.state.store.get(run_id)
        except RunNotFoundError:
            return _error(404, "Run not found")
        return record.to_dict()

    @app.post("/agent-chat")
    async def agent_chat(request: ChatRequest):
        """
        Relay a chat exchange to the backend as a completion stream.

        The agent's persona is prepended unless the caller supplied its own
        system message.
        """
        if request.messages is None:
            return _error(400, "messages array is required")
        if not configured():
            return _error(500, NOT_CONFIGURED_MESSAGE)

        messages: List[Dict[str, str]] = [m.model_dump() for m in request.messages]
        if not any(m["role"] == "system" for m in messages):
            profile = find_agent(request.agent_id or "") or find_agent(ORCHESTRATOR_AGENT_ID)
            messages.insert(0, {"role": "system", "content": profile.chat_prompt})

        try:
            client = get_llm_client()
            stream = await client.chat.completions.create(
                model=request.model or settings.llm_model,
                messages=messages,
                max_tokens=request.max_tokens or settings.chat_max_tokens,
                temperature=request.temperature if request.temperature is not None else settings.chat_temperature,
                stream=True,
            )
            chunks = stream.__aiter__()
            try:
                first = await chunks.__anext__()
            except StopAsyncIteration:
                first = None
        except ConfigurationError as e:
            return _error(500, str(e))
        except Exception as e:
            error = from_exception(e)
            logger.warning(
                "relay.backend_error",
                agent=request.agent_id,
                status=getattr(error, "status_code", None),
                error=sanitize_trace(str(error)),
            )
            if isinstance(error, RateLimitError):
                return _error(429, str(error))
            if isinstance(error, QuotaExceededError):
                return _error(402, str(error))
            return _error(500, "AI service error")

        return StreamingResponse(
            relay_chunks(first, stream),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app


app = create_app()


# Run with: uvicorn ceo_swarm.api.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=default_config.api_host, port=default_config.api_port)
