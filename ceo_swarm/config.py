"""
Configuration for the CEO Swarm.

Environment Variables:
    GATEWAY_API_KEY       - Primary: key for the OpenAI-compatible AI gateway
    GATEWAY_BASE_URL      - Optional: gateway base URL (default: Lovable AI gateway)
    ANTHROPIC_API_KEY     - Fallback: Anthropic/Claude API key (if no gateway key)
    LLM_PROVIDER          - Optional: "gateway" or "anthropic" (auto-detected)
    LLM_MODEL             - Optional: default model (default: google/gemini-3-flash-preview)
    MAX_TOKENS_UPPER_BOUND - Optional: hard per-run token ceiling (default: 16384)
    SWARM_API_URL         - Optional: base URL the client engines talk to
    LOG_LEVEL             - Optional: logging threshold (default: INFO)

Create a .env file in the project root with:

    GATEWAY_API_KEY=your-gateway-key
    LLM_MODEL=google/gemini-3-flash-preview
"""

import os
from dataclasses import dataclass
from typing import Optional

from .core.budget import MAX_TOKENS_UPPER_BOUND

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1"
DEFAULT_MODEL = "google/gemini-3-flash-preview"


@dataclass
class Config:
    """Application configuration."""

    # LLM Settings (OpenAI-compatible gateway is primary)
    gateway_api_key: Optional[str] = None
    gateway_base_url: str = DEFAULT_GATEWAY_URL
    anthropic_api_key: Optional[str] = None  # Fallback
    llm_model: str = DEFAULT_MODEL
    llm_provider: str = "gateway"

    # Run defaults
    max_tokens_upper_bound: int = MAX_TOKENS_UPPER_BOUND
    default_max_tokens: int = 8192
    default_max_tool_calls: int = 20
    chat_max_tokens: int = 2048
    chat_temperature: float = 0.7
    timeout_seconds: int = 120

    # API Settings
    swarm_api_url: str = "http://localhost:8000"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        gateway_key = os.getenv("GATEWAY_API_KEY")
        anthropic_key = os.getenv("ANTHROPIC_API_KEY")

        # Auto-detect provider based on available keys
        if gateway_key:
            provider = "gateway"
        elif anthropic_key:
            provider = "anthropic"
        else:
            provider = "gateway"

        return cls(
            gateway_api_key=gateway_key,
            gateway_base_url=os.getenv("GATEWAY_BASE_URL", DEFAULT_GATEWAY_URL),
            anthropic_api_key=anthropic_key,
            llm_model=os.getenv("LLM_MODEL", DEFAULT_MODEL),
            llm_provider=os.getenv("LLM_PROVIDER", provider),
            max_tokens_upper_bound=int(os.getenv("MAX_TOKENS_UPPER_BOUND", str(MAX_TOKENS_UPPER_BOUND))),
            default_max_tokens=int(os.getenv("DEFAULT_MAX_TOKENS", "8192")),
            default_max_tool_calls=int(os.getenv("DEFAULT_MAX_TOOL_CALLS", "20")),
            chat_max_tokens=int(os.getenv("CHAT_MAX_TOKENS", "2048")),
            chat_temperature=float(os.getenv("CHAT_TEMPERATURE", "0.7")),
            timeout_seconds=int(os.getenv("TIMEOUT_SECONDS", "120")),
            swarm_api_url=os.getenv("SWARM_API_URL", "http://localhost:8000"),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> bool:
        """Check if the selected provider has credentials."""
        return bool(self.get_api_key())

    def get_api_key(self) -> Optional[str]:
        """Get the API key for the selected provider."""
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return self.gateway_api_key

    @property
    def chat_url(self) -> str:
        return f"{self.swarm_api_url.rstrip('/')}/agent-chat"

    @property
    def run_url(self) -> str:
        return f"{self.swarm_api_url.rstrip('/')}/run"


# Global config instance
config = Config.from_env()
