#!/usr/bin/env python3
"""
Run the CEO Swarm API server.

Usage:
    python -m ceo_swarm.run                    # Run on default port 8000
    python -m ceo_swarm.run --port 8080        # Run on custom port
    python -m ceo_swarm.run --reload           # Run with hot reload (dev mode)

Environment Variables (set in .env file or export):
    GATEWAY_API_KEY=...             # Primary: OpenAI-compatible AI gateway key
    ANTHROPIC_API_KEY=sk-ant-...    # Fallback: Anthropic/Claude API key
    LLM_MODEL=google/gemini-3-flash-preview   # Optional: Model to use

Quick Start:
    1. Create a .env file with your API key
    2. Install: pip install -e .
    3. Run the server: ceo-swarm-server
    4. POST a directive to http://localhost:8000/run
"""

import argparse
from pathlib import Path

from dotenv import load_dotenv


def _load_env() -> None:
    # Project root first, then the working directory
    root_env = Path(__file__).parent.parent / ".env"
    if root_env.exists():
        load_dotenv(root_env)
        print(f"✅ Loaded .env from {root_env}")
    else:
        load_dotenv()


def main():
    _load_env()

    # Config reads the environment at import time, so import after .env is loaded
    from .config import config
    from .logging_config import configure_logging

    parser = argparse.ArgumentParser(description="Run the CEO Swarm API")
    parser.add_argument("--host", default=config.api_host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.api_port, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--log-level", default=config.log_level, help="Logging threshold")
    args = parser.parse_args()

    configure_logging(args.log_level)

    if not config.validate():
        print("⚠️  Warning: No LLM API key found. Runs and chat will answer 500.")
        print("   Set GATEWAY_API_KEY (recommended) or ANTHROPIC_API_KEY in your environment.")
    elif config.llm_provider == "anthropic":
        print("✅ Using Claude (Anthropic) as LLM provider")
    else:
        print(f"✅ Using AI gateway at {config.gateway_base_url}")

    print(f"""
╔══════════════════════════════════════════════════════════════╗
║                        CEO Swarm                              ║
╠══════════════════════════════════════════════════════════════╣
║  👑 KimiClaw (CEO)  - Breakdown, review & consolidation       ║
║  📋 Kimi CLI        - Orchestration & planning                ║
║  🎨 OpenClaw        - Creative & UX strategy                  ║
║  💻 Mac Mini        - Technical implementation                ║
║  🔌 Raspberry Pi    - Automation & integration                ║
╚══════════════════════════════════════════════════════════════╝

🚀 Starting server at http://{args.host}:{args.port}
📖 API docs at http://localhost:{args.port}/docs
""")

    import uvicorn
    uvicorn.run(
        "ceo_swarm.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload
    )


if __name__ == "__main__":
    main()
