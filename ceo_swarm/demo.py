#!/usr/bin/env python3
"""
Demo script for the CEO Swarm.

Runs one directive through the four phases and prints the event stream,
either in-process (no server needed) or against a running API server.

Usage:
    python -m ceo_swarm.demo "Launch a landing page for our new product"
    python -m ceo_swarm.demo --mock "Plan a developer conference"
    python -m ceo_swarm.demo --remote http://localhost:8000 "Design an onboarding flow"
"""

import asyncio
import argparse
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

from dotenv import load_dotenv

# Check the project root first, then the working directory
_root_env = Path(__file__).parent.parent / ".env"
if _root_env.exists():
    load_dotenv(_root_env)
else:
    load_dotenv()


class MockLLMClient:
    """Mock LLM client for demo without API keys."""

    class ChatCompletions:
        async def create(self, **kwargs):
            messages = kwargs.get("messages", [])
            user_msg = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
            system_msg = next((m["content"] for m in messages if m["role"] == "system"), "")

            # Simulate the phase from the prompt wording
            if "Decompose this executive directive" in user_msg:
                response = """**kimi-cli**: Build the launch timeline and task board with owners and deadlines.
**openclaw**: Draft the hero copy, value props and three headline variants.
**mac-mini**: Implement the page with a responsive layout and a signup form.
**raspberry-pi**: Wire the signup webhook to the CRM and set up uptime monitoring."""
            elif "FINAL EXECUTIVE OUTPUT" in user_msg:
                response = """## Executive Summary
The team has a launch-ready plan: copy, implementation and automation are aligned on a two-week timeline.

## Key Decisions
- Ship a single-page layout with one primary call to action
- Route signups straight into the CRM

## Deliverables
1. Launch timeline with owners
2. Hero copy with three A/B variants
3. Responsive page with signup form
4. Signup webhook and uptime monitor

## Next Steps
- Approve the headline variant
- Schedule the launch announcement"""
            elif "review all agent outputs" in user_msg:
                response = "No conflicts found. Gap: analytics events are not defined yet; add them before launch."
            else:
                name = system_msg.split(",")[0].replace("You are ", "") or "Agent"
                response = f"{name} output: concrete steps for the assigned subtask, ready for review."

            await asyncio.sleep(0.05)
            message = SimpleNamespace(content=response, role="assistant", tool_calls=None)
            return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])

    def __init__(self):
        self.chat = SimpleNamespace(completions=self.ChatCompletions())


def print_event(event) -> None:
    icon = {"phase": "📍", "agent_message": "🤖", "error": "❌", "final": "✅"}.get(event.type.value, "•")
    indent = "" if event.type.value == "phase" else "   "
    print(f"{indent}{icon} [{event.actor}] {event.safe_trace}")


async def run_local(directive: str, mode: str, max_tokens: int, use_mock: bool) -> None:
    from .agents.ceo_agent import CEOAgent
    from .config import config
    from .core.errors import SwarmError
    from .core.types import RunConfig

    if use_mock or not config.validate():
        print("ℹ️  Using mock LLM client (no API key found)\n")
        llm_client = MockLLMClient()
        model = "mock-model"
    else:
        from .core.llm import create_llm_client
        print(f"✅ Using {config.llm_provider} provider with {config.llm_model}\n")
        llm_client = create_llm_client()
        model = config.llm_model

    run_config = RunConfig(directive=directive, depth=mode, token_cap=max_tokens)
    ceo = CEOAgent.for_agents(None, llm_client, model, max_tokens_upper_bound=config.max_tokens_upper_bound)

    print(f"🤖 Team: {', '.join(ceo.agent_ids)}\n")
    print("🚀 Starting swarm...\n")
    start_time = datetime.now()
    try:
        result = await ceo.run(run_config, print_event)
    except SwarmError as e:
        print(f"\n❌ Run failed: {e}")
        return

    elapsed = (datetime.now() - start_time).total_seconds()
    print(f"\n✅ Swarm complete in {elapsed:.1f}s (run {result.run_id})\n")
    print("-" * 60)
    print(result.final_output)


async def run_remote(base_url: str, directive: str, mode: str, max_tokens: int) -> None:
    from .core.types import PHASE_LABELS, RunConfig
    from .engine.remote import RemoteSwarmEngine

    engine = RemoteSwarmEngine(base_url, on_agent_event=lambda e: print(f"   • [{e.agent_id}] {e.label}"))
    print(f"🌐 Streaming from {engine.run_url}\n")

    state = await engine.run(RunConfig(directive=directive, depth=mode, token_cap=max_tokens))

    print(f"\n📍 {PHASE_LABELS[state.phase]}")
    for task in state.tasks:
        print(f"   {task.agent_id:<14} {task.status.value}")
    print("-" * 60)
    if state.error:
        print(f"❌ Error: {state.error}")
    else:
        print(state.final_output or "(no output)")


def main():
    parser = argparse.ArgumentParser(description="CEO Swarm Demo")
    parser.add_argument("directive", nargs="?", default="Launch a landing page for our new product",
                        help="Executive directive for the swarm")
    parser.add_argument("--mock", action="store_true", help="Use mock LLM (no API key needed)")
    parser.add_argument("--remote", metavar="URL", help="Stream the run from a CEO Swarm server")
    parser.add_argument("--mode", choices=["fast", "balanced", "deep"], default="balanced", help="Depth mode")
    parser.add_argument("--max-tokens", type=int, default=8192, help="Token budget for the whole run")
    parser.add_argument("--log-level", default="WARNING", help="Logging threshold")
    args = parser.parse_args()

    from .logging_config import configure_logging
    configure_logging(args.log_level)

    print("\n" + "=" * 60)
    print("👑 CEO SWARM DEMO")
    print("=" * 60)
    print(f"\n📝 Directive: {args.directive}\n")

    if args.remote:
        asyncio.run(run_remote(args.remote, args.directive, args.mode, args.max_tokens))
    else:
        asyncio.run(run_local(args.directive, args.mode, args.max_tokens, args.mock))

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
