"""
CEO Swarm

A multi-agent orchestration engine that drives a small team of AI agents
through a fixed four-phase workflow:
- Strategic Breakdown: the CEO (KimiClaw) splits a directive into subtasks
- Parallel Work: each specialist executes its subtask, one at a time
- Internal Review: the CEO critiques the combined outputs
- Consolidation: the CEO writes the executive deliverable

Key Features:
- Server-sent event stream of every phase and agent step
- Client engines that rebuild run state from that stream, or run locally
- Abort, pause/resume and run timeouts via a first-class cancellation token
- Token budget split evenly across the run's generative calls
- Best-effort persistence of every run record
"""

__version__ = "1.0.0"
__author__ = "CEO Swarm Team"
