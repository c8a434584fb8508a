from dataclasses import dataclass

from .errors import ConfigurationError

MAX_TOKENS_UPPER_BOUND = 16384


@dataclass(frozen=True)
class TokenBudget:
    """Per-call token allocation for one run."""
    per_call: int
    consolidation: int

    @classmethod
    def allocate(
        cls,
        max_tokens: int,
        agent_count: int,
        upper_bound: int = MAX_TOKENS_UPPER_BOUND,
    ) -> "TokenBudget":
        """
        Split the run's token cap evenly across its generative calls.

        There is one call per agent plus two (review, consolidation); the
        breakdown call reuses the per-call share. Consolidation gets double.
        """
        if agent_count < 1:
            raise ConfigurationError("At least one agent is required")
        if max_tokens <= 0:
            raise ConfigurationError("Token budget must be positive")

        per_call = min(max_tokens, upper_bound) // (agent_count + 2)
        if per_call < 1:
            raise ConfigurationError(
                f"Token budget of {max_tokens} is too small for {agent_count} agents"
            )
        return cls(per_call=per_call, consolidation=per_call * 2)
