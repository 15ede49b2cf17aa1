"""exception hierarchy for the guardian package"""


class GuardianError(Exception):
    """base class for errors raised by guardian itself."""


class InvalidCallError(GuardianError, ValueError):
    """raised when a call descriptor cannot be built from the request payload."""


class StageUnavailableError(GuardianError):
    """raised inside a pipeline stage when it cannot run (no backend, rate limited, over budget)."""

    def __init__(self, stage: str, reason: str):
        super().__init__(f"{stage} unavailable: {reason}")
        self.stage = stage
        self.reason = reason


class BudgetExceededError(GuardianError):
    """raised when the llm spend for an analysis reaches its limit."""
