"""
Batch State Machine

Single BatchStatus enum is the source of truth.
State transitions:
    GENERATING → READY
    GENERATING → FAILED

READY and FAILED are terminal. Content may only be served from READY.
"""
from typing import Optional, Tuple

from ...exceptions import InvalidTransitionError
from ...models.db_models import BatchStatus


class BatchStateMachine:
    """Deterministic transitions for reporting batches."""

    # State transition map: (current_state, action) -> new_state
    TRANSITIONS = {
        (BatchStatus.GENERATING, "finalize"): BatchStatus.READY,
        (BatchStatus.GENERATING, "fail"): BatchStatus.FAILED,
    }

    TERMINAL_STATES = {BatchStatus.READY, BatchStatus.FAILED}

    def can_transition(self, current_state: BatchStatus, action: str) -> Tuple[bool, Optional[str]]:
        """
        Check if a state transition is allowed.

        Returns:
            Tuple of (is_allowed, error_message)
        """
        if (current_state, action) not in self.TRANSITIONS:
            return False, f"Invalid transition: {BatchStatus(current_state).value} + {action}"
        return True, None

    def transition(self, current_state: BatchStatus, action: str) -> BatchStatus:
        """
        Perform a state transition.

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        is_allowed, error = self.can_transition(current_state, action)
        if not is_allowed:
            raise InvalidTransitionError(error)
        return self.TRANSITIONS[(current_state, action)]

    def is_terminal(self, state: BatchStatus) -> bool:
        return state in self.TERMINAL_STATES

    def can_serve(self, state: BatchStatus) -> bool:
        """Only READY batches have servable content."""
        return state == BatchStatus.READY
