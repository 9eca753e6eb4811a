"""Pipeline lifecycle state machine.

Transitions are validated against a fixed table so completion, failure,
and cancellation are each reached once through a known path.
"""

from __future__ import annotations

from core.errors import PipelineStateError
from core.logging_config import get_logger
from core.types import PipelineState

_LOGGER = get_logger(__name__)

_ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.ACQUIRING}),
    PipelineState.ACQUIRING: frozenset({PipelineState.STREAMING, PipelineState.FAILED}),
    PipelineState.STREAMING: frozenset({PipelineState.DRAINING, PipelineState.FAILED}),
    PipelineState.DRAINING: frozenset(
        {PipelineState.COMPLETED, PipelineState.CANCELLED, PipelineState.FAILED}
    ),
}


class PipelineStateMachine:
    """Track and validate the state of one pipeline run."""

    def __init__(self, run_id: str) -> None:
        self._run_id = run_id
        self._state = PipelineState.IDLE
        self._history: list[PipelineState] = [PipelineState.IDLE]

    @property
    def state(self) -> PipelineState:
        """Current state."""
        return self._state

    @property
    def history(self) -> tuple[PipelineState, ...]:
        """Every state entered so far, in order."""
        return tuple(self._history)

    def can_transition(self, target: PipelineState) -> bool:
        """Return whether ``target`` is reachable from the current state."""
        return target in _ALLOWED_TRANSITIONS.get(self._state, frozenset())

    def transition(self, target: PipelineState) -> None:
        """Move to ``target``.

        Args:
            target: Next state.

        Raises:
            PipelineStateError: If the transition is not allowed.
        """
        if not self.can_transition(target):
            raise PipelineStateError(
                f"Illegal pipeline transition {self._state.value} -> {target.value} "
                f"for run {self._run_id}. A runner executes exactly once."
            )
        previous = self._state
        self._state = target
        self._history.append(target)
        _LOGGER.info(
            "pipeline_state_changed",
            run_id=self._run_id,
            previous_state=previous.value,
            state=target.value,
        )
