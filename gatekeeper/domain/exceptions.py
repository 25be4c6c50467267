"""Domain exceptions raised by entity state transitions."""

from gatekeeper.core.exceptions import AppException


class InvalidStateTransitionError(AppException):
    """Raised when an entity is asked for a transition its current state forbids."""

    def __init__(self, entity: str, current_state: str, attempted_transition: str):
        super().__init__(
            message=f"Cannot {attempted_transition} {entity} in state: {current_state}",
            status_code=409,
            error_code="INVALID_STATE_TRANSITION",
            details={"current_state": current_state, "transition": attempted_transition},
        )
        self.current_state = current_state
        self.attempted_transition = attempted_transition
