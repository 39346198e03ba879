"""State machines for the checkout flow.

Deterministic state machines that define the valid states of a
checkout attempt, the terminal completion status it reports, and the
status of the remote checkout resource.
"""

from enum import Enum

from buyflow.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Checkout Attempt State Machine
# ============================================================================


class AttemptState(str, Enum):
    """Checkout attempt lifecycle states.

    State diagram:
        IDLE ──────────────────────────────────────────────► FAILED
          │                                    (wallet unavailable)
          │ start
          ▼
        CREATING ─────────────────────────────────────────► FAILED
          │          │               │            (create/update failed)
          │ wallet   │ wallet,       │ web
          │          │ rates needed  ▼
          │          ▼             LAUNCHING_WEB
          │        RATES_PENDING
          │          │  ▲
          ▼          ▼  │ address changed
        AWAITING_AUTHORIZATION ───────────────────────────► CANCELLED
          │                                       (dismissed, no payment)
          │ ─────────────────────────────────────────────► FAILED
          │                                     (unexpected error)
          │ approved
          ▼
        COMPLETING ──────────────────────────────────────► FAILED
          │
          ▼
        SUCCEEDED
    """

    IDLE = "idle"
    CREATING = "creating"
    RATES_PENDING = "rates_pending"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    LAUNCHING_WEB = "launching_web"
    COMPLETING = "completing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "AttemptState") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ATTEMPT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["AttemptState"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to.
        """
        return list(_ATTEMPT_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_ATTEMPT_TRANSITIONS.get(self, set())) == 0

    def is_interactive(self) -> bool:
        """Check if the payment sheet is on screen in this state.

        Returns:
            True while the user can still act in the payment UI.
        """
        return self in {AttemptState.RATES_PENDING, AttemptState.AWAITING_AUTHORIZATION}


# Attempt transitions (defined outside enum to avoid Enum restrictions)
_ATTEMPT_TRANSITIONS: dict[AttemptState, set[AttemptState]] = {
    AttemptState.IDLE: {AttemptState.CREATING, AttemptState.FAILED},
    AttemptState.CREATING: {
        AttemptState.RATES_PENDING,
        AttemptState.AWAITING_AUTHORIZATION,
        AttemptState.LAUNCHING_WEB,
        AttemptState.FAILED,
    },
    AttemptState.RATES_PENDING: {
        AttemptState.AWAITING_AUTHORIZATION,
        AttemptState.CANCELLED,
        AttemptState.FAILED,
    },
    AttemptState.AWAITING_AUTHORIZATION: {
        AttemptState.RATES_PENDING,
        AttemptState.COMPLETING,
        AttemptState.CANCELLED,
        AttemptState.FAILED,
    },
    AttemptState.COMPLETING: {AttemptState.SUCCEEDED, AttemptState.FAILED},
    AttemptState.LAUNCHING_WEB: set(),  # Hand-off, nothing tracked afterwards
    AttemptState.SUCCEEDED: set(),  # Terminal state
    AttemptState.FAILED: set(),  # Terminal state
    AttemptState.CANCELLED: set(),  # Terminal state
}


def validate_attempt_transition(
    attempt_id: str,
    current_state: AttemptState,
    target_state: AttemptState,
) -> None:
    """Validate and raise if an attempt state transition is invalid.

    Args:
        attempt_id: Attempt identifier for error message.
        current_state: Current attempt state.
        target_state: Target attempt state.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_state.can_transition_to(target_state):
        raise InvalidStateTransitionError(
            entity_type="CheckoutAttempt",
            entity_id=attempt_id,
            current_state=current_state.value,
            target_state=target_state.value,
            allowed_transitions=[s.value for s in current_state.allowed_transitions()],
        )


# ============================================================================
# Completion Status
# ============================================================================


class CompletionStatus(str, Enum):
    """Outcome reported to observers once an attempt settles.

    Set once. Anything other than SUCCESS on the wallet path means the
    remote checkout is expired when the payment sheet goes away.
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    USER_CANCELLED = "user_cancelled"

    def requires_expiration(self) -> bool:
        """Check if the remote checkout should be released.

        Returns:
            True for failed and cancelled attempts.
        """
        return self in {CompletionStatus.FAILURE, CompletionStatus.USER_CANCELLED}


# ============================================================================
# Remote Checkout Status
# ============================================================================


class CheckoutResourceStatus(str, Enum):
    """Status of the checkout as reported by the remote service."""

    OPEN = "open"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    def is_terminal(self) -> bool:
        return self != CheckoutResourceStatus.OPEN


class CompletionPath(str, Enum):
    """How an attempt is completed."""

    WALLET = "wallet"
    WEB = "web"
