"""Tests for domain state machines."""

import pytest

from buyflow.domain import (
    AttemptState,
    CheckoutResourceStatus,
    CompletionStatus,
)
from buyflow.domain.exceptions import InvalidStateTransitionError
from buyflow.domain.state_machines import validate_attempt_transition


class TestAttemptState:
    """Tests for AttemptState state machine."""

    def test_idle_can_start_or_fail(self) -> None:
        """IDLE can begin creating, or fail when the wallet is unavailable."""
        assert AttemptState.IDLE.can_transition_to(AttemptState.CREATING)
        assert AttemptState.IDLE.can_transition_to(AttemptState.FAILED)

    def test_idle_cannot_skip_creation(self) -> None:
        """IDLE cannot go straight to authorization."""
        assert not AttemptState.IDLE.can_transition_to(AttemptState.AWAITING_AUTHORIZATION)

    def test_creating_branches_by_path(self) -> None:
        """CREATING leads to rates, the payment sheet, the browser or failure."""
        assert set(AttemptState.CREATING.allowed_transitions()) == {
            AttemptState.RATES_PENDING,
            AttemptState.AWAITING_AUTHORIZATION,
            AttemptState.LAUNCHING_WEB,
            AttemptState.FAILED,
        }

    def test_rates_round_trip(self) -> None:
        """Address changes move between AWAITING_AUTHORIZATION and RATES_PENDING."""
        assert AttemptState.AWAITING_AUTHORIZATION.can_transition_to(AttemptState.RATES_PENDING)
        assert AttemptState.RATES_PENDING.can_transition_to(AttemptState.AWAITING_AUTHORIZATION)

    def test_sheet_states_can_fail(self) -> None:
        """An attempt can fail while the payment sheet is up."""
        assert AttemptState.AWAITING_AUTHORIZATION.can_transition_to(AttemptState.FAILED)
        assert AttemptState.RATES_PENDING.can_transition_to(AttemptState.FAILED)

    def test_creating_never_reentered(self) -> None:
        """Failures after creation never go back to CREATING."""
        for state in AttemptState:
            if state != AttemptState.IDLE:
                assert not state.can_transition_to(AttemptState.CREATING)

    def test_completing_settles(self) -> None:
        """COMPLETING ends in SUCCEEDED or FAILED only."""
        assert set(AttemptState.COMPLETING.allowed_transitions()) == {
            AttemptState.SUCCEEDED,
            AttemptState.FAILED,
        }

    @pytest.mark.parametrize(
        "state",
        [
            AttemptState.LAUNCHING_WEB,
            AttemptState.SUCCEEDED,
            AttemptState.FAILED,
            AttemptState.CANCELLED,
        ],
    )
    def test_terminal_states(self, state) -> None:
        """Terminal states allow no transitions."""
        assert state.is_terminal()
        assert state.allowed_transitions() == []

    def test_interactive_states(self) -> None:
        """The payment sheet is up while awaiting authorization or rates."""
        assert AttemptState.AWAITING_AUTHORIZATION.is_interactive()
        assert AttemptState.RATES_PENDING.is_interactive()
        assert not AttemptState.COMPLETING.is_interactive()

    def test_validate_transition_raises(self) -> None:
        """Invalid transitions raise with the allowed targets."""
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_attempt_transition(
                "attempt-1", AttemptState.SUCCEEDED, AttemptState.CANCELLED
            )

        assert exc_info.value.details["current_state"] == "succeeded"
        assert exc_info.value.details["target_state"] == "cancelled"

    def test_validate_transition_accepts_valid(self) -> None:
        validate_attempt_transition("attempt-1", AttemptState.IDLE, AttemptState.CREATING)


class TestCompletionStatus:
    """Tests for CompletionStatus."""

    def test_expiration_follows_failure_and_cancellation(self) -> None:
        """Only unpaid outcomes release the checkout."""
        assert CompletionStatus.FAILURE.requires_expiration()
        assert CompletionStatus.USER_CANCELLED.requires_expiration()
        assert not CompletionStatus.SUCCESS.requires_expiration()
        assert not CompletionStatus.PENDING.requires_expiration()


class TestCheckoutResourceStatus:
    def test_only_open_is_not_terminal(self) -> None:
        assert not CheckoutResourceStatus.OPEN.is_terminal()
        assert CheckoutResourceStatus.COMPLETED.is_terminal()
        assert CheckoutResourceStatus.EXPIRED.is_terminal()
