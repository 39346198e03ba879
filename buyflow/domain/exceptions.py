"""Domain exceptions.

Errors raised by the checkout model, the orchestrator and the
checkout client. Everything derives from DomainError so callers can
catch SDK errors in one place.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all buyflow exceptions."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "CheckoutAttempt").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Checkout Errors
# ============================================================================


class CheckoutError(DomainError):
    """Base class for checkout flow errors."""

    pass


class EmptyCheckoutError(CheckoutError):
    """Raised when a checkout draft has no line items and no token."""

    def __init__(self) -> None:
        super().__init__("Cannot start a checkout without line items")


class InvalidQuantityError(CheckoutError):
    """Raised when a line item quantity is not positive."""

    def __init__(self, quantity: int, reason: str = "Quantity must be positive") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class CartTokenError(CheckoutError):
    """Raised when a cart token is blank."""

    def __init__(self, token: str) -> None:
        super().__init__(
            "Cart token cannot be empty",
            details={"token": token},
        )


class CheckoutInProgressError(CheckoutError):
    """Raised when a checkout is started while another one is still running."""

    def __init__(self, attempt_id: str, current_state: str) -> None:
        """Initialize checkout in progress error.

        Args:
            attempt_id: ID of the running attempt.
            current_state: State the running attempt is in.
        """
        super().__init__(
            f"Checkout attempt {attempt_id} is still in progress ('{current_state}')",
            details={"attempt_id": attempt_id, "current_state": current_state},
        )


class InvalidShippingRateError(CheckoutError):
    """Raised when a shipping rate does not belong to the current checkout."""

    def __init__(self, rate_id: str, checkout_token: str | None) -> None:
        super().__init__(
            f"Shipping rate {rate_id} is not valid for checkout {checkout_token}",
            details={"rate_id": rate_id, "checkout_token": checkout_token},
        )


class AlreadyExpiredError(CheckoutError):
    """Raised when a checkout would be expired a second time."""

    def __init__(self, checkout_token: str | None) -> None:
        super().__init__(
            f"Checkout {checkout_token} has already been expired",
            details={"checkout_token": checkout_token},
        )


class AuthorizationUnavailableError(CheckoutError):
    """Raised when the device or configuration cannot take wallet payments."""

    def __init__(
        self,
        device_supported: bool,
        has_usable_cards: bool,
        merchant_configured: bool,
    ) -> None:
        """Initialize authorization unavailable error.

        Args:
            device_supported: Whether the device can make wallet payments.
            has_usable_cards: Whether a card on a supported network is set up.
            merchant_configured: Whether a merchant id is configured.
        """
        super().__init__(
            "Wallet checkout is not available",
            details={
                "device_supported": device_supported,
                "has_usable_cards": has_usable_cards,
                "merchant_configured": merchant_configured,
            },
        )


class AuthorizationCancelledError(CheckoutError):
    """Raised when the user dismisses the payment sheet without paying."""

    def __init__(self, checkout_token: str | None) -> None:
        super().__init__(
            "Payment authorization was cancelled",
            details={"checkout_token": checkout_token},
        )


class UnexpectedCheckoutError(CheckoutError):
    """Wraps an error outside the SDK taxonomy that ended a checkout attempt."""

    def __init__(self, attempt_id: str, error: Exception) -> None:
        super().__init__(
            f"Checkout attempt {attempt_id} failed unexpectedly: {error!r}",
            details={"attempt_id": attempt_id, "error_type": type(error).__name__},
        )


class AdapterInactiveError(CheckoutError):
    """Raised when a payment authorization adapter is used outside its lifecycle."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Payment authorization adapter is inactive: {reason}")


# ============================================================================
# Checkout Client Errors
# ============================================================================


class CheckoutClientError(DomainError):
    """Error returned by the remote commerce service."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: dict[str, Any] | None = None,
    ) -> None:
        """Initialize checkout client error.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code, if a response was received.
            errors: Error payload returned by the remote service.
        """
        super().__init__(
            message,
            details={"status_code": status_code, "errors": errors or {}},
        )
        self.status_code = status_code
        self.errors = errors or {}


class NetworkFailureError(CheckoutClientError):
    """Connectivity, timeout or server-side failure."""

    pass


class ValidationFailureError(CheckoutClientError):
    """The remote service rejected the checkout data."""

    pass


class CompletionFailureError(CheckoutClientError):
    """The payment was accepted but the remote completion was rejected."""

    pass


class ExpirationFailureError(CheckoutClientError):
    """Best-effort expiration of a checkout failed."""

    pass


class ShopError(CheckoutClientError):
    """Shop metadata could not be loaded."""

    pass


# ============================================================================
# Money Errors
# ============================================================================


class MoneyError(DomainError):
    """Base class for money-related errors."""

    pass


class NegativeMoneyError(MoneyError):
    """Raised when attempting to create money with negative amount."""

    def __init__(self, amount: int) -> None:
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )
