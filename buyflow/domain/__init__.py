"""Domain layer - Entities, value objects, state machines, domain events.

- **Entities**: CheckoutResource, Shop and the CheckoutAttempt aggregate
- **Value Objects**: Money, Address, LineItem, ShippingRate, PaymentToken
- **State Machines**: AttemptState, CompletionStatus, CheckoutResourceStatus
- **Domain Events**: Recorded by CheckoutAttempt as it progresses
- **Exceptions**: The SDK error taxonomy

Example usage:
    from buyflow.domain import CheckoutResource, LineItem

    draft = CheckoutResource(line_items=[LineItem(variant_id="39072856", quantity=2)])
"""

# Base classes
from buyflow.domain.base import AggregateRoot, DomainEvent, ValueObject

# Entities
from buyflow.domain.entities import CheckoutAttempt, CheckoutResource, Shop

# Domain Events
from buyflow.domain.events import (
    AttemptStarted,
    AuthorizationPresented,
    CheckoutCancelled,
    CheckoutCompleted,
    CheckoutExpired,
    CheckoutFailed,
    CheckoutPersisted,
    ShippingRatesUpdated,
    WebCheckoutLaunched,
)

# Exceptions
from buyflow.domain.exceptions import (
    AdapterInactiveError,
    AlreadyExpiredError,
    AuthorizationCancelledError,
    AuthorizationUnavailableError,
    CartTokenError,
    CheckoutClientError,
    CheckoutError,
    CheckoutInProgressError,
    CompletionFailureError,
    DomainError,
    EmptyCheckoutError,
    ExpirationFailureError,
    InvalidQuantityError,
    InvalidShippingRateError,
    InvalidStateTransitionError,
    MoneyError,
    NegativeMoneyError,
    NetworkFailureError,
    ShopError,
    UnexpectedCheckoutError,
    ValidationFailureError,
)

# State Machines
from buyflow.domain.state_machines import (
    AttemptState,
    CheckoutResourceStatus,
    CompletionPath,
    CompletionStatus,
    validate_attempt_transition,
)

# Value Objects
from buyflow.domain.value_objects import (
    Address,
    AttemptId,
    LineItem,
    MerchantCapability,
    Money,
    PaymentAuthorizationOutcome,
    PaymentNetwork,
    PaymentToken,
    ShippingRate,
)

__all__ = [
    # Base classes
    "AggregateRoot",
    "DomainEvent",
    "ValueObject",
    # Entities
    "CheckoutAttempt",
    "CheckoutResource",
    "Shop",
    # Domain Events
    "AttemptStarted",
    "AuthorizationPresented",
    "CheckoutCancelled",
    "CheckoutCompleted",
    "CheckoutExpired",
    "CheckoutFailed",
    "CheckoutPersisted",
    "ShippingRatesUpdated",
    "WebCheckoutLaunched",
    # Exceptions
    "AdapterInactiveError",
    "AlreadyExpiredError",
    "AuthorizationCancelledError",
    "AuthorizationUnavailableError",
    "CartTokenError",
    "CheckoutClientError",
    "CheckoutError",
    "CheckoutInProgressError",
    "CompletionFailureError",
    "DomainError",
    "EmptyCheckoutError",
    "ExpirationFailureError",
    "InvalidQuantityError",
    "InvalidShippingRateError",
    "InvalidStateTransitionError",
    "MoneyError",
    "NegativeMoneyError",
    "NetworkFailureError",
    "ShopError",
    "UnexpectedCheckoutError",
    "ValidationFailureError",
    # State Machines
    "AttemptState",
    "CheckoutResourceStatus",
    "CompletionPath",
    "CompletionStatus",
    "validate_attempt_transition",
    # Value Objects
    "Address",
    "AttemptId",
    "LineItem",
    "MerchantCapability",
    "Money",
    "PaymentAuthorizationOutcome",
    "PaymentNetwork",
    "PaymentToken",
    "ShippingRate",
]
