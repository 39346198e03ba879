"""Domain events for checkout attempts.

Recorded by CheckoutAttempt as it moves through its state machine.
Callers collect them after an attempt settles for audit logging or
analytics.
"""

from dataclasses import dataclass
from typing import ClassVar

from buyflow.domain.base import DomainEvent


@dataclass(frozen=True)
class AttemptStarted(DomainEvent):
    """Event raised when a checkout attempt begins."""

    event_type: ClassVar[str] = "attempt.started"

    path: str = ""
    cart_token: str | None = None


@dataclass(frozen=True)
class CheckoutPersisted(DomainEvent):
    """Event raised when the remote service returns the checkout."""

    event_type: ClassVar[str] = "checkout.persisted"

    total_cents: int = 0
    currency: str = "USD"
    item_count: int = 0


@dataclass(frozen=True)
class ShippingRatesUpdated(DomainEvent):
    event_type: ClassVar[str] = "checkout.shipping_rates_updated"

    rate_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class AuthorizationPresented(DomainEvent):
    """Event raised when the payment sheet is handed the payment request."""

    event_type: ClassVar[str] = "checkout.authorization_presented"


@dataclass(frozen=True)
class CheckoutCompleted(DomainEvent):
    """Event raised when the remote service accepts the payment."""

    event_type: ClassVar[str] = "checkout.completed"

    order_id: str | None = None
    total_cents: int = 0
    currency: str = "USD"


@dataclass(frozen=True)
class CheckoutFailed(DomainEvent):
    """Event raised when an attempt ends in failure."""

    event_type: ClassVar[str] = "checkout.failed"

    previous_state: str = ""
    error_type: str = ""
    error_message: str = ""


@dataclass(frozen=True)
class CheckoutCancelled(DomainEvent):
    """Event raised when the user dismisses the payment sheet without paying."""

    event_type: ClassVar[str] = "checkout.cancelled"


@dataclass(frozen=True)
class CheckoutExpired(DomainEvent):
    event_type: ClassVar[str] = "checkout.expired"


@dataclass(frozen=True)
class WebCheckoutLaunched(DomainEvent):
    """Event raised when the checkout is handed off to the browser."""

    event_type: ClassVar[str] = "checkout.web_launched"

    web_url: str = ""
