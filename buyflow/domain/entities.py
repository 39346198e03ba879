"""Domain entities for buyflow.

CheckoutResource mirrors the checkout held by the remote commerce
service. CheckoutAttempt is the aggregate that owns one resource for the
duration of one purchase attempt and enforces the attempt state machine.
"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any

from buyflow.domain.base import AggregateRoot
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
from buyflow.domain.exceptions import (
    AlreadyExpiredError,
    AuthorizationCancelledError,
    DomainError,
    InvalidShippingRateError,
)
from buyflow.domain.state_machines import (
    AttemptState,
    CheckoutResourceStatus,
    CompletionPath,
    CompletionStatus,
    validate_attempt_transition,
)
from buyflow.domain.value_objects import (
    Address,
    AttemptId,
    LineItem,
    Money,
    ShippingRate,
)


# ============================================================================
# Checkout Resource
# ============================================================================


@dataclass
class CheckoutResource:
    """A checkout as known to the remote commerce service.

    Drafts have no token; the remote service assigns one on create.
    Totals are whatever the service last returned and are never
    recalculated locally.

    Attributes:
        line_items: Variants and quantities being purchased.
        token: Remote identifier, None until created.
        email: Customer email.
        shipping_address: Where the order ships to.
        billing_address: Billing address from the payment method.
        shipping_rate: Currently selected shipping rate.
        requires_shipping: Whether any line item is a physical good.
        currency: ISO 4217 currency code.
        discount_code: Discount code applied to the checkout.
        subtotal_price: Line item subtotal.
        total_discount: Discount applied.
        total_tax: Taxes.
        total_price: Grand total.
        payment_due: Amount the payment method is charged.
        status: Remote status of the checkout.
        web_url: Browser checkout URL for this checkout.
        cart_token: Storefront cart token the checkout was created from.
        order_id: Order created on successful completion.
    """

    line_items: list[LineItem] = field(default_factory=list)
    token: str | None = None
    email: str | None = None
    shipping_address: Address | None = None
    billing_address: Address | None = None
    shipping_rate: ShippingRate | None = None
    requires_shipping: bool = True
    currency: str = "USD"
    discount_code: str | None = None
    subtotal_price: Money | None = None
    total_discount: Money | None = None
    total_tax: Money | None = None
    total_price: Money | None = None
    payment_due: Money | None = None
    status: CheckoutResourceStatus = CheckoutResourceStatus.OPEN
    web_url: str | None = None
    cart_token: str | None = None
    order_id: str | None = None

    @property
    def is_persisted(self) -> bool:
        """Check if the remote service has assigned a token.

        Returns:
            True once the checkout exists remotely.
        """
        return self.token is not None

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.line_items)

    @property
    def is_empty(self) -> bool:
        return len(self.line_items) == 0

    @property
    def shipping_price(self) -> Money | None:
        return self.shipping_rate.price if self.shipping_rate else None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "CheckoutResource":
        """Create from API response data.

        Args:
            data: The checkout object (without the envelope).

        Returns:
            CheckoutResource instance.
        """
        currency = data.get("currency", "USD")
        token = data.get("token")

        def money(key: str) -> Money | None:
            value = data.get(key)
            return Money.parse(value, currency) if value is not None else None

        def address(key: str) -> Address | None:
            value = data.get(key)
            return Address.from_api_response(value) if value else None

        rate_data = data.get("shipping_rate")
        shipping_rate = (
            ShippingRate.from_api_response(rate_data, token or "", currency)
            if rate_data
            else None
        )

        discount = data.get("discount") or {}
        order = data.get("order") or {}
        order_id = data.get("order_id") or order.get("id")
        status = data.get("status")
        if status is None:
            status = "completed" if order_id else "open"

        return cls(
            line_items=[
                LineItem.from_api_response(item, currency)
                for item in data.get("line_items", [])
            ],
            token=token,
            email=data.get("email"),
            shipping_address=address("shipping_address"),
            billing_address=address("billing_address"),
            shipping_rate=shipping_rate,
            requires_shipping=data.get("requires_shipping", True),
            currency=currency,
            discount_code=discount.get("code"),
            subtotal_price=money("subtotal_price"),
            total_discount=(
                Money.parse(discount["amount"], currency) if "amount" in discount else None
            ),
            total_tax=money("total_tax"),
            total_price=money("total_price"),
            payment_due=money("payment_due"),
            status=CheckoutResourceStatus(status),
            web_url=data.get("web_url"),
            cart_token=data.get("cart_token"),
            order_id=str(order_id) if order_id is not None else None,
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize the caller-editable fields for create/update.

        Returns:
            Checkout object suitable for the request envelope.
        """
        payload: dict[str, Any] = {
            "line_items": [item.to_payload() for item in self.line_items],
        }
        if self.email:
            payload["email"] = self.email
        if self.shipping_address:
            payload["shipping_address"] = self.shipping_address.to_payload()
        if self.billing_address:
            payload["billing_address"] = self.billing_address.to_payload()
        if self.shipping_rate:
            payload["shipping_rate_id"] = self.shipping_rate.id
        if self.discount_code:
            payload["discount"] = {"code": self.discount_code}
        if self.cart_token:
            payload["cart_token"] = self.cart_token
        return payload

    def copy(self, **changes: Any) -> "CheckoutResource":
        return replace(self, **changes)


# ============================================================================
# Shop
# ============================================================================


@dataclass
class Shop:
    """Shop metadata used to build payment requests.

    Attributes:
        name: Shop display name.
        domain: Shop domain.
        currency: Default shop currency.
        country_code: Country the shop operates from.
    """

    name: str
    domain: str
    currency: str = "USD"
    country_code: str = "US"

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Shop":
        """Create from API response data."""
        return cls(
            name=data["name"],
            domain=data.get("domain", ""),
            currency=data.get("currency", "USD"),
            country_code=data.get("country", data.get("country_code", "US")),
        )


# ============================================================================
# Checkout Attempt Aggregate
# ============================================================================


@dataclass(kw_only=True, eq=False)
class CheckoutAttempt(AggregateRoot[AttemptId]):
    """One purchase attempt for one checkout resource.

    The attempt is created by the orchestrator when a checkout is started
    and is discarded once it reaches a terminal state. Every method that
    changes state validates the transition first.

    Attributes:
        id: Unique attempt identifier.
        path: Wallet or web completion.
        resource: The checkout this attempt owns.
        state: Current attempt state (state machine).
        completion_status: Outcome reported to observers.
        shipping_rates: Rates fetched for the current shipping address.
        expired: Whether expiration of the resource has been requested.
        error: The error that ended the attempt, if any.
    """

    id: AttemptId
    path: CompletionPath
    resource: CheckoutResource
    state: AttemptState = AttemptState.IDLE
    completion_status: CompletionStatus = CompletionStatus.PENDING
    shipping_rates: list[ShippingRate] = field(default_factory=list)
    expired: bool = False
    error: DomainError | None = None
    _task: "asyncio.Task[None] | None" = field(
        default=None, init=False, repr=False, compare=False
    )

    @classmethod
    def create(
        cls,
        path: CompletionPath,
        resource: CheckoutResource | None = None,
        attempt_id: AttemptId | None = None,
    ) -> "CheckoutAttempt":
        """Create a new attempt and record its start.

        Args:
            path: Wallet or web completion.
            resource: Draft or existing checkout; an empty draft is used
                for cart-token attempts.
            attempt_id: Optional pre-generated attempt ID.

        Returns:
            New CheckoutAttempt instance.
        """
        attempt = cls(
            id=attempt_id or AttemptId.generate(),
            path=path,
            resource=resource or CheckoutResource(),
        )
        attempt._record_event(
            AttemptStarted,
            path=path.value,
            checkout_token=attempt.resource.token,
            cart_token=attempt.resource.cart_token,
        )
        return attempt

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal()

    @property
    def checkout_token(self) -> str | None:
        return self.resource.token

    def attach_task(self, task: "asyncio.Task[None]") -> None:
        self._task = task

    async def wait(self) -> CompletionStatus:
        """Wait for the attempt to settle.

        Web attempts settle as soon as the browser is launched, with a
        PENDING status.

        Returns:
            The attempt's completion status.

        Raises:
            Exception: Whatever unexpected error ended the attempt's task.
        """
        if self._task is not None:
            await self._task
        return self.completion_status

    @property
    def needs_expiration(self) -> bool:
        """Check if the remote checkout should be released now.

        Returns:
            True if the attempt ended without payment, the checkout exists
            remotely and is still open, and it has not been expired yet.
        """
        return (
            self.completion_status.requires_expiration()
            and self.resource.is_persisted
            and not self.resource.status.is_terminal()
            and not self.expired
        )

    def find_rate(self, rate_id: str) -> ShippingRate:
        """Look up a fetched rate for the current checkout.

        Args:
            rate_id: Rate handle chosen by the user.

        Returns:
            The matching ShippingRate.

        Raises:
            InvalidShippingRateError: If the rate was not fetched for the
                current address of this checkout.
        """
        for rate in self.shipping_rates:
            if rate.id == rate_id and rate.is_valid_for(self.resource.token):
                return rate
        raise InvalidShippingRateError(rate_id, self.resource.token)

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def _transition(self, target: AttemptState) -> AttemptState:
        validate_attempt_transition(str(self.id), self.state, target)
        previous = self.state
        self.state = target
        self._touch()
        return previous

    def begin(self) -> None:
        """Move from IDLE to CREATING."""
        self._transition(AttemptState.CREATING)

    def checkout_persisted(self, resource: CheckoutResource) -> None:
        """Adopt the checkout returned by create, update or token resolution.

        Args:
            resource: Checkout returned by the remote service.

        Raises:
            ValueError: If the returned checkout has no token.
        """
        if not resource.is_persisted:
            raise ValueError("Remote service returned a checkout without a token")
        self.resource = resource
        self._touch()
        self._record_event(
            CheckoutPersisted,
            checkout_token=resource.token,
            total_cents=resource.total_price.amount_cents if resource.total_price else 0,
            currency=resource.currency,
            item_count=resource.item_count,
        )

    def fetching_rates(self) -> None:
        """Enter RATES_PENDING while shipping rates are requested."""
        self._transition(AttemptState.RATES_PENDING)

    def rates_received(self, rates: list[ShippingRate]) -> None:
        """Store fetched rates and return to AWAITING_AUTHORIZATION.

        Args:
            rates: Rates returned for the current checkout.

        Raises:
            InvalidShippingRateError: If any rate belongs to another checkout.
        """
        for rate in rates:
            if not rate.is_valid_for(self.resource.token):
                raise InvalidShippingRateError(rate.id, self.resource.token)
        self._transition(AttemptState.AWAITING_AUTHORIZATION)
        self.shipping_rates = list(rates)
        self._record_event(
            ShippingRatesUpdated,
            checkout_token=self.resource.token,
            rate_ids=tuple(rate.id for rate in rates),
        )

    def rates_unavailable(self) -> None:
        """Return to AWAITING_AUTHORIZATION after a failed rate fetch."""
        self._transition(AttemptState.AWAITING_AUTHORIZATION)
        self.shipping_rates = []

    def present_authorization(self) -> None:
        """Record that the payment sheet has been handed the request."""
        if self.state == AttemptState.CREATING:
            self._transition(AttemptState.AWAITING_AUTHORIZATION)
        elif self.state != AttemptState.AWAITING_AUTHORIZATION:
            validate_attempt_transition(
                str(self.id), self.state, AttemptState.AWAITING_AUTHORIZATION
            )
        self._record_event(
            AuthorizationPresented,
            checkout_token=self.resource.token,
        )

    def shipping_address_changed(self, resource: CheckoutResource) -> None:
        """Adopt a checkout whose shipping address changed.

        Rates fetched for the old address are discarded.

        Args:
            resource: Checkout returned after the address update.
        """
        self.resource = resource
        self.shipping_rates = []
        self._touch()

    def resource_updated(self, resource: CheckoutResource) -> None:
        """Adopt a checkout returned by an update that keeps the address."""
        self.resource = resource
        self._touch()

    def begin_completing(self) -> None:
        """Move from AWAITING_AUTHORIZATION to COMPLETING."""
        self._transition(AttemptState.COMPLETING)

    def succeed(self, resource: CheckoutResource) -> None:
        """Mark the attempt successful with the completed checkout.

        Args:
            resource: Checkout returned by the completion call.
        """
        self._transition(AttemptState.SUCCEEDED)
        self.resource = resource
        self.completion_status = CompletionStatus.SUCCESS
        self._record_event(
            CheckoutCompleted,
            checkout_token=resource.token,
            order_id=resource.order_id,
            total_cents=resource.total_price.amount_cents if resource.total_price else 0,
            currency=resource.currency,
        )

    def fail(self, error: DomainError) -> None:
        """Mark the attempt failed.

        Args:
            error: Error that ended the attempt.
        """
        previous = self._transition(AttemptState.FAILED)
        self.completion_status = CompletionStatus.FAILURE
        self.error = error
        self._record_event(
            CheckoutFailed,
            checkout_token=self.resource.token,
            previous_state=previous.value,
            error_type=type(error).__name__,
            error_message=error.message,
        )

    def cancel(self) -> None:
        """Mark the attempt cancelled by the user."""
        self._transition(AttemptState.CANCELLED)
        self.completion_status = CompletionStatus.USER_CANCELLED
        self.error = AuthorizationCancelledError(self.resource.token)
        self._record_event(
            CheckoutCancelled,
            checkout_token=self.resource.token,
        )

    def hand_off_to_web(self) -> None:
        """Record the hand-off to browser checkout."""
        self._transition(AttemptState.LAUNCHING_WEB)
        self._record_event(
            WebCheckoutLaunched,
            checkout_token=self.resource.token,
            web_url=self.resource.web_url or "",
        )

    # -------------------------------------------------------------------------
    # Expiration
    # -------------------------------------------------------------------------

    def begin_expiration(self) -> None:
        """Claim the single expiration allowed for this checkout.

        Raises:
            AlreadyExpiredError: If expiration was already requested.
            ValueError: If the checkout does not exist remotely.
        """
        if self.expired:
            raise AlreadyExpiredError(self.resource.token)
        if not self.resource.is_persisted:
            raise ValueError("Cannot expire a checkout that was never created")
        self.expired = True
        self._touch()

    def expiration_confirmed(self) -> None:
        """Record that the remote service released the checkout."""
        self.resource = self.resource.copy(status=CheckoutResourceStatus.EXPIRED)
        self._record_event(
            CheckoutExpired,
            checkout_token=self.resource.token,
        )
