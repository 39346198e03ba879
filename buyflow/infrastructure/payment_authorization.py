"""Wallet payment authorization.

The platform payment sheet is owned by the host application. buyflow
talks to it through two small interfaces:

- WalletCapability answers whether the device can pay with the wallet.
- PaymentSheetPresenter shows the sheet for a PaymentRequest and drives
  the adapter's host callbacks as the user interacts with it.

PaymentAuthorizationAdapter turns those callbacks into an ordered event
stream for the orchestrator. It guarantees exactly one
AuthorizationResult before Dismissed and goes inert after dismissal.
One adapter serves one attempt.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field, field_validator

from buyflow.domain.entities import CheckoutResource
from buyflow.domain.exceptions import AdapterInactiveError
from buyflow.domain.value_objects import (
    Address,
    MerchantCapability,
    PaymentAuthorizationOutcome,
    PaymentNetwork,
    PaymentToken,
    ShippingRate,
)

logger = structlog.get_logger()


# ============================================================================
# Payment Request
# ============================================================================


class PaymentAuthorizationStatus(str, Enum):
    """Status returned to the payment sheet after each interaction."""

    SUCCESS = "success"
    FAILURE = "failure"


class SummaryItem(BaseModel):
    """A labelled amount shown on the payment sheet."""

    label: str
    amount: Decimal


class ShippingMethod(BaseModel):
    """A shipping option shown on the payment sheet."""

    identifier: str
    label: str
    amount: Decimal
    detail: str | None = None

    @classmethod
    def from_rate(cls, rate: ShippingRate) -> "ShippingMethod":
        return cls(
            identifier=rate.id,
            label=rate.title,
            amount=rate.price.to_decimal(),
            detail=rate.delivery_range,
        )


class PaymentRequest(BaseModel):
    """Everything the payment sheet needs to collect a payment."""

    merchant_id: str = Field(..., min_length=1)
    country_code: str = Field(..., min_length=2, max_length=2)
    currency_code: str = Field(..., min_length=3, max_length=3)
    supported_networks: list[PaymentNetwork] = Field(..., min_length=1)
    merchant_capability: MerchantCapability = MerchantCapability.THREE_DS
    summary_items: list[SummaryItem] = Field(..., min_length=1)
    shipping_methods: list[ShippingMethod] = Field(default_factory=list)
    requires_shipping_address: bool = True
    requires_email: bool = True

    @field_validator("country_code", "currency_code")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    @property
    def total(self) -> SummaryItem:
        """The final summary item is the amount charged."""
        return self.summary_items[-1]


class PaymentRequestUpdate(BaseModel):
    """Reply to a shipping address or shipping method change."""

    status: PaymentAuthorizationStatus
    summary_items: list[SummaryItem] = Field(default_factory=list)
    shipping_methods: list[ShippingMethod] = Field(default_factory=list)


def build_summary_items(resource: CheckoutResource, merchant_label: str) -> list[SummaryItem]:
    """Summarize checkout totals for the payment sheet.

    Amounts come straight from the checkout as last returned by the
    remote service.

    Args:
        resource: Checkout to summarize.
        merchant_label: Label for the final total (usually the shop name).

    Returns:
        Subtotal, discount, shipping and taxes where present, then the total.
    """
    items: list[SummaryItem] = []
    if resource.subtotal_price is not None:
        items.append(SummaryItem(label="SUBTOTAL", amount=resource.subtotal_price.to_decimal()))
    if resource.total_discount is not None and not resource.total_discount.is_zero():
        label = f"DISCOUNT ({resource.discount_code})" if resource.discount_code else "DISCOUNT"
        items.append(SummaryItem(label=label, amount=-resource.total_discount.to_decimal()))
    if resource.shipping_price is not None:
        items.append(SummaryItem(label="SHIPPING", amount=resource.shipping_price.to_decimal()))
    if resource.total_tax is not None and not resource.total_tax.is_zero():
        items.append(SummaryItem(label="TAXES", amount=resource.total_tax.to_decimal()))

    total = resource.payment_due or resource.total_price
    items.append(
        SummaryItem(
            label=merchant_label,
            amount=total.to_decimal() if total is not None else Decimal("0"),
        )
    )
    return items


# ============================================================================
# Authorization Events
# ============================================================================


@dataclass
class AuthorizationEvent:
    """Something the user did on the payment sheet."""


@dataclass
class ReplyingEvent(AuthorizationEvent):
    """Event the payment sheet waits on until the orchestrator replies."""

    reply: "asyncio.Future[Any]" = field(repr=False)

    def respond(self, value: Any) -> None:
        """Resolve the sheet's pending callback; later replies are ignored."""
        if not self.reply.done():
            self.reply.set_result(value)


@dataclass
class ShippingAddressChanged(ReplyingEvent):
    """The user picked a shipping address (partial until authorization)."""

    address: Address


@dataclass
class ShippingRateChanged(ReplyingEvent):
    """The user picked a shipping method."""

    rate_id: str


@dataclass
class AuthorizationResult(ReplyingEvent):
    """The wallet approved the payment, or the user cancelled."""

    outcome: PaymentAuthorizationOutcome


@dataclass
class Dismissed(AuthorizationEvent):
    """The payment sheet went away. Always the last event."""


# ============================================================================
# Host Interfaces
# ============================================================================


class WalletCapability(ABC):
    """Platform check for wallet payments."""

    @abstractmethod
    def can_make_payments(self) -> bool:
        """Whether the device hardware supports wallet payments."""

    @abstractmethod
    def can_make_payments_using_networks(self, networks: list[PaymentNetwork]) -> bool:
        """Whether a usable card on one of the networks is registered."""


class PaymentSheetPresenter(ABC):
    """Shows the platform payment sheet.

    Implementations display the sheet for the request and forward user
    actions to the adapter's host callbacks (``select_shipping_address``,
    ``select_shipping_rate``, ``authorize``, ``decline``, ``dismiss``).
    ``present`` must not block.
    """

    @abstractmethod
    def present(self, request: PaymentRequest, adapter: "PaymentAuthorizationAdapter") -> None:
        """Display the sheet for the request."""


# ============================================================================
# Adapter
# ============================================================================


class PaymentAuthorizationAdapter:
    """Event stream over a single payment sheet presentation.

    The orchestrator calls ``present`` once and iterates the returned
    events. The host side calls the callbacks below; interactive
    callbacks wait for the orchestrator's reply.
    """

    def __init__(self, presenter: PaymentSheetPresenter) -> None:
        """Initialize the adapter.

        Args:
            presenter: Host component that shows the payment sheet.
        """
        self._presenter = presenter
        self._queue: asyncio.Queue[AuthorizationEvent] = asyncio.Queue()
        self._presented = False
        self._result_delivered = False
        self._dismissed = False
        self.request: PaymentRequest | None = None

    @property
    def is_active(self) -> bool:
        return self._presented and not self._dismissed

    @property
    def is_dismissed(self) -> bool:
        return self._dismissed

    def present(self, request: PaymentRequest) -> AsyncIterator[AuthorizationEvent]:
        """Show the payment sheet and return its event stream.

        Args:
            request: Payment request to display.

        Returns:
            Async iterator of events ending with Dismissed.

        Raises:
            AdapterInactiveError: If this adapter was already presented.
        """
        if self._presented:
            raise AdapterInactiveError("already presented")
        self._presented = True
        self.request = request
        logger.info(
            "Presenting payment sheet",
            merchant_id=request.merchant_id,
            currency=request.currency_code,
            total=str(request.total.amount),
            shipping_methods=len(request.shipping_methods),
        )
        self._presenter.present(request, self)
        return self._events()

    async def _events(self) -> AsyncIterator[AuthorizationEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, Dismissed):
                return

    # -------------------------------------------------------------------------
    # Host Callbacks
    # -------------------------------------------------------------------------

    def _ensure_active(self, action: str) -> None:
        if not self._presented:
            raise AdapterInactiveError(f"{action} before the sheet was presented")
        if self._dismissed:
            raise AdapterInactiveError(f"{action} after the sheet was dismissed")

    def _ensure_interactive(self, action: str) -> None:
        self._ensure_active(action)
        if self._result_delivered:
            raise AdapterInactiveError(f"{action} after authorization")

    def _future(self) -> "asyncio.Future[Any]":
        return asyncio.get_running_loop().create_future()

    async def select_shipping_address(self, address: Address) -> PaymentRequestUpdate:
        """Report a shipping address change and wait for updated totals.

        Args:
            address: Address chosen on the sheet.

        Returns:
            Rates and summary items for the new address, or a failure status.
        """
        self._ensure_interactive("shipping address change")
        event = ShippingAddressChanged(address=address, reply=self._future())
        self._queue.put_nowait(event)
        return await event.reply

    async def select_shipping_rate(self, rate_id: str) -> PaymentRequestUpdate:
        """Report a shipping method change and wait for updated totals."""
        self._ensure_interactive("shipping method change")
        event = ShippingRateChanged(rate_id=rate_id, reply=self._future())
        self._queue.put_nowait(event)
        return await event.reply

    async def authorize(
        self,
        token: PaymentToken,
        billing_address: Address | None = None,
        shipping_address: Address | None = None,
        email: str | None = None,
    ) -> PaymentAuthorizationStatus:
        """Report an approved payment and wait for the completion result.

        Args:
            token: Payment token from the wallet.
            billing_address: Billing address revealed on approval.
            shipping_address: Full shipping address revealed on approval.
            email: Contact email revealed on approval.

        Returns:
            SUCCESS if the checkout completed, FAILURE otherwise.
        """
        self._ensure_interactive("authorization")
        self._result_delivered = True
        event = AuthorizationResult(
            outcome=PaymentAuthorizationOutcome.approved(
                token,
                billing_address=billing_address,
                shipping_address=shipping_address,
                email=email,
            ),
            reply=self._future(),
        )
        self._queue.put_nowait(event)
        return await event.reply

    def decline(self) -> None:
        """Report that the wallet could not authorize the payment."""
        self._ensure_interactive("decline")
        self._result_delivered = True
        self._queue.put_nowait(
            AuthorizationResult(
                outcome=PaymentAuthorizationOutcome.cancelled_or_failed(),
                reply=self._future(),
            )
        )

    def dismiss(self) -> None:
        """Report that the sheet went away.

        A cancelled result is emitted first if the user never authorized.
        Repeated calls are ignored.
        """
        if not self._presented:
            raise AdapterInactiveError("dismissal before the sheet was presented")
        if self._dismissed:
            return
        if not self._result_delivered:
            self._result_delivered = True
            self._queue.put_nowait(
                AuthorizationResult(
                    outcome=PaymentAuthorizationOutcome.cancelled_or_failed(),
                    reply=self._future(),
                )
            )
        self._dismissed = True
        self._queue.put_nowait(Dismissed())
        logger.info("Payment sheet dismissed")
