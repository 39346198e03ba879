"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Self
from uuid import UUID, uuid4

from buyflow.domain.base import ValueObject
from buyflow.domain.exceptions import (
    InvalidQuantityError,
    NegativeMoneyError,
)


# ============================================================================
# Typed Identifiers
# ============================================================================


@dataclass(frozen=True)
class AttemptId(ValueObject):
    """Strongly-typed checkout attempt identifier."""

    value: UUID

    @classmethod
    def generate(cls) -> Self:
        """Generate a new attempt ID.

        Returns:
            New AttemptId with random UUID.
        """
        return cls(value=uuid4())

    def __str__(self) -> str:
        return str(self.value)


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Represents monetary value with currency.

    Money is stored in the smallest currency unit (cents for USD/EUR)
    to avoid floating-point precision issues. Amounts coming from the
    remote service are decimal strings in major units ("12.50").

    Attributes:
        amount_cents: Amount in smallest currency unit (e.g., cents).
        currency: ISO 4217 currency code (e.g., 'USD', 'EUR').
    """

    amount_cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if self.amount_cents < 0:
            raise NegativeMoneyError(self.amount_cents)
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "USD") -> Self:
        return cls(amount_cents=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal, currency: str = "USD") -> Self:
        """Create money from decimal amount.

        Args:
            amount: Decimal amount in major units (e.g., dollars).
            currency: Currency code.

        Returns:
            Money instance.
        """
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cls(amount_cents=cents, currency=currency)

    @classmethod
    def parse(cls, amount: str | int | float | None, currency: str = "USD") -> Self:
        """Parse an amount as sent by the remote service.

        Args:
            amount: Amount in major units; None is treated as zero.
            currency: Currency code.

        Returns:
            Money instance.
        """
        if amount is None or amount == "":
            return cls.zero(currency)
        return cls.from_decimal(Decimal(str(amount)), currency)

    def to_decimal(self) -> Decimal:
        """Convert to decimal amount in major units.

        Returns:
            Decimal amount (e.g., dollars from cents).
        """
        return Decimal(self.amount_cents) / 100

    def __str__(self) -> str:
        """Return formatted string representation.

        Returns:
            Formatted money string (e.g., '$12.99 USD').
        """
        symbol = {"USD": "$", "EUR": "€", "GBP": "£", "CAD": "$"}.get(self.currency, "")
        return f"{symbol}{self.to_decimal():.2f} {self.currency}"

    def is_zero(self) -> bool:
        return self.amount_cents == 0


# ============================================================================
# Address Value Object
# ============================================================================


@dataclass(frozen=True)
class Address(ValueObject):
    """Shipping or billing address.

    Wallet sheets only reveal a partial address (city, region, postal
    code, country) until the payment is authorized, so street lines and
    names are optional here and validated remotely.

    Attributes:
        country_code: ISO 3166-1 alpha-2 country code.
        city: City name.
        province: State/province/region.
        zip: Postal/ZIP code.
        address1: Primary address line.
        address2: Secondary address line.
        first_name: Recipient first name.
        last_name: Recipient last name.
        phone: Phone number.
    """

    country_code: str
    city: str | None = None
    province: str | None = None
    zip: str | None = None
    address1: str | None = None
    address2: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None

    def __post_init__(self) -> None:
        """Validate address fields."""
        if not self.country_code or not self.country_code.strip():
            raise ValueError("Country code cannot be empty")
        object.__setattr__(self, "country_code", self.country_code.strip().upper())

    @property
    def is_partial(self) -> bool:
        """Check if street-level details are missing.

        Returns:
            True for addresses as revealed before authorization.
        """
        return not self.address1

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Self:
        """Create from API response data."""
        return cls(
            country_code=data.get("country_code", ""),
            city=data.get("city"),
            province=data.get("province_code") or data.get("province"),
            zip=data.get("zip"),
            address1=data.get("address1"),
            address2=data.get("address2"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            phone=data.get("phone"),
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the remote service, dropping empty fields."""
        payload = {
            "country_code": self.country_code,
            "city": self.city,
            "province_code": self.province,
            "zip": self.zip,
            "address1": self.address1,
            "address2": self.address2,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
        }
        return {k: v for k, v in payload.items() if v is not None}


# ============================================================================
# Line Items
# ============================================================================


@dataclass(frozen=True)
class LineItem(ValueObject):
    """A product variant and quantity in a checkout.

    Attributes:
        variant_id: Variant identifier in the shop catalog.
        quantity: Number of units, always positive.
        title: Display title, filled in by the remote service.
        price: Unit price, filled in by the remote service.
        requires_shipping: Whether the variant is a physical good.
    """

    variant_id: str
    quantity: int = 1
    title: str | None = None
    price: Money | None = None
    requires_shipping: bool = True

    def __post_init__(self) -> None:
        if not self.variant_id or not str(self.variant_id).strip():
            raise ValueError("Variant ID cannot be empty")
        if self.quantity <= 0:
            raise InvalidQuantityError(self.quantity)

    @classmethod
    def from_api_response(cls, data: dict[str, Any], currency: str = "USD") -> Self:
        """Create from API response data."""
        price = data.get("price")
        return cls(
            variant_id=str(data["variant_id"]),
            quantity=data.get("quantity", 1),
            title=data.get("title"),
            price=Money.parse(price, currency) if price is not None else None,
            requires_shipping=data.get("requires_shipping", True),
        )

    def to_payload(self) -> dict[str, Any]:
        return {"variant_id": self.variant_id, "quantity": self.quantity}


# ============================================================================
# Shipping Rate
# ============================================================================


@dataclass(frozen=True)
class ShippingRate(ValueObject):
    """A named shipping option with a price.

    A rate is only valid for the checkout it was fetched for and goes
    stale as soon as that checkout's shipping address changes.

    Attributes:
        id: Rate handle used when selecting it.
        title: Display title (e.g., 'Standard Shipping').
        price: Price of the rate.
        checkout_token: Token of the checkout the rate was fetched for.
        delivery_range: Optional human-readable delivery estimate.
    """

    id: str
    title: str
    price: Money
    checkout_token: str
    delivery_range: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Shipping rate ID cannot be empty")

    @classmethod
    def from_api_response(
        cls,
        data: dict[str, Any],
        checkout_token: str,
        currency: str = "USD",
    ) -> Self:
        """Create from API response data.

        Args:
            data: Rate payload.
            checkout_token: Checkout the rates were requested for.
            currency: Checkout currency.

        Returns:
            ShippingRate instance.
        """
        return cls(
            id=data["id"],
            title=data.get("title", data["id"]),
            price=Money.parse(data.get("price"), currency),
            checkout_token=checkout_token,
            delivery_range=data.get("delivery_range"),
        )

    def is_valid_for(self, checkout_token: str | None) -> bool:
        return checkout_token is not None and self.checkout_token == checkout_token


# ============================================================================
# Payment Values
# ============================================================================


class PaymentNetwork(str, Enum):
    """Card networks a wallet payment may be made with."""

    AMEX = "amex"
    MASTERCARD = "mastercard"
    VISA = "visa"


class MerchantCapability(str, Enum):
    """Payment processing capability the merchant requires.

    THREE_DS is the default; EMV is required by some regions, CREDIT and
    DEBIT restrict the accepted card types.
    """

    THREE_DS = "3ds"
    EMV = "emv"
    CREDIT = "credit"
    DEBIT = "debit"


@dataclass(frozen=True)
class PaymentToken(ValueObject):
    """Opaque payment token produced by the wallet.

    The payment data is passed through to the remote service untouched
    and is kept out of reprs so it never reaches the logs.

    Attributes:
        payment_data: Encrypted payment data from the wallet.
        transaction_identifier: Wallet transaction identifier.
        network: Card network the user paid with.
    """

    payment_data: str = field(repr=False)
    transaction_identifier: str | None = None
    network: PaymentNetwork | None = None

    def __post_init__(self) -> None:
        if not self.payment_data:
            raise ValueError("Payment data cannot be empty")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"payment_data": self.payment_data}
        if self.transaction_identifier:
            payload["transaction_identifier"] = self.transaction_identifier
        if self.network:
            payload["network"] = self.network.value
        return payload


@dataclass(frozen=True)
class PaymentAuthorizationOutcome(ValueObject):
    """Result of one wallet authorization: approved with a token, or not.

    Attributes:
        token: Payment token when approved, None when the user cancelled
            or the wallet failed to authorize.
        billing_address: Billing address revealed on approval.
        shipping_address: Full shipping address revealed on approval.
        email: Contact email revealed on approval.
    """

    token: PaymentToken | None = None
    billing_address: Address | None = None
    shipping_address: Address | None = None
    email: str | None = None

    @classmethod
    def approved(
        cls,
        token: PaymentToken,
        billing_address: Address | None = None,
        shipping_address: Address | None = None,
        email: str | None = None,
    ) -> Self:
        return cls(
            token=token,
            billing_address=billing_address,
            shipping_address=shipping_address,
            email=email,
        )

    @classmethod
    def cancelled_or_failed(cls) -> Self:
        return cls()

    @property
    def is_approved(self) -> bool:
        return self.token is not None
