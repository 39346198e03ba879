"""Checkout client for the remote commerce service.

CheckoutClient is the interface the orchestrator depends on.
HttpCheckoutClient implements it over the commerce REST API with
authentication, status-code mapping and polling of long-running
operations.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import structlog

from buyflow.domain.entities import CheckoutResource, Shop
from buyflow.domain.exceptions import (
    CheckoutClientError,
    CompletionFailureError,
    DomainError,
    ExpirationFailureError,
    NetworkFailureError,
    ShopError,
    ValidationFailureError,
)
from buyflow.domain.state_machines import CheckoutResourceStatus
from buyflow.domain.value_objects import Address, PaymentToken, ShippingRate
from buyflow.infrastructure.config import Settings, settings as default_settings

logger = structlog.get_logger()

T = TypeVar("T")

# Raised while decoding a body that is not JSON or has an unexpected shape
_MALFORMED_BODY_ERRORS = (
    ValueError,
    KeyError,
    TypeError,
    AttributeError,
    ArithmeticError,
    DomainError,
)


# ============================================================================
# Checkout Changes
# ============================================================================


@dataclass(frozen=True)
class CheckoutChanges:
    """Partial update of an existing checkout.

    Only the fields that are set are sent to the remote service.
    """

    email: str | None = None
    shipping_address: Address | None = None
    billing_address: Address | None = None
    shipping_rate_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.email is not None:
            payload["email"] = self.email
        if self.shipping_address is not None:
            payload["shipping_address"] = self.shipping_address.to_payload()
        if self.billing_address is not None:
            payload["billing_address"] = self.billing_address.to_payload()
        if self.shipping_rate_id is not None:
            payload["shipping_rate_id"] = self.shipping_rate_id
        return payload

    @property
    def is_empty(self) -> bool:
        return not self.to_payload()


# ============================================================================
# Checkout Client Interface
# ============================================================================


class CheckoutClient(ABC):
    """Operations the orchestrator performs against the commerce service.

    Every method either returns its result or raises a
    CheckoutClientError subclass.
    """

    @abstractmethod
    async def create(self, draft: CheckoutResource) -> CheckoutResource:
        """Create a checkout from a draft."""

    @abstractmethod
    async def update(
        self,
        resource: CheckoutResource,
        changes: CheckoutChanges | None = None,
    ) -> CheckoutResource:
        """Update an existing checkout (the whole draft when changes is None)."""

    @abstractmethod
    async def get_shipping_rates(self, resource: CheckoutResource) -> list[ShippingRate]:
        """Fetch shipping rates for the checkout's current address."""

    @abstractmethod
    async def complete(
        self,
        resource: CheckoutResource,
        payment_token: PaymentToken | None = None,
    ) -> CheckoutResource:
        """Complete the checkout with a wallet payment token."""

    @abstractmethod
    async def expire(self, resource: CheckoutResource) -> None:
        """Release the checkout and any inventory it holds."""

    @abstractmethod
    async def resolve_cart_token(self, token: str) -> CheckoutResource:
        """Create a checkout from a storefront cart token."""

    @abstractmethod
    async def get_shop(self) -> Shop:
        """Fetch shop metadata."""


# ============================================================================
# HTTP Checkout Client
# ============================================================================


class HttpCheckoutClient(CheckoutClient):
    """HTTP client for the commerce checkout API.

    Maps transport failures and 5xx responses to NetworkFailureError and
    4xx responses to ValidationFailureError (or the operation-specific
    error). Endpoints that answer 202 while the service is still working
    are polled until a final response arrives.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        poll_interval: float = 0.5,
        poll_attempts: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the checkout client.

        Args:
            base_url: Commerce API base URL.
            api_key: API key for authentication.
            timeout: Request timeout in seconds.
            poll_interval: Seconds between polls of a 202 response.
            poll_attempts: Maximum number of polls before giving up.
            transport: Optional httpx transport for the underlying client.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "HttpCheckoutClient":
        config = config or default_settings
        return cls(
            base_url=config.api_base_url,
            api_key=config.api_key,
            timeout=config.request_timeout,
            poll_interval=config.poll_interval,
            poll_attempts=config.poll_attempts,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpCheckoutClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Request Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _error_payload(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {"body": response.text}
        if isinstance(data, dict):
            errors = data.get("errors", data)
            return errors if isinstance(errors, dict) else {"errors": errors}
        return {"errors": data}

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        error_class: type[CheckoutClientError] = ValidationFailureError,
    ) -> httpx.Response:
        """Make an API request.

        Args:
            method: HTTP method.
            path: API endpoint path.
            json: Request body as JSON.
            error_class: Error raised for 4xx responses.

        Returns:
            The successful response (status below 400).

        Raises:
            NetworkFailureError: On transport errors, timeouts and 5xx.
            CheckoutClientError: ``error_class`` on 4xx responses.
        """
        client = await self._get_client()

        try:
            logger.debug(
                "Making checkout API request",
                method=method,
                path=path,
                has_body=json is not None,
            )
            response = await client.request(method=method, url=path, json=json)
        except httpx.TimeoutException as e:
            logger.error("Checkout API request timeout", path=path, error=str(e))
            raise NetworkFailureError(f"Request timed out: {path}") from e
        except httpx.RequestError as e:
            logger.error("Checkout API request failed", path=path, error=str(e))
            raise NetworkFailureError(f"Request failed: {str(e)}") from e

        if response.status_code >= 500:
            raise NetworkFailureError(
                f"Server error on {method} {path}",
                status_code=response.status_code,
                errors=self._error_payload(response),
            )
        if response.status_code >= 400:
            raise error_class(
                f"{method} {path} was rejected",
                status_code=response.status_code,
                errors=self._error_payload(response),
            )
        return response

    async def _poll(
        self,
        method: str,
        path: str,
        error_class: type[CheckoutClientError] = ValidationFailureError,
    ) -> httpx.Response:
        """Repeat a request while the service answers 202 Accepted.

        Raises:
            NetworkFailureError: If the service is still processing after
                ``poll_attempts`` requests.
        """
        for attempt in range(1, self.poll_attempts + 1):
            response = await self._request(method, path, error_class=error_class)
            if response.status_code != 202:
                return response
            logger.debug("Checkout still processing", path=path, attempt=attempt)
            await asyncio.sleep(self.poll_interval)

        raise NetworkFailureError(
            f"{path} still processing after {self.poll_attempts} attempts",
            status_code=202,
        )

    @staticmethod
    def _require_token(resource: CheckoutResource) -> str:
        if not resource.token:
            raise ValueError("Checkout has not been created yet")
        return resource.token

    @staticmethod
    def _parse(
        response: httpx.Response,
        path: str,
        parser: Callable[[Any], T],
        error_class: type[CheckoutClientError] = ValidationFailureError,
    ) -> T:
        """Decode a successful response body.

        Raises:
            CheckoutClientError: ``error_class`` if the body is not JSON or
                does not have the expected shape.
        """
        try:
            return parser(response.json())
        except _MALFORMED_BODY_ERRORS as e:
            logger.error(
                "Unexpected checkout API response",
                path=path,
                status_code=response.status_code,
                error=str(e),
            )
            raise error_class(
                f"Unexpected response from {path}: {e}",
                status_code=response.status_code,
                errors={"response": [str(e)]},
            ) from e

    @staticmethod
    def _checkout_from(data: dict[str, Any]) -> CheckoutResource:
        return CheckoutResource.from_api_response(data.get("checkout", data))

    def _parse_checkout(
        self,
        response: httpx.Response,
        path: str,
        error_class: type[CheckoutClientError] = ValidationFailureError,
    ) -> CheckoutResource:
        return self._parse(response, path, self._checkout_from, error_class)

    # -------------------------------------------------------------------------
    # Checkout Endpoints
    # -------------------------------------------------------------------------

    async def create(self, draft: CheckoutResource) -> CheckoutResource:
        response = await self._request(
            "POST",
            "/checkouts",
            json={"checkout": draft.to_payload()},
        )
        checkout = self._parse_checkout(response, "/checkouts")
        logger.info("Checkout created", checkout_token=checkout.token)
        return checkout

    async def update(
        self,
        resource: CheckoutResource,
        changes: CheckoutChanges | None = None,
    ) -> CheckoutResource:
        token = self._require_token(resource)
        payload = changes.to_payload() if changes is not None else resource.to_payload()
        response = await self._request(
            "PATCH",
            f"/checkouts/{token}",
            json={"checkout": payload},
        )
        return self._parse_checkout(response, f"/checkouts/{token}")

    async def get_shipping_rates(self, resource: CheckoutResource) -> list[ShippingRate]:
        """Fetch shipping rates, polling while they are being calculated.

        Args:
            resource: Checkout with a shipping address.

        Returns:
            Rates tied to this checkout's token.
        """
        token = self._require_token(resource)
        path = f"/checkouts/{token}/shipping_rates"
        response = await self._poll("GET", path)
        return self._parse(
            response,
            path,
            lambda data: [
                ShippingRate.from_api_response(rate, token, resource.currency)
                for rate in data.get("shipping_rates", [])
            ],
        )

    async def complete(
        self,
        resource: CheckoutResource,
        payment_token: PaymentToken | None = None,
    ) -> CheckoutResource:
        """Complete the checkout.

        The service answers 202 while the payment is processing; the
        checkout is then polled until it settles.

        Raises:
            CompletionFailureError: If the service rejects the completion
                or the checkout settles as failed.
        """
        token = self._require_token(resource)
        body: dict[str, Any] = {}
        if payment_token is not None:
            body["payment_token"] = payment_token.to_payload()

        response = await self._request(
            "POST",
            f"/checkouts/{token}/complete",
            json=body,
            error_class=CompletionFailureError,
        )
        if response.status_code == 202:
            response = await self._poll(
                "GET",
                f"/checkouts/{token}",
                error_class=CompletionFailureError,
            )

        checkout = self._parse_checkout(
            response, f"/checkouts/{token}", error_class=CompletionFailureError
        )
        if checkout.status == CheckoutResourceStatus.FAILED:
            raise CompletionFailureError(
                f"Checkout {token} failed to complete",
                status_code=response.status_code,
                errors=self._error_payload(response),
            )
        logger.info(
            "Checkout completed",
            checkout_token=token,
            order_id=checkout.order_id,
        )
        return checkout

    async def expire(self, resource: CheckoutResource) -> None:
        token = self._require_token(resource)
        try:
            await self._request("POST", f"/checkouts/{token}/expire")
        except CheckoutClientError as e:
            raise ExpirationFailureError(
                f"Failed to expire checkout {token}: {e.message}",
                status_code=e.status_code,
                errors=e.errors,
            ) from e

    async def resolve_cart_token(self, token: str) -> CheckoutResource:
        response = await self._request(
            "POST",
            "/checkouts",
            json={"checkout": {"cart_token": token}},
        )
        return self._parse_checkout(response, "/checkouts")

    async def get_shop(self) -> Shop:
        try:
            response = await self._request("GET", "/shop", error_class=ShopError)
        except NetworkFailureError as e:
            raise ShopError(
                f"Failed to load shop: {e.message}",
                status_code=e.status_code,
                errors=e.errors,
            ) from e
        return self._parse(
            response,
            "/shop",
            lambda data: Shop.from_api_response(data.get("shop", data)),
            error_class=ShopError,
        )
