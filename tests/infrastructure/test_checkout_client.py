"""Tests for the HTTP checkout client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from buyflow.domain import (
    CheckoutResourceStatus,
    CompletionFailureError,
    ExpirationFailureError,
    NetworkFailureError,
    ShopError,
    ValidationFailureError,
)
from buyflow.infrastructure.checkout_client import CheckoutChanges, HttpCheckoutClient
from buyflow.infrastructure.config import Settings
from tests.factories import (
    CHECKOUT_TOKEN,
    checkout_response,
    make_checkout,
    make_draft,
    make_partial_address,
    make_token,
)


def make_response(status_code: int, data: dict | None = None) -> MagicMock:
    """Create a mock HTTP response."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data if data is not None else {}
    return response


@pytest.fixture
def client() -> HttpCheckoutClient:
    """Create a test client that polls without waiting."""
    return HttpCheckoutClient(
        base_url="https://shop.example.com/api/",
        api_key="test-key",
        poll_interval=0,
        poll_attempts=3,
    )


@pytest.fixture
def mock_http_client(client):
    """Patch the underlying httpx client."""
    with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
        http_client = AsyncMock()
        mock_get_client.return_value = http_client
        yield http_client


class TestHttpCheckoutClientSetup:
    """Tests for construction and lifecycle."""

    def test_client_initialization(self, client) -> None:
        """Base URL is normalized and the HTTP client is created lazily."""
        assert client.base_url == "https://shop.example.com/api"
        assert client.api_key == "test-key"
        assert client._client is None

    def test_from_settings(self) -> None:
        """Settings provide URL, key, timeout and polling."""
        config = Settings(
            _env_file=None,
            api_base_url="https://other.example.com/api",
            api_key="secret",
            request_timeout=5.0,
            poll_attempts=7,
        )

        client = HttpCheckoutClient.from_settings(config)

        assert client.base_url == "https://other.example.com/api"
        assert client.api_key == "secret"
        assert client.timeout == 5.0
        assert client.poll_attempts == 7

    @pytest.mark.asyncio
    async def test_get_client_sends_bearer_auth(self, client) -> None:
        """The lazily created client authenticates with the API key."""
        http_client = await client._get_client()
        try:
            assert http_client.headers["Authorization"] == "Bearer test-key"
            assert await client._get_client() is http_client
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_close(self, client) -> None:
        """Closing releases the HTTP client."""
        http_client = AsyncMock()
        client._client = http_client

        async with client:
            pass

        http_client.aclose.assert_awaited_once()
        assert client._client is None


class TestCheckoutEndpoints:
    """Tests for create and update."""

    @pytest.mark.asyncio
    async def test_create_checkout(self, client, mock_http_client) -> None:
        """Drafts are posted in a checkout envelope."""
        mock_http_client.request.return_value = make_response(
            201, {"checkout": checkout_response()}
        )
        draft = make_draft()

        checkout = await client.create(draft)

        mock_http_client.request.assert_awaited_once_with(
            method="POST",
            url="/checkouts",
            json={"checkout": {"line_items": [{"variant_id": "39072856", "quantity": 2}]}},
        )
        assert checkout.token == CHECKOUT_TOKEN
        assert checkout.total_price.amount_cents == 2825
        assert checkout.line_items[0].variant_id == "39072856"

    @pytest.mark.asyncio
    async def test_update_sends_only_changes(self, client, mock_http_client) -> None:
        """Partial updates only send the fields that changed."""
        mock_http_client.request.return_value = make_response(
            200, {"checkout": checkout_response()}
        )
        address = make_partial_address()

        await client.update(make_checkout(), CheckoutChanges(shipping_address=address))

        mock_http_client.request.assert_awaited_once_with(
            method="PATCH",
            url=f"/checkouts/{CHECKOUT_TOKEN}",
            json={
                "checkout": {
                    "shipping_address": {
                        "country_code": "US",
                        "city": "Ottawa",
                        "province_code": "IL",
                        "zip": "61350",
                    }
                }
            },
        )

    @pytest.mark.asyncio
    async def test_update_requires_token(self, client, mock_http_client) -> None:
        """A draft cannot be updated."""
        with pytest.raises(ValueError):
            await client.update(make_draft())
        mock_http_client.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_validation_error(self, client, mock_http_client) -> None:
        """4xx responses raise ValidationFailureError with the remote errors."""
        mock_http_client.request.return_value = make_response(
            422, {"errors": {"line_items": ["is invalid"]}}
        )

        with pytest.raises(ValidationFailureError) as exc_info:
            await client.create(make_draft())

        assert exc_info.value.status_code == 422
        assert exc_info.value.errors == {"line_items": ["is invalid"]}

    @pytest.mark.asyncio
    async def test_server_error(self, client, mock_http_client) -> None:
        """5xx responses raise NetworkFailureError."""
        mock_http_client.request.return_value = make_response(503)

        with pytest.raises(NetworkFailureError) as exc_info:
            await client.create(make_draft())

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_request_timeout(self, client, mock_http_client) -> None:
        """Timeouts raise NetworkFailureError."""
        mock_http_client.request.side_effect = httpx.TimeoutException("Connection timeout")

        with pytest.raises(NetworkFailureError):
            await client.create(make_draft())

    @pytest.mark.asyncio
    async def test_request_error(self, client, mock_http_client) -> None:
        """Transport errors raise NetworkFailureError."""
        mock_http_client.request.side_effect = httpx.ConnectError("Connection refused")

        with pytest.raises(NetworkFailureError):
            await client.create(make_draft())


class TestShippingRates:
    """Tests for shipping rate retrieval."""

    @pytest.mark.asyncio
    async def test_polls_until_rates_are_ready(self, client, mock_http_client) -> None:
        """202 responses are polled until the rates arrive."""
        mock_http_client.request.side_effect = [
            make_response(202),
            make_response(
                200,
                {
                    "shipping_rates": [
                        {"id": "standard", "title": "Standard", "price": "5.00"},
                        {"id": "express", "title": "Express", "price": "15.00"},
                    ]
                },
            ),
        ]

        rates = await client.get_shipping_rates(make_checkout())

        assert [rate.id for rate in rates] == ["standard", "express"]
        assert rates[1].price.amount_cents == 1500
        assert all(rate.is_valid_for(CHECKOUT_TOKEN) for rate in rates)
        assert mock_http_client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_poll_attempts(self, client, mock_http_client) -> None:
        """A service that never finishes raises NetworkFailureError."""
        mock_http_client.request.return_value = make_response(202)

        with pytest.raises(NetworkFailureError) as exc_info:
            await client.get_shipping_rates(make_checkout())

        assert exc_info.value.status_code == 202
        assert mock_http_client.request.await_count == 3


class TestComplete:
    """Tests for checkout completion."""

    @pytest.mark.asyncio
    async def test_complete_with_payment_token(self, client, mock_http_client) -> None:
        """The payment token is posted and the processing checkout is polled."""
        mock_http_client.request.side_effect = [
            make_response(202),
            make_response(202),
            make_response(
                200,
                {"checkout": checkout_response(status="completed", order_id=1001)},
            ),
        ]

        checkout = await client.complete(make_checkout(), make_token())

        first = mock_http_client.request.await_args_list[0]
        assert first.kwargs["url"] == f"/checkouts/{CHECKOUT_TOKEN}/complete"
        assert first.kwargs["json"] == {
            "payment_token": {
                "payment_data": "encrypted-payment-data",
                "transaction_identifier": "txn-001",
                "network": "visa",
            }
        }
        poll = mock_http_client.request.await_args_list[1]
        assert poll.kwargs["method"] == "GET"
        assert poll.kwargs["url"] == f"/checkouts/{CHECKOUT_TOKEN}"
        assert checkout.status == CheckoutResourceStatus.COMPLETED
        assert checkout.order_id == "1001"

    @pytest.mark.asyncio
    async def test_declined_payment(self, client, mock_http_client) -> None:
        """A rejected payment raises CompletionFailureError."""
        mock_http_client.request.return_value = make_response(
            402, {"errors": {"payment": ["was declined"]}}
        )

        with pytest.raises(CompletionFailureError) as exc_info:
            await client.complete(make_checkout(), make_token())

        assert exc_info.value.status_code == 402

    @pytest.mark.asyncio
    async def test_failed_checkout(self, client, mock_http_client) -> None:
        """A checkout that settles as failed raises CompletionFailureError."""
        mock_http_client.request.return_value = make_response(
            200, {"checkout": checkout_response(status="failed")}
        )

        with pytest.raises(CompletionFailureError):
            await client.complete(make_checkout(), make_token())


class TestOtherEndpoints:
    """Tests for expire, cart tokens and shop metadata."""

    @pytest.mark.asyncio
    async def test_expire(self, client, mock_http_client) -> None:
        """Expiring posts to the expire endpoint."""
        mock_http_client.request.return_value = make_response(200)

        await client.expire(make_checkout())

        mock_http_client.request.assert_awaited_once_with(
            method="POST",
            url=f"/checkouts/{CHECKOUT_TOKEN}/expire",
            json=None,
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [404, 500])
    async def test_expire_failure(self, client, mock_http_client, status_code) -> None:
        """Any failure to expire raises ExpirationFailureError."""
        mock_http_client.request.return_value = make_response(status_code)

        with pytest.raises(ExpirationFailureError) as exc_info:
            await client.expire(make_checkout())

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_resolve_cart_token(self, client, mock_http_client) -> None:
        """Cart tokens are exchanged for a checkout."""
        mock_http_client.request.return_value = make_response(
            201, {"checkout": checkout_response(cart_token="cart-abc")}
        )

        checkout = await client.resolve_cart_token("cart-abc")

        mock_http_client.request.assert_awaited_once_with(
            method="POST",
            url="/checkouts",
            json={"checkout": {"cart_token": "cart-abc"}},
        )
        assert checkout.cart_token == "cart-abc"
        assert checkout.web_url is not None

    @pytest.mark.asyncio
    async def test_get_shop(self, client, mock_http_client) -> None:
        """Shop metadata is parsed from its envelope."""
        mock_http_client.request.return_value = make_response(
            200,
            {
                "shop": {
                    "name": "Sock Drawer",
                    "domain": "sockdrawer.example.com",
                    "currency": "CAD",
                    "country": "CA",
                }
            },
        )

        shop = await client.get_shop()

        assert shop.name == "Sock Drawer"
        assert shop.country_code == "CA"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 503])
    async def test_get_shop_failure(self, client, mock_http_client, status_code) -> None:
        """Any failure to load the shop raises ShopError."""
        mock_http_client.request.return_value = make_response(status_code)

        with pytest.raises(ShopError):
            await client.get_shop()


# ============================================================================
# Malformed Responses
# ============================================================================


def transport_client(handler) -> HttpCheckoutClient:
    """Create a client whose requests are answered by handler."""
    return HttpCheckoutClient(
        base_url="https://shop.example.com/api",
        api_key="test-key",
        poll_interval=0,
        poll_attempts=3,
        transport=httpx.MockTransport(handler),
    )


class TestMalformedResponses:
    """Successful responses the client cannot decode raise typed errors."""

    @pytest.mark.asyncio
    async def test_html_body_on_create(self) -> None:
        """A non-JSON body raises ValidationFailureError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>Maintenance</html>")

        async with transport_client(handler) as client:
            with pytest.raises(ValidationFailureError) as exc_info:
                await client.create(make_draft())

        assert exc_info.value.status_code == 200
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_unknown_status_on_complete(self) -> None:
        """An unknown checkout status after completion raises CompletionFailureError."""
        seen_paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_paths.append(request.url.path)
            return httpx.Response(
                200, json={"checkout": {"token": CHECKOUT_TOKEN, "status": "processing"}}
            )

        async with transport_client(handler) as client:
            with pytest.raises(CompletionFailureError):
                await client.complete(make_checkout(), make_token())

        assert seen_paths == [f"/api/checkouts/{CHECKOUT_TOKEN}/complete"]

    @pytest.mark.asyncio
    async def test_unparseable_rate_price(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"shipping_rates": [{"id": "standard", "price": "free"}]}
            )

        async with transport_client(handler) as client:
            with pytest.raises(ValidationFailureError):
                await client.get_shipping_rates(make_checkout())

    @pytest.mark.asyncio
    async def test_rate_without_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"shipping_rates": [{"title": "Standard"}]})

        async with transport_client(handler) as client:
            with pytest.raises(ValidationFailureError):
                await client.get_shipping_rates(make_checkout())

    @pytest.mark.asyncio
    async def test_shop_without_name(self) -> None:
        """Shop metadata missing required fields raises ShopError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"shop": {"domain": "sockdrawer.example.com"}})

        async with transport_client(handler) as client:
            with pytest.raises(ShopError):
                await client.get_shop()

    @pytest.mark.asyncio
    async def test_failed_checkout_without_errors_keeps_errors_a_dict(self) -> None:
        """A failed checkout with no errors key still reports a dict payload."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"checkout": checkout_response(status="failed")})

        async with transport_client(handler) as client:
            with pytest.raises(CompletionFailureError) as exc_info:
                await client.complete(make_checkout(), make_token())

        assert isinstance(exc_info.value.errors, dict)
        assert exc_info.value.errors["checkout"]["status"] == "failed"
