"""Pytest configuration and fixtures for buyflow tests."""

import asyncio
from collections.abc import Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from buyflow.application import CheckoutOrchestrator, OutcomeNotifier
from buyflow.domain import Address, PaymentToken
from buyflow.infrastructure.checkout_client import CheckoutClient
from buyflow.infrastructure.config import Settings
from buyflow.infrastructure.payment_authorization import (
    PaymentAuthorizationAdapter,
    PaymentRequest,
    PaymentSheetPresenter,
    WalletCapability,
)
from buyflow.infrastructure.web_checkout import WebCheckoutLauncher
from tests.factories import make_shop

SheetScript = Callable[[PaymentAuthorizationAdapter], Awaitable[None]]


class ScriptedPresenter(PaymentSheetPresenter):
    """Payment sheet stand-in that plays back a script of user actions."""

    def __init__(self) -> None:
        self.script: SheetScript | None = None
        self.requests: list[PaymentRequest] = []
        self.adapters: list[PaymentAuthorizationAdapter] = []
        self.replies: list = []
        self.task: asyncio.Task | None = None

    def present(self, request: PaymentRequest, adapter: PaymentAuthorizationAdapter) -> None:
        self.requests.append(request)
        self.adapters.append(adapter)
        if self.script is not None:
            self.task = asyncio.get_running_loop().create_task(self.script(adapter))

    def approve(
        self,
        token: PaymentToken,
        shipping_address: Address | None = None,
        email: str | None = None,
    ) -> None:
        """User authorizes the payment, then the sheet closes."""

        async def script(adapter: PaymentAuthorizationAdapter) -> None:
            self.replies.append(
                await adapter.authorize(token, shipping_address=shipping_address, email=email)
            )
            adapter.dismiss()

        self.script = script

    def cancel(self) -> None:
        """User closes the sheet without paying."""

        async def script(adapter: PaymentAuthorizationAdapter) -> None:
            adapter.dismiss()

        self.script = script


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a configured merchant and no .env lookup."""
    return Settings(
        _env_file=None,
        api_base_url="https://shop.example.com/api",
        api_key="test-key",
        merchant_id="merchant.com.example.socks",
    )


@pytest.fixture
def mock_client() -> MagicMock:
    """Create a mock checkout client."""
    client = MagicMock(spec=CheckoutClient)

    # Make all methods async
    client.create = AsyncMock()
    client.update = AsyncMock()
    client.get_shipping_rates = AsyncMock(return_value=[])
    client.complete = AsyncMock()
    client.expire = AsyncMock(return_value=None)
    client.resolve_cart_token = AsyncMock()
    client.get_shop = AsyncMock(return_value=make_shop())

    return client


@pytest.fixture
def wallet_capability() -> MagicMock:
    """Create a wallet capability that reports a capable device."""
    capability = MagicMock(spec=WalletCapability)
    capability.can_make_payments.return_value = True
    capability.can_make_payments_using_networks.return_value = True
    return capability


@pytest.fixture
def presenter() -> ScriptedPresenter:
    return ScriptedPresenter()


@pytest.fixture
def web_launcher() -> MagicMock:
    return MagicMock(spec=WebCheckoutLauncher)


@pytest.fixture
def observer() -> MagicMock:
    """Records notifications in order through ``method_calls``."""
    return MagicMock()


@pytest.fixture
def orchestrator(
    mock_client: MagicMock,
    wallet_capability: MagicMock,
    presenter: ScriptedPresenter,
    web_launcher: MagicMock,
    observer: MagicMock,
    test_settings: Settings,
) -> CheckoutOrchestrator:
    """Create an orchestrator wired to mocks."""
    return CheckoutOrchestrator(
        client=mock_client,
        wallet_capability=wallet_capability,
        payment_presenter=presenter,
        web_launcher=web_launcher,
        notifier=OutcomeNotifier(delegate=observer),
        config=test_settings,
    )


def notification_names(observer: MagicMock) -> list[str]:
    """Names of the notifications an observer received, in order."""
    return [call[0] for call in observer.method_calls]
