"""buyflow - checkout orchestration for wallet and web payments.

Example usage:
    from buyflow import CheckoutOrchestrator, HttpCheckoutClient, OutcomeNotifier

    orchestrator = CheckoutOrchestrator(
        client=HttpCheckoutClient.from_settings(),
        wallet_capability=capability,
        payment_presenter=presenter,
        web_launcher=BrowserWebCheckoutLauncher(),
        notifier=OutcomeNotifier(on_completed=handle_completed),
    )
    attempt = orchestrator.start_wallet_checkout(draft)
    status = await attempt.wait()
"""

from buyflow.application import CheckoutOrchestrator, OutcomeNotifier
from buyflow.domain import (
    Address,
    CheckoutAttempt,
    CheckoutResource,
    CompletionPath,
    CompletionStatus,
    LineItem,
    PaymentToken,
    Shop,
)
from buyflow.infrastructure.checkout_client import (
    CheckoutChanges,
    CheckoutClient,
    HttpCheckoutClient,
)
from buyflow.infrastructure.config import Settings, settings
from buyflow.infrastructure.logging import configure_logging
from buyflow.infrastructure.payment_authorization import (
    PaymentAuthorizationAdapter,
    PaymentAuthorizationStatus,
    PaymentRequest,
    PaymentSheetPresenter,
    WalletCapability,
)
from buyflow.infrastructure.web_checkout import (
    BrowserWebCheckoutLauncher,
    WebCheckoutLauncher,
)

__version__ = "0.1.0"

__all__ = [
    "Address",
    "BrowserWebCheckoutLauncher",
    "CheckoutAttempt",
    "CheckoutChanges",
    "CheckoutClient",
    "CheckoutOrchestrator",
    "CheckoutResource",
    "CompletionPath",
    "CompletionStatus",
    "HttpCheckoutClient",
    "LineItem",
    "OutcomeNotifier",
    "PaymentAuthorizationAdapter",
    "PaymentAuthorizationStatus",
    "PaymentRequest",
    "PaymentSheetPresenter",
    "PaymentToken",
    "Settings",
    "Shop",
    "WalletCapability",
    "WebCheckoutLauncher",
    "configure_logging",
    "settings",
]
