"""Outcome notifications.

OutcomeNotifier fans checkout outcomes out to optional, synchronous
handlers. A handler that raises is logged and otherwise ignored, so
observers can never break a running checkout.
"""

from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()


ON_CREATE_FAILED = "on_create_failed"
ON_WALLET_UNAVAILABLE = "on_wallet_unavailable"
ON_UPDATE_FAILED = "on_update_failed"
ON_SHIPPING_RATES_FAILED = "on_shipping_rates_failed"
ON_COMPLETE_FAILED = "on_complete_failed"
ON_COMPLETED = "on_completed"
ON_AUTHORIZATION_DISMISSED = "on_authorization_dismissed"
ON_WILL_USE_WEB_CHECKOUT = "on_will_use_web_checkout"
ON_WILL_USE_WALLET_CHECKOUT = "on_will_use_wallet_checkout"

NOTIFICATIONS: frozenset[str] = frozenset(
    {
        ON_CREATE_FAILED,
        ON_WALLET_UNAVAILABLE,
        ON_UPDATE_FAILED,
        ON_SHIPPING_RATES_FAILED,
        ON_COMPLETE_FAILED,
        ON_COMPLETED,
        ON_AUTHORIZATION_DISMISSED,
        ON_WILL_USE_WEB_CHECKOUT,
        ON_WILL_USE_WALLET_CHECKOUT,
    }
)


class OutcomeNotifier:
    """Dispatches checkout outcomes to registered handlers.

    Handlers can be passed as keyword arguments, registered with ``on``,
    or picked up from a delegate object that defines methods with the
    notification names. Explicit handlers take precedence over the
    delegate.

    Handler signatures:
        on_create_failed(error)
        on_wallet_unavailable()
        on_update_failed(resource, error)
        on_shipping_rates_failed(resource, error)
        on_complete_failed(resource, error)
        on_completed(resource, status)
        on_authorization_dismissed(status, resource)
        on_will_use_web_checkout()
        on_will_use_wallet_checkout()

    Example:
        notifier = OutcomeNotifier(on_completed=lambda resource, status: ...)
    """

    def __init__(self, delegate: object | None = None, **handlers: Callable[..., Any]) -> None:
        """Initialize the notifier.

        Args:
            delegate: Object whose methods named like notifications are used
                as handlers.
            **handlers: Handlers keyed by notification name.

        Raises:
            ValueError: If a handler name is not a known notification.
        """
        self.delegate = delegate
        self._handlers: dict[str, Callable[..., Any]] = {}
        for name, handler in handlers.items():
            self.on(name, handler)

    def on(self, name: str, handler: Callable[..., Any] | None) -> None:
        """Register (or with None, remove) the handler for a notification."""
        if name not in NOTIFICATIONS:
            raise ValueError(f"Unknown notification: {name}")
        if handler is None:
            self._handlers.pop(name, None)
        else:
            self._handlers[name] = handler

    def handler_for(self, name: str) -> Callable[..., Any] | None:
        handler = self._handlers.get(name)
        if handler is None and self.delegate is not None:
            candidate = getattr(self.delegate, name, None)
            if callable(candidate):
                handler = candidate
        return handler

    def emit(self, name: str, *args: Any) -> None:
        """Invoke the handler for a notification, if any.

        Args:
            name: Notification name.
            *args: Positional arguments for the handler.

        Raises:
            ValueError: If the name is not a known notification.
        """
        if name not in NOTIFICATIONS:
            raise ValueError(f"Unknown notification: {name}")

        handler = self.handler_for(name)
        if handler is None:
            logger.debug("No handler for notification", notification=name)
            return

        try:
            handler(*args)
        except Exception:
            logger.exception("Notification handler failed", notification=name)
