"""Browser checkout hand-off."""

import webbrowser
from abc import ABC, abstractmethod

import httpx
import structlog

from buyflow.domain.exceptions import ValidationFailureError

logger = structlog.get_logger()


class WebCheckoutLauncher(ABC):
    """Opens a checkout URL in a browser."""

    @abstractmethod
    def launch(self, url: str) -> None:
        """Hand the checkout off to the browser. Must not block."""


class BrowserWebCheckoutLauncher(WebCheckoutLauncher):
    """Launcher backed by the system browser."""

    def __init__(self, new_window: bool = False) -> None:
        self.new_window = new_window

    def launch(self, url: str) -> None:
        opened = webbrowser.open(url, new=1 if self.new_window else 2)
        if not opened:
            logger.warning("No browser available for web checkout", url=url)


def validate_web_url(url: str | None) -> str:
    """Check that a web checkout URL can be handed to a browser.

    Args:
        url: URL returned by the commerce service.

    Returns:
        The URL unchanged.

    Raises:
        ValidationFailureError: If the URL is missing, relative, or not http(s).
    """
    if not url:
        raise ValidationFailureError(
            "Checkout has no web checkout URL",
            errors={"web_url": ["is missing"]},
        )
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ValidationFailureError(
            f"Malformed web checkout URL: {url}",
            errors={"web_url": [str(e)]},
        ) from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValidationFailureError(
            f"Web checkout URL must be an absolute http(s) URL: {url}",
            errors={"web_url": ["must be an absolute http(s) URL"]},
        )
    return url
