"""Checkout orchestrator.

Drives one checkout attempt at a time from start to a terminal state:
- Creating or updating the checkout on the commerce service
- Fetching shipping rates as the shipping address changes
- Handing off to the wallet payment sheet or the browser
- Completing the checkout with the wallet payment token
- Expiring the checkout when the wallet flow ends without payment

Every outcome is reported through an OutcomeNotifier.
"""

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

from buyflow.application.notifier import (
    ON_AUTHORIZATION_DISMISSED,
    ON_COMPLETE_FAILED,
    ON_COMPLETED,
    ON_CREATE_FAILED,
    ON_SHIPPING_RATES_FAILED,
    ON_UPDATE_FAILED,
    ON_WALLET_UNAVAILABLE,
    ON_WILL_USE_WALLET_CHECKOUT,
    ON_WILL_USE_WEB_CHECKOUT,
    OutcomeNotifier,
)
from buyflow.domain.entities import CheckoutAttempt, CheckoutResource, Shop
from buyflow.domain.exceptions import (
    AuthorizationUnavailableError,
    CartTokenError,
    CheckoutClientError,
    CheckoutInProgressError,
    EmptyCheckoutError,
    ExpirationFailureError,
    InvalidShippingRateError,
    ShopError,
    UnexpectedCheckoutError,
    ValidationFailureError,
)
from buyflow.domain.state_machines import AttemptState, CompletionPath, CompletionStatus
from buyflow.infrastructure.checkout_client import CheckoutChanges, CheckoutClient
from buyflow.infrastructure.config import Settings, settings as default_settings
from buyflow.infrastructure.payment_authorization import (
    AuthorizationResult,
    Dismissed,
    PaymentAuthorizationAdapter,
    PaymentAuthorizationStatus,
    PaymentRequest,
    PaymentRequestUpdate,
    PaymentSheetPresenter,
    ReplyingEvent,
    ShippingAddressChanged,
    ShippingMethod,
    ShippingRateChanged,
    WalletCapability,
    build_summary_items,
)
from buyflow.infrastructure.web_checkout import WebCheckoutLauncher, validate_web_url

logger = structlog.get_logger()


class CheckoutOrchestrator:
    """Coordinates checkout attempts across the wallet and web paths.

    ``start_*`` methods must be called from a running event loop. They
    validate their input synchronously, schedule the attempt as a task
    and return the CheckoutAttempt straight away; ``await attempt.wait()``
    gives its final CompletionStatus.

    Subclasses may override ``build_payment_request``,
    ``checkout_completed`` and ``persist_checkout``.
    """

    def __init__(
        self,
        client: CheckoutClient,
        wallet_capability: WalletCapability,
        payment_presenter: PaymentSheetPresenter,
        web_launcher: WebCheckoutLauncher,
        notifier: OutcomeNotifier | None = None,
        config: Settings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: Commerce service client.
            wallet_capability: Reports whether the device can pay with the wallet.
            payment_presenter: Shows the wallet payment sheet.
            web_launcher: Opens browser checkout.
            notifier: Receives outcome notifications.
            config: Settings (defaults to the environment settings).
        """
        self.client = client
        self.wallet_capability = wallet_capability
        self.payment_presenter = payment_presenter
        self.web_launcher = web_launcher
        self.notifier = notifier or OutcomeNotifier()
        self.settings = config or default_settings
        self._shop: Shop | None = None
        self._shop_lock = asyncio.Lock()
        self._current: CheckoutAttempt | None = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def shop(self) -> Shop | None:
        return self._shop

    @shop.setter
    def shop(self, shop: Shop | None) -> None:
        self._shop = shop

    @property
    def current_attempt(self) -> CheckoutAttempt | None:
        """The attempt whose task is still running, if any.

        A wallet attempt stays current until its payment sheet is dismissed
        and any expiration has finished, even once its outcome is known.
        """
        return self._current

    def _wallet_checks(self) -> tuple[bool, bool, bool]:
        device_supported = self.wallet_capability.can_make_payments()
        has_usable_cards = self.wallet_capability.can_make_payments_using_networks(
            list(self.settings.supported_networks)
        )
        return device_supported, has_usable_cards, self.settings.wallet_configured

    @property
    def is_wallet_checkout_available(self) -> bool:
        """Whether the wallet path can be used right now.

        True only if the device supports wallet payments, a card on a
        supported network is registered and a merchant id is configured.
        Never touches the network.
        """
        return all(self._wallet_checks())

    # -------------------------------------------------------------------------
    # Shop
    # -------------------------------------------------------------------------

    async def load_shop(
        self,
        callback: Callable[[bool, ShopError | None], None] | None = None,
    ) -> Shop:
        """Load shop metadata, fetching it at most once.

        Args:
            callback: Called with ``(success, error)`` once loading settles.

        Returns:
            The cached or freshly fetched Shop.

        Raises:
            ShopError: If the shop could not be fetched.
        """
        if self._shop is None:
            async with self._shop_lock:
                if self._shop is None:
                    try:
                        self._shop = await self.client.get_shop()
                    except CheckoutClientError as e:
                        error = e if isinstance(e, ShopError) else ShopError(
                            f"Failed to load shop: {e.message}",
                            status_code=e.status_code,
                            errors=e.errors,
                        )
                        logger.warning("Failed to load shop", error=error.message)
                        if callback is not None:
                            callback(False, error)
                        if error is e:
                            raise
                        raise error from e
                    logger.info("Shop loaded", shop=self._shop.name)

        if callback is not None:
            callback(True, None)
        return self._shop

    async def _shop_or_none(self) -> Shop | None:
        try:
            return await self.load_shop()
        except ShopError:
            logger.warning(
                "Building payment request without shop details",
                country_code=self.settings.country_code,
            )
            return None

    # -------------------------------------------------------------------------
    # Starting Checkouts
    # -------------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        current = self.current_attempt
        if current is not None:
            raise CheckoutInProgressError(str(current.id), current.state.value)

    def _schedule(
        self,
        attempt: CheckoutAttempt,
        runner: Callable[[CheckoutAttempt], Coroutine[Any, Any, None]],
    ) -> CheckoutAttempt:
        loop = asyncio.get_running_loop()
        self._current = attempt
        attempt.attach_task(loop.create_task(self._drive(attempt, runner)))
        return attempt

    async def _drive(
        self,
        attempt: CheckoutAttempt,
        runner: Callable[[CheckoutAttempt], Coroutine[Any, Any, None]],
    ) -> None:
        try:
            await runner(attempt)
        except Exception as e:
            logger.exception(
                "Checkout attempt crashed",
                attempt_id=str(attempt.id),
                state=attempt.state.value,
            )
            await self._abandon(attempt, e)
            raise
        finally:
            if self._current is attempt:
                self._current = None
            logger.info(
                "Checkout attempt finished",
                attempt_id=str(attempt.id),
                path=attempt.path.value,
                state=attempt.state.value,
                completion_status=attempt.completion_status.value,
            )

    async def _abandon(self, attempt: CheckoutAttempt, error: Exception) -> None:
        """Settle an attempt whose task raised an unexpected error.

        The attempt fails with an UnexpectedCheckoutError. A checkout that
        was being created is reported through ``on_create_failed``; one
        that already existed for the wallet flow is expired.
        """
        if attempt.is_terminal:
            return
        creating = attempt.state == AttemptState.CREATING
        wrapped = UnexpectedCheckoutError(str(attempt.id), error)
        attempt.fail(wrapped)
        if creating:
            self.notifier.emit(ON_CREATE_FAILED, wrapped)
        elif attempt.needs_expiration:
            await self._expire(attempt)

    def _wallet_unavailable(self, attempt: CheckoutAttempt) -> CheckoutAttempt:
        device_supported, has_usable_cards, merchant_configured = self._wallet_checks()
        error = AuthorizationUnavailableError(
            device_supported=device_supported,
            has_usable_cards=has_usable_cards,
            merchant_configured=merchant_configured,
        )
        attempt.fail(error)
        logger.warning(
            "Wallet checkout unavailable",
            attempt_id=str(attempt.id),
            **error.details,
        )
        self.notifier.emit(ON_WALLET_UNAVAILABLE)
        return attempt

    def start_wallet_checkout(self, checkout: CheckoutResource) -> CheckoutAttempt:
        """Start a wallet checkout.

        The checkout is created (or updated when it already has a token)
        before the payment sheet is presented.

        Args:
            checkout: Draft or existing checkout.

        Returns:
            The new attempt. It is already FAILED if the wallet is
            unavailable.

        Raises:
            CheckoutInProgressError: If another attempt is still running.
            EmptyCheckoutError: If a draft has no line items.
        """
        self._ensure_idle()
        if checkout.is_empty and not checkout.is_persisted:
            raise EmptyCheckoutError()

        attempt = CheckoutAttempt.create(CompletionPath.WALLET, resource=checkout)
        logger.info(
            "Starting wallet checkout",
            attempt_id=str(attempt.id),
            checkout_token=checkout.token,
        )
        if not self.is_wallet_checkout_available:
            return self._wallet_unavailable(attempt)
        return self._schedule(attempt, self._run_wallet)

    def start_web_checkout(self, checkout: CheckoutResource) -> CheckoutAttempt:
        """Start a browser checkout.

        Args:
            checkout: Draft or existing checkout.

        Returns:
            The new attempt.

        Raises:
            CheckoutInProgressError: If another attempt is still running.
            EmptyCheckoutError: If a draft has no line items.
        """
        self._ensure_idle()
        if checkout.is_empty and not checkout.is_persisted:
            raise EmptyCheckoutError()

        attempt = CheckoutAttempt.create(CompletionPath.WEB, resource=checkout)
        logger.info(
            "Starting web checkout",
            attempt_id=str(attempt.id),
            checkout_token=checkout.token,
        )
        return self._schedule(attempt, self._run_web)

    def start_checkout_with_cart_token(
        self,
        token: str,
        path: CompletionPath | None = None,
    ) -> CheckoutAttempt:
        """Start a checkout from a storefront cart token.

        Args:
            token: Cart token from the storefront.
            path: Completion path; defaults to ``settings.cart_token_path``.

        Returns:
            The new attempt.

        Raises:
            CheckoutInProgressError: If another attempt is still running.
            CartTokenError: If the token is empty.
        """
        self._ensure_idle()
        if not token or not token.strip():
            raise CartTokenError(token)

        path = path or self.settings.cart_token_path
        attempt = CheckoutAttempt.create(path, resource=CheckoutResource(cart_token=token))
        logger.info(
            "Starting checkout from cart token",
            attempt_id=str(attempt.id),
            path=path.value,
        )
        if path == CompletionPath.WALLET and not self.is_wallet_checkout_available:
            return self._wallet_unavailable(attempt)

        async def run(attempt: CheckoutAttempt) -> None:
            await self._run_cart_token(attempt, token)

        return self._schedule(attempt, run)

    # -------------------------------------------------------------------------
    # Override Points
    # -------------------------------------------------------------------------

    async def persist_checkout(self, resource: CheckoutResource) -> CheckoutResource:
        """Create the checkout, or update it if it already exists."""
        if resource.is_persisted:
            return await self.client.update(resource)
        return await self.client.create(resource)

    def build_payment_request(self, resource: CheckoutResource) -> PaymentRequest:
        """Build the payment sheet request for a checkout.

        Uses the cached shop for the country and total label, falling back
        to ``settings.country_code`` when the shop could not be loaded.

        Args:
            resource: Persisted checkout.

        Returns:
            PaymentRequest for the payment sheet.
        """
        shop = self._shop
        country_code = shop.country_code if shop else self.settings.country_code
        merchant_label = f"PAY {shop.name}" if shop else "TOTAL"
        return PaymentRequest(
            merchant_id=self.settings.merchant_id or "",
            country_code=country_code,
            currency_code=resource.currency,
            supported_networks=list(self.settings.supported_networks),
            merchant_capability=self.settings.merchant_capability,
            summary_items=build_summary_items(resource, merchant_label),
            requires_shipping_address=resource.requires_shipping,
        )

    def checkout_completed(self, resource: CheckoutResource, status: CompletionStatus) -> None:
        """Called when a wallet checkout completes; notifies ``on_completed``."""
        self.notifier.emit(ON_COMPLETED, resource, status)

    # -------------------------------------------------------------------------
    # Attempt Runners
    # -------------------------------------------------------------------------

    def _creation_failed(self, attempt: CheckoutAttempt, error: CheckoutClientError) -> None:
        attempt.fail(error)
        logger.warning(
            "Checkout creation failed",
            attempt_id=str(attempt.id),
            error_type=type(error).__name__,
            error=error.message,
            status_code=error.status_code,
        )
        self.notifier.emit(ON_CREATE_FAILED, error)

    async def _run_wallet(self, attempt: CheckoutAttempt) -> None:
        attempt.begin()
        self.notifier.emit(ON_WILL_USE_WALLET_CHECKOUT)
        try:
            resource = await self.persist_checkout(attempt.resource)
        except CheckoutClientError as e:
            self._creation_failed(attempt, e)
            return
        attempt.checkout_persisted(resource)
        await self._authorize(attempt)

    async def _run_web(self, attempt: CheckoutAttempt) -> None:
        attempt.begin()
        try:
            resource = await self.persist_checkout(attempt.resource)
        except CheckoutClientError as e:
            self._creation_failed(attempt, e)
            return
        attempt.checkout_persisted(resource)
        self._launch_web(attempt)

    async def _run_cart_token(self, attempt: CheckoutAttempt, token: str) -> None:
        attempt.begin()
        if attempt.path == CompletionPath.WALLET:
            self.notifier.emit(ON_WILL_USE_WALLET_CHECKOUT)
        try:
            resource = await self.client.resolve_cart_token(token)
        except CheckoutClientError as e:
            self._creation_failed(attempt, e)
            return
        attempt.checkout_persisted(resource)

        if attempt.path == CompletionPath.WEB:
            self._launch_web(attempt)
        else:
            await self._authorize(attempt)

    def _launch_web(self, attempt: CheckoutAttempt) -> None:
        try:
            url = validate_web_url(attempt.resource.web_url)
        except ValidationFailureError as e:
            self._creation_failed(attempt, e)
            return
        attempt.hand_off_to_web()
        self.web_launcher.launch(url)
        logger.info(
            "Handed checkout off to browser",
            attempt_id=str(attempt.id),
            checkout_token=attempt.checkout_token,
        )
        self.notifier.emit(ON_WILL_USE_WEB_CHECKOUT)

    # -------------------------------------------------------------------------
    # Wallet Authorization
    # -------------------------------------------------------------------------

    async def _authorize(self, attempt: CheckoutAttempt) -> None:
        await self._shop_or_none()

        resource = attempt.resource
        if resource.requires_shipping and resource.shipping_address is not None:
            attempt.fetching_rates()
            await self._fetch_rates(attempt)

        request = self.build_payment_request(attempt.resource)
        request.shipping_methods = [ShippingMethod.from_rate(r) for r in attempt.shipping_rates]
        attempt.present_authorization()

        adapter = PaymentAuthorizationAdapter(self.payment_presenter)
        async for event in adapter.present(request):
            if isinstance(event, Dismissed):
                await self._authorization_dismissed(attempt)
                break
            if not attempt.state.is_interactive():
                self._reject(event)
                continue
            try:
                await self._handle_event(attempt, event)
            except Exception as e:
                self._authorization_crashed(attempt, event, e)

    def _authorization_crashed(
        self,
        attempt: CheckoutAttempt,
        event: Any,
        error: Exception,
    ) -> None:
        """Fail the attempt after an event handler raised unexpectedly.

        The sheet gets a failure reply. Dismissal later expires the
        checkout as for any other failed attempt.
        """
        logger.exception(
            "Payment authorization step crashed",
            attempt_id=str(attempt.id),
            event_type=type(event).__name__,
            state=attempt.state.value,
        )
        approved = attempt.state == AttemptState.COMPLETING
        if not attempt.is_terminal:
            attempt.fail(UnexpectedCheckoutError(str(attempt.id), error))
            if approved:
                self.checkout_completed(attempt.resource, CompletionStatus.FAILURE)
        self._reject(event)

    def _reject(self, event: Any) -> None:
        if isinstance(event, ReplyingEvent):
            event.respond(self._failure_reply(event))

    async def _handle_event(self, attempt: CheckoutAttempt, event: Any) -> None:
        if isinstance(event, ShippingAddressChanged):
            await self._shipping_address_changed(attempt, event)
        elif isinstance(event, ShippingRateChanged):
            await self._shipping_rate_changed(attempt, event)
        elif isinstance(event, AuthorizationResult):
            await self._authorization_result(attempt, event)
        else:
            raise TypeError(f"Unexpected authorization event: {event!r}")

    @staticmethod
    def _failure_reply(event: ReplyingEvent) -> PaymentRequestUpdate | PaymentAuthorizationStatus:
        if isinstance(event, AuthorizationResult):
            return PaymentAuthorizationStatus.FAILURE
        return PaymentRequestUpdate(status=PaymentAuthorizationStatus.FAILURE)

    def _update_reply(self, attempt: CheckoutAttempt) -> PaymentRequestUpdate:
        request = self.build_payment_request(attempt.resource)
        return PaymentRequestUpdate(
            status=PaymentAuthorizationStatus.SUCCESS,
            summary_items=request.summary_items,
            shipping_methods=[ShippingMethod.from_rate(r) for r in attempt.shipping_rates],
        )

    def _update_failed(
        self,
        attempt: CheckoutAttempt,
        error: CheckoutClientError | InvalidShippingRateError,
    ) -> None:
        logger.warning(
            "Checkout update failed",
            attempt_id=str(attempt.id),
            checkout_token=attempt.checkout_token,
            error_type=type(error).__name__,
            error=error.message,
        )
        self.notifier.emit(ON_UPDATE_FAILED, attempt.resource, error)

    async def _fetch_rates(self, attempt: CheckoutAttempt) -> bool:
        try:
            rates = await self.client.get_shipping_rates(attempt.resource)
            attempt.rates_received(rates)
        except (CheckoutClientError, InvalidShippingRateError) as e:
            attempt.rates_unavailable()
            logger.warning(
                "Shipping rates unavailable",
                attempt_id=str(attempt.id),
                checkout_token=attempt.checkout_token,
                error=e.message,
            )
            self.notifier.emit(ON_SHIPPING_RATES_FAILED, attempt.resource, e)
            return False

        logger.info(
            "Shipping rates received",
            attempt_id=str(attempt.id),
            rate_count=len(rates),
        )
        return True

    async def _shipping_address_changed(
        self,
        attempt: CheckoutAttempt,
        event: ShippingAddressChanged,
    ) -> None:
        try:
            resource = await self.client.update(
                attempt.resource,
                CheckoutChanges(shipping_address=event.address),
            )
        except CheckoutClientError as e:
            self._update_failed(attempt, e)
            event.respond(self._failure_reply(event))
            return
        attempt.shipping_address_changed(resource)

        if resource.requires_shipping:
            attempt.fetching_rates()
            if not await self._fetch_rates(attempt) or not attempt.shipping_rates:
                event.respond(self._failure_reply(event))
                return

            try:
                resource = await self.client.update(
                    attempt.resource,
                    CheckoutChanges(shipping_rate_id=attempt.shipping_rates[0].id),
                )
            except CheckoutClientError as e:
                self._update_failed(attempt, e)
                event.respond(self._failure_reply(event))
                return
            attempt.resource_updated(resource)

        event.respond(self._update_reply(attempt))

    async def _shipping_rate_changed(
        self,
        attempt: CheckoutAttempt,
        event: ShippingRateChanged,
    ) -> None:
        try:
            rate = attempt.find_rate(event.rate_id)
            resource = await self.client.update(
                attempt.resource,
                CheckoutChanges(shipping_rate_id=rate.id),
            )
        except (CheckoutClientError, InvalidShippingRateError) as e:
            self._update_failed(attempt, e)
            event.respond(self._failure_reply(event))
            return
        attempt.resource_updated(resource)
        event.respond(self._update_reply(attempt))

    async def _authorization_result(
        self,
        attempt: CheckoutAttempt,
        event: AuthorizationResult,
    ) -> None:
        outcome = event.outcome
        if not outcome.is_approved:
            logger.info("Payment authorization declined", attempt_id=str(attempt.id))
            event.respond(PaymentAuthorizationStatus.FAILURE)
            return

        attempt.begin_completing()
        changes = CheckoutChanges(
            email=outcome.email,
            shipping_address=outcome.shipping_address,
            billing_address=outcome.billing_address,
        )
        if not changes.is_empty:
            try:
                attempt.resource_updated(await self.client.update(attempt.resource, changes))
            except CheckoutClientError as e:
                attempt.fail(e)
                self._update_failed(attempt, e)
                self.checkout_completed(attempt.resource, CompletionStatus.FAILURE)
                event.respond(PaymentAuthorizationStatus.FAILURE)
                return

        try:
            resource = await self.client.complete(attempt.resource, outcome.token)
        except CheckoutClientError as e:
            attempt.fail(e)
            logger.warning(
                "Checkout completion failed",
                attempt_id=str(attempt.id),
                checkout_token=attempt.checkout_token,
                error_type=type(e).__name__,
                error=e.message,
            )
            self.notifier.emit(ON_COMPLETE_FAILED, attempt.resource, e)
            self.checkout_completed(attempt.resource, CompletionStatus.FAILURE)
            event.respond(PaymentAuthorizationStatus.FAILURE)
            return

        attempt.succeed(resource)
        logger.info(
            "Checkout completed",
            attempt_id=str(attempt.id),
            checkout_token=resource.token,
            order_id=resource.order_id,
        )
        self.checkout_completed(resource, CompletionStatus.SUCCESS)
        event.respond(PaymentAuthorizationStatus.SUCCESS)

    async def _authorization_dismissed(self, attempt: CheckoutAttempt) -> None:
        if not attempt.is_terminal:
            attempt.cancel()
        self.notifier.emit(
            ON_AUTHORIZATION_DISMISSED,
            attempt.completion_status,
            attempt.resource,
        )
        if attempt.needs_expiration:
            await self._expire(attempt)

    async def _expire(self, attempt: CheckoutAttempt) -> None:
        attempt.begin_expiration()
        try:
            await self.client.expire(attempt.resource)
        except CheckoutClientError as e:
            error = e if isinstance(e, ExpirationFailureError) else ExpirationFailureError(
                f"Failed to expire checkout {attempt.checkout_token}: {e.message}",
                status_code=e.status_code,
                errors=e.errors,
            )
            logger.warning(
                "Checkout expiration failed",
                attempt_id=str(attempt.id),
                checkout_token=attempt.checkout_token,
                error=error.message,
            )
            self.notifier.emit(ON_UPDATE_FAILED, attempt.resource, error)
            return

        attempt.expiration_confirmed()
        logger.info(
            "Checkout expired",
            attempt_id=str(attempt.id),
            checkout_token=attempt.checkout_token,
        )
