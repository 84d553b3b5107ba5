"""
Heimursaga API — Stripe Client
================================

What:  Async wrapper around the official `stripe` SDK (customers, payment
       methods, setup and payment intents, subscriptions, Connect accounts,
       balance, payouts, refunds) plus webhook signature verification.
How:   One `stripe.StripeClient` on `stripe.HTTPXClient`, with the SDK's own
       retries switched off. Connection errors, 429 and 5xx are retried by
       tenacity; repeated failures open a circuit breaker. Every mutating
       call carries an `Idempotency-Key` that is fixed before the first
       attempt, so a retried POST never creates a second object.
       `stripe.StripeError` becomes `saga.exceptions.StripeError`.
Who:   payment, sponsor, sponsor billing, payout and webhook services.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker so a Stripe outage fails requests instantly
    3. 4xx answers are not failures of Stripe itself: they never trip the breaker
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import stripe
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from saga.config import settings
from saga.exceptions import (
    BadRequestError,
    CircuitBreakerOpenError,
    ExternalServiceError,
    StripeError,
)

logger = logging.getLogger(__name__)

# Stripe answered 429/5xx or never answered at all
TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════


class CircuitBreaker:
    """
    State Machine:
        CLOSED     normal operation; failures are counted
                   → failure_count >= threshold: OPEN
        OPEN       every call raises CircuitBreakerOpenError
                   → after recovery_timeout seconds: HALF_OPEN
        HALF_OPEN  one test call is let through
                   → success: CLOSED, failure: OPEN

    Not thread-safe; uvicorn async workers share a single process.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when the call may proceed.

        Raises:
            CircuitBreakerOpenError while OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info("Circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures", self.failure_count
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Webhook signatures
# ══════════════════════════════════════════════════════════════════════════


def construct_event(
    payload: bytes,
    sig_header: Optional[str],
    secret: str,
    tolerance: int = 300,
) -> Dict[str, Any]:
    """
    Verify a `Stripe-Signature` header with the SDK and return the event as a dict.

    Raises:
        BadRequestError: missing/invalid signature, stale timestamp or bad JSON
    """
    if not secret:
        raise BadRequestError("webhook secret is not configured")
    if not sig_header:
        raise BadRequestError("missing stripe signature")

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning("Rejected webhook signature: %s", e.user_message or e)
        raise BadRequestError("invalid stripe signature")
    except ValueError:
        raise BadRequestError("invalid webhook payload")
    return event.to_dict()


# ══════════════════════════════════════════════════════════════════════════
# Payload helpers
# ══════════════════════════════════════════════════════════════════════════


def invoice_payment_intent(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """PaymentIntent of a subscription's first invoice (`expand=latest_invoice.payment_intent`)."""
    invoice = subscription.get("latest_invoice")
    intent = invoice.get("payment_intent") if isinstance(invoice, dict) else None
    if not isinstance(intent, dict) or not intent.get("id"):
        raise StripeError("subscription has no payment intent")
    return intent


def period_end(subscription: Dict[str, Any]) -> Optional[datetime]:
    """End of the current billing period, from the subscription or its first item."""
    end = subscription.get("current_period_end")
    if end is None:
        items = (subscription.get("items") or {}).get("data") or []
        end = items[0].get("current_period_end") if items else None
    return datetime.fromtimestamp(end, tz=timezone.utc) if end else None


# ══════════════════════════════════════════════════════════════════════════
# Client
# ══════════════════════════════════════════════════════════════════════════


class StripeClient:
    """
    Error Handling Chain:
        connection error / 429 / 5xx → tenacity retries
        → retries exhausted → record breaker failure → ExternalServiceError (502)
        other stripe.StripeError → StripeError carrying Stripe's code and message
        breaker OPEN → CircuitBreakerOpenError (503) without calling Stripe
    """

    def __init__(self, sdk: Optional[stripe.StripeClient] = None):
        # Injected in tests
        self._sdk = sdk
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    @property
    def api(self) -> Any:
        """The SDK's v1 services; built on first use from the configured key."""
        if self._sdk is None:
            if not settings.stripe_secret_key:
                raise StripeError("payments are not configured", code="not_configured")
            self._sdk = stripe.StripeClient(
                settings.stripe_secret_key,
                http_client=stripe.HTTPXClient(timeout=settings.stripe_timeout),
                stripe_version=settings.stripe_api_version,
                max_network_retries=0,
            )
        return self._sdk.v1

    # ── Core call ─────────────────────────────────────────────────────────

    async def call(
        self,
        operation: str,
        method: Callable[..., Awaitable[Any]],
        *args: Any,
        params: Optional[Dict[str, Any]] = None,
        stripe_account: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        mutating: bool = False,
    ) -> Dict[str, Any]:
        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        options: Dict[str, Any] = {}
        if stripe_account:
            options["stripe_account"] = stripe_account
        if mutating:
            options["idempotency_key"] = idempotency_key or f"saga_{uuid.uuid4().hex}"

        try:
            result = await self._send_with_retry(
                operation, method, args, params, options, request_id
            )
        except TRANSIENT_ERRORS as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Stripe %s failed after retries: %s", request_id, operation, e)
            raise ExternalServiceError(
                message="payment service is temporarily unavailable",
                service="stripe",
                context={"request_id": request_id, "operation": operation},
            )
        except stripe.StripeError as e:
            self.circuit_breaker.record_success()
            raise StripeError(
                message=e.user_message or str(e),
                code=e.code,
                http_status=e.http_status,
            )

        self.circuit_breaker.record_success()
        return result.to_dict()

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send_with_retry(
        self,
        operation: str,
        method: Callable[..., Awaitable[Any]],
        args: tuple,
        params: Optional[Dict[str, Any]],
        options: Dict[str, Any],
        request_id: str,
    ) -> Any:
        start_time = time.time()
        result = await method(*args, params=params, options=options or None)
        logger.debug(
            "[%s] Stripe %s done in %.0fms",
            request_id, operation, (time.time() - start_time) * 1000,
        )
        return result

    # ── Customers ─────────────────────────────────────────────────────────

    async def find_or_create_customer(
        self, email: str, name: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        found = await self.call(
            "customers.list", self.api.customers.list_async, params={"email": email, "limit": 1}
        )
        if found.get("data"):
            return found["data"][0]
        params: Dict[str, Any] = {"email": email, "metadata": metadata or {}}
        if name:
            params["name"] = name
        return await self.call(
            "customers.create", self.api.customers.create_async, params=params, mutating=True
        )

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Dict[str, Any]:
        return await self.call(
            "customers.update",
            self.api.customers.update_async,
            customer_id,
            params={"invoice_settings": {"default_payment_method": payment_method_id}},
            mutating=True,
        )

    # ── Payment methods ───────────────────────────────────────────────────

    async def retrieve_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        return await self.call(
            "payment_methods.retrieve", self.api.payment_methods.retrieve_async, payment_method_id
        )

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Dict[str, Any]:
        return await self.call(
            "payment_methods.attach",
            self.api.payment_methods.attach_async,
            payment_method_id,
            params={"customer": customer_id},
            mutating=True,
        )

    async def detach_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        return await self.call(
            "payment_methods.detach",
            self.api.payment_methods.detach_async,
            payment_method_id,
            mutating=True,
        )

    async def create_setup_intent(self, customer_id: str) -> Dict[str, Any]:
        return await self.call(
            "setup_intents.create",
            self.api.setup_intents.create_async,
            params={"customer": customer_id, "payment_method_types": ["card"], "usage": "off_session"},
            mutating=True,
        )

    # ── Payment intents ───────────────────────────────────────────────────

    async def create_payment_intent(
        self, params: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.call(
            "payment_intents.create",
            self.api.payment_intents.create_async,
            params=params,
            idempotency_key=idempotency_key,
            mutating=True,
        )

    async def update_payment_intent(self, intent_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self.call(
            "payment_intents.update",
            self.api.payment_intents.update_async,
            intent_id,
            params=params,
            mutating=True,
        )

    async def retrieve_payment_intent(self, intent_id: str) -> Dict[str, Any]:
        return await self.call(
            "payment_intents.retrieve", self.api.payment_intents.retrieve_async, intent_id
        )

    # ── Subscriptions ─────────────────────────────────────────────────────

    async def create_subscription(
        self, params: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.call(
            "subscriptions.create",
            self.api.subscriptions.create_async,
            params=params,
            idempotency_key=idempotency_key,
            mutating=True,
        )

    async def update_subscription(self, subscription_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self.call(
            "subscriptions.update",
            self.api.subscriptions.update_async,
            subscription_id,
            params=params,
            mutating=True,
        )

    async def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self.call(
            "subscriptions.cancel", self.api.subscriptions.cancel_async, subscription_id
        )

    async def retrieve_subscription(
        self, subscription_id: str, expand: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        return await self.call(
            "subscriptions.retrieve",
            self.api.subscriptions.retrieve_async,
            subscription_id,
            params={"expand": expand} if expand else None,
        )

    # ── Connect accounts ──────────────────────────────────────────────────

    async def create_express_account(
        self, email: str, country: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self.call(
            "accounts.create",
            self.api.accounts.create_async,
            params={
                "type": "express",
                "email": email,
                "country": country,
                "capabilities": {
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                "metadata": metadata or {},
            },
            mutating=True,
        )

    async def retrieve_account(self, account_id: str) -> Dict[str, Any]:
        return await self.call("accounts.retrieve", self.api.accounts.retrieve_async, account_id)

    async def create_login_link(self, account_id: str) -> Dict[str, Any]:
        return await self.call(
            "accounts.login_links.create",
            self.api.accounts.login_links.create_async,
            account_id,
            mutating=True,
        )

    async def create_account_link(
        self, account_id: str, refresh_url: str, return_url: str, link_type: str = "account_onboarding"
    ) -> Dict[str, Any]:
        return await self.call(
            "account_links.create",
            self.api.account_links.create_async,
            params={
                "account": account_id,
                "refresh_url": refresh_url,
                "return_url": return_url,
                "type": link_type,
            },
            mutating=True,
        )

    # ── Balance, payouts, refunds ─────────────────────────────────────────

    async def retrieve_balance(self, stripe_account: Optional[str] = None) -> Dict[str, Any]:
        return await self.call(
            "balance.retrieve", self.api.balance.retrieve_async, stripe_account=stripe_account
        )

    async def create_payout(
        self,
        amount: int,
        currency: str,
        stripe_account: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.call(
            "payouts.create",
            self.api.payouts.create_async,
            params={"amount": amount, "currency": currency, "metadata": metadata or {}},
            stripe_account=stripe_account,
            idempotency_key=idempotency_key,
            mutating=True,
        )

    async def create_refund(self, payment_intent_id: str, amount: Optional[int] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount is not None:
            params["amount"] = amount
        return await self.call(
            "refunds.create", self.api.refunds.create_async, params=params, mutating=True
        )

    # ── Webhooks ──────────────────────────────────────────────────────────

    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        return construct_event(
            payload,
            sig_header,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance,
        )


# Singleton instance
stripe_client = StripeClient()
