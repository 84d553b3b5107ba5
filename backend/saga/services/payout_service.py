"""
Heimursaga API — Payout Service
=================================

Stripe Connect express accounts for Explorer Pro members, their balance,
and payouts from that balance to the member's bank. Amounts cross the API
in dollars and are stored in cents.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import async_session_factory, utcnow
from saga.exceptions import BadRequestError, ForbiddenError, NotFoundError, StripeError
from saga.lib.ids import public_id
from saga.lib.money import (
    DEFAULT_CURRENCY,
    MIN_CHARGE,
    currency_info,
    decimal_to_integer,
    integer_to_decimal,
)
from saga.models.enums import PayoutMethodPlatform, PayoutStatus
from saga.models.payout import Payout, PayoutMethod
from saga.models.user import User
from saga.schemas.payout import (
    AccountLinkResponse,
    BalanceAmount,
    BalanceResponse,
    PayoutListResponse,
    PayoutMethodListResponse,
    PayoutMethodResponse,
    PayoutResponse,
)
from saga.services.stripe_client import stripe_client

logger = logging.getLogger(__name__)


def _require_pro(user: User) -> None:
    if not user.is_pro:
        raise ForbiddenError("payouts are only available to Explorer Pro members")


def _amount(entries: List[Dict[str, Any]], currency: str) -> BalanceAmount:
    """Sum of one Stripe balance bucket (`available` or `pending`) for `currency`."""
    cents = sum(e.get("amount", 0) for e in entries or [] if e.get("currency", currency) == currency)
    info = currency_info(currency)
    return BalanceAmount(amount=integer_to_decimal(cents), currency=info["code"], symbol=info["symbol"])


class PayoutService:
    async def _stripe_method(self, db: AsyncSession, user: User) -> PayoutMethod | None:
        result = await db.execute(
            select(PayoutMethod)
            .where(
                PayoutMethod.user_id == user.id,
                PayoutMethod.platform == PayoutMethodPlatform.STRIPE.value,
                PayoutMethod.stripe_account_id.is_not(None),
                PayoutMethod.deleted_at.is_(None),
            )
            .order_by(PayoutMethod.id.desc())
        )
        return result.scalars().first()

    # ── Payout methods ────────────────────────────────────────────────────

    async def payout_methods(self, db: AsyncSession, user: User) -> PayoutMethodListResponse:
        _require_pro(user)
        method = await self._stripe_method(db, user)
        if method is None:
            return PayoutMethodListResponse(results=[])

        account = await stripe_client.retrieve_account(method.stripe_account_id)
        verified = bool(
            account.get("charges_enabled")
            and account.get("payouts_enabled")
            and not (account.get("requirements") or {}).get("currently_due")
        )
        # Keep the local copy fresh; webhooks may lag behind onboarding
        method.is_verified = verified
        method.business_type = account.get("business_type") or method.business_type
        method.country = account.get("country") or method.country
        method.currency = account.get("default_currency") or method.currency
        await db.flush()
        return PayoutMethodListResponse(results=[self._method_response(method)])

    async def create_payout_method(self, db: AsyncSession, user: User, country: str) -> PayoutMethodResponse:
        _require_pro(user)
        if await self._stripe_method(db, user) is not None:
            raise BadRequestError("user already has a payout method")

        try:
            account = await stripe_client.create_express_account(
                user.email, country.upper(), metadata={"user_id": user.id}
            )
        except StripeError as e:
            logger.warning("Stripe account creation for user %s failed: %s", user.id, e.message)
            raise ForbiddenError("payout method not created")

        method = PayoutMethod(
            public_id=public_id(),
            user_id=user.id,
            platform=PayoutMethodPlatform.STRIPE.value,
            stripe_account_id=account["id"],
            business_type=account.get("business_type"),
            country=account.get("country") or country.upper(),
            currency=account.get("default_currency") or DEFAULT_CURRENCY,
            is_verified=False,
        )
        db.add(method)
        await db.flush()
        logger.info("Payout method %s created for user %s", method.public_id, user.id)
        return self._method_response(method)

    async def account_link(self, db: AsyncSession, user: User, payout_method_id: str) -> AccountLinkResponse:
        _require_pro(user)
        result = await db.execute(
            select(PayoutMethod).where(
                PayoutMethod.public_id == payout_method_id,
                PayoutMethod.user_id == user.id,
                PayoutMethod.deleted_at.is_(None),
            )
        )
        method = result.scalar_one_or_none()
        if method is None or not method.stripe_account_id:
            raise NotFoundError("payout method", payout_method_id)

        back_url = f"{settings.app_base_url}/settings/payouts"
        link = await stripe_client.create_account_link(
            method.stripe_account_id, refresh_url=back_url, return_url=back_url
        )
        return AccountLinkResponse(url=link["url"])

    async def dashboard_link(self, db: AsyncSession, user: User) -> AccountLinkResponse:
        """Express dashboard login link of a verified account."""
        _require_pro(user)
        method = await self._stripe_method(db, user)
        if method is None:
            raise NotFoundError("payout method")
        link = await stripe_client.create_login_link(method.stripe_account_id)
        return AccountLinkResponse(url=link["url"])

    # ── Balance & payouts ─────────────────────────────────────────────────

    async def balance(self, db: AsyncSession, user: User) -> BalanceResponse:
        _require_pro(user)
        method = await self._stripe_method(db, user)
        currency = method.currency if method else DEFAULT_CURRENCY
        if method is None:
            return BalanceResponse(available=_amount([], currency), pending=_amount([], currency))

        balance = await stripe_client.retrieve_balance(stripe_account=method.stripe_account_id)
        return BalanceResponse(
            available=_amount(balance.get("available"), currency),
            pending=_amount(balance.get("pending"), currency),
        )

    async def payouts(self, db: AsyncSession, user: User) -> PayoutListResponse:
        _require_pro(user)
        result = await db.execute(
            select(Payout)
            .where(Payout.user_id == user.id)
            .order_by(Payout.created_at.desc(), Payout.id.desc())
            .limit(50)
        )
        return PayoutListResponse(results=[self._payout_response(p) for p in result.scalars().all()])

    async def create_payout(self, db: AsyncSession, user: User, amount: float) -> PayoutResponse:
        _require_pro(user)
        result = await db.execute(
            select(PayoutMethod).where(
                PayoutMethod.user_id == user.id,
                PayoutMethod.stripe_account_id.is_not(None),
                PayoutMethod.is_verified.is_(True),
                PayoutMethod.deleted_at.is_(None),
            )
        )
        method = result.scalars().first()
        if method is None:
            raise BadRequestError("payout method not available")

        account = await stripe_client.retrieve_account(method.stripe_account_id)
        if not account.get("payouts_enabled"):
            # The request transaction rolls back with the 400 below
            await self._mark_unverified(method.id)
            method.is_verified = False
            raise BadRequestError(
                "Account is not enabled for payouts. Please complete verification in Stripe."
            )

        requested = decimal_to_integer(amount)
        balance = await stripe_client.retrieve_balance(stripe_account=method.stripe_account_id)
        available_entries = balance.get("available") or []
        available = available_entries[0].get("amount", 0) if available_entries else 0

        if available <= 0:
            raise BadRequestError("payout not available, insufficient funds")
        if requested > available:
            raise BadRequestError(
                "payout amount exceeds available balance. "
                f"Maximum available: {integer_to_decimal(available)}"
            )
        if requested < MIN_CHARGE:
            raise BadRequestError("payout amount must be at least $1.00")

        payout_public_id = public_id()
        stripe_payout = await stripe_client.create_payout(
            requested,
            method.currency,
            stripe_account=method.stripe_account_id,
            metadata={"user_id": user.id, "payout_id": payout_public_id},
            idempotency_key=f"payout_{user.id}_{payout_public_id}",
        )

        arrival = stripe_payout.get("arrival_date")
        payout = Payout(
            public_id=payout_public_id,
            user_id=user.id,
            payout_method_id=method.id,
            status=PayoutStatus.PENDING.value,
            amount=stripe_payout.get("amount", requested),
            currency=stripe_payout.get("currency", method.currency),
            stripe_payout_id=stripe_payout["id"],
            arrival_date=datetime.fromtimestamp(arrival, tz=timezone.utc) if arrival else None,
        )
        db.add(payout)
        await db.flush()
        logger.info("Payout %s of %d requested by user %s", payout.public_id, payout.amount, user.id)
        return self._payout_response(payout)

    @staticmethod
    async def _mark_unverified(method_id: int) -> None:
        async with async_session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(PayoutMethod).where(PayoutMethod.id == method_id).values(is_verified=False)
                )
        logger.info("Payout method %s marked unverified: payouts disabled by Stripe", method_id)

    # ── Mapping ───────────────────────────────────────────────────────────

    @staticmethod
    def _method_response(method: PayoutMethod) -> PayoutMethodResponse:
        return PayoutMethodResponse(
            id=method.public_id,
            platform=method.platform,
            business_type=method.business_type,
            country=method.country,
            currency=method.currency,
            is_verified=method.is_verified,
            created_at=method.created_at or utcnow(),
        )

    @staticmethod
    def _payout_response(payout: Payout) -> PayoutResponse:
        return PayoutResponse(
            id=payout.public_id,
            amount=integer_to_decimal(payout.amount),
            currency=payout.currency,
            status=payout.status,
            arrival_date=payout.arrival_date,
            created_at=payout.created_at or utcnow(),
        )


# Singleton instance
payout_service = PayoutService()
