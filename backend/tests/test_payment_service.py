"""
Heimursaga API — Explorer Pro Payment Tests
=============================================

Plans, upgrade checkout and the upgrade completion listener.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import db_result
from saga.config import settings
from saga.exceptions import BadRequestError, ExternalServiceError
from saga.models.enums import CheckoutStatus, PlanPeriod, SubscriptionStatus, UserRole
from saga.models.sponsorship import Checkout, PaymentMethod, Subscription, SponsorshipTier
from saga.services import payment_service as payment_module
from saga.services.event_service import Events
from saga.services.payment_service import payment_service, plan_price
from saga.services.stripe_client import stripe_client


def _factory(session):
    session.begin = MagicMock()
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


class TestPlans:
    def test_plan_prices(self):
        assert plan_price(PlanPeriod.MONTH.value) == settings.pro_price_month
        assert plan_price(PlanPeriod.YEAR.value) == settings.pro_price_year

    async def test_anonymous_plans(self, mock_db_session):
        response = await payment_service.get_plans(mock_db_session, None)
        assert [p.period for p in response.plans] == ["month", "year"]
        assert response.is_pro is False
        mock_db_session.execute.assert_not_awaited()

    async def test_upgrade_rejects_existing_pro(self, mock_db_session, make_user):
        with pytest.raises(BadRequestError, match="already"):
            await payment_service.upgrade_checkout(
                mock_db_session, make_user("ana", UserRole.CREATOR.value), "month", "pm1"
            )

    async def test_upgrade_creates_recurring_subscription(self, mock_db_session, make_user):
        user = make_user("ana")
        card = MagicMock(stripe_payment_method_id="pm_card_1")
        subscription = {
            "id": "sub_1",
            "latest_invoice": {"payment_intent": {"id": "pi_1", "client_secret": "secret"}},
        }
        with patch.object(payment_service, "get_payment_method", AsyncMock(return_value=card)), \
                patch.object(payment_service, "ensure_customer", AsyncMock(return_value="cus_1")), \
                patch.object(stripe_client, "create_subscription", AsyncMock(return_value=subscription)) as create, \
                patch.object(stripe_client, "update_payment_intent", AsyncMock(return_value={})) as tag:
            response = await payment_service.upgrade_checkout(mock_db_session, user, "year", "pm1")

        params = create.await_args.args[0]
        price = params["items"][0]["price_data"]
        assert price["unit_amount"] == settings.pro_price_year
        assert price["recurring"] == {"interval": "year"}
        assert params["customer"] == "cus_1"
        assert params["default_payment_method"] == "pm_card_1"
        assert params["payment_behavior"] == "default_incomplete"
        assert params["metadata"]["transaction"] == "subscription"

        checkout = mock_db_session.add.call_args.args[0]
        assert isinstance(checkout, Checkout)
        assert create.await_args.kwargs["idempotency_key"] == f"upgrade_{checkout.public_id}"
        assert checkout.stripe_subscription_id == "sub_1"
        assert checkout.stripe_payment_intent_id == "pi_1"
        assert tag.await_args.args == ("pi_1", {"metadata": params["metadata"]})
        assert response.client_secret == "secret"


class TestCompleteUpgrade:
    async def test_activates_pro_with_default_tiers(self, mock_db_session, make_user, clean_events):
        emails = []

        async def on_email(data):
            emails.append(data)

        clean_events.on(Events.SEND_EMAIL, on_email)
        user = make_user("ana")
        checkout = Checkout(public_id="chk1", user_id=user.id, total=700, kind="month")
        mock_db_session.execute.side_effect = [
            db_result(scalar=checkout),
            db_result(),
            db_result(),
        ]
        mock_db_session.get.return_value = user

        with patch.object(payment_module, "async_session_factory", _factory(mock_db_session)):
            await payment_service.complete_upgrade({"checkout_id": "chk1", "user_id": str(user.id), "period": "month"})
        await clean_events.drain()

        assert checkout.status == CheckoutStatus.CONFIRMED.value
        assert user.role == UserRole.CREATOR.value and user.is_premium is True
        added = [call.args[0] for call in mock_db_session.add.call_args_list]
        subscriptions = [a for a in added if isinstance(a, Subscription)]
        tiers = [a for a in added if isinstance(a, SponsorshipTier)]
        assert subscriptions[0].status == SubscriptionStatus.ACTIVE.value
        assert len(tiers) == 5
        assert emails[0]["template"] == "upgrade_confirmation"

    async def test_renewal_extends_from_current_expiry(self, mock_db_session, make_user):
        user = make_user("ana", UserRole.CREATOR.value)
        expiry = datetime.now(timezone.utc) + timedelta(days=10)
        subscription = Subscription(public_id="sub1", user_id=user.id, period="month", expiry=expiry)
        mock_db_session.execute.return_value = db_result(scalar=subscription)

        await payment_service._extend_subscription(mock_db_session, user, "year")

        assert subscription.expiry == expiry + timedelta(days=365)
        assert subscription.period == "year"

    async def test_confirmed_checkout_is_a_no_op(self, mock_db_session):
        checkout = Checkout(public_id="chk1", user_id=1, total=700, status=CheckoutStatus.CONFIRMED.value)
        mock_db_session.execute.return_value = db_result(scalar=checkout)
        with patch.object(payment_module, "async_session_factory", _factory(mock_db_session)):
            await payment_service.complete_upgrade({"checkout_id": "chk1", "user_id": 1})
        mock_db_session.get.assert_not_awaited()

    async def test_expiry_follows_stripe_period_end(self, mock_db_session, make_user, clean_events):
        user = make_user("ana")
        checkout = Checkout(
            public_id="chk1", user_id=user.id, total=700, kind="month", stripe_subscription_id="sub_1"
        )
        mock_db_session.execute.side_effect = [db_result(scalar=checkout), db_result(), db_result(rows=[(1,)])]
        mock_db_session.get.return_value = user
        period = {"id": "sub_1", "current_period_end": 1_767_225_600}

        with patch.object(payment_module, "async_session_factory", _factory(mock_db_session)), \
                patch.object(stripe_client, "retrieve_subscription", AsyncMock(return_value=period)):
            await payment_service.complete_upgrade({"checkout_id": "chk1", "user_id": user.id})

        subscription = next(
            c.args[0] for c in mock_db_session.add.call_args_list if isinstance(c.args[0], Subscription)
        )
        assert subscription.stripe_subscription_id == "sub_1"
        assert subscription.expiry == datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def test_stripe_outage_falls_back_to_plan_duration(self, mock_db_session, make_user):
        user = make_user("ana")
        mock_db_session.execute.return_value = db_result()
        outage = AsyncMock(side_effect=ExternalServiceError(service="stripe"))

        with patch.object(stripe_client, "retrieve_subscription", outage):
            expiry = await payment_service._stripe_period_end("sub_1")
            subscription = await payment_service._extend_subscription(
                mock_db_session, user, "month", stripe_subscription_id="sub_1", expiry=expiry
            )

        assert expiry is None
        remaining = subscription.expiry - datetime.now(timezone.utc)
        assert timedelta(days=29) < remaining <= timedelta(days=30)


class TestRoles:
    async def test_deactivate_keeps_admin_role(self, mock_db_session, make_user):
        admin = make_user("root", UserRole.ADMIN.value)
        await payment_service.deactivate_pro(mock_db_session, admin)
        assert admin.role == UserRole.ADMIN.value
        assert admin.is_premium is False


class TestRenewal:
    async def test_renew_uses_invoice_period_end(self, mock_db_session, make_user):
        user = make_user("ana", UserRole.CREATOR.value, is_premium=False)
        subscription = Subscription(
            public_id="sub1", user_id=user.id, period="month", status=SubscriptionStatus.PAST_DUE.value
        )
        mock_db_session.get.return_value = user
        paid_through = datetime(2026, 12, 1, tzinfo=timezone.utc)

        await payment_service.renew(mock_db_session, subscription, paid_through)

        assert subscription.expiry == paid_through
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert user.is_premium is True

    async def test_renew_without_period_extends_by_plan(self, mock_db_session):
        expiry = datetime.now(timezone.utc) + timedelta(days=2)
        subscription = Subscription(public_id="sub1", user_id=1, period="month", expiry=expiry)

        await payment_service.renew(mock_db_session, subscription, None)

        assert subscription.expiry == expiry + timedelta(days=30)


class TestPaymentMethods:
    async def test_setup_intent_returns_client_secret(self, mock_db_session, make_user):
        user = make_user("ana", stripe_customer_id="cus_1")
        with patch.object(
            stripe_client, "create_setup_intent", AsyncMock(return_value={"client_secret": "seti_secret"})
        ) as create:
            response = await payment_service.create_setup_intent(mock_db_session, user)

        create.assert_awaited_once_with("cus_1")
        assert response.secret == "seti_secret"

    async def test_set_default_clears_other_defaults(self, mock_db_session, make_user):
        user = make_user("ana", stripe_customer_id="cus_1")
        method = PaymentMethod(
            id=5, public_id="pm_pub", user_id=user.id, stripe_payment_method_id="pm_1", is_default=False
        )
        mock_db_session.execute.side_effect = [db_result(scalar=method), db_result()]

        with patch.object(stripe_client, "set_default_payment_method", AsyncMock(return_value={})) as set_default:
            response = await payment_service.set_default_payment_method(mock_db_session, user, "pm_pub")

        set_default.assert_awaited_once_with("cus_1", "pm_1")
        assert method.is_default is True
        assert response.is_default is True
        reset = mock_db_session.execute.await_args_list[1].args[0]
        assert reset.is_dml
