"""
Heimursaga API — Stripe Webhook Unit Tests
============================================

What:  Signature verification, duplicate suppression, dispatch and the
       per-event state changes.
How:   Events are signed with the test webhook secret; the session is the
       shared AsyncMock with a working `begin_nested()` context.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import db_result
from saga.config import settings
from saga.exceptions import BadRequestError
from saga.models.enums import (
    CheckoutStatus,
    PayoutStatus,
    SponsorshipStatus,
    SubscriptionStatus,
    UserRole,
)
from saga.models.payout import Payout, PayoutMethod
from saga.models.sponsorship import Checkout, Sponsorship, Subscription
from saga.models.webhook import ProcessedWebhookEvent
from saga.services.event_service import Events
from saga.services.expedition_service import expedition_service
from saga.services.stripe_webhook_service import stripe_webhook_service


def _signed(event):
    payload = json.dumps(event).encode()
    timestamp = int(time.time())
    signature = hmac.new(
        settings.stripe_webhook_secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256
    ).hexdigest()
    return payload, f"t={timestamp},v1={signature}"


@pytest.fixture
def webhook_db(mock_db_session):
    mock_db_session.begin_nested = MagicMock()
    return mock_db_session


class TestProcess:
    async def test_bad_signature(self, webhook_db):
        payload, _ = _signed({"id": "evt_1", "type": "payout.paid"})
        with pytest.raises(BadRequestError):
            await stripe_webhook_service.process(webhook_db, payload, "t=1,v1=deadbeef")
        webhook_db.add.assert_not_called()

    async def test_records_and_dispatches(self, webhook_db):
        event = {"id": "evt_1", "type": "payout.paid", "data": {"object": {"id": "po_1"}}}
        payload, header = _signed(event)
        with patch.object(stripe_webhook_service, "dispatch", AsyncMock()) as dispatch:
            result = await stripe_webhook_service.process(webhook_db, payload, header)

        assert result == {"received": True}
        ledger = webhook_db.add.call_args.args[0]
        assert isinstance(ledger, ProcessedWebhookEvent)
        assert ledger.event_id == "evt_1"
        dispatch.assert_awaited_once()

    async def test_duplicate_event_is_acknowledged(self, webhook_db):
        webhook_db.begin_nested.return_value.__aexit__.side_effect = IntegrityError(
            "INSERT", {}, Exception("duplicate key")
        )
        payload, header = _signed({"id": "evt_1", "type": "payout.paid"})
        with patch.object(stripe_webhook_service, "dispatch", AsyncMock()) as dispatch:
            result = await stripe_webhook_service.process(webhook_db, payload, header)

        assert result == {"received": True}
        dispatch.assert_not_awaited()

    async def test_handler_failure_rolls_back_and_propagates(self, webhook_db):
        payload, header = _signed({"id": "evt_1", "type": "payout.paid"})
        with patch.object(stripe_webhook_service, "dispatch", AsyncMock(side_effect=RuntimeError("db down"))):
            with pytest.raises(RuntimeError):
                await stripe_webhook_service.process(webhook_db, payload, header)
        webhook_db.rollback.assert_awaited_once()

    async def test_unknown_event_type_is_ignored(self, mock_db_session):
        await stripe_webhook_service.dispatch(mock_db_session, {"id": "evt_1", "type": "customer.created"})
        mock_db_session.execute.assert_not_awaited()


class TestHandlers:
    async def test_sponsorship_intent_triggers_completion(self, mock_db_session, clean_events):
        completed = []

        async def listener(data):
            completed.append(data)

        clean_events.on(Events.SPONSORSHIP_CHECKOUT_COMPLETE, listener)
        intent = {
            "id": "pi_1",
            "metadata": {"transaction": "sponsorship", "checkout_id": "chk1", "user_id": "2", "creator_id": "1"},
        }
        await stripe_webhook_service.on_payment_intent_succeeded(mock_db_session, intent)
        await clean_events.drain()

        assert completed == [{"checkout_id": "chk1", "user_id": "2", "creator_id": "1"}]

    async def test_intent_without_metadata_is_ignored(self, mock_db_session, clean_events):
        completed = []

        async def listener(data):
            completed.append(data)

        clean_events.on(Events.SPONSORSHIP_CHECKOUT_COMPLETE, listener)
        await stripe_webhook_service.on_payment_intent_succeeded(mock_db_session, {"id": "pi_1"})
        await clean_events.drain()
        assert completed == []

    async def test_failed_intent_cancels_pending_checkout(self, mock_db_session):
        checkout = Checkout(public_id="chk1", status=CheckoutStatus.PENDING.value)
        mock_db_session.execute.return_value.scalars.return_value.first.return_value = checkout
        await stripe_webhook_service.on_payment_intent_failed(mock_db_session, {"id": "pi_1"})
        assert checkout.status == CheckoutStatus.CANCELED.value

    async def test_renewal_extends_expiry_and_credits_expedition(self, mock_db_session):
        expiry = datetime.now(timezone.utc) + timedelta(days=2)
        sponsorship = Sponsorship(
            public_id="sp1", creator_id=1, expiry=expiry, status=SponsorshipStatus.PAST_DUE.value
        )
        expedition = MagicMock(raised=1000, public_id="exp1")
        mock_db_session.execute.return_value = db_result(scalars=[sponsorship])
        invoice = {"subscription": "sub_1", "amount_paid": 500, "billing_reason": "subscription_cycle"}

        with patch.object(expedition_service, "latest_live_expedition", AsyncMock(return_value=expedition)):
            await stripe_webhook_service.on_invoice_payment_succeeded(mock_db_session, invoice)

        assert sponsorship.status == SponsorshipStatus.ACTIVE.value
        assert sponsorship.expiry == expiry + timedelta(days=30)
        assert expedition.raised == 1500

    async def test_first_invoice_is_skipped(self, mock_db_session):
        invoice = {"subscription": "sub_1", "amount_paid": 500, "billing_reason": "subscription_create"}
        await stripe_webhook_service.on_invoice_payment_succeeded(mock_db_session, invoice)
        mock_db_session.execute.assert_not_awaited()

    async def test_failed_invoice_keeps_paused(self, mock_db_session):
        paused = Sponsorship(public_id="sp1", status=SponsorshipStatus.PAUSED.value)
        active = Sponsorship(public_id="sp2", status=SponsorshipStatus.ACTIVE.value)
        mock_db_session.execute.return_value = db_result(scalars=[paused, active])

        await stripe_webhook_service.on_invoice_payment_failed(mock_db_session, {"subscription": "sub_1"})

        assert paused.status == SponsorshipStatus.PAUSED.value
        assert active.status == SponsorshipStatus.PAST_DUE.value

    async def test_account_updated_sets_verification(self, mock_db_session):
        method = PayoutMethod(public_id="pm1", stripe_account_id="acct_1", is_verified=False)
        mock_db_session.execute.return_value = db_result(scalar=method)
        account = {"id": "acct_1", "charges_enabled": True, "payouts_enabled": True}
        await stripe_webhook_service.on_account_updated(mock_db_session, account)
        assert method.is_verified is True

    @pytest.mark.parametrize(
        "handler, status",
        [("on_payout_paid", PayoutStatus.CONFIRMED.value), ("on_payout_failed", PayoutStatus.CANCELED.value)],
    )
    async def test_payout_status(self, mock_db_session, handler, status):
        payout = Payout(public_id="po1", stripe_payout_id="po_1", status=PayoutStatus.PENDING.value)
        mock_db_session.execute.return_value = db_result(scalar=payout)
        await getattr(stripe_webhook_service, handler)(mock_db_session, {"id": "po_1"})
        assert payout.status == status

    async def test_paused_collection_skips_status_sync(self, mock_db_session):
        sponsorship = Sponsorship(public_id="sp1", status=SponsorshipStatus.PAUSED.value)
        mock_db_session.execute.return_value = db_result(scalars=[sponsorship])
        subscription = {"id": "sub_1", "status": "active", "pause_collection": {"behavior": "void"}}
        await stripe_webhook_service.on_subscription_updated(mock_db_session, subscription)
        assert sponsorship.status == SponsorshipStatus.PAUSED.value

    async def test_dispute_emails_admin(self, mock_db_session, clean_events, monkeypatch):
        monkeypatch.setattr(settings, "admin_email", "admin@example.com")
        emails = []

        async def on_email(data):
            emails.append(data)

        clean_events.on(Events.ADMIN_DISPUTE_CREATED, stripe_webhook_service.handle_dispute_created)
        clean_events.on(Events.SEND_EMAIL, on_email)
        dispute = {"id": "dp_1", "charge": "ch_1", "amount": 2500, "reason": "fraudulent", "status": "needs_response"}

        await stripe_webhook_service.on_dispute_created(mock_db_session, dispute)
        await clean_events.drain()

        assert emails[0]["to"] == "admin@example.com"
        assert emails[0]["variables"]["amount"] == 25.0
        assert emails[0]["variables"]["charge_id"] == "ch_1"


class TestExplorerProWebhooks:
    async def test_renewal_invoice_moves_pro_expiry(self, mock_db_session, make_user):
        user = make_user("ana", UserRole.CREATOR.value)
        pro = Subscription(
            public_id="sub1", user_id=user.id, period="month",
            stripe_subscription_id="sub_1", status=SubscriptionStatus.PAST_DUE.value,
        )
        mock_db_session.execute.side_effect = [db_result(scalars=[]), db_result(scalar=pro)]
        mock_db_session.get.return_value = user
        invoice = {
            "subscription": "sub_1",
            "amount_paid": 700,
            "billing_reason": "subscription_cycle",
            "lines": {"data": [{"period": {"start": 1_764_547_200, "end": 1_767_225_600}}]},
        }

        await stripe_webhook_service.on_invoice_payment_succeeded(mock_db_session, invoice)

        assert pro.expiry == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert pro.status == SubscriptionStatus.ACTIVE.value
        assert user.is_premium is True

    async def test_active_subscription_takes_stripe_period_end(self, mock_db_session, make_user):
        user = make_user("ana", UserRole.CREATOR.value)
        pro = Subscription(public_id="sub1", user_id=user.id, period="month", stripe_subscription_id="sub_1")
        mock_db_session.execute.side_effect = [db_result(scalars=[]), db_result(scalar=pro)]
        mock_db_session.get.return_value = user

        await stripe_webhook_service.on_subscription_updated(
            mock_db_session, {"id": "sub_1", "status": "active", "current_period_end": 1_767_225_600}
        )

        assert pro.status == SubscriptionStatus.ACTIVE.value
        assert pro.expiry == datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def test_canceled_subscription_downgrades(self, mock_db_session, make_user):
        user = make_user("ana", UserRole.CREATOR.value)
        pro = Subscription(public_id="sub1", user_id=user.id, period="month", stripe_subscription_id="sub_1")
        mock_db_session.execute.side_effect = [db_result(scalars=[]), db_result(scalar=pro)]
        mock_db_session.get.return_value = user

        await stripe_webhook_service.on_subscription_updated(mock_db_session, {"id": "sub_1", "status": "canceled"})

        assert pro.status == SubscriptionStatus.CANCELED.value
        assert user.is_premium is False
        assert user.role == UserRole.USER.value
