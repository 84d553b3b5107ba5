"""
Heimursaga API — Sponsorship Service Unit Tests
=================================================

What:  Checkout guards, Stripe payloads for one-time sponsorships and the
       idempotent completion listener.
How:   Collaborating services and the Stripe client are patched on their
       singletons; completion runs against a mocked session factory.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import db_result
from saga.exceptions import BadRequestError, ForbiddenError, StripeError, ValidationError
from saga.models.enums import CheckoutStatus, SponsorshipStatus, SponsorshipType, UserRole
from saga.models.payout import PayoutMethod
from saga.models.sponsorship import Checkout, Sponsorship
from saga.schemas.sponsor import SponsorCheckoutRequest
from saga.services import sponsor_service as sponsor_module
from saga.services.event_service import Events
from saga.services.explorer_service import explorer_service
from saga.services.expedition_service import expedition_service
from saga.services.payment_service import payment_service
from saga.services.sponsor_service import sponsor_service
from saga.services.stripe_client import stripe_client

PRO = UserRole.CREATOR.value


def _one_time(amount=25.0, **overrides):
    fields = dict(
        sponsorship_type=SponsorshipType.ONE_TIME_PAYMENT,
        creator_username="ana",
        payment_method_id="pm1",
        one_time_amount=amount,
    )
    fields.update(overrides)
    return SponsorCheckoutRequest(**fields)


@pytest.fixture
def creator(make_user):
    return make_user("ana", PRO)


@pytest.fixture
def checkout_env(mock_db_session, creator):
    """Creator lookup, verified Connect account, saved card and customer."""
    account = PayoutMethod(user_id=creator.id, stripe_account_id="acct_1", is_verified=True)
    mock_db_session.execute.return_value.scalars.return_value.first.return_value = account
    card = MagicMock(stripe_payment_method_id="pm_card_1")
    with patch.object(explorer_service, "get_user_by_username", AsyncMock(return_value=creator)), \
            patch.object(payment_service, "get_payment_method", AsyncMock(return_value=card)), \
            patch.object(payment_service, "ensure_customer", AsyncMock(return_value="cus_1")):
        yield mock_db_session


class TestCheckoutGuards:
    def test_one_time_requires_amount(self):
        with pytest.raises(ValueError):
            SponsorCheckoutRequest(
                sponsorship_type=SponsorshipType.ONE_TIME_PAYMENT,
                creator_username="ana",
                payment_method_id="pm1",
            )

    def test_monthly_requires_tier(self):
        with pytest.raises(ValueError):
            SponsorCheckoutRequest(
                sponsorship_type=SponsorshipType.SUBSCRIPTION,
                creator_username="ana",
                payment_method_id="pm1",
            )

    async def test_cannot_sponsor_yourself(self, checkout_env, creator):
        with pytest.raises(BadRequestError, match="yourself"):
            await sponsor_service.checkout(checkout_env, creator, _one_time())

    async def test_creator_must_be_pro(self, mock_db_session, make_user):
        with patch.object(explorer_service, "get_user_by_username", AsyncMock(return_value=make_user("ana"))):
            with pytest.raises(ForbiddenError):
                await sponsor_service.checkout(mock_db_session, make_user("ben"), _one_time())

    async def test_creator_without_connect_account(self, mock_db_session, creator, make_user):
        mock_db_session.execute.return_value.scalars.return_value.first.return_value = None
        with patch.object(explorer_service, "get_user_by_username", AsyncMock(return_value=creator)):
            with pytest.raises(ForbiddenError, match="cannot receive"):
                await sponsor_service.checkout(mock_db_session, make_user("ben"), _one_time())

    async def test_amount_below_minimum(self, checkout_env, make_user):
        with pytest.raises(ValidationError, match="at least"):
            await sponsor_service.checkout(checkout_env, make_user("ben"), _one_time(amount=0.5))


class TestOneTimeCheckout:
    async def test_creates_destination_charge(self, checkout_env, creator, make_user):
        sponsor = make_user("ben")
        intent = {"id": "pi_1", "client_secret": "pi_1_secret"}
        with patch.object(stripe_client, "create_payment_intent", AsyncMock(return_value=intent)) as create:
            response = await sponsor_service.checkout(
                checkout_env, sponsor, _one_time(amount=25.0, message="<b>Go</b> far")
            )

        params = create.await_args.args[0]
        assert params["amount"] == 2500
        assert params["application_fee_amount"] == 125
        assert params["transfer_data"] == {"destination": "acct_1"}
        assert params["customer"] == "cus_1"
        assert params["payment_method"] == "pm_card_1"
        assert params["metadata"]["transaction"] == "sponsorship"
        assert create.await_args.kwargs["idempotency_key"] == f"sponsor_{response.checkout_id}"

        checkout = checkout_env.add.call_args.args[0]
        assert isinstance(checkout, Checkout)
        assert checkout.total == 2500
        assert checkout.message == "Go far"
        assert checkout.stripe_payment_intent_id == "pi_1"
        assert response.client_secret == "pi_1_secret"

    async def test_stripe_failure_is_forbidden(self, checkout_env, make_user):
        failing = AsyncMock(side_effect=StripeError("card declined", code="card_declined"))
        with patch.object(stripe_client, "create_payment_intent", failing):
            with pytest.raises(ForbiddenError, match="sponsor checkout failed"):
                await sponsor_service.checkout(checkout_env, make_user("ben"), _one_time())


class TestCompleteCheckout:
    @staticmethod
    def _factory(session):
        session.begin = MagicMock()
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session
        return factory

    @staticmethod
    def _checkout(**overrides):
        fields = dict(
            id=7,
            public_id="chk1",
            user_id=2,
            creator_id=1,
            total=2500,
            currency="usd",
            kind=SponsorshipType.ONE_TIME_PAYMENT.value,
            message="Go far",
            email_delivery=True,
            status=CheckoutStatus.PENDING.value,
        )
        fields.update(overrides)
        return Checkout(**fields)

    async def test_creates_sponsorship_and_notifies(self, mock_db_session, make_user, clean_events):
        creator = make_user("ana", PRO, id=1)
        sponsor = make_user("ben", id=2)
        checkout = self._checkout()
        mock_db_session.execute.return_value = db_result(scalar=checkout)
        mock_db_session.get.side_effect = [sponsor, creator]
        received = {"notifications": [], "emails": []}

        async def on_notification(data):
            received["notifications"].append(data)

        async def on_email(data):
            received["emails"].append(data)

        clean_events.on(Events.NOTIFICATION_CREATE, on_notification)
        clean_events.on(Events.SEND_EMAIL, on_email)

        with patch.object(sponsor_module, "async_session_factory", self._factory(mock_db_session)), \
                patch.object(expedition_service, "latest_live_expedition", AsyncMock(return_value=None)):
            await sponsor_service.complete_checkout({"checkout_id": "chk1", "user_id": "2", "creator_id": "1"})
        await clean_events.drain()

        assert checkout.status == CheckoutStatus.CONFIRMED.value
        sponsorship = mock_db_session.add.call_args.args[0]
        assert isinstance(sponsorship, Sponsorship)
        assert sponsorship.status == SponsorshipStatus.CONFIRMED.value
        assert sponsorship.amount == 2500
        assert sponsorship.expiry is None
        assert received["notifications"][0]["user_id"] == 1
        assert received["emails"][0]["template"] == "sponsorship_received"
        assert received["emails"][0]["variables"]["amount"] == 25.0

    async def test_monthly_sponsorship_is_active_with_expiry(self, mock_db_session, make_user, clean_events):
        checkout = self._checkout(kind=SponsorshipType.SUBSCRIPTION.value, stripe_subscription_id="sub_1")
        mock_db_session.execute.return_value = db_result(scalar=checkout)
        mock_db_session.get.side_effect = [make_user("ben", id=2), make_user("ana", PRO, id=1)]

        with patch.object(sponsor_module, "async_session_factory", self._factory(mock_db_session)), \
                patch.object(expedition_service, "latest_live_expedition", AsyncMock(return_value=None)):
            await sponsor_service.complete_checkout({"checkout_id": "chk1", "user_id": 2, "creator_id": 1})

        sponsorship = mock_db_session.add.call_args.args[0]
        assert sponsorship.status == SponsorshipStatus.ACTIVE.value
        assert sponsorship.stripe_subscription_id == "sub_1"
        assert sponsorship.expiry is not None

    async def test_already_confirmed_is_a_no_op(self, mock_db_session, clean_events):
        checkout = self._checkout(status=CheckoutStatus.CONFIRMED.value)
        mock_db_session.execute.return_value = db_result(scalar=checkout)

        with patch.object(sponsor_module, "async_session_factory", self._factory(mock_db_session)):
            await sponsor_service.complete_checkout({"checkout_id": "chk1", "user_id": 2, "creator_id": 1})

        mock_db_session.add.assert_not_called()
        mock_db_session.get.assert_not_awaited()


class TestCancel:
    def _sponsorship(self, sponsor, **overrides):
        fields = dict(
            public_id="sp1",
            type=SponsorshipType.SUBSCRIPTION.value,
            status=SponsorshipStatus.ACTIVE.value,
            amount=500,
            currency="usd",
            user_id=sponsor.id,
            creator_id=99,
            email_delivery_enabled=True,
            stripe_subscription_id="sub_1",
        )
        fields.update(overrides)
        sponsorship = Sponsorship(**fields)
        sponsorship.sponsor = sponsor
        return sponsorship

    async def test_one_time_cannot_be_canceled(self, mock_db_session, make_user):
        sponsor = make_user("ben")
        mock_db_session.execute.return_value = db_result(
            scalar=self._sponsorship(sponsor, type=SponsorshipType.ONE_TIME_PAYMENT.value)
        )
        with pytest.raises(BadRequestError):
            await sponsor_service.cancel(mock_db_session, sponsor, "sp1")

    async def test_missing_stripe_subscription_still_cancels(self, mock_db_session, make_user):
        sponsor = make_user("ben")
        sponsorship = self._sponsorship(sponsor)
        sponsorship.creator = make_user("ana", PRO)
        mock_db_session.execute.return_value = db_result(scalar=sponsorship)
        gone = AsyncMock(side_effect=StripeError("No such subscription: 'sub_1'", code="resource_missing"))

        with patch.object(stripe_client, "cancel_subscription", gone):
            response = await sponsor_service.cancel(mock_db_session, sponsor, "sp1")

        assert response.status == SponsorshipStatus.CANCELED.value

    async def test_other_stripe_errors_propagate(self, mock_db_session, make_user):
        sponsor = make_user("ben")
        mock_db_session.execute.return_value = db_result(scalar=self._sponsorship(sponsor))
        with patch.object(stripe_client, "cancel_subscription", AsyncMock(side_effect=StripeError("boom"))):
            with pytest.raises(StripeError):
                await sponsor_service.cancel(mock_db_session, sponsor, "sp1")
