"""
Heimursaga API — Event Listener Registry
==========================================

Binds every in-process event to its handler. Called once from the app
lifespan; tests call it (after `event_service.clear()`) when they need the
real listeners.
"""

import logging

from saga.services.email_service import email_service
from saga.services.entry_service import entry_service
from saga.services.event_service import Events, event_service
from saga.services.notification_service import notification_service
from saga.services.payment_service import payment_service
from saga.services.sponsor_billing_service import sponsor_billing_service
from saga.services.sponsor_service import sponsor_service
from saga.services.stripe_webhook_service import stripe_webhook_service

logger = logging.getLogger(__name__)


def register_event_listeners() -> None:
    event_service.on(Events.SEND_EMAIL, email_service.handle_send_email)
    event_service.on(Events.NOTIFICATION_CREATE, notification_service.handle_notification_create)
    event_service.on(Events.ENTRY_CREATED, entry_service.handle_entry_created)
    event_service.on(Events.SPONSORSHIP_CHECKOUT_COMPLETE, sponsor_service.complete_checkout)
    event_service.on(Events.SUBSCRIPTION_UPGRADE_COMPLETE, payment_service.complete_upgrade)
    event_service.on(
        Events.EXPLORER_EXITED_RESTING, sponsor_billing_service.handle_explorer_exited_resting
    )
    event_service.on(Events.ADMIN_DISPUTE_CREATED, stripe_webhook_service.handle_dispute_created)
    logger.info("Event listeners registered")
