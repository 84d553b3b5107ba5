"""
Heimursaga API — In-Process Event Service
===========================================

What:  Fire-and-forget dispatch of side effects (emails, notifications,
       checkout completion) after a domain action.
How:   `trigger()` schedules each registered listener as a detached asyncio
       task and returns immediately. Listener failures are logged, never
       propagated. No retry, no ordering, no backpressure.
Who:   Services call `event_service.trigger(Events.X, {...})`; listeners are
       wired once in `saga.listeners.register_event_listeners()`.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Set

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], Awaitable[None]]


class Events:
    SEND_EMAIL = "send_email"
    NOTIFICATION_CREATE = "notification_create"
    ENTRY_CREATED = "entry_created"
    SPONSORSHIP_CHECKOUT_COMPLETE = "sponsorship_checkout_complete"
    SUBSCRIPTION_UPGRADE_COMPLETE = "subscription_upgrade_complete"
    EXPLORER_EXITED_RESTING = "explorer_exited_resting"
    ADMIN_DISPUTE_CREATED = "admin_dispute_created"


class EventService:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> None:
        if listener not in self._listeners[event]:
            self._listeners[event].append(listener)

    def clear(self) -> None:
        self._listeners.clear()

    def trigger(self, event: str, data: Dict[str, Any]) -> None:
        """Schedule every listener of `event`; never raises."""
        listeners = self._listeners.get(event, [])
        if not listeners:
            logger.debug("No listeners for event %s", event)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("Event %s triggered outside a running event loop; dropped", event)
            return

        for listener in listeners:
            task = loop.create_task(self._run(event, listener, data))
            # Keep a strong reference until the task finishes
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, event: str, listener: Listener, data: Dict[str, Any]) -> None:
        try:
            await listener(data)
        except Exception as e:
            logger.error(
                "Listener %s for event %s failed: %s",
                getattr(listener, "__qualname__", repr(listener)),
                event,
                e,
                exc_info=True,
            )

    async def drain(self) -> None:
        """Await outstanding listener tasks, including ones they trigger."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Singleton instance, shared by services and listeners
event_service = EventService()
