"""
Notification Hub

The ledger core does not emit ambient events. The composing application
owns a NotificationHub, registers handlers on it explicitly, and the flows
call its publish methods.

Two notifications exist:
- business switched (payload: the new business id, None for personal)
- open recurring rule (payload: business id and rule id)
"""

from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

BusinessSwitchedHandler = Callable[[Optional[str]], Awaitable[Any]]
OpenRecurringHandler = Callable[[Optional[str], str], Awaitable[Any]]


class NotificationHub:
    """
    Registry of async handlers for core notifications.

    Handlers run in registration order. A failing handler is logged and
    does not prevent the remaining handlers from running.
    """

    def __init__(self):
        self._business_switched: list[BusinessSwitchedHandler] = []
        self._open_recurring: list[OpenRecurringHandler] = []

    def on_business_switched(self, handler: BusinessSwitchedHandler) -> None:
        self._business_switched.append(handler)

    def on_open_recurring(self, handler: OpenRecurringHandler) -> None:
        self._open_recurring.append(handler)

    def remove_business_switched(self, handler: BusinessSwitchedHandler) -> None:
        if handler in self._business_switched:
            self._business_switched.remove(handler)

    def remove_open_recurring(self, handler: OpenRecurringHandler) -> None:
        if handler in self._open_recurring:
            self._open_recurring.remove(handler)

    async def business_switched(self, business_id: Optional[str]) -> list[Any]:
        """Notify handlers that the active business changed."""
        results = []
        for handler in list(self._business_switched):
            try:
                results.append(await handler(business_id))
            except Exception as e:
                logger.error(
                    "notification_handler_failed",
                    notification="business_switched",
                    business_id=business_id,
                    error=str(e),
                )
        return results

    async def open_recurring(self, business_id: Optional[str], rule_id: str) -> list[Any]:
        """Ask handlers to open the editor for a recurring rule."""
        results = []
        for handler in list(self._open_recurring):
            try:
                results.append(await handler(business_id, rule_id))
            except Exception as e:
                logger.error(
                    "notification_handler_failed",
                    notification="open_recurring",
                    business_id=business_id,
                    rule_id=rule_id,
                    error=str(e),
                )
        return results
