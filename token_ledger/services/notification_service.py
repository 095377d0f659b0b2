"""
Best-effort notifications for settlement events.

Dispatched after the settlement transaction has committed (the
routers hand them to FastAPI background tasks). Delivery belongs to
another system; the engine only hands events to the registered sink.
A sink failure is logged and dropped, never raised: a lost email
must not undo a committed payout.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


TICKET_COMPLETED = "TICKET_COMPLETED"
WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"
WITHDRAWAL_PAID = "WITHDRAWAL_PAID"


@dataclass
class Notification:
    event_type: str
    user_id: int | None
    title: str
    message: str
    payload: dict[str, Any] = field(default_factory=dict)


def log_sink(notification: Notification) -> None:
    logger.info(
        "notification %s for user %s: %s",
        notification.event_type, notification.user_id, notification.title,
    )


class NotificationDispatcher:

    def __init__(self, sink: Callable[[Notification], None] = log_sink):
        self.sink = sink

    def dispatch(self, notification: Notification) -> bool:
        try:
            self.sink(notification)
        except Exception:
            logger.exception(
                "notification %s for user %s could not be delivered",
                notification.event_type, notification.user_id,
            )
            return False
        return True


_dispatcher = NotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency; tests override it to capture events."""
    return _dispatcher
