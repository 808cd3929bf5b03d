"""
Sale notifications

Turns transaction inserts and status transitions for one merchant into
"new sale" popups. One popup is current at a time; it clears itself after
``display_seconds`` unless dismissed first.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
from prometheus_client import Counter
import logging

from . import core
from .changefeed import ChangeEvent, ChangeFeed, Operation, Row, Subscription
from .helpers import to_iso, utcnow

logger = logging.getLogger(__name__)

SALE_STATUSES = frozenset({'completed', 'paid'})

SALE_NOTIFICATIONS = Counter('kixicopay_sale_notifications_total', 'Sale popups emitted')


@dataclass(frozen=True)
class SaleNotification:
    id: str
    amount: float
    timestamp: datetime

    def to_dict(self):
        return {'id': self.id, 'amount': self.amount, 'timestamp': to_iso(self.timestamp)}


def detect_sale(operation: Operation, old_row: Optional[Row], new_row: Optional[Row],
                now: Optional[datetime] = None) -> Optional[SaleNotification]:
    """Return the popup a transaction change should raise, if any.

    Inserts always count. Updates count only on the transition into a sale
    status, so re-saving an already completed row stays quiet.
    """
    if not new_row:
        return None
    if operation == Operation.UPDATE:
        old_status = (old_row or {}).get('status')
        new_status = new_row.get('status')
        if new_status not in SALE_STATUSES or old_status == new_status:
            return None
    elif operation != Operation.INSERT:
        return None
    return SaleNotification(
        id=str(new_row.get('id')),
        amount=float(new_row.get('amount') or 0),
        timestamp=now or utcnow(),
    )


class SaleNotificationAggregator:

    def __init__(self, user_id: str, feed: Optional[ChangeFeed] = None,
                 display_seconds: Optional[float] = None,
                 on_change: Optional[Callable[["SaleNotificationAggregator"], None]] = None):
        self.user_id = user_id
        self.display_seconds = core.SALE_POPUP_SECONDS if display_seconds is None else display_seconds
        self._feed = feed
        self._on_change = on_change
        self._subscription: Optional[Subscription] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False
        self.history: List[SaleNotification] = []
        self.current: Optional[SaleNotification] = None

    async def open(self):
        if self._subscription is not None or self._closed:
            return
        feed = self._feed or core.CHANGE_FEED
        self._subscription = feed.subscribe(
            'transactions',
            {'user_id': self.user_id},
            self._on_event,
            operations=(Operation.INSERT, Operation.UPDATE),
        )

    def _on_event(self, event: ChangeEvent):
        notification = detect_sale(event.operation, event.before, event.after)
        if notification is not None:
            self.emit(notification)

    def emit(self, notification: SaleNotification):
        if self._closed:
            return
        self.history.append(notification)
        self.current = notification
        SALE_NOTIFICATIONS.inc()
        logger.info({'msg': 'sale_notification', 'user_id': self.user_id, 'transaction_id': notification.id})
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.display_seconds, self._expire, notification)
        self._notify()

    def _expire(self, notification: SaleNotification):
        self._timer = None
        if self.current is notification:
            self.current = None
            self._notify()

    def dismiss_current_notification(self):
        self._cancel_timer()
        if self.current is not None:
            self.current = None
            self._notify()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self):
        if self._on_change and not self._closed:
            self._on_change(self)

    async def close(self):
        self._closed = True
        self._cancel_timer()
        if self._subscription:
            self._subscription.close()
            self._subscription = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
