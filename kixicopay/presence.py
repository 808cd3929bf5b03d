"""
Online presence

Keeps the number of merchants whose profile status is ``online``. The count is
always re-queried from the database when any profile row changes, never
adjusted by +1/-1, so missed or repeated events cannot make it drift.
"""
from typing import Awaitable, Callable, Optional
from prometheus_client import Gauge
import logging

from . import core, crud
from .changefeed import ChangeEvent, ChangeFeed, Subscription

logger = logging.getLogger(__name__)

ONLINE_USERS = Gauge('kixicopay_online_users', 'Profiles currently marked online')


class OnlineCountAggregator:

    def __init__(self, feed: Optional[ChangeFeed] = None,
                 count_query: Callable[[], Awaitable[int]] = None,
                 on_change: Optional[Callable[["OnlineCountAggregator"], None]] = None):
        self._feed = feed
        self._count_query = count_query or crud.count_online_profiles
        self._on_change = on_change
        self._subscription: Optional[Subscription] = None
        self._opened = False
        self._closed = False
        # only the most recently started query may set the count
        self._generation = 0
        self.count = 0

    @property
    def live(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    async def open(self):
        if self._opened:
            return
        self._opened = True
        await self.fetch_online_count()
        if self._closed:
            return
        feed = self._feed or core.CHANGE_FEED
        self._subscription = feed.subscribe('profiles', None, self._on_event)
        if self.live:
            # catch writes that landed between the first query and the subscription
            await self.fetch_online_count()

    async def _on_event(self, event: ChangeEvent):
        await self.fetch_online_count()

    async def fetch_online_count(self):
        self._generation += 1
        generation = self._generation
        try:
            count = await self._count_query()
        except Exception as e:
            logger.error({'msg': 'online_count_failed', 'error': str(e)})
            return
        if self._closed or generation != self._generation:
            return
        self.count = count or 0
        ONLINE_USERS.set(self.count)
        if self._on_change:
            self._on_change(self)

    async def close(self):
        self._closed = True
        if self._subscription:
            self._subscription.close()
            self._subscription = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
