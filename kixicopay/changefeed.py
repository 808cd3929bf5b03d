"""
Change feed client

Row-level INSERT/UPDATE/DELETE events for the backend tables, delivered to
subscribers that filter by table, operation and column equality.
"""
import json
import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Set
from prometheus_client import Counter
import logging

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

CHANGE_EVENTS = Counter('kixicopay_change_events_total', 'Change events delivered to subscribers', ['table', 'operation'])


class Operation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


ALL_OPERATIONS = frozenset(Operation)


@dataclass
class ChangeEvent:
    """A committed write on one table, with row snapshots before and after it."""
    operation: Operation
    table: str
    before: Optional[Row] = None
    after: Optional[Row] = None

    @property
    def row(self) -> Row:
        # deletes only carry the old row
        return self.after if self.after is not None else (self.before or {})

    def matches(self, row_filter: Optional[Dict[str, Any]]) -> bool:
        if not row_filter:
            return True
        row = self.row
        return all(row.get(column) == value for column, value in row_filter.items())

    def to_json(self) -> str:
        return json.dumps({
            'operation': self.operation.value,
            'table': self.table,
            'before': self.before,
            'after': self.after,
        }, default=str)

    @classmethod
    def from_json(cls, raw) -> "ChangeEvent":
        data = json.loads(raw)
        return cls(
            operation=Operation(data['operation']),
            table=data['table'],
            before=data.get('before'),
            after=data.get('after'),
        )


async def maybe_await(result):
    if inspect.isawaitable(result):
        return await result
    return result


class Subscription:
    """Handle for one subscriber on one table. close() may be called any number of times."""

    def __init__(self, table: str, row_filter: Optional[Dict[str, Any]], on_event: Callable,
                 operations: Iterable[Operation] = ALL_OPERATIONS, on_close: Optional[Callable] = None):
        self.table = table
        self.row_filter = dict(row_filter or {})
        self.operations = frozenset(operations)
        self._on_event = on_event
        self._on_close = on_close
        self._closed = False

    @classmethod
    def inert(cls, table: str) -> "Subscription":
        sub = cls(table, None, lambda event: None)
        sub._closed = True
        return sub

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, event: ChangeEvent) -> bool:
        return (
            not self._closed
            and event.table == self.table
            and event.operation in self.operations
            and event.matches(self.row_filter)
        )

    async def deliver(self, event: ChangeEvent):
        if not self.wants(event):
            return
        try:
            await maybe_await(self._on_event(event))
            CHANGE_EVENTS.labels(table=event.table, operation=event.operation.value).inc()
        except Exception as e:
            logger.error({'msg': 'change_callback_failed', 'table': event.table, 'error': str(e)})

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self._on_close:
            self._on_close(self)


class ChangeFeed:
    """Narrow subscribe/publish interface the aggregators depend on."""

    def subscribe(self, table: str, row_filter: Optional[Dict[str, Any]], on_event: Callable,
                  operations: Iterable[Operation] = ALL_OPERATIONS) -> Subscription:
        sub = Subscription(table, row_filter, on_event, operations, on_close=self._detach)
        try:
            self._attach(sub)
        except Exception as e:
            # no live updates for this subscriber; the caller keeps working on fetched state
            logger.error({'msg': 'subscribe_failed', 'table': table, 'error': str(e)})
            return Subscription.inert(table)
        logger.debug({'msg': 'subscribed', 'table': table, 'filter': sub.row_filter})
        return sub

    async def publish(self, event: ChangeEvent):
        raise NotImplementedError

    async def aclose(self):
        pass

    def _attach(self, sub: Subscription):
        raise NotImplementedError

    def _detach(self, sub: Subscription):
        raise NotImplementedError


class LocalChangeFeed(ChangeFeed):
    """In-process feed; events reach subscribers in publish order."""

    def __init__(self):
        self._subscriptions: Dict[str, Set[Subscription]] = {}

    def subscriber_count(self, table: str) -> int:
        return len(self._subscriptions.get(table, ()))

    def _attach(self, sub: Subscription):
        self._subscriptions.setdefault(sub.table, set()).add(sub)

    def _detach(self, sub: Subscription):
        subs = self._subscriptions.get(sub.table)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            del self._subscriptions[sub.table]

    async def dispatch(self, event: ChangeEvent):
        for sub in list(self._subscriptions.get(event.table, ())):
            await sub.deliver(event)

    async def publish(self, event: ChangeEvent):
        await self.dispatch(event)


class RedisChangeFeed(LocalChangeFeed):
    """Feed shared between app instances over Redis pub/sub.

    Events are published on ``<prefix>:<table>``. One pattern subscription per
    process receives them and fans out to the local subscribers. Reconnects are
    left to the redis client.
    """

    def __init__(self, redis, prefix: str = 'changes'):
        super().__init__()
        self.redis = redis
        self.prefix = prefix
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def start(self):
        if self.started:
            return
        self._pubsub = self.redis.pubsub()
        await self._pubsub.psubscribe(f'{self.prefix}:*')
        self._listener = asyncio.create_task(self._listen())

    def _attach(self, sub: Subscription):
        if not self.started:
            raise RuntimeError('redis change feed is not running')
        super()._attach(sub)

    async def publish(self, event: ChangeEvent):
        try:
            await self.redis.publish(f'{self.prefix}:{event.table}', event.to_json())
        except Exception as e:
            logger.error({'msg': 'change_publish_failed', 'table': event.table, 'error': str(e)})

    async def _listen(self):
        async for item in self._pubsub.listen():
            if not item or item.get('type') != 'pmessage':
                continue
            try:
                event = ChangeEvent.from_json(item.get('data'))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning({'msg': 'bad_change_message', 'error': str(e)})
                continue
            await self.dispatch(event)

    async def aclose(self):
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None
