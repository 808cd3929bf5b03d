import asyncio

import pytest

from kixicopay.changefeed import ChangeEvent, LocalChangeFeed, Operation, RedisChangeFeed, Subscription


def insert(table, **row):
    return ChangeEvent(operation=Operation.INSERT, table=table, after=row)


@pytest.mark.asyncio
async def test_subscriber_only_sees_matching_rows():
    feed = LocalChangeFeed()
    seen = []
    feed.subscribe('transactions', {'user_id': 'u1'}, seen.append)

    await feed.publish(insert('transactions', id='t1', user_id='u1'))
    await feed.publish(insert('transactions', id='t2', user_id='u2'))
    await feed.publish(insert('profiles', id='p1', user_id='u1'))

    assert [e.after['id'] for e in seen] == ['t1']


@pytest.mark.asyncio
async def test_operation_filter_and_delete_uses_old_row():
    feed = LocalChangeFeed()
    seen = []
    feed.subscribe('profiles', {'user_id': 'u1'}, seen.append, operations=[Operation.DELETE])

    await feed.publish(insert('profiles', id='p1', user_id='u1'))
    await feed.publish(ChangeEvent(Operation.DELETE, 'profiles', before={'id': 'p1', 'user_id': 'u1'}))

    assert len(seen) == 1
    assert seen[0].operation == Operation.DELETE
    assert seen[0].row['id'] == 'p1'


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited_in_order():
    feed = LocalChangeFeed()
    seen = []

    async def on_event(event):
        seen.append(event.after['id'])

    feed.subscribe('notifications', None, on_event)
    for i in range(3):
        await feed.publish(insert('notifications', id=str(i)))

    assert seen == ['0', '1', '2']


@pytest.mark.asyncio
async def test_close_is_idempotent_and_stops_delivery():
    feed = LocalChangeFeed()
    seen = []
    sub = feed.subscribe('profiles', None, seen.append)
    assert feed.subscriber_count('profiles') == 1

    sub.close()
    sub.close()
    await feed.publish(insert('profiles', id='p1'))

    assert sub.closed
    assert seen == []
    assert feed.subscriber_count('profiles') == 0


def test_closing_inert_subscription_is_noop():
    sub = Subscription.inert('profiles')
    sub.close()
    assert sub.closed


def test_failed_subscribe_returns_closed_subscription():
    # listener never started, so the subscribe call cannot be served
    feed = RedisChangeFeed(redis=None)
    sub = feed.subscribe('profiles', None, lambda e: None)
    assert sub.closed
    sub.close()


@pytest.mark.asyncio
async def test_failing_callback_does_not_block_other_subscribers():
    feed = LocalChangeFeed()
    seen = []

    def broken(event):
        raise RuntimeError('boom')

    feed.subscribe('profiles', None, broken)
    feed.subscribe('profiles', None, seen.append)
    await feed.publish(insert('profiles', id='p1'))

    assert len(seen) == 1


def test_event_json_keeps_snapshots():
    event = ChangeEvent(Operation.UPDATE, 'transactions',
                        before={'id': 't1', 'status': 'pending'},
                        after={'id': 't1', 'status': 'paid', 'amount': 12.5})
    decoded = ChangeEvent.from_json(event.to_json())
    assert decoded == event


class FakePubSub:
    def __init__(self):
        self.queue = asyncio.Queue()
        self.patterns = []
        self.closed = False

    async def psubscribe(self, pattern):
        self.patterns.append(pattern)
        self.queue.put_nowait({'type': 'psubscribe', 'pattern': pattern, 'data': 1})

    async def listen(self):
        while True:
            yield await self.queue.get()

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.pubsub_conn = FakePubSub()
        self.published = []

    def pubsub(self):
        return self.pubsub_conn

    async def publish(self, channel, data):
        self.published.append(channel)
        self.pubsub_conn.queue.put_nowait({'type': 'pmessage', 'channel': channel, 'data': data})


@pytest.mark.asyncio
async def test_redis_feed_delivers_published_events_and_skips_bad_messages():
    redis = FakeRedis()
    feed = RedisChangeFeed(redis)
    await feed.start()
    assert feed.started
    assert redis.pubsub_conn.patterns == ['changes:*']

    seen = []
    sub = feed.subscribe('transactions', {'user_id': 'u1'}, seen.append)
    assert not sub.closed

    redis.pubsub_conn.queue.put_nowait({'type': 'pmessage', 'channel': 'changes:transactions', 'data': 'not json'})
    await feed.publish(insert('transactions', id='t0', user_id='u2'))
    await feed.publish(insert('transactions', id='t1', user_id='u1'))

    for _ in range(100):
        if seen:
            break
        await asyncio.sleep(0.01)

    assert [e.after['id'] for e in seen] == ['t1']
    assert redis.published == ['changes:transactions', 'changes:transactions']
    assert feed.started

    await feed.aclose()
    assert redis.pubsub_conn.closed
    assert not feed.started


def test_redis_feed_subscribe_before_start_is_inert():
    feed = RedisChangeFeed(FakeRedis())
    sub = feed.subscribe('transactions', None, lambda e: None)
    assert sub.closed
