"""
Notification inbox

Personal notifications plus platform-wide broadcasts for one merchant, with
read/unread state. Broadcasts (``user_id`` is null) share a single row across
merchants, so their read flag lives in ``notification_read_status`` instead.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional
import logging

from . import core, crud
from .changefeed import ChangeEvent, ChangeFeed, Operation, Row, Subscription
from .helpers import as_utc, parse_ts, to_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationRecord:
    id: str
    sender: str
    message: str
    created_at: Optional[datetime]
    read: bool
    user_id: Optional[str]

    @property
    def is_global(self) -> bool:
        return self.user_id is None

    @classmethod
    def from_row(cls, row: Row, read: Optional[bool] = None) -> "NotificationRecord":
        return cls(
            id=str(row['id']),
            sender=row.get('sender') or '',
            message=row.get('message') or '',
            created_at=parse_ts(row.get('created_at')),
            read=bool(row.get('read')) if read is None else read,
            user_id=row.get('user_id'),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'sender': self.sender,
            'message': self.message,
            'created_at': to_iso(self.created_at),
            'read': self.read,
            'user_id': self.user_id,
        }


class NotificationInbox:

    def __init__(self, user_id: str, feed: Optional[ChangeFeed] = None, limit: Optional[int] = None,
                 on_change: Optional[Callable[["NotificationInbox"], None]] = None):
        self.user_id = user_id
        self.limit = limit or core.INBOX_LIMIT
        self._feed = feed
        self._on_change = on_change
        self._subscription: Optional[Subscription] = None
        self._records: List[NotificationRecord] = []
        self._registered_at: Optional[datetime] = None
        self._closed = False

    @property
    def records(self) -> List[NotificationRecord]:
        return list(self._records)

    def list(self) -> List[NotificationRecord]:
        return self.records

    @property
    def unread_count(self) -> int:
        return sum(1 for r in self._records if not r.read)

    async def open(self):
        if self._subscription is not None or self._closed:
            return
        await self.load()
        if self._closed:
            return
        feed = self._feed or core.CHANGE_FEED
        # personal and broadcast rows both arrive here; visibility is checked per event
        self._subscription = feed.subscribe('notifications', None, self._on_event)

    async def load(self):
        try:
            profile = await crud.get_profile(self.user_id)
            registered_at = as_utc(profile.created_at) if profile else None
            rows = await crud.list_notifications_for(self.user_id, registered_at, limit=self.limit)
            read_global = await crud.list_read_global_ids(self.user_id)
        except Exception as e:
            logger.error({'msg': 'inbox_load_failed', 'user_id': self.user_id, 'error': str(e)})
            return
        if self._closed:
            return
        self._registered_at = registered_at
        records = []
        for n in rows:
            read = n.id in read_global if n.user_id is None else bool(n.read)
            records.append(NotificationRecord(
                id=n.id,
                sender=n.sender,
                message=n.message,
                created_at=as_utc(n.created_at),
                read=read,
                user_id=n.user_id,
            ))
        self._records = records
        self._notify()

    def _visible(self, row: Row) -> bool:
        if row.get('user_id') == self.user_id:
            return True
        if row.get('user_id') is not None or self._registered_at is None:
            return False
        created_at = parse_ts(row.get('created_at'))
        return created_at is not None and created_at >= self._registered_at

    def _on_event(self, event: ChangeEvent):
        row = event.row
        if not row or not self._visible(row):
            return
        if event.operation == Operation.INSERT:
            if any(r.id == str(row['id']) for r in self._records):
                return
            self._records = [NotificationRecord.from_row(row, read=False if row.get('user_id') is None else None)] + self._records
            del self._records[self.limit:]
        elif event.operation == Operation.UPDATE:
            self._records = [self._merge(r, row) if r.id == str(row['id']) else r for r in self._records]
        else:
            self._records = [r for r in self._records if r.id != str(row['id'])]
        self._notify()

    def _merge(self, existing: NotificationRecord, row: Row) -> NotificationRecord:
        # the shared row's read column says nothing about this merchant
        read = existing.read if existing.is_global else None
        return NotificationRecord.from_row(row, read=read)

    async def mark_as_read(self, notification_id: str) -> bool:
        record = next((r for r in self._records if r.id == notification_id), None)
        if record is None:
            return False
        try:
            if record.is_global:
                await crud.upsert_read_status(self.user_id, [notification_id])
            else:
                await crud.mark_notifications_read(self.user_id, [notification_id])
        except Exception as e:
            logger.error({'msg': 'mark_read_failed', 'notification_id': notification_id, 'error': str(e)})
            return False
        if self._closed:
            return True
        self._records = [replace(r, read=True) if r.id == notification_id else r for r in self._records]
        self._notify()
        return True

    async def mark_all_as_read(self) -> int:
        unread = [r for r in self._records if not r.read]
        if not unread:
            return 0
        personal = [r.id for r in unread if not r.is_global]
        broadcast = [r.id for r in unread if r.is_global]
        try:
            if personal:
                await crud.mark_notifications_read(self.user_id)
            if broadcast:
                await crud.upsert_read_status(self.user_id, broadcast)
        except Exception as e:
            logger.error({'msg': 'mark_all_read_failed', 'user_id': self.user_id, 'error': str(e)})
            return 0
        if not self._closed:
            self._records = [replace(r, read=True) if not r.read else r for r in self._records]
            self._notify()
        return len(unread)

    def _notify(self):
        if self._on_change and not self._closed:
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
