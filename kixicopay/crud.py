from .models import AsyncSessionLocal
from .models.profiles import Profile
from .models.transactions import Transaction
from .models.notifications import Notification, NotificationReadStatus
from .models.coupons import Coupon
from .models.user_roles import UserRole
from .changefeed import ChangeEvent, Operation
from .helpers import row_dict
from . import core
from sqlalchemy import select, func
from typing import Iterable, Optional, Set
from datetime import datetime

# every committed write is announced on the change feed after commit
async def _announce(operation: Operation, table: str, before=None, after=None):
    await core.CHANGE_FEED.publish(ChangeEvent(operation=operation, table=table, before=before, after=after))

# profiles / presence
async def create_profile(user_id: str, full_name: str = None, email: str = None, status: str = 'offline', created_at: datetime = None):
    async with AsyncSessionLocal() as session:
        p = Profile(user_id=user_id, full_name=full_name, email=email, status=status)
        if created_at is not None:
            p.created_at = created_at
        session.add(p)
        await session.commit()
        await session.refresh(p)
    await _announce(Operation.INSERT, 'profiles', after=row_dict(p))
    return p

async def get_profile(user_id: str):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Profile).where(Profile.user_id == user_id))
        return q.scalars().first()

async def set_profile_status(user_id: str, status: str):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Profile).where(Profile.user_id == user_id))
        p = q.scalars().first()
        if not p:
            return None
        before = row_dict(p)
        p.status = status
        await session.commit()
        await session.refresh(p)
    await _announce(Operation.UPDATE, 'profiles', before=before, after=row_dict(p))
    return p

async def delete_profile(user_id: str) -> bool:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Profile).where(Profile.user_id == user_id))
        p = q.scalars().first()
        if not p:
            return False
        before = row_dict(p)
        await session.delete(p)
        await session.commit()
    await _announce(Operation.DELETE, 'profiles', before=before)
    return True

async def count_online_profiles() -> int:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(func.count()).select_from(Profile).where(Profile.status == 'online'))
        return q.scalar_one()

# transactions
async def create_transaction(user_id: str, amount: float, status: str = 'pending', product_id: str = None,
                             customer_name: str = None, customer_email: str = None, payment_method: str = None):
    async with AsyncSessionLocal() as session:
        tx = Transaction(
            user_id=user_id,
            amount=amount,
            status=status,
            product_id=product_id,
            customer_name=customer_name,
            customer_email=customer_email,
            payment_method=payment_method,
        )
        session.add(tx)
        await session.commit()
        await session.refresh(tx)
    await _announce(Operation.INSERT, 'transactions', after=row_dict(tx))
    return tx

async def update_transaction_status(transaction_id: str, status: str):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Transaction).where(Transaction.id == transaction_id))
        tx = q.scalars().first()
        if not tx:
            return None
        before = row_dict(tx)
        tx.status = status
        await session.commit()
        await session.refresh(tx)
    await _announce(Operation.UPDATE, 'transactions', before=before, after=row_dict(tx))
    return tx

async def insert_ledger_adjustment(user_id: str, amount: float, adjustment_type: str, justification: str):
    """Completed transaction outside the sales flow; debits are stored negative."""
    debit = adjustment_type == 'debit'
    return await create_transaction(
        user_id=user_id,
        amount=-amount if debit else amount,
        status='completed',
        product_id=None,
        customer_name=f"Ajuste Manual - {'Débito' if debit else 'Crédito'}",
        customer_email=justification,
        payment_method='debito' if debit else 'credito',
    )

# notifications
async def create_notification(user_id: Optional[str], message: str, sender: str = 'KixicoPay', created_at: datetime = None):
    async with AsyncSessionLocal() as session:
        n = Notification(user_id=user_id, sender=sender, message=message)
        if created_at is not None:
            n.created_at = created_at
        session.add(n)
        await session.commit()
        await session.refresh(n)
    await _announce(Operation.INSERT, 'notifications', after=row_dict(n))
    return n

async def list_notifications_for(user_id: str, registered_at: Optional[datetime], limit: int = 20):
    """Personal notifications plus broadcasts sent since the recipient registered."""
    async with AsyncSessionLocal() as session:
        visible = Notification.user_id == user_id
        if registered_at is not None:
            visible = visible | (Notification.user_id.is_(None) & (Notification.created_at >= registered_at))
        q = select(Notification).where(visible).order_by(Notification.created_at.desc()).limit(limit)
        res = await session.execute(q)
        return res.scalars().all()

async def list_read_global_ids(user_id: str) -> Set[str]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(NotificationReadStatus.notification_id).where(NotificationReadStatus.user_id == user_id))
        return set(res.scalars().all())

async def mark_notifications_read(user_id: str, notification_ids: Iterable[str] = None) -> int:
    """Set read on the recipient's own unread notifications (all of them when no ids are given)."""
    async with AsyncSessionLocal() as session:
        q = select(Notification).where(Notification.user_id == user_id, Notification.read.is_(False))
        if notification_ids is not None:
            q = q.where(Notification.id.in_(list(notification_ids)))
        res = await session.execute(q)
        rows = res.scalars().all()
        changes = []
        for n in rows:
            before = row_dict(n)
            n.read = True
            changes.append((before, n))
        await session.commit()
    for before, n in changes:
        await _announce(Operation.UPDATE, 'notifications', before=before, after=row_dict(n))
    return len(changes)

async def upsert_read_status(user_id: str, notification_ids: Iterable[str]) -> int:
    ids = set(notification_ids)
    if not ids:
        return 0
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(NotificationReadStatus.notification_id).where(
            NotificationReadStatus.user_id == user_id,
            NotificationReadStatus.notification_id.in_(ids),
        ))
        missing = ids - set(res.scalars().all())
        for notification_id in missing:
            session.add(NotificationReadStatus(user_id=user_id, notification_id=notification_id))
        await session.commit()
        return len(missing)

# coupons
async def get_active_coupon(product_id: str, code: str):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Coupon).where(
            Coupon.product_id == product_id,
            Coupon.code == code.upper(),
            Coupon.is_active.is_(True),
        ))
        return q.scalars().first()

async def create_coupon(product_id: str, code: str, discount_type: str, value: float, expiry_date: datetime = None,
                        usage_limit: int = None, used_count: int = 0, is_active: bool = True):
    async with AsyncSessionLocal() as session:
        c = Coupon(
            product_id=product_id,
            code=code.upper(),
            discount_type=discount_type,
            value=value,
            expiry_date=expiry_date,
            usage_limit=usage_limit,
            used_count=used_count,
            is_active=is_active,
        )
        session.add(c)
        await session.commit()
        await session.refresh(c)
        return c

# roles
async def has_role(user_id: str, role: str) -> bool:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role))
        return q.scalars().first() is not None

async def grant_role(user_id: str, role: str):
    async with AsyncSessionLocal() as session:
        if await session.get(UserRole, (user_id, role)) is None:
            session.add(UserRole(user_id=user_id, role=role))
            await session.commit()

