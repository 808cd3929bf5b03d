from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey
from . import Base
from ..helpers import new_id, utcnow

class Notification(Base):
    __tablename__ = 'notifications'
    id = Column(String(36), primary_key=True, default=new_id)
    # null user_id means a broadcast to every merchant
    user_id = Column(String(36), index=True, nullable=True)
    sender = Column(String(255), nullable=False, default='KixicoPay')
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

class NotificationReadStatus(Base):
    __tablename__ = 'notification_read_status'
    user_id = Column(String(36), primary_key=True)
    notification_id = Column(String(36), ForeignKey('notifications.id', ondelete='CASCADE'), primary_key=True)
    read_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
