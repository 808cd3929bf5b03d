from sqlalchemy import Column, String, DateTime
from . import Base
from ..helpers import new_id, utcnow

class Profile(Base):
    __tablename__ = 'profiles'
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    # online | offline
    status = Column(String(20), index=True, nullable=False, default='offline')
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
