from sqlalchemy import Column, String
from . import Base

class UserRole(Base):
    __tablename__ = 'user_roles'
    user_id = Column(String(36), primary_key=True)
    # admin | merchant
    role = Column(String(20), primary_key=True)
