from sqlalchemy import Column, String, Numeric, DateTime
from . import Base
from ..helpers import new_id, utcnow

class Transaction(Base):
    __tablename__ = 'transactions'
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), index=True, nullable=False)
    # null for manual ledger adjustments
    product_id = Column(String(36), nullable=True)
    amount = Column(Numeric(14, 2, asdecimal=False), nullable=False)
    # pending | completed | paid | failed | refunded
    status = Column(String(20), nullable=False, default='pending')
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    payment_method = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
