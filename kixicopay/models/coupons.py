from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime
from . import Base
from ..helpers import new_id, utcnow

class Coupon(Base):
    __tablename__ = 'coupons'
    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), index=True, nullable=False)
    # stored uppercased
    code = Column(String(64), index=True, nullable=False)
    # percentage | fixed
    discount_type = Column(String(20), nullable=False)
    value = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
