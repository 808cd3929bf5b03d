from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Literal
from datetime import datetime

class NotificationOut(BaseModel):
    id: str
    sender: str
    message: str
    created_at: Optional[datetime]
    read: bool
    user_id: Optional[str]

    model_config = ConfigDict(from_attributes=True)

class InboxOut(BaseModel):
    notifications: List[NotificationOut]
    unread_count: int

class NotificationSendIn(BaseModel):
    # omit user_id to broadcast to every merchant
    user_id: Optional[str] = None
    message: str
    sender: str = 'KixicoPay'

class MarkReadOut(BaseModel):
    marked: int
    unread_count: int

class OnlineCountOut(BaseModel):
    online: int

class PresenceIn(BaseModel):
    status: Literal['online', 'offline']

class ManualAdjustmentIn(BaseModel):
    userId: Optional[str] = None
    amount: Optional[float] = None
    type: Optional[str] = None
    justification: Optional[str] = None

class ManualAdjustmentOut(BaseModel):
    success: bool = True
    transaction_id: str

class CouponValidateIn(BaseModel):
    product_id: Optional[str] = None
    coupon_code: Optional[str] = None

class CouponValidateOut(BaseModel):
    valid: bool
    discount_type: Optional[Literal['percentage', 'fixed']] = None
    discount_value: Optional[float] = None
    error: Optional[str] = None
