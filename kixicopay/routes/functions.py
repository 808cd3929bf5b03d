from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import json
import math
import logging

from ..auth import bearer_token, decode_token
from ..crud import get_active_coupon, has_role, insert_ledger_adjustment
from ..helpers import as_utc, utcnow
from ..schemas import CouponValidateIn, CouponValidateOut, ManualAdjustmentIn

logger = logging.getLogger(__name__)

router = APIRouter()

def _error(status: int, message: str, **extra):
    return JSONResponse(status_code=status, content={**extra, 'error': message})

async def _read_body(request: Request, model):
    try:
        return model.model_validate(await request.json())
    except (json.JSONDecodeError, ValidationError):
        return None

@router.post('/admin-manual-adjustment')
async def admin_manual_adjustment(request: Request):
    token = bearer_token(request)
    if not token:
        return _error(401, 'Authorization token required')
    user = decode_token(token)
    if not user:
        return _error(401, 'Invalid token')

    try:
        is_admin = await has_role(user['sub'], 'admin')
    except Exception as e:
        logger.error({'msg': 'role_lookup_failed', 'error': str(e)})
        is_admin = False
    if not is_admin:
        return _error(403, 'Access denied')

    payload = await _read_body(request, ManualAdjustmentIn)
    if payload is None:
        return _error(400, 'Invalid request body')
    if not payload.userId or not payload.amount or not payload.type or not payload.justification:
        return _error(400, 'userId, amount, type and justification are required')
    if not math.isfinite(payload.amount) or payload.amount <= 0:
        return _error(400, 'Invalid amount')
    if payload.type not in ('credit', 'debit'):
        return _error(400, "type must be 'credit' or 'debit'")

    try:
        tx = await insert_ledger_adjustment(payload.userId, payload.amount, payload.type, payload.justification)
    except Exception as e:
        logger.error({'msg': 'manual_adjustment_failed', 'user_id': payload.userId, 'error': str(e)})
        return _error(500, 'Failed to record adjustment')

    logger.info({'msg': 'manual_adjustment', 'admin_id': user['sub'], 'user_id': payload.userId,
                 'transaction_id': tx.id, 'amount': tx.amount})
    return {'success': True, 'transaction_id': tx.id}

@router.post('/validate-coupon', response_model=CouponValidateOut, response_model_exclude_none=True)
async def validate_coupon(request: Request):
    payload = await _read_body(request, CouponValidateIn)
    if payload is None or not payload.product_id or not payload.coupon_code:
        return _error(400, 'Product ID and coupon code are required', valid=False)

    logger.info({'msg': 'validate_coupon', 'product_id': payload.product_id, 'code': payload.coupon_code})
    try:
        coupon = await get_active_coupon(payload.product_id, payload.coupon_code)
    except Exception as e:
        logger.error({'msg': 'coupon_lookup_failed', 'error': str(e)})
        return _error(500, 'Error validating coupon', valid=False)

    if not coupon:
        return {'valid': False, 'error': 'Invalid or expired coupon'}
    if coupon.expiry_date and as_utc(coupon.expiry_date) < utcnow():
        return {'valid': False, 'error': 'Coupon expired'}
    if coupon.usage_limit and coupon.used_count >= coupon.usage_limit:
        return {'valid': False, 'error': 'Coupon usage limit reached'}

    return {'valid': True, 'discount_type': coupon.discount_type, 'discount_value': float(coupon.value)}
