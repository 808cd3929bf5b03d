from fastapi import APIRouter, Depends, HTTPException
from ..crud import count_online_profiles, set_profile_status
from ..auth import get_current_user
from ..schemas import OnlineCountOut, PresenceIn

router = APIRouter()

@router.get('/online-count', response_model=OnlineCountOut)
async def online_count():
    return {'online': await count_online_profiles()}

@router.post('/status', response_model=OnlineCountOut)
async def set_status(payload: PresenceIn, current_user: dict = Depends(get_current_user)):
    p = await set_profile_status(current_user['id'], payload.status)
    if not p:
        raise HTTPException(404, 'Profile not found')
    return {'online': await count_online_profiles()}
