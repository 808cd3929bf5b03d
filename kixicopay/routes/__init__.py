from fastapi import APIRouter
from .ws import router as ws_router
from .notifications import router as notifications_router
from .presence import router as presence_router

router = APIRouter()
router.include_router(ws_router, prefix='/ws', tags=['ws'])
router.include_router(notifications_router, prefix='/notifications', tags=['notifications'])
router.include_router(presence_router, prefix='/presence', tags=['presence'])
