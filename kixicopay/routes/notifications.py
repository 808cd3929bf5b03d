from fastapi import APIRouter, Depends, HTTPException
from ..crud import create_notification
from ..inbox import NotificationInbox
from ..auth import get_current_user, require_admin
from ..schemas import InboxOut, NotificationSendIn, NotificationOut, MarkReadOut

router = APIRouter()

async def _loaded_inbox(user_id: str) -> NotificationInbox:
    # request-scoped inbox: loaded once, no live subscription
    inbox = NotificationInbox(user_id)
    await inbox.load()
    return inbox

@router.get('/my', response_model=InboxOut)
async def my_notifications(current_user: dict = Depends(get_current_user)):
    inbox = await _loaded_inbox(current_user['id'])
    return {'notifications': [r.to_dict() for r in inbox.list()], 'unread_count': inbox.unread_count}

@router.post('/read-all', response_model=MarkReadOut)
async def mark_all_read(current_user: dict = Depends(get_current_user)):
    inbox = await _loaded_inbox(current_user['id'])
    marked = await inbox.mark_all_as_read()
    return {'marked': marked, 'unread_count': inbox.unread_count}

@router.post('/{notification_id}/read', response_model=MarkReadOut)
async def mark_read(notification_id: str, current_user: dict = Depends(get_current_user)):
    inbox = await _loaded_inbox(current_user['id'])
    if not await inbox.mark_as_read(notification_id):
        raise HTTPException(404, 'Notification not found')
    return {'marked': 1, 'unread_count': inbox.unread_count}

@router.post('/send', response_model=NotificationOut)
async def send_notification(payload: NotificationSendIn, admin: dict = Depends(require_admin)):
    n = await create_notification(payload.user_id, payload.message, sender=payload.sender)
    return n
