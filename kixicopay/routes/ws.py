import asyncio
import contextlib
import logging
from typing import Dict
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from ..auth import decode_token
from ..crud import set_profile_status
from ..presence import OnlineCountAggregator
from ..sales import SaleNotificationAggregator
from ..inbox import NotificationInbox

logger = logging.getLogger(__name__)

router = APIRouter()

# open dashboards per merchant; the profile is online while any is connected
_connections: Dict[str, int] = {}

async def _connected(user_id: str):
    _connections[user_id] = _connections.get(user_id, 0) + 1
    if _connections[user_id] == 1:
        await set_profile_status(user_id, 'online')

async def _disconnected(user_id: str):
    remaining = _connections.get(user_id, 0) - 1
    if remaining > 0:
        _connections[user_id] = remaining
        return
    _connections.pop(user_id, None)
    await set_profile_status(user_id, 'offline')

def _sale_message(sales: SaleNotificationAggregator):
    return {'type': 'sale', 'current': sales.current.to_dict() if sales.current else None}

def _inbox_message(inbox: NotificationInbox):
    return {
        'type': 'inbox',
        'unread_count': inbox.unread_count,
        'notifications': [r.to_dict() for r in inbox.list()],
    }

async def _pump(websocket: WebSocket, outbox: asyncio.Queue):
    while True:
        message = await outbox.get()
        await websocket.send_json(message)

@router.websocket('/dashboard')
async def dashboard_ws(websocket: WebSocket, token: str = Query(None)):
    user = None
    if token:
        user = decode_token(token)
    if not user:
        await websocket.close(code=1008)
        return
    user_id = user['sub']
    await websocket.accept()

    outbox: asyncio.Queue = asyncio.Queue()
    presence = OnlineCountAggregator(on_change=lambda a: outbox.put_nowait({'type': 'online_count', 'count': a.count}))
    sales = SaleNotificationAggregator(user_id, on_change=lambda a: outbox.put_nowait(_sale_message(a)))
    inbox = NotificationInbox(user_id, on_change=lambda a: outbox.put_nowait(_inbox_message(a)))

    await _connected(user_id)
    try:
        async with presence, sales, inbox:
            # drop what open() queued; the snapshot already covers it
            while not outbox.empty():
                outbox.get_nowait()
            await websocket.send_json({
                'type': 'snapshot',
                'online_count': presence.count,
                'sale': _sale_message(sales)['current'],
                'unread_count': inbox.unread_count,
                'notifications': [r.to_dict() for r in inbox.list()],
            })
            sender = asyncio.create_task(_pump(websocket, outbox))
            try:
                while True:
                    try:
                        data = await websocket.receive_json()
                    except ValueError:
                        outbox.put_nowait({'type': 'error', 'error': 'invalid message'})
                        continue
                    action = data.get('action') if isinstance(data, dict) else None
                    if action == 'dismiss_sale':
                        sales.dismiss_current_notification()
                    elif action == 'mark_read':
                        await inbox.mark_as_read(str(data.get('id')))
                    elif action == 'mark_all_read':
                        await inbox.mark_all_as_read()
                    else:
                        outbox.put_nowait({'type': 'error', 'error': 'unknown action'})
            except WebSocketDisconnect:
                logger.info({'msg': 'dashboard_disconnected', 'user_id': user_id})
            finally:
                sender.cancel()
                with contextlib.suppress(Exception, asyncio.CancelledError):
                    await sender
    finally:
        await _disconnected(user_id)
