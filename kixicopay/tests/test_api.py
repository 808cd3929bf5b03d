import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from kixicopay import crud, models
from kixicopay.auth import create_access_token
from kixicopay.helpers import utcnow
from kixicopay.main import app
from kixicopay.routes import ws as dashboard


@pytest.mark.asyncio
async def test_healthz(client):
    res = await client.get('/healthz')
    assert res.status_code == 200
    assert res.json() == {'status': 'ok'}


@pytest.mark.asyncio
async def test_inbox_routes(client, auth_headers):
    await crud.create_profile('merchant-1', created_at=utcnow() - timedelta(days=1))
    first = await crud.create_notification('merchant-1', 'first')
    await crud.create_notification(None, 'broadcast')
    headers = auth_headers('merchant-1')

    res = await client.get('/api/notifications/my', headers=headers)
    assert res.status_code == 200
    assert res.json()['unread_count'] == 2

    res = await client.post(f'/api/notifications/{first.id}/read', headers=headers)
    assert res.status_code == 200
    assert res.json() == {'marked': 1, 'unread_count': 1}

    res = await client.post('/api/notifications/missing/read', headers=headers)
    assert res.status_code == 404

    res = await client.post('/api/notifications/read-all', headers=headers)
    assert res.json() == {'marked': 1, 'unread_count': 0}


@pytest.mark.asyncio
async def test_inbox_requires_auth(client):
    res = await client.get('/api/notifications/my')
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_send_is_admin_only(client, auth_headers):
    body = {'user_id': 'merchant-1', 'message': 'hello'}
    res = await client.post('/api/notifications/send', json=body, headers=auth_headers('merchant-1'))
    assert res.status_code == 403

    await crud.grant_role('admin-1', 'admin')
    res = await client.post('/api/notifications/send', json=body, headers=auth_headers('admin-1'))
    assert res.status_code == 200
    assert res.json()['message'] == 'hello'
    assert res.json()['read'] is False


@pytest.mark.asyncio
async def test_presence_routes(client, auth_headers):
    await crud.create_profile('merchant-1')
    res = await client.post('/api/presence/status', json={'status': 'online'}, headers=auth_headers('merchant-1'))
    assert res.status_code == 200
    assert res.json() == {'online': 1}

    res = await client.get('/api/presence/online-count')
    assert res.json() == {'online': 1}

    res = await client.post('/api/presence/status', json={'status': 'away'}, headers=auth_headers('merchant-1'))
    assert res.status_code == 422

    res = await client.post('/api/presence/status', json={'status': 'online'}, headers=auth_headers('ghost'))
    assert res.status_code == 404


def test_dashboard_rejects_missing_token():
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect('/api/ws/dashboard'):
            pass


async def _seed_dashboard():
    await models.drop_all()
    await models.create_all()
    await crud.create_profile('merchant-ws', created_at=utcnow() - timedelta(days=1))
    await crud.create_notification('merchant-ws', 'welcome')


def receive_until(ws, message_type):
    while True:
        message = ws.receive_json()
        if message['type'] == message_type:
            return message


def test_dashboard_snapshot_and_actions(feed):
    asyncio.run(_seed_dashboard())
    client = TestClient(app)
    token = create_access_token({'sub': 'merchant-ws'})

    with client.websocket_connect(f'/api/ws/dashboard?token={token}') as ws:
        snapshot = ws.receive_json()
        assert snapshot['type'] == 'snapshot'
        assert snapshot['online_count'] == 1
        assert snapshot['sale'] is None
        assert snapshot['unread_count'] == 1

        ws.send_json({'action': 'mark_all_read'})
        assert receive_until(ws, 'inbox')['unread_count'] == 0

        ws.send_json({'action': 'bogus'})
        assert receive_until(ws, 'error')['error'] == 'unknown action'

        ws.send_text('not json')
        assert receive_until(ws, 'error')['error'] == 'invalid message'
        ws.send_json({'action': 'bogus'})
        assert receive_until(ws, 'error')['error'] == 'unknown action'

    asyncio.run(models.drop_all())


@pytest.mark.asyncio
async def test_profile_stays_online_while_another_dashboard_is_open(db, feed):
    await crud.create_profile('merchant-tabs')

    await dashboard._connected('merchant-tabs')
    await dashboard._connected('merchant-tabs')
    assert (await crud.get_profile('merchant-tabs')).status == 'online'

    await dashboard._disconnected('merchant-tabs')
    assert (await crud.get_profile('merchant-tabs')).status == 'online'

    await dashboard._disconnected('merchant-tabs')
    assert (await crud.get_profile('merchant-tabs')).status == 'offline'
    assert 'merchant-tabs' not in dashboard._connections
