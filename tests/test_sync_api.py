import uuid
import pytest
from httpx import AsyncClient, ASGITransport

from focus_sync import config
from focus_sync.main import app
from focus_sync.auth import create_user


@pytest.mark.asyncio
async def test_bulk_create_then_pin_by_client_id(client):
    body = {
        'creates': [{'clientId': 'c1', 'title': 'Buy milk'}],
        'updates': [{'clientId': 'c1', 'pinned': True}],
        'deletes': [],
    }
    resp = await client.post('/sync/tasks/bulk', json=body)
    assert resp.status_code == 200
    data = resp.json()
    created = data['created'][0]
    assert created['clientId'] == 'c1'
    assert created['title'] == 'Buy milk'
    assert created['completed'] is False
    assert created['ownerId'] == client.user_id
    assert created['createdAt'].endswith('Z')
    assert data['updated'][0]['id'] == created['id']
    assert data['updated'][0]['pinned'] is True
    assert data['deleted'] == []


@pytest.mark.asyncio
async def test_bulk_missing_lists_are_treated_as_empty(client):
    resp = await client.post('/sync/tasks/bulk', json={'creates': [{'title': 'only creates'}]})
    assert resp.status_code == 200
    assert resp.json()['updated'] == []

    resp = await client.post('/sync/tasks/bulk', json={'creates': None, 'updates': None, 'deletes': None})
    assert resp.status_code == 200
    assert resp.json() == {'created': [], 'updated': [], 'deleted': []}


@pytest.mark.asyncio
async def test_bulk_validation_failure_is_400_and_persists_nothing(client):
    body = {'creates': [{'clientId': 'a', 'title': 'fine'}, {'clientId': 'b', 'title': ''}]}
    resp = await client.post('/sync/tasks/bulk', json=body)
    assert resp.status_code == 400
    assert resp.json()['detail'] == 'title is required'

    items = (await client.get('/sync/tasks')).json()['items']
    assert items == []


@pytest.mark.asyncio
async def test_bulk_limit_is_400(client, monkeypatch):
    monkeypatch.setattr(config, 'NOTES_MAX_PER_OWNER', 1)
    resp = await client.post('/sync/notes/bulk', json={'creates': [{'title': 'a'}, {'title': 'b'}]})
    assert resp.status_code == 400
    assert 'limit' in resp.json()['detail']


@pytest.mark.asyncio
async def test_op_without_target_is_rejected(client):
    resp = await client.post('/sync/tasks/bulk', json={'updates': [{'title': 'nowhere'}]})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_kind_is_404(client):
    resp = await client.post('/sync/calendars/bulk', json={})
    assert resp.status_code == 404
    resp = await client.get('/sync/calendars')
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_status_returns_timestamp(client):
    resp = await client.get('/sync/status')
    assert resp.status_code == 200
    assert resp.json()['timestamp'].endswith('Z')


@pytest.mark.asyncio
async def test_fetch_all_excludes_tombstones(client):
    resp = await client.post('/sync/tasks/bulk', json={'creates': [
        {'clientId': 'keep', 'title': 'keep'},
        {'clientId': 'drop', 'title': 'drop'},
    ]})
    ids = {c['clientId']: c['id'] for c in resp.json()['created']}

    resp = await client.post('/sync/tasks/bulk', json={'deletes': [{'id': ids['drop'], 'deletedAt': '2024-01-02T00:00:00Z'}]})
    assert resp.json()['deleted'] == [ids['drop']]

    data = (await client.get('/sync/tasks')).json()
    assert [t['id'] for t in data['items']] == [ids['keep']]
    assert 'server_ts' in data


@pytest.mark.asyncio
async def test_stale_update_after_delete_is_returned_unchanged(client):
    resp = await client.post('/sync/tasks/bulk', json={'creates': [{'title': 'original'}]})
    task_id = resp.json()['created'][0]['id']
    await client.post('/sync/tasks/bulk', json={'deletes': [{'id': task_id, 'deletedAt': '2024-01-02T00:00:00Z'}]})

    resp = await client.post('/sync/tasks/bulk', json={'updates': [
        {'id': task_id, 'title': 'x', 'updatedAt': '2024-01-01T00:00:00Z'},
    ]})
    updated = resp.json()['updated'][0]
    assert updated['title'] == 'original'
    assert updated['deletedAt'] == '2024-01-02T00:00:00Z'


@pytest.mark.asyncio
async def test_sync_requires_login(ensure_db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        assert (await ac.get('/sync/status')).status_code == 401
        assert (await ac.get('/sync/tasks')).status_code == 401
        assert (await ac.post('/sync/tasks/bulk', json={})).status_code == 401

        ac.headers.update({'Authorization': 'Bearer not-a-token'})
        assert (await ac.get('/sync/status')).status_code == 401


@pytest.mark.asyncio
async def test_token_login(ensure_db):
    username = f'login-{uuid.uuid4().hex[:8]}'
    await create_user(username, 'secret')
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        bad = await ac.post('/auth/token', json={'username': username, 'password': 'wrong'})
        assert bad.status_code == 401
        good = await ac.post('/auth/token', json={'username': username, 'password': 'secret'})
        assert good.status_code == 200
        assert good.json()['token_type'] == 'bearer'


@pytest.mark.asyncio
async def test_users_do_not_see_each_others_records(client, ensure_db):
    await client.post('/sync/site-blocks/bulk', json={'creates': [{'url': 'https://www.youtube.com'}]})

    username = f'other-{uuid.uuid4().hex[:8]}'
    await create_user(username, 'pw')
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        token = (await ac.post('/auth/token', json={'username': username, 'password': 'pw'})).json()['access_token']
        ac.headers.update({'Authorization': f'Bearer {token}'})
        assert (await ac.get('/sync/site-blocks')).json()['items'] == []

    items = (await client.get('/sync/site-blocks')).json()['items']
    assert [i['url'] for i in items] == ['youtube.com']
