"""
Tests for the JSON error envelope
"""
import pytest
from httpx import AsyncClient

import task_routes
from conftest import DEADLINE
from exceptions import LogUpdateError

TASKS_URL = '/api/projectManagerData/taskManagementData'


@pytest.mark.asyncio
async def test_unknown_path_uses_envelope(client: AsyncClient):
    response = await client.get('/api/doesNotExist')

    assert response.status_code == 404
    assert response.json() == {'success': False, 'message': 'Not Found'}


@pytest.mark.asyncio
async def test_wrong_method_uses_envelope(client: AsyncClient):
    response = await client.get('/api/auth/logout')

    assert response.status_code == 405
    assert response.json() == {'success': False, 'message': 'Method Not Allowed'}
    assert 'POST' in response.headers['allow']


@pytest.mark.asyncio
async def test_validation_error_is_400(client: AsyncClient):
    response = await client.post('/api/userData/login_user', json={'email': 'nobody'})

    assert response.status_code == 400
    body = response.json()
    assert body['success'] is False
    assert body['message'].startswith('Validation Error:')


@pytest.mark.asyncio
async def test_log_update_failure_hides_internal_ids(client: AsyncClient, workspace, headers, monkeypatch):
    def failing_create_task(db, log, project, **kwargs):
        raise LogUpdateError(log['AssignProjectId'], 'Task-00042')

    monkeypatch.setattr(task_routes, 'create_task', failing_create_task)

    response = await client.post(f"{TASKS_URL}/createTask/{workspace['project']['ProjectId']}", json={
        'teamId': workspace['team']['teamId'],
        'title': 'Build checkout flow',
        'description': 'Cart, payment and confirmation pages',
        'deadline': DEADLINE,
    }, headers=headers(workspace['pm']))

    assert response.status_code == 500
    assert response.json() == {'success': False, 'message': 'Internal server error.'}
    assert 'Task-00042' not in response.text
