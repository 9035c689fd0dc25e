"""
Tests for accounts, tokens and role checks
"""
import pytest
from httpx import AsyncClient

from conftest import PASSWORD
from security import decode_token


@pytest.mark.asyncio
async def test_register_user(client: AsyncClient, db):
    response = await client.post('/api/userData/register_user', json={
        'firstname': 'Grace',
        'lastname': 'Hopper',
        'email': 'Grace.Hopper@acme.io',
        'password': 'cobol-forever',
    })

    assert response.status_code == 201
    data = response.json()
    assert data['success'] is True
    assert data['user']['UserId'].startswith('User-')
    assert data['user']['email'] == 'grace.hopper@acme.io'
    assert data['user']['userType'] == 'User'
    assert 'password' not in data['user']
    assert db['users'].count_documents({}) == 1


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient, seed):
    user = seed.user()

    response = await client.post('/api/userData/register_user', json={
        'firstname': 'Copy',
        'lastname': 'Cat',
        'email': user['email'].upper(),
        'password': 'another-password',
    })

    assert response.status_code == 409
    assert response.json() == {'success': False, 'message': 'Email is already registered.'}


@pytest.mark.asyncio
async def test_register_validation_error(client: AsyncClient):
    response = await client.post('/api/userData/register_user', json={
        'firstname': 'Short',
        'lastname': 'Password',
        'email': 'short@acme.io',
        'password': 'abc',
    })

    assert response.status_code == 400
    data = response.json()
    assert data['success'] is False
    assert data['message'].startswith('Validation Error:')
    assert 'password' in data['message']


@pytest.mark.asyncio
async def test_login_derives_team_roles(client: AsyncClient, workspace):
    leader = workspace['leader']

    response = await client.post('/api/userData/login_user', json={
        'email': leader['email'],
        'password': PASSWORD,
    })

    assert response.status_code == 200
    data = response.json()
    claims = decode_token(data['token'])
    assert claims['UserId'] == leader['UserId']
    assert claims['userType'] == 'User'
    assert claims['userRoles'] == ['TeamLeader']
    assert 'token=' in response.headers['set-cookie']


@pytest.mark.asyncio
async def test_login_member_role(client: AsyncClient, workspace):
    member = workspace['members'][0]

    response = await client.post('/api/userData/login_user', json={
        'email': member['email'],
        'password': PASSWORD,
    })

    assert response.status_code == 200
    assert decode_token(response.json()['token'])['userRoles'] == ['TeamMember']


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, seed):
    user = seed.user()

    response = await client.post('/api/userData/login_user', json={
        'email': user['email'],
        'password': 'not-the-password',
    })

    assert response.status_code == 401
    assert response.json()['message'] == 'Invalid email or password.'


@pytest.mark.asyncio
async def test_admin_register_and_login(client: AsyncClient):
    payload = {'firstname': 'Root', 'lastname': 'Admin', 'email': 'root@acme.io', 'password': 'supersecret'}
    response = await client.post('/api/adminData/register_admin', json=payload)
    assert response.status_code == 201
    assert response.json()['admin']['AdminId'] == 'Admin-00001'

    response = await client.post('/api/adminData/login_admin', json={
        'email': 'root@acme.io',
        'password': 'supersecret',
    })
    assert response.status_code == 200
    claims = decode_token(response.json()['token'])
    assert claims['UserId'] == 'Admin-00001'
    assert claims['userType'] == 'Admin'


@pytest.mark.asyncio
async def test_user_status_requires_token(client: AsyncClient):
    response = await client.get('/api/auth/UserStatus')

    assert response.status_code == 401
    assert response.json() == {'success': False, 'message': 'Unauthorized: No token provided.'}


@pytest.mark.asyncio
async def test_user_status_from_cookie(client: AsyncClient, seed, headers):
    user = seed.user('ProjectManager')
    token = headers(user)['Authorization'].split(' ', 1)[1]

    response = await client.get('/api/auth/UserStatus', headers={'Cookie': f'token={token}'})

    assert response.status_code == 200
    status = response.json()['user']
    assert status['UserId'] == user['UserId']
    assert status['userType'] == 'ProjectManager'
    assert 'exp' not in status


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient):
    response = await client.get('/api/auth/UserStatus', headers={'Authorization': 'Bearer not-a-jwt'})

    assert response.status_code == 401
    assert response.json()['message'] == 'Unauthorized: Invalid or expired token.'


@pytest.mark.asyncio
async def test_wrong_user_type_is_forbidden(client: AsyncClient, seed, headers):
    user = seed.user()

    response = await client.get(
        '/api/projectManagerData/projectManagementData/getProjects',
        headers=headers(user),
    )

    assert response.status_code == 403
    assert response.json()['message'] == 'Forbidden: ProjectManager access required.'


@pytest.mark.asyncio
async def test_admin_routes_reject_project_manager(client: AsyncClient, seed, headers):
    pm = seed.user('ProjectManager')

    response = await client.get('/api/adminData/getAllUsers', headers=headers(pm))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_logout_clears_cookie(client: AsyncClient):
    response = await client.post('/api/auth/logout')

    assert response.status_code == 200
    assert 'token=' in response.headers['set-cookie']
