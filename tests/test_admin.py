"""
Tests for the admin area
"""
import pytest
from httpx import AsyncClient

from conftest import PASSWORD
from security import verify_password

ADMIN_URL = '/api/adminData'


@pytest.mark.asyncio
async def test_listings(client: AsyncClient, seed, workspace, headers):
    admin = seed.admin()
    loner = seed.user()

    response = await client.get(f"{ADMIN_URL}/getAllUsers", headers=headers(admin))
    assert [u['UserId'] for u in response.json()['users']] == [loner['UserId']]

    response = await client.get(f"{ADMIN_URL}/getAllProjectManagers", headers=headers(admin))
    assert [u['UserId'] for u in response.json()['projectManagers']] == [workspace['pm']['UserId']]

    response = await client.get(f"{ADMIN_URL}/getAllTeamParticipants", headers=headers(admin))
    participants = {u['UserId'] for u in response.json()['participants']}
    assert participants == {workspace['leader']['UserId']} | {m['UserId'] for m in workspace['members']}


@pytest.mark.asyncio
async def test_project_manager_details(client: AsyncClient, seed, workspace, headers):
    admin = seed.admin()
    loose = seed.project(workspace['pm'])

    response = await client.get(f"{ADMIN_URL}/ProjectManagerDetails/{workspace['pm']['UserId']}",
                                headers=headers(admin))

    assert response.status_code == 200
    data = response.json()
    assert [t['teamId'] for t in data['createdTeams']] == [workspace['team']['teamId']]
    assert [p['ProjectId'] for p in data['assignedProjects']] == [workspace['project']['ProjectId']]
    assert [p['ProjectId'] for p in data['unassignedProjects']] == [loose['ProjectId']]


@pytest.mark.asyncio
async def test_project_manager_details_for_plain_user(client: AsyncClient, seed, headers):
    admin = seed.admin()
    user = seed.user()

    response = await client.get(f"{ADMIN_URL}/ProjectManagerDetails/{user['UserId']}", headers=headers(admin))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_project_tasks_details(client: AsyncClient, seed, workspace, headers):
    admin = seed.admin()
    task = seed.task(workspace['log'], workspace['project'])
    seed.subtask(task, [workspace['members'][0]['UserId']])

    response = await client.get(f"{ADMIN_URL}/ProjectTasksDetails/{workspace['project']['ProjectId']}",
                                headers=headers(admin))

    data = response.json()
    assert data['team']['teamId'] == workspace['team']['teamId']
    assert [t['TaskId'] for t in data['tasks']] == [task['TaskId']]
    assert len(data['tasks'][0]['subtasks']) == 1


@pytest.mark.asyncio
async def test_edit_user_promotes_to_project_manager(client: AsyncClient, db, seed, headers):
    admin = seed.admin()
    user = seed.user()

    response = await client.put(f"{ADMIN_URL}/editUser/{user['UserId']}", json={
        'userType': 'ProjectManager',
        'password': 'brand-new-password',
    }, headers=headers(admin))

    assert response.status_code == 200
    stored = db['users'].find_one({'UserId': user['UserId']})
    assert stored['userType'] == 'ProjectManager'
    assert verify_password('brand-new-password', stored['password'])
    assert 'password' not in response.json()['user']


@pytest.mark.asyncio
async def test_edit_user_cannot_promote_team_member(client: AsyncClient, seed, workspace, headers):
    admin = seed.admin()

    response = await client.put(f"{ADMIN_URL}/editUser/{workspace['members'][0]['UserId']}", json={
        'userType': 'ProjectManager',
    }, headers=headers(admin))

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_update_users_reports_partial_failure(client: AsyncClient, db, seed, headers):
    admin = seed.admin()
    user = seed.user()

    response = await client.put(f"{ADMIN_URL}/updateUsers", json={'users': [
        {'UserId': user['UserId'], 'contact': '+44 20 7946 0000'},
        {'UserId': 'User-99999', 'firstname': 'Ghost'},
        {'firstname': 'Nameless'},
    ]}, headers=headers(admin))

    assert response.status_code == 207
    data = response.json()
    assert data['successfulCount'] == 1
    assert data['failedCount'] == 2
    assert [d['message'] for d in data['details']] == [
        'User updated', 'User not found', 'Missing or invalid user ID',
    ]
    assert db['users'].find_one({'UserId': user['UserId']})['contact'] == '+44 20 7946 0000'


@pytest.mark.asyncio
async def test_participant_details_split_led_and_joined(client: AsyncClient, seed, workspace, headers):
    admin = seed.admin()
    leader = workspace['leader']
    other_team = seed.team(workspace['pm'], workspace['members'][0], [leader, workspace['members'][1]])

    response = await client.get(f"{ADMIN_URL}/ParticipantDetails/{leader['UserId']}", headers=headers(admin))

    assert response.status_code == 200
    data = response.json()
    assert 'password' not in data['user']
    assert [t['teamId'] for t in data['teamsLed']] == [workspace['team']['teamId']]
    assert [t['teamId'] for t in data['teamsMemberOf']] == [other_team['teamId']]
    assert set(data['teamsMemberOf'][0]) == {'teamId', 'teamName', 'members', 'teamLeader'}


@pytest.mark.asyncio
async def test_participant_details_unknown_user(client: AsyncClient, seed, headers):
    admin = seed.admin()

    response = await client.get(f"{ADMIN_URL}/ParticipantDetails/User-99999", headers=headers(admin))

    assert response.status_code == 404
    assert response.json()['success'] is False


@pytest.mark.asyncio
async def test_get_users_by_id(client: AsyncClient, seed, headers):
    admin = seed.admin()
    first, second, _ = seed.user(), seed.user(), seed.user()

    response = await client.post(f"{ADMIN_URL}/getUsersById", json={
        'ids': [first['UserId'], second['UserId'], 'User-99999'],
    }, headers=headers(admin))
    assert response.status_code == 200
    assert sorted(u['UserId'] for u in response.json()['users']) == [first['UserId'], second['UserId']]

    response = await client.post(f"{ADMIN_URL}/getUsersById", json={'ids': []}, headers=headers(admin))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_updates_own_profile(client: AsyncClient, db, seed, headers):
    admin = seed.admin()

    response = await client.put(f"{ADMIN_URL}/profile/update-info", json={
        'firstname': '  Augusta ',
        'contact': '+44 20 7946 0001',
    }, headers=headers(admin))

    assert response.status_code == 200
    assert response.json()['user']['firstname'] == 'Augusta'
    assert 'password' not in response.json()['user']
    stored = db['admins'].find_one({'AdminId': admin['AdminId']})
    assert stored['contact'] == '+44 20 7946 0001'
    assert stored['lastname'] == 'Admin'


@pytest.mark.asyncio
async def test_admin_profile_update_rejects_blank_or_empty(client: AsyncClient, seed, headers):
    admin = seed.admin()

    response = await client.put(f"{ADMIN_URL}/profile/update-info", json={}, headers=headers(admin))
    assert response.status_code == 400

    response = await client.put(f"{ADMIN_URL}/profile/update-info", json={'lastname': '   '}, headers=headers(admin))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_changes_password(client: AsyncClient, db, seed, headers):
    admin = seed.admin()

    response = await client.put(f"{ADMIN_URL}/profile/change-password", json={
        'currentPassword': 'wrong-password',
        'newPassword': 'fresh-secret',
    }, headers=headers(admin))
    assert response.status_code == 401

    response = await client.put(f"{ADMIN_URL}/profile/change-password", json={
        'currentPassword': PASSWORD,
        'newPassword': PASSWORD,
    }, headers=headers(admin))
    assert response.status_code == 400

    response = await client.put(f"{ADMIN_URL}/profile/change-password", json={
        'currentPassword': PASSWORD,
        'newPassword': 'fresh-secret',
    }, headers=headers(admin))
    assert response.status_code == 200
    assert verify_password('fresh-secret', db['admins'].find_one({'AdminId': admin['AdminId']})['password'])


@pytest.mark.asyncio
async def test_profile_routes_require_admin(client: AsyncClient, seed, headers):
    user = seed.user()

    response = await client.put(f"{ADMIN_URL}/profile/update-info", json={'firstname': 'Eve'}, headers=headers(user))

    assert response.status_code == 403
