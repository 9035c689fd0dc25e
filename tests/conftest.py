"""
Task Management API - Test Configuration and Fixtures
"""
import os
from typing import Any, AsyncGenerator, Dict, List, Optional

import mongomock
import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['LOG_LEVEL'] = 'WARNING'

from main import app
from database import (
    ADMINS,
    ASSIGNED_PROJECT_LOGS,
    PROJECTS,
    TEAMS,
    USERS,
    create_document,
    get_db,
    next_id,
)
from security import create_access_token, get_password_hash
from workflow import create_subtask, create_task

fake = Faker()

PASSWORD = 'password123'
DEADLINE = '2030-06-30T12:00:00Z'


class Seeder:
    """Writes fixture documents straight into the test database"""

    def __init__(self, db):
        self.db = db
        self._password_hash = get_password_hash(PASSWORD)

    def user(self, user_type: str = 'User') -> Dict[str, Any]:
        user_id = next_id(self.db, 'User')
        first = fake.first_name()
        return create_document(self.db, USERS, {
            'UserId': user_id,
            'firstname': first,
            'lastname': fake.last_name(),
            'email': f"{''.join(c for c in first.lower() if c.isalnum())}.{user_id.lower()}@acme.io",
            'password': self._password_hash,
            'contact': '',
            'profilepic': '/default-profile.png',
            'userType': user_type,
        })

    def admin(self, email: str = 'admin@acme.io') -> Dict[str, Any]:
        return create_document(self.db, ADMINS, {
            'AdminId': next_id(self.db, 'Admin'),
            'firstname': 'Ada',
            'lastname': 'Admin',
            'email': email,
            'password': self._password_hash,
            'userType': 'Admin',
            'isVerified': True,
        })

    def project(self, pm: Dict[str, Any], status: str = 'Pending') -> Dict[str, Any]:
        return create_document(self.db, PROJECTS, {
            'ProjectId': next_id(self.db, 'Project'),
            'title': fake.catch_phrase(),
            'description': fake.sentence(),
            'createdBy': pm['UserId'],
            'status': status,
        })

    def team(self, pm: Dict[str, Any], leader: Dict[str, Any], members: List[Dict[str, Any]]) -> Dict[str, Any]:
        return create_document(self.db, TEAMS, {
            'teamId': next_id(self.db, 'Team'),
            'teamName': fake.color_name(),
            'teamLeader': [leader['UserId']],
            'members': [m['UserId'] for m in members],
            'createdBy': pm['UserId'],
        })

    def assignment(self, project: Dict[str, Any], team: Dict[str, Any], pm: Dict[str, Any]) -> Dict[str, Any]:
        return create_document(self.db, ASSIGNED_PROJECT_LOGS, {
            'AssignProjectId': next_id(self.db, 'AssignProject'),
            'projectId': project['ProjectId'],
            'teamId': team['teamId'],
            'assignedBy': pm['UserId'],
            'deadline': fake.future_datetime(),
            'tasksIds': [],
        })

    def task(self, log: Dict[str, Any], project: Dict[str, Any],
             assigned_to: Optional[List[str]] = None) -> Dict[str, Any]:
        return create_task(
            self.db, log, project,
            title=fake.bs(), description=fake.sentence(),
            deadline=fake.future_datetime(), assigned_to=assigned_to or [],
        )

    def subtask(self, parent: Dict[str, Any], assigned_to: List[str]) -> Dict[str, Any]:
        return create_subtask(
            self.db, parent,
            title=fake.bs(), description=fake.sentence(nb_words=8),
            deadline=fake.future_datetime(), assigned_to=assigned_to,
        )

    def workspace(self, member_count: int = 3) -> Dict[str, Any]:
        """A PM with a project assigned to a team of one leader and ``member_count`` members"""
        pm = self.user('ProjectManager')
        leader = self.user()
        members = [self.user() for _ in range(member_count)]
        project = self.project(pm)
        team = self.team(pm, leader, members)
        log = self.assignment(project, team, pm)
        return {'pm': pm, 'leader': leader, 'members': members,
                'project': project, 'team': team, 'log': log}


def auth_headers(user: Dict[str, Any], roles: Optional[List[str]] = None) -> Dict[str, str]:
    """Bearer header for a seeded user or admin"""
    token_data = {
        'UserId': user.get('UserId') or user['AdminId'],
        'email': user['email'],
        'userType': user['userType'],
    }
    if roles is not None:
        token_data['userRoles'] = roles
    return {'Authorization': f"Bearer {create_access_token(token_data)}"}


@pytest.fixture
def db():
    """Fresh in-memory database per test"""
    return mongomock.MongoClient()['taskmanagement_test']


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def headers():
    return auth_headers


@pytest.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    app.dependency_overrides[get_db] = lambda: db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def workspace(seed: Seeder) -> Dict[str, Any]:
    return seed.workspace()
