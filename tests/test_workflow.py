"""
Tests for the shared task/subtask state machine and creation rollback
"""
import mongomock
import pytest
from httpx import AsyncClient

import workflow
from exceptions import InvalidTransitionError, LogUpdateError
from workflow import (
    COMPLETED,
    IN_PROGRESS,
    PENDING,
    RE_ASSIGNED,
    SUBTASK,
    TASK,
    create_subtask,
    create_task,
    ensure_transition,
)

TASKS_URL = '/api/projectManagerData/taskManagementData'

ALLOWED = {
    (PENDING, IN_PROGRESS),
    (RE_ASSIGNED, IN_PROGRESS),
    (IN_PROGRESS, COMPLETED),
    (IN_PROGRESS, RE_ASSIGNED),
    (COMPLETED, RE_ASSIGNED),
}
STATUSES = [PENDING, IN_PROGRESS, COMPLETED, RE_ASSIGNED]
TARGETS = [IN_PROGRESS, COMPLETED, RE_ASSIGNED]
REJECTED = [(current, target) for current in STATUSES for target in TARGETS if (current, target) not in ALLOWED]


@pytest.mark.parametrize('kind', [TASK, SUBTASK], ids=['task', 'subtask'])
@pytest.mark.parametrize('current,target', sorted(ALLOWED))
def test_allowed_transitions(kind, current, target):
    ensure_transition(kind, current, target)


@pytest.mark.parametrize('kind', [TASK, SUBTASK], ids=['task', 'subtask'])
@pytest.mark.parametrize('current,target', REJECTED)
def test_rejected_transitions(kind, current, target):
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_transition(kind, current, target)

    error = exc_info.value
    assert error.status_code == 400
    assert f"Current status: {current}" in error.message
    assert error.details == {'currentStatus': current, 'requestedStatus': target}


def test_every_rejected_edge_is_covered():
    assert len(REJECTED) == 7
    assert (RE_ASSIGNED, COMPLETED) in REJECTED
    assert (COMPLETED, COMPLETED) in REJECTED
    assert (IN_PROGRESS, IN_PROGRESS) in REJECTED


@pytest.mark.asyncio
async def test_completing_reassigned_task_leaves_it_untouched(client: AsyncClient, db, seed, workspace, headers):
    task = seed.task(workspace['log'], workspace['project'])
    db['tasks'].update_one({'TaskId': task['TaskId']}, {'$set': {'status': RE_ASSIGNED, 'context': 'Fix tests'}})

    response = await client.put(f"{TASKS_URL}/markTaskCompleted/{task['TaskId']}", headers=headers(workspace['pm']))

    assert response.status_code == 400
    assert response.json()['details'] == {'currentStatus': RE_ASSIGNED, 'requestedStatus': COMPLETED}
    stored = db['tasks'].find_one({'TaskId': task['TaskId']})
    assert stored['status'] == RE_ASSIGNED
    assert stored['context'] == 'Fix tests'


def test_failed_parent_update_removes_subtask(db, seed, workspace):
    task = seed.task(workspace['log'], workspace['project'])
    stale_parent = {**task, 'TaskId': 'Task-99999'}

    with pytest.raises(LogUpdateError):
        create_subtask(
            db, stale_parent,
            title='Orphan', description='Never recorded on a parent',
            deadline=workspace['log']['deadline'], assigned_to=[workspace['members'][0]['UserId']],
        )

    assert db['subtasks'].count_documents({}) == 0
    assert db['tasks'].find_one({'TaskId': task['TaskId']})['subTasks'] == []


def test_failed_rollback_keeps_original_error(db, workspace, monkeypatch):
    stale_log = {**workspace['log'], 'AssignProjectId': 'AssignProject-99999'}
    critical = []

    def unavailable(self, *args, **kwargs):
        raise RuntimeError('store unavailable')

    monkeypatch.setattr(mongomock.collection.Collection, 'delete_one', unavailable)
    monkeypatch.setattr(workflow.logger, 'critical', lambda msg, *args, **kwargs: critical.append(msg))

    with pytest.raises(LogUpdateError):
        create_task(
            db, stale_log, workspace['project'],
            title='Orphan', description='Never recorded', deadline=workspace['log']['deadline'],
            assigned_to=[],
        )

    assert len(critical) == 1
    assert 'Task-00001' in critical[0]
    # The orphan stays behind and is reported rather than silently lost
    assert db['tasks'].count_documents({'TaskId': 'Task-00001'}) == 1
