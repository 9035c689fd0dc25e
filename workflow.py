"""
Task and subtask lifecycle.

Both work items share one state machine:

    Pending ------submit-----> In Progress ---approve---> Completed
    Re Assigned --resubmit---> In Progress
    In Progress | Completed --send back--> Re Assigned

Tasks are approved by the Project Manager, subtasks by the team leader.
Every transition is written with the expected current status in the filter,
so a concurrent change makes the write miss instead of overwriting it.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.database import Database

from database import ASSIGNED_PROJECT_LOGS, PROJECTS, SUBTASKS, TASKS, create_document, next_id, utcnow
from exceptions import InvalidTransitionError, LogUpdateError
from logging_config import logger
from schemas import ASSIGN_ALL, NOT_SUBMITTED, AssignedProjectLog, Subtask, Task

PENDING = "Pending"
IN_PROGRESS = "In Progress"
COMPLETED = "Completed"
RE_ASSIGNED = "Re Assigned"

# target status -> statuses it may be reached from
TRANSITIONS: Dict[str, frozenset] = {
    IN_PROGRESS: frozenset({PENDING, RE_ASSIGNED}),
    COMPLETED: frozenset({IN_PROGRESS}),
    RE_ASSIGNED: frozenset({IN_PROGRESS, COMPLETED}),
}


@dataclass(frozen=True)
class WorkKind:
    label: str
    collection: str
    id_field: str
    submitter_field: str


TASK = WorkKind("Task", TASKS, "TaskId", "submittedby")
SUBTASK = WorkKind("Subtask", SUBTASKS, "SubtaskId", "submittedBy")


def can_transition(current: str, target: str) -> bool:
    return current in TRANSITIONS.get(target, frozenset())


def ensure_transition(kind: WorkKind, current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(kind.label, current, target)


def _transition(db: Database, kind: WorkKind, doc: Dict[str, Any], target: str,
                fields: Dict[str, Any]) -> Dict[str, Any]:
    current = doc.get("status")
    ensure_transition(kind, current, target)
    updated = db[kind.collection].find_one_and_update(
        {kind.id_field: doc[kind.id_field], "status": current},
        {"$set": {**fields, "status": target, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        latest = db[kind.collection].find_one({kind.id_field: doc[kind.id_field]})
        if latest is None:
            raise HTTPException(status_code=404, detail=f"{kind.label} not found.")
        raise InvalidTransitionError(kind.label, latest.get("status"), target)
    logger.info(f"{kind.label} {doc[kind.id_field]}: {current} -> {target}")
    return updated


def submit(db: Database, kind: WorkKind, doc: Dict[str, Any], git_hub_url: str,
           context: Optional[str], submitted_by: str) -> Dict[str, Any]:
    return _transition(db, kind, doc, IN_PROGRESS, {
        "gitHubUrl": git_hub_url,
        "context": context or "",
        kind.submitter_field: submitted_by,
    })


def approve(db: Database, kind: WorkKind, doc: Dict[str, Any]) -> Dict[str, Any]:
    return _transition(db, kind, doc, COMPLETED, {})


def send_back(db: Database, kind: WorkKind, doc: Dict[str, Any], feedback: str) -> Dict[str, Any]:
    """Return submitted work to the assignee; the feedback replaces the submission context."""
    return _transition(db, kind, doc, RE_ASSIGNED, {
        "gitHubUrl": None,
        "context": feedback,
        kind.submitter_field: NOT_SUBMITTED,
    })


def resolve_task_assignees(team: Dict[str, Any], assigned_to: List[str]) -> List[str]:
    """An empty selection means the whole team."""
    members = list(team.get("members") or [])
    if not assigned_to:
        return members
    outsiders = [uid for uid in assigned_to if uid not in members]
    if outsiders:
        raise HTTPException(
            status_code=400,
            detail=f"Bad Request: Assigned user(s) not part of this team: {', '.join(outsiders)}",
        )
    return list(dict.fromkeys(assigned_to))


def resolve_subtask_assignees(team: Dict[str, Any], assigned_to: str) -> List[str]:
    leaders = set(team.get("teamLeader") or [])
    members = [uid for uid in (team.get("members") or []) if uid not in leaders]
    if assigned_to == ASSIGN_ALL:
        if not members:
            raise HTTPException(status_code=400, detail="Bad Request: Team has no members to assign.")
        return members
    if assigned_to not in members:
        raise HTTPException(status_code=400, detail="Bad Request: Assigned user is not part of this team.")
    return [assigned_to]


def _rollback(db: Database, kind: WorkKind, item_id: str) -> None:
    """Delete a just-inserted item; a failure here is logged so the caller's error still propagates."""
    try:
        db[kind.collection].delete_one({kind.id_field: item_id})
    except Exception:
        logger.critical(f"Rollback of {kind.label.lower()} {item_id} failed; it is now orphaned", exc_info=True)


def create_task(db: Database, log: Dict[str, Any], project: Dict[str, Any], *, title: str,
                description: str, deadline: datetime, assigned_to: List[str]) -> Dict[str, Any]:
    """Insert a task under ``log`` and record it there.

    If the log no longer accepts the id the task is deleted again before the
    error propagates, so no task exists outside every log's ``tasksIds``.
    """
    task = create_document(db, TASKS, Task(
        TaskId=next_id(db, "Task"),
        title=title,
        description=description,
        projectId=log["projectId"],
        teamId=log["teamId"],
        assignedTo=assigned_to,
        deadline=deadline,
    ))
    try:
        result = db[ASSIGNED_PROJECT_LOGS].update_one(
            {"AssignProjectId": log["AssignProjectId"]},
            {"$push": {"tasksIds": task["TaskId"]}, "$set": {"updatedAt": utcnow()}},
        )
        if result.matched_count == 0:
            raise LogUpdateError(log["AssignProjectId"], task["TaskId"])
    except Exception:
        logger.error(f"Rolling back task {task['TaskId']} after assignment log update failed", exc_info=True)
        _rollback(db, TASK, task["TaskId"])
        raise

    if project.get("status") == PENDING:
        db[PROJECTS].update_one(
            {"ProjectId": project["ProjectId"], "status": PENDING},
            {"$set": {"status": IN_PROGRESS, "updatedAt": utcnow()}},
        )
    return task


def create_subtask(db: Database, parent: Dict[str, Any], *, title: str, description: str,
                   deadline: datetime, assigned_to: List[str]) -> Dict[str, Any]:
    """Insert a subtask and append it to the parent's ``subTasks``, undoing the insert on failure."""
    subtask = create_document(db, SUBTASKS, Subtask(
        SubtaskId=next_id(db, "Subtask"),
        parentTaskId=parent["TaskId"],
        title=title,
        description=description,
        assignedTo=assigned_to,
        deadline=deadline,
    ))
    try:
        result = db[TASKS].update_one(
            {"TaskId": parent["TaskId"]},
            {"$push": {"subTasks": subtask["SubtaskId"]}, "$set": {"updatedAt": utcnow()}},
        )
        if result.matched_count == 0:
            raise LogUpdateError(parent["TaskId"], subtask["SubtaskId"])
    except Exception:
        logger.error(f"Rolling back subtask {subtask['SubtaskId']} after parent task update failed", exc_info=True)
        _rollback(db, SUBTASK, subtask["SubtaskId"])
        raise
    return subtask


def assign_project(db: Database, project: Dict[str, Any], team: Dict[str, Any], deadline: datetime,
                   assigned_by: str) -> Dict[str, Any]:
    """Link a project to a team through a new assignment log."""
    if db[ASSIGNED_PROJECT_LOGS].find_one({"projectId": project["ProjectId"]}):
        raise HTTPException(status_code=400, detail="Bad Request: Project is already assigned to a team.")
    log = create_document(db, ASSIGNED_PROJECT_LOGS, AssignedProjectLog(
        AssignProjectId=next_id(db, "AssignProject"),
        projectId=project["ProjectId"],
        teamId=team["teamId"],
        assignedBy=assigned_by,
        deadline=deadline,
    ))
    logger.info(f"Assigned project {project['ProjectId']} to team {team['teamId']} ({log['AssignProjectId']})")
    return log
