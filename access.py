"""
Ownership resolution.

Nothing in the store links a task to its team directly, so "may this user
act on this task" is answered by walking the string-id references:
subtask -> parent task -> assignment log -> team -> leader/members.
Each helper raises ``HTTPException`` with the status the route should answer.
"""
from typing import Any, Dict, List, Optional, Set, Tuple

from fastapi import HTTPException
from pymongo.database import Database

from database import ASSIGNED_PROJECT_LOGS, PROJECTS, SUBTASKS, TASKS, TEAMS, USERS

Document = Dict[str, Any]


def get_project_or_404(db: Database, project_id: str) -> Document:
    project = db[PROJECTS].find_one({"ProjectId": project_id})
    if not project:
        raise HTTPException(status_code=404, detail=f"Not Found: Project {project_id} not found.")
    return project


def get_team_or_404(db: Database, team_id: str) -> Document:
    team = db[TEAMS].find_one({"teamId": team_id})
    if not team:
        raise HTTPException(status_code=404, detail="Team not found.")
    return team


def get_task_or_404(db: Database, task_id: str) -> Document:
    task = db[TASKS].find_one({"TaskId": task_id})
    if not task:
        raise HTTPException(status_code=404, detail="Not Found: Task not found.")
    return task


def get_subtask_or_404(db: Database, subtask_id: str) -> Document:
    subtask = db[SUBTASKS].find_one({"SubtaskId": subtask_id})
    if not subtask:
        raise HTTPException(status_code=404, detail="Subtask not found.")
    return subtask


def get_owned_project(db: Database, project_id: str, user_id: str) -> Document:
    project = get_project_or_404(db, project_id)
    if project.get("createdBy") != user_id:
        raise HTTPException(status_code=403, detail="You are not authorized to modify this project.")
    return project


def log_for_task(db: Database, task_id: str) -> Document:
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"tasksIds": task_id})
    if not log:
        raise HTTPException(status_code=404, detail="Assignment log not found.")
    return log


def team_for_task(db: Database, task_id: str) -> Tuple[Document, Document]:
    """Return the (log, team) pair that owns ``task_id``."""
    log = log_for_task(db, task_id)
    team = get_team_or_404(db, log["teamId"])
    return log, team


def is_leader(team: Document, user_id: str) -> bool:
    return user_id in (team.get("teamLeader") or [])


def is_member(team: Document, user_id: str) -> bool:
    return user_id in (team.get("members") or [])


def ensure_leader(team: Document, user_id: str) -> None:
    if not is_leader(team, user_id):
        raise HTTPException(status_code=403, detail="Forbidden: Not team leader.")


def ensure_member(team: Document, user_id: str) -> None:
    if not is_member(team, user_id):
        raise HTTPException(status_code=403, detail="Forbidden: You are not a member of the assigned team.")


def ensure_task_leader(db: Database, task_id: str, user_id: str) -> Tuple[Document, Document, Document]:
    """Task, log and team for a task the caller leads."""
    task = get_task_or_404(db, task_id)
    log, team = team_for_task(db, task_id)
    ensure_leader(team, user_id)
    return task, log, team


def ensure_subtask_leader(db: Database, subtask_id: str, user_id: str) -> Tuple[Document, Document, Document]:
    """Subtask, parent task and team for a subtask whose team the caller leads."""
    subtask = get_subtask_or_404(db, subtask_id)
    parent = db[TASKS].find_one({"TaskId": subtask["parentTaskId"]})
    if not parent:
        raise HTTPException(status_code=404, detail="Parent task not found.")
    _, team = team_for_task(db, parent["TaskId"])
    ensure_leader(team, user_id)
    return subtask, parent, team


def ensure_log_author(db: Database, task_id: str, user_id: str) -> Document:
    """The assignment log holding ``task_id``, which the caller must have authored."""
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"tasksIds": task_id})
    if not log or log.get("assignedBy") != user_id:
        raise HTTPException(status_code=403, detail="Forbidden: You are not authorized to update this task.")
    return log


def get_user_or_404(db: Database, user_id: str, user_type: Optional[str] = None) -> Document:
    query: Dict[str, Any] = {"UserId": user_id}
    if user_type:
        query["userType"] = user_type
    user = db[USERS].find_one(query)
    if not user:
        raise HTTPException(status_code=404, detail=f"Not Found: User {user_id} not found.")
    return user


def team_participant_ids(db: Database) -> Set[str]:
    """Every UserId that leads or belongs to some team."""
    ids: Set[str] = set()
    for team in db[TEAMS].find({}, {"teamLeader": 1, "members": 1}):
        ids.update(team.get("teamLeader") or [])
        ids.update(team.get("members") or [])
    return ids


def logs_by_project(db: Database, project_ids: List[str]) -> Dict[str, Document]:
    """Assignment log per project; a project is assigned to at most one team."""
    if not project_ids:
        return {}
    return {log["projectId"]: log for log in db[ASSIGNED_PROJECT_LOGS].find({"projectId": {"$in": project_ids}})}


def get_owned_team(db: Database, team_id: str, user_id: str) -> Document:
    team = get_team_or_404(db, team_id)
    if team.get("createdBy") != user_id:
        raise HTTPException(status_code=403, detail="Forbidden: You did not create this team.")
    return team


def ensure_all_owned(db: Database, collection: str, id_field: str, ids: List[str], user_id: str) -> None:
    """403 unless every id in ``ids`` exists and was created by ``user_id``."""
    owned = {
        doc[id_field]
        for doc in db[collection].find({id_field: {"$in": ids}, "createdBy": user_id}, {id_field: 1})
    }
    missing = [i for i in ids if i not in owned]
    if missing:
        raise HTTPException(
            status_code=403,
            detail=f"Forbidden: You are not authorized to modify: {', '.join(missing)}",
        )


PUBLIC_USER_FIELDS = {"_id": 0, "UserId": 1, "firstname": 1, "lastname": 1, "email": 1, "profilepic": 1}


def public_users(db: Database, user_ids: List[str]) -> List[Document]:
    """Name, email and picture of each user in ``user_ids``; unknown ids are skipped."""
    if not user_ids:
        return []
    return list(db[USERS].find({"UserId": {"$in": list(user_ids)}}, PUBLIC_USER_FIELDS))
