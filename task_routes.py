from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from access import (
    ensure_log_author,
    get_owned_project,
    get_project_or_404,
    get_task_or_404,
    get_team_or_404,
    public_users,
)
from cascade import delete_tasks
from database import ASSIGNED_PROJECT_LOGS, PROJECTS, SUBTASKS, TASKS, TEAMS, USERS, get_db, get_documents, serialize, utcnow
from logging_config import logger
from schemas import NOT_SUBMITTED
from security import require_project_manager
from workflow import TASK, approve, create_task, resolve_task_assignees, send_back

router = APIRouter(
    prefix="/api/projectManagerData/taskManagementData",
    dependencies=[Depends(require_project_manager)],
)


# -----------------------------
# Schemas (subset for requests)
# -----------------------------
class TaskCreate(BaseModel):
    teamId: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    deadline: datetime
    assignedTo: List[str] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    TaskId: str = Field(..., min_length=1)
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1)
    deadline: Optional[datetime] = None
    assignedTo: Optional[List[str]] = None


class FeedbackRequest(BaseModel):
    feedback: str = Field(..., min_length=1, description="Feedback for the assignee")


class TaskIdsRequest(BaseModel):
    taskIds: List[str] = Field(..., min_length=1)


@router.post("/createTask/{project_id}", status_code=201)
async def create_task_route(project_id: str, body: TaskCreate, db: Database = Depends(get_db),
                            claims: Dict[str, Any] = Depends(require_project_manager)):
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"projectId": project_id, "teamId": body.teamId})
    if not log:
        raise HTTPException(
            status_code=404,
            detail=f"Not Found: No assignment log found for Project {project_id} and Team {body.teamId}.",
        )
    project = get_project_or_404(db, project_id)
    if project.get("createdBy") != claims["UserId"]:
        raise HTTPException(status_code=403, detail="Forbidden: You do not manage this project.")
    team = get_team_or_404(db, body.teamId)

    task = create_task(
        db, log, project,
        title=body.title.strip(),
        description=body.description.strip(),
        deadline=body.deadline,
        assigned_to=resolve_task_assignees(team, body.assignedTo),
    )
    logger.info(f"Task {task['TaskId']} created on {project_id} for team {body.teamId}")
    return {"success": True, "message": "Task created and added to assignment log successfully!",
            "task": serialize(task)}


@router.put("/updateTask")
async def update_task(body: TaskUpdate, db: Database = Depends(get_db),
                      claims: Dict[str, Any] = Depends(require_project_manager)):
    get_task_or_404(db, body.TaskId)
    log = ensure_log_author(db, body.TaskId, claims["UserId"])

    update: Dict[str, Any] = {}
    for field in ["title", "description"]:
        val = getattr(body, field)
        if val is not None:
            update[field] = val.strip()
    if body.deadline is not None:
        update["deadline"] = body.deadline
    if body.assignedTo is not None:
        update["assignedTo"] = resolve_task_assignees(get_team_or_404(db, log["teamId"]), body.assignedTo)
    if not update:
        raise HTTPException(status_code=400, detail="Bad Request: No fields provided for update.")

    update["updatedAt"] = utcnow()
    db[TASKS].update_one({"TaskId": body.TaskId}, {"$set": update})
    return {"success": True, "message": "Task updated successfully.",
            "task": serialize(db[TASKS].find_one({"TaskId": body.TaskId}))}


@router.get("/getProjectTasks/{project_id}")
async def get_project_tasks(project_id: str, db: Database = Depends(get_db),
                            claims: Dict[str, Any] = Depends(require_project_manager)):
    project = get_owned_project(db, project_id, claims["UserId"])
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"projectId": project_id})
    tasks = get_documents(db, TASKS, {"TaskId": {"$in": log.get("tasksIds") or []}}) if log else []
    return {"success": True, "project": serialize(project), "assignment": serialize(log), "tasks": tasks}


@router.get("/getTaskDetails/{task_id}")
async def get_task_details(task_id: str, db: Database = Depends(get_db),
                           claims: Dict[str, Any] = Depends(require_project_manager)):
    task = get_task_or_404(db, task_id)
    ensure_log_author(db, task_id, claims["UserId"])
    return {
        "success": True,
        "task": serialize(task),
        "assignees": get_documents(db, USERS, {"UserId": {"$in": task.get("assignedTo") or []}}),
        "subtasks": get_documents(db, SUBTASKS, {"parentTaskId": task_id}),
    }


@router.put("/markTaskCompleted/{task_id}")
async def mark_task_completed(task_id: str, db: Database = Depends(get_db),
                              claims: Dict[str, Any] = Depends(require_project_manager)):
    task = get_task_or_404(db, task_id)
    ensure_log_author(db, task_id, claims["UserId"])
    updated = approve(db, TASK, task)
    return {"success": True, "message": "Task marked as completed.", "task": serialize(updated)}


@router.put("/markTaskPending/{task_id}")
async def mark_task_pending(task_id: str, body: FeedbackRequest, db: Database = Depends(get_db),
                            claims: Dict[str, Any] = Depends(require_project_manager)):
    task = get_task_or_404(db, task_id)
    ensure_log_author(db, task_id, claims["UserId"])
    updated = send_back(db, TASK, task, body.feedback.strip())
    return {"success": True, "message": "Task sent back for rework.", "task": serialize(updated)}


@router.api_route("/deleteSelectedTasks", methods=["POST", "DELETE"])
async def delete_selected_tasks(body: TaskIdsRequest, db: Database = Depends(get_db),
                                claims: Dict[str, Any] = Depends(require_project_manager)):
    for task_id in body.taskIds:
        ensure_log_author(db, task_id, claims["UserId"])
    counts = delete_tasks(db, body.taskIds)
    return {
        "success": True,
        "message": f"Deleted {counts.tasks} task(s) and {counts.subtasks} subtask(s).",
        "deletedCounts": counts.as_dict(),
    }


# -----------------------------
# Task board lookups
# -----------------------------
@router.get("/getTasks")
async def get_tasks(db: Database = Depends(get_db), claims: Dict[str, Any] = Depends(require_project_manager)):
    """Every task across the assignments this PM made, with the users it references."""
    tasks = []
    for log in db[ASSIGNED_PROJECT_LOGS].find({"assignedBy": claims["UserId"]}):
        project = db[PROJECTS].find_one({"ProjectId": log["projectId"]}, {"title": 1})
        team = db[TEAMS].find_one({"teamId": log["teamId"]}, {"teamName": 1})
        for task in db[TASKS].find({"TaskId": {"$in": log.get("tasksIds") or []}}):
            tasks.append({
                **serialize(task),
                "projectId": log["projectId"],
                "projectName": project["title"] if project else "",
                "teamId": log["teamId"],
                "teamName": team["teamName"] if team else "",
            })

    assignee_ids = list(dict.fromkeys(uid for t in tasks for uid in t.get("assignedTo") or []))
    submitter_ids = list(dict.fromkeys(
        t["submittedby"] for t in tasks if t.get("submittedby") and t["submittedby"] != NOT_SUBMITTED
    ))
    return {
        "success": True,
        "tasks": tasks,
        "members": get_documents(db, USERS, {"UserId": {"$in": assignee_ids}}),
        "submitters": get_documents(db, USERS, {"UserId": {"$in": submitter_ids}}),
    }


@router.get("/getAssignmentContext/{project_id}")
async def get_assignment_context(project_id: str, db: Database = Depends(get_db),
                                 claims: Dict[str, Any] = Depends(require_project_manager)):
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"projectId": project_id, "assignedBy": claims["UserId"]})
    if not log:
        raise HTTPException(
            status_code=404,
            detail=f"Not Found: No assignment log found for Project {project_id} managed by you.",
        )
    project = get_project_or_404(db, log["projectId"])
    team = get_team_or_404(db, log["teamId"])
    return {
        "success": True,
        "assignment": {"teamId": log["teamId"], "teamName": team["teamName"], "projectName": project["title"]},
    }


@router.get("/getTeams")
async def get_teams(db: Database = Depends(get_db), claims: Dict[str, Any] = Depends(require_project_manager)):
    teams = list(db[TEAMS].find({"createdBy": claims["UserId"]}))
    return {
        "success": True,
        "teams": [serialize(t) for t in teams],
        "membersData": [{"teamId": t["teamId"], "members": public_users(db, t.get("members") or [])} for t in teams],
    }
