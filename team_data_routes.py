"""
Team leader and team member endpoints.

TeamLeader/TeamMember are not account types: they are read off the teams a
user currently belongs to, so most routes check the team document itself
rather than the ``userRoles`` claim, which is only as fresh as the login.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from access import (
    ensure_leader,
    ensure_member,
    ensure_subtask_leader,
    ensure_task_leader,
    get_project_or_404,
    get_subtask_or_404,
    get_task_or_404,
    get_team_or_404,
    public_users,
    team_for_task,
)
from cascade import delete_subtasks
from database import ASSIGNED_PROJECT_LOGS, PROJECTS, SUBTASKS, TASKS, TEAMS, get_db, get_documents, serialize, utcnow
from logging_config import logger
from schemas import GITHUB_URL_PATTERN
from security import get_current_claims, require_team_leader, require_team_member
from workflow import (
    SUBTASK,
    TASK,
    approve,
    create_subtask,
    create_task,
    resolve_subtask_assignees,
    resolve_task_assignees,
    send_back,
    submit,
)

team_router = APIRouter(prefix="/api/teamData")
leader_router = APIRouter(prefix="/api/teamData/teamLeaderData")
member_router = APIRouter(prefix="/api/teamData/teamMemberData")


# -----------------------------
# Schemas (subset for requests)
# -----------------------------
class SpecificTaskCreate(BaseModel):
    projectId: str = Field(..., min_length=1)
    teamId: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    deadline: datetime
    assignedTo: List[str] = Field(default_factory=list)


class SubtaskCreate(BaseModel):
    parentTaskId: str = Field(..., min_length=1)
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10)
    assignedTo: str = Field(..., min_length=1, description='A member UserId or "__all__"')
    deadline: datetime


class SubtaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, min_length=10)
    assignedTo: Optional[str] = Field(default=None, min_length=1)
    deadline: Optional[datetime] = None


class Submission(BaseModel):
    gitHubUrl: str = Field(..., pattern=GITHUB_URL_PATTERN)
    context: Optional[str] = Field(default=None, max_length=2000)


class MemberTaskSubmission(Submission):
    TaskId: str = Field(..., min_length=1)


class FeedbackRequest(BaseModel):
    feedback: str = Field(..., min_length=1)


class SubtaskIdsRequest(BaseModel):
    subtaskIds: List[str] = Field(..., min_length=1)


class TeamRef(BaseModel):
    teamId: str = Field(..., min_length=1)


class AssignmentRef(TeamRef):
    projectId: str = Field(..., min_length=1)


def _assigned_projects(db: Database, team_id: str) -> List[Dict[str, Any]]:
    projects = []
    for log in db[ASSIGNED_PROJECT_LOGS].find({"teamId": team_id}):
        project = db[PROJECTS].find_one({"ProjectId": log["projectId"]})
        if project:
            projects.append({**serialize(project), "deadline": serialize(log)["deadline"],
                             "AssignProjectId": log["AssignProjectId"]})
    return projects


def _project_log_for(db: Database, project_id: str, user_id: str, as_leader: bool):
    """The assignment log of ``project_id`` whose team the caller leads (or belongs to)."""
    get_project_or_404(db, project_id)
    for log in db[ASSIGNED_PROJECT_LOGS].find({"projectId": project_id}):
        team = db[TEAMS].find_one({"teamId": log["teamId"]})
        if not team:
            continue
        if as_leader and user_id in (team.get("teamLeader") or []):
            return log, team
        if not as_leader and user_id in (team.get("members") or []):
            return log, team
    raise HTTPException(status_code=403, detail="Forbidden: Your team is not assigned to this project.")


# -----------------------------
# Team leader
# -----------------------------
@leader_router.get("/getLedTeams")
async def get_led_teams(db: Database = Depends(get_db), claims: Dict[str, Any] = Depends(get_current_claims)):
    return {"success": True, "teams": get_documents(db, TEAMS, {"teamLeader": claims["UserId"]})}


@leader_router.get("/getTeamProjects/{team_id}")
async def get_led_team_projects(team_id: str, db: Database = Depends(get_db),
                                claims: Dict[str, Any] = Depends(get_current_claims)):
    ensure_leader(get_team_or_404(db, team_id), claims["UserId"])
    return {"success": True, "projects": _assigned_projects(db, team_id)}


@leader_router.get("/getProjectTasks/{project_id}")
async def get_led_project_tasks(project_id: str, db: Database = Depends(get_db),
                                claims: Dict[str, Any] = Depends(get_current_claims)):
    log, team = _project_log_for(db, project_id, claims["UserId"], as_leader=True)
    tasks = get_documents(db, TASKS, {"TaskId": {"$in": log.get("tasksIds") or []}})
    return {"success": True, "team": serialize(team), "assignment": serialize(log), "tasks": tasks}


@leader_router.post("/createSpecificTask", status_code=201)
async def create_specific_task(body: SpecificTaskCreate, db: Database = Depends(get_db),
                               claims: Dict[str, Any] = Depends(require_team_leader)):
    team = get_team_or_404(db, body.teamId)
    ensure_leader(team, claims["UserId"])
    project = get_project_or_404(db, body.projectId)
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"projectId": body.projectId, "teamId": body.teamId})
    if not log:
        raise HTTPException(status_code=404, detail="Assigned project log not found.")

    task = create_task(
        db, log, project,
        title=body.title.strip(),
        description=body.description.strip(),
        deadline=body.deadline,
        assigned_to=resolve_task_assignees(team, body.assignedTo),
    )
    logger.info(f"Team leader {claims['UserId']} created task {task['TaskId']}")
    return {"success": True, "message": "Task assigned successfully!", "task": serialize(task)}


@leader_router.post("/submitTask/{task_id}")
async def leader_submit_task(task_id: str, body: Submission, db: Database = Depends(get_db),
                             claims: Dict[str, Any] = Depends(get_current_claims)):
    task, _, _ = ensure_task_leader(db, task_id, claims["UserId"])
    updated = submit(db, TASK, task, body.gitHubUrl, body.context, claims["UserId"])
    return {"success": True, "message": "Task submitted successfully.", "task": serialize(updated)}


@leader_router.put("/markTaskPending/{task_id}")
async def leader_mark_task_pending(task_id: str, body: FeedbackRequest, db: Database = Depends(get_db),
                                   claims: Dict[str, Any] = Depends(get_current_claims)):
    task, _, _ = ensure_task_leader(db, task_id, claims["UserId"])
    updated = send_back(db, TASK, task, body.feedback.strip())
    return {"success": True, "message": "Task sent back to the team.", "task": serialize(updated)}


@leader_router.post("/createSubTask", status_code=201)
async def create_subtask_route(body: SubtaskCreate, db: Database = Depends(get_db),
                               claims: Dict[str, Any] = Depends(get_current_claims)):
    parent = db[TASKS].find_one({"TaskId": body.parentTaskId})
    if not parent:
        raise HTTPException(status_code=404, detail="Parent task not found.")
    _, team = team_for_task(db, body.parentTaskId)
    ensure_leader(team, claims["UserId"])

    subtask = create_subtask(
        db, parent,
        title=body.title.strip(),
        description=body.description.strip(),
        deadline=body.deadline,
        assigned_to=resolve_subtask_assignees(team, body.assignedTo),
    )
    logger.info(f"Subtask {subtask['SubtaskId']} created under {body.parentTaskId}")
    return {"success": True, "message": "Subtask created successfully!", "subtask": serialize(subtask)}


@leader_router.put("/updateSubTask/{subtask_id}")
async def update_subtask(subtask_id: str, body: SubtaskUpdate, db: Database = Depends(get_db),
                         claims: Dict[str, Any] = Depends(get_current_claims)):
    _, _, team = ensure_subtask_leader(db, subtask_id, claims["UserId"])
    update: Dict[str, Any] = {}
    for field in ["title", "description"]:
        val = getattr(body, field)
        if val is not None:
            update[field] = val.strip()
    if body.deadline is not None:
        update["deadline"] = body.deadline
    if body.assignedTo is not None:
        update["assignedTo"] = resolve_subtask_assignees(team, body.assignedTo)
    if not update:
        raise HTTPException(status_code=400, detail="Bad Request: No fields provided for update.")

    update["updatedAt"] = utcnow()
    db[SUBTASKS].update_one({"SubtaskId": subtask_id}, {"$set": update})
    return {"success": True, "message": "Subtask updated successfully!",
            "subtask": serialize(db[SUBTASKS].find_one({"SubtaskId": subtask_id}))}


@leader_router.get("/getSubTasks/{task_id}")
async def get_subtasks(task_id: str, db: Database = Depends(get_db),
                       claims: Dict[str, Any] = Depends(get_current_claims)):
    task, _, _ = ensure_task_leader(db, task_id, claims["UserId"])
    return {"success": True, "task": serialize(task),
            "subtasks": get_documents(db, SUBTASKS, {"parentTaskId": task_id})}


@leader_router.put("/markSubtaskCompleted/{subtask_id}")
async def mark_subtask_completed(subtask_id: str, db: Database = Depends(get_db),
                                 claims: Dict[str, Any] = Depends(get_current_claims)):
    subtask, _, _ = ensure_subtask_leader(db, subtask_id, claims["UserId"])
    updated = approve(db, SUBTASK, subtask)
    return {"success": True, "message": "Subtask marked as completed.", "subtask": serialize(updated)}


@leader_router.put("/markSubtaskPending/{subtask_id}")
async def mark_subtask_pending(subtask_id: str, body: FeedbackRequest, db: Database = Depends(get_db),
                               claims: Dict[str, Any] = Depends(get_current_claims)):
    subtask, _, _ = ensure_subtask_leader(db, subtask_id, claims["UserId"])
    updated = send_back(db, SUBTASK, subtask, body.feedback.strip())
    return {"success": True, "message": "Subtask sent back for rework.", "subtask": serialize(updated)}


@leader_router.api_route("/deleteSubtasksBatch", methods=["POST", "DELETE"])
async def delete_subtasks_batch(body: SubtaskIdsRequest, db: Database = Depends(get_db),
                                claims: Dict[str, Any] = Depends(get_current_claims)):
    ids = list(dict.fromkeys(body.subtaskIds))
    found = {s["SubtaskId"] for s in db[SUBTASKS].find({"SubtaskId": {"$in": ids}}, {"SubtaskId": 1})}
    missing = [i for i in ids if i not in found]
    if missing:
        raise HTTPException(status_code=404,
                            detail=f"Not Found: Could not find subtask(s) with IDs: {', '.join(missing)}")
    for subtask_id in ids:
        ensure_subtask_leader(db, subtask_id, claims["UserId"])

    deleted = delete_subtasks(db, ids)
    return {"success": True, "message": f"Successfully deleted {deleted} subtask(s).", "deletedCount": deleted}


# -----------------------------
# Team leader form lookups
# -----------------------------
@team_router.get("/getTeamMembers/{team_id}")
@leader_router.get("/getTeamMembers/{team_id}")
async def get_team_members(team_id: str, db: Database = Depends(get_db),
                           claims: Dict[str, Any] = Depends(get_current_claims)):
    user_id = claims["UserId"]
    team = get_team_or_404(db, team_id)
    ensure_leader(team, user_id)
    return {"success": True, "members": public_users(db, [m for m in team.get("members") or [] if m != user_id])}


@leader_router.post("/getTasksForAssignment")
async def get_tasks_for_assignment(body: AssignmentRef, db: Database = Depends(get_db),
                                   claims: Dict[str, Any] = Depends(get_current_claims)):
    ensure_leader(get_team_or_404(db, body.teamId), claims["UserId"])
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"projectId": body.projectId, "teamId": body.teamId})
    if not log:
        raise HTTPException(
            status_code=404,
            detail=f"Not Found: No assignment log found for Project {body.projectId} and Team {body.teamId}.",
        )
    tasks = get_documents(db, TASKS, {"TaskId": {"$in": log.get("tasksIds") or []}},
                          projection={"_id": 0, "TaskId": 1, "title": 1})
    return {"success": True, "tasks": tasks}


@leader_router.post("/getAssignedProjectsForTeam")
async def get_assigned_projects_for_team(body: TeamRef, db: Database = Depends(get_db),
                                         claims: Dict[str, Any] = Depends(get_current_claims)):
    ensure_leader(get_team_or_404(db, body.teamId), claims["UserId"])
    project_ids = list(dict.fromkeys(log["projectId"] for log in db[ASSIGNED_PROJECT_LOGS].find({"teamId": body.teamId})))
    projects = get_documents(db, PROJECTS, {"ProjectId": {"$in": project_ids}},
                             projection={"_id": 0, "ProjectId": 1, "title": 1})
    return {"success": True, "projects": projects}


@leader_router.post("/getProjects")
async def get_projects(body: TeamRef, db: Database = Depends(get_db),
                       claims: Dict[str, Any] = Depends(require_team_leader)):
    ensure_leader(get_team_or_404(db, body.teamId), claims["UserId"])
    project_ids = [log["projectId"] for log in db[ASSIGNED_PROJECT_LOGS].find({"teamId": body.teamId})]
    projects = get_documents(db, PROJECTS, {"ProjectId": {"$in": project_ids}}, projection={
        "_id": 0, "ProjectId": 1, "title": 1, "description": 1, "status": 1,
    })
    if not projects:
        raise HTTPException(status_code=404, detail="No projects found for this team.")
    return {"success": True, "projects": projects}


@leader_router.get("/getSubtaskCreationContext/{parent_task_id}")
async def get_subtask_creation_context(parent_task_id: str, db: Database = Depends(get_db),
                                       claims: Dict[str, Any] = Depends(get_current_claims)):
    """Parent task summary and the members a new subtask can go to."""
    user_id = claims["UserId"]
    parent = db[TASKS].find_one({"TaskId": parent_task_id})
    if not parent:
        raise HTTPException(status_code=404, detail="Parent task not found.")
    _, team = team_for_task(db, parent_task_id)
    ensure_leader(team, user_id)
    return {
        "success": True,
        "parentTask": {"TaskId": parent["TaskId"], "title": parent["title"]},
        "teamMembers": public_users(db, [m for m in team.get("members") or [] if m != user_id]),
    }


@leader_router.get("/getSubtaskUpdateContext/{subtask_id}")
async def get_subtask_update_context(subtask_id: str, db: Database = Depends(get_db),
                                     claims: Dict[str, Any] = Depends(get_current_claims)):
    subtask, _, team = ensure_subtask_leader(db, subtask_id, claims["UserId"])
    return {"success": True, "subtask": serialize(subtask),
            "teamMembers": public_users(db, team.get("members") or [])}


# -----------------------------
# Team member
# -----------------------------
@member_router.get("/getTeamsforMembers")
async def get_teams_for_members(db: Database = Depends(get_db),
                                claims: Dict[str, Any] = Depends(require_team_member)):
    return {"success": True, "teams": get_documents(db, TEAMS, {"members": claims["UserId"]})}


@member_router.get("/getTeamProjects/{team_id}")
async def get_member_team_projects(team_id: str, db: Database = Depends(get_db),
                                   claims: Dict[str, Any] = Depends(get_current_claims)):
    ensure_member(get_team_or_404(db, team_id), claims["UserId"])
    return {"success": True, "projects": _assigned_projects(db, team_id)}


@member_router.get("/getProjectTasks/{project_id}")
async def get_member_project_tasks(project_id: str, db: Database = Depends(get_db),
                                   claims: Dict[str, Any] = Depends(get_current_claims)):
    """Tasks of the project that are assigned to the caller."""
    log, team = _project_log_for(db, project_id, claims["UserId"], as_leader=False)
    tasks = get_documents(db, TASKS, {"TaskId": {"$in": log.get("tasksIds") or []},
                                      "assignedTo": claims["UserId"]})
    return {"success": True, "team": serialize(team), "assignment": serialize(log), "tasks": tasks}


@member_router.get("/getSubtasks/{task_id}")
async def get_member_subtasks(task_id: str, db: Database = Depends(get_db),
                              claims: Dict[str, Any] = Depends(get_current_claims)):
    task = get_task_or_404(db, task_id)
    _, team = team_for_task(db, task_id)
    ensure_member(team, claims["UserId"])
    subtasks = get_documents(db, SUBTASKS, {"parentTaskId": task_id, "assignedTo": claims["UserId"]})
    return {"success": True, "task": serialize(task), "subtasks": subtasks}


@member_router.post("/submitTask")
async def member_submit_task(body: MemberTaskSubmission, db: Database = Depends(get_db),
                             claims: Dict[str, Any] = Depends(require_team_member)):
    user_id = claims["UserId"]
    task = get_task_or_404(db, body.TaskId)
    _, team = team_for_task(db, body.TaskId)
    ensure_member(team, user_id)
    if task.get("assignedTo") and user_id not in task["assignedTo"]:
        raise HTTPException(status_code=403, detail="Forbidden: You are not assigned to this task.")
    updated = submit(db, TASK, task, body.gitHubUrl, body.context, user_id)
    return {"success": True, "message": "Task submitted successfully.", "task": serialize(updated)}


@member_router.post("/submitSubtask/{subtask_id}")
async def member_submit_subtask(subtask_id: str, body: Submission, db: Database = Depends(get_db),
                                claims: Dict[str, Any] = Depends(get_current_claims)):
    user_id = claims["UserId"]
    subtask = get_subtask_or_404(db, subtask_id)
    if user_id not in (subtask.get("assignedTo") or []):
        raise HTTPException(status_code=403, detail="Forbidden: You are not assigned to this subtask.")
    _, team = team_for_task(db, subtask["parentTaskId"])
    ensure_member(team, user_id)
    updated = submit(db, SUBTASK, subtask, body.gitHubUrl, body.context, user_id)
    return {"success": True, "message": "Subtask submitted successfully.", "subtask": serialize(updated)}
