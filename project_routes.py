from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from access import ensure_all_owned, get_owned_project, get_owned_team, logs_by_project
from cascade import execute_plan, plan_project_deletion, plan_unassignment
from database import PROJECTS, TEAMS, create_document, get_db, next_id, serialize, utcnow
from logging_config import logger
from schemas import Project
from security import require_project_manager
from workflow import COMPLETED, assign_project

router = APIRouter(
    prefix="/api/projectManagerData/projectManagementData",
    dependencies=[Depends(require_project_manager)],
)


# -----------------------------
# Schemas (subset for requests)
# -----------------------------
class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    teamId: Optional[str] = None
    deadline: Optional[datetime] = None


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)


class AssignRequest(BaseModel):
    teamId: str = Field(..., min_length=1)
    deadline: datetime


class ProjectIdsRequest(BaseModel):
    projectIds: List[str] = Field(..., min_length=1)


def _with_assignment(db: Database, projects: List[Dict[str, Any]]):
    """Split projects into (assigned, unassigned), decorating assigned ones with team and deadline."""
    logs = logs_by_project(db, [p["ProjectId"] for p in projects])
    team_names = {
        t["teamId"]: t.get("teamName")
        for t in db[TEAMS].find({"teamId": {"$in": [log["teamId"] for log in logs.values()]}})
    }
    assigned, unassigned = [], []
    for project in projects:
        log = logs.get(project["ProjectId"])
        if log is None:
            unassigned.append(serialize(project))
            continue
        assigned.append({
            **serialize(project),
            "teamId": log["teamId"],
            "teamName": team_names.get(log["teamId"]),
            "deadline": serialize(log)["deadline"],
            "AssignProjectId": log["AssignProjectId"],
        })
    return assigned, unassigned


@router.post("/createProject", status_code=201)
async def create_project(body: ProjectCreate, db: Database = Depends(get_db),
                         claims: Dict[str, Any] = Depends(require_project_manager)):
    user_id = claims["UserId"]
    team = None
    if body.teamId:
        if body.deadline is None:
            raise HTTPException(status_code=400, detail="Bad Request: A deadline is required to assign a team.")
        team = get_owned_team(db, body.teamId, user_id)

    project = create_document(db, PROJECTS, Project(
        ProjectId=next_id(db, "Project"),
        title=body.title.strip(),
        description=body.description.strip(),
        createdBy=user_id,
    ))
    logger.info(f"Project {project['ProjectId']} created by {user_id}")

    response = {"success": True, "message": "Project created successfully.", "project": serialize(project)}
    if team is not None:
        log = assign_project(db, project, team, body.deadline, user_id)
        response["message"] = "Project created and assigned successfully."
        response["assignment"] = serialize(log)
    return response


@router.get("/getProjects")
async def get_projects(db: Database = Depends(get_db), claims: Dict[str, Any] = Depends(require_project_manager)):
    projects = list(db[PROJECTS].find({"createdBy": claims["UserId"]}).sort("createdAt", -1))
    assigned, unassigned = _with_assignment(db, projects)
    return {"success": True, "assignedProjects": assigned, "unassignedProjects": unassigned}


@router.get("/getUnassignedProjects")
async def get_unassigned_projects(db: Database = Depends(get_db),
                                  claims: Dict[str, Any] = Depends(require_project_manager)):
    projects = list(db[PROJECTS].find({"createdBy": claims["UserId"]}))
    _, unassigned = _with_assignment(db, projects)
    return {"success": True, "projects": unassigned}


@router.get("/getProjectForUpdation/{project_id}")
async def get_project_for_updation(project_id: str, db: Database = Depends(get_db),
                                   claims: Dict[str, Any] = Depends(require_project_manager)):
    project = get_owned_project(db, project_id, claims["UserId"])
    assigned, unassigned = _with_assignment(db, [project])
    return {"success": True, "project": (assigned or unassigned)[0]}


@router.put("/updateProject/{project_id}")
async def update_project(project_id: str, body: ProjectUpdate, db: Database = Depends(get_db),
                         claims: Dict[str, Any] = Depends(require_project_manager)):
    get_owned_project(db, project_id, claims["UserId"])
    update = {k: v.strip() for k, v in body.model_dump(exclude_none=True).items()}
    if not update:
        raise HTTPException(status_code=400, detail="Bad Request: No fields provided for update.")
    update["updatedAt"] = utcnow()
    db[PROJECTS].update_one({"ProjectId": project_id}, {"$set": update})
    return {"success": True, "message": "Project updated successfully.",
            "project": serialize(db[PROJECTS].find_one({"ProjectId": project_id}))}


@router.post("/assignProject/{project_id}")
async def assign_project_route(project_id: str, body: AssignRequest, db: Database = Depends(get_db),
                               claims: Dict[str, Any] = Depends(require_project_manager)):
    user_id = claims["UserId"]
    project = get_owned_project(db, project_id, user_id)
    team = get_owned_team(db, body.teamId, user_id)
    log = assign_project(db, project, team, body.deadline, user_id)
    return {"success": True, "message": "Project assigned successfully.", "assignment": serialize(log)}


@router.put("/markProjectCompleted/{project_id}")
async def mark_project_completed(project_id: str, db: Database = Depends(get_db),
                                 claims: Dict[str, Any] = Depends(require_project_manager)):
    project = get_owned_project(db, project_id, claims["UserId"])
    if project.get("status") == COMPLETED:
        raise HTTPException(status_code=400, detail="Bad Request: Project is already completed.")
    db[PROJECTS].update_one({"ProjectId": project_id}, {"$set": {"status": COMPLETED, "updatedAt": utcnow()}})
    logger.info(f"Project {project_id} marked completed")
    return {"success": True, "message": "Project marked as completed."}


@router.api_route("/deleteSelectedProjects", methods=["POST", "DELETE"])
async def delete_selected_projects(body: ProjectIdsRequest, db: Database = Depends(get_db),
                                   claims: Dict[str, Any] = Depends(require_project_manager)):
    ensure_all_owned(db, PROJECTS, "ProjectId", body.projectIds, claims["UserId"])
    counts = execute_plan(db, plan_project_deletion(db, body.projectIds))
    return {
        "success": True,
        "message": f"Deleted {counts.projects} project(s) and their associated data.",
        "deletedCounts": counts.as_dict(),
    }


@router.post("/unassignSelectedProjects")
async def unassign_selected_projects(body: ProjectIdsRequest, db: Database = Depends(get_db),
                                     claims: Dict[str, Any] = Depends(require_project_manager)):
    ensure_all_owned(db, PROJECTS, "ProjectId", body.projectIds, claims["UserId"])
    counts = execute_plan(db, plan_unassignment(db, body.projectIds))
    return {
        "success": True,
        "message": f"Unassigned {counts.assignments} project assignment(s).",
        "deletedCounts": counts.as_dict(),
    }
