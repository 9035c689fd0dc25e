from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.database import Database

from access import (
    get_project_or_404,
    get_team_or_404,
    get_user_or_404,
    logs_by_project,
    team_participant_ids,
)
from cascade import ProjectManagerDeletionReport, classify_project_manager_emails, delete_project_managers
from database import (
    ADMINS,
    ASSIGNED_PROJECT_LOGS,
    PROJECTS,
    SUBTASKS,
    TASKS,
    TEAMS,
    USERS,
    get_db,
    get_documents,
    serialize,
    utcnow,
)
from logging_config import logger
from security import get_password_hash, require_admin, verify_password

router = APIRouter(prefix="/api/adminData", dependencies=[Depends(require_admin)])


# -----------------------------
# Schemas (subset for requests)
# -----------------------------
class EditUserRequest(BaseModel):
    firstname: Optional[str] = Field(default=None, min_length=1, max_length=50)
    lastname: Optional[str] = Field(default=None, min_length=1, max_length=50)
    contact: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    userType: Optional[Literal["User", "ProjectManager"]] = None


class UpdateUsersRequest(BaseModel):
    users: List[Dict[str, Any]]


class DeleteProjectManagersRequest(BaseModel):
    emails: List[Any]


class UserIdsRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    firstname: Optional[str] = Field(default=None, max_length=50)
    lastname: Optional[str] = Field(default=None, max_length=50)
    contact: Optional[str] = None


class PasswordChange(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=6, max_length=128)


PROFILE_FIELDS = ("firstname", "lastname", "contact")
TEAM_SUMMARY = {"_id": 0, "teamId": 1, "teamName": 1, "members": 1, "teamLeader": 1}


# -----------------------------
# Listings
# -----------------------------
@router.get("/getAllUsers")
async def get_all_users(db: Database = Depends(get_db)):
    """Plain users not yet placed in any team."""
    in_teams = list(team_participant_ids(db))
    users = get_documents(db, USERS, {"userType": "User", "UserId": {"$nin": in_teams}})
    return {"success": True, "users": users}


@router.get("/getAllProjectManagers")
async def get_all_project_managers(db: Database = Depends(get_db)):
    return {"success": True, "projectManagers": get_documents(db, USERS, {"userType": "ProjectManager"})}


@router.get("/getAllTeamParticipants")
async def get_all_team_participants(db: Database = Depends(get_db)):
    participants = get_documents(db, USERS, {"UserId": {"$in": list(team_participant_ids(db))}})
    return {"success": True, "participants": participants}


# -----------------------------
# Details
# -----------------------------
@router.get("/UserDetails/{user_id}")
async def user_details(user_id: str, db: Database = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    teams = []
    team_ids = []
    for team in db[TEAMS].find({"$or": [{"teamLeader": user_id}, {"members": user_id}]}):
        role = "TeamLeader" if user_id in (team.get("teamLeader") or []) else "TeamMember"
        teams.append({**serialize(team), "role": role})
        team_ids.append(team["teamId"])

    assigned = []
    for log in db[ASSIGNED_PROJECT_LOGS].find({"teamId": {"$in": team_ids}}):
        project = db[PROJECTS].find_one({"ProjectId": log["projectId"]})
        if project:
            assigned.append({**serialize(project), "teamId": log["teamId"], "deadline": serialize(log)["deadline"]})

    return {"success": True, "user": serialize(user), "teams": teams, "assignedProjects": assigned}


@router.get("/ParticipantDetails/{user_id}")
async def participant_details(user_id: str, db: Database = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    return {
        "success": True,
        "user": serialize(user),
        "teamsLed": get_documents(db, TEAMS, {"teamLeader": user_id}, projection=TEAM_SUMMARY),
        "teamsMemberOf": get_documents(
            db, TEAMS, {"members": user_id, "teamLeader": {"$ne": user_id}}, projection=TEAM_SUMMARY,
        ),
    }


@router.post("/getUsersById")
async def get_users_by_id(body: UserIdsRequest, db: Database = Depends(get_db)):
    return {"success": True, "users": get_documents(db, USERS, {"UserId": {"$in": body.ids}})}


@router.get("/ProjectManagerDetails/{user_id}")
async def project_manager_details(user_id: str, db: Database = Depends(get_db)):
    pm = get_user_or_404(db, user_id, user_type="ProjectManager")
    teams = get_documents(db, TEAMS, {"createdBy": user_id})
    projects = list(db[PROJECTS].find({"createdBy": user_id}))
    logs = logs_by_project(db, [p["ProjectId"] for p in projects])

    assigned, unassigned = [], []
    for project in projects:
        log = logs.get(project["ProjectId"])
        if log:
            assigned.append({**serialize(project), "teamId": log["teamId"]})
        else:
            unassigned.append(serialize(project))

    return {
        "success": True,
        "pmDetails": serialize(pm),
        "createdTeams": teams,
        "assignedProjects": assigned,
        "unassignedProjects": unassigned,
    }


@router.get("/teamDetails/{team_id}")
async def team_details(team_id: str, db: Database = Depends(get_db)):
    team = get_team_or_404(db, team_id)
    leaders = get_documents(db, USERS, {"UserId": {"$in": team.get("teamLeader") or []}})
    members = get_documents(db, USERS, {"UserId": {"$in": team.get("members") or []}})

    projects = []
    for log in db[ASSIGNED_PROJECT_LOGS].find({"teamId": team_id}):
        project = db[PROJECTS].find_one({"ProjectId": log["projectId"]})
        if project:
            projects.append({**serialize(project), "deadline": serialize(log)["deadline"],
                             "taskCount": len(log.get("tasksIds") or [])})

    return {
        "success": True,
        "team": serialize(team),
        "teamLeader": leaders[0] if leaders else None,
        "members": members,
        "assignedProjects": projects,
    }


@router.get("/ProjectTasksDetails/{project_id}")
async def project_tasks_details(project_id: str, db: Database = Depends(get_db)):
    project = get_project_or_404(db, project_id)
    log = db[ASSIGNED_PROJECT_LOGS].find_one({"projectId": project_id})
    team = db[TEAMS].find_one({"teamId": log["teamId"]}) if log else None

    tasks = []
    if log:
        for task in db[TASKS].find({"TaskId": {"$in": log.get("tasksIds") or []}}):
            subtasks = get_documents(db, SUBTASKS, {"parentTaskId": task["TaskId"]})
            tasks.append({**serialize(task), "subtasks": subtasks})

    return {
        "success": True,
        "project": serialize(project),
        "assignment": serialize(log),
        "team": serialize(team),
        "tasks": tasks,
    }


# -----------------------------
# User maintenance
# -----------------------------
@router.get("/editUser/{user_id}")
async def get_user_for_edit(user_id: str, db: Database = Depends(get_db)):
    return {"success": True, "user": serialize(get_user_or_404(db, user_id))}


@router.put("/editUser/{user_id}")
async def edit_user(user_id: str, body: EditUserRequest, db: Database = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    update: Dict[str, Any] = {}
    for field in PROFILE_FIELDS:
        val = getattr(body, field)
        if val is not None:
            update[field] = val.strip()
    if body.password:
        update["password"] = get_password_hash(body.password)

    if body.userType and body.userType != user.get("userType"):
        if body.userType == "ProjectManager" and user_id in team_participant_ids(db):
            raise HTTPException(status_code=409, detail="Conflict: User is part of a team and cannot become a Project Manager.")
        if body.userType == "User" and (
            db[PROJECTS].find_one({"createdBy": user_id}) or db[TEAMS].find_one({"createdBy": user_id})
        ):
            raise HTTPException(status_code=409, detail="Conflict: Project Manager still owns projects or teams.")
        update["userType"] = body.userType

    if not update:
        raise HTTPException(status_code=400, detail="Bad Request: No fields provided for update.")
    update["updatedAt"] = utcnow()
    db[USERS].update_one({"UserId": user_id}, {"$set": update})
    logger.info(f"Admin updated user {user_id}: {sorted(k for k in update if k != 'password')}")
    updated = db[USERS].find_one({"UserId": user_id})
    return {"success": True, "message": f"User {user_id}'s profile updated successfully.", "user": serialize(updated)}


def _update_one_user(db: Database, data: Dict[str, Any]) -> Dict[str, Any]:
    user_id = data.get("UserId")
    if not isinstance(user_id, str) or not user_id.strip():
        return {"success": False, "id": user_id, "message": "Missing or invalid user ID"}

    update = {f: data[f] for f in PROFILE_FIELDS if isinstance(data.get(f), str)}
    password = data.get("password")
    if isinstance(password, str) and password.strip():
        update["password"] = get_password_hash(password)
    if not update:
        return {"success": True, "id": user_id, "message": "No fields to update"}

    update["updatedAt"] = utcnow()
    result = db[USERS].update_one({"UserId": user_id}, {"$set": update})
    if result.matched_count == 0:
        return {"success": False, "id": user_id, "message": "User not found"}
    return {"success": True, "id": user_id, "message": "User updated"}


@router.put("/updateUsers")
async def update_users(body: UpdateUsersRequest, db: Database = Depends(get_db)):
    if not body.users:
        raise HTTPException(status_code=400, detail="Bad Request: No user data provided.")

    results = [_update_one_user(db, data) for data in body.users]
    failed = [r for r in results if not r["success"]]
    if failed:
        logger.warning(f"{len(failed)} of {len(results)} user update(s) failed")
        return JSONResponse(status_code=207, content=jsonable_encoder({
            "success": False,
            "message": f"Operation completed with {len(failed)} failure(s).",
            "successfulCount": len(results) - len(failed),
            "failedCount": len(failed),
            "details": results,
        }))
    return {"success": True, "message": f"{len(results)} user(s) processed successfully.", "details": results}


@router.api_route("/deleteProjectManagers", methods=["POST", "DELETE"])
async def delete_project_managers_route(body: DeleteProjectManagersRequest, db: Database = Depends(get_db),
                                        claims: Dict[str, Any] = Depends(require_admin)):
    if not body.emails:
        raise HTTPException(status_code=400, detail="Bad Request: No emails provided.")

    report = ProjectManagerDeletionReport()
    classify_project_manager_emails(db, body.emails, claims.get("email", ""), report)

    if not report.validPmUserIdsProcessed:
        looked_up = any(
            s["reason"] == "User not found" or s["reason"].startswith("Not a Project Manager")
            for s in report.invalidOrSkippedEmails
        )
        status = 404 if looked_up else 400
        message = ("Not Found: No valid Project Managers found for the provided emails."
                   if looked_up else "Bad Request: No valid emails to process.")
        return JSONResponse(status_code=status, content={"success": False, "message": message,
                                                         "details": report.as_dict()})

    delete_project_managers(db, report)
    skipped = len(report.invalidOrSkippedEmails)
    message = f"Deleted {report.deletedUsersCount} Project Manager(s) and their associated data."
    if skipped:
        message += f" {skipped} email(s) were skipped."
    return JSONResponse(status_code=207 if skipped else 200, content={
        "success": not skipped,
        "message": message,
        "details": report.as_dict(),
    })


# -----------------------------
# Own profile
# -----------------------------
@router.put("/profile/update-info")
async def update_profile_info(body: ProfileUpdate, db: Database = Depends(get_db),
                              claims: Dict[str, Any] = Depends(require_admin)):
    update = body.model_dump(exclude_none=True)
    if not update:
        raise HTTPException(status_code=400, detail="Bad Request: No fields provided for update.")
    for field in ("firstname", "lastname"):
        if field in update:
            update[field] = update[field].strip()
            if not update[field]:
                raise HTTPException(status_code=400, detail=f"Bad Request: {field} cannot be empty.")

    admin_id = claims["UserId"]
    update["updatedAt"] = utcnow()
    result = db[ADMINS].update_one({"AdminId": admin_id}, {"$set": update})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Admin not found.")
    return {"success": True, "message": "Profile information updated successfully.",
            "user": serialize(db[ADMINS].find_one({"AdminId": admin_id}))}


@router.put("/profile/change-password")
async def change_password(body: PasswordChange, db: Database = Depends(get_db),
                          claims: Dict[str, Any] = Depends(require_admin)):
    if body.currentPassword == body.newPassword:
        raise HTTPException(status_code=400,
                            detail="Bad Request: New password cannot be the same as the current password.")
    admin = db[ADMINS].find_one({"AdminId": claims["UserId"]})
    if not admin:
        raise HTTPException(status_code=404, detail="Admin not found.")
    if not verify_password(body.currentPassword, admin.get("password", "")):
        raise HTTPException(status_code=401, detail="Incorrect current password.")

    db[ADMINS].update_one({"AdminId": admin["AdminId"]},
                          {"$set": {"password": get_password_hash(body.newPassword), "updatedAt": utcnow()}})
    logger.info(f"Admin {admin['AdminId']} changed their password")
    return {"success": True, "message": "Password updated successfully."}
