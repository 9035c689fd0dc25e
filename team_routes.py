from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from access import ensure_all_owned, get_owned_project, get_owned_team, public_users
from cascade import execute_plan, plan_team_deletion, plan_unassignment
from config import settings
from database import ASSIGNED_PROJECT_LOGS, PROJECTS, TEAMS, USERS, create_document, get_db, get_documents, next_id, serialize, utcnow
from logging_config import logger
from schemas import USER_ID_PATTERN, Team
from security import require_project_manager
from workflow import assign_project

router = APIRouter(
    prefix="/api/projectManagerData/teamManagementData",
    dependencies=[Depends(require_project_manager)],
)


# -----------------------------
# Schemas (subset for requests)
# -----------------------------
class TeamCreate(BaseModel):
    teamName: str = Field(..., min_length=1, max_length=100)
    teamLeader: str = Field(..., pattern=USER_ID_PATTERN)
    members: List[str]
    projectId: Optional[str] = None
    deadline: Optional[datetime] = None


class TeamUpdate(BaseModel):
    teamName: Optional[str] = Field(default=None, min_length=1, max_length=100)
    teamLeader: Optional[str] = Field(default=None, pattern=USER_ID_PATTERN)
    members: Optional[List[str]] = None


class TeamIdsRequest(BaseModel):
    teamIds: List[str] = Field(..., min_length=1)


class UnassignRequest(BaseModel):
    teamId: str = Field(..., min_length=1)
    projectIds: List[str] = Field(..., min_length=1)


def validate_roster(db: Database, leader: str, members: List[str]) -> List[str]:
    """Members without the leader, checked for size and eligibility."""
    roster = [m for m in dict.fromkeys(members) if m != leader]
    if not settings.TEAM_MIN_MEMBERS <= len(roster) <= settings.TEAM_MAX_MEMBERS:
        raise HTTPException(
            status_code=400,
            detail=f"Bad Request: A team needs between {settings.TEAM_MIN_MEMBERS} and "
                   f"{settings.TEAM_MAX_MEMBERS} members besides the leader.",
        )
    wanted = [leader] + roster
    eligible = {u["UserId"] for u in db[USERS].find({"UserId": {"$in": wanted}, "userType": "User"}, {"UserId": 1})}
    unknown = [uid for uid in wanted if uid not in eligible]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Bad Request: Unknown or ineligible user(s): {', '.join(unknown)}")
    return roster


@router.post("/createTeam", status_code=201)
async def create_team(body: TeamCreate, db: Database = Depends(get_db),
                      claims: Dict[str, Any] = Depends(require_project_manager)):
    user_id = claims["UserId"]
    members = validate_roster(db, body.teamLeader, body.members)
    project = None
    if body.projectId:
        if body.deadline is None:
            raise HTTPException(status_code=400, detail="Bad Request: A deadline is required to assign a project.")
        project = get_owned_project(db, body.projectId, user_id)

    team = create_document(db, TEAMS, Team(
        teamId=next_id(db, "Team"),
        teamName=body.teamName.strip(),
        teamLeader=[body.teamLeader],
        members=members,
        createdBy=user_id,
    ))
    logger.info(f"Team {team['teamId']} created by {user_id} with {len(members)} member(s)")

    response = {"success": True, "message": "Team created successfully without project assignment.",
                "team": serialize(team)}
    if project is not None:
        log = assign_project(db, project, team, body.deadline, user_id)
        response["message"] = "Team created and assigned to the project successfully!"
        response["assignment"] = serialize(log)
    return response


@router.put("/editTeam/{team_id}")
async def edit_team(team_id: str, body: TeamUpdate, db: Database = Depends(get_db),
                    claims: Dict[str, Any] = Depends(require_project_manager)):
    team = get_owned_team(db, team_id, claims["UserId"])
    update: Dict[str, Any] = {}
    if body.teamName is not None:
        update["teamName"] = body.teamName.strip()
    if body.teamLeader is not None or body.members is not None:
        leader = body.teamLeader or team["teamLeader"][0]
        members = body.members if body.members is not None else team.get("members") or []
        update["teamLeader"] = [leader]
        update["members"] = validate_roster(db, leader, members)
    if not update:
        raise HTTPException(status_code=400, detail="Bad Request: No fields provided for update.")
    update["updatedAt"] = utcnow()
    db[TEAMS].update_one({"teamId": team_id}, {"$set": update})
    return {"success": True, "message": "Team updated successfully.",
            "team": serialize(db[TEAMS].find_one({"teamId": team_id}))}


@router.get("/getTeams")
async def get_teams(db: Database = Depends(get_db), claims: Dict[str, Any] = Depends(require_project_manager)):
    return {"success": True, "teams": get_documents(db, TEAMS, {"createdBy": claims["UserId"]})}


@router.get("/getTeamsData")
async def get_teams_data(db: Database = Depends(get_db),
                         claims: Dict[str, Any] = Depends(require_project_manager)):
    """The PM's teams with the public profile of every leader and member."""
    teams = list(db[TEAMS].find({"createdBy": claims["UserId"]}))
    return {
        "success": True,
        "teams": [serialize(t) for t in teams],
        "membersData": [{"teamId": t["teamId"], "members": public_users(db, t.get("members") or [])}
                        for t in teams],
        "teamLeadersData": [{"teamId": t["teamId"], "teamLeaders": public_users(db, t.get("teamLeader") or [])}
                            for t in teams],
    }


@router.get("/getTeamData/{team_id}")
async def get_team_data(team_id: str, db: Database = Depends(get_db),
                        claims: Dict[str, Any] = Depends(require_project_manager)):
    team = get_owned_team(db, team_id, claims["UserId"])
    leaders = get_documents(db, USERS, {"UserId": {"$in": team.get("teamLeader") or []}})
    return {
        "success": True,
        "team": serialize(team),
        "teamLeader": leaders[0] if leaders else None,
        "members": get_documents(db, USERS, {"UserId": {"$in": team.get("members") or []}}),
    }


@router.get("/getTeamProjects/{team_id}")
async def get_team_projects(team_id: str, db: Database = Depends(get_db),
                            claims: Dict[str, Any] = Depends(require_project_manager)):
    get_owned_team(db, team_id, claims["UserId"])
    projects = []
    for log in db[ASSIGNED_PROJECT_LOGS].find({"teamId": team_id}):
        project = db[PROJECTS].find_one({"ProjectId": log["projectId"]})
        if project:
            projects.append({**serialize(project), "deadline": serialize(log)["deadline"],
                             "AssignProjectId": log["AssignProjectId"]})
    return {"success": True, "projects": projects}


@router.get("/getAllUsers")
async def get_all_users(db: Database = Depends(get_db)):
    """Accounts that can be placed on a team."""
    return {"success": True, "users": get_documents(db, USERS, {"userType": "User"})}


@router.api_route("/deleteTeams", methods=["POST", "DELETE"])
async def delete_teams(body: TeamIdsRequest, db: Database = Depends(get_db),
                       claims: Dict[str, Any] = Depends(require_project_manager)):
    ensure_all_owned(db, TEAMS, "teamId", body.teamIds, claims["UserId"])
    counts = execute_plan(db, plan_team_deletion(db, body.teamIds))
    return {
        "success": True,
        "message": f"Deleted {counts.teams} team(s) and their associated data.",
        "deletedCounts": counts.as_dict(),
    }


@router.post("/unassignProject")
async def unassign_project(body: UnassignRequest, db: Database = Depends(get_db),
                           claims: Dict[str, Any] = Depends(require_project_manager)):
    get_owned_team(db, body.teamId, claims["UserId"])
    counts = execute_plan(db, plan_unassignment(db, body.projectIds, team_id=body.teamId))
    return {
        "success": True,
        "message": f"Unassigned {counts.assignments} project(s) from team {body.teamId}.",
        "deletedCounts": counts.as_dict(),
    }
