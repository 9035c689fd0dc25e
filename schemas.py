"""
Database Schemas for the Task Management service

Each Pydantic model represents a MongoDB collection. Documents reference each
other through string ids (``User-00001``, ``Team-00002``...) rather than
database relations, so these models are the only place the shape is written
down.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

USER_ID_PATTERN = r"^User-\d+$"
GITHUB_URL_PATTERN = r"^(https?://)?(www\.)?github\.com/[A-Za-z0-9_-]+(/[A-Za-z0-9_.-]+)?/?$"

NOT_SUBMITTED = "Not-submitted"
ASSIGN_ALL = "__all__"

UserType = Literal["Admin", "ProjectManager", "User"]
ProjectStatus = Literal["Pending", "In Progress", "Completed"]
WorkStatus = Literal["Pending", "In Progress", "Completed", "Re Assigned"]


# Accounts
class User(BaseModel):
    UserId: str
    firstname: str
    lastname: str
    email: EmailStr
    password: str = Field(..., description="bcrypt hash, never returned in queries")
    contact: str = ""
    profilepic: str = "/default-profile.png"
    userType: UserType = "User"


class Admin(BaseModel):
    AdminId: str
    firstname: str
    lastname: str
    email: EmailStr
    password: str
    contact: str = ""
    profilepic: str = "/default-profile.png"
    userType: Literal["Admin"] = "Admin"
    isVerified: bool = True


# Teams and projects
class Team(BaseModel):
    teamId: str
    teamName: str
    teamLeader: List[str] = Field(..., min_length=1, max_length=1, description="UserId of the leader")
    members: List[str] = Field(..., description="UserIds of members, leader excluded")
    createdBy: str


class Project(BaseModel):
    ProjectId: str
    title: str
    description: str
    createdBy: str
    status: ProjectStatus = "Pending"


class AssignedProjectLog(BaseModel):
    AssignProjectId: str
    projectId: str
    teamId: str
    assignedBy: str
    deadline: datetime
    tasksIds: List[str] = Field(default_factory=list)


# Work items
class Task(BaseModel):
    TaskId: str
    title: str
    description: str
    projectId: str
    teamId: str
    assignedTo: List[str] = Field(default_factory=list)
    deadline: datetime
    status: WorkStatus = "Pending"
    gitHubUrl: Optional[str] = None
    context: Optional[str] = None
    submittedby: str = NOT_SUBMITTED
    subTasks: List[str] = Field(default_factory=list)


class Subtask(BaseModel):
    SubtaskId: str
    parentTaskId: str
    title: str
    description: str
    assignedTo: List[str]
    deadline: datetime
    status: WorkStatus = "Pending"
    gitHubUrl: Optional[str] = None
    context: Optional[str] = None
    submittedBy: str = NOT_SUBMITTED
