"""
Referential-integrity cascades.

The store has no foreign keys, so every delete first computes the full
downstream closure of the root ids (a ``DeletionPlan``) and only then writes,
removing leaves before the documents that reference them:

    subtasks -> tasks -> assignment logs -> teams -> projects -> users

There is no transaction around the stages. A failure part way through leaves
the already-deleted leaves gone and the roots still present, which the next
run of the same cascade cleans up.
"""
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from pymongo.database import Database

from database import ASSIGNED_PROJECT_LOGS, PROJECTS, SUBTASKS, TASKS, TEAMS, USERS, utcnow
from logging_config import logger

EMAIL_REGEX = re.compile(r"^(?!.*\.\.)[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,63}$")


def _unique(values: Iterable[Any]) -> List[Any]:
    seen: Set[Any] = set()
    out = []
    for value in values:
        if isinstance(value, str) and value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


@dataclass
class DeletionPlan:
    subtask_ids: List[str] = field(default_factory=list)
    task_ids: List[str] = field(default_factory=list)
    log_ids: List[str] = field(default_factory=list)
    team_ids: List[str] = field(default_factory=list)
    project_ids: List[str] = field(default_factory=list)
    user_ids: List[str] = field(default_factory=list)
    # Projects that lose their assignment but are not themselves deleted
    reset_project_ids: List[str] = field(default_factory=list)


@dataclass
class DeletionCounts:
    subtasks: int = 0
    tasks: int = 0
    assignments: int = 0
    teams: int = 0
    projects: int = 0
    users: int = 0
    projects_reset: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def collect_subtask_ids(db: Database, task_ids: List[str]) -> List[str]:
    """Subtasks owned by ``task_ids``, whether listed on the task or pointing back at it."""
    if not task_ids:
        return []
    listed = []
    for task in db[TASKS].find({"TaskId": {"$in": task_ids}}, {"subTasks": 1}):
        listed.extend(task.get("subTasks") or [])
    pointing = db[SUBTASKS].find({"parentTaskId": {"$in": task_ids}}, {"SubtaskId": 1})
    return _unique(listed + [s.get("SubtaskId") for s in pointing])


def plan_for_logs(db: Database, log_filter: Dict[str, Any], plan: Optional[DeletionPlan] = None) -> DeletionPlan:
    """Add every log matching ``log_filter`` and the tasks/subtasks it owns to ``plan``."""
    plan = plan or DeletionPlan()
    logs = list(db[ASSIGNED_PROJECT_LOGS].find(log_filter))

    task_ids = list(plan.task_ids)
    for log in logs:
        task_ids.extend(log.get("tasksIds") or [])
    plan.log_ids = _unique(plan.log_ids + [log.get("AssignProjectId") for log in logs])
    plan.task_ids = _unique(task_ids)
    plan.subtask_ids = collect_subtask_ids(db, plan.task_ids)
    plan.reset_project_ids = _unique(plan.reset_project_ids + [log.get("projectId") for log in logs])
    return plan


def plan_team_deletion(db: Database, team_ids: List[str]) -> DeletionPlan:
    plan = plan_for_logs(db, {"teamId": {"$in": team_ids}})
    plan.team_ids = _unique(team_ids)
    return plan


def plan_project_deletion(db: Database, project_ids: List[str]) -> DeletionPlan:
    plan = plan_for_logs(db, {"projectId": {"$in": project_ids}})
    plan.project_ids = _unique(project_ids)
    return plan


def plan_unassignment(db: Database, project_ids: List[str], team_id: Optional[str] = None,
                      assigned_by: Optional[str] = None) -> DeletionPlan:
    """Closure of the Project<->Team links for ``project_ids``, optionally narrowed to one team or author."""
    log_filter: Dict[str, Any] = {"projectId": {"$in": project_ids}}
    if team_id is not None:
        log_filter["teamId"] = team_id
    if assigned_by is not None:
        log_filter["assignedBy"] = assigned_by
    return plan_for_logs(db, log_filter)


def plan_project_manager_deletion(db: Database, pm_user_ids: List[str]) -> DeletionPlan:
    """Everything a set of Project Managers created, authored, or that hangs off it."""
    project_ids = _unique(
        p.get("ProjectId") for p in db[PROJECTS].find({"createdBy": {"$in": pm_user_ids}}, {"ProjectId": 1})
    )
    team_ids = _unique(
        t.get("teamId") for t in db[TEAMS].find({"createdBy": {"$in": pm_user_ids}}, {"teamId": 1})
    )
    plan = plan_for_logs(db, {"$or": [
        {"assignedBy": {"$in": pm_user_ids}},
        {"projectId": {"$in": project_ids}},
        {"teamId": {"$in": team_ids}},
    ]})
    plan.project_ids = project_ids
    plan.team_ids = team_ids
    plan.user_ids = _unique(pm_user_ids)
    return plan


def execute_plan(db: Database, plan: DeletionPlan) -> DeletionCounts:
    """Delete a computed closure, deepest dependents first."""
    counts = DeletionCounts()

    if plan.subtask_ids:
        counts.subtasks = db[SUBTASKS].delete_many({"SubtaskId": {"$in": plan.subtask_ids}}).deleted_count
        logger.info(f"Deleted {counts.subtasks} of {len(plan.subtask_ids)} subtask(s)")

    if plan.task_ids:
        counts.tasks = db[TASKS].delete_many({"TaskId": {"$in": plan.task_ids}}).deleted_count
        logger.info(f"Deleted {counts.tasks} of {len(plan.task_ids)} task(s)")

    if plan.log_ids:
        counts.assignments = db[ASSIGNED_PROJECT_LOGS].delete_many(
            {"AssignProjectId": {"$in": plan.log_ids}}
        ).deleted_count
        logger.info(f"Deleted {counts.assignments} assignment log(s)")

    if plan.team_ids:
        counts.teams = db[TEAMS].delete_many({"teamId": {"$in": plan.team_ids}}).deleted_count
        logger.info(f"Deleted {counts.teams} team(s)")

    if plan.project_ids:
        counts.projects = db[PROJECTS].delete_many({"ProjectId": {"$in": plan.project_ids}}).deleted_count
        logger.info(f"Deleted {counts.projects} project(s)")

    if plan.user_ids:
        counts.users = db[USERS].delete_many(
            {"UserId": {"$in": plan.user_ids}, "userType": "ProjectManager"}
        ).deleted_count
        logger.info(f"Deleted {counts.users} Project Manager user(s)")

    deleted_projects = set(plan.project_ids)
    surviving = [pid for pid in plan.reset_project_ids if pid not in deleted_projects]
    if surviving:
        # A project with no assignment has no tasks, so it is back to Pending
        counts.projects_reset = db[PROJECTS].update_many(
            {"ProjectId": {"$in": surviving}},
            {"$set": {"status": "Pending", "updatedAt": utcnow()}},
        ).modified_count

    return counts


def delete_tasks(db: Database, task_ids: List[str]) -> DeletionCounts:
    """Delete tasks with their subtasks and drop their ids from every log."""
    counts = DeletionCounts()
    task_ids = _unique(task_ids)
    if not task_ids:
        return counts
    subtask_ids = collect_subtask_ids(db, task_ids)
    if subtask_ids:
        counts.subtasks = db[SUBTASKS].delete_many({"SubtaskId": {"$in": subtask_ids}}).deleted_count
    counts.tasks = db[TASKS].delete_many({"TaskId": {"$in": task_ids}}).deleted_count
    db[ASSIGNED_PROJECT_LOGS].update_many(
        {"tasksIds": {"$in": task_ids}},
        {"$pullAll": {"tasksIds": task_ids}, "$set": {"updatedAt": utcnow()}},
    )
    logger.info(f"Deleted {counts.tasks} task(s) and {counts.subtasks} subtask(s)")
    return counts


def delete_subtasks(db: Database, subtask_ids: List[str]) -> int:
    """Delete subtasks and drop their ids from the parent tasks' ``subTasks``."""
    subtask_ids = _unique(subtask_ids)
    if not subtask_ids:
        return 0
    deleted = db[SUBTASKS].delete_many({"SubtaskId": {"$in": subtask_ids}}).deleted_count
    db[TASKS].update_many(
        {"subTasks": {"$in": subtask_ids}},
        {"$pullAll": {"subTasks": subtask_ids}, "$set": {"updatedAt": utcnow()}},
    )
    return deleted


@dataclass
class ProjectManagerDeletionReport:
    validPmEmailsProcessed: List[str] = field(default_factory=list)
    validPmUserIdsProcessed: List[str] = field(default_factory=list)
    invalidOrSkippedEmails: List[Dict[str, str]] = field(default_factory=list)
    deletedProjectsCount: int = 0
    deletedTeamsCount: int = 0
    deletedAssignmentsCount: int = 0
    deletedTasksCount: int = 0
    deletedSubtasksCount: int = 0
    deletedUsersCount: int = 0

    def skip(self, email: Any, reason: str) -> None:
        self.invalidOrSkippedEmails.append({"email": str(email), "reason": reason})

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_project_manager_emails(db: Database, emails: List[Any], admin_email: str,
                                    report: ProjectManagerDeletionReport) -> None:
    """Sort candidate emails into valid PMs and skipped entries, recording both on ``report``."""
    admin_lower = admin_email.lower()
    candidates = []
    for email in emails:
        if not isinstance(email, str) or not EMAIL_REGEX.match(email):
            report.skip(email, "Invalid email format")
            continue
        if email.lower() == admin_lower:
            report.skip(email, "Admin cannot delete self")
            continue
        candidates.append(email.lower())
    candidates = _unique(candidates)
    if not candidates:
        return

    # Emails are stored lower-cased at registration
    found = {
        user["email"].lower(): user
        for user in db[USERS].find({"email": {"$in": candidates}}, {"UserId": 1, "userType": 1, "email": 1})
    }

    for email in candidates:
        user = found.get(email)
        if user is None:
            report.skip(email, "User not found")
        elif user.get("userType") != "ProjectManager":
            report.skip(email, f"Not a Project Manager (Type: {user.get('userType')})")
        else:
            report.validPmEmailsProcessed.append(email)
            report.validPmUserIdsProcessed.append(user["UserId"])


def delete_project_managers(db: Database, report: ProjectManagerDeletionReport) -> DeletionCounts:
    """Cascade-delete the PMs already classified as valid on ``report``."""
    pm_ids = report.validPmUserIdsProcessed
    logger.info(f"Initiating deletion cascade for {len(pm_ids)} Project Manager(s): {pm_ids}")
    plan = plan_project_manager_deletion(db, pm_ids)
    counts = execute_plan(db, plan)
    report.deletedSubtasksCount = counts.subtasks
    report.deletedTasksCount = counts.tasks
    report.deletedAssignmentsCount = counts.assignments
    report.deletedTeamsCount = counts.teams
    report.deletedProjectsCount = counts.projects
    report.deletedUsersCount = counts.users
    return counts
