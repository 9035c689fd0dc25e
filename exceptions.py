"""
Domain exceptions.

Routes mostly raise ``fastapi.HTTPException`` directly; these cover the errors
raised below the route layer, where there is no request to answer.
"""

from typing import Any, Dict, Optional


class TaskManagementError(Exception):
    """Base exception for the service"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidTransitionError(TaskManagementError):
    """A status change that the task/subtask workflow does not allow"""

    status_code = 400

    def __init__(self, kind: str, current: str, target: str):
        self.kind = kind
        self.current = current
        self.target = target
        super().__init__(
            f"{kind} cannot move to '{target}'. Current status: {current}",
            details={"currentStatus": current, "requestedStatus": target},
        )


class LogUpdateError(TaskManagementError):
    """Appending a new id to its parent's id array did not take effect"""

    def __init__(self, parent_id: str, child_id: str):
        self.parent_id = parent_id
        self.child_id = child_id
        super().__init__(f"Failed to record {child_id} on {parent_id}")
