from enum import Enum
from typing import Dict


class StatusCategory(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskType(str, Enum):
    EPIC = "epic"
    STORY = "story"
    TASK = "task"
    BUG = "bug"
    SUBTASK = "subtask"
    CHANGE_REQUEST = "change_request"


class TaskPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Role(str, Enum):
    ADMIN = "admin"
    LEAD = "lead"
    MEMBER = "member"
    VIEWER = "viewer"


# Column colour used when a workflow status has none
CATEGORY_COLORS: Dict[str, str] = {
    StatusCategory.DONE.value: "#10B981",
    StatusCategory.IN_PROGRESS.value: "#F59E0B",
    StatusCategory.TODO.value: "#6B7280",
}
NEUTRAL_COLOR = "#6B7280"


class ActivityAction(str, Enum):
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    STATUS_CHANGED = "status_changed"
    TASK_MOVED = "task_moved"
    SPRINT_CREATED = "sprint_created"
    SPRINT_STARTED = "sprint_started"
    SPRINT_COMPLETED = "sprint_completed"
    SPRINT_CANCELLED = "sprint_cancelled"
    WORKFLOW_CHANGED = "workflow_changed"


# Entries whose to_category reflects a task's category from that instant on
STATUS_BEARING_ACTIONS = (
    ActivityAction.TASK_CREATED.value,
    ActivityAction.STATUS_CHANGED.value,
    ActivityAction.TASK_MOVED.value,
)
